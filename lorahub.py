#!/usr/bin/env python3
"""
LoraHub CLI - Main Application Entry Point
Groups High/Low noise LoRA files from a seed manifest into card entries
"""

import sys
import json
import logging
import argparse
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from config import ConfigManager, ConfigError, OUTPUT_FORMATS
from classifier import LoraVariantClassifier, classify_names
from merger import LoraCardEntry, LoraSeed, LoraVariantMerger

__version__ = "0.1.0"

SEED_FIELDS = (
    "file_name", "version_name", "model_id", "base_model",
    "source_path", "folder_path", "tree_path", "tree_segments",
)

# Scanner exports use camelCase keys
SEED_FIELD_ALIASES = {
    "fileName": "file_name",
    "safeTensorFileName": "file_name",
    "versionName": "version_name",
    "modelVersionName": "version_name",
    "modelId": "model_id",
    "baseModel": "base_model",
    "diffusionBaseModel": "base_model",
    "sourcePath": "source_path",
    "folderPath": "folder_path",
    "treePath": "tree_path",
    "treeSegments": "tree_segments",
}


class SeedFileError(Exception):
    """Raised when a seed manifest cannot be read or parsed"""


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def seed_from_mapping(data: Dict[str, Any], index: int = 0) -> LoraSeed:
    """Build a LoraSeed from one manifest mapping"""
    if not isinstance(data, dict):
        raise SeedFileError(f"Seed #{index} must be a mapping, got {type(data).__name__}")

    values: Dict[str, Any] = {}
    for key, value in data.items():
        field_name = SEED_FIELD_ALIASES.get(key, key)
        if field_name not in SEED_FIELDS:
            raise SeedFileError(f"Seed #{index} has unknown field '{key}'")
        values[field_name] = value

    segments = values.get("tree_segments")
    if isinstance(segments, list):
        values["tree_segments"] = tuple(segments)

    # modelId arrives as an integer from some exports
    for text_field in ("file_name", "version_name", "model_id", "base_model"):
        values[text_field] = _optional_text(values.get(text_field))

    return LoraSeed(**values)


def load_seed_file(path: Path) -> List[LoraSeed]:
    """Load seeds from a YAML or JSON manifest"""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise SeedFileError(f"Error reading seed file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise SeedFileError(f"Error parsing seed file {path}: {e}") from e

    if data is None:
        return []
    if isinstance(data, dict):
        data = data.get("seeds") or []
    if not isinstance(data, list):
        raise SeedFileError(f"Seed file {path} must contain a list of seeds")

    return [seed_from_mapping(item, index) for index, item in enumerate(data)]


def display_name(seed: LoraSeed) -> str:
    return seed.file_name or seed.version_name or "<unnamed>"


def format_entries_text(entries: List[LoraCardEntry], classifier) -> str:
    lines = []
    for entry in entries:
        classification = classifier.classify(entry.model)
        labels = "|".join(variant.label for variant in entry.variants) or "-"
        line = f"{display_name(entry.model)}  [{labels}]  key={classification.normalized_key or '-'}"
        if entry.has_variants:
            files = ", ".join(display_name(variant.model) for variant in entry.variants)
            line += f"\n    variants: {files}"
        lines.append(line)
    return "\n".join(lines)


def render_entries(entries: List[LoraCardEntry], output_format: str, classifier) -> str:
    if output_format == "json":
        return json.dumps([entry.to_dict() for entry in entries], indent=2, default=str)
    if output_format == "yaml":
        return yaml.safe_dump([entry.to_dict() for entry in entries], default_flow_style=False, sort_keys=False)
    return format_entries_text(entries, classifier)


def run_classify(names: List[str]) -> int:
    for name in names:
        classification = classify_names(name)
        print(f"{name} -> {classification.normalized_key or '-'} | {classification.label_text or '-'}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point"""
    parser = argparse.ArgumentParser(
        description="LoraHub - High/Low noise LoRA variant merging",
        prog="lorahub"
    )
    parser.add_argument(
        "seeds",
        nargs="?",
        help="Seed manifest (YAML or JSON); defaults to seeds.path from the config"
    )
    parser.add_argument(
        "--config",
        default="config.yaml",
        help="Configuration file path (default: config.yaml)"
    )
    parser.add_argument(
        "--format",
        choices=OUTPUT_FORMATS,
        help="Output format (overrides output.format)"
    )
    parser.add_argument(
        "--hide-standalone",
        action="store_true",
        help="Only print entries that merged more than one variant"
    )
    parser.add_argument(
        "--classify",
        nargs="+",
        metavar="NAME",
        help="Classify file or version names and exit"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"LoraHub CLI {__version__}"
    )

    args = parser.parse_args(argv)

    if args.classify:
        return run_classify(args.classify)

    try:
        config_manager = ConfigManager(args.config)
        config = config_manager.load_config()

        logging.basicConfig(
            level=logging.DEBUG if args.verbose else config.log_level,
            format="%(levelname)s %(name)s: %(message)s",
        )

        seeds_path = Path(args.seeds) if args.seeds else config_manager.get_seeds_path()
        seeds = load_seed_file(seeds_path)

        classifier = LoraVariantClassifier(cache_size=config.cache_size)
        entries = LoraVariantMerger(classifier).merge(seeds)

        if args.hide_standalone or not config.show_standalone:
            entries = [entry for entry in entries if entry.has_variants]

        output = render_entries(entries, args.format or config.output_format, classifier)
        if output:
            print(output)
        return 0

    except KeyboardInterrupt:
        print("\nExiting...")
        return 0
    except (ConfigError, SeedFileError) as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

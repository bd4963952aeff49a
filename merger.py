#!/usr/bin/env python3
"""
LoRA Variant Merger - groups High/Low noise files into card entries
Seeds sharing a normalized key, model id and base model collapse into one
entry with an ordered variant list; everything else stays standalone
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from classifier import LoraVariantClassification, LoraVariantClassifier, VariantLabel

logger = logging.getLogger(__name__)

VARIANT_ORDER = {
    VariantLabel.HIGH.value.lower(): 0,
    VariantLabel.LOW.value.lower(): 1,
}


@dataclass(frozen=True)
class LoraSeed:
    """A LoRA discovered on disk, before classification or merging"""
    file_name: Optional[str] = None
    version_name: Optional[str] = None
    model_id: Optional[str] = None
    base_model: Optional[str] = None

    # Passed through untouched
    source_path: Any = None
    folder_path: Any = None
    tree_path: Any = None
    tree_segments: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_name": self.file_name,
            "version_name": self.version_name,
            "model_id": self.model_id,
            "base_model": self.base_model,
            "source_path": self.source_path,
            "folder_path": self.folder_path,
            "tree_path": self.tree_path,
            "tree_segments": list(self.tree_segments) if self.tree_segments is not None else None,
        }


@dataclass(frozen=True)
class LoraVariantDescriptor:
    """One selectable variant of a card and the seed to load for it"""
    label: str
    model: LoraSeed


@dataclass(frozen=True)
class LoraCardEntry:
    """Merged card information, including grouped variants"""
    model: LoraSeed
    source_path: Any = None
    folder_path: Any = None
    tree_path: Any = None
    tree_segments: Any = None
    variants: Tuple[LoraVariantDescriptor, ...] = field(default_factory=tuple)

    @property
    def has_variants(self) -> bool:
        """True when the card needs a variant picker"""
        return len(self.variants) > 1

    def variant_for(self, label) -> Optional[LoraVariantDescriptor]:
        """Look up a variant by label, ignoring case"""
        wanted = str(label).lower()
        for variant in self.variants:
            if variant.label.lower() == wanted:
                return variant
        return None

    def preferred_variant(self) -> Optional[LoraVariantDescriptor]:
        """Default picker selection: High when present, else the first variant"""
        high = self.variant_for(VariantLabel.HIGH)
        if high:
            return high
        return self.variants[0] if self.variants else None

    def to_dict(self) -> Dict[str, Any]:
        data = self.model.to_dict()
        data.update({
            "source_path": self.source_path,
            "folder_path": self.folder_path,
            "tree_path": self.tree_path,
            "tree_segments": list(self.tree_segments) if self.tree_segments is not None else None,
            "variants": [
                {"label": variant.label, "file_name": variant.model.file_name,
                 "source_path": variant.model.source_path}
                for variant in self.variants
            ],
        })
        return data


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def variant_sort_key(label: str) -> Tuple[int, str]:
    """High first, then Low, then anything else by case-folded label"""
    lowered = label.lower()
    return VARIANT_ORDER.get(lowered, 2), lowered


def is_merge_candidate(seed: LoraSeed, classification: LoraVariantClassification) -> bool:
    """Determine whether a seed is eligible for variant merging"""
    if classification.variant_label is None:
        return False
    if not classification.normalized_key:
        return False
    return not _is_blank(seed.model_id) and not _is_blank(seed.base_model)


def create_standalone_entry(seed: LoraSeed, classification: LoraVariantClassification) -> LoraCardEntry:
    """Create a card entry for a seed that is not merged with others"""
    variants: Tuple[LoraVariantDescriptor, ...] = ()
    if classification.variant_label is not None:
        variants = (LoraVariantDescriptor(classification.variant_label.value, seed),)

    return LoraCardEntry(
        model=seed,
        source_path=seed.source_path,
        folder_path=seed.folder_path,
        tree_path=seed.tree_path,
        tree_segments=seed.tree_segments,
        variants=variants,
    )


class VariantGroup:
    """High/Low variants that render as a single card"""

    def __init__(self, seed: LoraSeed):
        self.seed = seed
        self.variants: Dict[str, Tuple[str, LoraSeed]] = {}

    def add_variant(self, label: str, model: LoraSeed):
        slot = label.lower()
        if slot in self.variants:
            logger.debug("Replacing %s variant %r with %r", label,
                         self.variants[slot][1].file_name, model.file_name)
        self.variants[slot] = (label, model)

    def to_entry(self) -> LoraCardEntry:
        ordered = tuple(
            LoraVariantDescriptor(label, model)
            for label, model in sorted(self.variants.values(), key=lambda item: variant_sort_key(item[0]))
        )
        return LoraCardEntry(
            model=ordered[0].model,
            source_path=self.seed.source_path,
            folder_path=self.seed.folder_path,
            tree_path=self.seed.tree_path,
            tree_segments=self.seed.tree_segments,
            variants=ordered,
        )


class MergeAggregator:
    """Accumulates seeds for one merge pass, preserving first-seen order"""

    def __init__(self, classifier):
        self.classifier = classifier
        self.groups: Dict[Tuple[str, str, str], VariantGroup] = {}
        # Each slot is either a finished standalone entry or a pending group
        self.ordered_items: List[Any] = []

    def add(self, seed: LoraSeed):
        if seed is None:
            raise ValueError("seeds must not contain None")

        classification = self.classifier.classify(seed)
        if is_merge_candidate(seed, classification):
            group = self.get_or_create_group(seed, classification)
            group.add_variant(classification.variant_label.value, seed)
        else:
            self.ordered_items.append(create_standalone_entry(seed, classification))

    def get_or_create_group(self, seed: LoraSeed, classification: LoraVariantClassification) -> VariantGroup:
        key = (
            classification.normalized_key.lower(),
            str(seed.model_id).lower(),
            str(seed.base_model).lower(),
        )
        group = self.groups.get(key)
        if group is None:
            logger.debug("New variant group %s at position %d", key, len(self.ordered_items))
            group = VariantGroup(seed)
            self.groups[key] = group
            self.ordered_items.append(group)
        return group

    def to_entries(self) -> List[LoraCardEntry]:
        return [
            item.to_entry() if isinstance(item, VariantGroup) else item
            for item in self.ordered_items
        ]


class LoraVariantMerger:
    """Merges High/Low LoRA variants into card entries"""

    def __init__(self, classifier=None):
        self.classifier = classifier or LoraVariantClassifier()

    def merge(self, seeds: Iterable[LoraSeed]) -> List[LoraCardEntry]:
        """Merge seeds into card entries, keeping input order"""
        if seeds is None:
            raise ValueError("seeds collection is required")

        aggregator = MergeAggregator(self.classifier)
        for seed in seeds:
            aggregator.add(seed)

        entries = aggregator.to_entries()
        logger.debug("Merged seeds into %d card entries (%d groups)",
                     len(entries), len(aggregator.groups))
        return entries


def merge(seeds: Iterable[LoraSeed]) -> List[LoraCardEntry]:
    """Merge seeds with the default classifier"""
    return LoraVariantMerger().merge(seeds)

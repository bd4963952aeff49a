#!/usr/bin/env python3
"""
Configuration management for LoraHub
Handles YAML config loading and default creation
"""

import yaml
import logging
from pathlib import Path
from typing import Dict, Any
from dataclasses import dataclass

OUTPUT_FORMATS = ("text", "json", "yaml")


class ConfigError(Exception):
    """Raised when the configuration file cannot be read or is invalid"""


@dataclass
class Config:
    """Configuration data structure"""
    seeds_path: str
    output_format: str
    show_standalone: bool
    log_level: str
    cache_size: int


class ConfigManager:
    """Manages configuration loading and creation"""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self.config = None

    def load_config(self) -> Config:
        """Load configuration from file, create default if missing"""
        if not self.config_path.exists():
            self.create_default_config()

        try:
            with open(self.config_path, 'r') as f:
                config_data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Error loading config: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigError(f"Error loading config: {self.config_path} must contain a mapping")

        seeds = self._section(config_data, 'seeds')
        output = self._section(config_data, 'output')
        logging_section = self._section(config_data, 'logging')
        classification = self._section(config_data, 'classification')

        self.config = Config(
            seeds_path=str(seeds.get('path', './seeds.yaml')),
            output_format=str(output.get('format', 'text')).lower(),
            show_standalone=output.get('show_standalone', True),
            log_level=str(logging_section.get('level', 'WARNING')).upper(),
            cache_size=classification.get('cache_size', 1024),
        )
        self.validate(self.config)

        return self.config

    @staticmethod
    def _section(config_data: Dict[str, Any], name: str) -> Dict[str, Any]:
        section = config_data.get(name)
        if section is None:
            return {}
        if not isinstance(section, dict):
            raise ConfigError(f"Section '{name}' must be a mapping")
        return section

    def validate(self, config: Config):
        """Reject values the CLI cannot act on"""
        if config.output_format not in OUTPUT_FORMATS:
            raise ConfigError(
                f"Invalid output format '{config.output_format}', expected one of: {', '.join(OUTPUT_FORMATS)}"
            )
        if not isinstance(config.show_standalone, bool):
            raise ConfigError(f"Invalid output show_standalone '{config.show_standalone}', expected true or false")
        if not isinstance(logging.getLevelName(config.log_level), int):
            raise ConfigError(f"Invalid logging level '{config.log_level}'")
        if isinstance(config.cache_size, bool) or not isinstance(config.cache_size, int) or config.cache_size < 0:
            raise ConfigError(f"Invalid classification cache_size '{config.cache_size}'")

    def create_default_config(self):
        """Create default configuration file"""
        default_config = {
            'seeds': {
                'path': './seeds.yaml'
            },
            'output': {
                'format': 'text',
                'show_standalone': True
            },
            'logging': {
                'level': 'WARNING'
            },
            'classification': {
                'cache_size': 1024
            }
        }

        try:
            with open(self.config_path, 'w') as f:
                yaml.dump(default_config, f, default_flow_style=False, sort_keys=False)
            print(f"Created default config file: {self.config_path}")
        except OSError as e:
            raise ConfigError(f"Error creating default config: {e}") from e

    def get_seeds_path(self) -> Path:
        """Get the seed manifest path, relative paths resolved against the config file"""
        if not self.config:
            self.load_config()
        seeds_path = Path(self.config.seeds_path).expanduser()
        if not seeds_path.is_absolute():
            seeds_path = self.config_path.parent / seeds_path
        return seeds_path.resolve()

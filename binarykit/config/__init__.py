"""Configuration module for binarykit.

This module provides YAML settings parsing and validation for binarykit.yaml.
"""

from binarykit.config.settings import (
    Settings,
    ConfigError,
    load_settings,
    settings_from_dict,
)

__all__ = ["Settings", "ConfigError", "load_settings", "settings_from_dict"]

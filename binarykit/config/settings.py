"""YAML settings for binarykit.

Settings are read from ``binarykit.yaml``. Every key is optional:

    repository: ink0rr/rockide
    executable: rockide
    asset_pattern: "{name}_{os}_{arch}.tar.gz"
    checksum_assets: [checksums.txt, SHA256SUMS, "{asset}.sha256"]
    storage_dir: ~/.binarykit
    binary_path: /opt/rockide/rockide   # override, wins over managed versions
    version: latest                     # or a pinned tag such as v1.2.3
    auto_update: true
    check_for_updates: true
    retention: 5
    update_interval_hours: 24
    resolve_timeout: 30
    min_binary_size: 1024
    api_url: https://api.github.com
    github_token: null                  # falls back to $GITHUB_TOKEN
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from binarykit.core.exceptions import ConfigError
from binarykit.install.store import DEFAULT_RETENTION
from binarykit.release.source import (
    DEFAULT_API_URL,
    DEFAULT_ASSET_PATTERN,
    DEFAULT_CHECKSUM_ASSETS,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "binarykit.yaml"
TOKEN_ENV_VAR = "GITHUB_TOKEN"


@dataclass
class Settings:
    """Read-only inputs for the binary manager."""

    repository: str = "ink0rr/rockide"
    executable: str = "rockide"
    asset_pattern: str = DEFAULT_ASSET_PATTERN
    checksum_assets: List[str] = field(
        default_factory=lambda: list(DEFAULT_CHECKSUM_ASSETS)
    )
    storage_dir: Optional[Path] = None
    binary_path: Optional[Path] = None
    version: str = "latest"
    auto_update: bool = True
    check_for_updates: bool = True
    retention: int = DEFAULT_RETENTION
    update_interval_hours: float = 24
    resolve_timeout: float = 30
    min_binary_size: int = 1024
    api_url: str = DEFAULT_API_URL
    github_token: Optional[str] = None

    @property
    def pinned_version(self) -> Optional[str]:
        """Pinned tag, or None when following the latest release."""
        if not self.version or self.version.lower() == "latest":
            return None
        return self.version


# Expected YAML types per key (paths are given as strings)
_FIELD_TYPES: Dict[str, tuple] = {
    "repository": (str,),
    "executable": (str,),
    "asset_pattern": (str,),
    "checksum_assets": (list,),
    "storage_dir": (str,),
    "binary_path": (str,),
    "version": (str,),
    "auto_update": (bool,),
    "check_for_updates": (bool,),
    "retention": (int,),
    "update_interval_hours": (int, float),
    "resolve_timeout": (int, float),
    "min_binary_size": (int,),
    "api_url": (str,),
    "github_token": (str,),
}


def load_settings(
    config_path: Optional[Path] = None, required: bool = False
) -> Settings:
    """
    Load settings from a YAML file.

    Args:
        config_path: Settings file (default: ./binarykit.yaml)
        required: If True, a missing file is an error

    Returns:
        Parsed settings; defaults when the file is absent and optional

    Raises:
        ConfigError: If the file is required but missing, or is invalid
    """
    config_path = Path(config_path) if config_path else Path.cwd() / DEFAULT_CONFIG_FILE

    if not config_path.exists():
        if required:
            raise ConfigError(f"Configuration file not found: {config_path}")
        logger.debug(f"Config file not found (optional): {config_path}")
        return settings_from_dict({})

    logger.debug(f"Loading configuration from {config_path}")
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {config_path}: {e}") from e

    return settings_from_dict(data or {})


def settings_from_dict(data: Any) -> Settings:
    """
    Validate a parsed mapping and build ``Settings``.

    Raises:
        ConfigError: On unknown keys or values of the wrong type
    """
    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping")

    unknown = sorted(set(data) - set(_FIELD_TYPES))
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")

    values: Dict[str, Any] = {}
    for key, value in data.items():
        if value is None:
            continue
        _check_type(key, value)
        values[key] = value

    if "checksum_assets" in values:
        if not all(isinstance(name, str) for name in values["checksum_assets"]):
            raise ConfigError("checksum_assets must be a list of strings")

    for key in ("storage_dir", "binary_path"):
        if key in values:
            values[key] = Path(values[key]).expanduser()

    if values.get("retention", DEFAULT_RETENTION) < 1:
        raise ConfigError(f"retention must be at least 1, got {values['retention']}")

    if "github_token" not in values and os.environ.get(TOKEN_ENV_VAR):
        values["github_token"] = os.environ[TOKEN_ENV_VAR]

    if "/" not in values.get("repository", "owner/name"):
        raise ConfigError(
            f"repository must be 'owner/name', got '{values['repository']}'"
        )

    return Settings(**values)


def _check_type(key: str, value: Any) -> None:
    expected = _FIELD_TYPES[key]
    # bool is an int subclass; only accept it where a bool is expected
    if isinstance(value, bool) and bool not in expected:
        valid = False
    else:
        valid = isinstance(value, expected)

    if not valid:
        names = " or ".join(t.__name__ for t in expected)
        raise ConfigError(
            f"Invalid value for '{key}': expected {names}, got {type(value).__name__}"
        )


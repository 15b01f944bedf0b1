"""
Storage directory layout for binarykit.

Directory Structure (per storage root):
    binaries/<tag>/<executable>   : One directory per installed release
    temp/<asset>                  : Download staging, emptied after use
    install.lock                  : Cross-process install lock
    state.json                    : Persisted key-value state
"""

import os
from pathlib import Path
from typing import Optional

from binarykit.core.exceptions import BinaryKitError

STORAGE_ENV_VAR = "BINARYKIT_STORAGE_DIR"

BINARIES_DIR = "binaries"
TEMP_DIR = "temp"
STATE_FILE = "state.json"


class DirectoryError(BinaryKitError):
    """Raised when the storage root cannot be determined."""

    pass


def get_global_storage_dir(override: Optional[Path] = None) -> Path:
    """
    Get the storage root directory.

    Resolution order: explicit ``override``, ``$BINARYKIT_STORAGE_DIR``, then the
    platform default (``%LOCALAPPDATA%\\binarykit`` on Windows,
    ``~/.binarykit`` elsewhere).

    Example:
        >>> get_global_storage_dir()
        PosixPath('/home/user/.binarykit')
    """
    if override is not None:
        return Path(override).expanduser()

    env_value = os.environ.get(STORAGE_ENV_VAR)
    if env_value:
        return Path(env_value).expanduser()

    if os.name == "nt":
        base = os.environ.get("LOCALAPPDATA") or os.environ.get("USERPROFILE")
        if not base:
            raise DirectoryError(
                "Neither LOCALAPPDATA nor USERPROFILE is set. "
                "Cannot determine storage directory."
            )
        return Path(base) / "binarykit"

    return Path.home() / ".binarykit"

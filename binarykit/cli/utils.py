"""
Shared utilities for CLI commands.
"""

import logging
import sys
from typing import Optional

from binarykit.config.settings import load_settings
from binarykit.core.download import DownloadProgress
from binarykit.install.installer import InstallResult
from binarykit.manager import BinaryManager

logger = logging.getLogger(__name__)


def create_manager(args) -> BinaryManager:
    """
    Build a BinaryManager from parsed global options.

    ``--config`` makes the file mandatory; otherwise ./binarykit.yaml is used
    when present. ``--storage-dir`` overrides the configured storage root.

    Raises:
        ConfigError: If the configuration is missing or invalid
    """
    config_path = getattr(args, "config", None)
    settings = load_settings(config_path, required=config_path is not None)

    storage_dir = getattr(args, "storage_dir", None)
    if storage_dir is not None:
        settings.storage_dir = storage_dir

    return BinaryManager(settings)


def safe_print(message: str, file=None):
    """
    Print message with safe encoding handling for Windows console.

    Falls back to ASCII markers if Unicode symbols can't be encoded.
    """
    try:
        print(message, file=file)
    except UnicodeEncodeError:
        safe_message = message.replace("✓", "[OK]").replace("✗", "[ERROR]")
        print(safe_message, file=file)


def print_error(message: str, details: Optional[str] = None):
    """Print an error message to stderr."""
    safe_print(f"✗ {message}", file=sys.stderr)
    if details:
        print(f"  {details}", file=sys.stderr)


def print_install_failure(result: Optional[InstallResult]):
    """Print the single summarized failure of an install attempt."""
    if result is None:
        print_error("Install failed")
        return

    kind = result.error.value if result.error else "unknown"
    stage = f" during {result.failed_state.value}" if result.failed_state else ""
    print_error(f"Install failed ({kind}{stage})", result.message)


class ProgressPrinter:
    """Progress callback that rewrites a single terminal line."""

    def __init__(self, file=None):
        self.file = file or sys.stderr
        self._active = False

    def __call__(self, progress: DownloadProgress) -> None:
        if not self.file.isatty():
            return
        self.file.write(f"\r  {progress}    ")
        self.file.flush()
        self._active = True

    def finish(self) -> None:
        if self._active:
            self.file.write("\n")
            self.file.flush()
            self._active = False

"""
binarykit - lifecycle management for an externally released companion binary.

Discovers releases, installs the platform build with checksum verification,
keeps a bounded set of versions on disk and checks for updates.
"""

from binarykit.config.settings import Settings, load_settings
from binarykit.manager import BinaryManager

__all__ = ["BinaryManager", "Settings", "load_settings"]

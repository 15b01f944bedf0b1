"""
Installation lifecycle: extraction, the version store, the install
orchestrator and update detection.
"""

from binarykit.install.extractor import Extractor
from binarykit.install.installer import InstallResult, InstallState, Installer
from binarykit.install.store import InstalledVersion, PruneResult, VersionStore
from binarykit.install.updater import UpdateChecker, UpdateInfo

__all__ = [
    "Extractor",
    "Installer",
    "InstallResult",
    "InstallState",
    "InstalledVersion",
    "PruneResult",
    "VersionStore",
    "UpdateChecker",
    "UpdateInfo",
]

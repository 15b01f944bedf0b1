"""
On-disk store of installed versions.

Layout: ``<root>/binaries/<tag>/<executable>``. A version counts as installed
only when its executable exists; a bare directory left by an interrupted
install is never reported. Recency is the directory's modification time,
which every install bumps.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

from binarykit.core.directory import BINARIES_DIR, TEMP_DIR
from binarykit.core.filesystem import RemovalResult, remove_tree, touch_directory
from binarykit.core.platform import PlatformInfo

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = 5


@dataclass
class InstalledVersion:
    """A version directory that holds the platform executable."""

    tag: str
    installed_at: datetime
    binary_path: Path


@dataclass
class PruneResult:
    """Result of a retention pass."""

    removed: List[str] = field(default_factory=list)
    kept: List[str] = field(default_factory=list)
    skipped: List[Path] = field(default_factory=list)
    """Entries that could not be deleted (locked); left for a later attempt"""


class VersionStore:
    """
    Directory-per-version store under one storage root.

    Example:
        >>> store = VersionStore(Path('~/.binarykit').expanduser(), platform, 'rockide')
        >>> store.list_versions()
        ['v1.3.0', 'v1.2.0']
        >>> store.resolve_active_binary()
        PosixPath('/home/user/.binarykit/binaries/v1.3.0/rockide')
    """

    def __init__(
        self,
        root: Path,
        platform: PlatformInfo,
        executable: str,
        override_path: Optional[Path] = None,
    ):
        """
        Initialize version store.

        Args:
            root: Storage root directory
            platform: Platform the executables are built for
            executable: Product executable name without platform suffix
            override_path: User-configured binary that wins over managed ones
        """
        self.root = Path(root)
        self.binaries_dir = self.root / BINARIES_DIR
        self.temp_dir = self.root / TEMP_DIR
        self.executable_name = platform.executable_name(executable)
        self.override_path = Path(override_path) if override_path else None

    def version_dir(self, tag: str) -> Path:
        return self.binaries_dir / tag

    def binary_path(self, tag: str) -> Path:
        """Expected executable path for ``tag`` (whether or not it exists)."""
        return self.version_dir(tag) / self.executable_name

    def list_versions(self) -> List[str]:
        """Tags of all version directories, most recently installed first."""
        if not self.binaries_dir.is_dir():
            return []

        entries = []
        for entry in self.binaries_dir.iterdir():
            try:
                if entry.is_dir() and not entry.is_symlink():
                    entries.append((entry.stat().st_mtime, entry.name))
            except OSError as e:
                logger.debug(f"Skipping unreadable entry {entry}: {e}")

        entries.sort(key=lambda item: (item[0], item[1]), reverse=True)
        return [name for _, name in entries]

    def installed_versions(self) -> List[InstalledVersion]:
        """Fully installed versions, most recent first."""
        versions = []
        for tag in self.list_versions():
            binary = self.is_installed(tag)
            if binary is None:
                continue
            mtime = self.version_dir(tag).stat().st_mtime
            versions.append(
                InstalledVersion(
                    tag=tag,
                    installed_at=datetime.fromtimestamp(mtime, tz=timezone.utc),
                    binary_path=binary,
                )
            )
        return versions

    def is_installed(self, tag: str) -> Optional[Path]:
        """Return the executable path if ``tag`` is fully installed, else None."""
        binary = self.binary_path(tag)
        return binary if binary.is_file() else None

    def active_version(self) -> Optional[str]:
        """Tag of the most recently installed complete version."""
        for tag in self.list_versions():
            if self.is_installed(tag) is not None:
                return tag
        return None

    def override_active(self) -> bool:
        """True if a configured override binary exists on disk."""
        return self.override_path is not None and self.override_path.is_file()

    def resolve_active_binary(self) -> Optional[Path]:
        """
        Binary to run: the override path if present, else the newest managed one.

        Returns:
            Executable path, or None if nothing usable is installed
        """
        if self.override_active():
            return self.override_path

        tag = self.active_version()
        return self.binary_path(tag) if tag else None

    def mark_installed(self, tag: str) -> None:
        """Make ``tag`` the most recent version."""
        touch_directory(self.version_dir(tag))

    def remove_version(self, tag: str) -> RemovalResult:
        """Recursively delete one version directory, tolerating locked files."""
        logger.info(f"Removing version {tag}")
        return remove_tree(self.version_dir(tag))

    def prune(
        self, keep: int = DEFAULT_RETENTION, protect: Iterable[str] = ()
    ) -> PruneResult:
        """
        Delete all but the ``keep`` most recent version directories.

        Versions in ``protect`` are never removed, even when they fall past the
        limit. Locked files are skipped and reported; a directory that can't be
        emptied stays for a future attempt.

        Args:
            keep: Number of most recent versions to retain
            protect: Tags that must survive (just installed, currently active)

        Returns:
            PruneResult listing removed tags and leftover paths
        """
        if keep < 0:
            raise ValueError(f"keep must be >= 0, got {keep}")

        result = PruneResult()
        protected = set(protect)
        versions = self.list_versions()
        result.kept = versions[:keep]

        for tag in versions[keep:]:
            if tag in protected:
                logger.debug(f"Keeping protected version {tag}")
                result.kept.append(tag)
                continue

            removal = self.remove_version(tag)
            if removal.complete:
                result.removed.append(tag)
            else:
                result.skipped.extend(removal.skipped)

        if result.removed:
            logger.info(f"Pruned {len(result.removed)} old version(s)")
        return result

    def clear_temp(self) -> RemovalResult:
        """Empty the staging directory."""
        return remove_tree(self.temp_dir)

"""
Archive extraction for release artifacts.

Unpacks a tar+gzip artifact into a version directory and returns the path of
the platform executable inside it. Any failure is raised as
``ExtractionError``; cleaning up the destination is the caller's job.
"""

import logging
import shutil
from pathlib import Path
from typing import Optional

from binarykit.core.exceptions import ExtractionError
from binarykit.core.filesystem import (
    RemovalResult,
    extract_tar_gz,
    make_executable,
    remove_tree,
)
from binarykit.core.platform import PlatformInfo

logger = logging.getLogger(__name__)


class Extractor:
    """Extracts release archives for one platform."""

    def __init__(self, platform: PlatformInfo, executable: str):
        """
        Initialize extractor.

        Args:
            platform: Target platform (decides executable name and permissions)
            executable: Product executable name without platform suffix
        """
        self.platform = platform
        self.executable_name = platform.executable_name(executable)

    def extract(self, archive_path: Path, dest_dir: Path) -> Path:
        """
        Unpack ``archive_path`` into ``dest_dir`` and locate the executable.

        The executable always ends up at ``dest_dir/<executable>``; an archive
        that wraps it in a top-level folder is flattened for that one file.
        On non-Windows targets the executable bit is set explicitly because it
        does not survive every transport path.

        Returns:
            Path to the executable

        Raises:
            ExtractionError: If the archive can't be unpacked or lacks the
                executable
        """
        dest_dir = Path(dest_dir)
        logger.info(f"Extracting {archive_path.name} to {dest_dir}")

        extract_tar_gz(archive_path, dest_dir)

        binary_path = dest_dir / self.executable_name
        if not binary_path.is_file():
            nested = self._find_nested(dest_dir)
            if nested is None:
                raise ExtractionError(
                    f"Archive {archive_path.name} does not contain {self.executable_name}"
                )
            self._hoist(nested, binary_path)

        if not self.platform.is_windows:
            try:
                make_executable(binary_path)
            except OSError as e:
                raise ExtractionError(
                    f"Failed to set executable permissions on {binary_path}: {e}"
                ) from e

        return binary_path

    def remove(self, path: Path) -> RemovalResult:
        """Best-effort deletion; never raises for a missing path."""
        return remove_tree(path)

    def _hoist(self, nested: Path, binary_path: Path) -> None:
        """Move a nested executable to ``binary_path``, which may be its own folder."""
        logger.debug(f"Moving nested executable {nested} to {binary_path}")
        parked = binary_path.with_name(f".{binary_path.name}.nested")
        try:
            shutil.move(str(nested), str(parked))
            if binary_path.is_dir():
                leftover = remove_tree(binary_path)
                if not leftover.complete:
                    raise ExtractionError(
                        f"Could not clear {binary_path} for the executable"
                    )
            shutil.move(str(parked), str(binary_path))
        except OSError as e:
            raise ExtractionError(
                f"Failed to move {nested.name} to {binary_path}: {e}"
            ) from e

    def _find_nested(self, dest_dir: Path) -> Optional[Path]:
        matches = sorted(
            p for p in dest_dir.rglob(self.executable_name) if p.is_file()
        )
        if not matches:
            return None
        # Shallowest match wins
        return min(matches, key=lambda p: len(p.relative_to(dest_dir).parts))

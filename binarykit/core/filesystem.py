"""
File system utilities for binarykit.

This module provides:
- Tar+gzip extraction with directory traversal protection
- Best-effort recursive deletion that tolerates locked files and reports
  exactly which entries were left behind
- Atomic writes and backup-preserving file replacement
"""

import errno
import logging
import os
import shutil
import stat
import sys
import tarfile
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from binarykit.core.exceptions import ExtractionError, InsecureArchiveError

logger = logging.getLogger(__name__)

IS_WINDOWS = os.name == "nt"


# ============================================================================
# Path Utilities
# ============================================================================


def is_relative_to(path: Path, parent: Path) -> bool:
    """
    Check if path is relative to parent.

    Example:
        >>> is_relative_to(Path('/home/user/file'), Path('/home'))
        True
    """
    try:
        path.relative_to(parent)
        return True
    except ValueError:
        return False


# ============================================================================
# Archive Extraction
# ============================================================================


def _validate_archive_path(path: str, destination: Path) -> None:
    """
    Validate that an archive member path is safe to extract.

    Raises:
        InsecureArchiveError: If path attempts directory traversal
    """
    member_path = (destination / path).resolve()

    if not is_relative_to(member_path, destination.resolve()):
        raise InsecureArchiveError(
            f"Archive member '{path}' attempts directory traversal. "
            "This is a security risk and extraction has been blocked."
        )


def extract_tar_gz(archive_path: Union[str, Path], destination: Union[str, Path]) -> None:
    """
    Extract a .tar.gz archive into ``destination``.

    The destination is created if needed (idempotent). All member paths are
    validated before anything is written.

    Raises:
        ExtractionError: If the archive is missing, corrupt or unreadable
        InsecureArchiveError: If the archive contains malicious paths
    """
    archive_path = Path(archive_path)
    destination = Path(destination)

    if not archive_path.exists():
        raise ExtractionError(f"Archive not found: {archive_path}")

    destination.mkdir(parents=True, exist_ok=True)

    try:
        with tarfile.open(archive_path, "r:gz") as tar:
            members = tar.getmembers()

            for member in members:
                _validate_archive_path(member.name, destination)
                if member.issym():
                    _validate_archive_path(
                        os.path.join(os.path.dirname(member.name), member.linkname),
                        destination,
                    )
                elif member.islnk():
                    _validate_archive_path(member.linkname, destination)

            if sys.version_info >= (3, 12):
                tar.extractall(destination, filter="data")
            else:
                tar.extractall(destination)
    except InsecureArchiveError:
        raise
    except (tarfile.TarError, EOFError, OSError) as e:
        raise ExtractionError(f"Failed to extract {archive_path}: {e}") from e


# ============================================================================
# Best-effort Deletion
# ============================================================================


@dataclass
class RemovalResult:
    """Outcome of a best-effort removal."""

    path: Path
    skipped: List[Path] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        """True if nothing was left behind."""
        return not self.skipped


def _is_locked_error(error: OSError) -> bool:
    return isinstance(error, PermissionError) or error.errno in (
        errno.EBUSY,
        errno.EACCES,
        errno.EPERM,
        errno.ENOTEMPTY,
    )


def _unlink(path: Path) -> None:
    try:
        os.unlink(path)
    except PermissionError:
        if not IS_WINDOWS:
            raise
        # Read-only files on Windows need their write bit back first
        os.chmod(path, stat.S_IWRITE)
        os.unlink(path)


def remove_tree(path: Union[str, Path]) -> RemovalResult:
    """
    Recursively delete ``path`` file by file, skipping entries that are busy.

    Never raises for a missing path. A file that cannot be removed (locked by
    another process) is logged and recorded in ``skipped``; its parent
    directories are then left in place for a future attempt.

    Example:
        >>> result = remove_tree(Path('binaries/v1.0.0'))
        >>> for leftover in result.skipped:
        ...     print(f"still present: {leftover}")
    """
    path = Path(path)
    result = RemovalResult(path=path)

    if not path.exists() and not path.is_symlink():
        return result

    if path.is_file() or path.is_symlink():
        _remove_entry(path, result)
        return result

    for dirpath, dirnames, filenames in os.walk(path, topdown=False):
        current = Path(dirpath)
        for name in filenames:
            _remove_entry(current / name, result)
        for name in dirnames:
            child = current / name
            if child.is_symlink():
                _remove_entry(child, result)
        _remove_directory(current, result)

    if result.skipped:
        logger.warning(
            f"Could not fully remove {path}: {len(result.skipped)} entries left behind"
        )
    else:
        logger.debug(f"Removed {path}")
    return result


def _remove_entry(path: Path, result: RemovalResult) -> None:
    try:
        _unlink(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        if _is_locked_error(e):
            logger.warning(f"Skipping locked file {path}: {e}")
        else:
            logger.warning(f"Failed to remove {path}: {e}")
        result.skipped.append(path)


def _remove_directory(path: Path, result: RemovalResult) -> None:
    if any(is_relative_to(skipped, path) for skipped in result.skipped):
        # Still holds a locked entry
        result.skipped.append(path)
        return
    try:
        os.rmdir(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Skipping directory {path}: {e}")
        result.skipped.append(path)


# ============================================================================
# Safe File Operations
# ============================================================================


def atomic_write(
    file_path: Union[str, Path], content: Union[str, bytes], encoding: str = "utf-8"
) -> None:
    """
    Write file atomically using temp file + rename.

    If the write fails, the original file (if any) remains unchanged.

    Example:
        >>> atomic_write('state.json', '{"key": "value"}')
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    # Temp file in the same directory keeps the rename on one filesystem
    temp_fd, temp_path_str = tempfile.mkstemp(
        dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp"
    )
    temp_path = Path(temp_path_str)

    try:
        if isinstance(content, str):
            with open(temp_fd, "w", encoding=encoding) as f:
                f.write(content)
        else:
            with open(temp_fd, "wb") as f:
                f.write(content)

        temp_path.replace(file_path)

    except Exception:
        try:
            temp_path.unlink(missing_ok=True)
        except OSError:
            pass
        raise


def backup_path_for(path: Path) -> Path:
    """Path the superseded file is renamed to (``<name>.old``)."""
    return path.with_name(path.name + ".old")


def replace_file(source: Union[str, Path], destination: Union[str, Path]) -> Optional[Path]:
    """
    Move ``source`` to ``destination``, keeping any existing file as a backup.

    An existing destination is renamed to ``<name>.old`` (replacing a previous
    backup) before the new file is moved in. If the move fails, the backup is
    renamed back so a working installation is never destroyed. The backup is
    not deleted on success.

    Returns:
        Path of the backup, or None if nothing was replaced

    Raises:
        OSError: If the new file could not be put in place
    """
    source = Path(source)
    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)

    backup = None
    if destination.exists():
        backup = backup_path_for(destination)
        if backup.exists():
            leftover = remove_tree(backup)
            if not leftover.complete:
                raise OSError(f"Cannot replace stale backup: {backup}")
        destination.rename(backup)
        logger.debug(f"Moved {destination} aside to {backup}")

    try:
        shutil.move(str(source), str(destination))
    except OSError:
        if backup is not None and not destination.exists():
            backup.rename(destination)
            logger.warning(f"Restored {destination} from backup after failed write")
        raise

    return backup


def make_executable(path: Union[str, Path]) -> None:
    """Set 0755 permissions on ``path`` (no-op on Windows)."""
    if IS_WINDOWS:
        return
    os.chmod(path, 0o755)


def touch_directory(path: Union[str, Path]) -> None:
    """Bump a directory's modification time to now."""
    os.utime(path, None)


__all__ = [
    "is_relative_to",
    "extract_tar_gz",
    "RemovalResult",
    "remove_tree",
    "atomic_write",
    "backup_path_for",
    "replace_file",
    "make_executable",
    "touch_directory",
    "IS_WINDOWS",
]

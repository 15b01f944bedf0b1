"""
Concurrent access control for binarykit.

Install and prune operations mutate the shared storage root. This module
serializes them within a process (``threading.Lock``) and across processes
(file lock via the ``filelock`` library, released automatically if the holder
dies).

Usage:
    from binarykit.core.locking import LockManager

    lock_manager = LockManager(storage_root)
    with lock_manager.install_lock(timeout=300):
        # download, extract, prune
        pass
"""

import logging
import threading
from contextlib import contextmanager
from pathlib import Path

from filelock import FileLock, Timeout as LockTimeout

from binarykit.core.exceptions import InstallBusyError

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = "install.lock"


class LockManager:
    """
    Guards the install critical section of one storage root.

    Attributes:
        lock_path: Lock file shared by every process using the same root
    """

    def __init__(self, storage_root: Path):
        self.storage_root = Path(storage_root)
        self.storage_root.mkdir(parents=True, exist_ok=True)
        self.lock_path = self.storage_root / LOCK_FILE_NAME
        self._thread_lock = threading.Lock()

    @contextmanager
    def install_lock(self, timeout: float = 300):
        """
        Acquire exclusive install rights for the storage root.

        Callers in the same process queue on a thread lock first, so the file
        lock is only ever contended by other processes.

        Args:
            timeout: Maximum wait time in seconds for each of the two locks

        Yields:
            None

        Raises:
            InstallBusyError: If either lock can't be acquired within timeout
        """
        if not self._thread_lock.acquire(timeout=timeout):
            raise InstallBusyError(
                f"Another install is still running in this process after {timeout}s"
            )

        try:
            lock = FileLock(self.lock_path, timeout=timeout)
            try:
                with lock:
                    logger.debug(f"Acquired install lock: {self.lock_path}")
                    yield
                    logger.debug(f"Released install lock: {self.lock_path}")
            except LockTimeout as e:
                logger.error(
                    f"Could not acquire install lock after {timeout}s. "
                    "Another process may be installing."
                )
                raise InstallBusyError(
                    f"Could not acquire install lock after {timeout}s. "
                    "Another process may be installing."
                ) from e
        finally:
            self._thread_lock.release()

    def is_locked(self) -> bool:
        """Return True if an install is in progress in this process."""
        return self._thread_lock.locked()


__all__ = ["LockManager", "LockTimeout"]

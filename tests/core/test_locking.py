"""
Unit tests for install locking.
"""

import threading

import pytest
from filelock import FileLock

from binarykit.core.exceptions import ErrorKind, InstallBusyError
from binarykit.core.locking import LockManager


class TestLockManager:
    """Test LockManager class."""

    def test_creates_root_and_lock_path(self, tmp_path):
        root = tmp_path / "storage"

        manager = LockManager(root)

        assert root.is_dir()
        assert manager.lock_path == root / "install.lock"

    def test_lock_held_inside_context(self, tmp_path):
        manager = LockManager(tmp_path)

        with manager.install_lock(timeout=1):
            assert manager.is_locked()

        assert not manager.is_locked()

    def test_released_after_exception(self, tmp_path):
        manager = LockManager(tmp_path)

        with pytest.raises(RuntimeError):
            with manager.install_lock(timeout=1):
                raise RuntimeError("boom")

        with manager.install_lock(timeout=1):
            pass

    def test_other_process_holding_file_lock(self, tmp_path):
        """Test a foreign holder of the lock file makes the install busy."""
        manager = LockManager(tmp_path)
        foreign = FileLock(manager.lock_path)
        foreign.acquire()
        done = threading.Event()
        errors = []

        # Contend from a separate thread, as a second caller would
        def contend():
            try:
                with manager.install_lock(timeout=0.2):
                    pass
            except InstallBusyError as e:
                errors.append(e)
            finally:
                done.set()

        try:
            threading.Thread(target=contend).start()
            assert done.wait(5)
        finally:
            foreign.release()

        assert len(errors) == 1
        assert errors[0].kind == ErrorKind.INSTALL_BUSY

    def test_second_thread_waits_then_times_out(self, tmp_path):
        manager = LockManager(tmp_path)
        results = []

        with manager.install_lock(timeout=1):

            def contend():
                try:
                    with manager.install_lock(timeout=0.1):
                        results.append("acquired")
                except InstallBusyError:
                    results.append("busy")

            worker = threading.Thread(target=contend)
            worker.start()
            worker.join(5)

        assert results == ["busy"]

"""
Unit tests for the BinaryManager facade.
"""

import os
import subprocess
import threading
import time
from unittest.mock import patch

import pytest
import responses

from binarykit.config.settings import Settings
from binarykit.core.exceptions import ErrorKind
from binarykit.core.state import MemoryStateStore
from binarykit.manager import BinaryManager
from tests.conftest import (
    BINARY_CONTENT,
    DOWNLOAD_BASE,
    RELEASES_URL,
    asset_payload,
    release_payload,
)

LINUX_ASSET = "rockide_linux_amd64.tar.gz"


def register(tag, archive, latest=False):
    payload = release_payload(tag, assets=[asset_payload(LINUX_ASSET, tag)])
    responses.add(responses.GET, f"{RELEASES_URL}/tags/{tag}", json=payload)
    if latest:
        responses.add(responses.GET, f"{RELEASES_URL}/latest", json=payload)
    responses.add(responses.GET, f"{DOWNLOAD_BASE}/{tag}/{LINUX_ASSET}", body=archive)


def seed_version(manager, tag, mtime=1000):
    version_dir = manager.store.version_dir(tag)
    version_dir.mkdir(parents=True)
    manager.store.binary_path(tag).write_bytes(BINARY_CONTENT)
    os.utime(version_dir, (mtime, mtime))


@pytest.fixture
def make_manager(tmp_path, linux_amd64):
    def factory(**overrides):
        settings = Settings(storage_dir=tmp_path / "storage", **overrides)
        return BinaryManager(settings, platform=linux_amd64, state=MemoryStateStore())

    return factory


@pytest.fixture
def manager(make_manager):
    return make_manager()


class TestInstall:
    """Test install facade."""

    @responses.activate
    def test_returns_binary_path(self, manager, release_archive):
        register("v1.0.0", release_archive)

        binary = manager.install(version="v1.0.0")

        assert binary == manager.store.binary_path("v1.0.0")
        assert manager.last_result.success

    @responses.activate
    def test_failure_returns_none(self, manager):
        responses.add(responses.GET, f"{RELEASES_URL}/latest", status=404)

        assert manager.install() is None
        assert manager.last_result.error == ErrorKind.NOT_FOUND

    @responses.activate
    def test_install_to_path(self, manager, release_archive, tmp_path):
        register("v1.0.0", release_archive)

        binary = manager.install_to_path(tmp_path / "out" / "rockide", version="v1.0.0")

        assert binary.read_bytes() == BINARY_CONTENT


class TestQueries:
    """Test active binary and version queries."""

    def test_nothing_installed(self, manager):
        assert manager.get_active_binary_path() is None
        assert manager.get_current_version() is None

    def test_managed_version(self, manager):
        seed_version(manager, "v1.0.0", 1000)
        seed_version(manager, "v1.1.0", 2000)

        assert manager.get_current_version() == "v1.1.0"
        assert manager.get_active_binary_path() == manager.store.binary_path("v1.1.0")

    def test_override_version_from_binary_output(self, make_manager, tmp_path):
        override = tmp_path / "rockide"
        override.write_bytes(b"bin")
        manager = make_manager(binary_path=override)
        completed = subprocess.CompletedProcess(
            args=[], returncode=0, stdout="rockide version v0.4.2 (abc123)\n", stderr=""
        )

        with patch("binarykit.manager.subprocess.run", return_value=completed) as run:
            assert manager.get_current_version() == "0.4.2"

        assert run.call_args.args[0] == [str(override), "--version"]
        assert manager.get_active_binary_path() == override

    def test_override_that_cannot_run(self, make_manager, tmp_path):
        override = tmp_path / "rockide"
        override.write_bytes(b"bin")
        manager = make_manager(binary_path=override)

        with patch(
            "binarykit.manager.subprocess.run", side_effect=OSError("exec format error")
        ):
            assert manager.get_current_version() is None

    @responses.activate
    def test_list_releases(self, manager):
        responses.add(
            responses.GET,
            RELEASES_URL,
            json=[
                release_payload("v1.0.0"),
                release_payload("v1.1.0", published_at="2024-06-01T00:00:00Z"),
            ],
        )

        assert [r.tag for r in manager.list_releases()] == ["v1.1.0", "v1.0.0"]


class TestUpdates:
    """Test update checks through the facade."""

    @responses.activate
    def test_check_for_updates(self, manager):
        seed_version(manager, "v1.0.0")
        responses.add(
            responses.GET, f"{RELEASES_URL}/latest", json=release_payload("v1.1.0")
        )

        assert manager.check_for_updates() is True

    @responses.activate
    def test_update_installs_latest(self, manager, release_archive):
        seed_version(manager, "v1.0.0")
        register("v1.1.0", release_archive, latest=True)

        binary = manager.update()

        assert binary == manager.store.binary_path("v1.1.0")
        assert manager.get_current_version() == "v1.1.0"

    @responses.activate
    def test_update_when_current(self, manager):
        seed_version(manager, "v1.1.0")
        responses.add(
            responses.GET, f"{RELEASES_URL}/latest", json=release_payload("v1.1.0")
        )

        assert manager.update() is None
        assert manager.last_result is None

    @responses.activate
    def test_background_update_installs_when_auto_update(self, manager, release_archive):
        seed_version(manager, "v1.0.0")
        register("v1.1.0", release_archive, latest=True)

        manager.run_background_update().join(10)

        assert manager.store.is_installed("v1.1.0") is not None

    @responses.activate
    def test_background_update_reactivates_installed_latest(self, manager):
        """Test an update already on disk becomes active without a download."""
        seed_version(manager, "v1.1.0", 1000)
        seed_version(manager, "v1.0.0", 2000)
        register("v1.1.0", b"unused", latest=True)

        manager.run_background_update().join(10)

        assert manager.get_current_version() == "v1.1.0"
        assert not any(c.request.url.endswith(".tar.gz") for c in responses.calls)
        assert manager.check_for_updates(force=True) is False

    @responses.activate
    def test_background_update_only_reports_without_auto_update(
        self, make_manager, release_archive
    ):
        manager = make_manager(auto_update=False)
        seed_version(manager, "v1.0.0")
        register("v1.1.0", release_archive, latest=True)

        manager.run_background_update().join(10)

        assert manager.store.is_installed("v1.1.0") is None


class TestEnsureBinary:
    """Test binary resolution order and deadline."""

    def test_override_first(self, make_manager, tmp_path):
        override = tmp_path / "rockide"
        override.write_bytes(b"bin")
        manager = make_manager(binary_path=override)
        seed_version(manager, "v1.0.0")

        assert manager.ensure_binary(timeout=5) == override

    def test_active_version_triggers_update_check(self, manager):
        seed_version(manager, "v1.0.0")

        with patch.object(manager, "run_background_update") as background:
            binary = manager.ensure_binary(timeout=5)

        assert binary == manager.store.binary_path("v1.0.0")
        background.assert_called_once()

    def test_update_check_disabled(self, make_manager):
        manager = make_manager(check_for_updates=False)
        seed_version(manager, "v1.0.0")

        with patch.object(manager, "run_background_update") as background:
            manager.ensure_binary(timeout=5)

        background.assert_not_called()

    @responses.activate
    def test_installs_pinned_version(self, make_manager, release_archive):
        manager = make_manager(version="v1.0.0")
        register("v1.0.0", release_archive)

        binary = manager.ensure_binary(timeout=10)

        assert binary == manager.store.binary_path("v1.0.0")

    @responses.activate
    def test_falls_back_to_path(self, manager, tmp_path):
        responses.add(responses.GET, f"{RELEASES_URL}/latest", status=500)

        with patch("binarykit.manager.shutil.which", return_value="/usr/bin/rockide"):
            binary = manager.ensure_binary(timeout=10)

        assert str(binary) == "/usr/bin/rockide"

    @responses.activate
    def test_nothing_found(self, manager):
        responses.add(responses.GET, f"{RELEASES_URL}/latest", status=500)

        with patch("binarykit.manager.shutil.which", return_value=None):
            assert manager.ensure_binary(timeout=10) is None

    def test_deadline_returns_none_without_cancelling(self, manager):
        """Test a stalled resolution yields None but keeps running."""
        started = threading.Event()
        release = threading.Event()
        finished = threading.Event()

        def slow_resolve():
            started.set()
            release.wait(5)
            finished.set()
            return None

        with patch.object(manager, "_resolve_binary", side_effect=slow_resolve):
            begin = time.monotonic()
            assert manager.ensure_binary(timeout=0.2) is None
            elapsed = time.monotonic() - begin

            assert started.is_set()
            assert not finished.is_set()
            release.set()
            assert finished.wait(5)

        assert elapsed < 5


class TestMaintenance:
    def test_prune_keeps_active(self, manager):
        for i in range(4):
            seed_version(manager, f"v1.{i}.0", 1000 + i)

        result = manager.prune(keep=2)

        assert sorted(result.removed) == ["v1.0.0", "v1.1.0"]
        assert manager.store.list_versions() == ["v1.3.0", "v1.2.0"]

    def test_remove_version(self, manager):
        seed_version(manager, "v1.0.0")

        assert manager.remove_version("v1.0.0").complete
        assert manager.store.list_versions() == []

"""
Caller-facing facade over the release, install and update components.

``BinaryManager`` is constructed once by the host application and passed to
whatever needs the companion binary. It wires the components together from
``Settings`` and exposes the operations a host needs:

    manager = BinaryManager(load_settings())
    binary = manager.ensure_binary(timeout=30)   # resolve or install, never hangs
    manager.check_for_updates()
    manager.install(version="v1.2.3", force_reinstall=True)
"""

import logging
import re
import shutil
import subprocess
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from pathlib import Path
from typing import Callable, List, Optional

import requests

from binarykit.config.settings import Settings
from binarykit.core.directory import STATE_FILE, get_global_storage_dir
from binarykit.core.download import CancelToken, DownloadProgress
from binarykit.core.filesystem import RemovalResult
from binarykit.core.locking import LockManager
from binarykit.core.platform import PlatformInfo, detect_platform
from binarykit.core.state import JsonStateStore, StateStore
from binarykit.install.extractor import Extractor
from binarykit.install.installer import Installer, InstallResult
from binarykit.install.store import InstalledVersion, PruneResult, VersionStore
from binarykit.install.updater import UpdateChecker, UpdateInfo
from binarykit.release.models import Release
from binarykit.release.source import ReleaseSource

logger = logging.getLogger(__name__)

VERSION_PATTERN = re.compile(r"v?(\d+\.\d+\.\d+)")
VERSION_COMMAND_TIMEOUT = 10

ProgressCallback = Callable[[DownloadProgress], None]


class BinaryManager:
    """
    Resolves, installs and updates one companion binary.

    Attributes:
        settings: Read-only configuration
        platform: Target platform
        root: Storage root
        last_result: Outcome of the most recent install attempt
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        platform: Optional[PlatformInfo] = None,
        state: Optional[StateStore] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize manager.

        Args:
            settings: Configuration (defaults if None)
            platform: Target platform (detected if None)
            state: Persistence for update-check bookkeeping
                (``<root>/state.json`` if None)
            session: Optional requests session shared by all HTTP calls
        """
        self.settings = settings or Settings()
        self.platform = platform or detect_platform()
        self.root = get_global_storage_dir(self.settings.storage_dir)

        self.source = ReleaseSource(
            self.settings.repository,
            product_name=self.settings.executable,
            asset_pattern=self.settings.asset_pattern,
            checksum_assets=self.settings.checksum_assets,
            api_url=self.settings.api_url,
            token=self.settings.github_token,
            session=session,
        )
        self.store = VersionStore(
            self.root,
            self.platform,
            self.settings.executable,
            override_path=self.settings.binary_path,
        )
        self.lock_manager = LockManager(self.root)
        self.installer = Installer(
            self.source,
            self.store,
            Extractor(self.platform, self.settings.executable),
            self.platform,
            lock_manager=self.lock_manager,
            retention=self.settings.retention,
            min_binary_size=self.settings.min_binary_size,
            session=session,
        )
        self.updater = UpdateChecker(
            self.source,
            self.store,
            state or JsonStateStore(self.root / STATE_FILE),
            interval_hours=self.settings.update_interval_hours,
        )
        self.last_result: Optional[InstallResult] = None

    # ------------------------------------------------------------------
    # Install and update
    # ------------------------------------------------------------------

    def install(
        self,
        version: Optional[str] = None,
        force_reinstall: bool = False,
        cancel_token: Optional[CancelToken] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Optional[Path]:
        """
        Install ``version`` (latest if None) and return its binary path.

        Returns:
            Binary path, or None on failure (details in ``last_result``)
        """
        self.last_result = self.installer.install(
            version=version,
            force_reinstall=force_reinstall,
            cancel_token=cancel_token,
            progress_callback=progress_callback,
        )
        return self.last_result.binary_path if self.last_result.success else None

    def install_to_path(
        self,
        destination: Path,
        version: Optional[str] = None,
        cancel_token: Optional[CancelToken] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Optional[Path]:
        """Install a release as a single file at ``destination``; see ``Installer``."""
        self.last_result = self.installer.install_to_path(
            destination,
            version=version,
            cancel_token=cancel_token,
            progress_callback=progress_callback,
        )
        return self.last_result.binary_path if self.last_result.success else None

    def check_for_updates(self, force: bool = False) -> bool:
        """
        True if a newer release than the current version is published.

        Within the gate interval this returns False without a network call,
        unless ``force`` is set.
        """
        return self.find_update(force=force) is not None

    def find_update(self, force: bool = False) -> Optional[UpdateInfo]:
        """Like ``check_for_updates`` but names the versions involved."""
        current = self.get_current_version()
        return self.updater.check(current=current, force=force)

    def update(
        self,
        cancel_token: Optional[CancelToken] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Optional[Path]:
        """
        Check now and install the latest release if it is newer.

        Returns:
            New binary path, or None if no update was available or it failed
        """
        info = self.find_update(force=True)
        if info is None:
            return None

        logger.info(f"Updating {info.current} -> {info.latest}")
        return self.install(
            version=info.latest,
            force_reinstall=True,
            cancel_token=cancel_token,
            progress_callback=progress_callback,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_active_binary_path(self) -> Optional[Path]:
        """Override binary if present, else the newest managed one, else None."""
        return self.store.resolve_active_binary()

    def get_current_version(self) -> Optional[str]:
        """
        Version of the active binary.

        A managed binary reports its release tag. An override binary is asked
        with ``--version`` and the first ``x.y.z`` in its output is returned.
        """
        if self.store.override_active():
            return self._query_binary_version(self.store.override_path)
        return self.store.active_version()

    def installed_versions(self) -> List[InstalledVersion]:
        return self.store.installed_versions()

    def list_releases(self) -> List[Release]:
        """All published releases, newest first."""
        return self.source.list_all()

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def prune(self, keep: Optional[int] = None) -> PruneResult:
        """Apply the retention limit now, keeping the active version."""
        keep = self.settings.retention if keep is None else keep
        with self.lock_manager.install_lock():
            active = self.store.active_version()
            return self.store.prune(keep=keep, protect=[active] if active else [])

    def remove_version(self, tag: str) -> RemovalResult:
        """Delete one installed version (locked files are skipped)."""
        with self.lock_manager.install_lock():
            return self.store.remove_version(tag)

    # ------------------------------------------------------------------
    # Resolution with deadline
    # ------------------------------------------------------------------

    def ensure_binary(self, timeout: Optional[float] = None) -> Optional[Path]:
        """
        Resolve a usable binary, installing one if needed, within a deadline.

        Resolution order: the override path, the active managed version, an
        install of the pinned (or latest) version, then ``PATH``. When the
        deadline passes, None is returned and the resolution keeps running in
        the background.

        Args:
            timeout: Seconds to wait (``settings.resolve_timeout`` if None)

        Returns:
            Binary path, or None if nothing usable was found in time
        """
        timeout = self.settings.resolve_timeout if timeout is None else timeout

        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="binarykit")
        future = executor.submit(self._resolve_binary)
        executor.shutdown(wait=False)

        try:
            return future.result(timeout=timeout)
        except FuturesTimeout:
            logger.warning(
                f"Resolving {self.settings.executable} did not finish within "
                f"{timeout}s; continuing in the background"
            )
            return None

    def _resolve_binary(self) -> Optional[Path]:
        if self.store.override_active():
            logger.debug(f"Using configured binary: {self.store.override_path}")
            return self.store.override_path

        binary = self.store.resolve_active_binary()
        if binary is not None and binary.is_file():
            if self.settings.check_for_updates:
                self.run_background_update()
            return binary

        binary = self.install(version=self.settings.pinned_version)
        if binary is not None:
            return binary

        found = shutil.which(self.settings.executable)
        if found:
            logger.info(f"Using {self.settings.executable} from system PATH: {found}")
            return Path(found)

        logger.error(f"No usable {self.settings.executable} binary found")
        return None

    def run_background_update(self) -> threading.Thread:
        """
        Start the time-gated update check on a daemon thread.

        An available update is installed when ``auto_update`` is enabled.
        """
        thread = threading.Thread(
            target=self._background_update, name="binarykit-update", daemon=True
        )
        thread.start()
        return thread

    def _background_update(self) -> None:
        try:
            info = self.find_update()
            if info is None:
                return
            if not self.settings.auto_update:
                logger.info(
                    f"{self.settings.executable} {info.latest} is available "
                    f"(current: {info.current})"
                )
                return
            self.install(version=info.latest)
        except Exception as e:
            # Opportunistic; never disturbs the binary already resolved
            logger.warning(f"Background update failed: {e}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _query_binary_version(self, binary: Path) -> Optional[str]:
        try:
            completed = subprocess.run(
                [str(binary), "--version"],
                capture_output=True,
                text=True,
                timeout=VERSION_COMMAND_TIMEOUT,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.error(f"Failed to get version of {binary}: {e}")
            return None

        match = VERSION_PATTERN.search(completed.stdout or completed.stderr or "")
        return match.group(1) if match else None

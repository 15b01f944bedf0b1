"""
Install orchestration.

The installer drives one install through a fixed sequence of states:

    IDLE -> RESOLVING_RELEASE -> CHECKING_LOCAL -> DOWNLOADING -> VERIFYING
         -> EXTRACTING -> VALIDATING_BINARY -> PRUNING -> DONE

Any unrecoverable error moves it to ABORTED. Every partially created file or
directory is removed first, and a single ``InstallResult`` describes the failure.
Only one install runs at a time per storage root.
"""

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

import requests

from binarykit.core.download import CancelToken, DownloadProgress, fetch, fetch_text
from binarykit.core.exceptions import (
    BinaryKitError,
    ChecksumMismatchError,
    ErrorKind,
    ExtractionError,
    InstallBusyError,
    InvalidBinaryError,
    LockedResourceError,
    ReleaseNotFoundError,
    UnsupportedPlatformError,
)
from binarykit.core.filesystem import make_executable, remove_tree, replace_file
from binarykit.core.locking import LockManager
from binarykit.core.platform import PlatformInfo
from binarykit.core.verification import (
    compute_file_hash,
    parse_checksum_file,
    parse_inline_digest,
    verify_digest,
)
from binarykit.install.extractor import Extractor
from binarykit.install.store import DEFAULT_RETENTION, VersionStore
from binarykit.release.models import Asset, Release
from binarykit.release.source import ReleaseSource, tag_candidates

logger = logging.getLogger(__name__)

# Smallest file accepted as a real executable
DEFAULT_MIN_BINARY_SIZE = 1024


class InstallState(str, Enum):
    """Stages of one install attempt."""

    IDLE = "idle"
    RESOLVING_RELEASE = "resolving_release"
    CHECKING_LOCAL = "checking_local"
    DOWNLOADING = "downloading"
    VERIFYING = "verifying"
    EXTRACTING = "extracting"
    VALIDATING_BINARY = "validating_binary"
    PRUNING = "pruning"
    DONE = "done"
    ABORTED = "aborted"


# Failure kind for unexpected OS errors, by the state they happened in
_STATE_FAILURE_KIND = {
    InstallState.DOWNLOADING: ErrorKind.TRANSFER_FAILED,
    InstallState.VERIFYING: ErrorKind.TRANSFER_FAILED,
    InstallState.EXTRACTING: ErrorKind.EXTRACTION_FAILED,
    InstallState.VALIDATING_BINARY: ErrorKind.INVALID_BINARY,
}


@dataclass
class InstallResult:
    """Outcome of an install attempt."""

    success: bool
    tag: Optional[str] = None
    binary_path: Optional[Path] = None
    was_cached: bool = False
    """True if the version was already installed and nothing was downloaded"""

    error: Optional[ErrorKind] = None
    message: Optional[str] = None
    failed_state: Optional[InstallState] = None
    pruned: List[str] = field(default_factory=list)
    backup_path: Optional[Path] = None
    """Superseded binary kept aside by ``install_to_path``"""


@dataclass
class _Staged:
    """Paths owned by one attempt; both are removed when the attempt ends."""

    archive: Path
    extract_dir: Path


class Installer:
    """
    Resolves, downloads, verifies and installs releases into a VersionStore.

    Example:
        >>> installer = Installer(source, store, Extractor(platform, "rockide"), platform)
        >>> result = installer.install(version="v1.2.3")
        >>> if result.success:
        ...     print(f"Installed at: {result.binary_path}")
        ... else:
        ...     print(f"{result.error}: {result.message}")
    """

    def __init__(
        self,
        source: ReleaseSource,
        store: VersionStore,
        extractor: Extractor,
        platform: PlatformInfo,
        lock_manager: Optional[LockManager] = None,
        retention: int = DEFAULT_RETENTION,
        min_binary_size: int = DEFAULT_MIN_BINARY_SIZE,
        transfer_timeout: int = 30,
        lock_timeout: float = 300,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize installer.

        Args:
            source: Release catalog client
            store: Version store to install into
            extractor: Archive extractor for the target platform
            platform: Target platform
            lock_manager: Install lock (created for the store root if None)
            retention: Number of versions kept after a successful install
            min_binary_size: Smallest plausible executable size in bytes
            transfer_timeout: Network timeout for asset transfers in seconds
            lock_timeout: Maximum wait for the install lock in seconds
            session: Optional requests session for asset transfers
        """
        self.source = source
        self.store = store
        self.extractor = extractor
        self.platform = platform
        self.lock_manager = lock_manager or LockManager(store.root)
        self.retention = retention
        self.min_binary_size = min_binary_size
        self.transfer_timeout = transfer_timeout
        self.lock_timeout = lock_timeout
        self.session = session
        self.state = InstallState.IDLE

    # ------------------------------------------------------------------
    # Versioned install
    # ------------------------------------------------------------------

    def install(
        self,
        version: Optional[str] = None,
        force_reinstall: bool = False,
        cancel_token: Optional[CancelToken] = None,
        progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
    ) -> InstallResult:
        """
        Ensure ``version`` (or the latest release) is installed.

        Args:
            version: Release tag; None for the latest release
            force_reinstall: Download again even if already installed
            cancel_token: Optional token to abort the download
            progress_callback: Optional download progress callback

        Returns:
            InstallResult; ``binary_path`` is set on success
        """
        try:
            with self.lock_manager.install_lock(timeout=self.lock_timeout):
                self._transition(InstallState.IDLE)
                return self._install_locked(
                    version, force_reinstall, cancel_token, progress_callback
                )
        except InstallBusyError as e:
            return self._rejected(e)

    def _install_locked(
        self,
        version: Optional[str],
        force_reinstall: bool,
        cancel_token: Optional[CancelToken],
        progress_callback: Optional[Callable[[DownloadProgress], None]],
    ) -> InstallResult:
        self._transition(InstallState.RESOLVING_RELEASE)

        # An explicit tag that is already on disk resolves without the network
        if version and not force_reinstall:
            for candidate in tag_candidates(version):
                existing = self.store.is_installed(candidate)
                if existing is not None:
                    self._transition(InstallState.CHECKING_LOCAL)
                    return self._done_cached(candidate, existing)

        staged: Optional[_Staged] = None
        try:
            release = self._resolve_release(version)

            self._transition(InstallState.CHECKING_LOCAL)
            existing = self.store.is_installed(release.tag)
            if existing is not None and not force_reinstall:
                return self._done_cached(release.tag, existing)

            staged = self._new_staging(release)
            asset = self._download(release, staged, cancel_token, progress_callback)
            self._verify(release, asset, staged.archive)
            binary = self._extract(staged)
            self._validate(binary)

            binary_path = self._commit(release.tag, staged)
            pruned = self._prune(release.tag)

            self._transition(InstallState.DONE)
            logger.info(f"Installed {release.tag}: {binary_path}")
            return InstallResult(
                success=True,
                tag=release.tag,
                binary_path=binary_path,
                pruned=pruned,
            )
        except BinaryKitError as e:
            return self._abort(e)
        except OSError as e:
            return self._abort(e, _STATE_FAILURE_KIND.get(self.state))
        finally:
            if staged is not None:
                self._discard(staged)

    def _done_cached(self, tag: str, binary_path: Path) -> InstallResult:
        logger.info(f"Already installed: {tag} ({binary_path})")
        # Requesting an installed tag makes it the active version again
        try:
            self.store.mark_installed(tag)
        except OSError as e:
            logger.warning(f"Could not mark {tag} as most recent: {e}")
        self._transition(InstallState.DONE)
        return InstallResult(
            success=True, tag=tag, binary_path=binary_path, was_cached=True
        )

    def _commit(self, tag: str, staged: _Staged) -> Path:
        """Move a validated extraction into ``binaries/<tag>``."""
        version_dir = self.store.version_dir(tag)
        if version_dir.exists():
            leftover = self.store.remove_version(tag)
            if not leftover.complete:
                raise LockedResourceError(
                    f"Version {tag} is in use and cannot be replaced "
                    f"({len(leftover.skipped)} entries locked)"
                )

        try:
            version_dir.parent.mkdir(parents=True, exist_ok=True)
            staged.extract_dir.rename(version_dir)
            self.store.mark_installed(tag)
        except OSError as e:
            raise LockedResourceError(
                f"Failed to move {tag} into {version_dir}: {e}"
            ) from e
        return self.store.binary_path(tag)

    def _prune(self, installed_tag: str) -> List[str]:
        self._transition(InstallState.PRUNING)
        protect = {installed_tag}
        active = self.store.active_version()
        if active:
            protect.add(active)

        try:
            result = self.store.prune(keep=self.retention, protect=protect)
        except OSError as e:
            logger.warning(f"Pruning old versions failed: {e}")
            return []

        for path in result.skipped:
            logger.warning(f"Left locked entry for a later prune: {path}")
        return result.removed

    # ------------------------------------------------------------------
    # Fixed-path install
    # ------------------------------------------------------------------

    def install_to_path(
        self,
        destination: Path,
        version: Optional[str] = None,
        cancel_token: Optional[CancelToken] = None,
        progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
    ) -> InstallResult:
        """
        Install a release as a single file at ``destination``.

        An existing file is renamed to ``<name>.old`` before the new one is
        written; it is restored if the write fails and kept otherwise.

        Returns:
            InstallResult; ``backup_path`` names the superseded file, if any
        """
        destination = Path(destination)
        try:
            with self.lock_manager.install_lock(timeout=self.lock_timeout):
                self._transition(InstallState.IDLE)
                return self._install_to_path_locked(
                    destination, version, cancel_token, progress_callback
                )
        except InstallBusyError as e:
            return self._rejected(e)

    def _install_to_path_locked(
        self,
        destination: Path,
        version: Optional[str],
        cancel_token: Optional[CancelToken],
        progress_callback: Optional[Callable[[DownloadProgress], None]],
    ) -> InstallResult:
        self._transition(InstallState.RESOLVING_RELEASE)
        staged: Optional[_Staged] = None
        try:
            release = self._resolve_release(version)
            staged = self._new_staging(release)
            asset = self._download(release, staged, cancel_token, progress_callback)
            self._verify(release, asset, staged.archive)
            binary = self._extract(staged)
            self._validate(binary)

            backup = replace_file(binary, destination)
            if not self.platform.is_windows:
                make_executable(destination)

            self._transition(InstallState.DONE)
            logger.info(f"Installed {release.tag} to {destination}")
            return InstallResult(
                success=True,
                tag=release.tag,
                binary_path=destination,
                backup_path=backup,
            )
        except BinaryKitError as e:
            return self._abort(e)
        except OSError as e:
            return self._abort(e, _STATE_FAILURE_KIND.get(self.state))
        finally:
            if staged is not None:
                self._discard(staged)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _resolve_release(self, version: Optional[str]) -> Release:
        if version:
            release = self.source.get_by_tag(version)
            if release is None:
                raise ReleaseNotFoundError(version)
        else:
            release = self.source.get_latest()
            if release is None:
                raise ReleaseNotFoundError()
        logger.debug(f"Resolved release {release.tag}")
        return release

    def _new_staging(self, release: Release) -> _Staged:
        attempt = uuid.uuid4().hex[:8]
        archive_name = self.source.asset_name_for(release, self.platform)
        return _Staged(
            archive=self.store.temp_dir / f"{attempt}-{archive_name}",
            extract_dir=self.store.temp_dir / f"{release.tag}-{attempt}",
        )

    def _download(
        self,
        release: Release,
        staged: _Staged,
        cancel_token: Optional[CancelToken],
        progress_callback: Optional[Callable[[DownloadProgress], None]],
    ) -> Asset:
        self._transition(InstallState.DOWNLOADING)
        asset = self.source.pick_asset_for_platform(release, self.platform)
        if asset is None:
            raise UnsupportedPlatformError(
                f"No {self.source.product_name} build in {release.tag} for "
                f"{self.platform} (expected "
                f"{self.source.asset_name_for(release, self.platform)})"
            )

        fetch(
            asset.download_url,
            staged.archive,
            progress_callback=progress_callback,
            cancel_token=cancel_token,
            timeout=self.transfer_timeout,
            session=self.session,
        )
        return asset

    def _expected_digest(self, release: Release, asset: Asset) -> Optional[str]:
        inline = parse_inline_digest(asset.digest)
        if inline:
            return inline

        manifest = self.source.pick_checksum_asset(release, asset)
        if manifest is None:
            return None

        content = fetch_text(
            manifest.download_url, timeout=self.transfer_timeout, session=self.session
        )
        digest = parse_checksum_file(content, asset.name)
        if digest is None:
            logger.warning(f"{manifest.name} has no entry for {asset.name}")
        return digest

    def _verify(self, release: Release, asset: Asset, archive: Path) -> None:
        self._transition(InstallState.VERIFYING)
        expected = self._expected_digest(release, asset)
        if expected is None:
            logger.info(f"No checksum published for {asset.name}, skipping verification")
            return

        if not verify_digest(archive, expected):
            actual = compute_file_hash(archive, "sha256")
            remove_tree(archive)
            raise ChecksumMismatchError(asset.name, expected, actual)
        logger.info(f"Checksum verified for {asset.name}")

    def _extract(self, staged: _Staged) -> Path:
        self._transition(InstallState.EXTRACTING)
        try:
            return self.extractor.extract(staged.archive, staged.extract_dir)
        except OSError as e:
            raise ExtractionError(f"Failed to extract {staged.archive.name}: {e}") from e

    def _validate(self, binary: Path) -> None:
        self._transition(InstallState.VALIDATING_BINARY)
        if not binary.is_file():
            raise InvalidBinaryError(f"Executable missing after extraction: {binary}")

        size = binary.stat().st_size
        if size < self.min_binary_size:
            raise InvalidBinaryError(
                f"Executable {binary.name} is only {size} bytes "
                f"(expected at least {self.min_binary_size})"
            )

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _discard(self, staged: _Staged) -> None:
        for path in (staged.archive, staged.extract_dir):
            leftover = remove_tree(path)
            for entry in leftover.skipped:
                logger.warning(f"Could not clean up staging entry {entry}")

    def _transition(self, state: InstallState) -> None:
        logger.debug(f"Install state: {self.state.value} -> {state.value}")
        self.state = state

    def _abort(
        self, error: Exception, kind: Optional[ErrorKind] = None
    ) -> InstallResult:
        failed_state = self.state
        kind = kind or getattr(error, "kind", None) or ErrorKind.TRANSFER_FAILED
        logger.error(f"Install aborted during {failed_state.value}: {error}")
        self._transition(InstallState.ABORTED)
        return InstallResult(
            success=False,
            error=kind,
            message=str(error),
            failed_state=failed_state,
        )

    def _rejected(self, error: InstallBusyError) -> InstallResult:
        # Another install owns the state machine; leave its state alone
        logger.error(f"Install not started: {error}")
        return InstallResult(
            success=False,
            error=error.kind,
            message=str(error),
            failed_state=InstallState.IDLE,
        )

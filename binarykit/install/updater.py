"""
Time-gated update detection.

Tags are compared as versions (``v1.10.0`` is newer than ``v1.9.2``); an update
is reported only when the latest release is strictly newer than the current
one. Equal re-published tags, downgrades and tags that don't parse as versions
never count as updates.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from packaging.version import InvalidVersion, Version

from binarykit.core.exceptions import SourceUnavailableError
from binarykit.core.platform import strip_version_prefix
from binarykit.core.state import StateStore
from binarykit.install.store import VersionStore
from binarykit.release.source import ReleaseSource

logger = logging.getLogger(__name__)

LAST_CHECK_KEY = "last_update_check"
DEFAULT_INTERVAL_HOURS = 24


@dataclass
class UpdateInfo:
    """An available update."""

    current: str
    latest: str


def parse_tag_version(tag: str) -> Optional[Version]:
    """
    Parse a release tag as a version.

    Example:
        >>> parse_tag_version("v1.2.3")
        <Version('1.2.3')>
        >>> parse_tag_version("nightly") is None
        True
    """
    try:
        return Version(strip_version_prefix(tag.strip()))
    except InvalidVersion:
        return None


def is_newer(latest: str, current: str) -> bool:
    """True if tag ``latest`` is a strictly higher version than ``current``."""
    latest_ver = parse_tag_version(latest)
    current_ver = parse_tag_version(current)
    if latest_ver is None or current_ver is None:
        logger.warning(f"Unable to compare versions: {current} vs {latest}")
        return False
    return latest_ver > current_ver


class UpdateChecker:
    """
    Compares the active version with the latest release at most once per interval.

    Example:
        >>> checker = UpdateChecker(source, store, JsonStateStore(state_file))
        >>> if checker.has_update():
        ...     print(f"Update available: {checker.last_update.latest}")
    """

    def __init__(
        self,
        source: ReleaseSource,
        store: VersionStore,
        state: StateStore,
        interval_hours: float = DEFAULT_INTERVAL_HOURS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize update checker.

        Args:
            source: Release catalog client
            store: Version store providing the active version
            state: Persistence for the last-check timestamp
            interval_hours: Minimum hours between two catalog queries
            clock: Time source returning epoch seconds
        """
        self.source = source
        self.store = store
        self.state = state
        self.interval_seconds = interval_hours * 3600
        self.clock = clock
        self.last_update: Optional[UpdateInfo] = None

    def is_due(self) -> bool:
        """True if the gate interval has elapsed since the last check."""
        last_check = self.state.get(LAST_CHECK_KEY)
        if not isinstance(last_check, (int, float)):
            return True
        return self.clock() - last_check >= self.interval_seconds

    def check(
        self, current: Optional[str] = None, force: bool = False
    ) -> Optional[UpdateInfo]:
        """
        Look for a release newer than ``current``.

        Args:
            current: Tag to compare against (defaults to the active managed version)
            force: Ignore the gate interval

        Returns:
            UpdateInfo if an update is available, None otherwise (including
            when the check was skipped or the catalog was unreachable)
        """
        if not force and not self.is_due():
            logger.debug("Update check skipped (checked recently)")
            return None

        # Recorded up front so a failing catalog isn't queried again right away
        self.state.set(LAST_CHECK_KEY, self.clock())

        current = current or self.store.active_version()
        if current is None:
            logger.debug("No installed version to compare against")
            return None

        try:
            latest = self.source.get_latest()
        except SourceUnavailableError as e:
            logger.warning(f"Update check failed: {e}")
            return None

        if latest is None or not is_newer(latest.tag, current):
            logger.debug(f"{current} is up to date")
            self.last_update = None
            return None

        logger.info(f"Update available: {current} -> {latest.tag}")
        self.last_update = UpdateInfo(current=current, latest=latest.tag)
        return self.last_update

    def has_update(self, current: Optional[str] = None, force: bool = False) -> bool:
        """Boolean form of ``check``."""
        return self.check(current=current, force=force) is not None

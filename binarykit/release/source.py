"""
Release catalog client (GitHub releases API).

The source distinguishes two failure shapes callers must branch on:
- expected absence (no releases yet, unknown tag) is returned as ``None``
- an unreachable catalog or a non-2xx answer raises ``SourceUnavailableError``
"""

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence

import requests
from requests.exceptions import RequestException

from binarykit.core.exceptions import SourceUnavailableError
from binarykit.core.platform import PlatformInfo, strip_version_prefix
from binarykit.release.models import Asset, Release

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_ASSET_PATTERN = "{name}_{os}_{arch}.tar.gz"
DEFAULT_CHECKSUM_ASSETS = ("checksums.txt", "SHA256SUMS", "{asset}.sha256")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class ReleaseSource:
    """
    Queries the release catalog of one repository.

    Example:
        >>> source = ReleaseSource("ink0rr/rockide", product_name="rockide")
        >>> release = source.get_latest()
        >>> if release:
        ...     asset = source.pick_asset_for_platform(release, detect_platform())
    """

    def __init__(
        self,
        repository: str,
        product_name: str,
        asset_pattern: str = DEFAULT_ASSET_PATTERN,
        checksum_assets: Sequence[str] = DEFAULT_CHECKSUM_ASSETS,
        api_url: str = DEFAULT_API_URL,
        token: Optional[str] = None,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize release source.

        Args:
            repository: ``owner/name`` of the repository
            product_name: Name used in asset names (``{name}`` placeholder)
            asset_pattern: Template for platform asset names
            checksum_assets: Candidate names of checksum manifests
                (``{asset}`` expands to the platform asset's name)
            api_url: Base URL of the API
            token: Optional API token (raises rate limits)
            timeout: Request timeout in seconds
            session: Optional requests session
        """
        self.repository = repository.strip("/")
        self.product_name = product_name
        self.asset_pattern = asset_pattern
        self.checksum_assets = tuple(checksum_assets)
        self.releases_url = f"{api_url.rstrip('/')}/repos/{self.repository}/releases"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Accept": "application/vnd.github+json",
                "User-Agent": "binarykit",
            }
        )
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def get_latest(self) -> Optional[Release]:
        """
        Fetch the newest published release.

        Returns:
            Latest release, or None if the repository has no releases

        Raises:
            SourceUnavailableError: If the catalog can't be queried
        """
        data = self._get_json(f"{self.releases_url}/latest")
        if data is None:
            logger.debug(f"No releases published for {self.repository}")
            return None
        return self._parse_release(data)

    def get_by_tag(self, tag: str) -> Optional[Release]:
        """
        Fetch the release for ``tag``.

        ``1.2.3`` also matches a release tagged ``v1.2.3`` and vice versa.

        Returns:
            Matching release, or None if no such tag exists

        Raises:
            SourceUnavailableError: If the catalog can't be queried
        """
        for candidate in tag_candidates(tag):
            data = self._get_json(f"{self.releases_url}/tags/{candidate}")
            if data is not None:
                return self._parse_release(data)

        logger.debug(f"Release not found: {tag}")
        return None

    def list_all(self) -> List[Release]:
        """
        Fetch every published (non-draft) release, newest first.

        Raises:
            SourceUnavailableError: If the catalog can't be queried
        """
        releases: List[Release] = []
        url: Optional[str] = self.releases_url
        params: Optional[dict] = {"per_page": 100}

        while url:
            response = self._request(url, params=params)
            if response.status_code == 404:
                break
            payload = self._decode(response)
            if not isinstance(payload, list):
                raise SourceUnavailableError(
                    f"Unexpected release listing from {url}: {type(payload).__name__}"
                )

            for data in payload:
                if data.get("draft"):
                    continue
                releases.append(self._parse_release(data))

            # The next link already carries the query string
            url = response.links.get("next", {}).get("url")
            params = None

        releases.sort(key=lambda r: r.published_at or _EPOCH, reverse=True)
        return releases

    def asset_name_for(self, release: Release, platform: PlatformInfo) -> str:
        """Deterministic asset name for ``platform`` in ``release``."""
        return platform.asset_name(self.asset_pattern, self.product_name, release.tag)

    def pick_asset_for_platform(
        self, release: Release, platform: PlatformInfo
    ) -> Optional[Asset]:
        """
        Select the artifact built for ``platform``.

        Returns:
            The asset, or None if the release has no build for this platform
        """
        name = self.asset_name_for(release, platform)
        asset = release.find_asset(name)
        if asset is None:
            logger.debug(f"Release {release.tag} has no asset named {name}")
        return asset

    def pick_checksum_asset(self, release: Release, asset: Asset) -> Optional[Asset]:
        """Find a companion checksum manifest for ``asset``, if published."""
        for pattern in self.checksum_assets:
            candidate = release.find_asset(pattern.format(asset=asset.name))
            if candidate is not None and candidate.name != asset.name:
                return candidate
        return None

    def _get_json(self, url: str) -> Optional[Any]:
        response = self._request(url)
        if response.status_code == 404:
            return None
        return self._decode(response)

    def _request(self, url: str, params: Optional[dict] = None) -> requests.Response:
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except RequestException as e:
            raise SourceUnavailableError(
                f"Release catalog unreachable ({url}): {e}"
            ) from e

        if response.status_code != 404 and not response.ok:
            raise SourceUnavailableError(
                f"Release catalog returned {response.status_code} "
                f"{response.reason} for {url}"
            )
        return response

    def _decode(self, response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise SourceUnavailableError(
                f"Invalid JSON from release catalog ({response.url}): {e}"
            ) from e

    def _parse_release(self, data: Any) -> Release:
        try:
            return Release.from_api(data)
        except (KeyError, TypeError, ValueError) as e:
            raise SourceUnavailableError(f"Malformed release record: {e}") from e


def tag_candidates(tag: str) -> List[str]:
    """
    Spellings of ``tag`` to try, as given first.

    Example:
        >>> tag_candidates("1.2.3")
        ['1.2.3', 'v1.2.3']
        >>> tag_candidates("v1.2.3")
        ['v1.2.3', '1.2.3']
    """
    tag = tag.strip()
    bare = strip_version_prefix(tag)
    if bare != tag:
        return [tag, bare]
    return [tag, f"v{tag}"]

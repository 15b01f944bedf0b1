"""
Release catalog data model.

A ``Release`` and its ``Asset`` list are built per catalog query and discarded
after use; nothing here is cached or persisted.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Asset:
    """One downloadable artifact of a release."""

    name: str
    size_bytes: int
    download_url: str
    digest: Optional[str] = None
    """Integrity digest as published, e.g. ``sha256:<hex>``"""

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Asset":
        return cls(
            name=data["name"],
            size_bytes=int(data.get("size") or 0),
            download_url=data["browser_download_url"],
            digest=data.get("digest") or None,
        )


@dataclass(frozen=True)
class Release:
    """A published version of the product; identity is ``tag``."""

    tag: str
    published_at: Optional[datetime] = None
    assets: List[Asset] = field(default_factory=list)
    prerelease: bool = False

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Release":
        """
        Build a release from a GitHub releases API record.

        Raises:
            KeyError: If required fields are missing
        """
        return cls(
            tag=data["tag_name"],
            published_at=_parse_timestamp(data.get("published_at")),
            assets=[Asset.from_api(asset) for asset in data.get("assets") or []],
            prerelease=bool(data.get("prerelease", False)),
        )

    def find_asset(self, name: str) -> Optional[Asset]:
        """Return the asset named exactly ``name``, if any."""
        for asset in self.assets:
            if asset.name == name:
                return asset
        return None


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    # GitHub uses RFC 3339 with a trailing 'Z'
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed

"""
Pytest configuration and shared fixtures for binarykit tests.
"""

import hashlib
import io
import tarfile
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from binarykit.core.platform import PlatformInfo, clear_platform_cache

REPOSITORY = "ink0rr/rockide"
RELEASES_URL = f"https://api.github.com/repos/{REPOSITORY}/releases"
DOWNLOAD_BASE = f"https://github.com/{REPOSITORY}/releases/download"

# Comfortably above the default minimum binary size
BINARY_CONTENT = b"\x7fELF" + b"\x00" * 4096


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


# ============================================================================
# Builders
# ============================================================================


def make_tar_gz(archive_path: Path, members: Dict[str, bytes], mode: int = 0o644) -> Path:
    """Write a .tar.gz at ``archive_path`` holding ``members`` (name -> bytes)."""
    archive_path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(archive_path, "w:gz") as tar:
        for name, data in members.items():
            info = tarfile.TarInfo(name=name)
            info.size = len(data)
            info.mode = mode
            tar.addfile(info, io.BytesIO(data))
    return archive_path


def tar_gz_bytes(members: Dict[str, bytes]) -> bytes:
    """In-memory .tar.gz holding ``members``."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, data in members.items():
            info = tarfile.TarInfo(name=name)
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def asset_payload(
    name: str, tag: str, size: int = 1024, digest: Optional[str] = None
) -> dict:
    """GitHub-shaped asset record."""
    return {
        "name": name,
        "size": size,
        "browser_download_url": f"{DOWNLOAD_BASE}/{tag}/{name}",
        "digest": digest,
    }


def release_payload(
    tag: str,
    asset_names: List[str] = (),
    published_at: str = "2024-05-01T12:00:00Z",
    draft: bool = False,
    prerelease: bool = False,
    assets: Optional[List[dict]] = None,
) -> dict:
    """GitHub-shaped release record."""
    if assets is None:
        assets = [asset_payload(name, tag) for name in asset_names]
    return {
        "tag_name": tag,
        "published_at": published_at,
        "draft": draft,
        "prerelease": prerelease,
        "assets": assets,
    }


# ============================================================================
# Shared Test Fixtures
# ============================================================================


@pytest.fixture
def linux_amd64() -> PlatformInfo:
    return PlatformInfo("linux", "amd64")


@pytest.fixture
def windows_amd64() -> PlatformInfo:
    return PlatformInfo("windows", "amd64")


@pytest.fixture
def storage_root(tmp_path) -> Path:
    """Empty storage root."""
    root = tmp_path / "storage"
    root.mkdir()
    return root


@pytest.fixture
def release_archive() -> bytes:
    """Release archive containing a plausible linux executable."""
    return tar_gz_bytes({"rockide": BINARY_CONTENT, "LICENSE": b"MIT\n"})


@pytest.fixture(autouse=True)
def reset_platform_cache():
    """Platform detection is cached per process; reset around each test."""
    clear_platform_cache()
    yield
    clear_platform_cache()


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Keep the real environment from leaking into tests."""
    monkeypatch.delenv("BINARYKIT_STORAGE_DIR", raising=False)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)

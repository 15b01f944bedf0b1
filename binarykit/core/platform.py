"""
Platform detection for binarykit.

This module maps the running interpreter's OS and CPU onto the naming scheme
used by release artifacts (``linux``/``darwin``/``windows`` and
``amd64``/``arm64``) and derives the platform-specific executable and asset
names from it.

Usage:
    from binarykit.core.platform import detect_platform

    info = detect_platform()
    print(info.platform_string())                 # 'linux-amd64'
    print(info.executable_name("rockide"))        # 'rockide'
    print(info.asset_name("{name}_{os}_{arch}.tar.gz", "rockide", "v1.2.3"))
"""

import functools
import platform
from dataclasses import dataclass

from binarykit.core.exceptions import UnsupportedPlatformError

SUPPORTED_OS = ("darwin", "linux", "windows")
SUPPORTED_ARCH = ("amd64", "arm64")


@dataclass(frozen=True)
class PlatformInfo:
    """
    Release-facing platform description.

    Attributes:
        os: Operating system ('darwin', 'linux', 'windows')
        arch: CPU architecture ('amd64', 'arm64')
    """

    os: str
    arch: str

    @property
    def is_windows(self) -> bool:
        return self.os == "windows"

    def platform_string(self) -> str:
        """
        Get canonical platform string (e.g., 'linux-amd64', 'darwin-arm64').

        Example:
            >>> PlatformInfo('linux', 'amd64').platform_string()
            'linux-amd64'
        """
        return f"{self.os}-{self.arch}"

    def executable_name(self, name: str) -> str:
        """Executable file name for ``name`` on this platform."""
        return f"{name}.exe" if self.is_windows else name

    def asset_name(self, pattern: str, name: str, tag: str) -> str:
        """
        Build the release asset name for this platform.

        Args:
            pattern: Template with ``{name}``, ``{tag}``, ``{version}``, ``{os}``
                and ``{arch}`` placeholders
            name: Product name
            tag: Release tag (``{version}`` is the tag without a leading 'v')

        Returns:
            Deterministic asset file name

        Example:
            >>> PlatformInfo('darwin', 'arm64').asset_name(
            ...     '{name}_{os}_{arch}.tar.gz', 'rockide', 'v1.0.0')
            'rockide_darwin_arm64.tar.gz'
        """
        return pattern.format(
            name=name,
            tag=tag,
            version=strip_version_prefix(tag),
            os=self.os,
            arch=self.arch,
        )

    def __str__(self) -> str:
        return self.platform_string()


def strip_version_prefix(tag: str) -> str:
    """Drop a conventional leading 'v' from a version tag."""
    if len(tag) > 1 and tag[0] in "vV" and tag[1].isdigit():
        return tag[1:]
    return tag


@functools.lru_cache(maxsize=1)
def detect_platform() -> PlatformInfo:
    """
    Detect current platform information.

    This function is cached - it only runs detection once per process.

    Raises:
        UnsupportedPlatformError: If the OS or architecture has no artifacts
    """
    return PlatformInfo(os=_detect_os(), arch=_detect_architecture())


def is_supported_platform() -> bool:
    """Return True if artifacts can exist for the running platform."""
    try:
        detect_platform()
    except UnsupportedPlatformError:
        return False
    return True


def clear_platform_cache() -> None:
    """Clear the cached detection result (used by tests)."""
    detect_platform.cache_clear()


def _detect_os() -> str:
    system = platform.system().lower()

    if system == "windows":
        return "windows"
    elif system == "linux":
        return "linux"
    elif system == "darwin":
        return "darwin"
    else:
        raise UnsupportedPlatformError(f"Unsupported operating system: {system}")


def _detect_architecture() -> str:
    machine = platform.machine().lower()

    if machine in ("x86_64", "amd64", "x64"):
        return "amd64"
    elif machine in ("aarch64", "arm64"):
        return "arm64"
    else:
        raise UnsupportedPlatformError(f"Unsupported architecture: {machine}")

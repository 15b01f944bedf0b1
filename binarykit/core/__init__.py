"""
Core functionality for binarykit.

This package contains the foundational modules that the release, install and
update components depend on.
"""

from .directory import (
    get_global_storage_dir,
    DirectoryError,
)

from .download import (
    CancelToken,
    DownloadProgress,
    fetch,
    fetch_text,
    format_progress,
)

from .exceptions import (
    ErrorKind,
    BinaryKitError,
    ConfigError,
    SourceUnavailableError,
    ReleaseNotFoundError,
    UnsupportedPlatformError,
    TransferError,
    TransferCancelled,
    ChecksumMismatchError,
    ExtractionError,
    InsecureArchiveError,
    InvalidBinaryError,
    LockedResourceError,
    InstallBusyError,
)

from .filesystem import (
    RemovalResult,
    extract_tar_gz,
    remove_tree,
    replace_file,
)

from .locking import (
    LockManager,
    LockTimeout,
)

from .platform import (
    PlatformInfo,
    detect_platform,
    is_supported_platform,
    clear_platform_cache,
)

from .state import (
    StateStore,
    MemoryStateStore,
    JsonStateStore,
)

from .verification import (
    compute_file_hash,
    verify_digest,
    parse_checksum_file,
)

__all__ = [
    # Directory
    "get_global_storage_dir",
    "DirectoryError",
    # Download
    "CancelToken",
    "DownloadProgress",
    "fetch",
    "fetch_text",
    "format_progress",
    # Exceptions
    "ErrorKind",
    "BinaryKitError",
    "ConfigError",
    "SourceUnavailableError",
    "ReleaseNotFoundError",
    "UnsupportedPlatformError",
    "TransferError",
    "TransferCancelled",
    "ChecksumMismatchError",
    "ExtractionError",
    "InsecureArchiveError",
    "InvalidBinaryError",
    "LockedResourceError",
    "InstallBusyError",
    # Filesystem
    "RemovalResult",
    "extract_tar_gz",
    "remove_tree",
    "replace_file",
    # Locking
    "LockManager",
    "LockTimeout",
    # Platform
    "PlatformInfo",
    "detect_platform",
    "is_supported_platform",
    "clear_platform_cache",
    # State
    "StateStore",
    "MemoryStateStore",
    "JsonStateStore",
    # Verification
    "compute_file_hash",
    "verify_digest",
    "parse_checksum_file",
]

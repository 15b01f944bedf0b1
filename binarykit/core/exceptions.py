"""
Centralized exception hierarchy for binarykit.

Every failure the installer can surface carries an ``ErrorKind`` so callers can
branch on the category without matching exception classes or message text.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Failure categories surfaced by the install lifecycle."""

    SOURCE_UNAVAILABLE = "source_unavailable"
    NOT_FOUND = "not_found"
    UNSUPPORTED_PLATFORM = "unsupported_platform"
    TRANSFER_FAILED = "transfer_failed"
    CANCELLED = "cancelled"
    CHECKSUM_MISMATCH = "checksum_mismatch"
    EXTRACTION_FAILED = "extraction_failed"
    INVALID_BINARY = "invalid_binary"
    LOCKED_RESOURCE = "locked_resource"
    INSTALL_BUSY = "install_busy"


# ============================================================================
# Base Exceptions
# ============================================================================


class BinaryKitError(Exception):
    """Base exception for all binarykit errors."""

    kind: Optional[ErrorKind] = None


class ConfigError(BinaryKitError):
    """Configuration file could not be parsed or validated."""

    pass


# ============================================================================
# Release Source Exceptions
# ============================================================================


class SourceUnavailableError(BinaryKitError):
    """Release catalog unreachable or answered with a non-2xx status."""

    kind = ErrorKind.SOURCE_UNAVAILABLE


class ReleaseNotFoundError(BinaryKitError):
    """Requested release or tag does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, tag: str = ""):
        self.tag = tag
        if tag:
            super().__init__(f"Release not found: {tag}")
        else:
            super().__init__("No releases published")


class UnsupportedPlatformError(BinaryKitError):
    """No artifact exists for the current OS/architecture."""

    kind = ErrorKind.UNSUPPORTED_PLATFORM


# ============================================================================
# Transfer Exceptions
# ============================================================================


class TransferError(BinaryKitError):
    """Network failure or non-2xx response while fetching an asset."""

    kind = ErrorKind.TRANSFER_FAILED


class TransferCancelled(BinaryKitError):
    """Transfer aborted through its cancel token."""

    kind = ErrorKind.CANCELLED


class ChecksumMismatchError(BinaryKitError):
    """Downloaded artifact does not match its published digest."""

    kind = ErrorKind.CHECKSUM_MISMATCH

    def __init__(self, filename: str, expected: str, actual: str):
        self.filename = filename
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Checksum mismatch for {filename}: expected {expected}, got {actual}"
        )


# ============================================================================
# Installation Exceptions
# ============================================================================


class ExtractionError(BinaryKitError):
    """Archive is corrupt, unreadable or lacks the expected executable."""

    kind = ErrorKind.EXTRACTION_FAILED


class InsecureArchiveError(ExtractionError):
    """Archive member attempts to escape the extraction directory."""

    pass


class InvalidBinaryError(BinaryKitError):
    """Extracted executable is missing or implausibly small."""

    kind = ErrorKind.INVALID_BINARY


class LockedResourceError(BinaryKitError):
    """Filesystem entry is busy and could not be removed."""

    kind = ErrorKind.LOCKED_RESOURCE


class InstallBusyError(BinaryKitError):
    """Another process holds the install lock for this storage root."""

    kind = ErrorKind.INSTALL_BUSY

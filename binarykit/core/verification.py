"""
Hash verification for downloaded release artifacts.

This module provides:
- Streaming SHA256 computation (files are never loaded into memory whole)
- Case-insensitive, constant-time digest comparison
- Checksum manifest parsing (``<hex-digest> [*]<filename>`` per line)
- Parsing of inline release digests such as ``sha256:<hex>``
"""

import hashlib
import logging
import re
import secrets
from pathlib import Path
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

_CHECKSUM_LINE = re.compile(r"^([a-fA-F0-9]{64})\s+\*?(\S+)$")
_HEX_DIGEST = re.compile(r"^[a-fA-F0-9]{64}$")


def compute_file_hash(
    file_path: Path,
    algorithm: str = "sha256",
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> str:
    """
    Compute cryptographic hash of file.

    Args:
        file_path: Path to file
        algorithm: Hash algorithm ('sha256', 'sha512')
        progress_callback: Optional progress callback (bytes_read, total_bytes)

    Returns:
        Hex string of hash

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If algorithm is not supported
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    algorithm = algorithm.lower()
    if algorithm == "sha256":
        hasher = hashlib.sha256()
    elif algorithm == "sha512":
        hasher = hashlib.sha512()
    else:
        raise ValueError(f"Unsupported hash algorithm: {algorithm}")

    file_size = file_path.stat().st_size
    bytes_read = 0

    with open(file_path, "rb") as f:
        while chunk := f.read(CHUNK_SIZE):
            hasher.update(chunk)
            bytes_read += len(chunk)

            if progress_callback:
                progress_callback(bytes_read, file_size)

    return hasher.hexdigest()


def verify_digest(file_path: Path, expected_digest: str) -> bool:
    """
    Verify file matches expected SHA256 digest.

    The comparison is case-insensitive and constant-time.

    Args:
        file_path: Path to file
        expected_digest: Expected hex digest

    Returns:
        True if the computed digest equals the expected one

    Raises:
        FileNotFoundError: If file doesn't exist

    Example:
        >>> if verify_digest(Path('tool.tar.gz'), 'AB12...'):
        ...     print("File is valid")
    """
    actual = compute_file_hash(file_path, "sha256")
    return _constant_time_compare(actual, normalize_digest(expected_digest))


def normalize_digest(digest: str) -> str:
    """Trim and lowercase a hex digest."""
    return digest.strip().lower()


def parse_inline_digest(digest: Optional[str]) -> Optional[str]:
    """
    Extract a SHA256 hex digest from a release asset's digest field.

    Accepts ``sha256:<hex>`` (as published by GitHub) or a bare 64-char hex
    string. Other algorithms are ignored.

    Returns:
        Lowercase hex digest, or None if absent or not SHA256
    """
    if not digest:
        return None

    value = digest.strip()
    if ":" in value:
        algorithm, value = value.split(":", 1)
        if algorithm.strip().lower() != "sha256":
            logger.debug(f"Ignoring non-sha256 digest: {algorithm}")
            return None

    value = value.strip()
    if not _HEX_DIGEST.match(value):
        logger.warning(f"Ignoring malformed digest: {digest}")
        return None
    return value.lower()


def parse_checksum_lines(content: str) -> Dict[str, str]:
    """
    Parse checksum manifest text (e.g., SHA256SUMS format).

    Supports formats:
    - hash  filename
    - hash *filename

    Lines that don't match are skipped. The manifest is only ever parsed as
    data.

    Returns:
        Dict of filename -> lowercase hash
    """
    hashes: Dict[str, str] = {}

    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        match = _CHECKSUM_LINE.match(line)
        if not match:
            logger.debug(f"Skipping unrecognised checksum line: {line}")
            continue

        hashes.setdefault(match.group(2), match.group(1).lower())

    return hashes


def parse_checksum_file(content: str, filename: str) -> Optional[str]:
    """
    Find the digest for ``filename`` in checksum manifest text.

    Only a line whose filename is exactly ``filename`` matches.

    Example:
        >>> parse_checksum_file(f"{'ab' * 32}  tool.tar.gz", "tool.tar.gz")
        'abab...'
    """
    return parse_checksum_lines(content).get(filename)


def _constant_time_compare(a: str, b: str) -> bool:
    return secrets.compare_digest(a.lower().encode("utf-8"), b.lower().encode("utf-8"))

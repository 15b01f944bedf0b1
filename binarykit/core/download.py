"""
Network transfer engine with progress tracking, cancellation and retry logic.

This module provides:
- Streaming HTTP/HTTPS downloads written to disk chunk by chunk
- Progress reporting (bytes, fraction when the size is known, speed, ETA)
- Cooperative cancellation checked at every chunk boundary
- Retry with exponential backoff for transient failures
- Removal of partial files on any failure, so a truncated artifact never
  reaches the extractor
"""

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import requests
from requests.exceptions import ConnectionError, HTTPError, RequestException, Timeout

from binarykit.core.exceptions import TransferCancelled, TransferError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
USER_AGENT = "binarykit"

# Minimum seconds between two progress callbacks
PROGRESS_INTERVAL = 0.25


class CancelToken:
    """
    Thread-safe cancellation flag shared between a caller and a transfer.

    Example:
        >>> token = CancelToken()
        >>> threading.Timer(5, token.cancel).start()
        >>> fetch(url, dest, cancel_token=token)  # raises TransferCancelled
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; return True if cancelled meanwhile."""
        return self._event.wait(timeout)


@dataclass
class DownloadProgress:
    """Progress information for a download."""

    bytes_downloaded: int
    total_bytes: Optional[int]  # None when the server sent no content-length
    speed_bps: float = 0.0
    eta_seconds: Optional[float] = None

    @property
    def fraction(self) -> Optional[float]:
        """Completed fraction in [0, 1], or None if the size is unknown."""
        if not self.total_bytes:
            return None
        return min(self.bytes_downloaded / self.total_bytes, 1.0)

    def __str__(self) -> str:
        return format_progress(self)


class _IncompleteTransfer(RequestException):
    """Body ended before content-length bytes arrived."""


def fetch(
    url: str,
    destination: Path,
    progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
    cancel_token: Optional[CancelToken] = None,
    timeout: int = 30,
    max_retries: int = 3,
    session: Optional[requests.Session] = None,
) -> Path:
    """
    Stream ``url`` into ``destination``.

    Args:
        url: URL to download from
        destination: Local path to save file (parent directories are created)
        progress_callback: Optional callback for progress updates
        cancel_token: Optional token checked before every chunk is written
        timeout: Connect/read timeout in seconds
        max_retries: Maximum number of attempts for transient failures
        session: Optional requests session (connection reuse, tests)

    Returns:
        Path to downloaded file

    Raises:
        TransferError: If the transfer fails or the server answers non-2xx
        TransferCancelled: If ``cancel_token`` was cancelled
        ValueError: If URL or destination is empty

    Example:
        >>> def on_progress(progress):
        ...     print(progress)
        >>> fetch("https://example.com/tool.tar.gz", Path("temp/tool.tar.gz"),
        ...       progress_callback=on_progress)
    """
    if not url:
        raise ValueError("URL cannot be empty")

    if not destination:
        raise ValueError("Destination path cannot be empty")

    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    http = session or requests

    for attempt in range(max_retries):
        _check_cancelled(cancel_token, destination)
        try:
            return _download_with_progress(
                http=http,
                url=url,
                destination=destination,
                progress_callback=progress_callback,
                cancel_token=cancel_token,
                timeout=timeout,
            )
        except HTTPError as e:
            status = e.response.status_code if e.response is not None else 0
            if status < 500 or attempt == max_retries - 1:
                raise TransferError(f"Download failed: {e}") from e
            error: RequestException = e
        except (Timeout, ConnectionError, RequestException) as e:
            if attempt == max_retries - 1:
                raise TransferError(
                    f"Download failed after {max_retries} attempts: {e}"
                ) from e
            error = e
        except OSError as e:
            # Local write failure; retrying won't help
            raise TransferError(f"Cannot write {destination}: {e}") from e

        backoff_seconds = 2**attempt
        logger.warning(
            f"Download attempt {attempt + 1} failed: {error}. "
            f"Retrying in {backoff_seconds}s..."
        )
        if cancel_token is not None:
            cancel_token.wait(backoff_seconds)
        else:
            time.sleep(backoff_seconds)

    raise TransferError(f"Download failed: {url}")


def _download_with_progress(
    http,
    url: str,
    destination: Path,
    progress_callback: Optional[Callable[[DownloadProgress], None]],
    cancel_token: Optional[CancelToken],
    timeout: int,
) -> Path:
    logger.info(f"Downloading from {url}")

    response = http.get(
        url,
        headers={"User-Agent": USER_AGENT},
        stream=True,
        timeout=timeout,
        allow_redirects=True,
    )

    try:
        response.raise_for_status()

        total_size = _content_length(response)
        downloaded = 0
        start_time = time.monotonic()
        last_progress_time = 0.0

        with open(destination, "wb") as f:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                _check_cancelled(cancel_token, destination)
                if not chunk:
                    continue

                f.write(chunk)
                downloaded += len(chunk)

                now = time.monotonic()
                if progress_callback and now - last_progress_time >= PROGRESS_INTERVAL:
                    progress_callback(
                        _progress(downloaded, total_size, now - start_time)
                    )
                    last_progress_time = now

        if total_size is not None and downloaded < total_size:
            raise _IncompleteTransfer(
                f"Connection closed after {downloaded} of {total_size} bytes"
            )

        if progress_callback:
            progress_callback(
                _progress(downloaded, total_size, time.monotonic() - start_time)
            )

    except BaseException:
        remove_partial(destination)
        raise
    finally:
        response.close()

    logger.info(f"Download complete: {destination}")
    return destination


def fetch_text(
    url: str, timeout: int = 30, session: Optional[requests.Session] = None
) -> str:
    """
    Fetch a small text document (e.g., a checksum manifest) into memory.

    Raises:
        TransferError: If the request fails or returns non-2xx
    """
    http = session or requests
    try:
        response = http.get(
            url,
            headers={"User-Agent": USER_AGENT},
            timeout=timeout,
            allow_redirects=True,
        )
        response.raise_for_status()
    except RequestException as e:
        raise TransferError(f"Failed to fetch {url}: {e}") from e
    return response.text


def remove_partial(path: Path) -> None:
    """Delete a partially written file, ignoring absence."""
    try:
        path.unlink(missing_ok=True)
        logger.debug(f"Removed partial download: {path}")
    except OSError as e:
        logger.warning(f"Failed to remove partial download {path}: {e}")


def _check_cancelled(cancel_token: Optional[CancelToken], destination: Path) -> None:
    if cancel_token is not None and cancel_token.cancelled:
        raise TransferCancelled(f"Download cancelled: {destination.name}")


def _content_length(response) -> Optional[int]:
    value = response.headers.get("content-length")
    if not value:
        return None
    try:
        size = int(value)
    except ValueError:
        return None
    return size if size > 0 else None


def _progress(downloaded: int, total: Optional[int], elapsed: float) -> DownloadProgress:
    speed = downloaded / elapsed if elapsed > 0 else 0.0
    eta = None
    if total is not None and speed > 0:
        eta = max(total - downloaded, 0) / speed
    return DownloadProgress(
        bytes_downloaded=downloaded,
        total_bytes=total,
        speed_bps=speed,
        eta_seconds=eta,
    )


def format_progress(progress: DownloadProgress) -> str:
    """
    Format progress for display.

    Example:
        >>> progress = DownloadProgress(52428800, 104857600, 1048576, 50)
        >>> print(format_progress(progress))
        50.0/100.0 MB (50.0%) at 1.0 MB/s ETA: 50s
    """
    mb_downloaded = progress.bytes_downloaded / 1024 / 1024
    speed_mbps = progress.speed_bps / 1024 / 1024

    fraction = progress.fraction
    if fraction is None:
        return f"{mb_downloaded:.1f} MB at {speed_mbps:.1f} MB/s"

    mb_total = progress.total_bytes / 1024 / 1024
    text = (
        f"{mb_downloaded:.1f}/{mb_total:.1f} MB "
        f"({fraction * 100:.1f}%) "
        f"at {speed_mbps:.1f} MB/s"
    )
    if progress.eta_seconds is not None:
        text += f" ETA: {progress.eta_seconds:.0f}s"
    return text

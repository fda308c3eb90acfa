"""HTTP transfer of parameter files to and from the distribution endpoint.

Downloads use ranged GET requests so interrupted transfers resume from the
size of the partial file. The destination is only ever extended with whole
chunks as they arrive, so an aborted run leaves a resumable prefix rather
than a torn write. Uploads stream the file with PUT.

Authentication is not handled here: callers that need it pass an
``httpx.Client`` already carrying their credentials.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterator, Optional
from urllib.parse import quote

import httpx

from proof_params.errors import (
    IoError,
    PermanentTransferError,
    RangeNotSatisfiable,
    TransientTransferError,
)

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1 << 20
DEFAULT_TIMEOUT = 60.0

TRANSIENT_STATUS_CODES = frozenset({408, 425, 429})

CONTENT_RANGE_PATTERN = re.compile(r"^bytes\s+(\d+)-(\d+)/(\d+|\*)$")


def classify_status(url: str, response: httpx.Response) -> None:
    """Raise the transfer error matching a non-success response status.

    Raises:
        RangeNotSatisfiable: For 416
        TransientTransferError: For 408, 425, 429 and 5xx
        PermanentTransferError: For every other non-2xx status
    """
    status = response.status_code
    if 200 <= status < 300:
        return
    reason = response.reason_phrase or "unexpected response"
    if status == 416:
        raise RangeNotSatisfiable(url, "requested range not satisfiable", status)
    if status in TRANSIENT_STATUS_CODES or status >= 500:
        raise TransientTransferError(url, reason, status)
    if status in (401, 403):
        raise PermanentTransferError(url, "access rejected by remote", status)
    if status in (404, 410):
        raise PermanentTransferError(url, "remote object not found", status)
    raise PermanentTransferError(url, reason, status)


def parse_content_range(value: Optional[str]) -> Optional[int]:
    """Start offset from a ``Content-Range`` header, or None if absent/invalid."""
    if not value:
        return None
    match = CONTENT_RANGE_PATTERN.match(value.strip())
    if not match:
        return None
    return int(match.group(1))


def _iter_file(path: Path, chunk_size: int) -> Iterator[bytes]:
    with open(path, "rb") as handle:
        while chunk := handle.read(chunk_size):
            yield chunk


class TransferClient:
    """Ranged download and streamed upload against one base URL."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        timeout: float = DEFAULT_TIMEOUT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout
        self.chunk_size = chunk_size
        self._http_client = client
        self._owns_client = client is None

    def _get_http_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.Client(timeout=self.timeout, follow_redirects=True)
        return self._http_client

    def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._http_client is not None and self._owns_client:
            self._http_client.close()
            self._http_client = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def url_for(self, identifier: str) -> str:
        """Remote URL of a parameter file."""
        if not self.base_url:
            raise PermanentTransferError(identifier, "no distribution base URL configured")
        return f"{self.base_url}/{quote(identifier)}"

    def download(self, url: str, dest_path: Path, resume_from: int = 0) -> int:
        """Stream ``url`` into ``dest_path``, resuming at byte ``resume_from``.

        With ``resume_from`` > 0 a ``Range`` request is sent and a 206 reply is
        appended to the existing partial file. A 200 reply means the server
        ignored the range, and the file is rewritten from the start.

        Args:
            url: Remote object URL
            dest_path: Local destination (partial file when resuming)
            resume_from: Byte offset to resume from, 0 for a fresh download

        Returns:
            Number of bytes written by this call

        Raises:
            TransientTransferError: Network failure or retryable status
            RangeNotSatisfiable: Remote rejected the resume offset
            PermanentTransferError: Not found, access rejected, bad URL
            IoError: Destination cannot be written
        """
        headers = {}
        if resume_from > 0:
            headers["Range"] = f"bytes={resume_from}-"

        client = self._get_http_client()
        written = 0
        try:
            with client.stream("GET", url, headers=headers) as response:
                classify_status(url, response)

                mode = "wb"
                if resume_from > 0:
                    if response.status_code == 206:
                        start = parse_content_range(response.headers.get("Content-Range"))
                        if start != resume_from:
                            raise RangeNotSatisfiable(
                                url,
                                f"server resumed at {start}, expected {resume_from}",
                                response.status_code,
                            )
                        mode = "ab"
                    else:
                        logger.debug("Server ignored range for %s; restarting from zero", url)

                logger.debug("GET %s -> %s (%s)", url, response.status_code, mode)
                dest_path.parent.mkdir(parents=True, exist_ok=True)
                with open(dest_path, mode) as handle:
                    for chunk in response.iter_bytes(self.chunk_size):
                        handle.write(chunk)
                        handle.flush()
                        written += len(chunk)
        except httpx.UnsupportedProtocol as exc:
            raise PermanentTransferError(url, f"unsupported URL: {exc}") from exc
        except httpx.TimeoutException as exc:
            raise TransientTransferError(url, f"timed out: {exc}") from exc
        except httpx.RequestError as exc:
            raise TransientTransferError(url, f"network error: {exc}") from exc
        except OSError as exc:
            raise IoError(dest_path, str(exc)) from exc

        return written

    def upload(self, url: str, src_path: Path) -> None:
        """Upload the bytes of ``src_path`` to ``url`` with a streamed PUT.

        Raises:
            TransientTransferError: Network failure or retryable status
            PermanentTransferError: Rejected by the remote
            IoError: Source cannot be read
        """
        try:
            size = src_path.stat().st_size
        except OSError as exc:
            raise IoError(src_path, str(exc)) from exc

        client = self._get_http_client()
        try:
            response = client.put(
                url,
                content=_iter_file(src_path, self.chunk_size),
                headers={
                    "Content-Length": str(size),
                    "Content-Type": "application/octet-stream",
                },
            )
        except httpx.UnsupportedProtocol as exc:
            raise PermanentTransferError(url, f"unsupported URL: {exc}") from exc
        except httpx.TimeoutException as exc:
            raise TransientTransferError(url, f"timed out: {exc}") from exc
        except httpx.RequestError as exc:
            raise TransientTransferError(url, f"network error: {exc}") from exc
        except OSError as exc:
            raise IoError(src_path, str(exc)) from exc

        classify_status(url, response)
        logger.debug("PUT %s -> %s (%d bytes)", url, response.status_code, size)

"""
Resumable media transfer: the chunked transport used by the uploader.

Implements the resumable upload protocol spoken by the collector:

1. A pre-request ``POST <url>?uploadType=resumable`` carries the upload's
   metadata as JSON and announces the content type and length. The server
   answers with the upload session URI in the ``Location`` header.
2. The content is sent to that URI in one or more ``PUT`` requests, each
   with a ``Content-Range`` header. ``308 Resume Incomplete`` asks for the
   next chunk; any other status ends the transfer.

The request headers set on a transfer are sent with every request of the
exchange, with their values encoded as UTF-8. Progress is reported
synchronously, on the calling thread, after every block written to the
socket. A listener cancels the transfer by raising
:class:`~measure_sync.src.errors.UploadCancelled`.

``308`` answers must move the confirmed offset forward. After
``MAX_STALLED_ROUNDS`` answers in a row that confirm nothing new, the last
``308`` is returned to the caller.

A ``ResumableUpload`` is single use and does not own the client or the
content stream it is given.

CHANGELOG:
- 2026-10-18: Encode header values as UTF-8; stop when 308 answers stall
- 2026-10-17: Honour the Range header of 308 responses (STORY-026)
- 2026-10-13: Initial creation (STORY-023)

TODO:
- None
"""

from __future__ import annotations

import gzip
import logging
import re
from collections.abc import Iterator
from typing import BinaryIO, Protocol

import httpx

logger = logging.getLogger(__name__)

RESUME_INCOMPLETE = 308
DEFAULT_CHUNK_SIZE = 10 * 0x100000
BLOCK_SIZE = 64 * 1024
MAX_STALLED_ROUNDS = 3
"""308 answers in a row that may confirm no new data before the transfer gives up."""

_RANGE_RE = re.compile(r"bytes=0-(\d+)")


class UploadProgressListener(Protocol):
    """Receives the progress of the running upload."""

    def updated_progress(self, percent: float) -> None:
        """Called with the overall progress, from 0.0 to 100.0."""
        ...


class ResumableUpload:
    """Transfers one content stream using the resumable upload protocol.

    Args:
        client: Open client used for all requests.
        content: Readable, seekable binary stream positioned at its start.
        length: Number of bytes to transfer from *content*.
        content_type: Media type of the content.

    Attributes:
        chunk_size: Maximum number of bytes per ``PUT`` request.
        metadata: JSON body of the pre-request.
        headers: Extra headers sent with every request.
        disable_gzip_content: When false, chunk bodies are gzip compressed.
        progress_listener: Optional receiver of progress updates.

    Usage::

        transfer = ResumableUpload(client, handle, size)
        transfer.metadata = {"deviceId": "..."}
        transfer.disable_gzip_content = True
        response = transfer.upload(url)
    """

    def __init__(
        self,
        client: httpx.Client,
        content: BinaryIO,
        length: int,
        content_type: str = "application/octet-stream",
    ) -> None:
        self._client = client
        self._content = content
        self._length = length
        self._content_type = content_type
        self._bytes_uploaded = 0
        self._done = False

        self.chunk_size = DEFAULT_CHUNK_SIZE
        self.metadata: dict[str, str] | None = None
        self.headers: dict[str, str] = {}
        self.disable_gzip_content = False
        self.progress_listener: UploadProgressListener | None = None

    @property
    def bytes_uploaded(self) -> int:
        """Bytes handed to the transport so far."""
        return self._bytes_uploaded

    @property
    def progress(self) -> float:
        """Fraction of the content transferred, from 0.0 to 1.0."""
        if self._length == 0:
            return 1.0 if self._done else 0.0
        return self._bytes_uploaded / self._length

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def upload(self, url: httpx.URL) -> httpx.Response:
        """Run the transfer against *url*.

        Returns:
            The first response that ends the exchange: a non-2xx answer to
            the pre-request, a 2xx pre-request answer without session URI,
            the answer to the last chunk, or a ``308`` that stopped moving
            the confirmed offset forward.
        """
        response = self._initiate(url)
        if not response.is_success:
            return response
        location = response.headers.get("Location")
        if location is None:
            logger.warning("Upload pre-request answered without a session URI.")
            return response

        session_url = url.join(location)
        offset = 0
        confirmed = 0
        stalled = 0
        while True:
            size = min(self.chunk_size, self._length - offset)
            response = self._send_chunk(session_url, offset, size)
            if response.status_code != RESUME_INCOMPLETE:
                return response
            offset = self._next_offset(response, offset + size)
            if offset >= self._length:
                logger.warning("Server asked for more data after the last chunk.")
                return response
            if offset > confirmed:
                confirmed, stalled = offset, 0
                continue
            stalled += 1
            if stalled > MAX_STALLED_ROUNDS:
                logger.warning(
                    "Server confirmed no new data in %d rounds, stuck at byte %d.",
                    stalled,
                    confirmed,
                )
                return response

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _encoded_headers(self) -> dict[str, str | bytes]:
        return {name: value.encode("utf-8") for name, value in self.headers.items()}

    def _initiate(self, url: httpx.URL) -> httpx.Response:
        headers = {
            **self._encoded_headers(),
            "X-Upload-Content-Type": self._content_type,
            "X-Upload-Content-Length": str(self._length),
        }
        logger.debug("Upload pre-request to %s (%d bytes announced)", url, self._length)
        return self._client.post(
            url.copy_merge_params({"uploadType": "resumable"}),
            json=self.metadata or {},
            headers=headers,
        )

    def _send_chunk(self, url: httpx.URL, offset: int, size: int) -> httpx.Response:
        if size > 0:
            content_range = f"bytes {offset}-{offset + size - 1}/{self._length}"
        else:
            content_range = f"bytes */{self._length}"
        headers: dict[str, str | bytes] = {
            **self._encoded_headers(),
            "Content-Type": self._content_type,
            "Content-Range": content_range,
        }
        self._content.seek(offset)
        self._bytes_uploaded = offset

        if self.disable_gzip_content:
            headers["Content-Length"] = str(size)
            body: bytes | Iterator[bytes] = self._stream(offset, size)
        else:
            headers["Content-Encoding"] = "gzip"
            body = gzip.compress(self._content.read(size))
            self._advance(offset + size)

        logger.debug("Uploading chunk %s", content_range)
        return self._client.put(url, content=body, headers=headers)

    def _stream(self, offset: int, size: int) -> Iterator[bytes]:
        """Yield the chunk in blocks, reporting progress after each one.

        Yields fewer than *size* bytes if the content ends early; the
        transport then fails the request for falling short of its declared
        length.
        """
        remaining = size
        position = offset
        while remaining > 0:
            block = self._content.read(min(BLOCK_SIZE, remaining))
            if not block:
                return
            yield block
            remaining -= len(block)
            position += len(block)
            self._advance(position)
        if size == 0:
            self._advance(position)

    def _advance(self, position: int) -> None:
        self._bytes_uploaded = position
        if position >= self._length:
            self._done = True
        if self.progress_listener is not None:
            self.progress_listener.updated_progress(self.progress * 100.0)

    @staticmethod
    def _next_offset(response: httpx.Response, default: int) -> int:
        """Offset to continue from, as confirmed by the ``Range`` header of a 308."""
        received = response.headers.get("Range")
        if received is None:
            return default
        match = _RANGE_RE.fullmatch(received.strip())
        if match is None:
            return default
        return int(match.group(1)) + 1

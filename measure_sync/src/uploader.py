"""
Measurement and attachment upload to the collector API.

Each upload opens its own client and file handle and runs one resumable
transfer (see :mod:`measure_sync.src.transfer`). The file is always sent in
a single chunk, so ``MAX_CHUNK_SIZE`` doubles as the upload size ceiling and
is checked before any network I/O.

Every call walks through the ``UploadState`` machine::

    IDLE -> SIZE_CHECKED -> STREAM_OPENED -> METADATA_ATTACHED
         -> TRANSMITTING -> AWAITING_RESPONSE
         -> SUCCEEDED | SKIPPED | FAILED_RECOVERABLE | FAILED_FATAL

Transitions are logged at debug level with the target state as the
``upload_state`` record attribute.

CHANGELOG:
- 2026-10-18: Send attachment file names as RFC 6266 Content-Disposition
- 2026-10-18: Tag state transition records with upload_state
- 2026-10-17: Translate listener cancellation into NETWORK_UNAVAILABLE (STORY-026)
- 2026-10-16: Add attachment uploads (STORY-024)
- 2026-10-13: Initial creation (STORY-023)

TODO:
- None
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import quote
from uuid import UUID

import httpx

from measure_sync.src.classifier import Fatal, Recoverable, Result, classify_response
from measure_sync.src.config import DEFAULT_USER_AGENT
from measure_sync.src.connection import DEFAULT_TIMEOUT, HttpConnection, endpoint_url, read_body
from measure_sync.src.errors import (
    Failure,
    FailureKind,
    UnrecoverableError,
    UploadCancelled,
    UploadFailed,
    translate_upload_error,
)
from measure_sync.src.logs import masked_token
from measure_sync.src.transfer import ResumableUpload, UploadProgressListener

if TYPE_CHECKING:
    from measure_sync.src.config import ClientSettings
    from measure_sync.src.models import Attachment, Measurement, Uploadable

logger = logging.getLogger(__name__)

MAX_CHUNK_SIZE = 100 * 0x100000
"""Largest file accepted for upload (100 MiB), sent as one chunk."""


class UploadState(str, Enum):
    """Progress of a single upload call."""

    IDLE = "idle"
    SIZE_CHECKED = "size_checked"
    STREAM_OPENED = "stream_opened"
    METADATA_ATTACHED = "metadata_attached"
    TRANSMITTING = "transmitting"
    AWAITING_RESPONSE = "awaiting_response"
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED_RECOVERABLE = "failed_recoverable"
    FAILED_FATAL = "failed_fatal"


_NON_ASCII_RE = re.compile(r"[^\x20-\x7e]")


def content_disposition(file_name: str) -> str:
    """Build the ``Content-Disposition`` value naming an attachment file.

    The quoted ``filename`` is an ASCII fallback with other characters
    replaced by ``_``. The exact name travels percent-encoded in
    ``filename*`` (RFC 6266, RFC 8187). For ``straße.jpg`` this gives
    ``attachment; filename="stra_e.jpg"; filename*=UTF-8''stra%C3%9Fe.jpg``.
    """
    fallback = _NON_ASCII_RE.sub("_", file_name).replace("\\", "\\\\").replace('"', '\\"')
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(file_name, safe='')}"


class Uploader:
    """Uploads measurements and their attachments.

    Tokens are never cached: pass a fresh one from
    :meth:`Authenticator.authenticate` to every call.

    Args:
        api_endpoint: Base URL of the collector API.
        user_agent: Value of the ``User-Agent`` header.
        timeout: Timeout applied to every request.
        transport: Optional httpx transport, mainly for tests.

    Usage::

        uploader = Uploader("https://collector.example.com/api/v4")
        result = uploader.upload_measurement(token, measurement, Path("m.ccyf"))
    """

    def __init__(
        self,
        api_endpoint: str,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: httpx.Timeout = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._api_endpoint = api_endpoint
        self._http = HttpConnection(user_agent=user_agent, timeout=timeout, transport=transport)

    @classmethod
    def from_settings(
        cls,
        settings: ClientSettings,
        transport: httpx.BaseTransport | None = None,
    ) -> Uploader:
        """Build an uploader from loaded :class:`ClientSettings`."""
        return cls(
            settings.api_endpoint,
            user_agent=settings.user_agent,
            timeout=settings.timeout(),
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    def measurement_endpoint(self) -> httpx.URL:
        """URL measurements are uploaded to."""
        return endpoint_url(self._api_endpoint, "measurements")

    def attachment_endpoint(self, device_id: UUID | str, measurement_id: int) -> httpx.URL:
        """URL the attachments of one measurement are uploaded to."""
        return endpoint_url(
            self._api_endpoint,
            f"measurements/{device_id}/{measurement_id}/attachments",
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def upload_measurement(
        self,
        token: str,
        measurement: Measurement,
        path: Path,
        listener: UploadProgressListener | None = None,
    ) -> Result:
        """Upload a measurement's transfer file.

        Args:
            token: Bearer token from a fresh login.
            measurement: Identifier and metadata of the measurement.
            path: Transfer file to upload.
            listener: Optional progress receiver; may raise
                ``UploadCancelled`` to abort.

        Returns:
            ``Result.UPLOAD_SUCCESSFUL``, or ``Result.UPLOAD_SKIPPED`` if the
            server does not want this measurement.

        Raises:
            UploadFailed: For every recoverable failure.
            UnrecoverableError: For a malformed endpoint or a server answer
                only a client defect explains.
        """
        return self._upload(token, measurement, Path(path), self.measurement_endpoint(), {}, listener)

    def upload_attachment(
        self,
        token: str,
        attachment: Attachment,
        path: Path,
        file_name: str,
        listener: UploadProgressListener | None = None,
    ) -> Result:
        """Upload one attachment file of a measurement.

        Same contract as :meth:`upload_measurement`; *file_name* is sent as
        the ``Content-Disposition`` file name (see :func:`content_disposition`).
        """
        url = self.attachment_endpoint(attachment.device_id, attachment.measurement_id)
        extra = {"Content-Disposition": content_disposition(file_name)}
        return self._upload(token, attachment, Path(path), url, extra, listener)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _upload(
        self,
        token: str,
        uploadable: Uploadable,
        path: Path,
        url: httpx.URL,
        extra_headers: dict[str, str],
        listener: UploadProgressListener | None,
    ) -> Result:
        state = UploadState.IDLE
        logger.debug("Upload of %s to %s: %s", path.name, url, state.value)

        size = path.stat().st_size
        if size > MAX_CHUNK_SIZE:
            failure = Failure(
                FailureKind.MEASUREMENT_TOO_LARGE,
                f"Transfer file is too large: {size} bytes, at most {MAX_CHUNK_SIZE} allowed.",
            )
            self._fail(path, state, UploadState.FAILED_RECOVERABLE, failure)
            raise UploadFailed(failure)
        state = self._transition(path, state, UploadState.SIZE_CHECKED)

        wire = uploadable.to_wire_map()
        with path.open("rb") as content, self._http.open(url) as connection:
            state = self._transition(path, state, UploadState.STREAM_OPENED)

            transfer = ResumableUpload(connection.client, content, size)
            transfer.chunk_size = MAX_CHUNK_SIZE
            transfer.metadata = wire
            transfer.headers = {"Authorization": f"Bearer {token}", **wire, **extra_headers}
            transfer.disable_gzip_content = True
            transfer.progress_listener = listener
            state = self._transition(path, state, UploadState.METADATA_ATTACHED)

            logger.debug("Uploading %d bytes with token %s", size, masked_token(token))
            state = self._transition(path, state, UploadState.TRANSMITTING)
            try:
                response = transfer.upload(connection.url)
                state = self._transition(path, state, UploadState.AWAITING_RESPONSE)
                outcome = classify_response(
                    response.status_code, read_body(response), response.reason_phrase
                )
            except (httpx.TransportError, OSError, UploadCancelled) as exc:
                failure = translate_upload_error(exc)
                self._fail(path, state, UploadState.FAILED_RECOVERABLE, failure)
                raise UploadFailed(failure) from exc

        if isinstance(outcome, Fatal):
            logger.error("Upload of %s failed fatally: %s", path.name, outcome.reason)
            self._transition(path, state, UploadState.FAILED_FATAL)
            raise UnrecoverableError(outcome.reason)
        if isinstance(outcome, Recoverable):
            self._fail(path, state, UploadState.FAILED_RECOVERABLE, outcome.failure)
            raise UploadFailed(outcome.failure)

        if outcome.result is Result.UPLOAD_SKIPPED:
            self._transition(path, state, UploadState.SKIPPED)
            return outcome.result
        if outcome.result is Result.UPLOAD_SUCCESSFUL:
            self._transition(path, state, UploadState.SUCCEEDED)
            return outcome.result

        failure = Failure(
            FailureKind.UNEXPECTED_RESPONSE_CODE,
            f"Upload answered with {outcome.result.value}",
        )
        self._fail(path, state, UploadState.FAILED_RECOVERABLE, failure)
        raise UploadFailed(failure)

    @staticmethod
    def _transition(path: Path, current: UploadState, target: UploadState) -> UploadState:
        logger.debug(
            "Upload of %s: %s -> %s",
            path.name,
            current.value,
            target.value,
            extra={"upload_state": target.value},
        )
        return target

    def _fail(self, path: Path, current: UploadState, target: UploadState, failure: Failure) -> None:
        logger.warning("Upload of %s failed: %s", path.name, failure)
        self._transition(path, current, target)

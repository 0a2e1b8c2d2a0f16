"""
Failure taxonomy shared by authentication and upload.

``FailureKind`` is the closed vocabulary every failure is classified into.
Callers branch on the kind; the message is diagnostic only. Recoverable
failures reach the caller wrapped in one of ``LoginFailed``,
``RegistrationFailed`` or ``UploadFailed``. Fatal conditions (a broken
server contract, a malformed endpoint) raise ``UnrecoverableError`` and are
never caught inside this package.

The second half of the module translates exceptions raised by the HTTP
transport into failure kinds. Structured signals (exception types found on
the ``__cause__``/``__context__`` chain) are checked first; message
fragments are only a fallback for wording used by the underlying socket,
TLS and HTTP libraries.

CHANGELOG:
- 2026-10-17: Translate UploadCancelled raised by progress listeners (STORY-026)
- 2026-10-13: Add transport exception translation for uploads (STORY-023)
- 2026-10-12: Initial creation (STORY-021)

TODO:
- None
"""

from __future__ import annotations

import socket
import ssl
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

import httpx


class FailureKind(str, Enum):
    """Every way an authentication or upload attempt can fail."""

    BAD_REQUEST = "bad_request"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    ENTITY_NOT_PARSABLE = "entity_not_parsable"
    INTERNAL_SERVER_ERROR = "internal_server_error"
    TOO_MANY_REQUESTS = "too_many_requests"
    ACCOUNT_NOT_ACTIVATED = "account_not_activated"
    UPLOAD_SESSION_EXPIRED = "upload_session_expired"
    UNEXPECTED_RESPONSE_CODE = "unexpected_response_code"
    NETWORK_UNAVAILABLE = "network_unavailable"
    HOST_UNRESOLVABLE = "host_unresolvable"
    SERVER_UNAVAILABLE = "server_unavailable"
    TRANSPORT_IO = "transport_io"
    MEASUREMENT_TOO_LARGE = "measurement_too_large"
    SYNCHRONIZATION_INTERRUPTED = "synchronization_interrupted"


@dataclass(frozen=True)
class Failure:
    """A classified failure.

    Attributes:
        kind: The taxonomy member callers act on.
        message: Server response body or transport error text, for logs.
        cause: The transport exception this failure was derived from, if any.
    """

    kind: FailureKind
    message: str = ""
    cause: BaseException | None = None

    def __str__(self) -> str:
        if self.message:
            return f"{self.kind.value}: {self.message}"
        return self.kind.value


# ---------------------------------------------------------------------------
# Caller-facing exceptions
# ---------------------------------------------------------------------------


class ClientFailure(Exception):
    """Base class for recoverable failures handed to the caller."""

    def __init__(self, failure: Failure) -> None:
        self.failure = failure
        super().__init__(str(failure))

    @property
    def kind(self) -> FailureKind:
        return self.failure.kind


class LoginFailed(ClientFailure):
    """Authentication failed for a reason the caller can handle."""


class RegistrationFailed(ClientFailure):
    """Registration failed for a reason the caller can handle."""


class UploadFailed(ClientFailure):
    """An upload failed for a reason the caller can handle, e.g. by retrying later."""


class UnrecoverableError(RuntimeError):
    """A defect in the client, its configuration or the server contract.

    Retrying cannot help; the calling task should terminate.
    """


class MalformedEndpoint(UnrecoverableError):
    """The configured API endpoint cannot be turned into a usable URL."""


class UploadCancelled(Exception):
    """Raised by a progress listener to abort the running upload."""


# ---------------------------------------------------------------------------
# Transport exception translation
# ---------------------------------------------------------------------------

_HOST_UNRESOLVABLE_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "getaddrinfo failed",
    "no address associated with hostname",
    "unable to resolve host",
)

_ABRUPT_CLOSE_MARKERS = (
    "broken pipe",
    "connection reset",
    "eof occurred in violation of protocol",
    "unexpected eof",
)

_THREAD_INTERRUPTED_MARKERS = ("thread interrupted",)

_STREAM_ENDED_EARLY_MARKERS = (
    "unexpected end of stream",
    "too little data for declared content-length",
    "peer closed connection without sending complete message body",
)


def exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* followed by its causes and contexts, each at most once."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _find(exc: BaseException, types: type[BaseException] | tuple[type[BaseException], ...]) -> BaseException | None:
    for link in exception_chain(exc):
        if isinstance(link, types):
            return link
    return None


def _mentions(exc: BaseException, markers: tuple[str, ...]) -> bool:
    for link in exception_chain(exc):
        text = str(link).lower()
        if any(marker in text for marker in markers):
            return True
    return False


def is_host_unresolvable(exc: BaseException) -> bool:
    """Whether *exc* was caused by a failed DNS lookup."""
    return _find(exc, socket.gaierror) is not None or _mentions(exc, _HOST_UNRESOLVABLE_MARKERS)


def is_abrupt_close(exc: BaseException) -> bool:
    """Whether *exc* reports that the peer connection was closed abruptly."""
    if _find(exc, (BrokenPipeError, ConnectionResetError, ssl.SSLEOFError)) is not None:
        return True
    return _mentions(exc, _ABRUPT_CLOSE_MARKERS)


def is_interrupted(exc: BaseException) -> bool:
    """Whether *exc* stems from an interrupted call rather than a network fault."""
    if _find(exc, (UploadCancelled, InterruptedError)) is not None:
        return True
    return _mentions(exc, _THREAD_INTERRUPTED_MARKERS)


def is_stream_ended_early(exc: BaseException) -> bool:
    """Whether the body stream ended before its declared length was reached."""
    return _mentions(exc, _STREAM_ENDED_EARLY_MARKERS)


def translate_request_error(exc: Exception) -> Failure:
    """Classify an exception raised while sending a login or registration request.

    Failing to get a connection at all is either ``HOST_UNRESOLVABLE`` or
    ``SERVER_UNAVAILABLE``; losing it while writing the small JSON payload is
    ``NETWORK_UNAVAILABLE``; everything after that is ``TRANSPORT_IO``.
    """
    message = str(exc)
    if isinstance(exc, (httpx.ConnectTimeout, httpx.PoolTimeout)):
        return Failure(FailureKind.SERVER_UNAVAILABLE, message, exc)
    if isinstance(exc, httpx.ConnectError):
        if is_host_unresolvable(exc):
            return Failure(FailureKind.HOST_UNRESOLVABLE, message, exc)
        return Failure(FailureKind.SERVER_UNAVAILABLE, message, exc)
    if isinstance(exc, (httpx.WriteError, httpx.WriteTimeout)) or is_interrupted(exc):
        return Failure(FailureKind.NETWORK_UNAVAILABLE, "Network became unavailable during transmission.", exc)
    return Failure(FailureKind.TRANSPORT_IO, message, exc)


def translate_upload_error(exc: Exception) -> Failure:
    """Classify an exception raised while uploading a file.

    Rules are evaluated in priority order: connection timeouts, TLS errors,
    interruptions, connect errors and finally general I/O errors, where a
    stream that ended before its declared length is told apart from any
    other transport failure.
    """
    message = str(exc)
    if isinstance(exc, (httpx.ConnectTimeout, httpx.PoolTimeout)):
        return Failure(FailureKind.SERVER_UNAVAILABLE, message, exc)

    if _find(exc, ssl.SSLError) is not None:
        if is_abrupt_close(exc):
            return Failure(FailureKind.NETWORK_UNAVAILABLE, "Network became unavailable during upload.", exc)
        return Failure(FailureKind.TRANSPORT_IO, message, exc)

    if is_interrupted(exc):
        return Failure(FailureKind.NETWORK_UNAVAILABLE, "Network interrupted during upload.", exc)
    if isinstance(exc, (httpx.ReadTimeout, httpx.WriteTimeout)):
        return Failure(FailureKind.TRANSPORT_IO, message, exc)

    if isinstance(exc, httpx.ConnectError):
        if is_host_unresolvable(exc):
            return Failure(FailureKind.HOST_UNRESOLVABLE, message, exc)
        return Failure(FailureKind.SERVER_UNAVAILABLE, message, exc)

    if is_stream_ended_early(exc):
        return Failure(FailureKind.SYNCHRONIZATION_INTERRUPTED, "Upload interrupted.", exc)
    return Failure(FailureKind.TRANSPORT_IO, message, exc)

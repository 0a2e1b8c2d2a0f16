"""
Maps HTTP responses of the collector server onto outcomes.

``classify_response`` is a total, pure function over the status code: every
code yields exactly one of ``Success``, ``Recoverable`` or ``Fatal``. The
same table serves login, registration and upload responses; each caller
then decides which recoverable kinds it treats as fatal via ``escalate``.

Status table:

=====  ==========================================
200    Success(LOGIN_SUCCESSFUL)
201    Success(UPLOAD_SUCCESSFUL)
400    BAD_REQUEST
401    UNAUTHORIZED
403    FORBIDDEN
404    UPLOAD_SESSION_EXPIRED
409    CONFLICT
412    Success(UPLOAD_SKIPPED)
413    Fatal (the client never sends payloads this large)
422    ENTITY_NOT_PARSABLE
428    ACCOUNT_NOT_ACTIVATED
429    TOO_MANY_REQUESTS
500    INTERNAL_SERVER_ERROR
other  UNEXPECTED_RESPONSE_CODE (including other 2xx)
=====  ==========================================

CHANGELOG:
- 2026-10-15: Add escalate() for per-operation fatal kinds (STORY-022)
- 2026-10-12: Initial creation (STORY-021)

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Collection
from dataclasses import dataclass
from enum import Enum

from measure_sync.src.errors import Failure, FailureKind

logger = logging.getLogger(__name__)

HTTP_OK = 200
HTTP_CREATED = 201
HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409
HTTP_SKIP_UPLOAD = 412
HTTP_PAYLOAD_TOO_LARGE = 413
HTTP_ENTITY_NOT_PROCESSABLE = 422
HTTP_ACCOUNT_NOT_ACTIVATED = 428
HTTP_TOO_MANY_REQUESTS = 429
HTTP_INTERNAL_ERROR = 500


class Result(str, Enum):
    """Non-failure outcomes of the public operations."""

    UPLOAD_SUCCESSFUL = "upload_successful"
    UPLOAD_SKIPPED = "upload_skipped"
    LOGIN_SUCCESSFUL = "login_successful"


@dataclass(frozen=True)
class Success:
    result: Result


@dataclass(frozen=True)
class Recoverable:
    failure: Failure

    @property
    def kind(self) -> FailureKind:
        return self.failure.kind


@dataclass(frozen=True)
class Fatal:
    reason: str


Outcome = Success | Recoverable | Fatal


# status -> (kind, log message)
_FAILURES: dict[int, tuple[FailureKind, str]] = {
    HTTP_BAD_REQUEST: (FailureKind.BAD_REQUEST, "400: Unknown error"),
    HTTP_UNAUTHORIZED: (
        FailureKind.UNAUTHORIZED,
        "401: Bad credentials or missing authorization information",
    ),
    HTTP_FORBIDDEN: (
        FailureKind.FORBIDDEN,
        "403: The authorized user has no permissions to post measurements",
    ),
    HTTP_NOT_FOUND: (
        FailureKind.UPLOAD_SESSION_EXPIRED,
        "404: Did the upload session expire? Try again.",
    ),
    HTTP_CONFLICT: (FailureKind.CONFLICT, "409: The measurement already exists on the server."),
    HTTP_ENTITY_NOT_PROCESSABLE: (
        FailureKind.ENTITY_NOT_PARSABLE,
        "422: Multipart request is erroneous.",
    ),
    HTTP_ACCOUNT_NOT_ACTIVATED: (
        FailureKind.ACCOUNT_NOT_ACTIVATED,
        "428: User account not activated.",
    ),
    HTTP_TOO_MANY_REQUESTS: (
        FailureKind.TOO_MANY_REQUESTS,
        "429: Server reported too many requests received from this client.",
    ),
    HTTP_INTERNAL_ERROR: (
        FailureKind.INTERNAL_SERVER_ERROR,
        "500: Server reported internal error.",
    ),
}


def classify_response(status_code: int, body: str = "", status_message: str = "") -> Outcome:
    """Classify a server response.

    Args:
        status_code: HTTP status code.
        body: Response body, possibly empty.
        status_message: HTTP reason phrase, used when the body is empty.

    Returns:
        The outcome from the module level status table.
    """
    detail = body or status_message

    if status_code == HTTP_OK:
        logger.debug("200: Login successful")
        return Success(Result.LOGIN_SUCCESSFUL)
    if status_code == HTTP_CREATED:
        logger.debug("201: Upload successful")
        return Success(Result.UPLOAD_SUCCESSFUL)
    if status_code == HTTP_SKIP_UPLOAD:
        logger.warning("412: Skip upload")
        return Success(Result.UPLOAD_SKIPPED)
    if status_code == HTTP_PAYLOAD_TOO_LARGE:
        logger.warning("413: Payload too large")
        return Fatal(f"Server rejected payload as too large: {detail}")

    if status_code in _FAILURES:
        kind, log_message = _FAILURES[status_code]
        logger.warning(log_message)
        return Recoverable(Failure(kind, detail))

    logger.error("%d: Server reported with an unexpected response code.", status_code)
    return Recoverable(
        Failure(FailureKind.UNEXPECTED_RESPONSE_CODE, f"{status_code} {detail}".strip())
    )


def escalate(outcome: Outcome, fatal_kinds: Collection[FailureKind]) -> Outcome:
    """Turn recoverable outcomes whose kind is in *fatal_kinds* into ``Fatal``.

    Used where a response can only mean a defect in this client, e.g. a
    400 on the private login endpoint.
    """
    if isinstance(outcome, Recoverable) and outcome.kind in fatal_kinds:
        return Fatal(f"Unexpected {outcome.kind.value} response: {outcome.failure.message}")
    return outcome

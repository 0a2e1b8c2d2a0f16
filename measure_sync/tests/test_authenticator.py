"""
Unit tests for the authenticator.

Tests verify:
- authenticate() returns the token without its Bearer prefix.
- A successful login without a token is unrecoverable.
- Recoverable login failures raise LoginFailed with the classified kind.
- Login fatal kinds (400, 409, 422, 500, 404) raise UnrecoverableError.
- register() returns the result; 409 is recoverable, 401/428 are fatal.
- Malformed endpoints raise before any request is sent.
- Tokens and passwords never reach the logs in clear text.

CHANGELOG:
- 2026-10-15: Fatal kind escalation tests (STORY-022)
- 2026-10-12: Initial creation (STORY-021)

TODO:
- None
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx
import pytest
from measure_sync.src.authenticator import Authenticator
from measure_sync.src.classifier import Result
from measure_sync.src.config import ClientSettings
from measure_sync.src.connection import Activation
from measure_sync.src.errors import (
    FailureKind,
    LoginFailed,
    MalformedEndpoint,
    RegistrationFailed,
    UnrecoverableError,
)

if TYPE_CHECKING:
    from conftest import CollectorStub

API_ENDPOINT = "https://collector.example.com/api/v4"


def _authenticator(collector: CollectorStub, compress: bool = False) -> Authenticator:
    return Authenticator(API_ENDPOINT, compress=compress, transport=collector.transport())


class TestEndpoints:
    """Endpoint URLs derive from the API base."""

    def test_login_endpoint(self) -> None:
        assert str(Authenticator(API_ENDPOINT).login_endpoint()) == f"{API_ENDPOINT}/login"

    def test_registration_endpoint(self) -> None:
        assert str(Authenticator(f"{API_ENDPOINT}/").registration_endpoint()) == f"{API_ENDPOINT}/user"

    def test_malformed_endpoint_raises_before_request(self, collector: CollectorStub) -> None:
        authenticator = Authenticator("ftp://collector.example.com", transport=collector.transport())

        with pytest.raises(MalformedEndpoint):
            authenticator.authenticate("user", "secret")
        assert collector.requests == []


class TestAuthenticate:
    """authenticate() returns a token or raises a classified failure."""

    def test_returns_token_without_bearer_prefix(self, collector: CollectorStub) -> None:
        assert _authenticator(collector).authenticate("user", "secret") == "test-token"
        assert str(collector.requests[0].url) == f"{API_ENDPOINT}/login"

    def test_returns_bare_token_unchanged(self, collector: CollectorStub) -> None:
        collector.login_headers = {"Authorization": "eyJhbGciOi.payload.sig"}

        assert _authenticator(collector).authenticate("user", "secret") == "eyJhbGciOi.payload.sig"

    def test_missing_token_is_unrecoverable(self, collector: CollectorStub) -> None:
        collector.login_headers = {}

        with pytest.raises(UnrecoverableError, match="token"):
            _authenticator(collector).authenticate("user", "secret")

    @pytest.mark.parametrize(
        ("status", "kind"),
        [
            (401, FailureKind.UNAUTHORIZED),
            (403, FailureKind.FORBIDDEN),
            (428, FailureKind.ACCOUNT_NOT_ACTIVATED),
            (429, FailureKind.TOO_MANY_REQUESTS),
            (503, FailureKind.UNEXPECTED_RESPONSE_CODE),
        ],
    )
    def test_recoverable_status_raises_login_failed(
        self, collector: CollectorStub, status: int, kind: FailureKind
    ) -> None:
        collector.login_status = status

        with pytest.raises(LoginFailed) as exc_info:
            _authenticator(collector).authenticate("user", "secret")
        assert exc_info.value.kind is kind

    @pytest.mark.parametrize("status", [400, 404, 409, 413, 422, 500])
    def test_fatal_status_is_unrecoverable(self, collector: CollectorStub, status: int) -> None:
        collector.login_status = status

        with pytest.raises(UnrecoverableError):
            _authenticator(collector).authenticate("user", "secret")

    def test_non_login_success_is_unexpected(self, collector: CollectorStub) -> None:
        """A 201 on the login endpoint is not a login."""
        collector.login_status = 201

        with pytest.raises(LoginFailed) as exc_info:
            _authenticator(collector).authenticate("user", "secret")
        assert exc_info.value.kind is FailureKind.UNEXPECTED_RESPONSE_CODE

    def test_unresolvable_host_raises_login_failed(self, collector: CollectorStub) -> None:
        error = httpx.ConnectError("[Errno -2] Name or service not known")
        collector.error = error

        with pytest.raises(LoginFailed) as exc_info:
            _authenticator(collector).authenticate("user", "secret")
        assert exc_info.value.kind is FailureKind.HOST_UNRESOLVABLE
        assert exc_info.value.__cause__ is error

    def test_compressed_login(self, collector: CollectorStub) -> None:
        _authenticator(collector, compress=True).authenticate("user", "secret")

        assert collector.requests[0].headers["Content-Encoding"] == "gzip"

    def test_secrets_not_logged(
        self, collector: CollectorStub, caplog: pytest.LogCaptureFixture
    ) -> None:
        collector.login_headers = {"Authorization": "Bearer very-secret-token"}

        with caplog.at_level(logging.DEBUG, logger="measure_sync"):
            _authenticator(collector).authenticate("user", "hunter2-password")

        assert "very-secret-token" not in caplog.text
        assert "hunter2-password" not in caplog.text


class TestRegister:
    """register() creates accounts or raises a classified failure."""

    def test_returns_result(self, collector: CollectorStub) -> None:
        result = _authenticator(collector).register(
            "a@example.com", "secret", "captcha", Activation.R4R_IOS, "cyclists"
        )

        assert result is Result.UPLOAD_SUCCESSFUL
        request = collector.requests[0]
        assert str(request.url) == f"{API_ENDPOINT}/user"
        assert b'"template":"R4R_IOS"' in request.content

    def test_conflict_raises_registration_failed(self, collector: CollectorStub) -> None:
        collector.register_status = 409

        with pytest.raises(RegistrationFailed) as exc_info:
            _authenticator(collector).register(
                "a@example.com", "secret", "captcha", Activation.DEFAULT
            )
        assert exc_info.value.kind is FailureKind.CONFLICT

    @pytest.mark.parametrize("status", [400, 401, 404, 422, 428, 500])
    def test_fatal_status_is_unrecoverable(self, collector: CollectorStub, status: int) -> None:
        collector.register_status = status

        with pytest.raises(UnrecoverableError):
            _authenticator(collector).register(
                "a@example.com", "secret", "captcha", Activation.DEFAULT
            )

    def test_too_many_requests_is_recoverable(self, collector: CollectorStub) -> None:
        collector.register_status = 429

        with pytest.raises(RegistrationFailed) as exc_info:
            _authenticator(collector).register(
                "a@example.com", "secret", "captcha", Activation.DEFAULT
            )
        assert exc_info.value.kind is FailureKind.TOO_MANY_REQUESTS


class TestFromSettings:
    """Authenticator.from_settings() applies the loaded configuration."""

    def test_settings_applied(
        self, env_vars_full: dict[str, str], collector: CollectorStub
    ) -> None:
        authenticator = Authenticator.from_settings(ClientSettings(), transport=collector.transport())

        authenticator.authenticate("user", "secret")

        request = collector.requests[0]
        assert str(request.url) == "https://collector.example.com/api/v4/login"
        assert request.headers["User-Agent"] == env_vars_full["USER_AGENT"]
        assert request.headers["Content-Encoding"] == "gzip"

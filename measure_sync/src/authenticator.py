"""
Login and registration against the collector API.

The bearer token returned by :meth:`Authenticator.authenticate` is only
valid for a short, server defined time. Request a fresh one right before
each upload; this class never caches tokens.

Recoverable failures are raised as ``LoginFailed`` / ``RegistrationFailed``
carrying the classified ``Failure``. Responses that can only mean a defect
in this client (the endpoints are private to it) raise
``UnrecoverableError`` instead.

CHANGELOG:
- 2026-10-15: Apply fatal kinds through classifier.escalate (STORY-022)
- 2026-10-12: Initial creation (STORY-021)

TODO:
- None
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from measure_sync.src.classifier import Fatal, Recoverable, Result, escalate
from measure_sync.src.config import DEFAULT_USER_AGENT
from measure_sync.src.connection import DEFAULT_TIMEOUT, Activation, HttpConnection, endpoint_url
from measure_sync.src.errors import (
    Failure,
    FailureKind,
    LoginFailed,
    RegistrationFailed,
    UnrecoverableError,
)
from measure_sync.src.logs import masked_token

if TYPE_CHECKING:
    from measure_sync.src.config import ClientSettings

logger = logging.getLogger(__name__)

LOGIN_FATAL_KINDS = frozenset(
    {
        FailureKind.BAD_REQUEST,
        FailureKind.CONFLICT,
        FailureKind.ENTITY_NOT_PARSABLE,
        FailureKind.INTERNAL_SERVER_ERROR,
        FailureKind.UPLOAD_SESSION_EXPIRED,
    }
)

REGISTRATION_FATAL_KINDS = frozenset(
    {
        FailureKind.BAD_REQUEST,
        FailureKind.UNAUTHORIZED,
        FailureKind.ENTITY_NOT_PARSABLE,
        FailureKind.INTERNAL_SERVER_ERROR,
        FailureKind.ACCOUNT_NOT_ACTIVATED,
        FailureKind.UPLOAD_SESSION_EXPIRED,
    }
)

_BEARER_PREFIX = "bearer "


class Authenticator:
    """Authenticates users at the collector and registers new ones.

    Args:
        api_endpoint: Base URL of the collector API, like
            ``https://collector.example.com/api/v4``.
        compress: Send the login payload gzip compressed.
        user_agent: Value of the ``User-Agent`` header.
        timeout: Timeout applied to every request.
        transport: Optional httpx transport, mainly for tests.

    Usage::

        authenticator = Authenticator("https://collector.example.com/api/v4")
        token = authenticator.authenticate("user@example.com", "secret")
    """

    def __init__(
        self,
        api_endpoint: str,
        *,
        compress: bool = False,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: httpx.Timeout = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._api_endpoint = api_endpoint
        self._compress = compress
        self._http = HttpConnection(user_agent=user_agent, timeout=timeout, transport=transport)

    @classmethod
    def from_settings(
        cls,
        settings: ClientSettings,
        transport: httpx.BaseTransport | None = None,
    ) -> Authenticator:
        """Build an authenticator from loaded :class:`ClientSettings`."""
        return cls(
            settings.api_endpoint,
            compress=settings.compress_login,
            user_agent=settings.user_agent,
            timeout=settings.timeout(),
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    def login_endpoint(self) -> httpx.URL:
        """URL of the login endpoint.

        Raises:
            MalformedEndpoint: If the configured API endpoint is unusable.
        """
        return endpoint_url(self._api_endpoint, "login")

    def registration_endpoint(self) -> httpx.URL:
        """URL of the registration endpoint.

        Raises:
            MalformedEndpoint: If the configured API endpoint is unusable.
        """
        return endpoint_url(self._api_endpoint, "user")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def authenticate(self, username: str, password: str) -> str:
        """Log in and return the bearer token.

        Args:
            username: Username of the user to authenticate.
            password: Password of the user to authenticate.

        Returns:
            The token, without any ``Bearer`` prefix.

        Raises:
            LoginFailed: For every recoverable failure, e.g. wrong
                credentials, a missing network or rate limiting.
            UnrecoverableError: If the endpoint is malformed, the server
                answered in a way only a client defect explains, or a
                successful login carried no token.
        """
        url = self.login_endpoint()
        logger.debug("Logging in user=%s password=%s", username, masked_token(password))
        with self._http.open(url) as connection:
            response = self._http.login(connection, username, password, self._compress)

        outcome = escalate(response.outcome, LOGIN_FATAL_KINDS)
        logger.debug("Response %s", outcome)
        if isinstance(outcome, Fatal):
            raise UnrecoverableError(outcome.reason)
        if isinstance(outcome, Recoverable):
            raise LoginFailed(outcome.failure) from outcome.failure.cause
        if outcome.result is not Result.LOGIN_SUCCESSFUL:
            raise LoginFailed(
                Failure(
                    FailureKind.UNEXPECTED_RESPONSE_CODE,
                    f"Login answered with {outcome.result.value}",
                )
            )

        if not response.authorization:
            raise UnrecoverableError("Login successful but response does not contain a token")
        token = response.authorization.strip()
        if token.lower().startswith(_BEARER_PREFIX):
            token = token[len(_BEARER_PREFIX):].strip()
        logger.info("Login successful, token %s", masked_token(token))
        return token

    def register(
        self,
        email: str,
        password: str,
        captcha: str,
        activation: Activation,
        group: str = "",
    ) -> Result:
        """Register a new user.

        Args:
            email: Email address, used as username afterwards.
            password: Password of the new account.
            captcha: Captcha token solved by the user.
            activation: Template of the activation email.
            group: Optional user group to register into.

        Returns:
            The success result reported by the server.

        Raises:
            RegistrationFailed: For every recoverable failure, e.g. an
                already registered email (``CONFLICT``).
            UnrecoverableError: If the endpoint is malformed or the server
                answered in a way only a client defect explains.
        """
        url = self.registration_endpoint()
        logger.debug("Registering email=%s template=%s", email, activation.name)
        with self._http.open(url) as connection:
            outcome = self._http.register(connection, email, password, captcha, activation, group)

        outcome = escalate(outcome, REGISTRATION_FATAL_KINDS)
        logger.debug("Response %s", outcome)
        if isinstance(outcome, Fatal):
            raise UnrecoverableError(outcome.reason)
        if isinstance(outcome, Recoverable):
            raise RegistrationFailed(outcome.failure) from outcome.failure.cause
        return outcome.result

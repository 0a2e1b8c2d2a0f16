"""
HTTP transport for the collector's authentication endpoints.

Opens short-lived ``httpx.Client`` instances with the protocol headers the
collector expects, sends the login and registration payloads and classifies
the answers. Nothing here raises for network or HTTP failures: every request
ends in an ``Outcome`` so the authenticator decides what is fatal.

TLS certificates and host names are always verified with httpx's default
context; there is no switch to turn that off.

Operations:
- open(url): context manager yielding a ``Connection`` bound to *url*.
- login(connection, username, password, compress): POST credentials.
- register(connection, email, password, captcha, activation, group): POST
  a registration.
- endpoint_url(api_endpoint, path): build and validate an endpoint URL.
- read_body(response): response body as text, never raising.

CHANGELOG:
- 2026-10-18: Validate the API base before appending the endpoint path
- 2026-10-15: Return outcomes instead of raising transport failures (STORY-022)
- 2026-10-12: Initial creation (STORY-021)

TODO:
- None
"""

from __future__ import annotations

import gzip
import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum

import httpx

from measure_sync.src.classifier import Outcome, Recoverable, classify_response
from measure_sync.src.config import DEFAULT_USER_AGENT
from measure_sync.src.errors import MalformedEndpoint, translate_request_error

logger = logging.getLogger(__name__)

DEFAULT_CHARSET = "UTF-8"
DEFAULT_TIMEOUT = httpx.Timeout(60.0, connect=15.0)


class Activation(str, Enum):
    """Template the server uses for the account activation email."""

    DEFAULT = "DEFAULT"
    R4R_ANDROID = "R4R_ANDROID"
    R4R_IOS = "R4R_IOS"


@dataclass(frozen=True)
class Connection:
    """An open client bound to the URL it was opened for."""

    client: httpx.Client
    url: httpx.URL


@dataclass(frozen=True)
class LoginResponse:
    """Classified login answer plus the token header, if the server sent one."""

    outcome: Outcome
    authorization: str | None = None


def endpoint_url(api_endpoint: str, path: str) -> httpx.URL:
    """Append *path* to *api_endpoint*, adding a trailing slash to the base if needed.

    Raises:
        MalformedEndpoint: If the base is not an absolute http(s) URL with a
            host, or the result does not parse.
    """
    base = api_endpoint if api_endpoint.endswith("/") else f"{api_endpoint}/"
    try:
        base_url = httpx.URL(base)
        url = httpx.URL(base + path)
    except httpx.InvalidURL as exc:
        raise MalformedEndpoint(f"The endpoint url is malformed: {base}{path}") from exc
    if base_url.scheme not in ("http", "https") or not base_url.host:
        raise MalformedEndpoint(f"The endpoint url is malformed: {base}{path}")
    return url


def read_body(response: httpx.Response) -> str:
    """Read the response body as text.

    A missing or unreadable body yields an empty string; the status code is
    what matters to the caller and a broken body must not hide it.
    """
    try:
        content = response.read()
    except (httpx.HTTPError, httpx.StreamError) as exc:
        logger.debug("Unable to read response body: %s", exc)
        return ""
    return content.decode(response.encoding or DEFAULT_CHARSET, errors="replace")


class HttpConnection:
    """Sends authentication requests to the collector.

    Args:
        user_agent: Value of the ``User-Agent`` header.
        timeout: Timeout applied to every request.
        transport: Optional httpx transport, e.g. ``httpx.MockTransport``
            in tests. TLS verification is the transport's job then.
    """

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: httpx.Timeout = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._user_agent = user_agent
        self._timeout = timeout
        self._transport = transport

    @contextmanager
    def open(self, url: httpx.URL) -> Iterator[Connection]:
        """Open a client for *url*; it is closed on every exit path."""
        client = httpx.Client(
            headers={
                "Content-Type": f"application/json; charset={DEFAULT_CHARSET}",
                "User-Agent": self._user_agent,
            },
            timeout=self._timeout,
            verify=True,
            transport=self._transport,
        )
        with client:
            yield Connection(client=client, url=url)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def login(
        self,
        connection: Connection,
        username: str,
        password: str,
        compress: bool = False,
    ) -> LoginResponse:
        """POST credentials and classify the answer.

        Args:
            connection: Connection opened for the login endpoint.
            username: Username part of the credentials.
            password: Password part of the credentials.
            compress: Send the payload gzip compressed.

        Returns:
            The classified outcome and the ``Authorization`` response header.
        """
        payload = self.credentials(username, password).encode(DEFAULT_CHARSET)
        headers: dict[str, str] = {}
        logger.debug("Transmitting with compression %s.", compress)
        if compress:
            headers["Content-Encoding"] = "gzip"
            payload = gzip.compress(payload)

        try:
            response = connection.client.post(connection.url, content=payload, headers=headers)
        except httpx.TransportError as exc:
            failure = translate_request_error(exc)
            logger.warning("Login request failed (%s): %s", failure.kind.value, exc)
            return LoginResponse(Recoverable(failure))

        outcome = classify_response(response.status_code, read_body(response), response.reason_phrase)
        return LoginResponse(outcome, response.headers.get("Authorization"))

    def register(
        self,
        connection: Connection,
        email: str,
        password: str,
        captcha: str,
        activation: Activation,
        group: str = "",
    ) -> Outcome:
        """POST a new user registration and classify the answer."""
        payload = self.registration_payload(email, password, captcha, activation, group)
        try:
            response = connection.client.post(
                connection.url, content=payload.encode(DEFAULT_CHARSET)
            )
        except httpx.TransportError as exc:
            failure = translate_request_error(exc)
            logger.warning("Registration request failed (%s): %s", failure.kind.value, exc)
            return Recoverable(failure)

        return classify_response(response.status_code, read_body(response), response.reason_phrase)

    # ------------------------------------------------------------------
    # Payloads
    # ------------------------------------------------------------------

    @staticmethod
    def credentials(username: str, password: str) -> str:
        """Login payload, e.g. ``{"username":"u","password":"p"}``."""
        return json.dumps(
            {"username": username, "password": password},
            separators=(",", ":"),
            ensure_ascii=False,
        )

    @staticmethod
    def registration_payload(
        email: str,
        password: str,
        captcha: str,
        activation: Activation,
        group: str = "",
    ) -> str:
        """Registration payload with the activation template's name."""
        return json.dumps(
            {
                "email": email,
                "password": password,
                "captcha": captcha,
                "template": activation.name,
                "group": group,
            },
            separators=(",", ":"),
            ensure_ascii=False,
        )

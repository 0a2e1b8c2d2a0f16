"""
Sync client configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
Only connection parameters live here; credentials are passed per call and
never read from the environment by this package.

CHANGELOG:
- 2026-10-15: Add COMPRESS_LOGIN and USER_AGENT (STORY-022)
- 2026-10-12: Initial creation (STORY-021)

TODO:
- None
"""

import httpx
from pydantic import field_validator
from pydantic_settings import BaseSettings

from measure_sync.src import __version__

DEFAULT_USER_AGENT = f"measure-sync/{__version__}"


class ClientSettings(BaseSettings):
    """Connection settings for the collector API.

    Attributes:
        api_endpoint: Base URL of the collector API, e.g.
            ``https://collector.example.com/api/v4``. A trailing slash is
            optional.
        connect_timeout_s: Seconds allowed for establishing a connection.
        read_timeout_s: Seconds allowed between two reads or writes.
        compress_login: Whether the login payload is sent gzip compressed.
        user_agent: Value of the ``User-Agent`` header.
    """

    api_endpoint: str
    connect_timeout_s: float = 15.0
    read_timeout_s: float = 60.0
    compress_login: bool = False
    user_agent: str = DEFAULT_USER_AGENT

    @field_validator("api_endpoint")
    @classmethod
    def api_endpoint_must_be_http(cls, v: str) -> str:
        """Validate that the API endpoint is an HTTP or HTTPS URL."""
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError(
                f"API_ENDPOINT must be an http:// or https:// URL (got: '{v[:20]}...')"
            )
        return v

    @field_validator("connect_timeout_s", "read_timeout_s")
    @classmethod
    def timeouts_must_be_positive(cls, v: float) -> float:
        """Validate that timeouts are positive."""
        if v <= 0:
            raise ValueError("Timeouts must be > 0 seconds")
        return v

    @field_validator("user_agent")
    @classmethod
    def user_agent_must_not_be_empty(cls, v: str) -> str:
        """Validate that a user agent is set."""
        if not v.strip():
            raise ValueError("USER_AGENT must not be empty")
        return v

    def timeout(self) -> httpx.Timeout:
        """Build the httpx timeout for a single request."""
        return httpx.Timeout(self.read_timeout_s, connect=self.connect_timeout_s)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

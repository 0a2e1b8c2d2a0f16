"""
Shared test fixtures for the sync client tests.

Provides environment variable fixtures for ClientSettings tests, sample
measurements and an in-process collector stub served through
``httpx.MockTransport``. All client env vars are cleaned before each test to
ensure isolation.

CHANGELOG:
- 2026-10-16: Add attachment fixture (STORY-024)
- 2026-10-12: Initial creation (STORY-021)

TODO:
- None
"""

from __future__ import annotations

from pathlib import Path
from uuid import UUID

import httpx
import pytest
from measure_sync.src.models import (
    ApplicationMetaData,
    Attachment,
    AttachmentMetaData,
    DeviceMetaData,
    GeoLocation,
    Measurement,
    MeasurementMetaData,
)

# All ClientSettings environment variable names, used for cleanup.
_ALL_CLIENT_ENV_VARS = (
    "API_ENDPOINT",
    "CONNECT_TIMEOUT_S",
    "READ_TIMEOUT_S",
    "COMPRESS_LOGIN",
    "USER_AGENT",
)

DEVICE_ID = UUID("4c3e2b1a-0f6d-4e8b-9a7c-5d2f1e0b3a69")
SESSION_LOCATION = "https://collector.example.com/api/v4/upload/session-1"


@pytest.fixture(autouse=True)
def _clean_client_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Remove all client env vars and isolate from .env files before each test.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_CLIENT_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def env_vars_full(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set all environment variables for ClientSettings."""
    env = {
        "API_ENDPOINT": "https://collector.example.com/api/v4/",
        "CONNECT_TIMEOUT_S": "5",
        "READ_TIMEOUT_S": "30",
        "COMPRESS_LOGIN": "true",
        "USER_AGENT": "field-app/2.1",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


# ---------------------------------------------------------------------------
# Collector stub
# ---------------------------------------------------------------------------


class CollectorStub:
    """Answers login, registration and resumable upload requests.

    Tests tweak the public attributes before sending requests and inspect
    ``requests`` afterwards.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.login_status = 200
        self.login_headers: dict[str, str] = {"Authorization": "Bearer test-token"}
        self.register_status = 201
        self.register_body = ""
        self.session_status = 200
        self.session_location: str | None = SESSION_LOCATION
        self.upload_status = 201
        self.upload_body = ""
        self.error: Exception | None = None
        self.upload_error: Exception | None = None

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error

        path = request.url.path
        if path.endswith("/login"):
            return httpx.Response(self.login_status, headers=self.login_headers)
        if path.endswith("/user"):
            return httpx.Response(self.register_status, text=self.register_body)
        if request.method == "POST":
            headers = {}
            if self.session_location is not None:
                headers["Location"] = self.session_location
            return httpx.Response(self.session_status, headers=headers)

        if self.upload_error is not None:
            raise self.upload_error
        return httpx.Response(self.upload_status, text=self.upload_body)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    @property
    def pre_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "POST"]

    @property
    def chunk_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "PUT"]


@pytest.fixture()
def collector() -> CollectorStub:
    """A fresh collector stub answering with success by default."""
    return CollectorStub()


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------


def _make_measurement() -> Measurement:
    return Measurement(
        device_id=DEVICE_ID,
        measurement_id=78,
        device_meta_data=DeviceMetaData(operating_system_version="v", device_type="t"),
        application_meta_data=ApplicationMetaData(application_version="a", format_version=3),
        measurement_meta_data=MeasurementMetaData(
            length=10.0,
            location_count=5,
            start_location=GeoLocation(timestamp=1000000000, latitude=51.1, longitude=13.1),
            end_location=GeoLocation(timestamp=1000010000, latitude=51.2, longitude=13.2),
            modality="BICYCLE",
        ),
        attachment_meta_data=AttachmentMetaData(),
    )


@pytest.fixture()
def measurement() -> Measurement:
    """The measurement used throughout the tests."""
    return _make_measurement()


@pytest.fixture()
def attachment() -> Attachment:
    return Attachment(
        device_id=DEVICE_ID,
        measurement_id=78,
        attachment_id=3,
        device_meta_data=DeviceMetaData(operating_system_version="v", device_type="t"),
        application_meta_data=ApplicationMetaData(application_version="a", format_version=3),
        measurement_meta_data=MeasurementMetaData(
            length=10.0,
            location_count=5,
            modality="BICYCLE",
        ),
        attachment_meta_data=AttachmentMetaData(
            log_count=1, image_count=2, video_count=0, files_size=2048
        ),
    )


@pytest.fixture()
def transfer_file(tmp_path: Path) -> Path:
    """A small binary transfer file on disk."""
    path = tmp_path / "measurement.ccyf"
    path.write_bytes(b"\x00\x01transfer-file-content\xff" * 4)
    return path

"""
Unit tests for the logging helpers.

Tests verify:
- JsonFormatter emits one JSON object per record.
- Exceptions are included in the JSON output.
- The upload_state record attribute becomes its own JSON field.
- configure_logging() installs a single JSON handler on the root logger,
  writing to the given stream, with an optional library log level.
- masked_token() never reveals the secret.

CHANGELOG:
- 2026-10-18: upload_state field, stream and library level tests
- 2026-10-17: Add masked_token tests for passwords
- 2026-10-12: Initial creation (STORY-021)

TODO:
- None
"""

from __future__ import annotations

import io
import json
import logging
import sys
from collections.abc import Iterator

import pytest
from measure_sync.src.logs import (
    LIBRARY_LOGGER,
    JsonFormatter,
    configure_logging,
    masked_token,
)


@pytest.fixture()
def restore_root_logger() -> Iterator[None]:
    """Restore root handlers and level changed by configure_logging()."""
    root = logging.getLogger()
    library = logging.getLogger(LIBRARY_LOGGER)
    handlers, level, library_level = list(root.handlers), root.level, library.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    library.setLevel(library_level)


def _record(msg: str, *args: object, exc_info: object = None) -> logging.LogRecord:
    return logging.LogRecord(
        name="measure_sync.src.uploader",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=args,
        exc_info=exc_info,  # type: ignore[arg-type]
    )


class TestJsonFormatter:
    """JsonFormatter renders records as JSON lines."""

    def test_fields(self) -> None:
        entry = json.loads(JsonFormatter().format(_record("Upload of %s failed", "m.ccyf")))

        assert entry["level"] == "WARNING"
        assert entry["logger"] == "measure_sync.src.uploader"
        assert entry["msg"] == "Upload of m.ccyf failed"
        assert "ts" in entry
        assert "exception" not in entry

    def test_upload_state_field(self) -> None:
        record = _record("Upload of %s: %s -> %s", "m.ccyf", "idle", "size_checked")
        record.upload_state = "size_checked"

        entry = json.loads(JsonFormatter().format(record))

        assert entry["upload_state"] == "size_checked"

    def test_exception_included(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record("failed", exc_info=sys.exc_info())

        entry = json.loads(JsonFormatter().format(record))

        assert "RuntimeError: boom" in entry["exception"]


class TestConfigureLogging:
    """configure_logging() replaces the root handlers."""

    @pytest.mark.usefixtures("restore_root_logger")
    def test_single_json_handler(self) -> None:
        configure_logging(logging.DEBUG)

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
        assert root.level == logging.DEBUG

    @pytest.mark.usefixtures("restore_root_logger")
    def test_writes_json_lines_to_stream(self) -> None:
        stream = io.StringIO()
        configure_logging(logging.INFO, stream=stream)

        logging.getLogger("measure_sync.src.uploader").warning("Upload of %s failed", "m.ccyf")

        entry = json.loads(stream.getvalue().splitlines()[-1])
        assert entry["msg"] == "Upload of m.ccyf failed"

    @pytest.mark.usefixtures("restore_root_logger")
    def test_library_level(self) -> None:
        configure_logging(logging.WARNING, library_level=logging.DEBUG)

        assert logging.getLogger().level == logging.WARNING
        assert logging.getLogger("measure_sync.src.uploader").isEnabledFor(logging.DEBUG)
        assert not logging.getLogger("other.library").isEnabledFor(logging.DEBUG)


class TestMaskedToken:
    """masked_token() fingerprints secrets."""

    def test_secret_not_revealed(self) -> None:
        masked = masked_token("very-secret-token")

        assert "very-secret-token" not in masked
        assert masked.startswith("len=17 sha256=")

    def test_stable_fingerprint(self) -> None:
        assert masked_token("abc") == masked_token("abc")
        assert masked_token("abc") != masked_token("abd")

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty_values(self, value: str | None) -> None:
        assert masked_token(value) == "empty"

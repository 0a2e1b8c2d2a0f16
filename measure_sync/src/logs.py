"""
Logging helpers for applications embedding the sync client.

The library itself only creates module loggers via
``logging.getLogger(__name__)`` and never installs handlers. Host
applications that want structured output call :func:`configure_logging`
once at startup; every record then becomes one JSON object per line.

Upload state transitions carry the target state as the ``upload_state``
record attribute, which the JSON output includes as its own field.

CHANGELOG:
- 2026-10-18: Emit upload_state, accept a target stream and library level
- 2026-10-17: Mask passwords with the same fingerprint as tokens
- 2026-10-12: Initial creation (STORY-021)

TODO:
- None
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from datetime import UTC, datetime
from typing import TextIO

LIBRARY_LOGGER = "measure_sync"

_EXTRA_FIELDS = ("upload_state",)


class JsonFormatter(logging.Formatter):
    """Render a log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for field in _EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def configure_logging(
    level: int = logging.INFO,
    stream: TextIO | None = None,
    library_level: int | None = None,
) -> None:
    """Route all log records through one JSON handler.

    Args:
        level: Root logger level.
        stream: Destination of the JSON lines; stderr when omitted.
        library_level: Optional separate level for the ``measure_sync``
            loggers, e.g. ``logging.DEBUG`` to trace upload states without
            turning on debug output of other libraries.

    Usage::

        from measure_sync.src.logs import configure_logging

        configure_logging(logging.INFO, library_level=logging.DEBUG)
    """
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    if library_level is not None:
        logging.getLogger(LIBRARY_LOGGER).setLevel(library_level)


def masked_token(value: str | None) -> str:
    """Return a short non-reversible fingerprint of a secret for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"

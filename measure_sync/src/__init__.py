"""
Sync client package for uploading captured measurements to a collector.

Authenticates users against the collector API, registers new users and
uploads measurement transfer files and their attachments using the
resumable upload protocol, classifying every failure into a fixed
taxonomy callers can act on.

Usage::

    from measure_sync.src.authenticator import Authenticator
    from measure_sync.src.config import ClientSettings
    from measure_sync.src.logs import configure_logging
    from measure_sync.src.uploader import Uploader

    configure_logging()  # optional: JSON log lines on stderr
    settings = ClientSettings()
    token = Authenticator.from_settings(settings).authenticate(username, password)
    Uploader.from_settings(settings).upload_measurement(token, measurement, path)

The library never installs log handlers itself; ``configure_logging`` is
for host applications that want its structured output.

CHANGELOG:
- 2026-10-18: Add usage notes, including configure_logging
- 2026-10-12: Initial creation (STORY-021)

TODO:
- None
"""

__version__ = "1.0.0"

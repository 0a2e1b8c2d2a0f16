"""
Immutable metadata models describing a measurement or an attachment upload.

Every model is a frozen pydantic model whose field constraints are checked
once, at construction. ``Measurement`` and ``Attachment`` flatten their
metadata into the string map the collector server expects as upload
headers and as the JSON body of the upload pre-request.

The format version gets special treatment: a deprecated version and an
unknown version are reported through two distinct exception types that do
not derive from ``ValueError``, so pydantic lets them propagate unchanged
instead of folding them into a ``ValidationError``.

CHANGELOG:
- 2026-10-18: Reject a negative files size in from_counts with InvalidMetaData
- 2026-10-16: Add Attachment uploadable with attachmentId wire key (STORY-024)
- 2026-10-14: Add AttachmentMetaData.from_counts for partially known counters
- 2026-10-12: Initial creation (STORY-021)

TODO:
- None
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Protocol
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MAX_GENERIC_METADATA_FIELD_LENGTH = 30
"""Upper bound for free-text metadata fields, enforced by the server as well."""

CURRENT_TRANSFER_FILE_FORMAT_VERSION = 3
"""The only transfer file format version this client produces."""


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class DeprecatedFormatVersion(Exception):
    """Raised when a format version older than the supported one is used."""


class UnknownFormatVersion(Exception):
    """Raised when a format version newer than (or unrelated to) the supported one is used."""


class InvalidMetaData(ValueError):
    """Raised when loosely typed metadata input cannot form a valid model."""


# ---------------------------------------------------------------------------
# Wire protocol keys
# ---------------------------------------------------------------------------


class WireKey(str, Enum):
    """Field names of the upload metadata, fixed by the collector server."""

    DEVICE_ID = "deviceId"
    MEASUREMENT_ID = "measurementId"
    ATTACHMENT_ID = "attachmentId"
    OS_VERSION = "osVersion"
    DEVICE_TYPE = "deviceType"
    APPLICATION_VERSION = "appVersion"
    FORMAT_VERSION = "formatVersion"
    START_LOCATION_LAT = "startLocLat"
    START_LOCATION_LON = "startLocLon"
    START_LOCATION_TS = "startLocTS"
    END_LOCATION_LAT = "endLocLat"
    END_LOCATION_LON = "endLocLon"
    END_LOCATION_TS = "endLocTS"
    LENGTH = "length"
    LOCATION_COUNT = "locationCount"
    MODALITY = "modality"
    LOG_COUNT = "logCount"
    IMAGE_COUNT = "imageCount"
    VIDEO_COUNT = "videoCount"
    FILES_SIZE = "filesSize"


GenericText = Annotated[str, Field(min_length=1, max_length=MAX_GENERIC_METADATA_FIELD_LENGTH)]


# ---------------------------------------------------------------------------
# Metadata value objects
# ---------------------------------------------------------------------------


class GeoLocation(BaseModel):
    """A geolocation at the start or the end of a track.

    Attributes:
        timestamp: Unix timestamp in milliseconds.
        latitude: Decimal latitude from -90 (south) to 90 (north).
        longitude: Decimal longitude from -180 (west) to 180 (east).
    """

    model_config = ConfigDict(frozen=True)

    timestamp: int
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)


class DeviceMetaData(BaseModel):
    """The device which captured the data, e.g. ``Android 14`` on a ``Pixel 8``."""

    model_config = ConfigDict(frozen=True)

    operating_system_version: GenericText
    device_type: GenericText


class ApplicationMetaData(BaseModel):
    """The application which captured the data.

    Raises:
        DeprecatedFormatVersion: If *format_version* is below
            ``CURRENT_TRANSFER_FILE_FORMAT_VERSION``.
        UnknownFormatVersion: If *format_version* is above it.
    """

    model_config = ConfigDict(frozen=True)

    application_version: GenericText
    format_version: int

    @field_validator("format_version")
    @classmethod
    def format_version_must_be_current(cls, v: int) -> int:
        """Reject any format version other than the current one."""
        if v < CURRENT_TRANSFER_FILE_FORMAT_VERSION:
            raise DeprecatedFormatVersion(f"Deprecated formatVersion: {v}")
        if v != CURRENT_TRANSFER_FILE_FORMAT_VERSION:
            raise UnknownFormatVersion(f"Unknown formatVersion: {v}")
        return v


class MeasurementMetaData(BaseModel):
    """Track level metadata of a measurement.

    A measurement without any location is legitimate here; whether such a
    measurement is worth keeping is decided by the server, which answers
    with "skip upload" if it is not.

    Attributes:
        length: Track length in meters.
        location_count: Number of geolocations in the measurement.
        start_location: First captured location, if any.
        end_location: Last captured location, if any.
        modality: Mode of transportation, e.g. ``BICYCLE``.
    """

    model_config = ConfigDict(frozen=True)

    length: float = Field(ge=0.0)
    location_count: int = Field(ge=0)
    start_location: GeoLocation | None = None
    end_location: GeoLocation | None = None
    modality: GenericText


class AttachmentMetaData(BaseModel):
    """Counters for the files captured alongside a measurement.

    Attributes:
        log_count: Number of log files.
        image_count: Number of image files.
        video_count: Number of video files.
        files_size: Total size of all those files in bytes.
    """

    model_config = ConfigDict(frozen=True)

    log_count: int = Field(default=0, ge=0)
    image_count: int = Field(default=0, ge=0)
    video_count: int = Field(default=0, ge=0)
    files_size: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def files_size_must_match_counters(self) -> AttachmentMetaData:
        """Files were counted, so they must occupy some bytes."""
        if self.attachment_count > 0 and self.files_size <= 0:
            raise ValueError("Files size for attachment must be greater than 0.")
        return self

    @property
    def attachment_count(self) -> int:
        """Sum of all file counters."""
        return self.log_count + self.image_count + self.video_count

    @classmethod
    def from_counts(
        cls,
        log_count: int | str | None = None,
        image_count: int | str | None = None,
        video_count: int | str | None = None,
        files_size: int | str | None = None,
    ) -> AttachmentMetaData:
        """Build attachment metadata from optional, possibly textual, counters.

        Older clients do not send attachment counters at all, so four
        missing values yield all-zero metadata. Once one counter is
        present, all four are required.

        Raises:
            InvalidMetaData: If only some counters are present, a value is
                not an integer, a counter is negative, or files were counted
                without a positive *files_size*.
        """
        values = {
            "logCount": log_count,
            "imageCount": image_count,
            "videoCount": video_count,
            "filesSize": files_size,
        }
        if all(value is None for value in values.values()):
            return cls()

        parsed: dict[str, int] = {}
        for name, value in values.items():
            if value is None:
                raise InvalidMetaData(f"Data incomplete {name} was null!")
            try:
                parsed[name] = int(value)
            except (TypeError, ValueError) as exc:
                raise InvalidMetaData(f"Data was not parsable: {name}={value!r}") from exc

        if any(parsed[name] < 0 for name in ("logCount", "imageCount", "videoCount")):
            raise InvalidMetaData("Invalid file count for attachment.")
        if parsed["filesSize"] < 0:
            raise InvalidMetaData("Invalid files size for attachment.")
        count = parsed["logCount"] + parsed["imageCount"] + parsed["videoCount"]
        if count > 0 and parsed["filesSize"] <= 0:
            raise InvalidMetaData("Files size for attachment must be greater than 0.")

        return cls(
            log_count=parsed["logCount"],
            image_count=parsed["imageCount"],
            video_count=parsed["videoCount"],
            files_size=parsed["filesSize"],
        )


# ---------------------------------------------------------------------------
# Uploadables
# ---------------------------------------------------------------------------


class Uploadable(Protocol):
    """Anything the uploader can transmit to the collector."""

    device_id: UUID
    measurement_id: int

    def to_wire_map(self) -> dict[str, str]: ...


class _MeasurementData(BaseModel):
    """Identifier and metadata shared by measurements and their attachments."""

    model_config = ConfigDict(frozen=True)

    device_id: UUID
    measurement_id: int
    device_meta_data: DeviceMetaData
    application_meta_data: ApplicationMetaData
    measurement_meta_data: MeasurementMetaData
    attachment_meta_data: AttachmentMetaData = Field(default_factory=AttachmentMetaData)

    def to_wire_map(self) -> dict[str, str]:
        """Flatten identifier and metadata into the wire protocol's key/value map."""
        device = self.device_meta_data
        application = self.application_meta_data
        track = self.measurement_meta_data
        attachments = self.attachment_meta_data

        wire = {
            WireKey.DEVICE_ID: str(self.device_id),
            WireKey.MEASUREMENT_ID: str(self.measurement_id),
            WireKey.OS_VERSION: device.operating_system_version,
            WireKey.DEVICE_TYPE: device.device_type,
            WireKey.APPLICATION_VERSION: application.application_version,
            WireKey.FORMAT_VERSION: str(application.format_version),
            WireKey.LENGTH: str(track.length),
            WireKey.LOCATION_COUNT: str(track.location_count),
            WireKey.MODALITY: track.modality,
            WireKey.LOG_COUNT: str(attachments.log_count),
            WireKey.IMAGE_COUNT: str(attachments.image_count),
            WireKey.VIDEO_COUNT: str(attachments.video_count),
            WireKey.FILES_SIZE: str(attachments.files_size),
        }
        if track.start_location is not None:
            wire[WireKey.START_LOCATION_LAT] = str(track.start_location.latitude)
            wire[WireKey.START_LOCATION_LON] = str(track.start_location.longitude)
            wire[WireKey.START_LOCATION_TS] = str(track.start_location.timestamp)
        if track.end_location is not None:
            wire[WireKey.END_LOCATION_LAT] = str(track.end_location.latitude)
            wire[WireKey.END_LOCATION_LON] = str(track.end_location.longitude)
            wire[WireKey.END_LOCATION_TS] = str(track.end_location.timestamp)
        return {key.value: value for key, value in wire.items()}


class Measurement(_MeasurementData):
    """A captured measurement, uploaded to ``measurements``."""


class Attachment(_MeasurementData):
    """A file captured alongside a measurement, e.g. a log or an image.

    Attributes:
        attachment_id: Identifier of the attachment within its measurement.
    """

    attachment_id: int

    def to_wire_map(self) -> dict[str, str]:
        """Same as for measurements, plus the ``attachmentId`` key."""
        wire = super().to_wire_map()
        wire[WireKey.ATTACHMENT_ID.value] = str(self.attachment_id)
        return wire

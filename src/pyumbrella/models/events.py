"""Device event models.

The umbrella publishes four kinds of payload on fixed topics. Each is
parsed into one frozen model; :data:`DeviceEvent` is the union the relay
and its observers work with.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from pyumbrella.ingestion.normalize import safe_float, safe_str
from pyumbrella.models._base import UmbrellaBaseModel


class DeviceEventKind(StrEnum):
    POSITION = "position"
    STATUS = "status"
    EMERGENCY = "emergency"
    WEATHER = "weather"


def _check_latitude(value: float | None) -> float | None:
    if value is not None and not -90.0 <= value <= 90.0:
        raise ValueError(f"latitude out of range: {value}")
    return value


def _check_longitude(value: float | None) -> float | None:
    if value is not None and not -180.0 <= value <= 180.0:
        raise ValueError(f"longitude out of range: {value}")
    return value


class _Located(UmbrellaBaseModel):
    """Mixin for payloads carrying ``lat``/``lon`` in decimal degrees."""

    latitude: float | None = Field(default=None, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float | None = Field(
        default=None,
        validation_alias=AliasChoices("longitude", "lon", "lng"),
    )

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coerce_coordinates(cls, value: Any) -> float | None:
        parsed = safe_float(value)
        if value is not None and parsed is None:
            raise ValueError(f"coordinate is not a number: {value!r}")
        return parsed

    @field_validator("latitude")
    @classmethod
    def _latitude_range(cls, value: float | None) -> float | None:
        return _check_latitude(value)

    @field_validator("longitude")
    @classmethod
    def _longitude_range(cls, value: float | None) -> float | None:
        return _check_longitude(value)

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class PositionUpdate(_Located):
    """Live GPS fix from ``umbrella/gps``."""

    kind: Literal[DeviceEventKind.POSITION] = DeviceEventKind.POSITION
    latitude: float = Field(validation_alias=AliasChoices("latitude", "lat"))
    longitude: float = Field(validation_alias=AliasChoices("longitude", "lon", "lng"))

    def to_payload(self) -> str:
        """Wire form: ``"<lat>,<lon>"``."""
        return f"{self.latitude},{self.longitude}"


class StatusText(BaseModel):
    """Free-form status line from ``umbrella/status``.

    Opaque text: placeholder stripping does not apply.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal[DeviceEventKind.STATUS] = DeviceEventKind.STATUS
    text: str


class EmergencyEvent(_Located):
    """SOS button press from ``umbrella/sos``.

    The device always sends ``lat`` and ``lon``, but this model accepts
    them missing or as placeholders (no GPS fix). Such an event is still
    relayed, with "Location: unavailable" instead of a map link, so a
    lost fix never suppresses an SOS.
    """

    kind: Literal[DeviceEventKind.EMERGENCY] = DeviceEventKind.EMERGENCY
    identifier: str = Field(validation_alias=AliasChoices("email", "identifier"))

    @field_validator("identifier", mode="before")
    @classmethod
    def _coerce_identifier(cls, value: Any) -> str | None:
        return safe_str(value)


class WeatherEvent(_Located):
    """Weather reading from ``umbrella/weather``.

    ``identifier`` is optional on the wire; the relay drops readings
    without one. Readings that are missing simply never trigger an alert.
    """

    kind: Literal[DeviceEventKind.WEATHER] = DeviceEventKind.WEATHER
    identifier: str | None = Field(default=None, validation_alias=AliasChoices("email", "identifier"))
    rain_probability: float | None = Field(
        default=None,
        validation_alias=AliasChoices("rain_prob", "rainProb", "rain_probability"),
        ge=0.0,
        le=100.0,
    )
    uv_index: float | None = Field(default=None, validation_alias=AliasChoices("uv_index", "uvIndex"), ge=0.0)
    temperature: float | None = None

    @field_validator("identifier", mode="before")
    @classmethod
    def _coerce_identifier(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("rain_probability", "uv_index", "temperature", mode="before")
    @classmethod
    def _coerce_readings(cls, value: Any) -> float | None:
        parsed = safe_float(value)
        if value is not None and parsed is None:
            raise ValueError(f"reading is not a number: {value!r}")
        return parsed


class ContactAnnouncement(UmbrellaBaseModel):
    """Retained ``umbrella/emails`` payload telling the umbrella who to alert."""

    user_email: str = Field(validation_alias=AliasChoices("userEmail", "user_email"), serialization_alias="userEmail")
    emergency_email: str = Field(
        validation_alias=AliasChoices("emergencyEmail", "emergency_email"),
        serialization_alias="emergencyEmail",
    )

    def to_payload(self) -> str:
        return self.model_dump_json(by_alias=True)


DeviceEvent = PositionUpdate | StatusText | EmergencyEvent | WeatherEvent
"""Union of every event the relay can receive from the umbrella."""

"""Device payload parsing.

Every parser takes the raw MQTT payload bytes and either returns a typed
event or raises :class:`~pyumbrella.exceptions.ParseError`. Nothing else
escapes, so callers only need one ``except`` clause.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from pyumbrella._constants import TOPIC_GPS, TOPIC_SOS, TOPIC_STATUS, TOPIC_WEATHER
from pyumbrella.exceptions import ParseError
from pyumbrella.ingestion.normalize import decode_text, safe_float
from pyumbrella.models.events import DeviceEvent, EmergencyEvent, PositionUpdate, StatusText, WeatherEvent


def _decode_object(payload: bytes | str, topic: str) -> dict[str, Any]:
    raw = payload.encode("utf-8") if isinstance(payload, str) else payload
    try:
        parsed = json.loads(decode_text(payload))
    except ValueError as exc:
        raise ParseError(f"Invalid JSON on {topic}: {exc}", topic=topic, payload=raw) from exc
    if not isinstance(parsed, dict):
        raise ParseError(f"Expected a JSON object on {topic}, got {type(parsed).__name__}", topic=topic, payload=raw)
    return parsed


def parse_position(payload: bytes | str) -> PositionUpdate:
    """Parse ``"<lat>,<lon>"``."""
    raw = payload.encode("utf-8") if isinstance(payload, str) else payload
    parts = decode_text(payload).strip().split(",")
    if len(parts) != 2:
        raise ParseError(f"Expected '<lat>,<lon>', got {len(parts)} field(s)", topic=TOPIC_GPS, payload=raw)
    latitude, longitude = (safe_float(part) for part in parts)
    if latitude is None or longitude is None:
        raise ParseError("Position fields are not numbers", topic=TOPIC_GPS, payload=raw)
    try:
        return PositionUpdate(latitude=latitude, longitude=longitude)
    except ValidationError as exc:
        raise ParseError(f"Invalid position: {exc.error_count()} error(s)", topic=TOPIC_GPS, payload=raw) from exc


def parse_status(payload: bytes | str) -> StatusText:
    """Status text is opaque; it is only decoded."""
    return StatusText(text=decode_text(payload))


def parse_emergency(payload: bytes | str) -> EmergencyEvent:
    """Parse ``{email, lat, lon}``."""
    data = _decode_object(payload, TOPIC_SOS)
    try:
        return EmergencyEvent.model_validate(data)
    except ValidationError as exc:
        raise ParseError(f"Invalid SOS payload: {exc.error_count()} error(s)", topic=TOPIC_SOS) from exc


def parse_weather(payload: bytes | str) -> WeatherEvent:
    """Parse ``{email, lat, lon, rain_prob, uv_index}``."""
    data = _decode_object(payload, TOPIC_WEATHER)
    try:
        return WeatherEvent.model_validate(data)
    except ValidationError as exc:
        raise ParseError(f"Invalid weather payload: {exc.error_count()} error(s)", topic=TOPIC_WEATHER) from exc


_PARSERS = {
    TOPIC_GPS: parse_position,
    TOPIC_STATUS: parse_status,
    TOPIC_SOS: parse_emergency,
    TOPIC_WEATHER: parse_weather,
}


def parse_device_event(topic: str, payload: bytes | str) -> DeviceEvent:
    """Dispatch *payload* to the parser registered for *topic*."""
    parser = _PARSERS.get(topic)
    if parser is None:
        raise ParseError(f"No parser for topic {topic!r}", topic=topic)
    return parser(payload)

"""Data models for pyumbrella."""

from pyumbrella.models.account import Account, AccountProfile, PendingCode
from pyumbrella.models.events import (
    ContactAnnouncement,
    DeviceEvent,
    DeviceEventKind,
    EmergencyEvent,
    PositionUpdate,
    StatusText,
    WeatherEvent,
)

__all__ = [
    "Account",
    "AccountProfile",
    "ContactAnnouncement",
    "DeviceEvent",
    "DeviceEventKind",
    "EmergencyEvent",
    "PendingCode",
    "PositionUpdate",
    "StatusText",
    "WeatherEvent",
]

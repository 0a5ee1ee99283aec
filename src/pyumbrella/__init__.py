"""pyumbrella - MQTT alert relay and OTP registration for the smart umbrella."""

from importlib.metadata import PackageNotFoundError, version

from pyumbrella._mqtt import Bus, BusMessage, MqttBus
from pyumbrella.config import SmtpSettings, UmbrellaConfig
from pyumbrella.directory import Directory, SqliteDirectory
from pyumbrella.exceptions import (
    AccountNotFoundError,
    DeliveryError,
    DirectoryError,
    InvalidOrExpiredCodeError,
    ParseError,
    UmbrellaConfigError,
    UmbrellaError,
    UnauthorizedError,
)
from pyumbrella.models import (
    Account,
    AccountProfile,
    ContactAnnouncement,
    DeviceEvent,
    DeviceEventKind,
    EmergencyEvent,
    PendingCode,
    PositionUpdate,
    StatusText,
    WeatherEvent,
)
from pyumbrella.notifier import DeliveryResult, Notifier, SmtpNotifier
from pyumbrella.otp import OtpFlow
from pyumbrella.relay import AlertRelay, RelayStats
from pyumbrella.service import UmbrellaService

try:
    __version__ = version("pyumbrella")
except PackageNotFoundError:
    __version__ = "0+local"

__all__ = [
    "__version__",
    "Account",
    "AccountNotFoundError",
    "AccountProfile",
    "AlertRelay",
    "Bus",
    "BusMessage",
    "ContactAnnouncement",
    "DeliveryError",
    "DeliveryResult",
    "DeviceEvent",
    "DeviceEventKind",
    "Directory",
    "DirectoryError",
    "EmergencyEvent",
    "InvalidOrExpiredCodeError",
    "MqttBus",
    "Notifier",
    "OtpFlow",
    "ParseError",
    "PendingCode",
    "PositionUpdate",
    "RelayStats",
    "SmtpNotifier",
    "SmtpSettings",
    "SqliteDirectory",
    "StatusText",
    "UmbrellaConfig",
    "UmbrellaConfigError",
    "UmbrellaError",
    "UmbrellaService",
    "UnauthorizedError",
    "WeatherEvent",
]

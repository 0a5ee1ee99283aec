"""Service configuration for pyumbrella."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pyumbrella._constants import DEFAULT_BROKER_URL, MAP_LINK_BASE
from pyumbrella.exceptions import UmbrellaConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def parse_broker_url(raw_url: str) -> tuple[str, int, bool]:
    """Split a broker URL into ``(host, port, tls)``.

    Accepts ``mqtt://host:port``, ``mqtts://host``, or a bare ``host[:port]``.
    The port defaults to 1883, or 8883 for ``mqtts``/``ssl`` schemes.
    """
    value = raw_url.strip()
    if not value:
        raise UmbrellaConfigError("Broker URL is empty")

    scheme = "mqtt"
    if "://" in value:
        scheme, value = value.split("://", 1)
        scheme = scheme.lower()
    if "/" in value:
        value = value.split("/", 1)[0]

    tls = scheme in {"mqtts", "ssl", "tls"}
    default_port = 8883 if tls else 1883

    host, _, maybe_port = value.rpartition(":")
    if host and maybe_port.isdigit():
        return host, int(maybe_port), tls
    if not value:
        raise UmbrellaConfigError(f"Broker URL has no host: {raw_url!r}")
    return value, default_port, tls


@dataclasses.dataclass(frozen=True)
class SmtpSettings:
    """Outbound mail server settings.

    Parameters
    ----------
    host : str
        SMTP server host name.
    port : int
        SMTP server port.
    username : str or None
        Login user; also the default sender address.
    password : str or None
        Login password (for Gmail, an app password).
    sender : str or None
        ``From`` address. Falls back to *username*.
    starttls : bool
        Upgrade the connection with STARTTLS before login.
    timeout : float
        Socket timeout in seconds.
    """

    host: str = "smtp.gmail.com"
    port: int = 587
    username: str | None = None
    password: str | None = None
    sender: str | None = None
    starttls: bool = True
    timeout: float = 30.0

    @property
    def from_address(self) -> str:
        return self.sender or self.username or "umbrella@localhost"


@dataclasses.dataclass(frozen=True)
class UmbrellaConfig:
    """Relay and registration configuration.

    Parameters
    ----------
    broker_url : str
        MQTT broker URL (``mqtt://`` or ``mqtts://``).
    mqtt_client_id : str
        Client id presented to the broker. Empty lets paho pick one.
    mqtt_username, mqtt_password : str or None
        Optional broker credentials.
    mqtt_enabled : bool
        Connect to the broker on service start. Disable to run only the
        registration flow.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    mqtt_reconnect_min_delay, mqtt_reconnect_max_delay : int
        Bounds of paho's reconnect backoff in seconds.
    database_path : str
        SQLite file backing the account directory.
    rain_threshold : float
        Rain probability (percent) strictly above which a rain alert fires.
    uv_threshold : float
        UV index strictly above which a UV alert fires.
    otp_digits : int
        Width of issued one-time codes.
    otp_ttl_seconds : float
        Lifetime of an issued code.
    duplicate_window_seconds : float
        Identical redeliveries inside this window are dropped. ``0`` disables.
    map_link_base : str
        Prefix of the map link embedded in alert emails.
    emergency_fallback_to_self : bool
        Send SOS alerts to the account's own address when no alternate
        contact is set. Off by default.
    smtp : SmtpSettings
        Outbound mail settings.
    """

    broker_url: str = DEFAULT_BROKER_URL
    mqtt_client_id: str = ""
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_enabled: bool = True
    mqtt_keepalive: int = 60
    mqtt_reconnect_min_delay: int = 1
    mqtt_reconnect_max_delay: int = 120
    database_path: str = "umbrella.sqlite3"
    rain_threshold: float = 50.0
    uv_threshold: float = 7.0
    otp_digits: int = 6
    otp_ttl_seconds: float = 5 * 60
    duplicate_window_seconds: float = 5.0
    map_link_base: str = MAP_LINK_BASE
    emergency_fallback_to_self: bool = False
    smtp: SmtpSettings = dataclasses.field(default_factory=SmtpSettings)

    def __post_init__(self) -> None:
        if self.otp_digits < 1:
            raise UmbrellaConfigError(f"otp_digits must be positive, got {self.otp_digits}")
        if self.otp_ttl_seconds <= 0:
            raise UmbrellaConfigError(f"otp_ttl_seconds must be positive, got {self.otp_ttl_seconds}")
        if self.duplicate_window_seconds < 0:
            raise UmbrellaConfigError("duplicate_window_seconds must not be negative")

    @property
    def broker(self) -> tuple[str, int, bool]:
        """``(host, port, tls)`` parsed from :attr:`broker_url`."""
        return parse_broker_url(self.broker_url)

    @classmethod
    def from_env(cls, **overrides: Any) -> UmbrellaConfig:
        """Create configuration from environment variables.

        Reads ``UMBRELLA_*`` variables. ``EMAIL_USER`` / ``EMAIL_PASS`` and
        ``MQTT_BROKER_URL`` are honoured as fallbacks so an existing
        deployment ``.env`` keeps working. Explicit keyword arguments
        override environment values.
        """
        env = os.environ

        smtp_kwargs: dict[str, Any] = {}
        _ENV_SMTP_MAP = {
            "UMBRELLA_SMTP_HOST": "host",
            "UMBRELLA_SMTP_USER": "username",
            "UMBRELLA_SMTP_PASSWORD": "password",
            "UMBRELLA_SMTP_SENDER": "sender",
        }
        for env_key, field_name in _ENV_SMTP_MAP.items():
            val = env.get(env_key)
            if val is not None:
                smtp_kwargs[field_name] = val
        if "username" not in smtp_kwargs and env.get("EMAIL_USER") is not None:
            smtp_kwargs["username"] = env["EMAIL_USER"]
        if "password" not in smtp_kwargs and env.get("EMAIL_PASS") is not None:
            smtp_kwargs["password"] = env["EMAIL_PASS"]

        port_env = env.get("UMBRELLA_SMTP_PORT")
        if port_env is not None:
            try:
                smtp_kwargs["port"] = int(port_env)
            except ValueError as exc:
                raise UmbrellaConfigError(f"UMBRELLA_SMTP_PORT is not a valid port: {port_env!r}") from exc
        starttls_env = env.get("UMBRELLA_SMTP_STARTTLS")
        if starttls_env is not None:
            smtp_kwargs["starttls"] = _env_bool(starttls_env, True)

        smtp_overrides = overrides.pop("smtp", None)
        if isinstance(smtp_overrides, dict):
            smtp_kwargs.update(smtp_overrides)
        elif isinstance(smtp_overrides, SmtpSettings):
            smtp_kwargs = dataclasses.asdict(smtp_overrides)

        config_kwargs: dict[str, Any] = {"smtp": SmtpSettings(**smtp_kwargs)}

        _ENV_CONFIG_MAP = {
            "UMBRELLA_MQTT_CLIENT_ID": "mqtt_client_id",
            "UMBRELLA_MQTT_USERNAME": "mqtt_username",
            "UMBRELLA_MQTT_PASSWORD": "mqtt_password",
            "UMBRELLA_DATABASE_PATH": "database_path",
            "UMBRELLA_MAP_LINK_BASE": "map_link_base",
        }
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        broker_env = env.get("UMBRELLA_MQTT_BROKER_URL") or env.get("MQTT_BROKER_URL")
        if broker_env:
            config_kwargs["broker_url"] = broker_env

        # Numeric settings are converted here so a bad value fails at startup.
        _ENV_NUMERIC_MAP: dict[str, tuple[str, type]] = {
            "UMBRELLA_MQTT_KEEPALIVE": ("mqtt_keepalive", int),
            "UMBRELLA_RAIN_THRESHOLD": ("rain_threshold", float),
            "UMBRELLA_UV_THRESHOLD": ("uv_threshold", float),
            "UMBRELLA_OTP_DIGITS": ("otp_digits", int),
            "UMBRELLA_OTP_TTL_SECONDS": ("otp_ttl_seconds", float),
            "UMBRELLA_DUPLICATE_WINDOW_SECONDS": ("duplicate_window_seconds", float),
        }
        for env_key, (field_name, caster) in _ENV_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = caster(val)
            except ValueError as exc:
                raise UmbrellaConfigError(f"{env_key} is not a valid number: {val!r}") from exc

        if "mqtt_enabled" not in overrides:
            config_kwargs["mqtt_enabled"] = _env_bool(env.get("UMBRELLA_MQTT_ENABLED"), True)

        if "emergency_fallback_to_self" not in overrides:
            config_kwargs["emergency_fallback_to_self"] = _env_bool(
                env.get("UMBRELLA_EMERGENCY_FALLBACK_TO_SELF"),
                False,
            )

        config_kwargs.update(overrides)

        return cls(**config_kwargs)

from __future__ import annotations

import pytest

from pyumbrella.config import SmtpSettings, UmbrellaConfig, parse_broker_url
from pyumbrella.exceptions import UmbrellaConfigError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    import os

    for key in list(os.environ):
        if key.startswith("UMBRELLA_") or key in {"EMAIL_USER", "EMAIL_PASS", "MQTT_BROKER_URL"}:
            monkeypatch.delenv(key, raising=False)


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("mqtt://broker.hivemq.com:1883", ("broker.hivemq.com", 1883, False)),
        ("mqtts://broker.example.com", ("broker.example.com", 8883, True)),
        ("ssl://broker.example.com:9883/path", ("broker.example.com", 9883, True)),
        ("localhost", ("localhost", 1883, False)),
        ("localhost:1884", ("localhost", 1884, False)),
    ],
)
def test_parse_broker_url(url: str, expected: tuple[str, int, bool]) -> None:
    assert parse_broker_url(url) == expected


@pytest.mark.parametrize("url", ["", "   ", "mqtt://"])
def test_parse_broker_url_rejects_empty(url: str) -> None:
    with pytest.raises(UmbrellaConfigError):
        parse_broker_url(url)


def test_defaults() -> None:
    config = UmbrellaConfig.from_env()

    assert config.broker == ("broker.hivemq.com", 1883, False)
    assert config.rain_threshold == 50.0
    assert config.uv_threshold == 7.0
    assert config.otp_digits == 6
    assert config.otp_ttl_seconds == 300
    assert config.mqtt_enabled is True
    assert config.emergency_fallback_to_self is False
    assert config.smtp == SmtpSettings()


def test_from_env_reads_umbrella_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("UMBRELLA_MQTT_BROKER_URL", "mqtts://secure.example.com")
    monkeypatch.setenv("UMBRELLA_RAIN_THRESHOLD", "65")
    monkeypatch.setenv("UMBRELLA_OTP_TTL_SECONDS", "120")
    monkeypatch.setenv("UMBRELLA_MQTT_ENABLED", "off")
    monkeypatch.setenv("UMBRELLA_EMERGENCY_FALLBACK_TO_SELF", "yes")
    monkeypatch.setenv("UMBRELLA_SMTP_HOST", "smtp.example.com")
    monkeypatch.setenv("UMBRELLA_SMTP_PORT", "2525")
    monkeypatch.setenv("UMBRELLA_SMTP_STARTTLS", "false")

    config = UmbrellaConfig.from_env()

    assert config.broker == ("secure.example.com", 8883, True)
    assert config.rain_threshold == 65.0
    assert config.otp_ttl_seconds == 120.0
    assert config.mqtt_enabled is False
    assert config.emergency_fallback_to_self is True
    assert config.smtp.host == "smtp.example.com"
    assert config.smtp.port == 2525
    assert config.smtp.starttls is False


def test_from_env_falls_back_to_legacy_names(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EMAIL_USER", "relay@example.com")
    monkeypatch.setenv("EMAIL_PASS", "app-password")
    monkeypatch.setenv("MQTT_BROKER_URL", "mqtt://legacy.example.com:1884")

    config = UmbrellaConfig.from_env()

    assert config.smtp.username == "relay@example.com"
    assert config.smtp.password == "app-password"
    assert config.smtp.from_address == "relay@example.com"
    assert config.broker == ("legacy.example.com", 1884, False)


def test_explicit_overrides_win(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("UMBRELLA_UV_THRESHOLD", "3")
    monkeypatch.setenv("UMBRELLA_SMTP_USER", "env@example.com")

    config = UmbrellaConfig.from_env(uv_threshold=9.0, mqtt_enabled=False, smtp={"sender": "alerts@example.com"})

    assert config.uv_threshold == 9.0
    assert config.mqtt_enabled is False
    assert config.smtp.username == "env@example.com"
    assert config.smtp.from_address == "alerts@example.com"


@pytest.mark.parametrize(
    ("key", "value"),
    [
        ("UMBRELLA_RAIN_THRESHOLD", "lots"),
        ("UMBRELLA_OTP_DIGITS", "6.5"),
        ("UMBRELLA_SMTP_PORT", "smtp"),
        ("UMBRELLA_OTP_DIGITS", "0"),
        ("UMBRELLA_DUPLICATE_WINDOW_SECONDS", "-1"),
    ],
)
def test_invalid_values_fail_at_startup(monkeypatch: pytest.MonkeyPatch, key: str, value: str) -> None:
    monkeypatch.setenv(key, value)

    with pytest.raises(UmbrellaConfigError):
        UmbrellaConfig.from_env()

from __future__ import annotations

import smtplib
from typing import Any

import pytest

from pyumbrella.config import SmtpSettings
from pyumbrella.exceptions import DeliveryError
from pyumbrella.notifier import SmtpNotifier


class _FakeSmtp:
    sessions: list[_FakeSmtp] = []
    fail_with: Exception | None = None

    def __init__(self, host: str, port: int, timeout: float) -> None:
        self.address = (host, port)
        self.timeout = timeout
        self.started_tls = False
        self.login_args: tuple[str, str] | None = None
        self.messages: list[Any] = []
        _FakeSmtp.sessions.append(self)

    def __enter__(self) -> _FakeSmtp:
        return self

    def __exit__(self, *exc: Any) -> None:
        return None

    def ehlo(self) -> None:
        pass

    def starttls(self, context: Any = None) -> None:
        self.started_tls = True

    def login(self, username: str, password: str) -> None:
        self.login_args = (username, password)

    def send_message(self, message: Any) -> None:
        if _FakeSmtp.fail_with is not None:
            raise _FakeSmtp.fail_with
        self.messages.append(message)


@pytest.fixture
def fake_smtp(monkeypatch: pytest.MonkeyPatch) -> type[_FakeSmtp]:
    _FakeSmtp.sessions = []
    _FakeSmtp.fail_with = None
    monkeypatch.setattr("pyumbrella.notifier.smtplib.SMTP", _FakeSmtp)
    return _FakeSmtp


_SETTINGS = SmtpSettings(host="smtp.example.com", port=587, username="relay@example.com", password="pw")


@pytest.mark.asyncio
async def test_send_builds_plain_text_message(fake_smtp: type[_FakeSmtp]) -> None:
    result = await SmtpNotifier(_SETTINGS).send("x@y.com", "🚨 SOS Alert!", "SOS triggered by a@b.com.")

    assert result.success is True
    assert result.error is None
    session = fake_smtp.sessions[-1]
    assert session.address == ("smtp.example.com", 587)
    assert session.started_tls is True
    assert session.login_args == ("relay@example.com", "pw")
    message = session.messages[0]
    assert message["To"] == "x@y.com"
    assert message["From"] == "relay@example.com"
    assert message["Subject"] == "🚨 SOS Alert!"
    assert "SOS triggered by a@b.com." in message.get_content()


@pytest.mark.asyncio
async def test_send_without_starttls_or_login(fake_smtp: type[_FakeSmtp]) -> None:
    settings = SmtpSettings(host="localhost", port=25, starttls=False, sender="alerts@example.com")

    result = await SmtpNotifier(settings).send("x@y.com", "s", "b")

    assert result.success is True
    session = fake_smtp.sessions[-1]
    assert session.started_tls is False
    assert session.login_args is None
    assert session.messages[0]["From"] == "alerts@example.com"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        smtplib.SMTPRecipientsRefused({"x@y.com": (550, b"no such user")}),
        smtplib.SMTPAuthenticationError(535, b"bad credentials"),
        ConnectionRefusedError("refused"),
    ],
)
async def test_send_failure_is_reported_not_raised(fake_smtp: type[_FakeSmtp], error: Exception) -> None:
    fake_smtp.fail_with = error

    result = await SmtpNotifier(_SETTINGS).send("x@y.com", "s", "b")

    assert result.success is False
    assert isinstance(result.error, DeliveryError)
    assert result.error.recipient == "x@y.com"


@pytest.mark.asyncio
async def test_empty_recipient_is_a_failed_delivery(fake_smtp: type[_FakeSmtp]) -> None:
    result = await SmtpNotifier(_SETTINGS).send("", "s", "b")

    assert result.success is False
    assert fake_smtp.sessions == []

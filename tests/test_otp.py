from __future__ import annotations

import asyncio
import re
from datetime import UTC, datetime, timedelta

import pytest

from pyumbrella.config import UmbrellaConfig
from pyumbrella.directory import SqliteDirectory
from pyumbrella.exceptions import AccountNotFoundError, InvalidOrExpiredCodeError, UnauthorizedError
from pyumbrella.models.account import AccountProfile
from pyumbrella.notifier import DeliveryResult
from pyumbrella.otp import OtpFlow

_T0 = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class _RecordingNotifier:
    def __init__(self, *, fail: bool = False) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self._fail = fail

    async def send(self, recipient: str, subject: str, body: str) -> DeliveryResult:
        self.sent.append((recipient, subject, body))
        if self._fail:
            return DeliveryResult.failed(recipient, "smtp down")
        return DeliveryResult.ok(recipient)

    def last_code(self) -> str:
        match = re.search(r"\b(\d{6})\b", self.sent[-1][2])
        assert match is not None
        return match.group(1)


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _flow(notifier: _RecordingNotifier | None = None, clock: _Clock | None = None, **config_kwargs):
    directory = SqliteDirectory(":memory:")
    notifier = notifier or _RecordingNotifier()
    flow = OtpFlow(directory, notifier, UmbrellaConfig(**config_kwargs), clock=clock or _Clock(_T0))
    return flow, directory, notifier


@pytest.mark.asyncio
async def test_issue_creates_unregistered_account_and_emails_code() -> None:
    flow, directory, notifier = _flow()

    expires_at = await flow.issue("user@example.com")

    assert expires_at == _T0 + timedelta(minutes=5)
    account = await directory.find_by_identifier("user@example.com")
    assert account is not None
    assert account.credential_hash is None
    assert account.pending_code is not None
    code = notifier.last_code()
    assert account.pending_code.code == code
    assert 100000 <= int(code) <= 999999
    recipient, subject, body = notifier.sent[0]
    assert recipient == "user@example.com"
    assert subject == "Your Smart Umbrella OTP"
    assert "valid for 5 minutes" in body


@pytest.mark.asyncio
async def test_issue_succeeds_when_email_send_fails() -> None:
    flow, directory, _notifier = _flow(notifier=_RecordingNotifier(fail=True))

    await flow.issue("user@example.com")

    account = await directory.find_by_identifier("user@example.com")
    assert account is not None and account.pending_code is not None


@pytest.mark.asyncio
async def test_second_issue_invalidates_first_code() -> None:
    flow, _directory, notifier = _flow()

    await flow.issue("user@example.com")
    first = notifier.last_code()
    await flow.issue("user@example.com")
    second = notifier.last_code()
    if first == second:  # pragma: no cover - 1 in 900000
        pytest.skip("random codes collided")

    with pytest.raises(InvalidOrExpiredCodeError):
        await flow.register("user@example.com", "pw", None, first)

    profile = await flow.register("user@example.com", "pw", None, second)
    assert profile.identifier == "user@example.com"


@pytest.mark.asyncio
async def test_register_without_pending_code_is_not_found() -> None:
    flow, _directory, _notifier = _flow()

    with pytest.raises(AccountNotFoundError):
        await flow.register("nobody@example.com", "pw", None, "123456")


@pytest.mark.asyncio
async def test_code_cannot_be_reused() -> None:
    flow, directory, notifier = _flow()
    await flow.issue("user@example.com")
    code = notifier.last_code()

    await flow.register("user@example.com", "pw", "alt@example.com", code)

    account = await directory.find_by_identifier("user@example.com")
    assert account is not None
    assert account.pending_code is None
    assert account.alternate_contact == "alt@example.com"
    assert account.credential_hash is not None
    assert "pw" not in account.credential_hash

    with pytest.raises((AccountNotFoundError, InvalidOrExpiredCodeError)):
        await flow.register("user@example.com", "other", None, code)


@pytest.mark.asyncio
async def test_expiry_boundary_is_strict() -> None:
    clock = _Clock(_T0)
    flow, _directory, notifier = _flow(clock=clock)
    expires_at = await flow.issue("late@example.com")
    late_code = notifier.last_code()
    await flow.issue("early@example.com")
    early_code = notifier.last_code()

    clock.now = expires_at + timedelta(seconds=1)
    with pytest.raises(InvalidOrExpiredCodeError):
        await flow.register("late@example.com", "pw", None, late_code)

    clock.now = expires_at - timedelta(seconds=1)
    profile = await flow.register("early@example.com", "pw", None, early_code)
    assert profile.identifier == "early@example.com"


@pytest.mark.asyncio
async def test_code_ttl_and_width_come_from_config() -> None:
    flow, _directory, notifier = _flow(otp_digits=4, otp_ttl_seconds=60)

    expires_at = await flow.issue("user@example.com")

    assert expires_at == _T0 + timedelta(seconds=60)
    match = re.search(r"OTP: (\d+)", notifier.sent[-1][2])
    assert match is not None and len(match.group(1)) == 4
    assert "valid for 1 minute" in notifier.sent[-1][2]


@pytest.mark.asyncio
async def test_authenticate_distinguishes_wrong_credential() -> None:
    flow, _directory, notifier = _flow()
    await flow.issue("user@example.com")
    await flow.register("user@example.com", "s3cret", "alt@example.com", notifier.last_code())

    with pytest.raises(UnauthorizedError):
        await flow.authenticate("user@example.com", "wrong")
    with pytest.raises(UnauthorizedError):
        await flow.authenticate("nobody@example.com", "s3cret")

    profile = await flow.authenticate("user@example.com", "s3cret")
    assert profile.model_dump() == {"identifier": "user@example.com", "alternate_contact": "alt@example.com"}


@pytest.mark.asyncio
async def test_unregistered_account_cannot_authenticate() -> None:
    flow, _directory, _notifier = _flow()
    await flow.issue("user@example.com")

    with pytest.raises(UnauthorizedError):
        await flow.authenticate("user@example.com", "")


@pytest.mark.asyncio
async def test_update_alternate_contact() -> None:
    flow, _directory, notifier = _flow()
    await flow.issue("user@example.com")
    await flow.register("user@example.com", "pw", None, notifier.last_code())

    profile = await flow.update_alternate_contact("user@example.com", " alt@example.com ")
    assert profile.alternate_contact == "alt@example.com"

    with pytest.raises(AccountNotFoundError):
        await flow.update_alternate_contact("nobody@example.com", "alt@example.com")
    with pytest.raises(ValueError):
        await flow.update_alternate_contact("user@example.com", "not-an-email")


@pytest.mark.asyncio
async def test_concurrent_registrations_consume_code_once() -> None:
    flow, directory, notifier = _flow()
    await flow.issue("user@example.com")
    code = notifier.last_code()

    results = await asyncio.gather(
        flow.register("user@example.com", "pw-A", "a@example.com", code),
        flow.register("user@example.com", "pw-B", "b@example.com", code),
        return_exceptions=True,
    )

    profiles = [result for result in results if isinstance(result, AccountProfile)]
    errors = [result for result in results if isinstance(result, Exception)]
    assert len(profiles) == 1
    assert len(errors) == 1
    assert isinstance(errors[0], (AccountNotFoundError, InvalidOrExpiredCodeError))

    account = await directory.find_by_identifier("user@example.com")
    assert account is not None
    assert account.alternate_contact == profiles[0].alternate_contact
    winner = "pw-A" if profiles[0].alternate_contact == "a@example.com" else "pw-B"
    assert (await flow.authenticate("user@example.com", winner)).identifier == "user@example.com"


@pytest.mark.asyncio
async def test_numeric_code_is_compared_as_text() -> None:
    flow, _directory, notifier = _flow()
    await flow.issue("user@example.com")
    code = int(notifier.last_code())

    with pytest.raises(InvalidOrExpiredCodeError):
        await flow.register("user@example.com", "pw", None, code + 1 if code < 999999 else code - 1)

    profile = await flow.register("user@example.com", "pw", None, code)
    assert profile.identifier == "user@example.com"

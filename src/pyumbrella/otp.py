"""One-time-code registration flow.

State machine per account::

    (absent) --issue--> Unregistered --register--> Registered
                 Unregistered --issue--> Unregistered (code replaced)

Each failure mode raises its own exception so the calling API layer can
tell "no pending code" from "wrong or expired code" from "wrong credential".
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from pyumbrella._constants import SUBJECT_OTP
from pyumbrella._crypto.hashing import codes_match, generate_numeric_code, hash_credential, verify_credential
from pyumbrella._redact import redact_for_log
from pyumbrella.config import UmbrellaConfig
from pyumbrella.directory import Directory
from pyumbrella.exceptions import AccountNotFoundError, InvalidOrExpiredCodeError, UnauthorizedError
from pyumbrella.models.account import Account, AccountProfile, PendingCode
from pyumbrella.notifier import Notifier

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _require_identifier(identifier: str) -> str:
    value = (identifier or "").strip()
    if not value:
        raise ValueError("identifier must be non-empty")
    return value


def normalize_contact(contact: str | None) -> str | None:
    """Strip *contact*; blank means "no alternate contact".

    Raises :class:`ValueError` for values that cannot be an email address.
    """
    if contact is None:
        return None
    value = contact.strip()
    if not value:
        return None
    if "@" not in value:
        raise ValueError(f"not a valid email address: {value!r}")
    return value


class OtpFlow:
    """Issues and validates one-time codes gating account creation."""

    def __init__(
        self,
        directory: Directory,
        notifier: Notifier,
        config: UmbrellaConfig,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._directory = directory
        self._notifier = notifier
        self._config = config
        self._clock = clock

    @property
    def code_ttl(self) -> timedelta:
        return timedelta(seconds=self._config.otp_ttl_seconds)

    def _code_message(self, code: str) -> str:
        minutes = self._config.otp_ttl_seconds / 60
        validity = f"{minutes:g} minutes" if minutes != 1 else "1 minute"
        return f"Your OTP: {code} (valid for {validity})"

    async def issue(self, identifier: str) -> datetime:
        """Issue a fresh code for *identifier* and email it.

        Creates the account when missing; otherwise replaces any pending
        code, which invalidates the previous one immediately. A failed
        send is logged, not raised.

        Returns
        -------
        datetime
            Expiry of the issued code (UTC).
        """
        identifier = _require_identifier(identifier)
        code = generate_numeric_code(self._config.otp_digits)
        pending = PendingCode(code=code, expires_at=self._clock() + self.code_ttl)

        existing = await self._directory.find_by_identifier(identifier)
        if existing is None:
            account = Account(identifier=identifier, pending_code=pending)
        else:
            account = existing.model_copy(update={"pending_code": pending})
        await self._directory.upsert(account)
        _logger.debug("Account stored %s", redact_for_log(account))
        _logger.info("OTP issued identifier=%s expires_at=%s", identifier, pending.expires_at.isoformat())

        result = await self._notifier.send(identifier, SUBJECT_OTP, self._code_message(code))
        if not result.success:
            _logger.warning("OTP email to %s failed: %s", identifier, result.error)
        return pending.expires_at

    async def register(
        self,
        identifier: str,
        credential: str,
        alternate_contact: str | None,
        code: str | int,
    ) -> AccountProfile:
        """Complete registration with a pending code.

        Raises
        ------
        AccountNotFoundError
            No account, or no code pending for it.
        InvalidOrExpiredCodeError
            *code* does not match, or the pending code has expired.
        ValueError
            Empty credential or malformed alternate contact.
        """
        identifier = _require_identifier(identifier)
        if not credential:
            raise ValueError("credential must be non-empty")
        contact = normalize_contact(alternate_contact)

        account = await self._directory.find_by_identifier(identifier)
        if account is None or account.pending_code is None:
            raise AccountNotFoundError("No OTP found", identifier=identifier)

        pending = account.pending_code
        supplied = "" if code is None else str(code)
        if not codes_match(supplied, pending.code) or pending.is_expired(self._clock()):
            raise InvalidOrExpiredCodeError("Invalid or expired OTP")

        # scrypt is CPU-bound; keep it off the loop.
        loop = asyncio.get_running_loop()
        credential_hash = await loop.run_in_executor(None, hash_credential, credential)

        # Concurrent registrations with the same code: only the first one lands.
        registered = await self._directory.complete_registration(
            identifier,
            pending.code,
            credential_hash=credential_hash,
            alternate_contact=contact,
        )
        if registered is None:
            raise InvalidOrExpiredCodeError("Invalid or expired OTP")
        _logger.info("Account registered identifier=%s", identifier)
        return registered.profile()

    async def authenticate(self, identifier: str, credential: str) -> AccountProfile:
        """Verify *credential* for *identifier*.

        Raises :class:`UnauthorizedError` for unknown or unregistered
        accounts and for wrong credentials alike.
        """
        account = await self._directory.find_by_identifier((identifier or "").strip())
        if account is None or account.credential_hash is None:
            raise UnauthorizedError("Invalid credentials")

        loop = asyncio.get_running_loop()
        verified = await loop.run_in_executor(None, verify_credential, credential or "", account.credential_hash)
        if not verified:
            raise UnauthorizedError("Invalid credentials")
        return account.profile()

    async def update_alternate_contact(self, identifier: str, contact: str | None) -> AccountProfile:
        """Set (or clear, with ``None``) the alternate contact.

        Raises :class:`AccountNotFoundError` when the account does not exist.
        """
        identifier = _require_identifier(identifier)
        updated = await self._directory.update_alternate_contact(identifier, normalize_contact(contact))
        _logger.info("Alternate contact updated identifier=%s", identifier)
        return updated.profile()

"""Outbound email notifications.

A notifier sends one message and reports what happened. It never raises
and never retries: callers log a failed :class:`DeliveryResult` and move on.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.message import EmailMessage
from typing import Protocol

from pyumbrella.config import SmtpSettings
from pyumbrella.exceptions import DeliveryError

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of a single send attempt."""

    recipient: str
    success: bool
    error: DeliveryError | None = None
    completed_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def ok(cls, recipient: str) -> DeliveryResult:
        return cls(recipient=recipient, success=True)

    @classmethod
    def failed(cls, recipient: str, message: str) -> DeliveryResult:
        return cls(recipient=recipient, success=False, error=DeliveryError(message, recipient=recipient))


class Notifier(Protocol):
    """Structural notifier interface."""

    async def send(self, recipient: str, subject: str, body: str) -> DeliveryResult: ...


class SmtpNotifier:
    """Plain-text email over SMTP (STARTTLS + login by default)."""

    def __init__(self, settings: SmtpSettings) -> None:
        self._settings = settings

    def _build_message(self, recipient: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._settings.from_address
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(body)
        return message

    def _send_sync(self, message: EmailMessage) -> None:
        settings = self._settings
        with smtplib.SMTP(settings.host, settings.port, timeout=settings.timeout) as server:
            server.ehlo()
            if settings.starttls:
                server.starttls(context=ssl.create_default_context())
                server.ehlo()
            if settings.username and settings.password:
                server.login(settings.username, settings.password)
            server.send_message(message)

    async def send(self, recipient: str, subject: str, body: str) -> DeliveryResult:
        if not recipient:
            return DeliveryResult.failed(recipient, "No recipient address")

        message = self._build_message(recipient, subject, body)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._send_sync, message)
        except smtplib.SMTPAuthenticationError as exc:
            _logger.error("SMTP authentication failed host=%s: %s", self._settings.host, exc)
            return DeliveryResult.failed(recipient, f"Authentication failed: {exc}")
        except (smtplib.SMTPException, OSError) as exc:
            _logger.warning("SMTP send failed recipient=%s: %s", recipient, exc)
            return DeliveryResult.failed(recipient, str(exc))

        _logger.debug("SMTP message sent recipient=%s subject=%s", recipient, subject)
        return DeliveryResult.ok(recipient)

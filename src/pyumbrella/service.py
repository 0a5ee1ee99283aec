"""High-level async service wiring the relay and registration flow together."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any

from pyumbrella._mqtt import MqttBus
from pyumbrella.config import UmbrellaConfig
from pyumbrella.directory import Directory, SqliteDirectory
from pyumbrella.exceptions import UmbrellaError
from pyumbrella.models.account import AccountProfile
from pyumbrella.notifier import Notifier, SmtpNotifier
from pyumbrella.otp import OtpFlow
from pyumbrella.relay import AlertRelay

_logger = logging.getLogger(__name__)


class UmbrellaService:
    """Owns the bus connection, directory and notifier for one process.

    Usage::

        async with UmbrellaService(UmbrellaConfig.from_env()) as service:
            await service.issue_code("user@example.com")

    A directory or notifier passed in is used as-is and not closed on exit;
    otherwise :class:`SqliteDirectory` and :class:`SmtpNotifier` are built
    from *config*.
    """

    def __init__(
        self,
        config: UmbrellaConfig,
        *,
        directory: Directory | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self._config = config
        self._external_directory = directory is not None
        self._directory = directory
        self._notifier = notifier
        self._bus: MqttBus | None = None
        self._relay: AlertRelay | None = None
        self._otp: OtpFlow | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> UmbrellaService:
        self._loop = asyncio.get_running_loop()
        if self._directory is None:
            self._directory = SqliteDirectory(self._config.database_path)
        if self._notifier is None:
            self._notifier = SmtpNotifier(self._config.smtp)

        self._relay = AlertRelay(self._directory, self._notifier, self._config)
        self._otp = OtpFlow(self._directory, self._notifier, self._config)

        if self._config.mqtt_enabled:
            bus = MqttBus(self._config, loop=self._loop, on_message=self._relay.submit, logger=_logger)
            await self._loop.run_in_executor(None, bus.start)
            self._bus = bus
            self._relay.attach_bus(bus)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        bus = self._bus
        self._bus = None
        if bus is not None and self._loop is not None:
            await self._loop.run_in_executor(None, bus.stop)
        if self._relay is not None:
            self._relay.attach_bus(None)
            await self._relay.drain()
            _logger.info("Relay stopped stats=%s", self._relay.stats.as_dict())
        if not self._external_directory and isinstance(self._directory, SqliteDirectory):
            self._directory.close()
            self._directory = None
        self._loop = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @property
    def relay(self) -> AlertRelay:
        if self._relay is None:
            raise UmbrellaError("Service not started. Use 'async with UmbrellaService(...) as service:'")
        return self._relay

    @property
    def otp(self) -> OtpFlow:
        if self._otp is None:
            raise UmbrellaError("Service not started. Use 'async with UmbrellaService(...) as service:'")
        return self._otp

    @property
    def bus(self) -> MqttBus | None:
        return self._bus

    # ------------------------------------------------------------------
    # API surface
    # ------------------------------------------------------------------

    async def issue_code(self, identifier: str) -> datetime:
        return await self.otp.issue(identifier)

    async def register(
        self,
        identifier: str,
        credential: str,
        alternate_contact: str | None,
        code: str | int,
    ) -> AccountProfile:
        return await self.otp.register(identifier, credential, alternate_contact, code)

    async def authenticate(self, identifier: str, credential: str) -> AccountProfile:
        return await self.otp.authenticate(identifier, credential)

    async def update_alternate_contact(self, identifier: str, contact: str | None) -> AccountProfile:
        """Update the directory, then announce the pair to the umbrella.

        The announcement is best effort; a failed publish is logged only.
        """
        profile = await self.otp.update_alternate_contact(identifier, contact)
        if profile.alternate_contact is not None:
            self.relay.announce_contacts(profile.identifier, profile.alternate_contact)
        return profile

    def forward_position(self, identifier: str, latitude: float, longitude: float) -> bool:
        return self.relay.forward_position(identifier, latitude, longitude)

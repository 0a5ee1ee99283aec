"""Alert relay: bus messages in, resolved and thresholded emails out.

Every inbound message runs in its own task, so a slow SMTP round trip for
one account never holds up GPS forwarding for another. Each handler is
isolated: whatever it raises is counted and logged, and the subscription
loop keeps going.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable

from pyumbrella._constants import (
    SUBJECT_SOS,
    SUBJECT_WEATHER,
    TOPIC_EMAILS,
    TOPIC_GPS,
    TOPIC_SOS,
    TOPIC_STATUS,
    TOPIC_WEATHER,
    map_link,
)
from pyumbrella._mqtt import Bus, BusMessage
from pyumbrella._redact import preview_payload
from pyumbrella.config import UmbrellaConfig
from pyumbrella.directory import Directory
from pyumbrella.exceptions import DirectoryError, ParseError
from pyumbrella.ingestion.parse import parse_emergency, parse_position, parse_status, parse_weather
from pyumbrella.models.account import Account
from pyumbrella.models.events import ContactAnnouncement, DeviceEvent, EmergencyEvent, PositionUpdate, WeatherEvent
from pyumbrella.notifier import Notifier
from pyumbrella.state.dedup import DuplicateFilter

_logger = logging.getLogger(__name__)

Observer = Callable[[DeviceEvent], None]

# Redelivery suppression applies only to topics that send email.
_DEDUP_TOPICS = frozenset({TOPIC_SOS, TOPIC_WEATHER})


@dataclasses.dataclass
class RelayStats:
    """Running counters, for logs and health checks."""

    received: int = 0
    duplicates: int = 0
    parse_failures: int = 0
    unknown_accounts: int = 0
    not_alert_worthy: int = 0
    no_recipient: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    handler_errors: int = 0

    def as_dict(self) -> dict[str, int]:
        return dataclasses.asdict(self)


# ------------------------------------------------------------------
# Message composition
# ------------------------------------------------------------------


def _location_line(event: EmergencyEvent | WeatherEvent, base: str) -> str:
    if event.latitude is None or event.longitude is None:
        return "Location: unavailable"
    return f"Location: {map_link(event.latitude, event.longitude, base)}"


def weather_alert_lines(event: WeatherEvent, *, rain_threshold: float, uv_threshold: float) -> list[str]:
    """Alert lines for *event*, rain first then UV. Empty means not alert-worthy."""
    lines: list[str] = []
    if event.rain_probability is not None and event.rain_probability > rain_threshold:
        lines.append(f"\N{CLOUD WITH RAIN} High rain probability: {event.rain_probability:g}%")
    if event.uv_index is not None and event.uv_index > uv_threshold:
        lines.append(f"\N{BLACK SUN WITH RAYS}\N{VARIATION SELECTOR-16} High UV index: {event.uv_index:g}")
    return lines


def compose_emergency_body(event: EmergencyEvent, *, map_link_base: str) -> str:
    return f"SOS triggered by {event.identifier}.\n{_location_line(event, map_link_base)}"


def compose_weather_body(lines: list[str], event: WeatherEvent, *, map_link_base: str) -> str:
    return "\n".join([*lines, _location_line(event, map_link_base)])


class AlertRelay:
    """Consumes device topics and turns qualifying events into notifications.

    Usage::

        relay = AlertRelay(directory, notifier, config)
        bus = MqttBus(config, loop=loop, on_message=relay.submit)
        relay.attach_bus(bus)
        bus.start()
    """

    def __init__(
        self,
        directory: Directory,
        notifier: Notifier,
        config: UmbrellaConfig,
        *,
        bus: Bus | None = None,
        duplicate_filter: DuplicateFilter | None = None,
    ) -> None:
        self._directory = directory
        self._notifier = notifier
        self._config = config
        self._bus = bus
        self._dedup = duplicate_filter or DuplicateFilter(config.duplicate_window_seconds)
        self._observers: list[Observer] = []
        self._tasks: set[asyncio.Task[None]] = set()
        self._handlers: dict[str, Callable[[bytes], Awaitable[None]]] = {
            TOPIC_GPS: self._handle_gps,
            TOPIC_STATUS: self._handle_status,
            TOPIC_SOS: self._handle_emergency,
            TOPIC_WEATHER: self._handle_weather,
        }
        self.stats = RelayStats()

    def attach_bus(self, bus: Bus | None) -> None:
        """Set the bus used for outbound publishes."""
        self._bus = bus

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def add_observer(self, observer: Observer) -> None:
        """Receive every successfully parsed device event."""
        self._observers.append(observer)

    def remove_observer(self, observer: Observer) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _notify_observers(self, event: DeviceEvent) -> None:
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception:
                _logger.warning("Observer %r failed for %s event", observer, event.kind, exc_info=True)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    @property
    def pending(self) -> int:
        """Number of handler tasks still running."""
        return len(self._tasks)

    def submit(self, message: BusMessage) -> asyncio.Task[None] | None:
        """Schedule *message* for handling on the running loop.

        Must be called from the loop thread (the MQTT runtime marshals its
        callbacks with ``call_soon_threadsafe``). Returns ``None`` when the
        message is dropped as a redelivery. Only SOS and weather messages
        are checked for redelivery.
        """
        self.stats.received += 1
        if message.topic in _DEDUP_TOPICS and self._dedup.is_duplicate(message.topic, message.payload):
            self.stats.duplicates += 1
            _logger.debug("Duplicate message dropped topic=%s", message.topic)
            return None

        task = asyncio.get_running_loop().create_task(self.handle(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def handle(self, message: BusMessage) -> None:
        """Run the handler for *message*'s topic. Never raises."""
        handler = self._handlers.get(message.topic)
        if handler is None:
            _logger.debug("No handler for topic=%s", message.topic)
            return
        _logger.debug("MQTT [%s]: %s", message.topic, preview_payload(message.payload))
        try:
            await handler(message.payload)
        except Exception:
            self.stats.handler_errors += 1
            _logger.exception("Handler for topic=%s failed", message.topic)

    async def drain(self) -> None:
        """Wait until every scheduled handler task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _resolve(self, identifier: str) -> Account | None:
        try:
            account = await self._directory.find_by_identifier(identifier)
        except DirectoryError as exc:
            _logger.error("Directory lookup for %s failed, dropping event: %s", identifier, exc)
            return None
        if account is None:
            self.stats.unknown_accounts += 1
            _logger.info("No user found: %s", identifier)
        return account

    async def _dispatch(self, recipient: str, subject: str, body: str) -> bool:
        result = await self._notifier.send(recipient, subject, body)
        if result.success:
            self.stats.notifications_sent += 1
            _logger.info("Notification '%s' sent to %s", subject, recipient)
        else:
            self.stats.notifications_failed += 1
            _logger.warning("Notification '%s' to %s failed: %s", subject, recipient, result.error)
        return result.success

    async def _handle_gps(self, payload: bytes) -> None:
        try:
            event = parse_position(payload)
        except ParseError as exc:
            self.stats.parse_failures += 1
            _logger.debug("Ignoring GPS payload: %s", exc)
            return
        self._notify_observers(event)

    async def _handle_status(self, payload: bytes) -> None:
        self._notify_observers(parse_status(payload))

    async def _handle_emergency(self, payload: bytes) -> None:
        try:
            event = parse_emergency(payload)
        except ParseError as exc:
            self.stats.parse_failures += 1
            _logger.warning("Invalid SOS payload %r: %s", preview_payload(payload), exc)
            return
        self._notify_observers(event)

        account = await self._resolve(event.identifier)
        if account is None:
            return

        recipient = account.alternate_contact
        if recipient is None and self._config.emergency_fallback_to_self:
            recipient = account.identifier
        if recipient is None:
            self.stats.no_recipient += 1
            _logger.info("SOS from %s not forwarded: no alternate contact", event.identifier)
            return

        body = compose_emergency_body(event, map_link_base=self._config.map_link_base)
        await self._dispatch(recipient, SUBJECT_SOS, body)

    async def _handle_weather(self, payload: bytes) -> None:
        try:
            event = parse_weather(payload)
        except ParseError as exc:
            self.stats.parse_failures += 1
            _logger.warning("Invalid weather payload %r: %s", preview_payload(payload), exc)
            return
        self._notify_observers(event)

        if event.identifier is None:
            _logger.debug("Weather reading without identifier; not alerting")
            return

        lines = weather_alert_lines(
            event,
            rain_threshold=self._config.rain_threshold,
            uv_threshold=self._config.uv_threshold,
        )
        if not lines:
            self.stats.not_alert_worthy += 1
            return

        account = await self._resolve(event.identifier)
        if account is None:
            return

        recipient = account.alternate_contact or account.identifier
        body = compose_weather_body(lines, event, map_link_base=self._config.map_link_base)
        await self._dispatch(recipient, SUBJECT_WEATHER, body)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def _publish(self, topic: str, payload: str, *, qos: int = 0, retain: bool = False) -> bool:
        bus = self._bus
        if bus is None:
            _logger.warning("No bus attached; dropping publish to %s", topic)
            return False
        try:
            return bus.publish(topic, payload, qos=qos, retain=retain)
        except Exception:
            _logger.warning("Publish to %s failed", topic, exc_info=True)
            return False

    def forward_position(self, identifier: str, latitude: float, longitude: float) -> bool:
        """Publish a position on ``umbrella/gps`` for observers.

        Raises :class:`ValueError` for out-of-range coordinates.
        """
        position = PositionUpdate(latitude=latitude, longitude=longitude)
        published = self._publish(TOPIC_GPS, position.to_payload())
        _logger.debug("Position forwarded for %s published=%s", identifier, published)
        return published

    def announce_contacts(self, user_email: str, emergency_email: str) -> bool:
        """Publish the retained ``umbrella/emails`` record for the umbrella."""
        announcement = ContactAnnouncement(user_email=user_email, emergency_email=emergency_email)
        return self._publish(TOPIC_EMAILS, announcement.to_payload(), qos=1, retain=True)

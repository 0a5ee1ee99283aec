"""Internal MQTT runtime: threaded paho-mqtt client bridged onto asyncio."""

from __future__ import annotations

import asyncio
import logging
import ssl
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Protocol

import paho.mqtt.client as mqtt

from pyumbrella._constants import DEVICE_TOPICS
from pyumbrella.config import UmbrellaConfig


@dataclass(frozen=True)
class BusMessage:
    """One inbound message as delivered by the broker."""

    topic: str
    payload: bytes
    retain: bool = False


class Bus(Protocol):
    """Publish side of the bus, as seen by the relay and registration flow."""

    def publish(self, topic: str, payload: str | bytes, *, qos: int = 0, retain: bool = False) -> bool: ...


class MqttBus:
    """Threaded paho-mqtt runtime that emits :class:`BusMessage` onto an asyncio loop.

    Subscriptions are (re)issued in ``on_connect`` so they survive broker
    reconnects. paho handles reconnect-on-drop with a bounded backoff; the
    first connection attempt uses the same machinery, so a broker that is
    down at startup is retried rather than failing the service.
    """

    def __init__(
        self,
        config: UmbrellaConfig,
        *,
        loop: asyncio.AbstractEventLoop,
        on_message: Callable[[BusMessage], None],
        topics: Iterable[str] = DEVICE_TOPICS,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._loop = loop
        self._on_message = on_message
        self._topics = tuple(topics)
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self._connected = False

    @property
    def is_running(self) -> bool:
        """Whether the network loop is active."""
        return self._running

    @property
    def is_connected(self) -> bool:
        """Whether the broker session is currently up."""
        return self._connected

    def _handle_connect(
        self,
        client: mqtt.Client,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if reason_code.is_failure:
            self._logger.warning("MQTT connect failed: %s", reason_code)
            return
        self._connected = True
        self._logger.info("MQTT connected, subscribing topics=%s", ",".join(self._topics))
        for topic in self._topics:
            client.subscribe(topic, qos=0)

    def _handle_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _disconnect_flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        self._connected = False
        if self._running:
            self._logger.warning("MQTT disconnected (%s); paho will reconnect", reason_code)

    def _handle_message(self, _client: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
        message = BusMessage(topic=msg.topic, payload=bytes(msg.payload), retain=bool(msg.retain))
        try:
            self._loop.call_soon_threadsafe(self._on_message, message)
        except RuntimeError:
            # Event loop already closed during shutdown.
            self._logger.debug("Dropping MQTT message topic=%s: loop closed", msg.topic)

    def start(self) -> None:
        """Connect and start the background network loop."""
        self.stop()
        host, port, tls = self._config.broker
        self._logger.debug("MQTT runtime start requested host=%s port=%s tls=%s", host, port, tls)

        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self._config.mqtt_client_id,
        )
        client.enable_logger(self._logger)
        if self._config.mqtt_username:
            client.username_pw_set(self._config.mqtt_username, self._config.mqtt_password)
        if tls:
            client.tls_set_context(ssl.create_default_context())
        client.reconnect_delay_set(
            min_delay=self._config.mqtt_reconnect_min_delay,
            max_delay=self._config.mqtt_reconnect_max_delay,
        )

        client.on_connect = self._handle_connect
        client.on_disconnect = self._handle_disconnect
        client.on_message = self._handle_message

        client.connect_async(host, port, keepalive=self._config.mqtt_keepalive)
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT network loop started")

    def stop(self) -> None:
        """Stop and disconnect current MQTT client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        self._connected = False

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")

    def publish(self, topic: str, payload: str | bytes, *, qos: int = 0, retain: bool = False) -> bool:
        """Queue a publish. Returns ``False`` (and logs) when it cannot be queued.

        paho serialises writes on the socket, so this is safe to call from
        any task or thread.
        """
        client = self._client
        if client is None or not self._running:
            self._logger.warning("MQTT publish dropped topic=%s: runtime not running", topic)
            return False
        info = client.publish(topic, payload, qos=qos, retain=retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self._logger.warning("MQTT publish failed topic=%s rc=%s", topic, mqtt.error_string(info.rc))
            return False
        return True

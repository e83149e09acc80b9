"""
MQTT Bus Adapter

Wraps paho-mqtt for the asyncio side of the bridge:
- publish(topic, payload) returns False instead of sending while disconnected
- subscriptions are re-issued on every (re)connect
- inbound messages land on an asyncio.Queue, consumed via messages()

paho runs its network loop in its own thread; the only thing that thread
does on our side is hand messages to the event loop.
"""

import asyncio
import ssl
from dataclasses import dataclass
from typing import AsyncIterator
from urllib.parse import urlparse

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion

from erie_bridge.common.config import MqttSettings
from erie_bridge.common.exceptions import ConfigError
from erie_bridge.common.logging_setup import get_service_logger

logger = get_service_logger("bus.mqtt")

DEFAULT_PORT = 1883
DEFAULT_TLS_PORT = 8883
KEEPALIVE_S = 60


@dataclass(frozen=True)
class BusMessage:
    """Inbound message"""
    topic: str
    payload: str


def parse_server_url(server: str) -> tuple[str, int, bool]:
    """
    Split a broker URL into (host, port, use_tls).

    Accepts mqtt://, mqtts://, tcp://, ssl:// or a bare host[:port].
    """
    if "://" not in server:
        server = f"mqtt://{server}"

    parsed = urlparse(server)
    scheme = parsed.scheme.lower()
    if scheme not in ("mqtt", "tcp", "mqtts", "ssl", "tls"):
        raise ConfigError(f"Unsupported MQTT server scheme: {scheme}")
    if not parsed.hostname:
        raise ConfigError(f"MQTT server has no host: {server}")

    use_tls = scheme in ("mqtts", "ssl", "tls")
    try:
        port = parsed.port or (DEFAULT_TLS_PORT if use_tls else DEFAULT_PORT)
    except ValueError as e:
        raise ConfigError(f"Invalid MQTT server port: {server}") from e

    return parsed.hostname, port, use_tls


class MqttBus:
    """paho-mqtt client exposed as publish / subscribe / async message stream"""

    def __init__(self, settings: MqttSettings):
        self.settings = settings
        self.host, self.port, self.use_tls = parse_server_url(settings.server)

        self._client = mqtt.Client(
            callback_api_version=CallbackAPIVersion.VERSION2,
            client_id=settings.client_id,
        )
        self._client.username_pw_set(settings.username, settings.password)
        if self.use_tls:
            self._client.tls_set(cert_reqs=ssl.CERT_REQUIRED)
        self._client.reconnect_delay_set(min_delay=1, max_delay=60)

        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message

        self._topics: set[str] = set()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[BusMessage | None] = asyncio.Queue()
        self._closed = False

    @property
    def connected(self) -> bool:
        return self._client.is_connected()

    async def connect(self) -> None:
        """Start connecting in the background; paho keeps reconnecting on its own."""
        self._loop = asyncio.get_running_loop()
        self._client.connect_async(self.host, self.port, keepalive=KEEPALIVE_S)
        self._client.loop_start()
        logger.info(f"Connecting to mqtt broker: {self.host}:{self.port}")

    def subscribe(self, topic: str) -> None:
        self._topics.add(topic)
        if self.connected:
            self._client.subscribe(topic)

    def publish(self, topic: str, payload: str, retain: bool = False) -> bool:
        """Publish if connected. Returns whether the message was handed to paho."""
        if not self.connected:
            logger.warning("mqtt server disconnected.", extra={"topic": topic})
            return False

        info = self._client.publish(topic, payload, qos=0, retain=retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error(
                f"Publish to {topic} failed: {mqtt.error_string(info.rc)}",
                extra={"topic": topic},
            )
            return False
        return True

    async def messages(self) -> AsyncIterator[BusMessage]:
        """Yield inbound messages until close()"""
        while True:
            message = await self._queue.get()
            if message is None:
                return
            yield message

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._client.disconnect()
        self._client.loop_stop()
        self._queue.put_nowait(None)
        logger.info("Disconnected from mqtt broker")

    # paho callbacks (network thread)

    def _on_connect(self, client, userdata, flags, reason_code, properties) -> None:
        if reason_code.is_failure:
            logger.error(f"MQTT connect refused: {reason_code}")
            return

        logger.info(f"connected with mqtt broker: {self.host}:{self.port}")
        for topic in sorted(self._topics):
            client.subscribe(topic)

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties) -> None:
        if not self._closed:
            logger.warning(f"MQTT connection lost ({reason_code}), reconnecting")

    def _on_message(self, client, userdata, message) -> None:
        if self._loop is None:
            return
        bus_message = BusMessage(
            topic=message.topic,
            payload=message.payload.decode("utf-8", errors="replace"),
        )
        self._loop.call_soon_threadsafe(self._queue.put_nowait, bus_message)

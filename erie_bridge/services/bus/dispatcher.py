"""
Command Dispatcher

Single consumer of the bus message stream. Each message is classified into
a BusCommand and routed:
- RESET -> reset callback (awaited, so resets run one at a time)
- STATUS_ONLINE -> online callback (schedules the discovery handshake)
- STATUS_OFFLINE / UNKNOWN -> ignored
"""

from enum import Enum
from typing import Any, AsyncIterator, Callable, Awaitable

from erie_bridge.common.logging_setup import get_service_logger

logger = get_service_logger("bus.dispatcher")


class BusCommand(str, Enum):
    """Meaning of an inbound message"""
    RESET = "reset"
    STATUS_ONLINE = "status_online"
    STATUS_OFFLINE = "status_offline"
    UNKNOWN = "unknown"


def classify(topic: str, payload: str, reset_topic: str, status_topic: str) -> BusCommand:
    """Map (topic, payload) to a BusCommand. Reset payload content is irrelevant."""
    if topic == reset_topic:
        return BusCommand.RESET
    if topic == status_topic:
        if payload.strip().lower() == "online":
            return BusCommand.STATUS_ONLINE
        return BusCommand.STATUS_OFFLINE
    return BusCommand.UNKNOWN


class CommandDispatcher:
    """Routes bus messages to bridge actions"""

    def __init__(
        self,
        reset_topic: str,
        status_topic: str,
        on_reset: Callable[[], Awaitable[Any]],
        on_online: Callable[[], None],
    ):
        self.reset_topic = reset_topic
        self.status_topic = status_topic
        self.on_reset = on_reset
        self.on_online = on_online

        self._counts: dict[BusCommand, int] = {command: 0 for command in BusCommand}

    @property
    def topics(self) -> list[str]:
        return [self.reset_topic, self.status_topic]

    async def dispatch(self, topic: str, payload: str) -> BusCommand:
        """Handle one message. Callback errors are logged, not raised."""
        command = classify(topic, payload, self.reset_topic, self.status_topic)
        self._counts[command] += 1

        try:
            if command is BusCommand.RESET:
                logger.info(f"Reset command received on {topic}")
                await self.on_reset()
            elif command is BusCommand.STATUS_ONLINE:
                logger.info("Home Assistant online, scheduling discovery handshake")
                self.on_online()
            elif command is BusCommand.STATUS_OFFLINE:
                logger.debug(f"Home Assistant status: {payload!r}")
            else:
                logger.debug(f"Ignoring message on unrecognized topic {topic}")
        except Exception as e:
            logger.error(f"Handling {command.value} failed: {e}", exc_info=True)

        return command

    async def run(self, messages: AsyncIterator[Any]) -> None:
        """Consume messages until the stream ends"""
        async for message in messages:
            await self.dispatch(message.topic, message.payload)
        logger.info("Message stream closed, dispatcher stopped")

    def get_stats(self) -> dict[str, int]:
        return {command.value: count for command, count in self._counts.items()}

"""
Erie Bridge Supervisor

Orchestrates the bridge:
- Periodic fetch -> publish cycles (never overlapping)
- Reset commands from the bus, recorded in the history ledger
- Home Assistant discovery handshake after start and on HA "online"
- Login failure backoff
- Optional health HTTP endpoint
"""

import asyncio
import json
import signal
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx
from aiohttp import web

from erie_bridge.common.config import BridgeConfig
from erie_bridge.common.exceptions import AuthError, BridgeError, PersistenceError
from erie_bridge.common.logging_setup import get_service_logger, log_reading
from erie_bridge.common.scheduler import DelayedCall, ScheduledLoop
from erie_bridge.common.state import TankState
from erie_bridge.services.bus import CommandDispatcher, MqttBus, build_discovery_payload
from erie_bridge.services.erie import DeviceResolver, Reading, SessionManager, TelemetryFetcher
from erie_bridge.services.ledger import ResetEntry, ResetLedger

logger = get_service_logger("supervisor")

# Login failure backoff (seconds), indexed by consecutive failures
AUTH_BACKOFF_S = [60, 120, 300, 600, 900]
MAX_CONSECUTIVE_AUTH_FAILURES = 5


class Supervisor:
    """
    Owns every bridge component and the baseline lock.

    The baseline lock serializes the periodic cycle against resets so a
    reset can never be applied against a stale total, and the cached device
    id is never resolved twice concurrently.
    """

    def __init__(
        self,
        config: BridgeConfig,
        history_path: str | Path,
        bus: Any = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        mqtt = config.mqtt

        self.tank = TankState(
            tank_size=config.tank.tank_size,
            last_reset=config.tank.last_reset,
        )

        self.session = SessionManager(
            email=config.erie_connect.email,
            password=config.erie_connect.password,
            base_url=config.erie_connect.base_url,
            timeout=config.tank.request_timeout_s,
            transport=transport,
        )
        self.resolver = DeviceResolver(self.session)
        self.fetcher = TelemetryFetcher(self.session, self.resolver, self.tank)
        self.ledger = ResetLedger(history_path, self.tank)

        self.bus = bus if bus is not None else MqttBus(mqtt)
        self.dispatcher = CommandDispatcher(
            reset_topic=mqtt.reset_topic,
            status_topic=mqtt.status_topic,
            on_reset=self.handle_reset,
            on_online=self.schedule_handshake,
        )

        self.fetch_loop = ScheduledLoop(
            config.tank.interval_s,
            self.run_cycle,
            name="fetch",
        )
        self.handshake = DelayedCall(
            config.tank.handshake_delay_s,
            self.publish_discovery,
            name="handshake",
        )

        self._baseline_lock = asyncio.Lock()

        # Login backoff
        self._auth_failures = 0
        self._auth_retry_at = 0.0

        self._last_payload: dict[str, Any] | None = None
        self._last_error: str | None = None
        self._dispatcher_task: asyncio.Task | None = None

        # Health server
        self._health_app: web.Application | None = None
        self._health_runner: web.AppRunner | None = None

        self._running = False
        self._shutdown_event = asyncio.Event()
        self._start_time = datetime.now(timezone.utc)

    # Lifecycle

    def load_history(self) -> None:
        """
        Load the reset ledger and settle the baseline.

        Raises:
            PersistenceError: history file exists but cannot be used
        """
        self.ledger.load()
        self.ledger.reconcile()

    async def start(self) -> None:
        """Start the bridge and run until a shutdown signal"""
        logger.info("Starting Erie septic tank bridge")
        self._running = True
        self._start_time = datetime.now(timezone.utc)

        self.load_history()
        self._setup_signal_handlers()

        try:
            await self.bus.connect()
            for topic in self.dispatcher.topics:
                self.bus.subscribe(topic)
            self._dispatcher_task = asyncio.create_task(
                self.dispatcher.run(self.bus.messages())
            )

            await self.fetch_loop.start()

            # Initial handshake, for when HA was already up before the bridge
            self.schedule_handshake()

            if self.config.tank.health_port:
                await self._start_health_server(self.config.tank.health_port)

            logger.info(
                "Bridge started",
                extra={
                    "state_topic": self.config.mqtt.state_topic,
                    "reset_topic": self.config.mqtt.reset_topic,
                    "status_topic": self.config.mqtt.status_topic,
                    "interval_s": self.config.tank.interval_s,
                },
            )

            await self._shutdown_event.wait()
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop all components"""
        self._running = False

        await self.fetch_loop.wait_stopped()
        self.handshake.cancel()

        await self.bus.close()
        if self._dispatcher_task:
            self._dispatcher_task.cancel()
            try:
                await self._dispatcher_task
            except asyncio.CancelledError:
                pass
            self._dispatcher_task = None

        await self.session.close()
        await self._stop_health_server()
        logger.info("Bridge stopped")

    def request_shutdown(self) -> None:
        logger.info("Received shutdown signal")
        self._running = False
        self._shutdown_event.set()

    def _setup_signal_handlers(self) -> None:
        """Setup graceful shutdown signal handlers"""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except (NotImplementedError, RuntimeError, ValueError):
                # Windows, or not running in the main thread
                pass

    # Fetch / publish

    def _in_auth_backoff(self) -> bool:
        return self._auth_failures > 0 and time.monotonic() < self._auth_retry_at

    def _record_auth_failure(self, error: AuthError) -> None:
        self._auth_failures += 1
        delay = AUTH_BACKOFF_S[min(self._auth_failures, len(AUTH_BACKOFF_S)) - 1]
        self._auth_retry_at = time.monotonic() + delay
        self._last_error = str(error)

        logger.error(
            f"Login failed ({self._auth_failures}), next attempt in {delay}s: {error}",
            extra={"consecutive_failures": self._auth_failures, "backoff_s": delay},
        )
        if self._auth_failures >= MAX_CONSECUTIVE_AUTH_FAILURES:
            logger.critical(
                f"Login failed {self._auth_failures} consecutive times, check erieConnect credentials"
            )

    async def _fetch_reading(self) -> Reading | None:
        """Fetch a reading; errors are logged and yield None"""
        start = time.monotonic()
        try:
            reading = await self.fetcher.fetch_reading()
        except AuthError as e:
            self._record_auth_failure(e)
            return None
        except BridgeError as e:
            self._last_error = str(e)
            logger.error(f"Fetch failed: {e}")
            return None

        self._auth_failures = 0
        self._auth_retry_at = 0.0
        self._last_error = None
        log_reading(
            logger,
            reading.total,
            reading.last_reset,
            reading.space_left,
            execution_time_ms=(time.monotonic() - start) * 1000,
        )
        return reading

    async def run_cycle(self) -> None:
        """One periodic fetch -> publish cycle"""
        if self._in_auth_backoff():
            logger.debug("Skipping cycle: login backoff in effect")
            return

        async with self._baseline_lock:
            reading = await self._fetch_reading()
            if reading is not None:
                self.publish_state(reading)

    async def handle_reset(self) -> ResetEntry | None:
        """
        Reset the baseline to the current total.

        The fetch and the ledger append happen under the baseline lock so a
        periodic cycle can't interleave.

        Returns:
            The new ledger entry, or None when the reset was not applied
        """
        if self._in_auth_backoff():
            logger.warning("Reset not applied: login backoff in effect")
            return None

        async with self._baseline_lock:
            reading = await self._fetch_reading()
            if reading is None:
                logger.error("Reset not applied: no current reading")
                return None

            try:
                entry = await self.ledger.record_reset(reading.total)
            except PersistenceError as e:
                self._last_error = str(e)
                logger.error(f"Reset not applied: {e}", extra={"path": e.path})
                return None

            self.publish_state(reading.rebased(self.tank.last_reset))
            return entry

    def state_payload(self, reading: Reading) -> dict[str, Any]:
        payload = reading.to_payload()
        payload.update(self.ledger.state_attributes())
        return payload

    def publish_state(self, reading: Reading) -> bool:
        payload = self.state_payload(reading)
        message = json.dumps(payload)
        topic = self.config.mqtt.state_topic

        logger.info(f"Publish: {topic} with payload: {message}")
        published = self.bus.publish(topic, message)
        if published:
            self._last_payload = payload
        return published

    def schedule_handshake(self) -> None:
        self.handshake.schedule()

    async def publish_discovery(self) -> bool:
        """Announce the sensor to Home Assistant"""
        topic = self.config.mqtt.discovery_topic
        payload = build_discovery_payload(
            self.config.mqtt.sensor_name,
            self.config.mqtt.state_topic,
        )

        logger.info(f"hello to homeassistant discovery: {topic}")
        return self.bus.publish(topic, json.dumps(payload))

    # Status / health

    def get_status(self) -> dict[str, Any]:
        uptime = (datetime.now(timezone.utc) - self._start_time).total_seconds()
        latest = self.ledger.latest
        return {
            "status": "healthy" if self._running and self._auth_failures == 0 else "degraded",
            "running": self._running,
            "uptime_seconds": int(uptime),
            "authenticated": self.session.is_authenticated,
            "login_count": self.session.login_count,
            "request_count": self.session.request_count,
            "device_id": self.resolver.device_id,
            "consecutive_auth_failures": self._auth_failures,
            "last_error": self._last_error,
            "bus_connected": bool(self.bus.connected),
            "tank": self.tank.to_dict(),
            "ledger_entries": len(self.ledger),
            "last_reset_date": latest.label if latest else None,
            "scheduler": self.fetch_loop.get_stats(),
            "commands": self.dispatcher.get_stats(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def _start_health_server(self, port: int) -> None:
        """Start the health check HTTP server"""
        self._health_app = web.Application()
        self._health_app.router.add_get("/health", self._health_handler)
        self._health_app.router.add_get("/state", self._state_handler)

        self._health_runner = web.AppRunner(self._health_app)
        await self._health_runner.setup()

        site = web.TCPSite(self._health_runner, "127.0.0.1", port)
        await site.start()

        logger.info(f"Health server started on port {port}")

    async def _stop_health_server(self) -> None:
        """Stop the health check HTTP server"""
        if self._health_runner:
            await self._health_runner.cleanup()
            self._health_runner = None

    async def _health_handler(self, request: web.Request) -> web.Response:
        """Handle health check requests"""
        return web.json_response(self.get_status())

    async def _state_handler(self, request: web.Request) -> web.Response:
        """Return the last published state payload"""
        if self._last_payload is None:
            return web.json_response({"error": "no state published yet"}, status=404)
        return web.json_response(self._last_payload)

"""
Shared test fixtures: a fake Erie Connect API, an in-memory bus, and config.
"""

import asyncio
import json
from typing import Any

import httpx
import pytest

from erie_bridge.common.config import load_bridge_config

BASE_URL = "https://erie.test/api/erieapp/v1"


class FakeErieAPI:
    """
    In-memory Erie Connect, served through httpx.MockTransport.

    Each sign-in issues a fresh token; expire() invalidates the current one
    so the next authenticated call gets a 401.
    """

    def __init__(self, devices: Any = None, info: Any = None):
        self.devices = devices if devices is not None else [{"profile": {"id": 4242}}]
        self.info = info if info is not None else {"total_volume": "500", "nr_regenerations": 17}

        self.login_status = 200
        self.login_sends_token = True
        self.always_unauthorized = False
        self.info_status = 200
        self.info_delay = 0.0
        self.raise_on_info: Exception | None = None

        self.logins = 0
        self.device_list_calls = 0
        self.info_calls = 0
        self.valid_token: str | None = None
        self.login_bodies: list[dict] = []
        self.seen_headers: list[httpx.Headers] = []

        self._active_info = 0
        self.max_concurrent_info = 0

    def expire(self) -> None:
        self.valid_token = None

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api/erieapp/v1")

        if request.method == "POST" and path == "/auth/sign_in":
            self.logins += 1
            self.login_bodies.append(json.loads(request.content))
            if self.login_status != 200:
                return httpx.Response(self.login_status, json={"errors": ["Invalid login credentials"]})
            if not self.login_sends_token:
                return httpx.Response(200, json={"data": {}})
            self.valid_token = f"token-{self.logins}"
            return httpx.Response(
                200,
                json={"data": {"email": "owner@example.com"}},
                headers={
                    "access-token": self.valid_token,
                    "client": "client-abc",
                    "expiry": "1900000000",
                    "uid": "owner@example.com",
                    "token-type": "Bearer",
                },
            )

        self.seen_headers.append(request.headers)
        token = request.headers.get("access-token")
        if self.always_unauthorized or token is None or token != self.valid_token:
            return httpx.Response(401, json={"errors": ["You need to sign in"]})

        if path == "/water_softeners":
            self.device_list_calls += 1
            return httpx.Response(200, json=self.devices)

        if path.startswith("/water_softeners/") and path.endswith("/info"):
            self.info_calls += 1
            if self.raise_on_info is not None:
                raise self.raise_on_info
            self._active_info += 1
            self.max_concurrent_info = max(self.max_concurrent_info, self._active_info)
            try:
                if self.info_delay:
                    await asyncio.sleep(self.info_delay)
            finally:
                self._active_info -= 1
            if self.info_status != 200:
                return httpx.Response(self.info_status, text="upstream error")
            return httpx.Response(200, json=self.info)

        return httpx.Response(404, text="not found")


class FakeBus:
    """Records publishes; inbound messages are fed through an asyncio.Queue"""

    def __init__(self, connected: bool = True):
        self.connected = connected
        self.published: list[tuple[str, str]] = []
        self.subscriptions: list[str] = []
        self.connect_calls = 0
        self.closed = False
        self._queue: asyncio.Queue | None = None

    def _get_queue(self) -> asyncio.Queue:
        if self._queue is None:
            self._queue = asyncio.Queue()
        return self._queue

    async def connect(self) -> None:
        self.connect_calls += 1

    def subscribe(self, topic: str) -> None:
        self.subscriptions.append(topic)

    def publish(self, topic: str, payload: str, retain: bool = False) -> bool:
        if not self.connected:
            return False
        self.published.append((topic, payload))
        return True

    def feed(self, message: Any) -> None:
        self._get_queue().put_nowait(message)

    async def messages(self):
        queue = self._get_queue()
        while True:
            message = await queue.get()
            if message is None:
                return
            yield message

    async def close(self) -> None:
        self.closed = True
        self._get_queue().put_nowait(None)

    def payloads_on(self, topic: str) -> list[dict]:
        return [json.loads(payload) for t, payload in self.published if t == topic]


def raw_config(**config_overrides: Any) -> dict[str, Any]:
    config = {"tankSize": 1000, "lastReset": 200, "interval": 60, "handshakeDelay": 0.01}
    config.update(config_overrides)
    return {
        "config": config,
        "erieConnect": {"email": "owner@example.com", "password": "hunter2", "baseUrl": BASE_URL},
        "mqtt": {"server": "mqtt://broker.local:1883", "username": "bridge", "password": "secret"},
    }


@pytest.fixture
def erie_api() -> FakeErieAPI:
    return FakeErieAPI()


@pytest.fixture
def fake_bus() -> FakeBus:
    return FakeBus()


@pytest.fixture
def bridge_config():
    return load_bridge_config(raw_config())


@pytest.fixture
def history_path(tmp_path):
    return tmp_path / "history.json"

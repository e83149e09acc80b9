"""
Telemetry Fetcher

Turns the device info endpoint into a normalized tank Reading.
"""

import re
import time
from dataclasses import dataclass, replace
from typing import Any

from erie_bridge.common.exceptions import TelemetryUnavailableError
from erie_bridge.common.logging_setup import get_service_logger
from erie_bridge.common.state import TankState

from .devices import DeviceResolver
from .session import SessionManager, device_info_path

logger = get_service_logger("erie.telemetry")

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_int(value: Any) -> int | None:
    """
    Leading-integer parse: "500" -> 500, "500 L" -> 500, "12.7" -> 12.

    Returns None for anything without leading digits.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        return int(value)
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        if match:
            return int(match.group(1))
    return None


@dataclass(frozen=True)
class Reading:
    """One tank reading"""
    updated: int  # epoch ms
    total: int
    regenerations: int | None
    tank_size: float
    last_reset: float
    space_left: float

    def rebased(self, last_reset: float) -> "Reading":
        """Same measurement against a new baseline"""
        return replace(
            self,
            last_reset=last_reset,
            space_left=self.tank_size - (self.total - last_reset),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "updated": self.updated,
            "total": self.total,
            "regenerations": self.regenerations,
            "tank_size": self.tank_size,
            "last_reset": self.last_reset,
            "space_left": self.space_left,
        }


class TelemetryFetcher:
    """Fetches device info and computes tank capacity"""

    def __init__(
        self,
        session: SessionManager,
        resolver: DeviceResolver,
        tank: TankState,
    ):
        self.session = session
        self.resolver = resolver
        self.tank = tank

    async def fetch_reading(self) -> Reading:
        """
        Fetch the current reading.

        Raises:
            TelemetryUnavailableError: info had no numeric total_volume
            NoDevicesError / VendorError / AuthError: from device resolution
        """
        device_id = await self.resolver.resolve_device_id()

        logger.debug("ErieConnect - Get info started.", extra={"device_id": device_id})
        info = await self.session.request(device_info_path(device_id))
        if not isinstance(info, dict):
            info = {}

        total = parse_int(info.get("total_volume"))
        if total is None:
            raise TelemetryUnavailableError(
                f"total_volume missing or not numeric: {info.get('total_volume')!r}",
                device_id=device_id,
            )

        logger.debug("ErieConnect - Info fetched.", extra={"device_id": device_id})

        return Reading(
            updated=int(time.time() * 1000),
            total=total,
            regenerations=parse_int(info.get("nr_regenerations")),
            tank_size=self.tank.tank_size,
            last_reset=self.tank.last_reset,
            space_left=self.tank.space_left(total),
        )

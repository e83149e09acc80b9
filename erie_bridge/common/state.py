"""
Shared Tank State

In-process state shared between the telemetry fetcher (reader) and the
reset ledger (sole writer). Callers hold the supervisor's baseline lock
around any read-modify-write sequence.
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class TankState:
    """Tank capacity and the usage baseline it is measured against"""
    tank_size: float
    last_reset: float

    def space_left(self, total: float) -> float:
        """Capacity remaining; negative once usage since reset exceeds the tank"""
        return self.tank_size - (total - self.last_reset)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tank_size": self.tank_size,
            "last_reset": self.last_reset,
        }

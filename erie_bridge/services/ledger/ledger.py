"""
Reset Ledger

Append-only history of baseline resets, persisted as a single JSON array.

File format (compatible with history files written by the Node add-on):
    [
      {"date": "initial", "value": 200},
      {"date": "19/10/2026 10:15:00", "timestamp": 1792404900000, "value": 300}
    ]

The whole sequence is rewritten on every reset. Memory is only updated
after the write succeeds, so disk and memory never disagree.
"""

import asyncio
import json
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from erie_bridge.common.exceptions import PersistenceError
from erie_bridge.common.logging_setup import get_service_logger, log_reset
from erie_bridge.common.state import TankState

logger = get_service_logger("ledger")

INITIAL_LABEL = "initial"
LABEL_FORMAT = "%d/%m/%Y %H:%M:%S"


def format_label(now: datetime) -> str:
    return now.strftime(LABEL_FORMAT)


@dataclass(frozen=True)
class ResetEntry:
    """One reset event"""
    label: str
    value: float
    timestamp: int | None = None  # epoch ms, absent for the initial entry

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"date": self.label}
        if self.timestamp is not None:
            data["timestamp"] = self.timestamp
        data["value"] = self.value
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "ResetEntry":
        if not isinstance(data, dict):
            raise ValueError(f"entry is not an object: {data!r}")
        value = data.get("value")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"entry value is not a number: {value!r}")
        timestamp = data.get("timestamp")
        if timestamp is not None and (isinstance(timestamp, bool) or not isinstance(timestamp, (int, float))):
            raise ValueError(f"entry timestamp is not a number: {timestamp!r}")
        return cls(
            label=str(data.get("date", "")),
            value=value,
            timestamp=int(timestamp) if timestamp is not None else None,
        )


class ResetLedger:
    """
    File-backed reset history and owner of the tank baseline.

    Not safe for concurrent use: callers serialize record_reset() against
    each other and against anything reading TankState.
    """

    def __init__(self, path: str | Path, tank: TankState):
        self.path = Path(path)
        self.tank = tank
        self._entries: list[ResetEntry] = []

    @property
    def entries(self) -> list[ResetEntry]:
        return list(self._entries)

    @property
    def latest(self) -> ResetEntry | None:
        return self._entries[-1] if self._entries else None

    def __len__(self) -> int:
        return len(self._entries)

    def load(self) -> list[ResetEntry]:
        """
        Load history from disk. A missing file means an empty ledger.

        Raises:
            PersistenceError: file unreadable or not a list of entries
        """
        if not self.path.exists():
            logger.info(f"History file does not exist: {self.path}")
            self._entries = []
            return self.entries

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            raise PersistenceError(f"Cannot read history file: {e}", path=str(self.path)) from e

        if not isinstance(raw, list):
            raise PersistenceError("History file is not a JSON array", path=str(self.path))

        try:
            self._entries = [ResetEntry.from_dict(item) for item in raw]
        except ValueError as e:
            raise PersistenceError(f"Malformed history entry: {e}", path=str(self.path)) from e

        logger.info(
            f"History file loaded: {self.path} ({len(self._entries)} entries)",
            extra={"entry_count": len(self._entries)},
        )
        return self.entries

    def reconcile(self) -> float:
        """
        Align the in-memory baseline with the ledger at startup.

        A ledger value above the configured lastReset means the config is
        stale and the ledger wins. A configured value above the ledger is
        kept (manual re-baseline) and logged.

        Returns:
            The baseline in effect
        """
        latest = self.latest
        if latest is None:
            return self.tank.last_reset

        if latest.value > self.tank.last_reset:
            logger.info(
                f"Baseline from history ({latest.value}) replaces configured lastReset ({self.tank.last_reset})",
                extra={"ledger_value": latest.value, "config_value": self.tank.last_reset},
            )
            self.tank.last_reset = latest.value
        elif latest.value < self.tank.last_reset:
            logger.warning(
                f"Configured lastReset ({self.tank.last_reset}) is ahead of history ({latest.value}); keeping config",
                extra={"ledger_value": latest.value, "config_value": self.tank.last_reset},
            )

        return self.tank.last_reset

    async def record_reset(
        self,
        current_total: float,
        now: datetime | None = None,
    ) -> ResetEntry:
        """
        Append a reset at `current_total` and persist the whole history.

        On an empty ledger an "initial" entry holding the previous baseline
        is written first.

        Raises:
            PersistenceError: write failed; memory is left untouched
        """
        now = now or datetime.now()
        previous = self.tank.last_reset

        history = list(self._entries)
        if not history:
            history.append(ResetEntry(label=INITIAL_LABEL, value=previous))

        entry = ResetEntry(
            label=format_label(now),
            value=current_total,
            timestamp=int(now.timestamp() * 1000),
        )
        history.append(entry)

        logger.debug("Attempt to history file update.", extra={"entry_count": len(history)})
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write, history)
        except PersistenceError:
            log_reset(logger, entry.label, entry.value, previous, success=False)
            raise

        self._entries = history
        self.tank.last_reset = current_total
        log_reset(logger, entry.label, entry.value, previous)
        return entry

    def _write(self, history: list[ResetEntry]) -> None:
        """Write to a temp file then rename over the target (atomic on same filesystem)"""
        temp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump([e.to_dict() for e in history], f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            temp_path.replace(self.path)
        except OSError as e:
            try:
                temp_path.unlink(missing_ok=True)
            except OSError:
                pass
            raise PersistenceError(f"Cannot write history file: {e}", path=str(self.path)) from e

    def state_attributes(self) -> dict[str, Any]:
        """Extra state payload fields describing the last reset"""
        latest = self.latest
        if latest is None:
            return {}

        attributes: dict[str, Any] = {"last_reset_date": latest.label}
        if latest.timestamp is not None:
            attributes["last_reset_timestamp"] = latest.timestamp
        return attributes

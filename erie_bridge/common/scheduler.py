"""
Scheduler Primitives

ScheduledLoop fires an async callback every `interval` seconds, re-arming
only after the previous callback has finished. Cycles therefore never
overlap, however slow a fetch is.

DelayedCall runs an async callback once after a delay. Re-scheduling a
pending call replaces it.

Usage:
    async def my_callback():
        # Do work...
        pass

    scheduler = ScheduledLoop(60.0, my_callback, name="fetch")
    await scheduler.start()

    # Later:
    scheduler.stop()
    print(scheduler.get_stats())
"""

import asyncio
import time
from typing import Callable, Awaitable
from erie_bridge.common.logging_setup import get_service_logger

logger = get_service_logger("scheduler")


class ScheduledLoop:
    """
    Fixed-delay scheduler with guaranteed non-overlap.

    The next sleep starts when the callback returns (success or failure),
    so the effective period is `interval + execution time`.

    Attributes:
        interval: Seconds to wait between the end of one run and the next
        callback: Async function to call each interval
        execution_count: Number of completed callback runs
        failure_count: Number of runs that raised
    """

    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
        name: str = "unnamed",
    ):
        self.interval = interval_seconds
        self.callback = callback
        self.name = name

        self._running = False
        self._task: asyncio.Task | None = None

        # Observability metrics
        self._execution_count: int = 0
        self._failure_count: int = 0
        self._last_execution_time: float = 0
        self._last_run_at: float | None = None

    async def start(self) -> None:
        """Start the scheduled loop in a background task."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"Scheduler '{self.name}' started: every {self.interval} seconds")

    def stop(self) -> None:
        """Stop the scheduled loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None

    async def wait_stopped(self) -> None:
        """Stop and wait for the background task to unwind."""
        task = self._task
        self.stop()
        if task:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run(self) -> None:
        """Sleep, run, repeat."""
        while self._running:
            try:
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break

            if not self._running:
                break

            await self.run_once()

    async def run_once(self) -> None:
        """Execute the callback once, recording stats and logging failures."""
        start = time.monotonic()
        try:
            await self.callback()
            self._execution_count += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._failure_count += 1
            logger.error(f"Scheduled callback '{self.name}' error: {e}", exc_info=True)
        finally:
            self._last_execution_time = time.monotonic() - start
            self._last_run_at = time.time()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def execution_count(self) -> int:
        """Total number of successful executions."""
        return self._execution_count

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def get_stats(self) -> dict:
        """Get scheduler statistics for observability."""
        return {
            "name": self.name,
            "interval_s": self.interval,
            "execution_count": self._execution_count,
            "failure_count": self._failure_count,
            "last_execution_s": round(self._last_execution_time, 3),
            "last_run_at": self._last_run_at,
        }


class DelayedCall:
    """
    One-shot delayed callback.

    Calling schedule() while a call is pending cancels the pending one and
    starts the delay again.
    """

    def __init__(
        self,
        delay_seconds: float,
        callback: Callable[[], Awaitable[None]],
        name: str = "unnamed",
    ):
        self.delay = delay_seconds
        self.callback = callback
        self.name = name
        self._task: asyncio.Task | None = None
        self._fired_count = 0

    def schedule(self) -> None:
        """Arm (or re-arm) the call."""
        self.cancel()
        self._task = asyncio.create_task(self._fire())
        logger.debug(f"Delayed call '{self.name}' scheduled in {self.delay}s")

    def cancel(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def fired_count(self) -> int:
        return self._fired_count

    async def _fire(self) -> None:
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            return

        try:
            await self.callback()
            self._fired_count += 1
        except Exception as e:
            logger.error(f"Delayed call '{self.name}' error: {e}", exc_info=True)

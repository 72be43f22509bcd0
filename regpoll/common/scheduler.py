"""
Interval Scheduler for Poll Passes

Provides ScheduledLoop, which fires an async callback immediately on
start and then at fixed intervals, accounting for callback execution
time to prevent drift.

Unlike asyncio.sleep()-based loops, this scheduler:
- Never runs two callbacks concurrently (each one is awaited)
- Skips missed intervals instead of queueing them when a callback overruns
- Lets an in-flight callback finish when stopped
- Reports drift metrics for observability

Usage:
    async def poll_pass():
        ...

    scheduler = ScheduledLoop(5.0, poll_pass, name="poll")
    await scheduler.start()

    # Later:
    scheduler.stop()
    await scheduler.join()
"""

import asyncio
from typing import Callable, Awaitable

from .logging_setup import get_service_logger

logger = get_service_logger("scheduler")


class ScheduledLoop:
    """
    Fixed-interval scheduler that accounts for execution time.

    The first callback runs as soon as the loop starts. Each following
    run is scheduled relative to the original schedule, not relative to
    when the previous callback finished.

    Attributes:
        interval: The interval in seconds between executions
        callback: Async function to call each interval
        drift_seconds: Total accumulated drift (for observability)
        skipped_count: Number of intervals skipped (to catch up)
    """

    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
        name: str = "unnamed",
    ):
        """
        Initialize a scheduled loop.

        Args:
            interval_seconds: Time between executions (supports sub-second)
            callback: Async function to call each interval
            name: Name for logging/identification
        """
        if interval_seconds <= 0:
            raise ValueError(f"interval must be positive, got {interval_seconds}")

        self.interval = interval_seconds
        self.callback = callback
        self.name = name

        self._next_run: float = 0
        self._running = False
        self._task: asyncio.Task | None = None
        self._wakeup: asyncio.Event | None = None

        # Observability metrics
        self._drift_total: float = 0
        self._skipped_count: int = 0
        self._execution_count: int = 0
        self._last_execution_time: float = 0
        self._last_drift_ms: float = 0

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the scheduled loop in a background task."""
        if self._running:
            return

        # A stopped loop may still be finishing its last callback
        if self._task and not self._task.done():
            await self._task
            if self._running:
                return

        self._running = True
        self._wakeup = asyncio.Event()
        self._task = asyncio.create_task(self._run(self._wakeup))

    def stop(self) -> None:
        """
        Stop the scheduled loop.

        Pending sleeps are interrupted; a callback already running is
        allowed to complete. Use join() to wait for it.
        """
        if not self._running:
            return

        self._running = False
        if self._wakeup:
            self._wakeup.set()

    async def join(self) -> None:
        """Wait for the loop task (including any in-flight callback) to exit."""
        if self._task:
            await self._task

    async def _run(self, wakeup: asyncio.Event) -> None:
        """Main loop that fires callback at fixed intervals."""
        loop = asyncio.get_running_loop()
        self._next_run = loop.time()

        while self._running:
            sleep_duration = self._next_run - loop.time()
            if sleep_duration > 0:
                try:
                    await asyncio.wait_for(wakeup.wait(), timeout=sleep_duration)
                except asyncio.TimeoutError:
                    pass

            if not self._running:
                break

            # Track drift (how late we are)
            drift = loop.time() - self._next_run
            self._drift_total += max(0, drift)
            self._last_drift_ms = drift * 1000

            try:
                start = loop.time()
                await self.callback()
                self._last_execution_time = loop.time() - start
                self._execution_count += 1
            except Exception as e:
                logger.error(f"Scheduled callback '{self.name}' error: {e}")

            # Skip missed intervals to catch up (don't queue up missed executions)
            now = loop.time()
            skipped = 0
            while self._next_run <= now:
                self._next_run += self.interval
                skipped += 1

            # First skip is expected (the one we just executed)
            if skipped > 1:
                self._skipped_count += skipped - 1
                logger.warning(
                    f"Scheduler '{self.name}' skipped {skipped - 1} intervals "
                    f"(execution took {self._last_execution_time:.3f}s)"
                )

    @property
    def drift_seconds(self) -> float:
        """Total accumulated drift in seconds."""
        return self._drift_total

    @property
    def drift_ms(self) -> float:
        """Most recent drift in milliseconds."""
        return self._last_drift_ms

    @property
    def skipped_count(self) -> int:
        """Number of intervals skipped to catch up."""
        return self._skipped_count

    @property
    def execution_count(self) -> int:
        """Total number of successful executions."""
        return self._execution_count

    @property
    def last_execution_time(self) -> float:
        """Duration of last callback execution in seconds."""
        return self._last_execution_time

    def get_stats(self) -> dict:
        """Get scheduler statistics for observability."""
        return {
            "name": self.name,
            "interval_s": self.interval,
            "running": self._running,
            "execution_count": self._execution_count,
            "drift_total_s": round(self._drift_total, 3),
            "drift_last_ms": round(self._last_drift_ms, 1),
            "skipped_count": self._skipped_count,
            "last_execution_s": round(self._last_execution_time, 3),
        }

"""HubsightScheduler: thin wrapper around APScheduler's AsyncIOScheduler.

Owns the periodic analysis and retention jobs of the engine:
- Heartbeat intervals (trend analysis every 5 minutes, retention sweep hourly)
- Pause/resume without losing registrations
- Deterministic on-demand runs via ``trigger`` for tests and the CLI

Jobs run on the host's asyncio event loop; no extra threads execute them.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

AsyncCallback = Callable[[], Awaitable[None]]


class HubsightScheduler:
    """Manages interval schedules for the observability engine.

    Wraps APScheduler v3's AsyncIOScheduler so the engine does not depend on
    APScheduler internals directly.
    """

    def __init__(self) -> None:
        self._scheduler = AsyncIOScheduler()
        # schedule id -> exception-safe callback
        self._jobs: dict[str, AsyncCallback] = {}
        self._running = False
        self._paused = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def job_ids(self) -> list[str]:
        return list(self._jobs.keys())

    def add_heartbeat(
        self,
        name: str,
        interval_seconds: float,
        callback: AsyncCallback,
    ) -> str:
        """Register a periodic job.

        Args:
            name: Job name (e.g. "flow_analysis").
            interval_seconds: Seconds between invocations. Must be > 0.
            callback: Async function to invoke on each tick.

        Returns:
            The schedule ID, ``heartbeat:<name>``.

        Raises:
            ValueError: If name is already registered or interval is invalid.
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")

        schedule_id = f"heartbeat:{name}"
        if schedule_id in self._jobs:
            raise ValueError(f"schedule '{schedule_id}' already registered")

        wrapped = self._safe_invoke(callback, schedule_id)
        self._scheduler.add_job(
            wrapped,
            trigger=IntervalTrigger(seconds=interval_seconds),
            id=schedule_id,
            name=f"heartbeat-{name}",
            replace_existing=False,
            coalesce=True,
            max_instances=1,
        )
        self._jobs[schedule_id] = wrapped
        logger.info("Registered heartbeat: %s (every %gs)", schedule_id, interval_seconds)
        return schedule_id

    def remove_schedule(self, schedule_id: str) -> None:
        """Remove a registered schedule.

        Raises:
            KeyError: If the schedule ID is not registered.
        """
        if schedule_id not in self._jobs:
            raise KeyError(f"unknown schedule: {schedule_id}")

        self._scheduler.remove_job(schedule_id)
        del self._jobs[schedule_id]
        logger.info("Removed schedule: %s", schedule_id)

    async def trigger(self, schedule_id: str) -> None:
        """Run one registered job now, outside its interval.

        Raises:
            KeyError: If the schedule ID is not registered.
        """
        if schedule_id not in self._jobs:
            raise KeyError(f"unknown schedule: {schedule_id}")
        await self._jobs[schedule_id]()

    def pause(self) -> None:
        if self._paused:
            return
        if self._running:
            self._scheduler.pause()
        self._paused = True
        logger.info("Scheduler paused")

    def resume(self) -> None:
        if not self._paused:
            return
        if self._running:
            self._scheduler.resume()
        self._paused = False
        logger.info("Scheduler resumed")

    async def start(self) -> None:
        """Start the scheduler on the running loop. Idempotent."""
        if self._running:
            return
        self._scheduler.start(paused=self._paused)
        self._running = True
        logger.info("Scheduler started with %d jobs", len(self._jobs))

    async def shutdown(self) -> None:
        """Stop the scheduler and drop all jobs. Idempotent."""
        if not self._running:
            self._scheduler.remove_all_jobs()
            self._jobs.clear()
            return
        self._scheduler.shutdown(wait=False)
        self._jobs.clear()
        self._running = False
        self._paused = False
        logger.info("Scheduler stopped")

    def _safe_invoke(
        self,
        callback: AsyncCallback,
        schedule_id: str,
    ) -> AsyncCallback:
        """Wrap a callback so exceptions are logged instead of escaping the job."""

        async def _wrapper() -> None:
            try:
                await callback()
            except Exception:
                logger.exception("Schedule %s callback failed", schedule_id)

        return _wrapper


__all__ = ["AsyncCallback", "HubsightScheduler"]

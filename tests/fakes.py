from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field


@dataclass(slots=True)
class FakeScheduler:
    """In-memory TaskScheduler that only runs jobs when ``tick`` is awaited."""

    jobs: dict[str, tuple[float, Callable[[], Awaitable[None]]]] = field(default_factory=dict)
    running: bool = False
    paused: bool = False
    shutdowns: int = 0

    def add_heartbeat(
        self,
        name: str,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
    ) -> str:
        schedule_id = f"heartbeat:{name}"
        if schedule_id in self.jobs:
            raise ValueError(f"schedule '{schedule_id}' already registered")
        self.jobs[schedule_id] = (interval_seconds, callback)
        return schedule_id

    def remove_schedule(self, schedule_id: str) -> None:
        del self.jobs[schedule_id]

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    async def start(self) -> None:
        self.running = True

    async def shutdown(self) -> None:
        self.running = False
        self.shutdowns += 1
        self.jobs.clear()

    async def tick(self, schedule_id: str) -> None:
        if self.paused:
            return
        _interval, callback = self.jobs[schedule_id]
        await callback()

    def interval(self, schedule_id: str) -> float:
        return self.jobs[schedule_id][0]

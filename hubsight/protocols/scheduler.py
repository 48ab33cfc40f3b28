from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable


@runtime_checkable
class TaskScheduler(Protocol):
    def add_heartbeat(
        self,
        name: str,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
    ) -> str: ...

    def remove_schedule(self, schedule_id: str) -> None: ...

    def pause(self) -> None: ...

    def resume(self) -> None: ...

    async def start(self) -> None: ...

    async def shutdown(self) -> None: ...


__all__ = ["TaskScheduler"]

"""Shared test helpers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable


async def wait_until(
    predicate: Callable[[], bool],
    timeout: float = 3.0,
    interval: float = 0.05,
) -> None:
    """Poll a condition until it passes or timeout is reached."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return
        await asyncio.sleep(interval)
    raise TimeoutError("Condition not met within timeout")

"""Fixed-capacity FIFO history used by every collector in the engine.

All history collections (validation history, per-metric samples, alerts,
API calls) are bounded so memory stays flat no matter how long the host
application runs.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Iterator
from typing import Generic, TypeVar

T = TypeVar("T")


class BoundedLog(Generic[T]):
    """Insertion-ordered ring buffer; the oldest entry is evicted first."""

    def __init__(self, capacity: int, items: Iterable[T] = ()) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._items: deque[T] = deque(items, maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._items.maxlen or 0

    def append(self, item: T) -> None:
        self._items.append(item)

    def extend(self, items: Iterable[T]) -> None:
        self._items.extend(items)

    def snapshot(self) -> list[T]:
        """Return a point-in-time copy safe to iterate while writers continue."""
        return list(self._items)

    def tail(self, count: int) -> list[T]:
        if count <= 0:
            return []
        items = self.snapshot()
        return items[-count:]

    def last(self) -> T | None:
        return self._items[-1] if self._items else None

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self.snapshot())

    def __bool__(self) -> bool:
        return bool(self._items)

    def __repr__(self) -> str:
        return f"BoundedLog(capacity={self.capacity}, size={len(self._items)})"


__all__ = ["BoundedLog"]

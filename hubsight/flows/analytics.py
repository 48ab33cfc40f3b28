"""Pure aggregation helpers shared by flow and journey analytics."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

# Average interactions per block above which each engagement label applies.
_ENGAGEMENT_LEVELS: tuple[tuple[float, str], ...] = (
    (10, "high_engagement"),
    (5, "medium_engagement"),
    (1, "low_engagement"),
)


def average(values: Iterable[float]) -> float:
    items = list(values)
    return sum(items) / len(items) if items else 0.0


def fraction(flags: Iterable[bool]) -> float:
    items = list(flags)
    return sum(1 for flag in items if flag) / len(items) if items else 0.0


def common_drop_off_points(points: Iterable[str | None], limit: int = 5) -> list[str]:
    """Most frequent drop-off points; ties keep first-seen order."""
    counts = Counter(point for point in points if point)
    # most_common sorts stably, so equal counts stay in insertion order.
    return [point for point, _ in counts.most_common(limit)]


def interaction_pattern(interactions: list[int]) -> str:
    mean = average(interactions)
    for floor, label in _ENGAGEMENT_LEVELS:
        if mean > floor:
            return label
    return "minimal_engagement"


def block_time_stats(time_spent: dict[int, float]) -> tuple[float, float | None, float | None]:
    """Return ``(average, fastest, slowest)`` over positive block durations."""
    positive = [duration for duration in time_spent.values() if duration > 0]
    if not positive:
        return 0.0, None, None
    return average(positive), min(positive), max(positive)


__all__ = [
    "average",
    "block_time_stats",
    "common_drop_off_points",
    "fraction",
    "interaction_pattern",
]

"""Clock sources.

Components never call ``datetime.now`` directly; they ask the injected clock
so tests and event replay can drive time explicitly.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta


def _require_timezone_aware(value: datetime, field_name: str) -> None:
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise ValueError(f"{field_name} must be timezone-aware")


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        if start is not None:
            _require_timezone_aware(start, "start")
        self._now = start or datetime(2025, 1, 1, tzinfo=UTC)

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        _require_timezone_aware(value, "value")
        self._now = value

    def advance(
        self,
        *,
        milliseconds: float = 0,
        seconds: float = 0,
        minutes: float = 0,
        hours: float = 0,
    ) -> datetime:
        self._now += timedelta(
            milliseconds=milliseconds,
            seconds=seconds,
            minutes=minutes,
            hours=hours,
        )
        return self._now


def as_utc(value: datetime) -> datetime:
    """Interpret a naive datetime as UTC; aware values pass through unchanged."""
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=UTC)
    return value


def elapsed_ms(start: datetime, end: datetime) -> float:
    """Milliseconds between two instants (negative if *end* precedes *start*)."""
    return (end - start).total_seconds() * 1000.0


__all__ = ["ManualClock", "SystemClock", "as_utc", "elapsed_ms"]

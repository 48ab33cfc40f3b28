"""Telemetry sinks for noteworthy results.

Components hand ``(message, context)`` pairs to a sink whenever something is
worth surfacing: an invalid or warning validation outcome, a drop-off, a
threshold breach. Emission is fire-and-forget; a failing sink never reaches
the tracking call that produced the event.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from hubsight.core.bounded_log import BoundedLog
from hubsight.protocols.sink import TelemetrySink

logger = logging.getLogger(__name__)

_WARNING_SEVERITIES = frozenset({"high", "critical"})


class LoggingSink:
    """Writes sink events through the ``hubsight.sink`` logger."""

    def __init__(self, logger_name: str = "hubsight.sink") -> None:
        self._logger = logging.getLogger(logger_name)

    def emit(self, message: str, context: Mapping[str, object]) -> None:
        severity = str(context.get("severity", "")).lower()
        level = logging.WARNING if severity in _WARNING_SEVERITIES else logging.INFO
        self._logger.log(level, message, extra={"hubsight_context": dict(context)})


@dataclass(frozen=True, slots=True)
class SinkEvent:
    message: str
    context: dict[str, object]


class RecordingSink:
    """Keeps the most recent sink events in memory."""

    def __init__(self, capacity: int = 1000) -> None:
        self.events: BoundedLog[SinkEvent] = BoundedLog(capacity)

    def emit(self, message: str, context: Mapping[str, object]) -> None:
        self.events.append(SinkEvent(message=message, context=dict(context)))

    def messages(self) -> list[str]:
        return [event.message for event in self.events]

    def find(self, message: str) -> list[SinkEvent]:
        return [event for event in self.events if event.message == message]


def safe_emit(sink: TelemetrySink | None, message: str, context: Mapping[str, object]) -> None:
    """Deliver to *sink* without letting its failures propagate."""
    if sink is None:
        return
    try:
        sink.emit(message, context)
    except Exception:
        logger.exception("Telemetry sink failed to accept %r", message)


__all__ = ["LoggingSink", "RecordingSink", "SinkEvent", "safe_emit"]

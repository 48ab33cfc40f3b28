"""Logging setup for hubsight.

Records are stamped with the flow or journey that produced them,
plus the active OpenTelemetry trace id, so one participant journey can be
followed across the validator, tracker and performance monitor. Sink events
carry their context mapping in ``record.hubsight_context``; both formatters
render it.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import asdict, dataclass, replace
from datetime import UTC, datetime

from opentelemetry import trace

CORRELATION_FIELDS = ("flow_id", "journey_id")

_TEXT_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s "
    "flow_id=%(flow_id)s journey_id=%(journey_id)s "
    "trace_id=%(otel_trace_id)s %(message)s"
)


@dataclass(frozen=True, slots=True)
class CorrelationContext:
    flow_id: str | None = None
    journey_id: str | None = None

    def merged(self, **overrides: str | None) -> CorrelationContext:
        """Copy with every non-``None`` override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)


_current: contextvars.ContextVar[CorrelationContext] = contextvars.ContextVar(
    "hubsight_correlation",
    default=CorrelationContext(),
)


def get_correlation_context() -> CorrelationContext:
    return _current.get()


@contextmanager
def correlation_scope(
    *,
    flow_id: str | None = None,
    journey_id: str | None = None,
) -> Iterator[CorrelationContext]:
    """Bind correlation ids for the enclosed block; unset ids are inherited."""
    context = _current.get().merged(flow_id=flow_id, journey_id=journey_id)
    token = _current.set(context)
    try:
        yield context
    finally:
        _current.reset(token)


def _trace_id() -> str:
    span_context = trace.get_current_span().get_span_context()
    return format(span_context.trace_id, "032x") if span_context.trace_id else ""


class CorrelationFilter(logging.Filter):
    """Copy the correlation context and trace id onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name, value in asdict(get_correlation_context()).items():
            setattr(record, name, value)
        record.otel_trace_id = _trace_id()
        return True


def _sink_context(record: logging.LogRecord) -> Mapping[str, object] | None:
    context = getattr(record, "hubsight_context", None)
    return context if isinstance(context, Mapping) and context else None


class TextFormatter(logging.Formatter):
    """Key=value line; sink context is appended as compact JSON."""

    def __init__(self) -> None:
        super().__init__(_TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _sink_context(record)
        if context is None:
            return line
        return f"{line} context={json.dumps(context, sort_keys=True, default=str)}"


class JsonLinesFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "trace_id": getattr(record, "otel_trace_id", None),
        }
        for name in CORRELATION_FIELDS:
            payload[name] = getattr(record, name, None)
        context = _sink_context(record)
        if context is not None:
            payload["context"] = dict(context)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(level: int | str = logging.INFO, json_output: bool = False) -> None:
    """Replace the root handlers with one correlation-aware stderr handler."""
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setFormatter(JsonLinesFormatter() if json_output else TextFormatter())
    handler.addFilter(CorrelationFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    root.addHandler(handler)


__all__ = [
    "CORRELATION_FIELDS",
    "CorrelationContext",
    "CorrelationFilter",
    "JsonLinesFormatter",
    "TextFormatter",
    "correlation_scope",
    "get_correlation_context",
    "setup_logging",
]

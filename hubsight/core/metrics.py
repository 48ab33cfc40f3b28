"""Prometheus metrics for the hubsight engine.

Metric objects are module-level collectors registered with the default
``prometheus_client`` registry; engine state itself lives on the engine
instance, these only count what passed through it.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager

from prometheus_client import Counter, Gauge, Histogram, generate_latest

VALIDATIONS_TOTAL = Counter(
    "hubsight_validations_total",
    "Validation calls by category and outcome",
    ["category", "outcome"],
)
ALERTS_TOTAL = Counter(
    "hubsight_alerts_total",
    "Performance alerts raised",
    ["type", "severity"],
)
METRIC_SAMPLES_TOTAL = Counter(
    "hubsight_metric_samples_total",
    "Performance metric samples recorded",
    ["name"],
)
FLOW_EVENTS_TOTAL = Counter(
    "hubsight_flow_events_total",
    "Flow and journey lifecycle events",
    ["kind", "event"],
)
DROP_OFFS_TOTAL = Counter(
    "hubsight_drop_offs_total",
    "Drop-offs detected per flow kind",
    ["kind"],
)
TRACKED_INSTANCES = Gauge(
    "hubsight_tracked_instances",
    "Flow and journey instances currently held in memory",
    ["type"],
)
PERIODIC_TASK_SECONDS = Histogram(
    "hubsight_periodic_task_seconds",
    "Duration of periodic analysis and sweep tasks",
    ["task"],
)
metrics_generate_latest = generate_latest


@contextmanager
def observe_periodic_task(task: str) -> Iterator[None]:
    """Observe the duration of one periodic task run."""
    start = time.monotonic()
    try:
        yield
    finally:
        PERIODIC_TASK_SECONDS.labels(task=task).observe(time.monotonic() - start)


__all__ = [
    "ALERTS_TOTAL",
    "DROP_OFFS_TOTAL",
    "FLOW_EVENTS_TOTAL",
    "METRIC_SAMPLES_TOTAL",
    "PERIODIC_TASK_SECONDS",
    "TRACKED_INSTANCES",
    "VALIDATIONS_TOTAL",
    "metrics_generate_latest",
    "observe_periodic_task",
]

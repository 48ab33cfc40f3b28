"""Tests for hubsight.core.metrics and the counters the components feed."""

from __future__ import annotations

from prometheus_client import REGISTRY

from hubsight.core.clock import ManualClock
from hubsight.core.metrics import (
    PERIODIC_TASK_SECONDS,
    metrics_generate_latest,
    observe_periodic_task,
)
from hubsight.flows.tracker import FlowJourneyTracker
from hubsight.performance.monitor import PerformanceMonitor


def _sample(name: str, labels: dict[str, str]) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestObservePeriodicTask:
    def test_records_a_duration(self) -> None:
        before = _sample("hubsight_periodic_task_seconds_count", {"task": "unit_test"})
        with observe_periodic_task("unit_test"):
            pass
        after = _sample("hubsight_periodic_task_seconds_count", {"task": "unit_test"})
        assert after == before + 1

    def test_records_even_when_task_raises(self) -> None:
        before = _sample("hubsight_periodic_task_seconds_count", {"task": "failing_task"})
        try:
            with observe_periodic_task("failing_task"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        after = _sample("hubsight_periodic_task_seconds_count", {"task": "failing_task"})
        assert after == before + 1
        assert PERIODIC_TASK_SECONDS.labels(task="failing_task") is not None


class TestComponentCounters:
    def test_alerts_are_counted(self, clock: ManualClock) -> None:
        labels = {"type": "degradation", "severity": "medium"}
        before = _sample("hubsight_alerts_total", labels)
        PerformanceMonitor(clock=clock).record("lcp", 3000, "ms")
        assert _sample("hubsight_alerts_total", labels) == before + 1

    def test_drop_offs_are_counted(self, clock: ManualClock) -> None:
        labels = {"kind": "study_creation"}
        before = _sample("hubsight_drop_offs_total", labels)
        tracker = FlowJourneyTracker(clock=clock)
        flow_id = tracker.track_study_creation("r1")
        tracker.track_study_step(flow_id, "study_setup", success=False)
        tracker.track_study_step(flow_id, "preview", success=False)
        assert _sample("hubsight_drop_offs_total", labels) == before + 1


def test_generate_latest_exposes_hubsight_metrics() -> None:
    output = metrics_generate_latest().decode("utf-8")
    assert "hubsight_validations_total" in output
    assert "hubsight_periodic_task_seconds" in output

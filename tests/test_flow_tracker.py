"""Tests for researcher flow tracking (study creation and other critical paths)."""

from __future__ import annotations

import pytest

from hubsight.config import FlowConfig
from hubsight.core.clock import ManualClock
from hubsight.core.sink import RecordingSink
from hubsight.flows.tracker import FlowJourneyTracker
from hubsight.models.flows import CriticalPath, FlowStatus


@pytest.fixture
def tracker(clock: ManualClock, sink: RecordingSink) -> FlowJourneyTracker:
    return FlowJourneyTracker(sink=sink, clock=clock)


class TestStudyCreationFlow:
    def test_drop_off_scenario(self, tracker: FlowJourneyTracker, clock: ManualClock) -> None:
        flow_id = tracker.track_study_creation("r1")
        clock.advance(seconds=5)
        tracker.track_study_step(flow_id, "template_selection", {"template": "t1"}, True)
        clock.advance(seconds=5)
        tracker.track_study_step(flow_id, "study_setup", None, False)

        flow = tracker.get_flow(flow_id)
        assert flow is not None
        assert flow.drop_off_point == "study_setup"
        assert flow.completion_rate == pytest.approx(0.4)
        assert flow.status == FlowStatus.abandoned
        assert flow.steps[1].duration_since_last_step_ms == pytest.approx(5000)
        assert flow.steps[1].errors == ["Step failed"]

    def test_completion_rate_monotonic_until_drop_off(self, tracker: FlowJourneyTracker) -> None:
        flow_id = tracker.track_study_creation("r1")
        rates = []
        for step in ("template_selection", "study_setup", "block_configuration"):
            tracker.track_study_step(flow_id, step)
            flow = tracker.get_flow(flow_id)
            assert flow is not None
            rates.append(flow.completion_rate)
        assert rates == sorted(rates)
        assert rates[-1] == pytest.approx(0.6)

    def test_drop_off_is_frozen(self, tracker: FlowJourneyTracker) -> None:
        flow_id = tracker.track_study_creation("r1")
        tracker.track_study_step(flow_id, "template_selection", success=False)
        tracker.track_study_step(flow_id, "study_setup")
        tracker.track_study_step(flow_id, "preview", success=False)

        flow = tracker.get_flow(flow_id)
        assert flow is not None
        assert flow.drop_off_point == "template_selection"
        assert flow.completion_rate == pytest.approx(0.2)
        assert len(flow.steps) == 3

    def test_drop_off_emitted_once(
        self, tracker: FlowJourneyTracker, sink: RecordingSink
    ) -> None:
        flow_id = tracker.track_study_creation("r1")
        tracker.track_study_step(flow_id, "study_setup", success=False)
        tracker.track_study_step(flow_id, "preview", success=False)

        events = sink.find("Drop-off detected")
        assert len(events) == 1
        assert events[0].context["stepName"] == "study_setup"
        assert events[0].context["flowId"] == flow_id

    def test_completion_is_capped(self, tracker: FlowJourneyTracker) -> None:
        flow_id = tracker.track_study_creation("r1")
        for index in range(8):
            tracker.track_study_step(flow_id, f"step_{index}")
        flow = tracker.get_flow(flow_id)
        assert flow is not None
        assert flow.completion_rate == 1.0

    def test_complete_fast_flow_is_efficient(
        self, tracker: FlowJourneyTracker, clock: ManualClock, sink: RecordingSink
    ) -> None:
        flow_id = tracker.track_study_creation("r1", template_id="tpl")
        clock.advance(minutes=2)
        completed = tracker.complete_study_creation(flow_id, blocks_count=4)

        assert completed is not None
        assert completed.status == FlowStatus.completed
        assert completed.completion_rate == 1.0
        assert completed.duration_ms == pytest.approx(120_000)
        assert completed.efficiency == "high"
        assert completed.blocks_count == 4
        analysis = sink.find("Flow completion analysis")
        assert analysis[0].context["templateUsed"] is True

    def test_complete_slow_flow_is_inefficient(
        self, tracker: FlowJourneyTracker, clock: ManualClock
    ) -> None:
        flow_id = tracker.track_study_creation("r1")
        clock.advance(minutes=6)
        completed = tracker.complete_study_creation(flow_id, blocks_count=1)
        assert completed is not None
        assert completed.efficiency == "low"

    def test_abandoned_flow_can_complete(self, tracker: FlowJourneyTracker) -> None:
        flow_id = tracker.track_study_creation("r1")
        tracker.track_study_step(flow_id, "study_setup", success=False)
        completed = tracker.complete_flow(flow_id)
        assert completed is not None
        assert completed.drop_off_point == "study_setup"
        assert completed.status == FlowStatus.completed

    def test_steps_after_completion_ignored(self, tracker: FlowJourneyTracker) -> None:
        flow_id = tracker.track_study_creation("r1")
        tracker.complete_flow(flow_id)
        assert tracker.track_study_step(flow_id, "late") is None
        assert tracker.complete_flow(flow_id) is None
        flow = tracker.get_flow(flow_id)
        assert flow is not None
        assert flow.steps == []

    def test_unknown_ids_are_no_ops(self, tracker: FlowJourneyTracker) -> None:
        assert tracker.track_study_step("flow_missing", "template_selection") is None
        assert tracker.complete_study_creation("flow_missing", 3) is None
        assert tracker.get_flow("flow_missing") is None

    def test_returned_flow_is_a_copy(self, tracker: FlowJourneyTracker) -> None:
        flow_id = tracker.track_study_creation("r1")
        flow = tracker.get_flow(flow_id)
        assert flow is not None
        flow.steps.clear()
        flow.drop_off_point = "tampered"
        tracker.track_study_step(flow_id, "template_selection")
        fresh = tracker.get_flow(flow_id)
        assert fresh is not None
        assert fresh.drop_off_point is None
        assert len(fresh.steps) == 1


class TestOtherFlowKinds:
    def test_payment_flow_uses_its_path(self, tracker: FlowJourneyTracker) -> None:
        flow_id = tracker.start_flow("payment_processing", "r1")
        tracker.track_study_step(flow_id, "calculation")
        flow = tracker.get_flow(flow_id)
        assert flow is not None
        assert flow.completion_rate == pytest.approx(0.25)

    def test_kind_without_path_stays_at_zero(self, tracker: FlowJourneyTracker) -> None:
        flow_id = tracker.start_flow("ad_hoc", "r1")
        tracker.track_study_step(flow_id, "anything")
        completed = tracker.complete_flow(flow_id)
        assert completed is not None
        assert completed.efficiency is None

    def test_custom_critical_paths(self, clock: ManualClock) -> None:
        config = FlowConfig(
            critical_paths=[
                CriticalPath(
                    name="export",
                    steps=["select", "download"],
                    expected_duration_ms=1000,
                    success_threshold=0.5,
                )
            ]
        )
        tracker = FlowJourneyTracker(config, clock=clock)
        flow_id = tracker.start_flow("export", "r1")
        tracker.track_study_step(flow_id, "select")
        assert tracker.get_flow_performance("export").success_rate == 1.0

    def test_duplicate_path_names_rejected(self) -> None:
        path = CriticalPath(name="x", steps=["a"], expected_duration_ms=1, success_threshold=1)
        with pytest.raises(ValueError, match="duplicate critical path"):
            FlowConfig(critical_paths=[path, path])


class TestFlowAnalytics:
    def test_flow_performance(self, tracker: FlowJourneyTracker, clock: ManualClock) -> None:
        done = tracker.track_study_creation("r1")
        clock.advance(minutes=1)
        tracker.complete_study_creation(done, 3)
        dropped = tracker.track_study_creation("r2")
        tracker.track_study_step(dropped, "template_selection")
        tracker.track_study_step(dropped, "study_setup", success=False)

        performance = tracker.get_flow_performance("study_creation")
        assert performance.total_flows == 2
        assert performance.completed_flows == 1
        assert performance.avg_duration_ms == pytest.approx(60_000)
        assert performance.success_rate == pytest.approx(0.5)
        assert performance.common_drop_off_points == ["study_setup"]

    def test_analytics_snapshot(self, tracker: FlowJourneyTracker, clock: ManualClock) -> None:
        flow_id = tracker.track_study_creation("r1")
        tracker.track_study_step(flow_id, "study_setup", success=False)
        other = tracker.track_study_creation("r2")
        clock.advance(minutes=3)
        tracker.complete_study_creation(other, 2)

        analytics = tracker.get_flow_analytics()
        assert analytics.active_study_flows == 2
        assert analytics.drop_off_counts == {"study_setup": 1}
        assert analytics.flow_metrics["study_creation"].count == 1
        assert analytics.drop_off_analysis.drop_off_rate == pytest.approx(0.5)
        creation = analytics.critical_path_performance["study_creation"]
        assert creation.total_flows == 2
        assert creation.actual_success_rate == pytest.approx(0.5)
        assert creation.avg_duration_ms == pytest.approx(180_000)
        assert analytics.study_creation.avg_creation_time_ms == pytest.approx(180_000)

    def test_trend_analysis_flags_weak_paths(
        self, tracker: FlowJourneyTracker, sink: RecordingSink
    ) -> None:
        flow_id = tracker.track_study_creation("r1")
        tracker.track_study_step(flow_id, "template_selection", success=False)
        tracker.analyze_flow_trends()

        events = sink.find("Critical path below success threshold")
        assert [event.context["path"] for event in events] == ["study_creation"]

    def test_sweep_evicts_expired_instances(
        self, tracker: FlowJourneyTracker, clock: ManualClock
    ) -> None:
        old_flow = tracker.track_study_creation("r1")
        old_journey = tracker.track_participant_journey("p1", "s1", 3)
        clock.advance(hours=25)
        fresh_flow = tracker.track_study_creation("r2")

        assert tracker.sweep_expired() == 2
        assert tracker.get_flow(old_flow) is None
        assert tracker.get_journey(old_journey) is None
        assert tracker.get_flow(fresh_flow) is not None
        assert tracker.sweep_expired() == 0

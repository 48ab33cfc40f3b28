"""Tests for replaying JSON-lines event logs into an engine."""

from __future__ import annotations

import json

import pytest

from hubsight.core.clock import ManualClock
from hubsight.core.sink import RecordingSink
from hubsight.engine import ObservabilityEngine
from hubsight.models.flows import FlowStatus
from hubsight.models.performance import MetricUnit
from hubsight.replay import EventReplayer, FlowStepEvent, ReplayError, parse_events

IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


def _lines(*events: dict[str, object]) -> list[str]:
    return [json.dumps(event) for event in events]


@pytest.fixture
def engine(clock: ManualClock, sink: RecordingSink) -> ObservabilityEngine:
    return ObservabilityEngine(sink=sink, clock=clock)


@pytest.fixture
def replayer(engine: ObservabilityEngine, clock: ManualClock) -> EventReplayer:
    return EventReplayer(engine, clock)


class TestParseEvents:
    def test_skips_blank_and_comment_lines(self) -> None:
        lines = ["", "# header", '{"type": "flow_step", "ref": "f1", "step": "preview"}', "  "]
        parsed = list(parse_events(lines))
        assert [number for number, _event in parsed] == [3]
        assert isinstance(parsed[0][1], FlowStepEvent)

    def test_accepts_camel_case(self) -> None:
        [(_number, event)] = parse_events(
            ['{"type": "flow_start", "ref": "f1", "ownerId": "r1", "advanceMs": 250}']
        )
        assert event.owner_id == "r1"
        assert event.advance_ms == 250

    def test_unknown_type_reports_line(self) -> None:
        with pytest.raises(ReplayError, match="line 2") as excinfo:
            list(parse_events(['{"type": "analyze"}', '{"type": "teleport"}']))
        assert excinfo.value.line_number == 2

    def test_negative_advance_rejected(self) -> None:
        with pytest.raises(ReplayError):
            list(parse_events(['{"type": "advance", "advanceMs": -1}']))

    def test_malformed_json_rejected(self) -> None:
        with pytest.raises(ReplayError, match="line 1"):
            list(parse_events(["{not json"]))

    def test_metric_unit_is_checked_at_parse_time(self) -> None:
        [(_number, event)] = parse_events(
            ['{"type": "metric", "name": "cls", "value": 0.2, "unit": "score"}']
        )
        assert event.unit == MetricUnit.score

        with pytest.raises(ReplayError, match="line 2") as excinfo:
            list(
                parse_events(
                    [
                        '{"type": "metric", "name": "lcp", "value": 1}',
                        '{"type": "metric", "name": "lcp", "value": 1, "unit": "seconds"}',
                    ]
                )
            )
        assert excinfo.value.line_number == 2


class TestReplay:
    def test_full_session(
        self, replayer: EventReplayer, engine: ObservabilityEngine, clock: ManualClock
    ) -> None:
        started = clock.now()
        report = replayer.replay(
            _lines(
                {"type": "flow_start", "ref": "f1", "ownerId": "r1"},
                {"type": "flow_step", "ref": "f1", "step": "template_selection", "advanceMs": 5000},
                {"type": "flow_step", "ref": "f1", "step": "study_setup", "success": False},
                {
                    "type": "journey_start",
                    "ref": "j1",
                    "participantId": "p1",
                    "studyId": "s1",
                    "totalBlocks": 2,
                    "userAgent": IPHONE_UA,
                    "viewportWidth": 390,
                    "viewportHeight": 844,
                },
                {
                    "type": "journey_block",
                    "ref": "j1",
                    "blockType": "open_question",
                    "blockIndex": 0,
                    "durationMs": 3000,
                    "interactions": 4,
                },
                {
                    "type": "journey_block",
                    "ref": "j1",
                    "blockType": "survey",
                    "blockIndex": 1,
                    "durationMs": 2000,
                    "interactions": 2,
                },
                {"type": "journey_complete", "ref": "j1"},
                {
                    "type": "validate",
                    "payload": {
                        "kind": "role_action",
                        "userId": "u1",
                        "role": "participant",
                        "action": "manage_users",
                        "resource": "users",
                    },
                },
                {"type": "metric", "name": "lcp", "value": 3000},
                {"type": "api_call", "call": {"endpoint": "/api/studies", "responseTime": 2500}},
                {"type": "analyze"},
            )
        )

        assert report.events == 11
        assert report.invalid_validations == 1
        assert report.alerts == 2
        assert report.analysis_runs == 1
        assert (clock.now() - started).total_seconds() == pytest.approx(10)

        flow = engine.tracker.get_flow(report.flows["f1"])
        assert flow is not None
        assert flow.drop_off_point == "study_setup"
        assert flow.completion_rate == pytest.approx(0.4)

        journey = engine.tracker.get_journey(report.journeys["j1"])
        assert journey is not None
        assert journey.status == FlowStatus.completed
        assert journey.device.is_mobile
        assert journey.time_spent_per_block == {
            0: pytest.approx(3000),
            1: pytest.approx(2000),
        }

    def test_unknown_ref_is_ignored(self, replayer: EventReplayer) -> None:
        report = replayer.replay(
            _lines(
                {"type": "flow_step", "ref": "missing", "step": "preview"},
                {"type": "journey_complete", "ref": "missing"},
            )
        )
        assert report.events == 2
        assert report.flows == {}

    def test_advance_only_moves_clock(self, replayer: EventReplayer, clock: ManualClock) -> None:
        before = clock.now()
        replayer.replay(_lines({"type": "advance", "advanceMs": 60_000}))
        assert (clock.now() - before).total_seconds() == 60

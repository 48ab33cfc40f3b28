"""Replay a JSON-lines event log into an engine driven by a manual clock.

Each non-blank line is one event object with a ``type`` tag; ``advanceMs``
moves the clock forward before the event is applied. Flows and journeys are
addressed by caller-chosen ``ref`` names because their ids are generated.

Example::

    {"type": "flow_start", "ref": "f1", "ownerId": "r1"}
    {"type": "flow_step", "ref": "f1", "step": "template_selection", "advanceMs": 4000}
    {"type": "metric", "name": "lcp", "value": 3000}
    {"type": "analyze"}
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal

from pydantic import Field, TypeAdapter, ValidationError

from hubsight.core.clock import ManualClock
from hubsight.engine import ObservabilityEngine
from hubsight.flows.devices import describe_device
from hubsight.models.common import EventModel
from hubsight.models.performance import APICall, ComponentRender, MetricUnit, StudyBuilderLoad
from hubsight.models.validation import ValidationPayload

logger = logging.getLogger(__name__)


class ReplayError(Exception):
    """Raised when an event line cannot be parsed."""

    def __init__(self, line_number: int, message: str) -> None:
        super().__init__(f"line {line_number}: {message}")
        self.line_number = line_number


class _ReplayEvent(EventModel):
    advance_ms: float = Field(default=0, ge=0)


class FlowStartEvent(_ReplayEvent):
    type: Literal["flow_start"]
    ref: str
    kind: str = "study_creation"
    owner_id: str
    template_id: str | None = None


class FlowStepEvent(_ReplayEvent):
    type: Literal["flow_step"]
    ref: str
    step: str
    success: bool = True
    data: dict[str, Any] | None = None


class FlowCompleteEvent(_ReplayEvent):
    type: Literal["flow_complete"]
    ref: str
    blocks_count: int = 0


class JourneyStartEvent(_ReplayEvent):
    type: Literal["journey_start"]
    ref: str
    participant_id: str
    study_id: str
    total_blocks: int
    user_agent: str = ""
    viewport_width: int = 0
    viewport_height: int = 0


class JourneyBlockEvent(_ReplayEvent):
    type: Literal["journey_block"]
    ref: str
    block_type: str
    block_index: int
    duration_ms: float = Field(default=0, ge=0)
    interactions: int = 0
    success: bool = True
    data: dict[str, Any] | None = None


class JourneyCompleteEvent(_ReplayEvent):
    type: Literal["journey_complete"]
    ref: str


class ValidateEvent(_ReplayEvent):
    type: Literal["validate"]
    payload: ValidationPayload


class MetricEvent(_ReplayEvent):
    type: Literal["metric"]
    name: str
    value: float
    unit: MetricUnit = MetricUnit.ms
    context: dict[str, Any] | None = None


class ApiCallEvent(_ReplayEvent):
    type: Literal["api_call"]
    call: APICall


class ComponentRenderEvent(_ReplayEvent):
    type: Literal["component_render"]
    render: ComponentRender


class StudyBuilderLoadEvent(_ReplayEvent):
    type: Literal["study_builder_load"]
    load: StudyBuilderLoad


class AdvanceEvent(_ReplayEvent):
    type: Literal["advance"]


class AnalyzeEvent(_ReplayEvent):
    type: Literal["analyze"]


ReplayEvent = Annotated[
    FlowStartEvent
    | FlowStepEvent
    | FlowCompleteEvent
    | JourneyStartEvent
    | JourneyBlockEvent
    | JourneyCompleteEvent
    | ValidateEvent
    | MetricEvent
    | ApiCallEvent
    | ComponentRenderEvent
    | StudyBuilderLoadEvent
    | AdvanceEvent
    | AnalyzeEvent,
    Field(discriminator="type"),
]

_EVENT_ADAPTER: TypeAdapter[Any] = TypeAdapter(ReplayEvent)


def parse_events(lines: Iterable[str]) -> Iterator[tuple[int, Any]]:
    """Yield ``(line_number, event)``; blank lines and ``#`` comments are skipped."""
    for number, line in enumerate(lines, start=1):
        text = line.strip()
        if not text or text.startswith("#"):
            continue
        try:
            yield number, _EVENT_ADAPTER.validate_json(text)
        except ValidationError as exc:
            raise ReplayError(number, str(exc)) from exc


@dataclass(slots=True)
class ReplayReport:
    events: int = 0
    invalid_validations: int = 0
    alerts: int = 0
    analysis_runs: int = 0
    flows: dict[str, str] = field(default_factory=dict)
    journeys: dict[str, str] = field(default_factory=dict)


class EventReplayer:
    """Applies parsed events to an engine sharing ``clock``."""

    def __init__(self, engine: ObservabilityEngine, clock: ManualClock) -> None:
        self._engine = engine
        self._clock = clock
        self._report = ReplayReport()
        self._handlers: dict[str, Callable[[Any], None]] = {
            "flow_start": self._flow_start,
            "flow_step": self._flow_step,
            "flow_complete": self._flow_complete,
            "journey_start": self._journey_start,
            "journey_block": self._journey_block,
            "journey_complete": self._journey_complete,
            "validate": self._validate,
            "metric": self._metric,
            "api_call": self._api_call,
            "component_render": self._component_render,
            "study_builder_load": self._study_builder_load,
            "advance": lambda _event: None,
            "analyze": self._analyze,
        }

    @property
    def report(self) -> ReplayReport:
        return self._report

    def apply(self, event: Any) -> None:
        if event.advance_ms:
            self._clock.advance(milliseconds=event.advance_ms)
        self._handlers[event.type](event)
        self._report.events += 1

    def replay(self, lines: Iterable[str]) -> ReplayReport:
        for _number, event in parse_events(lines):
            self.apply(event)
        logger.info("Replayed %d events", self._report.events)
        return self._report

    # ── handlers ──────────────────────────────────────────────────────────

    def _flow_start(self, event: FlowStartEvent) -> None:
        flow_id = self._engine.tracker.start_flow(event.kind, event.owner_id, event.template_id)
        self._report.flows[event.ref] = flow_id

    def _flow_step(self, event: FlowStepEvent) -> None:
        # An unknown ref is passed through as-is; the tracker ignores unknown ids.
        flow_id = self._report.flows.get(event.ref, event.ref)
        self._engine.tracker.track_study_step(flow_id, event.step, event.data, event.success)

    def _flow_complete(self, event: FlowCompleteEvent) -> None:
        flow_id = self._report.flows.get(event.ref, event.ref)
        self._engine.tracker.complete_flow(flow_id, event.blocks_count)

    def _journey_start(self, event: JourneyStartEvent) -> None:
        device = describe_device(
            event.user_agent,
            event.viewport_width,
            event.viewport_height,
            mobile_viewport_width=self._engine.settings.flows.mobile_viewport_width,
        )
        journey_id = self._engine.tracker.track_participant_journey(
            event.participant_id, event.study_id, event.total_blocks, device
        )
        self._report.journeys[event.ref] = journey_id

    def _journey_block(self, event: JourneyBlockEvent) -> None:
        journey_id = self._report.journeys.get(event.ref, event.ref)
        started = self._clock.now()
        self._clock.advance(milliseconds=event.duration_ms)
        self._engine.tracker.track_participant_block(
            journey_id,
            event.block_type,
            event.block_index,
            started,
            interactions=event.interactions,
            success=event.success,
            data=event.data,
        )

    def _journey_complete(self, event: JourneyCompleteEvent) -> None:
        journey_id = self._report.journeys.get(event.ref, event.ref)
        self._engine.tracker.complete_participant_journey(journey_id)

    def _validate(self, event: ValidateEvent) -> None:
        outcome = self._engine.validator.validate_payload(event.payload)
        if not outcome.is_valid:
            self._report.invalid_validations += 1

    def _metric(self, event: MetricEvent) -> None:
        if self._engine.performance.record(event.name, event.value, event.unit, event.context):
            self._report.alerts += 1

    def _api_call(self, event: ApiCallEvent) -> None:
        self._report.alerts += len(self._engine.performance.track_api_performance(event.call))

    def _component_render(self, event: ComponentRenderEvent) -> None:
        self._report.alerts += len(
            self._engine.performance.track_component_performance(event.render)
        )

    def _study_builder_load(self, event: StudyBuilderLoadEvent) -> None:
        self._report.alerts += len(
            self._engine.performance.track_study_builder_performance(event.load)
        )

    def _analyze(self, _event: AnalyzeEvent) -> None:
        self._engine.run_analysis_cycle()
        self._report.analysis_runs += 1


__all__ = [
    "EventReplayer",
    "ReplayError",
    "ReplayEvent",
    "ReplayReport",
    "parse_events",
]

"""Flow & journey tracker.

Records ordered step sequences for researcher flows (study creation, launch,
payment) and participant journeys through a study's block sequence, derives
completion ratios from critical-path templates, and detects drop-off points.

Identifiers handed out by ``start_flow`` and ``track_participant_journey`` are
the only way to address an instance; stale or unknown identifiers are ignored
so UI code can fire tracking calls without guarding them.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from hubsight.config import FlowConfig
from hubsight.core.clock import SystemClock, as_utc, elapsed_ms
from hubsight.core.logging import correlation_scope
from hubsight.core.metrics import DROP_OFFS_TOTAL, FLOW_EVENTS_TOTAL, TRACKED_INSTANCES
from hubsight.core.sink import safe_emit
from hubsight.flows.analytics import (
    average,
    block_time_stats,
    common_drop_off_points,
    fraction,
    interaction_pattern,
)
from hubsight.models.common import Severity
from hubsight.models.flows import (
    CriticalPath,
    CriticalPathPerformance,
    DeviceBreakdown,
    DeviceInfo,
    DropOffAnalysis,
    FlowAnalytics,
    FlowInstance,
    FlowMetric,
    FlowPerformance,
    FlowStatus,
    FlowStep,
    JourneyInsights,
    JourneyInstance,
    JourneySignal,
    JourneyStep,
    ParticipantInsights,
    StudyCreationInsights,
)
from hubsight.protocols.clock import Clock
from hubsight.protocols.sink import TelemetrySink

logger = logging.getLogger(__name__)

STUDY_CREATION = "study_creation"
PARTICIPANT_JOURNEY = "participant_journey"


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


class FlowJourneyTracker:
    """In-memory tracker for researcher flows and participant journeys."""

    def __init__(
        self,
        config: FlowConfig | None = None,
        *,
        sink: TelemetrySink | None = None,
        clock: Clock | None = None,
        id_factory: Callable[[str], str] = _new_id,
    ) -> None:
        self._config = config or FlowConfig()
        self._paths: dict[str, CriticalPath] = {
            path.name: path for path in self._config.critical_paths
        }
        self._passive_block_types = frozenset(self._config.passive_block_types)
        self._sink = sink
        self._clock = clock or SystemClock()
        self._id_factory = id_factory

        self._flows: dict[str, FlowInstance] = {}
        self._journeys: dict[str, JourneyInstance] = {}
        self._flow_metrics: dict[str, FlowMetric] = {}
        self._drop_off_counts: dict[str, int] = {}
        self._lock = threading.RLock()

    def critical_path(self, kind: str) -> CriticalPath | None:
        return self._paths.get(kind)

    # ── researcher flows ──────────────────────────────────────────────────

    def start_flow(self, kind: str, owner_id: str, template_id: str | None = None) -> str:
        flow_id = self._id_factory("flow")
        flow = FlowInstance(
            flow_id=flow_id,
            kind=kind,
            owner_id=owner_id,
            template_id=template_id,
            start_time=self._clock.now(),
        )
        with self._lock:
            self._flows[flow_id] = flow
            self._update_gauges()

        FLOW_EVENTS_TOTAL.labels(kind=kind, event="started").inc()
        with correlation_scope(flow_id=flow_id):
            logger.debug("Flow %s started for %s (template=%s)", kind, owner_id, template_id)
        return flow_id

    def track_study_creation(self, researcher_id: str, template_id: str | None = None) -> str:
        return self.start_flow(STUDY_CREATION, researcher_id, template_id)

    def track_study_step(
        self,
        flow_id: str,
        step_name: str,
        data: dict[str, Any] | None = None,
        success: bool = True,
    ) -> FlowStep | None:
        """Append a step; the first failing step becomes the drop-off point.

        After a drop-off the completion rate is frozen while further steps are
        still recorded. Steps for completed or unknown flows are ignored.
        """
        with self._lock:
            flow = self._flows.get(flow_id)
            if flow is None:
                logger.debug("Ignoring step %r for unknown flow %s", step_name, flow_id)
                return None
            if flow.status == FlowStatus.completed:
                logger.debug("Ignoring step %r for completed flow %s", step_name, flow_id)
                return None

            now = self._clock.now()
            previous = flow.steps[-1].timestamp if flow.steps else flow.start_time
            step = FlowStep(
                name=step_name,
                timestamp=now,
                duration_since_last_step_ms=elapsed_ms(previous, now),
                success=success,
                data=dict(data) if data else None,
                errors=[] if success else ["Step failed"],
            )
            flow.steps.append(step)

            if flow.drop_off_point is None:
                flow.completion_rate = max(flow.completion_rate, self._completion_for(flow))

            dropped = not success and flow.drop_off_point is None
            if dropped:
                flow.drop_off_point = step_name
                flow.status = FlowStatus.abandoned
                self._drop_off_counts[step_name] = self._drop_off_counts.get(step_name, 0) + 1
            snapshot = flow.model_copy(deep=True)

        FLOW_EVENTS_TOTAL.labels(kind=snapshot.kind, event="step").inc()
        with correlation_scope(flow_id=flow_id):
            logger.debug(
                "Flow step %s recorded (success=%s, completion=%.2f)",
                step_name,
                success,
                snapshot.completion_rate,
            )
            if dropped:
                self._analyze_drop_off(snapshot, step)
        return step

    def complete_flow(self, flow_id: str, blocks_count: int = 0) -> FlowInstance | None:
        with self._lock:
            flow = self._flows.get(flow_id)
            if flow is None or flow.status == FlowStatus.completed:
                logger.debug("Ignoring completion for unknown or finished flow %s", flow_id)
                return None

            now = self._clock.now()
            flow.end_time = now
            flow.duration_ms = elapsed_ms(flow.start_time, now)
            flow.blocks_count = blocks_count
            flow.completion_rate = 1.0
            flow.status = FlowStatus.completed

            path = self._paths.get(flow.kind)
            if path is not None:
                flow.efficiency = "high" if flow.duration_ms < path.expected_duration_ms else "low"

            metric = self._flow_metrics.setdefault(flow.kind, FlowMetric())
            metric.observe(flow.duration_ms, 1.0 if flow.drop_off_point is None else 0.0)
            snapshot = flow.model_copy(deep=True)

        FLOW_EVENTS_TOTAL.labels(kind=snapshot.kind, event="completed").inc()
        with correlation_scope(flow_id=flow_id):
            safe_emit(
                self._sink,
                "Flow completion analysis",
                {
                    "flowId": flow_id,
                    "kind": snapshot.kind,
                    "efficiency": snapshot.efficiency,
                    "durationMs": snapshot.duration_ms,
                    "blocksCreated": snapshot.blocks_count,
                    "steps": len(snapshot.steps),
                    "templateUsed": snapshot.template_id is not None,
                    "severity": Severity.low.value,
                },
            )
        return snapshot

    def complete_study_creation(self, flow_id: str, blocks_count: int) -> FlowInstance | None:
        return self.complete_flow(flow_id, blocks_count)

    def get_flow(self, flow_id: str) -> FlowInstance | None:
        with self._lock:
            flow = self._flows.get(flow_id)
            return flow.model_copy(deep=True) if flow is not None else None

    # ── participant journeys ──────────────────────────────────────────────

    def track_participant_journey(
        self,
        participant_id: str,
        study_id: str,
        total_blocks: int,
        device: DeviceInfo | None = None,
    ) -> str:
        journey_id = self._id_factory("journey")
        journey = JourneyInstance(
            journey_id=journey_id,
            participant_id=participant_id,
            study_id=study_id,
            start_time=self._clock.now(),
            total_blocks=max(0, total_blocks),
            device=device or DeviceInfo(),
        )
        with self._lock:
            self._journeys[journey_id] = journey
            self._update_gauges()

        FLOW_EVENTS_TOTAL.labels(kind=PARTICIPANT_JOURNEY, event="started").inc()
        with correlation_scope(journey_id=journey_id):
            logger.debug(
                "Participant journey started (participant=%s, study=%s, blocks=%d)",
                participant_id,
                study_id,
                total_blocks,
            )
        return journey_id

    def track_participant_block(
        self,
        journey_id: str,
        block_type: str,
        block_index: int,
        start_time: datetime,
        interactions: int = 0,
        success: bool = True,
        data: dict[str, Any] | None = None,
    ) -> JourneyStep | None:
        """Record one block; a failure freezes progress at the pre-failure count."""
        with self._lock:
            journey = self._journeys.get(journey_id)
            if journey is None or journey.status == FlowStatus.completed:
                logger.debug("Ignoring block %d for unknown or finished journey %s", block_index, journey_id)
                return None

            now = self._clock.now()
            start_time = as_utc(start_time)
            duration = elapsed_ms(start_time, now)
            step = JourneyStep(
                block_type=block_type,
                block_index=block_index,
                start_time=start_time,
                end_time=now,
                duration_ms=duration,
                interactions=interactions,
                success=success,
                data=dict(data) if data else None,
            )
            journey.steps.append(step)
            journey.time_spent_per_block[block_index] = duration

            dropped = False
            if journey.drop_off_point is None:
                if success:
                    journey.completed_block_indices.add(block_index)
                    journey.blocks_completed = len(journey.completed_block_indices)
                    if journey.total_blocks:
                        journey.completion_rate = min(
                            1.0, journey.blocks_completed / journey.total_blocks
                        )
                else:
                    journey.drop_off_point = f"block_{block_index}_{block_type}"
                    journey.status = FlowStatus.abandoned
                    dropped = True

            signals = self._behaviour_signals(step, now)
            journey.signals.extend(signals)
            snapshot = journey.model_copy(deep=True)

        FLOW_EVENTS_TOTAL.labels(kind=PARTICIPANT_JOURNEY, event="block").inc()
        with correlation_scope(journey_id=journey_id):
            if dropped:
                DROP_OFFS_TOTAL.labels(kind=PARTICIPANT_JOURNEY).inc()
                safe_emit(
                    self._sink,
                    "Participant drop-off detected",
                    {
                        "journeyId": journey_id,
                        "blockType": block_type,
                        "blockIndex": block_index,
                        "durationMs": duration,
                        "interactions": interactions,
                        "blocksCompleted": snapshot.blocks_completed,
                        "severity": Severity.high.value,
                    },
                )
            for signal in signals:
                self._emit_signal(journey_id, signal)
        return step

    def complete_participant_journey(self, journey_id: str) -> JourneyInsights | None:
        with self._lock:
            journey = self._journeys.get(journey_id)
            if journey is None or journey.status == FlowStatus.completed:
                logger.debug("Ignoring completion for unknown or finished journey %s", journey_id)
                return None

            now = self._clock.now()
            journey.end_time = now
            journey.completion_rate = 1.0
            clean = journey.drop_off_point is None and journey.blocks_completed >= journey.total_blocks
            journey.status = FlowStatus.completed

            insights = self._journey_insights(journey)
            metric = self._flow_metrics.setdefault(f"{journey.study_id}_journey", FlowMetric())
            metric.observe(insights.total_duration_ms, 1.0 if clean else 0.0)
            snapshot = journey.model_copy(deep=True)

        FLOW_EVENTS_TOTAL.labels(kind=PARTICIPANT_JOURNEY, event="completed").inc()
        with correlation_scope(journey_id=journey_id):
            safe_emit(
                self._sink,
                "Participant journey completed",
                {
                    "journeyId": journey_id,
                    "studyId": snapshot.study_id,
                    "blocksCompleted": snapshot.blocks_completed,
                    "totalBlocks": snapshot.total_blocks,
                    "insights": insights.model_dump(),
                    "severity": Severity.low.value,
                },
            )
            if snapshot.drop_off_point is not None:
                safe_emit(
                    self._sink,
                    "Journey finished after drop-off",
                    {
                        "participantId": snapshot.participant_id,
                        "studyId": snapshot.study_id,
                        "dropOffPoint": snapshot.drop_off_point,
                        "stepsRecorded": len(snapshot.steps),
                        "totalBlocks": snapshot.total_blocks,
                        "severity": Severity.medium.value,
                    },
                )
        return insights

    def get_journey(self, journey_id: str) -> JourneyInstance | None:
        with self._lock:
            journey = self._journeys.get(journey_id)
            return journey.model_copy(deep=True) if journey is not None else None

    # ── analytics ─────────────────────────────────────────────────────────

    def get_flow_performance(self, kind: str) -> FlowPerformance:
        with self._lock:
            flows = [flow for flow in self._flows.values() if flow.kind == kind]
            flows = [flow.model_copy(deep=True) for flow in flows]

        completed = [flow.duration_ms for flow in flows if flow.duration_ms is not None]
        threshold = self._success_threshold(kind)
        return FlowPerformance(
            kind=kind,
            total_flows=len(flows),
            completed_flows=len(completed),
            avg_duration_ms=average(completed),
            success_rate=fraction(flow.completion_rate >= threshold for flow in flows),
            common_drop_off_points=common_drop_off_points(
                (flow.drop_off_point for flow in flows), self._config.drop_off_top_n
            ),
        )

    def get_flow_analytics(self) -> FlowAnalytics:
        with self._lock:
            flows = [flow.model_copy(deep=True) for flow in self._flows.values()]
            journeys = [journey.model_copy(deep=True) for journey in self._journeys.values()]
            flow_metrics = {key: metric.model_copy() for key, metric in self._flow_metrics.items()}
            drop_off_counts = dict(self._drop_off_counts)

        return FlowAnalytics(
            active_study_flows=len(flows),
            active_participant_journeys=len(journeys),
            flow_metrics=flow_metrics,
            drop_off_counts=drop_off_counts,
            critical_path_performance=self._critical_path_performance(flows),
            drop_off_analysis=self._drop_off_analysis(flows),
            study_creation=self._study_creation_insights(flows),
            participants=self._participant_insights(journeys),
        )

    def analyze_flow_trends(self) -> FlowAnalytics:
        """Periodic check: report critical paths running below their threshold."""
        analytics = self.get_flow_analytics()
        for name, performance in analytics.critical_path_performance.items():
            if performance.total_flows and performance.actual_success_rate < performance.success_threshold:
                safe_emit(
                    self._sink,
                    "Critical path below success threshold",
                    {
                        "path": name,
                        "totalFlows": performance.total_flows,
                        "actualSuccessRate": performance.actual_success_rate,
                        "successThreshold": performance.success_threshold,
                        "severity": Severity.medium.value,
                    },
                )
        return analytics

    def sweep_expired(self) -> int:
        """Evict flows and journeys started before the retention window."""
        cutoff = self._clock.now() - timedelta(hours=self._config.retention_hours)
        with self._lock:
            expired_flows = [key for key, flow in self._flows.items() if flow.start_time < cutoff]
            expired_journeys = [
                key for key, journey in self._journeys.items() if journey.start_time < cutoff
            ]
            for key in expired_flows:
                del self._flows[key]
            for key in expired_journeys:
                del self._journeys[key]
            self._update_gauges()

        evicted = len(expired_flows) + len(expired_journeys)
        if evicted:
            logger.info(
                "Retention sweep evicted %d flow(s) and %d journey(s)",
                len(expired_flows),
                len(expired_journeys),
            )
        return evicted

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _completion_for(self, flow: FlowInstance) -> float:
        path = self._paths.get(flow.kind)
        if path is None:
            return flow.completion_rate
        return min(1.0, len(flow.steps) / len(path.steps))

    def _success_threshold(self, kind: str) -> float:
        path = self._paths.get(kind)
        return path.success_threshold if path is not None else self._config.default_success_threshold

    def _analyze_drop_off(self, flow: FlowInstance, step: FlowStep) -> None:
        DROP_OFFS_TOTAL.labels(kind=flow.kind).inc()
        safe_emit(
            self._sink,
            "Drop-off detected",
            {
                "flowId": flow.flow_id,
                "kind": flow.kind,
                "stepName": step.name,
                "completionRate": flow.completion_rate,
                "timestamp": step.timestamp.isoformat(),
                "severity": Severity.medium.value,
            },
        )

    def _behaviour_signals(self, step: JourneyStep, now: datetime) -> list[JourneySignal]:
        signals: list[JourneySignal] = []
        if step.duration_ms > self._config.long_block_ms:
            signals.append(
                JourneySignal(
                    kind="long_time_on_block",
                    block_index=step.block_index,
                    block_type=step.block_type,
                    value=step.duration_ms,
                    recorded_at=now,
                )
            )
        if step.interactions == 0 and step.block_type not in self._passive_block_types:
            signals.append(
                JourneySignal(
                    kind="zero_interactions",
                    block_index=step.block_index,
                    block_type=step.block_type,
                    value=0,
                    recorded_at=now,
                )
            )
        return signals

    def _emit_signal(self, journey_id: str, signal: JourneySignal) -> None:
        message = (
            "Long time spent on block"
            if signal.kind == "long_time_on_block"
            else "Zero interactions detected"
        )
        safe_emit(
            self._sink,
            message,
            {
                "journeyId": journey_id,
                "blockType": signal.block_type,
                "blockIndex": signal.block_index,
                "value": signal.value,
                "severity": Severity.medium.value,
            },
        )

    @staticmethod
    def _journey_insights(journey: JourneyInstance) -> JourneyInsights:
        avg_block, fastest, slowest = block_time_stats(journey.time_spent_per_block)
        end = journey.end_time or journey.start_time
        return JourneyInsights(
            total_duration_ms=elapsed_ms(journey.start_time, end),
            avg_time_per_block_ms=avg_block,
            fastest_block_ms=fastest,
            slowest_block_ms=slowest,
            device_type="mobile" if journey.device.is_mobile else "desktop",
            completion_rate=journey.completion_rate,
            interaction_pattern=interaction_pattern([step.interactions for step in journey.steps]),
        )

    def _critical_path_performance(
        self, flows: list[FlowInstance]
    ) -> dict[str, CriticalPathPerformance]:
        performance: dict[str, CriticalPathPerformance] = {}
        for name, path in self._paths.items():
            matching = [flow for flow in flows if flow.kind == name]
            succeeded = [flow for flow in matching if flow.completion_rate >= path.success_threshold]
            performance[name] = CriticalPathPerformance(
                expected_duration_ms=path.expected_duration_ms,
                success_threshold=path.success_threshold,
                total_flows=len(matching),
                actual_success_rate=len(succeeded) / len(matching) if matching else 0.0,
                avg_duration_ms=average(
                    flow.duration_ms for flow in succeeded if flow.duration_ms is not None
                ),
            )
        return performance

    def _drop_off_analysis(self, flows: list[FlowInstance]) -> DropOffAnalysis:
        dropped = [flow for flow in flows if flow.drop_off_point]
        return DropOffAnalysis(
            total_flows=len(flows),
            drop_off_count=len(dropped),
            drop_off_rate=len(dropped) / len(flows) if flows else 0.0,
            common_drop_off_points=common_drop_off_points(
                (flow.drop_off_point for flow in flows), self._config.drop_off_top_n
            ),
        )

    def _study_creation_insights(self, flows: list[FlowInstance]) -> StudyCreationInsights:
        creation = [flow for flow in flows if flow.kind == STUDY_CREATION]
        threshold = self._success_threshold(STUDY_CREATION)
        return StudyCreationInsights(
            avg_creation_time_ms=average(
                flow.duration_ms for flow in creation if flow.duration_ms is not None
            ),
            success_rate=fraction(flow.completion_rate >= threshold for flow in creation),
        )

    def _participant_insights(self, journeys: list[JourneyInstance]) -> ParticipantInsights:
        threshold = self._config.journey_success_threshold
        mobile = [journey for journey in journeys if journey.device.is_mobile]
        desktop = [journey for journey in journeys if not journey.device.is_mobile]
        return ParticipantInsights(
            avg_block_time_ms=average(
                block_time_stats(journey.time_spent_per_block)[0] for journey in journeys
            ),
            completion_rate=fraction(journey.completion_rate >= threshold for journey in journeys),
            devices=DeviceBreakdown(
                mobile_count=len(mobile),
                desktop_count=len(desktop),
                mobile_completion_rate=fraction(j.completion_rate >= threshold for j in mobile),
                desktop_completion_rate=fraction(j.completion_rate >= threshold for j in desktop),
            ),
        )

    def _update_gauges(self) -> None:
        TRACKED_INSTANCES.labels(type="flow").set(len(self._flows))
        TRACKED_INSTANCES.labels(type="journey").set(len(self._journeys))


__all__ = ["PARTICIPANT_JOURNEY", "STUDY_CREATION", "FlowJourneyTracker"]

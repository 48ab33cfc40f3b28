"""ObservabilityEngine: the service object the host application owns.

Constructs the validator, the flow/journey tracker and the performance
monitor once, shares the sink and clock between them, and registers their
periodic analysis with a scheduler. Collaborators receive the engine (or one
of its components) by reference.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from hubsight.config import HubsightSettings
from hubsight.core.clock import SystemClock
from hubsight.core.metrics import observe_periodic_task
from hubsight.core.sink import LoggingSink
from hubsight.core.telemetry import get_tracer, task_span
from hubsight.flows.tracker import FlowJourneyTracker
from hubsight.models.flows import FlowAnalytics
from hubsight.models.performance import PerformanceSummary
from hubsight.models.validation import ValidationStats
from hubsight.performance.monitor import MemoryProbe, PerformanceMonitor
from hubsight.protocols.clock import Clock
from hubsight.protocols.scheduler import TaskScheduler
from hubsight.protocols.sink import TelemetrySink
from hubsight.scheduler.ap_scheduler import AsyncCallback, HubsightScheduler
from hubsight.validation.validator import BusinessRuleValidator

logger = logging.getLogger(__name__)

R = TypeVar("R")

VALIDATION_ANALYSIS = "validation_analysis"
FLOW_ANALYSIS = "flow_analysis"
PERFORMANCE_ANALYSIS = "performance_analysis"
RETENTION_SWEEP = "retention_sweep"
DETAILED_MONITORING = "detailed_monitoring"


@dataclass(slots=True)
class AnalysisCycle:
    """Results of one synchronous pass over every periodic task."""

    validation: ValidationStats
    flows: FlowAnalytics
    performance: PerformanceSummary
    evicted: int


class ObservabilityEngine:
    def __init__(
        self,
        settings: HubsightSettings | None = None,
        *,
        sink: TelemetrySink | None = None,
        clock: Clock | None = None,
        scheduler: TaskScheduler | None = None,
        memory_probe: MemoryProbe | None = None,
    ) -> None:
        self.settings = settings or HubsightSettings()
        self.clock = clock or SystemClock()
        self.sink = sink if sink is not None else LoggingSink()
        self.validator = BusinessRuleValidator(
            self.settings.validation, sink=self.sink, clock=self.clock
        )
        self.tracker = FlowJourneyTracker(self.settings.flows, sink=self.sink, clock=self.clock)
        self.performance = PerformanceMonitor(
            self.settings.performance,
            sink=self.sink,
            clock=self.clock,
            memory_probe=memory_probe,
        )
        self.scheduler = scheduler or HubsightScheduler()
        self._tracer = get_tracer(__name__)
        self._started = False
        self._detailed = False

    @property
    def started(self) -> bool:
        return self._started

    @property
    def detailed_monitoring(self) -> bool:
        return self._detailed

    async def start(self) -> None:
        """Register the periodic jobs and start the scheduler. Idempotent."""
        if self._started:
            return
        schedule = self.settings.schedule
        for name, task in self._analysis_tasks().items():
            self.scheduler.add_heartbeat(name, schedule.analysis_interval_s, self._job(name, task))
        self.scheduler.add_heartbeat(
            RETENTION_SWEEP,
            schedule.retention_sweep_interval_s,
            self._job(RETENTION_SWEEP, self.tracker.sweep_expired),
        )
        if schedule.detailed_monitoring:
            self.enable_detailed_monitoring()

        await self.scheduler.start()
        self._started = True
        logger.info("Observability engine started")

    def enable_detailed_monitoring(self) -> None:
        """Add the fast memory sampling and summary job."""
        if self._detailed:
            return
        self.scheduler.add_heartbeat(
            DETAILED_MONITORING,
            self.settings.schedule.detailed_interval_s,
            self._job(DETAILED_MONITORING, self._detailed_monitoring_pass),
        )
        self._detailed = True
        logger.info(
            "Detailed monitoring enabled (every %gs)", self.settings.schedule.detailed_interval_s
        )

    def pause(self) -> None:
        self.scheduler.pause()

    def resume(self) -> None:
        self.scheduler.resume()

    async def dispose(self) -> None:
        """Stop all periodic work. Collected state stays readable."""
        await self.scheduler.shutdown()
        self._started = False
        self._detailed = False
        logger.info("Observability engine disposed")

    def run_analysis_cycle(self) -> AnalysisCycle:
        """Run every periodic task once, in order, on the calling thread."""
        return AnalysisCycle(
            validation=self._run_task(
                VALIDATION_ANALYSIS, self.validator.analyze_validation_patterns
            ),
            flows=self._run_task(FLOW_ANALYSIS, self.tracker.analyze_flow_trends),
            performance=self._run_task(
                PERFORMANCE_ANALYSIS, self.performance.analyze_performance_trends
            ),
            evicted=self._run_task(RETENTION_SWEEP, self.tracker.sweep_expired),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _analysis_tasks(self) -> dict[str, Callable[[], Any]]:
        return {
            VALIDATION_ANALYSIS: self.validator.analyze_validation_patterns,
            FLOW_ANALYSIS: self.tracker.analyze_flow_trends,
            PERFORMANCE_ANALYSIS: self.performance.analyze_performance_trends,
        }

    def _detailed_monitoring_pass(self) -> PerformanceSummary:
        self.performance.collect_memory_metrics()
        return self.performance.analyze_performance_trends()

    def _run_task(self, name: str, task: Callable[[], R]) -> R:
        with task_span(self._tracer, name), observe_periodic_task(name):
            return task()

    def _job(self, name: str, task: Callable[[], Any]) -> AsyncCallback:
        async def _run() -> None:
            self._run_task(name, task)

        return _run


__all__ = [
    "DETAILED_MONITORING",
    "FLOW_ANALYSIS",
    "PERFORMANCE_ANALYSIS",
    "RETENTION_SWEEP",
    "VALIDATION_ANALYSIS",
    "AnalysisCycle",
    "ObservabilityEngine",
]

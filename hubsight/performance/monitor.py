"""Threshold-based performance monitor.

Metric samples are kept per name in bounded logs. A sample whose name maps to
a threshold family is compared against that family's bound and a breach
raises exactly one alert. Values are never validated: NaN and negative
samples are stored as-is and simply never breach.
"""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timedelta
from typing import Any

from hubsight.config import PerformanceConfig
from hubsight.core.bounded_log import BoundedLog
from hubsight.core.clock import SystemClock
from hubsight.core.metrics import ALERTS_TOTAL, METRIC_SAMPLES_TOTAL
from hubsight.core.sink import safe_emit
from hubsight.models.common import Severity
from hubsight.models.performance import (
    Alert,
    AlertType,
    APICall,
    APISummary,
    ComponentRender,
    ComponentSummary,
    FamilyAggregate,
    Metric,
    MetricUnit,
    PerformanceSummary,
    SlowAPI,
    SlowComponent,
    SlowOperationsAnalysis,
    SlowStudyOperation,
    StudyBuilderLoad,
    StudyBuilderSummary,
    ThresholdFamily,
    WebVitalsSummary,
)
from hubsight.performance.thresholds import (
    ALERT_RULES,
    COMPONENT_ERROR_RULE,
    OPTIMIZATION_BOUNDS,
    SERVER_ERROR_RULE,
    AlertRule,
    breaches,
    family_for,
)
from hubsight.protocols.clock import Clock
from hubsight.protocols.sink import TelemetrySink

logger = logging.getLogger(__name__)

MemoryProbe = Callable[[], Mapping[str, float]]

_MIB = 1024 * 1024
_WEB_VITALS = (ThresholdFamily.lcp, ThresholdFamily.fid, ThresholdFamily.cls)
_RECOMMENDATIONS: tuple[tuple[AlertType, str], ...] = (
    (AlertType.slow_response, "Consider implementing response caching and database optimization"),
    (AlertType.memory_leak, "Review component lifecycle and cleanup procedures"),
    (AlertType.error_spike, "Implement better error handling and monitoring"),
    (AlertType.degradation, "Optimize Web Vitals: defer non-critical scripts and stabilise layout"),
)
_LCP_RECOMMENDATION = "Optimize images and reduce server response time for better LCP"


def _finite_mean(values: Iterable[float], ndigits: int | None = None) -> float:
    """Mean over finite values only; 0.0 when none are finite."""
    finite = [value for value in values if math.isfinite(value)]
    if not finite:
        return 0.0
    mean = sum(finite) / len(finite)
    return float(round(mean, ndigits)) if ndigits is not None else float(round(mean))


class PerformanceMonitor:
    """Collects performance samples, raises threshold alerts and summarises both."""

    def __init__(
        self,
        config: PerformanceConfig | None = None,
        *,
        sink: TelemetrySink | None = None,
        clock: Clock | None = None,
        memory_probe: MemoryProbe | None = None,
    ) -> None:
        self._config = config or PerformanceConfig()
        self._thresholds = self._config.thresholds
        self._sink = sink
        self._clock = clock or SystemClock()
        self._memory_probe = memory_probe

        self._metrics: dict[str, BoundedLog[Metric]] = {}
        self._alerts: BoundedLog[Alert] = BoundedLog(self._config.alert_capacity)
        self._api_calls: BoundedLog[APICall] = BoundedLog(self._config.api_capacity)
        self._components: dict[str, ComponentRender] = {}
        self._study_loads: BoundedLog[StudyBuilderLoad] = BoundedLog(
            self._config.study_builder_capacity
        )
        self._lock = threading.RLock()

    # ── recording ─────────────────────────────────────────────────────────

    def record(
        self,
        name: str,
        value: float,
        unit: MetricUnit | str = MetricUnit.ms,
        context: dict[str, Any] | None = None,
        *,
        subject: str | None = None,
    ) -> Alert | None:
        """Store one sample and return the alert it raised, if any."""
        now = self._clock.now()
        metric = Metric(name=name, value=value, unit=unit, timestamp=now, context=context)
        with self._lock:
            samples = self._metrics.get(name)
            if samples is None:
                samples = BoundedLog(self._config.metric_capacity)
                self._metrics[name] = samples
            samples.append(metric)
        METRIC_SAMPLES_TOTAL.labels(name=name).inc()

        family = family_for(name)
        if family is None:
            return None
        threshold = self._thresholds.for_family(family)
        if not breaches(value, threshold):
            return None

        rule = ALERT_RULES[family]
        return self._raise_alert(
            rule,
            subject or name,
            threshold=threshold,
            actual_value=value,
            severity=rule.severity_for(value, threshold),
            metric_name=name,
            timestamp=now,
        )

    def track_api_performance(self, call: APICall) -> list[Alert]:
        if call.timestamp is None:
            call = call.model_copy(update={"timestamp": self._clock.now()})
        with self._lock:
            self._api_calls.append(call)

        alerts: list[Alert] = []
        slow = self.record(
            ThresholdFamily.api_response.value,
            call.response_time,
            MetricUnit.ms,
            {"endpoint": call.endpoint, "method": call.method, "statusCode": call.status_code},
            subject=call.endpoint,
        )
        if slow is not None:
            alerts.append(slow)
            logger.info(
                "Slow API response on %s: %.0fms (threshold %.0fms, status %d)",
                call.endpoint,
                call.response_time,
                slow.threshold,
                call.status_code,
            )
        if call.status_code >= 500:
            alerts.append(
                self._raise_alert(
                    SERVER_ERROR_RULE,
                    call.endpoint,
                    threshold=0,
                    actual_value=call.status_code,
                    severity=SERVER_ERROR_RULE.severity,
                )
            )
        return alerts

    def track_component_performance(self, render: ComponentRender) -> list[Alert]:
        if render.last_update is None:
            render = render.model_copy(update={"last_update": self._clock.now()})
        with self._lock:
            self._components[render.component_name] = render

        alerts: list[Alert] = []
        slow = self.record(
            ThresholdFamily.component_render.value,
            render.render_time,
            MetricUnit.ms,
            {"component": render.component_name, "updateCount": render.update_count},
            subject=render.component_name,
        )
        if slow is not None:
            alerts.append(slow)
        if render.error_count > 0:
            alerts.append(
                self._raise_alert(
                    COMPONENT_ERROR_RULE,
                    render.component_name,
                    threshold=0,
                    actual_value=render.error_count,
                    severity=COMPONENT_ERROR_RULE.severity,
                )
            )
        return alerts

    def track_study_builder_performance(self, load: StudyBuilderLoad) -> list[Alert]:
        if load.timestamp is None:
            load = load.model_copy(update={"timestamp": self._clock.now()})
        with self._lock:
            self._study_loads.append(load)

        context = {"studyId": load.study_id, "blocksCount": load.blocks_count}
        alerts = [
            self.record(
                ThresholdFamily.study_builder_load.value,
                load.load_time,
                MetricUnit.ms,
                context,
                subject=f"study {load.study_id}",
            ),
            self.record(
                ThresholdFamily.memory_usage.value,
                load.memory_usage,
                MetricUnit.bytes,
                context,
                subject=f"Study Builder {load.study_id}",
            ),
        ]
        logger.debug(
            "Study Builder performance for %s: %d blocks, load %.0fms, save %.0fms, %.2fMB",
            load.study_id,
            load.blocks_count,
            load.load_time,
            load.save_time,
            load.memory_usage / _MIB,
        )
        return [alert for alert in alerts if alert is not None]

    def collect_memory_metrics(self) -> list[Alert]:
        """Sample the host memory probe; a missing probe records nothing."""
        if self._memory_probe is None:
            return []
        try:
            sample = dict(self._memory_probe())
        except Exception:
            logger.warning("Memory probe failed", exc_info=True)
            return []

        alerts: list[Alert] = []
        for name, value in sample.items():
            alert = self.record(name, value, MetricUnit.bytes)
            if alert is not None:
                alerts.append(alert)
        return alerts

    # ── queries ───────────────────────────────────────────────────────────

    def metrics(self, name: str) -> list[Metric]:
        with self._lock:
            samples = self._metrics.get(name)
            return samples.snapshot() if samples is not None else []

    def alerts(self) -> list[Alert]:
        with self._lock:
            return self._alerts.snapshot()

    def active_alerts(self) -> list[Alert]:
        cutoff = self._clock.now() - timedelta(minutes=self._config.active_alert_window_minutes)
        return [alert for alert in self.alerts() if alert.timestamp > cutoff]

    def get_performance_summary(self) -> PerformanceSummary:
        with self._lock:
            metrics = {name: samples.snapshot() for name, samples in self._metrics.items()}
            api_calls = self._api_calls.snapshot()
            components = list(self._components.values())
            study_loads = self._study_loads.snapshot()

        active = self.active_alerts()
        web_vitals = self._web_vitals(metrics)
        return PerformanceSummary(
            families=self._family_aggregates(metrics),
            api=self._api_summary(api_calls),
            components=self._component_summary(components),
            study_builder=self._study_builder_summary(study_loads),
            web_vitals=web_vitals,
            active_alerts=active,
            recommendations=self._recommendations(active, web_vitals),
        )

    def get_slow_operations_analysis(self) -> SlowOperationsAnalysis:
        limit = self._config.slow_operations_limit
        with self._lock:
            api_calls = self._api_calls.snapshot()
            components = list(self._components.values())
            study_loads = self._study_loads.snapshot()

        api_bound = self._thresholds.api_response
        slow_calls = sorted(
            (call for call in api_calls if call.response_time > api_bound),
            key=lambda call: call.response_time,
            reverse=True,
        )[:limit]
        render_bound = self._thresholds.component_render
        slow_components = sorted(
            (render for render in components if render.render_time > render_bound),
            key=lambda render: render.render_time,
            reverse=True,
        )[:limit]
        load_bound = self._thresholds.study_builder_load
        slow_loads = sorted(
            (load for load in study_loads if load.load_time > load_bound),
            key=lambda load: load.load_time,
            reverse=True,
        )[:limit]

        frequency: dict[str, int] = {}
        for call in api_calls:
            frequency[call.endpoint] = frequency.get(call.endpoint, 0) + 1

        return SlowOperationsAnalysis(
            slow_apis=[
                SlowAPI(
                    endpoint=call.endpoint,
                    response_time_ms=call.response_time,
                    frequency=frequency[call.endpoint],
                )
                for call in slow_calls
            ],
            slow_components=[
                SlowComponent(
                    name=render.component_name,
                    render_time_ms=render.render_time,
                    update_count=render.update_count,
                )
                for render in slow_components
            ],
            slow_study_operations=[
                SlowStudyOperation(
                    study_id=load.study_id,
                    blocks_count=load.blocks_count,
                    load_time_ms=load.load_time,
                    memory_usage_bytes=load.memory_usage,
                )
                for load in slow_loads
            ],
        )

    def get_optimization_suggestions(self) -> list[str]:
        with self._lock:
            api_calls = self._api_calls.snapshot()
            components = list(self._components.values())
            study_loads = self._study_loads.snapshot()

        suggestions: list[str] = []
        api_bound = OPTIMIZATION_BOUNDS[ThresholdFamily.api_response]
        if any(call.response_time > api_bound for call in api_calls):
            suggestions.append("Consider implementing API response caching for slow endpoints")
            suggestions.append("Review database query optimization for slow API responses")

        render_bound = OPTIMIZATION_BOUNDS[ThresholdFamily.component_render]
        if any(render.render_time > render_bound for render in components):
            suggestions.append("Consider memoization for heavy-rendering components")
            suggestions.append("Review component prop dependencies for unnecessary re-renders")

        load_bound = OPTIMIZATION_BOUNDS[ThresholdFamily.study_builder_load]
        if any(load.load_time > load_bound for load in study_loads):
            suggestions.append("Implement lazy loading for Study Builder blocks")
            suggestions.append("Consider pagination for studies with many blocks")

        if any(load.memory_usage > self._thresholds.memory_usage for load in study_loads):
            suggestions.append("Review memory leaks in Study Builder components")
            suggestions.append("Release subscriptions and listeners when blocks unmount")
        return suggestions

    def analyze_performance_trends(self) -> PerformanceSummary:
        """Periodic check: hand the current summary to the sink."""
        summary = self.get_performance_summary()
        safe_emit(
            self._sink,
            "Performance summary",
            {
                "severity": Severity.low.value,
                "activeAlerts": len(summary.active_alerts),
                "recommendations": list(summary.recommendations),
                "families": {
                    name: aggregate.model_dump() for name, aggregate in summary.families.items()
                },
            },
        )
        return summary

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _raise_alert(
        self,
        rule: AlertRule,
        subject: str,
        *,
        threshold: float,
        actual_value: float,
        severity: Severity,
        metric_name: str | None = None,
        timestamp: datetime | None = None,
    ) -> Alert:
        alert = Alert(
            type=rule.type,
            severity=severity,
            message=rule.render(subject),
            threshold=threshold,
            actual_value=actual_value,
            timestamp=timestamp or self._clock.now(),
            suggestions=list(rule.suggestions),
            metric_name=metric_name,
        )
        with self._lock:
            self._alerts.append(alert)
        ALERTS_TOTAL.labels(type=alert.type.value, severity=alert.severity.value).inc()
        safe_emit(
            self._sink,
            f"Performance alert: {alert.message}",
            alert.model_dump(mode="json"),
        )
        return alert

    def _family_aggregates(self, metrics: dict[str, list[Metric]]) -> dict[str, FamilyAggregate]:
        pooled: dict[ThresholdFamily, list[float]] = {}
        for name, samples in metrics.items():
            family = family_for(name)
            if family is not None:
                pooled.setdefault(family, []).extend(sample.value for sample in samples)

        aggregates: dict[str, FamilyAggregate] = {}
        for family, values in pooled.items():
            threshold = self._thresholds.for_family(family)
            finite = [value for value in values if math.isfinite(value)]
            aggregates[family.value] = FamilyAggregate(
                count=len(values),
                mean=sum(finite) / len(finite) if finite else 0.0,
                breaches=sum(1 for value in values if breaches(value, threshold)),
            )
        return aggregates

    def _api_summary(self, calls: list[APICall]) -> APISummary:
        if not calls:
            return APISummary()
        total = len(calls)
        return APISummary(
            total_requests=total,
            average_response_time_ms=_finite_mean(call.response_time for call in calls),
            error_rate=round(sum(1 for call in calls if call.status_code >= 400) / total, 2),
            slow_requests=sum(
                1 for call in calls if call.response_time > self._thresholds.api_response
            ),
            cache_hit_rate=sum(1 for call in calls if call.cached) / total,
        )

    def _component_summary(self, components: list[ComponentRender]) -> ComponentSummary:
        if not components:
            return ComponentSummary()
        return ComponentSummary(
            total_components=len(components),
            average_render_time_ms=_finite_mean(render.render_time for render in components),
            total_errors=sum(render.error_count for render in components),
            slow_components=sum(
                1
                for render in components
                if render.render_time > self._thresholds.component_render
            ),
        )

    def _study_builder_summary(self, loads: list[StudyBuilderLoad]) -> StudyBuilderSummary:
        if not loads:
            return StudyBuilderSummary()
        total = len(loads)
        return StudyBuilderSummary(
            total_loads=total,
            average_load_time_ms=_finite_mean(load.load_time for load in loads),
            average_memory_usage_mb=_finite_mean((load.memory_usage / _MIB for load in loads), 2),
            slow_loads=sum(
                1 for load in loads if load.load_time > self._thresholds.study_builder_load
            ),
        )

    def _web_vitals(self, metrics: dict[str, list[Metric]]) -> WebVitalsSummary:
        latest: dict[str, float | None] = {}
        for family in _WEB_VITALS:
            samples = metrics.get(family.value)
            latest[family.value] = samples[-1].value if samples else None
        return WebVitalsSummary(
            **latest,
            thresholds={family.value: self._thresholds.for_family(family) for family in _WEB_VITALS},
        )

    def _recommendations(self, active: list[Alert], web_vitals: WebVitalsSummary) -> list[str]:
        present = {alert.type for alert in active}
        recommendations = [text for alert_type, text in _RECOMMENDATIONS if alert_type in present]
        if web_vitals.lcp is not None and breaches(web_vitals.lcp, self._thresholds.lcp):
            recommendations.append(_LCP_RECOMMENDATION)
        return recommendations


__all__ = ["MemoryProbe", "PerformanceMonitor"]

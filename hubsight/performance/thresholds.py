"""Alert rules per threshold family and the metric-name bindings that select them."""

from __future__ import annotations

from dataclasses import dataclass

from hubsight.models.common import Severity
from hubsight.models.performance import AlertType, ThresholdFamily


@dataclass(frozen=True, slots=True)
class AlertRule:
    type: AlertType
    severity: Severity
    message: str
    suggestions: tuple[str, ...] = ()
    # Severity becomes high once the value exceeds threshold * escalation_factor.
    escalation_factor: float | None = None

    def severity_for(self, value: float, threshold: float) -> Severity:
        if self.escalation_factor is not None and value > threshold * self.escalation_factor:
            return Severity.high
        return self.severity

    def render(self, subject: str) -> str:
        return self.message.format(subject=subject)


ALERT_RULES: dict[ThresholdFamily, AlertRule] = {
    ThresholdFamily.api_response: AlertRule(
        type=AlertType.slow_response,
        severity=Severity.medium,
        message="Slow API response: {subject}",
        suggestions=("Check database performance", "Implement caching", "Optimize queries"),
        escalation_factor=2.0,
    ),
    ThresholdFamily.component_render: AlertRule(
        type=AlertType.slow_response,
        severity=Severity.medium,
        message="Slow component render: {subject}",
        suggestions=("Memoize expensive renders", "Optimize props", "Consider code splitting"),
    ),
    ThresholdFamily.study_builder_load: AlertRule(
        type=AlertType.slow_response,
        severity=Severity.medium,
        message="Slow Study Builder load: {subject}",
        suggestions=("Implement lazy loading", "Optimize block rendering", "Use virtualization"),
    ),
    ThresholdFamily.memory_usage: AlertRule(
        type=AlertType.memory_leak,
        severity=Severity.high,
        message="High memory usage: {subject}",
        suggestions=(
            "Check for memory leaks",
            "Clean up event listeners",
            "Optimize data structures",
        ),
    ),
    ThresholdFamily.error_rate: AlertRule(
        type=AlertType.error_spike,
        severity=Severity.high,
        message="Error rate above threshold: {subject}",
        suggestions=("Check server logs", "Review error handling"),
    ),
    ThresholdFamily.lcp: AlertRule(
        type=AlertType.degradation,
        severity=Severity.medium,
        message="Largest Contentful Paint is slower than recommended",
        suggestions=("Optimize images and fonts", "Reduce server response time"),
    ),
    ThresholdFamily.fid: AlertRule(
        type=AlertType.degradation,
        severity=Severity.medium,
        message="First Input Delay exceeded threshold",
        suggestions=("Reduce JavaScript execution time", "Split long tasks into smaller chunks"),
    ),
    ThresholdFamily.cls: AlertRule(
        type=AlertType.degradation,
        severity=Severity.medium,
        message="Cumulative Layout Shift exceeds threshold",
        suggestions=(
            "Add size attributes to images",
            "Avoid inserting content above existing content",
        ),
    ),
}

# Raised by the convenience wrappers; these compare against zero, not a family bound.
SERVER_ERROR_RULE = AlertRule(
    type=AlertType.error_spike,
    severity=Severity.high,
    message="Server error on {subject}",
    suggestions=("Check server logs", "Review error handling", "Monitor server resources"),
)
COMPONENT_ERROR_RULE = AlertRule(
    type=AlertType.error_spike,
    severity=Severity.medium,
    message="Component errors detected: {subject}",
    suggestions=("Review error boundaries", "Check prop types", "Add error handling"),
)

# Metric names accepted besides the family names themselves.
METRIC_ALIASES: dict[str, ThresholdFamily] = {
    "api_response_time": ThresholdFamily.api_response,
    "component_render_time": ThresholdFamily.component_render,
    "study_builder_load_time": ThresholdFamily.study_builder_load,
    "memory_used": ThresholdFamily.memory_usage,
}

# Lower bounds used by optimisation suggestions, ahead of the alerting thresholds.
OPTIMIZATION_BOUNDS: dict[ThresholdFamily, float] = {
    ThresholdFamily.api_response: 1000.0,
    ThresholdFamily.component_render: 50.0,
    ThresholdFamily.study_builder_load: 2000.0,
}


def family_for(metric_name: str) -> ThresholdFamily | None:
    if metric_name in METRIC_ALIASES:
        return METRIC_ALIASES[metric_name]
    try:
        return ThresholdFamily(metric_name)
    except ValueError:
        return None


def breaches(value: float, threshold: float) -> bool:
    # NaN compares False, so it never breaches.
    return value > threshold


__all__ = [
    "ALERT_RULES",
    "COMPONENT_ERROR_RULE",
    "METRIC_ALIASES",
    "OPTIMIZATION_BOUNDS",
    "SERVER_ERROR_RULE",
    "AlertRule",
    "breaches",
    "family_for",
]

"""Business-rule validator.

Evaluates domain payloads (points transactions, role-gated actions, pricing,
data snapshots) against the rule registry and keeps a bounded history that
feeds the validation stats and the periodic pattern analysis.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from typing import Any

from hubsight.config import ValidationConfig
from hubsight.core.bounded_log import BoundedLog
from hubsight.core.clock import SystemClock
from hubsight.core.metrics import VALIDATIONS_TOTAL
from hubsight.core.sink import safe_emit
from hubsight.models.common import Severity
from hubsight.models.validation import (
    CategoryBreakdown,
    CriticalIssue,
    DataSnapshot,
    ExpectedPricing,
    PointsTransaction,
    PricingRecord,
    RoleAction,
    RuleCategory,
    ValidationHistoryEntry,
    ValidationOutcome,
    ValidationStats,
)
from hubsight.protocols.clock import Clock
from hubsight.protocols.sink import TelemetrySink
from hubsight.validation.pricing import calculate_expected_pricing
from hubsight.validation.rules import Rule, RuleRegistry, build_default_rules

logger = logging.getLogger(__name__)


class BusinessRuleValidator:
    """Folds rule outcomes per category and records every validation call."""

    def __init__(
        self,
        config: ValidationConfig | None = None,
        *,
        registry: RuleRegistry | None = None,
        sink: TelemetrySink | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._config = config or ValidationConfig()
        self._registry = registry or RuleRegistry(build_default_rules(self._config))
        self._sink = sink
        self._clock = clock or SystemClock()
        self._history: BoundedLog[ValidationHistoryEntry] = BoundedLog(
            self._config.history_capacity
        )
        self._lock = threading.RLock()

    @property
    def registry(self) -> RuleRegistry:
        return self._registry

    def validate(
        self,
        categories: RuleCategory | Sequence[RuleCategory],
        payload: Any,
        *,
        validation_id: str | None = None,
        context: dict[str, object] | None = None,
    ) -> ValidationOutcome:
        """Run every rule of *categories* against *payload* and fold the results.

        A rule that rejects the payload type or raises fails on its own;
        the remaining rules still run.
        """
        if isinstance(categories, RuleCategory):
            categories = (categories,)
        categories = tuple(categories)
        if not categories:
            raise ValueError("at least one rule category is required")
        validation_id = validation_id or str(getattr(payload, "kind", categories[0].value))

        outcome = ValidationOutcome()
        failed_severities: list[Severity] = []
        for rule in self._registry.rules_for(*categories):
            result = self._evaluate_rule(rule, payload)
            if not result.is_valid:
                failed_severities.append(rule.severity)
            outcome.merge(result)

        self._record(validation_id, categories, outcome, failed_severities, context or {})
        return outcome

    def validate_points_transaction(self, transaction: PointsTransaction) -> ValidationOutcome:
        return self.validate(
            RuleCategory.points,
            transaction,
            validation_id="points_transaction",
            context={
                "transactionId": transaction.id,
                "type": transaction.type.value,
                "amount": transaction.amount,
            },
        )

    def validate_role_action(self, action: RoleAction) -> ValidationOutcome:
        return self.validate(
            (RuleCategory.roles, RuleCategory.security),
            action,
            validation_id="role_action",
            context={
                "userId": action.user_id,
                "role": action.role.value,
                "action": action.action,
                "resource": action.resource,
            },
        )

    def validate_study_pricing(self, record: PricingRecord) -> ValidationOutcome:
        expected = self.expected_pricing(record)
        return self.validate(
            RuleCategory.business,
            record,
            validation_id="study_pricing",
            context={
                "studyId": record.study_id,
                "expected": expected.model_dump(),
                "actual": {
                    "participantReward": record.participant_reward,
                    "researcherCost": record.researcher_cost,
                    "platformFee": record.platform_fee,
                },
            },
        )

    def validate_data_consistency(self, snapshot: DataSnapshot) -> ValidationOutcome:
        return self.validate(
            RuleCategory.data,
            snapshot,
            validation_id="data_consistency",
            context={
                "studiesCount": len(snapshot.studies or []),
                "participantsCount": len(snapshot.participants or []),
                "transactionsCount": len(snapshot.transactions or []),
            },
        )

    def validate_payload(
        self, payload: PointsTransaction | RoleAction | PricingRecord | DataSnapshot
    ) -> ValidationOutcome:
        """Route a tagged payload to the wrapper for its kind."""
        handlers: dict[str, Callable[[Any], ValidationOutcome]] = {
            "points_transaction": self.validate_points_transaction,
            "role_action": self.validate_role_action,
            "study_pricing": self.validate_study_pricing,
            "data_snapshot": self.validate_data_consistency,
        }
        return handlers[payload.kind](payload)

    def expected_pricing(self, record: PricingRecord) -> ExpectedPricing:
        return calculate_expected_pricing(
            self._config.pricing, record.study_type, record.blocks_count
        )

    def history(self) -> list[ValidationHistoryEntry]:
        with self._lock:
            return self._history.snapshot()

    def get_validation_stats(self) -> ValidationStats:
        history = self.history()
        recent = history[-self._config.stats_window :]
        error_rate = _error_rate(recent)
        critical_issues = self._critical_issues(history)

        return ValidationStats(
            total_validations=len(history),
            recent_validations=len(recent),
            error_rate=error_rate,
            validations_by_category=_group_by_category(recent),
            critical_issues=critical_issues,
            recommendations=self._recommendations(recent, error_rate, critical_issues),
        )

    def analyze_validation_patterns(self) -> ValidationStats:
        """Periodic check: surface an elevated error rate to the sink."""
        stats = self.get_validation_stats()
        if stats.error_rate > self._config.alert_error_rate:
            safe_emit(
                self._sink,
                "High validation error rate detected",
                {
                    "severity": Severity.high.value,
                    "errorRate": stats.error_rate,
                    "criticalIssues": [issue.model_dump(mode="json") for issue in stats.critical_issues],
                    "recommendations": stats.recommendations,
                },
            )
        return stats

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _evaluate_rule(rule: Rule[Any], payload: object) -> ValidationOutcome:
        if not rule.accepts(payload):
            return ValidationOutcome.failed(
                f"Rule '{rule.name}' cannot validate a {type(payload).__name__} payload"
            )
        try:
            return rule.evaluate(payload)
        except Exception as exc:
            logger.warning("Rule %s raised while evaluating payload", rule.name, exc_info=True)
            return ValidationOutcome.failed(f"Rule '{rule.name}' could not evaluate payload: {exc}")

    def _record(
        self,
        validation_id: str,
        categories: tuple[RuleCategory, ...],
        outcome: ValidationOutcome,
        failed_severities: list[Severity],
        context: dict[str, object],
    ) -> None:
        severity = Severity.highest(failed_severities)
        entry = ValidationHistoryEntry(
            timestamp=self._clock.now(),
            rule_id=validation_id,
            categories=list(categories),
            severity=severity,
            result=outcome.model_copy(deep=True),
        )
        with self._lock:
            self._history.append(entry)

        if not outcome.is_valid:
            label = "invalid"
        elif outcome.warnings:
            label = "warning"
        else:
            label = "valid"
        VALIDATIONS_TOTAL.labels(category=categories[0].value, outcome=label).inc()

        if outcome.noteworthy:
            safe_emit(
                self._sink,
                f"Validation {'errors' if not outcome.is_valid else 'warnings'} for {validation_id}",
                {
                    **context,
                    "severity": severity.value if severity else Severity.low.value,
                    "errors": list(outcome.errors),
                    "warnings": list(outcome.warnings),
                    "suggestions": list(outcome.suggestions),
                },
            )

    def _critical_issues(self, history: list[ValidationHistoryEntry]) -> list[CriticalIssue]:
        critical = [
            entry
            for entry in history
            if entry.severity == Severity.critical and not entry.result.is_valid
        ]
        return [
            CriticalIssue(
                rule_id=entry.rule_id,
                timestamp=entry.timestamp,
                errors=list(entry.result.errors),
            )
            for entry in critical[-self._config.critical_issue_limit :]
        ]

    def _recommendations(
        self,
        recent: list[ValidationHistoryEntry],
        error_rate: float,
        critical_issues: list[CriticalIssue],
    ) -> list[str]:
        recommendations: list[str] = []
        if error_rate > self._config.high_error_rate:
            recommendations.append(
                "High error rate detected - review validation rules and business logic"
            )
        if critical_issues:
            recommendations.append("Critical validation issues found - immediate attention required")

        points_failures = sum(
            1
            for entry in recent
            if RuleCategory.points in entry.categories and not entry.result.is_valid
        )
        if points_failures > self._config.points_failure_limit:
            recommendations.append(
                "Multiple points system validation failures - review points calculation logic"
            )
        return recommendations


def _error_rate(entries: list[ValidationHistoryEntry]) -> float:
    if not entries:
        return 0.0
    return sum(1 for entry in entries if not entry.result.is_valid) / len(entries)


def _group_by_category(entries: list[ValidationHistoryEntry]) -> dict[str, CategoryBreakdown]:
    # Grouped under the primary category of the call.
    groups: dict[str, CategoryBreakdown] = {}
    for entry in entries:
        if not entry.categories:
            continue
        group = groups.setdefault(entry.categories[0].value, CategoryBreakdown())
        group.total += 1
        if not entry.result.is_valid:
            group.errors += 1
        if entry.result.warnings:
            group.warnings += 1
    return groups


__all__ = ["BusinessRuleValidator"]

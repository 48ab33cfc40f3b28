"""Rule definitions and the category registry.

A rule is a named, categorised pure predicate over one payload type. The
registry keeps rules in registration order per category so validation of a
category is a plain lookup instead of string branching at call sites.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from hubsight.config import PointsLimits, PricingSchedule, ValidationConfig
from hubsight.models.common import Severity
from hubsight.models.validation import (
    DataSnapshot,
    PointsTransaction,
    PricingRecord,
    RoleAction,
    RuleCategory,
    TransactionType,
    UserRole,
    ValidationOutcome,
)
from hubsight.validation.pricing import calculate_expected_pricing

P = TypeVar("P")

_MAX_LISTED_REFERENCES = 5


@dataclass(frozen=True, slots=True)
class Rule(Generic[P]):
    name: str
    description: str
    category: RuleCategory
    severity: Severity
    payload_type: type[P]
    predicate: Callable[[P], ValidationOutcome]

    def accepts(self, payload: object) -> bool:
        return isinstance(payload, self.payload_type)

    def evaluate(self, payload: P) -> ValidationOutcome:
        return self.predicate(payload)


class RuleRegistry:
    """Category -> ordered rules, populated once at construction."""

    def __init__(self, rules: Iterable[Rule[Any]] = ()) -> None:
        self._by_category: dict[RuleCategory, list[Rule[Any]]] = {
            category: [] for category in RuleCategory
        }
        self._by_name: dict[str, Rule[Any]] = {}
        for rule in rules:
            self.register(rule)

    def register(self, rule: Rule[Any]) -> None:
        if rule.name in self._by_name:
            raise ValueError(f"rule '{rule.name}' already registered")
        self._by_name[rule.name] = rule
        self._by_category[rule.category].append(rule)

    def get(self, name: str) -> Rule[Any] | None:
        return self._by_name.get(name)

    def rules_for(self, *categories: RuleCategory) -> list[Rule[Any]]:
        rules: list[Rule[Any]] = []
        for category in categories:
            rules.extend(self._by_category[category])
        return rules

    @property
    def names(self) -> list[str]:
        return list(self._by_name)

    def __len__(self) -> int:
        return len(self._by_name)


# ── points ────────────────────────────────────────────────────────────────


def _amount_positive(tx: PointsTransaction) -> ValidationOutcome:
    if tx.amount > 0:
        return ValidationOutcome.passed()
    return ValidationOutcome.failed(
        "Transaction amount must be positive",
        suggestions=["Ensure all transaction amounts are greater than 0"],
    )


def _minimum_amount(limits: PointsLimits) -> Callable[[PointsTransaction], ValidationOutcome]:
    def check(tx: PointsTransaction) -> ValidationOutcome:
        if 0 < tx.amount < limits.min_transaction_amount:
            return ValidationOutcome.passed(
                warnings=[
                    f"Transaction amount {tx.amount} is below the minimum of "
                    f"{limits.min_transaction_amount}"
                ],
                suggestions=["Round small transactions up to the minimum amount"],
            )
        return ValidationOutcome.passed()

    return check


def _daily_limit(limits: PointsLimits) -> Callable[[PointsTransaction], ValidationOutcome]:
    def check(tx: PointsTransaction) -> ValidationOutcome:
        warnings: list[str] = []
        if tx.type == TransactionType.earn and tx.amount > limits.max_daily_earning:
            warnings.append(
                f"Transaction amount exceeds daily earning limit of {limits.max_daily_earning}"
            )
        if tx.type == TransactionType.spend and tx.amount > limits.max_daily_spending:
            warnings.append(
                f"Transaction amount exceeds daily spending limit of {limits.max_daily_spending}"
            )
        return ValidationOutcome.passed(
            warnings=warnings,
            suggestions=["Consider implementing rate limiting"] if warnings else [],
        )

    return check


def _party_present(tx: PointsTransaction) -> ValidationOutcome:
    warnings: list[str] = []
    if tx.type == TransactionType.earn and not tx.participant_id:
        warnings.append("Earn transaction has no participantId")
    if tx.type == TransactionType.spend and not tx.researcher_id:
        warnings.append("Spend transaction has no researcherId")
    return ValidationOutcome.passed(
        warnings=warnings,
        suggestions=["Attach the owning account to every transaction"] if warnings else [],
    )


# ── roles / security ──────────────────────────────────────────────────────


def _role_permission(
    permissions: dict[UserRole, list[str]],
) -> Callable[[RoleAction], ValidationOutcome]:
    allowed_by_role = {role: frozenset(actions) for role, actions in permissions.items()}

    def check(action: RoleAction) -> ValidationOutcome:
        # The caller-supplied ``allowed`` flag is deliberately ignored.
        if action.action in allowed_by_role.get(action.role, frozenset()):
            return ValidationOutcome.passed()
        return ValidationOutcome.failed(
            f"Unauthorized action: {action.action} for role {action.role}",
            suggestions=["Review role permissions and access controls"],
        )

    return check


def _admin_audit(action: RoleAction) -> ValidationOutcome:
    if action.role == UserRole.admin and not action.allowed:
        return ValidationOutcome.passed(
            warnings=["Admin action was denied - investigate potential security issue"],
            suggestions=["Review admin access logs"],
        )
    return ValidationOutcome.passed()


# ── business / pricing ────────────────────────────────────────────────────


def _pricing_matches(schedule: PricingSchedule) -> Callable[[PricingRecord], ValidationOutcome]:
    def check(record: PricingRecord) -> ValidationOutcome:
        expected = calculate_expected_pricing(schedule, record.study_type, record.blocks_count)
        comparisons = (
            ("participantReward", expected.participant_reward, record.participant_reward),
            ("researcherCost", expected.researcher_cost, record.researcher_cost),
            ("platformFee", expected.platform_fee, record.platform_fee),
        )
        errors = [
            f"{field} mismatch: expected {want:.2f}, got {got:.2f}"
            for field, want, got in comparisons
            if not abs(got - want) <= schedule.tolerance
        ]
        if errors:
            return ValidationOutcome.failed(
                *errors,
                suggestions=["Recalculate pricing from the current pricing schedule"],
            )
        return ValidationOutcome.passed()

    return check


def _pricing_bounds(record: PricingRecord) -> ValidationOutcome:
    warnings: list[str] = []
    if record.participant_reward < 10:
        warnings.append("Participant reward is very low, may affect participation rates")
    if record.researcher_cost > 1000:
        warnings.append("Researcher cost is very high, consider optimizing study design")
    return ValidationOutcome.passed(warnings=warnings)


# ── data ──────────────────────────────────────────────────────────────────


def _study_participant_consistency(snapshot: DataSnapshot) -> ValidationOutcome:
    if snapshot.studies is None or snapshot.participants is None:
        return ValidationOutcome.failed(
            "Invalid data structure for consistency check",
            suggestions=["Ensure studies and participants arrays are provided"],
        )
    if not snapshot.studies and snapshot.participants:
        return ValidationOutcome.passed(
            warnings=["Participants exist without any studies"],
            suggestions=["Review data integrity"],
        )
    return ValidationOutcome.passed()


def _transaction_study_reference(snapshot: DataSnapshot) -> ValidationOutcome:
    if not snapshot.studies or not snapshot.transactions:
        return ValidationOutcome.passed()

    known = {str(study.get("id")) for study in snapshot.studies if study.get("id") is not None}
    unknown: list[str] = []
    for tx in snapshot.transactions:
        study_id = tx.get("studyId", tx.get("study_id"))
        if study_id is not None and str(study_id) not in known and str(study_id) not in unknown:
            unknown.append(str(study_id))

    if not unknown:
        return ValidationOutcome.passed()
    listed = ", ".join(unknown[:_MAX_LISTED_REFERENCES])
    return ValidationOutcome.passed(
        warnings=[f"Transactions reference {len(unknown)} unknown study id(s): {listed}"],
        suggestions=["Reconcile transactions against the studies table"],
    )


def build_default_rules(config: ValidationConfig) -> list[Rule[Any]]:
    limits = config.pricing.limits
    return [
        Rule(
            name="points_amount_positive",
            description="Transaction amount must be positive",
            category=RuleCategory.points,
            severity=Severity.high,
            payload_type=PointsTransaction,
            predicate=_amount_positive,
        ),
        Rule(
            name="points_minimum_amount",
            description="Transaction amount should reach the minimum amount",
            category=RuleCategory.points,
            severity=Severity.low,
            payload_type=PointsTransaction,
            predicate=_minimum_amount(limits),
        ),
        Rule(
            name="points_daily_limit",
            description="Check daily earning/spending limits",
            category=RuleCategory.points,
            severity=Severity.medium,
            payload_type=PointsTransaction,
            predicate=_daily_limit(limits),
        ),
        Rule(
            name="points_party_present",
            description="Earn and spend transactions name their account",
            category=RuleCategory.points,
            severity=Severity.low,
            payload_type=PointsTransaction,
            predicate=_party_present,
        ),
        Rule(
            name="role_action_permission",
            description="Validate role has permission for action",
            category=RuleCategory.roles,
            severity=Severity.critical,
            payload_type=RoleAction,
            predicate=_role_permission(config.role_permissions),
        ),
        Rule(
            name="admin_action_audit",
            description="Audit all admin actions for security",
            category=RuleCategory.security,
            severity=Severity.critical,
            payload_type=RoleAction,
            predicate=_admin_audit,
        ),
        Rule(
            name="pricing_matches_schedule",
            description="Submitted pricing equals the schedule within tolerance",
            category=RuleCategory.business,
            severity=Severity.high,
            payload_type=PricingRecord,
            predicate=_pricing_matches(config.pricing),
        ),
        Rule(
            name="pricing_reasonable_bounds",
            description="Flag unusually low rewards or high costs",
            category=RuleCategory.business,
            severity=Severity.low,
            payload_type=PricingRecord,
            predicate=_pricing_bounds,
        ),
        Rule(
            name="study_participant_consistency",
            description="Check study-participant relationship consistency",
            category=RuleCategory.data,
            severity=Severity.high,
            payload_type=DataSnapshot,
            predicate=_study_participant_consistency,
        ),
        Rule(
            name="transaction_study_reference",
            description="Transactions reference studies present in the snapshot",
            category=RuleCategory.data,
            severity=Severity.medium,
            payload_type=DataSnapshot,
            predicate=_transaction_study_reference,
        ),
    ]


__all__ = ["Rule", "RuleRegistry", "build_default_rules"]

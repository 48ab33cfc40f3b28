"""Pydantic models for business-rule validation.

Each rule category validates exactly one payload type; the payloads form a
closed union discriminated by ``kind``.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from hubsight.models.common import EventModel, Severity


class RuleCategory(StrEnum):
    points = "points"
    roles = "roles"
    data = "data"
    security = "security"
    business = "business"


class TransactionType(StrEnum):
    earn = "earn"
    spend = "spend"
    transfer = "transfer"
    refund = "refund"


class UserRole(StrEnum):
    researcher = "researcher"
    participant = "participant"
    admin = "admin"


class StudyType(StrEnum):
    unmoderated = "unmoderated"
    moderated = "moderated"


class PointsTransaction(EventModel):
    kind: Literal["points_transaction"] = "points_transaction"
    id: str
    type: TransactionType
    # Not constrained here: a non-positive amount is a rule violation to report.
    amount: float
    participant_id: str | None = None
    researcher_id: str | None = None
    study_id: str | None = None
    timestamp: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class RoleAction(EventModel):
    kind: Literal["role_action"] = "role_action"
    user_id: str
    role: UserRole
    action: str
    resource: str
    timestamp: datetime | None = None
    # Audit-only; never used to decide validity.
    allowed: bool = True


class PricingRecord(EventModel):
    kind: Literal["study_pricing"] = "study_pricing"
    study_id: str
    blocks_count: int = Field(ge=0)
    study_type: StudyType
    participant_reward: float
    researcher_cost: float
    platform_fee: float
    calculated_at: datetime | None = None


class DataSnapshot(EventModel):
    """Cross-table snapshot; a ``None`` collection means it was not supplied."""

    kind: Literal["data_snapshot"] = "data_snapshot"
    studies: list[dict[str, Any]] | None = None
    participants: list[dict[str, Any]] | None = None
    transactions: list[dict[str, Any]] | None = None


ValidationPayload = Annotated[
    PointsTransaction | RoleAction | PricingRecord | DataSnapshot,
    Field(discriminator="kind"),
]


class ValidationOutcome(BaseModel):
    is_valid: bool = True
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)

    @classmethod
    def passed(
        cls,
        *,
        warnings: list[str] | None = None,
        suggestions: list[str] | None = None,
    ) -> ValidationOutcome:
        return cls(warnings=warnings or [], suggestions=suggestions or [])

    @classmethod
    def failed(cls, *errors: str, suggestions: list[str] | None = None) -> ValidationOutcome:
        return cls(is_valid=False, errors=list(errors), suggestions=suggestions or [])

    @property
    def noteworthy(self) -> bool:
        return not self.is_valid or bool(self.warnings)

    def merge(self, other: ValidationOutcome) -> None:
        """Fold *other* into this outcome (union of messages, AND of validity)."""
        self.is_valid = self.is_valid and other.is_valid
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.suggestions.extend(other.suggestions)


class ExpectedPricing(BaseModel):
    participant_reward: float
    researcher_cost: float
    platform_fee: float
    base_cost: float


class ValidationHistoryEntry(BaseModel):
    timestamp: datetime
    rule_id: str
    categories: list[RuleCategory]
    # Highest severity among the rules that failed; None when all passed.
    severity: Severity | None = None
    result: ValidationOutcome


class CategoryBreakdown(BaseModel):
    total: int = 0
    errors: int = 0
    warnings: int = 0


class CriticalIssue(BaseModel):
    rule_id: str
    timestamp: datetime
    errors: list[str]


class ValidationStats(BaseModel):
    total_validations: int = 0
    recent_validations: int = 0
    error_rate: float = 0.0
    validations_by_category: dict[str, CategoryBreakdown] = Field(default_factory=dict)
    critical_issues: list[CriticalIssue] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


__all__ = [
    "CategoryBreakdown",
    "CriticalIssue",
    "DataSnapshot",
    "ExpectedPricing",
    "PointsTransaction",
    "PricingRecord",
    "RoleAction",
    "RuleCategory",
    "StudyType",
    "TransactionType",
    "UserRole",
    "ValidationHistoryEntry",
    "ValidationOutcome",
    "ValidationPayload",
    "ValidationStats",
]

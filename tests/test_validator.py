from __future__ import annotations

import pytest

from hubsight.config import ValidationConfig
from hubsight.core.clock import ManualClock
from hubsight.core.sink import RecordingSink
from hubsight.models.common import Severity
from hubsight.models.validation import (
    DataSnapshot,
    PointsTransaction,
    PricingRecord,
    RoleAction,
    RuleCategory,
    StudyType,
    TransactionType,
    UserRole,
    ValidationOutcome,
)
from hubsight.validation.rules import Rule, RuleRegistry, build_default_rules
from hubsight.validation.validator import BusinessRuleValidator


@pytest.fixture
def validator(clock: ManualClock, sink: RecordingSink) -> BusinessRuleValidator:
    return BusinessRuleValidator(sink=sink, clock=clock)


def _pricing(**overrides: object) -> PricingRecord:
    values: dict[str, object] = {
        "study_id": "s1",
        "blocks_count": 3,
        "study_type": StudyType.unmoderated,
        "participant_reward": 80,
        "researcher_cost": 143.75,
        "platform_fee": 18.75,
    }
    values.update(overrides)
    return PricingRecord.model_validate(values)


class TestPricingValidation:
    def test_matching_pricing_is_valid(self, validator: BusinessRuleValidator) -> None:
        outcome = validator.validate_study_pricing(_pricing())
        assert outcome.is_valid
        assert outcome.errors == []

    def test_within_tolerance_is_valid(self, validator: BusinessRuleValidator) -> None:
        assert validator.validate_study_pricing(_pricing(researcher_cost=143.755)).is_valid

    def test_researcher_cost_mismatch(self, validator: BusinessRuleValidator) -> None:
        outcome = validator.validate_study_pricing(_pricing(researcher_cost=150))
        assert not outcome.is_valid
        assert outcome.errors == ["researcherCost mismatch: expected 143.75, got 150.00"]
        assert validator.history()[-1].severity == Severity.high

    def test_low_reward_warns(self, validator: BusinessRuleValidator) -> None:
        record = _pricing(participant_reward=5)
        outcome = validator.validate_study_pricing(record)
        assert not outcome.is_valid
        assert "Participant reward is very low, may affect participation rates" in outcome.warnings

    def test_accepts_camel_case_payload(self, validator: BusinessRuleValidator) -> None:
        record = PricingRecord.model_validate(
            {
                "studyId": "s2",
                "blocksCount": 0,
                "studyType": "moderated",
                "participantReward": 100,
                "researcherCost": 180,
                "platformFee": 30,
            }
        )
        assert validator.validate_study_pricing(record).is_valid


class TestRoleValidation:
    def test_unauthorized_action_is_critical(
        self, validator: BusinessRuleValidator, sink: RecordingSink
    ) -> None:
        action = RoleAction(
            user_id="u1",
            role=UserRole.participant,
            action="manage_users",
            resource="users",
            allowed=True,
        )
        outcome = validator.validate_role_action(action)

        assert not outcome.is_valid
        assert outcome.errors == ["Unauthorized action: manage_users for role participant"]
        entry = validator.history()[-1]
        assert entry.severity == Severity.critical
        assert entry.categories == [RuleCategory.roles, RuleCategory.security]

        events = sink.find("Validation errors for role_action")
        assert len(events) == 1
        assert events[0].context["severity"] == "critical"
        assert events[0].context["userId"] == "u1"

    def test_permitted_action_is_valid(
        self, validator: BusinessRuleValidator, sink: RecordingSink
    ) -> None:
        action = RoleAction(
            user_id="r1", role=UserRole.researcher, action="create_study", resource="study"
        )
        assert validator.validate_role_action(action).is_valid
        assert sink.messages() == []

    def test_denied_admin_action_warns(self, validator: BusinessRuleValidator) -> None:
        action = RoleAction(
            user_id="a1",
            role=UserRole.admin,
            action="manage_users",
            resource="users",
            allowed=False,
        )
        outcome = validator.validate_role_action(action)
        assert outcome.is_valid
        assert outcome.warnings == [
            "Admin action was denied - investigate potential security issue"
        ]


class TestPointsValidation:
    def test_non_positive_amount(self, validator: BusinessRuleValidator) -> None:
        tx = PointsTransaction(id="t1", type=TransactionType.earn, amount=0, participant_id="p1")
        outcome = validator.validate_points_transaction(tx)
        assert not outcome.is_valid
        assert "Transaction amount must be positive" in outcome.errors

    def test_daily_limit_warning(self, validator: BusinessRuleValidator) -> None:
        tx = PointsTransaction(
            id="t2", type=TransactionType.earn, amount=1500, participant_id="p1"
        )
        outcome = validator.validate_points_transaction(tx)
        assert outcome.is_valid
        assert len(outcome.warnings) == 1
        assert outcome.warnings[0].startswith("Transaction amount exceeds daily earning limit")

    def test_spend_without_researcher_warns(self, validator: BusinessRuleValidator) -> None:
        tx = PointsTransaction(id="t3", type=TransactionType.spend, amount=10)
        outcome = validator.validate_points_transaction(tx)
        assert outcome.is_valid
        assert "Spend transaction has no researcherId" in outcome.warnings


class TestDataConsistency:
    def test_missing_collections_fail(self, validator: BusinessRuleValidator) -> None:
        outcome = validator.validate_data_consistency(DataSnapshot(studies=[]))
        assert not outcome.is_valid
        assert outcome.errors == ["Invalid data structure for consistency check"]

    def test_unknown_study_reference_warns(self, validator: BusinessRuleValidator) -> None:
        snapshot = DataSnapshot(
            studies=[{"id": "s1"}],
            participants=[{"id": "p1"}],
            transactions=[{"studyId": "s1"}, {"studyId": "s9"}],
        )
        outcome = validator.validate_data_consistency(snapshot)
        assert outcome.is_valid
        assert outcome.warnings == ["Transactions reference 1 unknown study id(s): s9"]


class TestRuleContainment:
    def _registry_with(self, rule: Rule) -> RuleRegistry:
        registry = RuleRegistry(build_default_rules(ValidationConfig()))
        registry.register(rule)
        return registry

    def test_raising_rule_fails_alone(self, clock: ManualClock) -> None:
        def explode(_tx: PointsTransaction) -> ValidationOutcome:
            raise RuntimeError("boom")

        registry = self._registry_with(
            Rule(
                name="exploding",
                description="raises",
                category=RuleCategory.points,
                severity=Severity.medium,
                payload_type=PointsTransaction,
                predicate=explode,
            )
        )
        validator = BusinessRuleValidator(registry=registry, clock=clock)
        tx = PointsTransaction(id="t1", type=TransactionType.earn, amount=5, participant_id="p")
        outcome = validator.validate_points_transaction(tx)

        assert not outcome.is_valid
        assert outcome.errors == ["Rule 'exploding' could not evaluate payload: boom"]

    def test_payload_type_mismatch_fails(self, validator: BusinessRuleValidator) -> None:
        tx = PointsTransaction(id="t1", type=TransactionType.earn, amount=5, participant_id="p")
        outcome = validator.validate(RuleCategory.business, tx)
        assert not outcome.is_valid
        assert all("cannot validate a PointsTransaction payload" in e for e in outcome.errors)

    def test_empty_categories_rejected(self, validator: BusinessRuleValidator) -> None:
        with pytest.raises(ValueError, match="at least one"):
            validator.validate((), DataSnapshot())


class TestValidationStats:
    def test_stats_group_by_category(self, validator: BusinessRuleValidator) -> None:
        validator.validate_study_pricing(_pricing())
        validator.validate_study_pricing(_pricing(platform_fee=1))
        validator.validate_role_action(
            RoleAction(user_id="u", role=UserRole.participant, action="join_study", resource="s")
        )

        stats = validator.get_validation_stats()
        assert stats.total_validations == 3
        assert stats.error_rate == pytest.approx(1 / 3)
        assert stats.validations_by_category["business"].total == 2
        assert stats.validations_by_category["business"].errors == 1
        assert stats.validations_by_category["roles"].total == 1
        assert "High error rate detected - review validation rules and business logic" in (
            stats.recommendations
        )

    def test_critical_issues_listed(self, validator: BusinessRuleValidator) -> None:
        validator.validate_role_action(
            RoleAction(user_id="u", role=UserRole.researcher, action="manage_users", resource="x")
        )
        stats = validator.get_validation_stats()
        assert len(stats.critical_issues) == 1
        assert stats.critical_issues[0].rule_id == "role_action"
        assert "Critical validation issues found - immediate attention required" in (
            stats.recommendations
        )

    def test_history_is_bounded(self, clock: ManualClock) -> None:
        validator = BusinessRuleValidator(ValidationConfig(history_capacity=5), clock=clock)
        for index in range(12):
            validator.validate_study_pricing(_pricing(study_id=f"s{index}"))
        assert len(validator.history()) == 5

    def test_pattern_analysis_emits_on_high_error_rate(
        self, validator: BusinessRuleValidator, sink: RecordingSink
    ) -> None:
        validator.validate_study_pricing(_pricing(researcher_cost=1))
        stats = validator.analyze_validation_patterns()
        assert stats.error_rate == 1.0
        assert len(sink.find("High validation error rate detected")) == 1

    def test_pattern_analysis_quiet_when_healthy(
        self, validator: BusinessRuleValidator, sink: RecordingSink
    ) -> None:
        validator.validate_study_pricing(_pricing())
        validator.analyze_validation_patterns()
        assert sink.find("High validation error rate detected") == []


def test_validate_payload_routes_by_kind(validator: BusinessRuleValidator) -> None:
    outcome = validator.validate_payload(_pricing(researcher_cost=1))
    assert not outcome.is_valid
    assert validator.history()[-1].rule_id == "study_pricing"

"""Deterministic study pricing.

The UI computes rewards and costs client-side; the validator recomputes them
here from the configured schedule and flags any drift beyond the tolerance.
"""

from __future__ import annotations

from hubsight.config import PricingSchedule
from hubsight.models.validation import ExpectedPricing, StudyType


def calculate_expected_pricing(
    schedule: PricingSchedule,
    study_type: StudyType,
    blocks_count: int,
) -> ExpectedPricing:
    earning = schedule.participant_earning[study_type]
    spending = schedule.researcher_spending[study_type]

    participant_reward = min(
        earning.base_reward + blocks_count * earning.per_block, earning.max_reward
    )
    base_cost = spending.base_cost + blocks_count * spending.per_block
    platform_fee = base_cost * spending.platform_fee
    return ExpectedPricing(
        participant_reward=participant_reward,
        researcher_cost=base_cost + platform_fee,
        platform_fee=platform_fee,
        base_cost=base_cost,
    )


__all__ = ["calculate_expected_pricing"]

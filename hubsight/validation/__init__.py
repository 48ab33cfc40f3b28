from hubsight.validation.pricing import calculate_expected_pricing
from hubsight.validation.rules import Rule, RuleRegistry, build_default_rules
from hubsight.validation.validator import BusinessRuleValidator

__all__ = [
    "BusinessRuleValidator",
    "Rule",
    "RuleRegistry",
    "build_default_rules",
    "calculate_expected_pricing",
]

"""Built-in detection rules."""

from .base import Rule, AUTHORITY_NAMES
from .arithmetic import UncheckedArithmeticRule, VALUE_NAMES
from .accounts import (
    MissingSignerCheckRule,
    UncheckedAccountRule,
    MissingOwnerCheckRule,
    NonCanonicalBumpRule,
)
from .cpi import StateChangeAfterCpiRule, ArbitraryCpiRule
from .safety import UnsafeCodeRule, PanicInHandlerRule

# Built-in rules in declaration order (breaks severity ties during merging)
RULE_CLASSES = {
    "SOL-001": UncheckedArithmeticRule,
    "SOL-002": MissingSignerCheckRule,
    "SOL-003": UncheckedAccountRule,
    "SOL-004": MissingOwnerCheckRule,
    "SOL-005": StateChangeAfterCpiRule,
    "SOL-006": ArbitraryCpiRule,
    "SOL-007": UnsafeCodeRule,
    "SOL-008": PanicInHandlerRule,
    "SOL-009": NonCanonicalBumpRule,
}


def get_rule_class(rule_id: str):
    """Get a built-in rule class by id."""
    return RULE_CLASSES.get(rule_id.upper())


def create_rule(rule_id: str, **kwargs) -> Rule:
    """Create a built-in rule instance by id."""
    rule_class = get_rule_class(rule_id)
    if rule_class:
        return rule_class(**kwargs)
    raise ValueError(f"Unknown rule id: {rule_id}")


def builtin_rules(rule_config=None):
    """
    Instantiate the enabled built-in rules.

    Args:
        rule_config: Optional RuleConfig with per-rule settings

    Returns:
        Rule instances in declaration order
    """
    rules = []
    for rule_id in RULE_CLASSES:
        if rule_config is None:
            rules.append(create_rule(rule_id))
            continue
        if not rule_config.is_enabled(rule_id):
            continue
        settings = rule_config.settings_for(rule_id)
        rules.append(create_rule(rule_id, severity=settings.severity, options=settings.options))
    return rules


__all__ = [
    "Rule",
    "AUTHORITY_NAMES",
    "VALUE_NAMES",
    "UncheckedArithmeticRule",
    "MissingSignerCheckRule",
    "UncheckedAccountRule",
    "MissingOwnerCheckRule",
    "StateChangeAfterCpiRule",
    "ArbitraryCpiRule",
    "UnsafeCodeRule",
    "PanicInHandlerRule",
    "NonCanonicalBumpRule",
    "RULE_CLASSES",
    "get_rule_class",
    "create_rule",
    "builtin_rules",
]

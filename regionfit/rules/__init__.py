"""
Rules: schemas, validation, default catalogue and the versioned rule store.
"""

from regionfit.rules.defaults import get_default_rule_definitions
from regionfit.rules.schemas import (
    WILDCARD_REGION,
    Rule,
    RuleCategory,
    RulePriority,
    RuleVersion,
    generate_rule_id,
    increment_version,
    normalize_rule_data,
)
from regionfit.rules.store import BUNDLE_FORMAT_VERSION, ImportResult, RuleStore, sort_rules

__all__ = [
    # Schemas
    "Rule",
    "RuleCategory",
    "RulePriority",
    "RuleVersion",
    "WILDCARD_REGION",
    "generate_rule_id",
    "increment_version",
    "normalize_rule_data",
    # Store
    "RuleStore",
    "ImportResult",
    "sort_rules",
    "BUNDLE_FORMAT_VERSION",
    # Defaults
    "get_default_rule_definitions",
]

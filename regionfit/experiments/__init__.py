"""
Experiments: A/B test schemas, deterministic variant assignment and storage.
"""

from regionfit.experiments.assignment import (
    apply_variant,
    assign_user_to_variant,
    is_active,
    is_test_applicable,
    stable_bucket,
)
from regionfit.experiments.schemas import (
    ABTest,
    TestStatus,
    Variant,
    VariantMetrics,
    even_split,
    validate_ab_test_config,
)
from regionfit.experiments.store import ExperimentStore

__all__ = [
    "ABTest",
    "TestStatus",
    "Variant",
    "VariantMetrics",
    "even_split",
    "validate_ab_test_config",
    "apply_variant",
    "assign_user_to_variant",
    "is_active",
    "is_test_applicable",
    "stable_bucket",
    "ExperimentStore",
]

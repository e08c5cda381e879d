"""
Deterministic assignment of users to A/B test variants.

The bucket for a (user, test) pair is derived from a cryptographic hash, so it
is stable across calls, processes and restarts. These functions are pure and
safe to call concurrently.
"""

import copy
import hashlib
from datetime import datetime
from typing import Optional

from regionfit.experiments.schemas import ABTest, TestStatus
from regionfit.rules.schemas import (
    WILDCARD_REGION,
    Rule,
    canonical_keys,
    parse_timestamp,
    utc_now,
)

BUCKETS = 100


def stable_bucket(user_id: str, test_id: str) -> int:
    """Map a (user, test) pair onto 0..99."""
    digest = hashlib.sha256(f"{user_id}:{test_id}".encode("utf-8")).hexdigest()
    return int(digest[:16], 16) % BUCKETS


def assign_user_to_variant(user_id: str, test: ABTest) -> str:
    """
    Pick the variant for a user.

    Walks the cumulative traffic split in declaration order and returns the
    first variant whose cumulative percentage exceeds the user's bucket.

    Args:
        user_id: Stable user identifier
        test: The A/B test

    Returns:
        Variant name
    """
    bucket = stable_bucket(str(user_id), test.id)
    cumulative = 0.0
    for variant, share in test.traffic_split.items():
        cumulative += share
        if bucket < cumulative:
            return variant
    # Only reachable through float rounding at the top of the range
    return next(iter(test.traffic_split))


def is_within_window(test: ABTest, now: Optional[datetime] = None) -> bool:
    """True if now falls in [startDate, endDate)."""
    now = now or utc_now()
    if test.start_date and now < parse_timestamp(test.start_date):
        return False
    if test.end_date and now >= parse_timestamp(test.end_date):
        return False
    return True


def is_test_applicable(
    test: ABTest, region: Optional[str] = None, now: Optional[datetime] = None
) -> bool:
    """
    Check whether a test applies to an evaluation context.

    Args:
        test: The A/B test
        region: Context region (None matches every test)
        now: Evaluation time

    Returns:
        True if the time window is open and the region matches
    """
    if not is_within_window(test, now):
        return False
    if region is not None and WILDCARD_REGION not in test.regions and region not in test.regions:
        return False
    return True


def is_active(test: ABTest, now: Optional[datetime] = None) -> bool:
    """Active status and an open time window."""
    return test.status == TestStatus.ACTIVE and is_within_window(test, now)


def apply_variant(rule: Rule, test: ABTest, variant_name: str) -> Rule:
    """
    Overlay a variant's override on a base rule.

    A variant that overrides weight without also overriding dynamicWeight
    drops the regional weight overrides, so the variant weight applies in
    every region.

    Returns:
        A new rule tagged with abTestId/abTestVariant
    """
    variant = test.get_variant(variant_name)
    data = rule.to_dict()
    override = canonical_keys(copy.deepcopy(variant.override)) if variant else {}
    data.update(override)
    if "weight" in override and "dynamicWeight" not in override:
        data["dynamicWeight"] = {}
    data["abTestId"] = test.id
    data["abTestVariant"] = variant_name
    return Rule.from_dict(data)

"""
Schemas for A/B tests over rule variants.

A test references a rule by id and splits traffic between named variants,
each carrying a partial override of the rule's fields.
"""

import copy
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from regionfit.errors import ValidationError
from regionfit.rules.schemas import WILDCARD_REGION, parse_timestamp, utc_now

# Fields a variant may not override
PROTECTED_OVERRIDE_FIELDS = ("id", "version", "createdAt", "updatedAt", "deleted", "deletedAt")

_SPLIT_TOLERANCE = 1e-9


class TestStatus(str, Enum):
    """Lifecycle status of an A/B test."""

    # Not a pytest test class despite the name
    __test__ = False

    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass
class Variant:
    """A named partial override of a rule."""

    name: str
    override: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "rule": copy.deepcopy(self.override)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Variant":
        override = data.get("rule", data.get("override")) or {}
        return cls(name=str(data["name"]), override=copy.deepcopy(override))


@dataclass
class VariantMetrics:
    """Per-variant impression and conversion counters."""

    impressions: Dict[str, int] = field(default_factory=dict)
    conversions: Dict[str, int] = field(default_factory=dict)

    def conversion_rate(self, variant: str) -> float:
        shown = self.impressions.get(variant, 0)
        return self.conversions.get(variant, 0) / shown if shown else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"impressions": dict(self.impressions), "conversions": dict(self.conversions)}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "VariantMetrics":
        data = data or {}
        return cls(
            impressions={k: int(v) for k, v in (data.get("impressions") or {}).items()},
            conversions={k: int(v) for k, v in (data.get("conversions") or {}).items()},
        )


@dataclass
class ABTest:
    """
    A time-boxed, region-scoped split of one rule's configuration.

    Attributes:
        id: Unique identifier
        rule_id: Rule the variants override (reference, not ownership)
        variants: Named overrides, in declaration order
        traffic_split: Variant name -> percentage, summing to 100; the
            insertion order is the order buckets are walked in
        regions: Region codes, or the wildcard
        start_date: Inclusive start of the test window
        end_date: Exclusive end of the window (None = unbounded)
    """

    id: str
    rule_id: str
    variants: List[Variant]
    traffic_split: Dict[str, float]
    regions: List[str] = field(default_factory=lambda: [WILDCARD_REGION])
    start_date: str = ""
    end_date: Optional[str] = None
    status: TestStatus = TestStatus.ACTIVE
    metrics: VariantMetrics = field(default_factory=VariantMetrics)
    name: str = ""
    description: str = ""
    created_at: Optional[str] = None

    def get_variant(self, name: str) -> Optional[Variant]:
        return next((v for v in self.variants if v.name == name), None)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "ruleId": self.rule_id,
            "variants": [v.to_dict() for v in self.variants],
            "trafficSplit": dict(self.traffic_split),
            "regions": list(self.regions),
            "startDate": self.start_date,
            "endDate": self.end_date,
            "status": self.status.value,
            "metrics": self.metrics.to_dict(),
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ABTest":
        """Create from serialized form (assumed already validated)."""
        return cls(
            id=data["id"],
            rule_id=data["ruleId"],
            variants=[Variant.from_dict(v) for v in data.get("variants", [])],
            traffic_split=dict(data.get("trafficSplit") or {}),
            regions=list(data.get("regions") or [WILDCARD_REGION]),
            start_date=data.get("startDate") or "",
            end_date=data.get("endDate"),
            status=TestStatus(data.get("status", TestStatus.ACTIVE.value)),
            metrics=VariantMetrics.from_dict(data.get("metrics")),
            name=data.get("name") or "",
            description=data.get("description") or "",
            created_at=data.get("createdAt"),
        )


def generate_ab_test_id() -> str:
    return f"ab-test-{uuid.uuid4().hex[:12]}"


def even_split(names: List[str]) -> Dict[str, float]:
    """Split 100 across variants in whole percentages, remainder to the first ones."""
    base, remainder = divmod(100, len(names))
    return {name: base + (1 if i < remainder else 0) for i, name in enumerate(names)}


def validate_ab_test_config(config: Dict[str, Any], now: Optional[str] = None) -> Dict[str, Any]:
    """
    Validate an A/B test definition and fill in defaults.

    Args:
        config: Test fields (camelCase)
        now: Timestamp used for defaults (startDate, createdAt)

    Returns:
        Serialized test dict with defaults applied

    Raises:
        ValidationError: If the definition is malformed
    """
    if not isinstance(config, dict):
        raise ValidationError("A/B test config must be a mapping")
    now = now or utc_now().isoformat()

    rule_id = config.get("ruleId") or config.get("rule_id")
    if not rule_id:
        raise ValidationError("A/B test must reference a ruleId", field="ruleId")

    raw_variants = config.get("variants") or []
    if not isinstance(raw_variants, list) or not raw_variants:
        raise ValidationError("A/B test must define at least one variant", field="variants")
    variants: List[Variant] = []
    for raw in raw_variants:
        if not isinstance(raw, dict) or not raw.get("name"):
            raise ValidationError("Every variant needs a name", field="variants")
        variant = Variant.from_dict(raw)
        if not isinstance(variant.override, dict):
            raise ValidationError(f"Variant {variant.name} override must be a mapping")
        protected = [k for k in variant.override if k in PROTECTED_OVERRIDE_FIELDS]
        if protected:
            raise ValidationError(
                f"Variant {variant.name} may not override {protected}", field="variants"
            )
        variants.append(variant)
    names = [v.name for v in variants]
    if len(set(names)) != len(names):
        raise ValidationError("Variant names must be unique", field="variants")

    split = config.get("trafficSplit") or config.get("traffic_split") or even_split(names)
    if not isinstance(split, dict):
        raise ValidationError("trafficSplit must map variant name to percentage")
    if set(split) != set(names):
        raise ValidationError(
            f"trafficSplit keys {sorted(split)} must match variants {sorted(names)}",
            field="trafficSplit",
        )
    for name, pct in split.items():
        if isinstance(pct, bool) or not isinstance(pct, (int, float)) or pct < 0:
            raise ValidationError(
                f"trafficSplit for {name} must be a non-negative number", field="trafficSplit"
            )
    if abs(sum(split.values()) - 100) > _SPLIT_TOLERANCE:
        raise ValidationError(
            f"trafficSplit must sum to 100, got {sum(split.values())}", field="trafficSplit"
        )

    start_date = config.get("startDate") or config.get("start_date") or now
    end_date = config.get("endDate") or config.get("end_date")
    start = parse_timestamp(start_date)
    if end_date is not None and parse_timestamp(end_date) <= start:
        raise ValidationError("endDate must be after startDate", field="endDate")

    status = config.get("status") or TestStatus.ACTIVE.value
    try:
        status = TestStatus(status).value
    except ValueError:
        raise ValidationError(f"Invalid status: {status}", field="status") from None

    regions = config.get("regions") or [WILDCARD_REGION]
    if isinstance(regions, str):
        regions = [regions]

    metrics = VariantMetrics.from_dict(config.get("metrics"))
    for name in names:
        metrics.impressions.setdefault(name, 0)
        metrics.conversions.setdefault(name, 0)

    return {
        "id": config.get("id") or generate_ab_test_id(),
        "name": config.get("name") or "",
        "description": config.get("description") or "",
        "ruleId": rule_id,
        "variants": [v.to_dict() for v in variants],
        # Preserve declared order; it defines the bucket walk
        "trafficSplit": {name: split[name] for name in split},
        "regions": [str(r) for r in regions],
        "startDate": start_date if isinstance(start_date, str) else start.isoformat(),
        "endDate": end_date if end_date is None or isinstance(end_date, str) else end_date.isoformat(),
        "status": status,
        "metrics": metrics.to_dict(),
        "createdAt": config.get("createdAt") or now,
    }

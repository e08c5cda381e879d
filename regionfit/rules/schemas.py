"""
Schemas for localization rules and their version history.

Rules serialize to the camelCase JSON shape used by export bundles, so a
bundle written by one deployment can be imported by another unchanged.
"""

import copy
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from regionfit.errors import ValidationError

WILDCARD_REGION = "*"
DEFAULT_WEIGHT = 10.0
DEFAULT_VERSION = "1.0.0"

_VERSION_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")


class RuleCategory(str, Enum):
    """Categories a rule can score against."""

    LANGUAGE = "language"
    CULTURE = "culture"
    COMPLIANCE = "compliance"
    USER_EXPERIENCE = "userExperience"
    CROSS_BORDER = "crossBorder"


class RulePriority(str, Enum):
    """Rule priority, used to order recommendations."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return {"low": 1, "medium": 2, "high": 3, "critical": 4}[self.value]


# snake_case spellings accepted on input, mapped to the serialized key
_FIELD_ALIASES = {
    "dynamic_weight": "dynamicWeight",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "deleted_at": "deletedAt",
    "restored_from": "restoredFrom",
    "ab_test_id": "abTestId",
    "ab_test_variant": "abTestVariant",
}

# Keys the store manages itself; a patch may not set them directly
MANAGED_FIELDS = ("id", "version", "createdAt", "updatedAt", "deleted", "deletedAt")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp, treating naive values as UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise ValidationError(f"Invalid timestamp: {value}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def serialized_key(name: str) -> str:
    """Map a snake_case field name to its serialized key."""
    return _FIELD_ALIASES.get(name, name)


def canonical_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    """Rename snake_case aliases to their serialized camelCase keys."""
    return {_FIELD_ALIASES.get(k, k): v for k, v in data.items()}


def parse_version(version: str) -> tuple:
    match = _VERSION_RE.match(str(version))
    if not match:
        raise ValidationError(f"Invalid version: {version}", field="version")
    return tuple(int(part) for part in match.groups())


def increment_version(version: str) -> str:
    """Increment the patch component of a MAJOR.MINOR.PATCH version."""
    major, minor, patch = parse_version(version)
    return f"{major}.{minor}.{patch + 1}"


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug or "rule"


def generate_rule_id(category: str, name: str) -> str:
    """Generate a rule id of the form <category>-<slug>-<suffix>."""
    return f"{category}-{slugify(name)}-{uuid.uuid4().hex[:8]}"


def normalize_rule_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate raw rule data and fill in defaults.

    Args:
        data: Rule fields (camelCase or snake_case keys)

    Returns:
        A new dict in serialized form with every default applied

    Raises:
        ValidationError: If the data cannot form a valid rule
    """
    if not isinstance(data, dict):
        raise ValidationError("Rule data must be a mapping")
    raw = canonical_keys(data)

    if not raw.get("id") and not raw.get("name"):
        raise ValidationError("Rule must have either id or name", field="id")

    category = raw.get("category")
    if not category:
        raise ValidationError("Rule must have a category", field="category")
    try:
        category = RuleCategory(category).value
    except ValueError:
        raise ValidationError(f"Invalid category: {category}", field="category") from None

    priority = raw.get("priority") or RulePriority.MEDIUM.value
    try:
        priority = RulePriority(priority).value
    except ValueError:
        raise ValidationError(f"Invalid priority: {priority}", field="priority") from None

    weight = raw.get("weight")
    if weight is None:
        weight = DEFAULT_WEIGHT
    if isinstance(weight, bool) or not isinstance(weight, (int, float)) or weight <= 0:
        raise ValidationError(f"Rule weight must be a positive number: {weight}", field="weight")

    regions = raw.get("regions") or [WILDCARD_REGION]
    if isinstance(regions, str):
        regions = [regions]
    regions = [str(r) for r in regions]

    dynamic_weight = raw.get("dynamicWeight") or {}
    if not isinstance(dynamic_weight, dict):
        raise ValidationError("dynamicWeight must map region to weight", field="dynamicWeight")
    for region, value in dynamic_weight.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ValidationError(
                f"dynamicWeight for {region} must be a positive number", field="dynamicWeight"
            )

    actions = raw.get("actions") or {}
    if not isinstance(actions, dict):
        raise ValidationError("actions must be a mapping", field="actions")
    deduction = (actions.get("scoring") or {}).get("deduction", 0)
    if isinstance(deduction, bool) or not isinstance(deduction, (int, float)) or deduction < 0:
        raise ValidationError(
            f"actions.scoring.deduction must be a non-negative number: {deduction}",
            field="actions",
        )

    conditions = raw.get("conditions") or {}
    if not isinstance(conditions, dict):
        raise ValidationError("conditions must be a mapping", field="conditions")

    version = raw.get("version") or DEFAULT_VERSION
    parse_version(version)

    normalized = dict(raw)
    normalized.update(
        {
            "id": raw.get("id"),
            "category": category,
            "name": raw.get("name") or raw.get("id"),
            "description": raw.get("description") or "",
            "priority": priority,
            "enabled": raw.get("enabled") is not False,
            "weight": weight,
            "conditions": conditions,
            "actions": actions,
            "regions": regions,
            "version": version,
            "tags": list(raw.get("tags") or []),
            "dynamicWeight": dict(dynamic_weight),
        }
    )
    return normalized


@dataclass
class Rule:
    """
    A named, versioned unit of scoring logic.

    Attributes:
        id: Unique identifier
        category: Category the rule scores against
        name: Human-readable name
        priority: Recommendation priority
        enabled: Disabled rules are never selected for scoring
        weight: Recommendation ordering weight (not the score impact)
        conditions: Opaque data consumed by a condition evaluator
        actions: At minimum scoring.deduction and message
        regions: Region codes, or the wildcard
        version: MAJOR.MINOR.PATCH, patch bumped on each update
        dynamic_weight: Per-region override of weight
    """

    id: str
    category: RuleCategory
    name: str
    description: str = ""
    priority: RulePriority = RulePriority.MEDIUM
    enabled: bool = True
    weight: float = DEFAULT_WEIGHT
    conditions: Dict[str, Any] = field(default_factory=dict)
    actions: Dict[str, Any] = field(default_factory=dict)
    regions: List[str] = field(default_factory=lambda: [WILDCARD_REGION])
    version: str = DEFAULT_VERSION
    tags: List[str] = field(default_factory=list)
    dynamic_weight: Dict[str, float] = field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    deleted: bool = False
    deleted_at: Optional[str] = None
    restored_from: Optional[str] = None
    ab_test_id: Optional[str] = None
    ab_test_variant: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def deduction(self) -> float:
        """Points subtracted from the category score when the rule fires."""
        return (self.actions.get("scoring") or {}).get("deduction", 0)

    @property
    def message(self) -> str:
        return self.actions.get("message") or self.name

    def applies_to_region(self, region: Optional[str]) -> bool:
        if region is None:
            return True
        return WILDCARD_REGION in self.regions or region in self.regions

    def effective_weight(self, region: Optional[str] = None) -> float:
        """Weight for recommendation ordering, honouring dynamicWeight."""
        if region is not None and region in self.dynamic_weight:
            return self.dynamic_weight[region]
        return self.weight

    def to_dict(self) -> Dict[str, Any]:
        """Convert rule to its serialized (camelCase) form."""
        data: Dict[str, Any] = dict(copy.deepcopy(self.extra))
        data.update(
            {
                "id": self.id,
                "category": self.category.value,
                "name": self.name,
                "description": self.description,
                "priority": self.priority.value,
                "enabled": self.enabled,
                "weight": self.weight,
                "conditions": copy.deepcopy(self.conditions),
                "actions": copy.deepcopy(self.actions),
                "regions": list(self.regions),
                "version": self.version,
                "tags": list(self.tags),
                "dynamicWeight": dict(self.dynamic_weight),
                "createdAt": self.created_at,
                "updatedAt": self.updated_at,
            }
        )
        if self.deleted:
            data["deleted"] = True
            data["deletedAt"] = self.deleted_at
        for key, value in (
            ("restoredFrom", self.restored_from),
            ("abTestId", self.ab_test_id),
            ("abTestVariant", self.ab_test_variant),
        ):
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Rule":
        """Create rule from its serialized form (validated and defaulted)."""
        normalized = normalize_rule_data(data)
        if not normalized.get("id"):
            raise ValidationError("Stored rule is missing its id", field="id")
        known = {
            "id", "category", "name", "description", "priority", "enabled", "weight",
            "conditions", "actions", "regions", "version", "tags", "dynamicWeight",
            "createdAt", "updatedAt", "deleted", "deletedAt", "restoredFrom",
            "abTestId", "abTestVariant", "versionCreatedAt",
        }
        return cls(
            id=normalized["id"],
            category=RuleCategory(normalized["category"]),
            name=normalized["name"],
            description=normalized["description"],
            priority=RulePriority(normalized["priority"]),
            enabled=normalized["enabled"],
            weight=normalized["weight"],
            conditions=copy.deepcopy(normalized["conditions"]),
            actions=copy.deepcopy(normalized["actions"]),
            regions=list(normalized["regions"]),
            version=normalized["version"],
            tags=list(normalized["tags"]),
            dynamic_weight=dict(normalized["dynamicWeight"]),
            created_at=normalized.get("createdAt"),
            updated_at=normalized.get("updatedAt"),
            deleted=bool(normalized.get("deleted", False)),
            deleted_at=normalized.get("deletedAt"),
            restored_from=normalized.get("restoredFrom"),
            ab_test_id=normalized.get("abTestId"),
            ab_test_variant=normalized.get("abTestVariant"),
            extra={k: copy.deepcopy(v) for k, v in normalized.items() if k not in known},
        )


@dataclass(frozen=True)
class RuleVersion:
    """
    Immutable snapshot of a rule at the moment it was created or updated.

    The snapshot is stored in serialized form and copied on every read.
    """

    rule_id: str
    version: str
    snapshot: Dict[str, Any]
    version_created_at: str

    def to_rule(self) -> Rule:
        return Rule.from_dict(copy.deepcopy(self.snapshot))

    def to_dict(self) -> Dict[str, Any]:
        """Serialized form: the rule fields plus versionCreatedAt."""
        data = copy.deepcopy(self.snapshot)
        data["versionCreatedAt"] = self.version_created_at
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RuleVersion":
        snapshot = {k: copy.deepcopy(v) for k, v in data.items() if k != "versionCreatedAt"}
        return cls(
            rule_id=snapshot["id"],
            version=snapshot["version"],
            snapshot=snapshot,
            version_created_at=data.get("versionCreatedAt") or snapshot.get("updatedAt") or "",
        )

    @classmethod
    def of(cls, rule: Rule, created_at: str) -> "RuleVersion":
        return cls(
            rule_id=rule.id,
            version=rule.version,
            snapshot=rule.to_dict(),
            version_created_at=created_at,
        )

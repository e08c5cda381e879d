"""
Score result types and the fixed-weight overall score.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from regionfit.config import SCORED_CATEGORIES
from regionfit.errors import ValidationError

UNTOUCHED_SCORE = 100


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for non-negative values."""
    return int(math.floor(value + 0.5))


def _string_list(value: Any, name: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"{name} must be a list, got {type(value).__name__}")
    return [str(item) for item in value]


def clamp_score(value: float) -> float:
    return max(0, min(100, value))


def compute_overall_score(scores: Mapping[str, float], weights: Mapping[str, float]) -> int:
    """
    Blend category scores into the overall score.

    Args:
        scores: Category -> score; a weighted category with no score counts as 100
        weights: Category -> weight (categories outside this mapping are ignored)

    Returns:
        round(sum(weight_c * score_c)), rounding halves up
    """
    total = sum(weight * scores.get(category, UNTOUCHED_SCORE) for category, weight in weights.items())
    return round_half_up(total)


@dataclass
class CategoryScore:
    score: float = UNTOUCHED_SCORE
    issues: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"score": self.score, "issues": list(self.issues)}

    @classmethod
    def from_dict(cls, data: Any) -> "CategoryScore":
        if isinstance(data, (int, float)) and not isinstance(data, bool):
            data = {"score": data}
        if not isinstance(data, dict):
            raise ValidationError("Category score must be a number or a mapping")
        score = data.get("score", UNTOUCHED_SCORE)
        if isinstance(score, bool) or not isinstance(score, (int, float)) or not 0 <= score <= 100:
            raise ValidationError(f"Category score must be within [0, 100], got {score!r}")
        return cls(score=score, issues=_string_list(data.get("issues"), "issues"))


@dataclass
class Recommendation:
    """A fired rule in a category scoring below its threshold."""

    rule_id: str
    category: str
    priority: str
    weight: float
    message: str
    ab_test_id: Optional[str] = None
    ab_test_variant: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "ruleId": self.rule_id,
            "category": self.category,
            "priority": self.priority,
            "weight": self.weight,
            "message": self.message,
        }
        if self.ab_test_id is not None:
            data["abTestId"] = self.ab_test_id
            data["abTestVariant"] = self.ab_test_variant
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Recommendation":
        if not isinstance(data, dict):
            raise ValidationError(f"Recommendation must be a mapping, got {type(data).__name__}")
        return cls(
            rule_id=data.get("ruleId", ""),
            category=data.get("category", ""),
            priority=data.get("priority", "medium"),
            weight=data.get("weight", 0),
            message=data.get("message", ""),
            ab_test_id=data.get("abTestId"),
            ab_test_variant=data.get("abTestVariant"),
        )


@dataclass
class ScoreResult:
    """
    Outcome of one evaluation. Built fresh per call and owned by the caller.

    Attributes:
        categories: Category -> score and ordered issue messages
        overall_score: Fixed-weight blend of the four scored categories
        recommendations: Fired rules of under-threshold categories, by priority
        region: Region the result was computed for
        fired_rules: Ids of rules whose conditions fired
        ai_enhanced: Set once merged with an external result
        ai_suggestions: Suggestions carried over from the external result
    """

    categories: Dict[str, CategoryScore] = field(default_factory=dict)
    overall_score: int = UNTOUCHED_SCORE
    recommendations: List[Recommendation] = field(default_factory=list)
    region: Optional[str] = None
    fired_rules: List[str] = field(default_factory=list)
    ai_enhanced: bool = False
    ai_suggestions: List[str] = field(default_factory=list)

    def score_of(self, category: str) -> float:
        return self.categories[category].score

    def issues_of(self, category: str) -> List[str]:
        return self.categories[category].issues

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: Dict[str, Any] = {
            "region": self.region,
            "categories": {name: c.to_dict() for name, c in self.categories.items()},
            "overallScore": self.overall_score,
            "recommendations": [r.to_dict() for r in self.recommendations],
            "firedRules": list(self.fired_rules),
        }
        if self.ai_enhanced:
            data["aiEnhanced"] = True
            data["aiSuggestions"] = list(self.ai_suggestions)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScoreResult":
        """
        Create from a serialized result.

        Accepts categories either nested under "categories" or at the top
        level (the shape advisory providers usually return).

        Raises:
            ValidationError: If a field has the wrong type or a score is out of range
        """
        if not isinstance(data, dict):
            raise ValidationError("Score result must be a mapping")
        raw = data.get("categories")
        if raw is None:
            raw = {c: data[c] for c in (*SCORED_CATEGORIES, "crossBorder") if c in data}
        if not isinstance(raw, dict):
            raise ValidationError("categories must be a mapping")

        overall = data.get("overallScore", UNTOUCHED_SCORE)
        if isinstance(overall, bool) or not isinstance(overall, (int, float)):
            raise ValidationError(f"overallScore must be a number, got {overall!r}")
        recommendations = data.get("recommendations") or []
        if not isinstance(recommendations, list):
            raise ValidationError("recommendations must be a list")
        suggestions = data.get("aiSuggestions")
        if suggestions is None:
            suggestions = data.get("suggestions")
        return cls(
            categories={str(name): CategoryScore.from_dict(v) for name, v in raw.items()},
            overall_score=overall,
            recommendations=[Recommendation.from_dict(r) for r in recommendations],
            region=data.get("region"),
            fired_rules=_string_list(data.get("firedRules"), "firedRules"),
            ai_enhanced=bool(data.get("aiEnhanced", False)),
            ai_suggestions=_string_list(suggestions, "aiSuggestions"),
        )

"""
Reconciles a locally computed result with an external advisory result.
"""

from typing import Dict, List, Optional

from loguru import logger

from regionfit.config import ScoringConfig
from regionfit.errors import ValidationError
from regionfit.logging import log_scoring_event
from regionfit.scoring.schemas import (
    CategoryScore,
    ScoreResult,
    clamp_score,
    compute_overall_score,
    round_half_up,
)


def _unique(*sequences: List[str]) -> List[str]:
    """Concatenate, dropping exact duplicates, first occurrence wins."""
    seen = set()
    merged = []
    for sequence in sequences:
        for item in sequence:
            if item not in seen:
                seen.add(item)
                merged.append(item)
    return merged


class ResultMerger:
    """
    Weighted merge of a local and an external ScoreResult.

    Example:
        >>> merger = ResultMerger()
        >>> merger.merge(local, None) is local
        True
    """

    def __init__(self, scoring_config: Optional[ScoringConfig] = None):
        self.config = scoring_config or ScoringConfig()
        self._log = logger.bind(component="scoring")

    def default_weights(self) -> Dict[str, float]:
        return {
            "local": self.config.merge_local_weight,
            "external": self.config.merge_external_weight,
        }

    @staticmethod
    def _check_weights(weights: Dict[str, float]) -> None:
        if set(weights) != {"local", "external"}:
            raise ValidationError("Merge weights must define exactly 'local' and 'external'")
        if any(w < 0 for w in weights.values()):
            raise ValidationError("Merge weights must be non-negative")
        if abs(sum(weights.values()) - 1.0) > 1e-6:
            raise ValidationError("Merge weights must sum to 1.0")

    def merge(
        self,
        local: ScoreResult,
        external: Optional[ScoreResult] = None,
        weights: Optional[Dict[str, float]] = None,
    ) -> ScoreResult:
        """
        Merge two results.

        Args:
            local: Engine output
            external: Advisory result; None returns local unchanged
            weights: {"local": w, "external": w}, summing to 1

        Returns:
            New result flagged aiEnhanced, with the overall score recomputed
            from the merged category scores

        Raises:
            ValidationError: If weights are malformed
        """
        if external is None:
            return local

        weights = weights or self.default_weights()
        self._check_weights(weights)

        categories: Dict[str, CategoryScore] = {}
        for name in _unique(list(local.categories), list(external.categories)):
            mine = local.categories.get(name)
            theirs = external.categories.get(name)
            if mine is not None and theirs is not None:
                score = round_half_up(
                    mine.score * weights["local"] + theirs.score * weights["external"]
                )
                issues = _unique(mine.issues, theirs.issues)
            else:
                only = mine if mine is not None else theirs
                score, issues = only.score, _unique(only.issues)
            categories[name] = CategoryScore(score=clamp_score(score), issues=issues)

        merged = ScoreResult(
            categories=categories,
            overall_score=compute_overall_score(
                {name: c.score for name, c in categories.items()}, self.config.category_weights
            ),
            recommendations=list(local.recommendations),
            region=local.region,
            fired_rules=list(local.fired_rules),
            ai_enhanced=True,
            ai_suggestions=_unique(local.ai_suggestions, external.ai_suggestions),
        )
        log_scoring_event(
            self._log,
            "merged",
            local.region or "*",
            local_overall=local.overall_score,
            external_overall=external.overall_score,
            merged_overall=merged.overall_score,
        )
        return merged

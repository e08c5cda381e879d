"""
Scoring engine: deductions per fired rule, fixed-weight overall score.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple, Union

from loguru import logger

from regionfit.config import ScoringConfig, config
from regionfit.logging import log_scoring_event, performance_monitor
from regionfit.rules.schemas import Rule, RuleCategory
from regionfit.scoring.conditions import CompositeConditionEvaluator, ConditionEvaluator
from regionfit.scoring.schemas import (
    CategoryScore,
    Recommendation,
    ScoreResult,
    clamp_score,
    compute_overall_score,
)
from regionfit.scoring.selector import RuleSelector
from regionfit.scoring.snapshot import ContentSnapshot

CROSS_BORDER = RuleCategory.CROSS_BORDER.value
DEFAULT_THRESHOLD = 70


class ScoringEngine:
    """
    Scores a content snapshot against the effective rules for a region.

    Every category starts at 100. Each fired rule subtracts its
    `actions.scoring.deduction` from its category and adds its message to the
    category's issues. A rule's weight only orders recommendations.

    Example:
        >>> engine = ScoringEngine(selector)
        >>> result = engine.evaluate(snapshot, "DE")
        >>> result.score_of("compliance")
        75
    """

    def __init__(
        self,
        selector: RuleSelector,
        evaluator: Optional[ConditionEvaluator] = None,
        scoring_config: Optional[ScoringConfig] = None,
    ):
        """
        Initialize the engine.

        Args:
            selector: Supplies the effective rule set
            evaluator: Condition strategy (triggers + JMESPath by default)
            scoring_config: Weights, thresholds and bucket options
        """
        self.selector = selector
        self.evaluator = evaluator or CompositeConditionEvaluator()
        self.config = scoring_config or ScoringConfig()
        self._log = logger.bind(component="scoring")

    def bucket_for(self, rule: Rule, five_bucket: bool) -> str:
        """Category bucket a rule's deduction lands in."""
        category = rule.category.value
        if category != CROSS_BORDER:
            return category
        if five_bucket:
            return CROSS_BORDER
        target = rule.actions.get("category")
        if target in self.config.category_weights:
            return target
        return self.config.cross_border_bucket

    def _fired(self, rule: Rule, snapshot: ContentSnapshot, region: str) -> bool:
        try:
            return bool(self.evaluator.evaluate(rule.conditions, snapshot, region))
        except Exception as e:
            # Counts as not fired
            self._log.error(f"Condition evaluation failed for rule {rule.id}: {e}")
            return False

    def _evaluate_conditions(
        self, rules: List[Rule], snapshot: ContentSnapshot, region: str
    ) -> List[bool]:
        workers = self.config.parallel_workers
        if workers and len(rules) > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                return list(pool.map(lambda r: self._fired(r, snapshot, region), rules))
        return [self._fired(r, snapshot, region) for r in rules]

    def _recommendations(
        self, fired: List[Tuple[str, Rule]], scores: Dict[str, CategoryScore], region: str
    ) -> List[Recommendation]:
        thresholds = self.config.thresholds
        selected = [
            (bucket, rule)
            for bucket, rule in fired
            if scores[bucket].score < thresholds.get(bucket, DEFAULT_THRESHOLD)
        ]
        selected.sort(
            key=lambda item: (-item[1].priority.rank, -item[1].effective_weight(region), item[1].id)
        )
        return [
            Recommendation(
                rule_id=rule.id,
                category=bucket,
                priority=rule.priority.value,
                weight=rule.effective_weight(region),
                message=rule.message,
                ab_test_id=rule.ab_test_id,
                ab_test_variant=rule.ab_test_variant,
            )
            for bucket, rule in selected
        ]

    @performance_monitor(threshold_ms=config.scoring.slow_evaluation_ms)
    def evaluate(
        self,
        snapshot: Union[ContentSnapshot, Dict[str, Any]],
        region: str,
        user_id: Optional[str] = None,
        five_bucket: Optional[bool] = None,
    ) -> ScoreResult:
        """
        Score a snapshot for a region.

        Args:
            snapshot: Content snapshot (or its serialized form)
            region: Target region
            user_id: Enables A/B test variant overlay
            five_bucket: Report crossBorder separately (defaults to config)

        Returns:
            Fresh ScoreResult
        """
        if not isinstance(snapshot, ContentSnapshot):
            snapshot = ContentSnapshot.from_dict(snapshot)
        if five_bucket is None:
            five_bucket = self.config.five_bucket

        buckets = list(self.config.category_weights)
        if five_bucket:
            buckets.append(CROSS_BORDER)
        scores = {bucket: CategoryScore() for bucket in buckets}

        rules = self.selector.get_applicable_rules(region=region, user_id=user_id)
        outcomes = self._evaluate_conditions(rules, snapshot, region)

        fired: List[Tuple[str, Rule]] = []
        for rule, did_fire in zip(rules, outcomes):
            if not did_fire:
                continue
            bucket = self.bucket_for(rule, five_bucket)
            category = scores[bucket]
            category.score = clamp_score(category.score - rule.deduction)
            if rule.message not in category.issues:
                category.issues.append(rule.message)
            fired.append((bucket, rule))

        result = ScoreResult(
            categories=scores,
            overall_score=compute_overall_score(
                {b: c.score for b, c in scores.items()}, self.config.category_weights
            ),
            recommendations=self._recommendations(fired, scores, region),
            region=region,
            fired_rules=[rule.id for _, rule in fired],
        )
        log_scoring_event(
            self._log,
            "evaluated",
            region,
            overall_score=result.overall_score,
            rules_considered=len(rules),
            rules_fired=len(fired),
        )
        return result

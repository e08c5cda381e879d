"""
Scoring: content snapshots, condition evaluators, rule selection, the scoring
engine and the result merger.
"""

from regionfit.scoring.advisory import (
    AdvisoryProvider,
    call_provider,
    fetch_external_result,
    parse_external_result,
)
from regionfit.scoring.conditions import (
    BUILTIN_DETECTORS,
    CompositeConditionEvaluator,
    ConditionEvaluator,
    JMESPathConditionEvaluator,
    TriggerConditionEvaluator,
)
from regionfit.scoring.engine import ScoringEngine
from regionfit.scoring.merger import ResultMerger
from regionfit.scoring.schemas import (
    CategoryScore,
    Recommendation,
    ScoreResult,
    compute_overall_score,
    round_half_up,
)
from regionfit.scoring.selector import RuleSelector
from regionfit.scoring.snapshot import ContentSnapshot

__all__ = [
    # Snapshot
    "ContentSnapshot",
    # Conditions
    "ConditionEvaluator",
    "TriggerConditionEvaluator",
    "JMESPathConditionEvaluator",
    "CompositeConditionEvaluator",
    "BUILTIN_DETECTORS",
    # Selection and scoring
    "RuleSelector",
    "ScoringEngine",
    "ResultMerger",
    # Results
    "CategoryScore",
    "Recommendation",
    "ScoreResult",
    "compute_overall_score",
    "round_half_up",
    # Advisory
    "AdvisoryProvider",
    "call_provider",
    "fetch_external_result",
    "parse_external_result",
]

"""
Pluggable condition evaluators.

A rule's `conditions` are opaque data; an evaluator decides whether they fire
for a snapshot in a region. Two evaluators ship with the package:

- TriggerConditionEvaluator: `{"triggers": [...]}` checked by named detectors
- JMESPathConditionEvaluator: `{"when": [...], "unless": [...]}` JMESPath
  expressions over the serialized snapshot
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional

import jmespath
from jmespath.exceptions import JMESPathError
from loguru import logger

from regionfit.scoring.snapshot import ContentSnapshot

Detector = Callable[[ContentSnapshot, Dict[str, Any], Optional[str]], bool]

REGION_LANGUAGES = {
    "US": "en", "GB": "en", "CA": "en", "AU": "en",
    "CN": "zh", "TW": "zh", "HK": "zh",
    "JP": "ja", "KR": "ko",
    "DE": "de", "AT": "de", "FR": "fr", "ES": "es", "IT": "it", "NL": "nl",
    "SE": "sv", "DK": "da", "FI": "fi", "PL": "pl",
    "AE": "ar", "SA": "ar",
    "BR": "pt", "MX": "es",
}

LOCAL_HOLIDAYS = {
    "CN": ["chinese new year", "mid-autumn", "golden week", "singles day"],
    "US": ["thanksgiving", "independence day", "memorial day", "black friday"],
    "IN": ["diwali", "holi", "dussehra"],
    "AE": ["ramadan", "eid", "national day"],
    "SA": ["ramadan", "eid", "national day"],
    "JP": ["golden week", "obon", "new year"],
    "KR": ["chuseok", "seollal"],
}

# Holidays whose promotion conflicts with the dominant local religion
RELIGIOUS_CONFLICTS = {
    "AE": ["christmas", "easter", "halloween"],
    "SA": ["christmas", "easter", "halloween", "valentine"],
}

LANGUAGE_SWITCHER_TERMS = (
    "language", "lang", "sprache", "langue", "idioma", "语言", "言語", "언어",
)
PRIVACY_TERMS = ("privacy", "datenschutz", "confidentialité", "privacidad", "隐私", "プライバシー")
COOKIE_TERMS = ("cookie",)
CCPA_TERMS = ("ccpa", "california consumer privacy", "do not sell")
OPT_OUT_TERMS = ("opt out", "opt-out", "do not sell")

DEFAULT_LOAD_THRESHOLD_MS = 3000
DEFAULT_MOBILE_LOAD_THRESHOLD_MS = 3000
DEFAULT_MAX_RESOURCE_BYTES = 3_000_000


def _primary_language(code: Optional[str]) -> Optional[str]:
    if not code:
        return None
    return code.replace("_", "-").split("-")[0].lower()


def _contains_any(text: str, terms: Iterable[str]) -> bool:
    return any(term in text for term in terms)


def _lower(values: Iterable[str]) -> List[str]:
    return [v.lower() for v in values]


# Detectors


def language_mismatch(snapshot: ContentSnapshot, conditions: Dict[str, Any], region: Optional[str]) -> bool:
    expected = REGION_LANGUAGES.get(region or "")
    if expected is None:
        return False
    observed = [
        _primary_language(code)
        for code in (snapshot.language.declared, snapshot.language.detected)
        if code
    ]
    return any(lang != expected for lang in observed)


def missing_language_switcher(snapshot: ContentSnapshot, conditions: Dict[str, Any], region: Optional[str]) -> bool:
    requiring = conditions.get("regions_requiring")
    if requiring and region not in requiring:
        return False
    if any(link.get("hreflang") for link in snapshot.links):
        return False
    return not _contains_any(snapshot.search_text(), LANGUAGE_SWITCHER_TERMS)


def cultural_color_issue(snapshot: ContentSnapshot, conditions: Dict[str, Any], region: Optional[str]) -> bool:
    combos = conditions.get("sensitive_combinations") or {}
    avoid = set(_lower((combos.get(region or "") or {}).get("avoid", [])))
    return bool(avoid & set(_lower(snapshot.colors)))


def holiday_mismatch(snapshot: ContentSnapshot, conditions: Dict[str, Any], region: Optional[str]) -> bool:
    local = LOCAL_HOLIDAYS.get(region or "")
    if not local or not snapshot.holidays:
        return False
    referenced = _lower(snapshot.holidays)
    return not any(_contains_any(h, local) for h in referenced)


def religious_conflict(snapshot: ContentSnapshot, conditions: Dict[str, Any], region: Optional[str]) -> bool:
    conflicts = RELIGIOUS_CONFLICTS.get(region or "", [])
    return any(_contains_any(h, conflicts) for h in _lower(snapshot.holidays))


def missing_privacy_policy(snapshot: ContentSnapshot, conditions: Dict[str, Any], region: Optional[str]) -> bool:
    return not _contains_any(snapshot.search_text(), PRIVACY_TERMS)


def missing_cookie_consent(snapshot: ContentSnapshot, conditions: Dict[str, Any], region: Optional[str]) -> bool:
    return not _contains_any(snapshot.search_text(), COOKIE_TERMS)


def missing_ccpa_notice(snapshot: ContentSnapshot, conditions: Dict[str, Any], region: Optional[str]) -> bool:
    return not _contains_any(snapshot.search_text(), CCPA_TERMS)


def missing_opt_out(snapshot: ContentSnapshot, conditions: Dict[str, Any], region: Optional[str]) -> bool:
    return not _contains_any(snapshot.search_text(), OPT_OUT_TERMS)


def missing_viewport(snapshot: ContentSnapshot, conditions: Dict[str, Any], region: Optional[str]) -> bool:
    return "viewport" not in {k.lower() for k in snapshot.meta}


def poor_touch_targets(snapshot: ContentSnapshot, conditions: Dict[str, Any], region: Optional[str]) -> bool:
    allowed = (conditions.get("thresholds") or {}).get("max_touch_target_issues", 0)
    return snapshot.performance.touch_target_issues > allowed


def slow_mobile_load(snapshot: ContentSnapshot, conditions: Dict[str, Any], region: Optional[str]) -> bool:
    measured = snapshot.performance.mobile_load_time_ms
    if measured is None:
        return False
    return measured > conditions.get("mobile_load_threshold_ms", DEFAULT_MOBILE_LOAD_THRESHOLD_MS)


def slow_load_time(snapshot: ContentSnapshot, conditions: Dict[str, Any], region: Optional[str]) -> bool:
    measured = snapshot.performance.load_time_ms
    if measured is None:
        return False
    thresholds = conditions.get("regional_thresholds") or {}
    return measured > thresholds.get(region or "", DEFAULT_LOAD_THRESHOLD_MS)


def large_resources(snapshot: ContentSnapshot, conditions: Dict[str, Any], region: Optional[str]) -> bool:
    size = snapshot.performance.resource_bytes
    if size is None:
        return False
    return size > conditions.get("max_resource_bytes", DEFAULT_MAX_RESOURCE_BYTES)


def missing_currency_support(snapshot: ContentSnapshot, conditions: Dict[str, Any], region: Optional[str]) -> bool:
    # A checkout without any displayed currency
    return bool(snapshot.ecommerce.payment_methods) and not snapshot.ecommerce.currencies


def wrong_currency_display(snapshot: ContentSnapshot, conditions: Dict[str, Any], region: Optional[str]) -> bool:
    required = (conditions.get("required_currencies") or {}).get(region or "")
    currencies = [c.upper() for c in snapshot.ecommerce.currencies]
    return bool(required and currencies) and required.upper() not in currencies


def limited_payment_options(snapshot: ContentSnapshot, conditions: Dict[str, Any], region: Optional[str]) -> bool:
    preferred = (conditions.get("regional_preferences") or {}).get(region or "")
    offered = set(_lower(snapshot.ecommerce.payment_methods))
    if not preferred or not offered:
        return False
    return not offered & set(_lower(preferred))


BUILTIN_DETECTORS: Dict[str, Detector] = {
    "language_mismatch": language_mismatch,
    "missing_language_switcher": missing_language_switcher,
    "cultural_color_issue": cultural_color_issue,
    "holiday_mismatch": holiday_mismatch,
    "religious_conflict": religious_conflict,
    "missing_privacy_policy": missing_privacy_policy,
    "missing_cookie_consent": missing_cookie_consent,
    "missing_ccpa_notice": missing_ccpa_notice,
    "missing_opt_out": missing_opt_out,
    "missing_viewport": missing_viewport,
    "poor_touch_targets": poor_touch_targets,
    "slow_mobile_load": slow_mobile_load,
    "slow_load_time": slow_load_time,
    "large_resources": large_resources,
    "missing_currency_support": missing_currency_support,
    "wrong_currency_display": wrong_currency_display,
    "limited_payment_options": limited_payment_options,
}


class ConditionEvaluator(ABC):
    """Decides whether a rule's conditions fire for a snapshot."""

    @abstractmethod
    def evaluate(
        self,
        conditions: Dict[str, Any],
        snapshot: ContentSnapshot,
        region: Optional[str] = None,
    ) -> bool:
        """
        Args:
            conditions: The rule's conditions
            snapshot: Page content
            region: Target region

        Returns:
            True if the rule's trigger condition fired
        """


class TriggerConditionEvaluator(ConditionEvaluator):
    """
    Fires when any listed trigger is detected.

    A trigger fires if the snapshot lists it in `signals` or if its registered
    detector returns True. Unknown triggers never fire.

    Example:
        >>> evaluator = TriggerConditionEvaluator()
        >>> evaluator.register("missing_sitemap", lambda snap, cond, region: True)
    """

    def __init__(self, detectors: Optional[Dict[str, Detector]] = None):
        self.detectors: Dict[str, Detector] = dict(BUILTIN_DETECTORS)
        if detectors:
            self.detectors.update(detectors)

    def register(self, trigger: str, detector: Detector) -> None:
        self.detectors[trigger] = detector

    def evaluate(
        self,
        conditions: Dict[str, Any],
        snapshot: ContentSnapshot,
        region: Optional[str] = None,
    ) -> bool:
        triggers = conditions.get("triggers") or []
        if isinstance(triggers, str):
            triggers = [triggers]
        signals = set(snapshot.signals)

        for trigger in triggers:
            if trigger in signals:
                return True
            detector = self.detectors.get(trigger)
            if detector is None:
                logger.debug(f"No detector registered for trigger: {trigger}")
                continue
            if detector(snapshot, conditions, region):
                return True
        return False


class JMESPathConditionEvaluator(ConditionEvaluator):
    """
    Structured predicates over the serialized snapshot.

    The search document is the snapshot's dict form plus a top-level `region`.
    The rule fires when every `when` expression is truthy and no `unless`
    expression is. Conditions without `when` never fire. An expression that
    fails to compile or evaluate counts as falsy.

    Example:
        >>> conditions = {"when": ["performance.load_time_ms > `4000`"]}
    """

    @staticmethod
    def _expressions(value: Any) -> List[str]:
        if not value:
            return []
        return [value] if isinstance(value, str) else list(value)

    @staticmethod
    def _search(expression: str, document: Dict[str, Any]) -> Any:
        try:
            return jmespath.search(expression, document)
        except JMESPathError as e:
            logger.warning(f"Invalid condition expression {expression!r}: {e}")
            return None

    def evaluate(
        self,
        conditions: Dict[str, Any],
        snapshot: ContentSnapshot,
        region: Optional[str] = None,
    ) -> bool:
        when = self._expressions(conditions.get("when"))
        if not when:
            return False
        unless = self._expressions(conditions.get("unless"))

        document = snapshot.to_dict()
        document["region"] = region

        if not all(self._search(expr, document) for expr in when):
            return False
        return not any(self._search(expr, document) for expr in unless)


class CompositeConditionEvaluator(ConditionEvaluator):
    """Fires when any of its evaluators fires."""

    def __init__(self, evaluators: Optional[List[ConditionEvaluator]] = None):
        self.evaluators = evaluators or [
            TriggerConditionEvaluator(),
            JMESPathConditionEvaluator(),
        ]

    def evaluate(
        self,
        conditions: Dict[str, Any],
        snapshot: ContentSnapshot,
        region: Optional[str] = None,
    ) -> bool:
        return any(e.evaluate(conditions, snapshot, region) for e in self.evaluators)

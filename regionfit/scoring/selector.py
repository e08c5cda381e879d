"""
Rule selection for an evaluation context.

Base rules are filtered by region, category and enabled flag, then overlaid
with the variant of any active A/B test the user is assigned to.
"""

from typing import Dict, List, Optional

from loguru import logger

from regionfit.errors import NotFoundError, ValidationError
from regionfit.experiments.assignment import apply_variant, assign_user_to_variant
from regionfit.experiments.schemas import ABTest
from regionfit.experiments.store import ExperimentStore
from regionfit.logging import log_experiment_event
from regionfit.rules.schemas import Rule
from regionfit.rules.store import RuleStore


class RuleSelector:
    """
    Resolves the effective rule set for (region, category, user).

    Example:
        >>> selector = RuleSelector(rule_store, experiment_store)
        >>> rules = selector.get_applicable_rules(region="DE", user_id="user-42")
    """

    def __init__(
        self,
        rule_store: RuleStore,
        experiment_store: Optional[ExperimentStore] = None,
        enable_ab_testing: bool = True,
    ):
        self.rule_store = rule_store
        self.experiment_store = experiment_store
        self.enable_ab_testing = enable_ab_testing
        self._log = logger.bind(component="experiments")

    def _tests_by_rule(self, region: Optional[str]) -> Dict[str, ABTest]:
        """One applicable test per rule id; the earliest wins on conflict."""
        chosen: Dict[str, ABTest] = {}
        tests = sorted(
            self.experiment_store.get_applicable_tests(region),
            key=lambda t: (t.start_date, t.created_at or "", t.id),
        )
        for test in tests:
            if not self.rule_store.has_rule(test.rule_id):
                log_experiment_event(
                    self._log, "skipped", test.id, rule_id=test.rule_id, reason="rule missing"
                )
                continue
            if test.rule_id in chosen:
                self._log.error(
                    f"A/B tests {chosen[test.rule_id].id} and {test.id} both target "
                    f"rule {test.rule_id}; applying {chosen[test.rule_id].id}"
                )
                continue
            chosen[test.rule_id] = test
        return chosen

    def get_applicable_rules(
        self,
        region: Optional[str] = None,
        category: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> List[Rule]:
        """
        Effective rules for a context.

        Args:
            region: Target region (None = every region)
            category: Only this category
            user_id: User for A/B test assignment; no overlay without it

        Returns:
            Enabled rules, with experiment variants applied in place
        """
        rules = self.rule_store.get_all_rules(category=category, region=region, enabled_only=True)
        if not self.enable_ab_testing or user_id is None or self.experiment_store is None:
            return rules

        tests = self._tests_by_rule(region)
        if not tests:
            return rules

        effective: List[Rule] = []
        for rule in rules:
            test = tests.get(rule.id)
            if test is None:
                effective.append(rule)
                continue

            variant = assign_user_to_variant(str(user_id), test)
            try:
                overlaid = apply_variant(rule, test, variant)
            except (ValidationError, TypeError, ValueError, AttributeError) as e:
                # Base rule applies unchanged
                self._log.error(
                    f"A/B test {test.id} variant {variant} is invalid for rule {rule.id}: {e}"
                )
                effective.append(rule)
                continue
            try:
                self.experiment_store.record_impression(test.id, variant)
            except NotFoundError as e:
                self._log.warning(f"Impression not recorded: {e}")
            log_experiment_event(
                self._log, "applied", test.id, rule_id=rule.id, variant=variant, user_id=user_id
            )
            if overlaid.enabled:
                effective.append(overlaid)
        return effective

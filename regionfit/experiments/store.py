"""
A/B test definitions and per-variant outcome counters.

Tests reference rules by id only. Counter increments and status changes are
read-modify-write operations and run under the store lock.
"""

import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from regionfit.errors import ConfigurationConflictError, NotFoundError, ValidationError
from regionfit.events import RuleEvent, SubscriberBus
from regionfit.experiments.assignment import apply_variant, is_active, is_test_applicable
from regionfit.experiments.schemas import ABTest, TestStatus, validate_ab_test_config
from regionfit.logging import log_experiment_event
from regionfit.persistence import EXPERIMENTS_NAMESPACE, InMemoryBackend, KeyValueBackend
from regionfit.rules.schemas import utc_now
from regionfit.rules.store import RuleStore


class ExperimentStore:
    """
    Storage for A/B tests.

    Example:
        >>> experiments = ExperimentStore(rule_store=rules)
        >>> test = experiments.create_ab_test({
        ...     "ruleId": "gdpr-compliance-check",
        ...     "variants": [{"name": "A", "rule": {}}, {"name": "B", "rule": {"weight": 40}}],
        ...     "trafficSplit": {"A": 60, "B": 40},
        ... })
    """

    def __init__(
        self,
        backend: Optional[KeyValueBackend] = None,
        rule_store: Optional[RuleStore] = None,
        bus: Optional[SubscriberBus] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the experiment store.

        Args:
            backend: Key-value backend (in-memory if omitted)
            rule_store: Used to check that a test's ruleId exists
            bus: Subscriber bus for abTestCreated/abTestUpdated
            clock: Source of the current time
        """
        self.backend = backend or InMemoryBackend()
        self.rule_store = rule_store
        self.bus = bus or SubscriberBus()
        self.clock = clock or utc_now
        self._lock = threading.RLock()
        self._log = logger.bind(component="experiments")

    def _load(self, test_id: str) -> Optional[ABTest]:
        data = self.backend.get(EXPERIMENTS_NAMESPACE, test_id)
        return ABTest.from_dict(data) if data is not None else None

    def _save(self, test: ABTest) -> None:
        self.backend.set(EXPERIMENTS_NAMESPACE, test.id, test.to_dict())

    def _check_conflicts(self, test: ABTest, now: datetime) -> None:
        if self.rule_store is not None and not self.rule_store.has_rule(test.rule_id):
            raise ConfigurationConflictError(
                f"A/B test {test.id} references missing or deleted rule {test.rule_id}"
            )
        for other in self.list_ab_tests(rule_id=test.rule_id):
            if other.id != test.id and is_active(other, now):
                raise ConfigurationConflictError(
                    f"Rule {test.rule_id} already has an active A/B test: {other.id}"
                )

    def _check_variants(self, test: ABTest) -> None:
        """Every variant, overlaid on the current rule, must still form a valid rule."""
        if self.rule_store is None or not self.rule_store.has_rule(test.rule_id, include_deleted=True):
            return
        rule = self.rule_store.get_rule(test.rule_id)
        for variant in test.variants:
            try:
                apply_variant(rule, test, variant.name)
            except (ValidationError, TypeError, ValueError, AttributeError) as e:
                raise ValidationError(
                    f"Variant {variant.name} does not form a valid rule: {e}", field="variants"
                ) from e

    def create_ab_test(self, config: Dict[str, Any], notify: bool = True) -> ABTest:
        """
        Create an A/B test.

        Args:
            config: Test definition; startDate defaults to now, status to active
            notify: Publish abTestCreated

        Returns:
            The stored test

        Raises:
            ValidationError: Malformed definition (e.g. split not summing to 100,
                or a variant override that does not form a valid rule)
            ConfigurationConflictError: Missing rule, or another active test
                already targets the rule
        """
        now = self.clock()
        test = ABTest.from_dict(validate_ab_test_config(config, now=now.isoformat()))

        with self._lock:
            if self._load(test.id) is not None:
                raise ValidationError(f"A/B test already exists: {test.id}", field="id")
            self._check_variants(test)
            if test.status == TestStatus.ACTIVE:
                self._check_conflicts(test, now)
            self._save(test)

        log_experiment_event(
            self._log, "created", test.id, rule_id=test.rule_id, split=test.traffic_split
        )
        if notify:
            self.bus.publish(RuleEvent.AB_TEST_CREATED, test)
        return test

    def get_ab_test(self, test_id: str) -> ABTest:
        """
        Get a test by id.

        Raises:
            NotFoundError: If the test does not exist
        """
        test = self._load(test_id)
        if test is None:
            raise NotFoundError(f"A/B test not found: {test_id}", entity_id=test_id)
        return test

    def has_ab_test(self, test_id: str) -> bool:
        return self._load(test_id) is not None

    def list_ab_tests(
        self, status: Optional[str] = None, rule_id: Optional[str] = None
    ) -> List[ABTest]:
        tests = [ABTest.from_dict(d) for d in self.backend.values(EXPERIMENTS_NAMESPACE)]
        if status is not None:
            tests = [t for t in tests if t.status.value == status]
        if rule_id is not None:
            tests = [t for t in tests if t.rule_id == rule_id]
        return tests

    def get_applicable_tests(self, region: Optional[str] = None) -> List[ABTest]:
        """Active tests whose window is open and whose regions match."""
        now = self.clock()
        return [
            t
            for t in self.list_ab_tests(status=TestStatus.ACTIVE.value)
            if is_test_applicable(t, region, now)
        ]

    def count_running(self) -> int:
        now = self.clock()
        return sum(1 for t in self.list_ab_tests() if is_active(t, now))

    def set_status(self, test_id: str, status: str, notify: bool = True) -> ABTest:
        """
        Activate or deactivate a test.

        Raises:
            NotFoundError: If the test does not exist
            ValidationError: Unknown status, or a variant no longer forms a
                valid rule when reactivating
            ConfigurationConflictError: Reactivating would create a second
                active test on the same rule
        """
        try:
            new_status = TestStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid status: {status}", field="status") from None

        with self._lock:
            test = self.get_ab_test(test_id)
            if new_status == TestStatus.ACTIVE and test.status != TestStatus.ACTIVE:
                self._check_conflicts(test, self.clock())
                self._check_variants(test)
            test.status = new_status
            self._save(test)

        log_experiment_event(self._log, "status", test_id, status=new_status.value)
        if notify:
            self.bus.publish(RuleEvent.AB_TEST_UPDATED, test)
        return test

    def _increment(self, test_id: str, variant: str, counter: str) -> int:
        with self._lock:
            test = self.get_ab_test(test_id)
            if test.get_variant(variant) is None:
                raise NotFoundError(
                    f"Variant {variant} not found in A/B test {test_id}", entity_id=test_id
                )
            counts = getattr(test.metrics, counter)
            counts[variant] = counts.get(variant, 0) + 1
            self._save(test)
            return counts[variant]

    def record_impression(self, test_id: str, variant: str) -> int:
        """Increment the impression counter for a variant. Returns the new count."""
        return self._increment(test_id, variant, "impressions")

    def record_conversion(self, test_id: str, variant: str) -> int:
        """Increment the conversion counter for a variant. Returns the new count."""
        count = self._increment(test_id, variant, "conversions")
        log_experiment_event(self._log, "conversion", test_id, variant=variant)
        return count

    def get_test_metrics(self, test_id: str) -> Dict[str, Any]:
        """Counters plus conversion rate per variant."""
        test = self.get_ab_test(test_id)
        return {
            "testId": test.id,
            "ruleId": test.rule_id,
            "variants": {
                v.name: {
                    "impressions": test.metrics.impressions.get(v.name, 0),
                    "conversions": test.metrics.conversions.get(v.name, 0),
                    "conversionRate": test.metrics.conversion_rate(v.name),
                }
                for v in test.variants
            },
        }

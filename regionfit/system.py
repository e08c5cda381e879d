"""
The rule configuration service object.

Constructed once and passed to callers; wires the subscriber bus, rule and
experiment stores, selector, scoring engine, merger and maintenance tasks.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from loguru import logger

from regionfit.config import Config
from regionfit.config import config as default_config
from regionfit.errors import ExternalUnavailableError, RegionFitError
from regionfit.events import EventType, SubscriberBus
from regionfit.experiments import ABTest, ExperimentStore, TestStatus
from regionfit.maintenance import BackupManager, PeriodicTask
from regionfit.persistence import KeyValueBackend, create_backend
from regionfit.rules import (
    ImportResult,
    Rule,
    RuleStore,
    RuleVersion,
    get_default_rule_definitions,
)
from regionfit.scoring import (
    AdvisoryProvider,
    ConditionEvaluator,
    ContentSnapshot,
    ResultMerger,
    RuleSelector,
    ScoreResult,
    ScoringEngine,
    fetch_external_result,
    parse_external_result,
)

RuleSource = Callable[[], Optional[Dict[str, Any]]]


class RuleConfigurationSystem:
    """
    Service object for rule management and scoring.

    Example:
        >>> with RuleConfigurationSystem() as system:
        ...     result = system.evaluate({"meta": {"viewport": "width=device-width"}}, "DE")
        ...     result.score_of("compliance")
        75
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        backend: Optional[KeyValueBackend] = None,
        evaluator: Optional[ConditionEvaluator] = None,
        advisory_provider: Optional[AdvisoryProvider] = None,
        rule_source: Optional[RuleSource] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the system.

        Args:
            config: Configuration (global config if omitted)
            backend: Persistence backend (built from config.storage if omitted)
            evaluator: Condition evaluator for the scoring engine
            advisory_provider: Optional external score provider
            rule_source: Returns a rule bundle to refresh from periodically
            clock: Source of the current time
        """
        self.config = config or default_config
        self.backend = backend or create_backend(self.config.storage)
        self.advisory_provider = advisory_provider
        self.rule_source = rule_source
        self._log = logger.bind(component="system")

        rules_config = self.config.rules
        self.bus = SubscriberBus()
        self.rule_store = RuleStore(
            self.backend,
            bus=self.bus,
            enable_versioning=rules_config.enable_versioning,
            max_version_history=rules_config.max_version_history,
            clock=clock,
        )
        self.experiment_store = ExperimentStore(
            self.backend, rule_store=self.rule_store, bus=self.bus, clock=clock
        )
        self.selector = RuleSelector(
            self.rule_store,
            self.experiment_store,
            enable_ab_testing=rules_config.enable_ab_testing,
        )
        self.engine = ScoringEngine(self.selector, evaluator, self.config.scoring)
        self.merger = ResultMerger(self.config.scoring)

        self.backups = BackupManager(
            lambda: self.export_rules(include_versions=True, include_ab_tests=True),
            Path(rules_config.backup_dir),
            max_backups=rules_config.max_backups,
            clock=clock,
        )
        self.tasks: List[PeriodicTask] = []
        if rule_source is not None:
            self.tasks.append(
                PeriodicTask("refresh", rules_config.refresh_interval_seconds, self.refresh_rules)
            )
        if rules_config.auto_backup:
            self.tasks.append(
                PeriodicTask("backup", rules_config.backup_interval_seconds, self.backups.write_backup)
            )

        self.rules_loaded = 0
        if rules_config.load_default_rules:
            self.load_default_rules()
        self.rules_loaded = len(self.rule_store.get_all_rules(include_deleted=True))
        self._log.info(f"Rule configuration system ready with {self.rules_loaded} rules")

    # Lifecycle

    def load_default_rules(self) -> int:
        """Seed the default catalogue into an empty store. Returns rules created."""
        if self.rule_store.get_all_rules(include_deleted=True):
            return 0
        created = 0
        for definition in get_default_rule_definitions():
            self.rule_store.create_rule(definition, notify=False)
            created += 1
        self._log.info(f"Loaded {created} default rules")
        return created

    def start(self) -> None:
        """Start the periodic maintenance tasks."""
        for task in self.tasks:
            task.start()

    def stop(self) -> None:
        for task in self.tasks:
            task.stop()

    def close(self) -> None:
        self.stop()
        self.backend.close()

    def __enter__(self) -> "RuleConfigurationSystem":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def refresh_rules(self) -> Optional[ImportResult]:
        """Import the rule source's bundle, overwriting existing rules."""
        if self.rule_source is None:
            return None
        bundle = self.rule_source()
        if not bundle:
            return None
        result = self.import_rules(bundle, overwrite=True)
        self._log.info(f"Rules refreshed: {result.to_dict()}")
        return result

    # Rules

    def subscribe(self, event_type: EventType, callback: Callable[..., Any]) -> Callable[[], None]:
        return self.bus.subscribe(event_type, callback)

    def create_rule(self, data: Dict[str, Any]) -> Rule:
        return self.rule_store.create_rule(data)

    def update_rule(self, rule_id: str, patch: Dict[str, Any]) -> Rule:
        return self.rule_store.update_rule(rule_id, patch)

    def delete_rule(self, rule_id: str, soft: bool = False) -> bool:
        return self.rule_store.delete_rule(rule_id, soft=soft)

    def get_rule(self, rule_id: str) -> Rule:
        return self.rule_store.get_rule(rule_id)

    def get_all_rules(self, **filters: Any) -> List[Rule]:
        return self.rule_store.get_all_rules(**filters)

    def get_rule_versions(self, rule_id: str) -> List[RuleVersion]:
        return self.rule_store.get_rule_versions(rule_id)

    def restore_rule_version(self, rule_id: str, version: str) -> Rule:
        return self.rule_store.restore_rule_version(rule_id, version)

    def get_applicable_rules(
        self,
        region: Optional[str] = None,
        category: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> List[Rule]:
        return self.selector.get_applicable_rules(region=region, category=category, user_id=user_id)

    # Experiments

    def create_ab_test(self, test_config: Dict[str, Any]) -> ABTest:
        return self.experiment_store.create_ab_test(test_config)

    def get_ab_test(self, test_id: str) -> ABTest:
        return self.experiment_store.get_ab_test(test_id)

    def list_ab_tests(self, status: Optional[str] = None) -> List[ABTest]:
        return self.experiment_store.list_ab_tests(status=status)

    def deactivate_ab_test(self, test_id: str) -> ABTest:
        return self.experiment_store.set_status(test_id, TestStatus.INACTIVE.value)

    def record_conversion(self, test_id: str, variant: str) -> int:
        return self.experiment_store.record_conversion(test_id, variant)

    def get_test_metrics(self, test_id: str) -> Dict[str, Any]:
        return self.experiment_store.get_test_metrics(test_id)

    # Scoring

    def evaluate(
        self,
        snapshot: Union[ContentSnapshot, Dict[str, Any]],
        region: str,
        user_id: Optional[str] = None,
        five_bucket: Optional[bool] = None,
        external: Optional[Union[ScoreResult, Dict[str, Any]]] = None,
    ) -> ScoreResult:
        """
        Score a snapshot and merge in advisory results when available.

        Args:
            snapshot: Content snapshot (or its serialized form)
            region: Target region
            user_id: Enables A/B test variant overlay
            five_bucket: Report crossBorder separately
            external: Advisory result to merge; fetched from the advisory
                provider when omitted

        Returns:
            Local result, or the merged result when an advisory result exists
        """
        if not isinstance(snapshot, ContentSnapshot):
            snapshot = ContentSnapshot.from_dict(snapshot)
        local = self.engine.evaluate(snapshot, region, user_id=user_id, five_bucket=five_bucket)

        if external is not None and not isinstance(external, ScoreResult):
            try:
                external = parse_external_result(external)
            except ExternalUnavailableError as e:
                self._log.warning(f"Ignoring invalid external result: {e}")
                external = None
        if external is None:
            external = fetch_external_result(
                self.advisory_provider,
                snapshot,
                region,
                timeout=self.config.scoring.external_timeout_seconds,
            )
        return self.merger.merge(local, external)

    # Export / import

    def export_rules(
        self, include_versions: bool = False, include_ab_tests: bool = False, **filters: Any
    ) -> Dict[str, Any]:
        """
        Export a bundle: {version, exportedAt, count, rules[, versions][, abTests]}.
        """
        bundle = self.rule_store.export_rules(include_versions=include_versions, **filters)
        if include_ab_tests:
            bundle["abTests"] = [t.to_dict() for t in self.experiment_store.list_ab_tests()]
        return bundle

    def import_rules(self, bundle: Dict[str, Any], overwrite: bool = False) -> ImportResult:
        """
        Import rules, then any A/B tests the bundle carries.

        Existing A/B tests are left untouched. A test that fails validation
        or conflicts is recorded in errors.
        """
        result = self.rule_store.import_rules(bundle, overwrite=overwrite)
        for entry in bundle.get("abTests") or []:
            test_id = entry.get("id") if isinstance(entry, dict) else None
            try:
                if test_id and self.experiment_store.has_ab_test(test_id):
                    continue
                self.experiment_store.create_ab_test(entry)
                result.ab_tests_imported += 1
            except (RegionFitError, TypeError, ValueError) as e:
                result.errors.append({"abTestId": test_id, "error": str(e)})
        return result

    # Metrics

    def get_metrics(self) -> Dict[str, Any]:
        """Counters describing the system state."""
        return {
            "rulesLoaded": self.rules_loaded,
            "rulesUpdated": self.rule_store.metrics["rules_updated"],
            "versionsCreated": self.rule_store.metrics["versions_created"],
            "abTestsRunning": self.experiment_store.count_running(),
            "totalRules": len(self.rule_store.get_all_rules()),
            "totalVersions": self.rule_store.count_versions(),
            "activeABTests": len(self.experiment_store.list_ab_tests(status=TestStatus.ACTIVE.value)),
            "subscribers": self.bus.subscriber_count(),
        }

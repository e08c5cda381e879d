"""
Unit tests for the RuleConfigurationSystem service object.
"""

from datetime import datetime, timezone

import pytest

from regionfit.config import Config, RuleSystemConfig, StorageConfig
from regionfit.errors import ConfigurationConflictError, NotFoundError, ValidationError
from regionfit.events import RuleEvent
from regionfit.experiments import validate_ab_test_config
from regionfit.persistence import EXPERIMENTS_NAMESPACE
from regionfit.system import RuleConfigurationSystem

NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)

# Triggers only the language switcher (-10) and GDPR (-25) defaults for DE
BARE_DE_PAGE = {"url": "https://shop.example.de", "meta": {"viewport": "width=device-width"}}


def make_config(**rules) -> Config:
    rules.setdefault("auto_backup", False)
    return Config(rules=RuleSystemConfig(**rules), storage=StorageConfig(backend="memory"))


class StaticProvider:
    def __init__(self, payload):
        self.payload = payload

    def get_score(self, snapshot, region):
        return self.payload


@pytest.fixture
def system():
    system = RuleConfigurationSystem(make_config(), clock=lambda: NOW)
    yield system
    system.close()


class TestSetup:
    """Tests for construction and default rules."""

    def test_loads_default_rules(self, system):
        assert system.rules_loaded == 10
        assert len(system.get_all_rules()) == 10
        assert system.get_rule("gdpr-compliance-check").priority.value == "critical"

    def test_skips_defaults_when_disabled(self):
        system = RuleConfigurationSystem(make_config(load_default_rules=False))
        assert system.get_all_rules() == []
        assert system.rules_loaded == 0

    def test_defaults_not_reseeded_into_populated_store(self, system):
        assert system.load_default_rules() == 0

    def test_defaults_do_not_notify(self):
        """Test that seeding happens before anyone could subscribe and publishes nothing."""
        system = RuleConfigurationSystem(make_config(load_default_rules=False))
        created = []
        system.subscribe(RuleEvent.RULE_CREATED, created.append)

        assert system.load_default_rules() == 10
        assert created == []

    def test_no_tasks_without_source_or_backup(self, system):
        assert system.tasks == []

    def test_backup_task_configured(self, tmp_path):
        system = RuleConfigurationSystem(
            make_config(auto_backup=True, backup_dir=str(tmp_path / "backups"))
        )
        assert [t.name for t in system.tasks] == ["backup"]

        path = system.backups.write_backup()
        bundle = system.backups.load_backup(path)

        assert bundle["count"] == 10
        assert "versions" in bundle
        assert bundle["abTests"] == []

    def test_context_manager_starts_and_stops(self, tmp_path):
        config = make_config(auto_backup=True, backup_dir=str(tmp_path))
        with RuleConfigurationSystem(config) as system:
            assert system.tasks[0].is_running
        assert not system.tasks[0].is_running


class TestRuleOperations:
    """Tests for delegated rule operations and events."""

    def test_subscribers_notified(self, system):
        events = []
        system.subscribe(RuleEvent.RULE_UPDATED, lambda new, old: events.append((new.version, old.version)))

        system.update_rule("gdpr-compliance-check", {"weight": 35})

        assert events == [("1.1.1", "1.1.0")]

    def test_versions_and_restore(self, system):
        system.update_rule("language-consistency-check", {"weight": 30})

        versions = system.get_rule_versions("language-consistency-check")
        restored = system.restore_rule_version("language-consistency-check", "1.0.0")

        assert [v.version for v in versions] == ["1.0.0", "1.0.1"]
        assert restored.weight == 25
        assert restored.version == "1.0.2"

    def test_applicable_rules_by_region(self, system):
        ids = {r.id for r in system.get_applicable_rules(region="US")}

        assert "ccpa-compliance-check" in ids
        assert "gdpr-compliance-check" not in ids

    def test_metrics(self, system):
        system.update_rule("gdpr-compliance-check", {"weight": 35})
        system.subscribe(RuleEvent.RULE_CREATED, lambda rule: None)

        metrics = system.get_metrics()

        assert metrics["rulesLoaded"] == 10
        assert metrics["totalRules"] == 10
        assert metrics["rulesUpdated"] == 11
        assert metrics["versionsCreated"] == 11
        assert metrics["totalVersions"] == 11
        assert metrics["abTestsRunning"] == 0
        assert metrics["activeABTests"] == 0
        assert metrics["subscribers"] == 1


class TestExperiments:
    """Tests for A/B test management through the system."""

    def test_create_and_deactivate(self, system):
        test = system.create_ab_test(
            {
                "id": "gdpr-weight",
                "ruleId": "gdpr-compliance-check",
                "variants": [{"name": "control", "rule": {}}, {"name": "heavy", "rule": {"weight": 50}}],
            }
        )

        assert system.get_metrics()["abTestsRunning"] == 1
        assert [t.id for t in system.list_ab_tests(status="active")] == [test.id]

        system.deactivate_ab_test(test.id)

        assert system.get_metrics()["activeABTests"] == 0
        assert system.get_ab_test(test.id).status.value == "inactive"

    def test_second_active_test_conflicts(self, system):
        config = {"ruleId": "gdpr-compliance-check", "variants": [{"name": "A", "rule": {}}]}
        system.create_ab_test(config)

        with pytest.raises(ConfigurationConflictError):
            system.create_ab_test(config)

    def test_conversions(self, system):
        system.create_ab_test(
            {
                "id": "t1",
                "ruleId": "gdpr-compliance-check",
                "variants": [{"name": "A", "rule": {}}],
            }
        )
        system.evaluate(BARE_DE_PAGE, "DE", user_id="user-1")
        system.record_conversion("t1", "A")

        variants = system.get_test_metrics("t1")["variants"]
        assert variants["A"] == {"impressions": 1, "conversions": 1, "conversionRate": 1.0}

    def test_unknown_test(self, system):
        with pytest.raises(NotFoundError):
            system.get_ab_test("missing")


class TestEvaluate:
    """Tests for evaluation and advisory merging."""

    def test_local_only(self, system):
        result = system.evaluate(BARE_DE_PAGE, "DE")

        assert result.score_of("language") == 90
        assert result.score_of("compliance") == 75
        assert result.overall_score == 91
        assert [r.rule_id for r in result.recommendations] == ["gdpr-compliance-check"]
        assert result.ai_enhanced is False

    def test_merges_provider_result(self):
        provider = StaticProvider(
            {"language": 100, "culture": 100, "compliance": 100, "userExperience": 100,
             "suggestions": ["Use local testimonials"]}
        )
        system = RuleConfigurationSystem(make_config(), advisory_provider=provider)

        result = system.evaluate(BARE_DE_PAGE, "DE")

        # 0.4 * 75 + 0.6 * 100
        assert result.score_of("compliance") == 90
        assert result.ai_enhanced is True
        assert result.ai_suggestions == ["Use local testimonials"]

    def test_explicit_external_dict(self, system):
        result = system.evaluate(BARE_DE_PAGE, "DE", external={"categories": {"compliance": {"score": 50}}})

        # 0.4 * 75 + 0.6 * 50
        assert result.score_of("compliance") == 60
        assert result.score_of("language") == 90

    def test_invalid_external_ignored(self, system):
        result = system.evaluate(BARE_DE_PAGE, "DE", external={"compliance": 250})

        assert result.ai_enhanced is False
        assert result.score_of("compliance") == 75

    @pytest.mark.parametrize(
        "payload",
        [
            {"language": {"score": 80, "issues": 5}},
            {"language": 80, "recommendations": ["x"]},
            {"language": 80, "aiSuggestions": "x"},
            {"overallScore": "high"},
            ["not", "a", "mapping"],
            {"categories": []},
        ],
    )
    def test_malformed_provider_payload_ignored(self, payload):
        """Test that a wrongly-typed advisory payload still yields the local result."""
        system = RuleConfigurationSystem(make_config(), advisory_provider=StaticProvider(payload))

        result = system.evaluate(BARE_DE_PAGE, "DE")

        assert result.ai_enhanced is False
        assert result.score_of("compliance") == 75
        assert result.overall_score == 91
        system.close()

    def test_malformed_explicit_external_ignored(self, system):
        result = system.evaluate(
            BARE_DE_PAGE, "DE", external={"compliance": 50, "recommendations": [1, 2]}
        )

        assert result.ai_enhanced is False
        assert result.score_of("compliance") == 75

    def test_invalid_stored_variant_still_evaluates(self, system):
        """Test that evaluation for an assigned user survives a bad variant override."""
        stored = validate_ab_test_config(
            {
                "id": "t1",
                "ruleId": "gdpr-compliance-check",
                "variants": [{"name": "B", "rule": {"weight": -5}}],
                "startDate": "2026-01-01T00:00:00+00:00",
            }
        )
        system.experiment_store.backend.set(EXPERIMENTS_NAMESPACE, "t1", stored)

        result = system.evaluate(BARE_DE_PAGE, "DE", user_id="u1")

        assert result.score_of("compliance") == 75
        assert result.overall_score == 91

    def test_invalid_variant_rejected_at_creation(self, system):
        with pytest.raises(ValidationError):
            system.create_ab_test(
                {
                    "id": "t1",
                    "ruleId": "gdpr-compliance-check",
                    "variants": [{"name": "A", "rule": {}}, {"name": "B", "rule": {"category": "bogus"}}],
                }
            )
        assert system.list_ab_tests() == []

    def test_failing_provider_ignored(self):
        class Broken:
            def get_score(self, snapshot, region):
                raise TimeoutError("upstream")

        system = RuleConfigurationSystem(make_config(), advisory_provider=Broken())

        assert system.evaluate(BARE_DE_PAGE, "DE").ai_enhanced is False


class TestExportImport:
    """Tests for bundles carrying rules, versions and A/B tests."""

    def test_round_trip_with_ab_tests(self, system):
        system.create_ab_test(
            {"id": "t1", "ruleId": "gdpr-compliance-check", "variants": [{"name": "A", "rule": {}}]}
        )
        bundle = system.export_rules(include_versions=True, include_ab_tests=True)

        target = RuleConfigurationSystem(make_config(load_default_rules=False), clock=lambda: NOW)
        first = target.import_rules(bundle)
        second = target.import_rules(bundle)

        assert first.imported == 10
        assert first.ab_tests_imported == 1
        assert first.errors == []
        assert second.skipped == 10
        assert second.ab_tests_imported == 0
        assert target.get_ab_test("t1").rule_id == "gdpr-compliance-check"

    def test_ab_test_errors_recorded(self, system):
        bundle = {
            "rules": [],
            "abTests": [{"id": "orphan", "ruleId": "no-such-rule", "variants": [{"name": "A"}]}],
        }

        result = system.import_rules(bundle)

        assert result.ab_tests_imported == 0
        assert result.errors[0]["abTestId"] == "orphan"

    def test_export_without_tests(self, system):
        assert "abTests" not in system.export_rules()

    def test_refresh_from_source(self):
        source_rule = {
            "id": "gdpr-compliance-check",
            "category": "compliance",
            "name": "GDPR compliance",
            "weight": 40,
            "regions": ["DE"],
            "actions": {"scoring": {"deduction": 30}, "message": "GDPR"},
            "conditions": {"triggers": ["missing_privacy_policy"]},
        }
        system = RuleConfigurationSystem(
            make_config(), rule_source=lambda: {"rules": [source_rule]}
        )

        result = system.refresh_rules()

        assert [t.name for t in system.tasks] == ["refresh"]
        assert result.updated == 1
        assert system.get_rule("gdpr-compliance-check").weight == 40
        assert system.evaluate(BARE_DE_PAGE, "DE").score_of("compliance") == 70

    def test_repeated_refresh_adds_no_versions(self):
        """Test that an unchanged source leaves version and history alone."""
        source_rule = {"id": "gdpr-compliance-check", "weight": 40}
        system = RuleConfigurationSystem(
            make_config(), rule_source=lambda: {"rules": [source_rule]}
        )
        system.refresh_rules()
        version = system.get_rule("gdpr-compliance-check").version
        history = system.get_rule_versions("gdpr-compliance-check")

        results = [system.refresh_rules() for _ in range(12)]

        assert all(r.updated == 0 and r.skipped == 1 for r in results)
        assert system.get_rule("gdpr-compliance-check").version == version
        assert system.get_rule_versions("gdpr-compliance-check") == history
        system.close()

    def test_refresh_without_source(self, system):
        assert system.refresh_rules() is None

"""
Unit tests for A/B test schemas, deterministic assignment and storage.
"""

from collections import Counter
from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from regionfit.errors import ConfigurationConflictError, NotFoundError, ValidationError
from regionfit.events import RuleEvent, SubscriberBus
from regionfit.experiments import (
    ABTest,
    ExperimentStore,
    TestStatus,
    apply_variant,
    assign_user_to_variant,
    even_split,
    is_test_applicable,
    stable_bucket,
    validate_ab_test_config,
)
from regionfit.persistence import EXPERIMENTS_NAMESPACE
from regionfit.rules import Rule, RuleStore

NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


def make_test(**overrides) -> ABTest:
    config = {
        "id": "ab-test-1",
        "ruleId": "gdpr",
        "variants": [{"name": "A", "rule": {}}, {"name": "B", "rule": {"weight": 40}}],
        "trafficSplit": {"A": 60, "B": 40},
        "startDate": "2026-01-01T00:00:00+00:00",
    }
    config.update(overrides)
    return ABTest.from_dict(validate_ab_test_config(config))


@pytest.fixture
def rule_store() -> RuleStore:
    store = RuleStore()
    store.create_rule(
        {
            "id": "gdpr",
            "category": "compliance",
            "weight": 30,
            "regions": ["DE"],
            "dynamicWeight": {"DE": 35},
            "actions": {"scoring": {"deduction": 25}, "message": "GDPR"},
        }
    )
    return store


@pytest.fixture
def experiments(rule_store) -> ExperimentStore:
    return ExperimentStore(rule_store=rule_store, clock=lambda: NOW)


class TestValidateABTestConfig:
    """Tests for A/B test validation."""

    def test_defaults(self):
        """Test startDate, status and metric defaults."""
        data = validate_ab_test_config(
            {"ruleId": "gdpr", "variants": [{"name": "A"}, {"name": "B"}]},
            now="2026-03-01T00:00:00+00:00",
        )

        assert data["id"].startswith("ab-test-")
        assert data["status"] == "active"
        assert data["startDate"] == "2026-03-01T00:00:00+00:00"
        assert data["endDate"] is None
        assert data["trafficSplit"] == {"A": 50, "B": 50}
        assert data["metrics"] == {"impressions": {"A": 0, "B": 0}, "conversions": {"A": 0, "B": 0}}

    def test_split_must_sum_to_100(self):
        with pytest.raises(ValidationError):
            make_test(trafficSplit={"A": 60, "B": 50})

    def test_split_keys_must_match_variants(self):
        with pytest.raises(ValidationError):
            make_test(trafficSplit={"A": 60, "C": 40})

    def test_negative_share_rejected(self):
        with pytest.raises(ValidationError):
            make_test(trafficSplit={"A": 110, "B": -10})

    def test_rule_id_required(self):
        with pytest.raises(ValidationError):
            validate_ab_test_config({"variants": [{"name": "A"}]})

    def test_protected_override_rejected(self):
        """Test that variants cannot override identity fields."""
        with pytest.raises(ValidationError):
            make_test(variants=[{"name": "A", "rule": {"id": "x"}}, {"name": "B", "rule": {}}])

    def test_duplicate_variant_names_rejected(self):
        with pytest.raises(ValidationError):
            make_test(variants=[{"name": "A"}, {"name": "A"}], trafficSplit={"A": 100})

    def test_end_before_start_rejected(self):
        with pytest.raises(ValidationError):
            make_test(endDate="2025-12-31T00:00:00+00:00")

    def test_even_split(self):
        assert even_split(["A", "B", "C"]) == {"A": 34, "B": 33, "C": 33}


class TestAssignment:
    """Tests for deterministic variant assignment."""

    def test_bucket_range(self):
        assert all(0 <= stable_bucket(f"user-{i}", "t") < 100 for i in range(500))

    @settings(max_examples=200)
    @given(user_id=st.text(min_size=1, max_size=40))
    def test_assignment_is_idempotent(self, user_id):
        """Test the same (user, test) pair always gets the same variant."""
        test = make_test()
        first = assign_user_to_variant(user_id, test)
        assert all(assign_user_to_variant(user_id, test) == first for _ in range(3))
        assert first in ("A", "B")

    def test_assignment_is_independent_of_other_calls(self):
        """Test that call order does not influence assignment."""
        test = make_test()
        forward = [assign_user_to_variant(f"u{i}", test) for i in range(200)]
        backward = [assign_user_to_variant(f"u{i}", test) for i in reversed(range(200))]
        assert forward == list(reversed(backward))

    def test_zero_share_variant_never_assigned(self):
        test = make_test(trafficSplit={"A": 100, "B": 0})
        assert {assign_user_to_variant(f"u{i}", test) for i in range(300)} == {"A"}

    def test_empirical_split_approximates_configuration(self):
        """Test 10,000 users land close to a 60/40 split."""
        test = make_test()
        counts = Counter(assign_user_to_variant(f"user-{i}", test) for i in range(10_000))
        assert abs(counts["A"] - 6000) < 300


class TestApplicability:
    """Tests for time window and region matching."""

    def test_window_is_half_open(self):
        test = make_test(endDate="2026-02-01T00:00:00+00:00")

        assert is_test_applicable(test, now=datetime(2026, 1, 1, tzinfo=timezone.utc))
        assert not is_test_applicable(test, now=datetime(2026, 2, 1, tzinfo=timezone.utc))
        assert not is_test_applicable(test, now=datetime(2025, 12, 31, tzinfo=timezone.utc))

    def test_unbounded_end(self):
        assert is_test_applicable(make_test(), now=datetime(2030, 1, 1, tzinfo=timezone.utc))

    def test_region_matching(self):
        test = make_test(regions=["DE", "FR"])

        assert is_test_applicable(test, "DE", NOW)
        assert not is_test_applicable(test, "CN", NOW)
        assert is_test_applicable(test, None, NOW)
        assert is_test_applicable(make_test(), "CN", NOW)


class TestApplyVariant:
    """Tests for overlaying variants on rules."""

    def test_overlay_and_tag(self, rule_store):
        rule = rule_store.get_rule("gdpr")
        overlaid = apply_variant(rule, make_test(), "B")

        assert overlaid.weight == 40
        assert overlaid.ab_test_id == "ab-test-1"
        assert overlaid.ab_test_variant == "B"
        assert rule.weight == 30

    def test_variant_weight_wins_over_dynamic_weight(self, rule_store):
        """Test that a variant weight is not masked by a regional override."""
        overlaid = apply_variant(rule_store.get_rule("gdpr"), make_test(), "B")
        assert overlaid.effective_weight("DE") == 40

    def test_empty_override_keeps_rule(self, rule_store):
        rule = rule_store.get_rule("gdpr")
        overlaid = apply_variant(rule, make_test(), "A")

        assert overlaid.weight == rule.weight
        assert overlaid.effective_weight("DE") == 35


class TestExperimentStore:
    """Tests for A/B test storage."""

    def _config(self, **overrides):
        config = {
            "ruleId": "gdpr",
            "variants": [{"name": "A", "rule": {}}, {"name": "B", "rule": {"weight": 40}}],
            "trafficSplit": {"A": 60, "B": 40},
            "startDate": "2026-01-01T00:00:00+00:00",
        }
        config.update(overrides)
        return config

    def test_create_and_get(self, experiments):
        test = experiments.create_ab_test(self._config(id="t1"))

        assert experiments.get_ab_test("t1") == test
        assert test.status == TestStatus.ACTIVE

    def test_get_unknown(self, experiments):
        with pytest.raises(NotFoundError):
            experiments.get_ab_test("missing")

    def test_second_active_test_on_rule_rejected(self, experiments):
        experiments.create_ab_test(self._config(id="t1"))
        with pytest.raises(ConfigurationConflictError):
            experiments.create_ab_test(self._config(id="t2"))

    def test_expired_test_does_not_conflict(self, experiments):
        experiments.create_ab_test(self._config(id="t1", endDate="2026-02-01T00:00:00+00:00"))
        experiments.create_ab_test(self._config(id="t2"))
        assert len(experiments.list_ab_tests(rule_id="gdpr")) == 2

    def test_missing_rule_rejected(self, experiments):
        with pytest.raises(ConfigurationConflictError):
            experiments.create_ab_test(self._config(ruleId="missing"))

    def test_soft_deleted_rule_rejected(self, experiments, rule_store):
        rule_store.delete_rule("gdpr", soft=True)
        with pytest.raises(ConfigurationConflictError):
            experiments.create_ab_test(self._config())

    def test_duplicate_id_rejected(self, experiments):
        experiments.create_ab_test(self._config(id="t1", status="inactive"))
        with pytest.raises(ValidationError):
            experiments.create_ab_test(self._config(id="t1", status="inactive"))

    @pytest.mark.parametrize(
        "override",
        [{"weight": -5}, {"weight": 0}, {"category": "bogus"}, {"priority": "urgent"}],
    )
    def test_invalid_variant_override_rejected(self, experiments, override):
        """Test that a variant must still form a valid rule over the target."""
        config = self._config(
            id="t1",
            variants=[{"name": "A", "rule": {}}, {"name": "B", "rule": override}],
        )

        with pytest.raises(ValidationError, match="Variant B"):
            experiments.create_ab_test(config)
        assert not experiments.has_ab_test("t1")

    def test_invalid_variant_checked_on_reactivation(self, experiments):
        """Test that a stored test with a bad variant cannot be reactivated."""
        stored = validate_ab_test_config(
            self._config(
                id="t1",
                status="inactive",
                variants=[{"name": "A", "rule": {}}, {"name": "B", "rule": {"category": "bogus"}}],
            )
        )
        experiments.backend.set(EXPERIMENTS_NAMESPACE, "t1", stored)

        with pytest.raises(ValidationError, match="Variant B"):
            experiments.set_status("t1", "active")
        assert experiments.get_ab_test("t1").status == TestStatus.INACTIVE

    def test_counters(self, experiments):
        experiments.create_ab_test(self._config(id="t1"))

        assert experiments.record_impression("t1", "A") == 1
        assert experiments.record_impression("t1", "A") == 2
        assert experiments.record_conversion("t1", "A") == 1

        metrics = experiments.get_test_metrics("t1")
        assert metrics["variants"]["A"] == {
            "impressions": 2,
            "conversions": 1,
            "conversionRate": 0.5,
        }
        assert metrics["variants"]["B"]["conversionRate"] == 0.0

    def test_unknown_variant_counter(self, experiments):
        experiments.create_ab_test(self._config(id="t1"))
        with pytest.raises(NotFoundError):
            experiments.record_impression("t1", "C")

    def test_deactivate_and_reactivate(self, experiments):
        experiments.create_ab_test(self._config(id="t1"))

        assert experiments.set_status("t1", "inactive").status == TestStatus.INACTIVE
        assert experiments.get_applicable_tests("DE") == []
        experiments.create_ab_test(self._config(id="t2"))

        with pytest.raises(ConfigurationConflictError):
            experiments.set_status("t1", "active")

    def test_events_published(self, rule_store):
        bus = SubscriberBus()
        events = []
        bus.subscribe(RuleEvent.AB_TEST_CREATED, lambda t: events.append(("created", t.id)))
        bus.subscribe(RuleEvent.AB_TEST_UPDATED, lambda t: events.append(("updated", t.id)))
        experiments = ExperimentStore(rule_store=rule_store, bus=bus, clock=lambda: NOW)

        experiments.create_ab_test(self._config(id="t1"))
        experiments.set_status("t1", "inactive")

        assert events == [("created", "t1"), ("updated", "t1")]

    def test_count_running(self, experiments):
        experiments.create_ab_test(self._config(id="t1"))
        experiments.create_ab_test(self._config(id="t2", status="inactive"))
        assert experiments.count_running() == 1

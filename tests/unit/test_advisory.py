"""
Unit tests for the advisory provider adapter.
"""

import threading

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from regionfit.errors import ExternalUnavailableError
from regionfit.scoring import (
    CategoryScore,
    ContentSnapshot,
    ResultMerger,
    ScoreResult,
    call_provider,
    fetch_external_result,
    parse_external_result,
)

PAYLOAD = {
    "language": 60,
    "culture": {"score": 90, "issues": ["Use local imagery"]},
    "compliance": 100,
    "userExperience": 80,
    "suggestions": ["Translate product names"],
}


class StaticProvider:
    def __init__(self, payload):
        self.payload = payload
        self.calls = []

    def get_score(self, snapshot, region):
        self.calls.append(region)
        return self.payload


class FailingProvider:
    def get_score(self, snapshot, region):
        raise ConnectionError("service down")


class BlockingProvider:
    def __init__(self):
        self.release = threading.Event()

    def get_score(self, snapshot, region):
        self.release.wait(5)
        return PAYLOAD


MALFORMED_PAYLOADS = [
    {"language": {"score": 80, "issues": 5}},
    {"language": 80, "recommendations": ["x"]},
    {"language": 80, "recommendations": "x"},
    {"language": 80, "aiSuggestions": "x"},
    {"language": 80, "firedRules": 3},
    {"overallScore": "high"},
    ["not", "a", "mapping"],
    "text",
    {"categories": []},
    {"categories": {"language": "high"}},
]


@pytest.fixture
def snapshot() -> ContentSnapshot:
    return ContentSnapshot(url="https://shop.example.de")


class TestCallProvider:
    """Tests for call_provider."""

    def test_parses_dict_payload(self, snapshot):
        provider = StaticProvider(PAYLOAD)

        result = call_provider(provider, snapshot, "DE", timeout=1.0)

        assert provider.calls == ["DE"]
        assert result.score_of("language") == 60
        assert result.issues_of("culture") == ["Use local imagery"]
        assert result.ai_suggestions == ["Translate product names"]

    def test_passes_score_result_through(self, snapshot):
        expected = ScoreResult(region="DE")
        assert call_provider(StaticProvider(expected), snapshot, "DE", timeout=1.0) is expected

    def test_none_payload(self, snapshot):
        assert call_provider(StaticProvider(None), snapshot, "DE", timeout=1.0) is None

    def test_provider_error(self, snapshot):
        with pytest.raises(ExternalUnavailableError, match="service down"):
            call_provider(FailingProvider(), snapshot, "DE", timeout=1.0)

    def test_invalid_payload(self, snapshot):
        with pytest.raises(ExternalUnavailableError, match="invalid result"):
            call_provider(StaticProvider({"language": 140}), snapshot, "DE", timeout=1.0)

    def test_timeout(self, snapshot):
        provider = BlockingProvider()
        try:
            with pytest.raises(ExternalUnavailableError, match="timed out"):
                call_provider(provider, snapshot, "DE", timeout=0.05)
        finally:
            provider.release.set()


class TestFetchExternalResult:
    """Tests for fetch_external_result."""

    def test_no_provider(self, snapshot):
        assert fetch_external_result(None, snapshot, "DE") is None

    def test_failure_treated_as_absent(self, snapshot):
        assert fetch_external_result(FailingProvider(), snapshot, "DE") is None

    def test_timeout_treated_as_absent(self, snapshot):
        provider = BlockingProvider()
        try:
            assert fetch_external_result(provider, snapshot, "DE", timeout=0.05) is None
        finally:
            provider.release.set()

    def test_success(self, snapshot):
        result = fetch_external_result(StaticProvider(PAYLOAD), snapshot, "DE")
        assert result.score_of("userExperience") == 80

    @pytest.mark.parametrize("payload", MALFORMED_PAYLOADS)
    def test_malformed_payload_treated_as_absent(self, snapshot, payload):
        assert fetch_external_result(StaticProvider(payload), snapshot, "DE") is None


class TestParseExternalResult:
    """Tests for reading advisory payloads of any shape."""

    @pytest.mark.parametrize("payload", MALFORMED_PAYLOADS)
    def test_wrong_types_raise_unavailable(self, snapshot, payload):
        with pytest.raises(ExternalUnavailableError, match="invalid result"):
            call_provider(StaticProvider(payload), snapshot, "DE", timeout=1.0)

    def test_suggestions_alias(self):
        result = parse_external_result({"language": 70, "aiSuggestions": ["a"], "suggestions": ["b"]})
        assert result.ai_suggestions == ["a"]

    def test_none_and_result_pass_through(self):
        expected = ScoreResult()
        assert parse_external_result(None) is None
        assert parse_external_result(expected) is expected


KEYS = st.sampled_from(
    [
        "language",
        "culture",
        "compliance",
        "userExperience",
        "crossBorder",
        "categories",
        "score",
        "issues",
        "recommendations",
        "aiSuggestions",
        "suggestions",
        "firedRules",
        "overallScore",
        "region",
    ]
)

JSON_VALUES = st.recursive(
    st.none()
    | st.booleans()
    | st.integers(min_value=-1000, max_value=1000)
    | st.floats(allow_nan=True, allow_infinity=True)
    | st.text(max_size=5),
    lambda children: st.lists(children, max_size=4) | st.dictionaries(KEYS, children, max_size=5),
    max_leaves=20,
)


class TestExternalPayloadProperties:
    """Property tests over arbitrary JSON-like advisory payloads."""

    @settings(max_examples=200, deadline=None)
    @given(payload=JSON_VALUES)
    def test_parse_then_merge_never_crashes(self, payload):
        """Test that any payload either parses or is rejected, and merging stays in range."""
        try:
            external = parse_external_result(payload)
        except ExternalUnavailableError:
            return

        names = ("language", "culture", "compliance", "userExperience")
        local = ScoreResult(
            categories={name: CategoryScore(score=80) for name in names},
            overall_score=80,
            region="DE",
        )
        merged = ResultMerger().merge(local, external)

        assert all(0 <= c.score <= 100 for c in merged.categories.values())
        assert 0 <= merged.overall_score <= 100
        assert all(isinstance(s, str) for s in merged.ai_suggestions)

"""
Tests for Signal Filter and Filter Rules
"""

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from integrations.history_store import InMemoryHistoryStore
from pipeline.filter_rules import FilterRules
from pipeline.signal_filter import (
    HISTORY_KEY,
    RULES_KEY,
    FilterMetrics,
    SignalFilter
)


class TestFilterRules:
    """Tests for FilterRules."""

    def test_defaults(self):
        rules = FilterRules()

        assert rules.thresholds() == {
            "relevance": 0.6, "impact": 0.5, "trend": 0.7, "sentiment": 0.3
        }
        assert rules.category_weight("ai_development") == 1.5
        assert rules.category_weight("unheard_of") == 1.0
        assert rules.sentiment_weight("negative") == 0.8

    def test_unknown_reason_raises(self):
        with pytest.raises(KeyError):
            FilterRules().threshold_for("popularity")

    def test_overrides_skip_bad_values(self):
        rules = FilterRules.from_dict({
            "relevance_threshold": 0.4,
            "impact_threshold": "high",
            "category_weights": {"billing": 1.1, "bad": "x"},
            "not_a_rule": 1
        })

        assert rules.relevance_threshold == 0.4
        assert rules.impact_threshold == 0.5
        assert rules.category_weights["billing"] == 1.1
        assert "bad" not in rules.category_weights
        assert rules.category_weights["ai_development"] == 1.5

    def test_round_trip(self):
        rules = FilterRules(relevance_threshold=0.42)
        restored = FilterRules.from_dict(rules.to_dict())

        assert restored.thresholds() == rules.thresholds()
        assert restored.category_weights == rules.category_weights


class TestFilterDecision:
    """Tests for single-signal decisions."""

    def test_pass(self, make_scored):
        decision = SignalFilter().filter_signal(make_scored(filter_score=0.8))

        assert decision.passed
        assert decision.primary_reason == "passed"
        assert decision.reasons == ()

    def test_boundary_is_inclusive(self, make_scored):
        assert SignalFilter().filter_signal(make_scored(filter_score=0.6)).passed

    def test_primary_reason_is_first_failing_check(self, make_scored):
        decision = SignalFilter().filter_signal(
            make_scored(relevance=0.55, impact=0.4, trend=0.5, filter_score=0.5)
        )

        assert not decision.passed
        assert decision.reasons == ("relevance", "impact", "trend")
        assert decision.primary_reason == "relevance"

    def test_negative_sentiment_check(self, make_scored):
        decision = SignalFilter().filter_signal(
            make_scored(sentiment="negative", sentiment_score=0.2, filter_score=0.4)
        )

        assert decision.reasons == ("sentiment",)
        assert decision.primary_reason == "sentiment"

    def test_positive_sentiment_never_fails_sentiment_check(self, make_scored):
        decision = SignalFilter().filter_signal(
            make_scored(sentiment="positive", sentiment_score=0.0)
        )

        assert "sentiment" not in decision.reasons

    def test_rejected_without_failing_check(self, make_scored):
        decision = SignalFilter().filter_signal(make_scored(filter_score=0.59))

        assert not decision.passed
        assert decision.primary_reason == "score"

    def test_failing_check_does_not_block_pass(self, make_scored):
        """Acceptance depends only on the combined score."""
        decision = SignalFilter().filter_signal(make_scored(trend=0.2, filter_score=0.9))

        assert decision.passed
        assert decision.primary_reason == "trend"

    def test_malformed_scores_count_as_zero(self):
        class Broken:
            signal_id = 7
            filter_score = "high"
            relevance = None

        decision = SignalFilter().filter_signal(Broken())

        assert not decision.passed
        assert decision.score == 0.0
        assert decision.signal_id == "7"
        assert decision.primary_reason == "relevance"


class TestFilterBatch:
    """Tests for batch filtering and statistics."""

    def test_counts_and_order(self, make_scored):
        batch = [
            make_scored(signal_id="a", filter_score=0.9),
            make_scored(signal_id="b", relevance=0.3, filter_score=0.3),
            make_scored(signal_id="c", filter_score=0.7),
            make_scored(signal_id="d", filter_score=0.2),
        ]
        result = SignalFilter().filter_batch(batch)

        assert [s.signal_id for s in result.passed] == ["a", "c"]
        assert [d.signal_id for d in result.decisions] == ["a", "b", "c", "d"]
        assert result.metrics.total_signals == 4
        assert result.metrics.passed_count == 2
        assert result.metrics.rejected_by_reason["relevance"] == 1
        assert result.metrics.rejected_by_reason["score"] == 1
        assert result.metrics.filter_rate == 0.5

    def test_empty_batch_changes_nothing(self):
        signal_filter = SignalFilter()
        before = signal_filter.get_performance()

        result = signal_filter.filter_batch([])

        assert result.passed == []
        assert result.metrics.filter_rate == 0.0
        assert signal_filter.get_performance() == before

    def test_cumulative_performance(self, make_scored):
        signal_filter = SignalFilter()
        signal_filter.filter_batch([make_scored(filter_score=0.9)] * 3)
        signal_filter.filter_batch([make_scored(relevance=0.1, filter_score=0.1)])

        perf = signal_filter.get_performance()
        assert perf["total_signals"] == 4
        assert perf["passed_signals"] == 3
        assert perf["filter_rate"] == 0.75
        assert perf["rejected_by_reason"]["relevance"] == 1
        assert perf["batches_observed"] == 2

    def test_metrics_to_dict(self):
        metrics = FilterMetrics(total_signals=3, passed_count=1)

        assert metrics.to_dict()["rejected_count"] == 2
        assert metrics.to_dict()["filter_rate"] == 0.3333


class TestThresholdTuning:
    """Tests for self-tuning thresholds."""

    def test_all_pass_relaxes_every_threshold(self, make_scored):
        signal_filter = SignalFilter()
        signal_filter.filter_batch([make_scored(filter_score=0.9)] * 4)

        changes = signal_filter.optimize_thresholds()

        assert set(changes) == {"relevance", "impact", "trend", "sentiment"}
        assert signal_filter.rules.relevance_threshold == pytest.approx(0.54)
        assert signal_filter.rules.trend_threshold == pytest.approx(0.63)
        assert changes["relevance"] == {"old": 0.6, "new": 0.54}

    def test_persistent_relevance_rejections_tighten(self, make_scored):
        """(0.5 + 1) / 2 = 0.75, then (0.75 + 1) / 2 = 0.875 > 0.8."""
        signal_filter = SignalFilter()
        rejects = [make_scored(relevance=0.1, filter_score=0.1)] * 2
        signal_filter.filter_batch(rejects)
        signal_filter.filter_batch(rejects)

        changes = signal_filter.optimize_thresholds()

        assert signal_filter.history["learning_patterns"]["effectiveness_by_reason"]["relevance"] == pytest.approx(0.875)
        assert signal_filter.rules.relevance_threshold == pytest.approx(0.66)
        assert changes["relevance"]["new"] == 0.66

    def test_middle_band_leaves_threshold(self, make_scored):
        """One all-rejected batch: effectiveness 0.75 sits inside [0.5, 0.8]."""
        signal_filter = SignalFilter()
        signal_filter.filter_batch([make_scored(relevance=0.1, filter_score=0.1)])

        changes = signal_filter.optimize_thresholds()

        assert "relevance" not in changes
        assert signal_filter.rules.relevance_threshold == 0.6

    def test_thresholds_decrease_until_floor(self, make_scored):
        """All-passed batches keep every reason below 0.5, so each round relaxes."""
        signal_filter = SignalFilter()
        history = {reason: [value] for reason, value in signal_filter.rules.thresholds().items()}
        for _ in range(40):
            signal_filter.filter_batch([make_scored(filter_score=1.0)])
            signal_filter.optimize_thresholds()
            for reason, value in signal_filter.rules.thresholds().items():
                history[reason].append(value)

        for reason, values in history.items():
            for previous, current in zip(values, values[1:]):
                if previous > 0.05:
                    assert current < previous, reason
                else:
                    assert current == pytest.approx(0.05), reason
            assert values[-1] == pytest.approx(0.05)

    def test_thresholds_bounded_above(self, make_scored):
        signal_filter = SignalFilter(rule_overrides={"relevance_threshold": 0.9})
        for _ in range(10):
            signal_filter.filter_batch([make_scored(relevance=0.1, filter_score=0.1)])
            signal_filter.optimize_thresholds()

        assert signal_filter.rules.relevance_threshold == pytest.approx(0.95)

    def test_optimization_counted(self):
        signal_filter = SignalFilter()
        signal_filter.optimize_thresholds()

        assert signal_filter.get_performance()["optimizations"] == 1


class TestFilterPersistence:
    """Tests for loading and saving filter state."""

    def test_state_round_trips_through_store(self, make_scored):
        store = InMemoryHistoryStore()
        first = SignalFilter(store=store)
        first.filter_batch([make_scored(filter_score=0.9)] * 2)
        first.optimize_thresholds()

        second = SignalFilter(store=store)

        assert second.rules.relevance_threshold == pytest.approx(0.54)
        assert second.get_performance()["total_signals"] == 2

    def test_stored_rules_win_over_config(self):
        store = InMemoryHistoryStore({RULES_KEY: {"relevance_threshold": 0.3}})

        signal_filter = SignalFilter(store=store, rule_overrides={"relevance_threshold": 0.7})

        assert signal_filter.rules.relevance_threshold == 0.3

    def test_corrupt_state_means_defaults(self):
        store = InMemoryHistoryStore({RULES_KEY: ["not", "a", "dict"], HISTORY_KEY: "junk"})

        signal_filter = SignalFilter(store=store)

        assert signal_filter.rules.thresholds() == FilterRules().thresholds()
        assert signal_filter.get_performance()["total_signals"] == 0

    def test_reset(self, make_scored):
        store = InMemoryHistoryStore()
        signal_filter = SignalFilter(store=store)
        signal_filter.filter_batch([make_scored(filter_score=0.9)])
        signal_filter.optimize_thresholds()

        signal_filter.reset()

        assert signal_filter.rules.relevance_threshold == 0.6
        assert store.load_history(RULES_KEY)["relevance_threshold"] == 0.6
        assert store.load_history(HISTORY_KEY)["performance"]["total_signals"] == 0


class TestFilterInsights:
    """Tests for effectiveness insights."""

    def test_low_effectiveness(self, make_scored):
        signal_filter = SignalFilter()
        signal_filter.filter_batch([make_scored(relevance=0.1, filter_score=0.1)] * 3)

        insights = signal_filter.generate_insights()
        titles = [i.title for i in insights]

        assert "Low filter effectiveness" in titles
        assert "Low impact effectiveness" in titles
        assert "Low relevance effectiveness" not in titles

    def test_high_effectiveness(self, make_scored):
        signal_filter = SignalFilter()
        for _ in range(3):
            signal_filter.filter_batch([make_scored(filter_score=0.9)])

        titles = [i.title for i in signal_filter.generate_insights()]

        assert "High filter effectiveness" in titles
        assert signal_filter.learning_improvement() == "high"

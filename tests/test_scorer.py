"""
Tests for Signal Scorer
"""

import pytest
from datetime import timedelta
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from integrations.source_registry import popularity_contribution
from pipeline.filter_rules import FilterRules
from pipeline.scorer import SignalScorer, clamp
from pipeline.signal import Signal

from conftest import FIXED_NOW, fixed_clock


@pytest.fixture
def scorer():
    return SignalScorer(clock=fixed_clock)


class TestSignalFromDict:
    """Tests for loose signal normalization."""

    def test_full_record(self):
        signal = Signal.from_dict({
            "id": "gh-1",
            "source": "github",
            "category": " AI_Development ",
            "title": "Title",
            "description": "Body",
            "timestamp": "2026-10-15T11:00:00Z",
            "metrics": {"stars": "120", "forks": 3, "bogus": "n/a"},
            "engagement": "HIGH"
        })

        assert signal.signal_id == "gh-1"
        assert signal.category == "ai_development"
        assert signal.timestamp == FIXED_NOW - timedelta(hours=1)
        assert signal.raw_metrics == {"stars": 120.0, "forks": 3.0}
        assert signal.engagement == "high"

    def test_malformed_record_never_raises(self):
        signal = Signal.from_dict({
            "title": None,
            "description": ["not", "text"],
            "timestamp": "yesterday",
            "raw_metrics": "lots",
            "engagement": 5
        }, fallback_id="signal-3")

        assert signal.signal_id == "signal-3"
        assert signal.title == ""
        assert signal.description == ""
        assert signal.timestamp is None
        assert signal.raw_metrics == {}
        assert signal.engagement is None

    def test_non_dict_record(self):
        signal = Signal.from_dict("garbage", fallback_id="x")

        assert signal.signal_id == "x"
        assert signal.category == ""


class TestSubScores:
    """Tests for individual sub-scores."""

    def test_clamp(self):
        assert clamp(1.5) == 1.0
        assert clamp(-0.2) == 0.0
        assert clamp(0.3) == 0.3

    def test_popularity_weights_per_metric(self):
        """stars and views saturate at 0.3, forks at 0.2, comments at 0.1."""
        assert popularity_contribution({"stars": 5000}) == pytest.approx(0.3)
        assert popularity_contribution({"views": 5000}) == pytest.approx(0.15)
        assert popularity_contribution({"forks": 400, "comments": 50}) == pytest.approx(0.25)
        assert popularity_contribution({"Downloads": 25000, "mystery": 10}) == pytest.approx(0.1)

    def test_relevance_is_capped(self, scorer, make_signal):
        scored = scorer.score(make_signal())

        assert scored.relevance == 1.0

    def test_relevance_for_irrelevant_category(self, scorer, make_signal):
        """0.5 + 0.3*1/5 + 0.2*1/4, no category bonus."""
        scored = scorer.score(make_signal(
            title="Billing tool problem",
            description="Frustrated with terrible software, same issue again.",
            category="billing"
        ))

        assert scored.relevance == pytest.approx(0.61)

    def test_impact_from_calibrated_metrics(self, scorer, make_signal):
        """0.5 + 0.3*334/1000 + 0.2*relevance."""
        scored = scorer.score(make_signal(raw_metrics={"stars": 334}))

        assert scored.impact == pytest.approx(0.8002)

    def test_unknown_metrics_contribute_nothing(self, scorer, make_signal):
        with_unknown = scorer.score(make_signal(raw_metrics={"likes": 10 ** 6}))
        without = scorer.score(make_signal(raw_metrics={}))

        assert with_unknown.impact == without.impact == pytest.approx(0.7)

    def test_high_engagement_bonus(self, scorer, make_signal):
        low = scorer.score(make_signal(
            category="billing", title="", description="", raw_metrics={}
        ))
        high = scorer.score(make_signal(
            category="billing", title="", description="", raw_metrics={}, engagement="high"
        ))

        assert high.impact == pytest.approx(low.impact + 0.2)

    def test_recency_falloff(self, scorer):
        assert scorer.recency(FIXED_NOW, FIXED_NOW) == 1.0
        assert scorer.recency(FIXED_NOW - timedelta(days=3.5), FIXED_NOW) == pytest.approx(0.5)
        assert scorer.recency(FIXED_NOW - timedelta(days=30), FIXED_NOW) == 0.0
        assert scorer.recency(None, FIXED_NOW) == 0.0

    def test_trend_without_timestamp(self, scorer):
        signal = Signal.from_dict({"category": "billing"})
        scored = scorer.score(signal)

        # 0.5 + 0 recency + 0.3 * relevance 0.5
        assert scored.trend == pytest.approx(0.65)


class TestScore:
    """Tests for the combined score."""

    def test_relevant_positive_signal(self, scorer, make_signal):
        scored = scorer.score(make_signal())

        assert scored.sentiment == "positive"
        assert scored.sentiment_score == pytest.approx(0.4)
        assert scored.classified_category == "ai_development"
        assert scored.category == "ai_development"
        assert scored.category_confidence == 0.9
        assert scored.trend == 1.0
        assert scored.filter_score == 1.0
        assert scored.keywords == ("ai", "development", "framework", "tool", "system")
        assert scored.scored_at == FIXED_NOW

    def test_negative_signal_uses_weights(self, scorer, make_signal):
        """(0.4*0.61 + 0.3*0.751 + 0.2*1.0 + 0.1*0.8) * 1.3 * 0.8"""
        scored = scorer.score(make_signal(
            title="Billing tool problem",
            description="Frustrated with terrible software, same issue again.",
            category="billing",
            raw_metrics={"views": 4300}
        ))

        assert scored.sentiment == "negative"
        assert scored.sentiment_score == pytest.approx(0.8)
        assert scored.classified_category == "developer_tools"
        assert scored.category == "billing"
        assert scored.impact == pytest.approx(0.751)
        assert scored.filter_score == pytest.approx(0.779272)

    def test_empty_signal_gets_neutral_defaults(self, scorer):
        scored = scorer.score(Signal.from_dict({}))

        assert scored.relevance == 0.5
        assert scored.impact == pytest.approx(0.6)
        assert scored.trend == pytest.approx(0.65)
        assert scored.sentiment == "neutral"
        assert scored.category == "other"
        assert scored.filter_score == pytest.approx(0.51)

    def test_missing_category_uses_classified(self, scorer, make_signal):
        scored = scorer.score(make_signal(category=""))

        assert scored.category == "ai_development"

    def test_scorer_reads_shared_rules(self, make_signal):
        rules = FilterRules()
        scorer = SignalScorer(rules=rules, clock=fixed_clock)
        signal = make_signal(category="billing", title="", description="Nothing here", raw_metrics={})

        before = scorer.score(signal).filter_score
        rules.category_weights["other"] = 0.5
        after = scorer.score(signal).filter_score

        assert after == pytest.approx(before * 0.5)

    def test_scores_always_in_unit_range(self, scorer, make_signal):
        scored = scorer.score(make_signal(
            raw_metrics={"stars": 10 ** 9, "views": -50, "upvotes": 10 ** 9},
            engagement="high",
            hours_ago=-48
        ))

        for value in (scored.relevance, scored.impact, scored.trend,
                      scored.sentiment_score, scored.filter_score):
            assert 0.0 <= value <= 1.0

    def test_score_batch_preserves_order(self, scorer, make_signal):
        signals = [make_signal(signal_id=f"s-{i}") for i in range(4)]

        assert [s.signal_id for s in scorer.score_batch(signals)] == ["s-0", "s-1", "s-2", "s-3"]

    def test_to_dict_rounds(self, scorer, make_signal):
        data = scorer.score(make_signal()).to_dict()

        assert data["impact"] == 0.8002
        assert data["signal"]["signal_id"] == "sig-1"
        assert data["keywords"][0] == "ai"

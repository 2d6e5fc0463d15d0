"""
Tests for Trend Detector
"""

import pytest
from datetime import timedelta
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from integrations.history_store import InMemoryHistoryStore
from pipeline.trend_detector import (
    HISTORY_KEY,
    Momentum,
    TrendDetector,
    TrendPattern,
    dominant_sentiment
)

from conftest import FIXED_NOW, fixed_clock


@pytest.fixture
def detector():
    return TrendDetector(clock=fixed_clock)


def pattern(pattern_type="category", key="x", strength=0.5, confidence=0.8):
    return TrendPattern(pattern_type, key, strength, confidence, "", FIXED_NOW)


class TestDistributions:
    """Tests for batch distributions."""

    def test_category_profiles(self, detector, make_scored):
        batch = [
            make_scored(signal_id="a", category="ai_development", relevance=1.0, impact=0.8,
                        sentiment="positive", keywords=("ai", "tool")),
            make_scored(signal_id="b", category="ai_development", relevance=0.8, impact=0.6,
                        sentiment="positive", keywords=("ai",)),
            make_scored(signal_id="c", category="billing", sentiment="negative"),
        ]
        dist = detector.build_distributions(batch)

        profile = dist.category_profiles["ai_development"]
        assert dist.total_signals == 3
        assert dist.category_counts == {"ai_development": 2, "billing": 1}
        assert profile.share == pytest.approx(2 / 3)
        assert profile.mean_relevance == pytest.approx(0.9)
        assert profile.mean_impact == pytest.approx(0.7)
        assert profile.dominant_sentiment == "positive"
        assert profile.top_keywords == ["ai", "tool"]
        assert dist.keyword_counts == {"ai": 2, "tool": 1}
        assert dist.sentiment_counts == {"positive": 2, "negative": 1, "neutral": 0}

    def test_empty_batch(self, detector):
        dist = detector.build_distributions([])

        assert dist.total_signals == 0
        assert dist.category_profiles == {}
        assert dist.sentiment_share("positive") == 0.0

    def test_impact_series_in_time_order(self, detector, make_scored):
        batch = [
            make_scored(signal_id="late", impact=0.9, timestamp=FIXED_NOW),
            make_scored(signal_id="undated", impact=0.1, timestamp=None),
            make_scored(signal_id="early", impact=0.3, timestamp=FIXED_NOW - timedelta(hours=5)),
        ]
        dist = detector.build_distributions(batch)

        assert dist.impact_series == [0.3, 0.9, 0.1]
        assert dist.hourly_distribution == {7: 1, 12: 1}
        assert dist.weekday_distribution == {"thursday": 2}

    def test_dominant_sentiment_needs_strict_plurality(self):
        assert dominant_sentiment({"positive": 2, "negative": 2, "neutral": 0}) == "neutral"
        assert dominant_sentiment({"positive": 0, "negative": 3, "neutral": 1}) == "negative"
        assert dominant_sentiment({}) == "neutral"


class TestImpactAnalysis:
    """Tests for the impact trend."""

    def test_increasing(self, detector):
        trend = detector.analyze_impact([0.5] * 5 + [0.7] * 5)

        assert trend.direction == "increasing"
        assert trend.recent_mean == pytest.approx(0.7)
        assert trend.prior_mean == pytest.approx(0.5)
        assert trend.change == pytest.approx(0.4)

    def test_decreasing(self, detector):
        assert detector.analyze_impact([0.9] * 3 + [0.5] * 5).direction == "decreasing"

    def test_small_change_is_stable(self, detector):
        assert detector.analyze_impact([0.5] * 5 + [0.52] * 5).direction == "stable"

    def test_window_only_is_stable(self, detector):
        trend = detector.analyze_impact([0.1, 0.2, 0.9, 0.9, 0.9])

        assert trend.direction == "stable"
        assert trend.change == 0.0

    def test_zero_prior_counts_as_increasing(self, detector):
        assert detector.analyze_impact([0.0] + [0.5] * 5).direction == "increasing"

    def test_high_impact_count(self, detector):
        assert detector.analyze_impact([0.81, 0.8, 0.95]).high_impact_signals == 2

    def test_empty(self, detector):
        trend = detector.analyze_impact([])

        assert trend.direction == "stable"
        assert trend.average_impact == 0.0


class TestPatterns:
    """Tests for pattern thresholds."""

    def test_category_share_is_strict(self, detector, make_scored):
        exact = [make_scored(category="billing")] + [make_scored(category="other")] * 4
        patterns = detector.detect_patterns(detector.build_distributions(exact))

        assert "category:billing" not in [p.pattern_id for p in patterns]
        assert "category:other" in [p.pattern_id for p in patterns]

    def test_keyword_count_is_strict(self, detector, make_scored):
        three = [make_scored(keywords=("ai",))] * 3 + [make_scored()] * 7
        four = [make_scored(keywords=("ai",))] * 4 + [make_scored()] * 6

        ids_three = [p.pattern_id for p in detector.detect_patterns(detector.build_distributions(three))]
        ids_four = [p.pattern_id for p in detector.detect_patterns(detector.build_distributions(four))]

        assert "keyword:ai" not in ids_three
        assert "keyword:ai" in ids_four

    def test_keyword_strength_is_share(self, detector, make_scored):
        batch = [make_scored(keywords=("ai",))] * 4 + [make_scored()] * 6
        keyword = [p for p in detector.detect_patterns(detector.build_distributions(batch))
                   if p.pattern_type == "keyword"][0]

        assert keyword.strength == pytest.approx(0.4)
        assert keyword.confidence == 0.7

    def test_sentiment_share_is_strict(self, detector, make_scored):
        three_of_five = [make_scored(sentiment="negative")] * 3 + [make_scored()] * 2
        four_of_five = [make_scored(sentiment="negative")] * 4 + [make_scored()]

        ids_three = [p.pattern_id for p in detector.detect_patterns(detector.build_distributions(three_of_five))]
        ids_four = [p.pattern_id for p in detector.detect_patterns(detector.build_distributions(four_of_five))]

        assert "sentiment:negative" not in ids_three
        assert "sentiment:negative" in ids_four

    def test_impact_pattern(self, detector, make_scored):
        batch = [
            make_scored(signal_id=f"s{i}", impact=0.5 if i < 5 else 0.7,
                        timestamp=FIXED_NOW - timedelta(hours=10 - i))
            for i in range(10)
        ]
        patterns = detector.detect_patterns(detector.build_distributions(batch))
        impact = [p for p in patterns if p.pattern_type == "impact"]

        assert len(impact) == 1
        assert impact[0].strength == pytest.approx(0.6)

    def test_patterns_carry_detection_time(self, detector, make_scored):
        patterns = detector.detect_patterns(detector.build_distributions([make_scored()]))

        assert patterns
        assert all(p.detected_at == FIXED_NOW for p in patterns)

    def test_pattern_round_trip(self):
        original = pattern("keyword", "ai", 0.4, 0.7)

        assert TrendPattern.from_dict(original.to_dict()) == original


class TestMomentumAndAlerts:
    """Tests for momentum, correlations, predictions and alerts."""

    def test_momentum_weights(self, detector):
        momentum = detector.compute_momentum([
            pattern("category", "ai", 0.5),
            pattern("keyword", "tool", 0.5),
            pattern("sentiment", "positive", 0.5),
        ])

        # 0.3*0.5 + 0.2*0.5 + 0.2*0.5
        assert momentum.overall == pytest.approx(0.35)
        assert momentum.per_category == {"ai": 0.5}
        assert momentum.sentiment == 0.5

    def test_momentum_clamped(self, detector):
        patterns = [pattern("keyword", f"k{i}", 1.0) for i in range(8)]

        assert detector.compute_momentum(patterns).overall == 1.0

    def test_empty_momentum(self, detector):
        assert detector.compute_momentum([]).overall == 0.0

    def test_correlation_threshold_and_clusters(self, detector):
        patterns = [
            pattern("category", "a", 0.9),
            pattern("keyword", "b", 0.8),
            pattern("keyword", "c", 0.1),
        ]
        correlations, clusters = detector.correlate(patterns)

        assert [(c.first, c.second) for c in correlations] == [("category:a", "keyword:b")]
        assert correlations[0].correlation == pytest.approx(0.9)
        assert clusters == [["category:a", "keyword:b"]]

    def test_prediction_bands(self, detector):
        predictions = detector.predict([
            pattern("category", "strong", 1.0, 0.8),
            pattern("sentiment", "moderate", 0.7, 0.9),
            pattern("sentiment", "weak", 0.4, 0.9),
            pattern("sentiment", "none", 0.3, 0.9),
        ])

        assert [p.prediction for p in predictions] == [
            "strong_continuation", "moderate_continuation", "weak_continuation"
        ]
        assert predictions[0].confidence == pytest.approx(0.8)

    def test_alerts(self, detector):
        momentum = Momentum(
            overall=0.85,
            per_category={"ai": 0.75, "billing": 0.7},
            per_keyword={"tool": 0.65},
            sentiment=0.9,
            impact=0.5
        )
        alerts = detector.generate_alerts(momentum)

        assert [a.alert_type for a in alerts] == [
            "high_momentum_alert", "category_alert", "keyword_alert", "sentiment_alert"
        ]
        assert alerts[0].priority == "high"
        assert alerts[1].title == "Strong ai trend"
        assert all(a.timestamp == FIXED_NOW for a in alerts)

    def test_no_alerts_for_quiet_batch(self, detector):
        assert detector.generate_alerts(Momentum()) == []


class TestDetect:
    """Tests for the full detection run."""

    def test_single_category_batch(self, detector, make_scored):
        batch = [
            make_scored(signal_id=f"s{i}", sentiment="positive", impact=0.8,
                        keywords=("ai", "tool"))
            for i in range(10)
        ]
        report = detector.detect(batch)

        ids = [p.pattern_id for p in report.patterns]
        assert ids == ["category:ai_development", "keyword:ai", "keyword:tool", "sentiment:positive"]
        assert report.impact_trend.direction == "stable"
        # 0.3*1.0 + 0.2*1.0 + 0.2*1.0 + 0.2*1.0
        assert report.momentum.overall == pytest.approx(0.9)
        assert "high_momentum_alert" in [a.alert_type for a in report.alerts]
        assert report.to_dict()["patterns"][0]["key"] == "ai_development"

    def test_empty_batch(self, detector):
        report = detector.detect([])

        assert report.patterns == []
        assert report.momentum.overall == 0.0
        assert report.alerts == []
        assert report.clusters == []


class TestTrendHistory:
    """Tests for trend history persistence."""

    def test_record_and_summary(self, make_scored):
        store = InMemoryHistoryStore()
        detector = TrendDetector(store=store, clock=fixed_clock)
        batch = [make_scored(sentiment="positive", keywords=("ai",)) for _ in range(5)]

        assert detector.record(detector.detect(batch))

        reloaded = TrendDetector(store=store, clock=fixed_clock)
        summary = reloaded.get_trend_summary()
        assert summary["total_trends"] == 3
        assert summary["top_categories"] == ["ai_development"]
        assert summary["top_keywords"] == ["ai"]
        assert summary["last_updated"] == FIXED_NOW.isoformat()
        assert store.load_history(HISTORY_KEY)["last_analysis"]["total_signals"] == 5

    def test_history_capped(self, make_scored):
        detector = TrendDetector(clock=fixed_clock, max_history=2)
        batch = [make_scored(sentiment="positive", keywords=("ai",)) for _ in range(5)]

        detector.record(detector.detect(batch))

        assert len(detector.history["trends"]) == 2

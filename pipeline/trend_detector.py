"""
Trend Detector

Aggregates the signals that passed the filter into distributions and
derives trend patterns, momentum, correlations, predictions and alerts.

Pattern rules (all strict comparisons):
- category:  share of batch > 20%                       (confidence 0.8)
- keyword:   one of the top 10 keywords, count > 3      (confidence 0.7)
- sentiment: positive or negative share > 60%           (confidence 0.9)
- impact:    mean of last 5 impact scores beats the mean of all earlier
             scores by more than 10%                    (confidence 0.8)

Momentum weights: category 0.3, keyword 0.2, sentiment 0.2, impact 0.3.
Correlation between two patterns is 1 - |strength1 - strength2|.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import networkx as nx
import numpy as np

from integrations.history_store import HistoryStore, append_capped
from utils.datetime_utils import utc_now

from .scorer import ScoredSignal, clamp

logger = logging.getLogger(__name__)

HISTORY_KEY = "trend_history"

SENTIMENT_LABELS = ("positive", "negative", "neutral")
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


# ============================================================
# Records
# ============================================================

@dataclass
class CategoryProfile:
    """Aggregate view of one category within a batch."""
    category: str
    count: int
    share: float
    mean_relevance: float
    mean_impact: float
    mean_trend: float
    sentiment_counts: Dict[str, int]
    dominant_sentiment: str
    top_keywords: List[str]

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "count": self.count,
            "share": round(self.share, 4),
            "mean_relevance": round(self.mean_relevance, 4),
            "mean_impact": round(self.mean_impact, 4),
            "mean_trend": round(self.mean_trend, 4),
            "sentiment_counts": dict(self.sentiment_counts),
            "dominant_sentiment": self.dominant_sentiment,
            "top_keywords": list(self.top_keywords)
        }


@dataclass
class ImpactTrend:
    direction: str            # increasing, decreasing, stable
    recent_mean: float
    prior_mean: float
    change: float             # relative change of recent vs prior
    average_impact: float
    high_impact_signals: int

    def to_dict(self) -> dict:
        return {
            "direction": self.direction,
            "recent_mean": round(self.recent_mean, 4),
            "prior_mean": round(self.prior_mean, 4),
            "change": round(self.change, 4),
            "average_impact": round(self.average_impact, 4),
            "high_impact_signals": self.high_impact_signals
        }


@dataclass
class TrendDistributions:
    """
    Distributions over one batch of passed signals.

    Shares are exact fractions; pattern thresholds compare against them
    directly.
    """
    total_signals: int = 0
    category_counts: Dict[str, int] = field(default_factory=dict)
    category_shares: Dict[str, float] = field(default_factory=dict)
    category_profiles: Dict[str, CategoryProfile] = field(default_factory=dict)
    keyword_counts: Dict[str, int] = field(default_factory=dict)
    top_keywords: List[str] = field(default_factory=list)
    sentiment_counts: Dict[str, int] = field(
        default_factory=lambda: {s: 0 for s in SENTIMENT_LABELS}
    )
    impact_by_category: Dict[str, float] = field(default_factory=dict)
    impact_series: List[float] = field(default_factory=list)
    hourly_distribution: Dict[int, int] = field(default_factory=dict)
    weekday_distribution: Dict[str, int] = field(default_factory=dict)

    def sentiment_share(self, label: str) -> float:
        total = sum(self.sentiment_counts.values())
        if total == 0:
            return 0.0
        return self.sentiment_counts.get(label, 0) / total

    def to_dict(self) -> dict:
        return {
            "total_signals": self.total_signals,
            "category_counts": dict(self.category_counts),
            "category_shares": {k: round(v, 4) for k, v in self.category_shares.items()},
            "category_profiles": {k: p.to_dict() for k, p in self.category_profiles.items()},
            "keyword_counts": dict(self.keyword_counts),
            "top_keywords": list(self.top_keywords),
            "sentiment_counts": dict(self.sentiment_counts),
            "impact_by_category": {k: round(v, 4) for k, v in self.impact_by_category.items()},
            "impact_series": [round(v, 4) for v in self.impact_series],
            "hourly_distribution": {str(k): v for k, v in self.hourly_distribution.items()},
            "weekday_distribution": dict(self.weekday_distribution)
        }


@dataclass(frozen=True)
class TrendPattern:
    """A detected trend. Immutable, timestamped at detection."""
    pattern_type: str   # category, keyword, sentiment, impact
    key: str
    strength: float
    confidence: float
    description: str
    detected_at: Optional[datetime] = None

    @property
    def pattern_id(self) -> str:
        return f"{self.pattern_type}:{self.key}"

    def to_dict(self) -> dict:
        return {
            "pattern_type": self.pattern_type,
            "key": self.key,
            "strength": round(self.strength, 4),
            "confidence": round(self.confidence, 4),
            "description": self.description,
            "detected_at": self.detected_at.isoformat() if self.detected_at else None
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TrendPattern":
        detected_at = None
        if data.get("detected_at"):
            detected_at = datetime.fromisoformat(data["detected_at"])
        return cls(
            pattern_type=data.get("pattern_type", ""),
            key=data.get("key", ""),
            strength=float(data.get("strength", 0.0)),
            confidence=float(data.get("confidence", 0.0)),
            description=data.get("description", ""),
            detected_at=detected_at
        )


@dataclass
class Momentum:
    overall: float = 0.0
    per_category: Dict[str, float] = field(default_factory=dict)
    per_keyword: Dict[str, float] = field(default_factory=dict)
    sentiment: float = 0.0
    impact: float = 0.0

    def to_dict(self) -> dict:
        return {
            "overall": round(self.overall, 4),
            "per_category": {k: round(v, 4) for k, v in self.per_category.items()},
            "per_keyword": {k: round(v, 4) for k, v in self.per_keyword.items()},
            "sentiment": round(self.sentiment, 4),
            "impact": round(self.impact, 4)
        }


@dataclass(frozen=True)
class TrendCorrelation:
    first: str
    second: str
    correlation: float
    description: str

    def to_dict(self) -> dict:
        return {
            "first": self.first,
            "second": self.second,
            "correlation": round(self.correlation, 4),
            "description": self.description
        }


@dataclass(frozen=True)
class TrendPrediction:
    pattern_id: str
    prediction: str     # strong_continuation, moderate_continuation, weak_continuation
    confidence: float
    description: str

    def to_dict(self) -> dict:
        return {
            "pattern_id": self.pattern_id,
            "prediction": self.prediction,
            "confidence": round(self.confidence, 4),
            "description": self.description
        }


@dataclass(frozen=True)
class TrendAlert:
    alert_type: str
    priority: str
    title: str
    description: str
    actionable: bool = True
    timestamp: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "alert_type": self.alert_type,
            "priority": self.priority,
            "title": self.title,
            "description": self.description,
            "actionable": self.actionable,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None
        }


@dataclass
class TrendReport:
    """Everything the detector produced for one batch."""
    distributions: TrendDistributions
    patterns: List[TrendPattern]
    momentum: Momentum
    correlations: List[TrendCorrelation]
    clusters: List[List[str]]
    predictions: List[TrendPrediction]
    alerts: List[TrendAlert]
    impact_trend: ImpactTrend

    def to_dict(self) -> dict:
        return {
            "distributions": self.distributions.to_dict(),
            "patterns": [p.to_dict() for p in self.patterns],
            "momentum": self.momentum.to_dict(),
            "correlations": [c.to_dict() for c in self.correlations],
            "clusters": [list(c) for c in self.clusters],
            "predictions": [p.to_dict() for p in self.predictions],
            "alerts": [a.to_dict() for a in self.alerts],
            "impact_trend": self.impact_trend.to_dict()
        }


# ============================================================
# Detector
# ============================================================

def _mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(values))


def dominant_sentiment(counts: Dict[str, int]) -> str:
    """Strict plurality of positive or negative, otherwise neutral."""
    pos = counts.get("positive", 0)
    neg = counts.get("negative", 0)
    neu = counts.get("neutral", 0)
    if pos > neg and pos > neu:
        return "positive"
    if neg > pos and neg > neu:
        return "negative"
    return "neutral"


class TrendDetector:
    """
    Detect trends in a batch of passed signals.

    The numeric core (build_distributions through generate_alerts) is pure;
    record() is the only method that touches the history store.
    """

    CATEGORY_SHARE_THRESHOLD = 0.20
    KEYWORD_COUNT_THRESHOLD = 3
    SENTIMENT_SHARE_THRESHOLD = 0.60
    IMPACT_CHANGE_THRESHOLD = 0.10
    IMPACT_RECENT_WINDOW = 5
    HIGH_IMPACT_SCORE = 0.8

    TOP_KEYWORDS = 10
    PROFILE_KEYWORDS = 5

    CONFIDENCE = {
        "category": 0.8,
        "keyword": 0.7,
        "sentiment": 0.9,
        "impact": 0.8,
    }

    MOMENTUM_WEIGHTS = {
        "category": 0.3,
        "keyword": 0.2,
        "sentiment": 0.2,
        "impact": 0.3,
    }

    CORRELATION_THRESHOLD = 0.5

    # (threshold, label), checked in order against strength * confidence
    PREDICTION_BANDS = (
        (0.7, "strong_continuation"),
        (0.5, "moderate_continuation"),
        (0.3, "weak_continuation"),
    )

    ALERT_OVERALL = 0.8
    ALERT_CATEGORY = 0.7
    ALERT_KEYWORD = 0.6
    ALERT_SENTIMENT = 0.8
    ALERT_IMPACT = 0.7

    def __init__(
        self,
        store: Optional[HistoryStore] = None,
        clock: Callable[[], datetime] = utc_now,
        max_history: int = 1000
    ):
        self.store = store
        self.clock = clock
        self.max_history = max_history
        self.history: Dict[str, Any] = self._load_history()

    # ------------------------------------------------------------------ #
    #  Distributions                                                      #
    # ------------------------------------------------------------------ #
    def build_distributions(self, signals: Sequence[ScoredSignal]) -> TrendDistributions:
        """Aggregate a batch into category, keyword, sentiment, impact and time distributions."""
        dist = TrendDistributions(total_signals=len(signals))
        if not signals:
            return dist

        total = len(signals)
        by_category: Dict[str, List[ScoredSignal]] = {}
        keyword_counts: Counter = Counter()

        for scored in signals:
            category = scored.category or "other"
            by_category.setdefault(category, []).append(scored)
            keyword_counts.update(set(scored.keywords))
            if scored.sentiment in dist.sentiment_counts:
                dist.sentiment_counts[scored.sentiment] += 1
            else:
                dist.sentiment_counts["neutral"] += 1

        for category in sorted(by_category):
            members = by_category[category]
            counts = {s: 0 for s in SENTIMENT_LABELS}
            member_keywords: Counter = Counter()
            for scored in members:
                counts[scored.sentiment if scored.sentiment in counts else "neutral"] += 1
                member_keywords.update(set(scored.keywords))

            profile = CategoryProfile(
                category=category,
                count=len(members),
                share=len(members) / total,
                mean_relevance=_mean([s.relevance for s in members]),
                mean_impact=_mean([s.impact for s in members]),
                mean_trend=_mean([s.trend for s in members]),
                sentiment_counts=counts,
                dominant_sentiment=dominant_sentiment(counts),
                top_keywords=[k for k, _ in sorted(
                    member_keywords.items(), key=lambda kv: (-kv[1], kv[0])
                )[:self.PROFILE_KEYWORDS]]
            )
            dist.category_profiles[category] = profile
            dist.category_counts[category] = profile.count
            dist.category_shares[category] = profile.share
            dist.impact_by_category[category] = profile.mean_impact

        dist.keyword_counts = dict(sorted(keyword_counts.items()))
        dist.top_keywords = [k for k, _ in sorted(
            keyword_counts.items(), key=lambda kv: (-kv[1], kv[0])
        )[:self.TOP_KEYWORDS]]

        # Impact series in time order; undated signals keep batch order at the end
        dated = sorted(
            (s for s in signals if s.timestamp is not None),
            key=lambda s: s.timestamp
        )
        undated = [s for s in signals if s.timestamp is None]
        dist.impact_series = [s.impact for s in dated + undated]

        for scored in dated:
            hour = scored.timestamp.hour
            day = WEEKDAYS[scored.timestamp.weekday()]
            dist.hourly_distribution[hour] = dist.hourly_distribution.get(hour, 0) + 1
            dist.weekday_distribution[day] = dist.weekday_distribution.get(day, 0) + 1

        return dist

    def analyze_impact(self, series: Sequence[float]) -> ImpactTrend:
        """
        Compare the trailing window of impact scores with everything before it.

        Fewer than window + 1 scores means there is no prior mean and the
        trend is stable. A prior mean of 0 counts as increasing when the
        recent mean is positive.
        """
        values = np.asarray(series, dtype=float)
        average = float(values.mean()) if values.size else 0.0
        high = int((values > self.HIGH_IMPACT_SCORE).sum()) if values.size else 0

        window = self.IMPACT_RECENT_WINDOW
        if values.size <= window:
            return ImpactTrend("stable", average, average, 0.0, average, high)

        recent = float(values[-window:].mean())
        prior = float(values[:-window].mean())

        if prior == 0.0:
            change = 1.0 if recent > 0.0 else 0.0
        else:
            change = (recent - prior) / prior

        if change > self.IMPACT_CHANGE_THRESHOLD:
            direction = "increasing"
        elif change < -self.IMPACT_CHANGE_THRESHOLD:
            direction = "decreasing"
        else:
            direction = "stable"

        return ImpactTrend(direction, recent, prior, change, average, high)

    # ------------------------------------------------------------------ #
    #  Patterns                                                           #
    # ------------------------------------------------------------------ #
    def detect_patterns(
        self,
        distributions: TrendDistributions,
        impact_trend: Optional[ImpactTrend] = None
    ) -> List[TrendPattern]:
        """
        Emit trend patterns from distributions.

        Args:
            distributions: Output of build_distributions
            impact_trend: Precomputed impact analysis (computed when omitted)

        Returns:
            Patterns in type order: category, keyword, sentiment, impact
        """
        now = self.clock()
        patterns: List[TrendPattern] = []

        for category in sorted(distributions.category_shares):
            share = distributions.category_shares[category]
            if share > self.CATEGORY_SHARE_THRESHOLD:
                patterns.append(TrendPattern(
                    pattern_type="category",
                    key=category,
                    strength=clamp(share),
                    confidence=self.CONFIDENCE["category"],
                    description=f"{category} represents {share * 100:.1f}% of signals",
                    detected_at=now
                ))

        total = distributions.total_signals
        for keyword in distributions.top_keywords[:self.TOP_KEYWORDS]:
            count = distributions.keyword_counts.get(keyword, 0)
            if count > self.KEYWORD_COUNT_THRESHOLD and total > 0:
                patterns.append(TrendPattern(
                    pattern_type="keyword",
                    key=keyword,
                    strength=clamp(count / total),
                    confidence=self.CONFIDENCE["keyword"],
                    description=f'"{keyword}" appears in {count} signals',
                    detected_at=now
                ))

        for polarity in ("positive", "negative"):
            share = distributions.sentiment_share(polarity)
            if share > self.SENTIMENT_SHARE_THRESHOLD:
                patterns.append(TrendPattern(
                    pattern_type="sentiment",
                    key=polarity,
                    strength=clamp(share),
                    confidence=self.CONFIDENCE["sentiment"],
                    description=f"{polarity.capitalize()} sentiment dominates at {share * 100:.1f}%",
                    detected_at=now
                ))

        if impact_trend is None:
            impact_trend = self.analyze_impact(distributions.impact_series)
        if impact_trend.direction == "increasing":
            patterns.append(TrendPattern(
                pattern_type="impact",
                key="increasing",
                strength=clamp(impact_trend.average_impact),
                confidence=self.CONFIDENCE["impact"],
                description=(
                    f"Impact trend is increasing with average score "
                    f"{impact_trend.average_impact:.2f}"
                ),
                detected_at=now
            ))

        logger.debug(f"Detected {len(patterns)} trend patterns")
        return patterns

    # ------------------------------------------------------------------ #
    #  Momentum, correlation, prediction, alerts                          #
    # ------------------------------------------------------------------ #
    def compute_momentum(self, patterns: Sequence[TrendPattern]) -> Momentum:
        """Weighted sum of pattern strengths, clamped to [0, 1]."""
        momentum = Momentum()
        overall = 0.0

        for pattern in patterns:
            weight = self.MOMENTUM_WEIGHTS.get(pattern.pattern_type, 0.0)
            overall += weight * pattern.strength
            if pattern.pattern_type == "category":
                momentum.per_category[pattern.key] = clamp(pattern.strength)
            elif pattern.pattern_type == "keyword":
                momentum.per_keyword[pattern.key] = clamp(pattern.strength)
            elif pattern.pattern_type == "sentiment":
                momentum.sentiment = clamp(max(momentum.sentiment, pattern.strength))
            elif pattern.pattern_type == "impact":
                momentum.impact = clamp(pattern.strength)

        momentum.overall = clamp(overall)
        return momentum

    @staticmethod
    def correlation(first: TrendPattern, second: TrendPattern) -> float:
        """Strength similarity, not a statistical correlation."""
        return 1.0 - abs(first.strength - second.strength)

    def correlate(
        self,
        patterns: Sequence[TrendPattern]
    ) -> Tuple[List[TrendCorrelation], List[List[str]]]:
        """
        Pairwise correlations above threshold, plus clusters of mutually
        connected patterns (connected components of size >= 2).
        """
        correlations: List[TrendCorrelation] = []
        graph = nx.Graph()
        graph.add_nodes_from(p.pattern_id for p in patterns)

        for i in range(len(patterns)):
            for j in range(i + 1, len(patterns)):
                first, second = patterns[i], patterns[j]
                value = self.correlation(first, second)
                if value > self.CORRELATION_THRESHOLD:
                    correlations.append(TrendCorrelation(
                        first=first.pattern_id,
                        second=second.pattern_id,
                        correlation=value,
                        description=(
                            f"Strong correlation between {first.pattern_type} '{first.key}' "
                            f"and {second.pattern_type} '{second.key}'"
                        )
                    ))
                    graph.add_edge(first.pattern_id, second.pattern_id, weight=value)

        clusters = sorted(
            (sorted(component) for component in nx.connected_components(graph)
             if len(component) > 1),
            key=lambda c: (-len(c), c)
        )
        return correlations, clusters

    def predict(self, patterns: Sequence[TrendPattern]) -> List[TrendPrediction]:
        predictions = []
        for pattern in patterns:
            score = pattern.strength * pattern.confidence
            for threshold, label in self.PREDICTION_BANDS:
                if score > threshold:
                    strength_word = label.split("_")[0]
                    predictions.append(TrendPrediction(
                        pattern_id=pattern.pattern_id,
                        prediction=label,
                        confidence=clamp(score),
                        description=(
                            f"{pattern.pattern_type} trend '{pattern.key}' likely to "
                            f"continue ({strength_word})"
                        )
                    ))
                    break
        return predictions

    def generate_alerts(self, momentum: Momentum) -> List[TrendAlert]:
        now = self.clock()
        alerts = []

        if momentum.overall > self.ALERT_OVERALL:
            alerts.append(TrendAlert(
                alert_type="high_momentum_alert",
                priority="high",
                title="High trend momentum detected",
                description=(
                    f"Overall trend momentum is {momentum.overall * 100:.1f}% - "
                    f"strong trends detected"
                ),
                timestamp=now
            ))

        for category, value in sorted(momentum.per_category.items()):
            if value > self.ALERT_CATEGORY:
                alerts.append(TrendAlert(
                    alert_type="category_alert",
                    priority="medium",
                    title=f"Strong {category} trend",
                    description=f"{category} category shows strong momentum at {value * 100:.1f}%",
                    timestamp=now
                ))

        for keyword, value in sorted(momentum.per_keyword.items()):
            if value > self.ALERT_KEYWORD:
                alerts.append(TrendAlert(
                    alert_type="keyword_alert",
                    priority="medium",
                    title=f"Trending keyword: {keyword}",
                    description=f'"{keyword}" shows strong momentum at {value * 100:.1f}%',
                    timestamp=now
                ))

        if momentum.sentiment > self.ALERT_SENTIMENT:
            alerts.append(TrendAlert(
                alert_type="sentiment_alert",
                priority="high",
                title="Strong sentiment trend",
                description=(
                    f"Sentiment momentum is {momentum.sentiment * 100:.1f}% - "
                    f"significant sentiment shift detected"
                ),
                timestamp=now
            ))

        if momentum.impact > self.ALERT_IMPACT:
            alerts.append(TrendAlert(
                alert_type="impact_alert",
                priority="high",
                title="High impact trend",
                description=(
                    f"Impact momentum is {momentum.impact * 100:.1f}% - "
                    f"high impact signals detected"
                ),
                timestamp=now
            ))

        return alerts

    def detect(self, signals: Sequence[ScoredSignal]) -> TrendReport:
        """
        Run the full detection over a batch of passed signals.

        Args:
            signals: Signals accepted by the filter

        Returns:
            TrendReport
        """
        distributions = self.build_distributions(signals)
        impact_trend = self.analyze_impact(distributions.impact_series)
        patterns = self.detect_patterns(distributions, impact_trend)
        momentum = self.compute_momentum(patterns)
        correlations, clusters = self.correlate(patterns)
        predictions = self.predict(patterns)
        alerts = self.generate_alerts(momentum)

        logger.info(
            f"Detected {len(patterns)} trends, {len(correlations)} correlations, "
            f"{len(alerts)} alerts (momentum {momentum.overall:.2f})"
        )
        return TrendReport(
            distributions=distributions,
            patterns=patterns,
            momentum=momentum,
            correlations=correlations,
            clusters=clusters,
            predictions=predictions,
            alerts=alerts,
            impact_trend=impact_trend
        )

    # ------------------------------------------------------------------ #
    #  History                                                            #
    # ------------------------------------------------------------------ #
    @staticmethod
    def _empty_history() -> Dict[str, Any]:
        return {"trends": [], "alerts": [], "last_analysis": None, "last_updated": None}

    def _load_history(self) -> Dict[str, Any]:
        history = self._empty_history()
        if self.store is None:
            return history
        stored = self.store.load_history(HISTORY_KEY)
        if isinstance(stored, dict):
            for key in ("trends", "alerts"):
                if isinstance(stored.get(key), list):
                    history[key] = stored[key]
            history["last_analysis"] = stored.get("last_analysis")
            history["last_updated"] = stored.get("last_updated")
        return history

    def record(self, report: TrendReport) -> bool:
        """Append a report's patterns and alerts to the trend history and persist."""
        for pattern in report.patterns:
            append_capped(self.history["trends"], pattern.to_dict(), self.max_history)
        for alert in report.alerts:
            append_capped(self.history["alerts"], alert.to_dict(), self.max_history)
        self.history["last_analysis"] = {
            "total_signals": report.distributions.total_signals,
            "momentum": report.momentum.to_dict(),
            "impact_trend": report.impact_trend.to_dict()
        }
        self.history["last_updated"] = self.clock().isoformat()

        if self.store is None:
            return True
        return self.store.save_history(HISTORY_KEY, self.history)

    def get_trend_summary(self) -> Dict[str, Any]:
        """Totals, most frequent trend categories/keywords and recent momentum."""
        trends = self.history["trends"]
        category_counts = Counter(t["key"] for t in trends if t.get("pattern_type") == "category")
        keyword_counts = Counter(t["key"] for t in trends if t.get("pattern_type") == "keyword")

        recent = trends[-10:]
        recent_categories: Dict[str, float] = {}
        recent_keywords: Dict[str, float] = {}
        for t in recent:
            if t.get("pattern_type") == "category":
                recent_categories[t["key"]] = recent_categories.get(t["key"], 0.0) + t.get("strength", 0.0)
            elif t.get("pattern_type") == "keyword":
                recent_keywords[t["key"]] = recent_keywords.get(t["key"], 0.0) + t.get("strength", 0.0)

        return {
            "total_trends": len(trends),
            "active_alerts": len(self.history["alerts"]),
            "last_updated": self.history["last_updated"],
            "top_categories": [k for k, _ in sorted(category_counts.items(), key=lambda kv: (-kv[1], kv[0]))[:5]],
            "top_keywords": [k for k, _ in sorted(keyword_counts.items(), key=lambda kv: (-kv[1], kv[0]))[:10]],
            "momentum_summary": {
                "overall": round(_mean([t.get("strength", 0.0) for t in recent]), 4),
                "categories": {k: round(v, 4) for k, v in recent_categories.items()},
                "keywords": {k: round(v, 4) for k, v in recent_keywords.items()}
            }
        }

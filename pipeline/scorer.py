"""
Signal Scorer

Computes five independent sub-scores per signal and combines them into a
single filter score:

    relevance  = 0.5 + 0.3*title_hits/5 + 0.2*description_hits/4 + 0.2*relevant_category
    impact     = 0.5 + sum(weight_m * min(value_m / scale_m, 1)) + 0.2*high_engagement + 0.2*relevance
                 (stars, views 0.3; forks, downloads, upvotes 0.2; answers, comments 0.1)
    trend      = 0.5 + 0.4*recency + 0.3*high_engagement + 0.3*relevance
    sentiment  = |lexicon polarity| with a positive/neutral/negative label
    category   = first-match keyword bucket with fixed confidence

    filter_score = (0.4*relevance + 0.3*impact + 0.2*trend + 0.1*sentiment)
                   * category_weight * sentiment_weight

Every sub-score and the combined score are clamped to [0, 1]. Scoring is
pure and total: missing fields contribute 0 on top of the base values.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from integrations.source_registry import (
    METRIC_CALIBRATION,
    MetricCalibration,
    popularity_contribution,
)
from models.signal_classifier import (
    CategoryClassifier,
    KeywordExtractor,
    SentimentClassifier,
    TermMatcher,
    signal_text,
    tokenize,
)
from utils.datetime_utils import utc_now

from .filter_rules import FilterRules
from .signal import Signal, as_number

logger = logging.getLogger(__name__)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp value into [low, high]."""
    return min(high, max(low, value))


@dataclass(frozen=True)
class ScoredSignal:
    """
    A Signal with its computed scores. Never mutated after creation.

    category is the effective category (source category when the source
    gave one, otherwise the classified one); classified_category is what
    the keyword buckets decided and drives the category weight.
    """
    signal: Signal
    relevance: float
    impact: float
    trend: float
    sentiment_score: float
    sentiment: str
    category: str
    classified_category: str
    category_confidence: float
    filter_score: float
    keywords: Tuple[str, ...] = ()
    scored_at: Optional[datetime] = None

    @property
    def signal_id(self) -> str:
        return self.signal.signal_id

    @property
    def timestamp(self) -> Optional[datetime]:
        return self.signal.timestamp

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "signal": self.signal.to_dict(),
            "relevance": round(self.relevance, 4),
            "impact": round(self.impact, 4),
            "trend": round(self.trend, 4),
            "sentiment_score": round(self.sentiment_score, 4),
            "sentiment": self.sentiment,
            "category": self.category,
            "classified_category": self.classified_category,
            "category_confidence": round(self.category_confidence, 4),
            "filter_score": round(self.filter_score, 4),
            "keywords": list(self.keywords),
            "scored_at": self.scored_at.isoformat() if self.scored_at else None
        }


class SignalScorer:
    """
    Multi-factor heuristic scorer.

    Weights and vocabularies are class constants; per-category and
    per-polarity multipliers come from the shared FilterRules.
    """

    TITLE_VOCABULARY = ("ai", "autonomous", "development", "framework", "tool")
    DESCRIPTION_VOCABULARY = ("development", "programming", "software", "system")
    RELEVANT_CATEGORIES = frozenset({"ai_development", "autonomous_systems", "developer_tools"})

    RELEVANCE_BASE = 0.5
    TITLE_WEIGHT = 0.3
    DESCRIPTION_WEIGHT = 0.2
    CATEGORY_BONUS = 0.2

    IMPACT_BASE = 0.5
    IMPACT_ENGAGEMENT_BONUS = 0.2
    IMPACT_RELEVANCE_CARRY = 0.2

    TREND_BASE = 0.5
    RECENCY_WEIGHT = 0.4
    RECENCY_WINDOW = timedelta(days=7)
    TREND_ENGAGEMENT_BONUS = 0.3
    TREND_RELEVANCE_CARRY = 0.3

    COMBINATION_WEIGHTS = {
        "relevance": 0.4,
        "impact": 0.3,
        "trend": 0.2,
        "sentiment": 0.1,
    }

    def __init__(
        self,
        rules: Optional[FilterRules] = None,
        clock: Callable[[], datetime] = utc_now,
        sentiment_classifier: Optional[SentimentClassifier] = None,
        category_classifier: Optional[CategoryClassifier] = None,
        keyword_extractor: Optional[KeywordExtractor] = None,
        calibration: Optional[Dict[str, MetricCalibration]] = None
    ):
        """
        Initialize scorer.

        Args:
            rules: Filter rules supplying category/sentiment weights
            clock: Returns "now" as naive UTC (injected for deterministic recency)
            sentiment_classifier: Lexicon classifier
            category_classifier: Keyword-bucket classifier
            keyword_extractor: Tracked keyword extractor
            calibration: Metric calibration table for impact
        """
        self.rules = rules or FilterRules()
        self.clock = clock
        self.sentiment_classifier = sentiment_classifier or SentimentClassifier()
        self.category_classifier = category_classifier or CategoryClassifier()
        self.keyword_extractor = keyword_extractor or KeywordExtractor()
        self.calibration = calibration if calibration is not None else METRIC_CALIBRATION

        self._title_matcher = TermMatcher(self.TITLE_VOCABULARY)
        self._description_matcher = TermMatcher(self.DESCRIPTION_VOCABULARY)

    # ------------------------------------------------------------------ #
    #  Sub-scores                                                         #
    # ------------------------------------------------------------------ #
    def relevance(self, title_tokens: List[str], description_tokens: List[str], category: str) -> float:
        title_share = self._title_matcher.count(title_tokens) / len(self._title_matcher)
        description_share = (
            self._description_matcher.count(description_tokens) / len(self._description_matcher)
        )
        score = (
            self.RELEVANCE_BASE
            + self.TITLE_WEIGHT * title_share
            + self.DESCRIPTION_WEIGHT * description_share
        )
        if category in self.RELEVANT_CATEGORIES:
            score += self.CATEGORY_BONUS
        return clamp(score)

    def impact(self, signal: Signal, relevance: float) -> float:
        metrics = {name: as_number(value) for name, value in signal.raw_metrics.items()}
        score = self.IMPACT_BASE + popularity_contribution(metrics, self.calibration)
        if signal.engagement == "high":
            score += self.IMPACT_ENGAGEMENT_BONUS
        score += self.IMPACT_RELEVANCE_CARRY * relevance
        return clamp(score)

    def recency(self, timestamp: Optional[datetime], now: datetime) -> float:
        """Linear falloff over RECENCY_WINDOW: 1.0 for now, 0.0 at or past the window."""
        if timestamp is None:
            return 0.0
        age = now - timestamp
        return clamp(1.0 - age / self.RECENCY_WINDOW)

    def trend(self, signal: Signal, relevance: float, now: datetime) -> float:
        score = self.TREND_BASE + self.RECENCY_WEIGHT * self.recency(signal.timestamp, now)
        if signal.engagement == "high":
            score += self.TREND_ENGAGEMENT_BONUS
        score += self.TREND_RELEVANCE_CARRY * relevance
        return clamp(score)

    def combine(
        self,
        relevance: float,
        impact: float,
        trend: float,
        sentiment_score: float,
        classified_category: str,
        sentiment: str
    ) -> float:
        """Weighted sum of clamped sub-scores times category and sentiment weights."""
        w = self.COMBINATION_WEIGHTS
        base = (
            w["relevance"] * clamp(relevance)
            + w["impact"] * clamp(impact)
            + w["trend"] * clamp(trend)
            + w["sentiment"] * clamp(sentiment_score)
        )
        weighted = (
            base
            * self.rules.category_weight(classified_category)
            * self.rules.sentiment_weight(sentiment)
        )
        return clamp(weighted)

    # ------------------------------------------------------------------ #
    #  Public API                                                         #
    # ------------------------------------------------------------------ #
    def score(self, signal: Signal) -> ScoredSignal:
        """
        Score one signal.

        Args:
            signal: Ingested signal (fields may be empty)

        Returns:
            ScoredSignal with all scores in [0, 1]
        """
        now = self.clock()
        title_tokens = tokenize(signal.title)
        description_tokens = tokenize(signal.description)
        all_tokens = tokenize(signal_text(signal.title, signal.description))

        classified = self.category_classifier.classify_tokens(all_tokens)
        category = signal.category or classified.category

        relevance = self.relevance(title_tokens, description_tokens, category)
        impact = self.impact(signal, relevance)
        trend = self.trend(signal, relevance, now)
        sentiment = self.sentiment_classifier.classify_tokens(all_tokens)
        keywords = tuple(self.keyword_extractor.extract_tokens(all_tokens))

        filter_score = self.combine(
            relevance, impact, trend, sentiment.score, classified.category, sentiment.label
        )

        return ScoredSignal(
            signal=signal,
            relevance=relevance,
            impact=impact,
            trend=trend,
            sentiment_score=clamp(sentiment.score),
            sentiment=sentiment.label,
            category=category,
            classified_category=classified.category,
            category_confidence=classified.confidence,
            filter_score=filter_score,
            keywords=keywords,
            scored_at=now
        )

    def score_batch(self, signals: Iterable[Signal]) -> List[ScoredSignal]:
        """Score signals in order."""
        scored = [self.score(s) for s in signals]
        logger.debug(f"Scored {len(scored)} signals")
        return scored

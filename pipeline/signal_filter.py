"""
Signal Filter

Accepts or rejects scored signals against an adaptive threshold and keeps
the performance statistics used to retune that threshold.

Decision:
    passed iff filter_score >= relevance_threshold

Rejection reasons are evaluated in fixed order (relevance, impact, trend,
sentiment); the first failing check is the primary reason. A rejected
signal with no failing sub-check is attributed to "score".

Self-tuning:
    effectiveness[reason] = (old + rejected_by_reason / total) / 2
    effectiveness < 0.5 -> threshold *= 0.9   (relax)
    effectiveness > 0.8 -> threshold *= 1.1   (tighten)
bounded to [threshold_floor, threshold_ceiling].
"""

import copy
import logging
import threading
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Iterable, List, Optional, Tuple

from integrations.history_store import HistoryStore, append_capped
from utils.datetime_utils import utc_now

from .filter_rules import REASONS, FilterRules
from .insights import Insight
from .scorer import ScoredSignal
from .signal import as_number

logger = logging.getLogger(__name__)

RULES_KEY = "filter_rules"
HISTORY_KEY = "filter_history"

REASON_SCORE = "score"
REASON_PASSED = "passed"

MAX_BATCH_HISTORY = 50


@dataclass(frozen=True)
class FilterDecision:
    """Outcome for one signal in one run."""
    signal_id: str
    passed: bool
    score: float
    reasons: Tuple[str, ...]
    primary_reason: str

    def to_dict(self) -> dict:
        return {
            "signal_id": self.signal_id,
            "passed": self.passed,
            "score": round(self.score, 4),
            "reasons": list(self.reasons),
            "primary_reason": self.primary_reason
        }


@dataclass
class FilterMetrics:
    """Counts for one batch."""
    total_signals: int = 0
    passed_count: int = 0
    rejected_by_reason: Dict[str, int] = field(
        default_factory=lambda: {r: 0 for r in REASONS + (REASON_SCORE,)}
    )

    @property
    def rejected_count(self) -> int:
        return self.total_signals - self.passed_count

    @property
    def filter_rate(self) -> float:
        """Share of the batch that passed."""
        if self.total_signals == 0:
            return 0.0
        return self.passed_count / self.total_signals

    def to_dict(self) -> dict:
        return {
            "total_signals": self.total_signals,
            "passed_count": self.passed_count,
            "rejected_count": self.rejected_count,
            "filter_rate": round(self.filter_rate, 4),
            "rejected_by_reason": dict(self.rejected_by_reason)
        }


@dataclass
class FilterBatchResult:
    passed: List[ScoredSignal]
    decisions: List[FilterDecision]
    metrics: FilterMetrics
    performance: Dict[str, Any]


def _field(scored: Any, name: str) -> float:
    """Read a score field; anything missing or non-numeric counts as 0."""
    return as_number(getattr(scored, name, 0.0), default=0.0)


class SignalFilter:
    """
    Adaptive signal filter.

    Owns its rules and filter history. State is loaded from the injected
    store at construction (missing or damaged state means defaults) and
    written back through save_state() / optimize_thresholds().
    """

    def __init__(
        self,
        store: Optional[HistoryStore] = None,
        rules: Optional[FilterRules] = None,
        rule_overrides: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize filter.

        Args:
            store: Persistence for rules and history (None = in-memory only)
            rules: Starting rules (defaults when omitted)
            rule_overrides: Configured rule values applied before stored state
        """
        self.store = store
        self._lock = threading.RLock()

        self.rules = rules if rules is not None else FilterRules()
        if rule_overrides:
            self.rules.apply_overrides(rule_overrides)

        self.history: Dict[str, Any] = self._empty_history()
        self._load_state()

    # ------------------------------------------------------------------ #
    #  Persistence                                                        #
    # ------------------------------------------------------------------ #
    @staticmethod
    def _empty_history() -> Dict[str, Any]:
        return {
            "performance": {
                "total_signals": 0,
                "passed_signals": 0,
                "filter_rate": 0.0,
                "rejected_by_reason": {r: 0 for r in REASONS + (REASON_SCORE,)},
            },
            "learning_patterns": {
                "effectiveness_by_reason": {r: 0.5 for r in REASONS},
                "overall_effectiveness": 0.5,
                "batches_observed": 0,
            },
            "optimizations": 0,
            "recent_batches": [],
        }

    def _load_state(self) -> None:
        if self.store is None:
            return

        stored_rules = self.store.load_history(RULES_KEY)
        if isinstance(stored_rules, dict):
            # Stored (tuned) values win over configured ones so tuning compounds
            self.rules.apply_overrides(stored_rules)
            logger.info(f"SignalFilter: loaded rules, thresholds={self.rules.thresholds()}")
        elif stored_rules is not None:
            logger.warning("SignalFilter: stored rules are not an object, using defaults")

        stored_history = self.store.load_history(HISTORY_KEY)
        if isinstance(stored_history, dict):
            merged = self._empty_history()
            for key in merged:
                value = stored_history.get(key)
                if isinstance(merged[key], dict) and isinstance(value, dict):
                    merged[key].update(value)
                elif isinstance(merged[key], list) and isinstance(value, list):
                    merged[key] = value
                elif isinstance(merged[key], int) and isinstance(value, int):
                    merged[key] = value
            self.history = merged
            logger.debug(
                f"SignalFilter: loaded history, "
                f"{self.history['performance']['total_signals']} signals seen"
            )

    def save_state(self) -> bool:
        """Persist rules and history. Returns False if any write failed."""
        if self.store is None:
            return True
        with self._lock:
            rules_ok = self.store.save_history(RULES_KEY, self.rules.to_dict())
            history_ok = self.store.save_history(HISTORY_KEY, self.history)
        return rules_ok and history_ok

    # ------------------------------------------------------------------ #
    #  Filtering                                                          #
    # ------------------------------------------------------------------ #
    def failing_checks(self, scored: Any) -> List[str]:
        """All failing sub-checks in evaluation order."""
        rules = self.rules
        reasons = []
        if _field(scored, "relevance") < rules.relevance_threshold:
            reasons.append("relevance")
        if _field(scored, "impact") < rules.impact_threshold:
            reasons.append("impact")
        if _field(scored, "trend") < rules.trend_threshold:
            reasons.append("trend")
        sentiment = getattr(scored, "sentiment", "neutral")
        if sentiment == "negative" and _field(scored, "sentiment_score") < rules.sentiment_threshold:
            reasons.append("sentiment")
        return reasons

    def filter_signal(self, scored: ScoredSignal) -> FilterDecision:
        """
        Decide one signal. Never raises.

        Args:
            scored: Output of the scorer

        Returns:
            FilterDecision with all failing checks and the primary reason
        """
        with self._lock:
            score = _field(scored, "filter_score")
            passed = score >= self.rules.relevance_threshold
            reasons = self.failing_checks(scored)

        if reasons:
            primary = reasons[0]
        else:
            primary = REASON_PASSED if passed else REASON_SCORE

        signal_id = getattr(scored, "signal_id", "")
        return FilterDecision(
            signal_id=signal_id if isinstance(signal_id, str) else str(signal_id),
            passed=passed,
            score=score,
            reasons=tuple(reasons),
            primary_reason=primary
        )

    def filter_batch(self, scored_signals: Iterable[ScoredSignal]) -> FilterBatchResult:
        """
        Filter a batch and fold its counts into the performance statistics.

        Args:
            scored_signals: Scored signals for this run

        Returns:
            FilterBatchResult with passed signals, one decision per signal,
            batch metrics and a cumulative performance snapshot
        """
        passed: List[ScoredSignal] = []
        decisions: List[FilterDecision] = []
        metrics = FilterMetrics()

        with self._lock:
            for scored in scored_signals:
                decision = self.filter_signal(scored)
                decisions.append(decision)
                metrics.total_signals += 1

                if decision.passed:
                    passed.append(scored)
                    metrics.passed_count += 1
                else:
                    reason = decision.primary_reason
                    metrics.rejected_by_reason[reason] = metrics.rejected_by_reason.get(reason, 0) + 1

            self.record_batch(metrics)
            performance = self.get_performance()

        logger.info(
            f"Filtered {metrics.passed_count} of {metrics.total_signals} signals "
            f"(rejected: {metrics.rejected_by_reason})"
        )
        return FilterBatchResult(passed, decisions, metrics, performance)

    # ------------------------------------------------------------------ #
    #  Learning                                                           #
    # ------------------------------------------------------------------ #
    def record_batch(self, metrics: FilterMetrics) -> None:
        """
        Update cumulative performance and the effectiveness moving averages.

        Empty batches change nothing.
        """
        if metrics.total_signals == 0:
            logger.debug("SignalFilter: empty batch, performance unchanged")
            return

        with self._lock:
            perf = self.history["performance"]
            perf["total_signals"] += metrics.total_signals
            perf["passed_signals"] += metrics.passed_count
            perf["filter_rate"] = perf["passed_signals"] / perf["total_signals"]
            for reason, count in metrics.rejected_by_reason.items():
                perf["rejected_by_reason"][reason] = perf["rejected_by_reason"].get(reason, 0) + count

            patterns = self.history["learning_patterns"]
            effectiveness = patterns["effectiveness_by_reason"]
            for reason in REASONS:
                observed = metrics.rejected_by_reason.get(reason, 0) / metrics.total_signals
                effectiveness[reason] = (effectiveness.get(reason, 0.5) + observed) / 2

            observed_overall = metrics.passed_count / metrics.total_signals
            patterns["overall_effectiveness"] = (patterns["overall_effectiveness"] + observed_overall) / 2
            patterns["batches_observed"] += 1

            append_capped(
                self.history["recent_batches"],
                {"timestamp": utc_now().isoformat(), **metrics.to_dict()},
                MAX_BATCH_HISTORY
            )

    def learning_improvement(self) -> str:
        overall = self.history["learning_patterns"]["overall_effectiveness"]
        if overall > 0.7:
            return "high"
        if overall > 0.5:
            return "medium"
        return "low"

    def get_performance(self) -> Dict[str, Any]:
        """Cumulative performance snapshot."""
        with self._lock:
            perf = self.history["performance"]
            patterns = self.history["learning_patterns"]
            return {
                "total_signals": perf["total_signals"],
                "passed_signals": perf["passed_signals"],
                "filter_rate": round(perf["filter_rate"], 4),
                "rejected_by_reason": dict(perf["rejected_by_reason"]),
                "effectiveness_by_reason": {
                    r: round(v, 4) for r, v in patterns["effectiveness_by_reason"].items()
                },
                "overall_effectiveness": round(patterns["overall_effectiveness"], 4),
                "batches_observed": patterns["batches_observed"],
                "learning_improvement": self.learning_improvement(),
                "thresholds": {r: round(v, 4) for r, v in self.rules.thresholds().items()},
                "optimizations": self.history["optimizations"],
            }

    def optimize_thresholds(self) -> Dict[str, Dict[str, float]]:
        """
        Retune thresholds from the effectiveness moving averages and persist.

        Returns:
            reason -> {"old": ..., "new": ...} for thresholds that changed
        """
        changes: Dict[str, Dict[str, float]] = {}

        with self._lock:
            rules = self.rules
            effectiveness = self.history["learning_patterns"]["effectiveness_by_reason"]

            for reason in REASONS:
                value = effectiveness.get(reason, 0.5)
                old = rules.threshold_for(reason)
                if value < rules.relax_below:
                    new = old * rules.relax_factor
                elif value > rules.tighten_above:
                    new = old * rules.tighten_factor
                else:
                    continue

                new = min(rules.threshold_ceiling, max(rules.threshold_floor, new))
                if new != old:
                    rules.set_threshold(reason, new)
                    changes[reason] = {"old": round(old, 4), "new": round(new, 4)}

            self.history["optimizations"] += 1
            self.save_state()

        if changes:
            logger.info(f"Filter thresholds optimized: {changes}")
        else:
            logger.info("Filter thresholds unchanged after optimization")
        return changes

    def generate_insights(self) -> List[Insight]:
        """Insights on overall and per-reason effectiveness."""
        performance = self.get_performance()
        insights = []

        overall = performance["overall_effectiveness"]
        if overall > 0.8:
            insights.append(Insight(
                insight_type="effectiveness_insight",
                title="High filter effectiveness",
                description=f"Filter is performing well with {overall * 100:.1f}% effectiveness",
                priority="low"
            ))
        elif overall < 0.5:
            insights.append(Insight(
                insight_type="effectiveness_insight",
                title="Low filter effectiveness",
                description=(
                    f"Filter effectiveness is low at {overall * 100:.1f}% - "
                    f"consider rule optimization"
                ),
                priority="high"
            ))

        for reason, value in performance["effectiveness_by_reason"].items():
            if value < 0.4:
                insights.append(Insight(
                    insight_type="reason_insight",
                    title=f"Low {reason} effectiveness",
                    description=f"{reason} filtering is underperforming at {value * 100:.1f}%",
                    priority="medium"
                ))

        return insights

    def snapshot(self) -> Tuple[FilterRules, Dict[str, Any]]:
        """Copy of the current rules and history, for restore()."""
        with self._lock:
            return self.rules.copy(), copy.deepcopy(self.history)

    def restore(self, state: Tuple[FilterRules, Dict[str, Any]]) -> None:
        """
        Roll rules and history back to a snapshot. Nothing is written.

        Rules are restored in place; the scorer holds the same object.
        """
        rules, history = state
        with self._lock:
            saved = rules.copy()
            for f in fields(saved):
                setattr(self.rules, f.name, getattr(saved, f.name))
            self.history = copy.deepcopy(history)
        logger.debug("SignalFilter: state restored from snapshot")

    def reset(self) -> None:
        """Restore default rules and empty history (in place) and persist."""
        with self._lock:
            defaults = FilterRules()
            for reason in REASONS:
                self.rules.set_threshold(reason, defaults.threshold_for(reason))
            self.history = self._empty_history()
            self.save_state()
        logger.info("SignalFilter: rules and history reset to defaults")

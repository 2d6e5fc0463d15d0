"""
Digest Compiler

Renders one run's findings into a five-section report:
executive summary, market trends, opportunities, solutions, recommendations.

Each section is a template with named placeholders. Values are summary
strings or lists (rendered one item per line); an empty value renders the
template's "nothing to report" line.

Metrics count only the substituted findings, never the fixed template
text, so an empty run scores exactly the section-presence term:

    digest_score = 0.4*(sections/5) + 0.3*min(words/1000, 1) + 0.3*min(actions/10, 1)
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from integrations.history_store import HistoryStore, append_capped
from utils.datetime_utils import parse_timestamp, utc_now

from .scorer import clamp
from .signal_filter import FilterMetrics
from .synthesizer import Opportunity, Solution, SynthesisResult
from .trend_detector import TrendPattern, TrendReport

logger = logging.getLogger(__name__)

HISTORY_KEY = "digest_history"

EMPTY_VALUE = "_Nothing to report._"

SECTION_ORDER = (
    "executive_summary",
    "market_trends",
    "opportunities",
    "solutions",
    "recommendations",
)

DIGEST_TEMPLATES: Dict[str, Tuple[str, str]] = {
    "executive_summary": (
        "Executive Summary",
        "## Executive Summary\n\n{summary}\n\n"
        "**Key Insights:**\n{key_insights}\n\n"
        "**Action Items:**\n{action_items}"
    ),
    "market_trends": (
        "Market Trends",
        "## Market Trends\n\n{trends_summary}\n\n"
        "**Top Categories:**\n{top_categories}\n\n"
        "**Trending Keywords:**\n{trending_keywords}"
    ),
    "opportunities": (
        "Opportunities",
        "## Opportunities\n\n{opportunities_summary}\n\n"
        "**High Priority:**\n{high_priority}\n\n"
        "**Quick Wins:**\n{quick_wins}"
    ),
    "solutions": (
        "Solution Suggestions",
        "## Solution Suggestions\n\n{solutions_summary}\n\n"
        "**High Feasibility:**\n{high_feasibility}\n\n"
        "**Strategic Plays:**\n{strategic_plays}"
    ),
    "recommendations": (
        "Recommendations",
        "## Recommendations\n\n{recommendations_summary}\n\n"
        "**Immediate Actions:**\n{immediate_actions}\n\n"
        "**Strategic Considerations:**\n{strategic_considerations}"
    ),
}


def _render_value(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return "\n".join(str(v) for v in value) if value else EMPTY_VALUE
    text = str(value) if value is not None else ""
    return text if text.strip() else EMPTY_VALUE


def _count_words(value: Any) -> int:
    if isinstance(value, (list, tuple)):
        return sum(_count_words(v) for v in value)
    if value is None:
        return 0
    return len(str(value).split())


@dataclass(frozen=True)
class DigestSection:
    key: str
    title: str
    content: str
    data: Tuple[Tuple[str, Any], ...]

    def value(self, name: str) -> Any:
        for key, value in self.data:
            if key == name:
                return value
        return None

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "title": self.title,
            "content": self.content,
            "data": {k: list(v) if isinstance(v, tuple) else v for k, v in self.data}
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DigestSection":
        values = data.get("data") or {}
        return cls(
            key=data.get("key", ""),
            title=data.get("title", ""),
            content=data.get("content", ""),
            data=tuple((k, tuple(v) if isinstance(v, list) else v) for k, v in values.items())
        )


@dataclass(frozen=True)
class DigestMetrics:
    section_count: int
    word_count: int
    insight_count: int
    action_count: int
    digest_score: float

    def to_dict(self) -> dict:
        return {
            "section_count": self.section_count,
            "word_count": self.word_count,
            "insight_count": self.insight_count,
            "action_count": self.action_count,
            "digest_score": round(self.digest_score, 4)
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DigestMetrics":
        return cls(
            section_count=int(data.get("section_count", 0)),
            word_count=int(data.get("word_count", 0)),
            insight_count=int(data.get("insight_count", 0)),
            action_count=int(data.get("action_count", 0)),
            digest_score=float(data.get("digest_score", 0.0))
        )


@dataclass(frozen=True)
class Digest:
    """Compiled report. Immutable; every compile produces a new id and timestamp."""
    digest_id: str
    timestamp: datetime
    sections: Tuple[DigestSection, ...]
    metrics: DigestMetrics
    opportunity_count: int = 0
    solution_count: int = 0

    def section(self, key: str) -> Optional[DigestSection]:
        for section in self.sections:
            if section.key == key:
                return section
        return None

    def content_equals(self, other: "Digest") -> bool:
        """Equal in everything except id and timestamp."""
        return (
            self.sections == other.sections
            and self.metrics == other.metrics
            and self.opportunity_count == other.opportunity_count
            and self.solution_count == other.solution_count
        )

    def render_markdown(self) -> str:
        header = (
            f"# Signal Intelligence Digest\n\n"
            f"_Generated {self.timestamp.isoformat()} ({self.digest_id})_"
        )
        return "\n\n".join([header] + [s.content for s in self.sections]) + "\n"

    def to_dict(self) -> dict:
        return {
            "digest_id": self.digest_id,
            "timestamp": self.timestamp.isoformat(),
            "sections": {s.key: s.to_dict() for s in self.sections},
            "metrics": self.metrics.to_dict(),
            "opportunity_count": self.opportunity_count,
            "solution_count": self.solution_count
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Digest":
        """Rebuild a stored digest. Sections are restored in report order."""
        stored = data.get("sections") or {}
        sections = tuple(
            DigestSection.from_dict(stored[key]) for key in SECTION_ORDER if key in stored
        )
        return cls(
            digest_id=data["digest_id"],
            timestamp=parse_timestamp(data.get("timestamp")) or utc_now(),
            sections=sections,
            metrics=DigestMetrics.from_dict(data.get("metrics") or {}),
            opportunity_count=int(data.get("opportunity_count", 0)),
            solution_count=int(data.get("solution_count", 0))
        )


class DigestCompiler:
    """
    Compile digests and keep digest history aggregates.
    """

    TOP_CATEGORIES = 5
    TOP_KEYWORDS = 10
    TOP_HIGH_PRIORITY = 5
    TOP_QUICK_WINS = 3
    TOP_HIGH_FEASIBILITY = 5
    TOP_STRATEGIC_PLAYS = 3

    QUICK_WIN_FEASIBILITY = 0.8
    QUICK_WIN_IMPACT = 0.7
    HIGH_FEASIBILITY = 0.7
    STRATEGIC_IMPACT = 0.8
    STRONG_TREND = 0.7

    SCORE_WEIGHTS = {"sections": 0.4, "words": 0.3, "actions": 0.3}
    WORD_SATURATION = 1000
    ACTION_SATURATION = 10

    def __init__(
        self,
        store: Optional[HistoryStore] = None,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Optional[Callable[[datetime], str]] = None,
        max_history: int = 100
    ):
        self.store = store
        self.clock = clock
        self.id_factory = id_factory or self._default_id
        self.max_history = max_history
        self.history: Dict[str, Any] = self._load_history()

    @staticmethod
    def _default_id(timestamp: datetime) -> str:
        return f"digest-{int(timestamp.timestamp() * 1000)}-{uuid.uuid4().hex[:6]}"

    # ------------------------------------------------------------------ #
    #  Selection helpers                                                  #
    # ------------------------------------------------------------------ #
    def high_priority(self, opportunities: Sequence[Opportunity]) -> List[Opportunity]:
        return [o for o in opportunities if o.priority == "high"]

    def quick_wins(self, solutions: Sequence[Solution]) -> List[Solution]:
        return [
            s for s in solutions
            if s.feasibility > self.QUICK_WIN_FEASIBILITY and s.impact_potential > self.QUICK_WIN_IMPACT
        ]

    def high_feasibility(self, solutions: Sequence[Solution]) -> List[Solution]:
        return [s for s in solutions if s.feasibility > self.HIGH_FEASIBILITY]

    def strategic_plays(self, solutions: Sequence[Solution]) -> List[Solution]:
        return [s for s in solutions if s.impact_potential > self.STRATEGIC_IMPACT]

    def strong_trends(self, patterns: Sequence[TrendPattern]) -> List[TrendPattern]:
        return [p for p in patterns if p.strength > self.STRONG_TREND]

    # ------------------------------------------------------------------ #
    #  Section data                                                       #
    # ------------------------------------------------------------------ #
    def _executive_summary(self, synthesis: SynthesisResult, trends: TrendReport,
                           filter_metrics: FilterMetrics) -> Dict[str, Any]:
        summary = ""
        if filter_metrics.total_signals > 0:
            summary = (
                f"This digest covers {filter_metrics.total_signals} signals, with "
                f"{filter_metrics.passed_count} high-quality signals identified. "
                f"Detected {len(trends.patterns)} trends, identified "
                f"{len(synthesis.opportunities)} market opportunities and generated "
                f"{len(synthesis.solutions)} solution suggestions."
            )

        key_insights = []
        high_priority = self.high_priority(synthesis.opportunities)
        if high_priority:
            key_insights.append(f"{len(high_priority)} high-priority market opportunities identified")
        strong = self.strong_trends(trends.patterns)
        if strong:
            key_insights.append(f"{len(strong)} strong trends detected with high momentum")
        feasible = self.high_feasibility(synthesis.solutions)
        if feasible:
            key_insights.append(f"{len(feasible)} high-feasibility solutions available")
        for alert in trends.alerts:
            if alert.priority == "high":
                key_insights.append(alert.title)

        action_items = [
            f"- Address {o.category} opportunity: {o.title}"
            for o in high_priority[:self.TOP_HIGH_PRIORITY]
        ]
        action_items += [
            f"- Implement quick win: {s.title}"
            for s in self.quick_wins(synthesis.solutions)[:self.TOP_QUICK_WINS]
        ]

        return {
            "summary": summary,
            "key_insights": tuple(f"- {i}" for i in key_insights),
            "action_items": tuple(action_items),
        }

    def _market_trends(self, trends: TrendReport) -> Dict[str, Any]:
        dist = trends.distributions
        summary = ""
        if trends.patterns:
            strong = self.strong_trends(trends.patterns)
            summary = (
                f"Analysis of {len(trends.patterns)} trends reveals {len(strong)} strong trends "
                f"with overall momentum of {trends.momentum.overall * 100:.1f}%. "
                f"Impact is {trends.impact_trend.direction}."
            )

        categories = sorted(dist.category_counts.items(), key=lambda kv: (-kv[1], kv[0]))
        top_categories = tuple(
            f"- {category}: {count} signals ({dist.category_shares.get(category, 0.0) * 100:.1f}%)"
            for category, count in categories[:self.TOP_CATEGORIES]
        )
        trending_keywords = tuple(
            f'- "{keyword}": {dist.keyword_counts.get(keyword, 0)} occurrences'
            for keyword in dist.top_keywords[:self.TOP_KEYWORDS]
        )
        return {
            "trends_summary": summary,
            "top_categories": top_categories,
            "trending_keywords": trending_keywords,
        }

    def _opportunities(self, synthesis: SynthesisResult) -> Dict[str, Any]:
        opportunities = synthesis.opportunities
        summary = ""
        if opportunities:
            average = sum(o.opportunity_score for o in opportunities) / len(opportunities)
            summary = (
                f"Identified {len(opportunities)} market opportunities with "
                f"{len(self.high_priority(opportunities))} high-priority items. "
                f"Average opportunity score is {average:.2f}."
            )
        return {
            "opportunities_summary": summary,
            "high_priority": tuple(
                f"- **{o.title}**: {o.description} (Score: {o.opportunity_score * 100:.1f}%)"
                for o in self.high_priority(opportunities)[:self.TOP_HIGH_PRIORITY]
            ),
            "quick_wins": tuple(
                f"- **{s.title}**: {s.description} (Feasibility: {s.feasibility * 100:.1f}%)"
                for s in self.quick_wins(synthesis.solutions)[:self.TOP_QUICK_WINS]
            ),
        }

    def _solutions(self, synthesis: SynthesisResult) -> Dict[str, Any]:
        solutions = synthesis.solutions
        summary = ""
        if solutions:
            average = sum(s.feasibility for s in solutions) / len(solutions)
            summary = (
                f"Generated {len(solutions)} solution suggestions with "
                f"{len(self.high_feasibility(solutions))} high-feasibility options. "
                f"Average feasibility score is {average:.2f}."
            )
        return {
            "solutions_summary": summary,
            "high_feasibility": tuple(
                f"- **{s.title}**: {s.approach} (Feasibility: {s.feasibility * 100:.1f}%)"
                for s in self.high_feasibility(solutions)[:self.TOP_HIGH_FEASIBILITY]
            ),
            "strategic_plays": tuple(
                f"- **{s.title}**: {s.description} (Impact: {s.impact_potential * 100:.1f}%)"
                for s in self.strategic_plays(solutions)[:self.TOP_STRATEGIC_PLAYS]
            ),
        }

    def _recommendations(self, synthesis: SynthesisResult, trends: TrendReport) -> Dict[str, Any]:
        strong = self.strong_trends(trends.patterns)
        summary = ""
        if synthesis.opportunities or synthesis.solutions or strong:
            summary = (
                f"Based on {len(synthesis.opportunities)} opportunities, "
                f"{len(synthesis.solutions)} solutions and {len(strong)} strong trends, "
                f"act now on high-priority items and weigh the long-term plays."
            )

        immediate = [
            f"- Address {o.category} opportunity: {o.title}"
            for o in self.high_priority(synthesis.opportunities)[:3]
        ]
        immediate += [
            f"- Implement quick win: {s.title}"
            for s in self.quick_wins(synthesis.solutions)[:2]
        ]

        considerations = [
            f"- Consider strategic play: {s.title}"
            for s in self.strategic_plays(synthesis.solutions)[:2]
        ]
        considerations += [f"- Monitor trend: {p.description}" for p in strong[:2]]

        return {
            "recommendations_summary": summary,
            "immediate_actions": tuple(immediate),
            "strategic_considerations": tuple(considerations),
        }

    # ------------------------------------------------------------------ #
    #  Compilation                                                        #
    # ------------------------------------------------------------------ #
    def _build_section(self, key: str, data: Dict[str, Any]) -> DigestSection:
        title, template = DIGEST_TEMPLATES[key]
        content = template.format_map({k: _render_value(v) for k, v in data.items()})
        return DigestSection(key=key, title=title, content=content, data=tuple(data.items()))

    def calculate_metrics(self, sections: Sequence[DigestSection]) -> DigestMetrics:
        section_count = sum(1 for s in sections if s.content)
        word_count = sum(_count_words(v) for s in sections for _, v in s.data)

        insight_count = 0
        action_count = 0
        for section in sections:
            for key, value in section.data:
                if key == "key_insights":
                    insight_count += len(value)
                elif key in ("action_items", "immediate_actions"):
                    action_count += len(value)

        w = self.SCORE_WEIGHTS
        score = (
            w["sections"] * (section_count / len(SECTION_ORDER))
            + w["words"] * min(word_count / self.WORD_SATURATION, 1.0)
            + w["actions"] * min(action_count / self.ACTION_SATURATION, 1.0)
        )
        return DigestMetrics(
            section_count=section_count,
            word_count=word_count,
            insight_count=insight_count,
            action_count=action_count,
            digest_score=clamp(score)
        )

    def compile(
        self,
        synthesis: SynthesisResult,
        trend_report: TrendReport,
        filter_metrics: Optional[FilterMetrics] = None
    ) -> Digest:
        """
        Compile a digest.

        Args:
            synthesis: Synthesizer output
            trend_report: Trend detector output
            filter_metrics: Batch metrics from the filter

        Returns:
            A new Digest
        """
        filter_metrics = filter_metrics or FilterMetrics()
        data = {
            "executive_summary": self._executive_summary(synthesis, trend_report, filter_metrics),
            "market_trends": self._market_trends(trend_report),
            "opportunities": self._opportunities(synthesis),
            "solutions": self._solutions(synthesis),
            "recommendations": self._recommendations(synthesis, trend_report),
        }
        sections = tuple(self._build_section(key, data[key]) for key in SECTION_ORDER)
        metrics = self.calculate_metrics(sections)

        timestamp = self.clock()
        digest = Digest(
            digest_id=self.id_factory(timestamp),
            timestamp=timestamp,
            sections=sections,
            metrics=metrics,
            opportunity_count=len(synthesis.opportunities),
            solution_count=len(synthesis.solutions)
        )
        logger.info(
            f"Compiled digest {digest.digest_id}: {metrics.word_count} words, "
            f"{metrics.action_count} actions, score {metrics.digest_score:.2f}"
        )
        return digest

    # ------------------------------------------------------------------ #
    #  History                                                            #
    # ------------------------------------------------------------------ #
    @staticmethod
    def _empty_history() -> Dict[str, Any]:
        return {
            "digests": [],
            "aggregates": {
                "total_digests": 0,
                "avg_sections": 0.0,
                "avg_words": 0.0,
                "avg_insights": 0.0,
                "avg_actions": 0.0,
                "avg_digest_score": 0.0,
            },
            "last_updated": None,
        }

    def _load_history(self) -> Dict[str, Any]:
        history = self._empty_history()
        if self.store is None:
            return history
        stored = self.store.load_history(HISTORY_KEY)
        if isinstance(stored, dict):
            if isinstance(stored.get("digests"), list):
                history["digests"] = stored["digests"]
            if isinstance(stored.get("aggregates"), dict):
                history["aggregates"].update(stored["aggregates"])
            history["last_updated"] = stored.get("last_updated")
        return history

    def record(self, digest: Digest) -> bool:
        """Persist the digest and fold its metrics into the running aggregates."""
        agg = self.history["aggregates"]
        agg["total_digests"] += 1
        n = agg["total_digests"]
        m = digest.metrics
        for key, value in (
            ("avg_sections", m.section_count),
            ("avg_words", m.word_count),
            ("avg_insights", m.insight_count),
            ("avg_actions", m.action_count),
            ("avg_digest_score", m.digest_score),
        ):
            agg[key] += (value - agg[key]) / n

        append_capped(
            self.history["digests"],
            {
                "digest_id": digest.digest_id,
                "timestamp": digest.timestamp.isoformat(),
                "metrics": m.to_dict()
            },
            self.max_history
        )
        self.history["last_updated"] = digest.timestamp.isoformat()

        if self.store is None:
            return True
        digest_ok = self.store.save_history(digest.digest_id, digest.to_dict())
        history_ok = self.store.save_history(HISTORY_KEY, self.history)
        return digest_ok and history_ok

    def load_digest(self, digest_id: str) -> Optional[Dict[str, Any]]:
        if self.store is None:
            return None
        data = self.store.load_history(digest_id)
        return data if isinstance(data, dict) else None

    def get_digest_summary(self) -> Dict[str, Any]:
        return {
            "total_digests": self.history["aggregates"]["total_digests"],
            "aggregates": {
                k: round(v, 4) if isinstance(v, float) else v
                for k, v in self.history["aggregates"].items()
            },
            "recent_digests": self.history["digests"][-5:],
            "last_updated": self.history["last_updated"]
        }

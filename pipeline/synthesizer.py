"""
Intelligence Synthesizer

Turns per-category profiles from the trend detector into ranked
opportunities, one candidate solution per opportunity, and insights.

Opportunities (per category with at least min_category_signals signals):
- trend:   0.3*min(count/10, 1) + 0.3*mean_relevance + 0.3*mean_impact
           + 0.1*(positive) > 0.7                       priority high
- problem: dominant sentiment negative, mean_impact > 0.6   priority high
- gap:     count > 5, mean_impact > 0.7, negative           priority medium

Solution feasibility:
    0.5 + 0.3*opportunity_score + 0.2*(positive) + min(keywords/10, 0.1), capped at 1

Every score is a deterministic function of upstream scores.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from integrations.history_store import HistoryStore, append_capped
from utils.datetime_utils import utc_now

from .insights import Insight, priority_rank
from .scorer import clamp
from .trend_detector import CategoryProfile, TrendDistributions, TrendReport

logger = logging.getLogger(__name__)

HISTORY_KEY = "intelligence_history"

OPPORTUNITY_TYPES = ("trend", "problem", "gap")
_TYPE_ORDER = {t: i for i, t in enumerate(OPPORTUNITY_TYPES)}

OPPORTUNITY_TITLES = {
    "trend": "Capitalize on {category} trend",
    "problem": "Solve {category} problem",
    "gap": "Address {category} gap",
}

SOLUTION_TITLES = {
    "trend": "Build {category} solution",
    "problem": "Solve {category} problem",
    "gap": "Fill {category} gap",
}

SOLUTION_DESCRIPTIONS = {
    "trend": "Develop a solution that leverages the emerging {category} trend with {keywords} capabilities",
    "problem": "Create a solution that addresses the {category} problem affecting {keywords} development",
    "gap": "Build a solution that fills the gap in {category} for {keywords} needs",
}

SOLUTION_APPROACHES = {
    "trend": "Leverage existing frameworks and tools to build a {category} solution that capitalizes on the trend",
    "problem": "Identify the root cause of the {category} problem and develop a targeted solution",
    "gap": "Research existing solutions and build a better alternative for {category}",
}


@dataclass(frozen=True)
class Opportunity:
    opportunity_type: str   # trend, problem, gap
    category: str
    title: str
    description: str
    opportunity_score: float
    priority: str
    keywords: tuple = ()
    sentiment: str = "neutral"

    @property
    def opportunity_id(self) -> str:
        return f"{self.opportunity_type}:{self.category}"

    def to_dict(self) -> dict:
        return {
            "opportunity_id": self.opportunity_id,
            "opportunity_type": self.opportunity_type,
            "category": self.category,
            "title": self.title,
            "description": self.description,
            "opportunity_score": round(self.opportunity_score, 4),
            "priority": self.priority,
            "keywords": list(self.keywords),
            "sentiment": self.sentiment
        }


@dataclass(frozen=True)
class Solution:
    opportunity_ref: str
    opportunity_type: str
    category: str
    title: str
    description: str
    approach: str
    feasibility: float
    impact_potential: float
    priority: str
    keywords: tuple = ()

    def to_dict(self) -> dict:
        return {
            "opportunity_ref": self.opportunity_ref,
            "opportunity_type": self.opportunity_type,
            "category": self.category,
            "title": self.title,
            "description": self.description,
            "approach": self.approach,
            "feasibility": round(self.feasibility, 4),
            "impact_potential": round(self.impact_potential, 4),
            "priority": self.priority,
            "keywords": list(self.keywords)
        }


@dataclass
class SynthesisResult:
    opportunities: List[Opportunity] = field(default_factory=list)
    solutions: List[Solution] = field(default_factory=list)
    insights: List[Insight] = field(default_factory=list)

    def strategic_insights(self) -> List[Insight]:
        return [i for i in self.insights if i.insight_type == "strategic_insight"]

    def to_dict(self) -> dict:
        return {
            "opportunities": [o.to_dict() for o in self.opportunities],
            "solutions": [s.to_dict() for s in self.solutions],
            "insights": [i.to_dict() for i in self.insights]
        }


class IntelligenceSynthesizer:
    """
    Synthesize opportunities, solutions and insights from trend output.
    """

    FREQUENCY_SATURATION = 10
    TREND_WEIGHTS = {"frequency": 0.3, "relevance": 0.3, "impact": 0.3, "positive": 0.1}
    TREND_THRESHOLD = 0.7

    PROBLEM_IMPACT_THRESHOLD = 0.6

    GAP_FREQUENCY_THRESHOLD = 5
    GAP_IMPACT_THRESHOLD = 0.7

    FEASIBILITY_BASE = 0.5
    FEASIBILITY_SCORE_WEIGHT = 0.3
    FEASIBILITY_POSITIVE_BONUS = 0.2
    FEASIBILITY_KEYWORD_CAP = 0.1

    HIGH_FEASIBILITY = 0.7
    STRATEGIC_TYPE_COUNT = 2

    def __init__(
        self,
        store: Optional[HistoryStore] = None,
        min_category_signals: int = 3,
        clock: Callable[[], datetime] = utc_now,
        max_history: int = 100
    ):
        self.store = store
        self.min_category_signals = min_category_signals
        self.clock = clock
        self.max_history = max_history
        self.history: Dict[str, Any] = self._load_history()

    # ------------------------------------------------------------------ #
    #  Opportunities                                                      #
    # ------------------------------------------------------------------ #
    def trend_opportunity_score(self, profile: CategoryProfile) -> float:
        w = self.TREND_WEIGHTS
        frequency = min(profile.count / self.FREQUENCY_SATURATION, 1.0)
        score = (
            w["frequency"] * frequency
            + w["relevance"] * profile.mean_relevance
            + w["impact"] * profile.mean_impact
        )
        if profile.dominant_sentiment == "positive":
            score += w["positive"]
        return clamp(score)

    def _opportunity(self, opportunity_type: str, profile: CategoryProfile,
                     score: float, priority: str, description: str) -> Opportunity:
        return Opportunity(
            opportunity_type=opportunity_type,
            category=profile.category,
            title=OPPORTUNITY_TITLES[opportunity_type].format(category=profile.category),
            description=description,
            opportunity_score=clamp(score),
            priority=priority,
            keywords=tuple(profile.top_keywords),
            sentiment=profile.dominant_sentiment
        )

    def analyze_opportunities(self, distributions: TrendDistributions) -> List[Opportunity]:
        """
        Find trend, problem and gap opportunities per category.

        Returns:
            Opportunities ranked by score (desc), then type order, then category
        """
        opportunities: List[Opportunity] = []

        for category in sorted(distributions.category_profiles):
            profile = distributions.category_profiles[category]
            if profile.count < self.min_category_signals:
                continue

            trend_score = self.trend_opportunity_score(profile)
            if trend_score > self.TREND_THRESHOLD:
                opportunities.append(self._opportunity(
                    "trend", profile, trend_score, "high",
                    f"Strong {category} trend across {profile.count} signals with "
                    f"{profile.mean_relevance * 100:.1f}% relevance and "
                    f"{profile.mean_impact * 100:.1f}% impact"
                ))

            negative = profile.dominant_sentiment == "negative"
            if negative and profile.mean_impact > self.PROBLEM_IMPACT_THRESHOLD:
                opportunities.append(self._opportunity(
                    "problem", profile, profile.mean_impact, "high",
                    f"High-impact problem detected with {profile.count} occurrences and "
                    f"{profile.mean_impact * 100:.1f}% impact"
                ))

            if (negative
                    and profile.count > self.GAP_FREQUENCY_THRESHOLD
                    and profile.mean_impact > self.GAP_IMPACT_THRESHOLD):
                opportunities.append(self._opportunity(
                    "gap", profile, profile.mean_impact, "medium",
                    f"Recurring high-impact {category} need ({profile.count} signals) "
                    f"with limited solutions available"
                ))

        opportunities.sort(key=lambda o: (
            -o.opportunity_score, _TYPE_ORDER.get(o.opportunity_type, 99), o.category
        ))
        return opportunities

    # ------------------------------------------------------------------ #
    #  Solutions                                                          #
    # ------------------------------------------------------------------ #
    def assess_feasibility(self, opportunity: Opportunity) -> float:
        feasibility = self.FEASIBILITY_BASE + self.FEASIBILITY_SCORE_WEIGHT * opportunity.opportunity_score
        if opportunity.sentiment == "positive":
            feasibility += self.FEASIBILITY_POSITIVE_BONUS
        feasibility += min(len(opportunity.keywords) / 10, self.FEASIBILITY_KEYWORD_CAP)
        return clamp(feasibility)

    def generate_solution(self, opportunity: Opportunity) -> Solution:
        keywords = ", ".join(opportunity.keywords) or opportunity.category
        fmt = {"category": opportunity.category, "keywords": keywords}
        return Solution(
            opportunity_ref=opportunity.opportunity_id,
            opportunity_type=opportunity.opportunity_type,
            category=opportunity.category,
            title=SOLUTION_TITLES[opportunity.opportunity_type].format(**fmt),
            description=SOLUTION_DESCRIPTIONS[opportunity.opportunity_type].format(**fmt),
            approach=SOLUTION_APPROACHES[opportunity.opportunity_type].format(**fmt),
            feasibility=self.assess_feasibility(opportunity),
            impact_potential=clamp(opportunity.opportunity_score),
            priority=opportunity.priority,
            keywords=opportunity.keywords
        )

    # ------------------------------------------------------------------ #
    #  Insights                                                           #
    # ------------------------------------------------------------------ #
    def create_insights(self, opportunities: List[Opportunity], solutions: List[Solution]) -> List[Insight]:
        insights: List[Insight] = []

        for opportunity in opportunities:
            insights.append(Insight(
                insight_type="opportunity_insight",
                title=f"Market opportunity in {opportunity.category}",
                description=opportunity.description,
                actionable=True,
                priority=opportunity.priority
            ))

        for solution in solutions:
            insights.append(Insight(
                insight_type="solution_insight",
                title=f"Solution approach for {solution.opportunity_ref}",
                description=solution.description,
                actionable=True,
                priority=solution.priority
            ))

        by_type: Dict[str, int] = {}
        for opportunity in opportunities:
            by_type[opportunity.opportunity_type] = by_type.get(opportunity.opportunity_type, 0) + 1
        for opportunity_type in OPPORTUNITY_TYPES:
            if by_type.get(opportunity_type, 0) > self.STRATEGIC_TYPE_COUNT:
                insights.append(Insight(
                    insight_type="strategic_insight",
                    title=f"Focus on {opportunity_type} opportunities",
                    description=(
                        f"{by_type[opportunity_type]} {opportunity_type} opportunities detected - "
                        f"consider prioritizing this area"
                    ),
                    actionable=True,
                    priority="high"
                ))

        feasible = [s for s in solutions if s.feasibility > self.HIGH_FEASIBILITY]
        if feasible:
            insights.append(Insight(
                insight_type="strategic_insight",
                title="High-feasibility solutions available",
                description=f"{len(feasible)} solutions with high feasibility identified",
                actionable=True,
                priority="high"
            ))

        return insights

    def synthesize(
        self,
        trend_report: TrendReport,
        distributions: Optional[TrendDistributions] = None
    ) -> SynthesisResult:
        """
        Synthesize intelligence from trend output.

        Args:
            trend_report: Output of TrendDetector.detect
            distributions: Distributions to profile (defaults to the report's)

        Returns:
            SynthesisResult with ranked opportunities, 1:1 solutions and insights
        """
        distributions = distributions or trend_report.distributions
        opportunities = self.analyze_opportunities(distributions)
        solutions = [self.generate_solution(o) for o in opportunities]
        insights = self.create_insights(opportunities, solutions)

        logger.info(
            f"Synthesized {len(opportunities)} opportunities, {len(solutions)} solutions, "
            f"{len(insights)} insights"
        )
        return SynthesisResult(opportunities, solutions, insights)

    # ------------------------------------------------------------------ #
    #  History                                                            #
    # ------------------------------------------------------------------ #
    def _load_history(self) -> Dict[str, Any]:
        history: Dict[str, Any] = {"entries": [], "last_updated": None}
        if self.store is None:
            return history
        stored = self.store.load_history(HISTORY_KEY)
        if isinstance(stored, dict) and isinstance(stored.get("entries"), list):
            history["entries"] = stored["entries"]
            history["last_updated"] = stored.get("last_updated")
        return history

    def record(self, result: SynthesisResult) -> bool:
        """Append a synthesis result to the intelligence history and persist."""
        now = self.clock().isoformat()
        append_capped(self.history["entries"], {"timestamp": now, **result.to_dict()}, self.max_history)
        self.history["last_updated"] = now
        if self.store is None:
            return True
        return self.store.save_history(HISTORY_KEY, self.history)

    def get_summary(self) -> Dict[str, Any]:
        """Totals across history with the best current opportunities and solutions."""
        entries = self.history["entries"]
        opportunities = [o for e in entries for o in e.get("opportunities", [])]
        solutions = [s for e in entries for s in e.get("solutions", [])]
        latest_strategic = []
        if entries:
            latest_strategic = [
                i for i in entries[-1].get("insights", [])
                if i.get("insight_type") == "strategic_insight"
            ]

        return {
            "total_runs": len(entries),
            "total_opportunities": len(opportunities),
            "total_solutions": len(solutions),
            "top_opportunities": sorted(
                opportunities,
                key=lambda o: (-o.get("opportunity_score", 0.0), priority_rank(o.get("priority", "")))
            )[:5],
            "top_solutions": sorted(solutions, key=lambda s: -s.get("feasibility", 0.0))[:5],
            "strategic_insights": latest_strategic,
            "last_updated": self.history["last_updated"]
        }

"""
Insight records shared by the filter, synthesizer and digest compiler.
"""

from dataclasses import dataclass

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}


@dataclass(frozen=True)
class Insight:
    """A short, possibly actionable finding."""
    insight_type: str
    title: str
    description: str
    actionable: bool = True
    priority: str = "medium"

    def to_dict(self) -> dict:
        return {
            "insight_type": self.insight_type,
            "title": self.title,
            "description": self.description,
            "actionable": self.actionable,
            "priority": self.priority
        }


def priority_rank(priority: str) -> int:
    """Sort key: high before medium before low, unknown last."""
    return PRIORITY_ORDER.get(priority, len(PRIORITY_ORDER))

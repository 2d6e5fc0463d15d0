"""
Filter Rules

Tunable thresholds and weights shared by the scorer (weights) and the
filter (thresholds). Only the filter changes thresholds; the scorer reads
the weights.
"""

import copy
import logging
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Rejection reasons in evaluation order -> threshold attribute
REASON_THRESHOLDS = (
    ("relevance", "relevance_threshold"),
    ("impact", "impact_threshold"),
    ("trend", "trend_threshold"),
    ("sentiment", "sentiment_threshold"),
)
REASONS = tuple(reason for reason, _ in REASON_THRESHOLDS)

DEFAULT_SENTIMENT_WEIGHTS = {"positive": 1.2, "neutral": 1.0, "negative": 0.8}

DEFAULT_CATEGORY_WEIGHTS = {
    "ai_development": 1.5,
    "autonomous_systems": 1.4,
    "developer_tools": 1.3,
    "automation": 1.2,
    "framework": 1.1,
    "other": 1.0,
}


@dataclass
class FilterRules:
    """
    Adaptive filter configuration.

    relevance_threshold doubles as the global acceptance threshold for the
    combined filter score.
    """
    relevance_threshold: float = 0.6
    impact_threshold: float = 0.5
    trend_threshold: float = 0.7
    sentiment_threshold: float = 0.3

    sentiment_weights: Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_SENTIMENT_WEIGHTS)
    )
    category_weights: Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_CATEGORY_WEIGHTS)
    )

    # Self-tuning
    threshold_floor: float = 0.05
    threshold_ceiling: float = 0.95
    relax_factor: float = 0.9
    tighten_factor: float = 1.1
    relax_below: float = 0.5
    tighten_above: float = 0.8

    version: int = 1

    def threshold_for(self, reason: str) -> float:
        """Current threshold for a rejection reason."""
        for name, attr in REASON_THRESHOLDS:
            if name == reason:
                return getattr(self, attr)
        raise KeyError(f"Unknown filter reason: {reason}")

    def set_threshold(self, reason: str, value: float) -> None:
        for name, attr in REASON_THRESHOLDS:
            if name == reason:
                setattr(self, attr, value)
                return
        raise KeyError(f"Unknown filter reason: {reason}")

    def thresholds(self) -> Dict[str, float]:
        return {reason: self.threshold_for(reason) for reason in REASONS}

    def category_weight(self, category: str) -> float:
        """Weight for a classified category; unknown categories weigh 1.0."""
        return self.category_weights.get(category, self.category_weights.get("other", 1.0))

    def sentiment_weight(self, sentiment: str) -> float:
        return self.sentiment_weights.get(sentiment, 1.0)

    def copy(self) -> "FilterRules":
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, float):
                value = round(value, 6)
            elif isinstance(value, dict):
                value = dict(value)
            data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "FilterRules":
        """
        Create rules from stored or configured values.

        Entries with the wrong type are skipped with a warning so a damaged
        rules file degrades to defaults field by field.
        """
        rules = cls()
        if not isinstance(data, dict):
            return rules
        rules.apply_overrides(data)
        return rules

    def apply_overrides(self, data: Dict[str, Any]) -> None:
        known = {f.name: f for f in fields(self)}
        for key, value in data.items():
            if key not in known:
                logger.warning(f"Ignoring unknown filter rule: {key}")
                continue

            current = getattr(self, key)
            if isinstance(current, dict):
                if not isinstance(value, dict):
                    logger.warning(f"Filter rule '{key}' must be an object, keeping default")
                    continue
                merged = dict(current)
                for name, weight in value.items():
                    if _is_number(weight):
                        merged[str(name)] = float(weight)
                    else:
                        logger.warning(f"Ignoring non-numeric weight {key}.{name}={weight!r}")
                setattr(self, key, merged)
            elif isinstance(current, int) and not isinstance(current, bool) and key == "version":
                if _is_number(value):
                    setattr(self, key, int(value))
            elif _is_number(value):
                setattr(self, key, float(value))
            else:
                logger.warning(f"Ignoring non-numeric filter rule {key}={value!r}")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)

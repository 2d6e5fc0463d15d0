"""
Source Registry

Calibration constants for source-reported popularity counters.

Each feed reports engagement in its own units (repository stars, page
views, upvotes, ...). Impact scoring normalizes every known counter by a
calibration constant, caps it at 1.0 and weights it. Unknown counters
contribute nothing.
"""

from dataclasses import dataclass
from typing import Dict, Mapping, Optional


@dataclass(frozen=True)
class MetricCalibration:
    """Normalization for one raw metric."""
    name: str
    scale: float   # value at which the metric saturates
    weight: float  # contribution to impact once saturated

    def normalize(self, value: float) -> float:
        """Value divided by scale, floored at 0 and capped at 1."""
        if self.scale <= 0:
            return 0.0
        return min(max(value, 0.0) / self.scale, 1.0)

    def contribution(self, value: float) -> float:
        return self.weight * self.normalize(value)


# Popularity counters by metric name
# Higher weight = stronger evidence of reach
METRIC_CALIBRATION: Dict[str, MetricCalibration] = {
    # Code hosting
    "stars": MetricCalibration("stars", 1000.0, 0.3),
    "forks": MetricCalibration("forks", 200.0, 0.2),
    "downloads": MetricCalibration("downloads", 50000.0, 0.2),

    # Q&A / content sites
    "views": MetricCalibration("views", 10000.0, 0.3),
    "answers": MetricCalibration("answers", 20.0, 0.1),

    # Forums
    "upvotes": MetricCalibration("upvotes", 500.0, 0.2),
    "comments": MetricCalibration("comments", 100.0, 0.1),
}

# Engagement levels reported directly by sources
ENGAGEMENT_LEVELS = ("high", "medium", "low")


def get_metric_calibration(name: str) -> Optional[MetricCalibration]:
    """
    Get calibration for a metric name.

    Args:
        name: Raw metric name (case-insensitive)

    Returns:
        MetricCalibration or None for unknown metrics
    """
    if not isinstance(name, str):
        return None
    return METRIC_CALIBRATION.get(name.strip().lower())


def popularity_contribution(
    raw_metrics: Mapping[str, float],
    calibration: Optional[Mapping[str, MetricCalibration]] = None
) -> float:
    """
    Sum of weighted, normalized popularity counters.

    Args:
        raw_metrics: Metric name -> numeric value
        calibration: Override table (defaults to METRIC_CALIBRATION)

    Returns:
        Uncapped sum of contributions (each contribution is in [0, weight])
    """
    table = calibration if calibration is not None else METRIC_CALIBRATION
    total = 0.0
    for name, value in raw_metrics.items():
        entry = table.get(str(name).strip().lower())
        if entry is None:
            continue
        total += entry.contribution(value)
    return total


def normalize_engagement(value: object) -> Optional[str]:
    """Map a loosely typed engagement level onto high/medium/low."""
    if not isinstance(value, str):
        return None
    level = value.strip().lower()
    return level if level in ENGAGEMENT_LEVELS else None

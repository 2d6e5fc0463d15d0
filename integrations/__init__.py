"""
Integrations Module

Edges of the pipeline:
- History store (JSON files or in-memory)
- Metric calibration registry
- Signal sources (import integrations.signal_source directly)
"""

from .history_store import HistoryStore, InMemoryHistoryStore, JsonHistoryStore
from .source_registry import (
    METRIC_CALIBRATION,
    get_metric_calibration,
    popularity_contribution,
    normalize_engagement
)

__all__ = [
    "HistoryStore",
    "InMemoryHistoryStore",
    "JsonHistoryStore",
    "METRIC_CALIBRATION",
    "get_metric_calibration",
    "popularity_contribution",
    "normalize_engagement"
]

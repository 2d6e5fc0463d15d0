"""
Signal Records

A Signal is one external event ingested by the pipeline. Sources hand over
loosely typed dictionaries; Signal.from_dict normalizes them without ever
raising so a single malformed record cannot stop a batch.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from integrations.source_registry import normalize_engagement
from utils.datetime_utils import parse_timestamp

logger = logging.getLogger(__name__)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def as_number(value: Any, default: float = 0.0) -> float:
    """Coerce a loosely typed numeric field; anything unusable becomes default."""
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return default
    else:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def clean_metrics(raw: Any) -> Dict[str, float]:
    """Keep only metrics with a usable numeric value."""
    if not isinstance(raw, dict):
        return {}
    metrics = {}
    for name, value in raw.items():
        number = as_number(value, default=float("nan"))
        if not math.isnan(number):
            metrics[str(name)] = number
    return metrics


@dataclass(frozen=True)
class Signal:
    """
    External signal, immutable once ingested.

    raw_metrics holds source-specific popularity counters (stars, views,
    upvotes, ...). engagement is the optional source-reported level.
    """
    signal_id: str
    source: str
    category: str
    title: str
    description: str
    timestamp: Optional[datetime]
    raw_metrics: Dict[str, float] = field(default_factory=dict)
    engagement: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "signal_id": self.signal_id,
            "source": self.source,
            "category": self.category,
            "title": self.title,
            "description": self.description,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "raw_metrics": dict(self.raw_metrics),
            "engagement": self.engagement
        }

    @classmethod
    def from_dict(cls, data: Any, fallback_id: Optional[str] = None) -> "Signal":
        """
        Create from a loosely typed dictionary.

        Missing or odd-typed fields become neutral defaults. Metrics may be
        given under "raw_metrics" or "metrics"; the id under "signal_id" or "id".

        Args:
            data: Raw record from a source
            fallback_id: Id to use when the record carries none
        """
        if not isinstance(data, dict):
            logger.debug(f"Non-dict signal record replaced with empty signal: {type(data).__name__}")
            data = {}

        signal_id = _as_text(data.get("signal_id", data.get("id"))) or fallback_id or ""
        raw_metrics = data.get("raw_metrics", data.get("metrics"))

        return cls(
            signal_id=signal_id,
            source=_as_text(data.get("source")),
            category=_as_text(data.get("category")).strip().lower(),
            title=_as_text(data.get("title")),
            description=_as_text(data.get("description")),
            timestamp=parse_timestamp(data.get("timestamp")),
            raw_metrics=clean_metrics(raw_metrics),
            engagement=normalize_engagement(data.get("engagement"))
        )

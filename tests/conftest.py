"""
Pytest Configuration and Fixtures
"""

import pytest
import sys
from datetime import datetime, timedelta
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from integrations.history_store import InMemoryHistoryStore
from integrations.signal_source import StaticSignalSource
from pipeline.config import PipelineSettings
from pipeline.orchestrator import PipelineOrchestrator
from pipeline.scorer import ScoredSignal
from pipeline.signal import Signal

FIXED_NOW = datetime(2026, 10, 15, 12, 0, 0)


def fixed_clock() -> datetime:
    return FIXED_NOW


def build_signal(
    signal_id: str = "sig-1",
    title: str = "New AI framework tool for development",
    description: str = "Great software system for programming. Amazing results.",
    category: str = "ai_development",
    source: str = "github",
    hours_ago: float = 1.0,
    raw_metrics=None,
    engagement=None
) -> Signal:
    return Signal(
        signal_id=signal_id,
        source=source,
        category=category,
        title=title,
        description=description,
        timestamp=FIXED_NOW - timedelta(hours=hours_ago),
        raw_metrics=dict(raw_metrics) if raw_metrics is not None else {"stars": 334},
        engagement=engagement
    )


def ai_development_batch(count: int = 10):
    """Positive, relevant ai_development signals with impact around 0.8."""
    return [build_signal(signal_id=f"ai-{i}") for i in range(count)]


def billing_batch(count: int = 6):
    """Negative billing complaints with impact around 0.75."""
    return [
        build_signal(
            signal_id=f"billing-{i}",
            title="Billing tool problem",
            description="Frustrated with terrible software, same issue again.",
            category="billing",
            source="reddit",
            raw_metrics={"views": 4300}
        )
        for i in range(count)
    ]


@pytest.fixture
def clock():
    """Deterministic wall clock."""
    return fixed_clock


@pytest.fixture
def memory_store():
    """Fresh in-memory history store."""
    return InMemoryHistoryStore()


@pytest.fixture
def make_signal():
    """Factory for Signals with sensible defaults."""
    return build_signal


@pytest.fixture
def make_scored():
    """Factory for ScoredSignals with explicit scores."""
    def _make(
        signal_id: str = "scored-1",
        category: str = "ai_development",
        relevance: float = 0.8,
        impact: float = 0.8,
        trend: float = 0.8,
        sentiment: str = "neutral",
        sentiment_score: float = 0.0,
        filter_score: float = 0.8,
        keywords=(),
        timestamp=FIXED_NOW,
        classified_category=None
    ) -> ScoredSignal:
        signal = Signal(
            signal_id=signal_id,
            source="test",
            category=category,
            title="",
            description="",
            timestamp=timestamp
        )
        return ScoredSignal(
            signal=signal,
            relevance=relevance,
            impact=impact,
            trend=trend,
            sentiment_score=sentiment_score,
            sentiment=sentiment,
            category=category,
            classified_category=classified_category or category,
            category_confidence=0.9,
            filter_score=filter_score,
            keywords=tuple(keywords),
            scored_at=FIXED_NOW
        )
    return _make


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a temp store directory."""
    return PipelineSettings(store_dir=str(tmp_path / "history"))


@pytest.fixture
def make_orchestrator(memory_store, settings):
    """Factory for orchestrators over a static batch and the shared in-memory store."""
    def _make(signals=None, source=None, store=memory_store, **kwargs):
        source = source if source is not None else StaticSignalSource(signals or [])
        kwargs.setdefault("settings", settings)
        kwargs.setdefault("clock", fixed_clock)
        return PipelineOrchestrator(source=source, store=store, **kwargs)
    return _make

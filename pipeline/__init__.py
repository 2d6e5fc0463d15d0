"""
Pipeline Module

Core components of the signal intelligence pipeline:
- Signal: Immutable input record
- Scorer: Relevance, impact, trend and sentiment scoring
- Filter: Adaptive accept/reject with self-tuning thresholds
- Trend Detector: Patterns, momentum, correlations, predictions, alerts
- Synthesizer: Opportunities, solutions and insights
- Digest Compiler: Five-section report
- Orchestrator: Sequential runs, run history, scheduling
"""

from .errors import PipelineError, SettingsError, SignalSourceError, StageError, PipelineTimeoutError
from .config import PipelineSettings, load_settings
from .signal import Signal
from .filter_rules import FilterRules
from .scorer import SignalScorer, ScoredSignal
from .signal_filter import SignalFilter, FilterDecision, FilterMetrics
from .trend_detector import TrendDetector, TrendPattern, TrendReport
from .synthesizer import IntelligenceSynthesizer, Opportunity, Solution, SynthesisResult
from .digest_compiler import DigestCompiler, Digest
from .scheduler import PipelineScheduler
from .orchestrator import PipelineOrchestrator, PipelineRun, RunResult

__all__ = [
    "PipelineError",
    "SettingsError",
    "SignalSourceError",
    "StageError",
    "PipelineTimeoutError",
    "PipelineSettings",
    "load_settings",
    "Signal",
    "FilterRules",
    "SignalScorer",
    "ScoredSignal",
    "SignalFilter",
    "FilterDecision",
    "FilterMetrics",
    "TrendDetector",
    "TrendPattern",
    "TrendReport",
    "IntelligenceSynthesizer",
    "Opportunity",
    "Solution",
    "SynthesisResult",
    "DigestCompiler",
    "Digest",
    "PipelineScheduler",
    "PipelineOrchestrator",
    "PipelineRun",
    "RunResult"
]

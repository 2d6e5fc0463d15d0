"""
Pipeline error taxonomy.

Malformed input never raises (the scorer and filter substitute neutral
defaults) and persistence failures are logged by the store. What remains
is classified here: stage failures and run timeouts, which the
orchestrator records as failed runs.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for pipeline errors."""


class SettingsError(PipelineError):
    """Invalid pipeline configuration."""


class SignalSourceError(PipelineError):
    """A signal source could not produce a batch."""


class StageError(PipelineError):
    """
    An unexpected exception inside one pipeline stage.

    Attributes:
        stage: Stage name (collect, score, filter, detect, synthesize, compile)
        cause: The original exception
    """

    def __init__(self, stage: str, cause: Optional[BaseException] = None):
        self.stage = stage
        self.cause = cause
        detail = f"{type(cause).__name__}: {cause}" if cause is not None else "unknown error"
        super().__init__(f"Stage '{stage}' failed: {detail}")


class PipelineTimeoutError(PipelineError):
    """A run exceeded its configured duration."""

    def __init__(self, stage: str, elapsed_seconds: float, limit_seconds: float):
        self.stage = stage
        self.elapsed_seconds = elapsed_seconds
        self.limit_seconds = limit_seconds
        super().__init__(
            f"Run exceeded {limit_seconds:.1f}s after stage '{stage}' "
            f"({elapsed_seconds:.2f}s elapsed)"
        )

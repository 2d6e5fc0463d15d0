"""
API Schemas

Pydantic models for API request/response validation.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


# Request Models

class ScheduleRequest(BaseModel):
    """Request to start the continuous schedule."""
    interval_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Seconds between runs (defaults to the configured interval)"
    )


class StopRequest(BaseModel):
    """Request to stop the continuous schedule."""
    timeout_seconds: Optional[float] = Field(
        default=None,
        ge=0,
        description="Maximum wait for an in-flight run"
    )


# Response Models

class RunCountsModel(BaseModel):
    collected: int = 0
    filtered: int = 0
    trends_detected: int = 0
    opportunities: int = 0
    solutions: int = 0


class RunPerformanceModel(BaseModel):
    filter_rate: float = 0.0
    momentum: float = 0.0
    efficiency_score: float = 0.0
    digest_score: float = 0.0


class RunRecord(BaseModel):
    """One pipeline run from history."""
    run_id: str
    timestamp: datetime
    duration_ms: float
    status: str
    counts: RunCountsModel
    performance: RunPerformanceModel
    digest_id: Optional[str] = None
    failed_stage: Optional[str] = None
    error: Optional[str] = None


class RunResponse(BaseModel):
    """Outcome of a triggered run."""
    status: str
    run: Optional[RunRecord] = None
    digest_id: Optional[str] = None
    error: Optional[str] = None


class RunHistoryResponse(BaseModel):
    runs: List[RunRecord]
    count: int


class StatusResponse(BaseModel):
    """Operational status."""
    is_running: bool
    run_count: int
    rejected_count: int
    last_run: Optional[RunRecord] = None
    last_successful_run: Optional[RunRecord] = None
    last_failed_run: Optional[RunRecord] = None
    performance_summary: Dict[str, Any]
    scheduler_active: bool
    recommendations: List[Dict[str, Any]] = Field(default_factory=list)


class DigestSectionModel(BaseModel):
    key: str
    title: str
    content: str
    data: Dict[str, Any]


class DigestMetricsModel(BaseModel):
    section_count: int
    word_count: int
    insight_count: int
    action_count: int
    digest_score: float


class DigestResponse(BaseModel):
    """Compiled digest."""
    digest_id: str
    timestamp: datetime
    sections: Dict[str, DigestSectionModel]
    metrics: DigestMetricsModel
    opportunity_count: int
    solution_count: int


class FilterPerformanceResponse(BaseModel):
    """Cumulative filter statistics and current thresholds."""
    total_signals: int
    passed_signals: int
    filter_rate: float
    rejected_by_reason: Dict[str, int]
    effectiveness_by_reason: Dict[str, float]
    overall_effectiveness: float
    batches_observed: int
    learning_improvement: str
    thresholds: Dict[str, float]
    optimizations: int
    insights: List[Dict[str, Any]] = Field(default_factory=list)


class ThresholdChange(BaseModel):
    old: float
    new: float


class OptimizeResponse(BaseModel):
    changes: Dict[str, ThresholdChange]
    thresholds: Dict[str, float]


class ScheduleResponse(BaseModel):
    scheduler_active: bool
    message: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: datetime
    version: str = "1.0.0"


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: Optional[str] = None

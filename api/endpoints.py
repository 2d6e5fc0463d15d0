"""
API Endpoints

Route handlers for the FastAPI application.
"""

import logging
import sys
import threading
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse, PlainTextResponse

# Add project root to path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from api.schemas import (
    HealthResponse, StatusResponse,
    RunResponse, RunHistoryResponse,
    DigestResponse, FilterPerformanceResponse, OptimizeResponse,
    ScheduleRequest, StopRequest, ScheduleResponse
)
from cli.commands import build_orchestrator
from pipeline.errors import PipelineError
from pipeline.orchestrator import PipelineOrchestrator
from utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

router = APIRouter()

_orchestrator: Optional[PipelineOrchestrator] = None
_orchestrator_lock = threading.Lock()


def get_orchestrator() -> PipelineOrchestrator:
    """Process-wide orchestrator, built from settings on first use."""
    global _orchestrator
    with _orchestrator_lock:
        if _orchestrator is None:
            _orchestrator = build_orchestrator()
        return _orchestrator


def peek_orchestrator() -> Optional[PipelineOrchestrator]:
    """The orchestrator if one has been built (no side effects)."""
    return _orchestrator


# Health check
@router.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    """Check system health."""
    logger.debug("Health check requested")
    return HealthResponse(
        status="healthy",
        timestamp=utc_now(),
        version="1.0.0"
    )


@router.get("/status", response_model=StatusResponse, tags=["System"])
def get_status(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Operational status with running performance averages."""
    status = orchestrator.status()
    status["recommendations"] = [r.to_dict() for r in orchestrator.system_recommendations()]
    return StatusResponse(**status)


# Runs
@router.post("/runs", response_model=RunResponse, tags=["Runs"],
             responses={409: {"description": "A run is already in progress"},
                        500: {"description": "The run failed", "model": RunResponse}})
def trigger_run(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Run the pipeline once and wait for the result."""
    logger.info("Pipeline run requested via API")
    result = orchestrator.run_pipeline()

    if result.rejected:
        raise HTTPException(status_code=409, detail=result.error)
    if not result.completed:
        logger.error(f"API-triggered run failed: {result.error}")
        return JSONResponse(status_code=500, content=result.to_dict())

    logger.info(f"API-triggered run {result.run.run_id} completed")
    return RunResponse(**result.to_dict())


@router.get("/runs", response_model=RunHistoryResponse, tags=["Runs"])
def list_runs(limit: int = 50, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Most recent run records, oldest first."""
    if limit < 0:
        raise HTTPException(status_code=422, detail="limit must be >= 0")
    runs = orchestrator.get_run_history(limit)
    return RunHistoryResponse(runs=runs, count=len(runs))


# Digests
@router.get("/digests/latest", response_model=DigestResponse, tags=["Digests"],
            responses={404: {"description": "No digest yet"}})
def get_latest_digest(format: str = "json",
                      orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Latest digest as JSON, or markdown with ?format=markdown."""
    digest = orchestrator.get_latest_digest()
    if digest is None:
        raise HTTPException(status_code=404, detail="No digest available. Trigger a run first.")

    if format == "markdown":
        return PlainTextResponse(digest.render_markdown(), media_type="text/markdown")
    if format != "json":
        raise HTTPException(status_code=400, detail=f"Unsupported format: {format}")
    return DigestResponse(**digest.to_dict())


# Filter
@router.get("/filter/performance", response_model=FilterPerformanceResponse, tags=["Filter"])
def get_filter_performance(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Cumulative filter statistics, thresholds and insights."""
    return FilterPerformanceResponse(**orchestrator.get_filter_performance())


@router.post("/filter/optimize", response_model=OptimizeResponse, tags=["Filter"],
             responses={409: {"description": "A run is in progress"}})
def optimize_filter(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Retune filter thresholds from the observed effectiveness."""
    try:
        changes = orchestrator.optimize()
    except PipelineError as e:
        raise HTTPException(status_code=409, detail=str(e))

    thresholds = orchestrator.signal_filter.rules.thresholds()
    logger.info(f"Filter optimized via API: {len(changes)} thresholds changed")
    return OptimizeResponse(changes=changes, thresholds=thresholds)


# Trends
@router.get("/trends/summary", tags=["Trends"])
def get_trend_summary(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Totals, top categories/keywords and recent momentum from trend history."""
    return orchestrator.get_trend_summary()


# Scheduling
@router.post("/schedule/start", response_model=ScheduleResponse, tags=["Schedule"])
def start_schedule(request: Optional[ScheduleRequest] = None,
                   orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Start continuous runs on a background thread."""
    request = request or ScheduleRequest()
    interval = request.interval_seconds or orchestrator.settings.schedule_interval_seconds
    started = orchestrator.start(interval)
    message = f"Scheduled every {interval:.0f}s" if started else "Schedule already active"
    logger.info(f"Schedule start requested: {message}")
    return ScheduleResponse(scheduler_active=orchestrator.scheduler_active, message=message)


@router.post("/schedule/stop", response_model=ScheduleResponse, tags=["Schedule"])
def stop_schedule(request: Optional[StopRequest] = None,
                  orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Stop continuous runs, waiting (bounded) for an in-flight run."""
    request = request or StopRequest()
    stopped = orchestrator.stop(request.timeout_seconds)
    message = "Schedule stopped" if stopped else "Stop requested; in-flight run still finishing"
    logger.info(f"Schedule stop requested: {message}")
    return ScheduleResponse(scheduler_active=orchestrator.scheduler_active, message=message)

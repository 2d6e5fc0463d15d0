"""
Pipeline Orchestrator

Runs the stages in order for one batch:

    collect -> score -> filter -> detect -> synthesize -> compile -> persist

Only one run may be active. A second trigger while a run is in progress is
rejected immediately (logged, not queued). Every stage goes through one
error boundary: any exception becomes a StageError, the run is recorded as
failed and the guard is released. The run deadline is checked between
stages.

Run history is append-only; running performance averages are updated
incrementally (avg += (x - avg) / n).
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from integrations.history_store import HistoryStore, append_capped
from utils.datetime_utils import parse_timestamp, utc_now
from utils.logging_utils import append_jsonl

from .config import PipelineSettings
from .digest_compiler import Digest, DigestCompiler
from .errors import PipelineError, PipelineTimeoutError, StageError
from .insights import Insight
from .scheduler import PipelineScheduler
from .scorer import SignalScorer, clamp
from .signal import Signal
from .signal_filter import FilterBatchResult, SignalFilter
from .synthesizer import IntelligenceSynthesizer, SynthesisResult
from .trend_detector import TrendDetector, TrendReport

logger = logging.getLogger(__name__)

RUN_HISTORY_KEY = "run_history"

STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_REJECTED = "rejected"

STAGES = ("collect", "score", "filter", "detect", "synthesize", "compile", "persist")


# ============================================================
# Run records
# ============================================================

@dataclass(frozen=True)
class RunCounts:
    collected: int = 0
    filtered: int = 0
    trends_detected: int = 0
    opportunities: int = 0
    solutions: int = 0

    def to_dict(self) -> dict:
        return {
            "collected": self.collected,
            "filtered": self.filtered,
            "trends_detected": self.trends_detected,
            "opportunities": self.opportunities,
            "solutions": self.solutions
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RunCounts":
        return cls(**{k: int(data.get(k, 0)) for k in cls().to_dict()})


@dataclass(frozen=True)
class RunPerformance:
    filter_rate: float = 0.0
    momentum: float = 0.0
    efficiency_score: float = 0.0
    digest_score: float = 0.0

    def to_dict(self) -> dict:
        return {
            "filter_rate": round(self.filter_rate, 4),
            "momentum": round(self.momentum, 4),
            "efficiency_score": round(self.efficiency_score, 4),
            "digest_score": round(self.digest_score, 4)
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RunPerformance":
        return cls(**{k: float(data.get(k, 0.0)) for k in cls().to_dict()})


@dataclass(frozen=True)
class PipelineRun:
    """One execution record. Never modified after it is appended to history."""
    run_id: str
    timestamp: datetime
    duration_ms: float
    status: str
    counts: RunCounts = field(default_factory=RunCounts)
    performance: RunPerformance = field(default_factory=RunPerformance)
    digest_id: Optional[str] = None
    failed_stage: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_COMPLETED

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "timestamp": self.timestamp.isoformat(),
            "duration_ms": round(self.duration_ms, 3),
            "status": self.status,
            "counts": self.counts.to_dict(),
            "performance": self.performance.to_dict(),
            "digest_id": self.digest_id,
            "failed_stage": self.failed_stage,
            "error": self.error
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PipelineRun":
        return cls(
            run_id=data["run_id"],
            timestamp=parse_timestamp(data.get("timestamp")) or utc_now(),
            duration_ms=float(data.get("duration_ms", 0.0)),
            status=data.get("status", STATUS_COMPLETED),
            counts=RunCounts.from_dict(data.get("counts") or {}),
            performance=RunPerformance.from_dict(data.get("performance") or {}),
            digest_id=data.get("digest_id"),
            failed_stage=data.get("failed_stage"),
            error=data.get("error")
        )


@dataclass
class RunResult:
    """What run_pipeline() returns. Rejections carry no run record."""
    status: str
    run: Optional[PipelineRun] = None
    digest: Optional[Digest] = None
    error: Optional[str] = None
    filter_result: Optional[FilterBatchResult] = None
    trend_report: Optional[TrendReport] = None
    synthesis: Optional[SynthesisResult] = None

    @property
    def completed(self) -> bool:
        return self.status == STATUS_COMPLETED

    @property
    def rejected(self) -> bool:
        return self.status == STATUS_REJECTED

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "run": self.run.to_dict() if self.run else None,
            "digest_id": self.digest.digest_id if self.digest else None,
            "error": self.error
        }


def efficiency_score(filter_rate: float, trends: int, opportunities: int,
                     solutions: int, digest_score: float) -> float:
    """0.3*filter_rate + 0.25*min(trends/10,1) + 0.25*min((opps+sols)/20,1) + 0.2*digest_score"""
    return clamp(
        0.3 * filter_rate
        + 0.25 * min(trends / 10, 1.0)
        + 0.25 * min((opportunities + solutions) / 20, 1.0)
        + 0.2 * digest_score
    )


class PerformanceTracker:
    """
    Running totals and incremental averages over run records.

    Averages of run quality (filter rate, momentum, efficiency, digest score)
    cover completed runs only; duration covers every recorded run.
    """

    AVERAGES = ("avg_filter_rate", "avg_momentum", "avg_efficiency", "avg_digest_score")

    def __init__(self, stored: Optional[Dict[str, Any]] = None):
        self.stats: Dict[str, Any] = {
            "total_runs": 0,
            "successful_runs": 0,
            "failed_runs": 0,
            "success_rate": 0.0,
            "avg_duration_ms": 0.0,
            "avg_filter_rate": 0.0,
            "avg_momentum": 0.0,
            "avg_efficiency": 0.0,
            "avg_digest_score": 0.0,
            "total_signals_processed": 0,
            "total_trends_detected": 0,
            "total_opportunities": 0,
            "total_solutions": 0,
        }
        if isinstance(stored, dict):
            for key, value in stored.items():
                if key in self.stats and isinstance(value, (int, float)) and not isinstance(value, bool):
                    self.stats[key] = value

    def update(self, run: PipelineRun) -> None:
        s = self.stats
        s["total_runs"] += 1
        s["avg_duration_ms"] += (run.duration_ms - s["avg_duration_ms"]) / s["total_runs"]

        if run.succeeded:
            s["successful_runs"] += 1
            n = s["successful_runs"]
            perf = run.performance
            for key, value in zip(self.AVERAGES, (perf.filter_rate, perf.momentum,
                                                  perf.efficiency_score, perf.digest_score)):
                s[key] += (value - s[key]) / n
            s["total_signals_processed"] += run.counts.collected
            s["total_trends_detected"] += run.counts.trends_detected
            s["total_opportunities"] += run.counts.opportunities
            s["total_solutions"] += run.counts.solutions
        else:
            s["failed_runs"] += 1

        s["success_rate"] = s["successful_runs"] / s["total_runs"]

    def to_dict(self) -> Dict[str, Any]:
        return {k: round(v, 4) if isinstance(v, float) else v for k, v in self.stats.items()}


# ============================================================
# Orchestrator
# ============================================================

class PipelineOrchestrator:
    """
    Owns one instance of every stage and the run history.

    Components share the filter's rules object, so weights and thresholds
    tuned by the filter are seen by the scorer on the next run.
    """

    SLOW_RUN_MS = 5 * 60 * 1000
    LOW_FILTER_RATE = 0.3
    LOW_EFFICIENCY = 0.6

    def __init__(
        self,
        source: Any,
        store: Optional[HistoryStore] = None,
        settings: Optional[PipelineSettings] = None,
        clock: Callable[[], datetime] = utc_now,
        timer: Callable[[], float] = time.monotonic,
        signal_filter: Optional[SignalFilter] = None,
        scorer: Optional[SignalScorer] = None,
        trend_detector: Optional[TrendDetector] = None,
        synthesizer: Optional[IntelligenceSynthesizer] = None,
        digest_compiler: Optional[DigestCompiler] = None
    ):
        """
        Initialize orchestrator.

        Args:
            source: Object with collect() returning Signals (or signal dicts)
            store: History persistence shared by all components (None = in-memory only)
            settings: Pipeline settings (defaults when omitted)
            clock: Wall clock returning naive UTC
            timer: Monotonic clock for durations and the run deadline
            signal_filter, scorer, trend_detector, synthesizer, digest_compiler:
                Pre-built components (built from settings when omitted)
        """
        self.source = source
        self.store = store
        self.settings = settings or PipelineSettings()
        self.clock = clock
        self.timer = timer

        s = self.settings
        self.signal_filter = signal_filter or SignalFilter(store=store, rule_overrides=s.filter_rules)
        self.scorer = scorer or SignalScorer(rules=self.signal_filter.rules, clock=clock)
        self.trend_detector = trend_detector or TrendDetector(
            store=store, clock=clock, max_history=s.max_trend_history
        )
        self.synthesizer = synthesizer or IntelligenceSynthesizer(
            store=store,
            min_category_signals=s.min_category_signals,
            clock=clock,
            max_history=s.max_intelligence_history
        )
        self.digest_compiler = digest_compiler or DigestCompiler(
            store=store, clock=clock, max_history=s.max_digest_history
        )

        self._run_guard = threading.Lock()
        self._scheduler: Optional[PipelineScheduler] = None
        self._scheduler_lock = threading.Lock()

        self.rejected_count = 0
        self.latest_digest: Optional[Digest] = None
        self.last_run: Optional[PipelineRun] = None
        self.last_successful_run: Optional[PipelineRun] = None
        self.last_failed_run: Optional[PipelineRun] = None

        self.runs: List[Dict[str, Any]] = []
        self.performance = PerformanceTracker()
        self._load_history()

        logger.info(
            f"PipelineOrchestrator initialized: source={getattr(source, 'name', type(source).__name__)}, "
            f"{len(self.runs)} prior runs"
        )

    # ------------------------------------------------------------------ #
    #  History                                                            #
    # ------------------------------------------------------------------ #
    def _load_history(self) -> None:
        if self.store is None:
            return
        stored = self.store.load_history(RUN_HISTORY_KEY)
        if stored is None:
            return
        if not isinstance(stored, dict):
            logger.warning("Stored run history is not an object, starting empty")
            return

        runs = stored.get("runs")
        if isinstance(runs, list):
            self.runs = [r for r in runs if isinstance(r, dict)]
        self.performance = PerformanceTracker(stored.get("performance"))

        for entry in reversed(self.runs):
            try:
                run = PipelineRun.from_dict(entry)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable run record: {e}")
                continue
            if self.last_run is None:
                self.last_run = run
            if run.succeeded and self.last_successful_run is None:
                self.last_successful_run = run
            if not run.succeeded and self.last_failed_run is None:
                self.last_failed_run = run
            if self.last_successful_run and self.last_failed_run:
                break

    def _record_run(self, run: PipelineRun) -> None:
        """Append a run, fold it into the averages and persist. Past entries are never touched."""
        append_capped(self.runs, run.to_dict(), self.settings.max_run_history)
        self.performance.update(run)

        self.last_run = run
        if run.succeeded:
            self.last_successful_run = run
        else:
            self.last_failed_run = run

        if self.store is not None:
            self.store.save_history(RUN_HISTORY_KEY, {
                "runs": self.runs,
                "performance": self.performance.stats,
                "last_updated": run.timestamp.isoformat()
            })

        if self.settings.run_log_file:
            append_jsonl(self.settings.run_log_file, "pipeline_run", run.to_dict())

    # ------------------------------------------------------------------ #
    #  Running                                                            #
    # ------------------------------------------------------------------ #
    @property
    def is_running(self) -> bool:
        return self._run_guard.locked()

    @staticmethod
    def _new_run_id(timestamp: datetime) -> str:
        return f"run-{int(timestamp.timestamp() * 1000)}-{uuid.uuid4().hex[:6]}"

    def _run_stage(self, stage: str, started: float, func: Callable, *args: Any,
                   check_deadline: bool = True) -> Any:
        """
        Run one stage inside the error boundary, then check the run deadline.

        Persistence runs with check_deadline=False; a run whose state has
        been written is complete.

        Raises:
            StageError: The stage raised
            PipelineTimeoutError: The run is past its deadline after this stage
        """
        logger.debug(f"Stage '{stage}' starting")
        try:
            result = func(*args)
        except Exception as e:
            logger.error(f"Stage '{stage}' failed: {type(e).__name__}: {e}", exc_info=True)
            raise StageError(stage, e) from e

        if not check_deadline:
            return result

        elapsed = self.timer() - started
        limit = self.settings.run_timeout_seconds
        if elapsed > limit:
            raise PipelineTimeoutError(stage, elapsed, limit)
        return result

    def _collect(self) -> List[Signal]:
        batch = self.source.collect()
        if batch is None:
            return []
        return [
            item if isinstance(item, Signal) else Signal.from_dict(item, fallback_id=f"signal-{index}")
            for index, item in enumerate(batch)
        ]

    def _persist(self, filter_result: FilterBatchResult, trend_report: TrendReport,
                 synthesis: SynthesisResult, digest: Digest) -> None:
        # Write failures are logged by the store and do not fail the run
        results = {
            "filter": self.signal_filter.save_state(),
            "trends": self.trend_detector.record(trend_report),
            "intelligence": self.synthesizer.record(synthesis),
            "digest": self.digest_compiler.record(digest),
        }
        failed = [name for name, ok in results.items() if not ok]
        if failed:
            logger.warning(f"Run continued with unsaved state: {failed}")

        if self.settings.auto_tune and filter_result.metrics.total_signals > 0:
            self.signal_filter.optimize_thresholds()

    def run_pipeline(self) -> RunResult:
        """
        Run the full pipeline once.

        Returns:
            RunResult with status "completed", "failed" or "rejected".
            Never raises for stage failures or overlap.
        """
        if not self._run_guard.acquire(blocking=False):
            self.rejected_count += 1
            logger.warning("Pipeline run rejected: another run is in progress")
            return RunResult(status=STATUS_REJECTED, error="A pipeline run is already in progress")

        try:
            return self._execute()
        finally:
            self._run_guard.release()

    def _execute(self) -> RunResult:
        timestamp = self.clock()
        run_id = self._new_run_id(timestamp)
        started = self.timer()
        counts: Dict[str, int] = {}

        logger.info(f"Pipeline run {run_id} starting")

        filter_result = trend_report = synthesis = None
        filter_state = self.signal_filter.snapshot()
        try:
            signals = self._run_stage("collect", started, self._collect)
            counts["collected"] = len(signals)

            scored = self._run_stage("score", started, self.scorer.score_batch, signals)

            filter_result = self._run_stage("filter", started, self.signal_filter.filter_batch, scored)
            counts["filtered"] = len(filter_result.passed)

            trend_report = self._run_stage("detect", started, self.trend_detector.detect, filter_result.passed)
            counts["trends_detected"] = len(trend_report.patterns)

            synthesis = self._run_stage("synthesize", started, self.synthesizer.synthesize, trend_report)
            counts["opportunities"] = len(synthesis.opportunities)
            counts["solutions"] = len(synthesis.solutions)

            digest = self._run_stage(
                "compile", started, self.digest_compiler.compile,
                synthesis, trend_report, filter_result.metrics
            )

            self._run_stage(
                "persist", started, self._persist,
                filter_result, trend_report, synthesis, digest,
                check_deadline=False
            )

        except (StageError, PipelineTimeoutError) as e:
            # A failed run leaves the filter as it was before the batch
            self.signal_filter.restore(filter_state)
            duration_ms = (self.timer() - started) * 1000
            run = PipelineRun(
                run_id=run_id,
                timestamp=timestamp,
                duration_ms=duration_ms,
                status=STATUS_FAILED,
                counts=RunCounts(**counts),
                failed_stage=e.stage,
                error=str(e)
            )
            self._record_run(run)
            logger.error(f"Pipeline run {run_id} failed after {duration_ms:.0f}ms: {e}")
            return RunResult(
                status=STATUS_FAILED,
                run=run,
                error=str(e),
                filter_result=filter_result,
                trend_report=trend_report,
                synthesis=synthesis
            )

        filter_rate = filter_result.metrics.filter_rate
        digest_score = digest.metrics.digest_score
        run = PipelineRun(
            run_id=run_id,
            timestamp=timestamp,
            duration_ms=(self.timer() - started) * 1000,
            status=STATUS_COMPLETED,
            counts=RunCounts(**counts),
            performance=RunPerformance(
                filter_rate=filter_rate,
                momentum=trend_report.momentum.overall,
                efficiency_score=efficiency_score(
                    filter_rate,
                    counts["trends_detected"],
                    counts["opportunities"],
                    counts["solutions"],
                    digest_score
                ),
                digest_score=digest_score
            ),
            digest_id=digest.digest_id
        )
        self._record_run(run)
        self.latest_digest = digest

        logger.info(
            f"Pipeline run {run_id} completed in {run.duration_ms:.0f}ms: "
            f"{run.counts.collected} collected, {run.counts.filtered} passed, "
            f"{run.counts.trends_detected} trends, {run.counts.opportunities} opportunities"
        )
        return RunResult(
            status=STATUS_COMPLETED,
            run=run,
            digest=digest,
            filter_result=filter_result,
            trend_report=trend_report,
            synthesis=synthesis
        )

    # ------------------------------------------------------------------ #
    #  Scheduling                                                         #
    # ------------------------------------------------------------------ #
    def _scheduled_run(self) -> None:
        result = self.run_pipeline()
        if result.rejected:
            logger.info("Scheduled run skipped: previous run still in progress")

    @property
    def scheduler_active(self) -> bool:
        scheduler = self._scheduler
        return scheduler is not None and scheduler.is_active

    def start(self, interval_seconds: Optional[float] = None) -> bool:
        """
        Run now and then every interval_seconds on a background thread.

        Returns:
            False if a schedule is already active
        """
        interval = interval_seconds or self.settings.schedule_interval_seconds
        with self._scheduler_lock:
            if self.scheduler_active:
                logger.warning("Pipeline schedule already active")
                return False
            self._scheduler = PipelineScheduler(self._scheduled_run, interval, name="signal-pipeline")
            return self._scheduler.start()

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Stop the schedule. No new run starts after this returns; an in-flight
        run is awaited for at most timeout seconds.

        Returns:
            True if the scheduler thread has exited (or none was running)
        """
        timeout = self.settings.stop_timeout_seconds if timeout is None else timeout
        with self._scheduler_lock:
            scheduler = self._scheduler
        if scheduler is None:
            return True
        return scheduler.stop(timeout=timeout)

    def schedule_continuous(self, interval_seconds: Optional[float] = None) -> PipelineScheduler:
        """Start the schedule and return the scheduler handle."""
        self.start(interval_seconds)
        return self._scheduler

    # ------------------------------------------------------------------ #
    #  Control surface                                                    #
    # ------------------------------------------------------------------ #
    def status(self) -> Dict[str, Any]:
        return {
            "is_running": self.is_running,
            "run_count": self.performance.stats["total_runs"],
            "rejected_count": self.rejected_count,
            "last_run": self.last_run.to_dict() if self.last_run else None,
            "last_successful_run": self.last_successful_run.to_dict() if self.last_successful_run else None,
            "last_failed_run": self.last_failed_run.to_dict() if self.last_failed_run else None,
            "performance_summary": self.performance.to_dict(),
            "scheduler_active": self.scheduler_active,
        }

    def get_run_history(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Run records, oldest first; limit keeps the most recent."""
        runs = list(self.runs)
        if limit is not None and limit >= 0:
            runs = runs[-limit:] if limit else []
        return runs

    def get_latest_digest(self) -> Optional[Digest]:
        """Latest digest from this process, else the last stored one."""
        if self.latest_digest is not None:
            return self.latest_digest
        if self.last_successful_run is None or not self.last_successful_run.digest_id:
            return None

        stored = self.digest_compiler.load_digest(self.last_successful_run.digest_id)
        if stored is None:
            return None
        try:
            return Digest.from_dict(stored)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Stored digest {self.last_successful_run.digest_id} is unreadable: {e}")
            return None

    def optimize(self) -> Dict[str, Dict[str, float]]:
        """
        Retune filter thresholds on demand.

        Raises:
            PipelineError: If a run is in progress
        """
        if not self._run_guard.acquire(blocking=False):
            raise PipelineError("Cannot optimize filter thresholds while a run is in progress")
        try:
            return self.signal_filter.optimize_thresholds()
        finally:
            self._run_guard.release()

    def system_recommendations(self) -> List[Insight]:
        """Operational recommendations from the running averages."""
        stats = self.performance.stats
        if stats["successful_runs"] == 0:
            return []

        recommendations = []
        if stats["avg_duration_ms"] > self.SLOW_RUN_MS:
            recommendations.append(Insight(
                insight_type="performance",
                title="Slow pipeline runs",
                description=(
                    f"Average run takes {stats['avg_duration_ms'] / 1000:.1f}s - "
                    f"consider smaller batches or a longer interval"
                ),
                priority="medium"
            ))
        if stats["avg_filter_rate"] < self.LOW_FILTER_RATE:
            recommendations.append(Insight(
                insight_type="filtering",
                title="Low filter pass rate",
                description=(
                    f"Only {stats['avg_filter_rate'] * 100:.1f}% of signals pass - "
                    f"review filter thresholds or signal sources"
                ),
                priority="high"
            ))
        if stats["avg_efficiency"] < self.LOW_EFFICIENCY:
            recommendations.append(Insight(
                insight_type="efficiency",
                title="Low pipeline efficiency",
                description=f"Average efficiency is {stats['avg_efficiency'] * 100:.1f}%",
                priority="medium"
            ))
        return recommendations

    def get_filter_performance(self) -> Dict[str, Any]:
        performance = self.signal_filter.get_performance()
        performance["insights"] = [i.to_dict() for i in self.signal_filter.generate_insights()]
        return performance

    def get_trend_summary(self) -> Dict[str, Any]:
        return self.trend_detector.get_trend_summary()

    def get_intelligence_summary(self) -> Dict[str, Any]:
        return self.synthesizer.get_summary()

    def get_digest_summary(self) -> Dict[str, Any]:
        return self.digest_compiler.get_digest_summary()

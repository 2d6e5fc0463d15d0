"""
CLI Command Handlers

Builders and printers shared by the CLI commands.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

# Add project root to path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from integrations.history_store import JsonHistoryStore
from integrations.signal_source import build_source
from pipeline.config import PipelineSettings, load_settings
from pipeline.digest_compiler import Digest
from pipeline.orchestrator import PipelineOrchestrator, RunResult

logger = logging.getLogger(__name__)


def build_orchestrator(
    settings: Optional[PipelineSettings] = None,
    config_path: Optional[str] = None,
    signal_file: Optional[str] = None,
    signal_url: Optional[str] = None
) -> PipelineOrchestrator:
    """
    Build an orchestrator from settings with a JSON history store.

    Args:
        settings: Loaded settings (read from config_path when omitted)
        config_path: Settings file
        signal_file: Overrides the configured signal file
        signal_url: Overrides the configured signal URL

    Raises:
        SettingsError: If the settings are invalid
    """
    settings = settings or load_settings(config_path)
    if signal_file:
        settings.signal_file = signal_file
    if signal_url:
        settings.signal_url = signal_url

    source = build_source(
        signal_file=settings.signal_file,
        signal_url=settings.signal_url,
        timeout=settings.http_timeout_seconds
    )
    store = JsonHistoryStore(settings.store_dir)
    logger.info(f"Building orchestrator with store at {settings.store_dir}")
    return PipelineOrchestrator(source=source, store=store, settings=settings)


def print_run_result(result: RunResult) -> None:
    if result.rejected:
        print(f"Run rejected: {result.error}")
        return

    run = result.run
    print(f"\nRun {run.run_id}: {run.status.upper()}")
    print(f"{'='*60}")
    print(f"Duration:        {run.duration_ms:.0f} ms")
    print(f"Collected:       {run.counts.collected}")
    print(f"Passed filter:   {run.counts.filtered}")
    print(f"Trends:          {run.counts.trends_detected}")
    print(f"Opportunities:   {run.counts.opportunities}")
    print(f"Solutions:       {run.counts.solutions}")

    if run.status == "failed":
        print(f"Failed stage:    {run.failed_stage}")
        print(f"Error:           {run.error}")
        return

    perf = run.performance
    print(f"Filter rate:     {perf.filter_rate:.1%}")
    print(f"Momentum:        {perf.momentum:.2f}")
    print(f"Efficiency:      {perf.efficiency_score:.2f}")
    print(f"Digest score:    {perf.digest_score:.2f}")
    print(f"Digest:          {run.digest_id}")


def show_status(orchestrator: PipelineOrchestrator, verbose: bool = True) -> Dict[str, Any]:
    """Show operational status and running averages."""
    status = orchestrator.status()
    if not verbose:
        return status

    perf = status["performance_summary"]
    print("\nPipeline Status:")
    print("="*50)
    print(f"Running:              {status['is_running']}")
    print(f"Scheduler active:     {status['scheduler_active']}")
    print(f"Total runs:           {perf['total_runs']}")
    print(f"Successful / failed:  {perf['successful_runs']} / {perf['failed_runs']}")
    print(f"Success rate:         {perf['success_rate']:.1%}")
    print(f"Avg duration:         {perf['avg_duration_ms']:.0f} ms")
    print(f"Avg filter rate:      {perf['avg_filter_rate']:.1%}")
    print(f"Avg efficiency:       {perf['avg_efficiency']:.2f}")
    print(f"Avg digest score:     {perf['avg_digest_score']:.2f}")

    for label, key in (("Last run", "last_run"),
                       ("Last successful", "last_successful_run"),
                       ("Last failed", "last_failed_run")):
        run = status[key]
        if run:
            print(f"{label + ':':<22}{run['run_id']} at {run['timestamp']} ({run['status']})")

    recommendations = orchestrator.system_recommendations()
    if recommendations:
        print("\nRecommendations:")
        for rec in recommendations:
            print(f"  [{rec.priority}] {rec.title}: {rec.description}")
    return status


def show_history(orchestrator: PipelineOrchestrator, limit: int = 10,
                 verbose: bool = True) -> List[Dict[str, Any]]:
    """Show the most recent run records."""
    runs = orchestrator.get_run_history(limit)
    if not verbose:
        return runs

    if not runs:
        print("No runs recorded.")
        return runs

    print(f"\nRecent Runs ({len(runs)}):")
    print(f"{'='*78}")
    print(f"{'Run ID':<28} {'Status':<10} {'Signals':>8} {'Passed':>7} {'Opps':>5} {'ms':>10}")
    print(f"{'-'*78}")
    for run in runs:
        counts = run.get("counts", {})
        print(
            f"{run['run_id']:<28} {run['status']:<10} {counts.get('collected', 0):>8} "
            f"{counts.get('filtered', 0):>7} {counts.get('opportunities', 0):>5} "
            f"{run.get('duration_ms', 0.0):>10.0f}"
        )
    print()
    return runs


def show_digest(orchestrator: PipelineOrchestrator, verbose: bool = True) -> Optional[Digest]:
    """Print the latest digest as markdown."""
    digest = orchestrator.get_latest_digest()
    if digest is None:
        logger.warning("No digest available")
        if verbose:
            print("No digest available. Run the pipeline first.")
        return None

    if verbose:
        print(digest.render_markdown())
    return digest


def show_trends(orchestrator: PipelineOrchestrator, verbose: bool = True) -> Dict[str, Any]:
    """Show trend history summary."""
    summary = orchestrator.get_trend_summary()
    if not verbose:
        return summary

    print("\nTrend Summary:")
    print("="*50)
    print(f"Total trends:     {summary['total_trends']}")
    print(f"Active alerts:    {summary['active_alerts']}")
    print(f"Last updated:     {summary['last_updated']}")
    print(f"Top categories:   {', '.join(summary['top_categories']) or '-'}")
    print(f"Top keywords:     {', '.join(summary['top_keywords']) or '-'}")
    return summary

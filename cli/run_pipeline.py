#!/usr/bin/env python3
"""
Signal Intelligence CLI

Command-line interface for running the signal intelligence pipeline.

Usage:
    python cli/run_pipeline.py run --signals config/sample_signals.json
    python cli/run_pipeline.py schedule --interval 600
    python cli/run_pipeline.py status
    python cli/run_pipeline.py history --limit 20
    python cli/run_pipeline.py show-digest
    python cli/run_pipeline.py optimize
    python cli/run_pipeline.py trends
"""

import argparse
import logging
import sys
import threading
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from utils.json_utils import dump_json
from utils.logging_utils import setup_logging
from pipeline.errors import PipelineError, SettingsError
from cli.commands import (
    build_orchestrator,
    print_run_result,
    show_status,
    show_history,
    show_digest,
    show_trends
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_REJECTED = 2
EXIT_CONFIG = 3


def _orchestrator(args):
    return build_orchestrator(
        config_path=args.config,
        signal_file=getattr(args, "signals", None),
        signal_url=getattr(args, "url", None)
    )


def cmd_run(args):
    """Run the pipeline once."""
    logger.info("Command: run")
    orchestrator = _orchestrator(args)
    result = orchestrator.run_pipeline()
    print_run_result(result)

    if args.output and result.digest is not None:
        with open(args.output, 'w') as f:
            dump_json(result.digest.to_dict(), f)
        print(f"\nDigest saved to: {args.output}")
        logger.info(f"Digest saved to: {args.output}")

    if args.markdown and result.digest is not None:
        with open(args.markdown, 'w', encoding='utf-8') as f:
            f.write(result.digest.render_markdown())
        print(f"Markdown saved to: {args.markdown}")

    if result.rejected:
        return EXIT_REJECTED
    return EXIT_OK if result.completed else EXIT_FAILED


def cmd_schedule(args):
    """Run continuously until interrupted."""
    logger.info(f"Command: schedule --interval {args.interval}")
    orchestrator = _orchestrator(args)
    interval = args.interval or orchestrator.settings.schedule_interval_seconds

    orchestrator.start(interval)
    print(f"Pipeline scheduled every {interval:.0f}s. Press Ctrl+C to stop.")

    try:
        # Block the main thread; the schedule runs on a daemon thread
        threading.Event().wait()
    except KeyboardInterrupt:
        print("\nStopping schedule...")
    finally:
        stopped = orchestrator.stop()
        if not stopped:
            print("Warning: in-flight run did not finish before the stop timeout")

    show_status(orchestrator)
    return EXIT_OK


def cmd_status(args):
    """Show pipeline status."""
    logger.info("Command: status")
    status = show_status(_orchestrator(args))
    if args.output:
        with open(args.output, 'w') as f:
            dump_json(status, f)
    return EXIT_OK


def cmd_history(args):
    """Show run history."""
    logger.info(f"Command: history --limit {args.limit}")
    runs = show_history(_orchestrator(args), limit=args.limit)
    if args.output:
        with open(args.output, 'w') as f:
            dump_json(runs, f)
    return EXIT_OK


def cmd_show_digest(args):
    """Print the latest digest."""
    logger.info("Command: show-digest")
    digest = show_digest(_orchestrator(args))
    if digest is None:
        return EXIT_FAILED
    if args.output:
        with open(args.output, 'w') as f:
            dump_json(digest.to_dict(), f)
        print(f"\nSaved to: {args.output}")
    return EXIT_OK


def cmd_optimize(args):
    """Retune filter thresholds."""
    logger.info("Command: optimize")
    orchestrator = _orchestrator(args)
    changes = orchestrator.optimize()

    if not changes:
        print("Filter thresholds unchanged.")
    else:
        print("\nFilter threshold changes:")
        for reason, change in changes.items():
            print(f"  {reason:<10} {change['old']:.4f} -> {change['new']:.4f}")

    thresholds = orchestrator.signal_filter.rules.thresholds()
    print("\nCurrent thresholds:")
    for reason, value in thresholds.items():
        print(f"  {reason:<10} {value:.4f}")
    return EXIT_OK


def cmd_trends(args):
    """Show trend history summary."""
    logger.info("Command: trends")
    summary = show_trends(_orchestrator(args))
    if args.output:
        with open(args.output, 'w') as f:
            dump_json(summary, f)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Signal Intelligence Pipeline CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python cli/run_pipeline.py run --signals config/sample_signals.json
  python cli/run_pipeline.py run --url https://example.com/signals.json -o digest.json
  python cli/run_pipeline.py schedule --interval 600
  python cli/run_pipeline.py history --limit 20
  python cli/run_pipeline.py show-digest
        """
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )
    parser.add_argument(
        "-c", "--config",
        help="Pipeline settings file (default: config/pipeline.json)"
    )
    parser.add_argument(
        "--log-file",
        help="Also write logs to this file"
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # run
    run_parser = subparsers.add_parser("run", help="Run the pipeline once")
    run_parser.add_argument("--signals", "-s", help="JSON file with the signal batch")
    run_parser.add_argument("--url", "-u", help="HTTP endpoint returning the signal batch")
    run_parser.add_argument("-o", "--output", help="Output file for the digest (JSON)")
    run_parser.add_argument("--markdown", help="Output file for the digest (markdown)")
    run_parser.set_defaults(func=cmd_run)

    # schedule
    schedule_parser = subparsers.add_parser("schedule", help="Run continuously on an interval")
    schedule_parser.add_argument("--signals", "-s", help="JSON file with the signal batch")
    schedule_parser.add_argument("--url", "-u", help="HTTP endpoint returning the signal batch")
    schedule_parser.add_argument(
        "--interval", "-i",
        type=float,
        help="Seconds between runs (default: from settings)"
    )
    schedule_parser.set_defaults(func=cmd_schedule)

    # status
    status_parser = subparsers.add_parser("status", help="Show pipeline status")
    status_parser.add_argument("-o", "--output", help="Output file (JSON)")
    status_parser.set_defaults(func=cmd_status)

    # history
    history_parser = subparsers.add_parser("history", help="Show run history")
    history_parser.add_argument("--limit", "-n", type=int, default=10, help="Number of runs (default: 10)")
    history_parser.add_argument("-o", "--output", help="Output file (JSON)")
    history_parser.set_defaults(func=cmd_history)

    # show-digest
    digest_parser = subparsers.add_parser("show-digest", help="Print the latest digest")
    digest_parser.add_argument("-o", "--output", help="Output file (JSON)")
    digest_parser.set_defaults(func=cmd_show_digest)

    # optimize
    optimize_parser = subparsers.add_parser("optimize", help="Retune filter thresholds")
    optimize_parser.set_defaults(func=cmd_optimize)

    # trends
    trends_parser = subparsers.add_parser("trends", help="Show trend history summary")
    trends_parser.add_argument("-o", "--output", help="Output file (JSON)")
    trends_parser.set_defaults(func=cmd_trends)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_OK

    setup_logging(args.verbose, log_file=args.log_file)

    try:
        return args.func(args)
    except SettingsError as e:
        print(f"Configuration error: {e}")
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG
    except PipelineError as e:
        print(f"Error: {e}")
        logger.error(f"Error: {e}")
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())

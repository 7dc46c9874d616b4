"""Command-line interface for TrendArc.

Runs the comparison engine over trend series stored in CSV or JSON files.
A series file holds a ``date`` column plus one column per term.

Usage:
    trendarc score series.csv iPhone --other Android
    trendarc compare series.csv iPhone Android --category tech
    trendarc peaks series.csv iPhone Android --offline
    trendarc verify Apple --title "Washington apple harvest begins" --term-a iPhone --term-b Android
    trendarc history iphone-vs-android
"""

import argparse
import asyncio
import json
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict
from datetime import date as date_type
from pathlib import Path
from typing import Any, Optional

import pandas as pd

from trendarc import __version__
from trendarc.clients.gdelt import GdeltEventSearch
from trendarc.config import settings
from trendarc.engine.scoring import calculate_trend_arc_score, series_source_metrics
from trendarc.peaks.detector import detect_peaks_with_events
from trendarc.peaks.events import CandidateEvent, NullEventSearch
from trendarc.pipeline.comparison import ComparisonPipeline, ComparisonRequest, ComparisonResult
from trendarc.snapshots.store import SnapshotKey, SnapshotStore, get_snapshot_history
from trendarc.verification.context import verify_event_with_context
from trendarc.verification.models import ComparisonContext
from trendarc.verification.verifiers import build_verifier

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=1)


def create_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser.

    Returns:
        Configured ArgumentParser with all commands and arguments.
    """
    parser = argparse.ArgumentParser(
        prog="trendarc",
        description="TrendArc: multi-source comparison scoring engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  trendarc score series.csv iPhone --other Android
  trendarc compare series.csv iPhone Android --format json
  trendarc peaks series.json iPhone Android --offline
  trendarc verify Apple --title "Apple harvest begins" --term-a iPhone --term-b Android
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    format_args = argparse.ArgumentParser(add_help=False)
    format_args.add_argument(
        "--format",
        type=str,
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )

    # score command
    score_parser = subparsers.add_parser(
        "score",
        parents=[format_args],
        help="Score one term from its trend series",
    )
    score_parser.add_argument("series", type=Path, help="CSV or JSON series file")
    score_parser.add_argument("term", type=str, help="Term to score")
    score_parser.add_argument(
        "--other",
        type=str,
        default=None,
        help="Competing term, used for the lead percentage",
    )
    score_parser.add_argument("--category", type=str, default="general", help="Comparison category")

    # compare command
    compare_parser = subparsers.add_parser(
        "compare",
        parents=[format_args],
        help="Compare two terms: scores, verdict, metrics and snapshot",
    )
    compare_parser.add_argument("series", type=Path, help="CSV or JSON series file")
    compare_parser.add_argument("term_a", type=str, help="First term")
    compare_parser.add_argument("term_b", type=str, help="Second term")
    compare_parser.add_argument("--category", type=str, default=None, help="Category (detected if omitted)")
    compare_parser.add_argument("--timeframe", type=str, default="12m", help="Timeframe label (default: 12m)")
    compare_parser.add_argument("--geo", type=str, default="", help="Region code (default: worldwide)")
    compare_parser.add_argument("--user", type=str, default="system", help="Snapshot owner")
    compare_parser.add_argument("--db", type=Path, default=None, help="Snapshot database path")
    compare_parser.add_argument(
        "--no-snapshot",
        action="store_true",
        help="Do not read or write snapshot history",
    )

    # peaks command
    peaks_parser = subparsers.add_parser(
        "peaks",
        parents=[format_args],
        help="Detect peaks and look up explanatory news events",
    )
    peaks_parser.add_argument("series", type=Path, help="CSV or JSON series file")
    peaks_parser.add_argument("terms", nargs="+", help="Terms to scan")
    peaks_parser.add_argument("--min-prominence", type=float, default=None, help="Points above the mean")
    peaks_parser.add_argument("--window-days", type=int, default=None, help="± days searched for events")
    peaks_parser.add_argument("--offline", action="store_true", help="Skip the news lookup")

    # verify command
    verify_parser = subparsers.add_parser(
        "verify",
        parents=[format_args],
        help="Check which sense of a keyword an event uses",
    )
    verify_parser.add_argument("keyword", type=str, help="Possibly ambiguous keyword")
    verify_parser.add_argument("--title", type=str, required=True, help="Event headline")
    verify_parser.add_argument("--description", type=str, default="", help="Event description")
    verify_parser.add_argument("--event-date", type=str, default=None, help="Event date (default: peak date)")
    verify_parser.add_argument("--peak-date", type=str, default=None, help="Peak date (default: today)")
    verify_parser.add_argument("--term-a", type=str, required=True, help="First compared term")
    verify_parser.add_argument("--term-b", type=str, required=True, help="Second compared term")
    verify_parser.add_argument("--category", type=str, default=None, help="Comparison category")

    # history command
    history_parser = subparsers.add_parser(
        "history",
        parents=[format_args],
        help="Show stored snapshots for a comparison",
    )
    history_parser.add_argument("slug", type=str, help="Comparison slug, e.g. iphone-vs-android")
    history_parser.add_argument("--user", type=str, default="system", help="Snapshot owner")
    history_parser.add_argument("--timeframe", type=str, default="12m", help="Timeframe label")
    history_parser.add_argument("--geo", type=str, default="", help="Region code")
    history_parser.add_argument("--limit", type=int, default=20, help="Maximum rows (default: 20)")
    history_parser.add_argument("--db", type=Path, default=None, help="Snapshot database path")

    # version command
    subparsers.add_parser(
        "version",
        help="Show version information",
    )

    return parser


def _run_async(coro):
    """Run an async coroutine from synchronous CLI context.

    Spins up a new event loop in a dedicated thread to avoid conflicts
    with any existing event loop.
    """
    def _target():
        loop = asyncio.new_event_loop()
        try:
            return loop.run_until_complete(coro)
        finally:
            loop.close()

    future = _executor.submit(_target)
    return future.result()


def load_series(path: Path) -> pd.DataFrame:
    """Read a trend series from CSV or JSON.

    JSON may be a list of records or an object with a ``series`` list.

    Raises:
        ValueError: If the file type is not supported
    """
    suffix = path.suffix.lower()
    if suffix == ".csv":
        return pd.read_csv(path)
    if suffix == ".json":
        payload = json.loads(path.read_text())
        records = payload.get("series", []) if isinstance(payload, dict) else payload
        return pd.DataFrame(records)
    raise ValueError(f"Unsupported series file type: {path.suffix or path.name}")


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _result_to_dict(result: ComparisonResult) -> dict[str, Any]:
    verdict = result.verdict
    metrics = result.metrics
    return {
        "term_a": result.request.term_a,
        "term_b": result.request.term_b,
        "category": result.category.value,
        "score_a": asdict(result.score_a),
        "score_b": asdict(result.score_b),
        "verdict": {
            **verdict.summary(),
            "headline": verdict.headline,
            "recommendation": verdict.recommendation,
            "evidence": verdict.evidence,
        },
        "metrics": asdict(metrics),
        "snapshot_id": result.snapshot.id if result.snapshot else None,
    }


def _handle_errors(name: str, handler):
    """Map a command's exceptions to exit codes."""
    def wrapped(args: argparse.Namespace) -> int:
        try:
            return handler(args)
        except KeyboardInterrupt:
            logger.warning("Interrupted by user")
            return 130
        except Exception as e:
            logger.error("%s failed: %s", name, e, exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return 1
    return wrapped


def _score(args: argparse.Namespace) -> int:
    series = load_series(args.series)
    metrics = series_source_metrics(series, args.term, args.other or "")
    if not args.other and metrics.google_trends is not None:
        metrics.google_trends.lead_percentage = 50
    score = calculate_trend_arc_score(metrics, args.category)

    if args.format == "json":
        _print_json({"term": args.term, **asdict(score)})
    else:
        print(f"{args.term}: {score.overall}/100 (confidence {score.confidence}%)")
        print(score.explanation)
    return 0


def _compare(args: argparse.Namespace) -> int:
    series = load_series(args.series)
    store = None if args.no_snapshot else SnapshotStore(args.db)
    pipeline = ComparisonPipeline(snapshot_store=store)
    request = ComparisonRequest(
        term_a=args.term_a,
        term_b=args.term_b,
        series=series,
        timeframe=args.timeframe,
        geo=args.geo,
        user_id=args.user,
        category=args.category,
    )
    result = _run_async(pipeline.run(request))

    if args.format == "json":
        _print_json(_result_to_dict(result))
        return 0

    verdict = result.verdict
    metrics = result.metrics
    print(verdict.headline)
    print(verdict.recommendation)
    for line in verdict.evidence:
        print(f"  - {line}")
    print(
        f"Margin {metrics.margin_points:.0f} pts · confidence {metrics.confidence:.0f}% · "
        f"stability {metrics.stability.value} · agreement {metrics.agreement_index:.0f}%"
    )
    for flag in metrics.risk_flags:
        print(f"  ! {flag}")
    return 0


async def _detect(args: argparse.Namespace, series: pd.DataFrame):
    kwargs = {"min_prominence": args.min_prominence, "window_days": args.window_days}
    if args.offline:
        return await detect_peaks_with_events(series, args.terms, NullEventSearch(), **kwargs)
    async with GdeltEventSearch() as event_search:
        return await detect_peaks_with_events(series, args.terms, event_search, **kwargs)


def _peaks(args: argparse.Namespace) -> int:
    series = load_series(args.series)
    peaks = _run_async(_detect(args, series))

    if args.format == "json":
        _print_json([asdict(peak) for peak in peaks])
        return 0

    if not peaks:
        print("No significant peaks found.")
    for peak in peaks:
        event = peak.event.title if peak.event else "no matching event"
        print(f"{peak.date}  {peak.term:<20} {peak.value:>5.0f}  [{peak.confidence}%] {event}")
    return 0


def _verify(args: argparse.Namespace) -> int:
    peak_date = date_type.fromisoformat(args.peak_date) if args.peak_date else date_type.today()
    event = CandidateEvent(
        date=args.event_date or peak_date.isoformat(),
        title=args.title,
        description=args.description,
    )
    context = ComparisonContext(args.term_a, args.term_b, args.category)
    result = _run_async(
        verify_event_with_context(event, args.keyword, context, peak_date, build_verifier(settings))
    )

    if args.format == "json":
        _print_json(asdict(result))
    else:
        match = "YES" if result.context_match else "NO"
        print(f"{args.keyword} → {result.interpretation} (relevance {result.relevance_score}, match {match})")
        print(result.reasoning)
    return 0


def _history(args: argparse.Namespace) -> int:
    store = SnapshotStore(args.db)
    key = SnapshotKey(user_id=args.user, slug=args.slug, timeframe=args.timeframe, geo=args.geo)
    snapshots = get_snapshot_history(store, key, limit=args.limit)

    if args.format == "json":
        _print_json([asdict(snapshot) for snapshot in snapshots])
        return 0

    if not snapshots:
        print(f"No snapshots for {args.slug}.")
    for snapshot in snapshots:
        print(
            f"{snapshot.computed_at:%Y-%m-%d %H:%M}  {snapshot.winner:<20} "
            f"margin {snapshot.margin_points:>4.0f}  confidence {snapshot.confidence:>3.0f}%"
        )
    return 0


cmd_score = _handle_errors("Score", _score)
cmd_compare = _handle_errors("Comparison", _compare)
cmd_peaks = _handle_errors("Peak detection", _peaks)
cmd_verify = _handle_errors("Verification", _verify)
cmd_history = _handle_errors("History", _history)


def cmd_version(args: argparse.Namespace) -> int:
    """Execute the version command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    print(f"TrendArc v{__version__}")
    print("Multi-source comparison scoring engine")
    return 0


_COMMANDS = {
    "score": cmd_score,
    "compare": cmd_compare,
    "peaks": cmd_peaks,
    "verify": cmd_verify,
    "history": cmd_history,
    "version": cmd_version,
}


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    parser = create_parser()
    args = parser.parse_args(argv)

    handler = _COMMANDS.get(args.command)
    if handler is None:
        # No command specified
        parser.print_help()
        return 0
    return handler(args)


def cli_entry() -> None:
    """Console script entry point for setuptools."""
    sys.exit(main())


if __name__ == "__main__":
    cli_entry()

"""
Command-line viewer for wheel inspection reports.

Loads a bulk snapshot (file or backend), optionally replays a JSONL log of
live events on top of it, and prints the aggregated views.

Examples:
    python -m src.cli summary --snapshot reports.json
    python -m src.cli trains --snapshot reports.json --events events.jsonl
    python -m src.cli wheels --snapshot reports.json --train 5 --date 2024-05-01 --compartment 2
    python -m src.cli search "train 5" --snapshot reports.json --sort status
    python -m src.cli search "" --snapshot reports.json --flawed --condition BAD
    python -m src.cli fetch --output reports.json
"""

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional

from src.aggregate.hierarchy import NOT_LOADED, CompartmentNode, LatestSummary, TrainDayNode, WheelEntry, day_of
from src.aggregate.queries import SORT_KEYS, filter_by_condition, filter_flawed
from src.config.settings import get_settings, load_engine_config
from src.derive.rule_engine import ConditionLabel, derive_report
from src.engine import ReportEngine
from src.ingest.base_fetcher import FetchError
from src.ingest.fetch_reports import ReportsFetcher
from src.ingest.records import MalformedEventError, report_to_record
from src.ingest.store import InvalidStateError
from src.logging_config import configure_logging

logger = logging.getLogger(__name__)


class CLIError(Exception):
    """User-facing CLI failure."""
    pass


def load_snapshot(path: Path) -> List[Dict[str, Any]]:
    """Read a bulk snapshot file: a JSON list or {"data": [...]}."""
    with open(path) as f:
        payload = json.load(f)
    if isinstance(payload, dict) and "data" in payload:
        payload = payload["data"]
    if not isinstance(payload, list):
        raise CLIError(f"{path}: expected a list of reports")
    return payload


def replay_events(engine: ReportEngine, path: Path) -> int:
    """Apply a JSONL event log in file order. Returns the number rejected."""
    rejected = 0
    with open(path) as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                engine.apply_message(line)
            except MalformedEventError as e:
                rejected += 1
                logger.warning(f"{path}:{line_no}: rejected event: {e}")
    return rejected


def build_engine(args: argparse.Namespace) -> ReportEngine:
    engine = ReportEngine(args.settings)
    if args.fetch:
        records = ReportsFetcher(args.settings).fetch_records()
    elif args.snapshot:
        records = load_snapshot(Path(args.snapshot))
    else:
        raise CLIError("one of --snapshot or --fetch is required")
    engine.load_initial(records)
    if args.events:
        rejected = replay_events(engine, Path(args.events))
        if rejected:
            print(f"Warning: {rejected} event(s) rejected", file=sys.stderr)
    return engine


def parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date '{value}', expected YYYY-MM-DD") from None


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def _flag(needs_attention: bool) -> str:
    return "!" if needs_attention else " "


def wheel_to_dict(entry: WheelEntry) -> Dict[str, Any]:
    return {
        **report_to_record(entry.report),
        "wheelNumber": entry.wheel_number,
        "condition": entry.derived.condition_label.value,
        "surface_status": entry.derived.surface_status,
        "recommendation": entry.derived.recommendation,
    }


def compartment_to_dict(node: CompartmentNode) -> Dict[str, Any]:
    return {
        "compartmentNumber": node.compartment_number,
        "needs_attention": node.needs_attention,
        "surface_status": node.surface_status,
        "condition": node.condition_label.value,
        "recommendation": node.recommendation,
        "wheels": [wheel_to_dict(w) for w in node.wheels],
    }


def train_day_to_dict(node: TrainDayNode) -> Dict[str, Any]:
    return {
        "trainNumber": node.key.train_number,
        "date": node.key.day.isoformat(),
        "needs_attention": node.needs_attention,
        "surface_status": node.surface_status,
        "condition": node.condition_label.value,
        "recommendation": node.recommendation,
        "latest_timestamp": node.latest_timestamp.isoformat(),
        "wheel_count": node.wheel_count,
    }


def summary_to_dict(summary: LatestSummary) -> Dict[str, Any]:
    return {
        "train_day": train_day_to_dict(summary.train_day),
        "surface_status": summary.surface_status,
        "condition": summary.condition_label.value,
        "recommendation": summary.recommendation,
        "images": [w.report.image_path for w in summary.images],
    }


def emit(args: argparse.Namespace, data: Any, lines: List[str]) -> None:
    if args.json:
        print(json.dumps(data, indent=2))
    else:
        for line in lines:
            print(line)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_summary(args: argparse.Namespace) -> int:
    """Show the latest train-day at a glance."""
    engine = build_engine(args)
    summary = engine.latest_summary()
    if summary is NOT_LOADED or summary is None:
        emit(args, None, ["No reports."])
        return 0

    node = summary.train_day
    lines = [
        f"Train {node.key.train_number} - {node.key.day.isoformat()}",
        f"  Surface:        {summary.surface_status}",
        f"  Condition:      {summary.condition_label.value}",
        f"  Recommendation: {summary.recommendation}",
    ]
    for wheel in summary.images:
        lines.append(
            f"  [C{wheel.report.compartment_number} W{wheel.wheel_number}] {wheel.report.image_path}"
        )
    emit(args, summary_to_dict(summary), lines)
    return 0


def cmd_trains(args: argparse.Namespace) -> int:
    """List train-days, newest first."""
    engine = build_engine(args)
    train_days = engine.list_train_days() or ()
    lines = [
        f"{_flag(n.needs_attention)} Train {n.key.train_number:<4} {n.key.day.isoformat()}  "
        f"{n.surface_status:<13} {n.condition_label.value:<7} {n.wheel_count} wheel(s)"
        for n in train_days
    ] or ["No reports."]
    emit(args, [train_day_to_dict(n) for n in train_days], lines)
    return 0


def cmd_compartments(args: argparse.Namespace) -> int:
    """List compartments of one train-day."""
    engine = build_engine(args)
    compartments = engine.list_compartments((args.train, args.date)) or ()
    if not compartments:
        raise CLIError(f"no reports for train {args.train} on {args.date.isoformat()}")
    lines = [
        f"{_flag(c.needs_attention)} C{c.compartment_number:<3} {c.surface_status:<13} "
        f"{c.condition_label.value:<7} {c.recommendation}"
        for c in compartments
    ]
    emit(args, [compartment_to_dict(c) for c in compartments], lines)
    return 0


def cmd_wheels(args: argparse.Namespace) -> int:
    """List wheels of one compartment."""
    engine = build_engine(args)
    wheels = engine.list_wheels((args.train, args.date), args.compartment) or ()
    if not wheels:
        raise CLIError(
            f"no reports for train {args.train} compartment {args.compartment} on {args.date.isoformat()}"
        )
    lines = []
    for w in wheels:
        diameter = "unknown" if w.report.wheel_diameter_mm is None else f"{w.report.wheel_diameter_mm:g} mm"
        lines.append(
            f"{_flag(w.derived.needs_attention)} W{w.wheel_number:<3} {w.derived.surface_status:<13} "
            f"{diameter:<10} {w.derived.recommendation}"
        )
    emit(args, [wheel_to_dict(w) for w in wheels], lines)
    return 0


def cmd_search(args: argparse.Namespace) -> int:
    """Free-text search over reports."""
    engine = build_engine(args)
    found = engine.search(args.query, sort_by=args.sort) or ()
    if args.flawed:
        found = filter_flawed(found)
    if args.condition:
        found = filter_by_condition(found, ConditionLabel(args.condition), engine.settings.min_wheel_diameter_mm)
    lines = []
    records = []
    for report in found:
        derived = derive_report(report, engine.settings.min_wheel_diameter_mm)
        lines.append(
            f"{day_of(report.timestamp, engine.settings.tz).isoformat()}  T{report.train_number} C{report.compartment_number} "
            f"W{report.wheel_number}  {derived.surface_status:<13} {report.name or ''}"
        )
        records.append(report_to_record(report))
    emit(args, records, lines or ["No matching reports."])
    return 0


def cmd_fetch(args: argparse.Namespace) -> int:
    """Fetch reports from the backend and write a snapshot file."""
    records = ReportsFetcher(args.settings).fetch_records()
    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, "w") as f:
        json.dump(records, f, indent=2)
    print(f"Wrote {len(records)} report(s) to {output}")
    return 0


def main(argv: Optional[list] = None) -> int:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="wheel-reports",
        description="Train wheel inspection report viewer"
    )
    parser.add_argument("--config", help="Path to engine.yaml (default: config/engine.yaml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    source = argparse.ArgumentParser(add_help=False)
    source.add_argument("--snapshot", help="Bulk snapshot JSON file")
    source.add_argument("--fetch", action="store_true", help="Fetch the snapshot from the backend")
    source.add_argument("--events", help="JSONL file of live events to replay after the snapshot")
    source.add_argument("--json", action="store_true", help="Machine-readable output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    summary_parser = subparsers.add_parser("summary", parents=[source], help="Latest train-day summary")
    summary_parser.set_defaults(func=cmd_summary)

    trains_parser = subparsers.add_parser("trains", parents=[source], help="List train-days")
    trains_parser.set_defaults(func=cmd_trains)

    comp_parser = subparsers.add_parser("compartments", parents=[source], help="List compartments")
    comp_parser.add_argument("--train", type=int, required=True)
    comp_parser.add_argument("--date", type=parse_day, required=True, help="YYYY-MM-DD")
    comp_parser.set_defaults(func=cmd_compartments)

    wheels_parser = subparsers.add_parser("wheels", parents=[source], help="List wheels")
    wheels_parser.add_argument("--train", type=int, required=True)
    wheels_parser.add_argument("--date", type=parse_day, required=True, help="YYYY-MM-DD")
    wheels_parser.add_argument("--compartment", type=int, required=True)
    wheels_parser.set_defaults(func=cmd_wheels)

    search_parser = subparsers.add_parser("search", parents=[source], help="Search reports")
    search_parser.add_argument("query")
    search_parser.add_argument("--sort", choices=SORT_KEYS, default="date")
    search_parser.add_argument("--flawed", action="store_true", help="Only reports with a detected surface flaw")
    search_parser.add_argument("--condition", choices=[c.value for c in ConditionLabel], help="Only reports with this wheel condition")
    search_parser.set_defaults(func=cmd_search)

    fetch_parser = subparsers.add_parser("fetch", help="Write a snapshot fetched from the backend")
    fetch_parser.add_argument("--output", "-o", required=True)
    fetch_parser.set_defaults(func=cmd_fetch)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    args.settings = get_settings(load_engine_config(args.config))
    configure_logging("DEBUG" if args.verbose else args.settings.log_level)

    try:
        return args.func(args)
    except (CLIError, FetchError, MalformedEventError, InvalidStateError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except json.JSONDecodeError as e:
        print(f"Error: invalid JSON: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

"""
Command-Line Interface for Lap Telemetry Analysis

Parses one log file, optionally segments it on a course definition, and
prints a lap table or the full JSON session payload.

Usage:
    laptrace session.vbo --course okc.json
    laptrace log.ld --course okc.json --json --telemetry
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import pandas as pd

from . import export
from . import session
from .config import DEFAULT_CONFIG, load_config
from .data_loading import NormalizerKind
from .errors import FormatError
from .models import CourseDefinition

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"

TABLE_COLUMNS = ["lap_number", "lap_time", "sector_times_s", "max_speed_mph", "min_speed_mph", "distance_m"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="laptrace",
        description="Parse a racing data-logger file and report laps, sectors and pace"
    )
    parser.add_argument(
        "file",
        type=Path,
        help="Path to the log file (.ld, .vbo, .csv, .nmea)"
    )
    parser.add_argument(
        "--course",
        type=Path,
        help="JSON course definition with start_finish_a/start_finish_b and optional sector_2/sector_3"
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="TOML file with [laptrace] or [tool.laptrace] threshold overrides"
    )
    parser.add_argument(
        "--format",
        choices=[kind.value for kind in NormalizerKind],
        help="Skip detection and parse as this format"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full session payload as JSON"
    )
    parser.add_argument(
        "--telemetry",
        action="store_true",
        help="Include per-sample telemetry in the JSON payload"
    )
    parser.add_argument(
        "--export-lap",
        type=int,
        metavar="N",
        help="Print lap N as CSV instead of the lap table (requires --course)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging"
    )
    return parser


def load_course(path: Path) -> CourseDefinition:
    with path.open("r", encoding="utf-8") as handle:
        return CourseDefinition.from_dict(json.load(handle))


def _format_sectors(sectors: Optional[List[float]]) -> str:
    if not sectors:
        return "-"
    return " / ".join(f"{value:.3f}" for value in sectors)


def print_lap_table(payload: dict) -> None:
    info = payload["file"]
    print(f"{info['format']}: {info['sample_count']} samples, {info['duration_s']}s")

    if not payload["laps"]:
        print("No complete laps detected.")
        return

    df = pd.DataFrame(payload["laps"], columns=TABLE_COLUMNS)
    df["sector_times_s"] = df["sector_times_s"].map(_format_sectors)
    print(df.to_string(index=False))

    optimal = payload["optimal_lap"]
    if optimal is not None:
        print(f"Optimal lap: {optimal['optimal_time']} ({optimal['delta_to_fastest_s']:+.3f}s to fastest)")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format=LOG_FORMAT,
    )

    if not args.file.exists():
        print(f"Error: Log file not found: {args.file}", file=sys.stderr)
        return 1
    if args.config and not args.config.exists():
        print(f"Error: Config file not found: {args.config}", file=sys.stderr)
        return 1

    try:
        config = load_config(args.config) if args.config else DEFAULT_CONFIG
        course = load_course(args.course) if args.course else None
    except (OSError, ValueError, KeyError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    logger.debug("Processing %s with %s", args.file, config)
    kind = NormalizerKind(args.format) if args.format else None
    try:
        analysis = session.analyze_log(args.file.read_bytes(), course=course, config=config, kind=kind)
    except FormatError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    if args.export_lap is not None:
        try:
            print(export.export_lap_csv(analysis.parsed, analysis.laps, args.export_lap), end="")
        except ValueError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        return 0

    payload = session.build_payload(analysis, include_telemetry=args.telemetry)
    if args.json:
        print(json.dumps(payload, indent=2))
    else:
        print_lap_table(payload)
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Session Builder for Lap Telemetry Analysis

This module orchestrates the complete analysis pipeline, combining all
processing steps into one JSON-ready session payload.
"""

from dataclasses import asdict, dataclass
from typing import Dict, List, Optional

from . import alignment
from . import braking
from . import data_loading
from . import lap_analysis
from . import telemetry
from . import utils
from .config import ProcessingConfig
from .models import CourseDefinition, Lap, OptimalLap, ParsedFile
from .parser_utils import Content


def describe_file(parsed: ParsedFile) -> Dict:
    """Summary of a parsed file: format, size, duration, bounds and channels."""
    return {
        "format": parsed.source_format,
        "sample_count": len(parsed.samples),
        "duration_s": utils.round_float(parsed.duration / 1000.0),
        "start_date": parsed.start_date.isoformat() if parsed.start_date else None,
        "bounds": asdict(parsed.bounds),
        "channels": [asdict(mapping) for mapping in parsed.field_mappings],
        "metadata": dict(parsed.metadata),
    }


def lap_to_record(lap: Lap) -> Dict:
    sectors = None
    if lap.sectors is not None:
        sectors = [utils.round_float(value / 1000.0) for value in (lap.sectors.s1, lap.sectors.s2, lap.sectors.s3)]
    return {
        "lap_number": lap.lap_number,
        "lap_time_s": utils.round_float(lap.lap_time_ms / 1000.0),
        "lap_time": lap_analysis.format_lap_time(lap.lap_time_ms),
        "start_time_s": utils.round_float(lap.start_time / 1000.0),
        "end_time_s": utils.round_float(lap.end_time / 1000.0),
        "start_sample_idx": lap.start_index,
        "end_sample_idx": lap.end_index,
        "distance_m": utils.round_float(lap.distance_m, 2),
        "max_speed_mph": utils.round_float(lap.max_speed_mph, 2),
        "min_speed_mph": utils.round_float(lap.min_speed_mph, 2),
        "max_speed_kph": utils.round_float(lap.max_speed_kph, 2),
        "min_speed_kph": utils.round_float(lap.min_speed_kph, 2),
        "sector_times_s": sectors,
    }


def optimal_lap_to_record(optimal: Optional[OptimalLap]) -> Optional[Dict]:
    if optimal is None:
        return None
    return {
        "optimal_time_s": utils.round_float(optimal.optimal_time_ms / 1000.0),
        "optimal_time": lap_analysis.format_lap_time(optimal.optimal_time_ms),
        "fastest_lap_time_s": utils.round_float(optimal.fastest_lap_time_ms / 1000.0),
        "delta_to_fastest_s": utils.round_float(optimal.delta_to_fastest_ms / 1000.0),
        "best_sectors_s": [
            utils.round_float(value / 1000.0)
            for value in (optimal.best_sectors.s1, optimal.best_sectors.s2, optimal.best_sectors.s3)
        ],
        "sector_laps": list(optimal.sector_laps),
    }


@dataclass(frozen=True)
class SessionAnalysis:
    """A parsed log with the laps detected on its course."""

    parsed: ParsedFile
    laps: List[Lap]
    course: Optional[CourseDefinition] = None


def analyze_log(content: Content, course: Optional[CourseDefinition] = None,
                config: Optional[ProcessingConfig] = None,
                kind: Optional[data_loading.NormalizerKind] = None) -> SessionAnalysis:
    """
    Parse a log and segment it on a course.

    Args:
        content: Raw bytes or text of the log.
        course: Course to segment on. Without one, no laps are detected.
        config: Processing thresholds. Defaults apply when None.
        kind: Force a format instead of detecting it.

    Raises:
        FormatError: If the log cannot be parsed.
    """
    parsed = data_loading.parse_log(content, kind=kind, config=config)

    laps: List[Lap] = []
    if course is not None:
        laps = lap_analysis.detect_laps(parsed, course, config)

    return SessionAnalysis(parsed=parsed, laps=laps, course=course)


def build_payload(analysis: SessionAnalysis, include_telemetry: bool = False) -> Dict:
    """
    Build the JSON-ready payload for an analyzed session.

    Returns:
        Dictionary containing:
        - file: format, duration, bounds, channels and metadata
        - course: course name, or None
        - laps: list of lap records
        - fastest_lap: lap number of the fastest lap, or None
        - optimal_lap: optimal lap summary, or None
        - lap_deltas: pace traces against the fastest lap
        - braking_zones: braking zones over the whole session
        - telemetry / track: only with include_telemetry
    """
    parsed, laps, course = analysis.parsed, analysis.laps, analysis.course

    fastest = lap_analysis.find_fastest_lap(laps)
    payload = {
        "file": describe_file(parsed),
        "course": course.name if course is not None else None,
        "laps": [lap_to_record(lap) for lap in laps],
        "fastest_lap": fastest.lap_number if fastest else None,
        "optimal_lap": optimal_lap_to_record(lap_analysis.calculate_optimal_lap(laps, course)),
        "lap_deltas": alignment.build_lap_delta_traces(parsed, laps),
        "braking_zones": [
            braking.braking_zone_to_record(zone) for zone in braking.detect_braking_zones(parsed.samples)
        ],
    }

    if include_telemetry:
        records = telemetry.build_telemetry_records(telemetry.samples_to_frame(parsed))
        payload["telemetry"] = records
        payload["track"] = telemetry.telemetry_to_geojson(records)

    return payload


def build_session_payload(content: Content, course: Optional[CourseDefinition] = None,
                          config: Optional[ProcessingConfig] = None,
                          include_telemetry: bool = False,
                          kind: Optional[data_loading.NormalizerKind] = None) -> Dict:
    """
    Build a complete session payload from one log.

    Main entry point that orchestrates the pipeline:
    1. Detects the format and parses the log
    2. Detects laps and sectors on the course, if one is given
    3. Synthesizes the optimal lap
    4. Builds pace traces of every lap against the fastest lap

    See build_payload() for the payload layout.

    Raises:
        FormatError: If the log cannot be parsed.
    """
    analysis = analyze_log(content, course=course, config=config, kind=kind)
    return build_payload(analysis, include_telemetry=include_telemetry)

"""
Lap Analysis for Lap Telemetry Analysis

This module handles lap detection from start/finish line crossings, sector
time computation from the two sector lines, optimal lap synthesis and lap
time formatting.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from . import constants
from . import metrics
from .config import ProcessingConfig, resolve_config
from .models import CourseDefinition, CourseLine, GeoPoint, Lap, OptimalLap, ParsedFile, Sample, SectorTimes

logger = logging.getLogger(__name__)

SampleSource = Union[ParsedFile, Sequence[Sample]]


@dataclass(frozen=True)
class LineCrossing:
    """An accepted crossing of a course line between samples ``edge`` and ``edge + 1``."""

    edge: int
    time: float  # ms, interpolated
    distance: float  # m, interpolated along the session path


def _samples_of(source: SampleSource) -> Sequence[Sample]:
    return source.samples if isinstance(source, ParsedFile) else source


def _project_line(line: CourseLine, center: GeoPoint) -> Tuple[np.ndarray, np.ndarray]:
    x, y = metrics.latlon_to_xy([line.a.lat, line.b.lat], [line.a.lon, line.b.lon], center.lat, center.lon)
    return np.array([x[0], y[0]]), np.array([x[1], y[1]])


def find_line_crossings(x: np.ndarray, y: np.ndarray, times: np.ndarray, distances: np.ndarray,
                        line: Tuple[np.ndarray, np.ndarray],
                        min_interval_ms: float) -> List[LineCrossing]:
    """
    Find debounced crossings of one line by the sample path.

    An edge crosses the line when the line's endpoints lie strictly on
    opposite sides of the edge and the edge's endpoints lie on opposite
    sides of the line. A path point exactly on the line counts as being on
    the negative side, so touching the line is crossed once and running
    along it is never crossed.

    Args:
        x, y: Projected sample positions in meters.
        times: Sample times in ms.
        distances: Cumulative path distance in meters.
        line: Projected line endpoints (q1, q2).
        min_interval_ms: Minimum time between two accepted crossings.

    Returns:
        Accepted crossings in time order.
    """
    if len(x) < 2:
        return []

    q1, q2 = line
    lx, ly = q2 - q1

    p1x, p1y = x[:-1], y[:-1]
    p2x, p2y = x[1:], y[1:]
    ex, ey = p2x - p1x, p2y - p1y

    # Side of each path point relative to the line
    o1 = lx * (p1y - q1[1]) - ly * (p1x - q1[0])
    o2 = lx * (p2y - q1[1]) - ly * (p2x - q1[0])
    # Side of each line endpoint relative to each path edge
    o3 = ex * (q1[1] - p1y) - ey * (q1[0] - p1x)
    o4 = ex * (q2[1] - p1y) - ey * (q2[0] - p1x)

    crosses = ((o1 > 0) != (o2 > 0)) & (o3 * o4 < 0)

    crossings: List[LineCrossing] = []
    last_time = None
    for edge in np.flatnonzero(crosses):
        frac = o1[edge] / (o1[edge] - o2[edge])
        time = times[edge] + frac * (times[edge + 1] - times[edge])
        if last_time is not None and time - last_time < min_interval_ms:
            continue
        distance = distances[edge] + frac * (distances[edge + 1] - distances[edge])
        crossings.append(LineCrossing(int(edge), float(time), float(distance)))
        last_time = time

    return crossings


def _first_between(crossings: Sequence[LineCrossing], start: float, end: float) -> Optional[LineCrossing]:
    return next((c for c in crossings if start < c.time < end), None)


def compute_sector_times(start: LineCrossing, end: LineCrossing,
                         sector_2: Sequence[LineCrossing], sector_3: Sequence[LineCrossing],
                         tolerance_ms: float = 1.0) -> Optional[SectorTimes]:
    """
    Compute the three sector splits of one lap.

    Uses the first sector-2 and the first sector-3 crossing inside the lap.

    Returns:
        SectorTimes in ms, or None when either crossing is missing, they
        are out of order, or the splits do not add up to the lap time.
    """
    s2 = _first_between(sector_2, start.time, end.time)
    s3 = _first_between(sector_3, start.time, end.time)
    if s2 is None or s3 is None or s3.time <= s2.time:
        return None

    sectors = SectorTimes(s2.time - start.time, s3.time - s2.time, end.time - s3.time)
    if abs(sectors.total - (end.time - start.time)) > tolerance_ms:
        return None
    return sectors


def detect_laps(source: SampleSource, course: CourseDefinition,
                config: Optional[ProcessingConfig] = None) -> List[Lap]:
    """
    Segment a sample stream into laps by start/finish line crossings.

    Samples and course lines are projected onto a plane centered on the
    start/finish midpoint. Each accepted crossing after the first closes a
    lap and opens the next. Crossing times and distances are interpolated,
    so lap times are not quantized to the sample period.

    Lap ``k`` covers samples ``[i_k, i_{k+1} - 1]`` where ``i_k`` is the
    first sample after crossing ``k``.

    Args:
        source: ParsedFile or sample sequence.
        course: Start/finish line and optional sector lines.
        config: Processing thresholds. Defaults apply when None.

    Returns:
        List of completed laps; empty when the course is never crossed
        twice.
    """
    config = resolve_config(config)
    samples = _samples_of(source)
    if len(samples) < 2:
        return []

    center = course.start_finish.midpoint
    x, y = metrics.project_samples(samples, center)
    times = np.array([s.t for s in samples], dtype=float)
    distances = metrics.cumulative_distance(x, y)
    interval = config.min_crossing_interval_ms

    def crossings_of(line: Optional[CourseLine]) -> List[LineCrossing]:
        if line is None:
            return []
        return find_line_crossings(x, y, times, distances, _project_line(line, center), interval)

    starts = crossings_of(course.start_finish)
    if len(starts) < 2:
        logger.info("Course %r: %d start/finish crossing(s), no complete laps",
                    course.name or "unnamed", len(starts))
        return []

    sector_2: List[LineCrossing] = []
    sector_3: List[LineCrossing] = []
    if course.has_sectors:
        sector_2 = crossings_of(course.sector_2)
        sector_3 = crossings_of(course.sector_3)

    laps = []
    for number, (start, end) in enumerate(zip(starts, starts[1:]), start=1):
        start_index = start.edge + 1
        end_index = end.edge

        speeds = [s.speed_mps for s in samples[start_index:end_index + 1]]
        max_speed = max(speeds)
        min_speed = min(speeds)

        sectors = None
        if course.has_sectors:
            sectors = compute_sector_times(start, end, sector_2, sector_3, config.sector_tolerance_ms)

        laps.append(Lap(
            lap_number=number,
            start_index=start_index,
            end_index=end_index,
            start_time=start.time,
            end_time=end.time,
            lap_time_ms=end.time - start.time,
            max_speed_mph=max_speed * constants.MPS_TO_MPH,
            max_speed_kph=max_speed * constants.MPS_TO_KPH,
            min_speed_mph=min_speed * constants.MPS_TO_MPH,
            min_speed_kph=min_speed * constants.MPS_TO_KPH,
            distance_m=end.distance - start.distance,
            sectors=sectors,
        ))

    logger.debug("Detected %d laps over %d samples", len(laps), len(samples))
    return laps


def lap_samples(source: SampleSource, lap: Lap) -> List[Sample]:
    """Samples belonging to ``lap``, inclusive of both end indices."""
    return list(_samples_of(source)[lap.start_index:lap.end_index + 1])


def find_fastest_lap(laps: Sequence[Lap]) -> Optional[Lap]:
    """Lap with the lowest lap time, or None for an empty list."""
    if not laps:
        return None
    return min(laps, key=lambda lap: lap.lap_time_ms)


def calculate_optimal_lap(laps: Sequence[Lap], course: Optional[CourseDefinition] = None) -> Optional[OptimalLap]:
    """
    Build the theoretical best lap from the best individual sectors.

    ``optimal = min(s1) + min(s2) + min(s3)`` across all laps, compared
    against the fastest complete lap.

    Args:
        laps: Detected laps.
        course: Course the laps were detected on. When given, a course
            without both sector lines yields None.

    Returns:
        OptimalLap, or None if there are no laps, the course has no sectors,
        or any lap lacks sector data.
    """
    if not laps:
        return None
    if course is not None and not course.has_sectors:
        return None
    if any(lap.sectors is None for lap in laps):
        return None

    best = [min(laps, key=lambda lap, idx=idx: _sector(lap, idx)) for idx in range(3)]
    best_sectors = SectorTimes(*(_sector(lap, idx) for idx, lap in enumerate(best)))

    fastest = find_fastest_lap(laps)
    optimal = best_sectors.total
    return OptimalLap(
        optimal_time_ms=optimal,
        fastest_lap_time_ms=fastest.lap_time_ms,
        delta_to_fastest_ms=optimal - fastest.lap_time_ms,
        best_sectors=best_sectors,
        sector_laps=tuple(lap.lap_number for lap in best),
    )


def _sector(lap: Lap, idx: int) -> float:
    return (lap.sectors.s1, lap.sectors.s2, lap.sectors.s3)[idx]


def format_lap_time(ms: Optional[float]) -> str:
    """
    Format a lap time as ``m:ss.mmm``.

    Example: 83456.0 -> "1:23.456". Missing values render as "-:--.---".
    """
    if ms is None or not math.isfinite(ms):
        return "-:--.---"
    minutes, rem = divmod(int(round(ms)), 60000)
    return f"{minutes}:{rem // 1000:02d}.{rem % 1000:03d}"


def format_sector_time(ms: Optional[float]) -> str:
    """Format a sector time in seconds with millisecond precision, e.g. "27.103"."""
    if ms is None or not math.isfinite(ms):
        return "--.---"
    return f"{int(round(ms)) / 1000:.3f}"

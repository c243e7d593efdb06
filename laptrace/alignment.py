"""
Reference Lap Alignment for Lap Telemetry Analysis

This module compares a current lap against a reference lap at matching
track position. Both laps are reduced to cumulative travelled distance and
reference values are linearly interpolated at the current lap's distances,
giving the pace delta (time behind or ahead) and aligned channel traces.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from . import constants
from . import lap_analysis
from . import metrics
from . import utils
from .models import AlignmentResult, Lap, ParsedFile, Sample

SPEED_UNITS = {
    "mps": 1.0,
    "mph": constants.MPS_TO_MPH,
    "kph": constants.MPS_TO_KPH,
}


@dataclass(frozen=True)
class ReferenceData:
    """A reference lap with its precomputed distance array."""

    samples: Sequence[Sample]
    distances: np.ndarray
    total_distance: float


ReferenceSource = Union[Sequence[Sample], ReferenceData]


def project_to_plane(samples: Sequence[Sample]) -> Tuple[np.ndarray, np.ndarray]:
    """Equirectangular projection of a sample set to meters around its own centroid."""
    center = metrics.sample_centroid(samples)
    return metrics.latlon_to_xy([s.lat for s in samples], [s.lon for s in samples], center.lat, center.lon)


def calculate_distance_array(samples: Sequence[Sample]) -> np.ndarray:
    """
    Cumulative travelled distance for a sample set.

    The set is projected around its own centroid, so two laps measured this
    way agree on distance regardless of where each was recorded.

    Returns:
        Non-decreasing array starting at 0; empty for no samples.
    """
    if not samples:
        return np.zeros(0)
    x, y = project_to_plane(samples)
    return metrics.cumulative_distance(x, y)


def compute_reference_data(samples: Sequence[Sample]) -> ReferenceData:
    distances = calculate_distance_array(samples)
    total = float(distances[-1]) if distances.size else 0.0
    return ReferenceData(samples=samples, distances=distances, total_distance=total)


def _reference_of(reference: ReferenceSource) -> ReferenceData:
    if isinstance(reference, ReferenceData):
        return reference
    return compute_reference_data(reference)


def interpolate_at_distance(targets: Sequence[float], ref_distances: Sequence[float],
                            ref_values: Sequence[float]) -> List[Optional[float]]:
    """
    Linearly interpolate reference values at target distances.

    Each target is bracketed by binary search over the reference distances.
    Negative targets are clamped to 0.

    Args:
        targets: Distances to sample at, in meters.
        ref_distances: Non-decreasing reference distance array.
        ref_values: Reference value at each reference distance.

    Returns:
        One value per target; None where the target lies beyond the
        reference total distance or the reference value is missing.
    """
    ref_d = np.asarray(ref_distances, dtype=float)
    values = np.asarray(ref_values, dtype=float)
    targets = np.clip(np.asarray(targets, dtype=float), 0.0, None)
    if ref_d.size == 0:
        return [None] * targets.size

    total = ref_d[-1]
    if ref_d.size == 1:
        interpolated = np.full(targets.size, values[0])
    else:
        lo = np.clip(np.searchsorted(ref_d, targets, side="right") - 1, 0, ref_d.size - 2)
        hi = lo + 1
        span = ref_d[hi] - ref_d[lo]
        # Repeated distances (stationary samples) take the lower value
        frac = np.where(span > 0, (targets - ref_d[lo]) / np.where(span > 0, span, 1.0), 0.0)
        interpolated = values[lo] + frac * (values[hi] - values[lo])

    return [
        float(value) if target <= total and np.isfinite(value) else None
        for target, value in zip(targets, interpolated)
    ]


def _elapsed_s(samples: Sequence[Sample]) -> np.ndarray:
    times = np.array([s.t for s in samples], dtype=float)
    return (times - times[0]) / 1000.0


def calculate_pace(current: Sequence[Sample], reference: ReferenceSource) -> List[Optional[float]]:
    """
    Time delta versus the reference lap at each current-lap sample.

    Both laps are timed from their own first sample. Positive means the
    current lap is behind (slower) at that point, negative means ahead.

    Args:
        current: Current lap samples.
        reference: Reference lap samples or precomputed ReferenceData.

    Returns:
        Seconds per current sample; None beyond the reference lap length.
    """
    ref = _reference_of(reference)
    if not current or not ref.samples:
        return []

    ref_elapsed = interpolate_at_distance(calculate_distance_array(current), ref.distances,
                                          _elapsed_s(ref.samples))
    return [
        None if ref_time is None else float(elapsed - ref_time)
        for elapsed, ref_time in zip(_elapsed_s(current), ref_elapsed)
    ]


def calculate_reference_speed(current: Sequence[Sample], reference: ReferenceSource,
                              unit: str = "mph") -> List[Optional[float]]:
    """
    Reference lap speed aligned to the current lap's distance progression.

    Args:
        current: Current lap samples.
        reference: Reference lap samples or precomputed ReferenceData.
        unit: "mph", "kph" or "mps". Default "mph".

    Raises:
        ValueError: For an unknown unit.
    """
    if unit not in SPEED_UNITS:
        raise ValueError(f"Unknown speed unit {unit!r}; expected one of {sorted(SPEED_UNITS)}")

    ref = _reference_of(reference)
    if not current or not ref.samples:
        return []

    speeds = np.array([s.speed_mps for s in ref.samples], dtype=float) * SPEED_UNITS[unit]
    return interpolate_at_distance(calculate_distance_array(current), ref.distances, speeds)


def align_channel(current: Sequence[Sample], reference: ReferenceSource, name: str) -> List[Optional[float]]:
    """Reference values of extra channel ``name`` at the current lap's distances."""
    ref = _reference_of(reference)
    if not current or not ref.samples:
        return []

    values = [s.extra_fields.get(name, np.nan) for s in ref.samples]
    return interpolate_at_distance(calculate_distance_array(current), ref.distances, values)


def align_laps(current: Sequence[Sample], reference: ReferenceSource,
               channels: Sequence[str] = ()) -> AlignmentResult:
    """
    Align a current lap against a reference lap by travelled distance.

    Args:
        current: Current lap samples.
        reference: Reference lap samples or precomputed ReferenceData.
        channels: Extra channel names to align as well.

    Returns:
        AlignmentResult with one entry per current sample.
    """
    ref = _reference_of(reference)
    distances = calculate_distance_array(current)

    return AlignmentResult(
        distance=[float(d) for d in distances],
        pace=calculate_pace(current, ref),
        reference_speed=calculate_reference_speed(current, ref, unit="mps"),
        channels={name: align_channel(current, ref, name) for name in channels},
        reference_distance=ref.total_distance,
    )


def build_lap_delta_traces(parsed: ParsedFile, laps: Sequence[Lap]) -> List[Dict]:
    """
    Build time delta traces comparing each lap to the fastest lap.

    For each lap other than the fastest, computes the pace at every sample
    against the fastest lap. Samples beyond the fastest lap's length are
    left out of the trace.

    Args:
        parsed: ParsedFile the laps were detected on.
        laps: Detected laps.

    Returns:
        List of delta trace dictionaries, each containing lap_number,
        reference_lap, trace (list of {distance_m, time_delta_s}),
        lap_time_s and reference_time_s.
    """
    if len(laps) < 2:
        return []

    reference = lap_analysis.find_fastest_lap(laps)
    ref = compute_reference_data(lap_analysis.lap_samples(parsed, reference))
    if ref.distances.size < 2:
        return []

    deltas = []
    for lap in laps:
        if lap.lap_number == reference.lap_number:
            continue

        samples = lap_analysis.lap_samples(parsed, lap)
        distances = calculate_distance_array(samples)
        trace = [
            {
                "distance_m": utils.round_float(distance, 2),
                "time_delta_s": utils.round_float(delta, 3),
            }
            for distance, delta in zip(distances, calculate_pace(samples, ref))
            if delta is not None
        ]

        if trace:
            deltas.append({
                "lap_number": lap.lap_number,
                "reference_lap": reference.lap_number,
                "trace": trace,
                "lap_time_s": utils.round_float(lap.lap_time_ms / 1000.0),
                "reference_time_s": utils.round_float(reference.lap_time_ms / 1000.0),
            })

    return deltas

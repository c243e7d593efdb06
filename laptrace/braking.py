"""
Braking Zone Detection for Lap Telemetry Analysis

This module finds discrete braking zones in a sample stream. Longitudinal
acceleration is taken from the change in GPS speed between consecutive
samples, smoothed with an exponential moving average, and fed through a
two-threshold state machine so a zone is not split by brief noise.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np

from . import constants
from . import utils
from .models import BrakingZone, GeoPoint, Sample

# Time steps outside this range (seconds) are GPS gaps or duplicates
MIN_STEP_S = 0.01
MAX_STEP_S = 2.0


@dataclass(frozen=True)
class BrakingZoneConfig:
    """
    Thresholds for braking zone detection.

    Attributes:
        entry_threshold_g: Smoothed acceleration below this starts a zone.
        exit_threshold_g: Smoothed acceleration above this ends it.
        min_duration_ms: Shorter zones are discarded.
        smoothing_alpha: Weight of the newest value in the moving average.
    """

    entry_threshold_g: float = -0.25
    exit_threshold_g: float = -0.10
    min_duration_ms: float = 120.0
    smoothing_alpha: float = 0.4


DEFAULT_BRAKING_CONFIG = BrakingZoneConfig()


def _step_acceleration_g(prev: Sample, curr: Sample) -> Optional[float]:
    """Acceleration in g between two samples, or None across a gap."""
    dt = (curr.t - prev.t) / 1000.0
    if dt < MIN_STEP_S or dt > MAX_STEP_S:
        return None
    return (curr.speed_mps - prev.speed_mps) / dt / constants.GRAVITY


def compute_braking_g_series(samples: Sequence[Sample],
                             config: BrakingZoneConfig = DEFAULT_BRAKING_CONFIG) -> np.ndarray:
    """
    Smoothed longitudinal acceleration, one value per sample.

    The first sample is 0. Across a gap the previous smoothed value is
    carried forward.

    Args:
        samples: Canonical samples in time order.
        config: Supplies the smoothing weight.

    Returns:
        Array of accelerations in g; negative means slowing down.
    """
    series = np.zeros(len(samples))
    smoothed = 0.0
    alpha = config.smoothing_alpha

    for i in range(1, len(samples)):
        accel = _step_acceleration_g(samples[i - 1], samples[i])
        if accel is not None:
            smoothed = accel if i == 1 else alpha * accel + (1 - alpha) * smoothed
        series[i] = smoothed

    return series


def _make_zone(samples: Sequence[Sample], start: int, end: int) -> BrakingZone:
    return BrakingZone(
        start_index=start,
        end_index=end,
        start_time=samples[start].t,
        end_time=samples[end].t,
        start_speed_mps=samples[start].speed_mps,
        end_speed_mps=samples[end].speed_mps,
        path=tuple(GeoPoint(s.lat, s.lon) for s in samples[start:end + 1]),
    )


def detect_braking_zones(samples: Sequence[Sample],
                         config: BrakingZoneConfig = DEFAULT_BRAKING_CONFIG) -> List[BrakingZone]:
    """
    Detect braking zones with a hysteresis state machine.

    A zone opens at the first sample whose smoothed acceleration falls below
    ``entry_threshold_g`` and closes at the first sample rising above
    ``exit_threshold_g``. A gap in the time base closes an open zone at the
    sample before the gap, and a zone still open at the end closes at the
    last sample. Zones shorter than ``min_duration_ms`` are dropped.

    Args:
        samples: Canonical samples in time order, e.g. one lap.
        config: Detection thresholds.

    Returns:
        Braking zones in time order; empty for fewer than 3 samples.
    """
    if len(samples) < 3:
        return []

    zones: List[BrakingZone] = []
    braking = False
    start = 0
    smoothed = 0.0
    alpha = config.smoothing_alpha

    def close(end: int) -> None:
        if samples[end].t - samples[start].t >= config.min_duration_ms:
            zones.append(_make_zone(samples, start, end))

    for i in range(1, len(samples)):
        accel = _step_acceleration_g(samples[i - 1], samples[i])
        if accel is None:
            if braking:
                close(i - 1)
                braking = False
            continue

        smoothed = accel if i == 1 else alpha * accel + (1 - alpha) * smoothed

        if not braking and smoothed < config.entry_threshold_g:
            start = i
            braking = True
        elif braking and smoothed > config.exit_threshold_g:
            close(i)
            braking = False

    if braking:
        close(len(samples) - 1)

    return zones


def braking_zone_to_record(zone: BrakingZone) -> Dict:
    return {
        "start_sample_idx": zone.start_index,
        "end_sample_idx": zone.end_index,
        "start_time_s": utils.round_float(zone.start_time / 1000.0),
        "end_time_s": utils.round_float(zone.end_time / 1000.0),
        "duration_s": utils.round_float(zone.duration_ms / 1000.0),
        "entry_speed_mph": utils.round_float(zone.start_speed_mps * constants.MPS_TO_MPH, 1),
        "exit_speed_mph": utils.round_float(zone.end_speed_mps * constants.MPS_TO_MPH, 1),
        "speed_delta_mps": utils.round_float(zone.speed_delta_mps, 2),
        "geometry": [[point.lon, point.lat] for point in zone.path],
    }

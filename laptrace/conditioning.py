"""
Signal Conditioning for Lap Telemetry Analysis

This module derives lateral/longitudinal g-forces from consecutive GPS fixes,
smooths noisy channels with a gap-preserving moving average, and repairs
short GPS speed dropouts.

All functions are pure: they return new arrays or new Sample lists and never
modify their inputs.
"""

import math
from dataclasses import replace
from typing import List, Optional, Sequence, Tuple

import numpy as np

from . import constants
from . import utils
from .config import ProcessingConfig, resolve_config
from .models import Sample

# Derivation quality gates
MIN_DT_S = 0.05
MAX_DT_S = 2.0  # larger gaps mean filtered samples or a pause
MIN_SPEED_FOR_LAT_G = 2.0  # m/s, heading is unreliable below this
MAX_HDOP_FOR_G = 5.0
MAX_HEADING_RATE = 180.0  # deg/s, a kart cannot yaw faster even in a spin

MAX_SMOOTHING_WINDOW = 15


def normalize_native_g(value: float) -> float:
    """
    Normalize a natively logged accelerometer value to g.

    Values larger than 5 in magnitude are assumed to be m/s^2 and divided by
    standard gravity. The result is clamped to [-5, 5]; NaN passes through.
    """
    if not utils.is_finite(value):
        return float("nan")
    if abs(value) > constants.NATIVE_G_UNIT_THRESHOLD:
        value = value / constants.GRAVITY
    return utils.clamp(value, -constants.MAX_ABS_G, constants.MAX_ABS_G)


def has_native_gforce(samples: Sequence[Sample]) -> bool:
    """True if any sample carries a lateral or longitudinal g value from the logger itself."""
    names = (constants.LAT_G_FIELD, constants.LON_G_FIELD)
    return any(name in sample.extra_fields for sample in samples for name in names)


def fill_missing_headings(samples: Sequence[Sample]) -> List[Sample]:
    """
    Fill missing headings with the bearing towards the next distinct fix.

    The last sample (or any sample followed only by identical positions)
    reuses the previous heading.

    Args:
        samples: Canonical samples, some of which may lack a heading.

    Returns:
        New list of samples; samples that already had a heading are reused.
    """
    filled: List[Sample] = []
    previous_heading: Optional[float] = None

    for idx, sample in enumerate(samples):
        heading = sample.heading
        if heading is None:
            for nxt in samples[idx + 1:]:
                if (nxt.lat, nxt.lon) != (sample.lat, sample.lon):
                    heading = utils.calculate_bearing(sample.lat, sample.lon, nxt.lat, nxt.lon)
                    break
            else:
                heading = previous_heading

        filled.append(sample if heading == sample.heading else replace(sample, heading=heading))
        previous_heading = heading

    return filled


def calculate_accelerations(samples: Sequence[Sample]) -> Tuple[np.ndarray, np.ndarray]:
    """
    Derive lateral and longitudinal g-forces from GPS speed and heading.

    Uses central differences over each sample's neighbours:
    - Longitudinal G: rate of change of speed, dv/dt / g
    - Lateral G: centripetal acceleration, v * yaw_rate / g

    A sample gets 0 g when the time span is outside [0.05 s, 2 s] or its
    HDOP is above 5. Lateral g is also 0 below 2 m/s or when the heading
    changes faster than 180 deg/s.

    Args:
        samples: Canonical samples. Missing headings should be filled first.

    Returns:
        Tuple of (lat_g, lon_g) arrays, one entry per sample, unclamped.
    """
    n = len(samples)
    lat_g = np.zeros(n)
    lon_g = np.zeros(n)
    if n < 2:
        return lat_g, lon_g

    for i in range(n):
        prev = samples[max(0, i - 1)]
        curr = samples[i]
        nxt = samples[min(n - 1, i + 1)]

        dt = (nxt.t - prev.t) / 1000.0
        if dt < MIN_DT_S or dt > MAX_DT_S:
            continue

        hdop = curr.extra_fields.get("HDOP")
        if hdop is not None and hdop > MAX_HDOP_FOR_G:
            continue

        lon_g[i] = (nxt.speed_mps - prev.speed_mps) / dt / constants.GRAVITY

        if prev.heading is None or nxt.heading is None or curr.speed_mps < MIN_SPEED_FOR_LAT_G:
            continue

        d_heading = utils.normalize_heading_delta(nxt.heading, prev.heading)
        if abs(d_heading) / dt > MAX_HEADING_RATE:
            continue

        yaw_rate = math.radians(d_heading) / dt
        lat_g[i] = curr.speed_mps * yaw_rate / constants.GRAVITY

    return lat_g, lon_g


def apply_gforce_calculations(samples: Sequence[Sample], window: int = 5) -> List[Sample]:
    """
    Derive, smooth and clamp g-forces, attaching them as extra channels.

    This is the entry point normalizers call when a log has no native
    accelerometer channel.

    Args:
        samples: Canonical samples.
        window: Moving-average width applied to the derived values. Default 5.

    Returns:
        New list of samples carrying "Lat G" and "Lon G" extra fields. Values
        already present on a sample are kept.
    """
    samples = fill_missing_headings(samples)
    lat_g, lon_g = calculate_accelerations(samples)
    lat_g = smooth_values(lat_g, window)
    lon_g = smooth_values(lon_g, window)

    limit = constants.MAX_ABS_G
    result = []
    for sample, lat_value, lon_value in zip(samples, lat_g, lon_g):
        extra = dict(sample.extra_fields)
        extra.setdefault(constants.LAT_G_FIELD, utils.clamp(lat_value, -limit, limit))
        extra.setdefault(constants.LON_G_FIELD, utils.clamp(lon_value, -limit, limit))
        result.append(replace(sample, extra_fields=extra))
    return result


def smoothing_window_size(strength: float, enabled: bool = True) -> int:
    """
    Map a smoothing strength setting to a moving-average window size.

    Args:
        strength: Smoothing strength in percent, 0-100.
        enabled: When False the window is always 1 (no smoothing).

    Returns:
        Odd window size between 1 and 15.
    """
    if not enabled:
        return 1
    strength = utils.clamp(float(strength), 0.0, 100.0)
    size = max(1, int(1 + (strength / 100.0) * (MAX_SMOOTHING_WINDOW - 1)))
    return size if size % 2 else size + 1


def smooth_values(values: Sequence[Optional[float]], window: int) -> List[Optional[float]]:
    """
    Apply a centered moving average, preserving gaps.

    Missing entries (None or NaN) stay missing and are excluded from their
    neighbours' averages, so no values are invented.

    Args:
        values: Sequence of numbers, possibly with gaps.
        window: Window width; values <= 1 disable smoothing.

    Returns:
        List of smoothed values with None at the original gaps.
    """
    arr = np.array([np.nan if v is None else v for v in values], dtype=float)
    valid = np.isfinite(arr)

    if window > 1 and arr.size:
        half = window // 2
        kernel = np.ones(2 * half + 1)
        sums = np.convolve(np.pad(np.where(valid, arr, 0.0), half), kernel, mode="valid")
        counts = np.convolve(np.pad(valid.astype(float), half), kernel, mode="valid")
        with np.errstate(invalid="ignore", divide="ignore"):
            arr = np.where(valid, sums / counts, np.nan)

    return [float(v) if ok else None for v, ok in zip(arr, valid)]


def smooth_channel(samples: Sequence[Sample], name: str, window: int) -> List[Optional[float]]:
    """Smooth one extra channel across samples; samples lacking it stay None."""
    return smooth_values([sample.extra_fields.get(name) for sample in samples], window)


def detect_speed_glitches(speeds: Sequence[float], threshold: Optional[float] = None,
                          max_samples: Optional[int] = None,
                          config: Optional[ProcessingConfig] = None) -> List[int]:
    """
    Find short bursts of implausibly low speed flanked by valid readings.

    A run of consecutive speeds below ``threshold`` is a glitch only if it is
    at most ``max_samples`` long and has a valid reading on both sides.
    Longer runs are genuine stops (e.g. pit lane) and are not reported.

    Args:
        speeds: Speed values in any unit.
        threshold: Speeds below this count as low, in the same unit.
            Defaults to ``config.glitch_speed_threshold``.
        max_samples: Longest run treated as a glitch. Defaults to
            ``config.glitch_max_samples``.
        config: Processing thresholds. Defaults apply when None.

    Returns:
        Sorted list of sample indices to interpolate through.
    """
    config = resolve_config(config)
    if threshold is None:
        threshold = config.glitch_speed_threshold
    if max_samples is None:
        max_samples = config.glitch_max_samples

    indices: List[int] = []
    run_start = None

    for idx, speed in enumerate(speeds):
        is_low = not speed >= threshold  # NaN counts as low
        if is_low and run_start is None:
            run_start = idx
        elif not is_low and run_start is not None:
            if run_start > 0 and idx - run_start <= max_samples:
                indices.extend(range(run_start, idx))
            run_start = None

    return indices


def repair_speed_glitches(speeds: Sequence[float], threshold: Optional[float] = None,
                          max_samples: Optional[int] = None,
                          config: Optional[ProcessingConfig] = None) -> np.ndarray:
    """
    Linearly interpolate through short speed dropouts.

    Each glitch run is replaced by a straight line between the last valid
    value before it and the first valid value after it.

    Args:
        speeds: Speed values in any unit.
        threshold: Low-speed threshold, same unit as speeds.
        max_samples: Longest run repaired.
        config: Supplies whichever of the two above is None.

    Returns:
        New array of repaired speeds.
    """
    repaired = np.array(speeds, dtype=float)
    glitches = detect_speed_glitches(repaired, threshold, max_samples, config)
    if not glitches:
        return repaired

    mask = np.zeros(repaired.size, dtype=bool)
    mask[glitches] = True
    good = np.flatnonzero(~mask)
    repaired[mask] = np.interp(np.flatnonzero(mask), good, repaired[good])
    return repaired


def repair_sample_speeds(samples: Sequence[Sample], threshold: Optional[float] = None,
                         max_samples: Optional[int] = None,
                         config: Optional[ProcessingConfig] = None) -> List[Sample]:
    """Return samples with short speed dropouts repaired; threshold is in m/s."""
    speeds = repair_speed_glitches([s.speed_mps for s in samples], threshold, max_samples, config)
    return [
        sample if speed == sample.speed_mps else replace(sample, speed_mps=float(speed))
        for sample, speed in zip(samples, speeds)
    ]

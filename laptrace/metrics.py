"""
Planar Metrics for Lap Telemetry Analysis

This module projects GPS positions onto a local tangent plane and computes
cumulative travelled distance, the shared geometry for lap segmentation and
reference-lap alignment.
"""

from typing import Optional, Sequence, Tuple

import numpy as np

from . import constants
from .models import GeoPoint, Sample


def latlon_to_xy(lat, lon, center_lat: float, center_lon: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Convert latitude/longitude to local Cartesian coordinates (x, y).

    Uses a simple equirectangular projection approximation, suitable for
    race tracks where Earth's curvature can be approximated as flat.

    Args:
        lat: Latitude value(s) in degrees.
        lon: Longitude value(s) in degrees.
        center_lat: Projection center latitude in degrees.
        center_lon: Projection center longitude in degrees.

    Returns:
        Tuple of (x_m, y_m) arrays in meters, where x is east and y is north.
    """
    R = constants.EARTH_RADIUS_M
    lat = np.asarray(lat, dtype=float)
    lon = np.asarray(lon, dtype=float)

    x = np.deg2rad(lon - center_lon) * R * np.cos(np.deg2rad(center_lat))
    y = np.deg2rad(lat - center_lat) * R

    return x, y


def sample_centroid(samples: Sequence[Sample]) -> GeoPoint:
    """Mean latitude/longitude of a sample set."""
    if not samples:
        return GeoPoint(0.0, 0.0)
    lats = np.fromiter((s.lat for s in samples), dtype=float, count=len(samples))
    lons = np.fromiter((s.lon for s in samples), dtype=float, count=len(samples))
    return GeoPoint(float(lats.mean()), float(lons.mean()))


def project_samples(samples: Sequence[Sample], center: Optional[GeoPoint] = None) -> Tuple[np.ndarray, np.ndarray]:
    """
    Project samples onto a plane centered at ``center``.

    Args:
        samples: Samples to project.
        center: Projection center. Defaults to the samples' own centroid.

    Returns:
        Tuple of (x_m, y_m) arrays, one entry per sample.
    """
    if center is None:
        center = sample_centroid(samples)
    lats = [s.lat for s in samples]
    lons = [s.lon for s in samples]
    return latlon_to_xy(lats, lons, center.lat, center.lon)


def cumulative_distance(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """
    Sum Euclidean segment lengths into a cumulative distance array.

    Returns:
        Non-decreasing array with ``distance[0] == 0``.
    """
    if len(x) == 0:
        return np.zeros(0)
    segment = np.hypot(np.diff(x), np.diff(y))
    return np.concatenate(([0.0], np.cumsum(segment)))

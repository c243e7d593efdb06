"""
Utility Functions for Lap Telemetry Analysis

This module provides helper functions for data conversion, rounding, and
small geometric helpers used throughout the analysis pipeline.
"""

import math
from typing import Optional

import numpy as np

from . import constants


def safe_float(value) -> float:
    """
    Safely convert a value to float, returning NaN on failure.

    Args:
        value: Value to convert (string, number, etc.).

    Returns:
        Float value, or np.nan if conversion fails.
    """
    try:
        return float(value)
    except (TypeError, ValueError):
        return np.nan


def is_finite(value: Optional[float]) -> bool:
    """Return True if value is a real, finite number."""
    return value is not None and math.isfinite(value)


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp a number to [lower, upper]."""
    return max(lower, min(upper, value))


def round_float(value, digits: int = 3) -> Optional[float]:
    """
    Round a float value, handling None, NaN, and Inf.

    Args:
        value: Value to round.
        digits: Number of decimal places. Default 3.

    Returns:
        Rounded float, or None if value is None, NaN, or Inf.
    """
    if value is None or (isinstance(value, float) and (np.isnan(value) or np.isinf(value))):
        return None
    return round(float(value), digits)


def normalize_heading(heading: float) -> float:
    """Wrap a heading in degrees into [0, 360)."""
    wrapped = heading % 360.0
    # -1e-15 % 360.0 rounds up to 360.0
    return 0.0 if wrapped >= 360.0 else wrapped


def normalize_heading_delta(h2: Optional[float], h1: Optional[float]) -> float:
    """
    Normalize the difference between two headings to [-180, 180].

    Handles wrap-around, so going from 359 to 1 degree is +2, not -358.
    Returns 0 if either heading is missing.
    """
    if h2 is None or h1 is None:
        return 0.0
    delta = h2 - h1
    if delta > 180.0:
        delta -= 360.0
    if delta < -180.0:
        delta += 360.0
    return delta


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Uses the Haversine formula to compute distance along the surface of a sphere.

    Args:
        lat1, lon1: Latitude and longitude of first point in degrees.
        lat2, lon2: Latitude and longitude of second point in degrees.

    Returns:
        Distance in meters between the two points.
    """
    lat1_rad, lon1_rad = math.radians(lat1), math.radians(lon1)
    lat2_rad, lon2_rad = math.radians(lat2), math.radians(lon2)

    dlat = lat2_rad - lat1_rad
    dlon = lon2_rad - lon1_rad

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return constants.EARTH_RADIUS_M * c


def calculate_bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the initial bearing from one GPS point to another.

    Args:
        lat1, lon1: Origin point in degrees.
        lat2, lon2: Destination point in degrees.

    Returns:
        Bearing in degrees, in [0, 360).
    """
    dlon = math.radians(lon2 - lon1)
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)

    y = math.sin(dlon) * math.cos(lat2_rad)
    x = math.cos(lat1_rad) * math.sin(lat2_rad) - math.sin(lat1_rad) * math.cos(lat2_rad) * math.cos(dlon)

    return normalize_heading(math.degrees(math.atan2(y, x)))

"""
Canonical Channel Names for Lap Telemetry Analysis

Different loggers name the same sensor differently ("Engine RPM", "rpm",
"RPM"). This module maps those variations to one canonical id and display
name, so every normalizer exposes extra channels under the same keys.
"""

import re
from typing import Dict, List, Optional, Tuple

# canonical id -> (display name, aliases)
FIELD_ALIASES: Dict[str, Tuple[str, List[str]]] = {
    "altitude": ("Altitude", [
        "altitude (m)", "altitude", "alt", "altitude_m", "gps altitude", "gps_altitude", "height",
    ]),
    "satellites": ("Satellites", ["satellites", "sats", "numsats", "gps sats"]),
    "hdop": ("HDOP", ["hdop", "gps hdop"]),
    "lat_g": ("Lat G", [
        "lat g", "lateral g", "latg", "g force lat", "g_force_lat", "latacc", "lat acc",
        "lateral acc", "lateral acceleration", "lat accel", "lateral accel", "gy",
    ]),
    "lon_g": ("Lon G", [
        "lon g", "longitudinal g", "long g", "g force long", "g_force_long", "lonacc",
        "lon acc", "longitudinal acc", "longitudinal acceleration", "long accel",
        "longitudinal accel", "gx",
    ]),
    "rpm": ("RPM", ["rpm", "engine rpm", "engine_rpm"]),
    "water_temp": ("Water Temp", [
        "water temp", "water temperature", "coolant temp", "water", "water_temp", "water_temp_c",
        "t_h2o", "engine temp",
    ]),
    "oil_temp": ("Oil Temp", ["oil temp", "oil", "oil_temp"]),
    "egt": ("EGT", ["egt", "exhaust temp", "exhaust", "exhaust_temp_c"]),
    "throttle": ("Throttle", ["throttle", "tps", "throttle pos", "throttle position"]),
    "brake": ("Brake", ["brake", "brake pressure", "brake pos"]),
    "temp1": ("Temp 1", ["t1", "temp1", "temp 1"]),
    "temp2": ("Temp 2", ["t2", "temp2", "temp 2"]),
    "distance": ("Distance", ["distance", "dist"]),
    "yaw_rate": ("Yaw Rate", ["yaw rate", "yaw_rate"]),
}

_NAME_TO_CANONICAL: Dict[str, str] = {}
for _canonical, (_display, _aliases) in FIELD_ALIASES.items():
    _NAME_TO_CANONICAL[_display.lower()] = _canonical
    for _alias in _aliases:
        _NAME_TO_CANONICAL[_alias] = _canonical


def _normalize(name: str) -> str:
    return re.sub(r"\s+", " ", name.strip().lower())


def canonical_field_id(name: str) -> Optional[str]:
    """
    Get the canonical field id for a channel name.

    Args:
        name: Raw channel or column name, any case.

    Returns:
        Canonical id (e.g. "rpm"), or None if the name is not a known alias.
    """
    return _NAME_TO_CANONICAL.get(_normalize(name))


def get_field_aliases(canonical_id: str) -> List[str]:
    """Get all aliases for a canonical field id."""
    entry = FIELD_ALIASES.get(canonical_id)
    return list(entry[1]) if entry else []


def display_name(name: str) -> str:
    """
    Resolve the display name used for a channel in the sample stream.

    Known aliases map to their canonical display name. Unknown names are
    kept, with snake_case turned into Title Case ("boost_psi" -> "Boost Psi").
    """
    canonical = canonical_field_id(name)
    if canonical is not None:
        return FIELD_ALIASES[canonical][0]
    cleaned = name.strip()
    if "_" in cleaned or cleaned.islower():
        return re.sub(r"\b\w", lambda m: m.group(0).upper(), cleaned.replace("_", " "))
    return cleaned


def is_gforce_field(name: str) -> bool:
    """True for lateral/longitudinal acceleration channels."""
    return canonical_field_id(name) in ("lat_g", "lon_g")

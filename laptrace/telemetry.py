"""
Telemetry Views for Lap Telemetry Analysis

This module turns the canonical sample stream into tabular and JSON-ready
views: a pandas DataFrame of the whole file or one lap, telemetry record
dictionaries, and a GeoJSON track path for map layers.
"""

from typing import Dict, List

import numpy as np
import pandas as pd

from . import constants
from . import lap_analysis
from . import metrics
from . import utils
from .models import Lap, ParsedFile

BASE_COLUMNS = [
    "t_ms", "elapsed_s", "lat", "lon", "speed_mps", "speed_mph", "speed_kph", "heading_deg", "distance_m",
]


def samples_to_frame(parsed: ParsedFile) -> pd.DataFrame:
    """
    Build a DataFrame with one row per sample.

    Columns are the base kinematic columns followed by one column per extra
    channel, in field-mapping order. Samples lacking a channel hold NaN.

    Args:
        parsed: Parsed log.

    Returns:
        DataFrame indexed from 0.
    """
    samples = parsed.samples
    if not samples:
        return pd.DataFrame(columns=BASE_COLUMNS + parsed.channel_names)

    x, y = metrics.project_samples(samples)
    t = np.array([s.t for s in samples], dtype=float)
    speed = np.array([s.speed_mps for s in samples], dtype=float)

    df = pd.DataFrame({
        "t_ms": t,
        "elapsed_s": (t - t[0]) / 1000.0,
        "lat": [s.lat for s in samples],
        "lon": [s.lon for s in samples],
        "speed_mps": speed,
        "speed_mph": speed * constants.MPS_TO_MPH,
        "speed_kph": speed * constants.MPS_TO_KPH,
        "heading_deg": [np.nan if s.heading is None else s.heading for s in samples],
        "distance_m": metrics.cumulative_distance(x, y),
    })

    for name in parsed.channel_names:
        df[name] = [s.extra_fields.get(name, np.nan) for s in samples]

    return df


def lap_frame(parsed: ParsedFile, lap: Lap) -> pd.DataFrame:
    """
    Slice one lap out of the sample frame with lap-relative time and distance.

    Adds ``lap_number``, ``lap_elapsed_s`` (from the interpolated crossing
    time) and ``lap_distance_m`` (from the lap's first sample).
    """
    df = samples_to_frame(parsed).iloc[lap.start_index:lap.end_index + 1].copy()
    if df.empty:
        return df

    df["lap_number"] = lap.lap_number
    df["lap_elapsed_s"] = (df["t_ms"] - lap.start_time) / 1000.0
    df["lap_distance_m"] = df["distance_m"] - df["distance_m"].iloc[0]
    return df.reset_index(drop=True)


def laps_to_frame(laps: List[Lap]) -> pd.DataFrame:
    """Lap table with one row per lap, sector columns NaN when absent."""
    rows = []
    for lap in laps:
        rows.append({
            "lap_number": lap.lap_number,
            "lap_time_s": lap.lap_time_ms / 1000.0,
            "lap_time": lap_analysis.format_lap_time(lap.lap_time_ms),
            "s1_s": lap.sectors.s1 / 1000.0 if lap.sectors else np.nan,
            "s2_s": lap.sectors.s2 / 1000.0 if lap.sectors else np.nan,
            "s3_s": lap.sectors.s3 / 1000.0 if lap.sectors else np.nan,
            "max_speed_mph": lap.max_speed_mph,
            "min_speed_mph": lap.min_speed_mph,
            "distance_m": lap.distance_m,
        })
    return pd.DataFrame(rows, columns=[
        "lap_number", "lap_time_s", "lap_time", "s1_s", "s2_s", "s3_s",
        "max_speed_mph", "min_speed_mph", "distance_m",
    ])


def build_telemetry_records(df: pd.DataFrame) -> List[Dict]:
    """
    Convert a sample DataFrame to a list of telemetry record dictionaries.

    Numbers are rounded for JSON output and NaN becomes None. Extra channel
    columns are carried over under a ``channels`` mapping.

    Args:
        df: DataFrame from samples_to_frame() or lap_frame().

    Returns:
        List of dictionaries, one per sample.
    """
    extra_columns = [
        column for column in df.columns
        if column not in BASE_COLUMNS and column not in ("lap_number", "lap_elapsed_s", "lap_distance_m")
    ]

    records = []
    for row in df.to_dict(orient="records"):
        record = {
            "t_ms": utils.round_float(row["t_ms"], 1),
            "elapsed_s": utils.round_float(row["elapsed_s"]),
            "lat": utils.round_float(row["lat"], 7),
            "lon": utils.round_float(row["lon"], 7),
            "speed_mps": utils.round_float(row["speed_mps"]),
            "speed_mph": utils.round_float(row["speed_mph"]),
            "speed_kph": utils.round_float(row["speed_kph"]),
            "heading_deg": utils.round_float(row["heading_deg"], 2),
            "distance_m": utils.round_float(row["distance_m"], 2),
            "channels": {name: utils.round_float(row[name]) for name in extra_columns},
        }
        if "lap_number" in row:
            record["lap_number"] = int(row["lap_number"])
            record["lap_elapsed_s"] = utils.round_float(row["lap_elapsed_s"])
            record["lap_distance_m"] = utils.round_float(row["lap_distance_m"], 2)
        records.append(record)

    return records


def telemetry_to_geojson(records: List[Dict]) -> Dict:
    """
    Convert telemetry records to a GeoJSON FeatureCollection.

    Creates a LineString feature for the track path and a Point feature
    marking the first sample.

    Raises:
        ValueError: If no records carry coordinates.
    """
    coordinates = [
        [record["lon"], record["lat"]]
        for record in records
        if record["lat"] is not None and record["lon"] is not None
    ]

    if not coordinates:
        raise ValueError("No valid coordinates in telemetry records.")

    line_feature = {
        "type": "Feature",
        "geometry": {"type": "LineString", "coordinates": coordinates},
        "properties": {"sampleCount": len(coordinates)},
    }
    start_feature = {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": coordinates[0]},
        "properties": {"marker": "start"},
    }
    return {"type": "FeatureCollection", "features": [line_feature, start_feature]}

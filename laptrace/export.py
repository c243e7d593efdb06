"""
Export Functions for Lap Telemetry Analysis

This module exports lap data to CSV for external analysis tools.
"""

import csv
import io
from typing import Sequence

from . import telemetry
from . import utils
from .models import Lap, ParsedFile

LAP_COLUMNS = [
    "t_ms",
    "lap_number",
    "lap_elapsed_s",
    "lap_distance_m",
    "lat",
    "lon",
    "speed_mph",
    "speed_kph",
    "heading_deg",
]


def export_lap_csv(parsed: ParsedFile, laps: Sequence[Lap], lap_number: int) -> str:
    """
    Export a single lap's samples to CSV format.

    Every extra channel of the file gets its own column after the
    kinematic columns.

    Args:
        parsed: ParsedFile the laps were detected on.
        laps: Detected laps.
        lap_number: Lap number to export (1-indexed).

    Returns:
        CSV string with one row per lap sample.

    Raises:
        ValueError: If lap_number is not found.
    """
    lap = next((lap for lap in laps if lap.lap_number == lap_number), None)
    if lap is None:
        raise ValueError(f"Lap {lap_number} not found")

    df = telemetry.lap_frame(parsed, lap)
    channels = parsed.channel_names

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(LAP_COLUMNS + channels)

    for row in df.to_dict(orient="records"):
        writer.writerow(
            [row["t_ms"], lap.lap_number]
            + [utils.round_float(row[column]) for column in LAP_COLUMNS[2:4]]
            + [row["lat"], row["lon"]]
            + [utils.round_float(row[column]) for column in LAP_COLUMNS[6:]]
            + [utils.round_float(row[name]) for name in channels]
        )

    return buffer.getvalue()

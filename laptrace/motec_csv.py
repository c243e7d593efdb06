"""
MoTeC CSV Parser

MoTeC i2 exports quoted CSV: a preamble of ``"Key","Value"`` rows (Format,
Venue, Vehicle, Driver, Log Date, Log Time, Sample Rate, ...), a channel
name row starting with ``Time``, a units row, then the data rows. Time is in
seconds from the start of the log.
"""

import logging
import re
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from . import conditioning
from . import fields
from .config import ProcessingConfig
from .errors import MalformedData
from .models import ParsedFile
from .parser_utils import (
    Content, SampleAccumulator, decode_text, parse_number, speed_to_mps_factor, split_delimited, split_lines,
)

logger = logging.getLogger(__name__)

FORMAT_NAME = "MoTeC CSV"

INDICATORS = (
    re.compile(r'^"?sample\s*rate"?', re.IGNORECASE),
    re.compile(r'^"?beacon\s*markers?"?', re.IGNORECASE),
    re.compile(r'^"?log\s*date"?', re.IGNORECASE),
    re.compile(r'^"?log\s*time"?', re.IGNORECASE),
    re.compile(r'^"?device"?\s*,', re.IGNORECASE),
    re.compile(r'^"?driver"?\s*,', re.IGNORECASE),
)
MIN_INDICATOR_HITS = 3

HEADER_SCAN_LINES = 30

TIME_NAMES = ("time", "t")
LAT_NAMES = ("gps latitude", "gps_latitude", "latitude", "lat")
LON_NAMES = ("gps longitude", "gps_longitude", "longitude", "lon", "long")
SPEED_NAMES = ("ground speed", "gps speed", "speed", "gps_speed")
HEADING_NAMES = ("gps heading", "gps_heading", "heading", "course", "gps course")


def detect(content: Content) -> bool:
    """True if at least three MoTeC preamble keys appear in the first 20 lines."""
    text = decode_text(content if isinstance(content, str) else content[:8192])
    hits = sum(
        1
        for line in split_lines(text)[:20]
        for pattern in INDICATORS
        if pattern.search(line)
    )
    return hits >= MIN_INDICATOR_HITS


def _find_column(names: Sequence[str], candidates: Sequence[str]) -> Optional[int]:
    for candidate in candidates:
        if candidate in names:
            return names.index(candidate)
    return None


def _parse_start_date(metadata: Dict[str, str]) -> Optional[datetime]:
    date = metadata.get("log date", "")
    time = metadata.get("log time", "")
    if not date:
        return None
    for fmt in ("%d/%m/%Y %H:%M:%S", "%d/%m/%Y", "%Y-%m-%d %H:%M:%S"):
        try:
            return datetime.strptime(f"{date} {time}".strip() if "%H" in fmt else date, fmt)
        except ValueError:
            continue
    logger.debug("Unrecognized MoTeC log date %r %r", date, time)
    return None


def parse(content: Content, config: Optional[ProcessingConfig] = None) -> ParsedFile:
    """
    Parse a MoTeC CSV export into a ParsedFile.

    Every channel other than time, position, speed and heading is kept as an
    extra field under its canonical display name, with its unit from the
    units row.

    Args:
        content: Raw bytes or text of the file.
        config: Processing thresholds. Defaults apply when None.

    Returns:
        ParsedFile with the logged time base.

    Raises:
        MalformedData: If the channel header row or the GPS latitude and
            longitude channels are missing.
        NoValidSamples: If every row was filtered out.
    """
    lines = split_lines(decode_text(content))

    metadata: Dict[str, str] = {}
    header_idx = None
    for idx, line in enumerate(lines[:HEADER_SCAN_LINES]):
        row = split_delimited(line)
        if not row or not row[0]:
            continue
        key = row[0].lower()
        if key in TIME_NAMES and len(row) >= 2:
            header_idx = idx
            break
        if len(row) >= 2 and row[1]:
            metadata[key] = row[1]

    if header_idx is None:
        raise MalformedData("could not find channel header row", FORMAT_NAME)

    raw_names = split_delimited(lines[header_idx])
    names: List[str] = [name.lower() for name in raw_names]
    units = split_delimited(lines[header_idx + 1]) if header_idx + 1 < len(lines) else []
    units += [""] * (len(names) - len(units))

    time_col = _find_column(names, TIME_NAMES)
    lat_col = _find_column(names, LAT_NAMES)
    lon_col = _find_column(names, LON_NAMES)
    speed_col = _find_column(names, SPEED_NAMES)
    heading_col = _find_column(names, HEADING_NAMES)
    if lat_col is None or lon_col is None:
        raise MalformedData("missing GPS Latitude/Longitude channels", FORMAT_NAME)

    speed_factor = speed_to_mps_factor(units[speed_col]) if speed_col is not None else 1.0

    accumulator = SampleAccumulator(FORMAT_NAME, config)
    core = {time_col, lat_col, lon_col, speed_col, heading_col}
    extra_columns: Dict[int, str] = {}
    for idx, raw_name in enumerate(raw_names):
        if idx in core or not raw_name:
            continue
        name = fields.display_name(raw_name)
        if name in extra_columns.values():
            continue
        extra_columns[idx] = name
        accumulator.register_channel(name, units[idx] or None)

    def value_at(values: List[str], idx: Optional[int]) -> float:
        if idx is None or idx >= len(values):
            return float("nan")
        return parse_number(values[idx])

    for line in lines[header_idx + 2:]:
        if not line.strip():
            continue
        values = split_delimited(line)

        extras = {}
        for idx, name in extra_columns.items():
            value = value_at(values, idx)
            if fields.is_gforce_field(name) and value == value:
                value = conditioning.normalize_native_g(value)
            extras[name] = value

        accumulator.add(
            t=value_at(values, time_col) * 1000.0 if time_col is not None else 0.0,
            lat=value_at(values, lat_col),
            lon=value_at(values, lon_col),
            speed_mps=value_at(values, speed_col) * speed_factor,
            heading=value_at(values, heading_col),
            extra_fields=extras,
        )

    return accumulator.build(start_date=_parse_start_date(metadata), metadata=metadata)

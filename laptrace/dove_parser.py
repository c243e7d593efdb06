"""
Dove CSV Parser

Dove loggers write a plain CSV: one header row followed by data rows, with
absolute Unix timestamps in milliseconds and speed in mph. The core columns
are ``timestamp, lat, lng, speed_mph``; ``sats, hdop, altitude_m`` and any
engine channels (``rpm, exhaust_temp_c, water_temp_c``, ...) are optional.

Dove logs carry no heading, so headings are derived from the GPS track.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from . import constants
from . import fields
from .config import ProcessingConfig
from .errors import MalformedData
from .models import ParsedFile
from .parser_utils import Content, SampleAccumulator, decode_text, parse_number, split_delimited, split_lines

logger = logging.getLogger(__name__)

FORMAT_NAME = "Dove CSV"

REQUIRED_HEADERS = ("timestamp", "lat", "lng", "speed_mph")

# Epoch-ms window accepted as a Dove timestamp (2017 to 2033)
MIN_EPOCH_MS = 1.5e12
MAX_EPOCH_MS = 2.0e12

KNOWN_EXTRAS = {
    "sats": "Satellites",
    "hdop": "HDOP",
    "altitude_m": "Altitude",
    "rpm": "RPM",
    "exhaust_temp_c": "EGT",
    "water_temp_c": "Water Temp",
}

UNITS = {
    "Altitude": "m",
    "EGT": "C",
    "Water Temp": "C",
}


def _header(lines) -> list:
    return [name.lower() for name in split_delimited(lines[0])] if lines else []


def detect(content: Content) -> bool:
    """
    True for a header naming the core Dove columns followed by a row whose
    first field is an epoch timestamp in milliseconds.
    """
    text = decode_text(content if isinstance(content, str) else content[:4096])
    lines = split_lines(text)[:2]
    if len(lines) < 2:
        return False

    header = _header(lines)
    if not all(name in header for name in REQUIRED_HEADERS):
        return False
    if any(name in ("gps_latitude", "gps_longitude") for name in header):
        return False

    first = split_delimited(lines[1])
    timestamp = parse_number(first[0]) if first else float("nan")
    return MIN_EPOCH_MS <= timestamp <= MAX_EPOCH_MS


def parse(content: Content, config: Optional[ProcessingConfig] = None) -> ParsedFile:
    """
    Parse a Dove CSV file into a ParsedFile.

    Args:
        content: Raw bytes or text of the file.
        config: Processing thresholds. Defaults apply when None.

    Returns:
        ParsedFile with time relative to the first accepted row and a UTC
        start date.

    Raises:
        MalformedData: If a core column is missing.
        NoValidSamples: If every row was filtered out.
    """
    lines = split_lines(decode_text(content))
    header = _header(lines)
    if not header:
        raise MalformedData("empty file", FORMAT_NAME)

    column = {name: idx for idx, name in reversed(list(enumerate(header)))}
    missing = [name for name in REQUIRED_HEADERS if name not in column]
    if missing:
        raise MalformedData(f"missing required column(s): {', '.join(missing)}", FORMAT_NAME)

    extra_columns = {
        idx: KNOWN_EXTRAS.get(name) or fields.display_name(name)
        for idx, name in enumerate(header)
        if name not in REQUIRED_HEADERS and name
    }

    accumulator = SampleAccumulator(FORMAT_NAME, config)
    for idx, name in extra_columns.items():
        accumulator.register_channel(name, UNITS.get(name))

    base_timestamp = None
    for line in lines[1:]:
        if not line.strip():
            continue
        values = split_delimited(line)
        if len(values) < len(header):
            continue

        timestamp = parse_number(values[column["timestamp"]])
        if timestamp != timestamp:
            continue
        if base_timestamp is None:
            base_timestamp = timestamp

        extras = {name: parse_number(values[idx]) for idx, name in extra_columns.items()}
        if extras.get("RPM", 0.0) < 0:
            del extras["RPM"]

        accepted = accumulator.add(
            t=timestamp - base_timestamp,
            lat=parse_number(values[column["lat"]]),
            lon=parse_number(values[column["lng"]]),
            speed_mps=parse_number(values[column["speed_mph"]]) * constants.MPH_TO_MPS,
            extra_fields=extras,
        )
        if not accepted and len(accumulator) == 0:
            base_timestamp = None

    start_date = None
    if base_timestamp is not None:
        start_date = datetime.fromtimestamp(base_timestamp / 1000.0, tz=timezone.utc)

    return accumulator.build(start_date=start_date, derive_headings=True)

"""
Alfano CSV Parser

Alfano loggers (exported from the ADA app or Off Camber Data) write CSV with
an optional metadata preamble (``Driver:``, ``Track:``, ``Date:``, ...),
a header row naming the channels, and then the data rows. Files use either
``,`` or ``;`` as the delimiter. Speed is in km/h.
"""

import logging
import re
from typing import Dict, List, Optional, Tuple

from . import conditioning
from . import constants
from . import fields
from .config import ProcessingConfig
from .errors import MalformedData
from .models import ParsedFile
from .parser_utils import (
    Content, SampleAccumulator, decode_text, parse_number, speed_to_mps_factor, split_delimited, split_lines,
)

logger = logging.getLogger(__name__)

FORMAT_NAME = "Alfano CSV"

# Channel names only Alfano exports use
ALFANO_HEADERS = frozenset([
    "gps_latitude", "gps_longitude", "gps_speed", "gps_heading", "gps_altitude",
    "latacc", "lonacc", "lat acc", "lon acc", "lateral acc", "longitudinal acc",
    "rpm", "t1", "t2", "egt", "water", "oil", "throttle", "lap", "laptime",
])

METADATA_PATTERN = re.compile(r"^(driver|track|championship|session|date|kart|engine)\s*:\s*(.*)$", re.IGNORECASE)

HEADER_SCAN_LINES = 50
MIN_HEADER_MATCHES = 2

# Values above this are ms rather than seconds
MS_TIME_THRESHOLD = 100000

# Alfano header -> role; extra channels map to their display name
COLUMN_MAPPINGS: Dict[str, str] = {
    "time": "time",
    "timestamp": "time",
    "elapsed": "time",
    "elapsed time": "time",
    "time (s)": "time",
    "time (ms)": "time_ms",
    "gps_latitude": "lat",
    "gps_longitude": "lon",
    "latitude": "lat",
    "longitude": "lon",
    "lat": "lat",
    "lon": "lon",
    "long": "lon",
    "gps_speed": "speed",
    "speed": "speed",
    "speed (km/h)": "speed",
    "speed (kph)": "speed",
    "speed (mph)": "speed",
    "velocity": "speed",
    "gps_heading": "heading",
    "heading": "heading",
    "course": "heading",
    "gps_altitude": "Altitude",
    "lap": "lap",
    "laptime": "laptime",
    "lap time": "laptime",
    "satellites": "Satellites",
    "sats": "Satellites",
}

_CORE_ROLES = ("time", "time_ms", "lat", "lon", "speed", "heading", "lap", "laptime")


def sniff_delimiter(lines: List[str]) -> str:
    """Pick ``,`` or ``;`` from the first lines that contain either."""
    for line in lines[:20]:
        if "," in line:
            return ","
        if ";" in line:
            return ";"
    return ","


def _role(column: str) -> Optional[str]:
    normalized = column.strip().lower()
    role = COLUMN_MAPPINGS.get(normalized)
    if role is None and fields.canonical_field_id(normalized) is not None:
        role = fields.display_name(normalized)
    return role


def detect(content: Content) -> bool:
    """
    True for Alfano channel names in a delimited row, or an Alfano metadata
    preamble, in content that is not VBO.
    """
    text = decode_text(content if isinstance(content, str) else content[:3000])[:3000]
    lowered = text.lower()
    if "[header]" in lowered or "[data]" in lowered:
        return False

    lines = split_lines(text)[:20]
    if any(METADATA_PATTERN.match(line.strip()) for line in lines):
        return True

    delimiter = sniff_delimiter(lines)
    for line in lines:
        tokens = {token.lower() for token in split_delimited(line, delimiter)}
        if tokens & ALFANO_HEADERS:
            return True
    return False


def find_header(lines: List[str], delimiter: str) -> Tuple[int, Dict[int, str]]:
    """
    Locate the header row and map its columns to roles.

    The header is the first row, within the first 50, with at least two
    recognized column names including latitude or speed.

    Raises:
        MalformedData: If no such row exists.
    """
    for idx, line in enumerate(lines[:HEADER_SCAN_LINES]):
        if not line.strip():
            continue
        roles: Dict[int, str] = {}
        for col, name in enumerate(split_delimited(line, delimiter)):
            role = _role(name)
            if role is not None and role not in roles.values():
                roles[col] = role
        found = set(roles.values())
        if len(roles) >= MIN_HEADER_MATCHES and ("lat" in found or "speed" in found):
            return idx, roles
    raise MalformedData("could not find a valid header row", FORMAT_NAME)


def _time_ms(row: Dict[str, str]) -> float:
    if "time_ms" in row:
        return parse_number(row["time_ms"])
    value = parse_number(row.get("time"))
    return value if value > MS_TIME_THRESHOLD else value * 1000.0


def parse(content: Content, config: Optional[ProcessingConfig] = None) -> ParsedFile:
    """
    Parse an Alfano CSV export into a ParsedFile.

    Args:
        content: Raw bytes or text of the file.
        config: Processing thresholds. Defaults apply when None.

    Returns:
        ParsedFile with time rebased to the first data row; preamble lines
        end up in ``metadata``.

    Raises:
        MalformedData: If no header row is found or it has no lat/lon.
        NoValidSamples: If every row was filtered out.
    """
    lines = split_lines(decode_text(content))
    delimiter = sniff_delimiter(lines)
    header_idx, roles = find_header(lines, delimiter)
    if "lat" not in roles.values() or "lon" not in roles.values():
        raise MalformedData("header row has no latitude/longitude columns", FORMAT_NAME)

    header = split_delimited(lines[header_idx], delimiter)
    speed_header = next((header[col] for col, role in roles.items() if role == "speed"), "")
    speed_factor = speed_to_mps_factor(speed_header)

    metadata: Dict[str, str] = {}
    for line in lines[:header_idx]:
        match = METADATA_PATTERN.match(line.strip())
        if match:
            metadata[match.group(1).lower()] = match.group(2).strip(" ,;")

    accumulator = SampleAccumulator(FORMAT_NAME, config)
    for role in roles.values():
        if role not in _CORE_ROLES:
            accumulator.register_channel(role)

    base_time = None
    for line in lines[header_idx + 1:]:
        text = line.strip()
        if not text or METADATA_PATTERN.match(text):
            continue
        values = split_delimited(text, delimiter)
        if len(values) < 3:
            continue
        row = {role: values[col] for col, role in roles.items() if col < len(values)}

        time_ms = _time_ms(row)
        if time_ms != time_ms:
            time_ms = 0.0
        if base_time is None:
            base_time = time_ms
        t = time_ms - base_time
        if t < 0:
            t += constants.MS_PER_DAY

        extras = {}
        for role, raw in row.items():
            if role in _CORE_ROLES:
                continue
            value = parse_number(raw)
            if fields.is_gforce_field(role) and value == value:
                value = conditioning.normalize_native_g(value)
            extras[role] = value
        if extras.get("RPM", 0.0) < 0:
            del extras["RPM"]

        accepted = accumulator.add(
            t=t,
            lat=parse_number(row.get("lat")),
            lon=parse_number(row.get("lon")),
            speed_mps=parse_number(row.get("speed")) * speed_factor,
            heading=parse_number(row.get("heading")),
            extra_fields=extras,
        )
        if not accepted and len(accumulator) == 0:
            base_time = None

    return accumulator.build(metadata=metadata)

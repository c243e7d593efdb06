"""
VBO Parser for Racelogic VBOX Data Files

VBO files are plain text split into bracketed sections: ``[header]`` with
free-form metadata, ``[column names]`` with one whitespace-separated line of
channel names, and ``[data]`` with whitespace-separated rows. Speeds are in
km/h; coordinates are decimal degrees or ``DDDMM.MMMMM`` minutes; time is
``hhmmss.sss`` of day.
"""

import logging
import re
from datetime import datetime
from typing import Dict, List, Optional

from . import conditioning
from . import constants
from . import fields
from .config import ProcessingConfig
from .errors import MalformedData
from .models import ParsedFile
from .parser_utils import Content, SampleAccumulator, decode_text, parse_number, split_lines

logger = logging.getLogger(__name__)

FORMAT_NAME = "VBO"

SECTION_MARKERS = ("[header]", "[column names]", "[data]")

# VBO column name -> canonical role; extras use their display name
KNOWN_COLUMNS: Dict[str, str] = {
    "sats": "satellites",
    "satellites": "satellites",
    "time": "time",
    "lat": "lat",
    "latitude": "lat",
    "long": "lon",
    "lon": "lon",
    "longitude": "lon",
    "velocity": "speed",
    "speed": "speed",
    "velocity_kmh": "speed",
    "heading": "heading",
    "height": "altitude",
    "altitude": "altitude",
    "long_accel": "lon_g",
    "longacc": "lon_g",
    "lat_accel": "lat_g",
    "latacc": "lat_g",
    "yaw_rate": "yaw_rate",
    "yawrate": "yaw_rate",
    "distance": "distance",
}

# Standard VBOX order when no usable column names are present
POSITIONAL_COLUMNS = ("satellites", "time", "lat", "lon", "speed", "heading", "altitude")

_EXTRA_NAMES = {
    "satellites": "Satellites",
    "altitude": "Altitude",
    "lat_g": constants.LAT_G_FIELD,
    "lon_g": constants.LON_G_FIELD,
    "yaw_rate": "Yaw Rate",
    "distance": "Distance",
}

_CORE_ROLES = ("time", "lat", "lon", "speed", "heading")

_CREATED_RE = re.compile(r"created on (\d{1,2}/\d{1,2}/\d{4}) at (\d{1,2}:\d{2}:\d{2})", re.IGNORECASE)


def detect(content: Content) -> bool:
    if not isinstance(content, str):
        content = bytes(content[:2000]).decode("utf-8", errors="replace")
    head = content[:2000].lower()
    return any(marker in head for marker in SECTION_MARKERS)


def parse_vbo_time(text: str) -> float:
    """
    Parse a VBO time field to ms of day.

    Values of 100000 or more are ``hhmmss.sss``; smaller values are
    seconds since midnight.
    """
    value = parse_number(text)
    if value != value:
        return value
    if value >= 100000:
        hours, rest = divmod(value, 10000)
        minutes, seconds = divmod(rest, 100)
        return (hours * 3600 + minutes * 60 + seconds) * 1000.0
    return value * 1000.0


def parse_vbo_coordinate(text: str) -> float:
    """
    Parse a VBO coordinate to decimal degrees.

    Values up to 180 in magnitude are already degrees; larger values are
    ``DDDMM.MMMMM`` and are converted.
    """
    value = parse_number(text)
    if value != value or abs(value) <= 180:
        return value
    sign = -1.0 if value < 0 else 1.0
    degrees, minutes = divmod(abs(value), 100)
    return sign * (degrees + minutes / 60.0)


def _find_sections(lines: List[str]) -> Dict[str, int]:
    sections = {}
    for idx, line in enumerate(lines):
        marker = line.strip().lower()
        if marker in SECTION_MARKERS:
            sections[marker] = idx
    return sections


def _column_roles(names: List[str]) -> Dict[int, str]:
    """Map column index -> role, or to a display name for unknown channels."""
    roles = {}
    for idx, name in enumerate(names):
        role = KNOWN_COLUMNS.get(name.lower())
        if role is None:
            canonical = fields.canonical_field_id(name)
            role = canonical if canonical in _EXTRA_NAMES else None
        if role is None:
            role = fields.display_name(name)
        if role not in roles.values():
            roles[idx] = role
    return roles


def _parse_created(lines: List[str]) -> Optional[datetime]:
    """Read the "File created on dd/mm/yyyy at HH:MM:SS" banner line."""
    for line in lines[:5]:
        match = _CREATED_RE.search(line)
        if match:
            try:
                return datetime.strptime(" ".join(match.groups()), "%d/%m/%Y %H:%M:%S")
            except ValueError:
                logger.debug("Unparseable VBO banner date %r", line)
    return None


def parse(content: Content, config: Optional[ProcessingConfig] = None) -> ParsedFile:
    """
    Parse a VBO file into a ParsedFile.

    Args:
        content: Raw bytes or text of the file.
        config: Processing thresholds. Defaults apply when None.

    Returns:
        ParsedFile with time rebased to the first data row.

    Raises:
        MalformedData: If there is no ``[data]`` section or no way to locate
            latitude/longitude.
        NoValidSamples: If every row was filtered out.
    """
    lines = split_lines(decode_text(content))
    sections = _find_sections(lines)
    data_start = sections.get("[data]")
    if data_start is None:
        raise MalformedData("no [data] section found", FORMAT_NAME)

    roles: Dict[int, str] = {}
    names_start = sections.get("[column names]")
    if names_start is not None and names_start < data_start:
        names_line = next((line for line in lines[names_start + 1:data_start] if line.strip()), "")
        roles = _column_roles(names_line.split())

    if "lat" not in roles.values() or "lon" not in roles.values():
        roles = {}

    accumulator = SampleAccumulator(FORMAT_NAME, config)
    base_time = None

    for line in lines[data_start + 1:]:
        text = line.strip()
        if not text or text.startswith("["):
            continue
        values = text.split()
        if len(values) < 3:
            continue

        row_roles = roles
        if not row_roles:
            if len(values) < 5:
                continue
            row_roles = dict(enumerate(POSITIONAL_COLUMNS[:len(values)]))

        row = {role: values[idx] for idx, role in row_roles.items() if idx < len(values)}
        if "lat" not in row or "lon" not in row:
            continue

        time_ms = parse_vbo_time(row["time"]) if "time" in row else 0.0
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
            if role in ("lat_g", "lon_g"):
                value = conditioning.normalize_native_g(value) if value == value else value
            extras[_EXTRA_NAMES.get(role, role)] = value

        accepted = accumulator.add(
            t=t,
            lat=parse_vbo_coordinate(row["lat"]),
            lon=parse_vbo_coordinate(row["lon"]),
            speed_mps=parse_number(row.get("speed")) / constants.MPS_TO_KPH,
            heading=parse_number(row.get("heading")),
            extra_fields=extras,
        )
        if not accepted and len(accumulator) == 0:
            base_time = None

    created = _parse_created(lines)
    return accumulator.build(start_date=created)

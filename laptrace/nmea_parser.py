"""
NMEA 0183 Parser

Many GPS data loggers simply record the receiver's NMEA sentence stream.
This parser reads the two sentences that carry a fix:

- ``$xxRMC``: time, status, position, speed over ground (knots), course and
  date.
- ``$xxGGA``: time, position, fix quality, satellites, HDOP and altitude.

Sentences sharing a UTC time are merged into one sample. Sentences with a
bad checksum are dropped.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from functools import reduce
from typing import Dict, List, Optional

from . import constants
from .config import ProcessingConfig
from .models import ParsedFile
from .parser_utils import Content, SampleAccumulator, decode_text, parse_number, split_lines

logger = logging.getLogger(__name__)

FORMAT_NAME = "NMEA"

SENTENCE_PATTERN = re.compile(r"^\$(?:GP|GN|GL|GA|BD)(RMC|GGA),")

DETECT_LINES = 50


def detect(content: Content) -> bool:
    text = decode_text(content if isinstance(content, str) else content[:8192])
    return any(SENTENCE_PATTERN.match(line.strip()) for line in split_lines(text)[:DETECT_LINES])


def checksum_ok(sentence: str) -> bool:
    """
    Verify the ``*hh`` checksum of a sentence.

    Sentences without a checksum are accepted.
    """
    body, sep, checksum = sentence.lstrip("$").partition("*")
    if not sep:
        return True
    try:
        expected = int(checksum[:2], 16)
    except ValueError:
        return False
    return reduce(lambda acc, ch: acc ^ ord(ch), body, 0) == expected


def parse_coordinate(value: str, hemisphere: str) -> float:
    """Convert ``[d]ddmm.mmmm`` plus N/S/E/W to signed decimal degrees."""
    raw = parse_number(value)
    if raw != raw:
        return raw
    degrees, minutes = divmod(raw, 100)
    decimal = degrees + minutes / 60.0
    return -decimal if hemisphere.upper() in ("S", "W") else decimal


def parse_time_of_day(value: str) -> float:
    """Convert ``hhmmss.sss`` to ms since midnight."""
    raw = parse_number(value)
    if raw != raw:
        return raw
    hours, rest = divmod(raw, 10000)
    minutes, seconds = divmod(rest, 100)
    return (hours * 3600 + minutes * 60 + seconds) * 1000.0


def _parse_date(value: str) -> Optional[datetime]:
    try:
        return datetime.strptime(value, "%d%m%y").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def _read_fixes(lines: List[str]) -> Dict[str, Dict[str, object]]:
    """Merge RMC/GGA sentences into one record per UTC time field, in order."""
    fixes: Dict[str, Dict[str, object]] = {}
    dropped = 0

    for line in lines:
        sentence = line.strip()
        match = SENTENCE_PATTERN.match(sentence)
        if not match:
            continue
        if not checksum_ok(sentence):
            dropped += 1
            continue

        parts = sentence.split("*", 1)[0].split(",")
        kind = match.group(1)

        if kind == "RMC" and len(parts) >= 10:
            if parts[2].upper() != "A":
                continue
            fix = fixes.setdefault(parts[1], {})
            fix["lat"] = parse_coordinate(parts[3], parts[4])
            fix["lon"] = parse_coordinate(parts[5], parts[6])
            fix["speed"] = parse_number(parts[7]) * constants.KNOTS_TO_MPS
            fix["heading"] = parse_number(parts[8])
            fix["date"] = parts[9]
        elif kind == "GGA" and len(parts) >= 10:
            if not parts[6] or parse_number(parts[6]) == 0:
                continue
            fix = fixes.setdefault(parts[1], {})
            fix.setdefault("lat", parse_coordinate(parts[2], parts[3]))
            fix.setdefault("lon", parse_coordinate(parts[4], parts[5]))
            fix["Satellites"] = parse_number(parts[7])
            fix["HDOP"] = parse_number(parts[8])
            fix["Altitude"] = parse_number(parts[9])

    if dropped:
        logger.debug("%s: dropped %d sentence(s) with bad checksums", FORMAT_NAME, dropped)
    return fixes


def parse(content: Content, config: Optional[ProcessingConfig] = None) -> ParsedFile:
    """
    Parse an NMEA sentence log into a ParsedFile.

    Time is rebased to the first fix and kept monotonic across midnight. The
    first RMC date plus the first fix time gives a UTC start date.

    Args:
        content: Raw bytes or text of the log.
        config: Processing thresholds. Defaults apply when None.

    Returns:
        ParsedFile with one sample per UTC epoch.

    Raises:
        NoValidSamples: If no valid fix survives filtering.
    """
    fixes = _read_fixes(split_lines(decode_text(content)))
    accumulator = SampleAccumulator(FORMAT_NAME, config)
    for name, unit in (("Satellites", None), ("HDOP", None), ("Altitude", "m")):
        if any(name in fix for fix in fixes.values()):
            accumulator.register_channel(name, unit)

    base_time = None
    day_offset = 0.0
    previous = None
    start_date = None

    for time_field, fix in fixes.items():
        time_of_day = parse_time_of_day(time_field)
        if time_of_day != time_of_day:
            continue
        if previous is not None and previous - time_of_day > constants.MS_PER_DAY / 2:
            day_offset += constants.MS_PER_DAY
        previous = time_of_day

        absolute = time_of_day + day_offset
        if base_time is None:
            base_time = absolute

        accepted = accumulator.add(
            t=absolute - base_time,
            lat=fix.get("lat", float("nan")),
            lon=fix.get("lon", float("nan")),
            speed_mps=fix.get("speed", 0.0),
            heading=fix.get("heading"),
            extra_fields={name: fix[name] for name in ("Satellites", "HDOP", "Altitude") if name in fix},
        )
        if not accepted:
            if len(accumulator) == 0:
                base_time = None
            continue

        if start_date is None:
            date = _parse_date(str(fix.get("date", "")))
            if date is not None:
                start_date = date + timedelta(milliseconds=time_of_day - (absolute - base_time))

    return accumulator.build(start_date=start_date)

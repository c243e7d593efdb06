"""
Shared Parsing Helpers for Lap Telemetry Analysis

This module holds the pieces every format normalizer shares: text decoding,
unit detection, coordinate validation, and the SampleAccumulator that applies
the teleportation filter and assembles the final ParsedFile.
"""

import csv
import io
import logging
from collections import Counter
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Union

from . import conditioning
from . import constants
from . import utils
from .config import ProcessingConfig, resolve_config
from .errors import NoValidSamples
from .models import Bounds, FieldMapping, ParsedFile, Sample

logger = logging.getLogger(__name__)

Content = Union[bytes, bytearray, memoryview, str]


def decode_text(content: Content) -> str:
    """
    Decode log content to text.

    Bytes are decoded as UTF-8 (undecodable bytes replaced) and a leading
    byte-order mark is dropped.
    """
    if isinstance(content, str):
        text = content
    else:
        text = bytes(content).decode("utf-8", errors="replace")
    return text.lstrip("\ufeff")


def split_lines(text: str) -> List[str]:
    return text.splitlines()


def split_delimited(line: str, delimiter: str = ",") -> List[str]:
    """Split one delimited line, honouring double quotes, and strip each field."""
    row = next(csv.reader(io.StringIO(line), delimiter=delimiter, skipinitialspace=True), [])
    return [field.strip() for field in row]


def parse_number(text: Optional[str]) -> float:
    """Parse a numeric field, returning NaN for blanks and junk."""
    if text is None:
        return float("nan")
    return utils.safe_float(text.strip().strip('"'))


def speed_to_mps_factor(unit_text: Optional[str]) -> float:
    """
    Detect a speed unit from channel metadata text.

    Args:
        unit_text: Unit or header text, e.g. "mph", "km/h", "Speed (m/s)".

    Returns:
        Multiplier converting the logged value to meters/second. Anything
        not recognized as mph, m/s or knots is assumed to be km/h.
    """
    unit = (unit_text or "").lower()
    if "mph" in unit:
        return constants.MPH_TO_MPS
    if "m/s" in unit or "mps" in unit:
        return 1.0
    if "knot" in unit or "kn" in unit.split() or "(kn)" in unit:
        return constants.KNOTS_TO_MPS
    return 1.0 / constants.MPS_TO_KPH


def is_valid_coordinate(lat: float, lon: float) -> bool:
    """True for finite, non-zero coordinates inside the WGS84 range."""
    if not (utils.is_finite(lat) and utils.is_finite(lon)):
        return False
    if lat == 0 or lon == 0:
        return False
    return abs(lat) <= 90.0 and abs(lon) <= 180.0


class SampleAccumulator:
    """
    Collects accepted samples for one file and builds the ParsedFile.

    Every normalizer feeds its candidate rows through ``add``, which enforces
    the stream invariants: valid coordinates, non-decreasing time, a reported
    speed below the plausibility ceiling, and no teleportation relative to the
    last *accepted* sample.
    """

    def __init__(self, format_name: str, config: Optional[ProcessingConfig] = None) -> None:
        self.format_name = format_name
        self.config = resolve_config(config)
        self.samples: List[Sample] = []
        self.rejected: Counter = Counter()
        self._units: Dict[str, Optional[str]] = {}
        self._min_lat = self._min_lon = float("inf")
        self._max_lat = self._max_lon = float("-inf")

    def __len__(self) -> int:
        return len(self.samples)

    def register_channel(self, name: str, unit: Optional[str] = None) -> None:
        """Declare an extra channel (and its unit) in display order."""
        if name not in self._units or (unit and not self._units[name]):
            self._units[name] = unit or None

    def _reject(self, reason: str) -> bool:
        self.rejected[reason] += 1
        return False

    def add(self, t: float, lat: float, lon: float, speed_mps: float,
            heading: Optional[float] = None,
            extra_fields: Optional[Mapping[str, float]] = None) -> bool:
        """
        Offer one fix to the stream.

        Args:
            t: Elapsed time in ms.
            lat, lon: Position in degrees.
            speed_mps: Logged speed in m/s (NaN or negative is stored as 0).
            heading: Optional heading in degrees, normalized to [0, 360).
            extra_fields: Extra channel values; non-finite values are dropped.

        Returns:
            True if the sample was accepted.
        """
        if not is_valid_coordinate(lat, lon):
            return self._reject("coordinate")
        if not utils.is_finite(t):
            return self._reject("time")

        max_speed = self.config.max_plausible_speed_mps
        speed = speed_mps if utils.is_finite(speed_mps) and speed_mps > 0 else 0.0
        if speed >= max_speed:
            return self._reject("speed")

        if self.samples:
            prev = self.samples[-1]
            dt_ms = t - prev.t
            if dt_ms < 0:
                return self._reject("order")
            dist = utils.haversine_m(prev.lat, prev.lon, lat, lon)
            # Identical timestamps are judged as if 1 ms apart
            implied = dist / (max(dt_ms, 1.0) / 1000.0)
            if implied > max_speed:
                logger.debug("%s GPS teleportation: %.0fm in %.3fs", self.format_name, dist, dt_ms / 1000.0)
                return self._reject("teleport")

        extras: Dict[str, float] = {}
        for name, value in (extra_fields or {}).items():
            if utils.is_finite(value):
                extras[name] = float(value)
                self.register_channel(name)

        heading = utils.normalize_heading(heading) if utils.is_finite(heading) else None
        self.samples.append(Sample(t=float(t), lat=lat, lon=lon, speed_mps=speed,
                                   heading=heading, extra_fields=extras))

        self._min_lat = min(self._min_lat, lat)
        self._max_lat = max(self._max_lat, lat)
        self._min_lon = min(self._min_lon, lon)
        self._max_lon = max(self._max_lon, lon)
        return True

    def build(self, start_date: Optional[datetime] = None,
              metadata: Optional[Mapping[str, str]] = None,
              derive_headings: bool = False) -> ParsedFile:
        """
        Finish the stream and build the immutable ParsedFile.

        G-forces are derived from GPS when no native lateral or longitudinal g
        channel was logged.

        Args:
            start_date: Absolute start of the log, if known.
            metadata: Preamble/header key-value pairs.
            derive_headings: Fill missing headings from the GPS track.

        Returns:
            ParsedFile for this log.

        Raises:
            NoValidSamples: If no sample was accepted.
        """
        if not self.samples:
            raise NoValidSamples(self.format_name, sum(self.rejected.values()))

        if self.rejected:
            logger.debug("%s: accepted %d samples, rejected %s", self.format_name,
                         len(self.samples), dict(self.rejected))

        samples = self.samples
        if derive_headings:
            samples = conditioning.fill_missing_headings(samples)
        if not conditioning.has_native_gforce(samples):
            samples = conditioning.apply_gforce_calculations(samples, window=self.config.gforce_window)

        names = [
            name for name in (constants.LAT_G_FIELD, constants.LON_G_FIELD)
            if any(name in sample.extra_fields for sample in samples)
        ]
        names += [name for name in self._units if name not in names]
        mappings = tuple(
            FieldMapping(index=idx, name=name, unit=self._units.get(name))
            for idx, name in enumerate(names)
        )

        return ParsedFile(
            samples=tuple(samples),
            field_mappings=mappings,
            bounds=Bounds(self._min_lat, self._max_lat, self._min_lon, self._max_lon),
            duration=samples[-1].t,
            start_date=start_date,
            source_format=self.format_name,
            metadata=dict(metadata or {}),
        )

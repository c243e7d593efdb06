"""
Data Model for Lap Telemetry Analysis

This module defines the canonical sample stream and the read-only views
derived from it: parsed files, course definitions, laps, sector splits,
alignment results and the optimal lap summary.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Tuple

from . import constants


@dataclass(frozen=True)
class Sample:
    """One timestamped vehicle state in the canonical sample stream."""

    t: float  # ms since the first sample of the file
    lat: float
    lon: float
    speed_mps: float
    heading: Optional[float] = None  # degrees, [0, 360)
    extra_fields: Mapping[str, float] = field(default_factory=dict)

    @property
    def speed_mph(self) -> float:
        return self.speed_mps * constants.MPS_TO_MPH

    @property
    def speed_kph(self) -> float:
        return self.speed_mps * constants.MPS_TO_KPH


@dataclass(frozen=True)
class FieldMapping:
    """A named extra channel and whether it is shown by default."""

    index: int
    name: str
    unit: Optional[str] = None
    enabled: bool = True


@dataclass(frozen=True)
class Bounds:
    """GPS bounding box of a parsed file."""

    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float


@dataclass(frozen=True)
class ParsedFile:
    """
    Normalized output of one ingested log file.

    Created once per file and never mutated; laps and alignment results refer
    to ``samples`` by index.
    """

    samples: Tuple[Sample, ...]
    field_mappings: Tuple[FieldMapping, ...]
    bounds: Bounds
    duration: float  # ms
    start_date: Optional[datetime] = None
    source_format: str = ""
    metadata: Mapping[str, str] = field(default_factory=dict)

    @property
    def channel_names(self) -> List[str]:
        return [mapping.name for mapping in self.field_mappings]


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lon: float


@dataclass(frozen=True)
class CourseLine:
    """A timing line between two GPS points."""

    a: GeoPoint
    b: GeoPoint

    @property
    def midpoint(self) -> GeoPoint:
        return GeoPoint((self.a.lat + self.b.lat) / 2.0, (self.a.lon + self.b.lon) / 2.0)


def _point_from_dict(payload: Mapping) -> GeoPoint:
    return GeoPoint(float(payload["lat"]), float(payload["lon"]))


def _line_from_dict(payload: Optional[Mapping]) -> Optional[CourseLine]:
    if not payload:
        return None
    return CourseLine(_point_from_dict(payload["a"]), _point_from_dict(payload["b"]))


@dataclass(frozen=True)
class CourseDefinition:
    """
    Start/finish line plus up to two optional sector lines.

    Sector times are only computed when both sector lines are present.
    """

    start_finish_a: GeoPoint
    start_finish_b: GeoPoint
    sector_2: Optional[CourseLine] = None
    sector_3: Optional[CourseLine] = None
    name: str = ""

    @property
    def start_finish(self) -> CourseLine:
        return CourseLine(self.start_finish_a, self.start_finish_b)

    @property
    def has_sectors(self) -> bool:
        return self.sector_2 is not None and self.sector_3 is not None

    @classmethod
    def from_dict(cls, payload: Mapping) -> "CourseDefinition":
        """
        Build a course from the dictionary shape used by the course store.

        Expected keys: ``start_finish_a`` and ``start_finish_b`` as
        ``{"lat", "lon"}`` objects, optional ``sector_2``/``sector_3`` as
        ``{"a": {...}, "b": {...}}`` and an optional ``name``.

        Raises:
            KeyError: If a required point or coordinate is missing.
            ValueError: If a coordinate is not numeric.
        """
        return cls(
            start_finish_a=_point_from_dict(payload["start_finish_a"]),
            start_finish_b=_point_from_dict(payload["start_finish_b"]),
            sector_2=_line_from_dict(payload.get("sector_2")),
            sector_3=_line_from_dict(payload.get("sector_3")),
            name=str(payload.get("name", "")),
        )


@dataclass(frozen=True)
class SectorTimes:
    """Sector split times in ms."""

    s1: float
    s2: float
    s3: float

    @property
    def total(self) -> float:
        return self.s1 + self.s2 + self.s3


@dataclass(frozen=True)
class Lap:
    """One completed lap between two start/finish crossings."""

    lap_number: int
    start_index: int
    end_index: int
    start_time: float  # ms, interpolated crossing time
    end_time: float
    lap_time_ms: float
    max_speed_mph: float
    max_speed_kph: float
    min_speed_mph: float
    min_speed_kph: float
    distance_m: float = 0.0
    sectors: Optional[SectorTimes] = None


@dataclass(frozen=True)
class AlignmentResult:
    """
    Distance-indexed comparison of a current lap against a reference lap.

    Every list has one entry per current-lap sample; entries are None where
    the current lap has travelled further than the reference lap's length.
    """

    distance: List[float]
    pace: List[Optional[float]]  # seconds, positive = behind
    reference_speed: List[Optional[float]]  # m/s
    channels: Dict[str, List[Optional[float]]] = field(default_factory=dict)
    reference_distance: float = 0.0


@dataclass(frozen=True)
class OptimalLap:
    """Theoretical best lap built from the best individual sectors."""

    optimal_time_ms: float
    fastest_lap_time_ms: float
    delta_to_fastest_ms: float
    best_sectors: SectorTimes
    sector_laps: Tuple[int, int, int]


@dataclass(frozen=True)
class BrakingZone:
    """A stretch of sustained deceleration between two samples."""

    start_index: int
    end_index: int
    start_time: float  # ms
    end_time: float
    start_speed_mps: float
    end_speed_mps: float
    path: Tuple[GeoPoint, ...] = ()

    @property
    def duration_ms(self) -> float:
        return self.end_time - self.start_time

    @property
    def speed_delta_mps(self) -> float:
        """Negative when speed was lost."""
        return self.end_speed_mps - self.start_speed_mps

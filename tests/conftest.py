"""Shared test fixtures: a synthetic circular circuit, its course and log builders."""

from __future__ import annotations

import math
import struct
from typing import Dict, List, Optional, Sequence

import numpy as np
import pytest

from laptrace.models import CourseDefinition, CourseLine, GeoPoint, Sample

CENTER_LAT = 40.0
CENTER_LON = -75.0
RADIUS_M = 100.0
SPEED_MPS = 20.0
OMEGA = SPEED_MPS / RADIUS_M  # rad/s
START_ANGLE = -0.53  # rad, first crossing at 2.65 s
SAMPLE_HZ = 10
LAP_TIME_MS = 2 * math.pi / OMEGA * 1000.0  # ~31415.9 ms

EARTH_RADIUS_M = 6371000.0

LD_HEADER = struct.Struct("<I4xII20xI24xHHHI8sHHI4x16s16x16s16x64s64s64x64s")
LD_CHANNEL = struct.Struct("<IIIIHHHHhhhh32s8s12s40x")
LD_META_OFFSET = 512


def xy_to_latlon(x: float, y: float) -> tuple[float, float]:
    """Inverse of the equirectangular projection around the circuit center."""
    lat = CENTER_LAT + math.degrees(y / EARTH_RADIUS_M)
    lon = CENTER_LON + math.degrees(x / (EARTH_RADIUS_M * math.cos(math.radians(CENTER_LAT))))
    return lat, lon


def radial_line(angle: float, inner: float = 80.0, outer: float = 120.0) -> CourseLine:
    a = xy_to_latlon(inner * math.cos(angle), inner * math.sin(angle))
    b = xy_to_latlon(outer * math.cos(angle), outer * math.sin(angle))
    return CourseLine(GeoPoint(*a), GeoPoint(*b))


def circuit_samples(duration_s: float = 100.0, hz: int = SAMPLE_HZ, speed: float = SPEED_MPS,
                    radius: float = RADIUS_M, start_angle: float = START_ANGLE,
                    t0_ms: float = 0.0) -> List[Sample]:
    """Counter-clockwise laps of a circle at constant speed."""
    omega = speed / radius
    samples = []
    for i in range(int(duration_s * hz) + 1):
        t_s = i / hz
        theta = start_angle + omega * t_s
        lat, lon = xy_to_latlon(radius * math.cos(theta), radius * math.sin(theta))
        heading = math.degrees(math.atan2(-math.sin(theta), math.cos(theta))) % 360.0
        samples.append(Sample(t=t0_ms + t_s * 1000.0, lat=lat, lon=lon, speed_mps=speed, heading=heading))
    return samples


def straight_samples(count: int, speed: float = 20.0, hz: int = SAMPLE_HZ,
                     lat0: float = CENTER_LAT, lon0: float = CENTER_LON) -> List[Sample]:
    """Samples heading due north at constant speed."""
    samples = []
    for i in range(count):
        t_s = i / hz
        lat, lon = xy_to_latlon(0.0, speed * t_s)
        lat += lat0 - CENTER_LAT
        lon += lon0 - CENTER_LON
        samples.append(Sample(t=t_s * 1000.0, lat=lat, lon=lon, speed_mps=speed, heading=0.0))
    return samples


def alfano_csv(samples: Sequence[Sample], delimiter: str = ",", preamble: bool = True) -> str:
    """Render samples as an Alfano export (time in s, speed in km/h)."""
    lines = []
    if preamble:
        lines += ["Driver: Test Driver", "Track: Synthetic Oval", ""]
    lines.append(delimiter.join(["Time", "GPS_Latitude", "GPS_Longitude", "GPS_Speed", "GPS_Heading", "RPM"]))
    for s in samples:
        lines.append(delimiter.join([
            f"{s.t / 1000.0:.3f}", f"{s.lat:.8f}", f"{s.lon:.8f}", f"{s.speed_mps * 3.6:.3f}",
            f"{s.heading:.2f}", "9000",
        ]))
    return "\n".join(lines) + "\n"


def ld_channel(name: str, values: Sequence[float], dtype: str, freq: int = SAMPLE_HZ,
               unit: str = "", short_name: str = "", shift: int = 0, mul: int = 1,
               scale: int = 1, dec: int = 0) -> Dict:
    """
    Describe one LD channel for build_ld.

    ``dtype`` is a numpy dtype string: "<i2", "<i4", "<f2" or "<f4".
    """
    dtype_a, dtype_b = {"<i2": (3, 2), "<i4": (3, 4), "<f2": (7, 2), "<f4": (7, 4)}[dtype]
    return {
        "name": name,
        "short_name": short_name,
        "unit": unit,
        "freq": freq,
        "dtype_a": dtype_a,
        "dtype_b": dtype_b,
        "shift": shift,
        "mul": mul,
        "scale": scale,
        "dec": dec,
        "data": np.asarray(values, dtype=dtype).tobytes(),
        "count": len(values),
    }


def build_ld(channels: Sequence[Dict], next_pointers: Optional[Dict[int, int]] = None,
             date: str = "05/06/2024", time: str = "14:30:00", driver: str = "Test Driver",
             vehicle: str = "Kart 7", venue: str = "Synthetic Oval") -> bytes:
    """
    Assemble a MoTeC LD buffer.

    Channel records are laid out back to back from LD_META_OFFSET, followed
    by each channel's data. ``next_pointers`` overrides the next-record
    pointer of the given channel indexes.
    """
    next_pointers = next_pointers or {}
    data_start = LD_META_OFFSET + LD_CHANNEL.size * len(channels)

    header = LD_HEADER.pack(
        0x40, LD_META_OFFSET if channels else 0, data_start, 0,
        0, 0, 0, 12345, b"ADL", 420, 0, len(channels),
        date.encode(), time.encode(), driver.encode(), vehicle.encode(), venue.encode(),
    )
    buffer = bytearray(header.ljust(LD_META_OFFSET, b"\0"))

    data = bytearray()
    records = bytearray()
    for idx, channel in enumerate(channels):
        offset = LD_META_OFFSET + idx * LD_CHANNEL.size
        prev_ptr = offset - LD_CHANNEL.size if idx else 0
        next_ptr = offset + LD_CHANNEL.size if idx < len(channels) - 1 else 0
        next_ptr = next_pointers.get(idx, next_ptr)
        records += LD_CHANNEL.pack(
            prev_ptr, next_ptr, data_start + len(data), channel["count"],
            idx, channel["dtype_a"], channel["dtype_b"], channel["freq"],
            channel["shift"], channel["mul"], channel["scale"], channel["dec"],
            channel["name"].encode(), channel["short_name"].encode(), channel["unit"].encode(),
        )
        data += channel["data"]

    return bytes(buffer + records + data)


def gps_ld_channels(samples: Sequence[Sample]) -> List[Dict]:
    """Latitude/longitude as scaled int32 plus ground speed in km/h, at 10 Hz."""
    return [
        ld_channel("GPS Latitude", [round(s.lat * 1e7) for s in samples], "<i4", unit="deg", dec=7),
        ld_channel("GPS Longitude", [round(s.lon * 1e7) for s in samples], "<i4", unit="deg", dec=7),
        ld_channel("Ground Speed", [s.speed_mps * 3.6 for s in samples], "<f4", unit="km/h"),
    ]


@pytest.fixture
def circuit() -> List[Sample]:
    """A little over three laps of the synthetic circuit at 10 Hz."""
    return circuit_samples(duration_s=100.0)


@pytest.fixture
def course() -> CourseDefinition:
    """Start/finish at angle 0, sector lines at 120 and 240 degrees."""
    start = radial_line(0.0)
    return CourseDefinition(
        start_finish_a=start.a,
        start_finish_b=start.b,
        sector_2=radial_line(2 * math.pi / 3),
        sector_3=radial_line(4 * math.pi / 3),
        name="Synthetic Oval",
    )


@pytest.fixture
def course_without_sectors(course: CourseDefinition) -> CourseDefinition:
    return CourseDefinition(course.start_finish_a, course.start_finish_b, name=course.name)

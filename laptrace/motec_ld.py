"""
MoTeC LD Binary Decoder for Lap Telemetry Analysis

MoTeC loggers write ``.ld`` files: a fixed-layout header carrying a magic
marker and a pointer to the first channel-metadata record, followed by a
linked list of those records, each pointing at its own block of samples.

This module walks the channel list, decodes each channel with the sample
reader selected by its type discriminators, rescales raw values, and
resamples every channel onto the GPS latitude channel's time base.
"""

import logging
import struct
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence

import numpy as np

from . import conditioning
from . import fields
from .config import ProcessingConfig
from .errors import MalformedData
from .models import ParsedFile
from .parser_utils import Content, SampleAccumulator, speed_to_mps_factor

logger = logging.getLogger(__name__)

FORMAT_NAME = "MoTeC LD"
LD_MARKER = 0x40

# Header prefix up to the venue string; the rest of the header is not used
_HEADER = struct.Struct("<I4xII20xI24xHHHI8sHHI4x16s16x16s16x64s64s64x64s")
_CHANNEL_META = struct.Struct("<IIIIHHHHhhhh32s8s12s40x")

_INTEGER_TYPES = (0x00, 0x03, 0x05)
_FLOAT_TYPE = 0x07

LAT_NAMES = ("GPS Latitude", "GPS_Latitude", "Latitude", "Lat", "GPS Lat")
LON_NAMES = ("GPS Longitude", "GPS_Longitude", "Longitude", "Lon", "Long", "GPS Long")
SPEED_NAMES = ("Ground Speed", "GPS Speed", "Speed", "GPS_Speed")
HEADING_NAMES = ("GPS Heading", "Heading", "GPS_Heading", "Course", "GPS Course")

DEFAULT_BASE_FREQ = 10


@dataclass(frozen=True)
class LdHeader:
    meta_ptr: int
    data_ptr: int
    event_ptr: int
    device_serial: int
    device_type: str
    device_version: int
    num_channels: int
    date: str
    time: str
    driver: str
    vehicle: str
    venue: str


@dataclass(frozen=True)
class LdChannel:
    """One channel-metadata record from the linked list."""

    offset: int
    prev_ptr: int
    next_ptr: int
    data_ptr: int
    data_len: int
    counter: int
    dtype_a: int
    dtype_b: int
    freq: int
    shift: int
    mul: int
    scale: int
    dec: int
    name: str
    short_name: str
    unit: str


@dataclass(frozen=True)
class _Decoded:
    channel: LdChannel
    data: np.ndarray

    @property
    def freq(self) -> int:
        return self.channel.freq

    @property
    def unit(self) -> str:
        return self.channel.unit


def _decode_ascii(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("latin-1").strip()


def detect(content: Content) -> bool:
    """True if ``content`` is a binary buffer starting with the LD marker."""
    if isinstance(content, str) or len(content) < _HEADER.size:
        return False
    (marker,) = struct.unpack_from("<I", content, 0)
    return marker == LD_MARKER


def read_header(buffer: bytes) -> LdHeader:
    """
    Read the LD file header.

    Raises:
        MalformedData: If the buffer is shorter than the header or the
            marker is wrong.
    """
    if len(buffer) < _HEADER.size:
        raise MalformedData(f"truncated header ({len(buffer)} bytes)", FORMAT_NAME)

    (marker, meta_ptr, data_ptr, event_ptr, _, _, _, serial, device_type, version, _,
     num_channels, date, time, driver, vehicle, venue) = _HEADER.unpack_from(buffer, 0)

    if marker != LD_MARKER:
        raise MalformedData(f"bad marker {marker:#x}", FORMAT_NAME)

    return LdHeader(
        meta_ptr=meta_ptr,
        data_ptr=data_ptr,
        event_ptr=event_ptr,
        device_serial=serial,
        device_type=_decode_ascii(device_type),
        device_version=version,
        num_channels=num_channels,
        date=_decode_ascii(date),
        time=_decode_ascii(time),
        driver=_decode_ascii(driver),
        vehicle=_decode_ascii(vehicle),
        venue=_decode_ascii(venue),
    )


def _read_channel_meta(buffer: bytes, offset: int) -> LdChannel:
    (prev_ptr, next_ptr, data_ptr, data_len, counter, dtype_a, dtype_b, freq,
     shift, mul, scale, dec, name, short_name, unit) = _CHANNEL_META.unpack_from(buffer, offset)

    return LdChannel(
        offset=offset,
        prev_ptr=prev_ptr,
        next_ptr=next_ptr,
        data_ptr=data_ptr,
        data_len=data_len,
        counter=counter,
        dtype_a=dtype_a,
        dtype_b=dtype_b,
        freq=freq,
        shift=shift,
        mul=mul,
        scale=scale,
        dec=dec,
        name=_decode_ascii(name),
        short_name=_decode_ascii(short_name),
        unit=_decode_ascii(unit),
    )


def read_channels(buffer: bytes, header: Optional[LdHeader] = None) -> List[LdChannel]:
    """
    Walk the linked list of channel-metadata records.

    The buffer is treated as a byte arena and each record as an offset into
    it. A visited-offset set guarantees termination on corrupt files.

    Args:
        buffer: Whole LD file.
        header: Parsed header; read from ``buffer`` when omitted.

    Returns:
        Channel records in list order.

    Raises:
        MalformedData: On a pointer cycle or a record running past the end
            of the buffer.
    """
    if header is None:
        header = read_header(buffer)

    channels: List[LdChannel] = []
    visited = set()
    ptr = header.meta_ptr

    while ptr:
        if ptr in visited:
            raise MalformedData(f"channel metadata cycle at offset {ptr:#x}", FORMAT_NAME)
        if ptr + _CHANNEL_META.size > len(buffer):
            raise MalformedData(f"truncated channel record at offset {ptr:#x}", FORMAT_NAME)
        visited.add(ptr)

        channel = _read_channel_meta(buffer, ptr)
        channels.append(channel)
        ptr = channel.next_ptr

    return channels


def decode_half_floats(bits: np.ndarray) -> np.ndarray:
    """
    Decode IEEE 754 half-precision values from their raw 16-bit patterns.

    Unpacks sign, 5-bit exponent and 10-bit mantissa, handling subnormals,
    infinities and NaN.

    Args:
        bits: Array of unsigned 16-bit words.

    Returns:
        Float64 array of decoded values.
    """
    bits = np.asarray(bits, dtype=np.int64)
    sign = np.where(bits >> 15, -1.0, 1.0)
    exponent = (bits >> 10) & 0x1F
    mantissa = (bits & 0x3FF).astype(float) / 1024.0

    normal = sign * np.exp2(exponent.astype(float) - 15.0) * (1.0 + mantissa)
    subnormal = sign * 2.0 ** -14 * mantissa
    special = np.where(mantissa > 0, np.nan, sign * np.inf)

    return np.where(exponent == 0, subnormal, np.where(exponent == 0x1F, special, normal))


def _sample_layout(channel: LdChannel) -> Optional[str]:
    if channel.dtype_a in _INTEGER_TYPES:
        return {2: "<i2", 4: "<i4"}.get(channel.dtype_b)
    if channel.dtype_a == _FLOAT_TYPE:
        return {2: "<u2", 4: "<f4"}.get(channel.dtype_b)
    return None


def read_channel_data(buffer: bytes, channel: LdChannel) -> np.ndarray:
    """
    Decode and rescale one channel's samples.

    ``value = (raw / scale * 10**-dec + shift) * mul``, where a zero scale
    or multiplier is treated as 1.

    Args:
        buffer: Whole LD file.
        channel: Channel record from ``read_channels``.

    Returns:
        Float64 array of channel values; empty for unsupported data types.

    Raises:
        MalformedData: If the channel's data block starts past the end of
            the buffer.
    """
    layout = _sample_layout(channel)
    if layout is None:
        logger.warning("Skipping LD channel %r: unsupported data type (%#x, %d)",
                       channel.name, channel.dtype_a, channel.dtype_b)
        return np.zeros(0)

    if channel.data_len and channel.data_ptr >= len(buffer):
        raise MalformedData(f"channel {channel.name!r} data starts past end of buffer", FORMAT_NAME)

    size = channel.dtype_b
    count = min(channel.data_len, (len(buffer) - channel.data_ptr) // size)
    if count < channel.data_len:
        logger.warning("LD channel %r truncated: %d of %d samples", channel.name, count, channel.data_len)
    if count <= 0:
        return np.zeros(0)

    raw = np.frombuffer(buffer, dtype=layout, count=count, offset=channel.data_ptr)
    if channel.dtype_a == _FLOAT_TYPE and size == 2:
        values = decode_half_floats(raw)
    else:
        values = raw.astype(float)

    scale = channel.scale or 1
    mul = channel.mul or 1
    return (values / scale * 10.0 ** -channel.dec + channel.shift) * mul


def resample_indices(count: int, channel_freq: float, base_freq: float) -> np.ndarray:
    """
    Map base-rate sample indices onto a channel's own sample indices.

    Nearest neighbour, ``src = round(i * channel_freq / base_freq)``, with
    halves rounded up.
    """
    return np.floor(np.arange(count) * channel_freq / base_freq + 0.5).astype(np.int64)


def _resample(decoded: Optional[_Decoded], count: int, base_freq: float) -> Optional[np.ndarray]:
    if decoded is None:
        return None
    src = resample_indices(count, decoded.freq or base_freq, base_freq)
    out = np.full(count, np.nan)
    in_range = src < decoded.data.size
    out[in_range] = decoded.data[src[in_range]]
    return out


def _find(lookup: Dict[str, _Decoded], names: Sequence[str]) -> Optional[_Decoded]:
    for name in names:
        decoded = lookup.get(name.lower())
        if decoded is not None and decoded.data.size:
            return decoded
    return None


def _parse_start_date(header: LdHeader) -> Optional[datetime]:
    stamp = f"{header.date} {header.time}".strip()
    for fmt in ("%d/%m/%Y %H:%M:%S", "%d/%m/%y %H:%M:%S", "%d/%m/%Y %H:%M"):
        try:
            return datetime.strptime(stamp, fmt)
        except ValueError:
            continue
    if stamp:
        logger.debug("Unrecognized LD header date %r", stamp)
    return None


def parse(content: Content, config: Optional[ProcessingConfig] = None) -> ParsedFile:
    """
    Decode a MoTeC LD file into a ParsedFile.

    The latitude channel's frequency is the base rate; every other channel
    is resampled onto it by nearest neighbour, never interpolated.

    Args:
        content: Raw bytes of the ``.ld`` file.
        config: Processing thresholds. Defaults apply when None.

    Returns:
        ParsedFile with one sample per accepted GPS fix.

    Raises:
        MalformedData: On text input, a truncated or cyclic buffer, no
            channels, or missing GPS latitude/longitude.
        NoValidSamples: If every fix was filtered out.
    """
    if isinstance(content, str):
        raise MalformedData("expected binary content", FORMAT_NAME)
    buffer = bytes(content)

    header = read_header(buffer)
    channels = read_channels(buffer, header)
    if not channels:
        raise MalformedData("no channels found", FORMAT_NAME)

    lookup: Dict[str, _Decoded] = {}
    decoded_channels: List[_Decoded] = []
    for channel in channels:
        data = read_channel_data(buffer, channel)
        if not data.size:
            continue
        decoded = _Decoded(channel, data)
        decoded_channels.append(decoded)
        lookup.setdefault(channel.name.lower(), decoded)
        if channel.short_name:
            lookup.setdefault(channel.short_name.lower(), decoded)

    lat_ch = _find(lookup, LAT_NAMES)
    lon_ch = _find(lookup, LON_NAMES)
    if lat_ch is None or lon_ch is None:
        raise MalformedData("missing GPS Latitude/Longitude channels", FORMAT_NAME)

    speed_ch = _find(lookup, SPEED_NAMES)
    heading_ch = _find(lookup, HEADING_NAMES)

    base_freq = lat_ch.freq or DEFAULT_BASE_FREQ
    count = min(lat_ch.data.size, lon_ch.data.size)
    speed_factor = speed_to_mps_factor(speed_ch.unit) if speed_ch is not None else 1.0

    accumulator = SampleAccumulator(FORMAT_NAME, config)

    core = {id(ch) for ch in (lat_ch, lon_ch, speed_ch, heading_ch) if ch is not None}
    extras = {}
    for decoded in decoded_channels:
        if id(decoded) in core:
            continue
        name = fields.display_name(decoded.channel.name)
        if name in extras:
            continue
        values = _resample(decoded, count, base_freq)
        if fields.is_gforce_field(name):
            values = np.array([conditioning.normalize_native_g(v) for v in values])
        extras[name] = values
        accumulator.register_channel(name, decoded.unit)

    speeds = _resample(speed_ch, count, base_freq)
    headings = _resample(heading_ch, count, base_freq)

    for i in range(count):
        accumulator.add(
            t=i / base_freq * 1000.0,
            lat=float(lat_ch.data[i]),
            lon=float(lon_ch.data[i]),
            speed_mps=float(speeds[i]) * speed_factor if speeds is not None else 0.0,
            heading=float(headings[i]) if headings is not None else None,
            extra_fields={name: float(values[i]) for name, values in extras.items()},
        )

    metadata = {
        key: value for key, value in (
            ("driver", header.driver),
            ("vehicle", header.vehicle),
            ("venue", header.venue),
            ("device", header.device_type),
        ) if value
    }
    return accumulator.build(start_date=_parse_start_date(header), metadata=metadata)

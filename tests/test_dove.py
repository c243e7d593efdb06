"""Tests for the Dove CSV parser."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from laptrace import dove_parser
from laptrace.constants import MPH_TO_MPS
from laptrace.errors import MalformedData

BASE_TS = 1717597800000  # 2024-06-05 14:30:00 UTC

DOVE_TEXT = (
    "timestamp,sats,hdop,lat,lng,speed_mph,altitude_m,rpm,exhaust_temp_c,water_temp_c\n"
    f"{BASE_TS},9,0.8,40.000000,-75.000000,30.0,100.0,9000,600,80\n"
    f"{BASE_TS + 100},9,0.8,40.000012,-75.000000,30.0,100.1,9100,601,80\n"
    f"{BASE_TS + 200},9,0.8,40.000024,-75.000000,30.0,100.2,-1,602,81\n"
)


class TestDetect:
    """Tests for Dove detection."""

    def test_dove_header_and_epoch(self) -> None:
        assert dove_parser.detect(DOVE_TEXT)
        assert dove_parser.detect(DOVE_TEXT.encode())

    def test_relative_time_rejected(self) -> None:
        text = "timestamp,lat,lng,speed_mph\n0,40.0,-75.0,30\n"
        assert not dove_parser.detect(text)

    def test_alfano_style_header_rejected(self) -> None:
        text = f"timestamp,lat,lng,speed_mph,gps_latitude\n{BASE_TS},40.0,-75.0,30,40.0\n"
        assert not dove_parser.detect(text)


class TestParse:
    """Tests for Dove file parsing."""

    def test_samples(self) -> None:
        parsed = dove_parser.parse(DOVE_TEXT)

        assert parsed.source_format == "Dove CSV"
        assert [s.t for s in parsed.samples] == [0.0, 100.0, 200.0]
        assert parsed.samples[0].speed_mps == pytest.approx(30.0 * MPH_TO_MPS)

    def test_start_date_is_utc(self) -> None:
        parsed = dove_parser.parse(DOVE_TEXT)
        assert parsed.start_date == datetime(2024, 6, 5, 14, 30, 0, tzinfo=timezone.utc)

    def test_headings_derived_from_track(self) -> None:
        parsed = dove_parser.parse(DOVE_TEXT)
        # Moving due north
        assert parsed.samples[0].heading == pytest.approx(0.0, abs=1e-6)
        assert parsed.samples[-1].heading == pytest.approx(0.0, abs=1e-6)

    def test_extra_channels(self) -> None:
        parsed = dove_parser.parse(DOVE_TEXT)
        first = parsed.samples[0].extra_fields

        assert first["Satellites"] == 9.0
        assert first["HDOP"] == pytest.approx(0.8)
        assert first["RPM"] == 9000.0
        assert first["EGT"] == 600.0
        assert first["Water Temp"] == 80.0

        units = {m.name: m.unit for m in parsed.field_mappings}
        assert units["Altitude"] == "m"
        assert units["Water Temp"] == "C"

    def test_negative_rpm_dropped(self) -> None:
        parsed = dove_parser.parse(DOVE_TEXT)
        assert "RPM" not in parsed.samples[2].extra_fields

    def test_derived_gforce_channels_listed_first(self) -> None:
        parsed = dove_parser.parse(DOVE_TEXT)
        assert parsed.channel_names[:2] == ["Lat G", "Lon G"]

    def test_short_rows_skipped(self) -> None:
        text = DOVE_TEXT + f"{BASE_TS + 300},9,0.8\n"
        assert len(dove_parser.parse(text).samples) == 3

    def test_time_base_skips_rejected_leading_rows(self) -> None:
        text = (
            "timestamp,lat,lng,speed_mph\n"
            f"{BASE_TS},0,0,0\n"
            f"{BASE_TS + 500},40.0,-75.0,10\n"
            f"{BASE_TS + 600},40.00001,-75.0,10\n"
        )
        parsed = dove_parser.parse(text)

        assert [s.t for s in parsed.samples] == [0.0, 100.0]
        assert parsed.start_date == datetime.fromtimestamp((BASE_TS + 500) / 1000, tz=timezone.utc)

    def test_missing_core_column(self) -> None:
        with pytest.raises(MalformedData, match="speed_mph"):
            dove_parser.parse(f"timestamp,lat,lng\n{BASE_TS},40.0,-75.0\n")

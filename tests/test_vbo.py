"""Tests for the VBO parser."""

from __future__ import annotations

from datetime import datetime

import pytest

from laptrace import vbo_parser
from laptrace.errors import MalformedData, NoValidSamples

VBO_TEXT = """File created on 05/06/2024 at 14:30:00

[header]
satellites
time
latitude
longitude
velocity kmh
heading
height

[column names]
sats time lat long velocity heading height lat_accel

[data]
008 143000.00 40.00000 -75.00000 072.000 090.00 100.0 0.50
008 143000.10 40.00000 -74.99998 072.000 090.00 100.1 0.51
008 143000.20 40.00000 -74.99996 072.000 090.00 100.2 9.80665
"""


class TestDetect:
    """Tests for VBO detection."""

    def test_section_marker(self) -> None:
        assert vbo_parser.detect(VBO_TEXT)
        assert vbo_parser.detect(VBO_TEXT.encode())

    def test_plain_csv_rejected(self) -> None:
        assert not vbo_parser.detect("time,lat,lon\n1,2,3\n")


class TestFieldParsing:
    """Tests for VBO time and coordinate fields."""

    def test_time_of_day(self) -> None:
        assert vbo_parser.parse_vbo_time("143000.50") == pytest.approx((14 * 3600 + 30 * 60 + 0.5) * 1000)

    def test_small_time_is_seconds(self) -> None:
        assert vbo_parser.parse_vbo_time("12.5") == pytest.approx(12500.0)

    def test_decimal_degree_coordinate(self) -> None:
        assert vbo_parser.parse_vbo_coordinate("-75.5") == pytest.approx(-75.5)

    def test_degree_minute_coordinate(self) -> None:
        assert vbo_parser.parse_vbo_coordinate("4030.000") == pytest.approx(40.5)
        assert vbo_parser.parse_vbo_coordinate("-07530.000") == pytest.approx(-75.5)

    def test_junk_coordinate(self) -> None:
        value = vbo_parser.parse_vbo_coordinate("abc")
        assert value != value


class TestParse:
    """Tests for VBO file parsing."""

    def test_samples(self) -> None:
        parsed = vbo_parser.parse(VBO_TEXT)

        assert parsed.source_format == "VBO"
        assert len(parsed.samples) == 3
        assert [s.t for s in parsed.samples] == pytest.approx([0.0, 100.0, 200.0])
        assert parsed.samples[0].speed_mps == pytest.approx(20.0)
        assert parsed.samples[0].heading == pytest.approx(90.0)

    def test_extras(self) -> None:
        parsed = vbo_parser.parse(VBO_TEXT)
        first = parsed.samples[0].extra_fields

        assert first["Satellites"] == 8.0
        assert first["Altitude"] == pytest.approx(100.0)
        assert first["Lat G"] == pytest.approx(0.5)
        # m/s^2 values are converted to g
        assert parsed.samples[2].extra_fields["Lat G"] == pytest.approx(1.0)

    def test_native_lat_g_suppresses_derivation(self) -> None:
        parsed = vbo_parser.parse(VBO_TEXT)
        assert "Lon G" not in parsed.samples[0].extra_fields

    def test_start_date_from_banner(self) -> None:
        assert vbo_parser.parse(VBO_TEXT).start_date == datetime(2024, 6, 5, 14, 30, 0)

    def test_midnight_wrap(self) -> None:
        text = (
            "[column names]\nsats time lat long velocity heading\n[data]\n"
            "008 235959.90 40.00000 -75.00000 036.000 000.00\n"
            "008 000000.00 40.00001 -75.00000 036.000 000.00\n"
        )
        parsed = vbo_parser.parse(text)
        assert [s.t for s in parsed.samples] == pytest.approx([0.0, 100.0])

    def test_rejected_leading_row_does_not_shift_time(self) -> None:
        text = (
            "[column names]\nsats time lat long velocity heading\n[data]\n"
            "008 143000.00 0.00000 0.00000 036.000 000.00\n"
            "008 143005.00 40.00000 -75.00000 036.000 000.00\n"
            "008 143005.10 40.00001 -75.00000 036.000 000.00\n"
        )
        parsed = vbo_parser.parse(text)

        assert [s.t for s in parsed.samples] == pytest.approx([0.0, 100.0])
        assert parsed.duration == pytest.approx(100.0)

    def test_positional_columns_without_names(self) -> None:
        text = "[data]\n008 120000.00 40.00000 -75.00000 036.000 045.00 12.0\n"
        parsed = vbo_parser.parse(text)

        assert len(parsed.samples) == 1
        assert parsed.samples[0].speed_mps == pytest.approx(10.0)
        assert parsed.samples[0].extra_fields["Altitude"] == pytest.approx(12.0)

    def test_degree_minute_rows(self) -> None:
        text = (
            "[column names]\nsats time lat long velocity heading\n[data]\n"
            "008 120000.00 4030.00000 -07530.00000 036.000 000.00\n"
        )
        sample = vbo_parser.parse(text).samples[0]
        assert sample.lat == pytest.approx(40.5)
        assert sample.lon == pytest.approx(-75.5)

    def test_missing_data_section(self) -> None:
        with pytest.raises(MalformedData, match=r"\[data\]"):
            vbo_parser.parse("[header]\nsatellites\n")

    def test_all_rows_rejected(self) -> None:
        text = "[column names]\nsats time lat long velocity heading\n[data]\n008 120000.00 0 0 036.000 000.00\n"
        with pytest.raises(NoValidSamples):
            vbo_parser.parse(text)

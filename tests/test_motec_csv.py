"""Tests for the MoTeC CSV parser."""

from __future__ import annotations

from datetime import datetime

import pytest

from laptrace import motec_csv
from laptrace.errors import MalformedData

MOTEC_TEXT = """"Format","MoTeC CSV File"
"Venue","Synthetic Oval"
"Vehicle","Kart 7"
"Driver","Test Driver"
"Device","ADL3"
"Log Date","05/06/2024"
"Log Time","14:30:00"
"Sample Rate","10"
"Beacon Markers","31.4"

"Time","GPS Latitude","GPS Longitude","Ground Speed","GPS Heading","Engine RPM","G Force Lat"
"s","deg","deg","km/h","deg","rpm","m/s/s"
"0.000","40.000000","-75.000000","72.0","0.0","9000","9.80665"
"0.100","40.000018","-75.000000","72.0","0.0","9100","4.9"
"0.200","40.000036","-75.000000","72.0","0.0","9200",""
"""


class TestDetect:
    """Tests for MoTeC CSV detection."""

    def test_preamble_detected(self) -> None:
        assert motec_csv.detect(MOTEC_TEXT)

    def test_two_indicators_not_enough(self) -> None:
        text = '"Log Date","05/06/2024"\n"Log Time","14:30:00"\n"Time","Lat"\n'
        assert not motec_csv.detect(text)


class TestParse:
    """Tests for MoTeC CSV parsing."""

    def test_samples(self) -> None:
        parsed = motec_csv.parse(MOTEC_TEXT)

        assert parsed.source_format == "MoTeC CSV"
        assert [s.t for s in parsed.samples] == pytest.approx([0.0, 100.0, 200.0])
        assert parsed.samples[0].speed_mps == pytest.approx(20.0)
        assert parsed.samples[1].lat == pytest.approx(40.000018)

    def test_metadata(self) -> None:
        parsed = motec_csv.parse(MOTEC_TEXT)

        assert parsed.metadata["venue"] == "Synthetic Oval"
        assert parsed.metadata["driver"] == "Test Driver"
        assert parsed.start_date == datetime(2024, 6, 5, 14, 30, 0)

    def test_extras_with_units(self) -> None:
        parsed = motec_csv.parse(MOTEC_TEXT)
        units = {m.name: m.unit for m in parsed.field_mappings}

        assert parsed.samples[0].extra_fields["RPM"] == 9000.0
        assert units["RPM"] == "rpm"
        assert units["Lat G"] == "m/s/s"

    def test_native_g_normalization(self) -> None:
        parsed = motec_csv.parse(MOTEC_TEXT)

        assert parsed.samples[0].extra_fields["Lat G"] == pytest.approx(1.0)
        # At most 5 in magnitude is already g
        assert parsed.samples[1].extra_fields["Lat G"] == pytest.approx(4.9)
        assert "Lat G" not in parsed.samples[2].extra_fields

    def test_mph_speed_unit(self) -> None:
        text = MOTEC_TEXT.replace('"km/h"', '"mph"')
        parsed = motec_csv.parse(text)
        assert parsed.samples[0].speed_mps == pytest.approx(72.0 * 0.44704)

    def test_missing_position_channels(self) -> None:
        text = '"Log Date","x"\n"Time","Ground Speed"\n"s","km/h"\n"0.0","10"\n'
        with pytest.raises(MalformedData, match="Latitude/Longitude"):
            motec_csv.parse(text)

    def test_missing_header_row(self) -> None:
        with pytest.raises(MalformedData, match="header row"):
            motec_csv.parse('"Log Date","05/06/2024"\n"Driver","x"\n')

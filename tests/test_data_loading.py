"""Tests for format detection and dispatch."""

from __future__ import annotations

import pytest

from conftest import alfano_csv, build_ld, circuit_samples, gps_ld_channels
from laptrace.data_loading import NormalizerKind, detect_format, load_log_file, parse_log
from laptrace.errors import FormatDetectionFailure, MalformedData
from test_dove import DOVE_TEXT
from test_motec_csv import MOTEC_TEXT
from test_nmea import NMEA_TEXT
from test_vbo import VBO_TEXT


class TestDetectFormat:
    """Tests for priority-ordered format detection."""

    @pytest.mark.parametrize("content, expected", [
        (VBO_TEXT, NormalizerKind.VBO),
        (DOVE_TEXT, NormalizerKind.ENHANCED_CSV),
        (MOTEC_TEXT, NormalizerKind.MOTEC_CSV),
        (NMEA_TEXT, NormalizerKind.NMEA),
    ])
    def test_text_formats(self, content: str, expected: NormalizerKind) -> None:
        assert detect_format(content) is expected
        assert detect_format(content.encode()) is expected

    def test_alfano(self) -> None:
        assert detect_format(alfano_csv(circuit_samples(duration_s=1.0))) is NormalizerKind.ALFANO_CSV

    def test_motec_binary(self) -> None:
        buffer = build_ld(gps_ld_channels(circuit_samples(duration_s=1.0)))
        assert detect_format(buffer) is NormalizerKind.MOTEC_BINARY

    def test_vbo_wins_over_alfano(self) -> None:
        text = "Driver: Someone\n[column names]\nsats time lat long velocity\n[data]\n"
        assert detect_format(text) is NormalizerKind.VBO

    def test_unrecognized(self) -> None:
        with pytest.raises(FormatDetectionFailure, match="Unrecognized log format"):
            detect_format("hello world\n")

    def test_priority_order(self) -> None:
        assert list(NormalizerKind) == [
            NormalizerKind.MOTEC_BINARY,
            NormalizerKind.VBO,
            NormalizerKind.ENHANCED_CSV,
            NormalizerKind.MOTEC_CSV,
            NormalizerKind.ALFANO_CSV,
            NormalizerKind.NMEA,
        ]

    def test_format_names(self) -> None:
        assert NormalizerKind.ENHANCED_CSV.format_name == "Dove CSV"
        assert NormalizerKind.MOTEC_BINARY.format_name == "MoTeC LD"


class TestParseLog:
    """Tests for dispatching content to a normalizer."""

    def test_detected_format(self) -> None:
        parsed = parse_log(NMEA_TEXT)
        assert parsed.source_format == "NMEA"

    def test_forced_format(self) -> None:
        with pytest.raises(MalformedData):
            parse_log(NMEA_TEXT, kind=NormalizerKind.VBO)

    def test_load_from_disk(self, tmp_path) -> None:
        path = tmp_path / "session.vbo"
        path.write_text(VBO_TEXT)

        parsed = load_log_file(path)
        assert parsed.source_format == "VBO"
        assert len(parsed.samples) == 3


def fixture_content(kind: NormalizerKind):
    """Sample file content for each supported format."""
    samples = circuit_samples(duration_s=5.0)
    return {
        NormalizerKind.MOTEC_BINARY: build_ld(gps_ld_channels(samples)),
        NormalizerKind.VBO: VBO_TEXT,
        NormalizerKind.ENHANCED_CSV: DOVE_TEXT,
        NormalizerKind.MOTEC_CSV: MOTEC_TEXT,
        NormalizerKind.ALFANO_CSV: alfano_csv(samples),
        NormalizerKind.NMEA: NMEA_TEXT,
    }[kind]


class TestRepeatedParsing:
    """Parsing the same bytes twice yields equal results."""

    @pytest.mark.parametrize("kind", list(NormalizerKind), ids=lambda kind: kind.name)
    def test_identical_results(self, kind: NormalizerKind) -> None:
        content = fixture_content(kind)
        if isinstance(content, str):
            content = content.encode()

        first = parse_log(content)
        second = parse_log(bytes(content))

        assert first.source_format == kind.format_name
        assert first == second

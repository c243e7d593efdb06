"""Tests for the session analysis pipeline and payload."""

from __future__ import annotations

import json

import pytest

from conftest import alfano_csv, circuit_samples
from laptrace.data_loading import NormalizerKind
from laptrace.errors import FormatDetectionFailure
from laptrace.session import analyze_log, build_payload, build_session_payload


@pytest.fixture
def content() -> str:
    return alfano_csv(circuit_samples(duration_s=100.0))


class TestAnalyzeLog:
    """Tests for parsing plus segmentation."""

    def test_with_course(self, content, course) -> None:
        analysis = analyze_log(content, course=course)

        assert analysis.parsed.source_format == "Alfano CSV"
        assert len(analysis.laps) == 3
        assert analysis.course is course

    def test_without_course(self, content) -> None:
        assert analyze_log(content).laps == []

    def test_forced_kind(self, content) -> None:
        analysis = analyze_log(content, kind=NormalizerKind.ALFANO_CSV)
        assert analysis.parsed.source_format == "Alfano CSV"

    def test_unrecognized(self) -> None:
        with pytest.raises(FormatDetectionFailure):
            analyze_log(b"nothing to see here")


class TestPayload:
    """Tests for the JSON-ready session payload."""

    def test_payload(self, content, course) -> None:
        payload = build_session_payload(content, course=course)

        assert payload["course"] == "Synthetic Oval"
        assert payload["file"]["format"] == "Alfano CSV"
        assert payload["file"]["metadata"]["driver"] == "Test Driver"
        assert payload["file"]["start_date"] is None
        assert [lap["lap_number"] for lap in payload["laps"]] == [1, 2, 3]
        assert payload["laps"][0]["lap_time"].startswith("0:31.")
        assert len(payload["laps"][0]["sector_times_s"]) == 3
        assert payload["fastest_lap"] in (1, 2, 3)
        assert payload["optimal_lap"]["sector_laps"]
        assert len(payload["lap_deltas"]) == 2
        assert payload["braking_zones"] == []
        assert "telemetry" not in payload

    def test_payload_is_json_serializable(self, content, course) -> None:
        payload = build_session_payload(content, course=course, include_telemetry=True)
        json.dumps(payload)

    def test_telemetry(self, content, course) -> None:
        payload = build_payload(analyze_log(content, course=course), include_telemetry=True)

        assert len(payload["telemetry"]) == payload["file"]["sample_count"]
        assert payload["track"]["type"] == "FeatureCollection"

    def test_without_course(self, content) -> None:
        payload = build_session_payload(content)

        assert payload["course"] is None
        assert payload["laps"] == []
        assert payload["fastest_lap"] is None
        assert payload["optimal_lap"] is None
        assert payload["lap_deltas"] == []

    def test_course_without_sectors(self, content, course_without_sectors) -> None:
        payload = build_session_payload(content, course=course_without_sectors)

        assert payload["laps"][0]["sector_times_s"] is None
        assert payload["optimal_lap"] is None

    def test_braking_zones(self) -> None:
        # 108 km/h, braking 3.6 km/h per sample from sample 11 down to 54 km/h
        speeds = [min(108.0, max(54.0, 108.0 - 3.6 * (i - 10))) for i in range(40)]
        rows = [f"{i / 10:.1f},{40.0 + i * 2e-5:.5f},-75.0,{speed:.1f}" for i, speed in enumerate(speeds)]
        content = "Time,GPS_Latitude,GPS_Longitude,GPS_Speed\n" + "\n".join(rows) + "\n"
        zones = build_session_payload(content)["braking_zones"]

        assert len(zones) == 1
        assert zones[0]["entry_speed_mph"] > zones[0]["exit_speed_mph"]

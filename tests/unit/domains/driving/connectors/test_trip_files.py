"""Tests for trip-item JSON export and import."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from drivelog.core.storage.models import TripPoint
from drivelog.domains.driving.connectors.trip_files import (
    TripFileError,
    dump_trip_items,
    export_trip_items,
    load_trip_items,
    read_trip_file,
)

T0 = datetime(2024, 5, 1, 8, 0, 0, tzinfo=timezone.utc)


def _point(seconds: float, speed: float = 5.0) -> TripPoint:
    return TripPoint(
        trip_id="trip-1",
        timestamp=T0 + timedelta(seconds=seconds),
        latitude=40.0,
        longitude=-75.0,
        speed=speed,
        code="trip:trip-1",
        note="activity: driving",
    )


class TestExport:
    def test_items_sorted_and_unprocessed(self):
        items = export_trip_items([_point(10), _point(0)])
        assert [i["timestamp"] for i in items] == [
            "2024-05-01T08:00:00.000+00:00",
            "2024-05-01T08:00:10.000+00:00",
        ]
        assert all(i["processed"] is False for i in items)
        assert set(items[0]) == {
            "timestamp", "latitude", "longitude", "speed", "processed", "code", "note"
        }

    def test_dump_is_json(self):
        assert len(json.loads(dump_trip_items([_point(0)]))) == 1


class TestLoad:
    def test_exported_file_loads_back(self):
        samples = load_trip_items(dump_trip_items([_point(5), _point(0)]))
        assert [s.timestamp for s in samples] == [T0, T0 + timedelta(seconds=5)]
        assert samples[0].note == "activity: driving"

    def test_zulu_and_epoch_timestamps(self):
        text = json.dumps([
            {"timestamp": "2024-05-01T08:00:00Z", "latitude": 40, "longitude": -75, "speed": 1},
            {"timestamp": T0.timestamp() + 5, "latitude": 40, "longitude": -75, "speed": 1},
        ])
        samples = load_trip_items(text)
        assert samples[0].timestamp == T0
        assert samples[1].timestamp == T0 + timedelta(seconds=5)

    def test_negative_speed_passed_through(self):
        text = json.dumps([{"timestamp": "2024-05-01T08:00:00Z", "latitude": 40.0,
                            "longitude": -75.0, "speed": -1}])
        assert load_trip_items(text)[0].speed == -1.0

    @pytest.mark.parametrize(
        ("text", "message"),
        [
            ("{not json", "Invalid JSON"),
            ('{"a": 1}', "JSON array"),
            ("[1]", "expected an object"),
            ('[{"timestamp": "x", "latitude": 1, "longitude": 1, "speed": 1}]', "Item 0"),
            ('[{"timestamp": "2024-05-01T08:00:00Z", "longitude": 1, "speed": 1}]', "latitude"),
            ('[{"timestamp": "2024-05-01T08:00:00Z", "latitude": 95, "longitude": 1, "speed": 1}]',
             "out of range"),
            ('[{"timestamp": "2024-05-01T08:00:00Z", "latitude": 1, "longitude": 1, "speed": true}]',
             "speed"),
        ],
    )
    def test_malformed(self, text, message):
        with pytest.raises(TripFileError, match=message):
            load_trip_items(text)


class TestReadFile:
    def test_read_from_disk(self, tmp_path):
        path = tmp_path / "drive.json"
        path.write_text(dump_trip_items([_point(0), _point(5)]), encoding="utf-8")
        assert len(read_trip_file(path)) == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(TripFileError, match="Cannot read"):
            read_trip_file(tmp_path / "missing.json")

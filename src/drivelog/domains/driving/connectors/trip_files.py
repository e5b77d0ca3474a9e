"""Trip GPS export/import in the trip-item JSON format.

A trip file is a JSON array of items::

    [{"timestamp": "2024-05-01T08:00:00Z", "latitude": 40.0, "longitude": -75.0,
      "speed": 12.5, "processed": false, "code": "", "note": ""}, ...]

Timestamps are ISO 8601. Exported files can be replayed through the engine
to rebuild a trip, which is how recorded drives are loaded for testing.
"""

from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import Any

from drivelog.core.storage.models import (
    GpsSample,
    JournalEntry,
    TripPoint,
    format_timestamp,
    parse_timestamp,
)

logger = logging.getLogger(__name__)


class TripFileError(ValueError):
    """Raised when a trip file cannot be parsed."""


def export_trip_items(points: list[TripPoint] | list[JournalEntry]) -> list[dict[str, Any]]:
    """Convert route points to trip items, ascending by timestamp.

    Exported items are marked unprocessed so that a replay journals them afresh.
    """
    ordered = sorted(points, key=lambda p: p.timestamp)
    return [
        {
            "timestamp": format_timestamp(p.timestamp),
            "latitude": p.latitude,
            "longitude": p.longitude,
            "speed": p.speed,
            "processed": False,
            "code": p.code,
            "note": p.note,
        }
        for p in ordered
    ]


def dump_trip_items(points: list[TripPoint] | list[JournalEntry]) -> str:
    return json.dumps(export_trip_items(points), indent=2)


def _coerce_float(item: dict[str, Any], key: str, index: int) -> float:
    value = item.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TripFileError(f"Item {index}: '{key}' must be a number")
    value = float(value)
    if key != "speed" and not math.isfinite(value):
        raise TripFileError(f"Item {index}: '{key}' must be finite")
    return value


def load_trip_items(text: str) -> list[GpsSample]:
    """Parse a trip file into samples sorted by timestamp.

    Speeds are passed through unchanged; the engine decides which are valid.

    Raises:
        TripFileError: On malformed JSON or items missing required fields.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise TripFileError(f"Invalid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise TripFileError("Trip file must contain a JSON array of items")

    samples: list[GpsSample] = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise TripFileError(f"Item {index}: expected an object")
        try:
            timestamp = parse_timestamp(item.get("timestamp"))
        except ValueError as exc:
            raise TripFileError(f"Item {index}: {exc}") from exc
        latitude = _coerce_float(item, "latitude", index)
        longitude = _coerce_float(item, "longitude", index)
        if not (-90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0):
            raise TripFileError(f"Item {index}: coordinate out of range")
        samples.append(
            GpsSample(
                timestamp=timestamp,
                latitude=latitude,
                longitude=longitude,
                speed=_coerce_float(item, "speed", index),
                code=str(item.get("code") or ""),
                note=str(item.get("note") or ""),
            )
        )

    samples.sort(key=lambda s: s.timestamp)
    logger.info("Loaded %d trip items", len(samples))
    return samples


def read_trip_file(path: str | Path) -> list[GpsSample]:
    """Load trip items from a file on disk."""
    file_path = Path(path).expanduser()
    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise TripFileError(f"Cannot read {file_path}: {exc}") from exc
    return load_trip_items(text)

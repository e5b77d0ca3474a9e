"""Data models for the trip persistence layer."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone

# Stored in place of a negative/NaN speed so the raw reading can still be audited.
INVALID_SPEED = -1.0


def to_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Fixed-width ISO 8601 so stored timestamps sort lexically."""
    return to_utc(value).isoformat(timespec="milliseconds")


def parse_timestamp(value: str | datetime | float | int) -> datetime:
    """Parse an ISO 8601 string, epoch seconds, or datetime into aware UTC.

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp.
    """
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if not math.isfinite(value):
            raise ValueError(f"Invalid epoch timestamp: {value!r}")
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return to_utc(datetime.fromisoformat(text))
    raise ValueError(f"Invalid timestamp: {value!r}")


def is_valid_speed(speed: float | None) -> bool:
    """True for a finite, non-negative speed in m/s."""
    if speed is None:
        return False
    try:
        value = float(speed)
    except (TypeError, ValueError):
        return False
    return math.isfinite(value) and value >= 0.0


@dataclass
class GpsSample:
    """A single location reading from the host's location service.

    ``timestamp`` is the natural key within a device's sample stream.
    """

    timestamp: datetime
    latitude: float
    longitude: float
    speed: float  # m/s, INVALID_SPEED when the reading was unusable
    processed: bool = False
    code: str = ""
    note: str = ""

    @property
    def has_valid_speed(self) -> bool:
        return is_valid_speed(self.speed)


@dataclass
class MotionSample:
    """A fused accelerometer / gyroscope / attitude reading.

    Acceleration is user acceleration in g (gravity removed), rotation rate
    in rad/s, attitude as (pitch, yaw, roll) in radians.
    """

    timestamp: datetime
    acceleration: tuple[float, float, float] = (0.0, 0.0, 0.0)
    rotation_rate: tuple[float, float, float] = (0.0, 0.0, 0.0)
    attitude: tuple[float, float, float] = (0.0, 0.0, 0.0)

    @property
    def acceleration_magnitude(self) -> float:
        x, y, z = self.acceleration
        return math.sqrt(x * x + y * y + z * z)


@dataclass
class JournalEntry:
    """A GpsSample confirmed as part of a trip and owned by the journal."""

    id: int
    trip_id: str
    timestamp: datetime
    latitude: float
    longitude: float
    speed: float
    processed: bool = False
    code: str = ""
    note: str = ""
    created_at: str = ""


@dataclass
class TripSummary:
    """Immutable summary of one completed trip.

    Only ``archived`` and the two address fields change after creation:
    addresses are filled in by a second geocoding pass, ``archived`` by
    history retention.
    """

    id: str
    origin_timestamp: datetime
    origin_latitude: float
    origin_longitude: float
    destination_timestamp: datetime
    destination_latitude: float
    destination_longitude: float
    max_speed: float = 0.0
    duration_seconds: float = 0.0
    distance_meters: float = 0.0
    score_acceleration: float = 100.0
    score_deceleration: float = 100.0
    score_smoothness: float = 100.0
    sample_count: int = 0
    origin_address: str = ""
    destination_address: str = ""
    archived: bool = False
    created_at: str = ""

    def scores(self) -> dict[str, float]:
        """Return the three driving scores as a dict."""
        return {
            "acceleration": self.score_acceleration,
            "deceleration": self.score_deceleration,
            "smoothness": self.score_smoothness,
        }


@dataclass
class TripPoint:
    """A route point kept with its trip after the journal row is pruned."""

    trip_id: str
    timestamp: datetime
    latitude: float
    longitude: float
    speed: float
    code: str = ""
    note: str = ""


@dataclass
class HistorySummary:
    """Aggregated totals for one calendar period (``YYYY-MM``)."""

    period_key: str
    total_trips: int = 0
    total_distance: float = 0.0
    total_duration: float = 0.0
    highest_speed: float = 0.0
    total_smoothness: float = 0.0
    total_acceleration: float = 0.0
    total_deceleration: float = 0.0
    trip_ids: list[str] = field(default_factory=list)
    updated_at: str = ""

    def averages(self) -> dict[str, float]:
        """Average per-trip scores for the period (0 when empty)."""
        if self.total_trips == 0:
            return {"acceleration": 0.0, "deceleration": 0.0, "smoothness": 0.0}
        return {
            "acceleration": round(self.total_acceleration / self.total_trips, 2),
            "deceleration": round(self.total_deceleration / self.total_trips, 2),
            "smoothness": round(self.total_smoothness / self.total_trips, 2),
        }

"""Tracking configuration, states, and the command/event types of the trip engine."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from drivelog.core.storage.models import GpsSample


# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

MPH_5 = 2.2352                  # default trip speed threshold, m/s
MPH_10 = 4.4704                 # driving threshold and acceleration limit, m/s
TRIP_SEPARATOR_SECONDS = 210.0
SAMPLE_RATE_SECONDS = 5.0
TRIP_ENTRIES_MIN = 12
JOURNAL_LIMIT = 1000
TRIP_HISTORY_LIMIT = 20
MOTION_HISTORY_LIMIT = 100


class ConfigurationInvalid(ValueError):
    """Raised when a tracking configuration value is out of range."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TrackingConfig:
    """Engine parameters. Replaced as a whole; changes apply to later samples."""

    speed_threshold: float = MPH_5
    trip_separator_seconds: float = TRIP_SEPARATOR_SECONDS
    sample_rate_seconds: float = SAMPLE_RATE_SECONDS
    trip_entries_min: int = TRIP_ENTRIES_MIN
    journal_limit: int = JOURNAL_LIMIT
    trip_history_limit: int = TRIP_HISTORY_LIMIT
    # Consecutive above-threshold samples needed to leave Candidate
    trip_confirm_samples: int = 2

    # ActivityClassifier
    walk_threshold: float = 0.5
    run_threshold: float = 2.0
    driving_threshold: float = MPH_10
    idle_energy: float = 0.05       # g
    walk_energy: float = 0.35       # g
    motion_window: int = 5

    # Persistence retry
    persist_max_retries: int = 3
    persist_backoff_seconds: float = 0.5
    persist_backoff_max_seconds: float = 5.0

    motion_history_limit: int = MOTION_HISTORY_LIMIT
    period_timezone: str = "UTC"

    @property
    def buffer_limit(self) -> int:
        """Samples needed to hold one full separator window, at least 1."""
        if self.sample_rate_seconds <= 0:
            return max(1, int(math.ceil(self.trip_separator_seconds)))
        return max(1, int(math.ceil(self.trip_separator_seconds / self.sample_rate_seconds)))

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.period_timezone)

    def validate(self) -> None:
        """Check every value.

        Raises:
            ConfigurationInvalid: Naming the first offending field.
        """
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, float) and not math.isfinite(value):
                raise ConfigurationInvalid(f"{f.name} must be finite, got {value!r}")

        positive = ("speed_threshold", "trip_separator_seconds", "walk_threshold",
                    "run_threshold", "driving_threshold", "idle_energy", "walk_energy")
        for name in positive:
            if getattr(self, name) <= 0:
                raise ConfigurationInvalid(f"{name} must be > 0")

        at_least_one = ("trip_entries_min", "journal_limit", "trip_history_limit",
                        "trip_confirm_samples", "motion_window", "motion_history_limit")
        for name in at_least_one:
            if getattr(self, name) < 1:
                raise ConfigurationInvalid(f"{name} must be >= 1")

        if self.sample_rate_seconds < 0:
            raise ConfigurationInvalid("sample_rate_seconds must be >= 0")
        if self.persist_max_retries < 0:
            raise ConfigurationInvalid("persist_max_retries must be >= 0")
        if self.persist_backoff_seconds < 0:
            raise ConfigurationInvalid("persist_backoff_seconds must be >= 0")
        if self.persist_backoff_max_seconds < self.persist_backoff_seconds:
            raise ConfigurationInvalid(
                "persist_backoff_max_seconds must be >= persist_backoff_seconds"
            )
        if not self.walk_threshold < self.run_threshold < self.driving_threshold:
            raise ConfigurationInvalid(
                "walk_threshold < run_threshold < driving_threshold is required"
            )
        if self.idle_energy >= self.walk_energy:
            raise ConfigurationInvalid("idle_energy must be below walk_energy")
        try:
            ZoneInfo(self.period_timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigurationInvalid(
                f"Unknown period_timezone: {self.period_timezone!r}"
            ) from exc

    def with_changes(self, **changes: Any) -> TrackingConfig:
        """Return a validated copy with ``changes`` applied.

        Raises:
            ConfigurationInvalid: On unknown fields or invalid values.
        """
        known = {f.name for f in fields(self)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ConfigurationInvalid(f"Unknown tracking setting(s): {', '.join(unknown)}")
        try:
            updated = replace(self, **changes)
            updated.validate()
        except TypeError as exc:
            raise ConfigurationInvalid(str(exc)) from exc
        return updated

    def as_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------

class ActivityState(str, Enum):
    STATIONARY = "stationary"
    WALKING = "walking"
    RUNNING = "running"
    DRIVING = "driving"
    UNKNOWN = "unknown"


class TripState(str, Enum):
    IDLE = "idle"
    CANDIDATE = "candidate"
    ACTIVE = "active"


# ---------------------------------------------------------------------------
# Commands (state machine -> persistence executor)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PersistSamples:
    """Append confirmed samples to the journal, in order."""

    trip_id: str
    samples: tuple[GpsSample, ...]


@dataclass(frozen=True)
class FinalizeTrip:
    """Close a trip: journal rows after ``end_timestamp`` are not part of it.

    ``min_entries`` is the minimum trip length in force when the trip was confirmed.
    """

    trip_id: str
    end_timestamp: datetime
    expected_count: int
    min_entries: int


@dataclass(frozen=True)
class DiscardTrip:
    """Delete every journal row of a trip that was too short to summarize."""

    trip_id: str


Command = Union[PersistSamples, FinalizeTrip, DiscardTrip]


# ---------------------------------------------------------------------------
# Events (engine -> subscribers)
# ---------------------------------------------------------------------------

EVENT_STATE_CHANGED = "state_changed"
EVENT_SAMPLE_REJECTED = "sample_rejected"
EVENT_TRIP_STARTED = "trip_started"
EVENT_TRIP_FINALIZED = "trip_finalized"
EVENT_TRIP_DISCARDED = "trip_discarded"
EVENT_PERSISTENCE_RETRY = "persistence_retry"
EVENT_PERSISTENCE_WRITE_FAILED = "persistence_write_failed"
EVENT_PERSISTENCE_READ_FAILED = "persistence_read_failed"
EVENT_CONFIG_UPDATED = "config_updated"
EVENT_CONFIG_REJECTED = "config_rejected"
EVENT_JOURNAL_PRUNED = "journal_pruned"
EVENT_TRIPS_ARCHIVED = "trips_archived"


@dataclass
class EngineEvent:
    """A state change or failure surfaced to the host."""

    kind: str
    timestamp: datetime
    trip_id: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "timestamp": self.timestamp.isoformat(),
            "trip_id": self.trip_id,
            "detail": self.detail,
        }

"""Trip start/stop detection.

The state machine owns the sample buffer and decides when buffered samples
become a trip and when a trip ends. It performs no I/O: every decision that
touches storage is returned as a command for the persistence executor.

Idle ──(speed ≥ threshold)──▶ Candidate ──(sustained)──▶ Active
  ▲            ◀──(speed < threshold)──┘                    │
  └──────────────(separator expires / permission lost)──────┘

While Active, the trip ends ``trip_separator_seconds`` after the last moving
sample. Slow samples inside that window are journaled provisionally; a moving
sample before the deadline cancels the separation and the trip continues.
When the deadline passes, the slow tail after the last moving sample is not
part of the trip.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta

from drivelog.core.storage.models import INVALID_SPEED, GpsSample, to_utc
from drivelog.domains.driving.domain_logic.sample_buffer import SampleBuffer
from drivelog.domains.driving.domain_logic.tracking_models import (
    ActivityState,
    Command,
    DiscardTrip,
    FinalizeTrip,
    PersistSamples,
    TrackingConfig,
    TripState,
)

logger = logging.getLogger(__name__)


class InvalidSample(ValueError):
    """A sample that cannot be placed in the stream (duplicate, out of order, malformed)."""


def _new_trip_id() -> str:
    return str(uuid.uuid4())


class TripStateMachine:
    """Idle/Candidate/Active trip detector.

    Usage::

        machine = TripStateMachine(TrackingConfig())
        for command in machine.process(sample):
            executor.apply(command)
        for command in machine.expire(now):
            executor.apply(command)
    """

    def __init__(
        self,
        config: TrackingConfig | None = None,
        *,
        id_factory: Callable[[], str] = _new_trip_id,
    ) -> None:
        self._config = config or TrackingConfig()
        self._id_factory = id_factory
        self.buffer = SampleBuffer(self._config.buffer_limit)

        self._state = TripState.IDLE
        self._last_timestamp: datetime | None = None
        self._run: list[GpsSample] = []

        # Active trip bookkeeping
        self._trip_id: str | None = None
        self._trip_started_at: datetime | None = None
        self._last_moving_at: datetime | None = None
        self._deadline: datetime | None = None
        self._last_persisted_at: datetime | None = None
        self._persisted_moving = 0   # persisted samples up to the last moving one
        self._persisted_tail = 0     # persisted slow samples after it
        self._min_entries = self._config.trip_entries_min

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> TripState:
        return self._state

    @property
    def config(self) -> TrackingConfig:
        return self._config

    @property
    def active_trip_id(self) -> str | None:
        return self._trip_id

    @property
    def separation_deadline(self) -> datetime | None:
        return self._deadline

    @property
    def last_timestamp(self) -> datetime | None:
        return self._last_timestamp

    def snapshot(self) -> dict:
        """Plain-data view of the current state for status reporting."""
        return {
            "state": self._state.value,
            "trip_id": self._trip_id,
            "trip_started_at": self._trip_started_at.isoformat() if self._trip_started_at else None,
            "last_moving_at": self._last_moving_at.isoformat() if self._last_moving_at else None,
            "separation_deadline": self._deadline.isoformat() if self._deadline else None,
            "separating": self.is_separating,
            "persisted_samples": self._persisted_moving + self._persisted_tail,
            "buffered_samples": len(self.buffer),
            "buffer_limit": self.buffer.limit,
            "last_sample_at": self._last_timestamp.isoformat() if self._last_timestamp else None,
        }

    @property
    def is_separating(self) -> bool:
        """True while Active and the latest sample was below threshold."""
        return (
            self._state is TripState.ACTIVE
            and self._last_timestamp is not None
            and self._last_moving_at is not None
            and self._last_timestamp > self._last_moving_at
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def reconfigure(self, config: TrackingConfig) -> None:
        """Apply a new configuration to subsequent samples.

        A running separation deadline keeps the separator it was set with.
        """
        self._config = config
        self.buffer.resize(config.buffer_limit)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def process(
        self,
        sample: GpsSample,
        activity: ActivityState | None = None,
    ) -> list[Command]:
        """Feed one location sample.

        Returns:
            Commands for the persistence executor, in the order they must apply.

        Raises:
            InvalidSample: The timestamp is not newer than the previous sample.
                No state has changed when this is raised.
        """
        ts = to_utc(sample.timestamp)
        if self._last_timestamp is not None and ts <= self._last_timestamp:
            raise InvalidSample(
                f"Sample at {ts.isoformat()} is not newer than {self._last_timestamp.isoformat()}"
            )

        commands: list[Command] = []
        if self._state is TripState.ACTIVE and self._deadline is not None and ts >= self._deadline:
            # The separation timer expired before this sample arrived.
            commands.extend(self._finalize())

        self._last_timestamp = ts
        sample = replace(sample, timestamp=ts)

        if not sample.has_valid_speed:
            logger.debug("Invalid speed at %s; buffered without a transition", ts.isoformat())
            self.buffer.push(replace(sample, speed=INVALID_SPEED, code="invalid"))
            return commands

        if activity is not None and not sample.note:
            sample = replace(sample, note=f"activity: {activity.value}")

        moving = sample.speed >= self._config.speed_threshold

        if self._state is TripState.IDLE:
            self.buffer.push(sample)
            if moving:
                self._state = TripState.CANDIDATE
                self._run = [sample]
                if len(self._run) >= self._config.trip_confirm_samples:
                    commands.extend(self._activate())

        elif self._state is TripState.CANDIDATE:
            self.buffer.push(sample)
            if moving:
                self._run.append(sample)
                if len(self._run) >= self._config.trip_confirm_samples:
                    commands.extend(self._activate())
            else:
                self._state = TripState.IDLE
                self._run = []

        else:
            if moving:
                self._last_moving_at = ts
                self._deadline = ts + timedelta(seconds=self._config.trip_separator_seconds)
                self.buffer.clear()
                self._persisted_moving += self._persisted_tail
                self._persisted_tail = 0
                if self._due(ts):
                    self._last_persisted_at = ts
                    self._persisted_moving += 1
                    commands.append(PersistSamples(self._trip_id, (sample,)))
            else:
                self.buffer.push(sample)
                if self._due(ts):
                    self._last_persisted_at = ts
                    self._persisted_tail += 1
                    commands.append(PersistSamples(self._trip_id, (sample,)))

        return commands

    def expire(self, now: datetime) -> list[Command]:
        """Finalize the active trip if its separation deadline has passed."""
        now = to_utc(now)
        if self._state is TripState.ACTIVE and self._deadline is not None and now >= self._deadline:
            return self._finalize()
        return []

    def force_finalize(self) -> list[Command]:
        """End any trip in progress now, with the samples received so far.

        Used when location permission is revoked. A pending candidate run
        is abandoned.
        """
        if self._state is TripState.ACTIVE:
            return self._finalize()
        if self._state is TripState.CANDIDATE:
            self._state = TripState.IDLE
            self._run = []
        return []

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _due(self, ts: datetime) -> bool:
        if self._last_persisted_at is None:
            return True
        elapsed = (ts - self._last_persisted_at).total_seconds()
        return elapsed >= self._config.sample_rate_seconds

    def _activate(self) -> list[Command]:
        run_start = self._run[0].timestamp
        drained = self.buffer.drain()
        # Earlier stationary context is superseded by the run that confirmed the trip.
        kept = {s.timestamp: s for s in drained if s.timestamp >= run_start and s.has_valid_speed}
        # A buffer smaller than the run may have evicted part of it.
        for sample in self._run:
            kept.setdefault(sample.timestamp, sample)
        promoted = [kept[ts] for ts in sorted(kept)]

        self._state = TripState.ACTIVE
        self._trip_id = self._id_factory()
        self._trip_started_at = run_start
        # Later config changes do not reclassify an already confirmed trip.
        self._min_entries = self._config.trip_entries_min
        self._last_moving_at = self._run[-1].timestamp
        self._deadline = self._last_moving_at + timedelta(
            seconds=self._config.trip_separator_seconds
        )
        self._run = []
        self._last_persisted_at = None
        self._persisted_tail = 0

        batch: list[GpsSample] = []
        for sample in promoted:
            if self._due(sample.timestamp):
                self._last_persisted_at = sample.timestamp
                batch.append(sample)
        self._persisted_moving = len(batch)

        logger.info(
            "Trip %s confirmed at %s (%d samples promoted)",
            self._trip_id,
            run_start.isoformat(),
            len(batch),
        )
        return [PersistSamples(self._trip_id, tuple(batch))]

    def _finalize(self) -> list[Command]:
        trip_id = self._trip_id
        end = self._last_moving_at
        count = self._persisted_moving
        min_entries = self._min_entries

        self._state = TripState.IDLE
        self._trip_id = None
        self._trip_started_at = None
        self._last_moving_at = None
        self._deadline = None
        self._last_persisted_at = None
        self._persisted_moving = 0
        self._persisted_tail = 0
        self._run = []
        self.buffer.clear()

        if trip_id is None or end is None:
            logger.error("Finalize requested without an active trip")
            return []
        if count < min_entries:
            logger.info(
                "Trip %s ended with %d samples (< %d); discarding",
                trip_id,
                count,
                min_entries,
            )
            return [DiscardTrip(trip_id)]
        logger.info("Trip %s ended at %s with %d samples", trip_id, end.isoformat(), count)
        return [FinalizeTrip(trip_id, end, count, min_entries)]

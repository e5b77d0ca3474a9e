"""Trip engine — sensor entry point, persistence executor, and separation timer.

One engine instance owns all tracking state. Sensor callbacks are serialized
by an ``asyncio.Lock``; the state machine's commands are queued and applied
in order by a single writer task, which runs every storage call on a
dedicated one-thread executor so slow writes never stall sample intake.

Engine time follows the sample stream: between samples it advances with the
event loop clock from the last sample's timestamp. A live stream therefore
ends trips in wall time, while a replayed recording ends them in its own
time (or explicitly via :meth:`TripEngine.advance_clock`).
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, TYPE_CHECKING

from drivelog.core.storage.models import (
    INVALID_SPEED,
    GpsSample,
    JournalEntry,
    MotionSample,
    TripSummary,
    is_valid_speed,
    parse_timestamp,
)
from drivelog.core.storage.repository import (
    DuplicateEntryError,
    PersistenceReadFailed,
    PersistenceWriteFailed,
    RepositoryError,
    TripRepository,
)
from drivelog.domains.driving.domain_logic.activity_classifier import ActivityClassifier
from drivelog.domains.driving.domain_logic.history_aggregator import HistoryAggregator
from drivelog.domains.driving.domain_logic.tracking_models import (
    EVENT_CONFIG_REJECTED,
    EVENT_CONFIG_UPDATED,
    EVENT_JOURNAL_PRUNED,
    EVENT_PERSISTENCE_READ_FAILED,
    EVENT_PERSISTENCE_RETRY,
    EVENT_PERSISTENCE_WRITE_FAILED,
    EVENT_SAMPLE_REJECTED,
    EVENT_STATE_CHANGED,
    EVENT_TRIP_DISCARDED,
    EVENT_TRIP_FINALIZED,
    EVENT_TRIP_STARTED,
    EVENT_TRIPS_ARCHIVED,
    ActivityState,
    Command,
    ConfigurationInvalid,
    DiscardTrip,
    EngineEvent,
    FinalizeTrip,
    PersistSamples,
    TrackingConfig,
    TripState,
)
from drivelog.domains.driving.domain_logic.trip_state_machine import (
    InvalidSample,
    TripStateMachine,
)
from drivelog.domains.driving.domain_logic.trip_summarizer import resolve_addresses, summarize

if TYPE_CHECKING:
    from drivelog.core.audit.logger import AuditLogger
    from drivelog.domains.driving.connectors import GeocodingProvider

logger = logging.getLogger(__name__)

RECENT_EVENT_LIMIT = 100


@dataclass
class _PendingSample:
    trip_id: str
    sample: GpsSample
    attempts: int = 0


@dataclass
class _TripOutcome:
    trip_id: str
    summary: TripSummary | None = None
    discarded_rows: int = 0
    trimmed_rows: int = 0
    archived: list[str] = field(default_factory=list)
    pruned: int = 0


class TripEngine:
    """Turns location and motion samples into journaled, summarized trips.

    Usage::

        engine = TripEngine(repository, config=settings.tracking_config(), audit=audit)
        await engine.on_location_sample(ts, 40.0, -75.0, 12.3)
        ...
        await engine.flush()   # wait for pending writes
        await engine.stop()
    """

    def __init__(
        self,
        repository: TripRepository,
        *,
        config: TrackingConfig | None = None,
        audit: AuditLogger | None = None,
        geocoder: GeocodingProvider | None = None,
        live_timer: bool = True,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._config = config or TrackingConfig()
        self._config.validate()
        self._repo = repository
        self._audit = audit
        self._geocoder = geocoder
        self._live_timer = live_timer

        self._classifier = ActivityClassifier(self._config)
        if id_factory is not None:
            self._machine = TripStateMachine(self._config, id_factory=id_factory)
        else:
            self._machine = TripStateMachine(self._config)
        self._aggregator = HistoryAggregator(repository, self._config)
        self._motion: deque[MotionSample] = deque(maxlen=self._config.motion_history_limit)
        self._activity = ActivityState.UNKNOWN
        self._last_speed: float | None = None

        self._lock = asyncio.Lock()
        self._queue: asyncio.Queue[Command] | None = None
        self._writer: asyncio.Task | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._pending: deque[_PendingSample] = deque()
        self._tasks: set[asyncio.Task] = set()

        self._timer: asyncio.TimerHandle | None = None
        self._anchor: tuple[datetime, float] | None = None

        self._events: deque[EngineEvent] = deque(maxlen=RECENT_EVENT_LIMIT)
        self._subscribers: list[asyncio.Queue[EngineEvent]] = []
        self._stats = {
            "samples_accepted": 0,
            "samples_rejected": 0,
            "samples_invalid_speed": 0,
            "samples_persisted": 0,
            "samples_dropped": 0,
            "trips_finalized": 0,
            "trips_discarded": 0,
        }

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> TrackingConfig:
        return self._config

    @property
    def state(self) -> TripState:
        return self._machine.state

    @property
    def activity(self) -> ActivityState:
        return self._activity

    @property
    def aggregator(self) -> HistoryAggregator:
        return self._aggregator

    @property
    def running(self) -> bool:
        return self._writer is not None and not self._writer.done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the writer and recover trips interrupted by a previous run.

        Idempotent. Called implicitly by the sample callbacks.
        """
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="drivelog-writer")
        self._writer = asyncio.create_task(self._write_loop(), name="drivelog-writer")
        try:
            outcomes = await self._in_writer(self._recover_sync, self._machine.active_trip_id)
        except RepositoryError as exc:
            logger.warning("Journal recovery skipped: %s", exc)
            self._emit(EVENT_PERSISTENCE_READ_FAILED,
                       detail={"error": str(exc), "error_type": type(exc).__name__,
                               "operation": "recovery"})
            self._audit_event("persistence_failure", status="failure",
                              error_type=type(exc).__name__)
            return
        for outcome in outcomes:
            self._report_outcome(outcome)

    async def stop(self) -> None:
        """Cancel the timer, apply queued writes, and stop the writer."""
        self._cancel_timer()
        if self._writer is None:
            return
        await self.flush()
        self._writer.cancel()
        try:
            await self._writer
        except asyncio.CancelledError:
            pass
        self._writer = None
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        logger.info("Trip engine stopped")

    async def flush(self) -> None:
        """Wait until every queued command and address lookup has been applied."""
        if self._queue is not None:
            await self._queue.join()
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
            if self._queue is not None:
                await self._queue.join()
        if self._executor is not None:
            # Audit rows submitted behind the last command
            await self._in_writer(lambda: None)

    # ------------------------------------------------------------------
    # Sensor input
    # ------------------------------------------------------------------

    async def on_location_sample(
        self,
        timestamp: datetime | str | float,
        latitude: float,
        longitude: float,
        speed: float | None,
    ) -> dict[str, Any]:
        """Feed one location reading.

        Malformed input is rejected, logged, and reported in the result; it
        never raises and never stops later samples from being processed.

        Returns:
            ``{"accepted", "state", "activity", "trip_id", "reason"}``.
        """
        await self.start()
        try:
            sample = self._build_sample(timestamp, latitude, longitude, speed)
        except InvalidSample as exc:
            return self._reject(str(exc))

        latest_motion = self._motion[-1] if self._motion else None
        activity = self._classifier.classify(
            sample.speed if sample.has_valid_speed else None, latest_motion
        )

        async with self._lock:
            previous = self._machine.state
            try:
                commands = self._machine.process(sample, activity)
            except InvalidSample as exc:
                return self._reject(str(exc))

            self._activity = activity
            self._last_speed = sample.speed if sample.has_valid_speed else None
            self._stats["samples_accepted"] += 1
            if not sample.has_valid_speed:
                self._stats["samples_invalid_speed"] += 1
                logger.warning("Invalid speed %r at %s; sample buffered only", speed, sample.timestamp)
            self._anchor = (self._machine.last_timestamp, self._loop_time())
            self._enqueue(commands)
            self._note_transition(previous, sample.timestamp)
            self._rearm_timer()
            return {
                "accepted": True,
                "state": self._machine.state.value,
                "activity": activity.value,
                "trip_id": self._machine.active_trip_id,
                "reason": None,
            }

    async def on_motion_sample(
        self,
        timestamp: datetime | str | float,
        acceleration: tuple[float, float, float] | list[float],
        rotation_rate: tuple[float, float, float] | list[float] = (0.0, 0.0, 0.0),
        attitude: tuple[float, float, float] | list[float] = (0.0, 0.0, 0.0),
    ) -> ActivityState:
        """Feed one motion reading; returns the resulting activity.

        Motion readings live only in the rolling history.
        """
        try:
            sample = MotionSample(
                timestamp=parse_timestamp(timestamp),
                acceleration=_vec3(acceleration),
                rotation_rate=_vec3(rotation_rate),
                attitude=_vec3(attitude),
            )
        except (TypeError, ValueError) as exc:
            self._reject(f"Invalid motion sample: {exc}")
            return self._activity

        async with self._lock:
            self._motion.append(sample)
            last_speed = self._last_speed
        activity = self._classifier.classify(last_speed, sample)
        self._activity = activity
        return activity

    async def on_permission_revoked(self) -> None:
        """Location access was lost: end the trip in progress with what we have."""
        async with self._lock:
            previous = self._machine.state
            commands = self._machine.force_finalize()
            self._cancel_timer()
            self._enqueue(commands)
            self._note_transition(previous, self._now())
        logger.info("Location permission revoked; tracking state reset")

    async def advance_clock(self, now: datetime | str | float) -> None:
        """Move engine time forward to ``now`` and apply any due trip end.

        Used for replayed recordings, whose timestamps are far from wall time.
        """
        when = parse_timestamp(now)
        async with self._lock:
            previous = self._machine.state
            commands = self._machine.expire(when)
            if self._anchor is None or when > self._anchor[0]:
                self._anchor = (when, self._loop_time())
            self._enqueue(commands)
            self._note_transition(previous, when)
            self._rearm_timer()

    async def update_config(self, **changes: Any) -> bool:
        """Apply tracking setting changes to subsequent samples.

        Invalid changes are rejected as a whole and the current configuration
        stays in force.

        Returns:
            True if the new configuration was adopted.
        """
        try:
            updated = self._config.with_changes(**changes)
        except ConfigurationInvalid as exc:
            logger.warning("Rejected tracking configuration: %s", exc)
            self._emit(EVENT_CONFIG_REJECTED, detail={"error": str(exc), "changes": changes})
            return False

        async with self._lock:
            self._config = updated
            self._machine.reconfigure(updated)
            self._classifier.reconfigure(updated)
            self._aggregator.reconfigure(updated)
            self._motion = deque(self._motion, maxlen=updated.motion_history_limit)
        logger.info("Tracking configuration updated: %s", sorted(changes))
        self._emit(EVENT_CONFIG_UPDATED, detail={"changes": changes})
        return True

    async def reprocess_trip(self, trip_id: str) -> TripSummary | None:
        """Summarize a stored trip again from its journal rows under the current config.

        The old summary and route points are replaced and the trip's history
        period is recomputed. A trip whose rows no longer reach
        ``trip_entries_min`` is discarded.

        Returns:
            The new summary, or None if the trip is in progress, its journal
            rows are gone or incomplete, it was discarded, or storage failed.
        """
        await self.start()
        await self.flush()
        if trip_id == self._machine.active_trip_id:
            logger.warning("Trip %s is in progress; not reprocessed", trip_id)
            return None
        outcome = await self._with_retries(self._reprocess_sync, trip_id, trip_id=trip_id)
        if outcome is None:
            return None
        self._report_outcome(outcome)
        return outcome.summary

    # ------------------------------------------------------------------
    # Status and events
    # ------------------------------------------------------------------

    def status(self) -> dict[str, Any]:
        """Plain-data engine status for tools and diagnostics."""
        return {
            **self._machine.snapshot(),
            "activity": self._activity.value,
            "motion_samples": len(self._motion),
            "motion_energy": self._classifier.motion_energy,
            "pending_writes": len(self._pending) + (self._queue.qsize() if self._queue else 0),
            "writer_running": self.running,
            "live_timer": self._live_timer,
            "stats": dict(self._stats),
        }

    def motion_history(self) -> list[MotionSample]:
        return list(self._motion)

    def recent_events(self, limit: int = 20) -> list[EngineEvent]:
        """Newest-last slice of recent events."""
        events = list(self._events)
        return events[-limit:] if limit > 0 else []

    def subscribe(self, maxsize: int = 256) -> asyncio.Queue[EngineEvent]:
        """Receive every subsequent event on the returned queue."""
        queue: asyncio.Queue[EngineEvent] = asyncio.Queue(maxsize=maxsize)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[EngineEvent]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    # ------------------------------------------------------------------
    # Intake helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _build_sample(
        timestamp: datetime | str | float,
        latitude: float,
        longitude: float,
        speed: float | None,
    ) -> GpsSample:
        try:
            ts = parse_timestamp(timestamp)
            lat = float(latitude)
            lon = float(longitude)
        except (TypeError, ValueError) as exc:
            raise InvalidSample(f"Malformed location sample: {exc}") from exc
        if not (math.isfinite(lat) and math.isfinite(lon)):
            raise InvalidSample("Coordinates must be finite")
        if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
            raise InvalidSample(f"Coordinate out of range: ({lat}, {lon})")
        value = float(speed) if is_valid_speed(speed) else INVALID_SPEED
        return GpsSample(timestamp=ts, latitude=lat, longitude=lon, speed=value)

    def _reject(self, reason: str) -> dict[str, Any]:
        self._stats["samples_rejected"] += 1
        logger.warning("Sample rejected: %s", reason)
        self._emit(EVENT_SAMPLE_REJECTED, detail={"reason": reason})
        return {
            "accepted": False,
            "state": self._machine.state.value,
            "activity": self._activity.value,
            "trip_id": self._machine.active_trip_id,
            "reason": reason,
        }

    def _note_transition(self, previous: TripState, when: datetime | None) -> None:
        current = self._machine.state
        if current is previous:
            return
        at = when or self._now()
        self._emit(
            EVENT_STATE_CHANGED,
            at,
            trip_id=self._machine.active_trip_id,
            detail={"from": previous.value, "to": current.value},
        )
        if current is TripState.ACTIVE:
            self._emit(EVENT_TRIP_STARTED, at, trip_id=self._machine.active_trip_id)

    def _enqueue(self, commands: list[Command]) -> None:
        if not commands:
            return
        if self._queue is None:
            logger.error("Engine not started; %d commands lost", len(commands))
            return
        for command in commands:
            self._queue.put_nowait(command)

    def _emit(
        self,
        kind: str,
        when: datetime | None = None,
        *,
        trip_id: str | None = None,
        detail: dict[str, Any] | None = None,
    ) -> EngineEvent:
        event = EngineEvent(kind=kind, timestamp=when or self._now(), trip_id=trip_id,
                            detail=detail or {})
        self._events.append(event)
        for queue in self._subscribers:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Event subscriber queue full; dropping %s", kind)
        return event

    # ------------------------------------------------------------------
    # Clock and separation timer
    # ------------------------------------------------------------------

    @staticmethod
    def _loop_time() -> float:
        return asyncio.get_running_loop().time()

    def _now(self) -> datetime:
        """Engine time: last sample time plus loop time elapsed since it."""
        if self._anchor is None:
            return datetime.now(timezone.utc)
        anchor_ts, anchor_loop = self._anchor
        try:
            elapsed = self._loop_time() - anchor_loop
        except RuntimeError:
            return anchor_ts
        return anchor_ts + timedelta(seconds=max(0.0, elapsed))

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _rearm_timer(self) -> None:
        """Point the timer at the current separation deadline. Caller holds the lock."""
        self._cancel_timer()
        deadline = self._machine.separation_deadline
        if not self._live_timer or deadline is None or self._machine.state is not TripState.ACTIVE:
            return
        delay = max(0.0, (deadline - self._now()).total_seconds())
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        task = asyncio.get_running_loop().create_task(self._expire_from_timer())
        self._track(task)

    async def _expire_from_timer(self) -> None:
        async with self._lock:
            # A sample may have moved the deadline since the timer fired.
            now = self._now()
            previous = self._machine.state
            commands = self._machine.expire(now)
            self._enqueue(commands)
            self._note_transition(previous, now)
            self._rearm_timer()

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ------------------------------------------------------------------
    # Writer
    # ------------------------------------------------------------------

    async def _in_writer(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    async def _write_loop(self) -> None:
        assert self._queue is not None
        while True:
            command = await self._queue.get()
            try:
                await self._apply(command)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Unexpected failure applying %s", type(command).__name__)
            finally:
                self._queue.task_done()

    async def _apply(self, command: Command) -> None:
        if isinstance(command, PersistSamples):
            self._pending.extend(_PendingSample(command.trip_id, s) for s in command.samples)
            await self._drain_pending()
            await self._prune_journal()
        elif isinstance(command, FinalizeTrip):
            await self._drain_pending()
            outcome = await self._with_retries(self._finalize_sync, command, trip_id=command.trip_id)
            if outcome is not None:
                self._report_outcome(outcome)
        elif isinstance(command, DiscardTrip):
            await self._drain_pending()
            outcome = await self._with_retries(self._discard_sync, command, trip_id=command.trip_id)
            if outcome is not None:
                self._report_outcome(outcome)

    def _backoff(self, attempts: int) -> float:
        delay = self._config.persist_backoff_seconds * (2 ** max(0, attempts - 1))
        return min(delay, self._config.persist_backoff_max_seconds)

    async def _drain_pending(self) -> None:
        """Insert pending samples in order; a failing sample stays at the head."""
        while self._pending:
            head = self._pending[0]
            try:
                await self._in_writer(self._repo.insert_journal_entry, head.trip_id, head.sample)
            except DuplicateEntryError:
                logger.warning("Journal already holds a sample at %s; skipped",
                               head.sample.timestamp.isoformat())
                self._pending.popleft()
                continue
            except PersistenceWriteFailed as exc:
                head.attempts += 1
                if head.attempts > self._config.persist_max_retries:
                    self._pending.popleft()
                    self._stats["samples_dropped"] += 1
                    logger.warning("Dropping sample at %s after %d attempts: %s",
                                   head.sample.timestamp.isoformat(), head.attempts, exc)
                    self._persistence_failed(head.trip_id, exc, sample=head.sample)
                    continue
                delay = self._backoff(head.attempts)
                self._emit(EVENT_PERSISTENCE_RETRY, trip_id=head.trip_id,
                           detail={"attempt": head.attempts, "delay_seconds": delay,
                                   "error": str(exc)})
                await asyncio.sleep(delay)
                continue
            self._pending.popleft()
            self._stats["samples_persisted"] += 1

    async def _with_retries(self, func: Callable[..., Any], *args: Any, trip_id: str) -> Any:
        attempts = 0
        while True:
            try:
                return await self._in_writer(func, *args)
            except (PersistenceWriteFailed, PersistenceReadFailed) as exc:
                attempts += 1
                if attempts > self._config.persist_max_retries:
                    logger.error("Giving up on trip %s after %d attempts: %s",
                                 trip_id, attempts, exc)
                    self._persistence_failed(trip_id, exc)
                    return None
                await asyncio.sleep(self._backoff(attempts))

    async def _prune_journal(self) -> None:
        try:
            pruned = await self._in_writer(self._repo.prune_journal_to_limit,
                                           self._config.journal_limit)
        except PersistenceWriteFailed as exc:
            logger.warning("Journal prune failed: %s", exc)
            return
        if pruned:
            self._emit(EVENT_JOURNAL_PRUNED, detail={"rows": pruned})
            self._audit_event("journal_pruned", metadata={"rows": pruned})

    def _persistence_failed(
        self,
        trip_id: str | None,
        exc: Exception,
        *,
        sample: GpsSample | None = None,
    ) -> None:
        detail: dict[str, Any] = {"error": str(exc), "error_type": type(exc).__name__}
        if sample is not None:
            detail["sample_timestamp"] = sample.timestamp.isoformat()
        self._emit(EVENT_PERSISTENCE_WRITE_FAILED, trip_id=trip_id, detail=detail)
        self._audit_event("persistence_failure", trip_id=trip_id, status="failure",
                          error_type=type(exc).__name__)

    def _audit_event(self, action: str, **kwargs: Any) -> None:
        if self._audit is None:
            return
        # Audit rows go through the writer thread to stay ordered with trip writes.
        if self._executor is not None:
            self._executor.submit(self._audit.log_engine_event, action, **kwargs)
        else:
            self._audit.log_engine_event(action, **kwargs)

    # ------------------------------------------------------------------
    # Writer-thread operations
    # ------------------------------------------------------------------

    def _finalize_sync(self, command: FinalizeTrip) -> _TripOutcome:
        outcome = _TripOutcome(trip_id=command.trip_id)

        existing = self._repo.get_trip_summary(command.trip_id)
        if existing is None:
            rows = self._repo.query_journal_range(trip_id=command.trip_id, unprocessed_only=True)
            trip_rows = [r for r in rows if r.timestamp <= command.end_timestamp]
            tail = len(rows) - len(trip_rows)
            if tail:
                outcome.trimmed_rows = self._repo.delete_journal_trip(
                    command.trip_id, after=command.end_timestamp
                )
            if len(trip_rows) < command.min_entries:
                # Some samples were dropped after failed writes.
                outcome.discarded_rows = self._repo.delete_journal_trip(command.trip_id)
                return outcome
            summary = self._summarize(command.trip_id, trip_rows)
        else:
            summary = existing

        outcome.summary = summary
        self._aggregator.absorb(summary)
        outcome.archived = self._aggregator.enforce_retention()
        outcome.pruned = self._repo.prune_journal_to_limit(self._config.journal_limit)
        return outcome

    def _summarize(self, trip_id: str, rows: list[JournalEntry]) -> TripSummary:
        summary = summarize(rows, trip_id=trip_id)
        self._repo.insert_trip_summary(summary, rows)
        return summary

    def _reprocess_sync(self, trip_id: str) -> _TripOutcome | None:
        existing = self._repo.get_trip_summary(trip_id)
        rows = self._repo.query_journal_range(trip_id=trip_id)
        if existing is not None and len(rows) < existing.sample_count:
            logger.warning("Trip %s has %d of %d journal rows left; not reprocessed",
                           trip_id, len(rows), existing.sample_count)
            return None
        if not rows:
            return None

        period = self._repo.get_history_period(trip_id)
        self._repo.deprocess_journal(trip_id)
        if self._repo.delete_trip(trip_id) and period is not None:
            self._aggregator.recompute(period)

        moving = [r for r in rows if r.speed >= self._config.speed_threshold]
        end = (moving or rows)[-1].timestamp
        command = FinalizeTrip(trip_id, end, len(rows), self._config.trip_entries_min)
        logger.info("Reprocessing trip %s (%d rows)", trip_id, len(rows))
        return self._finalize_sync(command)

    def _discard_sync(self, command: DiscardTrip) -> _TripOutcome:
        outcome = _TripOutcome(trip_id=command.trip_id)
        outcome.discarded_rows = self._repo.delete_journal_trip(command.trip_id)
        return outcome

    def _recover_sync(self, active_trip_id: str | None = None) -> list[_TripOutcome]:
        """Close trips left open by a previous run and absorb stray summaries."""
        outcomes = []
        rows = self._repo.query_journal_range(unprocessed_only=True)
        by_trip: dict[str, list[JournalEntry]] = {}
        for row in rows:
            by_trip.setdefault(row.trip_id, []).append(row)
        by_trip.pop(active_trip_id, None)
        for trip_id, trip_rows in by_trip.items():
            moving = [r for r in trip_rows if r.speed >= self._config.speed_threshold]
            end = (moving or trip_rows)[-1].timestamp
            logger.info("Recovering interrupted trip %s (%d rows)", trip_id, len(trip_rows))
            command = FinalizeTrip(trip_id, end, len(trip_rows), self._config.trip_entries_min)
            outcomes.append(self._finalize_sync(command))

        for summary in self._repo.query_unabsorbed_summaries():
            self._aggregator.absorb(summary)
        return outcomes

    # ------------------------------------------------------------------
    # Outcome reporting (event loop thread)
    # ------------------------------------------------------------------

    def _report_outcome(self, outcome: _TripOutcome) -> None:
        if outcome.summary is None:
            self._stats["trips_discarded"] += 1
            self._emit(EVENT_TRIP_DISCARDED, trip_id=outcome.trip_id,
                       detail={"rows": outcome.discarded_rows})
            self._audit_event("trip_discarded", trip_id=outcome.trip_id,
                              metadata={"rows": outcome.discarded_rows})
            return

        summary = outcome.summary
        self._stats["trips_finalized"] += 1
        self._emit(
            EVENT_TRIP_FINALIZED,
            summary.destination_timestamp,
            trip_id=summary.id,
            detail={
                "samples": summary.sample_count,
                "distance_meters": round(summary.distance_meters, 1),
                "duration_seconds": summary.duration_seconds,
                "max_speed": summary.max_speed,
                "trimmed_rows": outcome.trimmed_rows,
            },
        )
        self._audit_event("trip_finalized", trip_id=summary.id,
                          metadata={"samples": summary.sample_count})
        if outcome.archived:
            self._emit(EVENT_TRIPS_ARCHIVED, detail={"trip_ids": outcome.archived})
            self._audit_event("trips_archived", metadata={"count": len(outcome.archived)})
        if outcome.pruned:
            self._emit(EVENT_JOURNAL_PRUNED, detail={"rows": outcome.pruned})
            self._audit_event("journal_pruned", metadata={"rows": outcome.pruned})
        if self._geocoder is not None:
            self._track(asyncio.get_running_loop().create_task(self._enrich(summary)))

    async def _enrich(self, summary: TripSummary) -> None:
        """Second pass: attach resolved addresses to a stored summary."""
        origin, destination = await resolve_addresses(summary, self._geocoder)
        if not origin and not destination:
            return
        try:
            await self._in_writer(
                lambda: self._repo.update_trip_addresses(
                    summary.id,
                    origin_address=origin or None,
                    destination_address=destination or None,
                )
            )
        except PersistenceWriteFailed as exc:
            logger.warning("Could not store addresses for trip %s: %s", summary.id, exc)


def _vec3(values: tuple[float, float, float] | list[float]) -> tuple[float, float, float]:
    x, y, z = (float(v) for v in values)
    if not all(math.isfinite(v) for v in (x, y, z)):
        raise ValueError("vector components must be finite")
    return (x, y, z)

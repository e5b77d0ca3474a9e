"""Trip data repository — journal, trip summary, and history persistence.

The repository mediates between domain objects (JournalEntry, TripSummary,
HistorySummary) and the SQLite database, using FieldEncryptor for resolved
addresses. The trip engine is the only writer; tools read concurrently.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any

from drivelog.core.storage.database import DatabaseError, TripDatabase
from drivelog.core.storage.encryption import EncryptionError, FieldEncryptor
from drivelog.core.storage.models import (
    GpsSample,
    HistorySummary,
    JournalEntry,
    TripPoint,
    TripSummary,
    format_timestamp,
    parse_timestamp,
)

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Raised when repository operations fail."""


class PersistenceWriteFailed(RepositoryError):
    """A write could not be applied; the caller may retry."""


class PersistenceReadFailed(RepositoryError):
    """A read could not be served; surfaced to the caller without retry."""


class DuplicateEntryError(PersistenceWriteFailed):
    """A journal row with the same timestamp already exists."""


class TripRepository:
    """Persistence for the journal, trip summaries, and period history.

    Usage::

        db = TripDatabase(":memory:")
        db.initialize()
        repo = TripRepository(db, FieldEncryptor(key="..."))

        repo.insert_journal_entry("trip-1", sample)
        rows = repo.query_journal_range(trip_id="trip-1")
    """

    def __init__(self, database: TripDatabase, encryptor: FieldEncryptor) -> None:
        self._db = database
        self._enc = encryptor

    @property
    def database(self) -> TripDatabase:
        return self._db

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _now_iso() -> str:
        return datetime.now(timezone.utc).isoformat()

    @contextmanager
    def _writing(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Run a write in a transaction, mapping failures to PersistenceWriteFailed."""
        with self._db.lock:
            try:
                conn = self._db.connection
            except DatabaseError as exc:
                raise PersistenceWriteFailed(f"{operation} failed: {exc}") from exc
            try:
                yield conn
                conn.commit()
            except sqlite3.IntegrityError as exc:
                conn.rollback()
                if "UNIQUE" in str(exc):
                    raise DuplicateEntryError(f"{operation} failed: {exc}") from exc
                raise PersistenceWriteFailed(f"{operation} failed: {exc}") from exc
            except sqlite3.Error as exc:
                conn.rollback()
                raise PersistenceWriteFailed(f"{operation} failed: {exc}") from exc

    @contextmanager
    def _reading(self, operation: str) -> Iterator[sqlite3.Connection]:
        with self._db.lock:
            try:
                yield self._db.connection
            except (sqlite3.Error, DatabaseError) as exc:
                raise PersistenceReadFailed(f"{operation} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Journal
    # ------------------------------------------------------------------

    def insert_journal_entry(self, trip_id: str, sample: GpsSample) -> int:
        """Append one confirmed sample to the journal.

        Returns:
            The new row id.

        Raises:
            DuplicateEntryError: A row with the same timestamp exists.
            PersistenceWriteFailed: Any other storage failure.
        """
        with self._writing("insert_journal_entry") as conn:
            cursor = conn.execute(
                """INSERT INTO gps_journal
                   (trip_id, timestamp, latitude, longitude, speed, processed, code, note)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    trip_id,
                    format_timestamp(sample.timestamp),
                    sample.latitude,
                    sample.longitude,
                    sample.speed,
                    int(sample.processed),
                    sample.code,
                    sample.note,
                ),
            )
            row_id = cursor.lastrowid
        return int(row_id)

    def query_journal_range(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        *,
        trip_id: str | None = None,
        unprocessed_only: bool = False,
    ) -> list[JournalEntry]:
        """Journal rows in ascending timestamp order.

        Args:
            start: Inclusive lower bound.
            end: Inclusive upper bound.
            trip_id: Restrict to one trip.
            unprocessed_only: Skip rows already consumed by a summary.
        """
        conditions: list[str] = []
        params: list[Any] = []
        if start is not None:
            conditions.append("timestamp >= ?")
            params.append(format_timestamp(start))
        if end is not None:
            conditions.append("timestamp <= ?")
            params.append(format_timestamp(end))
        if trip_id is not None:
            conditions.append("trip_id = ?")
            params.append(trip_id)
        if unprocessed_only:
            conditions.append("processed = 0")

        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        query = f"SELECT * FROM gps_journal{where} ORDER BY timestamp ASC"

        with self._reading("query_journal_range") as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_journal_entry(row) for row in rows]

    def count_journal(self, *, trip_id: str | None = None, processed: bool | None = None) -> int:
        """Return the number of journal rows, optionally filtered."""
        conditions: list[str] = []
        params: list[Any] = []
        if trip_id is not None:
            conditions.append("trip_id = ?")
            params.append(trip_id)
        if processed is not None:
            conditions.append("processed = ?")
            params.append(int(processed))
        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        with self._reading("count_journal") as conn:
            row = conn.execute(f"SELECT COUNT(*) FROM gps_journal{where}", params).fetchone()
        return row[0]

    def delete_journal_trip(self, trip_id: str, *, after: datetime | None = None) -> int:
        """Delete a trip's journal rows, or only those strictly after ``after``.

        Used to discard too-short trips and to drop the stationary tail
        recorded while a trip's separation timer was running.
        """
        with self._writing("delete_journal_trip") as conn:
            if after is None:
                cursor = conn.execute(
                    "DELETE FROM gps_journal WHERE trip_id = ?", (trip_id,)
                )
            else:
                cursor = conn.execute(
                    "DELETE FROM gps_journal WHERE trip_id = ? AND timestamp > ?",
                    (trip_id, format_timestamp(after)),
                )
            deleted = cursor.rowcount
        if deleted:
            logger.info("Deleted %d journal rows for trip %s", deleted, trip_id)
        return deleted

    def deprocess_journal(self, trip_id: str) -> int:
        """Return a trip's consumed journal rows to the unprocessed state.

        The rows lose their ``trip:<id>`` code, so deleting the trip's summary
        afterwards leaves them in place to be summarized again.
        """
        with self._writing("deprocess_journal") as conn:
            cursor = conn.execute(
                "UPDATE gps_journal SET processed = 0, code = '' "
                "WHERE trip_id = ? AND processed = 1",
                (trip_id,),
            )
            updated = cursor.rowcount
        if updated:
            logger.info("Marked %d journal rows of trip %s unprocessed", updated, trip_id)
        return updated

    def prune_journal_before(self, before: datetime) -> int:
        """Delete consumed journal rows older than ``before``.

        Rows not yet consumed by a trip summary are never pruned.
        """
        with self._writing("prune_journal_before") as conn:
            cursor = conn.execute(
                "DELETE FROM gps_journal WHERE processed = 1 AND timestamp < ?",
                (format_timestamp(before),),
            )
            deleted = cursor.rowcount
        if deleted:
            logger.info("Pruned %d consumed journal rows older than %s", deleted, before)
        return deleted

    def prune_journal_to_limit(self, limit: int) -> int:
        """Delete the oldest consumed rows until the journal fits ``limit``.

        Returns:
            Number of rows deleted. When unconsumed rows alone exceed the
            limit, fewer rows are deleted and the journal stays over it.
        """
        with self._writing("prune_journal_to_limit") as conn:
            total = conn.execute("SELECT COUNT(*) FROM gps_journal").fetchone()[0]
            excess = total - limit
            if excess <= 0:
                return 0
            cursor = conn.execute(
                """DELETE FROM gps_journal WHERE id IN (
                       SELECT id FROM gps_journal WHERE processed = 1
                       ORDER BY timestamp ASC LIMIT ?
                   )""",
                (excess,),
            )
            deleted = cursor.rowcount
        if deleted:
            logger.info("Pruned %d journal rows (limit %d)", deleted, limit)
        if deleted < excess:
            logger.warning(
                "Journal holds %d rows over its limit of %d that are not yet summarized",
                excess - deleted,
                limit,
            )
        return deleted

    # ------------------------------------------------------------------
    # Trip summaries
    # ------------------------------------------------------------------

    def insert_trip_summary(self, summary: TripSummary, entries: list[JournalEntry]) -> str:
        """Persist a summary and consume the journal rows it was built from.

        In one transaction: inserts the summary, copies the rows into
        ``trip_points``, and marks them processed with ``code="trip:<id>"``.

        Returns:
            The trip summary id.
        """
        tid = summary.id or self._new_id()
        summary.id = tid
        now = summary.created_at or self._now_iso()

        with self._writing("insert_trip_summary") as conn:
            conn.execute(
                """INSERT INTO trip_summaries (
                    id, origin_timestamp, origin_latitude, origin_longitude, origin_address_enc,
                    destination_timestamp, destination_latitude, destination_longitude,
                    destination_address_enc, max_speed, duration_seconds, distance_meters,
                    score_acceleration, score_deceleration, score_smoothness,
                    sample_count, archived, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    tid,
                    format_timestamp(summary.origin_timestamp),
                    summary.origin_latitude,
                    summary.origin_longitude,
                    self._enc.encrypt_text(summary.origin_address),
                    format_timestamp(summary.destination_timestamp),
                    summary.destination_latitude,
                    summary.destination_longitude,
                    self._enc.encrypt_text(summary.destination_address),
                    summary.max_speed,
                    summary.duration_seconds,
                    summary.distance_meters,
                    summary.score_acceleration,
                    summary.score_deceleration,
                    summary.score_smoothness,
                    summary.sample_count,
                    int(summary.archived),
                    now,
                ),
            )
            code = f"trip:{tid}"
            for entry in entries:
                conn.execute(
                    """INSERT INTO trip_points
                       (trip_id, timestamp, latitude, longitude, speed, code, note)
                       VALUES (?, ?, ?, ?, ?, ?, ?)""",
                    (
                        tid,
                        format_timestamp(entry.timestamp),
                        entry.latitude,
                        entry.longitude,
                        entry.speed,
                        entry.code,
                        entry.note,
                    ),
                )
                conn.execute(
                    "UPDATE gps_journal SET processed = 1, code = ? WHERE id = ? AND processed = 0",
                    (code, entry.id),
                )

        logger.info(
            "Saved trip %s (%d samples, %.0f m, %.0f s)",
            tid,
            summary.sample_count,
            summary.distance_meters,
            summary.duration_seconds,
        )
        return tid

    def get_trip_summary(self, trip_id: str) -> TripSummary | None:
        """Retrieve a trip summary by id, or None if not found."""
        with self._reading("get_trip_summary") as conn:
            row = conn.execute(
                "SELECT * FROM trip_summaries WHERE id = ?", (trip_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_summary(row)

    def query_trip_summaries(
        self,
        limit: int = 20,
        order: str = "desc",
        *,
        include_archived: bool = False,
        since: datetime | None = None,
    ) -> list[TripSummary]:
        """Query trip summaries ordered by origin timestamp.

        Args:
            limit: Maximum results.
            order: ``"desc"`` (newest first) or ``"asc"``.
            include_archived: Include summaries retired from the live list.
            since: Inclusive lower bound on origin timestamp.
        """
        if order not in ("asc", "desc"):
            raise RepositoryError(f"Invalid order: {order!r}. Valid: 'asc', 'desc'")

        conditions: list[str] = []
        params: list[Any] = []
        if not include_archived:
            conditions.append("archived = 0")
        if since is not None:
            conditions.append("origin_timestamp >= ?")
            params.append(format_timestamp(since))

        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        # order is validated above
        query = (
            f"SELECT * FROM trip_summaries{where} "
            f"ORDER BY origin_timestamp {order.upper()} LIMIT ?"
        )
        params.append(limit)

        with self._reading("query_trip_summaries") as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_summary(row) for row in rows]

    def count_trip_summaries(self, *, include_archived: bool = True) -> int:
        """Return the number of stored trip summaries."""
        query = "SELECT COUNT(*) FROM trip_summaries"
        if not include_archived:
            query += " WHERE archived = 0"
        with self._reading("count_trip_summaries") as conn:
            row = conn.execute(query).fetchone()
        return row[0]

    def mark_archived(self, trip_id: str) -> bool:
        """Retire a summary from the live list. Returns False if not found."""
        with self._writing("mark_archived") as conn:
            cursor = conn.execute(
                "UPDATE trip_summaries SET archived = 1 WHERE id = ?", (trip_id,)
            )
            updated = cursor.rowcount
        return updated > 0

    def update_trip_addresses(
        self,
        trip_id: str,
        *,
        origin_address: str | None = None,
        destination_address: str | None = None,
    ) -> bool:
        """Patch resolved addresses onto an existing summary."""
        assignments: list[str] = []
        params: list[Any] = []
        if origin_address is not None:
            assignments.append("origin_address_enc = ?")
            params.append(self._enc.encrypt_text(origin_address))
        if destination_address is not None:
            assignments.append("destination_address_enc = ?")
            params.append(self._enc.encrypt_text(destination_address))
        if not assignments:
            return False
        params.append(trip_id)

        with self._writing("update_trip_addresses") as conn:
            cursor = conn.execute(
                f"UPDATE trip_summaries SET {', '.join(assignments)} WHERE id = ?",
                params,
            )
            updated = cursor.rowcount
        return updated > 0

    def get_trip_points(self, trip_id: str) -> list[TripPoint]:
        """Route points of a trip in timestamp order."""
        with self._reading("get_trip_points") as conn:
            rows = conn.execute(
                """SELECT trip_id, timestamp, latitude, longitude, speed, code, note
                   FROM trip_points WHERE trip_id = ? ORDER BY timestamp ASC""",
                (trip_id,),
            ).fetchall()
        return [
            TripPoint(
                trip_id=row["trip_id"],
                timestamp=parse_timestamp(row["timestamp"]),
                latitude=row["latitude"],
                longitude=row["longitude"],
                speed=row["speed"],
                code=row["code"] or "",
                note=row["note"] or "",
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def absorb_into_history(self, period_key: str, summary: TripSummary) -> bool:
        """Add a trip to its period's totals, once.

        Membership insert and totals update share one transaction, so a crash
        leaves either both or neither applied.

        Returns:
            True if the trip was absorbed, False if it already was.
        """
        with self._writing("absorb_into_history") as conn:
            existing = conn.execute(
                "SELECT period_key FROM history_trips WHERE trip_id = ?", (summary.id,)
            ).fetchone()
            if existing is not None:
                return False

            now = self._now_iso()
            conn.execute(
                "INSERT OR IGNORE INTO history_summaries (period_key, updated_at) VALUES (?, ?)",
                (period_key, now),
            )
            conn.execute(
                """UPDATE history_summaries SET
                       total_trips = total_trips + 1,
                       total_distance = total_distance + ?,
                       total_duration = total_duration + ?,
                       highest_speed = MAX(highest_speed, ?),
                       total_smoothness = total_smoothness + ?,
                       total_acceleration = total_acceleration + ?,
                       total_deceleration = total_deceleration + ?,
                       updated_at = ?
                   WHERE period_key = ?""",
                (
                    summary.distance_meters,
                    summary.duration_seconds,
                    summary.max_speed,
                    summary.score_smoothness,
                    summary.score_acceleration,
                    summary.score_deceleration,
                    now,
                    period_key,
                ),
            )
            conn.execute(
                """INSERT INTO history_trips (trip_id, period_key, origin_timestamp)
                   VALUES (?, ?, ?)""",
                (summary.id, period_key, format_timestamp(summary.origin_timestamp)),
            )
        return True

    def query_unabsorbed_summaries(self) -> list[TripSummary]:
        """Summaries stored but not yet part of any period, oldest first."""
        with self._reading("query_unabsorbed_summaries") as conn:
            rows = conn.execute(
                """SELECT t.* FROM trip_summaries t
                   LEFT JOIN history_trips h ON h.trip_id = t.id
                   WHERE h.trip_id IS NULL
                   ORDER BY t.origin_timestamp ASC"""
            ).fetchall()
        return [self._row_to_summary(row) for row in rows]

    def get_history_period(self, trip_id: str) -> str | None:
        """Return the period a trip was absorbed into, if any."""
        with self._reading("get_history_period") as conn:
            row = conn.execute(
                "SELECT period_key FROM history_trips WHERE trip_id = ?", (trip_id,)
            ).fetchone()
        return row[0] if row else None

    def get_history_summary(self, period_key: str) -> HistorySummary | None:
        """Retrieve one period with its member trip ids (oldest first)."""
        with self._reading("get_history_summary") as conn:
            row = conn.execute(
                "SELECT * FROM history_summaries WHERE period_key = ?", (period_key,)
            ).fetchone()
            if row is None:
                return None
            members = conn.execute(
                """SELECT trip_id FROM history_trips WHERE period_key = ?
                   ORDER BY origin_timestamp ASC""",
                (period_key,),
            ).fetchall()
        return self._row_to_history(row, [m[0] for m in members])

    def list_history_summaries(self, limit: int = 24) -> list[HistorySummary]:
        """Periods newest first."""
        with self._reading("list_history_summaries") as conn:
            rows = conn.execute(
                "SELECT period_key FROM history_summaries ORDER BY period_key DESC LIMIT ?",
                (limit,),
            ).fetchall()
        results = []
        for row in rows:
            history = self.get_history_summary(row[0])
            if history is not None:
                results.append(history)
        return results

    def recompute_history(self, period_key: str) -> HistorySummary | None:
        """Rebuild a period's totals from its current member trips.

        A period left without members is removed.
        """
        with self._writing("recompute_history") as conn:
            totals = conn.execute(
                """SELECT COUNT(*), COALESCE(SUM(t.distance_meters), 0),
                          COALESCE(SUM(t.duration_seconds), 0), COALESCE(MAX(t.max_speed), 0),
                          COALESCE(SUM(t.score_smoothness), 0),
                          COALESCE(SUM(t.score_acceleration), 0),
                          COALESCE(SUM(t.score_deceleration), 0)
                   FROM history_trips h JOIN trip_summaries t ON t.id = h.trip_id
                   WHERE h.period_key = ?""",
                (period_key,),
            ).fetchone()
            if totals[0] == 0:
                conn.execute(
                    "DELETE FROM history_summaries WHERE period_key = ?", (period_key,)
                )
            else:
                conn.execute(
                    """UPDATE history_summaries SET
                           total_trips = ?, total_distance = ?, total_duration = ?,
                           highest_speed = ?, total_smoothness = ?,
                           total_acceleration = ?, total_deceleration = ?, updated_at = ?
                       WHERE period_key = ?""",
                    (*totals, self._now_iso(), period_key),
                )
        return self.get_history_summary(period_key)

    # ------------------------------------------------------------------
    # Deletion / retention
    # ------------------------------------------------------------------

    def delete_trip(self, trip_id: str) -> bool:
        """Delete a trip summary with its points, membership, and journal rows.

        The caller is responsible for recomputing the affected period.
        """
        with self._writing("delete_trip") as conn:
            row = conn.execute(
                "SELECT id FROM trip_summaries WHERE id = ?", (trip_id,)
            ).fetchone()
            if row is None:
                return False
            self._delete_trip_rows(conn, [trip_id])
        logger.info("Deleted trip %s", trip_id)
        return True

    def purge_trips_before(self, before: datetime) -> list[str]:
        """Delete every trip that started before ``before``.

        Returns:
            The period keys whose membership changed.
        """
        with self._writing("purge_trips_before") as conn:
            rows = conn.execute(
                "SELECT id FROM trip_summaries WHERE origin_timestamp < ?",
                (format_timestamp(before),),
            ).fetchall()
            trip_ids = [row[0] for row in rows]
            if not trip_ids:
                return []
            placeholders = ",".join("?" for _ in trip_ids)
            periods = conn.execute(
                f"SELECT DISTINCT period_key FROM history_trips WHERE trip_id IN ({placeholders})",
                trip_ids,
            ).fetchall()
            self._delete_trip_rows(conn, trip_ids)
        logger.info("Purged %d trips older than %s", len(trip_ids), before)
        return [row[0] for row in periods]

    def purge_trips_before_days(self, days: int) -> list[str]:
        """Convenience wrapper around :meth:`purge_trips_before`."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        return self.purge_trips_before(cutoff)

    def delete_all_data(self) -> int:
        """Delete ALL trip data: journal, summaries, points, and history.

        Returns:
            Number of trip summaries deleted.
        """
        with self._writing("delete_all_data") as conn:
            count = conn.execute("SELECT COUNT(*) FROM trip_summaries").fetchone()[0]
            conn.execute("DELETE FROM history_trips")
            conn.execute("DELETE FROM history_summaries")
            conn.execute("DELETE FROM trip_points")
            conn.execute("DELETE FROM trip_summaries")
            conn.execute("DELETE FROM gps_journal")
        logger.warning("Deleted ALL trip data: %d trips removed", count)
        return count

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _delete_trip_rows(conn: sqlite3.Connection, trip_ids: list[str]) -> None:
        placeholders = ",".join("?" for _ in trip_ids)
        codes = [f"trip:{tid}" for tid in trip_ids]
        conn.execute(f"DELETE FROM history_trips WHERE trip_id IN ({placeholders})", trip_ids)
        conn.execute(f"DELETE FROM trip_points WHERE trip_id IN ({placeholders})", trip_ids)
        conn.execute(f"DELETE FROM gps_journal WHERE code IN ({placeholders})", codes)
        conn.execute(f"DELETE FROM trip_summaries WHERE id IN ({placeholders})", trip_ids)

    @staticmethod
    def _row_to_journal_entry(row: Any) -> JournalEntry:
        return JournalEntry(
            id=row["id"],
            trip_id=row["trip_id"],
            timestamp=parse_timestamp(row["timestamp"]),
            latitude=row["latitude"],
            longitude=row["longitude"],
            speed=row["speed"],
            processed=bool(row["processed"]),
            code=row["code"] or "",
            note=row["note"] or "",
            created_at=row["created_at"] or "",
        )

    def _row_to_summary(self, row: Any) -> TripSummary:
        """Convert a database row to a TripSummary with decrypted addresses."""
        try:
            origin_address = self._enc.decrypt_text(row["origin_address_enc"])
            destination_address = self._enc.decrypt_text(row["destination_address_enc"])
        except EncryptionError as exc:
            raise PersistenceReadFailed(
                f"Cannot decrypt addresses of trip {row['id']}: {exc}"
            ) from exc
        return TripSummary(
            id=row["id"],
            origin_timestamp=parse_timestamp(row["origin_timestamp"]),
            origin_latitude=row["origin_latitude"],
            origin_longitude=row["origin_longitude"],
            origin_address=origin_address,
            destination_timestamp=parse_timestamp(row["destination_timestamp"]),
            destination_latitude=row["destination_latitude"],
            destination_longitude=row["destination_longitude"],
            destination_address=destination_address,
            max_speed=row["max_speed"],
            duration_seconds=row["duration_seconds"],
            distance_meters=row["distance_meters"],
            score_acceleration=row["score_acceleration"],
            score_deceleration=row["score_deceleration"],
            score_smoothness=row["score_smoothness"],
            sample_count=row["sample_count"],
            archived=bool(row["archived"]),
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_history(row: Any, trip_ids: list[str]) -> HistorySummary:
        return HistorySummary(
            period_key=row["period_key"],
            total_trips=row["total_trips"],
            total_distance=row["total_distance"],
            total_duration=row["total_duration"],
            highest_speed=row["highest_speed"],
            total_smoothness=row["total_smoothness"],
            total_acceleration=row["total_acceleration"],
            total_deceleration=row["total_deceleration"],
            trip_ids=trip_ids,
            updated_at=row["updated_at"],
        )

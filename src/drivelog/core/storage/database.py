"""SQLite database management for the drivelog trip store.

Handles connection lifecycle, schema creation, and migrations.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path

logger = logging.getLogger(__name__)

# Current schema version
SCHEMA_VERSION = 2

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_SCHEMA_V1 = """
-- Confirmed trip samples, one row per persisted GPS reading
CREATE TABLE IF NOT EXISTS gps_journal (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    trip_id     TEXT NOT NULL,
    timestamp   TEXT NOT NULL UNIQUE,
    latitude    REAL NOT NULL,
    longitude   REAL NOT NULL,
    speed       REAL NOT NULL,
    processed   INTEGER NOT NULL DEFAULT 0,
    code        TEXT NOT NULL DEFAULT '',
    note        TEXT NOT NULL DEFAULT '',
    created_at  TEXT NOT NULL DEFAULT (datetime('now'))
);

-- One row per completed trip
CREATE TABLE IF NOT EXISTS trip_summaries (
    id                    TEXT PRIMARY KEY,
    origin_timestamp      TEXT NOT NULL,
    origin_latitude       REAL NOT NULL,
    origin_longitude      REAL NOT NULL,
    origin_address_enc    TEXT,
    destination_timestamp TEXT NOT NULL,
    destination_latitude  REAL NOT NULL,
    destination_longitude REAL NOT NULL,
    destination_address_enc TEXT,
    max_speed             REAL NOT NULL DEFAULT 0,
    duration_seconds      REAL NOT NULL DEFAULT 0,
    distance_meters       REAL NOT NULL DEFAULT 0,
    score_acceleration    REAL NOT NULL DEFAULT 100,
    score_deceleration    REAL NOT NULL DEFAULT 100,
    score_smoothness      REAL NOT NULL DEFAULT 100,
    sample_count          INTEGER NOT NULL DEFAULT 0,
    archived              INTEGER NOT NULL DEFAULT 0,
    created_at            TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Route points copied from the journal when a trip is summarized
CREATE TABLE IF NOT EXISTS trip_points (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    trip_id     TEXT NOT NULL REFERENCES trip_summaries(id),
    timestamp   TEXT NOT NULL,
    latitude    REAL NOT NULL,
    longitude   REAL NOT NULL,
    speed       REAL NOT NULL,
    code        TEXT NOT NULL DEFAULT '',
    note        TEXT NOT NULL DEFAULT ''
);

-- One row per calendar period
CREATE TABLE IF NOT EXISTS history_summaries (
    period_key          TEXT PRIMARY KEY,
    total_trips         INTEGER NOT NULL DEFAULT 0,
    total_distance      REAL NOT NULL DEFAULT 0,
    total_duration      REAL NOT NULL DEFAULT 0,
    highest_speed       REAL NOT NULL DEFAULT 0,
    total_smoothness    REAL NOT NULL DEFAULT 0,
    total_acceleration  REAL NOT NULL DEFAULT 0,
    total_deceleration  REAL NOT NULL DEFAULT 0,
    updated_at          TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Period membership; UNIQUE(trip_id) makes absorption idempotent
CREATE TABLE IF NOT EXISTS history_trips (
    trip_id          TEXT PRIMARY KEY REFERENCES trip_summaries(id),
    period_key       TEXT NOT NULL REFERENCES history_summaries(period_key),
    origin_timestamp TEXT NOT NULL,
    absorbed_at      TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Indexes for common query patterns
CREATE INDEX IF NOT EXISTS idx_journal_trip        ON gps_journal(trip_id);
CREATE INDEX IF NOT EXISTS idx_journal_processed   ON gps_journal(processed);
CREATE INDEX IF NOT EXISTS idx_summaries_origin    ON trip_summaries(origin_timestamp);
CREATE INDEX IF NOT EXISTS idx_summaries_archived  ON trip_summaries(archived);
CREATE INDEX IF NOT EXISTS idx_points_trip         ON trip_points(trip_id);
CREATE INDEX IF NOT EXISTS idx_history_trips_period ON history_trips(period_key);
"""

# ---------------------------------------------------------------------------
# V2: Audit log table (engine events and tool invocations)
# ---------------------------------------------------------------------------

_SCHEMA_V2 = """
CREATE TABLE IF NOT EXISTS audit_log (
    id              TEXT PRIMARY KEY,
    timestamp       TEXT NOT NULL DEFAULT (datetime('now')),
    action          TEXT NOT NULL,
    tool_name       TEXT,
    tool_input_hash TEXT,
    trip_id         TEXT,
    duration_ms     REAL,
    status          TEXT NOT NULL DEFAULT 'success',
    error_type      TEXT,
    metadata_json   TEXT
);

CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp);
CREATE INDEX IF NOT EXISTS idx_audit_action    ON audit_log(action);
CREATE INDEX IF NOT EXISTS idx_audit_tool      ON audit_log(tool_name);
"""


class DatabaseError(Exception):
    """Raised when database operations fail."""


class TripDatabase:
    """SQLite database manager for the trip store.

    Supports both file-based and in-memory (`:memory:`) databases.
    In-memory mode is used for testing.

    The connection is opened with ``check_same_thread=False`` because the
    trip engine applies writes from its own persistence thread while tools
    read from the event loop thread. Every user of the connection holds
    :attr:`lock` for the span of a statement or transaction.

    Usage::

        db = TripDatabase(":memory:")
        db.initialize()
        conn = db.connection
        # ... use connection ...
        db.close()
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        """Initialize database manager.

        Args:
            db_path: Path to SQLite file, or ":memory:" for in-memory DB.
        """
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self.lock = threading.RLock()

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the active database connection.

        Raises:
            DatabaseError: If the database has not been initialized.
        """
        if self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    @property
    def path(self) -> str:
        return self._db_path

    def initialize(self) -> None:
        """Create the database connection and ensure schema exists.

        For file-based databases, creates parent directories if needed.
        Idempotent: safe to call multiple times.
        """
        if self._conn is not None:
            return  # Already initialized

        if self._db_path != ":memory:":
            db_file = Path(self._db_path).expanduser()
            db_file.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(db_file), check_same_thread=False)
        else:
            self._conn = sqlite3.connect(":memory:", check_same_thread=False)

        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        self._ensure_schema()
        logger.info("Trip database initialized: %s", self._db_path)

    def _ensure_schema(self) -> None:
        """Create tables if they don't exist and apply migrations."""
        conn = self.connection

        # V1: Core tables (always applied — CREATE IF NOT EXISTS is idempotent)
        conn.executescript(_SCHEMA_V1)

        cursor = conn.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        current_version = row[0] if row[0] is not None else 0

        # V2: Audit log table
        if current_version < 2:
            conn.executescript(_SCHEMA_V2)
            logger.info("Applied schema migration V2: audit_log table")

        if current_version < SCHEMA_VERSION:
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            conn.commit()
            logger.info(
                "Schema updated from version %d to %d", current_version, SCHEMA_VERSION
            )

    def get_schema_version(self) -> int:
        """Return the current schema version."""
        cursor = self.connection.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        return row[0] if row[0] is not None else 0

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Trip database closed")

    def __enter__(self) -> TripDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()

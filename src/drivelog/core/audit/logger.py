"""Audit logger — engine lifecycle and tool access trail.

Records trip finalization, discards, pruning, archival, persistence
failures, deletions, and every tool invocation in a location-free audit
trail:

* ``tool_input_hash`` — SHA-256 of canonical JSON (no raw coordinates in logs).
* ``trip_id``         — the trip summary an event concerns, when there is one.
"""

from __future__ import annotations

import hashlib
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from drivelog.core.storage.database import TripDatabase

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Input hashing
# ---------------------------------------------------------------------------

def _hash_input(data: Any) -> str:
    """SHA-256 hash of canonical JSON — no coordinates stored in audit logs.

    Returns:
        Hex-encoded SHA-256 digest, or empty string on failure.
    """
    try:
        canonical = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode()).hexdigest()
    except (TypeError, ValueError):
        return ""


# ---------------------------------------------------------------------------
# AuditEvent dataclass
# ---------------------------------------------------------------------------

@dataclass
class AuditEvent:
    """A single audit log entry."""

    action: str                          # 'tool_invocation' | 'trip_finalized' | 'data_delete' | ...
    tool_name: str = ""
    tool_input_hash: str = ""
    trip_id: str | None = None
    duration_ms: float | None = None
    status: str = "success"              # 'success' | 'failure'
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# AuditLogger
# ---------------------------------------------------------------------------

class AuditLogger:
    """Records audit events to the ``audit_log`` SQLite table.

    All writes are committed immediately so no audit entry is lost on crash.
    An audit write failure is logged and never interrupts the caller.

    Usage::

        audit = AuditLogger(trip_db)
        audit.log_engine_event("trip_finalized", trip_id=summary.id,
                               metadata={"samples": 40})
    """

    def __init__(self, database: TripDatabase) -> None:
        self._db = database

    # ---------------------------------------------------------------
    # Write
    # ---------------------------------------------------------------

    def log_event(self, event: AuditEvent) -> str:
        """Insert an audit event and return its UUID (empty string if lost)."""
        event_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()

        metadata_json = (
            json.dumps(event.metadata, separators=(",", ":"), default=str)
            if event.metadata
            else None
        )

        try:
            with self._db.lock:
                self._insert(event_id, now, event, metadata_json)
        except Exception:
            logger.exception("Failed to write audit event — event lost")
            return ""

        return event_id

    def _insert(self, event_id: str, now: str, event: AuditEvent, metadata_json: str | None) -> None:
        conn = self._db.connection
        conn.execute(
            """INSERT INTO audit_log
               (id, timestamp, action, tool_name, tool_input_hash, trip_id,
                duration_ms, status, error_type, metadata_json)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                event_id,
                now,
                event.action,
                event.tool_name or None,
                event.tool_input_hash or None,
                event.trip_id,
                event.duration_ms,
                event.status,
                event.error_type,
                metadata_json,
            ),
        )
        conn.commit()

    def log_engine_event(
        self,
        action: str,
        *,
        trip_id: str | None = None,
        status: str = "success",
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Log a trip engine lifecycle event (finalize, discard, prune, ...)."""
        return self.log_event(AuditEvent(
            action=action,
            trip_id=trip_id,
            status=status,
            error_type=error_type,
            metadata=metadata or {},
        ))

    def log_tool_call(
        self,
        tool_name: str,
        tool_input: Any = None,
        *,
        trip_id: str | None = None,
        duration_ms: float | None = None,
        status: str = "success",
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Convenience wrapper for logging a tool invocation.

        Args:
            tool_name: Name of the MCP tool.
            tool_input: Tool input data (hashed, never stored raw).
            trip_id: Trip the call concerned, if any.
            duration_ms: Tool execution duration in milliseconds.
            status: 'success' or 'failure'.
            error_type: Exception class name on failure.
            metadata: Additional location-free metadata.
        """
        return self.log_event(AuditEvent(
            action="tool_invocation",
            tool_name=tool_name,
            tool_input_hash=_hash_input(tool_input) if tool_input else "",
            trip_id=trip_id,
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
            metadata=metadata or {},
        ))

    def log_data_delete(
        self,
        *,
        tool_name: str = "",
        trip_id: str | None = None,
        count: int = 0,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Log a data deletion event."""
        return self.log_event(AuditEvent(
            action="data_delete",
            tool_name=tool_name,
            trip_id=trip_id,
            metadata={**(metadata or {}), "records_deleted": count},
        ))

    # ---------------------------------------------------------------
    # Read
    # ---------------------------------------------------------------

    def get_events(
        self,
        *,
        action: str | None = None,
        tool_name: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Query audit events with optional filters, newest first.

        Args:
            action: Filter by action type.
            tool_name: Filter by tool name.
            since: ISO 8601 timestamp lower bound.
            limit: Maximum events to return.
        """
        conditions: list[str] = []
        params: list[Any] = []

        if action:
            conditions.append("action = ?")
            params.append(action)
        if tool_name:
            conditions.append("tool_name = ?")
            params.append(tool_name)
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)

        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        query = f"SELECT * FROM audit_log{where} ORDER BY timestamp DESC LIMIT ?"
        params.append(limit)

        with self._db.lock:
            rows = self._db.connection.execute(query, params).fetchall()
        return [dict(row) for row in rows]

    def count_events(self, *, action: str | None = None, since: str | None = None) -> int:
        """Count audit events, optionally by action and since a timestamp."""
        conditions: list[str] = []
        params: list[Any] = []
        if action:
            conditions.append("action = ?")
            params.append(action)
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)
        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        with self._db.lock:
            row = self._db.connection.execute(
                f"SELECT COUNT(*) FROM audit_log{where}", params
            ).fetchone()
        return row[0]

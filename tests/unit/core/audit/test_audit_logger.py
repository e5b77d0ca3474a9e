"""Tests for the AuditLogger and related utilities."""

from __future__ import annotations

import json
import time

import pytest

from drivelog.core.audit.logger import AuditEvent, AuditLogger, _hash_input
from drivelog.core.storage.database import TripDatabase


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def audit_db():
    """In-memory database with V2 schema for audit tests."""
    db = TripDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def audit_logger(audit_db):
    return AuditLogger(audit_db)


# ---------------------------------------------------------------------------
# _hash_input tests
# ---------------------------------------------------------------------------

class TestHashInput:
    def test_hashes_dict(self):
        h = _hash_input({"trip_id": "abc"})
        assert isinstance(h, str)
        assert len(h) == 64  # SHA-256 hex

    def test_order_independent(self):
        h1 = _hash_input({"z": 1, "a": 2})
        h2 = _hash_input({"a": 2, "z": 1})
        assert h1 == h2

    def test_different_inputs_differ(self):
        assert _hash_input({"a": 1}) != _hash_input({"a": 2})

    def test_non_serializable_returns_empty(self):
        assert _hash_input(object()) == ""


# ---------------------------------------------------------------------------
# Writing events
# ---------------------------------------------------------------------------

class TestLogEvent:
    def test_log_event_returns_uuid(self, audit_logger):
        eid = audit_logger.log_event(AuditEvent(action="tool_invocation", tool_name="list_trips"))
        assert isinstance(eid, str)
        assert len(eid) == 36

    def test_tool_call_stores_hash_not_input(self, audit_logger):
        audit_logger.log_tool_call(
            "update_tracking_settings",
            tool_input={"speed_threshold": 3.0},
            duration_ms=12.5,
        )
        events = audit_logger.get_events()
        assert len(events) == 1
        assert events[0]["action"] == "tool_invocation"
        assert len(events[0]["tool_input_hash"]) == 64
        assert "speed_threshold" not in json.dumps(events[0])
        assert events[0]["duration_ms"] == 12.5

    def test_engine_event_with_trip(self, audit_logger):
        audit_logger.log_engine_event(
            "trip_finalized", trip_id="trip-1", metadata={"samples": 40}
        )
        events = audit_logger.get_events(action="trip_finalized")
        assert events[0]["trip_id"] == "trip-1"
        assert events[0]["tool_name"] is None
        assert json.loads(events[0]["metadata_json"]) == {"samples": 40}

    def test_failure_status(self, audit_logger):
        audit_logger.log_engine_event(
            "persistence_failure", status="failure", error_type="PersistenceWriteFailed"
        )
        events = audit_logger.get_events()
        assert events[0]["status"] == "failure"
        assert events[0]["error_type"] == "PersistenceWriteFailed"

    def test_write_failure_is_swallowed(self, audit_logger, audit_db):
        audit_db.close()
        assert audit_logger.log_engine_event("trip_discarded") == ""


class TestLogDataDelete:
    def test_log_delete_event(self, audit_logger):
        eid = audit_logger.log_data_delete(tool_name="delete_trip", trip_id="trip-9", count=1)
        assert len(eid) == 36

        events = audit_logger.get_events(action="data_delete")
        assert len(events) == 1
        assert events[0]["trip_id"] == "trip-9"
        assert json.loads(events[0]["metadata_json"])["records_deleted"] == 1


# ---------------------------------------------------------------------------
# Reading events
# ---------------------------------------------------------------------------

class TestGetEvents:
    def test_filter_by_action(self, audit_logger):
        audit_logger.log_tool_call("list_trips")
        audit_logger.log_data_delete(tool_name="purge_old_trips", count=5)
        audit_logger.log_tool_call("get_trip")

        assert len(audit_logger.get_events(action="tool_invocation")) == 2
        assert len(audit_logger.get_events(action="data_delete")) == 1

    def test_filter_by_tool_name(self, audit_logger):
        audit_logger.log_tool_call("alpha")
        audit_logger.log_tool_call("beta")
        audit_logger.log_tool_call("alpha")
        assert len(audit_logger.get_events(tool_name="alpha")) == 2

    def test_limit_respected(self, audit_logger):
        for i in range(10):
            audit_logger.log_tool_call(f"tool_{i}")
        assert len(audit_logger.get_events(limit=3)) == 3

    def test_newest_first(self, audit_logger):
        audit_logger.log_tool_call("first")
        time.sleep(0.01)
        audit_logger.log_tool_call("second")

        events = audit_logger.get_events()
        assert [e["tool_name"] for e in events] == ["second", "first"]


class TestCounts:
    def test_count_events_empty(self, audit_logger):
        assert audit_logger.count_events() == 0

    def test_count_by_action(self, audit_logger):
        audit_logger.log_engine_event("trip_finalized", trip_id="a")
        audit_logger.log_engine_event("trip_finalized", trip_id="b")
        audit_logger.log_engine_event("trip_discarded", trip_id="c")
        assert audit_logger.count_events() == 3
        assert audit_logger.count_events(action="trip_finalized") == 2

    def test_count_since_future_is_zero(self, audit_logger):
        audit_logger.log_tool_call("a")
        assert audit_logger.count_events(since="2999-01-01T00:00:00+00:00") == 0

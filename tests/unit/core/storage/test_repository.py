"""Tests for TripRepository — journal, summaries, and history with in-memory SQLite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from cryptography.fernet import Fernet

from drivelog.core.storage.database import TripDatabase
from drivelog.core.storage.encryption import FieldEncryptor
from drivelog.core.storage.models import GpsSample, TripSummary
from drivelog.core.storage.repository import (
    DuplicateEntryError,
    PersistenceReadFailed,
    PersistenceWriteFailed,
    RepositoryError,
    TripRepository,
)

T0 = datetime(2024, 5, 1, 8, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def db():
    database = TripDatabase(":memory:")
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def encryptor():
    return FieldEncryptor(Fernet.generate_key().decode())


@pytest.fixture
def repo(db, encryptor):
    return TripRepository(db, encryptor)


def _sample(seconds: float, speed: float = 5.0) -> GpsSample:
    return GpsSample(
        timestamp=T0 + timedelta(seconds=seconds),
        latitude=40.0 + seconds * 0.00001,
        longitude=-75.0,
        speed=speed,
    )


def _make_summary(**overrides) -> TripSummary:
    """Create a test summary with sensible defaults."""
    defaults = dict(
        id="trip-1",
        origin_timestamp=T0,
        origin_latitude=40.0,
        origin_longitude=-75.0,
        destination_timestamp=T0 + timedelta(minutes=10),
        destination_latitude=40.05,
        destination_longitude=-75.0,
        max_speed=20.0,
        duration_seconds=600.0,
        distance_meters=5560.0,
        score_acceleration=95.0,
        score_deceleration=90.0,
        score_smoothness=85.0,
        sample_count=120,
    )
    defaults.update(overrides)
    return TripSummary(**defaults)


def _journal_trip(repo, trip_id: str, start: float, count: int) -> None:
    for i in range(count):
        repo.insert_journal_entry(trip_id, _sample(start + i * 5))


def _summarize_journal(repo, trip_id: str, **overrides) -> TripSummary:
    entries = repo.query_journal_range(trip_id=trip_id, unprocessed_only=True)
    summary = _make_summary(
        id=trip_id,
        origin_timestamp=entries[0].timestamp,
        destination_timestamp=entries[-1].timestamp,
        sample_count=len(entries),
        **overrides,
    )
    repo.insert_trip_summary(summary, entries)
    return summary


# ---------------------------------------------------------------------------
# Journal
# ---------------------------------------------------------------------------

class TestJournal:
    def test_insert_returns_row_id(self, repo):
        row_id = repo.insert_journal_entry("trip-1", _sample(0))
        assert isinstance(row_id, int)
        assert row_id > 0

    def test_duplicate_timestamp_rejected(self, repo):
        repo.insert_journal_entry("trip-1", _sample(0))
        with pytest.raises(DuplicateEntryError):
            repo.insert_journal_entry("trip-2", _sample(0, speed=9.0))
        assert repo.count_journal() == 1

    def test_duplicate_is_a_write_failure(self):
        assert issubclass(DuplicateEntryError, PersistenceWriteFailed)

    def test_range_is_ascending(self, repo):
        for seconds in (20, 0, 10):
            repo.insert_journal_entry("trip-1", _sample(seconds))
        rows = repo.query_journal_range()
        assert [r.timestamp for r in rows] == [
            T0, T0 + timedelta(seconds=10), T0 + timedelta(seconds=20)
        ]

    def test_range_bounds_are_inclusive(self, repo):
        _journal_trip(repo, "trip-1", 0, 5)
        rows = repo.query_journal_range(
            T0 + timedelta(seconds=5), T0 + timedelta(seconds=15)
        )
        assert len(rows) == 3

    def test_range_by_trip(self, repo):
        _journal_trip(repo, "trip-1", 0, 3)
        _journal_trip(repo, "trip-2", 100, 2)
        rows = repo.query_journal_range(trip_id="trip-2")
        assert len(rows) == 2
        assert {r.trip_id for r in rows} == {"trip-2"}

    def test_round_trip_fields(self, repo):
        sample = GpsSample(
            timestamp=T0, latitude=40.1, longitude=-75.2, speed=3.5, note="activity: driving"
        )
        repo.insert_journal_entry("trip-1", sample)
        row = repo.query_journal_range()[0]
        assert row.timestamp == T0
        assert row.latitude == 40.1
        assert row.longitude == -75.2
        assert row.speed == 3.5
        assert row.note == "activity: driving"
        assert row.processed is False

    def test_delete_tail_after_timestamp(self, repo):
        _journal_trip(repo, "trip-1", 0, 6)
        deleted = repo.delete_journal_trip("trip-1", after=T0 + timedelta(seconds=10))
        assert deleted == 3
        assert repo.count_journal(trip_id="trip-1") == 3

    def test_delete_whole_trip(self, repo):
        _journal_trip(repo, "trip-1", 0, 4)
        _journal_trip(repo, "trip-2", 100, 2)
        assert repo.delete_journal_trip("trip-1") == 4
        assert repo.count_journal() == 2

    def test_deprocess_returns_rows_to_the_journal(self, repo):
        _journal_trip(repo, "trip-1", 0, 4)
        _summarize_journal(repo, "trip-1")

        assert repo.deprocess_journal("trip-1") == 4
        assert repo.deprocess_journal("trip-1") == 0
        rows = repo.query_journal_range(trip_id="trip-1", unprocessed_only=True)
        assert len(rows) == 4
        assert {r.code for r in rows} == {""}

        assert repo.delete_trip("trip-1") is True
        assert repo.count_journal(trip_id="trip-1") == 4


class TestJournalPruning:
    def test_prune_to_limit_removes_oldest_processed(self, repo):
        _journal_trip(repo, "trip-1", 0, 10)
        _summarize_journal(repo, "trip-1")
        _journal_trip(repo, "trip-2", 1000, 5)

        deleted = repo.prune_journal_to_limit(12)

        assert deleted == 3
        remaining = repo.query_journal_range(trip_id="trip-1")
        assert remaining[0].timestamp == T0 + timedelta(seconds=15)
        assert repo.count_journal(trip_id="trip-2") == 5

    def test_prune_never_touches_unprocessed_rows(self, repo):
        _journal_trip(repo, "trip-1", 0, 10)
        assert repo.prune_journal_to_limit(4) == 0
        assert repo.count_journal() == 10

    def test_prune_under_limit_is_noop(self, repo):
        _journal_trip(repo, "trip-1", 0, 3)
        _summarize_journal(repo, "trip-1")
        assert repo.prune_journal_to_limit(10) == 0

    def test_prune_before_timestamp(self, repo):
        _journal_trip(repo, "trip-1", 0, 4)
        _summarize_journal(repo, "trip-1")
        _journal_trip(repo, "trip-2", 1000, 2)
        deleted = repo.prune_journal_before(T0 + timedelta(seconds=2000))
        assert deleted == 4
        assert repo.count_journal() == 2


# ---------------------------------------------------------------------------
# Trip summaries
# ---------------------------------------------------------------------------

class TestTripSummaries:
    def test_insert_consumes_journal_rows(self, repo):
        _journal_trip(repo, "trip-1", 0, 5)
        _summarize_journal(repo, "trip-1")

        rows = repo.query_journal_range(trip_id="trip-1")
        assert all(r.processed for r in rows)
        assert {r.code for r in rows} == {"trip:trip-1"}
        assert repo.query_journal_range(unprocessed_only=True) == []

    def test_insert_copies_route_points(self, repo):
        _journal_trip(repo, "trip-1", 0, 5)
        _summarize_journal(repo, "trip-1")
        points = repo.get_trip_points("trip-1")
        assert len(points) == 5
        assert points[0].timestamp == T0

    def test_points_survive_journal_pruning(self, repo):
        _journal_trip(repo, "trip-1", 0, 5)
        _summarize_journal(repo, "trip-1")
        repo.prune_journal_to_limit(0)
        assert repo.count_journal() == 0
        assert len(repo.get_trip_points("trip-1")) == 5

    def test_get_round_trip(self, repo):
        repo.insert_trip_summary(_make_summary(origin_address="1 Main St"), [])
        loaded = repo.get_trip_summary("trip-1")
        assert loaded is not None
        assert loaded.origin_timestamp == T0
        assert loaded.max_speed == 20.0
        assert loaded.scores() == {"acceleration": 95.0, "deceleration": 90.0, "smoothness": 85.0}
        assert loaded.origin_address == "1 Main St"
        assert loaded.destination_address == ""
        assert loaded.archived is False

    def test_get_missing_returns_none(self, repo):
        assert repo.get_trip_summary("nope") is None

    def test_addresses_encrypted_at_rest(self, repo, db):
        repo.insert_trip_summary(_make_summary(destination_address="42 Elm Road"), [])
        raw = db.connection.execute(
            "SELECT destination_address_enc FROM trip_summaries"
        ).fetchone()[0]
        assert "Elm" not in raw

    def test_update_addresses(self, repo):
        repo.insert_trip_summary(_make_summary(), [])
        assert repo.update_trip_addresses(
            "trip-1", origin_address="Home", destination_address="Work"
        )
        loaded = repo.get_trip_summary("trip-1")
        assert (loaded.origin_address, loaded.destination_address) == ("Home", "Work")

    def test_update_addresses_without_values(self, repo):
        repo.insert_trip_summary(_make_summary(), [])
        assert repo.update_trip_addresses("trip-1") is False

    def test_query_order_and_limit(self, repo):
        for i in range(3):
            repo.insert_trip_summary(
                _make_summary(id=f"trip-{i}", origin_timestamp=T0 + timedelta(hours=i)), []
            )
        newest = repo.query_trip_summaries(limit=2)
        assert [s.id for s in newest] == ["trip-2", "trip-1"]
        oldest = repo.query_trip_summaries(order="asc")
        assert [s.id for s in oldest] == ["trip-0", "trip-1", "trip-2"]

    def test_query_invalid_order_raises(self, repo):
        with pytest.raises(RepositoryError, match="Invalid order"):
            repo.query_trip_summaries(order="sideways")

    def test_archived_hidden_by_default(self, repo):
        repo.insert_trip_summary(_make_summary(id="a"), [])
        repo.insert_trip_summary(_make_summary(id="b", origin_timestamp=T0 + timedelta(hours=1)), [])
        assert repo.mark_archived("a")
        assert [s.id for s in repo.query_trip_summaries()] == ["b"]
        assert len(repo.query_trip_summaries(include_archived=True)) == 2
        assert repo.count_trip_summaries() == 2
        assert repo.count_trip_summaries(include_archived=False) == 1

    def test_mark_archived_missing(self, repo):
        assert repo.mark_archived("nope") is False


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

class TestHistory:
    def test_absorb_once(self, repo):
        summary = _make_summary()
        repo.insert_trip_summary(summary, [])
        assert repo.absorb_into_history("2024-05", summary) is True
        assert repo.absorb_into_history("2024-05", summary) is False

        history = repo.get_history_summary("2024-05")
        assert history.total_trips == 1
        assert history.total_distance == 5560.0
        assert history.trip_ids == ["trip-1"]

    def test_totals_accumulate(self, repo):
        first = _make_summary(id="a", max_speed=15.0)
        second = _make_summary(id="b", max_speed=25.0, origin_timestamp=T0 + timedelta(days=1))
        for s in (first, second):
            repo.insert_trip_summary(s, [])
            repo.absorb_into_history("2024-05", s)

        history = repo.get_history_summary("2024-05")
        assert history.total_trips == 2
        assert history.total_duration == 1200.0
        assert history.highest_speed == 25.0
        assert history.averages()["smoothness"] == 85.0
        assert history.trip_ids == ["a", "b"]

    def test_unabsorbed_summaries(self, repo):
        a = _make_summary(id="a")
        b = _make_summary(id="b", origin_timestamp=T0 + timedelta(hours=1))
        repo.insert_trip_summary(a, [])
        repo.insert_trip_summary(b, [])
        repo.absorb_into_history("2024-05", a)
        assert [s.id for s in repo.query_unabsorbed_summaries()] == ["b"]

    def test_history_period_lookup(self, repo):
        summary = _make_summary()
        repo.insert_trip_summary(summary, [])
        assert repo.get_history_period("trip-1") is None
        repo.absorb_into_history("2024-05", summary)
        assert repo.get_history_period("trip-1") == "2024-05"

    def test_list_newest_first(self, repo):
        for i, key in enumerate(("2024-03", "2024-05", "2024-04")):
            s = _make_summary(id=f"t{i}")
            repo.insert_trip_summary(s, [])
            repo.absorb_into_history(key, s)
        assert [h.period_key for h in repo.list_history_summaries()] == [
            "2024-05", "2024-04", "2024-03"
        ]

    def test_recompute_after_delete(self, repo):
        a = _make_summary(id="a", max_speed=30.0)
        b = _make_summary(id="b", max_speed=10.0, origin_timestamp=T0 + timedelta(hours=1))
        for s in (a, b):
            repo.insert_trip_summary(s, [])
            repo.absorb_into_history("2024-05", s)

        assert repo.delete_trip("a")
        history = repo.recompute_history("2024-05")
        assert history.total_trips == 1
        assert history.highest_speed == 10.0
        assert history.trip_ids == ["b"]

    def test_recompute_removes_empty_period(self, repo):
        summary = _make_summary()
        repo.insert_trip_summary(summary, [])
        repo.absorb_into_history("2024-05", summary)
        repo.delete_trip("trip-1")
        assert repo.recompute_history("2024-05") is None
        assert repo.list_history_summaries() == []


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------

class TestDeletion:
    def test_delete_trip_removes_everything(self, repo):
        _journal_trip(repo, "trip-1", 0, 4)
        summary = _summarize_journal(repo, "trip-1")
        repo.absorb_into_history("2024-05", summary)

        assert repo.delete_trip("trip-1") is True
        assert repo.get_trip_summary("trip-1") is None
        assert repo.get_trip_points("trip-1") == []
        assert repo.count_journal() == 0
        assert repo.get_history_period("trip-1") is None

    def test_delete_missing_trip(self, repo):
        assert repo.delete_trip("nope") is False

    def test_purge_before_returns_periods(self, repo):
        old = _make_summary(id="old", origin_timestamp=T0 - timedelta(days=400))
        new = _make_summary(id="new")
        for s, key in ((old, "2023-03"), (new, "2024-05")):
            repo.insert_trip_summary(s, [])
            repo.absorb_into_history(key, s)

        periods = repo.purge_trips_before(T0 - timedelta(days=30))
        assert periods == ["2023-03"]
        assert repo.get_trip_summary("old") is None
        assert repo.get_trip_summary("new") is not None

    def test_purge_nothing(self, repo):
        assert repo.purge_trips_before(T0) == []

    def test_delete_all(self, repo):
        _journal_trip(repo, "trip-1", 0, 4)
        summary = _summarize_journal(repo, "trip-1")
        repo.absorb_into_history("2024-05", summary)
        _journal_trip(repo, "trip-2", 1000, 2)

        assert repo.delete_all_data() == 1
        assert repo.count_journal() == 0
        assert repo.count_trip_summaries() == 0
        assert repo.list_history_summaries() == []


class TestStorageFailures:
    def test_write_on_closed_database(self, repo, db):
        db.close()
        with pytest.raises(PersistenceWriteFailed):
            repo.insert_journal_entry("trip-1", _sample(0))

    def test_read_on_closed_database(self, repo, db):
        db.close()
        with pytest.raises(PersistenceReadFailed):
            repo.query_trip_summaries()

    def test_wrong_key_is_a_read_failure(self, repo, db):
        repo.insert_trip_summary(_make_summary(origin_address="1 Main St"), [])
        rekeyed = TripRepository(db, FieldEncryptor(Fernet.generate_key().decode()))

        with pytest.raises(PersistenceReadFailed, match="trip-1"):
            rekeyed.get_trip_summary("trip-1")
        with pytest.raises(PersistenceReadFailed):
            rekeyed.query_unabsorbed_summaries()
        assert rekeyed.count_trip_summaries() == 1

"""Shared test fixtures for drivelog tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("GEOCODER", "none")
    monkeypatch.setenv("LIVE_SEPARATION_TIMER", "false")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))


# ---------------------------------------------------------------------------
# Storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def trip_db():
    """Create an in-memory TripDatabase for testing."""
    from drivelog.core.storage.database import TripDatabase

    db = TripDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def field_encryptor():
    """Create a FieldEncryptor with a test key."""
    from cryptography.fernet import Fernet

    from drivelog.core.storage.encryption import FieldEncryptor

    return FieldEncryptor(Fernet.generate_key().decode())


@pytest.fixture
def trip_repository(trip_db, field_encryptor):
    """Create a TripRepository backed by in-memory SQLite."""
    from drivelog.core.storage.repository import TripRepository

    return TripRepository(trip_db, field_encryptor)


@pytest.fixture
def audit_logger(trip_db):
    """Create an AuditLogger backed by in-memory SQLite."""
    from drivelog.core.audit.logger import AuditLogger

    return AuditLogger(trip_db)

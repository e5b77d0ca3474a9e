"""Tests for SampleBuffer — bounded FIFO of unconfirmed samples."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from drivelog.core.storage.models import GpsSample
from drivelog.domains.driving.domain_logic.sample_buffer import SampleBuffer

T0 = datetime(2024, 5, 1, 8, 0, 0, tzinfo=timezone.utc)


def _sample(seconds: float) -> GpsSample:
    return GpsSample(
        timestamp=T0 + timedelta(seconds=seconds), latitude=40.0, longitude=-75.0, speed=1.0
    )


class TestCapacity:
    def test_never_exceeds_limit(self):
        buffer = SampleBuffer(limit=3)
        for i in range(10):
            buffer.push(_sample(i))
            assert len(buffer) <= 3
        assert buffer.evicted == 7

    def test_evicts_oldest(self):
        buffer = SampleBuffer(limit=2)
        for i in range(3):
            buffer.push(_sample(i))
        assert [s.timestamp for s in buffer.drain()] == [T0 + timedelta(seconds=1),
                                                         T0 + timedelta(seconds=2)]

    def test_limit_at_least_one(self):
        assert SampleBuffer(limit=0).limit == 1


class TestAccess:
    def test_peek_returns_newest(self):
        buffer = SampleBuffer(limit=5)
        assert buffer.peek() is None
        buffer.push(_sample(0))
        buffer.push(_sample(5))
        assert buffer.peek().timestamp == T0 + timedelta(seconds=5)
        assert len(buffer) == 2

    def test_drain_sorts_and_empties(self):
        buffer = SampleBuffer(limit=5)
        for seconds in (10, 0, 5):
            buffer.push(_sample(seconds))
        drained = buffer.drain()
        assert [s.timestamp for s in drained] == sorted(s.timestamp for s in drained)
        assert len(buffer) == 0

    def test_clear(self):
        buffer = SampleBuffer(limit=5)
        buffer.push(_sample(0))
        buffer.clear()
        assert len(buffer) == 0


class TestResize:
    def test_shrink_keeps_newest(self):
        buffer = SampleBuffer(limit=5)
        for i in range(5):
            buffer.push(_sample(i))
        buffer.resize(2)
        assert buffer.limit == 2
        assert [s.timestamp for s in buffer.drain()] == [T0 + timedelta(seconds=3),
                                                         T0 + timedelta(seconds=4)]

    def test_grow(self):
        buffer = SampleBuffer(limit=1)
        buffer.resize(4)
        for i in range(4):
            buffer.push(_sample(i))
        assert len(buffer) == 4

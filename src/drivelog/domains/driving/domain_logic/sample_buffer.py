"""Bounded FIFO of samples not yet confirmed as belonging to a trip."""

from __future__ import annotations

import logging
from collections import deque

from drivelog.core.storage.models import GpsSample

logger = logging.getLogger(__name__)


class SampleBuffer:
    """Holds at most ``limit`` samples; pushing onto a full buffer evicts the oldest.

    Usage::

        buffer = SampleBuffer(limit=42)
        buffer.push(sample)
        pending = buffer.drain()  # ascending timestamp, buffer now empty
    """

    def __init__(self, limit: int) -> None:
        self._items: deque[GpsSample] = deque(maxlen=max(1, limit))
        self.evicted = 0

    @property
    def limit(self) -> int:
        return self._items.maxlen or 1

    def __len__(self) -> int:
        return len(self._items)

    def push(self, sample: GpsSample) -> None:
        if len(self._items) == self.limit:
            self.evicted += 1
            logger.debug("Sample buffer full (%d); evicting oldest", self.limit)
        self._items.append(sample)

    def peek(self) -> GpsSample | None:
        """Newest buffered sample without removing it."""
        return self._items[-1] if self._items else None

    def drain(self) -> list[GpsSample]:
        """Remove and return every sample in ascending timestamp order."""
        items = sorted(self._items, key=lambda s: s.timestamp)
        self._items.clear()
        return items

    def clear(self) -> None:
        self._items.clear()

    def resize(self, limit: int) -> None:
        """Change capacity, keeping the newest samples if it shrinks."""
        self._items = deque(self._items, maxlen=max(1, limit))

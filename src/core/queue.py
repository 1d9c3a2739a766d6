"""Change queue for diff feed detections."""

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from src.models.watchlist import FeedChannel, WatchlistEntry

__all__ = ["ChangeQueue", "QueuedChange"]


@dataclass(frozen=True, slots=True)
class QueuedChange:
    """A detected change tagged with the channel it was seen on."""

    channel: FeedChannel
    entry: WatchlistEntry


class ChangeQueue:
    """De-duplicating holding area for changed items.

    Entries are compared by their full shape, so an updated version of an
    already queued item is queued as well. Only the owning scheduler reads
    and writes the queue.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize an empty queue.

        Args:
            clock (Callable[[], float]): Monotonic clock returning seconds
        """
        self._clock = clock
        self._items: dict[QueuedChange, None] = {}
        self.last_insert_at: float | None = None

    def add(self, channel: FeedChannel, entry: WatchlistEntry) -> bool:
        """Queue a change unless an identical one is already queued.

        Returns:
            bool: True if the change was new
        """
        change = QueuedChange(channel, entry)
        if change in self._items:
            return False
        self._items[change] = None
        self.last_insert_at = self._clock()
        return True

    def add_many(self, channel: FeedChannel, entries: Iterable[WatchlistEntry]) -> int:
        """Queue a batch of changes.

        Returns:
            int: Number of changes that were not already queued
        """
        return sum(1 for entry in entries if self.add(channel, entry))

    def drain(self) -> list[QueuedChange]:
        """Remove and return every queued change in insertion order."""
        items = list(self._items)
        self._items.clear()
        return items

    def is_quiescent(self, delay: float) -> bool:
        """Whether the queue is non-empty and idle for at least ``delay`` seconds."""
        if not self._items or self.last_insert_at is None:
            return False
        return self._clock() - self.last_insert_at >= delay

    def clear(self) -> None:
        """Drop all queued changes."""
        self._items.clear()
        self.last_insert_at = None

    def __len__(self) -> int:
        """Return the number of queued changes."""
        return len(self._items)

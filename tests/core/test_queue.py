"""Tests for the change queue."""

from src.core.queue import ChangeQueue, QueuedChange
from src.models.watchlist import FeedChannel
from tests.core.fakes import make_entry


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        """Start at zero."""
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_same_item_twice_is_queued_once():
    """Adding the same logical item twice before a drain keeps one entry."""
    queue = ChangeQueue()
    entry = make_entry("1")

    assert queue.add(FeedChannel.SELF, entry) is True
    assert queue.add(FeedChannel.SELF, entry) is False

    assert queue.drain() == [QueuedChange(FeedChannel.SELF, entry)]
    assert len(queue) == 0


def test_modified_item_is_queued_again():
    """Dedup compares the full shape, so an update queues a second entry."""
    queue = ChangeQueue()
    queue.add(FeedChannel.SELF, make_entry("1", title="Old"))
    queue.add(FeedChannel.SELF, make_entry("1", title="New"))

    assert [c.entry.title for c in queue.drain()] == ["Old", "New"]


def test_add_many_counts_new_changes():
    """add_many reports how many changes were not already queued."""
    queue = ChangeQueue()
    entries = [make_entry("1"), make_entry("2"), make_entry("1")]

    assert queue.add_many(FeedChannel.FRIENDS, entries) == 2
    assert len(queue) == 2


def test_quiescence_uses_last_genuine_insert():
    """Only genuinely new entries move the last insertion time."""
    clock = FakeClock()
    queue = ChangeQueue(clock)
    entry = make_entry("1")

    assert queue.is_quiescent(0) is False

    queue.add(FeedChannel.SELF, entry)
    clock.now = 30
    queue.add(FeedChannel.SELF, entry)
    assert queue.last_insert_at == 0
    assert queue.is_quiescent(60) is False

    clock.now = 60
    assert queue.is_quiescent(60) is True


def test_drained_queue_is_not_quiescent():
    """An empty queue is never quiescent."""
    clock = FakeClock()
    queue = ChangeQueue(clock)
    queue.add(FeedChannel.SELF, make_entry("1"))
    queue.drain()
    clock.now = 1000

    assert queue.is_quiescent(1) is False


def test_clear_resets_state():
    """clear drops entries and the insertion time."""
    queue = ChangeQueue()
    queue.add(FeedChannel.SELF, make_entry("1"))
    queue.clear()

    assert len(queue) == 0
    assert queue.last_insert_at is None

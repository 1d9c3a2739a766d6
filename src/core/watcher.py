"""Diff feed watcher."""

from collections.abc import Awaitable, Callable, Iterable
from typing import Protocol

from src import log
from src.core.guids import diff_cache_key
from src.exceptions import FeedUnavailableError
from src.models.watchlist import DiffCacheKey, FeedChannel, WatchlistEntry

__all__ = ["DiffFeedWatcher", "FeedSource", "Snapshot"]

Snapshot = dict[DiffCacheKey, WatchlistEntry]
ChangeHandler = Callable[[FeedChannel, list[WatchlistEntry]], Awaitable[None]]


class FeedSource(Protocol):
    """Anything that can return the current entries of a feed channel."""

    async def fetch_feed(self, channel: FeedChannel) -> list[WatchlistEntry]:
        """Return the current entries of ``channel``."""
        ...


class DiffFeedWatcher:
    """Turns successive diff feed payloads into change batches.

    Each channel keeps its own snapshot keyed by ``DiffCacheKey``. The first
    non-empty payload of a channel becomes its baseline and every entry in it
    is reported once. After that only new entries and entries whose title,
    kind, thumbnail or genres changed are reported. Entries that disappear
    are logged but never reported: the feed is not trusted with deletions.
    """

    def __init__(
        self,
        source: FeedSource,
        on_changes: ChangeHandler,
        channels: Iterable[FeedChannel] = (FeedChannel.SELF, FeedChannel.FRIENDS),
    ) -> None:
        """Initialize the watcher.

        Args:
            source (FeedSource): Feed source to poll
            on_changes (ChangeHandler): Awaited with each non-empty change batch
            channels (Iterable[FeedChannel]): Channels polled by ``poll_all``
        """
        self.source = source
        self.on_changes = on_changes
        self.channels = list(channels)
        self.snapshots: dict[FeedChannel, Snapshot] = {}
        self.backfilled: set[FeedChannel] = set()

    @staticmethod
    def build_snapshot(entries: Iterable[WatchlistEntry]) -> Snapshot:
        """Key entries by their diff cache key; entries without GUIDs are dropped."""
        snapshot: Snapshot = {}
        for entry in entries:
            key = diff_cache_key(entry.guids)
            if key is None:
                log.debug(f"Ignoring feed item $$'{entry.title}'$$ without GUIDs")
                continue
            snapshot[key] = entry
        return snapshot

    @staticmethod
    def detect_changes(previous: Snapshot, current: Snapshot) -> list[WatchlistEntry]:
        """Return entries of ``current`` that are new or modified.

        Args:
            previous (Snapshot): Last accepted snapshot of the channel
            current (Snapshot): Snapshot built from the latest payload

        Returns:
            list[WatchlistEntry]: Changed entries in payload order
        """
        changed: list[WatchlistEntry] = []
        for key, entry in current.items():
            before = previous.get(key)
            if before is None:
                changed.append(entry)
            elif (
                before.title != entry.title
                or before.kind != entry.kind
                or before.thumb != entry.thumb
                or set(before.genres) != set(entry.genres)
            ):
                changed.append(entry)
        return changed

    async def _fetch(self, channel: FeedChannel) -> list[WatchlistEntry] | None:
        try:
            return await self.source.fetch_feed(channel)
        except FeedUnavailableError as e:
            log.warning(f"Skipping {channel} feed check: {e}")
            return None

    async def establish_baseline(self, channel: FeedChannel) -> bool:
        """Record the current payload as the channel's baseline without reporting it.

        Used at startup, where the initial full sync already covers everything
        currently on the feed.

        Returns:
            bool: True if a baseline was recorded
        """
        entries = await self._fetch(channel)
        if not entries:
            log.info(f"No {channel} feed items yet, baseline deferred")
            return False

        self.snapshots[channel] = self.build_snapshot(entries)
        self.backfilled.add(channel)
        log.info(
            f"Established {channel} feed baseline with "
            f"{len(self.snapshots[channel])} items"
        )
        return True

    async def poll(self, channel: FeedChannel) -> list[WatchlistEntry]:
        """Fetch a channel once and report its changes.

        Empty payloads and fetch errors leave the snapshot untouched.

        Returns:
            list[WatchlistEntry]: The changes handed to ``on_changes``
        """
        entries = await self._fetch(channel)
        if entries is None:
            return []
        if not entries:
            log.debug(f"The {channel} feed is empty, keeping the previous snapshot")
            return []

        current = self.build_snapshot(entries)
        previous = self.snapshots.get(channel, {})

        if channel not in self.backfilled:
            changes = list(current.values())
            self.backfilled.add(channel)
            log.info(
                f"Initial {channel} feed backfill: treating {len(changes)} items "
                f"as new"
            )
        else:
            changes = self.detect_changes(previous, current)
            removed = [previous[key].title for key in previous.keys() - current.keys()]
            if removed:
                log.info(
                    f"{len(removed)} items left the {channel} feed, deferring "
                    f"removal to the next full sync $${{titles: {removed}}}$$"
                )

        self.snapshots[channel] = current

        if changes:
            log.info(f"Detected {len(changes)} changed items on the {channel} feed")
            await self.on_changes(channel, changes)
        return changes

    async def poll_all(self) -> dict[FeedChannel, list[WatchlistEntry]]:
        """Poll every configured channel; channels do not affect each other."""
        results: dict[FeedChannel, list[WatchlistEntry]] = {}
        for channel in self.channels:
            try:
                results[channel] = await self.poll(channel)
            except Exception:
                log.error(f"Error while polling the {channel} feed", exc_info=True)
                results[channel] = []
        return results

    def reset(self) -> None:
        """Forget all snapshots and backfill state."""
        self.snapshots.clear()
        self.backfilled.clear()

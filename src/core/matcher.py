"""Pending diff matching and routing attribution."""

import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from src import log
from src.core.collaborators import Notifier
from src.core.guids import parse_guids, score_shared_guids
from src.core.store import Store
from src.models.db import PendingDiffItem, User, WatchlistItem
from src.models.watchlist import FeedChannel

__all__ = [
    "AttributionReport",
    "MatchReport",
    "PendingDiffMatcher",
    "RoutingAttributor",
]


@dataclass(slots=True)
class MatchReport:
    """Counters of one matching pass."""

    examined: int = 0
    matched: int = 0
    notified: int = 0
    duplicates: int = 0
    unmatched: int = 0


@dataclass(slots=True)
class AttributionReport:
    """Counters of one attribution pass."""

    attributed: int = 0
    ambiguous: int = 0
    unowned: int = 0


class PendingDiffMatcher:
    """Resolves pending diff observations against stored watchlist items.

    A matched observation only leads to a notification if it was actually
    routed to a backend and the user was not notified about the title yet.
    Every examined observation is deleted at the end of the pass, matched or
    not; the failsafe reconciliation covers anything missed here.
    """

    def __init__(
        self, store: Store, notifier: Notifier, *, timeout: float | None = 10
    ) -> None:
        """Initialize the matcher.

        Args:
            store (Store): Watchlist store
            notifier (Notifier): Notification collaborator
            timeout (float | None): Seconds a notification may take before it
                counts as failed; None waits forever
        """
        self.store = store
        self.notifier = notifier
        self.timeout = timeout

    @staticmethod
    def best_candidate(
        pending: PendingDiffItem,
        guids: frozenset[str],
        candidates: Sequence[WatchlistItem],
        candidate_guids: Mapping[int, frozenset[str]],
    ) -> WatchlistItem | None:
        """Pick the highest scoring candidate; ties keep the first one seen.

        Both ``guids`` and ``candidate_guids`` must already be normalised.
        """
        best: WatchlistItem | None = None
        best_score = 0
        for candidate in candidates:
            shared = guids & candidate_guids[candidate.id]
            if not shared:
                continue
            score = score_shared_guids(shared, pending.type)
            if score > best_score:
                best, best_score = candidate, score
        return best

    async def match(
        self,
        channel: FeedChannel,
        candidates: Sequence[WatchlistItem],
        users: Mapping[int, User],
    ) -> MatchReport:
        """Match every pending observation of a channel.

        Args:
            channel (FeedChannel): Channel whose observations are matched
            candidates (Sequence[WatchlistItem]): Items of sync-enabled users
            users (Mapping[int, User]): Users by id, used for notifications

        Returns:
            MatchReport: What happened to the examined observations
        """
        report = MatchReport()
        pending_items = await self.store.get_pending_diff_items(channel)
        if not pending_items:
            return report

        candidate_guids = {c.id: frozenset(parse_guids(c.guids)) for c in candidates}
        examined: list[int] = []
        try:
            for pending in pending_items:
                examined.append(pending.id)
                report.examined += 1
                guids = parse_guids(pending.guids)

                best = self.best_candidate(
                    pending, frozenset(guids), candidates, candidate_guids
                )
                if best is None:
                    await self._handle_unmatched(pending, guids, report)
                    continue

                report.matched += 1
                if not pending.routed:
                    log.debug(
                        f"Matched $$'{pending.title}'$$ but it was not routed, "
                        f"not notifying"
                    )
                    continue
                user = users.get(best.user_id)
                if user is None:
                    continue
                if await self.notify(user, best):
                    report.notified += 1
        finally:
            await self.store.delete_pending_diff_items(examined)

        log.info(
            f"Processed {report.examined} pending {channel} items "
            f"$${{matched: {report.matched}, notified: {report.notified}, "
            f"duplicates: {report.duplicates}, unmatched: {report.unmatched}}}$$"
        )
        return report

    async def _handle_unmatched(
        self, pending: PendingDiffItem, guids: list[str], report: MatchReport
    ) -> None:
        existing = await self.store.get_items_by_guids(guids)
        if existing:
            report.duplicates += 1
            log.debug(f"Discarding duplicate pending item $$'{pending.title}'$$")
            return
        report.unmatched += 1
        log.warning(
            f"No watchlist item matches pending item $$'{pending.title}'$$, it was "
            f"likely removed before it could be processed "
            f"$${{guids: {guids}}}$$"
        )

    async def notify(self, user: User, item: WatchlistItem) -> bool:
        """Notify ``user`` about ``item`` unless they already were.

        Failures and timeouts are logged and leave the title eligible for a
        later notification.

        Returns:
            bool: Whether a notification was sent
        """
        title = item.title or item.key
        if await self.store.has_notified(user.id, title):
            log.debug(f"$$'{user.name}'$$ was already notified about $$'{title}'$$")
            return False
        try:
            async with asyncio.timeout(self.timeout):
                sent = await self.notifier.notify_watchlist_addition(
                    user, item.to_entry()
                )
        except TimeoutError:
            log.warning(
                f"Notifying $$'{user.name}'$$ about $$'{title}'$$ timed out "
                f"after {self.timeout}s"
            )
            return False
        except Exception:
            log.warning(
                f"Failed to notify $$'{user.name}'$$ about $$'{title}'$$",
                exc_info=True,
            )
            return False
        if sent:
            await self.store.record_notification(user.id, title)
        return bool(sent)


class RoutingAttributor:
    """Assigns system-actor routing records to the user owning the content.

    Ownership is looked up by identity key first and by GUID overlap second.
    When more than one distinct user owns the content the record is left
    unattributed instead of guessing.
    """

    def __init__(self, store: Store) -> None:
        """Initialize the attributor.

        Args:
            store (Store): Watchlist store
        """
        self.store = store

    async def attribute(self) -> AttributionReport:
        """Attribute every unattributed routing record that has a single owner."""
        report = AttributionReport()
        for record in await self.store.get_unattributed_routings():
            owners = await self.store.find_item_owners(
                record.key, parse_guids(record.guids)
            )
            if len(owners) == 1:
                owner = next(iter(owners))
                await self.store.attribute_routing(record.id, owner)
                report.attributed += 1
                log.debug(f"Attributed $$'{record.title}'$$ to user {owner}")
            elif owners:
                report.ambiguous += 1
                log.warning(
                    f"Not attributing $$'{record.title}'$$: {len(owners)} users "
                    f"have it on their watchlist $${{users: {sorted(owners)}}}$$"
                )
            else:
                report.unowned += 1

        if report.attributed or report.ambiguous:
            log.info(
                f"Routing attribution: {report.attributed} attributed, "
                f"{report.ambiguous} ambiguous"
            )
        return report

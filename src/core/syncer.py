"""Full State Syncer Module."""

import asyncio
import time
from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass, field
from typing import Any

from src import log
from src.core.collaborators import (
    ContentRouter,
    LabelCleaner,
    Notifier,
    RouteOptions,
)
from src.core.guids import extract_tmdb_id, extract_tvdb_id
from src.core.matcher import (
    AttributionReport,
    MatchReport,
    PendingDiffMatcher,
    RoutingAttributor,
)
from src.core.plex import FriendWatchlists, PlexWatchlistService
from src.core.store import Store
from src.exceptions import RoutingError, StoreError
from src.models.db import User, WatchlistItem
from src.models.watchlist import (
    BackendKind,
    ConflictPolicy,
    ContentKind,
    FeedChannel,
    FriendsResult,
    ItemStatus,
    PlexFriend,
    WatchlistEntry,
)

__all__ = ["FullStateSyncer", "ItemCategories", "SyncReport"]


@dataclass(slots=True)
class ItemCategories:
    """Incoming items split by what has to happen to them."""

    brand_new: list[WatchlistEntry] = field(default_factory=list)
    linked: list[WatchlistEntry] = field(default_factory=list)
    already_linked: list[WatchlistEntry] = field(default_factory=list)
    skipped_users: list[int] = field(default_factory=list)


@dataclass(slots=True)
class SyncReport:
    """Summary of one full reconciliation pass."""

    force_refresh: bool = False
    is_initial: bool = False
    directory_reconciled: bool = False
    users_created: int = 0
    users_deleted: int = 0
    failed_friends: list[str] = field(default_factory=list)
    new_items: int = 0
    linked_items: int = 0
    removed_items: int = 0
    routed: int = 0
    already_present: int = 0
    missing_ids: int = 0
    unchecked: int = 0
    routing_failures: int = 0
    notified: int = 0
    matches: dict[str, MatchReport] = field(default_factory=dict)
    attribution: AttributionReport | None = None
    failed_steps: list[str] = field(default_factory=list)
    duration: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON serializable representation."""
        return asdict(self)


class FullStateSyncer:
    """Authoritative reconciliation of the store against the Plex watchlists.

    A pass runs these steps in order:

    1. Fetch the primary watchlist and the friend watchlists in parallel.
    2. Reconcile the user directory (only when the friend list is trusted).
    3. Classify incoming items as brand-new, link-existing or already-linked.
    4. Persist brand-new and linked items.
    5. Delete rows that are no longer on a sync-enabled user's watchlist.
    6. Match pending diff observations so deferred notifications can fire.
    7. Route every item that is not yet present in a backend and notify its
       owner once.
    8. Attribute system routing records to their single owner.
    """

    def __init__(
        self,
        source: PlexWatchlistService,
        store: Store,
        router: ContentRouter,
        notifier: Notifier,
        label_cleaner: LabelCleaner | None = None,
        *,
        default_can_sync: bool = True,
        collaborator_timeout: float | None = 10,
    ) -> None:
        """Initialize the syncer.

        Args:
            source (PlexWatchlistService): Upstream watchlist source
            store (Store): Watchlist store
            router (ContentRouter): Routing collaborator
            notifier (Notifier): Notification collaborator
            label_cleaner (LabelCleaner | None): Optional label cleanup
                collaborator called before stale rows are deleted
            default_can_sync (bool): ``can_sync`` of newly discovered friends
            collaborator_timeout (float | None): Seconds each router, notifier
                or label cleaner call may take before it counts as failed
        """
        self.source = source
        self.store = store
        self.router = router
        self.label_cleaner = label_cleaner
        self.default_can_sync = default_can_sync
        self.timeout = collaborator_timeout
        self.matcher = PendingDiffMatcher(store, notifier, timeout=collaborator_timeout)
        self.attributor = RoutingAttributor(store)

    async def sync(
        self, force_refresh: bool = False, is_initial: bool = False
    ) -> SyncReport:
        """Run one full reconciliation pass.

        Every step commits on its own. A failure in a later step leaves the
        earlier steps applied. Routing and notifications cannot join a store
        transaction anyway, and each step is idempotent, so the next pass
        finishes whatever this one could not.

        Args:
            force_refresh (bool): Treat every item as brand-new and merge its
                metadata over existing rows
            is_initial (bool): Whether this is the first pass after startup

        Returns:
            SyncReport: What the pass did

        Raises:
            WatchlistFetchError: If the primary watchlist cannot be fetched
            PlexConnectivityError: If the primary account cannot be resolved
        """
        started = time.perf_counter()
        report = SyncReport(force_refresh=force_refresh, is_initial=is_initial)
        log.info(
            f"Starting {'initial ' if is_initial else ''}full watchlist sync"
            + (" (forced refresh)" if force_refresh else "")
        )

        primary_entries, (friends, friend_lists) = await asyncio.gather(
            self.source.fetch_primary_watchlist(), self._fetch_others()
        )
        report.failed_friends = sorted(friend_lists.failed)

        primary = await self.ensure_primary_user()
        if friends.success:
            await self.reconcile_users(friends.friends, report)
        else:
            log.warning(
                "Friend list could not be fetched, leaving the user directory "
                "unchanged"
            )

        users = {user.id: user for user in await self.store.get_all_users()}
        incoming = self._attribute_entries(
            primary, primary_entries, friend_lists, users
        )

        try:
            categories = await self.categorize_items(incoming, users, force_refresh)
            await self.persist_items(categories, force_refresh, report)
        except StoreError:
            log.error("Failed to persist watchlist items", exc_info=True)
            report.failed_steps.append("persist")

        try:
            report.removed_items = await self.remove_stale_items(incoming, users)
        except StoreError:
            log.error("Failed to remove stale watchlist items", exc_info=True)
            report.failed_steps.append("remove")

        await self._match_pending(primary, users, report)

        try:
            await self.route_items(users, is_initial, report)
        except StoreError:
            log.error("Failed to load watchlist items for routing", exc_info=True)
            report.failed_steps.append("route")

        try:
            report.attribution = await self.attributor.attribute()
        except Exception:
            log.error("Failed to attribute routing records", exc_info=True)
            report.failed_steps.append("attribute")

        report.duration = time.perf_counter() - started
        log.success(
            f"Full sync finished in {report.duration:.2f}s "
            f"$${{new: {report.new_items}, linked: {report.linked_items}, "
            f"removed: {report.removed_items}, routed: {report.routed}, "
            f"notified: {report.notified}, "
            f"users_created: {report.users_created}, "
            f"users_deleted: {report.users_deleted}}}$$"
        )
        return report

    async def _fetch_others(self) -> tuple[FriendsResult, FriendWatchlists]:
        friends = await self.source.fetch_friends()
        if not friends.success or not friends.friends:
            return friends, FriendWatchlists()
        return friends, await self.source.fetch_friend_watchlists(friends.friends)

    def _attribute_entries(
        self,
        primary: User,
        primary_entries: Sequence[WatchlistEntry],
        friend_lists: FriendWatchlists,
        users: Mapping[int, User],
    ) -> dict[int, list[WatchlistEntry]]:
        by_name = {user.name.lower(): user for user in users.values()}
        incoming = {primary.id: [e.for_user(primary.id) for e in primary_entries]}
        for username, entries in friend_lists.entries.items():
            user = by_name.get(username.lower())
            if user is None or user.id == primary.id:
                log.debug(
                    f"No local user for friend $$'{username}'$$, skipping "
                    f"{len(entries)} items"
                )
                continue
            incoming[user.id] = [e.for_user(user.id) for e in entries]
        return incoming

    async def ensure_primary_user(self) -> User:
        """Make sure the account behind the token is the primary user.

        Returns:
            User: The primary user
        """
        account = self.source.account or await self.source.verify_connectivity()
        user = await self.store.get_user(account.username)
        if user is None:
            log.info(f"Creating primary user $$'{account.username}'$$")
            return await self.store.create_user(
                account.username,
                watchlist_id=account.uuid,
                can_sync=True,
                is_primary=True,
            )
        if not user.is_primary:
            log.info(f"Promoting $$'{user.name}'$$ to primary user")
            await self.store.set_primary_user(user.id)
            user.is_primary = True
        return user

    async def reconcile_users(
        self, friends: Sequence[PlexFriend], report: SyncReport | None = None
    ) -> None:
        """Align the local user directory with the current friend list.

        Names are compared case-insensitively. The primary user is never
        deleted here. Must only be called with a successfully fetched list.

        Args:
            friends (Sequence[PlexFriend]): Current friends of the primary account
            report (SyncReport | None): Report to update with the counts
        """
        report = report if report is not None else SyncReport()
        users = await self.store.get_all_users()
        friend_names = {friend.username.lower(): friend for friend in friends}

        stale = [
            user
            for user in users
            if not user.is_primary and user.name.lower() not in friend_names
        ]
        if stale:
            result = await self.store.delete_users(user.id for user in stale)
            report.users_deleted += result.deleted_count
            log.info(
                f"Removed {result.deleted_count} users that are no longer friends "
                f"$${{users: {[user.name for user in stale]}}}$$"
            )
            if result.failed_ids:
                log.warning(f"Failed to delete users {result.failed_ids}")

        known = {user.name.lower(): user for user in users}
        for name, friend in friend_names.items():
            existing = known.get(name)
            if existing is not None:
                if not existing.is_primary and (
                    friend.watchlist_id and existing.watchlist_id != friend.watchlist_id
                ):
                    await self.store.update_user(
                        existing.id, watchlist_id=friend.watchlist_id
                    )
                continue
            await self.store.create_user(
                friend.username,
                watchlist_id=friend.watchlist_id,
                can_sync=self.default_can_sync,
            )
            report.users_created += 1
            log.info(f"Added friend $$'{friend.username}'$$ as a new user")

        report.directory_reconciled = True

    async def categorize_items(
        self,
        incoming: Mapping[int, Sequence[WatchlistEntry]],
        users: Mapping[int, User],
        force_refresh: bool = False,
    ) -> ItemCategories:
        """Classify incoming items against the store.

        Args:
            incoming (Mapping[int, Sequence[WatchlistEntry]]): Entries by user id
            users (Mapping[int, User]): Users by id
            force_refresh (bool): Classify everything as brand-new

        Returns:
            ItemCategories: The classified items
        """
        categories = ItemCategories()
        eligible: dict[int, Sequence[WatchlistEntry]] = {}
        for user_id, entries in incoming.items():
            user = users.get(user_id)
            if user is None or not user.can_sync:
                categories.skipped_users.append(user_id)
                log.debug(
                    f"Sync is disabled for "
                    f"$$'{user.name if user else user_id}'$$, skipping "
                    f"{len(entries)} watchlist items"
                )
                continue
            eligible[user_id] = entries

        keys = {entry.key for entries in eligible.values() for entry in entries}
        if not keys:
            return categories

        anywhere = await self.store.get_items_by_identity_keys(keys)
        owned = await self.store.get_items_for_user_and_keys(eligible.keys(), keys)
        owned_refs = {(item.user_id, item.key) for item in owned}
        donors: dict[str, WatchlistItem] = {}
        known_keys: set[str] = set()
        for item in anywhere:
            known_keys.add(item.key)
            if item.has_metadata:
                donors.setdefault(item.key, item)

        for user_id, entries in eligible.items():
            seen: set[str] = set()
            for entry in entries:
                if entry.key in seen:
                    continue
                seen.add(entry.key)

                if force_refresh or entry.key not in known_keys:
                    categories.brand_new.append(entry)
                elif (user_id, entry.key) in owned_refs:
                    categories.already_linked.append(entry)
                elif (donor := donors.get(entry.key)) is not None:
                    categories.linked.append(self._link_from(donor, entry, user_id))
                else:
                    categories.brand_new.append(entry)

        log.debug(
            f"Categorized watchlist items $${{new: {len(categories.brand_new)}, "
            f"link: {len(categories.linked)}, "
            f"existing: {len(categories.already_linked)}}}$$"
        )
        return categories

    @staticmethod
    def _link_from(
        donor: WatchlistItem, entry: WatchlistEntry, user_id: int
    ) -> WatchlistEntry:
        return WatchlistEntry(
            key=entry.key,
            title=donor.title or entry.title,
            kind=donor.type or entry.kind,
            guids=tuple(donor.guids or entry.guids),
            genres=tuple(donor.genres or entry.genres),
            thumb=donor.thumb or entry.thumb,
            user_id=user_id,
        )

    async def persist_items(
        self,
        categories: ItemCategories,
        force_refresh: bool = False,
        report: SyncReport | None = None,
    ) -> None:
        """Insert brand-new and linked items.

        Brand-new items ignore existing rows unless ``force_refresh`` is set,
        in which case their metadata is merged. Linked items always merge,
        since a concurrent writer may already have created the row.
        """
        report = report if report is not None else SyncReport()
        if categories.brand_new:
            policy = ConflictPolicy.MERGE if force_refresh else ConflictPolicy.IGNORE
            inserted = await self.store.create_items(categories.brand_new, policy)
            report.new_items += len(inserted)
        if categories.linked:
            linked = await self.store.create_items(
                categories.linked, ConflictPolicy.MERGE
            )
            report.linked_items += len(linked)
            log.debug(f"Linked {len(linked)} items from other users' metadata")

    async def remove_stale_items(
        self,
        incoming: Mapping[int, Sequence[WatchlistEntry]],
        users: Mapping[int, User],
    ) -> int:
        """Delete rows that left the watchlist of a fetched, sync-enabled user.

        Users missing from ``incoming`` (for example friends whose watchlist
        could not be fetched) are left alone. Label cleanup is best-effort.

        Returns:
            int: Number of deleted rows
        """
        removed = 0
        for user_id, entries in incoming.items():
            user = users.get(user_id)
            if user is None or not user.can_sync:
                continue

            fresh = {entry.key for entry in entries}
            stale = [
                item
                for item in await self.store.get_all_items_for_user(user_id)
                if item.key not in fresh
            ]
            if not stale:
                continue

            if self.label_cleaner is not None:
                try:
                    async with asyncio.timeout(self.timeout):
                        await self.label_cleaner.cleanup_labels(user_id, stale)
                except TimeoutError:
                    log.warning(
                        f"Label cleanup for $$'{user.name}'$$ timed out after "
                        f"{self.timeout}s"
                    )
                except Exception:
                    log.warning(
                        f"Label cleanup failed for $$'{user.name}'$$",
                        exc_info=True,
                    )

            deleted = await self.store.delete_items(user_id, [i.key for i in stale])
            removed += deleted
            log.info(
                f"Removed {deleted} items no longer on $$'{user.name}'$$'s "
                f"watchlist $${{titles: {[i.title for i in stale]}}}$$"
            )
        return removed

    async def _match_pending(
        self, primary: User, users: Mapping[int, User], report: SyncReport
    ) -> None:
        eligible = [user_id for user_id, user in users.items() if user.can_sync]
        groups = {
            FeedChannel.SELF: [uid for uid in eligible if uid == primary.id],
            FeedChannel.FRIENDS: [uid for uid in eligible if uid != primary.id],
        }
        for channel, user_ids in groups.items():
            try:
                candidates = []
                if user_ids:
                    candidates = await self.store.get_all_items(user_ids=user_ids)
                report.matches[channel] = await self.matcher.match(
                    channel, candidates, users
                )
            except Exception:
                log.error(
                    f"Failed to match pending {channel} diff items", exc_info=True
                )
                report.failed_steps.append(f"match:{channel}")

    async def route_items(
        self,
        users: Mapping[int, User],
        is_initial: bool = False,
        report: SyncReport | None = None,
    ) -> None:
        """Route every stored item of sync-enabled users that no backend has.

        An item is skipped when it lacks the id its backend needs, when the
        backend already has it, or when the existence check could not be
        answered. Routing failures and timeouts are logged per item. The owner
        of a routed item is notified unless they already were about its title.
        """
        report = report if report is not None else SyncReport()
        eligible = [user_id for user_id, user in users.items() if user.can_sync]
        if not eligible:
            return

        for item in await self.store.get_all_items(user_ids=eligible):
            kind = item.type
            if kind is None:
                log.warning(f"Skipping $$'{item.key}'$$ without a content kind")
                report.missing_ids += 1
                continue

            backend = BackendKind.for_kind(kind)
            identity_id = (
                extract_tvdb_id(item.guids)
                if kind == ContentKind.SHOW
                else extract_tmdb_id(item.guids)
            )
            if not identity_id:
                report.missing_ids += 1
                log.debug(
                    f"Skipping $$'{item.title}'$$, no "
                    f"{'tvdb' if kind == ContentKind.SHOW else 'tmdb'} id"
                )
                continue

            try:
                async with asyncio.timeout(self.timeout):
                    existence = await self.router.check_existence(
                        backend, identity_id
                    )
            except TimeoutError:
                log.warning(
                    f"Existence check for $$'{item.title}'$$ timed out after "
                    f"{self.timeout}s, retrying on the next sync"
                )
                report.unchecked += 1
                continue
            except Exception:
                log.warning(
                    f"Existence check failed for $$'{item.title}'$$", exc_info=True
                )
                report.unchecked += 1
                continue
            if not existence.checked:
                report.unchecked += 1
                log.warning(
                    f"Could not check whether $$'{item.title}'$$ exists in "
                    f"{backend}, retrying on the next sync "
                    f"$${{error: {existence.error}}}$$"
                )
                continue
            if existence.found:
                report.already_present += 1
                continue

            try:
                async with asyncio.timeout(self.timeout):
                    await self.router.route_content(
                        item.to_entry(),
                        item.key,
                        RouteOptions(user_id=item.user_id, is_initial_sync=is_initial),
                    )
            except TimeoutError:
                report.routing_failures += 1
                log.warning(
                    f"Routing $$'{item.title}'$$ timed out after {self.timeout}s"
                )
                continue
            except RoutingError as e:
                report.routing_failures += 1
                log.warning(f"Unable to route $$'{item.title}'$$: {e}")
                continue
            except Exception:
                report.routing_failures += 1
                log.error(f"Failed to route $$'{item.title}'$$", exc_info=True)
                continue

            report.routed += 1
            await self.store.update_item_status(
                item.user_id, item.key, ItemStatus.REQUESTED
            )
            user = users.get(item.user_id)
            if user is not None and await self.matcher.notify(user, item):
                report.notified += 1

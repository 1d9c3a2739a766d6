"""Watchlist store backed by SQLAlchemy."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src import log
from src.exceptions import StoreError
from src.models.db import (
    Housekeeping,
    NotificationLog,
    PendingDiffItem,
    RoutingRecord,
    User,
    WatchlistItem,
)
from src.models.watchlist import (
    ConflictPolicy,
    FeedChannel,
    ItemStatus,
    WatchlistEntry,
    normalize_user_id,
)
from src.utils.sql import json_array_contains

__all__ = ["DeleteUsersResult", "PendingDiff", "Store"]

LAST_SYNC_KEY = "last_successful_sync"


@dataclass(slots=True)
class DeleteUsersResult:
    """Outcome of a bulk user deletion."""

    deleted_count: int = 0
    failed_ids: list[int] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class PendingDiff:
    """A diff feed observation to persist for later matching."""

    channel: FeedChannel
    entry: WatchlistEntry
    routed: bool = False


class Store:
    """Persistence operations used by the reconciliation core.

    Every public method opens its own session and commits at most once, so a
    method call is the unit of atomicity. Failures roll back the call and
    surface as ``StoreError``.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        """Initialize the store.

        Args:
            session_factory (Callable[[], Session]): Returns a new session; it
                must not expire objects on commit, since rows are returned
                detached.
        """
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"Store operation failed: {e}") from e
        finally:
            session.close()

    # Users

    async def get_user(self, identifier: int | str) -> User | None:
        """Get a user by numeric id or case-insensitive name."""
        with self._session() as session:
            if isinstance(identifier, int):
                return session.get(User, identifier)
            return session.scalars(
                select(User).where(func.lower(User.name) == identifier.lower())
            ).first()

    async def get_primary_user(self) -> User | None:
        """Get the primary user, if one exists."""
        with self._session() as session:
            return session.scalars(select(User).where(User.is_primary)).first()

    async def get_all_users(self) -> list[User]:
        """Get every user ordered by id."""
        with self._session() as session:
            return list(session.scalars(select(User).order_by(User.id)))

    async def create_user(
        self,
        name: str,
        *,
        watchlist_id: str | None = None,
        can_sync: bool = True,
        is_primary: bool = False,
    ) -> User:
        """Create a user.

        Creating a primary user demotes the previous primary in the same
        transaction.
        """
        with self._session() as session:
            if is_primary:
                session.execute(
                    update(User).where(User.is_primary).values(is_primary=False)
                )
            user = User(
                name=name,
                watchlist_id=watchlist_id,
                can_sync=can_sync,
                is_primary=is_primary,
            )
            session.add(user)
            session.flush()
            return user

    async def set_primary_user(self, user_id: int) -> None:
        """Promote a user to primary, demoting any other primary atomically.

        Raises:
            StoreError: If the user does not exist
        """
        with self._session() as session:
            if session.get(User, user_id) is None:
                raise StoreError(f"User {user_id} does not exist")
            session.execute(
                update(User)
                .where(User.is_primary, User.id != user_id)
                .values(is_primary=False)
            )
            session.execute(
                update(User).where(User.id == user_id).values(is_primary=True)
            )

    async def update_user(
        self,
        user_id: int,
        *,
        name: str | None = None,
        watchlist_id: str | None = None,
        can_sync: bool | None = None,
    ) -> None:
        """Update the given fields of a user; None leaves a field unchanged."""
        values: dict[str, object] = {}
        if name is not None:
            values["name"] = name
        if watchlist_id is not None:
            values["watchlist_id"] = watchlist_id
        if can_sync is not None:
            values["can_sync"] = can_sync
        if not values:
            return
        with self._session() as session:
            session.execute(update(User).where(User.id == user_id).values(**values))

    async def delete_users(self, user_ids: Iterable[int]) -> DeleteUsersResult:
        """Delete users; their items cascade.

        Unknown ids are reported in ``failed_ids`` rather than raising.
        """
        result = DeleteUsersResult()
        with self._session() as session:
            for user_id in user_ids:
                deleted = session.execute(delete(User).where(User.id == user_id))
                if deleted.rowcount:
                    result.deleted_count += 1
                else:
                    result.failed_ids.append(user_id)
        return result

    async def has_users_with_sync_disabled(self) -> bool:
        """Whether any user has ``can_sync`` turned off."""
        with self._session() as session:
            disabled = select(User.id).where(User.can_sync.is_(False))
            return session.scalars(disabled).first() is not None

    # Watchlist items

    async def get_items_by_identity_keys(
        self, keys: Iterable[str]
    ) -> list[WatchlistItem]:
        """Get every item, for any user, whose identity key is in ``keys``."""
        key_list = list(set(keys))
        if not key_list:
            return []
        with self._session() as session:
            return list(
                session.scalars(
                    select(WatchlistItem)
                    .where(WatchlistItem.key.in_(key_list))
                    .order_by(WatchlistItem.id)
                )
            )

    async def get_items_for_user_and_keys(
        self, user_ids: Iterable[int], keys: Iterable[str]
    ) -> list[WatchlistItem]:
        """Get items owned by ``user_ids`` whose key is in ``keys``."""
        id_list = list(set(user_ids))
        key_list = list(set(keys))
        if not id_list or not key_list:
            return []
        with self._session() as session:
            return list(
                session.scalars(
                    select(WatchlistItem).where(
                        WatchlistItem.user_id.in_(id_list),
                        WatchlistItem.key.in_(key_list),
                    )
                )
            )

    async def get_all_items_for_user(self, user_id: int) -> list[WatchlistItem]:
        """Get every item of one user."""
        with self._session() as session:
            return list(
                session.scalars(
                    select(WatchlistItem)
                    .where(WatchlistItem.user_id == user_id)
                    .order_by(WatchlistItem.id)
                )
            )

    async def get_all_items(
        self, user_ids: Iterable[int] | None = None
    ) -> list[WatchlistItem]:
        """Get every item, optionally restricted to some users."""
        stmt = select(WatchlistItem).order_by(WatchlistItem.id)
        if user_ids is not None:
            stmt = stmt.where(WatchlistItem.user_id.in_(list(user_ids)))
        with self._session() as session:
            return list(session.scalars(stmt))

    async def get_items_by_guids(self, guids: Iterable[str]) -> list[WatchlistItem]:
        """Get every item sharing at least one GUID with ``guids``."""
        guid_list = list(dict.fromkeys(guids))
        if not guid_list:
            return []
        with self._session() as session:
            return list(
                session.scalars(
                    select(WatchlistItem)
                    .where(json_array_contains(WatchlistItem.guids, guid_list))
                    .order_by(WatchlistItem.id)
                )
            )

    async def create_items(
        self, entries: Iterable[WatchlistEntry], policy: ConflictPolicy
    ) -> list[tuple[int, str]]:
        """Insert items, resolving ``(user_id, key)`` conflicts by ``policy``.

        With ``IGNORE`` an existing row is left untouched. With ``MERGE`` its
        metadata is overwritten while its status is kept.

        Returns:
            list[tuple[int, str]]: ``(user_id, key)`` of each inserted or
                merged row
        """
        refs: list[tuple[int, str]] = []
        with self._session() as session:
            for entry in entries:
                if entry.user_id is None:
                    log.warning(
                        f"Refusing to store $$'{entry.title}'$$ without an owner"
                    )
                    continue
                stmt = insert(WatchlistItem).values(**entry.to_row())
                if policy == ConflictPolicy.MERGE:
                    stmt = stmt.on_conflict_do_update(
                        index_elements=["user_id", "key"],
                        set_={
                            "title": stmt.excluded.title,
                            "type": stmt.excluded.type,
                            "thumb": stmt.excluded.thumb,
                            "guids": stmt.excluded.guids,
                            "genres": stmt.excluded.genres,
                            "updated_at": datetime.now(UTC),
                        },
                    )
                else:
                    stmt = stmt.on_conflict_do_nothing(
                        index_elements=["user_id", "key"]
                    )
                if session.execute(stmt).rowcount:
                    refs.append((entry.user_id, entry.key))
        return refs

    async def update_item_status(
        self, user_id: int, key: str, status: ItemStatus
    ) -> None:
        """Set the lifecycle status of one item."""
        with self._session() as session:
            session.execute(
                update(WatchlistItem)
                .where(WatchlistItem.user_id == user_id, WatchlistItem.key == key)
                .values(status=status, updated_at=datetime.now(UTC))
            )

    async def delete_items(self, user_id: int, keys: Iterable[str]) -> int:
        """Delete a user's items by key.

        Returns:
            int: Number of deleted rows
        """
        key_list = list(set(keys))
        if not key_list:
            return 0
        with self._session() as session:
            result = session.execute(
                delete(WatchlistItem).where(
                    WatchlistItem.user_id == user_id, WatchlistItem.key.in_(key_list)
                )
            )
            return result.rowcount or 0

    # Pending diff items

    async def save_pending_diff_items(self, items: Iterable[PendingDiff]) -> int:
        """Persist diff feed observations.

        Returns:
            int: Number of stored rows
        """
        rows = [
            PendingDiffItem(
                source=item.channel,
                title=item.entry.title,
                type=item.entry.kind,
                thumb=item.entry.thumb,
                guids=list(item.entry.guids),
                genres=list(item.entry.genres),
                routed=item.routed,
            )
            for item in items
        ]
        if not rows:
            return 0
        with self._session() as session:
            session.add_all(rows)
        return len(rows)

    async def get_pending_diff_items(
        self, channel: FeedChannel
    ) -> list[PendingDiffItem]:
        """Get the pending observations of one channel, oldest first."""
        with self._session() as session:
            return list(
                session.scalars(
                    select(PendingDiffItem)
                    .where(PendingDiffItem.source == channel)
                    .order_by(PendingDiffItem.created_at, PendingDiffItem.id)
                )
            )

    async def delete_pending_diff_items(self, ids: Iterable[int]) -> int:
        """Delete pending observations by id."""
        id_list = list(set(ids))
        if not id_list:
            return 0
        with self._session() as session:
            result = session.execute(
                delete(PendingDiffItem).where(PendingDiffItem.id.in_(id_list))
            )
            return result.rowcount or 0

    # Notifications

    async def has_notified(self, user_id: int, title: str) -> bool:
        """Whether ``user_id`` was already notified about ``title``."""
        with self._session() as session:
            return (
                session.scalars(
                    select(NotificationLog.id).where(
                        NotificationLog.user_id == user_id,
                        NotificationLog.title == title,
                    )
                ).first()
                is not None
            )

    async def record_notification(self, user_id: int, title: str) -> bool:
        """Remember that ``user_id`` was notified about ``title``.

        Returns:
            bool: False if the notification was already recorded
        """
        with self._session() as session:
            result = session.execute(
                insert(NotificationLog)
                .values(user_id=user_id, title=title)
                .on_conflict_do_nothing(index_elements=["user_id", "title"])
            )
            return bool(result.rowcount)

    # Routing records

    async def record_routing(self, entry: WatchlistEntry, user_id: Any = None) -> int:
        """Record a submission to an acquisition backend.

        Args:
            entry (WatchlistEntry): The routed content
            user_id (Any): Requesting user in any shape ``normalize_user_id``
                accepts; None or an unusable id records the system actor

        Returns:
            int: The id of the new record
        """
        user_id = normalize_user_id(user_id)
        with self._session() as session:
            record = RoutingRecord(
                user_id=user_id,
                key=entry.key,
                title=entry.title,
                type=entry.kind,
                guids=list(entry.guids),
                attributed_at=datetime.now(UTC) if user_id is not None else None,
            )
            session.add(record)
            session.flush()
            return record.id

    async def get_unattributed_routings(self) -> list[RoutingRecord]:
        """Get routing records still owned by the system actor."""
        with self._session() as session:
            return list(
                session.scalars(
                    select(RoutingRecord)
                    .where(RoutingRecord.user_id.is_(None))
                    .order_by(RoutingRecord.id)
                )
            )

    async def attribute_routing(self, record_id: int, user_id: Any) -> None:
        """Assign a system routing record to a user.

        Raises:
            StoreError: If ``user_id`` is not a usable user id
        """
        owner = normalize_user_id(user_id)
        if owner is None:
            raise StoreError(f"Invalid user id {user_id!r}")
        with self._session() as session:
            session.execute(
                update(RoutingRecord)
                .where(RoutingRecord.id == record_id)
                .values(user_id=owner, attributed_at=datetime.now(UTC))
            )

    async def find_item_owners(self, key: str, guids: Iterable[str]) -> set[int]:
        """Find the users whose watchlist holds some content.

        Owners by identity key take precedence; GUID overlap is only used when
        no row has the key.
        """
        guid_list = list(dict.fromkeys(guids))
        with self._session() as session:
            owners = set(
                session.scalars(
                    select(WatchlistItem.user_id).where(WatchlistItem.key == key)
                )
            )
            if owners or not guid_list:
                return owners
            return set(
                session.scalars(
                    select(WatchlistItem.user_id).where(
                        json_array_contains(WatchlistItem.guids, guid_list)
                    )
                )
            )

    # Housekeeping

    async def get_housekeeping(self, key: str) -> str | None:
        """Get a housekeeping value."""
        with self._session() as session:
            row = session.get(Housekeeping, key)
            return row.value if row else None

    async def set_housekeeping(self, key: str, value: str | None) -> None:
        """Set a housekeeping value."""
        with self._session() as session:
            session.merge(Housekeeping(key=key, value=value))

    async def get_last_sync_time(self) -> datetime | None:
        """Get the last successful sync time."""
        value = await self.get_housekeeping(LAST_SYNC_KEY)
        if not value:
            return None
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            log.warning(f"Ignoring invalid last sync time $$'{value}'$$")
            return None

    async def set_last_sync_time(self, when: datetime) -> None:
        """Persist the last successful sync time."""
        await self.set_housekeeping(LAST_SYNC_KEY, when.isoformat())

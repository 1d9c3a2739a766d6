"""Tests for the SQLAlchemy backed watchlist store."""

from datetime import UTC, datetime

import pytest

from src.core.store import PendingDiff, Store
from src.exceptions import StoreError
from src.models.watchlist import (
    ConflictPolicy,
    FeedChannel,
    ItemStatus,
)
from tests.core.fakes import make_entry


@pytest.mark.asyncio
async def test_at_most_one_primary(store: Store):
    """Any sequence of primary creations and promotions keeps one primary."""
    first = await store.create_user("alice", is_primary=True)
    second = await store.create_user("bob", is_primary=True)
    third = await store.create_user("carol")

    await store.set_primary_user(third.id)
    await store.set_primary_user(first.id)
    await store.create_user("dave", is_primary=True)
    await store.set_primary_user(second.id)

    primaries = [u for u in await store.get_all_users() if u.is_primary]
    assert [u.name for u in primaries] == ["bob"]


@pytest.mark.asyncio
async def test_set_primary_user_unknown_id(store: Store):
    """Promoting a missing user is a store error and changes nothing."""
    await store.create_user("alice", is_primary=True)

    with pytest.raises(StoreError):
        await store.set_primary_user(999)

    primary = await store.get_primary_user()
    assert primary is not None and primary.name == "alice"


@pytest.mark.asyncio
async def test_get_user_by_id_or_name(store: Store):
    """Users resolve by id or by case-insensitive name."""
    user = await store.create_user("Alice")

    by_id = await store.get_user(user.id)
    by_name = await store.get_user("alice")
    assert by_id is not None and by_name is not None
    assert by_id.id == by_name.id == user.id
    assert await store.get_user("nobody") is None


@pytest.mark.asyncio
async def test_delete_users_cascades_items(store: Store):
    """Deleting a user removes their items; unknown ids are reported."""
    user = await store.create_user("alice")
    await store.create_items(
        [make_entry("1", user_id=user.id)], ConflictPolicy.IGNORE
    )

    result = await store.delete_users([user.id, 999])

    assert result.deleted_count == 1
    assert result.failed_ids == [999]
    assert await store.get_all_items() == []


@pytest.mark.asyncio
async def test_create_items_conflict_policies(store: Store):
    """IGNORE keeps the existing row, MERGE overwrites metadata but not status."""
    user = await store.create_user("alice")
    original = make_entry("1", title="Original", user_id=user.id)
    assert await store.create_items([original], ConflictPolicy.IGNORE) == [
        (user.id, "1")
    ]
    await store.update_item_status(user.id, "1", ItemStatus.REQUESTED)

    renamed = make_entry("1", title="Renamed", user_id=user.id)
    assert await store.create_items([renamed], ConflictPolicy.IGNORE) == []
    (row,) = await store.get_all_items_for_user(user.id)
    assert row.title == "Original"

    assert await store.create_items([renamed], ConflictPolicy.MERGE) == [
        (user.id, "1")
    ]
    (row,) = await store.get_all_items_for_user(user.id)
    assert row.title == "Renamed"
    assert row.status == ItemStatus.REQUESTED


@pytest.mark.asyncio
async def test_create_items_without_owner_is_skipped(store: Store):
    """Entries without a user are never stored."""
    assert await store.create_items([make_entry("1")], ConflictPolicy.IGNORE) == []


@pytest.mark.asyncio
async def test_item_lookups(store: Store):
    """Items can be found by key, by user and key, and by GUID overlap."""
    alice = await store.create_user("alice")
    bob = await store.create_user("bob")
    await store.create_items(
        [
            make_entry("1", user_id=alice.id, guids=["tmdb://1", "imdb://tt1"]),
            make_entry("1", user_id=bob.id, guids=["tmdb://1"]),
            make_entry("2", user_id=bob.id, guids=["tvdb://2"]),
        ],
        ConflictPolicy.IGNORE,
    )

    assert len(await store.get_items_by_identity_keys(["1"])) == 2
    owned = await store.get_items_for_user_and_keys([bob.id], ["1", "2"])
    assert sorted(item.key for item in owned) == ["1", "2"]
    assert [i.user_id for i in await store.get_items_by_guids(["imdb:tt1"])] == [
        alice.id
    ]
    assert await store.get_items_by_guids([]) == []
    assert len(await store.get_all_items(user_ids=[bob.id])) == 2


@pytest.mark.asyncio
async def test_delete_items_by_key(store: Store):
    """Only the given keys of the given user are deleted."""
    alice = await store.create_user("alice")
    bob = await store.create_user("bob")
    await store.create_items(
        [
            make_entry("1", user_id=alice.id),
            make_entry("2", user_id=alice.id),
            make_entry("1", user_id=bob.id),
        ],
        ConflictPolicy.IGNORE,
    )

    assert await store.delete_items(alice.id, ["1"]) == 1
    assert [i.key for i in await store.get_all_items_for_user(alice.id)] == ["2"]
    assert len(await store.get_all_items_for_user(bob.id)) == 1
    assert await store.delete_items(alice.id, []) == 0


@pytest.mark.asyncio
async def test_pending_diff_roundtrip_per_channel(store: Store):
    """Pending diffs are stored per channel and deleted by id."""
    saved = await store.save_pending_diff_items(
        [
            PendingDiff(FeedChannel.SELF, make_entry("1"), routed=True),
            PendingDiff(FeedChannel.FRIENDS, make_entry("2")),
        ]
    )
    assert saved == 2

    (pending,) = await store.get_pending_diff_items(FeedChannel.SELF)
    assert pending.routed is True
    assert pending.guids == ["tmdb:1"]

    assert await store.delete_pending_diff_items([pending.id]) == 1
    assert await store.get_pending_diff_items(FeedChannel.SELF) == []
    assert len(await store.get_pending_diff_items(FeedChannel.FRIENDS)) == 1


@pytest.mark.asyncio
async def test_notification_guard(store: Store):
    """Notifications are recorded once per user and title."""
    user = await store.create_user("alice")

    assert await store.has_notified(user.id, "Heat") is False
    assert await store.record_notification(user.id, "Heat") is True
    assert await store.record_notification(user.id, "Heat") is False
    assert await store.has_notified(user.id, "Heat") is True


@pytest.mark.asyncio
async def test_routing_attribution_records(store: Store):
    """System routings stay unattributed until assigned to a user."""
    user = await store.create_user("alice")
    record_id = await store.record_routing(make_entry("1"))

    (record,) = await store.get_unattributed_routings()
    assert record.id == record_id

    await store.attribute_routing(record_id, user.id)
    assert await store.get_unattributed_routings() == []


@pytest.mark.asyncio
async def test_find_item_owners_prefers_key(store: Store):
    """Owners by key win; GUID overlap is the fallback."""
    alice = await store.create_user("alice")
    bob = await store.create_user("bob")
    await store.create_items(
        [
            make_entry("k1", user_id=alice.id, guids=["tmdb://1"]),
            make_entry("k2", user_id=bob.id, guids=["tmdb://1"]),
        ],
        ConflictPolicy.IGNORE,
    )

    assert await store.find_item_owners("k1", ["tmdb:1"]) == {alice.id}
    assert await store.find_item_owners("other", ["tmdb:1"]) == {alice.id, bob.id}
    assert await store.find_item_owners("other", []) == set()


@pytest.mark.asyncio
async def test_sync_disabled_flag(store: Store):
    """has_users_with_sync_disabled reflects can_sync."""
    user = await store.create_user("alice")
    assert await store.has_users_with_sync_disabled() is False

    await store.update_user(user.id, can_sync=False)
    assert await store.has_users_with_sync_disabled() is True


@pytest.mark.asyncio
async def test_last_sync_time_roundtrip(store: Store):
    """The last sync time survives a write and read."""
    assert await store.get_last_sync_time() is None

    when = datetime(2026, 10, 17, 9, 30, tzinfo=UTC)
    await store.set_last_sync_time(when)

    assert await store.get_last_sync_time() == when

    await store.set_housekeeping("last_successful_sync", "garbage")
    assert await store.get_last_sync_time() is None


@pytest.mark.asyncio
async def test_routing_user_ids_are_normalised(store: Store):
    """Loosely typed user ids are normalised when routings are recorded."""
    user = await store.create_user("alice")

    attributed = await store.record_routing(make_entry("1"), str(user.id))
    system = await store.record_routing(make_entry("2"), {"id": "nope"})

    assert [r.id for r in await store.get_unattributed_routings()] == [system]
    assert attributed != system

    await store.attribute_routing(system, {"id": user.id})
    assert await store.get_unattributed_routings() == []


@pytest.mark.asyncio
async def test_attribute_routing_rejects_invalid_user(store: Store):
    """A routing record cannot be attributed to an unusable id."""
    record_id = await store.record_routing(make_entry("1"))

    for invalid in (0, True, "alice", None):
        with pytest.raises(StoreError):
            await store.attribute_routing(record_id, invalid)

    assert len(await store.get_unattributed_routings()) == 1

"""Tests for the Plex watchlist service and client parsing."""

from typing import Any

import aiohttp
import pytest

from src.core.plex import PlexWatchlistService
from src.core.plexapi.watchlist import PlexWatchlistClient
from src.exceptions import FeedUnavailableError, WatchlistFetchError
from src.models.watchlist import (
    ContentKind,
    FeedChannel,
    FriendsResult,
    PlexAccount,
    PlexFriend,
)
from tests.core.fakes import make_entry


class FakeClient:
    """Stand-in for ``PlexWatchlistClient`` with canned answers."""

    def __init__(self) -> None:
        """Start with both feeds available and empty watchlists."""
        self.feed_urls: dict[str, str | None] = {
            "watchlist": "https://rss/self",
            "friendsWatchlist": "https://rss/friends",
        }
        self.watchlist_error: Exception | None = None
        self.friend_errors: dict[str, Exception] = {}
        self.closed = False

    async def ping(self) -> None:
        return None

    async def get_account(self) -> PlexAccount:
        return PlexAccount(1, "uuid-owner", "owner")

    async def generate_feed_url(self, feed_type: str) -> str | None:
        return self.feed_urls.get(feed_type)

    async def fetch_feed(self, url: str):
        if url.endswith("friends"):
            raise aiohttp.ClientError("feed down")
        return [make_entry("1")]

    async def get_watchlist(self):
        if self.watchlist_error is not None:
            raise self.watchlist_error
        return [make_entry("1")]

    async def get_friends(self) -> FriendsResult:
        return FriendsResult(friends=[PlexFriend("uuid-bob", "bob")], success=True)

    async def get_friend_watchlist(self, friend: PlexFriend):
        if friend.username in self.friend_errors:
            raise self.friend_errors[friend.username]
        return [make_entry(f"{friend.username}-1")]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def service(client: FakeClient) -> PlexWatchlistService:
    return PlexWatchlistService(client)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_verify_connectivity_stores_account(service: PlexWatchlistService):
    """The resolved account is kept on the service."""
    account = await service.verify_connectivity()

    assert account.username == "owner"
    assert service.account == account


@pytest.mark.asyncio
async def test_ensure_feeds_generates_both_channels(service: PlexWatchlistService):
    """Both feed channels are available when Plex generates their URLs."""
    await service.ensure_feeds()

    assert service.channels == [FeedChannel.SELF, FeedChannel.FRIENDS]
    assert service.has_feeds


@pytest.mark.asyncio
async def test_friends_feed_is_optional(
    client: FakeClient, service: PlexWatchlistService
):
    """A missing friends feed leaves the self channel usable."""
    client.feed_urls["friendsWatchlist"] = None

    await service.ensure_feeds()

    assert service.channels == [FeedChannel.SELF]


@pytest.mark.asyncio
async def test_missing_self_feed_is_unavailable(
    client: FakeClient, service: PlexWatchlistService
):
    """Without a self feed no channel is usable."""
    client.feed_urls["watchlist"] = None

    with pytest.raises(FeedUnavailableError):
        await service.ensure_feeds()

    assert service.channels == []


@pytest.mark.asyncio
async def test_skip_friend_sync(client: FakeClient):
    """Skipping friends drops the friends feed and the friend directory."""
    service = PlexWatchlistService(
        client,  # type: ignore[arg-type]
        skip_friend_sync=True,
    )

    await service.ensure_feeds()
    friends = await service.fetch_friends()

    assert service.channels == [FeedChannel.SELF]
    assert friends.success is True
    assert friends.friends == []


@pytest.mark.asyncio
async def test_feed_errors_are_feed_unavailable(service: PlexWatchlistService):
    """Transport errors and unknown channels surface as feed errors."""
    with pytest.raises(FeedUnavailableError):
        await service.fetch_feed(FeedChannel.SELF)

    await service.ensure_feeds()
    assert [e.key for e in await service.fetch_feed(FeedChannel.SELF)] == ["1"]
    with pytest.raises(FeedUnavailableError):
        await service.fetch_feed(FeedChannel.FRIENDS)


@pytest.mark.asyncio
async def test_primary_watchlist_errors_raise(
    client: FakeClient, service: PlexWatchlistService
):
    """Failing to fetch the primary watchlist raises a fetch error."""
    client.watchlist_error = TimeoutError()

    with pytest.raises(WatchlistFetchError):
        await service.fetch_primary_watchlist()


@pytest.mark.asyncio
async def test_friend_failures_are_collected(
    client: FakeClient, service: PlexWatchlistService
):
    """One failing friend does not affect the others."""
    client.friend_errors["bob"] = aiohttp.ClientError("boom")
    friends = [PlexFriend("uuid-bob", "bob"), PlexFriend("uuid-dana", "dana")]

    outcome = await service.fetch_friend_watchlists(friends)

    assert outcome.failed == {"bob"}
    assert [e.key for e in outcome.entries["dana"]] == ["dana-1"]


@pytest.mark.asyncio
async def test_close_closes_client(client: FakeClient, service: PlexWatchlistService):
    """Closing the service closes the client."""
    async with service:
        pass

    assert client.closed is True


def _canned(responses: dict[str, Any]):
    async def make_request(method: str, url: str, **kwargs: Any) -> Any:
        for fragment, payload in responses.items():
            if fragment in url:
                return payload
        raise aiohttp.ClientError(f"Unexpected request to {url}")

    return make_request


@pytest.mark.asyncio
async def test_client_parses_feed_items(monkeypatch: pytest.MonkeyPatch):
    """Feed items become entries; malformed items are skipped."""
    client = PlexWatchlistClient("token")
    payload = {
        "items": [
            {
                "title": "Heat",
                "category": "movie",
                "guids": ["tmdb://949", "imdb://tt0113277"],
                "keywords": ["Crime", "crime", "Drama"],
                "thumbnail": {"url": "https://img/heat.jpg"},
            },
            {"title": "No GUIDs", "category": "movie", "guids": []},
            {"title": "Podcast", "category": "podcast", "guids": ["tmdb://1"]},
        ]
    }
    monkeypatch.setattr(client, "_make_request", _canned({"rss": payload}))

    (entry,) = await client.fetch_feed("https://rss/self")

    assert entry.title == "Heat"
    assert entry.kind == ContentKind.MOVIE
    assert entry.key == "imdb:tt0113277|tmdb:949"
    assert entry.genres == ("Crime", "Drama")
    assert entry.thumb == "https://img/heat.jpg"


@pytest.mark.asyncio
async def test_client_enriches_watchlist(monkeypatch: pytest.MonkeyPatch):
    """Watchlist rows are enriched with GUIDs and genres from discover."""
    client = PlexWatchlistClient("token")
    monkeypatch.setattr(
        client,
        "_make_request",
        _canned(
            {
                "/library/sections/watchlist/all": {
                    "MediaContainer": {
                        "size": 1,
                        "totalSize": 1,
                        "Metadata": [
                            {"ratingKey": "5d77", "title": "Heat", "type": "movie"}
                        ],
                    }
                },
                "/library/metadata/5d77": {
                    "MediaContainer": {
                        "Metadata": [
                            {
                                "ratingKey": "5d77",
                                "type": "movie",
                                "Guid": [{"id": "tmdb://949"}],
                                "Genre": [{"tag": "Crime"}],
                            }
                        ]
                    }
                },
            }
        ),
    )

    (entry,) = await client.get_watchlist()

    assert entry.key == "5d77"
    assert entry.guids == ("tmdb:949",)
    assert entry.genres == ("Crime",)


@pytest.mark.asyncio
async def test_client_friends_graphql_errors(monkeypatch: pytest.MonkeyPatch):
    """GraphQL errors produce an unsuccessful friend result."""
    client = PlexWatchlistClient("token")
    monkeypatch.setattr(
        client, "_make_request", _canned({"community": {"errors": ["denied"]}})
    )

    result = await client.get_friends()

    assert result.success is False
    assert result.has_api_errors is True


@pytest.mark.asyncio
async def test_client_friends_dedupes_by_uuid(monkeypatch: pytest.MonkeyPatch):
    """Friends are keyed by their watchlist uuid."""
    client = PlexWatchlistClient("token")
    node = {"user": {"id": "uuid-bob", "username": "bob", "displayName": "Bob"}}
    monkeypatch.setattr(
        client,
        "_make_request",
        _canned({"community": {"data": {"allFriendsV2": [node, node]}}}),
    )

    result = await client.get_friends()

    assert result.success is True
    assert [f.username for f in result.friends] == ["bob"]

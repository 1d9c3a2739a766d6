"""Plex Watchlist Service Module."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import aiohttp

from src import log
from src.core.plexapi.watchlist import PlexWatchlistClient
from src.exceptions import FeedUnavailableError, WatchlistFetchError
from src.models.watchlist import (
    FeedChannel,
    FriendsResult,
    PlexAccount,
    PlexFriend,
    WatchlistEntry,
)

__all__ = ["FriendWatchlists", "PlexWatchlistService"]

FEED_TYPES = {
    FeedChannel.SELF: "watchlist",
    FeedChannel.FRIENDS: "friendsWatchlist",
}


@dataclass(slots=True)
class FriendWatchlists:
    """Result of fetching every friend's watchlist.

    Attributes:
        entries: Watchlist entries keyed by friend username
        failed: Usernames whose watchlist could not be fetched
    """

    entries: dict[str, list[WatchlistEntry]] = field(default_factory=dict)
    failed: set[str] = field(default_factory=set)


class PlexWatchlistService:
    """Watchlist source backed by the Plex APIs for one account token.

    Wraps ``PlexWatchlistClient`` with the error semantics the reconciliation
    core relies on: top-level watchlist failures raise, friend fan-out
    failures are collected per friend.
    """

    def __init__(
        self,
        client: PlexWatchlistClient,
        *,
        skip_friend_sync: bool = False,
        max_concurrent_requests: int = 4,
    ) -> None:
        """Initialize the service.

        Args:
            client (PlexWatchlistClient): Client bound to the primary token
            skip_friend_sync (bool): Do not use friend feeds or watchlists
            max_concurrent_requests (int): Bound on parallel friend fetches
        """
        self.client = client
        self.skip_friend_sync = skip_friend_sync
        self.max_concurrent_requests = max_concurrent_requests
        self.account: PlexAccount | None = None
        self._feed_urls: dict[FeedChannel, str] = {}

    async def close(self) -> None:
        """Close the underlying client."""
        await self.client.close()

    async def __aenter__(self) -> PlexWatchlistService:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    async def verify_connectivity(self) -> PlexAccount:
        """Ping plex.tv and resolve the primary account.

        Raises:
            PlexConnectivityError: If Plex is unreachable or rejects the token
        """
        await self.client.ping()
        self.account = await self.client.get_account()
        log.info(f"Connected to Plex as $$'{self.account.username}'$$")
        return self.account

    @property
    def channels(self) -> list[FeedChannel]:
        """Feed channels that have a usable URL."""
        return list(self._feed_urls)

    @property
    def has_feeds(self) -> bool:
        """Whether at least the self feed is available."""
        return FeedChannel.SELF in self._feed_urls

    async def ensure_feeds(self) -> None:
        """Generate the diff feed URLs.

        The friends feed is optional. Without a self feed the diff channel is
        unusable.

        Raises:
            FeedUnavailableError: If no self feed URL could be generated
        """
        self._feed_urls.clear()
        for channel, feed_type in FEED_TYPES.items():
            if channel == FeedChannel.FRIENDS and self.skip_friend_sync:
                continue
            url = await self.client.generate_feed_url(feed_type)
            log.info(
                f"Generated {channel} watchlist feed: {'success' if url else 'none'}"
            )
            if url:
                self._feed_urls[channel] = url

        if not self.has_feeds:
            self._feed_urls.clear()
            raise FeedUnavailableError(
                "No watchlist feed available, is the account a Plex Pass user?"
            )

    async def fetch_feed(self, channel: FeedChannel) -> list[WatchlistEntry]:
        """Fetch the current entries of a diff feed channel.

        Raises:
            FeedUnavailableError: If the channel has no feed or fetching failed
        """
        url = self._feed_urls.get(channel)
        if url is None:
            raise FeedUnavailableError(f"No {channel} feed configured")
        try:
            return await self.client.fetch_feed(url)
        except (TimeoutError, aiohttp.ClientError) as e:
            raise FeedUnavailableError(f"Unable to fetch the {channel} feed") from e

    async def fetch_primary_watchlist(self) -> list[WatchlistEntry]:
        """Fetch the complete watchlist of the primary account.

        Raises:
            WatchlistFetchError: If the watchlist cannot be fetched
        """
        try:
            return await self.client.get_watchlist()
        except (TimeoutError, aiohttp.ClientError) as e:
            raise WatchlistFetchError("Unable to fetch the primary watchlist") from e

    async def fetch_friends(self) -> FriendsResult:
        """Fetch the friend directory (empty and successful when skipped)."""
        if self.skip_friend_sync:
            return FriendsResult(friends=[], success=True)
        return await self.client.get_friends()

    async def fetch_friend_watchlists(
        self, friends: list[PlexFriend]
    ) -> FriendWatchlists:
        """Fetch every friend's watchlist with bounded concurrency.

        A failure for one friend does not cancel the others; failed friends
        are reported in ``FriendWatchlists.failed``.
        """
        semaphore = asyncio.Semaphore(self.max_concurrent_requests)

        async def fetch_one(friend: PlexFriend) -> list[WatchlistEntry]:
            async with semaphore:
                return await self.client.get_friend_watchlist(friend)

        results = await asyncio.gather(
            *(fetch_one(friend) for friend in friends), return_exceptions=True
        )

        outcome = FriendWatchlists()
        for friend, result in zip(friends, results, strict=True):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                log.warning(
                    f"Unable to fetch the watchlist of $$'{friend.username}'$$: "
                    f"{result}"
                )
                outcome.failed.add(friend.username)
                continue
            outcome.entries[friend.username] = result
        return outcome

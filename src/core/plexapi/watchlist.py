"""Plex watchlist API client."""

import asyncio
from typing import Any

import aiohttp
from cachetools import TTLCache
from limiter import Limiter
from pydantic import ValidationError

from src import __version__, log
from src.core.guids import content_identity, parse_genres, parse_guids
from src.exceptions import PlexConnectivityError
from src.models.schemas.plex import (
    Account,
    FeedGenerateResponse,
    FeedResponse,
    FriendNode,
    MediaContainerResponse,
    Metadata,
    PageInfo,
    WatchlistNode,
)
from src.models.watchlist import (
    ContentKind,
    FriendsResult,
    PlexAccount,
    PlexFriend,
    WatchlistEntry,
)

__all__ = ["PlexWatchlistClient"]

plex_watchlist_limiter = Limiter(rate=300 / 60, capacity=30, jitter=True)

FRIENDS_QUERY = """
query GetAllFriends {
    allFriendsV2 {
        user {
            id
            username
            displayName
        }
    }
}
"""

FRIEND_WATCHLIST_QUERY = """
query GetWatchlistHub($uuid: ID!, $first: PaginationInt!, $after: String) {
    user(id: $uuid) {
        watchlist(first: $first, after: $after) {
            nodes {
                id
                title
                type
            }
            pageInfo {
                hasNextPage
                endCursor
            }
        }
    }
}
"""


class PlexWatchlistClient:
    """Client for the plex.tv account, discover and community APIs.

    All requests share one aiohttp session, carry the account token and obey
    a shared rate limit. Metadata lookups used to enrich watchlist entries
    with GUIDs and genres are cached for an hour.
    """

    PLEX_TV_URL = "https://plex.tv/api/v2"
    DISCOVER_URL = "https://discover.provider.plex.tv"
    COMMUNITY_URL = "https://community.plex.tv/api"
    CLIENT_IDENTIFIER = "watchlistbridge"
    PAGE_SIZE = 300
    GRAPHQL_PAGE_SIZE = 100

    def __init__(
        self,
        plex_token: str,
        *,
        request_timeout: float = 10.0,
        bulk_request_timeout: float = 30.0,
        max_concurrent_requests: int = 4,
    ) -> None:
        """Initialize the client.

        Args:
            plex_token (str): Token of the primary Plex account
            request_timeout (float): Timeout in seconds for quick calls
            bulk_request_timeout (float): Timeout in seconds for watchlist and
                feed fetches
            max_concurrent_requests (int): Bound on parallel metadata lookups
        """
        self.plex_token = plex_token
        self.request_timeout = aiohttp.ClientTimeout(total=request_timeout)
        self.bulk_request_timeout = aiohttp.ClientTimeout(total=bulk_request_timeout)
        self._semaphore = asyncio.Semaphore(max_concurrent_requests)
        self._metadata_cache: TTLCache[str, Metadata | None] = TTLCache(
            maxsize=4096, ttl=3600
        )
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session.

        Returns:
            aiohttp.ClientSession: The active session for making HTTP requests.
        """
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "Accept": "application/json",
                    "User-Agent": f"WatchlistBridge/{__version__}",
                    "X-Plex-Token": self.plex_token,
                    "X-Plex-Client-Identifier": self.CLIENT_IDENTIFIER,
                }
            )
        return self._session

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def ping(self) -> None:
        """Check that plex.tv is reachable and accepts the token.

        Raises:
            PlexConnectivityError: If the request fails or the token is rejected
        """
        try:
            await self._make_request(
                "GET", f"{self.PLEX_TV_URL}/ping", timeout=self.request_timeout
            )
        except (TimeoutError, aiohttp.ClientError) as e:
            raise PlexConnectivityError(f"Unable to reach plex.tv: {e}") from e

    async def get_account(self) -> PlexAccount:
        """Fetch the account the token belongs to.

        Raises:
            PlexConnectivityError: If the account cannot be fetched or parsed
        """
        try:
            payload = await self._make_request(
                "GET", f"{self.PLEX_TV_URL}/user", timeout=self.request_timeout
            )
            account = Account.model_validate(payload)
        except (TimeoutError, aiohttp.ClientError, ValidationError) as e:
            raise PlexConnectivityError(f"Unable to fetch the Plex account: {e}") from e

        return PlexAccount(
            id=account.id,
            uuid=account.uuid,
            username=account.username or account.title or str(account.id),
        )

    async def generate_feed_url(self, feed_type: str) -> str | None:
        """Generate a JSON diff feed URL.

        Args:
            feed_type (str): ``"watchlist"`` or ``"friendsWatchlist"``

        Returns:
            str | None: The feed URL, or None if Plex did not provide one (the
                feed requires Plex Pass)
        """
        try:
            payload = await self._make_request(
                "POST",
                f"{self.DISCOVER_URL}/rss",
                params={"format": "json"},
                json={"feedType": feed_type},
                timeout=self.request_timeout,
            )
        except (TimeoutError, aiohttp.ClientError) as e:
            log.warning(f"Unable to generate a {feed_type} feed: {e}")
            return None

        return FeedGenerateResponse.model_validate(payload or {}).url

    async def fetch_feed(self, url: str) -> list[WatchlistEntry]:
        """Fetch and parse a diff feed.

        Items without a title, a known category or any GUID are skipped.

        Raises:
            aiohttp.ClientError: If the feed cannot be fetched
        """
        payload = await self._make_request(
            "GET", url, params={"format": "json"}, timeout=self.bulk_request_timeout
        )
        feed = FeedResponse.model_validate(payload or {})

        entries: list[WatchlistEntry] = []
        for item in feed.items:
            kind = ContentKind.parse(item.category)
            identity = content_identity(item.guids)
            if not item.title or kind is None or identity is None:
                log.debug(f"Skipping malformed feed item $$'{item.title}'$$")
                continue
            entries.append(
                WatchlistEntry(
                    key=identity.key,
                    title=item.title,
                    kind=kind,
                    guids=identity.guids,
                    genres=tuple(parse_genres(item.keywords)),
                    thumb=item.thumbnail.url if item.thumbnail else None,
                )
            )
        return entries

    async def get_watchlist(self) -> list[WatchlistEntry]:
        """Fetch the complete watchlist of the token's account.

        Raises:
            aiohttp.ClientError: If any page cannot be fetched
        """
        items: list[Metadata] = []
        start = 0
        while True:
            payload = await self._make_request(
                "GET",
                f"{self.DISCOVER_URL}/library/sections/watchlist/all",
                params={
                    "X-Plex-Container-Start": start,
                    "X-Plex-Container-Size": self.PAGE_SIZE,
                },
                timeout=self.bulk_request_timeout,
            )
            container = MediaContainerResponse.model_validate(
                payload or {}
            ).media_container
            items.extend(container.metadata)

            start += len(container.metadata)
            total = container.total_size or 0
            if not container.metadata or start >= total:
                break

        return await self._enrich(
            [(m.rating_key, m.title, m.type, m.thumb) for m in items if m.rating_key]
        )

    async def get_friends(self) -> FriendsResult:
        """Fetch the friend directory.

        Never raises: transport and GraphQL errors produce a result with
        ``success`` False.
        """
        try:
            payload = await self._graphql(FRIENDS_QUERY, {}, "GetAllFriends")
        except (TimeoutError, aiohttp.ClientError) as e:
            log.warning(f"Unable to fetch friends from Plex: {e}")
            return FriendsResult(success=False, has_api_errors=True)

        if payload.get("errors"):
            log.warning(f"GraphQL errors while fetching friends: {payload['errors']}")
            return FriendsResult(success=False, has_api_errors=True)

        nodes = (payload.get("data") or {}).get("allFriendsV2")
        if nodes is None:
            log.warning("Friends response did not contain a friend list")
            return FriendsResult(success=False, has_api_errors=True)

        friends: dict[str, PlexFriend] = {}
        has_errors = False
        for node in nodes:
            try:
                friend = FriendNode.model_validate(node).user.to_friend()
            except ValidationError:
                has_errors = True
                continue
            friends.setdefault(friend.watchlist_id, friend)

        return FriendsResult(
            friends=list(friends.values()), success=True, has_api_errors=has_errors
        )

    async def get_friend_watchlist(self, friend: PlexFriend) -> list[WatchlistEntry]:
        """Fetch the complete watchlist of a friend.

        Raises:
            aiohttp.ClientError: If any page cannot be fetched or GraphQL
                reports an error
        """
        nodes: list[WatchlistNode] = []
        after: str | None = None
        while True:
            payload = await self._graphql(
                FRIEND_WATCHLIST_QUERY,
                {
                    "uuid": friend.watchlist_id,
                    "first": self.GRAPHQL_PAGE_SIZE,
                    "after": after,
                },
                "GetWatchlistHub",
                timeout=self.bulk_request_timeout,
            )
            if payload.get("errors"):
                raise aiohttp.ClientError(f"GraphQL errors: {payload['errors']}")

            watchlist = (
                ((payload.get("data") or {}).get("user") or {}).get("watchlist")
            ) or {}
            nodes.extend(
                WatchlistNode.model_validate(node)
                for node in watchlist.get("nodes") or []
            )

            page = PageInfo.model_validate(watchlist.get("pageInfo") or {})
            if not page.has_next_page or not page.end_cursor:
                break
            after = page.end_cursor

        return await self._enrich([(n.id, n.title, n.type, None) for n in nodes])

    async def _enrich(
        self, items: list[tuple[str, str | None, str | None, str | None]]
    ) -> list[WatchlistEntry]:
        """Attach GUIDs and genres to watchlist rows via discover metadata.

        Items whose metadata cannot be fetched keep an empty GUID set; items
        of an unknown kind are dropped.
        """

        async def enrich_one(
            rating_key: str, title: str | None, type_: str | None, thumb: str | None
        ) -> WatchlistEntry | None:
            metadata = await self._get_metadata(rating_key)
            kind = ContentKind.parse(type_ or (metadata.type if metadata else None))
            if kind is None:
                log.debug(f"Skipping $$'{title}'$$ with unsupported type {type_}")
                return None

            guids = parse_guids([g.id for g in metadata.guids] if metadata else [])
            genres = parse_genres([g.tag for g in metadata.genres] if metadata else [])
            return WatchlistEntry(
                key=rating_key,
                title=title or (metadata.title if metadata else None) or "Unknown",
                kind=kind,
                guids=tuple(guids),
                genres=tuple(genres),
                thumb=thumb or (metadata.thumb if metadata else None),
            )

        results = await asyncio.gather(*(enrich_one(*item) for item in items))
        return [entry for entry in results if entry is not None]

    async def _get_metadata(self, rating_key: str) -> Metadata | None:
        if rating_key in self._metadata_cache:
            return self._metadata_cache[rating_key]

        async with self._semaphore:
            try:
                payload = await self._make_request(
                    "GET",
                    f"{self.DISCOVER_URL}/library/metadata/{rating_key}",
                    timeout=self.request_timeout,
                )
            except (TimeoutError, aiohttp.ClientError):
                log.warning(
                    f"Unable to fetch metadata for $${{rating_key: {rating_key}}}$$",
                    exc_info=True,
                )
                return None

        container = MediaContainerResponse.model_validate(payload or {})
        metadata = next(iter(container.media_container.metadata), None)
        self._metadata_cache[rating_key] = metadata
        return metadata

    async def _graphql(
        self,
        query: str,
        variables: dict[str, Any],
        operation_name: str,
        timeout: aiohttp.ClientTimeout | None = None,
    ) -> dict[str, Any]:
        payload = await self._make_request(
            "POST",
            self.COMMUNITY_URL,
            json={
                "query": query,
                "variables": variables,
                "operationName": operation_name,
            },
            timeout=timeout or self.request_timeout,
        )
        return payload or {}

    @plex_watchlist_limiter()
    async def _make_request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        timeout: aiohttp.ClientTimeout | None = None,
        retry_count: int = 0,
    ) -> Any:
        """Makes a rate-limited request to a Plex API.

        Retries on rate limiting, bad gateways and connection errors.

        Args:
            method (str): HTTP method
            url (str): Absolute URL
            params (dict[str, Any] | None): Query parameters
            json (dict[str, Any] | None): JSON request body
            timeout (aiohttp.ClientTimeout | None): Per-request timeout
            retry_count (int): Number of retries attempted

        Returns:
            Any: Decoded JSON response, or None for an empty body

        Raises:
            aiohttp.ClientError: If the request fails for any reason other than
                rate limiting, or keeps failing after 3 tries
        """
        if retry_count >= 3:
            raise aiohttp.ClientError("Failed to make request after 3 tries")

        session = await self._get_session()
        retry_kwargs = {"params": params, "json": json, "timeout": timeout}

        try:
            async with session.request(
                method,
                url,
                params=params,
                json=json,
                timeout=timeout or self.request_timeout,
            ) as response:
                if response.status == 429:  # Handle rate limit retries
                    retry_after = int(response.headers.get("Retry-After", 60))
                    log.warning(f"Rate limit exceeded, waiting {retry_after} seconds")
                    await asyncio.sleep(retry_after + 1)
                    return await self._make_request(
                        method, url, **retry_kwargs, retry_count=retry_count + 1
                    )
                elif response.status == 502:  # Bad Gateway
                    log.warning("Received 502 Bad Gateway, retrying")
                    await asyncio.sleep(1)
                    return await self._make_request(
                        method, url, **retry_kwargs, retry_count=retry_count + 1
                    )

                try:
                    response.raise_for_status()
                except aiohttp.ClientResponseError as e:
                    log.error(f"Request to {url.split('?')[0]} failed: {e.status}")
                    raise e

                if response.content_length == 0:
                    return None
                return await response.json(content_type=None)

        except aiohttp.ClientResponseError:
            raise
        except (TimeoutError, aiohttp.ClientError):
            log.error(f"Connection error while requesting {url.split('?')[0]}")
            await asyncio.sleep(1)
            return await self._make_request(
                method, url, **retry_kwargs, retry_count=retry_count + 1
            )

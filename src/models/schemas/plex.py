"""Plex watchlist API schema definitions.

Only the fields the watchlist bridge reads are modelled; everything else in
the payloads is ignored.
"""

from functools import cached_property

from pydantic import BaseModel, ConfigDict, Field

from src.models.watchlist import PlexFriend


class _PlexModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class FeedThumbnail(_PlexModel):
    """Thumbnail block of a diff feed item."""

    url: str | None = None


class FeedItem(_PlexModel):
    """An item of the JSON diff feed."""

    title: str | None = None
    category: str | None = None
    thumbnail: FeedThumbnail | None = None
    guids: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)


class FeedResponse(_PlexModel):
    """The JSON diff feed document."""

    items: list[FeedItem] = Field(default_factory=list)


class RSSInfo(_PlexModel):
    """Feed descriptor returned when generating a feed URL."""

    url: str | None = None


class FeedGenerateResponse(_PlexModel):
    """Response of the feed generation endpoint."""

    rss_info: list[RSSInfo] = Field(default_factory=list, alias="RSSInfo")

    @cached_property
    def url(self) -> str | None:
        """The first generated feed URL, if any."""
        for info in self.rss_info:
            if info.url:
                return info.url
        return None


class Tag(_PlexModel):
    """Generic ``{"tag": ...}`` element (genres)."""

    tag: str


class GuidTag(_PlexModel):
    """External GUID element (``{"id": "tmdb://1"}``)."""

    id: str


class Metadata(_PlexModel):
    """Discover metadata for a watchlisted title."""

    rating_key: str | None = Field(None, alias="ratingKey")
    title: str | None = None
    type: str | None = None
    thumb: str | None = None
    guid: str | None = None
    guids: list[GuidTag] = Field(default_factory=list, alias="Guid")
    genres: list[Tag] = Field(default_factory=list, alias="Genre")


class MediaContainer(_PlexModel):
    """Paged metadata container."""

    size: int = 0
    total_size: int | None = Field(None, alias="totalSize")
    metadata: list[Metadata] = Field(default_factory=list, alias="Metadata")


class MediaContainerResponse(_PlexModel):
    """Envelope of discover/metadata responses."""

    media_container: MediaContainer = Field(
        default_factory=MediaContainer, alias="MediaContainer"
    )


class Account(_PlexModel):
    """The account returned by ``/api/v2/user``."""

    id: int
    uuid: str
    username: str | None = None
    title: str | None = None


class CommunityUser(_PlexModel):
    """A user node of the community GraphQL API."""

    id: str
    username: str
    display_name: str | None = Field(None, alias="displayName")

    def to_friend(self) -> PlexFriend:
        """Convert the node to a friend."""
        return PlexFriend(
            watchlist_id=self.id,
            username=self.username,
            display_name=self.display_name,
        )


class FriendNode(_PlexModel):
    """An ``allFriendsV2`` element."""

    user: CommunityUser


class WatchlistNode(_PlexModel):
    """A friend watchlist node of the community GraphQL API."""

    id: str
    title: str | None = None
    type: str | None = None


class PageInfo(_PlexModel):
    """GraphQL cursor pagination state."""

    has_next_page: bool = Field(False, alias="hasNextPage")
    end_cursor: str | None = Field(None, alias="endCursor")

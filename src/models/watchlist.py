"""In-memory watchlist domain types."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any, NewType

__all__ = [
    "BackendKind",
    "ConflictPolicy",
    "ContentIdentity",
    "ContentKind",
    "DiffCacheKey",
    "FeedChannel",
    "FriendsResult",
    "ItemStatus",
    "PlexAccount",
    "PlexFriend",
    "WatchlistEntry",
    "WorkflowStatus",
    "normalize_user_id",
]


class ContentKind(StrEnum):
    """Kind of content an item refers to."""

    MOVIE = "movie"
    SHOW = "show"

    @classmethod
    def parse(cls, value: Any) -> ContentKind | None:
        """Parse an upstream type/category value, returning None if unknown."""
        if isinstance(value, ContentKind):
            return value
        if not isinstance(value, str):
            return None
        lowered = value.strip().lower()
        if lowered in ("movie", "film"):
            return cls.MOVIE
        if lowered in ("show", "tv", "series", "tvshow"):
            return cls.SHOW
        return None


class ItemStatus(StrEnum):
    """Lifecycle status of a watchlist item."""

    PENDING = "pending"
    REQUESTED = "requested"
    GRABBED = "grabbed"
    NOTIFIED = "notified"


class FeedChannel(StrEnum):
    """Diff feed channel an observation came from."""

    SELF = "self"
    FRIENDS = "friends"


class WorkflowStatus(StrEnum):
    """States of the reconciliation workflow."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class ConflictPolicy(StrEnum):
    """How item inserts treat an existing (user, key) row."""

    IGNORE = "ignore"
    MERGE = "merge"


class BackendKind(StrEnum):
    """Acquisition backend families."""

    SONARR = "sonarr"
    RADARR = "radarr"

    @classmethod
    def for_kind(cls, kind: ContentKind) -> BackendKind:
        """Return the backend family that acquires the given content kind."""
        return cls.SONARR if kind == ContentKind.SHOW else cls.RADARR


# First normalised GUID of an item. Only diff snapshots are keyed by it; it is
# never used to decide whether two stored rows are the same content.
DiffCacheKey = NewType("DiffCacheKey", str)


@dataclass(frozen=True, slots=True)
class ContentIdentity:
    """True identity of a piece of content.

    ``key`` is the value stored in ``watchlist_item.key`` and carries the
    store's uniqueness constraint together with the owning user. ``guids`` is
    the full normalised GUID set used for match scoring.
    """

    key: str
    guids: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class WatchlistEntry:
    """One item as observed on a watchlist or a diff feed.

    Instances are hashable, so equality covers the whole shape: two entries
    for the same content with a different title are distinct.
    """

    key: str
    title: str
    kind: ContentKind
    guids: tuple[str, ...] = ()
    genres: tuple[str, ...] = ()
    thumb: str | None = None
    user_id: int | None = None

    def for_user(self, user_id: int) -> WatchlistEntry:
        """Return a copy of this entry attributed to another user."""
        return replace(self, user_id=user_id)

    def to_row(self) -> dict[str, Any]:
        """Return the column values used when inserting this entry."""
        return {
            "key": self.key,
            "title": self.title,
            "type": self.kind,
            "thumb": self.thumb,
            "guids": list(self.guids),
            "genres": list(self.genres),
            "user_id": self.user_id,
        }


@dataclass(frozen=True, slots=True)
class PlexAccount:
    """The account behind the configured Plex token."""

    id: int
    uuid: str
    username: str


@dataclass(frozen=True, slots=True)
class PlexFriend:
    """A friend whose watchlist is visible to the primary account."""

    watchlist_id: str
    username: str
    display_name: str | None = None


@dataclass(slots=True)
class FriendsResult:
    """Outcome of a friend directory fetch.

    ``success`` is False when no usable answer was received. An empty
    ``friends`` list with ``success`` True is a genuine "no friends" answer.
    """

    friends: list[PlexFriend] = field(default_factory=list)
    success: bool = False
    has_api_errors: bool = False


def normalize_user_id(value: Any) -> int | None:
    """Convert a loosely typed user identifier to a positive integer.

    Accepts ints, numeric strings and mappings or objects carrying an ``id``
    attribute. Anything else (including booleans, zero and negatives) maps to
    None.

    Args:
        value (Any): Identifier as received from an upstream payload or caller.

    Returns:
        int | None: The normalised identifier, or None if it cannot be derived.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, dict):
        return normalize_user_id(value.get("id"))
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped.isdigit():
            return None
        number = int(stripped)
        return number if number > 0 else None
    nested = getattr(value, "id", None)
    if nested is not None and nested is not value:
        return normalize_user_id(nested)
    return None

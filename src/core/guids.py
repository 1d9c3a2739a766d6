"""GUID parsing and matching helpers.

GUIDs arrive in several shapes: Plex agent URIs (``com.plexapp.agents.tmdb://1``),
modern URIs (``tmdb://1``), already-normalised values (``tmdb:1``), JSON-encoded
arrays and comma-separated strings. Everything here normalises to the
lowercase ``provider:id`` form before comparing.
"""

import json
from collections.abc import Iterable
from typing import Any

from src.models.watchlist import ContentIdentity, ContentKind, DiffCacheKey

__all__ = [
    "content_identity",
    "diff_cache_key",
    "extract_tmdb_id",
    "extract_tvdb_id",
    "extract_typed_guid",
    "has_match",
    "match_score",
    "normalize_guid",
    "parse_genres",
    "parse_guids",
    "score_shared_guids",
]

AGENT_PREFIX = "com.plexapp.agents."
PROVIDER_ALIASES = {"themoviedb": "tmdb", "thetvdb": "tvdb"}

# Extra weight of a shared GUID from the provider that is authoritative for
# the content kind, so one such overlap outranks two incidental ones.
AUTHORITY_BONUS = 2
AUTHORITIES = {ContentKind.MOVIE: "tmdb", ContentKind.SHOW: "tvdb"}


def normalize_guid(guid: str) -> str:
    """Normalise a single GUID to ``provider:id``.

    Values without a recognisable provider prefix are only trimmed and
    lowercased, so they still compare equal to themselves.

    Args:
        guid (str): GUID in any supported notation

    Returns:
        str: The normalised GUID, or an empty string for blank input
    """
    value = guid.strip().lower()
    if not value:
        return ""
    if value.startswith(AGENT_PREFIX):
        value = value.removeprefix(AGENT_PREFIX)

    if "://" in value:
        provider, _, ident = value.partition("://")
    elif ":" in value:
        provider, _, ident = value.partition(":")
    else:
        return value

    ident = ident.split("?", 1)[0].strip("/ ")
    provider = PROVIDER_ALIASES.get(provider, provider)
    if not provider or not ident:
        return value
    return f"{provider}:{ident}"


def _flatten(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return []
        if stripped.startswith("["):
            try:
                decoded = json.loads(stripped)
            except ValueError:
                return [stripped]
            if isinstance(decoded, list):
                return _flatten(decoded)
            return [stripped]
        if "," in stripped:
            return [part for part in stripped.split(",") if part.strip()]
        return [stripped]
    if isinstance(value, dict):
        # Plex metadata GUID objects: {"id": "tmdb://1"}
        return _flatten(value.get("id"))
    if isinstance(value, Iterable):
        flat: list[str] = []
        for element in value:
            flat.extend(_flatten(element))
        return flat
    return [str(value)]


def parse_guids(value: Any) -> list[str]:
    """Normalise a GUID collection to an ordered, de-duplicated list.

    Accepts None, a single GUID string, a comma separated string, a
    JSON-encoded array, a list of strings or a list of ``{"id": ...}`` objects.
    A string that looks like JSON but fails to decode is kept as one opaque
    GUID.

    Args:
        value (Any): GUIDs in any supported shape

    Returns:
        list[str]: Normalised GUIDs in first-seen order
    """
    seen: dict[str, None] = {}
    for raw in _flatten(value):
        normalized = normalize_guid(raw)
        if normalized:
            seen.setdefault(normalized, None)
    return list(seen)


def parse_genres(value: Any) -> list[str]:
    """Normalise a genre collection, keeping the first spelling of each genre.

    Args:
        value (Any): Genres as a list, a JSON array or a comma separated string

    Returns:
        list[str]: Trimmed genres, de-duplicated case-insensitively
    """
    seen: dict[str, str] = {}
    for raw in _flatten(value):
        genre = raw.strip()
        if genre:
            seen.setdefault(genre.lower(), genre)
    return list(seen.values())


def has_match(a: Any, b: Any) -> bool:
    """Whether two GUID collections share at least one normalised GUID."""
    left = set(parse_guids(a))
    if not left:
        return False
    return not left.isdisjoint(parse_guids(b))


def match_score(a: Any, b: Any, kind: ContentKind | str | None = None) -> int:
    """Score how strongly two GUID collections refer to the same content.

    Every shared GUID scores one point. A shared GUID from the provider that
    is authoritative for ``kind`` (tmdb for movies, tvdb for shows) scores an
    extra ``AUTHORITY_BONUS``. Without a kind, both tmdb and tvdb count as
    authoritative.

    Args:
        a (Any): First GUID collection
        b (Any): Second GUID collection
        kind (ContentKind | str | None): Content kind of the compared items

    Returns:
        int: The score, 0 when nothing overlaps or either side is empty
    """
    shared = set(parse_guids(a)).intersection(parse_guids(b))
    return score_shared_guids(shared, kind)


def score_shared_guids(
    shared: Iterable[str], kind: ContentKind | str | None = None
) -> int:
    """Score GUIDs already known to be shared by two items.

    The GUIDs must be normalised. Scoring follows ``match_score``.
    """
    unique = set(shared)
    if not unique:
        return 0

    parsed_kind = ContentKind.parse(kind)
    if parsed_kind is None:
        authorities = set(AUTHORITIES.values())
    else:
        authorities = {AUTHORITIES[parsed_kind]}

    score = 0
    for guid in unique:
        score += 1
        if guid.partition(":")[0] in authorities:
            score += AUTHORITY_BONUS
    return score


def extract_typed_guid(guids: Any, provider: str) -> str | None:
    """Return the identifier part of the first GUID from ``provider``.

    Args:
        guids (Any): GUID collection in any supported shape
        provider (str): Provider prefix, e.g. ``"tmdb"``

    Returns:
        str | None: The identifier, or None if no GUID has that provider
    """
    prefix = f"{provider.lower()}:"
    for guid in parse_guids(guids):
        if guid.startswith(prefix):
            return guid.removeprefix(prefix)
    return None


def _extract_numeric(guids: Any, provider: str) -> int:
    ident = extract_typed_guid(guids, provider)
    if ident is None or not ident.isdigit():
        return 0
    return int(ident)


def extract_tmdb_id(guids: Any) -> int:
    """Return the numeric TMDB id, or 0 when absent or not numeric."""
    return _extract_numeric(guids, "tmdb")


def extract_tvdb_id(guids: Any) -> int:
    """Return the numeric TVDB id, or 0 when absent or not numeric."""
    return _extract_numeric(guids, "tvdb")


def diff_cache_key(guids: Any) -> DiffCacheKey | None:
    """Return the key a diff snapshot stores an item under (its first GUID)."""
    parsed = parse_guids(guids)
    if not parsed:
        return None
    return DiffCacheKey(parsed[0])


def content_identity(
    guids: Any, rating_key: str | None = None
) -> ContentIdentity | None:
    """Build the identity stored items are unique by.

    The upstream rating key is preferred. Without one, the key is the sorted
    GUID set joined with ``|``, which is stable regardless of GUID order.

    Args:
        guids (Any): GUID collection in any supported shape
        rating_key (str | None): Upstream metadata identifier, if known

    Returns:
        ContentIdentity | None: The identity, or None if neither a rating key
            nor any GUID is available
    """
    parsed = tuple(parse_guids(guids))
    key = (rating_key or "").strip()
    if not key:
        if not parsed:
            return None
        key = "|".join(sorted(parsed))
    return ContentIdentity(key=key, guids=parsed)

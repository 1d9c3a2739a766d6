"""Tests for GUID parsing and matching helpers."""

import pytest

from src.core.guids import (
    AUTHORITY_BONUS,
    content_identity,
    diff_cache_key,
    extract_tmdb_id,
    extract_tvdb_id,
    extract_typed_guid,
    has_match,
    match_score,
    normalize_guid,
    parse_genres,
    parse_guids,
    score_shared_guids,
)
from src.models.watchlist import ContentKind


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("tmdb://123", "tmdb:123"),
        ("TMDB://123", "tmdb:123"),
        ("com.plexapp.agents.themoviedb://123?lang=en", "tmdb:123"),
        ("com.plexapp.agents.thetvdb://81189/1/1?lang=en", "tvdb:81189/1/1"),
        ("imdb:tt0111161", "imdb:tt0111161"),
        ("  plex://movie/5d77  ", "plex:movie/5d77"),
        ("opaque", "opaque"),
        ("", ""),
    ],
)
def test_normalize_guid(raw: str, expected: str):
    """GUIDs in every notation normalise to lowercase provider:id."""
    assert normalize_guid(raw) == expected


def test_parse_guids_accepts_every_shape():
    """Lists, JSON arrays, comma strings and id objects all parse."""
    assert parse_guids(["tmdb://1", "tvdb://2"]) == ["tmdb:1", "tvdb:2"]
    assert parse_guids('["tmdb://1", "imdb://tt1"]') == ["tmdb:1", "imdb:tt1"]
    assert parse_guids("tmdb://1,tvdb://2") == ["tmdb:1", "tvdb:2"]
    assert parse_guids([{"id": "tmdb://1"}, {"id": "tmdb://1"}]) == ["tmdb:1"]
    assert parse_guids(None) == []
    assert parse_guids("") == []


def test_parse_guids_keeps_malformed_json_as_one_guid():
    """A string that only looks like JSON degrades to one opaque GUID."""
    assert parse_guids("[not json") == ["[not json"]


def test_parse_genres_dedupes_case_insensitively():
    """The first spelling of a genre wins."""
    assert parse_genres(["Drama", "drama", " Comedy "]) == ["Drama", "Comedy"]
    assert parse_genres('["Action"]') == ["Action"]


def test_disjoint_sets_never_match():
    """Disjoint GUID sets have no match and a zero score."""
    a = ["tmdb://1", "imdb://tt1"]
    b = ["tmdb://2", "tvdb://3"]

    assert has_match(a, b) is False
    assert match_score(a, b) == 0
    assert match_score(a, b, ContentKind.MOVIE) == 0


def test_empty_input_never_matches():
    """Empty input on either side yields no match instead of raising."""
    assert has_match([], ["tmdb://1"]) is False
    assert has_match(["tmdb://1"], None) is False
    assert match_score("", ["tmdb://1"]) == 0


def test_match_normalises_before_comparing():
    """Agent and modern notations of the same GUID match."""
    assert has_match("com.plexapp.agents.themoviedb://5", ["tmdb://5"])


def test_authority_match_outranks_incidental_overlap():
    """A shared tmdb GUID on a movie beats two shared non-authority GUIDs."""
    pending = ["tmdb://1", "imdb://tt1", "plex://movie/a"]
    authoritative = ["tmdb://1"]
    incidental = ["imdb://tt1", "plex://movie/a"]

    assert match_score(pending, authoritative, ContentKind.MOVIE) == 1 + AUTHORITY_BONUS
    assert match_score(pending, incidental, ContentKind.MOVIE) == 2
    assert match_score(pending, authoritative, "movie") > match_score(
        pending, incidental, "movie"
    )


def test_authority_depends_on_kind():
    """tvdb is authoritative for shows only."""
    a = ["tvdb://9"]
    assert match_score(a, a, ContentKind.SHOW) == 1 + AUTHORITY_BONUS
    assert match_score(a, a, ContentKind.MOVIE) == 1
    assert match_score(a, a) == 1 + AUTHORITY_BONUS


def test_extract_ids():
    """Typed ids are extracted; absent or non-numeric ids map to 0."""
    guids = ["imdb://tt1", "tmdb://603", "tvdb://81189"]

    assert extract_typed_guid(guids, "imdb") == "tt1"
    assert extract_tmdb_id(guids) == 603
    assert extract_tvdb_id(guids) == 81189
    assert extract_tmdb_id(["imdb://tt1"]) == 0
    assert extract_tvdb_id(["tvdb://abc"]) == 0


def test_diff_cache_key_is_first_guid():
    """The diff cache key is the first normalised GUID."""
    assert diff_cache_key(["TMDB://1", "tvdb://2"]) == "tmdb:1"
    assert diff_cache_key([]) is None


def test_content_identity_prefers_rating_key():
    """The rating key wins; otherwise the sorted GUID set forms the key."""
    with_key = content_identity(["tmdb://1"], rating_key="5d77")
    assert with_key is not None
    assert with_key.key == "5d77"
    assert with_key.guids == ("tmdb:1",)

    first = content_identity(["tvdb://2", "tmdb://1"])
    second = content_identity(["tmdb://1", "tvdb://2"])
    assert first is not None and second is not None
    assert first.key == second.key == "tmdb:1|tvdb:2"

    assert content_identity([]) is None


def test_score_shared_guids_matches_match_score():
    """Scoring a pre-computed overlap agrees with scoring the raw collections."""
    a = ["tmdb://1", "imdb://tt1", "plex://movie/a"]
    b = ["TMDB://1", "imdb://tt1"]
    shared = set(parse_guids(a)) & set(parse_guids(b))

    assert score_shared_guids(shared, ContentKind.MOVIE) == match_score(
        a, b, ContentKind.MOVIE
    )
    assert score_shared_guids(shared, ContentKind.MOVIE) == 2 + AUTHORITY_BONUS
    assert score_shared_guids(set(), ContentKind.SHOW) == 0

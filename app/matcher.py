"""Matching catalog titles against the playlist index."""

from __future__ import annotations

from .playlist import PlaylistIndex
from .utils import normalize_name


def find_match(
    name: str | None,
    alternate_name: str | None,
    index: PlaylistIndex,
) -> str | None:
    """Return the playlist URL for ``name``, falling back to ``alternate_name``.

    Matching is exact on the normalized key; absence is reported as ``None``.
    """

    for candidate in (name, alternate_name):
        key = normalize_name(candidate)
        if not key:
            continue
        url = index.url_for(key)
        if url is not None:
            return url
    return None


def episode_search_titles(series_name: str, season: int, episode: int) -> tuple[str, str]:
    """Return the synthetic titles a feed uses for one episode."""

    return (
        f"{series_name} S{season:02d} E{episode:02d}",
        f"{series_name} S{season:02d}E{episode:02d}",
    )


def find_episode_match(
    series_name: str,
    season: int,
    episode: int,
    index: PlaylistIndex,
) -> str | None:
    """Return the playlist URL for an existing episode of ``series_name``."""

    for title in episode_search_titles(series_name, season, episode):
        url = find_match(title, None, index)
        if url is not None:
            return url
    return None

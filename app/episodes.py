"""Episode title parsing.

Playlist feeds describe episodes only through their display names. The
patterns below are tried in order, most specific first, and the first hit
wins. A title that matches none of them is treated as a standalone movie.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .utils import normalize_name, strip_decoration


@dataclass(frozen=True, slots=True)
class EpisodeInfo:
    """Series name, season and episode extracted from an episode title."""

    base_name: str
    season: int
    episode: int

    @property
    def series_key(self) -> str:
        return normalize_name(self.base_name)

    @property
    def season_key(self) -> str:
        return str(self.season)


@dataclass(frozen=True)
class EpisodePattern:
    """A single named attempt at reading ``Name S01E02``-style titles."""

    name: str
    regex: re.Pattern[str]

    def __call__(self, title: str) -> EpisodeInfo | None:
        match = self.regex.match(title)
        if not match:
            return None
        base_name = strip_decoration(match.group("base"))
        if not base_name:
            return None
        return EpisodeInfo(
            base_name=base_name,
            season=int(match.group("season")),
            episode=int(match.group("episode")),
        )


EXPLICIT_PATTERN = EpisodePattern(
    name="explicit",
    regex=re.compile(
        r"^(?P<base>.+?)\s+S(?P<season>\d+)\s*"
        r"(?:Epis[oó]dio|Ep\.?|E)\s*(?P<episode>\d+)(?!\d)",
        re.IGNORECASE,
    ),
)

# "Jujutsu Kaisen S02 Jujutsu.Kaisen.S02E21": the feed re-states the file
# name after the season marker.
RESTATED_PATTERN = EpisodePattern(
    name="restated",
    regex=re.compile(
        r"^(?P<base>.+?)\s+S(?P<season>\d+)\b.*?(?:Ep|E)\.?(?P<episode>\d+)(?!\d)",
        re.IGNORECASE,
    ),
)

# TODO: "Name S<season> <n>" also matches movies whose titles end in a code
# and a number (e.g. "Tower S3 2"); needs a per-group allow list to tell them apart.
BARE_NUMBER_PATTERN = EpisodePattern(
    name="bare_number",
    regex=re.compile(
        r"^(?P<base>.+?)\s+S(?P<season>\d+)\s+(?P<episode>\d+)\s*$",
        re.IGNORECASE,
    ),
)

EPISODE_PATTERNS: tuple[EpisodePattern, ...] = (
    EXPLICIT_PATTERN,
    RESTATED_PATTERN,
    BARE_NUMBER_PATTERN,
)


def extract_episode(
    title: str | None,
    patterns: tuple[EpisodePattern, ...] = EPISODE_PATTERNS,
) -> EpisodeInfo | None:
    """Return episode details for ``title`` or ``None`` for standalone titles."""

    if not title:
        return None
    stripped = title.strip()
    for pattern in patterns:
        info = pattern(stripped)
        if info is not None:
            return info
    return None

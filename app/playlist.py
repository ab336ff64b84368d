"""Parsing of M3U playlists and the lookup structures built from them."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable

from .episodes import EpisodeInfo, extract_episode
from .models import PlaylistEntry
from .utils import FirstWinsIndex, normalize_name

logger = logging.getLogger(__name__)

METADATA_PREFIX = "#EXTINF:"
DEFAULT_GROUP = "Sem Categoria"

ATTRIBUTE_RE = re.compile(r'([\w-]+)="([^"]*)"')
# Duration, then key="value" attributes, then the display name after the comma.
DISPLAY_NAME_RE = re.compile(
    r'^#EXTINF:\s*-?[\d.]*(?:\s+[\w-]+="[^"]*")*\s*,(?P<name>.*)$'
)


@dataclass(slots=True)
class _PendingEntry:
    name: str
    group: str
    artwork: str | None


def _parse_metadata_line(line: str) -> _PendingEntry | None:
    attributes = dict(ATTRIBUTE_RE.findall(line))
    name = (attributes.get("tvg-name") or "").strip()
    if not name:
        match = DISPLAY_NAME_RE.match(line)
        if match:
            name = match.group("name").strip()
        elif "," in line:
            name = line.split(",", 1)[1].strip()
    if not name:
        return None
    group = (attributes.get("group-title") or "").strip() or DEFAULT_GROUP
    artwork = (attributes.get("tvg-logo") or "").strip() or None
    return _PendingEntry(name=name, group=group, artwork=artwork)


def parse_playlist(text: str) -> list[PlaylistEntry]:
    """Return playlist entries in document order.

    A metadata line describes the next non-blank, non-comment line. Metadata
    that is never followed by a URL is dropped without error.
    """

    entries: list[PlaylistEntry] = []
    pending: _PendingEntry | None = None
    dangling = 0

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if line.startswith(METADATA_PREFIX):
            if pending is not None:
                dangling += 1
            pending = _parse_metadata_line(line)
            continue
        if line.startswith("#"):
            continue
        if pending is None:
            continue
        entries.append(
            PlaylistEntry(
                name=pending.name,
                group=pending.group,
                url=line,
                artwork=pending.artwork,
            )
        )
        pending = None

    if pending is not None:
        dangling += 1
    if dangling:
        logger.debug("Discarded %s playlist metadata lines without a URL", dangling)
    return entries


class PlaylistIndex:
    """Normalized-name lookups over a parsed playlist."""

    def __init__(self, entries: list[PlaylistEntry]):
        self.entries = entries
        self._urls: FirstWinsIndex[str] = FirstWinsIndex()
        self._entries: FirstWinsIndex[PlaylistEntry] = FirstWinsIndex()

    @classmethod
    def from_entries(cls, entries: Iterable[PlaylistEntry]) -> "PlaylistIndex":
        index = cls(list(entries))
        for entry in index.entries:
            index.add(entry)
        return index

    @classmethod
    def from_text(cls, text: str) -> "PlaylistIndex":
        return cls.from_entries(parse_playlist(text))

    def add(self, entry: PlaylistEntry) -> bool:
        """Index ``entry`` unless an earlier entry already owns its key."""

        key = normalize_name(entry.name)
        if not self._entries.insert_if_absent(key, entry):
            return False
        self._urls.insert_if_absent(key, entry.url)
        return True

    def url_for(self, key: str) -> str | None:
        return self._urls.get(key)

    def entry_for(self, key: str) -> PlaylistEntry | None:
        return self._entries.get(key)

    def __len__(self) -> int:
        return len(self.entries)


@dataclass(slots=True)
class SeriesEpisodeEntry:
    """A playlist entry recognised as an episode."""

    info: EpisodeInfo
    entry: PlaylistEntry


@dataclass(slots=True)
class SeriesGroup:
    """Every playlist episode sharing one normalized series name."""

    base_name: str
    group: str
    artwork: str | None
    episodes: list[SeriesEpisodeEntry] = field(default_factory=list)
    _seen: set[tuple[int, int]] = field(default_factory=set)

    def add(self, info: EpisodeInfo, entry: PlaylistEntry) -> bool:
        key = (info.season, info.episode)
        if key in self._seen:
            return False
        self._seen.add(key)
        self.episodes.append(SeriesEpisodeEntry(info=info, entry=entry))
        return True


def build_series_index(entries: Iterable[PlaylistEntry]) -> dict[str, SeriesGroup]:
    """Group playlist episodes by normalized series name."""

    groups: dict[str, SeriesGroup] = {}
    for entry in entries:
        info = extract_episode(entry.name)
        if info is None:
            continue
        key = info.series_key
        if not key:
            continue
        group = groups.get(key)
        if group is None:
            group = SeriesGroup(
                base_name=info.base_name, group=entry.group, artwork=entry.artwork
            )
            groups[key] = group
        group.add(info, entry)
    return groups

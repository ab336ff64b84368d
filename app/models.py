"""Pydantic models describing catalog payloads."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ContentType = Literal["movie", "series"]


def _is_missing(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


class Metadata(BaseModel):
    """TMDB-shaped metadata attached to a catalog item."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: int | str | None = None
    imdb_id: str | None = Field(default=None, alias="imdbId")
    title: str | None = None
    original_title: str | None = Field(default=None, alias="originalTitle")
    overview: str | None = None
    year: int | str | None = None
    release_date: str | None = Field(default=None, alias="releaseDate")
    rating: float | str | None = None
    genres: list[Any] | None = None
    poster: str | None = None
    backdrop: str | None = None
    cast: list[Any] | None = None

    def has_identifier(self) -> bool:
        """Return ``True`` when the record points at an external entry."""

        return not _is_missing(self.id) and self.id != 0

    def fill_missing(self, other: "Metadata") -> bool:
        """Copy fields from ``other`` that are absent here; never overwrite.

        Returns ``True`` when at least one field was filled in.
        """

        changed = False
        for key, value in other.model_dump(exclude_none=True).items():
            if _is_missing(value):
                continue
            if not _is_missing(getattr(self, key, None)):
                continue
            setattr(self, key, value)
            changed = True
        return changed


class Episode(BaseModel):
    """A playable episode inside a series season."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    episode_number: int = Field(alias="episode")
    name: str = ""
    url: str | None = None
    id: int | str = ""
    artwork: str | None = Field(default=None, alias="logo")


class CatalogItem(BaseModel):
    """A movie or series stored in a category shard."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: int | str = ""
    name: str = ""
    url: str | None = None
    category: str = ""
    type: ContentType = "movie"
    active: bool = False
    is_adult: bool = Field(default=False, alias="isAdult")
    artwork: str | None = Field(default=None, alias="logo")
    metadata: Metadata | None = Field(default=None, alias="tmdb")
    episodes_by_season: dict[str, list[Episode]] | None = Field(
        default=None, alias="episodes"
    )
    total_seasons: int | None = Field(default=None, alias="totalSeasons")
    total_episodes: int | None = Field(default=None, alias="totalEpisodes")

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, value: object) -> object:
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in {"tv", "show", "serie", "series"}:
                return "series"
            if lowered in {"film", "movie"}:
                return "movie"
        return value

    @property
    def is_series(self) -> bool:
        return self.type == "series"

    @property
    def alternate_title(self) -> str | None:
        """Return the original-language title used as a second match key."""

        if self.metadata is None:
            return None
        return self.metadata.original_title or None

    def season_key_for(self, season: int) -> str:
        """Return the existing key for ``season`` or the canonical one."""

        for key in self.episodes_by_season or {}:
            digits = re.sub(r"\D", "", key)
            if digits and int(digits) == season:
                return key
        return str(season)

    def refresh_totals(self) -> None:
        """Recompute season/episode counters from the episode map."""

        seasons = self.episodes_by_season or {}
        self.total_seasons = len(seasons)
        self.total_episodes = sum(len(episodes) for episodes in seasons.values())

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON document stored in shard files."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ManifestEntry(BaseModel):
    """Shard bookkeeping for one category."""

    model_config = ConfigDict(populate_by_name=True)

    total_parts: int = Field(alias="totalParts", ge=0)
    total_items: int = Field(alias="totalItems", ge=0)

    @classmethod
    def for_items(cls, total_items: int, items_per_shard: int) -> "ManifestEntry":
        total_parts = max(1, math.ceil(total_items / items_per_shard))
        return cls(total_parts=total_parts, total_items=total_items)


@dataclass(slots=True)
class PlaylistEntry:
    """One playable line of the upstream playlist."""

    name: str
    group: str
    url: str
    artwork: str | None = None


@dataclass(slots=True)
class UnparsedItem:
    """A stored item the models cannot represent; written back unchanged."""

    raw: Any

    @property
    def name(self) -> str:
        if isinstance(self.raw, dict) and isinstance(self.raw.get("name"), str):
            return self.raw["name"]
        return ""

    @property
    def active(self) -> bool:
        return isinstance(self.raw, dict) and self.raw.get("active") is True

    def to_payload(self) -> Any:
        return self.raw


StoredItem = CatalogItem | UnparsedItem

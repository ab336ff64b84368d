"""Utility helpers for the VOD Sync service."""

from __future__ import annotations

import re
import secrets
import unicodedata
from typing import Generic, Iterator, TypeVar


T = TypeVar("T")

BRACKET_RE = re.compile(r"\[[^\]]*\]")
PAREN_RE = re.compile(r"\([^)]*\)")
NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
YEAR_RE = re.compile(r"\((19\d{2}|20\d{2})\)")

# Applied in order; each strips one kind of release decoration.
CLEAN_TITLE_RULES: tuple[re.Pattern[str], ...] = (
    re.compile(r"^(?:\s*\[[^\]]*\])+\s*"),
    re.compile(r"^[^\w\[(]+", re.UNICODE),
    re.compile(r"\s*\((?:19|20)\d{2}\)\s*"),
    re.compile(r"\s*\b[ST]\d+\s*(?:E|Ep\.?)\s*\d+.*$", re.IGNORECASE),
    re.compile(r"\s+S\d+\b.*$", re.IGNORECASE),
    re.compile(r"\s*\bTemporada\s*\d+.*$", re.IGNORECASE),
    re.compile(r"\s*\bSeason\s*\d+.*$", re.IGNORECASE),
    re.compile(r"\s*\bEpis[oó]dio\s*\d+.*$", re.IGNORECASE),
    re.compile(r"\s*-\s*Dublado.*$", re.IGNORECASE),
    re.compile(r"\s*-\s*Legendado.*$", re.IGNORECASE),
    re.compile(r"\s*\(S[eé]rie\)", re.IGNORECASE),
    re.compile(r"\s*\[[^\]]*\]"),
    re.compile(
        r"(?:\s+(?:DUB|LEG|DUAL|HD|FHD|4K|UHD|CAM|DUBLAD[OA]|LEGENDAD[OA]))+\s*$",
        re.IGNORECASE,
    ),
)


def strip_diacritics(value: str) -> str:
    """Return ``value`` without combining accent marks."""

    decomposed = unicodedata.normalize("NFD", value)
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def normalize_name(title: str | None) -> str:
    """Return the comparison key used to join playlist entries and catalog items."""

    if not title:
        return ""
    value = strip_diacritics(title.lower())
    value = BRACKET_RE.sub("", value)
    value = PAREN_RE.sub("", value)
    return NON_ALNUM_RE.sub("", value)


def clean_title(title: str | None) -> str:
    """Strip language, quality and edition decorations from a release title."""

    if not title:
        return ""
    value = title.replace("_", " ")
    for rule in CLEAN_TITLE_RULES:
        value = rule.sub(" ", value)
    value = re.sub(r"\s+", " ", value)
    return value.strip(" -|:")


def clean_title_key(title: str | None) -> str:
    """Return the key used to share metadata across alternate releases."""

    return normalize_name(clean_title(title))


def extract_year(title: str | None) -> int | None:
    """Return the ``(YYYY)`` year embedded in a title, if any."""

    if not title:
        return None
    match = YEAR_RE.search(title)
    if not match:
        return None
    return int(match.group(1))


def strip_decoration(value: str) -> str:
    """Remove bracketed and parenthesised notes and tidy whitespace."""

    value = BRACKET_RE.sub("", value)
    value = PAREN_RE.sub("", value)
    value = re.sub(r"\s+", " ", value)
    return value.strip(" -|")


def generate_id(prefix: str) -> str:
    """Return a new opaque identifier such as ``movie-3f9a01c2b7de``."""

    return f"{prefix}-{secrets.token_hex(6)}"


class FirstWinsIndex(Generic[T]):
    """Mapping that keeps the first value registered for each key."""

    def __init__(self) -> None:
        self._values: dict[str, T] = {}

    def insert_if_absent(self, key: str, value: T) -> bool:
        """Store ``value`` unless ``key`` is already taken; return ``True`` if stored."""

        if not key or key in self._values:
            return False
        self._values[key] = value
        return True

    def get(self, key: str) -> T | None:
        if not key:
            return None
        return self._values.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

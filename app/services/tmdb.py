"""Utilities for resolving metadata from The Movie Database (TMDB)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from ..config import Settings
from ..models import Metadata

logger = logging.getLogger(__name__)

IMAGE_BASE_URL = "https://image.tmdb.org/t/p"
POSTER_SIZE = "w500"
BACKDROP_SIZE = "w1280"
PROFILE_SIZE = "w185"
FALLBACK_LANGUAGE = "en-US"
CAST_LIMIT = 15
KEYWORD_LIMIT = 10


class MetadataLookupError(RuntimeError):
    """A lookup could not be completed (transport error, timeout, bad status)."""


class TMDBClient:
    """Client responsible for searching TMDB and formatting the result."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        if not settings.tmdb_api_key:
            raise ValueError("TMDB API key is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client
        self._max_attempts = 3
        self._rate_limit_backoff = 2.0

    async def lookup(
        self,
        title: str,
        *,
        content_type: str,
        year: int | None = None,
    ) -> Metadata | None:
        """Return formatted metadata for ``title`` or ``None`` when not found."""

        query = (title or "").strip()
        if not query:
            return None

        result = await self._search(query, content_type=content_type, year=year)
        if result is None:
            return None

        details = await self._fetch_details(int(result["id"]), content_type)
        if details is None:
            return None
        return self._format(details, content_type)

    async def _search(
        self, query: str, *, content_type: str, year: int | None
    ) -> dict[str, Any] | None:
        endpoint = "/search/tv" if content_type == "series" else "/search/movie"
        params: dict[str, Any] = {
            "query": query,
            "include_adult": "false",
            "page": 1,
            "api_key": self._settings.tmdb_api_key,
        }
        if year:
            if content_type == "series":
                params["first_air_date_year"] = year
            else:
                params["year"] = year

        for language in (self._settings.tmdb_language, FALLBACK_LANGUAGE):
            payload = await self._get(endpoint, {**params, "language": language})
            results = payload.get("results") if payload else None
            if isinstance(results, list) and results:
                return results[0]
            if language == FALLBACK_LANGUAGE:
                break
        return None

    async def _fetch_details(self, tmdb_id: int, content_type: str) -> dict[str, Any] | None:
        endpoint = f"/{'tv' if content_type == 'series' else 'movie'}/{tmdb_id}"
        params = {
            "api_key": self._settings.tmdb_api_key,
            "language": self._settings.tmdb_language,
            "append_to_response": "credits,external_ids,keywords",
        }
        return await self._get(endpoint, params)

    async def _get(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any] | None:
        for attempt in range(1, self._max_attempts + 1):
            try:
                response = await self._client.get(endpoint, params=params)
            except httpx.HTTPError as exc:
                raise MetadataLookupError(
                    f"TMDB request to {endpoint} failed ({exc.__class__.__name__})"
                ) from exc

            if response.status_code == 429 and attempt < self._max_attempts:
                logger.info("TMDB rate limit hit on %s, retrying", endpoint)
                await asyncio.sleep(self._rate_limit_backoff * attempt)
                continue
            if response.status_code == 404:
                return None
            if response.status_code >= 400:
                raise MetadataLookupError(
                    f"TMDB request to {endpoint} returned HTTP {response.status_code}"
                )
            try:
                payload = response.json()
            except ValueError as exc:
                raise MetadataLookupError(f"TMDB returned invalid JSON for {endpoint}") from exc
            return payload if isinstance(payload, dict) else None
        raise MetadataLookupError(f"TMDB rate limit persisted for {endpoint}")

    def _format(self, details: dict[str, Any], content_type: str) -> Metadata:
        is_series = content_type == "series"
        release_date = details.get("first_air_date") if is_series else details.get("release_date")
        external = details.get("external_ids") or {}
        credits = details.get("credits") or {}
        keywords = details.get("keywords") or {}
        keyword_items = keywords.get("keywords") or keywords.get("results") or []

        payload: dict[str, Any] = {
            "id": details.get("id"),
            "imdbId": details.get("imdb_id") or external.get("imdb_id"),
            "title": details.get("name") if is_series else details.get("title"),
            "originalTitle": (
                details.get("original_name") if is_series else details.get("original_title")
            ),
            "tagline": details.get("tagline") or None,
            "overview": details.get("overview") or "",
            "status": details.get("status"),
            "language": details.get("original_language"),
            "releaseDate": release_date or None,
            "year": (release_date or "")[:4] or None,
            "rating": round(float(details.get("vote_average") or 0), 1),
            "voteCount": details.get("vote_count") or 0,
            "popularity": round(float(details.get("popularity") or 0)),
            "genres": [genre.get("name") for genre in details.get("genres") or [] if genre.get("name")],
            "poster": self._image(details.get("poster_path"), POSTER_SIZE),
            "posterHD": self._image(details.get("poster_path"), "original"),
            "backdrop": self._image(details.get("backdrop_path"), BACKDROP_SIZE),
            "backdropHD": self._image(details.get("backdrop_path"), "original"),
            "cast": [
                {
                    "id": person.get("id"),
                    "name": person.get("name"),
                    "character": person.get("character"),
                    "photo": self._image(person.get("profile_path"), PROFILE_SIZE),
                }
                for person in (credits.get("cast") or [])[:CAST_LIMIT]
            ],
            "keywords": [
                keyword.get("name") for keyword in keyword_items[:KEYWORD_LIMIT] if keyword.get("name")
            ],
        }
        if is_series:
            payload["seasons"] = details.get("number_of_seasons")
            payload["episodes"] = details.get("number_of_episodes")
        return Metadata.model_validate(payload)

    @staticmethod
    def _image(path: str | None, size: str) -> str | None:
        if not path:
            return None
        if path.startswith("http"):
            return path
        return f"{IMAGE_BASE_URL}/{size}{path}"

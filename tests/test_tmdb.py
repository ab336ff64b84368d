"""Tests for the TMDB metadata client."""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from app.config import Settings
from app.services.tmdb import MetadataLookupError, TMDBClient


def build_settings(**overrides: Any) -> Settings:
    """Return a settings object with defaults suitable for tests."""

    base = {"TMDB_API_KEY": "tmdb-key", "TMDB_LANGUAGE": "pt-BR"}
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


MOVIE_DETAILS = {
    "id": 603,
    "title": "Matrix",
    "original_title": "The Matrix",
    "overview": "Um hacker descobre a verdade.",
    "release_date": "1999-03-31",
    "vote_average": 8.214,
    "vote_count": 25000,
    "popularity": 80.4,
    "genres": [{"id": 28, "name": "Ação"}],
    "poster_path": "/poster.jpg",
    "backdrop_path": None,
    "external_ids": {"imdb_id": "tt0133093"},
    "credits": {"cast": [{"id": 6384, "name": "Keanu Reeves", "character": "Neo", "profile_path": "/k.jpg"}]},
    "keywords": {"keywords": [{"id": 1, "name": "hacker"}]},
}


@pytest.mark.anyio("asyncio")
async def test_lookup_searches_then_formats_details() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path == "/3/search/movie":
            return httpx.Response(200, json={"results": [{"id": 603}]})
        if request.url.path == "/3/movie/603":
            return httpx.Response(200, json=MOVIE_DETAILS)
        return httpx.Response(404)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com/3") as http_client:
        client = TMDBClient(build_settings(), http_client)
        metadata = await client.lookup("Matrix", content_type="movie", year=1999)

    assert metadata is not None
    assert metadata.id == 603
    assert metadata.imdb_id == "tt0133093"
    assert metadata.original_title == "The Matrix"
    assert metadata.year == "1999"
    assert metadata.rating == 8.2
    assert metadata.genres == ["Ação"]
    assert metadata.poster == "https://image.tmdb.org/t/p/w500/poster.jpg"
    assert metadata.backdrop is None
    assert metadata.cast is not None and metadata.cast[0]["name"] == "Keanu Reeves"

    search = requests[0]
    assert search.url.params["year"] == "1999"
    assert search.url.params["language"] == "pt-BR"
    assert search.url.params["api_key"] == "tmdb-key"
    assert requests[1].url.params["append_to_response"] == "credits,external_ids,keywords"


@pytest.mark.anyio("asyncio")
async def test_lookup_falls_back_to_english_search() -> None:
    languages: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/3/search/tv":
            languages.append(request.url.params["language"])
            if request.url.params["language"] == "en-US":
                return httpx.Response(200, json={"results": [{"id": 1}]})
            return httpx.Response(200, json={"results": []})
        return httpx.Response(200, json={"id": 1, "name": "Dark", "first_air_date": "2017-12-01"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com/3") as http_client:
        client = TMDBClient(build_settings(), http_client)
        metadata = await client.lookup("Dark", content_type="series")

    assert languages == ["pt-BR", "en-US"]
    assert metadata is not None
    assert metadata.title == "Dark"
    assert metadata.year == "2017"


@pytest.mark.anyio("asyncio")
async def test_lookup_returns_none_when_nothing_matches() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"results": []})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com/3") as http_client:
        client = TMDBClient(build_settings(), http_client)
        assert await client.lookup("Nada", content_type="movie") is None
        assert await client.lookup("   ", content_type="movie") is None


@pytest.mark.anyio("asyncio")
async def test_rate_limit_is_retried() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        if request.url.path == "/3/search/movie":
            attempts += 1
            if attempts == 1:
                return httpx.Response(429)
            return httpx.Response(200, json={"results": [{"id": 603}]})
        return httpx.Response(200, json=MOVIE_DETAILS)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com/3") as http_client:
        client = TMDBClient(build_settings(), http_client)
        client._rate_limit_backoff = 0.0
        metadata = await client.lookup("Matrix", content_type="movie")

    assert attempts == 2
    assert metadata is not None and metadata.id == 603


@pytest.mark.anyio("asyncio")
async def test_server_errors_raise_lookup_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com/3") as http_client:
        client = TMDBClient(build_settings(), http_client)
        with pytest.raises(MetadataLookupError):
            await client.lookup("Matrix", content_type="movie")


def test_client_requires_api_key() -> None:
    with pytest.raises(ValueError):
        TMDBClient(build_settings(TMDB_API_KEY=""), httpx.AsyncClient())

"""Download of the upstream playlist."""

from __future__ import annotations

import logging

import httpx

from ..playlist import PlaylistIndex

logger = logging.getLogger(__name__)


class PlaylistFetchError(RuntimeError):
    """The playlist could not be fetched; the whole pass must be aborted."""


class PlaylistClient:
    """Fetches and indexes the configured playlist URL."""

    def __init__(self, http_client: httpx.AsyncClient, playlist_url: str | None):
        self._client = http_client
        self._playlist_url = playlist_url

    @property
    def playlist_url(self) -> str | None:
        return self._playlist_url

    async def fetch_text(self) -> str:
        """Return the raw playlist text or raise :class:`PlaylistFetchError`."""

        if not self._playlist_url:
            raise PlaylistFetchError("No playlist URL configured")

        try:
            response = await self._client.get(self._playlist_url, follow_redirects=True)
        except httpx.HTTPError as exc:
            raise PlaylistFetchError(
                f"Playlist download failed ({exc.__class__.__name__}): {exc}"
            ) from exc

        if not response.is_success:
            raise PlaylistFetchError(
                f"Playlist download returned HTTP {response.status_code}"
            )
        return response.text

    async def fetch_index(self) -> PlaylistIndex:
        """Download and parse the playlist; an empty playlist is an error."""

        text = await self.fetch_text()
        index = PlaylistIndex.from_text(text)
        if not len(index):
            raise PlaylistFetchError("Playlist contained no playable entries")
        logger.info("Fetched playlist with %s entries", len(index))
        return index

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.main import register_routes
from app.models import CatalogItem, UnparsedItem
from app.services.playlist_client import PlaylistFetchError
from app.services.synchronizer import CatalogSynchronizer, SyncSummary
from app.store import CatalogStore


class DummySynchronizer(CatalogSynchronizer):
    """Minimal synchronizer stub for route testing."""

    def __init__(
        self,
        store: CatalogStore,
        outcome: SyncSummary | Exception,
        playlist_url: str | None,
    ) -> None:
        # Deliberately skip super().__init__ to avoid touching external systems.
        self._store = store
        self._playlist = SimpleNamespace(playlist_url=playlist_url)
        self._lock = asyncio.Lock()
        self._last_summary = None
        self._last_error = None
        self.outcome = outcome
        self.calls = 0

    async def run_pass(self) -> SyncSummary:  # type: ignore[override]
        self.calls += 1
        if isinstance(self.outcome, Exception):
            self._last_error = str(self.outcome)
            raise self.outcome
        self._last_summary = self.outcome
        return self.outcome


def build_client(
    tmp_path: Path,
    outcome: SyncSummary | Exception | None = None,
    playlist_url: str | None = "http://playlist.example.com/list.m3u",
) -> tuple[TestClient, DummySynchronizer]:
    store = CatalogStore(tmp_path)
    store.write_category(
        "drama",
        [CatalogItem(id="m3u-1", name="Matrix", url="http://cdn/matrix", active=True)],
    )
    synchronizer = DummySynchronizer(
        store,
        outcome or SyncSummary(started_at=datetime.now(timezone.utc)),
        playlist_url,
    )
    app = FastAPI()
    register_routes(app)
    app.state.synchronizer = synchronizer
    return TestClient(app), synchronizer


def test_healthcheck(tmp_path: Path) -> None:
    client, _ = build_client(tmp_path)

    with client:
        response = client.get("/healthz")

    assert response.json() == {"status": "ok"}


def test_manifest_and_catalog_endpoints(tmp_path: Path) -> None:
    client, _ = build_client(tmp_path)

    with client:
        manifest = client.get("/api/manifest")
        catalog = client.get("/api/catalog/drama")
        missing = client.get("/api/catalog/terror")

    assert manifest.json() == {"drama": {"totalParts": 1, "totalItems": 1}}
    assert catalog.status_code == 200
    assert catalog.json() == [
        {
            "id": "m3u-1",
            "name": "Matrix",
            "url": "http://cdn/matrix",
            "category": "",
            "type": "movie",
            "active": True,
            "isAdult": False,
        }
    ]
    assert missing.status_code == 404


def test_sync_returns_summary_and_updates_status(
    tmp_path: Path,
) -> None:
    client, synchronizer = build_client(tmp_path)

    with client:
        response = client.post("/api/sync")
        status = client.get("/api/sync/status")

    assert response.status_code == 200
    assert response.json()["totals"] == {
        "updated": 0,
        "appendedEpisodes": 0,
        "admitted": 0,
        "failed": 0,
    }
    assert synchronizer.calls == 1
    payload = status.json()
    assert payload["running"] is False
    assert payload["lastError"] is None
    assert payload["lastSummary"]["playlistEntries"] == 0


def test_sync_reports_playlist_failures(tmp_path: Path) -> None:
    client, _ = build_client(
        tmp_path, outcome=PlaylistFetchError("Playlist download returned HTTP 500")
    )

    with client:
        response = client.post("/api/sync")
        status = client.get("/api/sync/status")

    assert response.status_code == 502
    assert response.json()["detail"] == "Playlist download returned HTTP 500"
    assert status.json()["lastError"] == "Playlist download returned HTTP 500"


def test_sync_requires_playlist_url(tmp_path: Path) -> None:
    client, synchronizer = build_client(tmp_path, playlist_url=None)

    with client:
        response = client.post("/api/sync")

    assert response.status_code == 503
    assert synchronizer.calls == 0


def test_catalog_endpoint_serves_unrecognised_items_as_stored(tmp_path: Path) -> None:
    client, synchronizer = build_client(tmp_path)
    raw = {"id": "series-3", "name": "Broken", "type": "podcast"}
    synchronizer.store.write_category("terror", [UnparsedItem(raw)])

    with client:
        response = client.get("/api/catalog/terror")

    assert response.status_code == 200
    assert response.json() == [raw]

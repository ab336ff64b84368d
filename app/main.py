"""Entry point for the FastAPI-powered catalog synchronizer."""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from .category_map import CategoryMap
from .config import Settings, settings
from .services.enrichment import MetadataEnricher
from .services.playlist_client import PlaylistClient, PlaylistFetchError
from .services.synchronizer import CatalogSynchronizer
from .services.tmdb import TMDBClient
from .store import CatalogStore, CatalogStoreError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


async def build_synchronizer(
    config: Settings, exit_stack: AsyncExitStack
) -> CatalogSynchronizer:
    """Wire the HTTP clients, store and enricher for ``config``.

    The HTTP clients are registered on ``exit_stack`` so the caller controls
    their lifetime.
    """

    playlist_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            timeout=httpx.Timeout(config.playlist_timeout_seconds, connect=10.0),
        )
    )
    playlist_url = str(config.playlist_url) if config.playlist_url is not None else None
    playlist_client = PlaylistClient(playlist_http_client, playlist_url)

    enricher: MetadataEnricher | None = None
    if config.metadata_enabled:
        tmdb_http_client = await exit_stack.enter_async_context(
            httpx.AsyncClient(
                base_url=str(config.tmdb_api_url),
                timeout=httpx.Timeout(config.metadata_timeout_seconds, connect=5.0),
            )
        )
        enricher = MetadataEnricher(
            TMDBClient(config, tmdb_http_client),
            batch_size=config.enrichment_batch_size,
            batch_delay=config.enrichment_batch_delay,
        )
    else:
        logger.info("TMDB_API_KEY not set; new items will not be enriched")

    store = CatalogStore(config.catalog_dir, config.items_per_shard)
    return CatalogSynchronizer(
        config,
        store,
        playlist_client,
        enricher=enricher,
        category_map=CategoryMap.with_overrides(config.category_map),
    )


@asynccontextmanager
async def lifespan(_: FastAPI):
    exit_stack = AsyncExitStack()
    synchronizer = await build_synchronizer(settings, exit_stack)
    app.state.synchronizer = synchronizer
    await synchronizer.start()

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await synchronizer.stop()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Keeps a sharded VOD catalog in sync with an upstream playlist",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_synchronizer(app: FastAPI) -> CatalogSynchronizer:
    synchronizer = getattr(app.state, "synchronizer", None)
    if not isinstance(synchronizer, CatalogSynchronizer):
        raise RuntimeError("Synchronizer not initialised")
    return synchronizer


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/api/manifest")
    async def manifest() -> dict[str, Any]:
        synchronizer = get_synchronizer(fastapi_app)
        try:
            entries = await asyncio.to_thread(synchronizer.store.read_manifest)
        except CatalogStoreError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return {
            base_name: entry.model_dump(by_alias=True)
            for base_name, entry in entries.items()
        }

    @fastapi_app.get("/api/catalog/{category}")
    async def catalog(category: str) -> list[Any]:
        synchronizer = get_synchronizer(fastapi_app)
        store = synchronizer.store
        try:
            entries = await asyncio.to_thread(store.read_manifest)
        except CatalogStoreError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        if category not in entries:
            raise HTTPException(status_code=404, detail="Unknown category")
        items = await asyncio.to_thread(store.read_category, category)
        return [item.to_payload() for item in items]

    @fastapi_app.post("/api/sync")
    async def trigger_sync() -> dict[str, Any]:
        synchronizer = get_synchronizer(fastapi_app)
        if not synchronizer.playlist_url:
            raise HTTPException(status_code=503, detail="PLAYLIST_URL is not configured")
        if synchronizer.running:
            raise HTTPException(status_code=409, detail="A sync pass is already running")
        try:
            summary = await synchronizer.run_pass()
        except PlaylistFetchError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        except CatalogStoreError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return summary.to_payload()

    @fastapi_app.get("/api/sync/status")
    async def sync_status() -> dict[str, Any]:
        synchronizer = get_synchronizer(fastapi_app)
        summary = synchronizer.last_summary
        return {
            "running": synchronizer.running,
            "lastError": synchronizer.last_error,
            "lastSummary": summary.to_payload() if summary else None,
        }


app = create_app()

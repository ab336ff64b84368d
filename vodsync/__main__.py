"""Module executed when running ``python -m vodsync``."""

from __future__ import annotations

import asyncio
import logging
import sys
from contextlib import AsyncExitStack

import uvicorn

from app.config import Settings, settings
from app.main import build_synchronizer
from app.services.playlist_client import PlaylistFetchError
from app.services.synchronizer import SyncSummary

logger = logging.getLogger(__name__)


def main() -> None:
    """Start the uvicorn server using the configured settings."""

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )


async def run_once(config: Settings) -> SyncSummary:
    """Run a single reconciliation pass outside the web server."""

    async with AsyncExitStack() as exit_stack:
        synchronizer = await build_synchronizer(config, exit_stack)
        return await synchronizer.run_pass()


def sync() -> None:
    """Run one pass, print its summary and exit non-zero if the fetch failed."""

    logging.basicConfig(level=logging.INFO)
    try:
        summary = asyncio.run(run_once(settings))
    except PlaylistFetchError as exc:
        logger.error("Sync aborted: %s", exc)
        sys.exit(1)
    print(summary.format())


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    if "--sync" in sys.argv[1:]:
        sync()
    else:
        main()

"""Process package: ``python -m vodsync`` serves the API, ``vodsync-sync`` runs one pass."""

from __future__ import annotations

from app.main import app, build_synchronizer, create_app

__all__ = ["app", "build_synchronizer", "create_app"]

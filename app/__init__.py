"""VOD catalog synchronizer FastAPI application package."""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = ["app", "build_synchronizer", "create_app"]


def __getattr__(name: str) -> Any:
    # Importing app.main builds the FastAPI app; defer it until first use.
    if name in __all__:
        return getattr(import_module("app.main"), name)
    raise AttributeError(f"module 'app' has no attribute {name}")

"""Manifest-driven storage of category item lists across shard files."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .models import CatalogItem, ManifestEntry, StoredItem, UnparsedItem

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "_manifest.json"
DEFAULT_ITEMS_PER_SHARD = 50


class CatalogStoreError(RuntimeError):
    """Raised when the manifest itself cannot be trusted."""


def _write_json_atomic(path: Path, payload: Any, *, indent: int | None = None) -> None:
    tmp_path = path.with_name(path.name + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, ensure_ascii=False, indent=indent)
    os.replace(tmp_path, path)


class CatalogStore:
    """Reads and writes category shards ``{base}-p{n}.json`` under one root.

    The manifest is the only source of truth for how many shards a category
    has. Shard writes are individually atomic but a category rewrite is not;
    a pass interrupted mid-write is repaired by simply running it again.
    """

    def __init__(self, root: Path | str, items_per_shard: int = DEFAULT_ITEMS_PER_SHARD):
        if items_per_shard < 1:
            raise ValueError("items_per_shard must be positive")
        self._root = Path(root)
        self._items_per_shard = items_per_shard
        self._manifest: dict[str, ManifestEntry] | None = None

    @property
    def root(self) -> Path:
        return self._root

    @property
    def items_per_shard(self) -> int:
        return self._items_per_shard

    @property
    def manifest_path(self) -> Path:
        return self._root / MANIFEST_FILENAME

    @property
    def manifest(self) -> dict[str, ManifestEntry]:
        if self._manifest is None:
            return self.read_manifest()
        return self._manifest

    def shard_path(self, base_name: str, index: int) -> Path:
        return self._root / f"{base_name}-p{index}.json"

    def read_manifest(self) -> dict[str, ManifestEntry]:
        """Load the manifest from disk, returning an empty one when absent."""

        path = self.manifest_path
        if not path.exists():
            self._manifest = {}
            return self._manifest
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise CatalogStoreError(f"Unable to read manifest {path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise CatalogStoreError(f"Manifest {path} is not a JSON object")

        manifest: dict[str, ManifestEntry] = {}
        for base_name, entry in raw.items():
            try:
                manifest[base_name] = ManifestEntry.model_validate(entry)
            except ValidationError as exc:
                raise CatalogStoreError(
                    f"Manifest entry {base_name!r} is invalid: {exc}"
                ) from exc
        self._manifest = manifest
        return manifest

    def write_manifest(self) -> None:
        """Persist the in-memory manifest."""

        self._root.mkdir(parents=True, exist_ok=True)
        payload = {
            base_name: entry.model_dump(by_alias=True)
            for base_name, entry in self.manifest.items()
        }
        _write_json_atomic(self.manifest_path, payload, indent=2)

    def categories(self) -> list[str]:
        return list(self.manifest.keys())

    def read_category(self, base_name: str) -> list[StoredItem]:
        """Return every readable item of ``base_name`` in shard order.

        Missing or corrupted shards are logged and skipped. Items that do not
        fit :class:`CatalogItem` come back as :class:`UnparsedItem` so a
        rewrite keeps them byte for byte.
        """

        entry = self.manifest.get(base_name)
        if entry is None:
            return []

        items: list[StoredItem] = []
        for index in range(1, entry.total_parts + 1):
            path = self.shard_path(base_name, index)
            if not path.exists():
                logger.warning("Shard %s is listed in the manifest but missing", path.name)
                continue
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                logger.warning("Skipping unreadable shard %s: %s", path.name, exc)
                continue
            if not isinstance(data, list):
                logger.warning("Skipping shard %s: expected a JSON list", path.name)
                continue
            for position, raw_item in enumerate(data):
                try:
                    items.append(CatalogItem.model_validate(raw_item))
                except ValidationError as exc:
                    logger.warning(
                        "Keeping unrecognised item %s in %s as is: %s",
                        position,
                        path.name,
                        exc,
                    )
                    items.append(UnparsedItem(raw_item))
        return items

    def write_category(self, base_name: str, items: list[StoredItem]) -> ManifestEntry:
        """Rewrite every shard of ``base_name`` and update the manifest."""

        self._root.mkdir(parents=True, exist_ok=True)
        previous = self.manifest.get(base_name)
        entry = ManifestEntry.for_items(len(items), self._items_per_shard)

        payloads = [item.to_payload() for item in items]
        for index in range(entry.total_parts):
            start = index * self._items_per_shard
            chunk = payloads[start : start + self._items_per_shard]
            _write_json_atomic(self.shard_path(base_name, index + 1), chunk)

        if previous is not None:
            for index in range(entry.total_parts + 1, previous.total_parts + 1):
                stale = self.shard_path(base_name, index)
                if stale.exists():
                    stale.unlink()
                    logger.debug("Removed stale shard %s", stale.name)

        self.manifest[base_name] = entry
        self.write_manifest()
        return entry

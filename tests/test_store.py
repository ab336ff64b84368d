"""Tests for the sharded catalog store."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from app.models import CatalogItem, UnparsedItem
from app.store import MANIFEST_FILENAME, CatalogStore, CatalogStoreError


def _items(count: int, prefix: str = "Movie") -> list[CatalogItem]:
    return [
        CatalogItem(id=f"m3u-{index}", name=f"{prefix} {index}", url=f"http://cdn/{index}")
        for index in range(count)
    ]


def _shard_lengths(root: Path, base_name: str) -> list[int]:
    manifest = json.loads((root / MANIFEST_FILENAME).read_text(encoding="utf-8"))
    parts = manifest[base_name]["totalParts"]
    return [
        len(json.loads((root / f"{base_name}-p{index}.json").read_text(encoding="utf-8")))
        for index in range(1, parts + 1)
    ]


def test_write_category_chunks_items_and_updates_manifest(tmp_path: Path) -> None:
    store = CatalogStore(tmp_path, items_per_shard=50)

    entry = store.write_category("acao", _items(120))

    assert entry.total_parts == 3
    assert entry.total_items == 120
    assert _shard_lengths(tmp_path, "acao") == [50, 50, 20]
    manifest = json.loads((tmp_path / MANIFEST_FILENAME).read_text(encoding="utf-8"))
    assert manifest == {"acao": {"totalParts": 3, "totalItems": 120}}
    assert not list(tmp_path.glob("*.tmp"))


def test_write_category_removes_stale_shards(tmp_path: Path) -> None:
    store = CatalogStore(tmp_path, items_per_shard=50)
    store.write_category("acao", _items(120))

    store.write_category("acao", _items(10))

    assert _shard_lengths(tmp_path, "acao") == [10]
    assert not (tmp_path / "acao-p2.json").exists()
    assert not (tmp_path / "acao-p3.json").exists()


def test_empty_category_keeps_one_empty_shard(tmp_path: Path) -> None:
    store = CatalogStore(tmp_path)

    store.write_category("terror", [])

    assert _shard_lengths(tmp_path, "terror") == [0]
    assert store.read_category("terror") == []


def test_read_category_returns_items_in_shard_order(tmp_path: Path) -> None:
    CatalogStore(tmp_path, items_per_shard=2).write_category("drama", _items(5))

    items = CatalogStore(tmp_path, items_per_shard=2).read_category("drama")

    assert [item.name for item in items] == [f"Movie {index}" for index in range(5)]


def test_read_category_skips_missing_and_corrupt_shards(tmp_path: Path) -> None:
    store = CatalogStore(tmp_path, items_per_shard=2)
    store.write_category("drama", _items(6))
    (tmp_path / "drama-p2.json").unlink()
    (tmp_path / "drama-p3.json").write_text("{not json", encoding="utf-8")

    items = CatalogStore(tmp_path, items_per_shard=2).read_category("drama")

    assert [item.name for item in items] == ["Movie 0", "Movie 1"]


def test_missing_category_reads_empty(tmp_path: Path) -> None:
    store = CatalogStore(tmp_path)

    assert store.read_category("terror") == []
    assert store.categories() == []


def test_corrupt_manifest_is_fatal(tmp_path: Path) -> None:
    (tmp_path / MANIFEST_FILENAME).write_text("[1, 2", encoding="utf-8")

    with pytest.raises(CatalogStoreError):
        CatalogStore(tmp_path).read_manifest()


def test_manifest_entries_are_validated(tmp_path: Path) -> None:
    (tmp_path / MANIFEST_FILENAME).write_text(
        json.dumps({"acao": {"totalParts": -1, "totalItems": 3}}), encoding="utf-8"
    )

    with pytest.raises(CatalogStoreError):
        CatalogStore(tmp_path).read_manifest()


def test_shards_keep_non_ascii_text(tmp_path: Path) -> None:
    store = CatalogStore(tmp_path)
    store.write_category("acao", [CatalogItem(id="m3u-1", name="Ação Total", category="Filmes | Ação")])

    raw = (tmp_path / "acao-p1.json").read_text(encoding="utf-8")

    assert "Ação Total" in raw


def test_unrecognised_items_are_rewritten_verbatim(tmp_path: Path) -> None:
    broken = {
        "id": "series-3",
        "name": "Broken",
        "type": "series",
        "episodes": {"1": [{"name": "missing its number"}]},
        "customField": [1, 2],
    }
    (tmp_path / "drama-p1.json").write_text(
        json.dumps([{"id": 7, "name": "Numbered"}, broken, "stray"]), encoding="utf-8"
    )
    (tmp_path / MANIFEST_FILENAME).write_text(
        json.dumps({"drama": {"totalParts": 1, "totalItems": 3}}), encoding="utf-8"
    )
    store = CatalogStore(tmp_path)

    items = store.read_category("drama")
    store.write_category("drama", items)

    assert isinstance(items[0], CatalogItem) and items[0].id == 7
    assert items[1] == UnparsedItem(broken)
    assert items[1].name == "Broken"
    assert items[2] == UnparsedItem("stray")
    assert items[2].name == ""
    stored = json.loads((tmp_path / "drama-p1.json").read_text(encoding="utf-8"))
    assert stored[1:] == [broken, "stray"]
    assert stored[0]["id"] == 7

"""Reconciliation of the sharded catalog against the upstream playlist."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..category_map import ADULT_CATEGORY_LABEL, CategoryMap, is_adult_target
from ..config import Settings
from ..episodes import extract_episode
from ..matcher import find_episode_match, find_match
from ..models import CatalogItem, Episode, Metadata, PlaylistEntry, StoredItem, UnparsedItem
from ..playlist import PlaylistIndex, SeriesGroup, build_series_index
from ..store import CatalogStore
from ..utils import FirstWinsIndex, clean_title_key, generate_id, normalize_name
from .enrichment import (
    EnrichmentFailure,
    EnrichmentTarget,
    MetadataEnricher,
    write_failure_report,
)
from .playlist_client import PlaylistClient, PlaylistFetchError

logger = logging.getLogger(__name__)

LOOKUP_NOT_CONFIGURED = "metadata lookup not configured"


@dataclass
class CategoryReport:
    """Counters for one category over a single pass."""

    category: str
    items: int = 0
    active: int = 0
    updated: int = 0
    appended_episodes: int = 0
    admitted: int = 0
    failed: int = 0
    persisted: bool = True

    def to_payload(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "items": self.items,
            "active": self.active,
            "updated": self.updated,
            "appendedEpisodes": self.appended_episodes,
            "admitted": self.admitted,
            "failed": self.failed,
            "persisted": self.persisted,
        }


@dataclass
class SyncSummary:
    """Outcome of one reconciliation pass."""

    started_at: datetime
    finished_at: datetime | None = None
    duration_seconds: float = 0.0
    playlist_entries: int = 0
    categories: dict[str, CategoryReport] = field(default_factory=dict)
    failures: list[EnrichmentFailure] = field(default_factory=list)

    def report_for(self, category: str) -> CategoryReport:
        report = self.categories.get(category)
        if report is None:
            report = CategoryReport(category=category)
            self.categories[category] = report
        return report

    @property
    def total_updated(self) -> int:
        return sum(report.updated for report in self.categories.values())

    @property
    def total_appended_episodes(self) -> int:
        return sum(report.appended_episodes for report in self.categories.values())

    @property
    def total_admitted(self) -> int:
        return sum(report.admitted for report in self.categories.values())

    @property
    def total_failed(self) -> int:
        return sum(report.failed for report in self.categories.values())

    def format(self) -> str:
        """Return a human readable multi-line summary."""

        lines = [
            f"Sync pass over {self.playlist_entries} playlist entries "
            f"finished in {self.duration_seconds:.1f}s"
        ]
        for name in sorted(self.categories):
            report = self.categories[name]
            if not (report.updated or report.appended_episodes or report.admitted or report.failed):
                continue
            line = (
                f"  {name}: {report.updated} updated, "
                f"{report.appended_episodes} episodes appended, "
                f"{report.admitted} admitted, {report.failed} failed"
            )
            if not report.persisted:
                line += " (NOT SAVED)"
            lines.append(line)
        lines.append(
            f"Total: {self.total_updated} updated, "
            f"{self.total_appended_episodes} episodes appended, "
            f"{self.total_admitted} admitted, {self.total_failed} failed"
        )
        if self.failures:
            lines.append(f"{len(self.failures)} items without metadata (see failure report)")
        return "\n".join(lines)

    def to_payload(self) -> dict[str, Any]:
        return {
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "durationSeconds": round(self.duration_seconds, 3),
            "playlistEntries": self.playlist_entries,
            "totals": {
                "updated": self.total_updated,
                "appendedEpisodes": self.total_appended_episodes,
                "admitted": self.total_admitted,
                "failed": self.total_failed,
            },
            "categories": [
                self.categories[name].to_payload() for name in sorted(self.categories)
            ],
            "failures": [
                {"category": failure.category, "name": failure.name, "reason": failure.reason}
                for failure in self.failures
            ],
        }


@dataclass
class SyncContext:
    """Indices built once per pass and shared by every phase."""

    playlist: PlaylistIndex
    series: dict[str, SeriesGroup]
    backfill: FirstWinsIndex[Metadata] = field(default_factory=FirstWinsIndex)
    known_names: set[str] = field(default_factory=set)
    consumed_urls: set[str] = field(default_factory=set)
    categories: dict[str, list[StoredItem]] = field(default_factory=dict)

    def register(self, item: StoredItem) -> None:
        """Record ``item`` as known and offer its metadata for backfill."""

        key = normalize_name(item.name)
        if key:
            self.known_names.add(key)
        if isinstance(item, UnparsedItem):
            return
        metadata = item.metadata
        if metadata is not None and metadata.has_identifier():
            self.backfill.insert_if_absent(clean_title_key(item.name), metadata)
            self.backfill.insert_if_absent(key, metadata)

    def backfill_for(self, name: str) -> Metadata | None:
        found = self.backfill.get(clean_title_key(name))
        if found is None:
            return None
        return found.model_copy(deep=True)


def _season_number(season_key: str) -> int | None:
    digits = re.sub(r"\D", "", season_key)
    if not digits:
        return None
    return int(digits)


def _sort_and_dedupe(episodes: list[Episode]) -> list[Episode]:
    seen: set[int] = set()
    unique: list[Episode] = []
    for episode in episodes:
        if episode.episode_number in seen:
            continue
        seen.add(episode.episode_number)
        unique.append(episode)
    return sorted(unique, key=lambda episode: episode.episode_number)


class CatalogSynchronizer:
    """Coordinates playlist ingestion with the sharded catalog store."""

    def __init__(
        self,
        settings: Settings,
        store: CatalogStore,
        playlist_client: PlaylistClient,
        enricher: MetadataEnricher | None = None,
        category_map: CategoryMap | None = None,
    ):
        self._settings = settings
        self._store = store
        self._playlist = playlist_client
        self._enricher = enricher
        self._categories = category_map or CategoryMap.with_overrides(settings.category_map)
        self._failure_report_path: Path = settings.failure_report_path
        self._lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._refresh_task: asyncio.Task[None] | None = None
        self._last_summary: SyncSummary | None = None
        self._last_error: str | None = None

    @property
    def store(self) -> CatalogStore:
        return self._store

    @property
    def playlist_url(self) -> str | None:
        return self._playlist.playlist_url

    @property
    def running(self) -> bool:
        return self._lock.locked()

    @property
    def last_summary(self) -> SyncSummary | None:
        return self._last_summary

    @property
    def last_error(self) -> str | None:
        return self._last_error

    async def start(self) -> None:
        """Launch the background refresh loop when one is configured."""

        self._stop_event.clear()
        interval = self._settings.sync_interval_seconds
        if not (interval or self._settings.sync_on_startup):
            return
        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(
                self._refresh_loop(interval, run_immediately=self._settings.sync_on_startup)
            )

    async def stop(self) -> None:
        """Let an in-flight pass persist what it can, then stop the loop."""

        self._stop_event.set()
        async with self._lock:
            if self._refresh_task is None:
                return
            self._refresh_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._refresh_task
            self._refresh_task = None

    async def _refresh_loop(self, interval: int, *, run_immediately: bool) -> None:
        if run_immediately:
            await self._run_scheduled()
        if not interval:
            return
        while True:
            await asyncio.sleep(interval)
            await self._run_scheduled()

    async def _run_scheduled(self) -> None:
        try:
            await self.run_pass()
        except PlaylistFetchError as exc:
            logger.error("Scheduled sync aborted: %s", exc)
        except Exception as exc:  # pragma: no cover - background safety net
            logger.exception("Scheduled sync failed: %s", exc)

    async def run_pass(self) -> SyncSummary:
        """Run one full reconciliation pass.

        Raises :class:`PlaylistFetchError` before touching the catalog when the
        playlist cannot be fetched.
        """

        async with self._lock:
            started = time.monotonic()
            summary = SyncSummary(started_at=datetime.now(timezone.utc))
            try:
                playlist = await self._playlist.fetch_index()
            except PlaylistFetchError as exc:
                self._last_error = str(exc)
                raise
            summary.playlist_entries = len(playlist)

            context = await self._build_context(playlist)
            for base_name in list(context.categories):
                await self._reconcile_category(context, base_name, summary.report_for(base_name))

            await self._admit_new_entries(context, summary)

            summary.finished_at = datetime.now(timezone.utc)
            summary.duration_seconds = time.monotonic() - started
            self._last_summary = summary
            self._last_error = None
            logger.info("%s", summary.format())
            return summary

    async def _build_context(self, playlist: PlaylistIndex) -> SyncContext:
        await asyncio.to_thread(self._store.read_manifest)
        names = self._store.categories()
        loaded = await asyncio.gather(
            *(asyncio.to_thread(self._store.read_category, name) for name in names)
        )

        context = SyncContext(playlist=playlist, series=build_series_index(playlist.entries))
        for name, items in zip(names, loaded):
            context.categories[name] = items
            for item in items:
                context.register(item)
        logger.info(
            "Loaded %s categories (%s items), %s backfill keys, %s playlist series",
            len(names),
            sum(len(items) for items in loaded),
            len(context.backfill),
            len(context.series),
        )
        return context

    async def _reconcile_category(
        self, context: SyncContext, base_name: str, report: CategoryReport
    ) -> None:
        items = context.categories[base_name]
        for item in items:
            if isinstance(item, UnparsedItem):
                continue
            try:
                report.updated += self._reconcile_item(context, item, report)
            except Exception:
                report.failed += 1
                logger.exception("Failed to reconcile %r in %s", item.name, base_name)

        report.items = len(items)
        report.active = sum(1 for item in items if item.active)
        # active flags changed even when nothing else did.
        await self._persist(base_name, items, report)
        if report.updated:
            logger.info(
                "%s: %s updates (%s episodes appended)",
                base_name,
                report.updated,
                report.appended_episodes,
            )

    def _reconcile_item(
        self, context: SyncContext, item: CatalogItem, report: CategoryReport
    ) -> int:
        updates = 0
        item.active = False

        if item.metadata is None or not item.metadata.has_identifier():
            found = context.backfill_for(item.name)
            if found is not None:
                if item.metadata is None:
                    item.metadata = found
                    updates += 1
                elif item.metadata.fill_missing(found):
                    updates += 1

        url = find_match(item.name, item.alternate_title, context.playlist)
        if url is not None:
            item.active = True
            context.consumed_urls.add(url)
            if not item.is_series and item.url != url:
                item.url = url
                updates += 1

        if item.is_series:
            updates += self._reconcile_series(context, item, report)
        return updates

    def _reconcile_series(
        self, context: SyncContext, item: CatalogItem, report: CategoryReport
    ) -> int:
        updates = 0
        refreshed: set[tuple[int, int]] = set()

        for season_key, episodes in (item.episodes_by_season or {}).items():
            season = _season_number(season_key)
            if season is None:
                continue
            for episode in episodes:
                url = find_episode_match(item.name, season, episode.episode_number, context.playlist)
                if url is None:
                    continue
                item.active = True
                context.consumed_urls.add(url)
                refreshed.add((season, episode.episode_number))
                if episode.url != url:
                    episode.url = url
                    updates += 1

        upstream = context.series.get(normalize_name(item.name))
        appended = 0
        if upstream is not None:
            item.active = True
            if item.episodes_by_season is None:
                item.episodes_by_season = {}
            for candidate in upstream.episodes:
                info = candidate.info
                entry = candidate.entry
                context.consumed_urls.add(entry.url)
                season_key = item.season_key_for(info.season)
                episodes = item.episodes_by_season.setdefault(season_key, [])
                existing = next(
                    (episode for episode in episodes if episode.episode_number == info.episode),
                    None,
                )
                if existing is None:
                    episodes.append(self._new_episode(info.episode, entry))
                    appended += 1
                elif (info.season, info.episode) not in refreshed and existing.url != entry.url:
                    existing.url = entry.url
                    updates += 1

        reshaped = False
        for season_key, episodes in list((item.episodes_by_season or {}).items()):
            ordered = _sort_and_dedupe(episodes)
            if [episode.episode_number for episode in ordered] != [
                episode.episode_number for episode in episodes
            ]:
                item.episodes_by_season[season_key] = ordered
                reshaped = True
                updates += 1

        if appended or reshaped:
            item.refresh_totals()
        report.appended_episodes += appended
        return updates + appended

    async def _admit_new_entries(self, context: SyncContext, summary: SyncSummary) -> None:
        pending: dict[str, list[CatalogItem]] = {}
        new_series: dict[str, SeriesGroup] = {}

        for entry in context.playlist.entries:
            if entry.url in context.consumed_urls:
                continue
            key = normalize_name(entry.name)
            if not key or key in context.known_names:
                continue
            try:
                info = extract_episode(entry.name)
                if info is not None:
                    series_key = info.series_key
                    if not series_key or series_key in context.known_names:
                        continue
                    group = new_series.get(series_key)
                    if group is None:
                        group = SeriesGroup(
                            base_name=info.base_name, group=entry.group, artwork=entry.artwork
                        )
                        new_series[series_key] = group
                    group.add(info, entry)
                    continue

                target = self._categories.resolve(entry.group)
                if target is None:
                    continue
                pending.setdefault(target, []).append(self._new_movie(context, entry, target))
                context.known_names.add(key)
            except Exception:
                logger.exception("Failed to admit playlist entry %r", entry.name)

        for series_key, group in new_series.items():
            target = self._categories.resolve(group.group)
            if target is None:
                continue
            try:
                item = self._new_series(context, group, target)
            except Exception:
                logger.exception("Failed to admit series %r", group.base_name)
                continue
            pending.setdefault(target, []).append(item)
            context.known_names.add(series_key)

        if not pending:
            return

        await self._enrich_new_items(pending, summary)

        for base_name, new_items in pending.items():
            report = summary.report_for(base_name)
            merged = context.categories.get(base_name, []) + new_items
            context.categories[base_name] = merged
            report.admitted += len(new_items)
            report.items = len(merged)
            report.active = sum(1 for item in merged if item.active)
            await self._persist(base_name, merged, report)
            logger.info("%s: %s new items admitted", base_name, len(new_items))

    async def _enrich_new_items(
        self, pending: dict[str, list[CatalogItem]], summary: SyncSummary
    ) -> None:
        targets = [
            EnrichmentTarget(category=base_name, item=item)
            for base_name, items in pending.items()
            for item in items
            if item.metadata is None
        ]
        if not targets:
            return

        if self._enricher is None:
            failures = [
                EnrichmentFailure(target.category, target.item.name, LOOKUP_NOT_CONFIGURED)
                for target in targets
            ]
        else:
            failures = await self._enricher.enrich(targets, self._stop_event)
            for failure in failures:
                summary.report_for(failure.category).failed += 1

        summary.failures.extend(failures)
        if failures:
            try:
                await asyncio.to_thread(write_failure_report, self._failure_report_path, failures)
            except OSError:
                logger.exception("Unable to write failure report %s", self._failure_report_path)

    async def _persist(
        self, base_name: str, items: list[StoredItem], report: CategoryReport
    ) -> None:
        try:
            await asyncio.to_thread(self._store.write_category, base_name, items)
        except OSError:
            report.persisted = False
            logger.exception("Failed to persist category %s", base_name)

    def _new_movie(self, context: SyncContext, entry: PlaylistEntry, target: str) -> CatalogItem:
        adult = is_adult_target(target, entry.group)
        return CatalogItem(
            id=generate_id("m3u"),
            name=entry.name,
            url=entry.url,
            category=ADULT_CATEGORY_LABEL if adult else entry.group,
            type="movie",
            active=True,
            is_adult=adult,
            artwork=entry.artwork,
            metadata=context.backfill_for(entry.name),
        )

    def _new_series(self, context: SyncContext, group: SeriesGroup, target: str) -> CatalogItem:
        episodes_by_season: dict[str, list[Episode]] = {}
        for candidate in group.episodes:
            episodes_by_season.setdefault(candidate.info.season_key, []).append(
                self._new_episode(candidate.info.episode, candidate.entry)
            )
        ordered = {
            season_key: sorted(episodes, key=lambda episode: episode.episode_number)
            for season_key, episodes in sorted(
                episodes_by_season.items(), key=lambda pair: int(pair[0])
            )
        }
        adult = is_adult_target(target, group.group)
        item = CatalogItem(
            id=generate_id("series"),
            name=group.base_name,
            category=ADULT_CATEGORY_LABEL if adult else group.group,
            type="series",
            active=True,
            is_adult=adult,
            artwork=group.artwork,
            metadata=context.backfill_for(group.base_name),
            episodes_by_season=ordered,
        )
        item.refresh_totals()
        return item

    @staticmethod
    def _new_episode(number: int, entry: PlaylistEntry) -> Episode:
        return Episode(
            episode_number=number,
            name=entry.name,
            url=entry.url,
            id=generate_id("ep"),
            artwork=entry.artwork,
        )

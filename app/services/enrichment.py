"""Batched metadata enrichment for catalog items."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence

from ..models import CatalogItem, Metadata
from ..utils import clean_title, extract_year

logger = logging.getLogger(__name__)


class MetadataLookup(Protocol):
    async def lookup(
        self, title: str, *, content_type: str, year: int | None = None
    ) -> Metadata | None: ...


@dataclass(slots=True)
class EnrichmentTarget:
    category: str
    item: CatalogItem


@dataclass(slots=True)
class EnrichmentFailure:
    """An item whose metadata could not be resolved during a pass."""

    category: str
    name: str
    reason: str

    def to_line(self) -> str:
        return "\t".join(
            value.replace("\t", " ").replace("\n", " ")
            for value in (self.category, self.name, self.reason)
        )


class MetadataEnricher:
    """Runs lookups in fixed-size batches with a pause between batches."""

    def __init__(
        self,
        client: MetadataLookup,
        *,
        batch_size: int = 20,
        batch_delay: float = 0.5,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self._client = client
        self._batch_size = batch_size
        self._batch_delay = batch_delay

    async def enrich(
        self,
        targets: Sequence[EnrichmentTarget],
        stop_event: asyncio.Event | None = None,
    ) -> list[EnrichmentFailure]:
        """Attach metadata to ``targets`` in place and return the failures."""

        failures: list[EnrichmentFailure] = []
        batches = [
            targets[start : start + self._batch_size]
            for start in range(0, len(targets), self._batch_size)
        ]
        for position, batch in enumerate(batches):
            if stop_event is not None and stop_event.is_set():
                skipped = sum(len(remaining) for remaining in batches[position:])
                logger.info("Stop requested, skipping enrichment of %s items", skipped)
                for remaining in batches[position:]:
                    failures.extend(
                        EnrichmentFailure(target.category, target.item.name, "skipped on shutdown")
                        for target in remaining
                    )
                break

            results = await asyncio.gather(
                *(self._enrich_one(target) for target in batch),
                return_exceptions=True,
            )
            for target, result in zip(batch, results):
                if isinstance(result, BaseException):
                    logger.warning(
                        "Metadata lookup failed for %s (%s): %s",
                        target.item.name,
                        target.category,
                        result,
                    )
                    failures.append(
                        EnrichmentFailure(target.category, target.item.name, str(result) or type(result).__name__)
                    )
                elif result is not None:
                    failures.append(result)

            if position < len(batches) - 1 and self._batch_delay:
                await asyncio.sleep(self._batch_delay)
        return failures

    async def _enrich_one(self, target: EnrichmentTarget) -> EnrichmentFailure | None:
        item = target.item
        query = clean_title(item.name)
        if not query:
            return EnrichmentFailure(target.category, item.name, "empty title after cleaning")

        metadata = await self._client.lookup(
            query, content_type=item.type, year=extract_year(item.name)
        )
        if metadata is None:
            return EnrichmentFailure(target.category, item.name, "not found")

        if item.metadata is None:
            item.metadata = metadata
        else:
            item.metadata.fill_missing(metadata)
        return None


def write_failure_report(path: Path, failures: Sequence[EnrichmentFailure]) -> None:
    """Write one ``category<TAB>name<TAB>reason`` line per failure."""

    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [failure.to_line() for failure in failures]
    path.write_text("\n".join(lines) + ("\n" if lines else ""), encoding="utf-8")
    logger.info("Wrote %s metadata failures to %s", len(failures), path)

"""Merge freshly scraped batches into the deal store.

Precedence rules, applied per link:

- unknown link: the record is inserted as-is
- detail batch: the stored record is replaced wholesale
- listing batch: only temperature and comments_count are refreshed, the
  authoritative fields written by a detail scrape are preserved

Records absent from a batch are never removed.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Tuple

import structlog

from brickdeals.scrapers.base import DealRecord, Provenance
from brickdeals.services.deal_store import DealStore

logger = structlog.get_logger(__name__)


@dataclass
class MergeStats:
    """Counts of what a merge did to the store."""

    inserted: int = 0
    replaced: int = 0
    updated: int = 0
    unchanged: int = 0

    @property
    def changed(self) -> int:
        return self.inserted + self.replaced + self.updated

    def as_dict(self) -> Dict[str, int]:
        return {
            "inserted": self.inserted,
            "replaced": self.replaced,
            "updated": self.updated,
            "unchanged": self.unchanged,
        }


def apply_batch(
    existing: Mapping[str, DealRecord],
    batch: Iterable[DealRecord],
    provenance: Provenance,
) -> Tuple[Dict[str, DealRecord], MergeStats]:
    """Compute the merged collection without touching any store.

    Args:
        existing: Stored records keyed by link
        batch: Records from one scrape, in page order
        provenance: Page kind the batch came from

    Returns:
        Tuple of (merged records keyed by link, stats)
    """
    merged: Dict[str, DealRecord] = dict(existing)
    stats = MergeStats()

    for record in batch:
        current = merged.get(record.link)

        if current is None:
            merged[record.link] = record
            stats.inserted += 1
            continue

        if provenance is Provenance.DETAIL:
            candidate = record
        else:
            candidate = current.with_volatile_from(record)

        if candidate == current:
            stats.unchanged += 1
            continue

        merged[record.link] = candidate
        if provenance is Provenance.DETAIL:
            stats.replaced += 1
        else:
            stats.updated += 1

    return merged, stats


class DealMerger:
    """Reads the store, applies a batch and writes the result back."""

    def __init__(self):
        self.logger = logger.bind(service="deal_merger")

    async def merge(
        self,
        store: DealStore,
        batch: Iterable[DealRecord],
        provenance: Provenance,
    ) -> MergeStats:
        """Merge one batch into the store.

        Raises:
            StoreReadError: If the existing store cannot be read. The store
                is not written in that case.
            PersistenceWriteError: If the merged collection cannot be written
        """
        batch = list(batch)
        existing = await store.load_all()
        merged, stats = apply_batch(existing, batch, provenance)

        if stats.changed:
            await store.replace_all(merged.values())

        self.logger.info(
            "batch_merged",
            provenance=provenance.value,
            batch_size=len(batch),
            total=len(merged),
            **stats.as_dict(),
        )
        return stats

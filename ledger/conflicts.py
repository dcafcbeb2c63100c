# ledger/conflicts.py
"""
Conflict resolution for single-record writes.

A candidate carries the `updated_at` its author read (the baseline). If the
store has moved past that baseline, another device wrote in between and the
candidate is stale: the write is refused and the caller gets the store's
record to refresh its editing surface. Otherwise the write goes through as a
compare-and-set on `updated_at`, so a writer that slips in between our read
and our write is also detected.

A stale candidate whose content already equals the stored record is not a
conflict: it is a repeat of a write that already landed.
"""
import logging
from datetime import datetime

from ledger.models import Asset, SaveOutcome
from ledger.store import DuplicateAssetError, RecordStore

logger = logging.getLogger(__name__)


def is_stale(baseline: datetime, current: datetime) -> bool:
    """True when the store's record is strictly newer than the baseline."""
    return current > baseline


def same_content(candidate: Asset, current: Asset) -> bool:
    # Attachments are kept in their own table and never written with the record
    skip = {"updated_at", "attachments"}
    return candidate.model_dump(exclude=skip) == current.model_dump(exclude=skip)


class ConflictPolicy:
    """Reject stale writes, let everything else through."""

    async def write(self, store: RecordStore, candidate: Asset) -> SaveOutcome:
        current = await store.fetch_one(candidate.id)

        if current is None:
            try:
                stored = await store.insert(candidate)
            except DuplicateAssetError:
                # Someone created the same id first
                latest = await store.fetch_one(candidate.id)
                if latest is None:
                    raise
                return SaveOutcome(asset=latest, conflict=True)
            return SaveOutcome(asset=stored)

        if is_stale(candidate.updated_at, current.updated_at):
            if same_content(candidate, current):
                return SaveOutcome(asset=current)
            logger.warning(
                "Conflict on asset %s: baseline %s, store has %s",
                candidate.id,
                candidate.updated_at.isoformat(),
                current.updated_at.isoformat(),
            )
            return SaveOutcome(asset=current, conflict=True)

        stored = await store.compare_and_set(candidate, expected=current.updated_at)
        if stored is None:
            # Another writer landed between our read and our write
            latest = await store.fetch_one(candidate.id)
            logger.warning("Conflict on asset %s: lost compare-and-set race", candidate.id)
            return SaveOutcome(asset=latest or current, conflict=True)

        return SaveOutcome(asset=stored)

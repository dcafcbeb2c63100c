# ledger/repository.py
"""
Asset repository: the remote record store with a local cache mirror behind it.

Reads prefer the store and fall back to the cache; writes go through the
conflict policy and degrade to cache-only persistence when the store is
unreachable. Every successful remote write is mirrored to the cache.

Cache file I/O runs in a worker thread so the event loop is never blocked.
"""
import logging

import anyio

from ledger.cache import LocalCacheMirror
from ledger.conflicts import ConflictPolicy
from ledger.models import Asset, SaveOutcome
from ledger.store import RecordStore, StoreUnavailableError, next_stamp
from ledger.sync import ASSETS_COLLECTION, ChangeEvent, ChangeFeed

logger = logging.getLogger(__name__)


class AssetRepository:
    def __init__(
        self,
        store: RecordStore | None,
        cache: LocalCacheMirror,
        policy: ConflictPolicy | None = None,
        feed: ChangeFeed | None = None,
    ):
        # store=None: no remote store configured, cache-only mode
        self.store = store
        self.cache = cache
        self.policy = policy or ConflictPolicy()
        self.feed = feed
        # Set once any write of this repository fell back to the cache
        self.offline = False

    @property
    def remote_available(self) -> bool:
        return self.store is not None

    # --- reads ---

    async def fetch_all(self) -> list[Asset]:
        """Every asset, newest first. Never raises; [] when nothing is available."""
        if self.store is None:
            return await self._cached_all()
        try:
            await self._replay_pending()
            assets = await self.store.fetch_all()
        except StoreUnavailableError:
            logger.warning("Record store unavailable, serving assets from local cache")
            return await self._cached_all()

        # An empty remote read is authoritative too
        await self._mirror(self.cache.replace, assets)
        return assets

    async def fetch_one(self, asset_id: str) -> Asset | None:
        if self.store is not None:
            try:
                return await self.store.fetch_one(asset_id)
            except StoreUnavailableError:
                logger.warning("Record store unavailable, reading asset %s from cache", asset_id)
        try:
            return await anyio.to_thread.run_sync(self.cache.get, asset_id)
        except OSError:
            return None

    async def _cached_all(self) -> list[Asset]:
        try:
            return await anyio.to_thread.run_sync(self.cache.load)
        except OSError:
            return []

    # --- writes ---

    async def upsert_one(self, candidate: Asset) -> SaveOutcome:
        """
        Write one record with conflict detection.

        `candidate.updated_at` must be the baseline the edit started from.
        """
        if self.store is None:
            return await self._save_offline(candidate)
        try:
            outcome = await self.policy.write(self.store, candidate)
        except StoreUnavailableError:
            logger.warning("Record store unavailable, asset %s saved to local cache only", candidate.id)
            return await self._save_offline(candidate)

        await self._mirror(self.cache.upsert, outcome.asset)
        if not outcome.conflict:
            self._publish("update", outcome.asset.id)
        return outcome

    async def upsert_many(self, candidates: list[Asset]) -> list[Asset]:
        """Bulk write without conflict detection; imports replace whatever is stored."""
        if not candidates:
            return []
        if self.store is None:
            return await self._save_all_offline(candidates)
        try:
            stored = await self.store.upsert_many(candidates)
        except StoreUnavailableError:
            logger.warning(
                "Record store unavailable, %d assets saved to local cache only", len(candidates)
            )
            return await self._save_all_offline(candidates)

        await self._mirror(self.cache.upsert_many, stored)
        for asset in stored:
            self._publish("update", asset.id)
        return stored

    def _stamp_and_cache(self, candidate: Asset) -> Asset:
        cached = self.cache.get(candidate.id)
        previous = candidate.updated_at
        if cached is not None and cached.updated_at > previous:
            previous = cached.updated_at
        stamped = candidate.model_copy(update={"updated_at": next_stamp(previous)})
        self.cache.upsert(stamped, baseline=candidate.updated_at)
        return stamped

    async def _save_offline(self, candidate: Asset) -> SaveOutcome:
        """Stamp locally and keep the record for replay. Never reports a conflict."""
        try:
            stamped = await anyio.to_thread.run_sync(self._stamp_and_cache, candidate)
        except OSError as exc:
            raise StoreUnavailableError("Neither the record store nor the local cache is writable") from exc
        self.offline = True
        return SaveOutcome(asset=stamped, offline=True)

    async def _save_all_offline(self, candidates: list[Asset]) -> list[Asset]:
        return [(await self._save_offline(candidate)).asset for candidate in candidates]

    async def _replay_pending(self) -> None:
        """Push offline writes to the store, oldest baseline first."""
        try:
            pending = await anyio.to_thread.run_sync(self.cache.pending)
        except OSError:
            return
        if not pending:
            return

        replayed = []
        for asset, baseline in sorted(pending, key=lambda item: item[1]):
            outcome = await self.policy.write(self.store, asset.model_copy(update={"updated_at": baseline}))
            if outcome.conflict:
                logger.warning(
                    "Offline edit of asset %s conflicts with a newer remote version; keeping remote",
                    asset.id,
                )
            else:
                self._publish("update", asset.id)
            replayed.append(asset.id)

        logger.info("Replayed %d offline asset writes", len(replayed))
        await self._mirror(self.cache.clear_pending, replayed)

    # --- helpers ---

    async def _mirror(self, write, *args) -> None:
        try:
            await anyio.to_thread.run_sync(write, *args)
        except OSError:
            # Already logged by the cache; the remote write stands
            pass

    def _publish(self, event: str, asset_id: str) -> None:
        if self.feed is not None:
            self.feed.publish(ChangeEvent(ASSETS_COLLECTION, event, asset_id))

# ledger/store.py
"""
Record store contract and its SQLAlchemy implementation.

The store is the remote side of the repository: rows keyed by `id`, reads
ordered by `updated_at` descending, and a fresh `updated_at` stamped by the
store on every write. Connection-level failures surface as
StoreUnavailableError so the repository can fall back to the cache mirror.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Protocol

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from db_models.asset import AssetRow
from ledger.models import Asset, AssetStatus, as_utc, utcnow
from . import queries

logger = logging.getLogger(__name__)


class StoreUnavailableError(Exception):
    """Raised when the remote store cannot be reached or fails mid-request."""
    pass


class DuplicateAssetError(Exception):
    """Raised when a write violates a uniqueness constraint (id or asset number)."""
    pass


class RecordStore(Protocol):
    async def fetch_all(self) -> list[Asset]: ...

    async def fetch_one(self, asset_id: str) -> Asset | None: ...

    async def insert(self, candidate: Asset) -> Asset: ...

    async def compare_and_set(self, candidate: Asset, expected: datetime) -> Asset | None: ...

    async def upsert_many(self, candidates: list[Asset]) -> list[Asset]: ...


def next_stamp(previous: datetime | None) -> datetime:
    """
    A write timestamp strictly after `previous`.

    Keeps `updated_at` monotonic per record even when two writes fall in the
    same clock tick or the clock steps back.
    """
    now = utcnow()
    if previous is not None and now <= as_utc(previous):
        return as_utc(previous) + timedelta(microseconds=1)
    return now


def row_to_asset(row: AssetRow) -> Asset:
    return Asset(
        id=row.id,
        asset_number=row.asset_number,
        equipment_name=row.equipment_name or "",
        acquisition_date=row.acquisition_date or "",
        acquisition_amount=row.acquisition_amount,
        lifespan_years=row.lifespan_years,
        factory=row.factory or "",
        catalog_name=row.catalog_name or "",
        description=row.description or "",
        attachments=[attachment.file_name for attachment in row.attachments],
        building=row.building or "",
        floor=row.floor or "",
        g=row.g,
        u=row.u,
        t=row.t,
        comment=row.comment or "",
        status=AssetStatus(row.status),
        updated_at=as_utc(row.updated_at),
        input_by=row.input_by or "",
        assigned_to=row.assigned_to or "",
    )


def asset_to_values(asset: Asset) -> dict:
    """Column values for a write. Attachments live in their own table."""
    return {
        "id": asset.id,
        "asset_number": asset.asset_number,
        "equipment_name": asset.equipment_name,
        "acquisition_date": asset.acquisition_date,
        "acquisition_amount": asset.acquisition_amount,
        "lifespan_years": asset.lifespan_years,
        "factory": asset.factory,
        "catalog_name": asset.catalog_name or None,
        "description": asset.description or None,
        "building": asset.building or None,
        "floor": asset.floor or None,
        "g": asset.g,
        "u": asset.u,
        "t": asset.t,
        "comment": asset.comment or None,
        "status": asset.status.value,
        "input_by": asset.input_by,
        "assigned_to": asset.assigned_to or None,
    }


class SqlRecordStore:
    """RecordStore over an AsyncSession (PostgreSQL in production)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _rollback(self) -> None:
        try:
            await self.session.rollback()
        except (DBAPIError, OSError):
            logger.debug("Rollback failed on a broken connection", exc_info=True)

    @asynccontextmanager
    async def _guard(self, action: str):
        try:
            yield
        except IntegrityError as exc:
            await self._rollback()
            raise DuplicateAssetError(str(exc.orig)) from exc
        except (DBAPIError, OSError) as exc:
            await self._rollback()
            raise StoreUnavailableError(f"Record store unavailable during {action}") from exc

    async def fetch_all(self) -> list[Asset]:
        async with self._guard("fetch_all"):
            result = await self.session.execute(queries.select_all_assets())
            rows = list(result.scalars().all())
        return [row_to_asset(row) for row in rows]

    async def fetch_one(self, asset_id: str) -> Asset | None:
        async with self._guard("fetch_one"):
            result = await self.session.execute(queries.select_asset_by_id(asset_id))
            row = result.scalar_one_or_none()
        return row_to_asset(row) if row is not None else None

    async def insert(self, candidate: Asset) -> Asset:
        async with self._guard("insert"):
            row = AssetRow(**asset_to_values(candidate), updated_at=next_stamp(None))
            self.session.add(row)
            await self.session.commit()
        stored = await self.fetch_one(candidate.id)
        return stored

    async def compare_and_set(self, candidate: Asset, expected: datetime) -> Asset | None:
        values = asset_to_values(candidate)
        values["updated_at"] = next_stamp(expected)
        async with self._guard("compare_and_set"):
            result = await self.session.execute(
                queries.update_asset_if_unchanged(candidate.id, expected, values)
            )
            if result.rowcount == 0:
                await self.session.rollback()
                return None
            await self.session.commit()
        return await self.fetch_one(candidate.id)

    async def upsert_many(self, candidates: list[Asset]) -> list[Asset]:
        # Last occurrence of an id wins; order of first appearance is kept
        by_id: dict[str, Asset] = {}
        for candidate in candidates:
            by_id[candidate.id] = candidate
        if not by_id:
            return []

        async with self._guard("upsert_many"):
            for asset_id, candidate in by_id.items():
                existing = await self.session.get(AssetRow, asset_id, populate_existing=True)
                values = asset_to_values(candidate)
                values["updated_at"] = next_stamp(existing.updated_at if existing else None)
                if existing is None:
                    self.session.add(AssetRow(**values))
                else:
                    for name, value in values.items():
                        setattr(existing, name, value)
            await self.session.commit()

            result = await self.session.execute(queries.select_assets_by_ids(list(by_id)))
            stored = {row.id: row_to_asset(row) for row in result.scalars().all()}
        return [stored[asset_id] for asset_id in by_id if asset_id in stored]

# api/assets/db_manager.py
"""
Business logic for the asset workflow endpoints.

Each action loads the current record, rebuilds it at the caller's baseline,
runs the workflow operation on it and writes the candidate through the
repository's conflict policy.
"""
import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import async_sessionmaker

from db_models.user import User
from ledger import csv_io, workflow
from ledger.cache import LocalCacheMirror
from ledger.conflicts import is_stale
from ledger.models import Asset, AssetStatus, SaveOutcome, as_utc
from ledger.repository import AssetRepository
from ledger.store import SqlRecordStore
from ledger.sync import ChangeFeed
from ledger.workflow import WorkflowError, WorkflowRole

logger = logging.getLogger(__name__)


class AssetNotFoundError(Exception):
    """Raised when the asset doesn't exist."""
    pass


def workflow_role_for(user: User, asset: Asset) -> WorkflowRole:
    """
    Workflow role a user acts in on `asset`.

    Admins act as reviewer on records awaiting review and as customer otherwise.
    """
    if user.is_admin():
        if asset.status == AssetStatus.PENDING_REVIEW:
            return WorkflowRole.REVIEWER
        return WorkflowRole.CUSTOMER
    if user.is_reviewer():
        return WorkflowRole.REVIEWER
    return WorkflowRole.CUSTOMER


async def get_asset(repo: AssetRepository, asset_id: str) -> Asset:
    asset = await repo.fetch_one(asset_id)
    if asset is None:
        raise AssetNotFoundError(f"Asset {asset_id} not found")
    return asset


def filter_assets(
    assets: list[Asset],
    factory: str | None = None,
    building: str | None = None,
    floor: str | None = None,
    status: AssetStatus | None = None,
    search: str | None = None,
) -> list[Asset]:
    """Exact match on location and status; `search` is a case-insensitive substring."""
    needle = search.strip().lower() if search else ""
    result = []
    for asset in assets:
        if factory and asset.factory != factory:
            continue
        if building and asset.building != building:
            continue
        if floor and asset.floor != floor:
            continue
        if status and asset.status != status:
            continue
        if needle and not any(
            needle in value.lower()
            for value in (asset.asset_number, asset.equipment_name, asset.catalog_name)
        ):
            continue
        result.append(asset)
    return result


async def _act(
    repo: AssetRepository,
    asset_id: str,
    base_updated_at: datetime,
    operation: Callable[[Asset], Asset],
) -> SaveOutcome:
    current = await get_asset(repo, asset_id)
    baseline = as_utc(base_updated_at)
    try:
        candidate = operation(current.model_copy(update={"updated_at": baseline}))
    except WorkflowError:
        # A rejection against a record that moved on is reported as the conflict it is
        if is_stale(baseline, current.updated_at):
            logger.warning("Conflict on asset %s: action refused on a stale baseline", asset_id)
            return SaveOutcome(asset=current, conflict=True)
        raise
    outcome = await repo.upsert_one(candidate)
    if not outcome.conflict and candidate.status != current.status:
        logger.info(
            "Asset %s moved %s -> %s", asset_id, current.status.value, candidate.status.value
        )
    return outcome


async def edit_asset(repo, user: User, asset_id: str, base_updated_at: datetime, changes: dict) -> SaveOutcome:
    return await _act(
        repo, asset_id, base_updated_at,
        lambda asset: workflow.edit(asset, workflow_role_for(user, asset), changes),
    )


async def submit_asset(repo, asset_id: str, base_updated_at: datetime, changes: dict) -> SaveOutcome:
    return await _act(
        repo, asset_id, base_updated_at,
        lambda asset: workflow.submit(asset, WorkflowRole.CUSTOMER, changes),
    )


async def approve_asset(repo, asset_id: str, base_updated_at: datetime, changes: dict) -> SaveOutcome:
    return await _act(
        repo, asset_id, base_updated_at,
        lambda asset: workflow.approve(asset, WorkflowRole.REVIEWER, changes),
    )


async def reject_asset(repo, asset_id: str, base_updated_at: datetime, comment: str) -> SaveOutcome:
    return await _act(
        repo, asset_id, base_updated_at,
        lambda asset: workflow.reject(asset, WorkflowRole.REVIEWER, comment),
    )


async def bulk_submit(repo: AssetRepository, asset_ids: list[str]) -> tuple[list[Asset], list[dict]]:
    """
    Submit every selected asset that passes its guard.

    Each submission is its own conflict-checked write: an asset another
    device changed since it was read here is reported as a conflict with the
    stored record and left as it is. Returns (submitted assets, failures).
    """
    candidates, failed = [], []
    for asset_id in dict.fromkeys(asset_ids):
        current = await repo.fetch_one(asset_id)
        if current is None:
            failed.append({"asset_id": asset_id, "message": "Asset not found"})
            continue
        try:
            candidates.append(workflow.submit(current, WorkflowRole.CUSTOMER))
        except workflow.WorkflowValidationError as exc:
            failed.append({"asset_id": asset_id, "message": str(exc), "field_errors": exc.field_errors})
        except WorkflowError as exc:
            failed.append({"asset_id": asset_id, "message": str(exc)})

    submitted = []
    for candidate in candidates:
        outcome = await repo.upsert_one(candidate)
        if outcome.conflict:
            failed.append({
                "asset_id": candidate.id,
                "message": "Asset was changed by another user",
                "conflict": True,
                "asset": outcome.asset,
            })
        else:
            submitted.append(outcome.asset)
    logger.info("Bulk submit: %d submitted, %d refused", len(submitted), len(failed))
    return submitted, failed


async def import_assets(repo: AssetRepository, raw: bytes, preserve_status: bool = False) -> dict:
    """
    Raises:
        csv_io.CsvImportError: unreadable file; nothing is written
    """
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise csv_io.CsvImportError("The file is not UTF-8 encoded") from exc

    parsed = csv_io.parse_csv(text)
    prepared = csv_io.prepare_import(parsed, preserve_status=preserve_status)
    downgraded = sum(
        1 for before, after in zip(parsed, prepared)
        if preserve_status and before.status != after.status
    )
    stored = await repo.upsert_many(prepared)
    logger.info("Imported %d assets (%d downgraded to unfilled)", len(stored), downgraded)
    return {
        "imported_count": len(stored),
        "downgraded_count": downgraded,
        "offline": repo.offline,
        "assets": stored,
    }


async def export_assets(repo: AssetRepository) -> str:
    return csv_io.export_csv(await repo.fetch_all())


def make_fetcher(
    session_factory: async_sessionmaker | None,
    cache: LocalCacheMirror,
    feed: ChangeFeed,
):
    """
    fetch_all for long-lived consumers (the event stream): one short-lived
    session per fetch instead of one per request.
    """
    async def fetch_all() -> list[Asset]:
        if session_factory is None:
            return await AssetRepository(None, cache, feed=feed).fetch_all()
        async with session_factory() as session:
            return await AssetRepository(SqlRecordStore(session), cache, feed=feed).fetch_all()

    return fetch_all

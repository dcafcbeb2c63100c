# api/assets/views.py
"""
Asset ledger endpoints: listing, workflow actions, import/export and the
live change stream.
"""
import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import contextmanager

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response, StreamingResponse
from sqlalchemy.ext.asyncio import async_sessionmaker

from config import settings
from db import get_sessionmaker
from core.deps import (
    CurrentUser,
    CustomerUser,
    ReviewerUser,
    Repository,
    get_cache_mirror,
    get_change_feed,
)
from ledger.cache import LocalCacheMirror
from ledger.csv_io import CsvImportError
from ledger.models import Asset, AssetStatus, SaveOutcome
from ledger.store import DuplicateAssetError, StoreUnavailableError
from ledger.sync import ChangeFeed, SyncLoop
from ledger.workflow import (
    InvalidTransitionError,
    WorkflowPermissionError,
    WorkflowValidationError,
)
from .models import (
    AssetEdit,
    SubmitRequest,
    ApproveRequest,
    RejectRequest,
    BulkSubmitRequest,
    BulkSubmitResult,
    ImportResult,
    ConflictResponse,
)
from . import db_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assets", tags=["assets"])


@contextmanager
def workflow_errors():
    """Map workflow and store exceptions to HTTP errors."""
    try:
        yield
    except db_manager.AssetNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except WorkflowPermissionError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"message": str(exc), "fields": exc.fields},
        ) from exc
    except WorkflowValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": "Validation failed", "field_errors": exc.field_errors},
        ) from exc
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except DuplicateAssetError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


def outcome_response(outcome: SaveOutcome) -> SaveOutcome | JSONResponse:
    if outcome.conflict:
        body = ConflictResponse(asset=outcome.asset)
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=jsonable_encoder(body))
    return outcome


@router.get(
    "",
    response_model=list[Asset],
    summary="List assets",
)
async def list_assets_endpoint(
    current_user: CurrentUser,
    repo: Repository,
    factory: str | None = Query(None),
    building: str | None = Query(None),
    floor: str | None = Query(None),
    status_filter: AssetStatus | None = Query(None, alias="status"),
    search: str | None = Query(None, description="Asset number, equipment or catalog name"),
) -> list[Asset]:
    """
    All assets, most recently updated first. Served from the local cache
    mirror when the record store is unreachable.
    """
    assets = await repo.fetch_all()
    return db_manager.filter_assets(
        assets,
        factory=factory,
        building=building,
        floor=floor,
        status=status_filter,
        search=search,
    )


@router.get(
    "/export",
    summary="Export assets as CSV",
    response_class=Response,
)
async def export_assets_endpoint(
    current_user: CurrentUser,
    repo: Repository,
) -> Response:
    content = await db_manager.export_assets(repo)
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="assets.csv"'},
    )


def format_event(event: str, data) -> str:
    return f"event: {event}\ndata: {json.dumps(jsonable_encoder(data), ensure_ascii=False)}\n\n"


async def asset_events(
    fetch_all: Callable[[], Awaitable[list[Asset]]],
    feed: ChangeFeed,
    poll_interval: float,
    receive_timeout: float,
) -> AsyncIterator[str]:
    """One `assets` event with the full set now, then one per change."""
    queue: asyncio.Queue[list[Asset]] = asyncio.Queue()
    loop = SyncLoop(
        fetch_all,
        feed,
        on_change=queue.put_nowait,
        poll_interval=poll_interval,
        receive_timeout=receive_timeout,
    )
    loop.start()
    try:
        while True:
            assets = await queue.get()
            yield format_event("assets", assets)
    finally:
        await loop.stop()


@router.get(
    "/stream",
    summary="Stream asset changes (server-sent events)",
    response_class=StreamingResponse,
)
async def stream_assets_endpoint(
    current_user: CurrentUser,
    session_factory: async_sessionmaker | None = Depends(get_sessionmaker),
    cache: LocalCacheMirror = Depends(get_cache_mirror),
    feed: ChangeFeed = Depends(get_change_feed),
) -> StreamingResponse:
    fetch_all = db_manager.make_fetcher(session_factory, cache, feed)
    return StreamingResponse(
        asset_events(fetch_all, feed, settings.SYNC_POLL_INTERVAL, settings.SYNC_RECEIVE_TIMEOUT),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


@router.post(
    "/import",
    response_model=ImportResult,
    summary="Import assets from CSV",
)
async def import_assets_endpoint(
    customer: CustomerUser,
    repo: Repository,
    file: UploadFile = File(...),
    preserve_status: bool = Form(False),
) -> ImportResult:
    """
    Bulk import. Imported assets start `unfilled` unless `preserve_status`
    is set; the whole file is rejected if it cannot be parsed.
    """
    raw = await file.read()
    with workflow_errors():
        try:
            result = await db_manager.import_assets(repo, raw, preserve_status=preserve_status)
        except CsvImportError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return ImportResult(**result)


@router.post(
    "/submit",
    response_model=BulkSubmitResult,
    summary="Submit several assets for review",
)
async def bulk_submit_endpoint(
    payload: BulkSubmitRequest,
    customer: CustomerUser,
    repo: Repository,
) -> BulkSubmitResult:
    """
    Assets that fail their guard are reported in `failed` and left untouched.
    """
    with workflow_errors():
        submitted, failed = await db_manager.bulk_submit(repo, payload.asset_ids)
    return BulkSubmitResult(submitted=submitted, failed=failed, offline=repo.offline)


@router.get(
    "/{asset_id}",
    response_model=Asset,
    summary="Get an asset",
)
async def get_asset_endpoint(
    asset_id: str,
    current_user: CurrentUser,
    repo: Repository,
) -> Asset:
    with workflow_errors():
        return await db_manager.get_asset(repo, asset_id)


@router.patch(
    "/{asset_id}",
    response_model=SaveOutcome,
    responses={409: {"model": ConflictResponse}},
    summary="Edit asset fields",
)
async def edit_asset_endpoint(
    asset_id: str,
    payload: AssetEdit,
    current_user: CurrentUser,
    repo: Repository,
):
    """
    Customer fields while unfilled or rejected, reviewer fields while
    pending review. Answers 409 with the current record if someone else
    saved since `base_updated_at`.
    """
    with workflow_errors():
        outcome = await db_manager.edit_asset(
            repo, current_user, asset_id, payload.base_updated_at, payload.changes
        )
    return outcome_response(outcome)


@router.post(
    "/{asset_id}/submit",
    response_model=SaveOutcome,
    responses={409: {"model": ConflictResponse}},
    summary="Submit an asset for review",
)
async def submit_asset_endpoint(
    asset_id: str,
    payload: SubmitRequest,
    customer: CustomerUser,
    repo: Repository,
):
    with workflow_errors():
        outcome = await db_manager.submit_asset(
            repo, asset_id, payload.base_updated_at, payload.changes
        )
    return outcome_response(outcome)


@router.post(
    "/{asset_id}/approve",
    response_model=SaveOutcome,
    responses={409: {"model": ConflictResponse}},
    summary="Approve an asset",
)
async def approve_asset_endpoint(
    asset_id: str,
    payload: ApproveRequest,
    reviewer: ReviewerUser,
    repo: Repository,
):
    """Requires G, U and T (1-5), either already on the record or in the request."""
    with workflow_errors():
        outcome = await db_manager.approve_asset(
            repo, asset_id, payload.base_updated_at, payload.changes()
        )
    return outcome_response(outcome)


@router.post(
    "/{asset_id}/reject",
    response_model=SaveOutcome,
    responses={409: {"model": ConflictResponse}},
    summary="Reject an asset back to the customer",
)
async def reject_asset_endpoint(
    asset_id: str,
    payload: RejectRequest,
    reviewer: ReviewerUser,
    repo: Repository,
):
    with workflow_errors():
        outcome = await db_manager.reject_asset(
            repo, asset_id, payload.base_updated_at, payload.comment
        )
    return outcome_response(outcome)

# api/attachments/views.py
"""
Attachment endpoints. Customers attach files while the asset is still theirs
to edit (unfilled or rejected); anyone signed in can list them.
"""
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from config import settings
from core.deps import (
    CurrentUser,
    CustomerUser,
    Repository,
    Session,
    get_attachment_store,
    get_cache_mirror,
    get_change_feed,
)
from api.assets import db_manager as asset_manager
from ledger.attachments import AttachmentManager, IncomingFile, LocalAttachmentStore
from ledger.cache import LocalCacheMirror
from ledger.sync import ChangeFeed
from ledger.workflow import WorkflowPermissionError, WorkflowRole, authorize_attachment_change
from .models import AttachmentRead, AttachmentUploadResult

router = APIRouter(prefix="/assets/{asset_id}/attachments", tags=["attachments"])


def get_attachment_manager(
    db: Session,
    store: LocalAttachmentStore = Depends(get_attachment_store),
    feed: ChangeFeed = Depends(get_change_feed),
    cache: LocalCacheMirror = Depends(get_cache_mirror),
) -> AttachmentManager:
    return AttachmentManager(store, db, max_bytes=settings.MAX_UPLOAD_BYTES, feed=feed, cache=cache)


async def _authorized_asset(repo, asset_id: str):
    try:
        asset = await asset_manager.get_asset(repo, asset_id)
        authorize_attachment_change(asset, WorkflowRole.CUSTOMER)
    except asset_manager.AssetNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except WorkflowPermissionError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"message": str(exc), "fields": exc.fields},
        ) from exc
    return asset


@router.post(
    "",
    response_model=AttachmentUploadResult,
    summary="Upload attachments",
)
async def upload_attachments_endpoint(
    asset_id: str,
    customer: CustomerUser,
    repo: Repository,
    files: list[UploadFile] = File(...),
    manager: AttachmentManager = Depends(get_attachment_manager),
) -> AttachmentUploadResult:
    """
    Store each file (max MAX_UPLOAD_BYTES). A file that fails is dropped from
    `uploaded`, named in `failed`, and leaves nothing behind.
    """
    await _authorized_asset(repo, asset_id)

    incoming = []
    for upload in files:
        # One byte past the limit is enough to reject the file
        content = await upload.read(manager.max_bytes + 1)
        incoming.append(IncomingFile(upload.filename or "file", content, upload.content_type))

    uploaded, failed = await manager.upload(asset_id, incoming)
    return AttachmentUploadResult(
        uploaded=[AttachmentRead.model_validate(info) for info in uploaded],
        failed=failed,
    )


@router.get(
    "",
    response_model=list[AttachmentRead],
    summary="List attachments",
)
async def list_attachments_endpoint(
    asset_id: str,
    current_user: CurrentUser,
    manager: AttachmentManager = Depends(get_attachment_manager),
) -> list[AttachmentRead]:
    attachments = await manager.list_by_owner(asset_id)
    return [AttachmentRead.model_validate(info) for info in attachments]


@router.delete(
    "/{file_name}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an attachment",
)
async def delete_attachment_endpoint(
    asset_id: str,
    file_name: str,
    customer: CustomerUser,
    repo: Repository,
    manager: AttachmentManager = Depends(get_attachment_manager),
) -> None:
    await _authorized_asset(repo, asset_id)
    if not await manager.delete(asset_id, file_name):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Attachment {file_name} not found on asset {asset_id}",
        )

# ledger/queries.py
"""
SQLAlchemy query builders for the asset record store.
"""
from datetime import datetime

from sqlalchemy import select, update, delete
from sqlalchemy.orm import selectinload

from db_models.asset import AssetRow
from db_models.asset_attachment import AttachmentRow


def select_all_assets():
    """Select every asset, most recently updated first, with attachment names."""
    return (
        select(AssetRow)
        .options(selectinload(AssetRow.attachments))
        .order_by(AssetRow.updated_at.desc())
        .execution_options(populate_existing=True)
    )


def select_asset_by_id(asset_id: str):
    """Select one asset by id, bypassing the session identity map."""
    return (
        select(AssetRow)
        .options(selectinload(AssetRow.attachments))
        .where(AssetRow.id == asset_id)
        .execution_options(populate_existing=True)
    )


def select_assets_by_ids(asset_ids: list[str]):
    return (
        select(AssetRow)
        .options(selectinload(AssetRow.attachments))
        .where(AssetRow.id.in_(asset_ids))
        .execution_options(populate_existing=True)
    )


def update_asset_if_unchanged(asset_id: str, expected_updated_at: datetime, values: dict):
    """
    Compare-and-set: update only if nobody wrote since `expected_updated_at`.
    Zero affected rows means the caller lost the race.
    """
    return (
        update(AssetRow)
        .where(
            AssetRow.id == asset_id,
            AssetRow.updated_at == expected_updated_at,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )


def select_attachments_for_asset(asset_id: str):
    """Attachments of an asset in upload order."""
    return (
        select(AttachmentRow)
        .where(AttachmentRow.asset_id == asset_id)
        .order_by(AttachmentRow.id.asc())
    )


def select_attachment_by_name(asset_id: str, file_name: str):
    """Latest attachment of an asset with this display name."""
    return (
        select(AttachmentRow)
        .where(
            AttachmentRow.asset_id == asset_id,
            AttachmentRow.file_name == file_name,
        )
        .order_by(AttachmentRow.id.desc())
        .limit(1)
    )


def delete_attachment_by_path(asset_id: str, file_path: str):
    return delete(AttachmentRow).where(
        AttachmentRow.asset_id == asset_id,
        AttachmentRow.file_path == file_path,
    )

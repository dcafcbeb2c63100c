# ledger/attachments.py
"""
Attachment files and their metadata rows.

Blobs live in an attachment store under `<asset_id>/<timestamp>_<name>`;
one `asset_attachments` row per blob links it to its asset. A file whose
blob or row cannot be written is dropped from the result and leaves
nothing behind.
"""
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import anyio
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from db_models.asset import AssetRow
from db_models.asset_attachment import AttachmentRow
from ledger.cache import LocalCacheMirror
from ledger.store import SqlRecordStore, StoreUnavailableError, next_stamp
from ledger.sync import ASSETS_COLLECTION, ChangeEvent, ChangeFeed
from . import queries

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 10 * 1024 * 1024


class AttachmentUploadError(Exception):
    """Raised when one file cannot be stored."""
    pass


@dataclass(frozen=True)
class StoredFile:
    path: str
    public_url: str


@dataclass(frozen=True)
class AttachmentInfo:
    file_name: str
    file_path: str
    url: str
    file_size: int = 0
    file_type: str | None = None


@dataclass(frozen=True)
class IncomingFile:
    file_name: str
    content: bytes
    content_type: str | None = None


class AttachmentStore(Protocol):
    async def upload(self, owner_id: str, content: bytes, file_name: str) -> StoredFile: ...

    async def delete(self, path: str) -> bool: ...

    def public_url(self, path: str) -> str: ...


def sanitize_file_name(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9.-]", "_", name) or "file"


class LocalAttachmentStore:
    """Attachment store on the local filesystem, served under `public_base_url`."""

    def __init__(self, root: str | Path, public_base_url: str = "/files"):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}/{path}"

    def _write_new(self, owner_id: str, content: bytes, file_name: str) -> str:
        owner_dir = self.root / sanitize_file_name(owner_id)
        owner_dir.mkdir(parents=True, exist_ok=True)
        timestamp = int(time.time() * 1000)
        while True:
            relative = f"{owner_dir.name}/{timestamp}_{sanitize_file_name(file_name)}"
            try:
                with open(self.root / relative, "xb") as handle:
                    handle.write(content)
                return relative
            except FileExistsError:
                timestamp += 1

    async def upload(self, owner_id: str, content: bytes, file_name: str) -> StoredFile:
        try:
            path = await anyio.to_thread.run_sync(self._write_new, owner_id, content, file_name)
        except OSError as exc:
            raise AttachmentUploadError(f"Could not store {file_name}: {exc}") from exc
        return StoredFile(path=path, public_url=self.public_url(path))

    async def delete(self, path: str) -> bool:
        try:
            await anyio.to_thread.run_sync(lambda: (self.root / path).unlink(missing_ok=True))
        except OSError:
            logger.warning("Could not delete attachment %s", path, exc_info=True)
            return False
        return True


class AttachmentManager:
    """Uploads, lists and removes the attachments of one asset at a time."""

    def __init__(
        self,
        store: AttachmentStore,
        session: AsyncSession,
        max_bytes: int = DEFAULT_MAX_BYTES,
        feed: ChangeFeed | None = None,
        cache: LocalCacheMirror | None = None,
    ):
        self.store = store
        self.session = session
        self.max_bytes = max_bytes
        self.feed = feed
        self.cache = cache

    def _info(self, row: AttachmentRow) -> AttachmentInfo:
        return AttachmentInfo(
            file_name=row.file_name,
            file_path=row.file_path,
            url=self.store.public_url(row.file_path),
            file_size=row.file_size,
            file_type=row.file_type,
        )

    async def list_by_owner(self, asset_id: str) -> list[AttachmentInfo]:
        result = await self.session.execute(queries.select_attachments_for_asset(asset_id))
        return [self._info(row) for row in result.scalars().all()]

    async def _touch(self, asset_id: str) -> None:
        # Attachment changes are record changes: bump updated_at with them
        row = await self.session.get(AssetRow, asset_id, populate_existing=True)
        if row is not None:
            row.updated_at = next_stamp(row.updated_at)

    async def _announce(self, asset_id: str) -> None:
        """Mirror the re-stamped owner into the cache, then notify subscribers."""
        if self.cache is not None:
            try:
                owner = await SqlRecordStore(self.session).fetch_one(asset_id)
                if owner is not None:
                    await anyio.to_thread.run_sync(self.cache.upsert, owner)
            except (StoreUnavailableError, OSError):
                # The stored change stands; the next full read refreshes the cache
                logger.warning("Could not mirror attachment change of asset %s", asset_id)
        if self.feed is not None:
            self.feed.publish(ChangeEvent(ASSETS_COLLECTION, "update", asset_id))

    async def _upload_one(self, asset_id: str, incoming: IncomingFile) -> AttachmentInfo:
        if len(incoming.content) > self.max_bytes:
            raise AttachmentUploadError(
                f"{incoming.file_name} exceeds the {self.max_bytes // (1024 * 1024)} MB limit"
            )

        stored = await self.store.upload(asset_id, incoming.content, incoming.file_name)
        row = AttachmentRow(
            asset_id=asset_id,
            file_name=incoming.file_name,
            file_path=stored.path,
            file_size=len(incoming.content),
            file_type=incoming.content_type,
        )
        try:
            self.session.add(row)
            await self._touch(asset_id)
            await self.session.commit()
        except (DBAPIError, OSError) as exc:
            await self.session.rollback()
            await self.store.delete(stored.path)
            raise AttachmentUploadError(f"Could not record {incoming.file_name}") from exc
        return self._info(row)

    async def upload(self, asset_id: str, files: list[IncomingFile]) -> tuple[list[AttachmentInfo], list[str]]:
        """
        Store each file. Returns (stored attachments, names of files that failed).
        """
        uploaded, failed = [], []
        for incoming in files:
            try:
                uploaded.append(await self._upload_one(asset_id, incoming))
            except AttachmentUploadError as exc:
                logger.warning("Attachment upload failed for asset %s: %s", asset_id, exc)
                failed.append(incoming.file_name)
        if uploaded:
            await self._announce(asset_id)
        return uploaded, failed

    async def delete(self, asset_id: str, file_name: str) -> bool:
        """Remove the latest attachment named `file_name`. False if there is none."""
        result = await self.session.execute(queries.select_attachment_by_name(asset_id, file_name))
        row = result.scalar_one_or_none()
        if row is None:
            return False

        await self.session.execute(queries.delete_attachment_by_path(asset_id, row.file_path))
        await self._touch(asset_id)
        await self.session.commit()
        await self.store.delete(row.file_path)
        await self._announce(asset_id)
        return True

import pytest

from ledger.attachments import (
    AttachmentManager,
    AttachmentUploadError,
    IncomingFile,
    LocalAttachmentStore,
    sanitize_file_name,
)
from ledger.store import SqlRecordStore
from ledger.sync import ASSETS_COLLECTION


def test_sanitize_file_name():
    assert sanitize_file_name("photo 1.jpg") == "photo_1.jpg"
    assert sanitize_file_name("写真.png") == "__.png"
    assert sanitize_file_name("a/../b.pdf") == "a_.._b.pdf"
    assert sanitize_file_name("") == "file"


@pytest.mark.anyio
async def test_local_store_writes_unique_paths(tmp_path):
    store = LocalAttachmentStore(tmp_path, "/files/")

    first = await store.upload("A-001", b"one", "photo.jpg")
    second = await store.upload("A-001", b"two", "photo.jpg")

    assert first.path != second.path
    assert first.path.startswith("A-001/")
    assert first.path.endswith("_photo.jpg")
    assert first.public_url == f"/files/{first.path}"
    assert (tmp_path / first.path).read_bytes() == b"one"
    assert (tmp_path / second.path).read_bytes() == b"two"


@pytest.mark.anyio
async def test_local_store_delete(tmp_path):
    store = LocalAttachmentStore(tmp_path)
    stored = await store.upload("A-001", b"data", "doc.pdf")

    assert await store.delete(stored.path)
    assert not (tmp_path / stored.path).exists()
    # Missing blobs are not an error
    assert await store.delete(stored.path)


@pytest.mark.anyio
async def test_upload_links_files_and_bumps_asset(db_session, seeded_assets, tmp_path, feed):
    subscription = feed.subscribe(ASSETS_COLLECTION)
    manager = AttachmentManager(LocalAttachmentStore(tmp_path), db_session, feed=feed)

    uploaded, failed = await manager.upload("A-001", [
        IncomingFile("photo.jpg", b"jpeg-bytes", "image/jpeg"),
        IncomingFile("catalog.pdf", b"%PDF", "application/pdf"),
    ])

    assert failed == []
    assert [info.file_name for info in uploaded] == ["photo.jpg", "catalog.pdf"]
    assert uploaded[0].file_size == len(b"jpeg-bytes")
    assert uploaded[0].file_type == "image/jpeg"

    listed = await manager.list_by_owner("A-001")
    assert [info.file_name for info in listed] == ["photo.jpg", "catalog.pdf"]

    asset = await SqlRecordStore(db_session).fetch_one("A-001")
    assert asset.attachments == ["photo.jpg", "catalog.pdf"]
    assert asset.updated_at > seeded_assets[0].updated_at
    assert (await subscription.receive(timeout=0.1)).record_id == "A-001"


@pytest.mark.anyio
async def test_oversized_file_is_dropped(db_session, seeded_assets, tmp_path):
    manager = AttachmentManager(LocalAttachmentStore(tmp_path), db_session, max_bytes=4)

    uploaded, failed = await manager.upload("A-001", [
        IncomingFile("big.bin", b"12345"),
        IncomingFile("ok.txt", b"1234"),
    ])

    assert [info.file_name for info in uploaded] == ["ok.txt"]
    assert failed == ["big.bin"]
    assert not list((tmp_path / "A-001").glob("*big.bin"))


@pytest.mark.anyio
async def test_failed_blob_write_leaves_nothing(db_session, seeded_assets):
    class BrokenStore(LocalAttachmentStore):
        async def upload(self, owner_id, content, file_name):
            raise AttachmentUploadError("disk full")

    manager = AttachmentManager(BrokenStore("/nonexistent"), db_session)

    uploaded, failed = await manager.upload("A-001", [IncomingFile("photo.jpg", b"x")])

    assert uploaded == []
    assert failed == ["photo.jpg"]
    assert await manager.list_by_owner("A-001") == []


@pytest.mark.anyio
async def test_delete_removes_latest_by_name(db_session, seeded_assets, tmp_path):
    manager = AttachmentManager(LocalAttachmentStore(tmp_path), db_session)
    uploaded, _ = await manager.upload("A-001", [
        IncomingFile("photo.jpg", b"old"),
        IncomingFile("photo.jpg", b"new"),
    ])

    assert await manager.delete("A-001", "photo.jpg")

    remaining = await manager.list_by_owner("A-001")
    assert [info.file_path for info in remaining] == [uploaded[0].file_path]
    assert not (tmp_path / uploaded[1].file_path).exists()
    assert not await manager.delete("A-001", "missing.jpg")


@pytest.mark.anyio
async def test_attachment_changes_reach_the_cache(db_session, seeded_assets, tmp_path, cache):
    manager = AttachmentManager(LocalAttachmentStore(tmp_path / "files"), db_session, cache=cache)

    await manager.upload("A-001", [IncomingFile("photo.jpg", b"jpeg-bytes", "image/jpeg")])

    cached = cache.get("A-001")
    stored = await SqlRecordStore(db_session).fetch_one("A-001")
    assert cached.attachments == ["photo.jpg"]
    assert cached.updated_at == stored.updated_at

    assert await manager.delete("A-001", "photo.jpg")

    cached = cache.get("A-001")
    assert cached.attachments == []
    assert cached.updated_at == (await SqlRecordStore(db_session).fetch_one("A-001")).updated_at

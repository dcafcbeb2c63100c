# ledger/cache.py
"""
Local cache mirror of the asset set.

One JSON document per namespace under the cache directory:

    {"records": [<asset>, ...], "pending": {"<asset id>": "<baseline iso>"}}

`pending` lists records written while the remote store was unreachable,
with the baseline `updated_at` their author started from, so they can be
replayed once the store is back.

Methods do blocking file I/O; async callers run them in a worker thread.
Every read-modify-write holds a per-file lock, so mirrors of the same file
in different threads never interleave.
"""
import json
import logging
import os
import re
import threading
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from ledger.models import Asset, as_utc

logger = logging.getLogger(__name__)


def _file_name(namespace: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "_", namespace) + ".json"


_file_locks: dict[Path, threading.Lock] = {}
_file_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    with _file_locks_guard:
        return _file_locks.setdefault(path.resolve(), threading.Lock())


class LocalCacheMirror:
    def __init__(self, directory: str | Path, namespace: str):
        self.namespace = namespace
        self.path = Path(directory) / _file_name(namespace)
        self._lock = _lock_for(self.path)

    # --- raw document ---

    def _read(self) -> tuple[dict[str, Asset], dict[str, datetime]]:
        if not self.path.exists():
            return {}, {}
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
            records = {
                asset.id: asset
                for asset in (Asset.model_validate(raw) for raw in document.get("records", []))
            }
            pending = {
                asset_id: as_utc(datetime.fromisoformat(baseline))
                for asset_id, baseline in document.get("pending", {}).items()
            }
        except (OSError, ValueError, AttributeError, ValidationError):
            # json.JSONDecodeError is a ValueError
            logger.warning("Discarding unreadable cache file %s", self.path, exc_info=True)
            return {}, {}
        return records, pending

    def _write(self, records: dict[str, Asset], pending: dict[str, datetime]) -> None:
        document = {
            "records": [asset.model_dump(mode="json") for asset in records.values()],
            "pending": {asset_id: baseline.isoformat() for asset_id, baseline in pending.items()},
        }
        tmp_path = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(document, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError:
            logger.warning("Could not write cache file %s", self.path, exc_info=True)
            raise

    # --- records ---

    def load(self) -> list[Asset]:
        """Cached records ordered by updated_at descending."""
        with self._lock:
            records, _ = self._read()
        return sorted(records.values(), key=lambda asset: asset.updated_at, reverse=True)

    def get(self, asset_id: str) -> Asset | None:
        with self._lock:
            records, _ = self._read()
        return records.get(asset_id)

    def replace(self, assets: list[Asset]) -> None:
        """
        Mirror a full remote read. Records still waiting for replay are kept
        over their remote versions.
        """
        with self._lock:
            records, pending = self._read()
            mirrored = {asset.id: asset for asset in assets}
            for asset_id in pending:
                if asset_id in records:
                    mirrored[asset_id] = records[asset_id]
            self._write(mirrored, pending)

    def upsert(self, asset: Asset, baseline: datetime | None = None) -> None:
        """
        Store one record. With `baseline`, the record is flagged for replay;
        the first baseline of a series of offline writes is kept.
        """
        with self._lock:
            records, pending = self._read()
            records[asset.id] = asset
            if baseline is not None:
                pending.setdefault(asset.id, as_utc(baseline))
            self._write(records, pending)

    def upsert_many(self, assets: list[Asset]) -> None:
        with self._lock:
            records, pending = self._read()
            for asset in assets:
                records[asset.id] = asset
            self._write(records, pending)

    # --- offline writes ---

    def pending(self) -> list[tuple[Asset, datetime]]:
        """Records written offline with the baseline each one was built on."""
        with self._lock:
            records, pending = self._read()
        return [
            (records[asset_id], baseline)
            for asset_id, baseline in pending.items()
            if asset_id in records
        ]

    def clear_pending(self, asset_ids: list[str]) -> None:
        with self._lock:
            records, pending = self._read()
            for asset_id in asset_ids:
                pending.pop(asset_id, None)
            self._write(records, pending)

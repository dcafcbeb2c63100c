from __future__ import annotations

import json

from pydantic_settings import BaseSettings


class LedgerSettings(BaseSettings):
    """
    Settings shared by every environment.

    DATABASE_URL is the remote record store. When it is None the service
    runs in cache-only mode: reads and writes go to the local cache mirror.
    """
    DATABASE_URL: str | None = None
    SECRET_KEY: str | None = None
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Local cache mirror
    CACHE_DIR: str = ".cache"
    CACHE_NAMESPACE: str = "asset-ledger-assets:v1"

    # Attachment store
    UPLOAD_DIR: str = "uploads"
    PUBLIC_FILES_URL: str = "/files"
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    # Synchronization loop
    SYNC_POLL_INTERVAL: float = 5.0
    SYNC_RECEIVE_TIMEOUT: float = 1.0

    # JSON array or comma-separated list
    CORS_ORIGINS: str = ""

    @property
    def cors_origins(self) -> list[str]:
        if not self.CORS_ORIGINS:
            return ["http://localhost:3000", "http://localhost:5173", "http://127.0.0.1:3000"]
        if self.CORS_ORIGINS.lstrip().startswith("["):
            return list(json.loads(self.CORS_ORIGINS))
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

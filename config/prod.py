from __future__ import annotations

from pathlib import Path
from pydantic import model_validator
from pydantic_settings import SettingsConfigDict

from config.base import LedgerSettings

ROOT = Path(__file__).resolve().parents[1]
ENV_FILE = ROOT / "env" / ".env.production"


class ProdSettings(LedgerSettings):
    APP_ENV: str = "production"
    LOG_LEVEL: str = "WARNING"

    # Field tablets poll less often; push carries the load
    SYNC_POLL_INTERVAL: float = 10.0
    CACHE_DIR: str = "/var/cache/asset-ledger"
    UPLOAD_DIR: str = "/var/lib/asset-ledger/uploads"

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
    )

    @model_validator(mode="after")
    def _require_secret_key(self) -> "ProdSettings":
        # Tokens signed with the development key must never be accepted here
        if not self.SECRET_KEY:
            raise ValueError("SECRET_KEY must be set in production")
        return self

from __future__ import annotations

from pathlib import Path
from pydantic_settings import SettingsConfigDict

from config.base import LedgerSettings
from config.database import get_database_url

ROOT = Path(__file__).resolve().parents[1]
ENV_FILE = ROOT / "env" / ".env.staging"


class StageSettings(LedgerSettings):
    """Staging: the record store is described by DB_* parts instead of one URL."""
    APP_ENV: str = "stage"

    DB_DRIVER: str = "postgresql+asyncpg"
    DB_HOST: str | None = None
    DB_PORT: int = 5432
    DB_USER: str | None = None
    DB_PASSWORD: str | None = None
    DB_NAME: str | None = "asset_ledger"

    # Shared devices on site: keep a separate cache per stage deployment
    CACHE_NAMESPACE: str = "asset-ledger-assets:stage:v1"

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
    )

    def model_post_init(self, __context) -> None:
        if self.DATABASE_URL is None:
            self.DATABASE_URL = get_database_url(
                driver=self.DB_DRIVER,
                host=self.DB_HOST,
                port=self.DB_PORT,
                user=self.DB_USER,
                password=self.DB_PASSWORD,
                name=self.DB_NAME,
            )

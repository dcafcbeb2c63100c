from __future__ import annotations

from pathlib import Path
from pydantic_settings import SettingsConfigDict

from config.base import LedgerSettings

ROOT = Path(__file__).resolve().parents[1]
ENV_FILE = ROOT / "env" / ".env.local"


class LocalSettings(LedgerSettings):
    """
    Developer machine. Without DATABASE_URL in env/.env.local the API runs
    against the cache mirror only, which is enough to click through the
    workflow.
    """
    APP_ENV: str = "local"
    DEBUG: bool = True
    LOG_LEVEL: str = "DEBUG"
    CACHE_DIR: str = str(ROOT / ".cache")
    UPLOAD_DIR: str = str(ROOT / "uploads")

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
    )

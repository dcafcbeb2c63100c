"""
Settings selection.

MODE (falling back to APP_ENV, then 'local') picks the settings class; each
class reads its own env/.env.<mode> file through `model_config`. Unknown
modes get the local settings.
"""
from __future__ import annotations

import os

from .base import LedgerSettings
from .local import LocalSettings
from .stage import StageSettings
from .prod import ProdSettings
from .test import TestSettings

MODE = (os.environ.get("MODE") or os.environ.get("APP_ENV") or "local").lower()

SETTINGS_CLASSES: dict[str, type[LedgerSettings]] = {
    "local": LocalSettings,
    "stage": StageSettings,
    "staging": StageSettings,
    "prod": ProdSettings,
    "production": ProdSettings,
    "test": TestSettings,
}


def load_settings(mode: str) -> LedgerSettings:
    return SETTINGS_CLASSES.get(mode, LocalSettings)()


settings = load_settings(MODE)

__all__ = ["settings", "load_settings", "LedgerSettings", "MODE"]

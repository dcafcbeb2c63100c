# core/logging.py
"""
Logging configuration for the ledger service.

Modules log through `logging.getLogger(__name__)`; this module only wires
handlers and formatting once at startup.
"""
import logging
import logging.config

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a console handler on the root logger."""
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": LOG_FORMAT},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "root": {
                "level": level.upper(),
                "handlers": ["console"],
            },
            "loggers": {
                # SQL echo is controlled by settings.DEBUG on the engine
                "sqlalchemy.engine": {"level": "WARNING"},
            },
        }
    )

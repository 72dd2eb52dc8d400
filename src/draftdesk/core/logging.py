"""
Logging Configuration

Single stdout handler for the API process and the worker-facing
endpoints. Worker dispatch and callback handling log through
``draftdesk.services.*`` loggers; third-party loggers are capped so job
traffic stays readable.
"""

import sys
from logging.config import dictConfig

from draftdesk.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Library loggers and the highest verbosity they are allowed
LIBRARY_LEVELS = {
    "uvicorn": "INFO",
    "uvicorn.access": "INFO",
    "httpx": "WARNING",
    "sqlalchemy.engine": "WARNING",
    "aiosqlite": "WARNING",
}


def setup_logging(level: str | None = None) -> None:
    """
    Configure logging for the application.

    Args:
        level: Level for ``draftdesk`` loggers; defaults to LOG_LEVEL.

    Note:
        Called once when ``draftdesk.main`` is imported.
    """
    log_level = (level or settings.LOG_LEVEL).upper()

    loggers: dict[str, dict] = {
        "draftdesk": {
            "level": log_level,
            "handlers": ["console"],
            "propagate": False,
        },
    }
    for name, library_level in LIBRARY_LEVELS.items():
        loggers[name] = {
            "level": library_level,
            "handlers": ["console"],
            "propagate": False,
        }

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": LOG_FORMAT, "datefmt": DATE_FORMAT},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "stream": sys.stdout,
                    "formatter": "default",
                },
            },
            "root": {"level": log_level, "handlers": ["console"]},
            "loggers": loggers,
        }
    )

"""Logging setup for the service and its background pipeline."""

import logging
import logging.config
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

from segscribe.config import settings

# Third-party loggers routed through our handlers, with their minimum level
_LIBRARY_LEVELS = {
    "uvicorn": "INFO",
    "uvicorn.access": "INFO",
    "sqlalchemy.engine": "WARNING",
    "httpx": "WARNING",
}

_TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"


def _run_log_handlers(log_dir: Path, formatter: str) -> dict[str, Any]:
    """Per-run info and error log files, named by start time."""
    log_dir.mkdir(parents=True, exist_ok=True)
    started = datetime.now().strftime("%Y%m%d-%H%M%S")
    return {
        "file": {
            "class": "logging.FileHandler",
            "level": "INFO",
            "formatter": formatter,
            "filename": str(log_dir / f"segscribe-{started}.log"),
            "encoding": "utf-8",
        },
        "error_file": {
            "class": "logging.FileHandler",
            "level": "ERROR",
            "formatter": formatter,
            "filename": str(log_dir / f"error-{started}.log"),
            "encoding": "utf-8",
        },
    }


def setup_logging() -> None:
    """Apply the logging configuration for the current environment.

    Console output is always on. Production switches every handler to JSON so
    the ``extra`` context attached to pipeline errors (segment id, blob path,
    provider status and body) survives as fields. File handlers are skipped
    under tests.
    """
    formatter = "json" if settings.is_production else "text"
    handlers: dict[str, Any] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": "DEBUG" if settings.is_development else "INFO",
            "formatter": formatter,
            "stream": sys.stdout,
        },
    }
    if not settings.is_testing:
        handlers.update(_run_log_handlers(Path(settings.log_dir), formatter))
    handler_names = list(handlers)

    loggers: dict[str, Any] = {
        name: {"level": level, "handlers": handler_names, "propagate": False}
        for name, level in _LIBRARY_LEVELS.items()
    }
    loggers["segscribe"] = {
        "level": settings.log_level,
        "handlers": handler_names,
        "propagate": False,
    }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "text": {"format": _TEXT_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
                "json": {
                    "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                    "format": "%(asctime)s %(name)s %(levelname)s %(message)s",
                },
            },
            "handlers": handlers,
            "loggers": loggers,
            "root": {"level": settings.log_level, "handlers": handler_names},
        }
    )

    logging.getLogger("segscribe").info(
        "Logging initialized - Environment: %s, Level: %s",
        settings.environment,
        settings.log_level,
    )


def get_logger(name: str) -> logging.Logger:
    """Return a logger nested under the ``segscribe`` hierarchy."""
    if name == "segscribe" or name.startswith("segscribe."):
        return logging.getLogger(name)
    return logging.getLogger(f"segscribe.{name}")

"""Application logging setup driven by ``settings.logging``."""
from __future__ import annotations

import logging
import logging.config

from pythonjsonlogger.json import JsonFormatter

from .config import LoggingSettings, settings

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def build_logging_config(config: LoggingSettings) -> dict:
    """dictConfig for the console handler plus an optional file handler."""
    formatter = "json" if config.format.lower() == "json" else "text"

    handlers: dict = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": formatter,
            "stream": "ext://sys.stdout",
        },
    }
    if config.file:
        handlers["file"] = {
            "class": "logging.FileHandler",
            "formatter": formatter,
            "filename": config.file,
            "encoding": "utf-8",
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "text": {"format": TEXT_FORMAT},
            "json": {"()": JsonFormatter, "fmt": JSON_FORMAT},
        },
        "handlers": handlers,
        "root": {
            "level": config.level.upper(),
            "handlers": list(handlers),
        },
    }


def setup_logging(config: LoggingSettings | None = None) -> None:
    """Configure root logging once at application start-up."""
    config = config or settings.logging
    logging.config.dictConfig(build_logging_config(config))
    logging.getLogger(__name__).info(
        f"Logging configured (level={config.level}, format={config.format})"
    )

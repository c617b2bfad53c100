"""Logging setup for the CLI and embedding applications."""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

from .config import LoggingConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_FILE_NAME = "replicarouter.log"
RETAINED_LOG_FILES = 30

_HANDLER_MARKER = "_replicarouter_handler"


def configure_logging(settings: LoggingConfig | None = None) -> logging.Logger:
    """Attach console and (optionally) daily-rotating file handlers to the package logger.

    Calling this again replaces handlers installed by a previous call, so a
    reloaded config takes effect without duplicating output.
    """

    settings = settings or LoggingConfig()
    logger = logging.getLogger("replicarouter")
    level = logging.getLevelName(settings.level.upper())
    logger.setLevel(level if isinstance(level, int) else logging.INFO)

    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    setattr(console, _HANDLER_MARKER, True)
    logger.addHandler(console)

    if settings.directory:
        directory = Path(settings.directory).expanduser()
        directory.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.TimedRotatingFileHandler(
            directory / LOG_FILE_NAME,
            when="midnight",
            backupCount=RETAINED_LOG_FILES,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        setattr(file_handler, _HANDLER_MARKER, True)
        logger.addHandler(file_handler)
        logger.info("Logging initialized. Log directory: %s", directory)

    return logger


__all__ = ["LOG_FORMAT", "configure_logging"]

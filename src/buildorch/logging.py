from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
import os


LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LEVEL_VAR = "BUILDORCH_LOG_LEVEL"
# Loggers of the orchestrator and of the bundled task library
ROOT_LOGGERS = ("buildorch", "buildtasks")

_configured = False


def _level(name: str | None) -> int:
    return getattr(logging, (name or "INFO").upper(), logging.INFO)


def _ensure_base_logger() -> None:
    global _configured
    if _configured:
        return
    logging.basicConfig(level=_level(os.getenv(LEVEL_VAR)), format=LOG_FORMAT)
    _configured = True


def get_logger(name: str, log_file: Path | None = None) -> logging.Logger:
    _ensure_base_logger()
    logger = logging.getLogger(name)
    # Do not duplicate handlers if already set
    if log_file and not any(
        isinstance(h, RotatingFileHandler) for h in logger.handlers
    ):
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=3)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger


def configure_logging(level: str | None = None, log_file: Path | None = None) -> None:
    """Apply CLI logging options to the build loggers.

    `level` overrides BUILDORCH_LOG_LEVEL; `log_file` adds a rotating file
    handler next to the console output.
    """
    for name in ROOT_LOGGERS:
        logger = get_logger(name, log_file=log_file)
        if level:
            logger.setLevel(_level(level))

"""Logging for catalog runs: console, a rotating run log, and a failures-only log."""

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional, Union

LOGGER_NAME = "bruno_catalog"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5


def _level(level: Optional[Union[int, str]]) -> int:
    if level is None:
        level = os.environ.get("CATALOG_LOG_LEVEL", "INFO")
    if isinstance(level, str):
        value = logging.getLevelName(level.upper())
        return value if isinstance(value, int) else logging.INFO
    return level


def _rotating(path: str, level: int, fmt: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS,
                                  encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(fmt)
    return handler


def setup_logger(log_dir: str = "logs", level: Optional[Union[int, str]] = None) -> logging.Logger:
    """Configure the ``bruno_catalog`` logger once per process.

    ``catalog.log`` gets everything at ``level``; ``failures.log`` only gets
    warnings and errors, so per-item failures of a long run can be read
    without the progress noise.
    """
    level = _level(level)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    if logger.handlers:
        return logger

    os.makedirs(log_dir, exist_ok=True)
    fmt = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(fmt)
    logger.addHandler(console)

    logger.addHandler(_rotating(os.path.join(log_dir, "catalog.log"), level, fmt))
    logger.addHandler(_rotating(os.path.join(log_dir, "failures.log"), logging.WARNING, fmt))

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return logger

"""Logging helpers for the sheetio package."""

# Module responsibilities:
# - Attach a rotating file handler and a console handler to the ``sheetio`` logger, once.
# - Hand out child loggers named after the module that asks for them.

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

LOG_DIR_ENV = "SHEETIO_LOG_DIR"
DEFAULT_LOG_DIR = Path.home() / ".sheetio" / "logs"
PACKAGE_LOGGER = "sheetio"


def _log_dir() -> Path:
    directory = Path(os.getenv(LOG_DIR_ENV, DEFAULT_LOG_DIR)).expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def _configure(package_logger: logging.Logger) -> None:
    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handlers = [
        logging.handlers.RotatingFileHandler(
            _log_dir() / "sheetio.log", maxBytes=2_000_000, backupCount=3, encoding="utf-8"
        ),
        logging.StreamHandler(),
    ]
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(logging.INFO)
        package_logger.addHandler(handler)
    package_logger.setLevel(logging.INFO)
    package_logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Return ``sheetio.<name>``, configuring the package logger on first use.

    The log directory is ``~/.sheetio/logs`` unless ``SHEETIO_LOG_DIR`` is set.
    """

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if not package_logger.handlers:
        _configure(package_logger)
    return package_logger.getChild(name)

from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from .config import _default_cache_root

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
LOG_FILENAME = "barakah.log"


def default_log_dir() -> Path:
    return _default_cache_root() / "logs"


def setup_logging(log_dir: Path | None = None, *, console: bool = False, level: int = logging.INFO) -> Path:
    """Route the package loggers to a daily-rotated file.

    The TUI owns the terminal, so console output is opt-in.
    """
    directory = log_dir or default_log_dir()
    directory.mkdir(parents=True, exist_ok=True)
    log_path = directory / LOG_FILENAME

    logger = logging.getLogger("barakah")
    logger.setLevel(level)
    logger.propagate = False

    # Clear handlers from an earlier call so records are not duplicated
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    file_handler = TimedRotatingFileHandler(
        log_path,
        when="midnight",
        interval=1,
        backupCount=14,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(console_handler)

    logger.info("[LOG] Logging initialized -> %s", log_path)
    return log_path

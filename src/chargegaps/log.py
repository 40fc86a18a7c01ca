"""
Logging configuration for chargegaps.

Every module logs through one named logger that writes both to the terminal
and to `logs/chargegaps.log`.
"""

from __future__ import annotations

import logging
from pathlib import Path

LOGGER_NAME = "chargegaps"


def get_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def configure_logging(log_dir: Path, level: str = "INFO") -> logging.Logger:
    # The file handler needs its directory before it opens the file.
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "chargegaps.log"

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())
    # Ancestor handlers would print every line twice.
    logger.propagate = False

    # Repeated bootstraps (tests, CLI subcommands) must not stack handlers.
    if not logger.handlers:
        fmt = logging.Formatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        stream = logging.StreamHandler()
        stream.setFormatter(fmt)
        stream.setLevel(level.upper())

        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(fmt)
        file_handler.setLevel(level.upper())

        logger.addHandler(stream)
        logger.addHandler(file_handler)

    return logger

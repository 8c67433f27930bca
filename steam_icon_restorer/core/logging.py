"""Centralized logging configuration for Steam Icon Restorer.

Provides a pre-configured logger with console output and optional file logging.
All modules should log through a child of this logger instead of using print().
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

__all__ = ["logger", "setup_logging"]

logger = logging.getLogger("steamicons")


def setup_logging(
    level: int = logging.INFO,
    log_file: Path | None = None,
) -> None:
    """Configure the root application logger.

    Args:
        level: The logging level (default: INFO).
        log_file: Optional path to a log file. If provided, logs will
            also be written to this file.
    """
    logger.setLevel(logging.DEBUG if log_file is not None else level)

    if logger.handlers:
        for handler in logger.handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
                handler.setLevel(level)
        return

    # Console shows bare messages unless debugging
    console_formatter = logging.Formatter(fmt="%(message)s")
    file_formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(console_formatter if level > logging.DEBUG else file_formatter)
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

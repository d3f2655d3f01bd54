"""Logging setup shared by the API and command-line entry points."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

_LOGGER_NAME = "discussion_guide"


def setup_logging(
    level: int | str = logging.INFO,
    log_file: Path | None = None,
    format_string: str | None = None,
) -> logging.Logger:
    """Configure the package logger.

    Args:
        level: Logging level, numeric or by name (default: INFO).
        log_file: Optional path to an additional log file.
        format_string: Optional custom format string.

    Returns:
        The configured package logger.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = logging.Formatter(format_string, datefmt="%Y-%m-%d %H:%M:%S")

    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)

    # Reset handlers so repeated app creation does not duplicate output.
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger

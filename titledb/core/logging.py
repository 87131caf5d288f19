"""Logging setup for titledb.

Everything logs through children of the ``titledb`` logger. The console
shows the requested level with short timestamps; the optional log file
always receives debug output with full dates, so a refresh run can be
inspected afterwards without rerunning it with ``--verbose``.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

__all__ = ["CONSOLE_FORMAT", "FILE_FORMAT", "logger", "setup_logging"]

logger = logging.getLogger("titledb")

CONSOLE_FORMAT = logging.Formatter(
    fmt="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
FILE_FORMAT = logging.Formatter(
    fmt="%(asctime)s [%(levelname)s] %(name)s (%(threadName)s): %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def _console_handler() -> logging.StreamHandler | None:
    for handler in logger.handlers:
        if type(handler) is logging.StreamHandler:
            return handler
    return None


def _file_handler() -> logging.FileHandler | None:
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler):
            return handler
    return None


def setup_logging(
    level: int = logging.INFO,
    log_file: Path | None = None,
) -> None:
    """Configure the titledb logger.

    Safe to call more than once: the console level is updated in place and
    the file handler is replaced when ``log_file`` changes.

    Args:
        level: Console logging level (default: INFO).
        log_file: Optional log file. It is written at DEBUG level
            regardless of ``level``.
    """
    console = _console_handler()
    if console is None:
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(CONSOLE_FORMAT)
        logger.addHandler(console)
    console.setLevel(level)

    current = _file_handler()
    if current is not None and (log_file is None or current.baseFilename != os.path.abspath(log_file)):
        logger.removeHandler(current)
        current.close()
        current = None

    if log_file is not None and current is None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(FILE_FORMAT)
        logger.addHandler(file_handler)

    # The logger itself must pass debug records through for the file handler
    logger.setLevel(logging.DEBUG if log_file is not None else level)

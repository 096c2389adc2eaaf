"""
Logging setup for the ``footprints`` CLI.

main.py calls ``setup_logging`` once per process; module loggers
(``logging.getLogger(__name__)``) pick it up from the root logger.

Console level: ``--debug/--verbose/--quiet``, then FOOTPRINTS_LOG_LEVEL,
then WARNING. A second, usually more detailed, copy can go to the file
named by FOOTPRINTS_LOG_FILE at FOOTPRINTS_LOG_FILE_LEVEL.

Background loops run as threads of ``footprints run``, so the DEBUG
and file formats name the thread that logged.
"""

from __future__ import annotations

import logging
import os
import sys

LEVEL_ENV = "FOOTPRINTS_LOG_LEVEL"
FILE_ENV = "FOOTPRINTS_LOG_FILE"
FILE_LEVEL_ENV = "FOOTPRINTS_LOG_FILE_LEVEL"

# (max level, format, datefmt): first row whose level is >= the console level wins
_CONSOLE_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s [%(threadName)s] %(name)s:%(lineno)d — %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    (logging.CRITICAL, "%(message)s", None),
)

_FILE_FORMAT = "%(asctime)s %(levelname)-5s [%(threadName)s] %(name)s:%(lineno)d — %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def resolve_level(cli_level: str | None = None) -> str:
    """CLI flag, else FOOTPRINTS_LOG_LEVEL, else WARNING."""
    return cli_level or os.environ.get(LEVEL_ENV) or "WARNING"


def _console_formatter(level: int) -> logging.Formatter:
    for ceiling, fmt, datefmt in _CONSOLE_FORMATS:
        if level <= ceiling:
            return logging.Formatter(fmt, datefmt=datefmt)
    return logging.Formatter("%(message)s")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Replace the root logger's handlers with a stderr handler and an optional file.

    Args:
        level: Console level name; unknown names mean WARNING.
        log_file: Log file path (default: FOOTPRINTS_LOG_FILE, else none).
        log_file_level: File level (default: FOOTPRINTS_LOG_FILE_LEVEL,
            else the console level).
    """
    console_level = _parse_level(level)
    log_file = log_file or os.environ.get(FILE_ENV)
    log_file_level = log_file_level or os.environ.get(FILE_LEVEL_ENV)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(_console_formatter(console_level))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        root.addHandler(handler)
        # The root must let through whatever the more detailed handler wants
        root_level = min(root_level, file_level)

    root.setLevel(root_level)

    # A failing handler must not take a loop thread down with it
    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    """Level name to number; empty or unknown names give WARNING."""
    numeric = getattr(logging, level.upper(), None) if level else None
    return numeric if isinstance(numeric, int) else logging.WARNING

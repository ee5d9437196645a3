"""
Logging configuration — one setup call for the whole process.

Called once by the CLI entry point. Every module that does
``logger = logging.getLogger(__name__)`` inherits this config.

Console level precedence:
    --debug / --verbose / --quiet  >  FORMULARY_LOG_LEVEL  >  WARNING

A log file is added when FORMULARY_LOG_FILE is set, at
FORMULARY_LOG_FILE_LEVEL (default: the console level).
"""

from __future__ import annotations

import logging
import os
import sys

ENV_LEVEL = "FORMULARY_LOG_LEVEL"
ENV_FILE = "FORMULARY_LOG_FILE"
ENV_FILE_LEVEL = "FORMULARY_LOG_FILE_LEVEL"

# DEBUG — full diagnostic with file:line
_FMT_DEBUG = ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s", "%H:%M:%S")

# INFO — timestamped with module context
_FMT_VERBOSE = ("%(asctime)s [%(name)s] %(message)s", "%H:%M:%S")

# WARNING and above — level and message only
_FMT_MINIMAL = ("%(levelname)s: %(message)s", None)

_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d [%(threadName)s] — %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    level: str | None = None,
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Configure the root logger.

    Args:
        level: Console level name. Falls back to FORMULARY_LOG_LEVEL.
        log_file: Log file path. Falls back to FORMULARY_LOG_FILE.
        log_file_level: File level name. Falls back to
            FORMULARY_LOG_FILE_LEVEL, then to the console level.
    """
    numeric_level = _parse_level(level or os.environ.get(ENV_LEVEL))
    log_file = log_file or os.environ.get(ENV_FILE)
    log_file_level = log_file_level or os.environ.get(ENV_FILE_LEVEL)

    if numeric_level <= logging.DEBUG:
        fmt, datefmt = _FMT_DEBUG
    elif numeric_level <= logging.INFO:
        fmt, datefmt = _FMT_VERBOSE
    else:
        fmt, datefmt = _FMT_MINIMAL

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    effective_level = numeric_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else numeric_level
        effective_level = min(effective_level, file_level)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
        root.addHandler(fh)

    root.setLevel(effective_level)

    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    """Convert a level name to its numeric constant (WARNING if unknown)."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric

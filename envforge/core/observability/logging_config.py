"""
Logging configuration — one call at CLI startup.

Every envforge module logs through ``logging.getLogger(__name__)``; this
module decides where those records go.

    console (stderr)   level from --debug/-v/-q, else ENVFORGE_LOG_LEVEL,
                       else WARNING; format grows with verbosity
    file (optional)    ENVFORGE_LOG_FILE, at ENVFORGE_LOG_FILE_LEVEL or
                       the console level, always with full detail

Task progress and the final report are printed with click on stdout,
so stderr logging never corrupts ``--json`` output.
"""

from __future__ import annotations

import logging
import os
import sys

ENV_LOG_LEVEL = "ENVFORGE_LOG_LEVEL"
ENV_LOG_FILE = "ENVFORGE_LOG_FILE"
ENV_LOG_FILE_LEVEL = "ENVFORGE_LOG_FILE_LEVEL"

DEFAULT_LEVEL = "WARNING"

# (format, datefmt) per console verbosity
_CONSOLE_FORMATS: dict[int, tuple[str, str | None]] = {
    logging.DEBUG: ("%(asctime)s %(levelname)-7s %(name)s:%(lineno)d  %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(asctime)s %(message)s", "%H:%M:%S"),
    logging.WARNING: ("%(levelname)s: %(message)s", None),
}

_FILE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s:%(lineno)d  %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def resolve_level(cli_level: str | None = None) -> str:
    """Pick the console level: CLI flag, then env var, then WARNING."""
    return cli_level or os.environ.get(ENV_LOG_LEVEL) or DEFAULT_LEVEL


def setup_logging(
    level: str = DEFAULT_LEVEL,
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Install the console handler and, if configured, the file handler.

    Replaces any handlers already on the root logger, so calling it twice
    does not duplicate output.

    Args:
        level: Console level name. Unknown names mean WARNING.
        log_file: Log file path; falls back to ``ENVFORGE_LOG_FILE``.
        log_file_level: File level name; falls back to
            ``ENVFORGE_LOG_FILE_LEVEL``, then to ``level``.
    """
    console_level = _level_number(level)
    log_file = log_file or os.environ.get(ENV_LOG_FILE)
    log_file_level = log_file_level or os.environ.get(ENV_LOG_FILE_LEVEL)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.addHandler(_console_handler(console_level))

    lowest = console_level
    if log_file:
        file_level = _level_number(log_file_level) if log_file_level else console_level
        root.addHandler(_file_handler(log_file, file_level))
        lowest = min(lowest, file_level)
    root.setLevel(lowest)

    # A broken stderr must not take a provisioning run down with it
    logging.raiseExceptions = False


def _console_handler(level: int) -> logging.Handler:
    if level <= logging.DEBUG:
        fmt, datefmt = _CONSOLE_FORMATS[logging.DEBUG]
    elif level <= logging.INFO:
        fmt, datefmt = _CONSOLE_FORMATS[logging.INFO]
    else:
        fmt, datefmt = _CONSOLE_FORMATS[logging.WARNING]
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    return handler


def _file_handler(path: str, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
    return handler


def _level_number(name: str | None) -> int:
    if not name:
        return logging.WARNING
    return logging.getLevelNamesMapping().get(name.upper(), logging.WARNING)

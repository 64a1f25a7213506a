"""
Logging setup for the stackplan CLI.

Log records go to stderr so ``compose --json`` and rendered YAML on
stdout stay machine-readable. The console level comes from the global
flags, then ``STACKPLAN_LOG_LEVEL``, then WARNING. ``STACKPLAN_LOG_FILE``
adds a full-detail file handler (level via ``STACKPLAN_LOG_FILE_LEVEL``).
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Mapping

LEVEL_ENV = "STACKPLAN_LOG_LEVEL"
FILE_ENV = "STACKPLAN_LOG_FILE"
FILE_LEVEL_ENV = "STACKPLAN_LOG_FILE_LEVEL"

# Console format by the most verbose level it applies to.
_CONSOLE_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    (logging.CRITICAL, "%(levelname)s: %(message)s", None),
)
_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s"

# Library loggers held at WARNING unless debugging.
_LIBRARY_LOGGERS = ("yaml", "pydantic")


def parse_level(level: str | int | None) -> int:
    """Level name or number → numeric level (unknown names → WARNING)."""
    if isinstance(level, int):
        return level
    if not level:
        return logging.WARNING
    numeric = logging.getLevelName(level.strip().upper())
    return numeric if isinstance(numeric, int) else logging.WARNING


def cli_level(
    *,
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    environ: Mapping[str, str] | None = None,
) -> int:
    """The console level for one CLI invocation."""
    if debug:
        return logging.DEBUG
    if verbose:
        return logging.INFO
    if quiet:
        return logging.ERROR
    env = os.environ if environ is None else environ
    return parse_level(env.get(LEVEL_ENV))


def _console_formatter(level: int) -> logging.Formatter:
    for threshold, fmt, datefmt in _CONSOLE_FORMATS:
        if level <= threshold:
            return logging.Formatter(fmt, datefmt=datefmt)
    return logging.Formatter("%(message)s")


def setup_logging(
    level: str | int = logging.WARNING,
    log_file: str | None = None,
    log_file_level: str | int | None = None,
) -> None:
    """Install the console handler (and optional file handler) on the root logger."""
    console_level = parse_level(level)
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(_console_formatter(console_level))
    handlers: list[logging.Handler] = [console]

    root_level = console_level
    if log_file:
        file_level = parse_level(log_file_level) if log_file_level else console_level
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(file_level)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        handlers.append(file_handler)
        root_level = min(root_level, file_level)

    logging.basicConfig(level=root_level, handlers=handlers, force=True)

    library_level = logging.NOTSET if console_level <= logging.DEBUG else logging.WARNING
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    # Handlers can outlive the stream they were bound to.
    logging.raiseExceptions = False

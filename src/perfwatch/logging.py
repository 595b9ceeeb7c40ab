"""Logging setup for perfwatch.

Benchmark progress, saved-file notices and comparison tables are logged
at INFO and go to the console as bare lines, so a suite run reads like
the report it produces.  Warnings and errors (a test with no baseline, a
corrupt report, an exceeded threshold) are prefixed with their level so
they stand out among those lines.  An optional file handler records
everything at DEBUG with timestamps and logger names.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TextIO

_LOGGER_NAME = "perfwatch"
_FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class ConsoleFormatter(logging.Formatter):
    """Bare messages below WARNING, ``LEVEL: message`` from WARNING up."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        if record.levelno >= logging.WARNING:
            return f"{record.levelname}: {message}"
        return message


def setup_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    log_file: Path | None = None,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Configure and return the root perfwatch logger.

    Args:
        verbose: Show DEBUG messages (per-batch sample counts, git lookups).
        quiet: Only show warnings and errors.  Ignored if *verbose* is True.
        log_file: Also write every message, at DEBUG, to this file.
        stream: Console stream; defaults to stderr so stdout stays clean for
            output such as ``perfwatch export`` CSV.

    Returns:
        The ``perfwatch`` logger.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    # Replace handlers from an earlier call.
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    console = logging.StreamHandler(stream)
    if verbose:
        console.setLevel(logging.DEBUG)
    elif quiet:
        console.setLevel(logging.WARNING)
    else:
        console.setLevel(logging.INFO)
    console.setFormatter(ConsoleFormatter("%(message)s"))
    logger.addHandler(console)

    if log_file is not None:
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(fh)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a named child logger under the perfwatch namespace."""
    return logging.getLogger(f"{_LOGGER_NAME}.{name}")

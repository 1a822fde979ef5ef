"""Logging setup shared by the skillpack CLI, service, and library code."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

_LOGGER_NAME = "skillpack"
CONSOLE_FORMAT = "[skillpack] %(levelname)s %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``skillpack.<name>`` (or the package logger when ``name`` is empty)."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def resolve_level(*, verbose: bool = False, quiet: bool = False) -> int:
    """Map CLI verbosity flags to a level; ``verbose`` wins over ``quiet``."""
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return logging.INFO


def configure_logging(
    *, verbose: bool = False, quiet: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Install console and optional file handlers on the skillpack logger.

    Per-file walk and rewrite decisions are logged at DEBUG, so ``verbose``
    is the way to see why a link was excluded. The file sink always records
    DEBUG so a log file can be attached to a bug report without rerunning.
    """
    level = resolve_level(verbose=verbose, quiet=quiet)
    logger = logging.getLogger(_LOGGER_NAME)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        sink = logging.FileHandler(log_file, encoding="utf-8")
        sink.setLevel(logging.DEBUG)
        sink.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(sink)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(level)

    return logger


__all__ = ["CONSOLE_FORMAT", "FILE_FORMAT", "configure_logging", "get_logger", "resolve_level"]

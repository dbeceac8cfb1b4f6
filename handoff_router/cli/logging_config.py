"""Logging configuration for the handoff-router CLI.

Provides:
- Log levels selected by --verbose / --debug, or LOG_LEVEL
- Colored level names on terminals
- Timing of long operations
"""

import logging
import os
import sys
import time
from contextlib import contextmanager
from typing import Optional


# Default log format
DEFAULT_FORMAT = "%(levelname)s: %(message)s"
VERBOSE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DEBUG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(message)s"

ROOT_LOGGER = "handoff_router"


class ColoredFormatter(logging.Formatter):
    """Colored log formatter for terminal output."""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        """Format log record with colors."""
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def setup_logging(
    verbose: bool = False,
    debug: bool = False,
    level: Optional[str] = None,
) -> logging.Logger:
    """Configure logging for the handoff_router package.

    --debug wins over --verbose, which wins over ``level``. Without any of
    them the ``LOG_LEVEL`` environment variable applies, then WARNING.

    Args:
        verbose: Enable verbose logging (INFO level)
        debug: Enable debug logging (DEBUG level)
        level: Explicit level name, e.g. from the config file

    Returns:
        Configured package logger

    Examples:
        >>> logger = setup_logging(verbose=True)
        >>> logger.info("Loading rules")
        2026-01-12 10:30:45 [INFO] handoff_router: Loading rules
    """
    logger = logging.getLogger(ROOT_LOGGER)

    # Remove existing handlers
    logger.handlers.clear()

    if debug:
        logger.setLevel(logging.DEBUG)
        log_format = DEBUG_FORMAT
    elif verbose:
        logger.setLevel(logging.INFO)
        log_format = VERBOSE_FORMAT
    else:
        level_name = (level or os.environ.get("LOG_LEVEL") or "WARNING").upper()
        logger.setLevel(getattr(logging, level_name, logging.WARNING))
        log_format = DEBUG_FORMAT if logger.level <= logging.DEBUG else DEFAULT_FORMAT

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logger.level)

    # Use colored formatter if terminal supports it
    if sys.stderr.isatty():
        formatter = ColoredFormatter(log_format)
    else:
        formatter = logging.Formatter(log_format)

    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logger


@contextmanager
def log_timing(operation: str, logger: logging.Logger):
    """Log how long the wrapped block took.

    Examples:
        >>> with log_timing("Load rules", logger):
        ...     await store.load()
        INFO: Load rules completed in 3.21ms
    """
    start = time.perf_counter()
    logger.debug(f"Starting: {operation}")

    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(f"{operation} completed in {elapsed_ms:.2f}ms")

"""Logging helpers for perfetto_tracing.

The library is silent by default (a NullHandler sits on the package logger).
Turn logging on explicitly:

    import perfetto_tracing

    perfetto_tracing.enable_console_logging(level="DEBUG")

    # or from the environment
    perfetto_tracing.configure_from_env()

Environment variables:
    PERFETTO_TRACING_LOG: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
"""

from __future__ import annotations

import logging
import os
from typing import Literal, Optional, Union

__all__ = [
    "configure_from_env",
    "disable_logging",
    "enable_console_logging",
    "set_level",
]

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOGGER_NAME = "perfetto_tracing"
ENV_LOG_LEVEL = "PERFETTO_TRACING_LOG"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _get_level(level: Union[str, int]) -> int:
    """Convert a level string or int to a logging level constant."""
    if isinstance(level, int):
        return level
    return getattr(logging, level.upper(), logging.INFO)


def _get_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def _clear_handlers() -> None:
    """Remove and close every handler on the package logger except NullHandler."""
    logger = _get_logger()
    for handler in logger.handlers[:]:
        if not isinstance(handler, logging.NullHandler):
            logger.removeHandler(handler)
            handler.close()


def enable_console_logging(
    level: Union[LogLevel, int] = "INFO",
    format: str = DEFAULT_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
) -> logging.StreamHandler:
    """Enable console (stderr) logging.

    Args:
        level: Log level name or int.
        format: Log message format string.
        date_format: Date format string for %(asctime)s.

    Returns:
        The created StreamHandler.
    """
    logger = _get_logger()
    logger.setLevel(_get_level(level))

    handler = logging.StreamHandler()
    handler.setLevel(_get_level(level))
    handler.setFormatter(logging.Formatter(format, date_format))

    logger.addHandler(handler)
    return handler


def set_level(level: Union[LogLevel, int]) -> None:
    """Set the level of the package logger."""
    _get_logger().setLevel(_get_level(level))


def disable_logging() -> None:
    """Drop all handlers added through this module."""
    _clear_handlers()
    _get_logger().setLevel(logging.NOTSET)


def configure_from_env() -> Optional[logging.StreamHandler]:
    """Enable console logging at the level in PERFETTO_TRACING_LOG, if set."""
    level = os.environ.get(ENV_LOG_LEVEL)
    if not level:
        return None
    _clear_handlers()
    return enable_console_logging(level=level.upper())  # type: ignore[arg-type]

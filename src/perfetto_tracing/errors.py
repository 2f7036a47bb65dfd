"""
Exceptions raised by perfetto_tracing.
"""

from __future__ import annotations

from typing import Optional


class TracingError(Exception):
    """Base class for every error raised by this package."""


class TraceConfigError(TracingError, ValueError):
    """A trace window or configuration value is unusable."""


class TraceWriteError(TracingError, OSError):
    """Writing buffered events to a trace file failed."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class TracingInvariantError(TracingError, RuntimeError):
    """Internal buffer/window bookkeeping is inconsistent."""

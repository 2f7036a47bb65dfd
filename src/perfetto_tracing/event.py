"""
Event model for trace records.

Field names follow the Chrome Trace Event format:
https://docs.google.com/document/d/1CvAClvFfyA5R-PhYUmn5OOQtYMH4h6I0nSsKchNAySU/preview
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Hashable, Mapping, Optional

from .errors import TraceConfigError

# pid reserved for the call stack (function / lambda / scope tracers, counters)
STACK_PROCESS = 0


class EventType(str, Enum):
    """Trace event phase, serialized as the one-character ``ph`` field."""

    DurationBegin = "B"    # follow with a matching E on the same thread
    DurationEnd = "E"
    Duration = "X"         # B and E combined, needs a duration
    Instantaneous = "i"
    Counter = "C"
    ObjectCreated = "N"
    ObjectSnapshot = "O"
    ObjectDestroyed = "D"


class EventScope(str, Enum):
    """Scope of an instantaneous event, serialized as ``s``."""

    Global = "g"
    Process = "p"
    Thread = "t"


@dataclass(frozen=True)
class Event:
    """
    A single trace record.

    ``timestamp`` and ``duration`` are monotonic nanoseconds; the serializer
    converts them to microseconds. ``thread`` is any hashable identity, it is
    remapped to a small integer when the batch is written.
    """
    name: str
    location: str
    type: EventType
    timestamp: int
    process: int = STACK_PROCESS
    thread: Hashable = 0
    duration: Optional[int] = None
    correlation_id: Optional[str] = None
    attributes: Optional[Mapping[str, str]] = None
    scope: Optional[EventScope] = None


@dataclass(frozen=True)
class TraceWindow:
    """A named, quota bounded collection period starting at ``start_time`` (ns)."""
    name: str
    samples_to_collect: int
    start_time: int

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise TraceConfigError(f"Trace window name must be a non-empty string, got {self.name!r}")
        if self.name in (".", "..") or os.sep in self.name or (os.altsep and os.altsep in self.name):
            raise TraceConfigError(f"Trace window name {self.name!r} is not a valid file stem")
        if isinstance(self.samples_to_collect, bool) or not isinstance(self.samples_to_collect, int):
            raise TraceConfigError(
                f"samples_to_collect must be an int, got {type(self.samples_to_collect).__name__}"
            )
        if self.samples_to_collect <= 0:
            raise TraceConfigError(
                f"Trace window '{self.name}' needs a positive sample quota, got {self.samples_to_collect}"
            )

"""Shared fixtures for the tracing tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List

import pytest

from perfetto_tracing import PerfettoTracing, TracingConfig


class FakeClock:
    """Monotonic nanosecond clock that only moves when told to."""

    def __init__(self, start: int = 1_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, nanoseconds: int) -> int:
        self.now += nanoseconds
        return self.now


def _load_trace(path: Path) -> List[Dict[str, Any]]:
    text = path.read_text(encoding="utf-8")
    if not text.rstrip().endswith("]"):
        text += "]"
    return json.loads(text)


@pytest.fixture
def read_trace() -> Callable[[Path], List[Dict[str, Any]]]:
    """Parse a .trace file whether or not its array has been closed."""
    return _load_trace


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tracing(tmp_path, clock) -> Iterator[PerfettoTracing]:
    instance = PerfettoTracing(TracingConfig(trace_directory=str(tmp_path)), clock=clock)
    yield instance
    instance.shutdown()

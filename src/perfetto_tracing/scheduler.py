"""
Ordered queue of trace windows.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from .event import TraceWindow


class TraceWindowScheduler:
    """
    Keeps trace windows sorted by start time. Only the front window can be
    active, and only once the clock has reached its start time.

    Not thread-safe: PerfettoTracing guards every call with its own lock.
    """

    def __init__(self) -> None:
        self._windows: List[TraceWindow] = []

    def add_window(self, name: str, samples_to_collect: int, start_time: int) -> TraceWindow:
        """Register a window and re-sort the queue by ascending start time."""
        window = TraceWindow(name=name, samples_to_collect=samples_to_collect, start_time=start_time)
        self._windows.append(window)
        self._windows.sort(key=lambda w: w.start_time)
        return window

    def is_active(self, now: int) -> bool:
        """
        Args:
            now: current monotonic time in ns.

        Returns:
            True if a window exists and the front one has reached its start time.
        """
        return bool(self._windows) and now >= self._windows[0].start_time

    def active_window(self, now: int) -> Optional[TraceWindow]:
        """The front window if it is collecting at ``now``, else None."""
        if self.is_active(now):
            return self._windows[0]
        return None

    @property
    def front(self) -> Optional[TraceWindow]:
        return self._windows[0] if self._windows else None

    def pop_front(self) -> TraceWindow:
        if not self._windows:
            raise IndexError("No trace window to retire")
        return self._windows.pop(0)

    @property
    def windows(self) -> Tuple[TraceWindow, ...]:
        return tuple(self._windows)

    def clear(self) -> None:
        self._windows.clear()

    def __len__(self) -> int:
        return len(self._windows)

"""
Tracing context: buffers trace events for the active window and writes them
to ``<window>.trace`` once the window's quota is reached or at shutdown.
"""

from __future__ import annotations

import atexit
import functools
import logging
import numbers
import sys
import threading
import time
from typing import Any, Callable, Hashable, List, Mapping, Optional, Set, Tuple

from .config import TracingConfig
from .errors import TraceConfigError, TracingInvariantError, TraceWriteError
from .event import STACK_PROCESS, Event, EventScope, EventType, TraceWindow
from .scheduler import TraceWindowScheduler
from .serializer import TraceFileWriter

logger = logging.getLogger(__name__)

Args = Optional[Mapping[str, str]]

LAMBDA_PREFIX = "λ::"
SCOPE_PREFIX = "scope::"

_GLOBAL_LOCK = threading.Lock()


def _call_site(depth: int) -> Tuple[str, str]:
    """(qualified function name, "file:line") of the frame ``depth`` levels above this one."""
    frame = sys._getframe(depth)
    code = frame.f_code
    return getattr(code, "co_qualname", code.co_name), f"{code.co_filename}:{frame.f_lineno}"


class _NullContext:
    """Returned by the trace helpers when instrumentation is disabled."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, exc_tb):
        return False


class StackTracer:
    """
    Emits a DurationBegin event on ``__enter__`` and the matching DurationEnd
    on ``__exit__``, whichever way the block is left. Single use, not copyable.
    """

    def __init__(
        self,
        tracing: PerfettoTracing,
        name: str,
        location: str,
        args: Args = None,
        thread: Optional[Hashable] = None,
    ) -> None:
        self._tracing = tracing
        self.name = name
        self.location = location
        self.args = dict(args) if args is not None else None
        self.thread = thread
        self._entered = False

    def __enter__(self) -> StackTracer:
        if self._entered:
            raise RuntimeError(f"StackTracer '{self.name}' has already been used")
        self._entered = True
        if self.thread is None:
            self.thread = threading.get_ident()
        self._tracing.emit(
            self.name, self.location, EventType.DurationBegin,
            thread=self.thread, attributes=self.args,
        )
        return self

    def __exit__(self, exc_type, exc, exc_tb):
        self._tracing.emit(
            self.name, self.location, EventType.DurationEnd,
            thread=self.thread, attributes=self.args,
        )
        return False

    def __copy__(self):
        raise TypeError("StackTracer cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("StackTracer cannot be copied")


class PerfettoTracing:
    """
    Collects trace events into time gated, quota bounded windows and writes
    each window to a Chrome Trace Event file that ui.perfetto.dev can load.

    - Windows are registered with add_trace_window() and activated in order
      of start time; events outside an active window are discarded.
    - Once a window has accepted its quota, the next submission flushes it to
      ``<name>.trace``, retires the window and is itself dropped.
    - shutdown() (also run on ``with`` exit and, for the global instance, at
      interpreter exit) writes whatever the active window still buffers.

    Every method is safe to call from any thread. Flushes happen on the
    submitting thread while the lock is held.
    """

    _global_instance: Optional[PerfettoTracing] = None
    _exit_hook_registered = False

    def __init__(
        self,
        config: Optional[TracingConfig] = None,
        clock: Optional[Callable[[], int]] = None,
        writer: Optional[TraceFileWriter] = None,
    ) -> None:
        """
        Args:
            config: output directory and switches, defaults to TracingConfig().
            clock: returns monotonic nanoseconds, defaults to time.monotonic_ns.
            writer: serializer, defaults to a TraceFileWriter on config.trace_directory.
        """
        self.config = config if config is not None else TracingConfig()
        self._clock = clock if clock is not None else time.monotonic_ns
        self._writer = writer if writer is not None else TraceFileWriter(self.config.trace_directory)

        self._lock = threading.Lock()
        self._scheduler = TraceWindowScheduler()
        self._events: List[Event] = []
        # events accepted for the front window, kept across partial flushes
        self._accepted = 0
        # windows whose file has a header but has not been closed yet
        self._started_files: Set[str] = set()

        self._dropped_events = 0
        self._discarded_events = 0
        self._shut_down = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @property
    def writer(self) -> TraceFileWriter:
        return self._writer

    def now(self) -> int:
        return self._clock()

    def is_tracing(self) -> bool:
        with self._lock:
            return not self._shut_down and self._scheduler.is_active(self._clock())

    @property
    def windows(self) -> Tuple[TraceWindow, ...]:
        with self._lock:
            return self._scheduler.windows

    @property
    def buffered_events(self) -> int:
        with self._lock:
            return len(self._events)

    @property
    def dropped_events(self) -> int:
        """Events dropped because they arrived at a window that had reached its quota."""
        with self._lock:
            return self._dropped_events

    @property
    def discarded_events(self) -> int:
        """Events submitted while no window was active."""
        with self._lock:
            return self._discarded_events

    @property
    def is_shut_down(self) -> bool:
        with self._lock:
            return self._shut_down

    # ------------------------------------------------------------------
    # Windows and submission
    # ------------------------------------------------------------------
    def add_trace_window(self, name: str, samples_to_collect: int, start_time: Optional[int] = None) -> TraceWindow:
        """
        Register a collection window.

        Args:
            name: output file stem, the events go to ``<name>.trace``.
            samples_to_collect: number of events to buffer before writing.
            start_time: monotonic ns (same clock as now()) at which collection
                may begin; defaults to now.

        Raises:
            TraceConfigError: invalid name or quota, or the window would start
                ahead of an active window that already holds events.
        """
        if start_time is None:
            start_time = self._clock()
        with self._lock:
            if self._shut_down:
                raise TraceConfigError(f"Cannot add trace window '{name}' after shutdown")
            front = self._scheduler.front
            if front is not None and self._accepted and start_time < front.start_time:
                raise TraceConfigError(
                    f"Trace window '{name}' would start before active window '{front.name}', "
                    f"which already accepted {self._accepted} events"
                )
            window = self._scheduler.add_window(name, samples_to_collect, start_time)
        logger.debug("Added trace window '%s' (%d samples, start %d)", name, samples_to_collect, start_time)
        return window

    def submit(self, event: Event) -> bool:
        """
        Buffer ``event`` if a window is active.

        Returns:
            True if the event was buffered.

        Raises:
            TraceWriteError: the full buffer could not be written. The buffer
                and the window are left as they were.
        """
        with self._lock:
            if self._shut_down or not self.config.enabled or not self._scheduler.is_active(self._clock()):
                self._discarded_events += 1
                return False

            window = self._scheduler.front
            if window is None:
                raise TracingInvariantError("Tracing is active without a trace window")
            if self._accepted > window.samples_to_collect:
                raise TracingInvariantError(
                    f"Window '{window.name}' accepted {self._accepted} events, "
                    f"more than its quota of {window.samples_to_collect}"
                )
            if len(self._events) > self._accepted:
                raise TracingInvariantError(
                    f"{len(self._events)} events buffered but only {self._accepted} "
                    f"accepted for window '{window.name}'"
                )
            if self._accepted == window.samples_to_collect:
                # the event that finds the window full is not kept
                self._dropped_events += 1
                self._retire_front_locked(window)
                return False

            self._events.append(event)
            self._accepted += 1
            return True

    def emit(
        self,
        name: str,
        location: Optional[str],
        type: EventType,
        timestamp: Optional[int] = None,
        process: int = STACK_PROCESS,
        thread: Optional[Hashable] = None,
        correlation_id: Optional[str] = None,
        attributes: Args = None,
        duration: Optional[int] = None,
        scope: Optional[EventScope] = None,
    ) -> bool:
        """Build an Event from explicit fields and submit it. Missing timestamp/thread default to now/current."""
        return self.submit(Event(
            name=name,
            location=location if location is not None else "",
            type=EventType(type),
            timestamp=self._clock() if timestamp is None else timestamp,
            process=process,
            thread=threading.get_ident() if thread is None else thread,
            duration=duration,
            correlation_id=correlation_id,
            attributes=attributes,
            scope=scope,
        ))

    # ------------------------------------------------------------------
    # Flushing
    # ------------------------------------------------------------------
    def flush(self, append: Optional[bool] = None) -> Optional[str]:
        """
        Write the buffer to the active window's file without retiring it.

        Args:
            append: True appends, False truncates and writes a new header.
                None appends if this window's file was already started.

        Returns:
            the path written, or None if no window is active.
        """
        with self._lock:
            window = self._scheduler.active_window(self._clock())
            if window is None:
                if self._events:
                    raise TracingInvariantError(f"{len(self._events)} events buffered without an active window")
                return None
            if append is None:
                append = window.name in self._started_files
            return self._flush_locked(window, append)

    def shutdown(self) -> None:
        """
        Write out the active window and stop collecting. Safe to call twice.

        Write errors are logged, not raised: at interpreter exit nobody is
        left to handle them.
        """
        with self._lock:
            if self._shut_down:
                return
            self._shut_down = True

            window = self._scheduler.active_window(self._clock())
            if window is not None and (self._events or window.name in self._started_files):
                try:
                    self._retire_front_locked(window)
                except TraceWriteError:
                    logger.error("Failed to flush trace window '%s' at shutdown", window.name, exc_info=True)
                    return

            pending = len(self._scheduler)
            if pending:
                logger.debug("Discarding %d unfinished trace windows", pending)
            self._scheduler.clear()

    def _flush_locked(self, window: TraceWindow, append: bool) -> str:
        events = self._events
        trace_start = None if events else self._clock()
        path = self._writer.write(window.name, events, append=append, trace_start_ns=trace_start)
        # cleared only once the write went through
        self._events = []
        self._started_files.add(window.name)
        return path

    def _retire_front_locked(self, window: TraceWindow) -> None:
        self._flush_locked(window, append=window.name in self._started_files)
        self._started_files.discard(window.name)
        self._scheduler.pop_front()
        self._accepted = 0

        upcoming = self._scheduler.front
        if upcoming is not None:
            logger.debug("Trace window '%s' done, next is '%s' (%d samples)",
                         window.name, upcoming.name, upcoming.samples_to_collect)
        else:
            logger.debug("Trace window '%s' done, no windows left", window.name)

        if self.config.close_arrays:
            self._writer.close(window.name)

    def __enter__(self) -> PerfettoTracing:
        return self

    def __exit__(self, exc_type, exc, exc_tb):
        self.shutdown()
        return False

    # ------------------------------------------------------------------
    # Instrumentation helpers
    # ------------------------------------------------------------------
    def trace_function(
        self,
        args: Args = None,
        *,
        location: Optional[str] = None,
        function: Optional[str] = None,
        stacklevel: int = 1,
    ):
        """
        Trace the calling function::

            def load():
                with tracing.trace_function():
                    ...

        The function name and ``file:line`` come from the caller's frame
        unless ``function``/``location`` are given. ``stacklevel`` works as
        in ``logging``.
        """
        if not self.enabled:
            return _NullContext()
        if function is None or location is None:
            caller, caller_location = _call_site(stacklevel + 1)
            function = caller if function is None else function
            location = caller_location if location is None else location
        return StackTracer(self, function, location, args)

    def trace_lambda(self, name: str, args: Args = None, *, location: Optional[str] = None, stacklevel: int = 1):
        """Trace an anonymous callable under a caller supplied name."""
        if not self.enabled:
            return _NullContext()
        if location is None:
            location = _call_site(stacklevel + 1)[1]
        return StackTracer(self, LAMBDA_PREFIX + name, location, args)

    def trace_scope(self, name: str, args: Args = None, *, location: Optional[str] = None, stacklevel: int = 1):
        """Trace a block of code under a caller supplied name."""
        if not self.enabled:
            return _NullContext()
        if location is None:
            location = _call_site(stacklevel + 1)[1]
        return StackTracer(self, SCOPE_PREFIX + name, location, args)

    def trace_value(self, name: str, value: Any, *, location: Optional[str] = None, stacklevel: int = 1) -> bool:
        """Record the current value of a number as a Counter event."""
        if isinstance(value, bool):
            value = int(value)
        if not isinstance(value, numbers.Real):
            raise TypeError(f"trace_value() needs a number, got {type(value).__name__}")
        if not self.enabled:
            return False
        if location is None:
            location = _call_site(stacklevel + 1)[1]
        return self.emit(name, location, EventType.Counter, attributes={"value": str(value)})

    def instant(
        self,
        name: str,
        args: Args = None,
        *,
        location: Optional[str] = None,
        scope: EventScope = EventScope.Thread,
    ) -> bool:
        """Record an instantaneous marker."""
        if not self.enabled:
            return False
        return self.emit(name, location, EventType.Instantaneous, attributes=args, scope=scope)

    def complete(
        self,
        name: str,
        start: int,
        end: Optional[int] = None,
        duration: Optional[int] = None,
        *,
        location: Optional[str] = None,
        args: Args = None,
    ) -> bool:
        """
        Record a complete (X) event. Times are monotonic ns; pass
        (start + end) or (start + duration).
        """
        if (end is None) == (duration is None):
            raise ValueError("Provide exactly one of end or duration")
        if duration is None:
            duration = end - start  # type: ignore[operator]
        if duration < 0:
            raise ValueError("Duration is negative; check start/end timestamps.")
        if not self.enabled:
            return False
        return self.emit(name, location, EventType.Duration, timestamp=start,
                         attributes=args, duration=duration)

    def traced(self, func: Optional[Callable] = None, *, args: Args = None):
        """Decorator form of trace_function(), usable bare or with ``args``."""
        def decorator(fn: Callable) -> Callable:
            name, location = _describe(fn)

            @functools.wraps(fn)
            def wrapper(*a, **kw):
                with self.trace_function(args, function=name, location=location):
                    return fn(*a, **kw)
            return wrapper

        if func is not None:
            return decorator(func)
        return decorator

    # ------------------------------------------------------------------
    # Global instance
    # ------------------------------------------------------------------
    @classmethod
    def init_global_tracing(
        cls,
        config: Optional[TracingConfig] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> PerfettoTracing:
        """
        Create the process wide instance, shutting down any previous one.
        Registers an interpreter exit hook the first time it runs.
        """
        with _GLOBAL_LOCK:
            previous = cls._global_instance
            cls._global_instance = cls(config=config, clock=clock)
            if not PerfettoTracing._exit_hook_registered:
                atexit.register(_shutdown_global_at_exit)
                PerfettoTracing._exit_hook_registered = True
            instance = cls._global_instance
        if previous is not None:
            previous.shutdown()
        logger.info("Configured global tracing: directory=%s enabled=%s",
                    instance.config.trace_directory, instance.enabled)
        return instance

    @classmethod
    def get_global_tracing(cls) -> PerfettoTracing:
        """
        Raises:
            RuntimeError: init_global_tracing() has not been called.
        """
        instance = cls._global_instance
        if instance is None:
            raise RuntimeError("Global tracing has not been initialized. Call init_global_tracing() first.")
        return instance

    @classmethod
    def reset_global_tracing(cls) -> None:
        """Shut down and forget the global instance."""
        with _GLOBAL_LOCK:
            instance = cls._global_instance
            cls._global_instance = None
        if instance is not None:
            instance.shutdown()


def _describe(fn: Callable) -> Tuple[str, str]:
    name = getattr(fn, "__qualname__", None) or getattr(fn, "__name__", repr(fn))
    code = getattr(fn, "__code__", None)
    if code is None:
        return name, getattr(fn, "__module__", None) or ""
    return name, f"{code.co_filename}:{code.co_firstlineno}"


def _shutdown_global_at_exit() -> None:
    instance = PerfettoTracing._global_instance
    if instance is None:
        return
    instance.shutdown()


# ----------------------------------------------------------------------
# Module level helpers on the global instance. They do nothing until
# PerfettoTracing.init_global_tracing() has been called.
# ----------------------------------------------------------------------
def get_tracing() -> Optional[PerfettoTracing]:
    """The global instance, or None before init_global_tracing()."""
    return PerfettoTracing._global_instance


def add_trace_window(name: str, samples_to_collect: int, start_time: Optional[int] = None) -> TraceWindow:
    """
    Register a window on the global instance.

    Raises:
        RuntimeError: global tracing is not initialized.
        TraceConfigError: invalid name or quota.
    """
    return PerfettoTracing.get_global_tracing().add_trace_window(name, samples_to_collect, start_time)


def trace_function(args: Args = None, *, location: Optional[str] = None, function: Optional[str] = None):
    """
    Trace the calling function on the global instance.

    Args:
        args: attributes written on both the begin and end events.
        location: overrides the captured ``file:line``.
        function: overrides the captured function name.

    Returns:
        a StackTracer, or a null context before init_global_tracing().
    """
    tracing = get_tracing()
    if tracing is None:
        return _NullContext()
    return tracing.trace_function(args, location=location, function=function, stacklevel=2)


def trace_lambda(name: str, args: Args = None, *, location: Optional[str] = None):
    """Global instance version of PerfettoTracing.trace_lambda()."""
    tracing = get_tracing()
    if tracing is None:
        return _NullContext()
    return tracing.trace_lambda(name, args, location=location, stacklevel=2)


def trace_scope(name: str, args: Args = None, *, location: Optional[str] = None):
    """Global instance version of PerfettoTracing.trace_scope()."""
    tracing = get_tracing()
    if tracing is None:
        return _NullContext()
    return tracing.trace_scope(name, args, location=location, stacklevel=2)


def trace_value(name: str, value: Any, *, location: Optional[str] = None) -> bool:
    """
    Record a counter sample on the global instance.

    Returns:
        True if the sample was buffered, False before init_global_tracing().
    """
    tracing = get_tracing()
    if tracing is None:
        return False
    return tracing.trace_value(name, value, location=location, stacklevel=2)


def traced(func: Optional[Callable] = None, *, args: Args = None):
    """
    Decorator tracing every call through whichever global instance is
    current when the call happens.
    """
    def decorator(fn: Callable) -> Callable:
        name, location = _describe(fn)

        @functools.wraps(fn)
        def wrapper(*a, **kw):
            tracing = get_tracing()
            if tracing is None:
                return fn(*a, **kw)
            with tracing.trace_function(args, function=name, location=location):
                return fn(*a, **kw)
        return wrapper

    if func is not None:
        return decorator(func)
    return decorator

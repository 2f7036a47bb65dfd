"""
perfetto_tracing: in-process instrumentation that writes Chrome Trace Event
files for ui.perfetto.dev.

Events are buffered per trace window and written to ``<window>.trace`` once
the window's quota is reached or the process exits.
"""

import logging

from .config import TracingConfig
from .errors import TraceConfigError, TraceWriteError, TracingError, TracingInvariantError
from .event import STACK_PROCESS, Event, EventScope, EventType, TraceWindow
from .logging_config import configure_from_env, disable_logging, enable_console_logging, set_level
from .scheduler import TraceWindowScheduler
from .serializer import ThreadIdentityMap, TraceFileWriter
from .tracer import (
    PerfettoTracing,
    StackTracer,
    add_trace_window,
    get_tracing,
    trace_function,
    trace_lambda,
    trace_scope,
    trace_value,
    traced,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"
__all__ = [
    "PerfettoTracing",
    "StackTracer",
    "TracingConfig",
    "Event",
    "EventType",
    "EventScope",
    "TraceWindow",
    "TraceWindowScheduler",
    "ThreadIdentityMap",
    "TraceFileWriter",
    "STACK_PROCESS",
    "TracingError",
    "TraceConfigError",
    "TraceWriteError",
    "TracingInvariantError",
    "add_trace_window",
    "get_tracing",
    "trace_function",
    "trace_lambda",
    "trace_scope",
    "trace_value",
    "traced",
    "configure_from_env",
    "disable_logging",
    "enable_console_logging",
    "set_level",
]

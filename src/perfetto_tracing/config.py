"""
Runtime configuration.

Environment variables:
    PERFETTO_TRACE_DIR: directory for ``.trace`` files (default: cwd)
    PERFETTO_TRACE_ENABLED: "0", "false", "no" or "off" turns instrumentation off
    PERFETTO_TRACE_CLOSE_ARRAYS: same values; keep retired files as open arrays
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

ENV_TRACE_DIR = "PERFETTO_TRACE_DIR"
ENV_ENABLED = "PERFETTO_TRACE_ENABLED"
ENV_CLOSE_ARRAYS = "PERFETTO_TRACE_CLOSE_ARRAYS"

_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_flag(value: Optional[str], default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() not in _FALSE_VALUES


@dataclass
class TracingConfig:
    """
    Settings for a PerfettoTracing context.

    Attributes:
        trace_directory: where ``<window>.trace`` files go, defaults to the
            working directory when the config is created.
        enabled: instrumentation switch; when False the trace helpers return
            a null context and nothing is buffered.
        close_arrays: append the closing ``]`` when a window is retired.
    """
    trace_directory: str = field(default_factory=os.getcwd)
    enabled: bool = True
    close_arrays: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> TracingConfig:
        env = os.environ if environ is None else environ
        directory = env.get(ENV_TRACE_DIR) or os.getcwd()
        return cls(
            trace_directory=os.path.expanduser(os.path.expandvars(directory)),
            enabled=_env_flag(env.get(ENV_ENABLED), True),
            close_arrays=_env_flag(env.get(ENV_CLOSE_ARRAYS), True),
        )

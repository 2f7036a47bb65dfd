"""
Writes buffered events as Chrome Trace Event JSON.

A ``.trace`` file is a JSON array written incrementally: the first write
opens the array with a synthetic ``TraceStart`` record, every event after that
is a comma prefixed object. The array is left open so later batches can be
appended; ``TraceFileWriter.close`` adds the closing bracket. Perfetto and
chrome://tracing load the open form as well.
"""

from __future__ import annotations

import json
import logging
import math
import os
from typing import Any, Dict, Hashable, List, Mapping, Optional, Sequence, Union

from .errors import TraceWriteError
from .event import STACK_PROCESS, Event, EventType

logger = logging.getLogger(__name__)

TRACE_SUFFIX = ".trace"
TRACE_START_NAME = "TraceStart"

_RECORD_SEPARATOR = ",\n"
_ARRAY_CLOSE = "\n]\n"


class ThreadIdentityMap:
    """Maps opaque thread identities to dense track ids, in first-seen order."""

    def __init__(self) -> None:
        self._ids: Dict[Hashable, int] = {}

    def index_for(self, thread: Hashable) -> int:
        """
        Dense id for ``thread``, assigning the next free one on first sight.

        Args:
            thread: any hashable thread identity.

        Returns:
            0 for the first thread seen, 1 for the second, and so on.
        """
        index = self._ids.get(thread)
        if index is None:
            index = len(self._ids)
            self._ids[thread] = index
        return index

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, thread: Hashable) -> bool:
        return thread in self._ids


def ns_to_us(nanoseconds: int) -> int:
    return int(nanoseconds) // 1000


def _counter_value(value: str) -> Union[int, float, str]:
    """Number for a plain finite numeric string, otherwise the string itself."""
    text = str(value)
    if "_" in text:
        return text
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return text
    # NaN and Infinity are not JSON
    return number if math.isfinite(number) else text


def _render_args(attributes: Mapping[str, str], type: EventType) -> Dict[str, Any]:
    if type is EventType.Counter:
        # viewers only plot numeric counter series
        return {str(k): _counter_value(v) for k, v in attributes.items()}
    return {str(k): str(v) for k, v in attributes.items()}


def _dumps(record: Dict[str, Any]) -> str:
    return json.dumps(record, ensure_ascii=False, allow_nan=False)


def format_header(trace_start_ns: int) -> str:
    """Array opening bracket plus the synthetic TraceStart record."""
    record = {
        "name": TRACE_START_NAME,
        "ph": EventType.Instantaneous.value,
        "ts": ns_to_us(trace_start_ns),
        "pid": STACK_PROCESS,
    }
    return "[" + _dumps(record)


def format_record(event: Event, tid: int) -> str:
    """
    One comma prefixed JSON object for ``event``.

    Args:
        event: the buffered event.
        tid: dense track id from the batch's ThreadIdentityMap.

    Returns:
        a comma and newline followed by the JSON object, ready to append
        after the previous record.
    """
    record: Dict[str, Any] = {
        "name": event.name,
        "cat": event.location,
        "ph": EventType(event.type).value,
        "ts": ns_to_us(event.timestamp),
        "pid": event.process,
        "tid": tid,
    }
    if event.correlation_id is not None:
        record["id"] = event.correlation_id
    if event.duration is not None:
        record["dur"] = ns_to_us(event.duration)
    if event.scope is not None:
        record["s"] = event.scope.value
    if event.attributes is not None:
        record["args"] = _render_args(event.attributes, EventType(event.type))
    return _RECORD_SEPARATOR + _dumps(record)


def render_batch(events: Sequence[Event], append: bool, trace_start_ns: Optional[int] = None) -> str:
    """
    Render a batch to text. A fresh ThreadIdentityMap is used for every batch.

    Args:
        events: buffered events, in submission order.
        append: if True no header is written.
        trace_start_ns: timestamp of the TraceStart record, defaults to the
            earliest event in the batch.
    """
    chunks: List[str] = []
    if not append:
        if trace_start_ns is None:
            trace_start_ns = min((e.timestamp for e in events), default=0)
        chunks.append(format_header(trace_start_ns))

    threads = ThreadIdentityMap()
    for event in events:
        chunks.append(format_record(event, threads.index_for(event.thread)))
    return "".join(chunks)


class TraceFileWriter:
    """Writes ``<directory>/<window name>.trace`` files."""

    def __init__(self, directory: Union[str, "os.PathLike[str]"]) -> None:
        self.directory = os.fspath(directory)

    def path_for(self, window_name: str) -> str:
        return os.path.join(self.directory, window_name + TRACE_SUFFIX)

    def write(
        self,
        window_name: str,
        events: Sequence[Event],
        append: bool = False,
        trace_start_ns: Optional[int] = None,
    ) -> str:
        """
        Truncate (or append to) the window's file and write ``events``.

        The batch is rendered before the file is opened, so a failure leaves
        the caller's buffer untouched. Nothing is retried.

        Returns:
            the path written to.

        Raises:
            TraceWriteError: the file could not be opened or written.
        """
        text = render_batch(events, append=append, trace_start_ns=trace_start_ns)
        path = self._write_text(window_name, text, mode="a" if append else "w")
        logger.info("Trace file %s: %s", "added to" if append else "created", path)
        return path

    def close(self, window_name: str) -> str:
        """Terminate the window's JSON array so strict JSON parsers accept it."""
        path = self._write_text(window_name, _ARRAY_CLOSE, mode="a")
        logger.debug("Trace file closed: %s", path)
        return path

    def _write_text(self, window_name: str, text: str, mode: str) -> str:
        path = self.path_for(window_name)
        try:
            if self.directory:
                os.makedirs(self.directory, exist_ok=True)
            with open(path, mode, encoding="utf-8") as f:
                f.write(text)
        except OSError as exc:
            raise TraceWriteError(f"Failed to write trace file {path}: {exc}", path=path) from exc
        return path

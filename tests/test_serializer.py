"""Tests for the trace file serializer."""

from __future__ import annotations

import json

import pytest

from perfetto_tracing import Event, EventScope, EventType, ThreadIdentityMap, TraceFileWriter, TraceWriteError
from perfetto_tracing.serializer import format_header, format_record, render_batch


def _event(name: str, ts_ns: int, thread="main", **kwargs) -> Event:
    return Event(name=name, location="app.py:1", type=kwargs.pop("type", EventType.DurationBegin),
                 timestamp=ts_ns, thread=thread, **kwargs)


def test_thread_identity_map_is_dense_in_first_seen_order() -> None:
    threads = ThreadIdentityMap()

    assert [threads.index_for(t) for t in ["a", "b", "a", "c", "b"]] == [0, 1, 0, 2, 1]
    assert len(threads) == 3
    assert "c" in threads


def test_header_and_record_text() -> None:
    assert format_header(7_000) == '[{"name": "TraceStart", "ph": "i", "ts": 7, "pid": 0}'

    record = format_record(_event("f", 2_500_000, thread=140234), tid=0)
    assert record == ',\n{"name": "f", "cat": "app.py:1", "ph": "B", "ts": 2500, "pid": 0, "tid": 0}'


def test_record_optional_fields() -> None:
    event = Event(
        name="load", location="io", type=EventType.Duration, timestamp=10_000,
        process=3, thread="t", duration=4_999, correlation_id="req-1",
        attributes={"path": "/tmp/x"},
    )
    record = json.loads(format_record(event, tid=5)[2:])

    assert record == {
        "name": "load", "cat": "io", "ph": "X", "ts": 10, "pid": 3, "tid": 5,
        "id": "req-1", "dur": 4, "args": {"path": "/tmp/x"},
    }


def test_instant_scope_and_counter_args() -> None:
    marker = _event("mark", 1_000, type=EventType.Instantaneous, scope=EventScope.Process)
    counter = _event("depth", 1_000, type=EventType.Counter, attributes={"value": "3.5", "n": "7", "tag": "x"})

    assert json.loads(format_record(marker, 0)[2:])["s"] == "p"
    assert json.loads(format_record(counter, 0)[2:])["args"] == {"value": 3.5, "n": 7, "tag": "x"}


def test_render_batch_uses_fresh_thread_map_and_earliest_timestamp() -> None:
    events = [_event("a", 5_000, thread="x"), _event("b", 3_000, thread="y"), _event("c", 9_000, thread="x")]

    records = json.loads(render_batch(events, append=False) + "]")

    assert records[0] == {"name": "TraceStart", "ph": "i", "ts": 3, "pid": 0}
    assert [r["tid"] for r in records[1:]] == [0, 1, 0]

    appended = render_batch([_event("d", 10_000, thread="y")], append=True)
    assert appended.startswith(",\n")
    assert json.loads(appended[2:])["tid"] == 0


def test_two_writes_append_without_second_header(tmp_path, read_trace) -> None:
    writer = TraceFileWriter(tmp_path)

    path = writer.write("session", [_event("a", 1_000), _event("b", 2_000)])
    writer.write("session", [_event("c", 3_000)], append=True)

    text = (tmp_path / "session.trace").read_text(encoding="utf-8")
    assert path == str(tmp_path / "session.trace")
    assert text.count("TraceStart") == 1
    assert text.startswith("[")
    assert not text.rstrip().endswith("]")
    assert [r["name"] for r in read_trace(tmp_path / "session.trace")] == ["TraceStart", "a", "b", "c"]


def test_truncate_replaces_previous_contents(tmp_path, read_trace) -> None:
    writer = TraceFileWriter(tmp_path)
    writer.write("session", [_event("old", 1_000)])
    writer.write("session", [_event("new", 2_000)])

    assert [r["name"] for r in read_trace(tmp_path / "session.trace")] == ["TraceStart", "new"]


def test_close_makes_strict_json(tmp_path) -> None:
    writer = TraceFileWriter(tmp_path)
    writer.write("session", [_event("a", 1_000)])
    writer.close("session")

    with (tmp_path / "session.trace").open("r", encoding="utf-8") as fh:
        data = json.load(fh)

    assert len(data) == 2


def test_non_ascii_names_are_written_as_utf8(tmp_path) -> None:
    writer = TraceFileWriter(tmp_path)
    writer.write("session", [_event("λ::print", 1_000)])

    assert "λ::print" in (tmp_path / "session.trace").read_text(encoding="utf-8")


def test_creates_missing_directory(tmp_path) -> None:
    writer = TraceFileWriter(tmp_path / "nested" / "dir")
    writer.write("session", [_event("a", 1_000)])

    assert (tmp_path / "nested" / "dir" / "session.trace").exists()


def test_write_failure_raises_trace_write_error(tmp_path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    writer = TraceFileWriter(blocker)

    with pytest.raises(TraceWriteError) as info:
        writer.write("session", [_event("a", 1_000)])

    assert isinstance(info.value, OSError)
    assert info.value.path == str(blocker / "session.trace")


def _reject_constant(name: str):
    raise ValueError(f"non-standard JSON constant {name}")


def test_counter_keeps_non_finite_and_underscored_values_as_strings() -> None:
    counter = _event("ratio", 1_000, type=EventType.Counter,
                     attributes={"nan": "nan", "inf": "inf", "neg": "-inf", "grouped": "1_000"})

    record = json.loads(format_record(counter, 0)[2:], parse_constant=_reject_constant)

    assert record["args"] == {"nan": "nan", "inf": "inf", "neg": "-inf", "grouped": "1_000"}


def test_non_finite_floats_are_never_written() -> None:
    broken = _event("bad", 1_000, process=float("nan"))  # type: ignore[arg-type]

    with pytest.raises(ValueError):
        format_record(broken, 0)

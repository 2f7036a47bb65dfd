"""Tests for TraceWindowScheduler."""

from __future__ import annotations

import pytest

from perfetto_tracing import TraceWindowScheduler


def test_empty_scheduler_is_inactive() -> None:
    scheduler = TraceWindowScheduler()

    assert not scheduler.is_active(0)
    assert scheduler.active_window(10**12) is None
    assert scheduler.front is None
    assert len(scheduler) == 0

    with pytest.raises(IndexError):
        scheduler.pop_front()


def test_windows_sorted_by_start_time_regardless_of_registration_order() -> None:
    scheduler = TraceWindowScheduler()
    scheduler.add_window("third", 1, start_time=300)
    scheduler.add_window("first", 1, start_time=100)
    scheduler.add_window("second", 1, start_time=200)

    assert [w.name for w in scheduler.windows] == ["first", "second", "third"]
    assert scheduler.pop_front().name == "first"
    assert scheduler.front.name == "second"


def test_is_active_once_front_window_start_reached() -> None:
    scheduler = TraceWindowScheduler()
    scheduler.add_window("later", 5, start_time=1000)

    assert not scheduler.is_active(999)
    assert scheduler.is_active(1000)
    assert scheduler.active_window(2000).name == "later"


def test_clear_removes_all_windows() -> None:
    scheduler = TraceWindowScheduler()
    scheduler.add_window("a", 1, start_time=0)
    scheduler.add_window("b", 1, start_time=1)

    scheduler.clear()

    assert scheduler.windows == ()
    assert not scheduler.is_active(10)

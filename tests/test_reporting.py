"""Tests for console reporting helpers."""

from __future__ import annotations

import datetime as dt

import pytest

from pacering.models import DailyProgress
from pacering.reporting import (
    SummaryPrinter,
    format_duration,
    format_hour,
    format_hours_minutes,
    progress_bar,
    sorted_summary,
)
from pacering.tracker import ActivityTracker

from conftest import FakeClock, FakeObserver


def test_format_duration() -> None:
    assert format_duration(3725) == "01:02:05"


@pytest.mark.parametrize(("hour", "label"), [(0, "12:00 AM"), (9, "9:00 AM"), (12, "12:00 PM"), (23, "11:00 PM")])
def test_format_hour(hour: int, label: str) -> None:
    assert format_hour(hour) == label


def test_format_hours_minutes() -> None:
    assert format_hours_minutes(2 * 3600 + 15 * 60 + 59) == "2h 15m"


def test_sorted_summary_orders_by_time() -> None:
    assert sorted_summary({"Mail": 5, "Editor": 50, "Music": 20}) == [
        ("Editor", 50),
        ("Music", 20),
        ("Mail", 5),
    ]


@pytest.mark.parametrize(("progress", "expected"), [(0.0, "." * 10), (0.5, "#####....."), (1.0, "#" * 10)])
def test_progress_bar(progress: float, expected: str) -> None:
    entry = DailyProgress(day=dt.date(2025, 6, 15), progress=progress)
    assert progress_bar(entry, width=10) == expected


def test_session_summary_output(
    tracker: ActivityTracker,
    observer: FakeObserver,
    clock: FakeClock,
    capsys: pytest.CaptureFixture[str],
) -> None:
    tracker.set_work_apps(["Editor"])
    tracker.set_default_goal(1.0)
    tracker.tick()
    clock.advance(minutes=30)
    tracker.tick()

    SummaryPrinter(tracker).print_session_summary()
    output = capsys.readouterr().out

    assert "Work today:   0h 30m" in output
    assert "Goal:         1h (50% complete)" in output
    assert "* Editor" in output
    assert "00:30:00" in output

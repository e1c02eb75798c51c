"""Shared fixtures for the pacering test suite."""

from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Optional

import pytest

from pacering.storage import StateStore
from pacering.tracker import ActivityTracker


class FakeClock:
    """Manually advanced stand-in for ``datetime.now``."""

    def __init__(self, start: dt.datetime) -> None:
        self.now = start

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **kwargs: float) -> dt.datetime:
        self.now = self.now + dt.timedelta(**kwargs)
        return self.now


class FakeObserver:
    """Observer whose foreground app and titles are set by the test."""

    def __init__(self, app: Optional[str] = None) -> None:
        self.app = app
        self.titles: dict[str, Optional[str]] = {}
        self.title_requests: list[str] = []

    def current_foreground_app(self) -> Optional[str]:
        return self.app

    def current_window_title(self, app_name: str) -> Optional[str]:
        self.title_requests.append(app_name)
        return self.titles.get(app_name)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(dt.datetime(2025, 6, 15, 10, 0, 0))


@pytest.fixture()
def observer() -> FakeObserver:
    return FakeObserver(app="Editor")


@pytest.fixture()
def tracker(observer: FakeObserver, clock: FakeClock) -> ActivityTracker:
    return ActivityTracker(observer=observer, clock=clock)


@pytest.fixture()
def store(tmp_path: Path):
    state_store = StateStore(tmp_path / "pacering.sqlite3")
    yield state_store
    state_store.close()

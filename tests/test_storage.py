"""Tests for persisted tracker state and startup recovery."""

from __future__ import annotations

import datetime as dt
import uuid
from contextlib import closing
from pathlib import Path

from pacering.config import DEFAULT_GOAL_HOURS, DEFAULT_WORK_APPS
from pacering.db import open_database, write_value
from pacering.models import ActivityRecord, AppLanguage
from pacering.storage import RECORDS_KEY, SESSION_ID_KEY, StateStore
from pacering.tracker import ActivityTracker

from conftest import FakeClock, FakeObserver


def _record(start: dt.datetime, seconds: int = 60) -> ActivityRecord:
    return ActivityRecord(
        application="Editor",
        start_time=start,
        end_time=start + dt.timedelta(seconds=seconds),
        session_id=uuid.uuid4(),
        daily_goal=6.0,
        work_apps=["Editor", "Terminal"],
        window_title="main.py",
    )


class TestStateStoreRoundTrip:
    def test_records_survive_reopen(self, tmp_path: Path) -> None:
        path = tmp_path / "state.sqlite3"
        record = _record(dt.datetime(2025, 6, 15, 9, 0), seconds=90)
        first = StateStore(path)
        first.save_records([record])
        first.close()

        second = StateStore(path)
        loaded = second.load_records()
        second.close()

        assert loaded == [record]
        assert loaded[0].duration_seconds == 90

    def test_settings_survive_reopen(self, tmp_path: Path) -> None:
        path = tmp_path / "state.sqlite3"
        session_id = uuid.uuid4()
        first = StateStore(path)
        first.save_work_apps(["Editor"])
        first.save_daily_goals({"2025-06-15": 4.0})
        first.save_session_id(session_id)
        first.save_last_reset_date(dt.date(2025, 6, 15))
        first.save_default_goal(2.0)
        first.save_language(AppLanguage.CHINESE)
        first.save_update_interval(15)
        first.close()

        second = StateStore(path)
        try:
            assert second.load_work_apps() == ["Editor"]
            assert second.load_daily_goals() == {"2025-06-15": 4.0}
            assert second.load_session_id() == session_id
            assert second.load_last_reset_date() == dt.date(2025, 6, 15)
            assert second.load_default_goal() == 2.0
            assert second.load_language() is AppLanguage.CHINESE
            assert second.load_update_interval() == 15.0
        finally:
            second.close()


class TestStateStoreDefaults:
    def test_empty_database_uses_defaults(self, store: StateStore) -> None:
        assert store.load_records() == []
        assert store.load_work_apps() == list(DEFAULT_WORK_APPS)
        assert store.load_daily_goals() == {}
        assert store.load_session_id() is None
        assert store.load_last_reset_date() is None
        assert store.load_default_goal() == DEFAULT_GOAL_HOURS
        assert store.load_language() is AppLanguage.ENGLISH
        assert store.load_update_interval() is None

    def test_corrupt_records_fall_back_to_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "state.sqlite3"
        with closing(open_database(path)) as conn:
            write_value(conn, RECORDS_KEY, '[{"application": "Editor"}]')
            write_value(conn, SESSION_ID_KEY, '"not-a-uuid"')

        store = StateStore(path)
        try:
            assert store.load_records() == []
            assert store.load_session_id() is None
        finally:
            store.close()


class TestTrackerPersistence:
    def test_tracker_restores_session_and_records(
        self, store: StateStore, observer: FakeObserver, clock: FakeClock
    ) -> None:
        tracker = ActivityTracker(observer=observer, store=store, clock=clock)
        tracker.set_work_apps(["Editor"])
        tracker.tick()
        clock.advance(seconds=30)
        tracker.tick()
        tracker.save_records()

        restored = ActivityTracker(observer=observer, store=store, clock=clock)

        assert restored.current_session_id == tracker.current_session_id
        assert restored.work_apps == ["Editor"]
        assert restored.summarize() == {"Editor": 30}

    def test_startup_reset_is_remembered(
        self, store: StateStore, observer: FakeObserver, clock: FakeClock
    ) -> None:
        tracker = ActivityTracker(observer=observer, store=store, clock=clock)
        assert tracker.check_and_reset_daily_logs() is True
        session_id = tracker.current_session_id

        restarted = ActivityTracker(observer=observer, store=store, clock=clock)
        assert restarted.check_and_reset_daily_logs() is False
        assert restarted.current_session_id == session_id

    def test_corrupt_state_does_not_block_startup(
        self, tmp_path: Path, observer: FakeObserver, clock: FakeClock
    ) -> None:
        path = tmp_path / "state.sqlite3"
        with closing(open_database(path)) as conn:
            write_value(conn, RECORDS_KEY, "{broken")

        store = StateStore(path)
        try:
            tracker = ActivityTracker(observer=observer, store=store, clock=clock)
            assert tracker.records == []
            assert tracker.tick() is not None
        finally:
            store.close()

"""Activity sampling and session accounting."""

from __future__ import annotations

import logging
import threading
import uuid
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Optional

from .config import DEFAULT_GOAL_HOURS, DEFAULT_WORK_APPS, TrackerSettings
from .models import ActivityRecord, AppLanguage, DailyProgress, TrackerEvent
from .observer import ActiveWindowObserver, WindowTitleCache
from .storage import StateStore

logger = logging.getLogger(__name__)

Subscriber = Callable[[TrackerEvent], None]


class ActivityTracker:
    """Owns the activity record list, the live session and the derived aggregates.

    Every mutation is serialized behind a single re-entrant lock, so the
    sampling thread and dashboard requests never interleave their writes.
    Subscribers are notified after the lock is released.
    """

    def __init__(
        self,
        observer: ActiveWindowObserver,
        store: Optional[StateStore] = None,
        settings: Optional[TrackerSettings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.settings = settings or TrackerSettings()
        self._observer = observer
        self._store = store
        self._clock = clock
        self._lock = threading.RLock()
        self._subscribers: list[Subscriber] = []
        self._title_cache = WindowTitleCache(
            observer, ttl=self.settings.title_cache_ttl, clock=clock
        )

        if store is not None:
            self._records = store.load_records()
            self._work_apps = store.load_work_apps()
            self._daily_goals = store.load_daily_goals()
            self._current_goal = store.load_default_goal()
            self._language = store.load_language()
            self._last_reset_date = store.load_last_reset_date()
            stored_interval = store.load_update_interval()
            session_id = store.load_session_id()
        else:
            self._records = []
            self._work_apps = list(DEFAULT_WORK_APPS)
            self._daily_goals = {}
            self._current_goal = DEFAULT_GOAL_HOURS
            self._language = AppLanguage.ENGLISH
            self._last_reset_date = None
            stored_interval = None
            session_id = None

        if session_id is None:
            session_id = uuid.uuid4()
            self._persist(lambda s: s.save_session_id(session_id))
        self._session_id: uuid.UUID = session_id
        self._update_interval = (
            stored_interval
            if stored_interval is not None
            else self.settings.sample_interval.total_seconds()
        )
        self._last_checked_day = clock().date()
        # What the store held at the last load or save; unsaved local changes are
        # measured against it when another process writes the same database.
        self._synced_ids = {record.id for record in self._records}
        self._synced_session = session_id
        self._reset_day: Optional[date] = None
        self._dirty = False

    @property
    def current_session_id(self) -> uuid.UUID:
        with self._lock:
            return self._session_id

    @property
    def records(self) -> list[ActivityRecord]:
        with self._lock:
            return list(self._records)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` for change events; returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def tick(self, now: Optional[datetime] = None) -> Optional[ActivityRecord]:
        """Sample the foreground application once.

        Extends the last record when the same application and title are still
        frontmost on the same calendar day, otherwise appends a new record.
        Returns the touched record, or ``None`` when nothing is in front.
        """
        app_name = self._observer.current_foreground_app()
        if not app_name:
            return None
        window_title = self._title_cache.resolve(app_name)
        timestamp = now or self._clock()

        with self._lock:
            last = self._records[-1] if self._records else None
            if (
                last is not None
                and last.application == app_name
                and last.window_title == window_title
                and last.start_time.date() == timestamp.date()
            ):
                if timestamp > last.end_time:
                    last.end_time = timestamp
                record = last
            else:
                record = ActivityRecord(
                    application=app_name,
                    start_time=timestamp,
                    end_time=timestamp,
                    session_id=self._session_id,
                    daily_goal=self._effective_goal_locked(timestamp.date()),
                    work_apps=list(self._work_apps),
                    window_title=window_title,
                )
                self._records.append(record)
                logger.debug("New record: app=%s title=%s", app_name, window_title)
            self._dirty = True

        self._notify(TrackerEvent.RECORDS)
        return record

    def reset_today(self) -> None:
        """Start a new session and drop every record that started today."""
        with self._lock:
            today = self._clock().date()
            self._session_id = uuid.uuid4()
            before = len(self._records)
            self._records = [r for r in self._records if r.start_time.date() != today]
            removed = before - len(self._records)
            session_id = self._session_id
            self._synced_session = session_id
            self._reset_day = today
            self._dirty = True
        self._persist(lambda s: s.save_session_id(session_id))
        logger.info("Started session %s; removed %d records from today.", session_id, removed)
        self._notify(TrackerEvent.SESSION)
        self._notify(TrackerEvent.RECORDS)

    def check_for_new_day(self) -> bool:
        """Reset when the calendar day has advanced since the previous check."""
        today = self._clock().date()
        with self._lock:
            if self._last_checked_day >= today:
                return False
            self._last_checked_day = today
        logger.info("Day rolled over to %s.", today.isoformat())
        self.reset_today()
        self._mark_reset(today)
        return True

    def check_and_reset_daily_logs(self) -> bool:
        """Reset on startup unless a reset already happened today."""
        today = self._clock().date()
        with self._lock:
            if self._last_reset_date == today:
                return False
        self.reset_today()
        self._mark_reset(today)
        self.save_records()
        return True

    def save_records(self) -> None:
        """Write the record list if it changed since the last load or save."""
        self.reload_if_changed()
        with self._lock:
            if not self._dirty:
                return
            snapshot = list(self._records)
            self._dirty = False
            self._synced_ids = {record.id for record in snapshot}
            self._reset_day = None
        self._persist(lambda s: s.save_records(snapshot))

    def reload_if_changed(self) -> bool:
        """Fold in state another process saved to the same database.

        Unsaved local changes win over stored ones: new and extended records
        are kept and records deleted here stay deleted. A reset made elsewhere
        switches to the stored session and drops today's records of the old
        one. Settings take the stored values. Returns whether anything was
        reloaded.
        """
        store = self._store
        if store is None or not store.changed_externally():
            return False
        stored_records = store.load_records()
        stored_session = store.load_session_id()
        work_apps = store.load_work_apps()
        daily_goals = store.load_daily_goals()
        current_goal = store.load_default_goal()
        language = store.load_language()
        stored_interval = store.load_update_interval()
        last_reset = store.load_last_reset_date()

        with self._lock:
            before = (
                self._session_id,
                [(r.id, r.end_time) for r in self._records],
                self._work_apps,
                (self._daily_goals, self._current_goal),
                self._update_interval,
                self._language,
            )
            reset_elsewhere = (
                stored_session is not None
                and stored_session != self._synced_session
                and self._reset_day is None
            )
            self._records = self._merge_records_locked(stored_records, reset_elsewhere)
            self._synced_ids = {record.id for record in stored_records}
            if reset_elsewhere:
                self._session_id = stored_session
            rewrite_session = stored_session != self._session_id
            self._synced_session = self._session_id
            session_id = self._session_id
            self._work_apps = work_apps
            self._daily_goals = daily_goals
            self._current_goal = current_goal
            self._language = language
            if stored_interval is not None:
                self._update_interval = stored_interval
            if last_reset is not None:
                self._last_reset_date = last_reset
            after = (
                self._session_id,
                [(r.id, r.end_time) for r in self._records],
                self._work_apps,
                (self._daily_goals, self._current_goal),
                self._update_interval,
                self._language,
            )

        if rewrite_session:
            self._persist(lambda s: s.save_session_id(session_id))
        logger.info("Reloaded tracker state saved by another process.")
        events = (
            TrackerEvent.SESSION,
            TrackerEvent.RECORDS,
            TrackerEvent.WORK_APPS,
            TrackerEvent.GOAL,
            TrackerEvent.INTERVAL,
            TrackerEvent.LANGUAGE,
        )
        for event, old, new in zip(events, before, after):
            if old != new:
                self._notify(event)
        return True

    def today(self) -> date:
        return self._clock().date()

    def records_for_current_session(self) -> list[ActivityRecord]:
        with self._lock:
            return [r for r in self._records if r.session_id == self._session_id]

    def session_timeline(self) -> list[list[ActivityRecord]]:
        """Current-session records grouped into 24 buckets by start hour."""
        hours: list[list[ActivityRecord]] = [[] for _ in range(24)]
        for record in self.records_for_current_session():
            hours[record.start_time.hour].append(record)
        return hours

    def records_for_day(self, day: date) -> list[ActivityRecord]:
        with self._lock:
            return [r for r in self._records if r.start_time.date() == day]

    def today_records(self) -> list[ActivityRecord]:
        return self.records_for_day(self.today())

    def summarize(self) -> dict[str, int]:
        """Total seconds per application over the current session."""
        summary: defaultdict[str, int] = defaultdict(int)
        for record in self.records_for_current_session():
            summary[record.application] += record.duration_seconds
        return dict(summary)

    def work_seconds_today(self) -> int:
        work_apps = set(self.work_apps)
        return sum(
            r.duration_seconds for r in self.today_records() if r.application in work_apps
        )

    def total_active_seconds_today(self) -> int:
        return sum(r.duration_seconds for r in self.today_records())

    def session_progress(self) -> float:
        """Current-session work time as a fraction of today's goal."""
        work_apps = set(self.work_apps)
        work_seconds = sum(
            r.duration_seconds
            for r in self.records_for_current_session()
            if r.application in work_apps
        )
        return _progress(work_seconds, self.effective_goal(self.today()))

    def daily_progress_series(self, days: int = 30) -> list[DailyProgress]:
        """Goal progress for each of the last ``days`` calendar days, newest first.

        Today is measured against the live work-app set and goal; earlier days
        use the work apps and goal snapshotted on their own records.
        """
        if days < 1:
            raise ValueError("days must be at least 1")
        today = self._clock().date()
        with self._lock:
            grouped: defaultdict[date, list[ActivityRecord]] = defaultdict(list)
            for record in self._records:
                grouped[record.start_time.date()].append(record)
            live_apps = set(self._work_apps)
            live_goal = self._effective_goal_locked(today)

        series: list[DailyProgress] = []
        for offset in range(days):
            day = today - timedelta(days=offset)
            day_records = grouped.get(day)
            if not day_records:
                series.append(DailyProgress(day=day, progress=0.0))
                continue
            if day == today:
                work_seconds = _work_seconds(day_records, lambda r: live_apps)
                goal = live_goal
            else:
                work_seconds = _work_seconds(day_records, lambda r: r.work_apps)
                goal = day_records[0].daily_goal
            series.append(DailyProgress(day=day, progress=_progress(work_seconds, goal)))
        return series

    @property
    def work_apps(self) -> list[str]:
        with self._lock:
            return list(self._work_apps)

    def is_work_app(self, app_name: str) -> bool:
        with self._lock:
            return app_name in self._work_apps

    def set_work_apps(self, names: Iterable[str]) -> None:
        cleaned: list[str] = []
        for name in names:
            stripped = name.strip()
            if stripped and stripped not in cleaned:
                cleaned.append(stripped)
        with self._lock:
            self._work_apps = cleaned
        self._persist(lambda s: s.save_work_apps(cleaned))
        self._notify(TrackerEvent.WORK_APPS)

    def add_work_app(self, app_name: str) -> None:
        self.set_work_apps([*self.work_apps, app_name])

    def remove_work_app(self, app_name: str) -> None:
        self.set_work_apps([name for name in self.work_apps if name != app_name])

    @property
    def current_goal(self) -> float:
        with self._lock:
            return self._current_goal

    @property
    def daily_goals(self) -> dict[str, float]:
        with self._lock:
            return dict(self._daily_goals)

    def effective_goal(self, day: date) -> float:
        with self._lock:
            return self._effective_goal_locked(day)

    def set_default_goal(self, hours: float) -> None:
        """Set the default goal and today's entry in the daily goal map."""
        if hours <= 0:
            raise ValueError("goal must be a positive number of hours")
        today_key = self._clock().date().isoformat()
        with self._lock:
            self._current_goal = hours
            self._daily_goals[today_key] = hours
            goals = dict(self._daily_goals)

        def persist(store: StateStore) -> None:
            store.save_default_goal(hours)
            store.save_daily_goals(goals)

        self._persist(persist)
        self._notify(TrackerEvent.GOAL)

    @property
    def update_interval(self) -> float:
        with self._lock:
            return self._update_interval

    def set_update_interval(self, seconds: float) -> None:
        if seconds <= 0:
            raise ValueError("interval must be a positive number of seconds")
        with self._lock:
            self._update_interval = float(seconds)
        self._persist(lambda s: s.save_update_interval(float(seconds)))
        logger.info("Sampling interval set to %.1fs.", seconds)
        self._notify(TrackerEvent.INTERVAL)

    @property
    def language(self) -> AppLanguage:
        with self._lock:
            return self._language

    def set_language(self, language: AppLanguage) -> None:
        with self._lock:
            self._language = language
        self._persist(lambda s: s.save_language(language))
        self._notify(TrackerEvent.LANGUAGE)

    def _effective_goal_locked(self, day: date) -> float:
        return self._daily_goals.get(day.isoformat(), self._current_goal)

    def _merge_records_locked(
        self, stored: list[ActivityRecord], reset_elsewhere: bool
    ) -> list[ActivityRecord]:
        local = {record.id: record for record in self._records}
        deleted_here = self._synced_ids - local.keys()
        today = self._clock().date()

        merged: list[ActivityRecord] = []
        for record in stored:
            if record.id in deleted_here:
                continue
            if (
                self._reset_day is not None
                and record.start_time.date() == self._reset_day
                and record.session_id != self._session_id
            ):
                continue
            live = local.get(record.id)
            if live is not None and live.end_time > record.end_time:
                record.end_time = live.end_time
            merged.append(record)

        stored_ids = {record.id for record in stored}
        for record in self._records:
            if record.id in stored_ids or record.id in self._synced_ids:
                continue
            if (
                reset_elsewhere
                and record.start_time.date() == today
                and record.session_id == self._session_id
            ):
                continue
            merged.append(record)
        merged.sort(key=lambda record: record.start_time)
        return merged

    def _mark_reset(self, day: date) -> None:
        with self._lock:
            self._last_reset_date = day
        self._persist(lambda s: s.save_last_reset_date(day))

    def _persist(self, action: Callable[[StateStore], None]) -> None:
        if self._store is not None:
            action(self._store)

    def _notify(self, event: TrackerEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception("Subscriber failed while handling %s.", event.value)


def _work_seconds(
    records: list[ActivityRecord],
    work_apps_for: Callable[[ActivityRecord], Iterable[str]],
) -> int:
    return sum(r.duration_seconds for r in records if r.application in work_apps_for(r))


def _progress(work_seconds: float, goal_hours: float) -> float:
    if goal_hours <= 0:
        return 0.0
    return max(0.0, min(1.0, work_seconds / (goal_hours * 3600)))

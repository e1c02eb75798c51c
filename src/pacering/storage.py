"""Typed access to the persisted tracker state."""

from __future__ import annotations

import logging
import sqlite3
import threading
import uuid
from datetime import date
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

from pydantic import TypeAdapter, ValidationError

from .config import DEFAULT_GOAL_HOURS, DEFAULT_WORK_APPS
from .db import data_version, open_database, read_value, write_value
from .models import ActivityRecord, AppLanguage

logger = logging.getLogger(__name__)

T = TypeVar("T")

RECORDS_KEY = "activity_records"
WORK_APPS_KEY = "work_apps"
DAILY_GOALS_KEY = "daily_goals"
SESSION_ID_KEY = "current_session_id"
LAST_RESET_KEY = "last_reset_date"
DEFAULT_GOAL_KEY = "work_time"
LANGUAGE_KEY = "app_language"
INTERVAL_KEY = "update_interval"

_records_adapter = TypeAdapter(list[ActivityRecord])
_work_apps_adapter = TypeAdapter(list[str])
_daily_goals_adapter = TypeAdapter(dict[str, float])
_session_adapter = TypeAdapter(uuid.UUID)
_date_adapter = TypeAdapter(date)
_float_adapter = TypeAdapter(float)
_language_adapter = TypeAdapter(AppLanguage)


class StateStore:
    """Loads and saves tracker state as JSON blobs in SQLite.

    Every ``load_*`` method falls back to a default when the stored value is
    missing or cannot be decoded; decode failures are logged and never raised.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._conn = open_database(self.db_path, check_same_thread=False)
        self._lock = threading.Lock()
        self._data_version = data_version(self._conn)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def changed_externally(self) -> bool:
        """Whether another connection wrote to the database since the last call."""
        with self._lock:
            version = data_version(self._conn)
            changed = version != self._data_version
            self._data_version = version
        return changed

    def load_records(self) -> list[ActivityRecord]:
        return self._load(RECORDS_KEY, _records_adapter, list)

    def save_records(self, records: list[ActivityRecord]) -> None:
        self._save(RECORDS_KEY, _records_adapter, records)
        logger.debug("Saved %d activity records.", len(records))

    def load_work_apps(self) -> list[str]:
        return self._load(WORK_APPS_KEY, _work_apps_adapter, lambda: list(DEFAULT_WORK_APPS))

    def save_work_apps(self, work_apps: list[str]) -> None:
        self._save(WORK_APPS_KEY, _work_apps_adapter, work_apps)

    def load_daily_goals(self) -> dict[str, float]:
        return self._load(DAILY_GOALS_KEY, _daily_goals_adapter, dict)

    def save_daily_goals(self, goals: dict[str, float]) -> None:
        self._save(DAILY_GOALS_KEY, _daily_goals_adapter, goals)

    def load_session_id(self) -> Optional[uuid.UUID]:
        return self._load(SESSION_ID_KEY, _session_adapter, lambda: None)

    def save_session_id(self, session_id: uuid.UUID) -> None:
        self._save(SESSION_ID_KEY, _session_adapter, session_id)

    def load_last_reset_date(self) -> Optional[date]:
        return self._load(LAST_RESET_KEY, _date_adapter, lambda: None)

    def save_last_reset_date(self, day: date) -> None:
        self._save(LAST_RESET_KEY, _date_adapter, day)

    def load_default_goal(self) -> float:
        goal = self._load(DEFAULT_GOAL_KEY, _float_adapter, lambda: DEFAULT_GOAL_HOURS)
        if goal <= 0:
            logger.warning("Ignoring non-positive stored goal %r.", goal)
            return DEFAULT_GOAL_HOURS
        return goal

    def save_default_goal(self, hours: float) -> None:
        self._save(DEFAULT_GOAL_KEY, _float_adapter, hours)

    def load_language(self) -> AppLanguage:
        return self._load(LANGUAGE_KEY, _language_adapter, lambda: AppLanguage.ENGLISH)

    def save_language(self, language: AppLanguage) -> None:
        self._save(LANGUAGE_KEY, _language_adapter, language)

    def load_update_interval(self) -> Optional[float]:
        interval = self._load(INTERVAL_KEY, _float_adapter, lambda: None)
        if interval is not None and interval <= 0:
            logger.warning("Ignoring non-positive stored interval %r.", interval)
            return None
        return interval

    def save_update_interval(self, seconds: float) -> None:
        self._save(INTERVAL_KEY, _float_adapter, seconds)

    def _load(self, key: str, adapter: TypeAdapter[Any], default: Callable[[], T]) -> T:
        with self._lock:
            raw = read_value(self._conn, key)
        if raw is None:
            return default()
        try:
            return adapter.validate_json(raw)
        except ValidationError:
            logger.warning("Stored value for %r could not be decoded; using defaults.", key)
            return default()

    def _save(self, key: str, adapter: TypeAdapter[Any], value: Any) -> None:
        payload = adapter.dump_json(value).decode("utf-8")
        try:
            with self._lock:
                write_value(self._conn, key, payload)
        except sqlite3.Error:
            logger.exception("Failed to persist %r.", key)

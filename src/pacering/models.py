"""Domain models for recorded activity."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional


@dataclass(slots=True)
class ActivityRecord:
    """A contiguous span during which one application and title stayed frontmost."""

    application: str
    start_time: datetime
    end_time: datetime
    session_id: uuid.UUID
    daily_goal: float
    work_apps: list[str] = field(default_factory=list)
    window_title: Optional[str] = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    @property
    def duration_seconds(self) -> int:
        return int((self.end_time - self.start_time).total_seconds())

    @property
    def duration_label(self) -> str:
        minutes, seconds = divmod(self.duration_seconds, 60)
        return f"{minutes}min {seconds}sec"

    @property
    def day(self) -> date:
        return self.start_time.date()


@dataclass(slots=True, frozen=True)
class DailyProgress:
    """Goal progress for a single calendar day."""

    day: date
    progress: float

    @property
    def label(self) -> str:
        return self.day.strftime("%m/%d")


class TrackerEvent(str, Enum):
    """Kinds of state change announced to tracker subscribers."""

    RECORDS = "records"
    SESSION = "session"
    WORK_APPS = "work_apps"
    GOAL = "goal"
    INTERVAL = "interval"
    LANGUAGE = "language"


class AppLanguage(str, Enum):
    ENGLISH = "en"
    CHINESE = "zh"

    @property
    def display_name(self) -> str:
        return "English" if self is AppLanguage.ENGLISH else "中文"

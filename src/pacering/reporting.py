"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from .models import DailyProgress
from .tracker import ActivityTracker


class SummaryPrinter:
    """Render human-readable summaries in the console."""

    def __init__(self, tracker: ActivityTracker) -> None:
        self.tracker = tracker

    def print_session_summary(self) -> None:
        totals = sorted_summary(self.tracker.summarize())
        if not totals:
            print("No activity recorded in the current session.")
            return

        goal = self.tracker.effective_goal(self.tracker.today())
        print(f"Session {self.tracker.current_session_id}")
        print("-" * 40)
        print(f"Active today: {format_hours_minutes(self.tracker.total_active_seconds_today())}")
        print(f"Work today:   {format_hours_minutes(self.tracker.work_seconds_today())}")
        print(f"Goal:         {goal:g}h ({self.tracker.session_progress():.0%} complete)")
        print()
        print("Applications:")
        for application, seconds in totals:
            marker = "*" if self.tracker.is_work_app(application) else " "
            print(f" {marker} {application[:30]:<30} {format_duration(seconds)}")

    def print_progress(self, days: int = 30) -> None:
        for entry in self.tracker.daily_progress_series(days):
            print(f"{entry.label}  {progress_bar(entry)}  {entry.progress:>4.0%}")


def sorted_summary(summary: dict[str, int]) -> list[tuple[str, int]]:
    return sorted(summary.items(), key=lambda item: item[1], reverse=True)


def progress_bar(entry: DailyProgress, width: int = 20) -> str:
    filled = int(round(entry.progress * width))
    return "#" * filled + "." * (width - filled)


def format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_hours_minutes(seconds: float) -> str:
    total_seconds = int(seconds)
    hours, remainder = divmod(total_seconds, 3600)
    return f"{hours}h {remainder // 60}m"


def format_hour(hour: int) -> str:
    """12-hour clock label for the start of ``hour``, e.g. ``"1:00 PM"``."""
    period = "AM" if hour < 12 else "PM"
    return f"{hour % 12 or 12}:00 {period}"

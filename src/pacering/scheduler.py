"""Background sampling loop and debounced persistence."""

from __future__ import annotations

import logging
import threading
import time
from datetime import timedelta
from typing import Callable, Optional

from .config import TrackerSettings
from .models import TrackerEvent
from .tracker import ActivityTracker

logger = logging.getLogger(__name__)


class SaveDebouncer:
    """Coalesces bursts of record changes into a single save after a quiet period."""

    def __init__(self, save: Callable[[], None], delay: timedelta) -> None:
        self._save = save
        self._delay = delay.total_seconds()
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._generation = 0
        self._pending = False
        self._closed = False

    def __call__(self, event: TrackerEvent) -> None:
        if event is TrackerEvent.RECORDS:
            self.touch()

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending

    def touch(self) -> None:
        """Restart the quiet-period deadline."""
        with self._lock:
            if self._closed:
                return
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            self._pending = True
            timer = threading.Timer(self._delay, self._fire, args=(self._generation,))
            timer.daemon = True
            self._timer = timer
        timer.start()

    def flush(self) -> None:
        """Write pending changes now instead of waiting for the deadline."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            pending = self._pending
            self._pending = False
        if pending:
            self._run_save()

    def close(self) -> None:
        """Write pending changes and ignore any later ones."""
        with self._lock:
            self._closed = True
        self.flush()

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or not self._pending:
                return
            self._pending = False
            self._timer = None
        self._run_save()

    def _run_save(self) -> None:
        try:
            self._save()
        except Exception:
            logger.exception("Failed to save activity records.")


class TrackerRunner:
    """Drive the tracker's sampling and day-rollover schedules from one thread."""

    def __init__(self, tracker: ActivityTracker, settings: Optional[TrackerSettings] = None) -> None:
        self._tracker = tracker
        self._settings = settings or tracker.settings
        self._debouncer = SaveDebouncer(tracker.save_records, self._settings.save_debounce)
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._wake_event = threading.Event()
        tracker.subscribe(self._debouncer)
        tracker.subscribe(self._on_tracker_event)

    @property
    def debouncer(self) -> SaveDebouncer:
        return self._debouncer

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            self._wake_event.clear()
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run_loop,
                args=(stop_event,),
                name="pacering-tracker",
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
            thread.start()
            logger.info("Tracker background thread started.")

    def stop(self) -> None:
        thread: Optional[threading.Thread] = None
        with self._lock:
            if self._thread and self._thread.is_alive() and self._stop_event:
                self._stop_event.set()
                self._wake_event.set()
                thread = self._thread
            self._thread = None
            self._stop_event = None
        if thread:
            thread.join(timeout=10)
            logger.info("Tracker background thread stopped.")
        self._debouncer.flush()

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())

    def run_forever(self) -> None:
        """Run in the calling thread until interrupted."""
        stop_event = threading.Event()
        try:
            self._run_loop(stop_event)
        except KeyboardInterrupt:
            logger.info("Tracker interrupted; saving records.")
        finally:
            self._debouncer.flush()

    def _on_tracker_event(self, event: TrackerEvent) -> None:
        if event is TrackerEvent.INTERVAL:
            self._wake_event.set()

    def _run_loop(self, stop_event: threading.Event) -> None:
        logger.info("Sampling every %.1fs.", self._tracker.update_interval)
        rollover_every = self._settings.rollover_check_interval.total_seconds()
        next_tick = time.monotonic()
        next_rollover = next_tick + rollover_every
        while not stop_event.is_set():
            now = time.monotonic()
            if self._wake_event.is_set():
                self._wake_event.clear()
                next_tick = now + self._tracker.update_interval
            if now >= next_tick:
                self._safe_call(self._tracker.reload_if_changed)
                self._safe_call(self._tracker.tick)
                next_tick = time.monotonic() + self._tracker.update_interval
            if now >= next_rollover:
                self._safe_call(self._tracker.check_for_new_day)
                next_rollover = time.monotonic() + rollover_every
            # Sleep until the next deadline; interval changes and stop() wake us early.
            self._wake_event.wait(max(0.0, min(next_tick, next_rollover) - time.monotonic()))

    @staticmethod
    def _safe_call(action: Callable[[], object]) -> None:
        try:
            action()
        except Exception:
            logger.exception("Tracker step failed; continuing.")

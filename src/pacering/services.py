"""Wiring of the tracker, its runner and the analysis service."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from .analysis import AnalysisService, ChatCompletionClient, CompletionClient
from .config import AnalysisSettings, TrackerSettings
from .observer import ActiveWindowObserver, create_observer
from .scheduler import TrackerRunner
from .storage import StateStore
from .tracker import ActivityTracker

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Services:
    store: StateStore
    tracker: ActivityTracker
    runner: TrackerRunner
    analysis: AnalysisService

    def close(self) -> None:
        """Stop sampling and write records only if this process changed them."""
        self.runner.stop()
        self.runner.debouncer.close()
        self.tracker.save_records()
        self.store.close()


def build_services(
    db_path: Path,
    settings: Optional[TrackerSettings] = None,
    *,
    observer: Optional[ActiveWindowObserver] = None,
    completion_client: Optional[CompletionClient] = None,
    clock: Callable[[], datetime] = datetime.now,
) -> Services:
    """Load persisted state and assemble the services for one process."""
    store = StateStore(db_path)
    tracker = ActivityTracker(
        observer=observer or create_observer(),
        store=store,
        settings=settings or TrackerSettings(),
        clock=clock,
    )
    if tracker.check_and_reset_daily_logs():
        logger.info("First launch today; started a new session.")
    runner = TrackerRunner(tracker)
    client = completion_client or ChatCompletionClient(AnalysisSettings.from_env())
    return Services(
        store=store,
        tracker=tracker,
        runner=runner,
        analysis=AnalysisService(client, clock=clock),
    )

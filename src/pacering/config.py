"""Configuration models and helpers for the tracker and analysis service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping, Optional


INTERVAL_OPTIONS: tuple[int, ...] = (1, 5, 10, 15, 30, 300)
GOAL_OPTIONS: tuple[float, ...] = (0.5, 1.0, 2.0, 4.0, 8.0, 12.0)

DEFAULT_WORK_APPS: tuple[str, ...] = (
    "Microsoft Excel",
    "Microsoft Outlook",
    "Google Chrome",
    "Pacering",
    "Xcode",
)
DEFAULT_GOAL_HOURS = 8.0


@dataclass(slots=True)
class TrackerSettings:
    """Runtime configuration for the sampling engine."""

    sample_interval: timedelta = timedelta(seconds=1)
    rollover_check_interval: timedelta = timedelta(seconds=60)
    save_debounce: timedelta = timedelta(seconds=3)
    title_cache_ttl: timedelta = timedelta(seconds=30)


@dataclass(slots=True)
class AnalysisSettings:
    """Connection details for the hosted chat-completion endpoint."""

    api_key: Optional[str] = None
    api_url: str = "https://open.bigmodel.cn/api/paas/v4/chat/completions"
    model: str = "glm-4-flash"
    temperature: float = 0.7
    max_tokens: int = 1000

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AnalysisSettings":
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            api_key=env.get("PACERING_API_KEY") or None,
            api_url=env.get("PACERING_API_URL", defaults.api_url),
            model=env.get("PACERING_MODEL", defaults.model),
        )

"""Locations of the tracker database and log file."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

from platformdirs import PlatformDirs

APP_NAME = "Pacering"
DATA_DIR_ENV = "PACERING_DATA_DIR"

DB_FILENAME = "pacering.sqlite3"
LOG_FILENAME = "pacering.log"


def _dirs() -> PlatformDirs:
    return PlatformDirs(appname=APP_NAME, appauthor=False)


def _override(environ: Optional[Mapping[str, str]]) -> Optional[Path]:
    value = (environ if environ is not None else os.environ).get(DATA_DIR_ENV, "").strip()
    return Path(value).expanduser() if value else None


def get_data_dir(environ: Optional[Mapping[str, str]] = None) -> Path:
    """Return the directory holding the database, creating it if needed.

    ``PACERING_DATA_DIR`` replaces the per-user platform location.
    """
    path = _override(environ) or _dirs().user_data_path
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_log_dir(environ: Optional[Mapping[str, str]] = None) -> Path:
    """Return the log directory: the data directory when overridden, else the platform log path."""
    path = _override(environ) or _dirs().user_log_path
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_db_path(environ: Optional[Mapping[str, str]] = None) -> Path:
    return get_data_dir(environ) / DB_FILENAME


def get_log_path(environ: Optional[Mapping[str, str]] = None) -> Path:
    return get_log_dir(environ) / LOG_FILENAME

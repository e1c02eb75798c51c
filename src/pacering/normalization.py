"""Utilities to classify applications and normalize window titles."""

from __future__ import annotations

import re
from typing import Optional

_BROWSER_MARKERS: tuple[str, ...] = (
    "safari",
    "chrome",
    "firefox",
    "msedge",
    "microsoft edge",
    "brave",
    "opera",
)

_BROWSER_SUFFIXES: dict[str, tuple[str, ...]] = {
    "msedge": (" - Microsoft Edge", " - Personal - Microsoft Edge"),
    "microsoft edge": (" - Microsoft Edge",),
    "chrome": (" - Google Chrome",),
    "google chrome": (" - Google Chrome",),
    "firefox": (" - Mozilla Firefox", " — Mozilla Firefox"),
    "brave": (" - Brave",),
    "brave browser": (" - Brave",),
    "opera": (" - Opera",),
}


def is_browser(app_name: Optional[str]) -> bool:
    """Return True when ``app_name`` looks like a web browser."""
    if not app_name:
        return False
    lowered = app_name.lower()
    return any(marker in lowered for marker in _BROWSER_MARKERS)


def normalize_app_name(app_name: Optional[str]) -> Optional[str]:
    """Strip whitespace and a trailing ``.exe`` from process names."""
    if not app_name:
        return None
    name = app_name.strip()
    if name.lower().endswith(".exe"):
        name = name[:-4]
    return name or None


def normalize_window_title(app_name: Optional[str], window_title: Optional[str]) -> Optional[str]:
    """Remove common browser suffixes to surface tab names."""
    if not window_title:
        return None
    normalized = window_title.strip()
    if not app_name:
        return normalized or None

    suffixes = _BROWSER_SUFFIXES.get(app_name.strip().lower())
    if suffixes:
        for suffix in suffixes:
            if normalized.endswith(suffix):
                normalized = normalized[: -len(suffix)].rstrip(" -")
                break

    normalized = _strip_tab_count(normalized)
    normalized = re.sub(r"\s{2,}", " ", normalized).strip()
    return normalized or None


_EXTRA_TAB_COUNT_PATTERN = re.compile(r"\s+and\s+\d+\s+more\s+pages?", re.IGNORECASE)


def _strip_tab_count(value: str) -> str:
    cleaned = _EXTRA_TAB_COUNT_PATTERN.sub("", value)
    return cleaned.strip(" -|")

"""Foreground application probes for macOS and Windows."""

from __future__ import annotations

import logging
import subprocess
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol

import psutil

from .normalization import is_browser, normalize_app_name, normalize_window_title

logger = logging.getLogger(__name__)


class ActiveWindowObserver(Protocol):
    """Reports what is currently in the foreground. Implementations never raise."""

    def current_foreground_app(self) -> Optional[str]:
        ...

    def current_window_title(self, app_name: str) -> Optional[str]:
        ...


_SAFARI_TAB_SCRIPT = """
tell application "Safari"
    if (count of windows) > 0 then
        return name of current tab of front window
    end if
end tell
"""

_CHROME_TAB_SCRIPT = """
tell application "Google Chrome"
    if (count of windows) > 0 then
        return title of active tab of front window
    end if
end tell
"""


class MacActiveWindowObserver:
    """Reads the frontmost application from ``NSWorkspace``.

    Tab titles for Safari and Chrome come from their AppleScript dictionaries;
    other applications report no title.
    """

    def __init__(self, timeout: float = 2.0, workspace: Optional[object] = None) -> None:
        if workspace is None:
            from AppKit import NSWorkspace

            workspace = NSWorkspace.sharedWorkspace()
        self._workspace = workspace
        self._timeout = timeout

    def current_foreground_app(self) -> Optional[str]:
        application = self._workspace.frontmostApplication()
        if application is None:
            return None
        return normalize_app_name(application.localizedName())

    def current_window_title(self, app_name: str) -> Optional[str]:
        lowered = app_name.lower()
        if "safari" in lowered:
            script = _SAFARI_TAB_SCRIPT
        elif "chrome" in lowered:
            script = _CHROME_TAB_SCRIPT
        else:
            return None
        return normalize_window_title(app_name, self._run_script(script))

    def _run_script(self, script: str) -> Optional[str]:
        try:
            completed = subprocess.run(
                ["osascript", "-e", script],
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except (OSError, subprocess.SubprocessError):
            logger.debug("osascript invocation failed.", exc_info=True)
            return None
        if completed.returncode != 0:
            logger.debug("AppleScript error: %s", completed.stderr.strip())
            return None
        return completed.stdout.strip() or None


class WindowsActiveWindowObserver:
    """Retrieves the foreground window title and process name via Win32."""

    def __init__(self) -> None:
        import ctypes

        self._ctypes = ctypes
        self._user32 = ctypes.windll.user32  # type: ignore[attr-defined]

    def current_foreground_app(self) -> Optional[str]:
        from ctypes import wintypes

        hwnd = self._user32.GetForegroundWindow()
        if not hwnd:
            return None
        pid = wintypes.DWORD()
        self._user32.GetWindowThreadProcessId(hwnd, self._ctypes.byref(pid))
        if not pid.value:
            return None
        try:
            return normalize_app_name(psutil.Process(pid.value).name())
        except (psutil.Error, ProcessLookupError):
            return None

    def current_window_title(self, app_name: str) -> Optional[str]:
        hwnd = self._user32.GetForegroundWindow()
        if not hwnd:
            return None
        length = self._user32.GetWindowTextLengthW(hwnd)
        buffer = self._ctypes.create_unicode_buffer(length + 1)
        self._user32.GetWindowTextW(hwnd, buffer, length + 1)
        return normalize_window_title(app_name, buffer.value)


class UnsupportedPlatformObserver:
    """Observer for platforms without a probe; every sample is a gap."""

    def __init__(self) -> None:
        self._warned = False

    def current_foreground_app(self) -> Optional[str]:
        if not self._warned:
            logger.warning(
                "Foreground tracking is not supported on %s; no activity will be recorded.",
                sys.platform,
            )
            self._warned = True
        return None

    def current_window_title(self, app_name: str) -> Optional[str]:
        return None


def create_observer() -> ActiveWindowObserver:
    """Return the observer for the running platform."""
    if sys.platform == "darwin":
        return MacActiveWindowObserver()
    if sys.platform == "win32":
        return WindowsActiveWindowObserver()
    return UnsupportedPlatformObserver()


def list_running_applications() -> list[str]:
    """Return the distinct names of running processes, sorted case-insensitively."""
    names: set[str] = set()
    for process in psutil.process_iter(["name"]):
        name = normalize_app_name(process.info.get("name"))
        if name:
            names.add(name)
    return sorted(names, key=str.casefold)


@dataclass(slots=True)
class _CachedTitle:
    title: Optional[str]
    captured_at: datetime


class WindowTitleCache:
    """Short-lived per-application title cache.

    Only browsers are asked for a title; every other application resolves to
    ``None`` without touching the observer.
    """

    def __init__(
        self,
        observer: ActiveWindowObserver,
        ttl: timedelta = timedelta(seconds=30),
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._observer = observer
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, _CachedTitle] = {}

    def resolve(self, app_name: str) -> Optional[str]:
        now = self._clock()
        cached = self._entries.get(app_name)
        if cached is not None and now - cached.captured_at < self._ttl:
            return cached.title

        title: Optional[str] = None
        if is_browser(app_name):
            title = self._observer.current_window_title(app_name)
        self._entries[app_name] = _CachedTitle(title=title, captured_at=now)
        return title
"""FastAPI application that exposes a local API for the tracker dashboard."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict

from . import __version__
from .analysis import AnalysisError, AnalysisSnapshot
from .config import GOAL_OPTIONS, INTERVAL_OPTIONS
from .models import ActivityRecord, AppLanguage
from .observer import list_running_applications
from .reporting import format_hour, sorted_summary
from .services import Services

logger = logging.getLogger(__name__)


class SettingsUpdate(BaseModel):
    update_interval: Optional[int] = None
    daily_goal: Optional[float] = None
    language: Optional[AppLanguage] = None

    model_config = ConfigDict(extra="forbid")


class WorkAppsPayload(BaseModel):
    apps: list[str]

    model_config = ConfigDict(extra="forbid")


def create_app(services: Services, *, start_runner: bool = True) -> FastAPI:
    """Instantiate the FastAPI application around already-built services."""
    app = FastAPI(title="Pacering", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.services = services

    @app.on_event("startup")
    async def _startup() -> None:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
        if start_runner:
            services.runner.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        services.runner.stop()
        services.tracker.save_records()

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        svc: Services = request.app.state.services
        return {
            "tracker_running": svc.runner.is_running(),
            "database_path": str(svc.store.db_path),
            "session_id": str(svc.tracker.current_session_id),
            "update_interval": svc.tracker.update_interval,
            "record_count": len(svc.tracker.records),
            "analysis_loading": svc.analysis.is_loading,
        }

    @app.get("/api/today")
    def today(request: Request) -> Dict[str, Any]:
        tracker = request.app.state.services.tracker
        entries = [
            {
                "application": application,
                "seconds": seconds,
                "is_work_app": tracker.is_work_app(application),
            }
            for application, seconds in sorted_summary(tracker.summarize())
        ]
        return {
            "date": tracker.today().isoformat(),
            "session_id": str(tracker.current_session_id),
            "entries": entries,
            "totals": {
                "session_seconds": sum(entry["seconds"] for entry in entries),
                "work_seconds_today": tracker.work_seconds_today(),
                "active_seconds_today": tracker.total_active_seconds_today(),
            },
            "goal_hours": tracker.effective_goal(tracker.today()),
            "progress": tracker.session_progress(),
        }

    @app.get("/api/records")
    def records(
        request: Request,
        scope: str = Query(
            default="session",
            pattern="^(session|today|all)$",
            description="Which records to return: session, today or all.",
        ),
    ) -> Dict[str, Any]:
        tracker = request.app.state.services.tracker
        if scope == "session":
            selected = tracker.records_for_current_session()
        elif scope == "today":
            selected = tracker.today_records()
        else:
            selected = tracker.records
        return {
            "scope": scope,
            "records": [_record_to_payload(record) for record in selected],
        }

    @app.get("/api/timeline")
    def timeline(request: Request) -> Dict[str, Any]:
        tracker = request.app.state.services.tracker
        return {
            "session_id": str(tracker.current_session_id),
            "hours": [
                {
                    "hour": hour,
                    "label": format_hour(hour),
                    "records": [_record_to_payload(record) for record in records],
                }
                for hour, records in enumerate(tracker.session_timeline())
            ],
        }

    @app.get("/api/progress")
    def progress(
        request: Request,
        days: int = Query(default=30, ge=1, le=366, description="Number of days to include."),
    ) -> Dict[str, Any]:
        tracker = request.app.state.services.tracker
        return {
            "days": [
                {
                    "date": entry.day.isoformat(),
                    "label": entry.label,
                    "progress": entry.progress,
                }
                for entry in tracker.daily_progress_series(days)
            ]
        }

    @app.get("/api/settings")
    def get_settings(request: Request) -> Dict[str, Any]:
        return _settings_payload(request.app.state.services)

    @app.put("/api/settings")
    def update_settings(payload: SettingsUpdate, request: Request) -> Dict[str, Any]:
        svc: Services = request.app.state.services
        if payload.update_interval is not None:
            if payload.update_interval not in INTERVAL_OPTIONS:
                raise HTTPException(
                    status_code=400,
                    detail=f"update_interval must be one of {list(INTERVAL_OPTIONS)}",
                )
            svc.tracker.set_update_interval(payload.update_interval)
        if payload.daily_goal is not None:
            if payload.daily_goal not in GOAL_OPTIONS:
                raise HTTPException(
                    status_code=400,
                    detail=f"daily_goal must be one of {list(GOAL_OPTIONS)}",
                )
            svc.tracker.set_default_goal(payload.daily_goal)
        if payload.language is not None:
            svc.tracker.set_language(payload.language)
        return _settings_payload(svc)

    @app.get("/api/work-apps")
    def get_work_apps(request: Request) -> Dict[str, Any]:
        return {"apps": request.app.state.services.tracker.work_apps}

    @app.put("/api/work-apps")
    def replace_work_apps(payload: WorkAppsPayload, request: Request) -> Dict[str, Any]:
        tracker = request.app.state.services.tracker
        tracker.set_work_apps(payload.apps)
        return {"apps": tracker.work_apps}

    @app.put("/api/work-apps/{app_name}")
    def add_work_app(app_name: str, request: Request) -> Dict[str, Any]:
        if not app_name.strip():
            raise HTTPException(status_code=400, detail="app_name is required")
        tracker = request.app.state.services.tracker
        tracker.add_work_app(app_name)
        return {"apps": tracker.work_apps}

    @app.delete("/api/work-apps/{app_name}")
    def remove_work_app(app_name: str, request: Request) -> Dict[str, Any]:
        tracker = request.app.state.services.tracker
        if not tracker.is_work_app(app_name):
            raise HTTPException(status_code=404, detail="Not a work app")
        tracker.remove_work_app(app_name)
        return {"apps": tracker.work_apps}

    @app.get("/api/running-apps")
    def running_apps(request: Request) -> Dict[str, Any]:
        tracker = request.app.state.services.tracker
        return {
            "apps": [
                {"name": name, "is_work_app": tracker.is_work_app(name)}
                for name in list_running_applications()
            ]
        }

    @app.post("/api/reset-today")
    def reset_today(request: Request) -> Dict[str, Any]:
        svc: Services = request.app.state.services
        svc.tracker.reset_today()
        svc.runner.debouncer.flush()
        return {"session_id": str(svc.tracker.current_session_id)}

    @app.get("/api/analysis")
    def get_analysis(request: Request) -> Dict[str, Any]:
        return _analysis_payload(request.app.state.services.analysis.snapshot())

    @app.post("/api/analysis")
    async def run_analysis(request: Request) -> Dict[str, Any]:
        svc: Services = request.app.state.services
        if svc.analysis.is_loading:
            raise HTTPException(status_code=409, detail="Analysis already in progress")
        try:
            snapshot = await svc.analysis.analyze(svc.tracker.today_records())
        except AnalysisError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return _analysis_payload(snapshot)

    return app


def _settings_payload(services: Services) -> Dict[str, Any]:
    tracker = services.tracker
    return {
        "update_interval": tracker.update_interval,
        "interval_options": list(INTERVAL_OPTIONS),
        "daily_goal": tracker.current_goal,
        "goal_options": list(GOAL_OPTIONS),
        "daily_goals": tracker.daily_goals,
        "language": tracker.language.value,
    }


def _analysis_payload(snapshot: AnalysisSnapshot) -> Dict[str, Any]:
    return {
        "is_loading": snapshot.is_loading,
        "results": {language.value: text for language, text in snapshot.results.items()},
        "error_message": snapshot.error_message,
    }


def _record_to_payload(record: ActivityRecord) -> Dict[str, Any]:
    return {
        "id": str(record.id),
        "application": record.application,
        "window_title": record.window_title,
        "start_time": record.start_time.isoformat(),
        "end_time": record.end_time.isoformat(),
        "duration_seconds": record.duration_seconds,
        "duration_label": record.duration_label,
        "session_id": str(record.session_id),
        "daily_goal": record.daily_goal,
        "work_apps": list(record.work_apps),
    }

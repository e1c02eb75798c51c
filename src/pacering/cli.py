"""Command-line interface for the tracker."""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from datetime import timedelta
from pathlib import Path
from typing import Iterator, Optional

import typer

from .config import GOAL_OPTIONS, INTERVAL_OPTIONS, TrackerSettings
from .models import AppLanguage
from .paths import get_db_path, get_log_path
from .server_runner import run_dashboard
from .services import Services, build_services

app = typer.Typer(help="Local-first productivity tracker.")
work_apps_app = typer.Typer(help="Manage which applications count as work.")
app.add_typer(work_apps_app, name="work-apps")

DB_OPTION_HELP = "Location of the tracker SQLite database."
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
    )


def _log_to_file() -> Path:
    """Copy log records into the tracker's log file as well as the console."""
    path = get_log_path()
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(handler)
    return path


@contextmanager
def _open_services(db_path: Optional[Path]) -> Iterator[Services]:
    services = build_services(db_path or get_db_path())
    try:
        yield services
    finally:
        services.close()


@app.command()
def track(
    db_path: Optional[Path] = typer.Option(None, "--db", path_type=Path, help=DB_OPTION_HELP),
    sample_seconds: Optional[float] = typer.Option(
        None,
        "--interval",
        min=1.0,
        help="Sampling interval in seconds (defaults to the saved setting).",
    ),
    log_to_file: bool = typer.Option(
        True,
        "--log-file/--no-log-file",
        help="Also write logs to the application log directory.",
    ),
) -> None:
    """Run the tracker in the foreground until interrupted."""
    if log_to_file:
        _log_to_file()

    with _open_services(db_path) as services:
        if sample_seconds is not None:
            services.tracker.set_update_interval(sample_seconds)
        services.runner.run_forever()


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the dashboard."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the dashboard."
    ),
    db_path: Optional[Path] = typer.Option(None, "--db", path_type=Path, help=DB_OPTION_HELP),
    save_debounce: float = typer.Option(
        3.0,
        "--save-debounce",
        min=0.1,
        help="Seconds without changes before records are written to disk.",
    ),
    open_browser: bool = typer.Option(
        True,
        "--open-browser/--no-open-browser",
        help="Automatically launch the API docs in your default browser.",
    ),
    log_to_file: bool = typer.Option(
        True,
        "--log-file/--no-log-file",
        help="Also write logs to the application log directory.",
    ),
) -> None:
    """Start the local dashboard API with the background tracker."""
    if log_to_file:
        typer.echo(f"Logging to {_log_to_file()}")
    settings = TrackerSettings(save_debounce=timedelta(seconds=save_debounce))
    run_dashboard(
        host=host,
        port=port,
        db_path=db_path or get_db_path(),
        settings=settings,
        open_browser=open_browser,
    )


@app.command()
def summary(
    db_path: Optional[Path] = typer.Option(None, "--db", path_type=Path, help=DB_OPTION_HELP),
) -> None:
    """Print the per-application summary for the current session."""
    from .reporting import SummaryPrinter

    with _open_services(db_path) as services:
        SummaryPrinter(services.tracker).print_session_summary()


@app.command()
def progress(
    days: int = typer.Option(30, "--days", min=1, max=366, help="Number of days to show."),
    db_path: Optional[Path] = typer.Option(None, "--db", path_type=Path, help=DB_OPTION_HELP),
) -> None:
    """Print daily goal progress, newest day first."""
    from .reporting import SummaryPrinter

    with _open_services(db_path) as services:
        SummaryPrinter(services.tracker).print_progress(days)


@app.command("reset-today")
def reset_today(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
    db_path: Optional[Path] = typer.Option(None, "--db", path_type=Path, help=DB_OPTION_HELP),
) -> None:
    """Delete today's records and start a new session."""
    if not yes:
        typer.confirm("Delete all of today's activity records?", abort=True)
    with _open_services(db_path) as services:
        services.tracker.reset_today()
        typer.echo(f"Started session {services.tracker.current_session_id}.")


@app.command()
def config(
    interval: Optional[int] = typer.Option(
        None, "--interval", help=f"Sampling interval, one of {list(INTERVAL_OPTIONS)} seconds."
    ),
    goal: Optional[float] = typer.Option(
        None, "--goal", help=f"Daily work goal, one of {list(GOAL_OPTIONS)} hours."
    ),
    language: Optional[AppLanguage] = typer.Option(None, "--language", help="Interface language."),
    db_path: Optional[Path] = typer.Option(None, "--db", path_type=Path, help=DB_OPTION_HELP),
) -> None:
    """Show or change tracker settings."""
    if interval is not None and interval not in INTERVAL_OPTIONS:
        raise typer.BadParameter(f"must be one of {list(INTERVAL_OPTIONS)}", param_hint="--interval")
    if goal is not None and goal not in GOAL_OPTIONS:
        raise typer.BadParameter(f"must be one of {list(GOAL_OPTIONS)}", param_hint="--goal")

    with _open_services(db_path) as services:
        tracker = services.tracker
        if interval is not None:
            tracker.set_update_interval(interval)
        if goal is not None:
            tracker.set_default_goal(goal)
        if language is not None:
            tracker.set_language(language)
        typer.echo(f"Interval: {tracker.update_interval:g}s")
        typer.echo(f"Goal:     {tracker.current_goal:g}h")
        typer.echo(f"Language: {tracker.language.display_name}")


@work_apps_app.command("list")
def list_work_apps(
    db_path: Optional[Path] = typer.Option(None, "--db", path_type=Path, help=DB_OPTION_HELP),
) -> None:
    """List the applications counted as work."""
    with _open_services(db_path) as services:
        for name in services.tracker.work_apps:
            typer.echo(name)


@work_apps_app.command("add")
def add_work_app(
    name: str = typer.Argument(..., help="Application name as shown by the tracker."),
    db_path: Optional[Path] = typer.Option(None, "--db", path_type=Path, help=DB_OPTION_HELP),
) -> None:
    """Count an application as work from now on."""
    with _open_services(db_path) as services:
        services.tracker.add_work_app(name)
        typer.echo(f"Added {name}.")


@work_apps_app.command("remove")
def remove_work_app(
    name: str = typer.Argument(..., help="Application name to stop counting as work."),
    db_path: Optional[Path] = typer.Option(None, "--db", path_type=Path, help=DB_OPTION_HELP),
) -> None:
    """Stop counting an application as work."""
    with _open_services(db_path) as services:
        if not services.tracker.is_work_app(name):
            typer.echo(f"{name} is not a work app.", err=True)
            raise typer.Exit(code=1)
        services.tracker.remove_work_app(name)
        typer.echo(f"Removed {name}.")


@app.command()
def analyze(
    db_path: Optional[Path] = typer.Option(None, "--db", path_type=Path, help=DB_OPTION_HELP),
) -> None:
    """Generate today's AI report in English and Chinese."""
    with _open_services(db_path) as services:
        snapshot = asyncio.run(services.analysis.analyze(services.tracker.today_records()))
    if snapshot.error_message:
        typer.echo(snapshot.error_message, err=True)
        raise typer.Exit(code=1)
    for language, text in snapshot.results.items():
        typer.echo(f"# {language.display_name}\n")
        typer.echo(text)
        typer.echo()

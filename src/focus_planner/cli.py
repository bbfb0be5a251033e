"""Command-line interface for the focus planner."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import typer

from .config import GridSettings, TimerSettings
from .db import LocalStore
from .models import DAYS_OF_WEEK, Category, ValidationError
from .paths import get_db_path
from .server_runner import LOG_FORMAT, run_dashboard
from .store import ActivityStore
from .sync import SqliteSyncAdapter, UserContext

app = typer.Typer(help="Weekly planner with a focus timer.")

_DAY_LOOKUP = {name[:3].lower(): index for index, name in enumerate(DAYS_OF_WEEK)}


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
    )


def _open_store(db_path: Optional[Path], user: Optional[str]) -> ActivityStore:
    path = db_path or get_db_path()
    context = UserContext(user_id=user, adapter=SqliteSyncAdapter(path)) if user else UserContext()
    store = ActivityStore(context, local=LocalStore(path))
    store.connect()
    return store


def _parse_days(values: List[str]) -> list[int]:
    days = []
    for value in values:
        key = value.strip().lower()[:3]
        if key.isdigit():
            days.append(int(key))
        elif key in _DAY_LOOKUP:
            days.append(_DAY_LOOKUP[key])
        else:
            raise typer.BadParameter(f"Unknown day: {value}")
    return days


@app.command()
def add(
    title: str = typer.Argument(..., help="Activity title."),
    category: Category = typer.Option(Category.WORK, "--category", "-c", help="Activity category."),
    duration: int = typer.Option(60, "--duration", "-d", min=1, help="Duration in minutes."),
    copies: int = typer.Option(1, "--copies", min=1, max=10, help="Inbox copies to create."),
    days: List[str] = typer.Option(
        [],
        "--day",
        help="Schedule on this weekday (name or 0-6, Sunday first); repeatable.",
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the planner SQLite database."
    ),
    user: Optional[str] = typer.Option(None, "--user", help="Sync under this user id."),
) -> None:
    """Add activities to the inbox or straight onto weekdays."""
    store = _open_store(db_path, user)
    try:
        created = store.create_many(
            title,
            category,
            duration,
            copies=copies,
            weekdays=_parse_days(days),
            start_minutes=GridSettings().default_start_minutes,
        )
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    finally:
        store.close()
    for activity in created:
        typer.echo(f"Added {activity.id[:8]} {activity.title}")


@app.command(name="list")
def list_activities(
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the planner SQLite database."
    ),
    user: Optional[str] = typer.Option(None, "--user", help="Sync under this user id."),
) -> None:
    """List every activity, inbox first."""
    from .reporting import print_activities

    store = _open_store(db_path, user)
    store.close()
    print_activities(store.inbox(), heading="Inbox")
    print_activities(
        [activity for activity in store.activities() if activity.is_scheduled],
        heading="Scheduled",
    )


@app.command()
def agenda(
    date: Optional[str] = typer.Option(
        None,
        "--date",
        help="Date (YYYY-MM-DD) to show. Defaults to today.",
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the planner SQLite database."
    ),
    user: Optional[str] = typer.Option(None, "--user", help="Sync under this user id."),
) -> None:
    """Print the plan and logged sessions for a specific day."""
    from .reporting import SummaryPrinter

    target = datetime.strptime(date, "%Y-%m-%d") if date else datetime.now()
    store = _open_store(db_path, user)
    store.close()
    SummaryPrinter(store).print_agenda(target.date(), now=datetime.now())


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the API."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the API."
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the planner SQLite database."
    ),
    user: Optional[str] = typer.Option(None, "--user", help="Sync under this user id."),
    work_minutes: int = typer.Option(
        25, "--work", min=1, max=180, help="Work interval length in minutes."
    ),
    break_minutes: int = typer.Option(5, "--break", min=1, help="Break length in minutes."),
    overtime: bool = typer.Option(
        True,
        "--overtime/--no-overtime",
        help="Keep counting past zero until the interval is marked done.",
    ),
    start_hour: int = typer.Option(6, "--start-hour", min=0, max=23, help="First visible hour."),
    end_hour: int = typer.Option(24, "--end-hour", min=1, max=24, help="End of the visible window."),
    open_browser: bool = typer.Option(
        False,
        "--open-browser/--no-open-browser",
        help="Open the interactive API docs in your default browser.",
    ),
    log_file: Optional[Path] = typer.Option(
        None, "--log-file", path_type=Path, help="Append package logs here instead of the default log."
    ),
) -> None:
    """Serve the planner API with the focus timer."""
    run_dashboard(
        host=host,
        port=port,
        db_path=db_path or get_db_path(),
        grid_settings=GridSettings.from_window(start_hour, end_hour),
        timer_settings=TimerSettings.from_minutes(
            work_minutes, break_minutes, allow_overtime=overtime
        ),
        user_id=user,
        open_browser=open_browser,
        log_file=log_file,
    )

"""Helpers to launch the local planner API."""

from __future__ import annotations

import logging
import threading
import time
import webbrowser
from pathlib import Path
from typing import Optional

import uvicorn

from .config import GridSettings, TimerSettings
from .paths import get_db_path, get_log_path
from .webapp import create_app

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def run_dashboard(
    *,
    host: str = "127.0.0.1",
    port: int = 8765,
    db_path: Optional[Path] = None,
    grid_settings: Optional[GridSettings] = None,
    timer_settings: Optional[TimerSettings] = None,
    user_id: Optional[str] = None,
    open_browser: bool = False,
    log_level: str = "info",
    log_file: Optional[Path] = None,
) -> None:
    """Serve the planner API until uvicorn exits.

    Package logs are also appended to ``log_file`` (the per-user log in the
    data directory by default) so a server started without a console still
    leaves a trace of sync failures and timer events.
    """
    handler = attach_file_logging(log_file or get_log_path(), log_level)
    app = create_app(
        db_path=db_path or get_db_path(),
        grid_settings=grid_settings,
        timer_settings=timer_settings,
        user_id=user_id,
    )

    if open_browser:
        url = f"http://{host}:{port}/docs"
        threading.Thread(
            target=_launch_browser_after_delay, args=(url,), daemon=True
        ).start()

    logging.getLogger("uvicorn.error").setLevel(log_level.upper())
    try:
        uvicorn.run(app, host=host, port=port, log_level=log_level)
    finally:
        logging.getLogger("focus_planner").removeHandler(handler)
        handler.close()


def attach_file_logging(path: Path, level: str = "info") -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level.upper())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger = logging.getLogger("focus_planner")
    package_logger.addHandler(handler)
    if package_logger.getEffectiveLevel() > handler.level:
        package_logger.setLevel(handler.level)
    return handler


def _launch_browser_after_delay(url: str) -> None:
    time.sleep(1.0)
    try:
        webbrowser.open(url)
    except Exception:
        logging.getLogger(__name__).exception("Failed to launch browser for %s", url)

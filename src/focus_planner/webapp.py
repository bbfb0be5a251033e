"""FastAPI application that exposes a local API for the planner and focus timer."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import asdict
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterator, Literal, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from .config import GridSettings, TimerSettings
from .db import LocalStore
from .geometry import TimeGeometry
from .grid import DayColumn, DropTarget, Inbox, SchedulingGrid
from .models import (
    Activity,
    ActivityStatus,
    Category,
    NotFoundError,
    Session,
    SessionType,
    ValidationError,
)
from .paths import get_db_path
from .store import ActivityStore
from .sync import SqliteSyncAdapter, UserContext
from .timeline import render_day
from .timer import Clock, TimerEngine, TimerStateError, TimerTicker

logger = logging.getLogger(__name__)


class ActivityCreate(BaseModel):
    title: str
    category: Category = Category.WORK
    duration_minutes: int = Field(default=60, gt=0)
    copies: int = Field(default=1, ge=1, le=10)
    weekdays: list[int] = Field(default_factory=list)
    start_minutes: Optional[int] = None

    model_config = ConfigDict(extra="forbid")


class ActivityUpdate(BaseModel):
    title: Optional[str] = None
    category: Optional[Category] = None
    duration_minutes: Optional[int] = None
    status: Optional[ActivityStatus] = None

    model_config = ConfigDict(extra="forbid")


class DropPayload(BaseModel):
    activity_id: str
    drop_y: float
    target: Optional[Literal["day", "inbox"]] = None
    day_index: Optional[int] = None
    column_top: float = 0.0

    model_config = ConfigDict(extra="forbid")


class ResizePayload(BaseModel):
    activity_id: str
    delta_pixels: float

    model_config = ConfigDict(extra="forbid")


class TimerSelection(BaseModel):
    activity_id: Optional[str] = None
    manual_title: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class InterruptReason(BaseModel):
    reason: str

    model_config = ConfigDict(extra="forbid")


class DurationChange(BaseModel):
    minutes: Optional[int] = None
    delta_minutes: Optional[int] = None

    model_config = ConfigDict(extra="forbid")


class ModeChange(BaseModel):
    mode: SessionType

    model_config = ConfigDict(extra="forbid")


class ManualSessionPayload(BaseModel):
    task_title: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    task_id: Optional[str] = None
    type: SessionType = SessionType.WORK

    model_config = ConfigDict(extra="forbid")


class SessionUpdate(BaseModel):
    task_title: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    interruption_reason: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    db_path: Optional[Path] = None,
    grid_settings: Optional[GridSettings] = None,
    timer_settings: Optional[TimerSettings] = None,
    user_id: Optional[str] = None,
    clock: Clock = datetime.now,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_db_path = Path(db_path or get_db_path())
    geometry = TimeGeometry(grid_settings or GridSettings())
    context = (
        UserContext(user_id=user_id, adapter=SqliteSyncAdapter(resolved_db_path))
        if user_id
        else UserContext()
    )
    store = ActivityStore(
        context, local=LocalStore(resolved_db_path), grid_settings=geometry.settings
    )
    store.connect()
    grid = SchedulingGrid(store, geometry)
    engine = TimerEngine(store, timer_settings or TimerSettings(), clock=clock)
    ticker = TimerTicker(engine)

    app = FastAPI(title="Focus Planner", version="0.3.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.db_path = resolved_db_path
    app.state.store = store
    app.state.grid = grid
    app.state.timer = engine
    app.state.ticker = ticker

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        ticker.stop()
        store.close()

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        return {
            "offline": store.offline,
            "user_id": context.user_id,
            "database_path": str(request.app.state.db_path),
            "ticker_running": ticker.is_running(),
            "window": {
                "start_hour": geometry.settings.window_start_hour,
                "end_hour": geometry.settings.window_end_hour,
                "pixels_per_hour": geometry.settings.pixels_per_hour,
                "snap_minutes": geometry.settings.snap_minutes,
                "grid_height": geometry.grid_height,
            },
        }

    @app.get("/api/activities")
    def list_activities() -> Dict[str, Any]:
        activities = store.activities()
        return {
            "activities": [activity.to_record() for activity in activities],
            "inbox": [activity.id for activity in activities if not activity.is_scheduled],
        }

    @app.post("/api/activities")
    def create_activities(payload: ActivityCreate) -> Dict[str, Any]:
        start = (
            payload.start_minutes
            if payload.start_minutes is not None
            else geometry.clamp_start(geometry.settings.default_start_minutes)
        )
        with _translate_errors():
            created = store.create_many(
                payload.title,
                payload.category,
                payload.duration_minutes,
                copies=payload.copies,
                weekdays=payload.weekdays,
                start_minutes=start,
            )
        return {"activities": [activity.to_record() for activity in created]}

    @app.patch("/api/activities/{activity_id}")
    def update_activity(activity_id: str, payload: ActivityUpdate) -> Dict[str, Any]:
        updates = payload.model_dump(exclude_unset=True)
        with _translate_errors():
            activity = store.edit(activity_id, **updates)
        return activity.to_record()

    @app.delete("/api/activities/{activity_id}")
    def delete_activity(activity_id: str) -> Dict[str, Any]:
        with _translate_errors():
            store.remove(activity_id)
        return {"deleted": activity_id}

    @app.post("/api/grid/drop")
    def drop_activity(payload: DropPayload) -> Dict[str, Any]:
        target: DropTarget = None
        if payload.target == "day":
            if payload.day_index is None:
                raise HTTPException(status_code=400, detail="day_index is required")
            target = DayColumn(day_index=payload.day_index, column_top=payload.column_top)
        elif payload.target == "inbox":
            target = Inbox()
        with _translate_errors():
            store.get(payload.activity_id)
            activity = grid.drag_to(payload.activity_id, payload.drop_y, target)
        return _gesture_result(activity)

    @app.post("/api/grid/resize")
    def resize_activity(payload: ResizePayload) -> Dict[str, Any]:
        with _translate_errors():
            store.get(payload.activity_id)
            activity = grid.resize_by(payload.activity_id, payload.delta_pixels)
        return _gesture_result(activity)

    @app.get("/api/timeline")
    def timeline(
        date_value: Optional[str] = Query(
            default=None,
            alias="date",
            description="Target date in YYYY-MM-DD format.",
        ),
    ) -> Dict[str, Any]:
        target_day = _parse_date(date_value, clock)
        rendered = render_day(
            store.activities(),
            store.sessions(),
            target_day,
            geometry,
            now=clock(),
        )
        payload = asdict(rendered)
        payload["is_empty"] = rendered.is_empty
        return payload

    @app.get("/api/timer")
    def timer_state() -> Dict[str, Any]:
        return _timer_payload(engine, ticker)

    @app.post("/api/timer/select")
    def timer_select(payload: TimerSelection) -> Dict[str, Any]:
        with _translate_errors():
            if payload.activity_id is not None:
                engine.select_activity(payload.activity_id)
            elif payload.manual_title is not None:
                engine.set_manual_title(payload.manual_title)
            else:
                engine.use_plan()
        return _timer_payload(engine, ticker)

    @app.post("/api/timer/start")
    def timer_start() -> Dict[str, Any]:
        with _translate_errors():
            engine.start()
        ticker.start()
        return _timer_payload(engine, ticker)

    @app.post("/api/timer/pause")
    def timer_pause() -> Dict[str, Any]:
        engine.pause()
        ticker.stop()
        return _timer_payload(engine, ticker)

    @app.post("/api/timer/complete")
    def timer_complete() -> Dict[str, Any]:
        ticker.stop()
        session = engine.complete()
        payload = _timer_payload(engine, ticker)
        payload["session"] = session.to_record()
        return payload

    @app.post("/api/timer/interrupt")
    def timer_interrupt() -> Dict[str, Any]:
        with _translate_errors():
            engine.interrupt()
        ticker.stop()
        return _timer_payload(engine, ticker)

    @app.post("/api/timer/interrupt/confirm")
    def timer_confirm_interrupt(payload: InterruptReason) -> Dict[str, Any]:
        with _translate_errors():
            session = engine.confirm_interrupt(payload.reason)
        result = _timer_payload(engine, ticker)
        result["session"] = session.to_record() if session else None
        return result

    @app.post("/api/timer/interrupt/cancel")
    def timer_cancel_interrupt() -> Dict[str, Any]:
        engine.cancel_interrupt()
        return _timer_payload(engine, ticker)

    @app.post("/api/timer/duration")
    def timer_duration(payload: DurationChange) -> Dict[str, Any]:
        if payload.minutes is None and payload.delta_minutes is None:
            raise HTTPException(status_code=400, detail="minutes or delta_minutes is required")
        with _translate_errors():
            if payload.minutes is not None:
                engine.set_duration(payload.minutes)
            else:
                engine.adjust_duration(payload.delta_minutes)
        return _timer_payload(engine, ticker)

    @app.post("/api/timer/mode")
    def timer_mode(payload: ModeChange) -> Dict[str, Any]:
        ticker.stop()
        engine.switch_mode(payload.mode)
        return _timer_payload(engine, ticker)

    @app.get("/api/sessions")
    def list_sessions(
        date_value: Optional[str] = Query(
            default=None,
            alias="date",
            description="Target date in YYYY-MM-DD format.",
        ),
    ) -> Dict[str, Any]:
        target_day = _parse_date(date_value, clock)
        return {
            "date": target_day.isoformat(),
            "sessions": [_session_payload(s) for s in store.sessions_on(target_day)],
        }

    @app.post("/api/sessions")
    def log_session(payload: ManualSessionPayload) -> Dict[str, Any]:
        with _translate_errors():
            session = store.log_manual_session(
                payload.task_title,
                payload.start_time,
                end_time=payload.end_time,
                duration_minutes=payload.duration_minutes,
                task_id=payload.task_id,
                session_type=payload.type,
            )
        return _session_payload(session)

    @app.patch("/api/sessions/{session_id}")
    def update_session(session_id: str, payload: SessionUpdate) -> Dict[str, Any]:
        updates = payload.model_dump(exclude_unset=True)
        with _translate_errors():
            session = store.edit_session(session_id, **updates)
        return _session_payload(session)

    @app.delete("/api/sessions/{session_id}")
    def delete_session(session_id: str) -> Dict[str, Any]:
        with _translate_errors():
            store.remove_session(session_id)
        return {"deleted": session_id}

    return app


@contextmanager
def _translate_errors() -> Iterator[None]:
    try:
        yield
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except TimerStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _parse_date(value: Optional[str], clock: Clock) -> date:
    if not value:
        return clock().date()
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format") from exc


def _gesture_result(activity: Optional[Activity]) -> Dict[str, Any]:
    return {
        "changed": activity is not None,
        "activity": activity.to_record() if activity else None,
    }


def _session_payload(session: Session) -> Dict[str, Any]:
    return session.to_record()


def _timer_payload(engine: TimerEngine, ticker: TimerTicker) -> Dict[str, Any]:
    payload = asdict(engine.snapshot())
    payload["mode"] = payload["mode"].value
    payload["selection_mode"] = payload["selection_mode"].value
    payload["ticker_running"] = ticker.is_running()
    return payload

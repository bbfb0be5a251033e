"""Read-only projection of one day's plan and sessions into grid geometry."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional

from .geometry import TimeGeometry, format_clock
from .models import Activity, Category, Session, SessionStatus, SessionType, day_index_for


@dataclass(slots=True, frozen=True)
class CategoryStyle:
    label: str
    background: str
    border: str
    text: str


_CATEGORY_STYLES: dict[Category, CategoryStyle] = {
    Category.WORK: CategoryStyle("Work", "#dbeafe", "#93c5fd", "#1e3a8a"),
    Category.MEETING: CategoryStyle("Meeting", "#f3e8ff", "#d8b4fe", "#581c87"),
    Category.EXERCISE: CategoryStyle("Exercise", "#ffedd5", "#fdba74", "#7c2d12"),
    Category.PERSONAL: CategoryStyle("Personal", "#dcfce7", "#86efac", "#14532d"),
    Category.REST: CategoryStyle("Rest", "#f3f4f6", "#d1d5db", "#111827"),
}


def resolve_category_style(category: Category) -> CategoryStyle:
    return _CATEGORY_STYLES[Category(category)]


@dataclass(slots=True, frozen=True)
class ActivityBlock:
    activity_id: str
    title: str
    category: Category
    style: CategoryStyle
    start_minutes: int
    end_minutes: int
    top: float
    height: float
    label: str


@dataclass(slots=True, frozen=True)
class SessionBlock:
    session_id: str
    title: str
    type: SessionType
    status: SessionStatus
    start_minutes: int
    duration_minutes: int
    top: float
    height: float
    label: str


@dataclass(slots=True, frozen=True)
class NowMarker:
    minutes: int
    top: float


@dataclass(slots=True, frozen=True)
class DayTimeline:
    day: date
    day_index: int
    activities: tuple[ActivityBlock, ...]
    sessions: tuple[SessionBlock, ...]
    now: Optional[NowMarker]

    @property
    def is_empty(self) -> bool:
        return not self.activities and not self.sessions


def render_day(
    activities: Iterable[Activity],
    sessions: Iterable[Session],
    day: date,
    geometry: Optional[TimeGeometry] = None,
    now: Optional[datetime] = None,
) -> DayTimeline:
    """Lay out ``day``'s scheduled activities and logged sessions.

    Activities keep the collection's order; blocks that start before the
    visible window are left out. The now marker is only placed when ``now``
    falls on ``day`` inside the window.
    """
    geometry = geometry or TimeGeometry()
    day_index = day_index_for(day)

    activity_blocks = []
    for activity in activities:
        if activity.day_index != day_index or activity.start_minutes is None:
            continue
        if activity.start_minutes < geometry.window_start_minutes:
            continue
        box = geometry.minutes_to_offset(activity.start_minutes, activity.duration_minutes)
        end = activity.start_minutes + activity.duration_minutes
        activity_blocks.append(
            ActivityBlock(
                activity_id=activity.id,
                title=activity.title,
                category=activity.category,
                style=resolve_category_style(activity.category),
                start_minutes=activity.start_minutes,
                end_minutes=end,
                top=box.top,
                height=box.height,
                label=f"{format_clock(activity.start_minutes)} - {format_clock(end)}",
            )
        )

    session_blocks = []
    for session in sorted(sessions, key=lambda item: item.start_time):
        if session.start_time.date() != day:
            continue
        start = session.start_minutes
        if start < geometry.window_start_minutes:
            continue
        box = geometry.minutes_to_offset(start, session.duration_minutes)
        session_blocks.append(
            SessionBlock(
                session_id=session.id,
                title=session.task_title,
                type=session.type,
                status=session.status,
                start_minutes=start,
                duration_minutes=session.duration_minutes,
                top=box.top,
                height=box.height,
                label=f"{format_clock(start)} ({session.duration_minutes}m)",
            )
        )

    marker: Optional[NowMarker] = None
    if now is not None and now.date() == day:
        now_minutes = now.hour * 60 + now.minute
        if geometry.in_window(now_minutes):
            marker = NowMarker(
                minutes=now_minutes,
                top=geometry.minutes_to_offset(now_minutes).top,
            )

    return DayTimeline(
        day=day,
        day_index=day_index,
        activities=tuple(activity_blocks),
        sessions=tuple(session_blocks),
        now=marker,
    )

"""Domain models for planned activities and focus sessions."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, Optional

MINUTES_PER_DAY = 24 * 60
MINUTES_PER_POMODORO = 30
DAYS_OF_WEEK = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)


class ValidationError(ValueError):
    """Raised when user input is rejected before any state changes."""


class NotFoundError(ValueError):
    """Raised when an activity or session id is unknown."""


class Category(str, Enum):
    WORK = "work"
    MEETING = "meeting"
    EXERCISE = "exercise"
    PERSONAL = "personal"
    REST = "rest"


class ActivityStatus(str, Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class SessionType(str, Enum):
    WORK = "WORK"
    BREAK = "BREAK"


class SessionStatus(str, Enum):
    COMPLETED = "COMPLETED"
    INTERRUPTED = "INTERRUPTED"
    MANUAL = "MANUAL"


def new_id() -> str:
    return uuid.uuid4().hex


def day_index_for(day: date) -> int:
    """Return the grid column for a calendar date (0 = Sunday)."""
    return (day.weekday() + 1) % 7


def estimated_pomodoros(duration_minutes: int) -> float:
    return duration_minutes / MINUTES_PER_POMODORO


@dataclass(slots=True, frozen=True)
class Activity:
    """A schedulable unit of work, optionally placed on the weekly grid."""

    id: str
    title: str
    category: Category = Category.WORK
    duration_minutes: int = 60
    day_index: Optional[int] = None
    start_minutes: Optional[int] = None
    status: ActivityStatus = ActivityStatus.TODO
    estimated_pomodoros: float = 2.0
    completed_pomodoros: int = 0

    def __post_init__(self) -> None:
        if (self.day_index is None) != (self.start_minutes is None):
            raise ValueError("day_index and start_minutes must be set together")

    @classmethod
    def new(
        cls,
        title: str,
        category: Category | str = Category.WORK,
        duration_minutes: int = 60,
        *,
        day_index: Optional[int] = None,
        start_minutes: Optional[int] = None,
    ) -> "Activity":
        return cls(
            id=new_id(),
            title=title,
            category=Category(category),
            duration_minutes=duration_minutes,
            day_index=day_index,
            start_minutes=start_minutes,
            estimated_pomodoros=estimated_pomodoros(duration_minutes),
        )

    @property
    def is_scheduled(self) -> bool:
        return self.day_index is not None

    @property
    def end_minutes(self) -> Optional[int]:
        if self.start_minutes is None:
            return None
        return self.start_minutes + self.duration_minutes

    def scheduled_at(self, day_index: int, start_minutes: int) -> "Activity":
        return replace(self, day_index=day_index, start_minutes=start_minutes)

    def unscheduled(self) -> "Activity":
        return replace(self, day_index=None, start_minutes=None)

    def resized(self, duration_minutes: int) -> "Activity":
        return replace(
            self,
            duration_minutes=duration_minutes,
            estimated_pomodoros=estimated_pomodoros(duration_minutes),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status.value,
            "category": self.category.value,
            "durationMinutes": self.duration_minutes,
            "dayIndex": self.day_index,
            "startMinutes": self.start_minutes,
            "estimatedPomodoros": self.estimated_pomodoros,
            "completedPomodoros": self.completed_pomodoros,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Activity":
        day_index = record.get("dayIndex")
        start_minutes = record.get("startMinutes")
        if day_index is None or start_minutes is None:
            day_index = start_minutes = None
        duration = int(record.get("durationMinutes") or 60)
        pomodoros = record.get("estimatedPomodoros")
        return cls(
            id=str(record["id"]),
            title=str(record.get("title") or ""),
            category=Category(record.get("category") or Category.WORK.value),
            duration_minutes=duration,
            day_index=None if day_index is None else int(day_index),
            start_minutes=None if start_minutes is None else int(start_minutes),
            status=ActivityStatus(record.get("status") or ActivityStatus.TODO.value),
            estimated_pomodoros=(
                float(pomodoros) if pomodoros is not None else estimated_pomodoros(duration)
            ),
            completed_pomodoros=int(record.get("completedPomodoros") or 0),
        )


@dataclass(slots=True, frozen=True)
class Session:
    """An immutable record of elapsed timer activity."""

    id: str
    task_title: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    type: SessionType = SessionType.WORK
    status: SessionStatus = SessionStatus.COMPLETED
    task_id: Optional[str] = None
    interruption_reason: Optional[str] = None

    def __post_init__(self) -> None:
        if self.end_time < self.start_time:
            raise ValueError("end_time must not be before start_time")

    @property
    def start_minutes(self) -> int:
        return self.start_time.hour * 60 + self.start_time.minute

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "taskId": self.task_id,
            "taskTitle": self.task_title,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat(),
            "durationMinutes": self.duration_minutes,
            "type": self.type.value,
            "status": self.status.value,
            "interruptionReason": self.interruption_reason,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Session":
        return cls(
            id=str(record["id"]),
            task_id=record.get("taskId"),
            task_title=str(record.get("taskTitle") or ""),
            start_time=_parse_instant(record["startTime"]),
            end_time=_parse_instant(record["endTime"]),
            duration_minutes=int(record["durationMinutes"]),
            type=SessionType(record.get("type") or SessionType.WORK.value),
            status=SessionStatus(record.get("status") or SessionStatus.COMPLETED.value),
            interruption_reason=record.get("interruptionReason"),
        )


def local_naive(value: datetime) -> datetime:
    """Aware instants become naive local time; naive ones are taken as local."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def _parse_instant(value: Any) -> datetime:
    if isinstance(value, datetime):
        return local_naive(value)
    if isinstance(value, (int, float)):
        # Epoch milliseconds, as older clients stored them.
        return datetime.fromtimestamp(value / 1000)
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return local_naive(datetime.fromisoformat(text))

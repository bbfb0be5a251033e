"""Focus timer state machine and its background ticker."""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from .config import TimerSettings
from .models import (
    Activity,
    Session,
    SessionStatus,
    SessionType,
    ValidationError,
    day_index_for,
    new_id,
)
from .normalization import normalize_reason, normalize_title
from .store import ActivityStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

BREAK_TITLE = "Break"


class TimerStateError(ValueError):
    """Raised when an action is not allowed in the current timer state."""


class SelectionMode(str, Enum):
    PLAN = "PLAN"
    MANUAL = "MANUAL"


@dataclass(slots=True, frozen=True)
class TimerSnapshot:
    mode: SessionType
    running: bool
    remaining_seconds: int
    configured_seconds: int
    overtime_seconds: int
    work_minutes: int
    display: str
    selection_mode: SelectionMode
    selected_activity_id: Optional[str]
    selected_title: Optional[str]
    awaiting_interrupt_reason: bool


def format_countdown(remaining_seconds: int) -> str:
    """``MM:SS`` for the countdown, ``+MM:SS`` once in overtime."""
    sign = "+" if remaining_seconds < 0 else ""
    mins, secs = divmod(abs(remaining_seconds), 60)
    return f"{sign}{mins:02d}:{secs:02d}"


class TimerEngine:
    """Countdown over ``{WORK, BREAK} x {running, idle}`` that writes sessions.

    ``remaining`` keeps decreasing past zero; negative values are overtime.
    Unless ``allow_overtime`` is off, only ``complete()`` or ``interrupt()``
    ends an interval.
    """

    def __init__(
        self,
        store: ActivityStore,
        settings: Optional[TimerSettings] = None,
        clock: Clock = datetime.now,
    ) -> None:
        self.store = store
        self.settings = settings or TimerSettings()
        self._clock = clock
        self._lock = threading.RLock()
        self._mode = SessionType.WORK
        self._running = False
        self._work_minutes = self.settings.work_minutes
        self._remaining = self._work_minutes * 60
        self._selection_mode = SelectionMode.PLAN
        self._selected_id: Optional[str] = None
        self._manual_title: Optional[str] = None
        self._awaiting_reason = False

    @property
    def mode(self) -> SessionType:
        return self._mode

    @property
    def running(self) -> bool:
        return self._running

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def configured_seconds(self) -> int:
        if self._mode is SessionType.WORK:
            return self._work_minutes * 60
        return self.settings.break_minutes * 60

    @property
    def overtime_seconds(self) -> int:
        return max(0, -self._remaining)

    # -- selection -----------------------------------------------------------

    def todays_activities(self, today: Optional[date] = None) -> list[Activity]:
        day = today or self._clock().date()
        return self.store.scheduled_on(day_index_for(day))

    def select_activity(self, activity_id: str) -> Activity:
        activity = self.store.find(activity_id)
        if activity is None:
            raise ValidationError("Please select a task from your plan!")
        with self._lock:
            self._selection_mode = SelectionMode.PLAN
            self._selected_id = activity.id
        return activity

    def set_manual_title(self, title: Optional[str]) -> None:
        with self._lock:
            self._selection_mode = SelectionMode.MANUAL
            self._manual_title = normalize_title(title)

    def use_plan(self) -> None:
        with self._lock:
            self._selection_mode = SelectionMode.PLAN

    @property
    def selected_title(self) -> Optional[str]:
        if self._selection_mode is SelectionMode.MANUAL:
            return self._manual_title
        if self._selected_id is None:
            return None
        activity = self.store.find(self._selected_id)
        return activity.title if activity else None

    # -- transitions ---------------------------------------------------------

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            if self._awaiting_reason:
                raise TimerStateError("finish logging the interruption first")
            if self._mode is SessionType.WORK:
                self._require_selection()
            self._running = True
        logger.debug("Timer started in %s mode.", self._mode.value)

    def pause(self) -> None:
        with self._lock:
            self._running = False

    def toggle(self) -> bool:
        with self._lock:
            if self._running:
                self.pause()
            else:
                self.start()
            return self._running

    def tick(self) -> bool:
        """Advance one second; returns whether the timer is still running."""
        with self._lock:
            if not self._running:
                return False
            self._remaining -= 1
            if self._remaining <= 0 and not self.settings.allow_overtime:
                self.complete()
            return self._running

    def complete(self) -> Session:
        """End the current interval, record it and switch modes."""
        with self._lock:
            session = self._build_session(SessionStatus.COMPLETED)
            self.store.add_session(session)
            if self._mode is SessionType.WORK:
                self._enter(SessionType.BREAK)
            else:
                self._enter(SessionType.WORK)
        logger.info(
            "Completed %s interval of %d min.", session.type.value, session.duration_minutes
        )
        return session

    def interrupt(self) -> None:
        with self._lock:
            if self._mode is not SessionType.WORK:
                raise TimerStateError("only work intervals can be interrupted")
            self._running = False
            self._awaiting_reason = True

    def confirm_interrupt(self, reason: Optional[str]) -> Optional[Session]:
        """Log the reason and reset the work countdown.

        With ``record_interruptions`` on, the elapsed part of the interval is
        kept as an INTERRUPTED session carrying the reason.
        """
        cleaned = normalize_reason(reason)
        if not cleaned:
            raise ValidationError("an interruption reason is required")
        with self._lock:
            if not self._awaiting_reason:
                raise TimerStateError("no interruption is pending")
            session: Optional[Session] = None
            if self.settings.record_interruptions:
                session = self._build_session(SessionStatus.INTERRUPTED, reason=cleaned)
                self.store.add_session(session)
            self._awaiting_reason = False
            self._remaining = self._work_minutes * 60
        logger.info("Interrupted: %s", cleaned)
        return session

    def cancel_interrupt(self) -> None:
        with self._lock:
            self._awaiting_reason = False

    def adjust_duration(self, delta_minutes: int) -> int:
        return self.set_duration(self._work_minutes + delta_minutes)

    def set_duration(self, minutes: int) -> int:
        with self._lock:
            if self._running or self._mode is not SessionType.WORK:
                raise TimerStateError("duration can only change while the work timer is idle")
            clamped = min(
                max(int(minutes), self.settings.min_work_minutes),
                self.settings.max_work_minutes,
            )
            self._work_minutes = clamped
            self._remaining = clamped * 60
            return clamped

    def switch_mode(self, mode: SessionType | str) -> None:
        with self._lock:
            self._enter(SessionType(mode))

    def snapshot(self) -> TimerSnapshot:
        with self._lock:
            return TimerSnapshot(
                mode=self._mode,
                running=self._running,
                remaining_seconds=self._remaining,
                configured_seconds=self.configured_seconds,
                overtime_seconds=self.overtime_seconds,
                work_minutes=self._work_minutes,
                display=format_countdown(self._remaining),
                selection_mode=self._selection_mode,
                selected_activity_id=self._selected_id,
                selected_title=self.selected_title,
                awaiting_interrupt_reason=self._awaiting_reason,
            )

    # -- internals -----------------------------------------------------------

    def _require_selection(self) -> None:
        if self._selection_mode is SelectionMode.MANUAL:
            if not self._manual_title:
                raise ValidationError("Please enter a task name!")
            return
        if self._selected_id is None or self.store.find(self._selected_id) is None:
            raise ValidationError("Please select a task from your plan!")

    def _enter(self, mode: SessionType) -> None:
        self._running = False
        self._awaiting_reason = False
        self._mode = mode
        self._remaining = self.configured_seconds

    def _elapsed_minutes(self) -> int:
        elapsed_seconds = self.configured_seconds - self._remaining
        return max(1, math.ceil(elapsed_seconds / 60))

    def _build_session(self, status: SessionStatus, reason: Optional[str] = None) -> Session:
        elapsed = self._elapsed_minutes()
        now = self._clock()
        if self._mode is SessionType.WORK:
            task_id = self._selected_id if self._selection_mode is SelectionMode.PLAN else None
            title = self.selected_title or "Focus"
        else:
            task_id = None
            title = BREAK_TITLE
        return Session(
            id=new_id(),
            task_id=task_id,
            task_title=title,
            start_time=now - timedelta(minutes=elapsed),
            end_time=now,
            duration_minutes=elapsed,
            type=self._mode,
            status=status,
            interruption_reason=reason,
        )


class TimerTicker:
    """Drive a :class:`TimerEngine` once per interval on a background thread."""

    def __init__(self, engine: TimerEngine, interval: Optional[timedelta] = None) -> None:
        self.engine = engine
        self._interval = interval or engine.settings.tick_interval
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(stop_event,),
                name="focus-timer",
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
            thread.start()
            logger.info("Timer ticker started.")

    def stop(self) -> None:
        thread: Optional[threading.Thread] = None
        with self._lock:
            if not self._thread or not self._stop_event:
                return
            self._stop_event.set()
            thread = self._thread
            self._thread = None
            self._stop_event = None
        if thread and thread is not threading.current_thread():
            thread.join(timeout=5)
            logger.info("Timer ticker stopped.")

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())

    def _run(self, stop_event: threading.Event) -> None:
        interval = self._interval.total_seconds()
        while not stop_event.wait(interval):
            if not self.engine.tick():
                break

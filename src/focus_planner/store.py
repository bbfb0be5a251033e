"""In-memory activity and session collections with optimistic persistence.

Every mutation happens in two phases. The in-memory collection is updated
first and always succeeds once validation passes; the durable write follows
and may fail. Durable outcomes never raise into the caller: they are logged
and published to listeners as :class:`PersistenceEvent` objects.

When the user context is authenticated the store mirrors the remote
collections through adapter subscriptions, treating each snapshot as a full
replacement. Otherwise, or once a subscription fails, it runs offline against
the local key-value store.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from .config import GridSettings
from .db import LOCAL_SESSIONS_KEY, LOCAL_TASKS_KEY, LocalStore
from .geometry import TimeGeometry
from .models import (
    Activity,
    ActivityStatus,
    Category,
    NotFoundError,
    Session,
    SessionStatus,
    SessionType,
    ValidationError,
    estimated_pomodoros,
    local_naive,
    new_id,
)
from .normalization import normalize_title
from .sync import (
    SESSIONS_COLLECTION,
    TASKS_COLLECTION,
    PersistenceBackend,
    PersistenceEvent,
    Subscription,
    SyncAdapter,
    UserContext,
    sanitize_record,
)

logger = logging.getLogger(__name__)

PersistenceListener = Callable[[PersistenceEvent], None]
RemoteWrite = Callable[[SyncAdapter, str], None]

MAX_COPIES = 10

_LOCAL_KEYS = {
    TASKS_COLLECTION: LOCAL_TASKS_KEY,
    SESSIONS_COLLECTION: LOCAL_SESSIONS_KEY,
}


class ActivityStore:
    """Owns the activity and session collections for one user context."""

    def __init__(
        self,
        context: Optional[UserContext] = None,
        local: Optional[LocalStore] = None,
        grid_settings: Optional[GridSettings] = None,
    ) -> None:
        self.context = context or UserContext()
        self.geometry = TimeGeometry(grid_settings or GridSettings())
        self._local = local
        self._lock = threading.RLock()
        self._activities: dict[str, Activity] = {}
        self._sessions: dict[str, Session] = {}
        self._listeners: dict[int, PersistenceListener] = {}
        self._next_listener = 0
        self._subscriptions: list[Subscription] = []
        self._offline = not self.context.is_authenticated

    @property
    def offline(self) -> bool:
        return self._offline

    # -- lifecycle -----------------------------------------------------------

    def connect(self) -> None:
        """Load local state or subscribe to the remote collections."""
        adapter = self.context.adapter
        if self._offline or adapter is None:
            self._offline = True
            self._load_local()
            return
        targets = (
            (TASKS_COLLECTION, self._on_activity_snapshot),
            (SESSIONS_COLLECTION, self._on_session_snapshot),
        )
        for collection, on_snapshot in targets:
            try:
                subscription = adapter.subscribe(
                    self.context.collection_path(collection),
                    on_snapshot,
                    self._on_subscription_error,
                )
            except Exception as exc:
                self._on_subscription_error(exc)
                return
            # The adapter may report an error before subscribe() returns.
            if self._offline:
                subscription.cancel()
                return
            with self._lock:
                self._subscriptions.append(subscription)

    def close(self) -> None:
        with self._lock:
            subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription.cancel()

    def add_listener(self, listener: PersistenceListener) -> Callable[[], None]:
        """Register a callback for durable-phase outcomes; returns an unsubscribe."""
        with self._lock:
            token = self._next_listener
            self._next_listener += 1
            self._listeners[token] = listener

        def unsubscribe() -> None:
            with self._lock:
                self._listeners.pop(token, None)

        return unsubscribe

    # -- queries -------------------------------------------------------------

    def get(self, activity_id: str) -> Activity:
        with self._lock:
            return self._require(activity_id)

    def find(self, activity_id: str) -> Optional[Activity]:
        with self._lock:
            return self._activities.get(activity_id)

    def activities(self) -> list[Activity]:
        with self._lock:
            return list(self._activities.values())

    def inbox(self) -> list[Activity]:
        return [activity for activity in self.activities() if not activity.is_scheduled]

    def scheduled_on(self, day_index: int) -> list[Activity]:
        return [
            activity for activity in self.activities() if activity.day_index == day_index
        ]

    def get_session(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"No session found for id={session_id}")
        return session

    def sessions(self) -> list[Session]:
        with self._lock:
            return list(self._sessions.values())

    def sessions_on(self, day: date) -> list[Session]:
        return sorted(
            (session for session in self.sessions() if session.start_time.date() == day),
            key=lambda session: session.start_time,
        )

    # -- activity mutations --------------------------------------------------

    def create(self, activity: Activity) -> Activity:
        title = _require_title(activity.title)
        _check_duration(activity.duration_minutes)
        if activity.is_scheduled:
            self._check_slot(activity.day_index, activity.start_minutes)
        if title != activity.title:
            activity = replace(activity, title=title)
        with self._lock:
            if activity.id in self._activities:
                raise ValidationError(f"Activity id={activity.id} already exists")
            self._activities[activity.id] = activity
        record = sanitize_record(activity.to_record())
        self._persist(
            "create",
            TASKS_COLLECTION,
            activity.id,
            lambda adapter, path: adapter.put(path, activity.id, record, merge=False),
        )
        return activity

    def create_many(
        self,
        title: str,
        category: Category | str = Category.WORK,
        duration_minutes: int = 60,
        *,
        copies: int = 1,
        weekdays: Sequence[int] = (),
        start_minutes: int = 9 * 60,
    ) -> list[Activity]:
        """Create activities the way the planning form does.

        Selected weekdays win over ``copies``: one activity per weekday is
        scheduled at ``start_minutes``. Otherwise ``copies`` identical
        activities land in the inbox.
        """
        clean_title = _require_title(title)
        try:
            resolved_category = Category(category)
        except ValueError as exc:
            raise ValidationError(f"Unknown category: {category}") from exc
        _check_duration(duration_minutes)

        if weekdays:
            days = list(dict.fromkeys(weekdays))
            for day_index in days:
                self._check_slot(day_index, start_minutes)
            drafts = [
                Activity.new(
                    clean_title,
                    resolved_category,
                    duration_minutes,
                    day_index=day_index,
                    start_minutes=start_minutes,
                )
                for day_index in days
            ]
        else:
            if not 1 <= copies <= MAX_COPIES:
                raise ValidationError(f"copies must be between 1 and {MAX_COPIES}")
            drafts = [
                Activity.new(clean_title, resolved_category, duration_minutes)
                for _ in range(copies)
            ]
        return [self.create(draft) for draft in drafts]

    def reschedule(self, activity_id: str, day_index: int, start_minutes: int) -> Activity:
        self._check_slot(day_index, start_minutes)
        with self._lock:
            updated = self._require(activity_id).scheduled_at(day_index, start_minutes)
            self._activities[activity_id] = updated
        fields = {"dayIndex": day_index, "startMinutes": start_minutes}
        self._persist(
            "reschedule",
            TASKS_COLLECTION,
            activity_id,
            lambda adapter, path: adapter.put(path, activity_id, fields, merge=True),
        )
        return updated

    def unschedule(self, activity_id: str) -> Activity:
        with self._lock:
            current = self._require(activity_id)
            if not current.is_scheduled:
                return current
            updated = current.unscheduled()
            self._activities[activity_id] = updated
        # Whole-record replace: field deletion is not portable across backends.
        record = sanitize_record(updated.to_record())
        self._persist(
            "unschedule",
            TASKS_COLLECTION,
            activity_id,
            lambda adapter, path: adapter.put(path, activity_id, record, merge=False),
        )
        return updated

    def resize(self, activity_id: str, duration_minutes: int) -> Activity:
        _check_duration(duration_minutes)
        with self._lock:
            updated = self._require(activity_id).resized(duration_minutes)
            self._activities[activity_id] = updated
        fields = {
            "durationMinutes": updated.duration_minutes,
            "estimatedPomodoros": updated.estimated_pomodoros,
        }
        self._persist(
            "resize",
            TASKS_COLLECTION,
            activity_id,
            lambda adapter, path: adapter.put(path, activity_id, fields, merge=True),
        )
        return updated

    def edit(
        self,
        activity_id: str,
        *,
        title: Optional[str] = None,
        category: Category | str | None = None,
        duration_minutes: Optional[int] = None,
        status: ActivityStatus | str | None = None,
    ) -> Activity:
        changes: dict[str, Any] = {}
        if title is not None:
            changes["title"] = _require_title(title)
        if category is not None:
            try:
                changes["category"] = Category(category)
            except ValueError as exc:
                raise ValidationError(f"Unknown category: {category}") from exc
        if duration_minutes is not None:
            _check_duration(duration_minutes)
            changes["duration_minutes"] = duration_minutes
            changes["estimated_pomodoros"] = estimated_pomodoros(duration_minutes)
        if status is not None:
            try:
                changes["status"] = ActivityStatus(status)
            except ValueError as exc:
                raise ValidationError(f"Unknown status: {status}") from exc

        with self._lock:
            current = self._require(activity_id)
            if not changes:
                return current
            record = {**current.to_record(), **_to_wire_fields(changes)}
            updated = Activity.from_record(record)
            self._activities[activity_id] = updated
        fields = sanitize_record(_to_wire_fields(changes))
        self._persist(
            "edit",
            TASKS_COLLECTION,
            activity_id,
            lambda adapter, path: adapter.put(path, activity_id, fields, merge=True),
        )
        return updated

    def remove(self, activity_id: str) -> None:
        with self._lock:
            self._require(activity_id)
            del self._activities[activity_id]
        self._persist(
            "remove",
            TASKS_COLLECTION,
            activity_id,
            lambda adapter, path: adapter.delete(path, activity_id),
        )

    # -- session mutations ---------------------------------------------------

    def add_session(self, session: Session) -> Session:
        if session.start_time.tzinfo or session.end_time.tzinfo:
            session = replace(
                session,
                start_time=local_naive(session.start_time),
                end_time=local_naive(session.end_time),
            )
        with self._lock:
            self._sessions[session.id] = session
        record = sanitize_record(session.to_record())
        self._persist(
            "add_session",
            SESSIONS_COLLECTION,
            session.id,
            lambda adapter, path: adapter.put(path, session.id, record, merge=False),
        )
        return session

    def log_manual_session(
        self,
        task_title: str,
        start_time: datetime,
        *,
        end_time: Optional[datetime] = None,
        duration_minutes: Optional[int] = None,
        task_id: Optional[str] = None,
        session_type: SessionType | str = SessionType.WORK,
    ) -> Session:
        """Record a backfilled interval entered by hand."""
        title = _require_title(task_title)
        start_time = local_naive(start_time)
        end_time, duration_minutes = _resolve_interval(start_time, end_time, duration_minutes)
        session = Session(
            id=new_id(),
            task_id=task_id,
            task_title=title,
            start_time=start_time,
            end_time=end_time,
            duration_minutes=duration_minutes,
            type=SessionType(session_type),
            status=SessionStatus.MANUAL,
        )
        return self.add_session(session)

    def edit_session(
        self,
        session_id: str,
        *,
        task_title: Optional[str] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        duration_minutes: Optional[int] = None,
        interruption_reason: Optional[str] = None,
    ) -> Session:
        current = self.get_session(session_id)
        title = _require_title(task_title) if task_title is not None else current.task_title
        start = local_naive(start_time) if start_time is not None else current.start_time
        if end_time is None and duration_minutes is None:
            if start_time is not None:
                end_time = start + (current.end_time - current.start_time)
            else:
                end_time = current.end_time
        end, duration = _resolve_interval(start, end_time, duration_minutes)
        updated = Session(
            id=current.id,
            task_id=current.task_id,
            task_title=title,
            start_time=start,
            end_time=end,
            duration_minutes=duration,
            type=current.type,
            status=current.status,
            interruption_reason=(
                interruption_reason
                if interruption_reason is not None
                else current.interruption_reason
            ),
        )
        with self._lock:
            self._sessions[session_id] = updated
        record = sanitize_record(updated.to_record())
        self._persist(
            "edit_session",
            SESSIONS_COLLECTION,
            session_id,
            lambda adapter, path: adapter.put(path, session_id, record, merge=False),
        )
        return updated

    def remove_session(self, session_id: str) -> None:
        with self._lock:
            if session_id not in self._sessions:
                raise NotFoundError(f"No session found for id={session_id}")
            del self._sessions[session_id]
        self._persist(
            "remove_session",
            SESSIONS_COLLECTION,
            session_id,
            lambda adapter, path: adapter.delete(path, session_id),
        )

    # -- internals -----------------------------------------------------------

    def _require(self, activity_id: str) -> Activity:
        activity = self._activities.get(activity_id)
        if activity is None:
            raise NotFoundError(f"No activity found for id={activity_id}")
        return activity

    def _check_slot(self, day_index: Optional[int], start_minutes: Optional[int]) -> None:
        if day_index is None or not 0 <= day_index <= 6:
            raise ValidationError(f"day index must be between 0 and 6, got {day_index}")
        if start_minutes is None or not self.geometry.in_window(start_minutes):
            raise ValidationError(
                f"start minutes {start_minutes} outside the visible window "
                f"[{self.geometry.window_start_minutes}, {self.geometry.window_end_minutes})"
            )

    def _persist(
        self,
        operation: str,
        collection: str,
        record_id: Optional[str],
        remote: RemoteWrite,
    ) -> None:
        adapter = self.context.adapter
        if self._offline or adapter is None:
            self._save_local(operation, collection, record_id)
            return
        try:
            remote(adapter, self.context.collection_path(collection))
        except Exception as exc:
            logger.warning(
                "Cloud %s failed for %s/%s; keeping local state: %s",
                operation,
                collection,
                record_id,
                exc,
            )
            self._emit(
                PersistenceEvent(
                    operation=operation,
                    collection=collection,
                    record_id=record_id,
                    backend=PersistenceBackend.REMOTE,
                    succeeded=False,
                    error=str(exc),
                )
            )
            return
        self._emit(
            PersistenceEvent(
                operation=operation,
                collection=collection,
                record_id=record_id,
                backend=PersistenceBackend.REMOTE,
                succeeded=True,
            )
        )

    def _save_local(self, operation: str, collection: str, record_id: Optional[str]) -> None:
        error: Optional[str] = None
        if self._local is not None:
            with self._lock:
                if collection == TASKS_COLLECTION:
                    records = [item.to_record() for item in self._activities.values()]
                else:
                    records = [item.to_record() for item in self._sessions.values()]
            try:
                self._local.save(_LOCAL_KEYS[collection], records)
            except Exception as exc:
                logger.warning("Local save of %s failed: %s", collection, exc)
                error = str(exc)
        self._emit(
            PersistenceEvent(
                operation=operation,
                collection=collection,
                record_id=record_id,
                backend=PersistenceBackend.LOCAL,
                succeeded=error is None,
                error=error,
            )
        )

    def _load_local(self) -> None:
        if self._local is None:
            return
        try:
            task_records = self._local.load(LOCAL_TASKS_KEY)
            session_records = self._local.load(LOCAL_SESSIONS_KEY)
        except Exception as exc:
            logger.error("Error reading local state: %s", exc)
            return
        activities = _parse_records(task_records, Activity.from_record, "activity")
        sessions = _parse_records(session_records, Session.from_record, "session")
        with self._lock:
            self._activities = {activity.id: activity for activity in activities}
            self._sessions = {session.id: session for session in sessions}
        logger.info(
            "Loaded %d activities and %d sessions from local storage.",
            len(activities),
            len(sessions),
        )

    def _on_activity_snapshot(self, records: list[dict[str, Any]]) -> None:
        activities = _parse_records(records, Activity.from_record, "activity")
        with self._lock:
            if self._offline:
                return
            self._activities = {activity.id: activity for activity in activities}
        logger.debug("Applied activity snapshot with %d records.", len(activities))

    def _on_session_snapshot(self, records: list[dict[str, Any]]) -> None:
        sessions = _parse_records(records, Session.from_record, "session")
        with self._lock:
            if self._offline:
                return
            self._sessions = {session.id: session for session in sessions}
        logger.debug("Applied session snapshot with %d records.", len(sessions))

    def _on_subscription_error(self, exc: Exception) -> None:
        with self._lock:
            if self._offline:
                return
            self._offline = True
        logger.warning("Sync failed, using local storage: %s", exc)
        self.close()
        self._load_local()
        self._emit(
            PersistenceEvent(
                operation="subscribe",
                collection=TASKS_COLLECTION,
                record_id=None,
                backend=PersistenceBackend.REMOTE,
                succeeded=False,
                error=str(exc),
            )
        )

    def _emit(self, event: PersistenceEvent) -> None:
        with self._lock:
            listeners = list(self._listeners.values())
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Persistence listener failed for %s", event.operation)


def _require_title(value: Optional[str]) -> str:
    title = normalize_title(value)
    if not title:
        raise ValidationError("title must not be empty")
    return title


def _check_duration(duration_minutes: int) -> None:
    if int(duration_minutes) != duration_minutes or duration_minutes <= 0:
        raise ValidationError("duration must be a positive number of minutes")


def _resolve_interval(
    start_time: datetime,
    end_time: Optional[datetime],
    duration_minutes: Optional[int],
) -> tuple[datetime, int]:
    if end_time is not None:
        end_time = local_naive(end_time)
    if end_time is None:
        if duration_minutes is None:
            raise ValidationError("either end_time or duration_minutes is required")
        end_time = start_time + timedelta(minutes=duration_minutes)
    else:
        measured = round((end_time - start_time).total_seconds() / 60)
        if duration_minutes is None:
            duration_minutes = measured
        elif duration_minutes != measured:
            raise ValidationError(
                f"duration_minutes={duration_minutes} does not match the {measured} minutes "
                "between start_time and end_time"
            )
    if end_time < start_time:
        raise ValidationError("end_time must not be before start_time")
    if duration_minutes < 1:
        raise ValidationError("sessions must last at least one minute")
    return end_time, duration_minutes


def _to_wire_fields(changes: Mapping[str, Any]) -> dict[str, Any]:
    names = {
        "title": "title",
        "category": "category",
        "duration_minutes": "durationMinutes",
        "estimated_pomodoros": "estimatedPomodoros",
        "status": "status",
    }
    return {
        names[key]: value.value if hasattr(value, "value") else value
        for key, value in changes.items()
    }


def _parse_records(
    records: Iterable[Mapping[str, Any]],
    parse: Callable[[Mapping[str, Any]], Any],
    kind: str,
) -> list[Any]:
    parsed = []
    for record in records:
        try:
            parsed.append(parse(record))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Skipping malformed %s record %r: %s", kind, record.get("id"), exc)
    return parsed

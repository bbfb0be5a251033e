"""Drag and resize gestures on the weekly grid.

A gesture is a small state machine, ``Idle -> Dragging | Resizing -> Idle``.
The transition functions below are pure: they take the current state and
pointer input and return the next state plus, on release, at most one
command. :class:`SchedulingGrid` holds the state for a view and applies the
resulting command to the store as a single mutation. Intermediate pointer
movement never touches the store.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Optional, Union

from .geometry import TimeGeometry
from .models import Activity
from .store import ActivityStore

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Idle:
    pass


@dataclass(slots=True, frozen=True)
class Dragging:
    activity_id: str
    origin_y: float
    pointer_y: float
    from_scheduled: bool

    @property
    def pointer_delta(self) -> float:
        return self.pointer_y - self.origin_y


@dataclass(slots=True, frozen=True)
class Resizing:
    activity_id: str
    origin_y: float
    pointer_y: float
    original_height: float

    @property
    def pointer_delta(self) -> float:
        return self.pointer_y - self.origin_y


GestureState = Union[Idle, Dragging, Resizing]
IDLE = Idle()


@dataclass(slots=True, frozen=True)
class DayColumn:
    """A day column drop target; ``column_top`` is its page position."""

    day_index: int
    column_top: float


@dataclass(slots=True, frozen=True)
class Inbox:
    pass


DropTarget = Union[DayColumn, Inbox, None]


@dataclass(slots=True, frozen=True)
class Reschedule:
    activity_id: str
    day_index: int
    start_minutes: int


@dataclass(slots=True, frozen=True)
class Unschedule:
    activity_id: str


@dataclass(slots=True, frozen=True)
class Resize:
    activity_id: str
    duration_minutes: int


GridCommand = Union[Reschedule, Unschedule, Resize]


@dataclass(slots=True, frozen=True)
class GhostOverlay:
    activity: Activity
    offset_y: float


def drop_start_minutes(drop_y: float, column_top: float, geometry: TimeGeometry) -> int:
    """Snapped and clamped start for a block whose top lands at ``drop_y``."""
    relative = drop_y - column_top - geometry.settings.header_height
    return geometry.clamp_start(geometry.offset_to_minutes(relative))


def resized_duration(original_height: float, delta: float, geometry: TimeGeometry) -> int:
    settings = geometry.settings
    min_height = geometry.duration_to_pixels(settings.minimum_block_minutes)
    height = max(min_height, original_height + delta)
    duration = geometry.snap(geometry.pixels_to_minutes(height))
    floor = math.ceil(settings.minimum_block_minutes / settings.snap_minutes) * settings.snap_minutes
    return max(duration, floor)


def begin_drag(state: GestureState, activity: Activity, pointer_y: float) -> GestureState:
    if not isinstance(state, Idle):
        return state
    return Dragging(
        activity_id=activity.id,
        origin_y=pointer_y,
        pointer_y=pointer_y,
        from_scheduled=activity.is_scheduled,
    )


def begin_resize(
    state: GestureState,
    activity: Activity,
    pointer_y: float,
    geometry: TimeGeometry,
) -> GestureState:
    if not isinstance(state, Idle) or not activity.is_scheduled:
        return state
    return Resizing(
        activity_id=activity.id,
        origin_y=pointer_y,
        pointer_y=pointer_y,
        original_height=geometry.duration_to_pixels(activity.duration_minutes),
    )


def move_pointer(state: GestureState, pointer_y: float) -> GestureState:
    if isinstance(state, (Dragging, Resizing)):
        return replace(state, pointer_y=pointer_y)
    return state


def cancel(state: GestureState) -> GestureState:
    return IDLE


def release(
    state: GestureState,
    pointer_y: float,
    target: DropTarget,
    geometry: TimeGeometry,
) -> tuple[GestureState, Optional[GridCommand]]:
    """Finish the gesture; the returned state is always ``Idle``."""
    if isinstance(state, Resizing):
        delta = pointer_y - state.origin_y
        duration = resized_duration(state.original_height, delta, geometry)
        return IDLE, Resize(state.activity_id, duration)

    if not isinstance(state, Dragging):
        return IDLE, None

    if isinstance(target, DayColumn):
        if not 0 <= target.day_index <= 6:
            return IDLE, None
        start = drop_start_minutes(pointer_y, target.column_top, geometry)
        return IDLE, Reschedule(state.activity_id, target.day_index, start)
    if isinstance(target, Inbox):
        if not state.from_scheduled:
            return IDLE, None
        return IDLE, Unschedule(state.activity_id)
    return IDLE, None


class SchedulingGrid:
    """Holds the gesture state for one grid view and commits finished gestures."""

    def __init__(self, store: ActivityStore, geometry: Optional[TimeGeometry] = None) -> None:
        self.store = store
        self.geometry = geometry or TimeGeometry()
        self._state: GestureState = IDLE

    @property
    def state(self) -> GestureState:
        return self._state

    def press(self, activity_id: str, pointer_y: float) -> GestureState:
        activity = self.store.find(activity_id)
        if activity is not None:
            self._state = begin_drag(self._state, activity, pointer_y)
        return self._state

    def press_resize_handle(self, activity_id: str, pointer_y: float) -> GestureState:
        activity = self.store.find(activity_id)
        if activity is not None:
            self._state = begin_resize(self._state, activity, pointer_y, self.geometry)
        return self._state

    def move(self, pointer_y: float) -> GestureState:
        self._state = move_pointer(self._state, pointer_y)
        return self._state

    def ghost(self) -> Optional[GhostOverlay]:
        state = self._state
        if not isinstance(state, Dragging):
            return None
        activity = self.store.find(state.activity_id)
        if activity is None:
            return None
        return GhostOverlay(activity=activity, offset_y=state.pointer_delta)

    def preview(self, pointer_y: float, target: DropTarget) -> Optional[GridCommand]:
        """Command a release here would produce, without committing it."""
        _, command = release(self._state, pointer_y, target, self.geometry)
        return command

    def release(self, pointer_y: float, target: DropTarget = None) -> Optional[Activity]:
        self._state, command = release(self._state, pointer_y, target, self.geometry)
        if command is None:
            logger.debug("Gesture ended without a mutation.")
            return None
        return self._commit(command)

    def cancel(self) -> None:
        self._state = cancel(self._state)

    def drag_to(self, activity_id: str, drop_y: float, target: DropTarget) -> Optional[Activity]:
        """Press and release in one step, for callers that only see the drop."""
        self.cancel()
        self.press(activity_id, drop_y)
        return self.release(drop_y, target)

    def resize_by(self, activity_id: str, delta_pixels: float) -> Optional[Activity]:
        self.cancel()
        self.press_resize_handle(activity_id, 0.0)
        return self.release(delta_pixels)

    def _commit(self, command: GridCommand) -> Optional[Activity]:
        if self.store.find(command.activity_id) is None:
            logger.debug("Activity %s vanished mid-gesture; discarding.", command.activity_id)
            return None
        if isinstance(command, Reschedule):
            return self.store.reschedule(
                command.activity_id, command.day_index, command.start_minutes
            )
        if isinstance(command, Unschedule):
            return self.store.unschedule(command.activity_id)
        return self.store.resize(command.activity_id, command.duration_minutes)

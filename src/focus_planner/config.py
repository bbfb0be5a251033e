"""Configuration models and helpers for the focus planner."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta


@dataclass(slots=True, frozen=True)
class GridSettings:
    """Geometry of the weekly scheduling grid."""

    window_start_hour: int = 6
    window_end_hour: int = 24
    pixels_per_hour: float = 60.0
    snap_minutes: int = 15
    minimum_block_minutes: int = 30
    header_height: float = 40.0
    min_height_pixels: float = 15.0
    default_start_minutes: int = 9 * 60

    def __post_init__(self) -> None:
        if not 0 <= self.window_start_hour < self.window_end_hour <= 24:
            raise ValueError("visible window must satisfy 0 <= start < end <= 24")
        if self.pixels_per_hour <= 0:
            raise ValueError("pixels_per_hour must be positive")
        if self.snap_minutes <= 0:
            raise ValueError("snap_minutes must be positive")

    @classmethod
    def from_window(
        cls,
        start_hour: int,
        end_hour: int,
        pixels_per_hour: float | None = None,
    ) -> "GridSettings":
        if pixels_per_hour is None:
            return cls(window_start_hour=start_hour, window_end_hour=end_hour)
        return cls(
            window_start_hour=start_hour,
            window_end_hour=end_hour,
            pixels_per_hour=pixels_per_hour,
        )


@dataclass(slots=True, frozen=True)
class TimerSettings:
    """Runtime configuration for the focus timer."""

    work_minutes: int = 25
    break_minutes: int = 5
    tick_interval: timedelta = timedelta(seconds=1)
    min_work_minutes: int = 1
    max_work_minutes: int = 180
    allow_overtime: bool = True
    record_interruptions: bool = True

    @classmethod
    def from_minutes(
        cls,
        work_minutes: int,
        break_minutes: int,
        allow_overtime: bool = True,
        tick_seconds: float | None = None,
    ) -> "TimerSettings":
        tick = tick_seconds if tick_seconds is not None else 1.0
        return cls(
            work_minutes=work_minutes,
            break_minutes=break_minutes,
            tick_interval=timedelta(seconds=tick),
            allow_overtime=allow_overtime,
        )

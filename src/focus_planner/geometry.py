"""Conversions between minutes-from-midnight and pixel offsets on the grid."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterator

from .config import GridSettings


@dataclass(slots=True, frozen=True)
class BlockGeometry:
    top: float
    height: float


@dataclass(slots=True, frozen=True)
class HourLabel:
    hour: int
    label: str
    top: float


def round_half_up(value: float) -> int:
    """Round to the nearest integer, ties toward positive infinity."""
    return math.floor(value + 0.5)


def format_clock(minutes: int) -> str:
    """Format minutes-from-midnight as 12-hour clock text."""
    hours, mins = divmod(int(minutes), 60)
    suffix = "PM" if 12 <= hours < 24 else "AM"
    hour12 = hours % 12 or 12
    return f"{hour12}:{mins:02d} {suffix}"


class TimeGeometry:
    """Stateless mapper for one grid configuration.

    Offsets are measured from the top of a day column's content area, i.e.
    below the column header. Clamping is left to callers so the same mapper
    serves both drop handling and rendering.
    """

    def __init__(self, settings: GridSettings | None = None) -> None:
        self.settings = settings or GridSettings()

    @property
    def window_start_minutes(self) -> int:
        return self.settings.window_start_hour * 60

    @property
    def window_end_minutes(self) -> int:
        return self.settings.window_end_hour * 60

    @property
    def grid_height(self) -> float:
        hours = self.settings.window_end_hour - self.settings.window_start_hour
        return hours * self.settings.pixels_per_hour

    def pixels_to_minutes(self, pixels: float) -> float:
        return pixels / self.settings.pixels_per_hour * 60

    def duration_to_pixels(self, minutes: float) -> float:
        return minutes * self.settings.pixels_per_hour / 60

    def snap(self, minutes: float) -> int:
        unit = self.settings.snap_minutes
        return round_half_up(minutes / unit) * unit

    def offset_to_minutes(self, offset_pixels: float) -> int:
        """Map a vertical offset to the nearest snapped minutes-from-midnight."""
        return self.snap(self.pixels_to_minutes(offset_pixels) + self.window_start_minutes)

    def minutes_to_offset(self, minutes: int, duration_minutes: int = 0) -> BlockGeometry:
        top = self.duration_to_pixels(minutes - self.window_start_minutes)
        height = max(
            self.settings.min_height_pixels,
            self.duration_to_pixels(duration_minutes),
        )
        return BlockGeometry(top=top, height=height)

    def clamp_start(self, minutes: int) -> int:
        lowest = self.window_start_minutes
        highest = self.window_end_minutes - self.settings.minimum_block_minutes
        return min(max(minutes, lowest), highest)

    def in_window(self, minutes: float) -> bool:
        return self.window_start_minutes <= minutes < self.window_end_minutes

    def hour_labels(self) -> Iterator[HourLabel]:
        for hour in range(self.settings.window_start_hour, self.settings.window_end_hour):
            top = self.duration_to_pixels((hour * 60) - self.window_start_minutes)
            suffix = "PM" if 12 <= hour < 24 else "AM"
            yield HourLabel(hour=hour, label=f"{hour % 12 or 12} {suffix}", top=top)

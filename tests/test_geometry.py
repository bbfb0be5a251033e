from __future__ import annotations

import pytest

from focus_planner.config import GridSettings
from focus_planner.geometry import TimeGeometry, format_clock, round_half_up


@pytest.fixture
def geometry() -> TimeGeometry:
    return TimeGeometry(GridSettings())


def test_offset_to_minutes_always_lands_on_snap_unit(geometry):
    offsets = [x / 4 for x in range(-200, 4400, 7)]
    for offset in offsets:
        assert geometry.offset_to_minutes(offset) % 15 == 0


def test_offset_zero_is_window_start(geometry):
    assert geometry.offset_to_minutes(0) == 6 * 60


def test_offset_rounds_to_nearest_slot(geometry):
    # 10:07 sits 247 px below 06:00 at 60 px/hour.
    assert geometry.offset_to_minutes(247) == 600
    assert geometry.offset_to_minutes(248) == 615
    # 10:07:30 is exactly halfway; ties round up.
    assert geometry.offset_to_minutes(247.5) == 615


def test_minutes_round_trip_through_offset(geometry):
    for minutes in range(360, 1440, 15):
        top = geometry.minutes_to_offset(minutes, 60).top
        assert geometry.offset_to_minutes(top) == minutes


def test_unsnapped_minutes_recover_within_one_snap_unit(geometry):
    for minutes in range(360, 1440, 7):
        top = geometry.minutes_to_offset(minutes).top
        assert abs(geometry.offset_to_minutes(top) - minutes) <= 7.5


def test_minutes_to_offset_scales_with_pixels_per_hour():
    geometry = TimeGeometry(GridSettings(pixels_per_hour=120))
    box = geometry.minutes_to_offset(7 * 60 + 30, 45)
    assert box.top == 180
    assert box.height == 90


def test_short_blocks_keep_a_visible_height(geometry):
    assert geometry.minutes_to_offset(600, 5).height == 15
    assert geometry.minutes_to_offset(600, 0).height == 15
    assert geometry.minutes_to_offset(600, 60).height == 60


def test_clamp_start_keeps_a_minimum_block_inside_the_window(geometry):
    assert geometry.clamp_start(120) == 360
    assert geometry.clamp_start(23 * 60 + 45) == 24 * 60 - 30
    assert geometry.clamp_start(600) == 600


def test_hour_labels_cover_the_window(geometry):
    labels = list(geometry.hour_labels())
    assert len(labels) == 18
    assert labels[0].label == "6 AM"
    assert labels[0].top == 0
    assert labels[6].label == "12 PM"
    assert labels[-1].label == "11 PM"
    assert labels[-1].top == 17 * 60


@pytest.mark.parametrize(
    "minutes, expected",
    [(0, "12:00 AM"), (9 * 60, "9:00 AM"), (12 * 60 + 5, "12:05 PM"), (24 * 60, "12:00 AM")],
)
def test_format_clock(minutes, expected):
    assert format_clock(minutes) == expected


def test_round_half_up_handles_negatives():
    assert round_half_up(2.5) == 3
    assert round_half_up(-2.5) == -2
    assert round_half_up(-2.6) == -3


def test_invalid_window_is_rejected():
    with pytest.raises(ValueError):
        GridSettings(window_start_hour=10, window_end_hour=9)

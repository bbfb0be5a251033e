from __future__ import annotations

from datetime import date, datetime

from focus_planner.geometry import TimeGeometry
from focus_planner.models import Activity, Category, Session, SessionStatus, SessionType
from focus_planner.timeline import render_day, resolve_category_style

MONDAY = date(2026, 10, 19)


def make_session(title: str, start: datetime, minutes: int) -> Session:
    from datetime import timedelta

    return Session(
        id=title.lower(),
        task_title=title,
        start_time=start,
        end_time=start + timedelta(minutes=minutes),
        duration_minutes=minutes,
        type=SessionType.WORK,
        status=SessionStatus.COMPLETED,
    )


def test_blocks_for_the_day_are_positioned():
    activities = [
        Activity.new("Standup", Category.MEETING, 15, day_index=1, start_minutes=9 * 60),
        Activity.new("Gym", Category.EXERCISE, 90, day_index=1, start_minutes=18 * 60),
        Activity.new("Tuesday", Category.WORK, 60, day_index=2, start_minutes=9 * 60),
        Activity.new("Inbox", Category.WORK, 60),
    ]

    timeline = render_day(activities, [], MONDAY, TimeGeometry())

    assert timeline.day_index == 1
    assert [block.title for block in timeline.activities] == ["Standup", "Gym"]
    standup, gym = timeline.activities
    assert (standup.top, standup.height) == (180, 15)
    assert (gym.top, gym.height) == (720, 90)
    assert gym.label == "6:00 PM - 7:30 PM"
    assert gym.style.label == "Exercise"
    assert timeline.is_empty is False


def test_overlapping_blocks_keep_collection_order():
    activities = [
        Activity.new("Second", Category.WORK, 60, day_index=1, start_minutes=600),
        Activity.new("First", Category.WORK, 60, day_index=1, start_minutes=570),
    ]
    timeline = render_day(activities, [], MONDAY)
    assert [block.title for block in timeline.activities] == ["Second", "First"]


def test_blocks_before_window_are_skipped():
    activities = [Activity.new("Dawn", Category.REST, 30, day_index=1, start_minutes=5 * 60)]
    assert render_day(activities, [], MONDAY).activities == ()


def test_sessions_for_the_day_are_rendered():
    sessions = [
        make_session("Focus", datetime(2026, 10, 19, 10, 30), 25),
        make_session("Yesterday", datetime(2026, 10, 18, 10, 30), 25),
    ]
    timeline = render_day([], sessions, MONDAY)
    assert len(timeline.sessions) == 1
    block = timeline.sessions[0]
    assert (block.top, block.height) == (270, 25)
    assert block.label == "10:30 AM (25m)"


def test_now_marker_only_today_inside_window():
    timeline = render_day([], [], MONDAY, now=datetime(2026, 10, 19, 13, 45))
    assert timeline.now.minutes == 13 * 60 + 45
    assert timeline.now.top == 465

    assert render_day([], [], MONDAY, now=datetime(2026, 10, 20, 13, 45)).now is None
    assert render_day([], [], MONDAY, now=datetime(2026, 10, 19, 5, 0)).now is None


def test_empty_day():
    timeline = render_day([], [], MONDAY, now=datetime(2026, 10, 19, 12, 0))
    assert timeline.is_empty is True
    assert timeline.now is not None


def test_every_category_has_a_style():
    labels = {resolve_category_style(category).label for category in Category}
    assert labels == {"Work", "Meeting", "Exercise", "Personal", "Rest"}

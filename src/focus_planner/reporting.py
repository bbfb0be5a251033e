"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime
from typing import Iterable, Optional

from .geometry import TimeGeometry, format_clock
from .models import DAYS_OF_WEEK, Activity, Session, SessionType
from .store import ActivityStore
from .timeline import render_day


class SummaryPrinter:
    """Render human-readable agendas in the console."""

    def __init__(self, store: ActivityStore, geometry: Optional[TimeGeometry] = None) -> None:
        self.store = store
        self.geometry = geometry or TimeGeometry()

    def print_agenda(self, day: date, now: Optional[datetime] = None) -> None:
        timeline = render_day(
            self.store.activities(),
            self.store.sessions(),
            day,
            self.geometry,
            now=now,
        )
        print(f"Agenda for {DAYS_OF_WEEK[timeline.day_index]} {day.strftime('%Y-%m-%d')}")
        print("-" * 40)
        if timeline.is_empty:
            print("Nothing planned or logged for the selected day.")
            return

        if timeline.activities:
            print("Planned:")
            for block in timeline.activities:
                print(f"  {block.label:<22} {block.title[:40]:<40} [{block.category.value}]")

        if timeline.sessions:
            print()
            print("Logged:")
            for block in timeline.sessions:
                print(
                    f"  {block.label:<22} {block.title[:40]:<40} "
                    f"{block.type.value}/{block.status.value}"
                )

            totals = focus_totals(self.store.sessions_on(day))
            print()
            print(f"Focus time: {format_duration(totals[SessionType.WORK] * 60)}")
            print(f"Break time: {format_duration(totals[SessionType.BREAK] * 60)}")


def print_activities(activities: Iterable[Activity], heading: str) -> None:
    items = list(activities)
    print(f"{heading} ({len(items)})")
    for activity in items:
        if activity.is_scheduled:
            when = f"{DAYS_OF_WEEK[activity.day_index][:3]} {format_clock(activity.start_minutes)}"
        else:
            when = "unscheduled"
        print(
            f"  {activity.id[:8]}  {activity.title[:36]:<36} "
            f"{activity.duration_minutes:>4}m  {when}"
        )


def focus_totals(sessions: Iterable[Session]) -> dict[SessionType, int]:
    totals: defaultdict[SessionType, int] = defaultdict(int)
    for session in sessions:
        totals[session.type] += session.duration_minutes
    return totals


def format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"

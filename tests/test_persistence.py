from __future__ import annotations

from datetime import datetime, timezone

import pytest

from focus_planner.db import LocalStore, database_connection, fetch_documents
from focus_planner.models import Activity, Category, Session, ValidationError
from focus_planner.normalization import normalize_reason, normalize_title
from focus_planner.store import ActivityStore
from focus_planner.sync import SqliteSyncAdapter, UserContext, sanitize_record


def test_activity_wire_shape_uses_explicit_nulls():
    record = Activity.new("Write", Category.WORK, 45).to_record()
    assert set(record) == {
        "id",
        "title",
        "status",
        "category",
        "durationMinutes",
        "dayIndex",
        "startMinutes",
        "estimatedPomodoros",
        "completedPomodoros",
    }
    assert record["dayIndex"] is None and record["startMinutes"] is None
    assert record["estimatedPomodoros"] == 1.5


def test_session_reads_epoch_milliseconds():
    start = datetime(2026, 10, 19, 9, 0)
    end = datetime(2026, 10, 19, 9, 25)
    session = Session.from_record(
        {
            "id": "s1",
            "taskId": "t1",
            "taskTitle": "Write",
            "startTime": start.timestamp() * 1000,
            "endTime": end.timestamp() * 1000,
            "durationMinutes": 25,
            "type": "WORK",
            "status": "COMPLETED",
        }
    )
    assert session.start_time == start
    assert session.end_time == end


def test_session_rejects_end_before_start():
    with pytest.raises(ValueError):
        Session(
            id="s",
            task_title="x",
            start_time=datetime(2026, 1, 1, 10),
            end_time=datetime(2026, 1, 1, 9),
            duration_minutes=1,
        )


def test_activity_rejects_partial_slot():
    with pytest.raises(ValueError):
        Activity(id="a", title="x", day_index=1)


def test_sanitize_record_flattens_enums_and_datetimes():
    record = sanitize_record(
        {"category": Category.REST, "at": datetime(2026, 1, 1, 8, 0), "missing": None}
    )
    assert record == {"category": "rest", "at": "2026-01-01T08:00:00", "missing": None}


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("  Deep   work  ", "Deep work"),
        ("line\nbreak\ttab", "line break tab"),
        ("\x07bell", "bell"),
        ("   ", None),
        (None, None),
    ],
)
def test_normalize_title(raw, expected):
    assert normalize_title(raw) == expected


def test_normalize_reason_keeps_inner_lines():
    assert normalize_reason("  call\nfrom boss ") == "call\nfrom boss"


def test_local_store_round_trip(tmp_path):
    store = LocalStore(tmp_path / "db.sqlite3")
    assert store.load("local_tasks") == []
    store.save("local_tasks", [{"id": "a"}])
    store.save("local_tasks", [{"id": "a"}, {"id": "b"}])
    assert store.load("local_tasks") == [{"id": "a"}, {"id": "b"}]


def test_corrupt_local_state_is_logged_not_raised(tmp_path, caplog):
    path = tmp_path / "db.sqlite3"
    with database_connection(path) as conn:
        conn.execute(
            "INSERT INTO local_state (key, value) VALUES (?, ?)", ("local_tasks", "{not json")
        )
    store = ActivityStore(local=LocalStore(path))
    store.connect()
    assert store.activities() == []
    assert "Error reading local state" in caplog.text


def test_sqlite_adapter_replace_drops_fields_merge_keeps_them(tmp_path):
    path = tmp_path / "db.sqlite3"
    adapter = SqliteSyncAdapter(path)
    adapter.put("users/u/tasks", "a", {"title": "A", "dayIndex": 1, "startMinutes": 600}, merge=False)
    adapter.put("users/u/tasks", "a", {"startMinutes": 630}, merge=True)
    with database_connection(path) as conn:
        assert fetch_documents(conn, "users/u/tasks") == [
            {"title": "A", "dayIndex": 1, "startMinutes": 630, "id": "a"}
        ]
    adapter.put("users/u/tasks", "a", {"title": "A"}, merge=False)
    with database_connection(path) as conn:
        assert fetch_documents(conn, "users/u/tasks") == [{"title": "A", "id": "a"}]


def test_store_round_trips_through_sqlite_adapter(tmp_path):
    path = tmp_path / "db.sqlite3"
    adapter = SqliteSyncAdapter(path)
    store = ActivityStore(UserContext(user_id="u", adapter=adapter), local=LocalStore(path))
    store.connect()

    activity = store.create(Activity.new("Synced", Category.WORK, 60))
    store.reschedule(activity.id, 3, 660)
    store.unschedule(activity.id)
    store.close()

    reopened = ActivityStore(UserContext(user_id="u", adapter=SqliteSyncAdapter(path)))
    reopened.connect()
    restored = reopened.get(activity.id)
    assert restored.title == "Synced"
    assert restored.day_index is None and restored.start_minutes is None
    assert reopened.offline is False


def test_other_users_are_isolated(tmp_path):
    path = tmp_path / "db.sqlite3"
    alice = ActivityStore(UserContext(user_id="alice", adapter=SqliteSyncAdapter(path)))
    alice.connect()
    alice.create(Activity.new("Hers", Category.WORK, 30))

    bob = ActivityStore(UserContext(user_id="bob", adapter=SqliteSyncAdapter(path)))
    bob.connect()
    assert bob.activities() == []


def test_create_many_validates_before_any_write(tmp_path):
    store = ActivityStore(local=LocalStore(tmp_path / "db.sqlite3"))
    store.connect()
    with pytest.raises(ValidationError):
        store.create_many("Bad day", weekdays=[1, 8])
    assert store.activities() == []


def test_session_records_with_utc_suffix_read_as_local_time():
    session = Session.from_record(
        {
            "id": "s2",
            "taskTitle": "Synced elsewhere",
            "startTime": "2026-10-19T08:00:00Z",
            "endTime": "2026-10-19T08:25:00+00:00",
            "durationMinutes": 25,
        }
    )
    expected = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
    assert session.start_time == expected
    assert session.end_time.tzinfo is None

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from focus_planner.config import GridSettings, TimerSettings
from focus_planner.webapp import create_app


@pytest.fixture
def client(tmp_path, clock) -> TestClient:
    app = create_app(
        db_path=tmp_path / "planner.sqlite3",
        timer_settings=TimerSettings(),
        clock=clock,
    )
    return TestClient(app)


def create_activity(client: TestClient, **overrides) -> dict:
    body = {"title": "Write report", "duration_minutes": 60, **overrides}
    response = client.post("/api/activities", json=body)
    assert response.status_code == 200, response.text
    return response.json()["activities"][0]


def test_status_reports_offline_mode(client, tmp_path):
    payload = client.get("/api/status").json()
    assert payload["offline"] is True
    assert payload["user_id"] is None
    assert payload["window"]["start_hour"] == 6
    assert payload["window"]["grid_height"] == 1080


def test_created_activity_lands_in_inbox(client):
    activity = create_activity(client)
    listing = client.get("/api/activities").json()
    assert listing["inbox"] == [activity["id"]]
    assert activity["dayIndex"] is None


def test_weekday_creation_schedules_each_day(client):
    response = client.post(
        "/api/activities",
        json={"title": "Run", "category": "exercise", "duration_minutes": 45, "weekdays": [1, 3, 3]},
    )
    created = response.json()["activities"]
    assert [(a["dayIndex"], a["startMinutes"]) for a in created] == [(1, 540), (3, 540)]


def test_invalid_activity_payloads(client):
    assert client.post("/api/activities", json={"title": "   "}).status_code == 400
    assert client.post("/api/activities", json={"title": "x", "copies": 11}).status_code == 422
    assert client.post("/api/activities", json={"title": "x", "colour": "red"}).status_code == 422


def test_drop_and_resize_through_grid(client):
    activity = create_activity(client)

    dropped = client.post(
        "/api/grid/drop",
        json={
            "activity_id": activity["id"],
            "drop_y": 100 + 40 + 247,
            "target": "day",
            "day_index": 1,
            "column_top": 100,
        },
    ).json()
    assert dropped["changed"] is True
    assert (dropped["activity"]["dayIndex"], dropped["activity"]["startMinutes"]) == (1, 600)

    resized = client.post(
        "/api/grid/resize", json={"activity_id": activity["id"], "delta_pixels": -40}
    ).json()
    assert resized["activity"]["durationMinutes"] == 30

    unscheduled = client.post(
        "/api/grid/drop",
        json={"activity_id": activity["id"], "drop_y": 0, "target": "inbox"},
    ).json()
    assert unscheduled["activity"]["dayIndex"] is None


def test_drop_outside_any_target_changes_nothing(client):
    activity = create_activity(client)
    result = client.post("/api/grid/drop", json={"activity_id": activity["id"], "drop_y": 10})
    assert result.json() == {"changed": False, "activity": None}


def test_drop_unknown_activity_is_not_found(client):
    response = client.post(
        "/api/grid/drop",
        json={"activity_id": "nope", "drop_y": 10, "target": "day", "day_index": 1},
    )
    assert response.status_code == 404


def test_timeline_for_monday(client):
    activity = create_activity(client, weekdays=[1])
    payload = client.get("/api/timeline", params={"date": "2026-10-19"}).json()
    assert payload["day_index"] == 1
    assert [block["activity_id"] for block in payload["activities"]] == [activity["id"]]
    assert payload["now"]["minutes"] == 600
    assert payload["is_empty"] is False

    assert client.get("/api/timeline", params={"date": "19/10/2026"}).status_code == 400


def test_timer_flow_records_session(client):
    assert client.post("/api/timer/start").status_code == 400

    selected = client.post("/api/timer/select", json={"manual_title": "Deep work"}).json()
    assert selected["selection_mode"] == "MANUAL"
    started = client.post("/api/timer/start").json()
    assert started["running"] is True

    completed = client.post("/api/timer/complete").json()
    assert completed["mode"] == "BREAK"
    assert completed["ticker_running"] is False
    assert completed["session"]["durationMinutes"] == 1
    assert completed["session"]["taskTitle"] == "Deep work"

    sessions = client.get("/api/sessions", params={"date": "2026-10-19"}).json()["sessions"]
    assert [s["id"] for s in sessions] == [completed["session"]["id"]]


def test_interrupt_flow(client):
    client.post("/api/timer/select", json={"manual_title": "Deep work"})
    client.post("/api/timer/start")
    interrupted = client.post("/api/timer/interrupt").json()
    assert interrupted["awaiting_interrupt_reason"] is True
    assert client.post("/api/timer/start").status_code == 409

    confirmed = client.post("/api/timer/interrupt/confirm", json={"reason": "Doorbell"}).json()
    assert confirmed["session"]["status"] == "INTERRUPTED"
    assert confirmed["session"]["interruptionReason"] == "Doorbell"
    assert confirmed["remaining_seconds"] == 1500


def test_interrupt_on_break_conflicts(client):
    client.post("/api/timer/mode", json={"mode": "BREAK"})
    assert client.post("/api/timer/interrupt").status_code == 409


def test_duration_adjustment(client):
    assert client.post("/api/timer/duration", json={}).status_code == 400
    assert client.post("/api/timer/duration", json={"delta_minutes": 5}).json()["work_minutes"] == 30
    assert client.post("/api/timer/duration", json={"minutes": 500}).json()["work_minutes"] == 180


def test_manual_session_crud(client):
    created = client.post(
        "/api/sessions",
        json={"task_title": "Reading", "start_time": "2026-10-19T08:00:00", "duration_minutes": 30},
    ).json()
    assert created["status"] == "MANUAL"
    assert created["endTime"] == "2026-10-19T08:30:00"

    updated = client.patch(
        f"/api/sessions/{created['id']}", json={"task_title": "Reading notes"}
    ).json()
    assert updated["taskTitle"] == "Reading notes"

    assert client.delete(f"/api/sessions/{created['id']}").status_code == 200
    assert client.delete(f"/api/sessions/{created['id']}").status_code == 404


def test_activity_patch_and_delete(client):
    activity = create_activity(client)
    patched = client.patch(
        f"/api/activities/{activity['id']}", json={"title": "Final report", "status": "COMPLETED"}
    ).json()
    assert patched["title"] == "Final report"
    assert patched["status"] == "COMPLETED"

    assert client.delete(f"/api/activities/{activity['id']}").json() == {"deleted": activity["id"]}
    assert client.patch("/api/activities/missing", json={"title": "x"}).status_code == 404


def test_state_survives_restart(tmp_path, clock):
    db_path = tmp_path / "planner.sqlite3"
    first = TestClient(create_app(db_path=db_path, clock=clock))
    activity = create_activity(first)

    second = TestClient(create_app(db_path=db_path, clock=clock))
    assert [a["id"] for a in second.get("/api/activities").json()["activities"]] == [activity["id"]]


def test_start_outside_window_is_rejected(client):
    response = client.post(
        "/api/activities",
        json={"title": "Night owl", "weekdays": [1], "start_minutes": 120},
    )
    assert response.status_code == 400
    assert client.get("/api/activities").json()["activities"] == []


def test_form_default_start_follows_a_late_window(tmp_path, clock):
    app = create_app(
        db_path=tmp_path / "planner.sqlite3",
        grid_settings=GridSettings.from_window(12, 20),
        clock=clock,
    )
    created = create_activity(TestClient(app), weekdays=[1])
    assert created["startMinutes"] == 12 * 60


def test_mixed_naive_and_aware_sessions_stay_readable(tmp_path, clock):
    db_path = tmp_path / "planner.sqlite3"
    client = TestClient(create_app(db_path=db_path, clock=clock))
    naive = client.post(
        "/api/sessions",
        json={"task_title": "Local", "start_time": "2026-10-19T13:00:00", "duration_minutes": 30},
    )
    aware = client.post(
        "/api/sessions",
        json={
            "task_title": "Remote",
            "start_time": "2026-10-19T12:00:00Z",
            "end_time": "2026-10-19T12:25:00Z",
        },
    )
    assert naive.status_code == 200 and aware.status_code == 200
    expected = (
        datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
    )
    assert aware.json()["startTime"] == expected.isoformat()
    assert aware.json()["durationMinutes"] == 25

    restarted = TestClient(create_app(db_path=db_path, clock=clock))
    for day in {date(2026, 10, 19), expected.date()}:
        assert restarted.get("/api/sessions", params={"date": day.isoformat()}).status_code == 200
        assert restarted.get("/api/timeline", params={"date": day.isoformat()}).status_code == 200
    titles = {
        s["taskTitle"]
        for day in {date(2026, 10, 19), expected.date()}
        for s in restarted.get("/api/sessions", params={"date": day.isoformat()}).json()["sessions"]
    }
    assert titles == {"Local", "Remote"}

    moved = restarted.patch(
        f"/api/sessions/{aware.json()['id']}",
        json={"start_time": "2026-10-19T14:00:00+00:00", "end_time": "2026-10-19T14:10:00Z"},
    )
    assert moved.status_code == 200
    assert moved.json()["durationMinutes"] == 10
    assert moved.json()["startTime"] == (expected + timedelta(hours=2)).isoformat()


def test_mismatched_session_duration_is_rejected(client):
    response = client.post(
        "/api/sessions",
        json={
            "task_title": "Reading",
            "start_time": "2026-10-19T08:00:00",
            "end_time": "2026-10-19T08:30:00",
            "duration_minutes": 45,
        },
    )
    assert response.status_code == 400

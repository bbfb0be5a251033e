from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Mapping, Optional

import pytest

from focus_planner.db import LocalStore
from focus_planner.store import ActivityStore
from focus_planner.sync import PersistenceEvent, UserContext

MONDAY_MORNING = datetime(2026, 10, 19, 10, 0, 0)


class FakeSubscription:
    def __init__(self, adapter: "FakeSyncAdapter", path: str, entry: tuple) -> None:
        self._adapter = adapter
        self._path = path
        self._entry = entry
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True
        listeners = self._adapter.listeners.get(self._path, [])
        if self._entry in listeners:
            listeners.remove(self._entry)


class FakeSyncAdapter:
    """In-memory document store mimicking a remote backend."""

    def __init__(self, *, auto_deliver: bool = True) -> None:
        self.collections: dict[str, dict[str, dict[str, Any]]] = {}
        self.listeners: dict[str, list[tuple]] = {}
        self.calls: list[tuple] = []
        self.auto_deliver = auto_deliver
        self.fail_writes = False
        self.fail_subscribe = False
        self.subscribe_error: Optional[Exception] = None
        self.subscribed: list[str] = []

    def subscribe(self, collection_path, on_snapshot, on_error) -> FakeSubscription:
        if self.fail_subscribe:
            raise PermissionError("missing or insufficient permissions")
        entry = (on_snapshot, on_error)
        self.listeners.setdefault(collection_path, []).append(entry)
        self.subscribed.append(collection_path)
        if self.subscribe_error is not None:
            on_error(self.subscribe_error)
        else:
            on_snapshot(self.snapshot(collection_path))
        return FakeSubscription(self, collection_path, entry)

    def put(self, collection_path, record_id, record: Mapping[str, Any], *, merge=True) -> None:
        self.calls.append(("put", collection_path, record_id, dict(record), merge))
        if self.fail_writes:
            raise ConnectionError("backend unavailable")
        docs = self.collections.setdefault(collection_path, {})
        if merge and record_id in docs:
            docs[record_id] = {**docs[record_id], **record}
        else:
            docs[record_id] = dict(record)
        if self.auto_deliver:
            self.deliver(collection_path)

    def delete(self, collection_path, record_id) -> None:
        self.calls.append(("delete", collection_path, record_id))
        if self.fail_writes:
            raise ConnectionError("backend unavailable")
        self.collections.get(collection_path, {}).pop(record_id, None)
        if self.auto_deliver:
            self.deliver(collection_path)

    def snapshot(self, collection_path) -> list[dict[str, Any]]:
        docs = self.collections.get(collection_path, {})
        return [{**body, "id": doc_id} for doc_id, body in docs.items()]

    def deliver(self, collection_path) -> None:
        for on_snapshot, _ in list(self.listeners.get(collection_path, [])):
            on_snapshot(self.snapshot(collection_path))

    def fail_stream(self, collection_path, exc: Exception) -> None:
        for _, on_error in list(self.listeners.get(collection_path, [])):
            on_error(exc)


class FakeClock:
    def __init__(self, now: datetime = MONDAY_MORNING) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def adapter() -> FakeSyncAdapter:
    return FakeSyncAdapter()


@pytest.fixture
def remote_store(adapter: FakeSyncAdapter) -> ActivityStore:
    store = ActivityStore(UserContext(user_id="u1", adapter=adapter))
    store.connect()
    yield store
    store.close()


@pytest.fixture
def local_store(tmp_path: Path) -> LocalStore:
    return LocalStore(tmp_path / "planner.sqlite3")


@pytest.fixture
def offline_store(local_store: LocalStore) -> ActivityStore:
    store = ActivityStore(local=local_store)
    store.connect()
    return store


@pytest.fixture
def events(remote_store: ActivityStore) -> list[PersistenceEvent]:
    received: list[PersistenceEvent] = []
    remote_store.add_listener(received.append)
    return received


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()

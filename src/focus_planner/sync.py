"""Sync adapter contract and the SQLite-backed document adapter."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Protocol

from .db import database_connection, delete_document, fetch_documents, upsert_document

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[list[dict[str, Any]]], None]
ErrorCallback = Callable[[Exception], None]

TASKS_COLLECTION = "tasks"
SESSIONS_COLLECTION = "sessions"


class Subscription(Protocol):
    def cancel(self) -> None: ...


class SyncAdapter(Protocol):
    """Durable storage reached through subscribe/put/delete."""

    def subscribe(
        self,
        collection_path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Subscription: ...

    def put(
        self,
        collection_path: str,
        record_id: str,
        record: Mapping[str, Any],
        *,
        merge: bool = True,
    ) -> None: ...

    def delete(self, collection_path: str, record_id: str) -> None: ...


@dataclass(slots=True, frozen=True)
class UserContext:
    """Who the store and timer act for, and where their data goes.

    A context without a user id or without an adapter is anonymous and
    persists to the local fallback store only.
    """

    user_id: Optional[str] = None
    adapter: Optional[SyncAdapter] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id) and self.adapter is not None

    def collection_path(self, name: str) -> str:
        if not self.user_id:
            raise ValueError("anonymous contexts have no remote collections")
        return f"users/{self.user_id}/{name}"


class PersistenceBackend(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"


@dataclass(slots=True, frozen=True)
class PersistenceEvent:
    """Outcome of the durable phase of a store mutation."""

    operation: str
    collection: str
    record_id: Optional[str]
    backend: PersistenceBackend
    succeeded: bool
    error: Optional[str] = None
    occurred_at: datetime = field(default_factory=datetime.now)


def sanitize_record(record: Mapping[str, Any]) -> dict[str, Any]:
    """Normalize a record for transmission.

    Enum members are reduced to their values and missing optional values
    become explicit ``None`` so every field survives backends that drop
    undefined entries.
    """
    sanitized: dict[str, Any] = {}
    for key, value in record.items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, datetime):
            value = value.isoformat()
        sanitized[key] = value
    return sanitized


class _SqliteSubscription:
    def __init__(self, adapter: "SqliteSyncAdapter", path: str, token: int) -> None:
        self._adapter = adapter
        self._path = path
        self._token = token

    def cancel(self) -> None:
        self._adapter._remove_listener(self._path, self._token)


class SqliteSyncAdapter:
    """Document store over SQLite that pushes a full snapshot after each write."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._lock = threading.RLock()
        self._listeners: dict[str, dict[int, tuple[SnapshotCallback, ErrorCallback]]] = {}
        self._next_token = 0

    def subscribe(
        self,
        collection_path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> _SqliteSubscription:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._listeners.setdefault(collection_path, {})[token] = (on_snapshot, on_error)
        self._deliver(collection_path, only=token)
        return _SqliteSubscription(self, collection_path, token)

    def put(
        self,
        collection_path: str,
        record_id: str,
        record: Mapping[str, Any],
        *,
        merge: bool = True,
    ) -> None:
        with database_connection(self.db_path) as conn:
            upsert_document(conn, collection_path, record_id, record, merge=merge)
        logger.debug("Stored %s/%s (merge=%s).", collection_path, record_id, merge)
        self._deliver(collection_path)

    def delete(self, collection_path: str, record_id: str) -> None:
        with database_connection(self.db_path) as conn:
            delete_document(conn, collection_path, record_id)
        logger.debug("Deleted %s/%s.", collection_path, record_id)
        self._deliver(collection_path)

    def _remove_listener(self, collection_path: str, token: int) -> None:
        with self._lock:
            listeners = self._listeners.get(collection_path)
            if listeners:
                listeners.pop(token, None)

    def _deliver(self, collection_path: str, only: Optional[int] = None) -> None:
        with self._lock:
            listeners = dict(self._listeners.get(collection_path, {}))
        if only is not None:
            listeners = {k: v for k, v in listeners.items() if k == only}
        if not listeners:
            return
        try:
            with database_connection(self.db_path) as conn:
                snapshot = fetch_documents(conn, collection_path)
        except Exception as exc:
            logger.warning("Snapshot read failed for %s: %s", collection_path, exc)
            for _, on_error in listeners.values():
                on_error(exc)
            return
        for on_snapshot, _ in listeners.values():
            on_snapshot([dict(record) for record in snapshot])

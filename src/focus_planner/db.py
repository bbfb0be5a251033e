"""SQLite storage for local fallback state and synced documents."""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Mapping

logger = logging.getLogger(__name__)

LOCAL_TASKS_KEY = "local_tasks"
LOCAL_SESSIONS_KEY = "local_sessions"


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS local_state (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS documents (
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            collection TEXT NOT NULL,
            doc_id TEXT NOT NULL,
            body TEXT NOT NULL,
            UNIQUE (collection, doc_id)
        );

        CREATE INDEX IF NOT EXISTS idx_documents_collection
            ON documents(collection);
        """
    )


def read_local_value(conn: sqlite3.Connection, key: str) -> list[dict[str, Any]]:
    row = conn.execute(
        "SELECT value FROM local_state WHERE key = ?", (key,)
    ).fetchone()
    if row is None:
        return []
    value = json.loads(row["value"])
    if not isinstance(value, list):
        raise ValueError(f"Stored value for {key!r} is not a JSON array")
    return value


def write_local_value(
    conn: sqlite3.Connection, key: str, records: list[Mapping[str, Any]]
) -> None:
    conn.execute(
        """
        INSERT INTO local_state (key, value, updated_at)
        VALUES (?, ?, CURRENT_TIMESTAMP)
        ON CONFLICT(key) DO UPDATE SET
            value = excluded.value,
            updated_at = excluded.updated_at
        """,
        (key, json.dumps(list(records))),
    )


def fetch_documents(conn: sqlite3.Connection, collection: str) -> list[dict[str, Any]]:
    """Return every document of a collection in insertion order."""
    rows = conn.execute(
        "SELECT body FROM documents WHERE collection = ? ORDER BY seq",
        (collection,),
    )
    return [json.loads(row["body"]) for row in rows]


def upsert_document(
    conn: sqlite3.Connection,
    collection: str,
    doc_id: str,
    record: Mapping[str, Any],
    *,
    merge: bool,
) -> None:
    """Insert or update a document.

    With ``merge`` the given fields are laid over the stored body; without it
    the stored body is replaced wholesale, dropping any field not present in
    ``record``.
    """
    body = dict(record)
    if merge:
        row = conn.execute(
            "SELECT body FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id),
        ).fetchone()
        if row is not None:
            body = {**json.loads(row["body"]), **body}
    body["id"] = doc_id
    conn.execute(
        """
        INSERT INTO documents (collection, doc_id, body)
        VALUES (?, ?, ?)
        ON CONFLICT(collection, doc_id) DO UPDATE SET body = excluded.body
        """,
        (collection, doc_id, json.dumps(body)),
    )


def delete_document(conn: sqlite3.Connection, collection: str, doc_id: str) -> None:
    conn.execute(
        "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
        (collection, doc_id),
    )


class LocalStore:
    """Flat key-value persistence used when no sync adapter is available."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    def load(self, key: str) -> list[dict[str, Any]]:
        with database_connection(self.db_path) as conn:
            return read_local_value(conn, key)

    def save(self, key: str, records: list[Mapping[str, Any]]) -> None:
        with database_connection(self.db_path) as conn:
            write_local_value(conn, key, records)
        logger.debug("Saved %d records under %s.", len(records), key)

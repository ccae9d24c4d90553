"""Durable key-value storage shared between execution contexts.

A context (a builder window, a filler window, another process) opens its own
store instance.  Writes are visible to every instance pointing at the same
database; instances learn about writes made by *other* contexts by polling
the change log with :meth:`SqliteKeyValueStore.poll_external_changes`.  A
context is never notified about its own writes.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Generator, Optional, Protocol

from utils.app_settings import DEFAULT_CHANGE_RETENTION_S, FormBuilderSettings

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[str, Optional[bytes]], None]


class StorageUnavailable(RuntimeError):
    """Raised when the durable store cannot be read or written."""


class KeyValueStore(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes) -> None: ...

    def on_external_change(self, callback: ChangeCallback) -> None: ...

    def poll_external_changes(self) -> int: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _dispatch(callbacks: list[ChangeCallback], key: str, value: bytes | None) -> None:
    for callback in list(callbacks):
        try:
            callback(key, value)
        except Exception:
            logger.exception("[kv] external change callback failed for %s", key)


class MemoryKeyValueStore:
    """Process-local store; it has no other contexts to hear from."""

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}
        self._callbacks: list[ChangeCallback] = []

    def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def on_external_change(self, callback: ChangeCallback) -> None:
        self._callbacks.append(callback)

    def poll_external_changes(self) -> int:
        return 0


class SqliteKeyValueStore:
    """Key-value store backed by a SQLite file.

    Every ``set`` also appends a row to ``kv_changes`` tagged with this
    instance's ``context_id``.  Polling reads rows newer than the last one
    seen and skips rows written by this context.  Rows older than
    ``retention_s`` seconds are pruned on write; a context that does not poll
    within that window misses those notifications.
    """

    def __init__(
        self,
        path: Path | str,
        *,
        context_id: str | None = None,
        retention_s: int = DEFAULT_CHANGE_RETENTION_S,
    ) -> None:
        self.path = Path(path)
        self.context_id = context_id or uuid.uuid4().hex
        self.retention = timedelta(seconds=max(0, retention_s))
        self._callbacks: list[ChangeCallback] = []
        with self._connection() as conn:
            _ensure_schema(conn)
            row = conn.execute("SELECT COALESCE(MAX(id), 0) FROM kv_changes").fetchone()
        self._last_seen: int = int(row[0])

    @classmethod
    def from_settings(cls, settings: FormBuilderSettings, *, context_id: str | None = None) -> "SqliteKeyValueStore":
        return cls(settings.db_path, context_id=context_id, retention_s=settings.change_retention_s)

    @contextmanager
    def _connection(self) -> Generator[sqlite3.Connection, None, None]:
        try:
            conn = _connect(self.path)
        except (sqlite3.Error, OSError) as e:
            raise StorageUnavailable(f"cannot open {self.path}: {e}") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageUnavailable(str(e)) from e
        finally:
            conn.close()

    def get(self, key: str) -> bytes | None:
        with self._connection() as conn:
            row = conn.execute("SELECT value FROM kv_entries WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return bytes(row["value"])

    def set(self, key: str, value: bytes) -> None:
        now = _utcnow()
        stamp = now.isoformat()
        with self._connection() as conn:
            conn.execute(
                "INSERT INTO kv_entries (key, value, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at",
                (key, sqlite3.Binary(bytes(value)), stamp),
            )
            conn.execute(
                "INSERT INTO kv_changes (key, origin, changed_at) VALUES (?, ?, ?)",
                (key, self.context_id, stamp),
            )
            conn.execute(
                "DELETE FROM kv_changes WHERE changed_at < ?",
                ((now - self.retention).isoformat(),),
            )
        logger.debug("[kv] %s wrote %s (%d bytes)", self.context_id[:8], key, len(value))

    def on_external_change(self, callback: ChangeCallback) -> None:
        self._callbacks.append(callback)

    def poll_external_changes(self) -> int:
        """Deliver changes made by other contexts since the last poll.

        Several changes to one key within a poll are delivered once with the
        current value.  Returns the number of notifications delivered.
        """
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT id, key, origin FROM kv_changes WHERE id > ? ORDER BY id",
                (self._last_seen,),
            ).fetchall()
        if not rows:
            return 0

        changed: list[str] = []
        for row in rows:
            if row["origin"] == self.context_id:
                continue
            if row["key"] not in changed:
                changed.append(row["key"])

        for key in changed:
            _dispatch(self._callbacks, key, self.get(key))
        # Only after every key was read; a failed read is retried next poll.
        self._last_seen = int(rows[-1]["id"])
        return len(changed)


def _connect(path: Path) -> sqlite3.Connection:
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    try:
        conn.execute("PRAGMA busy_timeout = 4000")
        conn.execute("PRAGMA journal_mode = WAL")
    except sqlite3.DatabaseError:
        pass
    return conn


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS kv_entries (
          key TEXT PRIMARY KEY,
          value BLOB NOT NULL,
          updated_at TEXT NOT NULL
        );
        CREATE TABLE IF NOT EXISTS kv_changes (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          key TEXT NOT NULL,
          origin TEXT NOT NULL,
          changed_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_kv_changes_key ON kv_changes(key);
        CREATE INDEX IF NOT EXISTS idx_kv_changes_changed_at ON kv_changes(changed_at);
        """
    )


__all__ = [
    "ChangeCallback",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqliteKeyValueStore",
    "StorageUnavailable",
]

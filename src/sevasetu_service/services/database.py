"""Shared SQLite connection with serialized read-modify-write transactions."""

from __future__ import annotations

import contextlib
import json
import sqlite3
from pathlib import Path
from threading import RLock
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator


def encode_json(value: Any) -> str | None:
    """Serialize a JSON column value. None stays NULL."""
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def decode_json(raw: str | None) -> Any:
    """Deserialize a JSON column value. NULL becomes None."""
    if raw is None:
        return None
    return json.loads(raw)


class Database:
    """
    One SQLite connection shared by every store.

    All writes go through ``transaction()``, which holds a process-wide
    lock and an IMMEDIATE transaction, so a precondition read inside the
    block cannot go stale before the block's writes commit.
    """

    def __init__(self, db_path: str) -> None:
        self._lock = RLock()
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(db_path, check_same_thread=False, isolation_level=None)
        self._db.row_factory = sqlite3.Row
        self._db.execute("PRAGMA journal_mode=WAL")
        self._db.execute("PRAGMA foreign_keys=ON")
        self._db.execute("PRAGMA busy_timeout=5000")
        self._depth = 0

    def ensure_schema(self, schema_sql: str) -> None:
        """Create tables and indexes if they don't exist."""
        with self._lock:
            self._db.executescript(schema_sql)

    @contextlib.contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run a block atomically.

        Commits when the block exits normally, rolls back on any exception.
        Nested calls join the outer transaction.
        """
        with self._lock:
            if self._depth > 0:
                self._depth += 1
                try:
                    yield self._db
                finally:
                    self._depth -= 1
                return

            self._db.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield self._db
            except BaseException:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise
            else:
                self._db.execute("COMMIT")
            finally:
                self._depth = 0

    @contextlib.contextmanager
    def reader(self) -> Iterator[sqlite3.Connection]:
        """Use the connection for reads without opening a write transaction."""
        with self._lock:
            yield self._db

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()

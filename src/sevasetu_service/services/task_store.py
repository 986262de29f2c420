"""SQLite-backed task storage with the append-only history log."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING, Any

from sevasetu_service.services.database import decode_json, encode_json

if TYPE_CHECKING:
    from sevasetu_service.services.database import Database

_SCHEMA = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id TEXT PRIMARY KEY,
    status TEXT NOT NULL,
    service TEXT NOT NULL,
    service_id TEXT NOT NULL,
    creator_id TEXT NOT NULL,
    creator_role TEXT NOT NULL,
    customer TEXT NOT NULL,
    customer_contact TEXT,
    assigned_vle_id TEXT,
    assigned_vle_name TEXT,
    total_paid INTEGER,
    customer_rate INTEGER NOT NULL,
    vle_rate INTEGER NOT NULL,
    government_fee INTEGER NOT NULL,
    documents TEXT NOT NULL DEFAULT '[]',
    acknowledgement_number TEXT,
    final_certificate TEXT,
    complaint TEXT,
    feedback TEXT,
    rejected_vle_ids TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS ix_tasks_status ON tasks(status);
CREATE INDEX IF NOT EXISTS ix_tasks_creator ON tasks(creator_id);
CREATE INDEX IF NOT EXISTS ix_tasks_vle ON tasks(assigned_vle_id);

CREATE TABLE IF NOT EXISTS task_history (
    task_id TEXT NOT NULL REFERENCES tasks(task_id),
    seq INTEGER NOT NULL,
    timestamp TEXT NOT NULL,
    actor_id TEXT NOT NULL,
    actor_role TEXT NOT NULL,
    action TEXT NOT NULL,
    details TEXT NOT NULL,
    PRIMARY KEY (task_id, seq)
);

CREATE TRIGGER IF NOT EXISTS task_history_no_update
BEFORE UPDATE ON task_history
BEGIN
    SELECT RAISE(ABORT, 'task history is append-only');
END;

CREATE TRIGGER IF NOT EXISTS task_history_no_delete
BEFORE DELETE ON task_history
BEGIN
    SELECT RAISE(ABORT, 'task history is append-only');
END;
"""

_JSON_COLUMNS = frozenset(
    {"documents", "final_certificate", "complaint", "feedback", "rejected_vle_ids"}
)


class DuplicateTaskError(Exception):
    """Raised when attempting to insert a task with a duplicate task_id."""


class TaskStore:
    """Storage for task rows and their history entries."""

    _TASK_COLUMNS: tuple[str, ...] = (
        "task_id",
        "status",
        "service",
        "service_id",
        "creator_id",
        "creator_role",
        "customer",
        "customer_contact",
        "assigned_vle_id",
        "assigned_vle_name",
        "total_paid",
        "customer_rate",
        "vle_rate",
        "government_fee",
        "documents",
        "acknowledgement_number",
        "final_certificate",
        "complaint",
        "feedback",
        "rejected_vle_ids",
        "created_at",
        "updated_at",
    )
    _TASK_COLUMNS_SQL = ", ".join(_TASK_COLUMNS)
    _TASK_SELECT_BASE_SQL = f"SELECT {_TASK_COLUMNS_SQL} FROM tasks"  # nosec B608

    def __init__(self, database: Database) -> None:
        self._database = database
        database.ensure_schema(_SCHEMA)

    def _row_to_task(self, row: sqlite3.Row) -> dict[str, Any]:
        task = {column: row[column] for column in self._TASK_COLUMNS}
        for column in _JSON_COLUMNS:
            task[column] = decode_json(task[column])
        return task

    @staticmethod
    def _encode(values: dict[str, Any]) -> dict[str, Any]:
        encoded = dict(values)
        for column in _JSON_COLUMNS & encoded.keys():
            encoded[column] = encode_json(encoded[column])
        return encoded

    # ------------------------------------------------------------------
    # Write path (inside an open transaction)
    # ------------------------------------------------------------------

    def insert_task(self, conn: sqlite3.Connection, task_data: dict[str, Any]) -> None:
        """Insert a new task row."""
        values = self._encode(task_data)
        placeholders = ", ".join("?" for _ in self._TASK_COLUMNS)
        try:
            conn.execute(
                f"INSERT INTO tasks ({self._TASK_COLUMNS_SQL}) VALUES ({placeholders})",  # nosec
                tuple(values[column] for column in self._TASK_COLUMNS),
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateTaskError(
                f"A task with task_id={task_data['task_id']} already exists"
            ) from exc

    def update_task(
        self,
        conn: sqlite3.Connection,
        task_id: str,
        updates: dict[str, Any],
        *,
        expected_status: str | None,
    ) -> int:
        """
        Update task columns and return the number of affected rows.

        With ``expected_status`` the update only applies while the row is
        still in that status, so a zero return means another writer won.
        """
        if len(updates) == 0:
            return 0

        if any(column not in self._TASK_COLUMNS or column == "task_id" for column in updates):
            msg = "Attempted to update unknown task column"
            raise ValueError(msg)

        values = self._encode(updates)
        set_clause = ", ".join(f"{column} = ?" for column in values)
        params: list[object] = list(values.values())

        query = "UPDATE tasks SET " + set_clause + " WHERE task_id = ?"  # nosec B608
        params.append(task_id)
        if expected_status is not None:
            query += " AND status = ?"
            params.append(expected_status)

        cursor = conn.execute(query, params)
        return int(cursor.rowcount)

    def append_history(
        self,
        conn: sqlite3.Connection,
        task_id: str,
        entry: dict[str, str],
    ) -> int:
        """Append one history entry and return its sequence number."""
        row = conn.execute(
            "SELECT COALESCE(MAX(seq), 0) FROM task_history WHERE task_id = ?", (task_id,)
        ).fetchone()
        seq = int(row[0]) + 1
        conn.execute(
            "INSERT INTO task_history "
            "(task_id, seq, timestamp, actor_id, actor_role, action, details) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                task_id,
                seq,
                entry["timestamp"],
                entry["actor_id"],
                entry["actor_role"],
                entry["action"],
                entry["details"],
            ),
        )
        return seq

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def get_task(
        self,
        task_id: str,
        conn: sqlite3.Connection | None = None,
    ) -> dict[str, Any] | None:
        """Fetch a task with its history, optionally inside a transaction."""
        if conn is not None:
            return self._load(conn, task_id)
        with self._database.reader() as reader:
            return self._load(reader, task_id)

    def _load(self, conn: sqlite3.Connection, task_id: str) -> dict[str, Any] | None:
        row = conn.execute(
            self._TASK_SELECT_BASE_SQL + " WHERE task_id = ?", (task_id,)
        ).fetchone()
        if row is None:
            return None
        task = self._row_to_task(row)
        task["history"] = self._history(conn, task_id)
        return task

    @staticmethod
    def _history(conn: sqlite3.Connection, task_id: str) -> list[dict[str, str]]:
        rows = conn.execute(
            "SELECT timestamp, actor_id, actor_role, action, details "
            "FROM task_history WHERE task_id = ? ORDER BY seq",
            (task_id,),
        ).fetchall()
        return [
            {
                "timestamp": row["timestamp"],
                "actor_id": row["actor_id"],
                "actor_role": row["actor_role"],
                "action": row["action"],
                "details": row["details"],
            }
            for row in rows
        ]

    def list_tasks(
        self,
        status: str | None = None,
        creator_id: str | None = None,
        assigned_vle_id: str | None = None,
        participant_id: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        """List tasks (without history) with optional filters, newest first."""
        query = self._TASK_SELECT_BASE_SQL
        clauses: list[str] = []
        params: list[object] = []

        if status is not None:
            clauses.append("status = ?")
            params.append(status)
        if creator_id is not None:
            clauses.append("creator_id = ?")
            params.append(creator_id)
        if assigned_vle_id is not None:
            clauses.append("assigned_vle_id = ?")
            params.append(assigned_vle_id)
        if participant_id is not None:
            clauses.append("(creator_id = ? OR assigned_vle_id = ?)")
            params.extend([participant_id, participant_id])

        if len(clauses) > 0:
            query += " WHERE " + " AND ".join(clauses)

        query += " ORDER BY created_at DESC, task_id"

        if limit is not None or offset is not None:
            query += " LIMIT ?"
            params.append(limit if limit is not None else -1)
            if offset is not None:
                query += " OFFSET ?"
                params.append(offset)

        with self._database.reader() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_task(row) for row in rows]

    def count_tasks_by_status(self) -> dict[str, int]:
        """Count tasks grouped by status."""
        with self._database.reader() as conn:
            rows = conn.execute("SELECT status, COUNT(*) FROM tasks GROUP BY status").fetchall()
        return {str(row[0]): int(row[1]) for row in rows}

"""SQLite-backed user directory and service catalog."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING, Any

from sevasetu_service.domain import Actor, Role, VleDetails, VleStatus
from sevasetu_service.services.database import decode_json, encode_json

if TYPE_CHECKING:
    from sevasetu_service.services.database import Database

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    user_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    role TEXT NOT NULL,
    mobile TEXT,
    email TEXT,
    pincode TEXT,
    vle_status TEXT,
    available INTEGER NOT NULL DEFAULT 0,
    offered_services TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS ix_users_role ON users(role);

CREATE TABLE IF NOT EXISTS services (
    service_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    customer_rate INTEGER NOT NULL,
    vle_rate INTEGER NOT NULL,
    government_fee INTEGER NOT NULL,
    is_variable INTEGER NOT NULL,
    parent_id TEXT,
    created_at TEXT NOT NULL
);
"""

_USER_COLUMNS: tuple[str, ...] = (
    "user_id",
    "name",
    "role",
    "mobile",
    "email",
    "pincode",
    "vle_status",
    "available",
    "offered_services",
    "created_at",
)

_SERVICE_COLUMNS: tuple[str, ...] = (
    "service_id",
    "name",
    "customer_rate",
    "vle_rate",
    "government_fee",
    "is_variable",
    "parent_id",
    "created_at",
)


class DuplicateUserError(Exception):
    """Raised when inserting a user whose user_id already exists."""


class DuplicateServiceError(Exception):
    """Raised when inserting a catalog entry whose service_id already exists."""


def actor_from_user(user: dict[str, Any]) -> Actor:
    """Build the tagged actor variant from a directory row."""
    role = Role(user["role"])
    vle: VleDetails | None = None
    if role == Role.VLE:
        vle = VleDetails(
            status=VleStatus(user["vle_status"] or VleStatus.PENDING),
            available=bool(user["available"]),
            offered_services=tuple(user["offered_services"]),
        )
    return Actor(user_id=user["user_id"], role=role, name=user["name"], vle=vle)


class DirectoryStore:
    """Storage for directory users and the service catalog."""

    def __init__(self, database: Database) -> None:
        self._database = database
        database.ensure_schema(_SCHEMA)

    def _row_to_user(self, row: sqlite3.Row) -> dict[str, Any]:
        user = {column: row[column] for column in _USER_COLUMNS}
        user["available"] = bool(user["available"])
        user["offered_services"] = decode_json(user["offered_services"]) or []
        return user

    def _row_to_service(self, row: sqlite3.Row) -> dict[str, Any]:
        service = {column: row[column] for column in _SERVICE_COLUMNS}
        service["is_variable"] = bool(service["is_variable"])
        return service

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def insert_user(self, conn: sqlite3.Connection, user_data: dict[str, Any]) -> None:
        """Insert a user row inside an open transaction."""
        values = dict(user_data)
        values["available"] = int(bool(values["available"]))
        values["offered_services"] = encode_json(list(values["offered_services"]))
        placeholders = ", ".join("?" for _ in _USER_COLUMNS)
        columns = ", ".join(_USER_COLUMNS)
        try:
            conn.execute(
                f"INSERT INTO users ({columns}) VALUES ({placeholders})",  # nosec B608
                tuple(values[column] for column in _USER_COLUMNS),
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateUserError(f"User {user_data['user_id']} already exists") from exc

    def get_user(
        self,
        user_id: str,
        conn: sqlite3.Connection | None = None,
    ) -> dict[str, Any] | None:
        """Fetch a user by ID, optionally inside a transaction."""
        query = f"SELECT {', '.join(_USER_COLUMNS)} FROM users WHERE user_id = ?"  # nosec B608
        if conn is not None:
            row = conn.execute(query, (user_id,)).fetchone()
        else:
            with self._database.reader() as reader:
                row = reader.execute(query, (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def update_user(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        updates: dict[str, Any],
    ) -> int:
        """Update user columns and return the number of affected rows."""
        if any(column not in _USER_COLUMNS or column == "user_id" for column in updates):
            msg = "Attempted to update unknown user column"
            raise ValueError(msg)

        values = dict(updates)
        if "available" in values:
            values["available"] = int(bool(values["available"]))
        if "offered_services" in values:
            values["offered_services"] = encode_json(list(values["offered_services"]))

        set_clause = ", ".join(f"{column} = ?" for column in values)
        cursor = conn.execute(
            "UPDATE users SET " + set_clause + " WHERE user_id = ?",  # nosec B608
            [*values.values(), user_id],
        )
        return int(cursor.rowcount)

    def list_users(self, role: str | None) -> list[dict[str, Any]]:
        """List users, optionally filtered by role."""
        query = f"SELECT {', '.join(_USER_COLUMNS)} FROM users"  # nosec B608
        params: list[object] = []
        if role is not None:
            query += " WHERE role = ?"
            params.append(role)
        query += " ORDER BY created_at, user_id"
        with self._database.reader() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_user(row) for row in rows]

    def list_admin_ids(self) -> list[str]:
        """IDs of every administrator account."""
        with self._database.reader() as conn:
            rows = conn.execute(
                "SELECT user_id FROM users WHERE role = ? ORDER BY user_id",
                (Role.ADMIN.value,),
            ).fetchall()
        return [str(row[0]) for row in rows]

    # ------------------------------------------------------------------
    # Service catalog
    # ------------------------------------------------------------------

    def insert_service(self, conn: sqlite3.Connection, service_data: dict[str, Any]) -> None:
        """Insert a catalog entry inside an open transaction."""
        values = dict(service_data)
        values["is_variable"] = int(bool(values["is_variable"]))
        placeholders = ", ".join("?" for _ in _SERVICE_COLUMNS)
        columns = ", ".join(_SERVICE_COLUMNS)
        try:
            conn.execute(
                f"INSERT INTO services ({columns}) VALUES ({placeholders})",  # nosec B608
                tuple(values[column] for column in _SERVICE_COLUMNS),
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateServiceError(
                f"Service {service_data['service_id']} already exists"
            ) from exc

    def get_service(
        self,
        service_id: str,
        conn: sqlite3.Connection | None = None,
    ) -> dict[str, Any] | None:
        """Fetch a catalog entry by ID."""
        columns = ", ".join(_SERVICE_COLUMNS)
        query = f"SELECT {columns} FROM services WHERE service_id = ?"  # nosec B608
        if conn is not None:
            row = conn.execute(query, (service_id,)).fetchone()
        else:
            with self._database.reader() as reader:
                row = reader.execute(query, (service_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_service(row)

    def list_services(self) -> list[dict[str, Any]]:
        """List the whole catalog ordered by name."""
        with self._database.reader() as conn:
            rows = conn.execute(
                f"SELECT {', '.join(_SERVICE_COLUMNS)} FROM services ORDER BY name"  # nosec B608
            ).fetchall()
        return [self._row_to_service(row) for row in rows]

"""Per-user notification inbox stored alongside the task data."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from service_commons.exceptions import ServiceError

from sevasetu_service.domain import utc_now_iso

if TYPE_CHECKING:
    from sevasetu_service.services.database import Database

_SCHEMA = """
CREATE TABLE IF NOT EXISTS notifications (
    notification_id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    body TEXT NOT NULL,
    link TEXT NOT NULL,
    read INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS ix_notifications_user ON notifications(user_id, created_at);
"""

DEFAULT_LINK = "/dashboard"


class NotificationInbox:
    """Notification sink that keeps messages for users to read later."""

    def __init__(self, database: Database) -> None:
        self._database = database
        database.ensure_schema(_SCHEMA)

    async def send(self, user_id: str, title: str, body: str, link: str | None) -> None:
        """Store a notification for a user."""
        with self._database.transaction() as conn:
            conn.execute(
                "INSERT INTO notifications "
                "(notification_id, user_id, title, body, link, read, created_at) "
                "VALUES (?, ?, ?, ?, ?, 0, ?)",
                (
                    f"n-{uuid.uuid4()}",
                    user_id,
                    title,
                    body,
                    link or DEFAULT_LINK,
                    utc_now_iso(),
                ),
            )

    def list_for_user(self, user_id: str, *, unread_only: bool) -> list[dict[str, Any]]:
        """Newest-first notifications for a user."""
        query = (
            "SELECT notification_id, user_id, title, body, link, read, created_at "
            "FROM notifications WHERE user_id = ?"
        )
        if unread_only:
            query += " AND read = 0"
        query += " ORDER BY created_at DESC, rowid DESC"
        with self._database.reader() as conn:
            rows = conn.execute(query, (user_id,)).fetchall()
        return [
            {
                "notification_id": row["notification_id"],
                "user_id": row["user_id"],
                "title": row["title"],
                "body": row["body"],
                "link": row["link"],
                "read": bool(row["read"]),
                "created_at": row["created_at"],
            }
            for row in rows
        ]

    def mark_read(self, user_id: str, notification_id: str) -> None:
        """Mark one of the user's notifications as read."""
        with self._database.transaction() as conn:
            cursor = conn.execute(
                "UPDATE notifications SET read = 1 WHERE notification_id = ? AND user_id = ?",
                (notification_id, user_id),
            )
            if cursor.rowcount == 0:
                raise ServiceError("NOTIFICATION_NOT_FOUND", "Notification not found", 404, {})

    async def close(self) -> None:
        """Nothing to release; the database is closed by its owner."""

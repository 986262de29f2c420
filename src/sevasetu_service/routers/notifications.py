"""Notification inbox endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from service_commons.exceptions import ServiceError

from sevasetu_service.core.state import get_app_state
from sevasetu_service.routers.validation import resolve_actor

if TYPE_CHECKING:
    from sevasetu_service.services.notification_inbox import NotificationInbox

router = APIRouter()


def _inbox() -> NotificationInbox:
    state = get_app_state()
    if state.inbox is None:
        raise ServiceError(
            "INBOX_DISABLED",
            "Notifications are delivered to an external gateway",
            404,
            {},
        )
    return state.inbox


@router.get("/notifications")
async def list_notifications(request: Request) -> dict[str, Any]:
    """The caller's notifications, newest first."""
    actor = resolve_actor(request)
    unread_only = request.query_params.get("unread_only", "false").lower() in ("1", "true")
    inbox = _inbox()
    return {"notifications": inbox.list_for_user(actor.user_id, unread_only=unread_only)}


@router.post("/notifications/{notification_id}/read", status_code=204)
async def mark_notification_read(notification_id: str, request: Request) -> None:
    actor = resolve_actor(request)
    _inbox().mark_read(actor.user_id, notification_id)

"""Read-only projections over tasks."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request

from sevasetu_service.core.exceptions import PermissionDeniedError
from sevasetu_service.core.state import get_app_state
from sevasetu_service.routers.validation import resolve_actor
from sevasetu_service.services.task_queries import (
    earnings_report,
    open_complaints,
    vle_active_tasks,
    vle_invitations,
)

if TYPE_CHECKING:
    from sevasetu_service.domain import Actor
    from sevasetu_service.services.task_lifecycle import TaskLifecycle

router = APIRouter()


def _lifecycle() -> TaskLifecycle:
    state = get_app_state()
    if state.task_lifecycle is None:
        msg = "TaskLifecycle not initialized"
        raise RuntimeError(msg)
    return state.task_lifecycle


def _require_reporting_role(actor: Actor) -> None:
    if not actor.can_read_all_tasks:
        raise PermissionDeniedError("Only admins and government viewers can read reports")


@router.get("/reports/earnings")
async def get_earnings(request: Request) -> dict[str, Any]:
    actor = resolve_actor(request)
    _require_reporting_role(actor)
    return earnings_report(_lifecycle().list_all_tasks())


@router.get("/reports/complaints")
async def get_open_complaints(request: Request) -> dict[str, Any]:
    actor = resolve_actor(request)
    _require_reporting_role(actor)
    return {"complaints": open_complaints(_lifecycle().list_all_tasks())}


@router.get("/reports/vles/{vle_id}/tasks")
async def get_vle_tasks(vle_id: str, request: Request) -> dict[str, Any]:
    """A VLE's pending invitations and the tasks it is working on."""
    actor = resolve_actor(request)
    if not actor.is_admin and actor.user_id != vle_id:
        raise PermissionDeniedError("You can only view your own task queue")
    tasks = _lifecycle().list_all_tasks()
    return {
        "invitations": vle_invitations(tasks, vle_id),
        "active": vle_active_tasks(tasks, vle_id),
    }

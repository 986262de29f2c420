"""User directory and service catalog endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from sevasetu_service.core.exceptions import PermissionDeniedError
from sevasetu_service.core.state import get_app_state
from sevasetu_service.routers.validation import optional_actor, parse_model, resolve_actor
from sevasetu_service.schemas import (
    AvailabilityRequest,
    CreateServiceRequest,
    OfferedServicesRequest,
    RegisterUserRequest,
)

if TYPE_CHECKING:
    from sevasetu_service.services.directory_manager import DirectoryManager

router = APIRouter()


def _directory() -> DirectoryManager:
    state = get_app_state()
    if state.directory is None:
        msg = "DirectoryManager not initialized"
        raise RuntimeError(msg)
    return state.directory


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.post("/users", status_code=201)
async def register_user(request: Request) -> JSONResponse:
    """
    Register a user.

    Customers and VLEs may self-register without an X-User-Id header;
    government and admin accounts are created by an admin.
    """
    actor = optional_actor(request)
    body = parse_model(await request.body(), RegisterUserRequest)

    result = await _directory().register_user(
        actor,
        name=body.name,
        role=body.role,
        mobile=body.mobile,
        email=body.email,
        pincode=body.pincode,
        offered_services=body.offered_services,
        user_id=body.user_id,
    )
    return JSONResponse(status_code=201, content=result)


@router.get("/users")
async def list_users(request: Request) -> dict[str, Any]:
    actor = resolve_actor(request)
    role = request.query_params.get("role")
    return {"users": _directory().list_users(actor, role)}


@router.get("/users/{user_id}")
async def get_user(user_id: str, request: Request) -> dict[str, Any]:
    """Admins and government viewers read any profile; others read their own."""
    actor = resolve_actor(request)
    if not actor.can_read_all_tasks and actor.user_id != user_id:
        raise PermissionDeniedError("You can only view your own profile")
    return _directory().get_user(user_id)


@router.post("/users/{user_id}/approve")
async def approve_vle(user_id: str, request: Request) -> dict[str, Any]:
    actor = resolve_actor(request)
    return await _directory().approve_vle(actor, user_id)


@router.post("/users/{user_id}/availability")
async def set_availability(user_id: str, request: Request) -> dict[str, Any]:
    actor = resolve_actor(request)
    body = parse_model(await request.body(), AvailabilityRequest)
    return _directory().set_availability(actor, user_id, body.available)


@router.put("/users/{user_id}/services")
async def set_offered_services(user_id: str, request: Request) -> dict[str, Any]:
    actor = resolve_actor(request)
    body = parse_model(await request.body(), OfferedServicesRequest)
    return _directory().set_offered_services(actor, user_id, body.service_ids)


# ---------------------------------------------------------------------------
# Service catalog
# ---------------------------------------------------------------------------


@router.post("/services", status_code=201)
async def add_service(request: Request) -> JSONResponse:
    actor = resolve_actor(request)
    body = parse_model(await request.body(), CreateServiceRequest)
    result = _directory().add_service(
        actor,
        name=body.name,
        customer_rate=body.customer_rate,
        vle_rate=body.vle_rate,
        government_fee=body.government_fee,
        is_variable=body.is_variable,
        parent_id=body.parent_id,
        service_id=body.service_id,
    )
    return JSONResponse(status_code=201, content=result)


@router.get("/services")
async def list_services() -> dict[str, Any]:
    """The service catalog is public."""
    return {"services": _directory().list_services()}


@router.get("/services/{service_id}")
async def get_service(service_id: str) -> dict[str, Any]:
    return _directory().get_service(service_id)

"""Service camp endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from sevasetu_service.core.state import get_app_state
from sevasetu_service.routers.validation import parse_model, resolve_actor
from sevasetu_service.schemas import (
    CampInvitationResponse,
    CampPayoutRequest,
    CampStatusRequest,
    CreateCampRequest,
    InviteVlesRequest,
)

if TYPE_CHECKING:
    from sevasetu_service.services.camp_manager import CampManager

router = APIRouter()


def _camps() -> CampManager:
    state = get_app_state()
    if state.camp_manager is None:
        msg = "CampManager not initialized"
        raise RuntimeError(msg)
    return state.camp_manager


@router.post("/camps", status_code=201)
async def create_camp(request: Request) -> JSONResponse:
    actor = resolve_actor(request)
    body = parse_model(await request.body(), CreateCampRequest)
    result = await _camps().create_camp(
        actor,
        name=body.name,
        location=body.location,
        date=body.date,
        services=body.services,
        vle_ids=body.vle_ids,
    )
    return JSONResponse(status_code=201, content=result)


@router.get("/camps")
async def list_camps(request: Request) -> dict[str, Any]:
    actor = resolve_actor(request)
    return {"camps": _camps().list_camps(actor)}


@router.get("/camps/{camp_id}")
async def get_camp(camp_id: str, request: Request) -> dict[str, Any]:
    actor = resolve_actor(request)
    return _camps().get_camp(actor, camp_id)


@router.post("/camps/{camp_id}/invitations")
async def invite_vles(camp_id: str, request: Request) -> dict[str, Any]:
    actor = resolve_actor(request)
    body = parse_model(await request.body(), InviteVlesRequest)
    return await _camps().invite_vles(actor, camp_id, body.vle_ids)


@router.post("/camps/{camp_id}/status")
async def update_camp_status(camp_id: str, request: Request) -> dict[str, Any]:
    actor = resolve_actor(request)
    body = parse_model(await request.body(), CampStatusRequest)
    return _camps().update_status(actor, camp_id, body.status)


@router.post("/camps/{camp_id}/payout")
async def process_camp_payout(camp_id: str, request: Request) -> dict[str, Any]:
    """Pay every accepted VLE its entered amount and close the camp."""
    actor = resolve_actor(request)
    body = parse_model(await request.body(), CampPayoutRequest)
    return await _camps().process_payout(actor, camp_id, body.payouts, body.admin_earnings)


@router.post("/camps/{camp_id}/response")
async def respond_to_invitation(camp_id: str, request: Request) -> dict[str, Any]:
    """An invited VLE accepts or rejects its invitation."""
    actor = resolve_actor(request)
    body = parse_model(await request.body(), CampInvitationResponse)
    return await _camps().respond_to_invitation(actor, camp_id, body.accept)

"""Wallet and payment request endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from sevasetu_service.core.state import get_app_state
from sevasetu_service.routers.validation import parse_model, resolve_actor
from sevasetu_service.schemas import PaymentRequestCreate

if TYPE_CHECKING:
    from sevasetu_service.services.wallet_manager import WalletManager

router = APIRouter()


def _wallets() -> WalletManager:
    state = get_app_state()
    if state.wallet_manager is None:
        msg = "WalletManager not initialized"
        raise RuntimeError(msg)
    return state.wallet_manager


@router.get("/wallets/{user_id}")
async def get_wallet(user_id: str, request: Request) -> dict[str, Any]:
    """Balance and ledger entries of one wallet."""
    actor = resolve_actor(request)
    return _wallets().get_wallet(actor, user_id)


# ---------------------------------------------------------------------------
# Payment requests (MUST register POST /payment-requests before the ID routes)
# ---------------------------------------------------------------------------


@router.post("/payment-requests", status_code=201)
async def create_payment_request(request: Request) -> JSONResponse:
    actor = resolve_actor(request)
    body = parse_model(await request.body(), PaymentRequestCreate)
    result = await _wallets().create_request(actor, body.amount)
    return JSONResponse(status_code=201, content=result)


@router.get("/payment-requests")
async def list_payment_requests(request: Request) -> dict[str, Any]:
    actor = resolve_actor(request)
    status = request.query_params.get("status")
    return {"requests": _wallets().list_requests(actor, status)}


@router.get("/payment-requests/{request_id}")
async def get_payment_request(request_id: str, request: Request) -> dict[str, Any]:
    actor = resolve_actor(request)
    return _wallets().get_request(actor, request_id)


@router.post("/payment-requests/{request_id}/approve")
async def approve_payment_request(request_id: str, request: Request) -> dict[str, Any]:
    actor = resolve_actor(request)
    return await _wallets().approve_request(actor, request_id)


@router.post("/payment-requests/{request_id}/reject")
async def reject_payment_request(request_id: str, request: Request) -> dict[str, Any]:
    actor = resolve_actor(request)
    return await _wallets().reject_request(actor, request_id)

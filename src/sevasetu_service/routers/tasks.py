"""Task lifecycle endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from sevasetu_service.core.state import get_app_state
from sevasetu_service.routers.validation import (
    form_text,
    parse_model,
    parse_query_int,
    read_uploads,
    resolve_actor,
)
from sevasetu_service.schemas import (
    AcknowledgementRequest,
    AssignVleRequest,
    FeedbackRequest,
    InformationRequest,
    SetPriceRequest,
)

if TYPE_CHECKING:
    from sevasetu_service.services.task_lifecycle import TaskLifecycle

router = APIRouter()


def _lifecycle() -> TaskLifecycle:
    state = get_app_state()
    if state.task_lifecycle is None:
        msg = "TaskLifecycle not initialized"
        raise RuntimeError(msg)
    return state.task_lifecycle


# ---------------------------------------------------------------------------
# POST /tasks: create task (multipart)
# ---------------------------------------------------------------------------


@router.post("/tasks", status_code=201)
async def create_task(request: Request) -> JSONResponse:
    """Create a task from a catalog service with its supporting documents."""
    actor = resolve_actor(request)
    form = await request.form()
    service_id = form_text(form, "service_id", required=True)
    customer = form_text(form, "customer", required=True)
    customer_contact = form_text(form, "customer_contact", required=False)
    files = await read_uploads(form, "documents")

    result = await _lifecycle().create_task(
        actor,
        service_id=str(service_id),
        customer=str(customer),
        customer_contact=customer_contact,
        files=files,
    )
    return JSONResponse(status_code=201, content=result)


@router.get("/tasks")
async def list_tasks(request: Request) -> dict[str, Any]:
    """List the tasks visible to the caller."""
    actor = resolve_actor(request)
    status = request.query_params.get("status")
    limit = parse_query_int(request.query_params.get("limit"), "limit")
    offset = parse_query_int(request.query_params.get("offset"), "offset")

    tasks = _lifecycle().list_tasks(actor, status=status, limit=limit, offset=offset)
    return {"tasks": tasks}


@router.get("/tasks/{task_id}")
async def get_task(task_id: str, request: Request) -> dict[str, Any]:
    """Get one task with its history."""
    actor = resolve_actor(request)
    return _lifecycle().get_task(actor, task_id)


# ---------------------------------------------------------------------------
# Pricing and payment
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/price")
async def set_price(task_id: str, request: Request) -> dict[str, Any]:
    """Admin sets the final price of a variable-rate task."""
    actor = resolve_actor(request)
    body = parse_model(await request.body(), SetPriceRequest)
    return await _lifecycle().set_price(actor, task_id, body.price)


@router.post("/tasks/{task_id}/payment")
async def pay_for_task(task_id: str, request: Request) -> dict[str, Any]:
    """The creator pays the final price from their wallet."""
    actor = resolve_actor(request)
    return await _lifecycle().pay_for_task(actor, task_id)


# ---------------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/assign")
async def assign_vle(task_id: str, request: Request) -> dict[str, Any]:
    """Admin invites a VLE to work the task."""
    actor = resolve_actor(request)
    body = parse_model(await request.body(), AssignVleRequest)
    return await _lifecycle().assign_vle(actor, task_id, body.vle_id)


@router.post("/tasks/{task_id}/accept")
async def accept_task(task_id: str, request: Request) -> dict[str, Any]:
    actor = resolve_actor(request)
    return await _lifecycle().accept_task(actor, task_id)


@router.post("/tasks/{task_id}/reject")
async def reject_task(task_id: str, request: Request) -> dict[str, Any]:
    actor = resolve_actor(request)
    return await _lifecycle().reject_task(actor, task_id)


# ---------------------------------------------------------------------------
# Work in progress
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/information-request")
async def request_information(task_id: str, request: Request) -> dict[str, Any]:
    """The assigned VLE asks the creator for more documents."""
    actor = resolve_actor(request)
    body = parse_model(await request.body(), InformationRequest)
    return await _lifecycle().request_information(actor, task_id, body.message)


@router.post("/tasks/{task_id}/documents")
async def upload_documents(task_id: str, request: Request) -> dict[str, Any]:
    """The creator uploads the documents the VLE asked for."""
    actor = resolve_actor(request)
    form = await request.form()
    files = await read_uploads(form, "documents")
    return await _lifecycle().upload_documents(actor, task_id, files)


@router.post("/tasks/{task_id}/acknowledgement")
async def submit_acknowledgement(task_id: str, request: Request) -> dict[str, Any]:
    actor = resolve_actor(request)
    body = parse_model(await request.body(), AcknowledgementRequest)
    return await _lifecycle().submit_acknowledgement(actor, task_id, body.acknowledgement_number)


@router.post("/tasks/{task_id}/certificate")
async def upload_final_certificate(task_id: str, request: Request) -> dict[str, Any]:
    """The assigned VLE uploads the certificate, completing the task."""
    actor = resolve_actor(request)
    form = await request.form()
    files = await read_uploads(form, "certificate")
    certificate = files[0] if files else None
    return await _lifecycle().upload_final_certificate(actor, task_id, certificate)


@router.post("/tasks/{task_id}/payout")
async def approve_payout(task_id: str, request: Request) -> dict[str, Any]:
    """Admin releases the VLE's share of a completed task."""
    actor = resolve_actor(request)
    return await _lifecycle().approve_payout(actor, task_id)


# ---------------------------------------------------------------------------
# After delivery
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/complaint")
async def raise_complaint(task_id: str, request: Request) -> dict[str, Any]:
    actor = resolve_actor(request)
    form = await request.form()
    text = form_text(form, "text", required=True)
    files = await read_uploads(form, "documents")
    return await _lifecycle().raise_complaint(actor, task_id, str(text), files)


@router.post("/tasks/{task_id}/complaint/response")
async def respond_to_complaint(task_id: str, request: Request) -> dict[str, Any]:
    actor = resolve_actor(request)
    form = await request.form()
    text = form_text(form, "text", required=True)
    files = await read_uploads(form, "documents")
    return await _lifecycle().respond_to_complaint(actor, task_id, str(text), files)


@router.post("/tasks/{task_id}/feedback")
async def submit_feedback(task_id: str, request: Request) -> dict[str, Any]:
    actor = resolve_actor(request)
    body = parse_model(await request.body(), FeedbackRequest)
    return await _lifecycle().submit_feedback(actor, task_id, body.rating, body.comment)

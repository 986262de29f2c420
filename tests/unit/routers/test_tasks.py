"""Task endpoint tests."""

from __future__ import annotations

import pytest

from sevasetu_service.domain import TaskStatus
from tests.helpers import (
    ADMIN_ID,
    CUSTOMER_ID,
    GOVERNMENT_ID,
    OTHER_VLE_ID,
    VARIABLE_SERVICE_ID,
    VLE_ID,
)
from tests.unit.routers.conftest import (
    MAX_BODY_SIZE,
    accepted_task,
    auth,
    completed_task,
    create_task,
    fund,
    pdf,
)

# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


@pytest.mark.unit
async def test_create_task_charges_wallet(client):
    task = await create_task(client)

    assert task["status"] == TaskStatus.UNASSIGNED
    assert task["total_paid"] == 500
    assert task["creator_id"] == CUSTOMER_ID
    assert len(task["documents"]) == 1
    assert task["history"][0]["action"] == "Task Created"

    wallet = (await client.get(f"/wallets/{CUSTOMER_ID}", headers=auth(CUSTOMER_ID))).json()
    assert wallet["balance"] == 0


@pytest.mark.unit
async def test_create_task_requires_multipart(client):
    response = await client.post(
        "/tasks",
        json={"service_id": "svc-income", "customer": "Asha"},
        headers=auth(CUSTOMER_ID),
    )
    assert response.status_code == 415
    assert response.json()["error"] == "UNSUPPORTED_MEDIA_TYPE"


@pytest.mark.unit
async def test_create_task_without_funds(client):
    response = await client.post(
        "/tasks",
        data={"service_id": "svc-income", "customer": "Asha"},
        files=[("documents", pdf())],
        headers=auth(CUSTOMER_ID),
    )
    assert response.status_code == 402
    body = response.json()
    assert body["error"] == "INSUFFICIENT_FUNDS"
    assert body["details"] == {"required": 500, "available": 0}

    listed = (await client.get("/tasks", headers=auth(CUSTOMER_ID))).json()
    assert listed["tasks"] == []


@pytest.mark.unit
async def test_create_task_field_errors(client):
    await fund(client, CUSTOMER_ID, 500)

    response = await client.post(
        "/tasks",
        data={"customer": "Asha"},
        files=[("documents", pdf())],
        headers=auth(CUSTOMER_ID),
    )
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_PAYLOAD"

    response = await client.post(
        "/tasks",
        data={"service_id": "svc-income", "customer": "Asha"},
        files=[("documents", pdf(content=b"x" * 2048))],
        headers=auth(CUSTOMER_ID),
    )
    assert response.status_code == 413
    assert response.json()["error"] == "FILE_TOO_LARGE"


@pytest.mark.unit
async def test_caller_identity_is_required(client):
    response = await client.get("/tasks")
    assert response.status_code == 401
    assert response.json()["error"] == "UNAUTHORIZED"

    response = await client.get("/tasks", headers=auth("u-stranger"))
    assert response.status_code == 401


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


@pytest.mark.unit
async def test_full_lifecycle_over_http(client):
    task_id = await completed_task(client)

    task = (await client.get(f"/tasks/{task_id}", headers=auth(CUSTOMER_ID))).json()
    assert task["status"] == TaskStatus.COMPLETED
    certificate_url = task["final_certificate"]["url"]

    download = await client.get(certificate_url, headers=auth(CUSTOMER_ID))
    assert download.status_code == 200
    assert download.content == b"%PDF-1.4 test"

    response = await client.post(f"/tasks/{task_id}/payout", headers=auth(ADMIN_ID))
    assert response.status_code == 200
    body = response.json()
    assert body["task"]["status"] == TaskStatus.PAID_OUT
    assert body["payout"]["amount_to_vle"] == 400
    assert body["payout"]["admin_commission"] == 100

    response = await client.post(f"/tasks/{task_id}/payout", headers=auth(ADMIN_ID))
    assert response.status_code == 409
    assert response.json()["error"] == "INVALID_TRANSITION"

    wallet = (await client.get(f"/wallets/{VLE_ID}", headers=auth(VLE_ID))).json()
    assert wallet["balance"] == 400


@pytest.mark.unit
async def test_variable_rate_pricing_and_payment(client):
    response = await client.post(
        "/tasks",
        data={"service_id": VARIABLE_SERVICE_ID, "customer": "Asha Naik"},
        files=[("documents", pdf("survey.pdf"))],
        headers=auth(CUSTOMER_ID),
    )
    assert response.status_code == 201
    task_id = response.json()["task_id"]
    assert response.json()["status"] == TaskStatus.PENDING_PRICE_APPROVAL

    response = await client.post(
        f"/tasks/{task_id}/price", json={"price": "900"}, headers=auth(ADMIN_ID)
    )
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_PAYLOAD"

    response = await client.post(
        f"/tasks/{task_id}/price", json={"price": 900}, headers=auth(ADMIN_ID)
    )
    assert response.status_code == 200
    assert response.json()["status"] == TaskStatus.AWAITING_PAYMENT

    await fund(client, CUSTOMER_ID, 900)
    response = await client.post(f"/tasks/{task_id}/payment", headers=auth(CUSTOMER_ID))
    assert response.status_code == 200
    assert response.json()["status"] == TaskStatus.UNASSIGNED
    assert response.json()["total_paid"] == 900


@pytest.mark.unit
async def test_information_round_trip(client):
    task_id = await accepted_task(client)

    response = await client.post(
        f"/tasks/{task_id}/information-request",
        json={"message": "Please upload a residence proof"},
        headers=auth(VLE_ID),
    )
    assert response.status_code == 200
    assert response.json()["status"] == TaskStatus.AWAITING_DOCUMENTS

    response = await client.post(
        f"/tasks/{task_id}/documents",
        files=[("documents", pdf("residence.pdf"))],
        headers=auth(CUSTOMER_ID),
    )
    assert response.status_code == 200
    assert response.json()["status"] == TaskStatus.ASSIGNED
    assert len(response.json()["documents"]) == 2

    response = await client.post(
        f"/tasks/{task_id}/acknowledgement",
        json={"acknowledgement_number": "ACK-2026-0042"},
        headers=auth(VLE_ID),
    )
    assert response.status_code == 200
    assert response.json()["status"] == TaskStatus.IN_PROGRESS
    assert response.json()["acknowledgement_number"] == "ACK-2026-0042"


@pytest.mark.unit
async def test_reject_and_reassign(client):
    task_id = (await create_task(client))["task_id"]
    await client.post(f"/tasks/{task_id}/assign", json={"vle_id": VLE_ID}, headers=auth(ADMIN_ID))

    response = await client.post(f"/tasks/{task_id}/accept", headers=auth(OTHER_VLE_ID))
    assert response.status_code == 409
    assert response.json()["error"] == "TASK_NO_LONGER_AVAILABLE"

    response = await client.post(f"/tasks/{task_id}/reject", headers=auth(VLE_ID))
    assert response.status_code == 200
    assert response.json()["status"] == TaskStatus.UNASSIGNED
    assert response.json()["assigned_vle_id"] is None

    response = await client.post(
        f"/tasks/{task_id}/assign", json={"vle_id": OTHER_VLE_ID}, headers=auth(ADMIN_ID)
    )
    assert response.status_code == 200
    assert response.json()["assigned_vle_id"] == OTHER_VLE_ID


@pytest.mark.unit
async def test_role_checks_over_http(client):
    task_id = (await create_task(client))["task_id"]

    response = await client.post(
        f"/tasks/{task_id}/assign", json={"vle_id": VLE_ID}, headers=auth(CUSTOMER_ID)
    )
    assert response.status_code == 403
    assert response.json()["error"] == "FORBIDDEN"

    response = await client.get(f"/tasks/{task_id}", headers=auth(VLE_ID))
    assert response.status_code == 403

    response = await client.get(f"/tasks/{task_id}", headers=auth(GOVERNMENT_ID))
    assert response.status_code == 200

    response = await client.get("/tasks/t-missing", headers=auth(ADMIN_ID))
    assert response.status_code == 404
    assert response.json()["error"] == "TASK_NOT_FOUND"


# ---------------------------------------------------------------------------
# Complaints and feedback
# ---------------------------------------------------------------------------


@pytest.mark.unit
async def test_complaint_and_feedback_over_http(client):
    task_id = await completed_task(client)

    response = await client.post(
        f"/tasks/{task_id}/complaint",
        data={"text": "Wrong spelling of my name"},
        files=[("documents", pdf("photo.pdf"))],
        headers=auth(CUSTOMER_ID),
    )
    assert response.status_code == 200
    assert response.json()["status"] == TaskStatus.COMPLAINT_RAISED

    complaints = (await client.get("/reports/complaints", headers=auth(GOVERNMENT_ID))).json()
    assert [c["task_id"] for c in complaints["complaints"]] == [task_id]

    response = await client.post(
        f"/tasks/{task_id}/complaint/response",
        data={"text": "Corrected certificate attached"},
        files=[("documents", pdf("corrected.pdf"))],
        headers=auth(ADMIN_ID),
    )
    assert response.status_code == 200
    assert response.json()["status"] == TaskStatus.COMPLETED

    response = await client.post(
        f"/tasks/{task_id}/feedback",
        json={"rating": 5, "comment": "Quick service"},
        headers=auth(CUSTOMER_ID),
    )
    assert response.status_code == 200
    assert response.json()["feedback"]["rating"] == 5
    assert response.json()["status"] == TaskStatus.COMPLETED


# ---------------------------------------------------------------------------
# Request validation
# ---------------------------------------------------------------------------


@pytest.mark.unit
async def test_json_body_validation(client):
    task_id = (await create_task(client))["task_id"]

    response = await client.post(
        f"/tasks/{task_id}/assign",
        content=b"{not json",
        headers={**auth(ADMIN_ID), "Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_JSON"

    response = await client.post(
        f"/tasks/{task_id}/assign",
        content=b'{"vle_id": "u-vle"}',
        headers={**auth(ADMIN_ID), "Content-Type": "text/plain"},
    )
    assert response.status_code == 415

    response = await client.post(
        f"/tasks/{task_id}/assign",
        json={"vle_id": VLE_ID, "extra": True},
        headers=auth(ADMIN_ID),
    )
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_PAYLOAD"

    response = await client.post(
        f"/tasks/{task_id}/information-request",
        json={"message": "x" * (MAX_BODY_SIZE + 1)},
        headers=auth(VLE_ID),
    )
    assert response.status_code == 413
    assert response.json()["error"] == "PAYLOAD_TOO_LARGE"


@pytest.mark.unit
async def test_list_tasks_query_validation(client):
    await create_task(client)

    response = await client.get("/tasks?limit=abc", headers=auth(ADMIN_ID))
    assert response.status_code == 400

    response = await client.get("/tasks?status=Bogus", headers=auth(ADMIN_ID))
    assert response.status_code == 400

    response = await client.get("/tasks?status=Unassigned&limit=5", headers=auth(ADMIN_ID))
    assert response.status_code == 200
    assert len(response.json()["tasks"]) == 1

    response = await client.get("/tasks", headers=auth(VLE_ID))
    assert response.json()["tasks"] == []


@pytest.mark.unit
async def test_file_download_requires_known_caller(client):
    task = await create_task(client)
    url = task["documents"][0]["url"]

    assert (await client.get(url)).status_code == 401
    response = await client.get(
        f"/files/tasks/{task['task_id']}/missing/here.pdf", headers=auth(ADMIN_ID)
    )
    assert response.status_code == 404
    assert response.json()["error"] == "FILE_NOT_FOUND"

    response = await client.get("/files/tasks/nothing/here.pdf", headers=auth(ADMIN_ID))
    assert response.status_code == 404
    assert response.json()["error"] == "TASK_NOT_FOUND"


@pytest.mark.unit
async def test_file_download_follows_task_visibility(client):
    task = await create_task(client)
    url = task["documents"][0]["url"]

    response = await client.get(url, headers=auth(OTHER_VLE_ID))
    assert response.status_code == 403
    assert response.json()["error"] == "FORBIDDEN"

    for user_id in (CUSTOMER_ID, ADMIN_ID, GOVERNMENT_ID):
        response = await client.get(url, headers=auth(user_id))
        assert response.status_code == 200
        assert response.content == b"%PDF-1.4 test"

"""Report endpoint tests."""

from __future__ import annotations

import pytest

from tests.helpers import ADMIN_ID, CUSTOMER_ID, GOVERNMENT_ID, OTHER_VLE_ID, VLE_ID
from tests.unit.routers.conftest import accepted_task, auth, completed_task, create_task


@pytest.mark.unit
async def test_earnings_report(client):
    task_id = await completed_task(client)
    await client.post(f"/tasks/{task_id}/payout", headers=auth(ADMIN_ID))

    response = await client.get("/reports/earnings", headers=auth(GOVERNMENT_ID))
    assert response.status_code == 200
    report = response.json()
    assert report["paid_out_tasks"] == 1
    assert report["vle_payouts"] == 400
    assert report["admin_commission"] == 100

    response = await client.get("/reports/earnings", headers=auth(CUSTOMER_ID))
    assert response.status_code == 403


@pytest.mark.unit
async def test_vle_task_queue(client):
    invited = (await create_task(client))["task_id"]
    await client.post(f"/tasks/{invited}/assign", json={"vle_id": VLE_ID}, headers=auth(ADMIN_ID))
    working = await accepted_task(client)

    response = await client.get(f"/reports/vles/{VLE_ID}/tasks", headers=auth(VLE_ID))
    assert response.status_code == 200
    body = response.json()
    assert [t["task_id"] for t in body["invitations"]] == [invited]
    assert [t["task_id"] for t in body["active"]] == [working]

    response = await client.get(f"/reports/vles/{VLE_ID}/tasks", headers=auth(OTHER_VLE_ID))
    assert response.status_code == 403

"""Notification inbox endpoint tests."""

from __future__ import annotations

import pytest

from sevasetu_service.core.state import get_app_state
from tests.helpers import ADMIN_ID, CUSTOMER_ID, VLE_ID
from tests.unit.routers.conftest import auth, create_task


@pytest.mark.unit
async def test_inbox_lists_and_marks_read(client):
    await create_task(client)

    response = await client.get("/notifications", headers=auth(CUSTOMER_ID))
    assert response.status_code == 200
    notifications = response.json()["notifications"]
    assert "Wallet Balance Updated" in [n["title"] for n in notifications]
    assert all(n["read"] is False for n in notifications)

    first = notifications[0]["notification_id"]
    response = await client.post(f"/notifications/{first}/read", headers=auth(CUSTOMER_ID))
    assert response.status_code == 204

    unread = (
        await client.get("/notifications?unread_only=true", headers=auth(CUSTOMER_ID))
    ).json()["notifications"]
    assert first not in [n["notification_id"] for n in unread]
    assert len(unread) == len(notifications) - 1


@pytest.mark.unit
async def test_notifications_are_private(client):
    await create_task(client)
    admin_inbox = (await client.get("/notifications", headers=auth(ADMIN_ID))).json()
    notification_id = admin_inbox["notifications"][0]["notification_id"]

    response = await client.post(f"/notifications/{notification_id}/read", headers=auth(VLE_ID))
    assert response.status_code == 404
    assert response.json()["error"] == "NOTIFICATION_NOT_FOUND"


@pytest.mark.unit
async def test_inbox_disabled_when_relaying(client):
    get_app_state().inbox = None

    response = await client.get("/notifications", headers=auth(CUSTOMER_ID))
    assert response.status_code == 404
    assert response.json()["error"] == "INBOX_DISABLED"

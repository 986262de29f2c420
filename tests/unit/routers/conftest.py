"""Router test fixtures: a seeded app on a temp database and file store."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

import pytest
from httpx import ASGITransport, AsyncClient

from sevasetu_service.app import create_app
from sevasetu_service.config import clear_settings_cache
from sevasetu_service.core.lifespan import lifespan
from sevasetu_service.core.state import get_app_state, reset_app_state
from tests.helpers import (
    ADMIN_ID,
    CUSTOMER_ID,
    FIXED_SERVICE_ID,
    GOVERNMENT_ID,
    OTHER_VLE_ID,
    VARIABLE_SERVICE_ID,
    VLE_ID,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

MAX_BODY_SIZE = 4096


def auth(user_id: str) -> dict[str, str]:
    """Headers identifying the caller."""
    return {"X-User-Id": user_id}


def pdf(name: str = "aadhaar.pdf", content: bytes = b"%PDF-1.4 test") -> tuple[str, bytes, str]:
    return (name, content, "application/pdf")


# ---------------------------------------------------------------------------
# App + client fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
async def app(tmp_path: Path) -> AsyncIterator[Any]:
    """Create a test app with a temp database and seeded directory."""
    config_content = f"""\
service:
  name: "sevasetu"
  version: "0.1.0"
server:
  host: "0.0.0.0"
  port: 8010
  log_level: "info"
logging:
  level: "WARNING"
database:
  path: "{tmp_path / "test.db"}"
storage:
  path: "{tmp_path / "files"}"
  max_file_size: 1024
  max_files_per_request: 3
notifications:
  mode: "inbox"
request:
  max_body_size: {MAX_BODY_SIZE}
bootstrap:
  admins:
    - user_id: "{ADMIN_ID}"
      name: "Administrator"
"""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(config_content)

    old_config = os.environ.get("CONFIG_PATH")
    os.environ["CONFIG_PATH"] = str(config_path)

    clear_settings_cache()
    reset_app_state()

    test_app = create_app()
    async with lifespan(test_app):
        await _seed_directory()
        yield test_app

    reset_app_state()
    clear_settings_cache()
    if old_config is None:
        os.environ.pop("CONFIG_PATH", None)
    else:
        os.environ["CONFIG_PATH"] = old_config


async def _seed_directory() -> None:
    state = get_app_state()
    directory = state.directory
    assert directory is not None
    admin = directory.get_actor(ADMIN_ID)
    assert admin is not None

    directory.add_service(
        admin, "Income Certificate", 500, 300, 100, False, service_id=FIXED_SERVICE_ID
    )
    directory.add_service(
        admin, "Land Mutation", 0, 200, 50, True, service_id=VARIABLE_SERVICE_ID
    )
    await directory.register_user(None, "Asha", "customer", user_id=CUSTOMER_ID)
    await directory.register_user(admin, "Goa Audit Office", "government", user_id=GOVERNMENT_ID)
    for vle_id, name in ((VLE_ID, "Ravi"), (OTHER_VLE_ID, "Meena")):
        await directory.register_user(
            None,
            name,
            "vle",
            offered_services=[FIXED_SERVICE_ID, VARIABLE_SERVICE_ID],
            user_id=vle_id,
        )
        await directory.approve_vle(admin, vle_id)


@pytest.fixture
async def client(app: Any) -> AsyncIterator[AsyncClient]:
    """Create an async HTTP client for the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ---------------------------------------------------------------------------
# Flow helpers
# ---------------------------------------------------------------------------
async def fund(client: AsyncClient, user_id: str, amount: int) -> None:
    """Top up a wallet through a payment request the admin approves."""
    response = await client.post(
        "/payment-requests", json={"amount": amount}, headers=auth(user_id)
    )
    assert response.status_code == 201
    request_id = response.json()["request_id"]
    response = await client.post(
        f"/payment-requests/{request_id}/approve", headers=auth(ADMIN_ID)
    )
    assert response.status_code == 200


async def create_task(
    client: AsyncClient,
    user_id: str = CUSTOMER_ID,
    service_id: str = FIXED_SERVICE_ID,
) -> dict[str, Any]:
    """Fund the creator and create a task through the multipart endpoint."""
    await fund(client, user_id, 500)
    response = await client.post(
        "/tasks",
        data={"service_id": service_id, "customer": "Asha Naik"},
        files=[("documents", pdf())],
        headers=auth(user_id),
    )
    assert response.status_code == 201, response.text
    return dict(response.json())


async def accepted_task(client: AsyncClient, vle_id: str = VLE_ID) -> str:
    task_id = str((await create_task(client))["task_id"])
    response = await client.post(
        f"/tasks/{task_id}/assign", json={"vle_id": vle_id}, headers=auth(ADMIN_ID)
    )
    assert response.status_code == 200
    response = await client.post(f"/tasks/{task_id}/accept", headers=auth(vle_id))
    assert response.status_code == 200
    return task_id


async def completed_task(client: AsyncClient, vle_id: str = VLE_ID) -> str:
    task_id = await accepted_task(client, vle_id)
    response = await client.post(
        f"/tasks/{task_id}/certificate",
        files={"certificate": pdf("certificate.pdf")},
        headers=auth(vle_id),
    )
    assert response.status_code == 200
    return task_id

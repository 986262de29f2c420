"""Unit tests for wallets and top-up payment requests."""

from __future__ import annotations

import pytest
from service_commons.exceptions import ServiceError

from sevasetu_service.core.exceptions import InvalidTransitionError, PermissionDeniedError
from sevasetu_service.domain import PaymentRequestStatus
from sevasetu_service.services.wallet_manager import payment_request_reference
from tests.helpers import ADMIN_ID, CUSTOMER_ID, GOVERNMENT_ID, VLE_ID


@pytest.mark.unit
async def test_approved_request_credits_wallet(graph) -> None:
    customer = graph.actor(CUSTOMER_ID)
    admin = graph.actor(ADMIN_ID)

    request = await graph.wallets.create_request(customer, 1000)
    assert request["status"] == PaymentRequestStatus.PENDING
    assert request["user_name"] == "Asha"
    assert "New Balance Request" in graph.titles_sent_to(ADMIN_ID)

    approved = await graph.wallets.approve_request(admin, request["request_id"])
    assert approved["status"] == PaymentRequestStatus.APPROVED
    assert approved["approved_by"] == ADMIN_ID
    assert graph.balance(CUSTOMER_ID) == 1000
    assert "Wallet Balance Updated" in graph.titles_sent_to(CUSTOMER_ID)

    wallet = graph.wallets.get_wallet(customer, CUSTOMER_ID)
    assert wallet["balance"] == 1000
    assert wallet["entries"][0]["reference"] == payment_request_reference(request["request_id"])


@pytest.mark.unit
async def test_request_is_resolved_once(graph) -> None:
    admin = graph.actor(ADMIN_ID)
    request = await graph.wallets.create_request(graph.actor(VLE_ID), 250)

    await graph.wallets.approve_request(admin, request["request_id"])
    with pytest.raises(InvalidTransitionError):
        await graph.wallets.approve_request(admin, request["request_id"])
    with pytest.raises(InvalidTransitionError):
        await graph.wallets.reject_request(admin, request["request_id"])

    assert graph.balance(VLE_ID) == 250


@pytest.mark.unit
async def test_rejected_request_moves_no_money(graph) -> None:
    request = await graph.wallets.create_request(graph.actor(CUSTOMER_ID), 300)
    rejected = await graph.wallets.reject_request(graph.actor(ADMIN_ID), request["request_id"])

    assert rejected["status"] == PaymentRequestStatus.REJECTED
    assert graph.balance(CUSTOMER_ID) == 0
    assert "Balance Request Rejected" in graph.titles_sent_to(CUSTOMER_ID)


@pytest.mark.unit
@pytest.mark.parametrize("amount", [0, -10])
async def test_request_amount_must_be_positive(graph, amount) -> None:
    with pytest.raises(ServiceError) as exc_info:
        await graph.wallets.create_request(graph.actor(CUSTOMER_ID), amount)
    assert exc_info.value.error == "INVALID_AMOUNT"


@pytest.mark.unit
async def test_request_permissions(graph) -> None:
    with pytest.raises(PermissionDeniedError):
        await graph.wallets.create_request(graph.actor(GOVERNMENT_ID), 100)

    request = await graph.wallets.create_request(graph.actor(CUSTOMER_ID), 100)
    with pytest.raises(PermissionDeniedError):
        await graph.wallets.approve_request(graph.actor(VLE_ID), request["request_id"])
    with pytest.raises(PermissionDeniedError):
        graph.wallets.get_request(graph.actor(VLE_ID), request["request_id"])
    with pytest.raises(PermissionDeniedError):
        graph.wallets.get_wallet(graph.actor(VLE_ID), CUSTOMER_ID)


@pytest.mark.unit
async def test_list_requests_scoping(graph) -> None:
    await graph.wallets.create_request(graph.actor(CUSTOMER_ID), 100)
    vle_request = await graph.wallets.create_request(graph.actor(VLE_ID), 200)
    await graph.wallets.approve_request(graph.actor(ADMIN_ID), vle_request["request_id"])

    assert len(graph.wallets.list_requests(graph.actor(ADMIN_ID), None)) == 2
    pending = graph.wallets.list_requests(graph.actor(ADMIN_ID), "pending")
    assert [r["user_id"] for r in pending] == [CUSTOMER_ID]
    own = graph.wallets.list_requests(graph.actor(VLE_ID), None)
    assert [r["request_id"] for r in own] == [vle_request["request_id"]]

    with pytest.raises(ServiceError):
        graph.wallets.list_requests(graph.actor(ADMIN_ID), "bogus")


@pytest.mark.unit
async def test_unknown_request(graph) -> None:
    with pytest.raises(ServiceError) as exc_info:
        await graph.wallets.approve_request(graph.actor(ADMIN_ID), "pr-missing")
    assert exc_info.value.error == "REQUEST_NOT_FOUND"

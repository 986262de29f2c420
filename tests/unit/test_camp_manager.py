"""Unit tests for service camps."""

from __future__ import annotations

import pytest
from service_commons.exceptions import ServiceError

from sevasetu_service.core.exceptions import InvalidTransitionError, PermissionDeniedError
from sevasetu_service.domain import CampStatus, InvitationStatus
from tests.helpers import ADMIN_ID, CUSTOMER_ID, OTHER_VLE_ID, VLE_ID


async def _camp(graph, vle_ids=(VLE_ID, OTHER_VLE_ID)) -> str:
    camp = await graph.camps.create_camp(
        graph.actor(ADMIN_ID),
        name="Ponda Aadhaar Camp",
        location="Ponda",
        date="2026-11-20",
        services=["svc-income"],
        vle_ids=list(vle_ids),
    )
    return str(camp["camp_id"])


@pytest.mark.unit
async def test_create_camp_invites_vles(graph) -> None:
    camp_id = await _camp(graph)
    camp = graph.camps.get_camp(graph.actor(ADMIN_ID), camp_id)

    assert camp["status"] == CampStatus.UPCOMING
    assert [e["vle_id"] for e in camp["assigned_vles"]] == [VLE_ID, OTHER_VLE_ID]
    assert all(e["status"] == InvitationStatus.PENDING for e in camp["assigned_vles"])
    assert "New Camp Invitation" in graph.titles_sent_to(VLE_ID)


@pytest.mark.unit
async def test_payout_credits_accepted_vles_once(graph) -> None:
    admin = graph.actor(ADMIN_ID)
    camp_id = await _camp(graph)
    await graph.camps.respond_to_invitation(graph.actor(VLE_ID), camp_id, True)
    await graph.camps.respond_to_invitation(graph.actor(OTHER_VLE_ID), camp_id, False)
    assert "Camp Invitation accepted" in graph.titles_sent_to(ADMIN_ID)

    with pytest.raises(ServiceError) as exc_info:
        await graph.camps.process_payout(admin, camp_id, {OTHER_VLE_ID: 100}, 50)
    assert exc_info.value.error == "VLE_NOT_ELIGIBLE"

    camp = await graph.camps.process_payout(admin, camp_id, {VLE_ID: 700}, 300)
    assert camp["status"] == CampStatus.PAID_OUT
    assert camp["admin_earnings"] == 300
    assert [(p["vle_id"], p["amount"]) for p in camp["payouts"]] == [(VLE_ID, 700)]
    assert graph.balance(VLE_ID) == 700
    assert "Camp Payout Received" in graph.titles_sent_to(VLE_ID)

    with pytest.raises(InvalidTransitionError):
        await graph.camps.process_payout(admin, camp_id, {VLE_ID: 700}, 300)
    assert graph.balance(VLE_ID) == 700


@pytest.mark.unit
async def test_payout_validation(graph) -> None:
    admin = graph.actor(ADMIN_ID)
    camp_id = await _camp(graph)
    await graph.camps.respond_to_invitation(graph.actor(VLE_ID), camp_id, True)

    with pytest.raises(ServiceError) as exc_info:
        await graph.camps.process_payout(admin, camp_id, {}, 0)
    assert exc_info.value.error == "INVALID_PAYLOAD"

    with pytest.raises(ServiceError) as exc_info:
        await graph.camps.process_payout(admin, camp_id, {VLE_ID: -1}, 0)
    assert exc_info.value.error == "INVALID_AMOUNT"

    with pytest.raises(PermissionDeniedError):
        await graph.camps.process_payout(graph.actor(VLE_ID), camp_id, {VLE_ID: 10}, 0)


@pytest.mark.unit
async def test_invitation_answered_once(graph) -> None:
    camp_id = await _camp(graph, vle_ids=[VLE_ID])
    vle = graph.actor(VLE_ID)
    await graph.camps.respond_to_invitation(vle, camp_id, True)

    with pytest.raises(InvalidTransitionError):
        await graph.camps.respond_to_invitation(vle, camp_id, False)
    with pytest.raises(PermissionDeniedError):
        await graph.camps.respond_to_invitation(graph.actor(OTHER_VLE_ID), camp_id, True)


@pytest.mark.unit
async def test_cancelled_camp_is_closed(graph) -> None:
    admin = graph.actor(ADMIN_ID)
    camp_id = await _camp(graph)
    camp = graph.camps.update_status(admin, camp_id, CampStatus.CANCELLED.value)
    assert camp["status"] == CampStatus.CANCELLED

    with pytest.raises(InvalidTransitionError):
        await graph.camps.respond_to_invitation(graph.actor(VLE_ID), camp_id, True)
    with pytest.raises(InvalidTransitionError):
        await graph.camps.invite_vles(admin, camp_id, [VLE_ID])
    with pytest.raises(InvalidTransitionError):
        graph.camps.update_status(admin, camp_id, CampStatus.COMPLETED.value)


@pytest.mark.unit
async def test_only_approved_vles_are_invited(graph) -> None:
    await graph.directory.register_user(None, "Pending VLE", "vle", user_id="u-vle-new")
    with pytest.raises(ServiceError) as exc_info:
        await _camp(graph, vle_ids=["u-vle-new"])
    assert exc_info.value.error == "VLE_NOT_ELIGIBLE"

    camp_id = await _camp(graph, vle_ids=[])
    with pytest.raises(ServiceError):
        await graph.camps.invite_vles(graph.actor(ADMIN_ID), camp_id, [CUSTOMER_ID])


@pytest.mark.unit
async def test_vles_see_only_their_camps(graph) -> None:
    invited = await _camp(graph, vle_ids=[VLE_ID])
    other = await _camp(graph, vle_ids=[OTHER_VLE_ID])

    assert [c["camp_id"] for c in graph.camps.list_camps(graph.actor(VLE_ID))] == [invited]
    assert len(graph.camps.list_camps(graph.actor(ADMIN_ID))) == 2
    with pytest.raises(PermissionDeniedError):
        graph.camps.get_camp(graph.actor(VLE_ID), other)


@pytest.mark.unit
async def test_create_camp_validates_date(graph) -> None:
    with pytest.raises(ServiceError) as exc_info:
        await graph.camps.create_camp(
            graph.actor(ADMIN_ID), "Camp", "Margao", "next tuesday", [], []
        )
    assert exc_info.value.error == "INVALID_PAYLOAD"

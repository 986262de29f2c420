"""Unit tests for the read-path task projections."""

from __future__ import annotations

import pytest

from sevasetu_service.domain import TaskStatus
from sevasetu_service.services.task_queries import (
    earnings_report,
    open_complaints,
    tasks_in_status,
    vle_active_tasks,
    vle_invitations,
)
from tests.helpers import (
    ADMIN_ID,
    CUSTOMER_ID,
    OTHER_VLE_ID,
    VLE_ID,
    assigned_task,
    completed_task,
    create_fixed_task,
)


@pytest.mark.unit
async def test_vle_queues(graph) -> None:
    invited = await create_fixed_task(graph)
    await graph.lifecycle.assign_vle(graph.actor(ADMIN_ID), invited, VLE_ID)
    working = await assigned_task(graph)
    await assigned_task(graph, OTHER_VLE_ID)

    tasks = graph.lifecycle.list_all_tasks()
    assert [t["task_id"] for t in vle_invitations(tasks, VLE_ID)] == [invited]
    assert [t["task_id"] for t in vle_active_tasks(tasks, VLE_ID)] == [working]
    assert len(tasks_in_status(tasks, TaskStatus.ASSIGNED)) == 2


@pytest.mark.unit
async def test_open_complaints_lists_unanswered_only(graph) -> None:
    admin = graph.actor(ADMIN_ID)
    customer = graph.actor(CUSTOMER_ID)
    answered = await completed_task(graph)
    waiting = await completed_task(graph)
    await graph.lifecycle.raise_complaint(customer, answered, "Wrong address", [])
    await graph.lifecycle.raise_complaint(customer, waiting, "Wrong name", [])
    await graph.lifecycle.respond_to_complaint(admin, answered, "Fixed", [])

    complaints = open_complaints(graph.lifecycle.list_all_tasks())
    assert [c["task_id"] for c in complaints] == [waiting]
    assert complaints[0]["text"] == "Wrong name"


@pytest.mark.unit
async def test_earnings_report_counts_paid_out_tasks(graph) -> None:
    admin = graph.actor(ADMIN_ID)
    first = await completed_task(graph)
    second = await completed_task(graph, OTHER_VLE_ID)
    await completed_task(graph)
    await graph.lifecycle.approve_payout(admin, first)
    await graph.lifecycle.approve_payout(admin, second)
    await graph.lifecycle.raise_complaint(graph.actor(CUSTOMER_ID), second, "Late", [])

    report = earnings_report(graph.lifecycle.list_all_tasks())

    assert report["paid_out_tasks"] == 2
    assert report["total_paid"] == 1000
    assert report["vle_payouts"] == 800
    assert report["government_fees"] == 200
    assert report["admin_commission"] == 200
    assert report["total_paid"] == report["vle_payouts"] + report["admin_commission"]
    assert [(v["vle_id"], v["earned"]) for v in report["by_vle"]] == [
        (VLE_ID, 400),
        (OTHER_VLE_ID, 400),
    ]


@pytest.mark.unit
def test_earnings_report_empty() -> None:
    report = earnings_report([])
    assert report["paid_out_tasks"] == 0
    assert report["by_vle"] == []

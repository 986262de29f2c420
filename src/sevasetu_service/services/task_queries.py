"""Read-path projections over task lists. Pure functions, no storage access."""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING, Any

from sevasetu_service.domain import VLE_WORKING_STATES, ComplaintStatus, TaskStatus
from sevasetu_service.services.payout_engine import PayoutEngine

if TYPE_CHECKING:
    from collections.abc import Iterable


def vle_invitations(tasks: Iterable[dict[str, Any]], vle_id: str) -> list[dict[str, Any]]:
    """Tasks waiting for this VLE to accept or reject."""
    return [
        task
        for task in tasks
        if task["assigned_vle_id"] == vle_id
        and task["status"] == TaskStatus.PENDING_VLE_ACCEPTANCE
    ]


def vle_active_tasks(tasks: Iterable[dict[str, Any]], vle_id: str) -> list[dict[str, Any]]:
    """Tasks this VLE has accepted and is still working on."""
    return [
        task
        for task in tasks
        if task["assigned_vle_id"] == vle_id and task["status"] in VLE_WORKING_STATES
    ]


def tasks_in_status(tasks: Iterable[dict[str, Any]], status: TaskStatus) -> list[dict[str, Any]]:
    return [task for task in tasks if task["status"] == status]


def open_complaints(tasks: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Complaints still waiting for an admin response, oldest first."""
    complaints = [
        {
            "task_id": task["task_id"],
            "service": task["service"],
            "customer": task["customer"],
            "creator_id": task["creator_id"],
            "text": task["complaint"]["text"],
            "date": task["complaint"]["date"],
            "documents": task["complaint"]["documents"],
        }
        for task in tasks
        if task["complaint"] is not None and task["complaint"]["status"] == ComplaintStatus.OPEN
    ]
    return sorted(complaints, key=lambda c: c["date"])


def earnings_report(tasks: Iterable[dict[str, Any]]) -> dict[str, Any]:
    """
    Totals over paid-out tasks.

    Complaints raised after payout do not change what was paid, so tasks
    whose complaint was raised from ``Paid Out`` are counted as well.
    """
    total_paid = 0
    vle_payouts = 0
    government_fees = 0
    admin_commission = 0
    task_count = 0
    per_vle: dict[str, dict[str, Any]] = defaultdict(
        lambda: {"vle_name": None, "tasks": 0, "earned": 0}
    )

    for task in tasks:
        paid_out = task["status"] == TaskStatus.PAID_OUT or (
            task["status"] == TaskStatus.COMPLAINT_RAISED
            and task["complaint"] is not None
            and task["complaint"].get("previous_status") == TaskStatus.PAID_OUT
        )
        if not paid_out:
            continue
        split = PayoutEngine.compute_split(task)
        task_count += 1
        total_paid += split.total_paid
        vle_payouts += split.amount_to_vle
        government_fees += split.government_fee
        admin_commission += split.admin_commission

        entry = per_vle[task["assigned_vle_id"]]
        entry["vle_name"] = task["assigned_vle_name"]
        entry["tasks"] += 1
        entry["earned"] += split.amount_to_vle

    return {
        "paid_out_tasks": task_count,
        "total_paid": total_paid,
        "vle_payouts": vle_payouts,
        "government_fees": government_fees,
        "admin_commission": admin_commission,
        "by_vle": [{"vle_id": vle_id, **values} for vle_id, values in sorted(per_vle.items())],
    }

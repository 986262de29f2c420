"""Commission splits and the ledger moves made at charge and payout time."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from service_commons.exceptions import ServiceError

from sevasetu_service.domain import Role

if TYPE_CHECKING:
    import sqlite3

    from sevasetu_service.services.ledger import Ledger


def charge_reference(task_id: str) -> str:
    return f"task-charge:{task_id}"


def payout_reference(task_id: str) -> str:
    return f"task-payout:{task_id}"


def camp_payout_reference(camp_id: str, vle_id: str) -> str:
    return f"camp-payout:{camp_id}:{vle_id}"


@dataclass(frozen=True)
class PayoutSplit:
    """
    Three-way split of a task's value.

    The VLE receives its commission plus the government fee it fronted.
    The admin commission is what remains; it is reported, never booked.
    """

    total_paid: int
    vle_commission: int
    government_fee: int

    @property
    def amount_to_vle(self) -> int:
        return self.vle_commission + self.government_fee

    @property
    def admin_commission(self) -> int:
        return self.total_paid - self.vle_commission - self.government_fee

    def to_dict(self) -> dict[str, int]:
        return {
            "total_paid": self.total_paid,
            "vle_commission": self.vle_commission,
            "government_fee": self.government_fee,
            "amount_to_vle": self.amount_to_vle,
            "admin_commission": self.admin_commission,
        }


class PayoutEngine:
    """
    Computes charges and splits and applies them to the ledger.

    Every method that moves money takes the connection of the transaction
    that also writes the owning task or camp row.
    """

    def __init__(self, ledger: Ledger) -> None:
        self._ledger = ledger

    @staticmethod
    def creation_charge(service: dict[str, Any], creator_role: Role) -> int:
        """
        Up-front price of a fixed-rate service for the given creator.

        Customers pay the customer rate; VLEs creating a lead pay the VLE rate.
        """
        if service["is_variable"]:
            msg = "Variable-rate services have no creation charge"
            raise ValueError(msg)
        match creator_role:
            case Role.CUSTOMER:
                return int(service["customer_rate"])
            case Role.VLE:
                return int(service["vle_rate"])
            case _:
                msg = f"Role {creator_role} cannot create tasks"
                raise ValueError(msg)

    @staticmethod
    def compute_split(task: dict[str, Any]) -> PayoutSplit:
        """Split a task using the rates captured when it was created."""
        total_paid = task["total_paid"]
        if total_paid is None:
            raise ServiceError("INVALID_AMOUNT", "Task has no price set", 400, {})
        return PayoutSplit(
            total_paid=int(total_paid),
            vle_commission=int(task["vle_rate"]),
            government_fee=int(task["government_fee"]),
        )

    def charge_task(
        self,
        conn: sqlite3.Connection,
        payer_id: str,
        task_id: str,
        amount: int,
    ) -> dict[str, object]:
        """Debit the payer for a task. Raises InsufficientFundsError."""
        return self._ledger.debit(conn, payer_id, amount, charge_reference(task_id))

    def pay_out_task(self, conn: sqlite3.Connection, task: dict[str, Any]) -> PayoutSplit:
        """Credit the assigned VLE for a completed task, once per task."""
        split = self.compute_split(task)
        vle_id = task["assigned_vle_id"]
        if vle_id is None:
            msg = "Cannot pay out a task without an assigned VLE"
            raise ValueError(msg)
        if split.amount_to_vle > 0:
            reference = payout_reference(task["task_id"])
            self._ledger.credit(conn, vle_id, split.amount_to_vle, reference)
        return split

    def pay_out_camp(
        self,
        conn: sqlite3.Connection,
        camp_id: str,
        payouts: dict[str, int],
    ) -> int:
        """Credit each VLE its entered camp amount. Returns the total credited."""
        total = 0
        for vle_id, amount in payouts.items():
            if amount == 0:
                continue
            self._ledger.credit(conn, vle_id, amount, camp_payout_reference(camp_id, vle_id))
            total += amount
        return total

"""Wallet reads and the top-up payment request flow."""

from __future__ import annotations

import sqlite3
import uuid
from typing import TYPE_CHECKING, Any

from service_commons.exceptions import ServiceError

from sevasetu_service.core.exceptions import InvalidTransitionError, PermissionDeniedError
from sevasetu_service.domain import PaymentRequestStatus, Role, utc_now_iso
from sevasetu_service.logging import get_logger

if TYPE_CHECKING:
    from sevasetu_service.domain import Actor
    from sevasetu_service.services.database import Database
    from sevasetu_service.services.ledger import Ledger
    from sevasetu_service.services.notification_dispatcher import NotificationDispatcher

_SCHEMA = """
CREATE TABLE IF NOT EXISTS payment_requests (
    request_id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    user_role TEXT NOT NULL,
    user_name TEXT NOT NULL,
    amount INTEGER NOT NULL CHECK (amount > 0),
    status TEXT NOT NULL,
    date TEXT NOT NULL,
    approved_by TEXT,
    approved_at TEXT
);

CREATE INDEX IF NOT EXISTS ix_payment_requests_status ON payment_requests(status);
"""

_COLUMNS = (
    "request_id",
    "user_id",
    "user_role",
    "user_name",
    "amount",
    "status",
    "date",
    "approved_by",
    "approved_at",
)


def payment_request_reference(request_id: str) -> str:
    return f"payment-request:{request_id}"


class WalletManager:
    """
    Wallet balances and payment requests.

    A payment request is resolved exactly once. Approval credits the
    requester's wallet in the same transaction that flips the status.
    """

    def __init__(
        self,
        database: Database,
        ledger: Ledger,
        dispatcher: NotificationDispatcher,
    ) -> None:
        self._database = database
        self._ledger = ledger
        self._dispatcher = dispatcher
        self._logger = get_logger(__name__)
        database.ensure_schema(_SCHEMA)

    @staticmethod
    def _row_to_request(row: sqlite3.Row) -> dict[str, Any]:
        return {column: row[column] for column in _COLUMNS}

    def _load(self, conn: sqlite3.Connection, request_id: str) -> dict[str, Any]:
        query = f"SELECT {', '.join(_COLUMNS)} FROM payment_requests"  # nosec B608
        row = conn.execute(query + " WHERE request_id = ?", (request_id,)).fetchone()
        if row is None:
            raise ServiceError("REQUEST_NOT_FOUND", "Payment request not found", 404, {})
        return self._row_to_request(row)

    # ------------------------------------------------------------------
    # Wallets
    # ------------------------------------------------------------------

    def get_wallet(self, actor: Actor, user_id: str) -> dict[str, Any]:
        """Balance and entry history. Admins or the wallet owner only."""
        if not actor.is_admin and actor.user_id != user_id:
            raise PermissionDeniedError("You can only view your own wallet")
        account = self._ledger.get_account(user_id)
        if account is None:
            raise ServiceError("ACCOUNT_NOT_FOUND", "Wallet account not found", 404, {})
        return {
            "user_id": user_id,
            "balance": account["balance"],
            "entries": self._ledger.get_entries(user_id),
        }

    # ------------------------------------------------------------------
    # Payment requests
    # ------------------------------------------------------------------

    async def create_request(self, actor: Actor, amount: int) -> dict[str, Any]:
        """A customer or VLE asks an admin to top up their wallet."""
        if actor.role not in (Role.CUSTOMER, Role.VLE):
            raise PermissionDeniedError("Only customers and VLEs can request wallet top-ups")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ServiceError("INVALID_AMOUNT", "Amount must be a positive integer", 400, {})

        request = {
            "request_id": f"pr-{uuid.uuid4()}",
            "user_id": actor.user_id,
            "user_role": actor.role.value,
            "user_name": actor.name,
            "amount": amount,
            "status": PaymentRequestStatus.PENDING.value,
            "date": utc_now_iso(),
            "approved_by": None,
            "approved_at": None,
        }
        with self._database.transaction() as conn:
            conn.execute(
                f"INSERT INTO payment_requests ({', '.join(_COLUMNS)}) "  # nosec B608
                f"VALUES ({', '.join('?' for _ in _COLUMNS)})",
                tuple(request[column] for column in _COLUMNS),
            )

        self._logger.info(
            "Payment request created",
            extra={"request_id": request["request_id"], "user_id": actor.user_id, "amount": amount},
        )
        await self._dispatcher.notify_admins(
            "New Balance Request",
            f"{actor.name} has requested to add ₹{amount:.2f} to their wallet.",
        )
        return request

    def _resolve(
        self,
        conn: sqlite3.Connection,
        actor: Actor,
        request_id: str,
        new_status: PaymentRequestStatus,
    ) -> dict[str, Any]:
        request = self._load(conn, request_id)
        if request["status"] != PaymentRequestStatus.PENDING:
            raise InvalidTransitionError(
                f"Payment request is already {request['status']}",
                {"status": request["status"]},
            )
        resolved_at = utc_now_iso()
        cursor = conn.execute(
            "UPDATE payment_requests SET status = ?, approved_by = ?, approved_at = ? "
            "WHERE request_id = ? AND status = ?",
            (
                new_status.value,
                actor.user_id,
                resolved_at,
                request_id,
                PaymentRequestStatus.PENDING.value,
            ),
        )
        if cursor.rowcount == 0:
            raise InvalidTransitionError("Payment request was resolved concurrently")
        return {
            **request,
            "status": new_status.value,
            "approved_by": actor.user_id,
            "approved_at": resolved_at,
        }

    async def approve_request(self, actor: Actor, request_id: str) -> dict[str, Any]:
        """Approve a pending request and credit the requester's wallet."""
        if not actor.is_admin:
            raise PermissionDeniedError("Only admins can approve payment requests")

        with self._database.transaction() as conn:
            request = self._resolve(conn, actor, request_id, PaymentRequestStatus.APPROVED)
            self._ledger.credit(
                conn,
                request["user_id"],
                request["amount"],
                payment_request_reference(request_id),
            )

        self._logger.info(
            "Payment request approved",
            extra={
                "request_id": request_id,
                "actor_id": actor.user_id,
                "amount": request["amount"],
            },
        )
        await self._dispatcher.notify(
            request["user_id"],
            "Wallet Balance Updated",
            f"An admin has approved your request and added ₹{request['amount']:.2f} "
            "to your wallet.",
        )
        return request

    async def reject_request(self, actor: Actor, request_id: str) -> dict[str, Any]:
        """Reject a pending request. No money moves."""
        if not actor.is_admin:
            raise PermissionDeniedError("Only admins can reject payment requests")

        with self._database.transaction() as conn:
            request = self._resolve(conn, actor, request_id, PaymentRequestStatus.REJECTED)

        self._logger.info(
            "Payment request rejected",
            extra={"request_id": request_id, "actor_id": actor.user_id},
        )
        await self._dispatcher.notify(
            request["user_id"],
            "Balance Request Rejected",
            f"Your request to add ₹{request['amount']:.2f} has been rejected by an admin.",
        )
        return request

    def get_request(self, actor: Actor, request_id: str) -> dict[str, Any]:
        with self._database.reader() as conn:
            request = self._load(conn, request_id)
        if not actor.is_admin and request["user_id"] != actor.user_id:
            raise PermissionDeniedError("You can only view your own payment requests")
        return request

    def list_requests(self, actor: Actor, status: str | None) -> list[dict[str, Any]]:
        """Admins see every request; other users see their own."""
        if status is not None and status not in {s.value for s in PaymentRequestStatus}:
            raise ServiceError("INVALID_PAYLOAD", f"Unknown status: {status}", 400, {})

        query = f"SELECT {', '.join(_COLUMNS)} FROM payment_requests"  # nosec B608
        clauses: list[str] = []
        params: list[object] = []
        if not actor.is_admin:
            clauses.append("user_id = ?")
            params.append(actor.user_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(status)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY date DESC, request_id"

        with self._database.reader() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_request(row) for row in rows]

"""Service camps: VLE invitations and the one-time camp payout."""

from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from service_commons.exceptions import ServiceError

from sevasetu_service.core.exceptions import InvalidTransitionError, PermissionDeniedError
from sevasetu_service.domain import (
    CampStatus,
    InvitationStatus,
    Role,
    VleStatus,
    utc_now_iso,
)
from sevasetu_service.logging import get_logger
from sevasetu_service.services.database import decode_json, encode_json
from sevasetu_service.services.directory_store import actor_from_user

if TYPE_CHECKING:
    from sevasetu_service.domain import Actor
    from sevasetu_service.services.database import Database
    from sevasetu_service.services.directory_store import DirectoryStore
    from sevasetu_service.services.notification_dispatcher import NotificationDispatcher
    from sevasetu_service.services.payout_engine import PayoutEngine

_SCHEMA = """
CREATE TABLE IF NOT EXISTS camps (
    camp_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    location TEXT NOT NULL,
    date TEXT NOT NULL,
    status TEXT NOT NULL,
    services TEXT NOT NULL DEFAULT '[]',
    admin_earnings INTEGER,
    created_by TEXT NOT NULL,
    created_at TEXT NOT NULL,
    paid_out_at TEXT
);

CREATE TABLE IF NOT EXISTS camp_vles (
    camp_id TEXT NOT NULL REFERENCES camps(camp_id),
    vle_id TEXT NOT NULL,
    status TEXT NOT NULL,
    invited_by TEXT NOT NULL,
    PRIMARY KEY (camp_id, vle_id)
);

CREATE TABLE IF NOT EXISTS camp_payouts (
    camp_id TEXT NOT NULL REFERENCES camps(camp_id),
    vle_id TEXT NOT NULL,
    vle_name TEXT NOT NULL,
    amount INTEGER NOT NULL CHECK (amount >= 0),
    paid_at TEXT NOT NULL,
    paid_by TEXT NOT NULL,
    PRIMARY KEY (camp_id, vle_id)
);
"""

_CAMP_COLUMNS = (
    "camp_id",
    "name",
    "location",
    "date",
    "status",
    "services",
    "admin_earnings",
    "created_by",
    "created_at",
    "paid_out_at",
)

# Camps can still change hands (invites, responses, payout) in these states.
_OPEN_CAMP_STATES = frozenset({CampStatus.UPCOMING, CampStatus.COMPLETED})

CAMPS_LINK = "/dashboard/camps"


def _is_non_negative_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


class CampManager:
    """
    Manages camps from creation to payout.

    Each invited VLE has its own pending/accepted/rejected status. The
    payout credits accepted VLEs only, and runs once per camp: the camp
    flips to ``Paid Out`` in the same transaction as the credits.
    """

    def __init__(
        self,
        database: Database,
        directory: DirectoryStore,
        payout_engine: PayoutEngine,
        dispatcher: NotificationDispatcher,
    ) -> None:
        self._database = database
        self._directory = directory
        self._payout_engine = payout_engine
        self._dispatcher = dispatcher
        self._logger = get_logger(__name__)
        database.ensure_schema(_SCHEMA)

    # ------------------------------------------------------------------
    # Private helper methods
    # ------------------------------------------------------------------

    def _load(self, conn: sqlite3.Connection, camp_id: str) -> dict[str, Any]:
        row = conn.execute(
            f"SELECT {', '.join(_CAMP_COLUMNS)} FROM camps WHERE camp_id = ?",  # nosec B608
            (camp_id,),
        ).fetchone()
        if row is None:
            raise ServiceError("CAMP_NOT_FOUND", "Camp not found", 404, {})
        camp = {column: row[column] for column in _CAMP_COLUMNS}
        camp["services"] = decode_json(camp["services"]) or []
        camp["assigned_vles"] = [
            {"vle_id": r["vle_id"], "status": r["status"], "invited_by": r["invited_by"]}
            for r in conn.execute(
                "SELECT vle_id, status, invited_by FROM camp_vles WHERE camp_id = ? ORDER BY rowid",
                (camp_id,),
            ).fetchall()
        ]
        camp["payouts"] = [
            {
                "vle_id": r["vle_id"],
                "vle_name": r["vle_name"],
                "amount": r["amount"],
                "paid_at": r["paid_at"],
                "paid_by": r["paid_by"],
            }
            for r in conn.execute(
                "SELECT vle_id, vle_name, amount, paid_at, paid_by FROM camp_payouts "
                "WHERE camp_id = ? ORDER BY rowid",
                (camp_id,),
            ).fetchall()
        ]
        return camp

    def _get(self, camp_id: str) -> dict[str, Any]:
        with self._database.reader() as conn:
            return self._load(conn, camp_id)

    @staticmethod
    def _require_open(camp: dict[str, Any], event: str) -> None:
        if camp["status"] not in _OPEN_CAMP_STATES:
            raise InvalidTransitionError(
                f"Cannot {event} a camp in '{camp['status']}' status",
                {"status": camp["status"]},
            )

    def _invite(
        self,
        conn: sqlite3.Connection,
        actor: Actor,
        camp: dict[str, Any],
        vle_ids: list[str],
    ) -> list[str]:
        """Insert invitations for VLEs not yet invited. Returns the new invitees."""
        if not isinstance(vle_ids, list) or not all(isinstance(v, str) for v in vle_ids):
            raise ServiceError("INVALID_PAYLOAD", "vle_ids must be a list of strings", 400, {})

        already = {entry["vle_id"] for entry in camp["assigned_vles"]}
        invited: list[str] = []
        for vle_id in dict.fromkeys(vle_ids):
            if vle_id in already:
                continue
            user = self._directory.get_user(vle_id, conn)
            if user is None:
                raise ServiceError("USER_NOT_FOUND", f"VLE {vle_id} not found", 404, {})
            vle = actor_from_user(user)
            if vle.role != Role.VLE or vle.vle is None or vle.vle.status != VleStatus.APPROVED:
                raise ServiceError(
                    "VLE_NOT_ELIGIBLE", "Only approved VLEs can be invited", 409, {"vle_id": vle_id}
                )
            conn.execute(
                "INSERT INTO camp_vles (camp_id, vle_id, status, invited_by) VALUES (?, ?, ?, ?)",
                (camp["camp_id"], vle_id, InvitationStatus.PENDING.value, actor.user_id),
            )
            invited.append(vle_id)
        return invited

    async def _notify_invited(self, camp_name: str, vle_ids: list[str]) -> None:
        for vle_id in vle_ids:
            await self._dispatcher.notify(
                vle_id,
                "New Camp Invitation",
                f'You have been invited to join the camp "{camp_name}".',
                CAMPS_LINK,
            )

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    async def create_camp(
        self,
        actor: Actor,
        name: str,
        location: str,
        date: str,
        services: list[str],
        vle_ids: list[str],
    ) -> dict[str, Any]:
        """Create an upcoming camp and invite the given VLEs."""
        if not actor.is_admin:
            raise PermissionDeniedError("Only admins can create camps")
        for field_name, value in (("name", name), ("location", location), ("date", date)):
            if not isinstance(value, str) or not value.strip():
                raise ServiceError(
                    "INVALID_PAYLOAD", f"{field_name} must be a non-empty string", 400, {}
                )
        try:
            datetime.fromisoformat(date.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ServiceError("INVALID_PAYLOAD", "date must be an ISO 8601 date", 400, {}) from exc
        if not isinstance(services, list) or not all(isinstance(s, str) for s in services):
            raise ServiceError("INVALID_PAYLOAD", "services must be a list of strings", 400, {})

        camp_id = f"c-{uuid.uuid4()}"
        with self._database.transaction() as conn:
            conn.execute(
                "INSERT INTO camps (camp_id, name, location, date, status, services, "
                "admin_earnings, created_by, created_at, paid_out_at) "
                "VALUES (?, ?, ?, ?, ?, ?, NULL, ?, ?, NULL)",
                (
                    camp_id,
                    name.strip(),
                    location.strip(),
                    date,
                    CampStatus.UPCOMING.value,
                    encode_json(services),
                    actor.user_id,
                    utc_now_iso(),
                ),
            )
            camp = self._load(conn, camp_id)
            invited = self._invite(conn, actor, camp, vle_ids)

        self._logger.info(
            "Camp created",
            extra={"camp_id": camp_id, "actor_id": actor.user_id, "invited": len(invited)},
        )
        await self._notify_invited(camp["name"], invited)
        return self._get(camp_id)

    async def invite_vles(self, actor: Actor, camp_id: str, vle_ids: list[str]) -> dict[str, Any]:
        """Invite more VLEs to an open camp. Existing invitations are left untouched."""
        if not actor.is_admin:
            raise PermissionDeniedError("Only admins can invite VLEs to camps")

        with self._database.transaction() as conn:
            camp = self._load(conn, camp_id)
            self._require_open(camp, "invite VLEs to")
            invited = self._invite(conn, actor, camp, vle_ids)

        await self._notify_invited(camp["name"], invited)
        return self._get(camp_id)

    def update_status(self, actor: Actor, camp_id: str, status: str) -> dict[str, Any]:
        """Mark an upcoming camp as completed or cancelled."""
        if not actor.is_admin:
            raise PermissionDeniedError("Only admins can change camp status")

        allowed = {CampStatus.COMPLETED.value, CampStatus.CANCELLED.value}
        with self._database.transaction() as conn:
            camp = self._load(conn, camp_id)
            if camp["status"] != CampStatus.UPCOMING:
                raise InvalidTransitionError(
                    f"Cannot change a camp in '{camp['status']}' status",
                    {"status": camp["status"]},
                )
            if status not in allowed:
                raise ServiceError(
                    "INVALID_PAYLOAD", f"status must be one of {sorted(allowed)}", 400, {}
                )
            conn.execute(
                "UPDATE camps SET status = ? WHERE camp_id = ?",
                (status, camp_id),
            )

        self._logger.info(
            "Camp status changed",
            extra={"camp_id": camp_id, "from_status": camp["status"], "to_status": status},
        )
        return self._get(camp_id)

    async def process_payout(
        self,
        actor: Actor,
        camp_id: str,
        payouts: dict[str, int],
        admin_earnings: int,
    ) -> dict[str, Any]:
        """
        Credit each accepted VLE its entered amount and close the camp.

        Raises:
            InvalidTransitionError: the camp is already paid out or cancelled.
            ServiceError: VLE_NOT_ELIGIBLE for a VLE that did not accept,
                INVALID_AMOUNT for negative or non-integer amounts.
        """
        if not actor.is_admin:
            raise PermissionDeniedError("Only admins can process camp payouts")

        with self._database.transaction() as conn:
            camp = self._load(conn, camp_id)
            self._require_open(camp, "pay out")

            if not isinstance(payouts, dict) or len(payouts) == 0:
                raise ServiceError(
                    "INVALID_PAYLOAD", "payouts must name at least one VLE", 400, {}
                )
            for amount in [*payouts.values(), admin_earnings]:
                if not _is_non_negative_int(amount):
                    raise ServiceError(
                        "INVALID_AMOUNT", "Amounts must be non-negative integers", 400, {}
                    )

            accepted = {
                entry["vle_id"]
                for entry in camp["assigned_vles"]
                if entry["status"] == InvitationStatus.ACCEPTED
            }
            for vle_id in payouts:
                if vle_id not in accepted:
                    raise ServiceError(
                        "VLE_NOT_ELIGIBLE",
                        "Only VLEs who accepted the invitation can be paid",
                        409,
                        {"vle_id": vle_id},
                    )

            paid_at = utc_now_iso()
            cursor = conn.execute(
                "UPDATE camps SET status = ?, admin_earnings = ?, paid_out_at = ? "
                "WHERE camp_id = ? AND status = ?",
                (CampStatus.PAID_OUT.value, admin_earnings, paid_at, camp_id, camp["status"]),
            )
            if cursor.rowcount == 0:
                raise InvalidTransitionError("Camp was paid out concurrently")

            for vle_id, amount in payouts.items():
                user = self._directory.get_user(vle_id, conn)
                conn.execute(
                    "INSERT INTO camp_payouts "
                    "(camp_id, vle_id, vle_name, amount, paid_at, paid_by) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        camp_id,
                        vle_id,
                        user["name"] if user else vle_id,
                        amount,
                        paid_at,
                        actor.user_id,
                    ),
                )
            total = self._payout_engine.pay_out_camp(conn, camp_id, payouts)

        self._logger.info(
            "Camp paid out",
            extra={
                "camp_id": camp_id,
                "actor_id": actor.user_id,
                "total_paid": total,
                "admin_earnings": admin_earnings,
            },
        )
        for vle_id, amount in payouts.items():
            await self._dispatcher.notify(
                vle_id,
                "Camp Payout Received",
                f'You have received ₹{amount:.2f} for the camp "{camp["name"]}".',
                CAMPS_LINK,
            )
        return self._get(camp_id)

    # ------------------------------------------------------------------
    # VLE operations
    # ------------------------------------------------------------------

    async def respond_to_invitation(
        self,
        actor: Actor,
        camp_id: str,
        accept: bool,
    ) -> dict[str, Any]:
        """An invited VLE accepts or rejects its own pending invitation."""
        if actor.role != Role.VLE:
            raise PermissionDeniedError("Only VLEs can respond to camp invitations")

        new_status = InvitationStatus.ACCEPTED if accept else InvitationStatus.REJECTED
        with self._database.transaction() as conn:
            camp = self._load(conn, camp_id)
            self._require_open(camp, "respond to an invitation for")
            invitation = next(
                (e for e in camp["assigned_vles"] if e["vle_id"] == actor.user_id), None
            )
            if invitation is None:
                raise PermissionDeniedError("You were not invited to this camp")
            if invitation["status"] != InvitationStatus.PENDING:
                raise InvalidTransitionError(
                    f"Invitation is already {invitation['status']}",
                    {"status": invitation["status"]},
                )
            if not isinstance(accept, bool):
                raise ServiceError("INVALID_PAYLOAD", "accept must be a boolean", 400, {})
            conn.execute(
                "UPDATE camp_vles SET status = ? WHERE camp_id = ? AND vle_id = ? AND status = ?",
                (new_status.value, camp_id, actor.user_id, InvitationStatus.PENDING.value),
            )

        self._logger.info(
            "Camp invitation answered",
            extra={"camp_id": camp_id, "vle_id": actor.user_id, "to_status": new_status.value},
        )
        await self._dispatcher.notify_admins(
            f"Camp Invitation {new_status.value}",
            f'{actor.name} has {new_status.value} the invitation for the camp "{camp["name"]}".',
        )
        return self._get(camp_id)

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def get_camp(self, actor: Actor, camp_id: str) -> dict[str, Any]:
        camp = self._get(camp_id)
        if actor.role == Role.VLE and not any(
            entry["vle_id"] == actor.user_id for entry in camp["assigned_vles"]
        ):
            raise PermissionDeniedError("You were not invited to this camp")
        return camp

    def list_camps(self, actor: Actor) -> list[dict[str, Any]]:
        """VLEs see camps they were invited to; everyone else sees every camp."""
        query = "SELECT camp_id FROM camps"
        params: list[object] = []
        if actor.role == Role.VLE:
            query += " WHERE camp_id IN (SELECT camp_id FROM camp_vles WHERE vle_id = ?)"
            params.append(actor.user_id)
        query += " ORDER BY date, camp_id"
        with self._database.reader() as conn:
            camp_ids = [row[0] for row in conn.execute(query, params).fetchall()]
            return [self._load(conn, camp_id) for camp_id in camp_ids]

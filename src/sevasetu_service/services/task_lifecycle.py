"""Task lifecycle state machine: every transition, its guards and side effects."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from service_commons.exceptions import ServiceError

from sevasetu_service.core.exceptions import (
    ConcurrentModificationError,
    InvalidTransitionError,
    PermissionDeniedError,
)
from sevasetu_service.domain import (
    DELIVERED_STATES,
    VLE_WORKING_STATES,
    Actor,
    ComplaintStatus,
    Role,
    TaskStatus,
    VleStatus,
    utc_now_iso,
)
from sevasetu_service.logging import get_logger
from sevasetu_service.services.directory_store import actor_from_user

if TYPE_CHECKING:
    import sqlite3
    from collections.abc import Collection

    from sevasetu_service.services.blob_store import BlobStore, FileUpload
    from sevasetu_service.services.database import Database
    from sevasetu_service.services.directory_store import DirectoryStore
    from sevasetu_service.services.notification_dispatcher import NotificationDispatcher
    from sevasetu_service.services.payout_engine import PayoutEngine
    from sevasetu_service.services.task_store import TaskStore

_MAX_TEXT_LENGTH = 5000
_MAX_PAGE_SIZE = 200


def _is_positive_int(value: object) -> bool:
    """Check if value is a positive integer (not float, not bool)."""
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _money(amount: int) -> str:
    return f"₹{amount:.2f}"


def short_id(task_id: str) -> str:
    """Human-facing task reference used in notifications."""
    return task_id[-6:].upper()


def task_link(task_id: str) -> str:
    return f"/dashboard/task/{task_id}"


def _require_text(value: object, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ServiceError("INVALID_PAYLOAD", f"{field_name} must be a non-empty string", 400, {})
    if len(value) > _MAX_TEXT_LENGTH:
        raise ServiceError(
            "INVALID_PAYLOAD",
            f"{field_name} must not exceed {_MAX_TEXT_LENGTH} characters",
            400,
            {},
        )
    return value.strip()


class TaskLifecycle:
    """
    Validates and applies every task transition.

    Each transition reads the task, checks its guards and writes the new
    status, the history entry and any ledger movement inside one
    ``Database.transaction()``. Notifications go out only after the
    transaction has committed.

    Error precedence inside a transition:
    1. FORBIDDEN: actor role cannot trigger the event
    2. TASK_NOT_FOUND
    3. INVALID_TRANSITION: event not legal from the current status
    4. FORBIDDEN: actor is not the task's creator / assigned VLE
    5. payload errors (INVALID_PAYLOAD, INVALID_AMOUNT, DOCUMENTS_REQUIRED, ...)
    6. INSUFFICIENT_FUNDS

    Accept and reject check status and assignment together and report
    TASK_NO_LONGER_AVAILABLE, which is what a VLE losing a race sees.
    """

    def __init__(
        self,
        database: Database,
        store: TaskStore,
        directory: DirectoryStore,
        payout_engine: PayoutEngine,
        blob_store: BlobStore,
        dispatcher: NotificationDispatcher,
    ) -> None:
        self._database = database
        self._store = store
        self._directory = directory
        self._payout_engine = payout_engine
        self._blob_store = blob_store
        self._dispatcher = dispatcher
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Private helper methods
    # ------------------------------------------------------------------

    def _load(self, conn: sqlite3.Connection, task_id: str) -> dict[str, Any]:
        task = self._store.get_task(task_id, conn)
        if task is None:
            raise ServiceError("TASK_NOT_FOUND", "Task not found", 404, {})
        return task

    @staticmethod
    def _require_status(
        task: dict[str, Any],
        allowed: Collection[TaskStatus],
        event: str,
    ) -> None:
        if task["status"] not in allowed:
            raise InvalidTransitionError(
                f"Cannot {event} a task in '{task['status']}' status",
                {"status": task["status"], "allowed": sorted(str(s) for s in allowed)},
            )

    @staticmethod
    def _require_creator(task: dict[str, Any], actor: Actor, message: str) -> None:
        if task["creator_id"] != actor.user_id:
            raise PermissionDeniedError(message)

    @staticmethod
    def _require_assigned_vle(task: dict[str, Any], actor: Actor) -> None:
        if task["assigned_vle_id"] != actor.user_id:
            raise PermissionDeniedError("Only the assigned VLE can act on this task")

    @staticmethod
    def _require_role(actor: Actor, roles: Collection[Role], message: str) -> None:
        if actor.role not in roles:
            raise PermissionDeniedError(message)

    def _commit(
        self,
        conn: sqlite3.Connection,
        task: dict[str, Any],
        actor: Actor,
        updates: dict[str, Any],
        action: str,
        details: str,
    ) -> None:
        """
        Write a transition: compare-and-set on the status read in this
        transaction, then append exactly one history entry.
        """
        now = utc_now_iso()
        rowcount = self._store.update_task(
            conn,
            task["task_id"],
            {**updates, "updated_at": now},
            expected_status=task["status"],
        )
        if rowcount == 0:
            raise ConcurrentModificationError
        self._store.append_history(
            conn,
            task["task_id"],
            {
                "timestamp": now,
                "actor_id": actor.user_id,
                "actor_role": actor.history_role,
                "action": action,
                "details": details,
            },
        )

    def _log_transition(
        self,
        task: dict[str, Any],
        actor: Actor,
        action: str,
        to_status: str,
    ) -> None:
        self._logger.info(
            "Task transition committed",
            extra={
                "task_id": task["task_id"],
                "actor_id": actor.user_id,
                "action": action,
                "from_status": task["status"],
                "to_status": to_status,
            },
        )

    def _fetch(self, task_id: str) -> dict[str, Any]:
        task = self._store.get_task(task_id)
        if task is None:
            msg = f"Task {task_id} not found after update"
            raise RuntimeError(msg)
        return self._task_to_response(task)

    @staticmethod
    def _task_to_response(row: dict[str, Any]) -> dict[str, Any]:
        """Convert a stored task to its response dict."""
        response = {
            "task_id": row["task_id"],
            "status": row["status"],
            "service": row["service"],
            "service_id": row["service_id"],
            "creator_id": row["creator_id"],
            "creator_role": row["creator_role"],
            "customer": row["customer"],
            "customer_contact": row["customer_contact"],
            "assigned_vle_id": row["assigned_vle_id"],
            "assigned_vle_name": row["assigned_vle_name"],
            "total_paid": row["total_paid"],
            "customer_rate": row["customer_rate"],
            "vle_rate": row["vle_rate"],
            "government_fee": row["government_fee"],
            "documents": row["documents"],
            "acknowledgement_number": row["acknowledgement_number"],
            "final_certificate": row["final_certificate"],
            "complaint": row["complaint"],
            "feedback": row["feedback"],
            "date": row["created_at"],
            "updated_at": row["updated_at"],
        }
        if "history" in row:
            response["history"] = row["history"]
        return response

    def _store_files(self, task_id: str, files: list[FileUpload]) -> list[dict[str, str]]:
        return self._blob_store.store_all(task_id, files)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_task(
        self,
        actor: Actor,
        service_id: str,
        customer: str,
        customer_contact: str | None,
        files: list[FileUpload],
    ) -> dict[str, Any]:
        """
        Create a task for a catalog service.

        Fixed-rate services start ``Unassigned`` and the creator's wallet
        is charged in the same transaction that writes the task.
        Variable-rate services start in ``Pending Price Approval`` and
        admins are asked to price them.
        """
        if not actor.can_create_tasks:
            raise PermissionDeniedError("Only customers and VLEs can create tasks")
        if actor.role == Role.VLE and not (actor.vle and actor.vle.status == VleStatus.APPROVED):
            raise PermissionDeniedError("Only approved VLEs can create leads")

        customer_name = _require_text(customer, "customer")
        if customer_contact is not None and not isinstance(customer_contact, str):
            raise ServiceError("INVALID_PAYLOAD", "customer_contact must be a string", 400, {})
        if not isinstance(service_id, str) or not service_id:
            raise ServiceError("INVALID_PAYLOAD", "service_id must be a non-empty string", 400, {})

        task_id = f"t-{uuid.uuid4()}"
        stored: list[dict[str, str]] = []

        try:
            with self._database.transaction() as conn:
                service = self._directory.get_service(service_id, conn)
                if service is None:
                    raise ServiceError("SERVICE_NOT_FOUND", "Service not found", 404, {})
                if not service["is_variable"] and service["customer_rate"] <= 0:
                    raise ServiceError(
                        "INVALID_SERVICE",
                        "This service is a category; select a specific service",
                        400,
                        {},
                    )
                if len(files) == 0:
                    raise ServiceError(
                        "DOCUMENTS_REQUIRED",
                        "At least one document must be uploaded",
                        400,
                        {},
                    )

                stored = self._store_files(task_id, files)

                charge = None
                if service["is_variable"]:
                    status = TaskStatus.PENDING_PRICE_APPROVAL
                else:
                    status = TaskStatus.UNASSIGNED
                    charge = self._payout_engine.creation_charge(service, actor.role)

                now = utc_now_iso()
                self._store.insert_task(
                    conn,
                    {
                        "task_id": task_id,
                        "status": status.value,
                        "service": service["name"],
                        "service_id": service["service_id"],
                        "creator_id": actor.user_id,
                        "creator_role": actor.role.value,
                        "customer": customer_name,
                        "customer_contact": customer_contact,
                        "assigned_vle_id": None,
                        "assigned_vle_name": None,
                        "total_paid": charge,
                        "customer_rate": service["customer_rate"],
                        "vle_rate": service["vle_rate"],
                        "government_fee": service["government_fee"],
                        "documents": stored,
                        "acknowledgement_number": None,
                        "final_certificate": None,
                        "complaint": None,
                        "feedback": None,
                        "rejected_vle_ids": [],
                        "created_at": now,
                        "updated_at": now,
                    },
                )
                self._store.append_history(
                    conn,
                    task_id,
                    {
                        "timestamp": now,
                        "actor_id": actor.user_id,
                        "actor_role": actor.history_role,
                        "action": "Task Created",
                        "details": f"Task created for service: {service['name']}.",
                    },
                )
                if charge is not None and charge > 0:
                    self._payout_engine.charge_task(conn, actor.user_id, task_id, charge)
        except Exception:
            self._blob_store.delete_all(stored)
            raise

        self._logger.info(
            "Task created",
            extra={
                "task_id": task_id,
                "actor_id": actor.user_id,
                "to_status": status.value,
                "charged": charge,
            },
        )

        if status == TaskStatus.PENDING_PRICE_APPROVAL:
            await self._dispatcher.notify_admins(
                "New Task Requires Pricing",
                f'Task {short_id(task_id)} for "{service["name"]}" needs a final price.',
                task_link(task_id),
            )
        else:
            await self._dispatcher.notify_admins(
                "New Task Created",
                f'Task {short_id(task_id)} for "{service["name"]}" is ready for assignment.',
                task_link(task_id),
            )

        return self._fetch(task_id)

    # ------------------------------------------------------------------
    # Pricing and payment
    # ------------------------------------------------------------------

    async def set_price(self, actor: Actor, task_id: str, price: int) -> dict[str, Any]:
        """Admin sets the final price of a variable-rate task."""
        if not actor.is_admin:
            raise PermissionDeniedError("Only admins can set prices")

        with self._database.transaction() as conn:
            task = self._load(conn, task_id)
            self._require_status(task, {TaskStatus.PENDING_PRICE_APPROVAL}, "set the price of")
            if not _is_positive_int(price):
                raise ServiceError("INVALID_AMOUNT", "Price must be a positive integer", 400, {})
            self._commit(
                conn,
                task,
                actor,
                {"status": TaskStatus.AWAITING_PAYMENT.value, "total_paid": price},
                "Final Price Set",
                f"Final price set to {_money(price)}.",
            )

        self._log_transition(task, actor, "Final Price Set", TaskStatus.AWAITING_PAYMENT)
        await self._dispatcher.notify(
            task["creator_id"],
            "Final Price Set for Your Task",
            f"The final price for task {short_id(task_id)} is {_money(price)}. "
            "Please complete the payment.",
            task_link(task_id),
        )
        return self._fetch(task_id)

    async def pay_for_task(self, actor: Actor, task_id: str) -> dict[str, Any]:
        """The creator pays the admin-set price from their wallet."""
        self._require_role(actor, (Role.CUSTOMER, Role.VLE), "Only the task creator can pay")

        with self._database.transaction() as conn:
            task = self._load(conn, task_id)
            self._require_status(task, {TaskStatus.AWAITING_PAYMENT}, "pay for")
            self._require_creator(task, actor, "Only the task creator can pay")
            amount = int(task["total_paid"])
            self._commit(
                conn,
                task,
                actor,
                {"status": TaskStatus.UNASSIGNED.value},
                "Payment Completed",
                f"Paid {_money(amount)}.",
            )
            self._payout_engine.charge_task(conn, actor.user_id, task_id, amount)

        self._log_transition(task, actor, "Payment Completed", TaskStatus.UNASSIGNED)
        await self._dispatcher.notify_admins(
            "Payment Received for Task",
            f"Task {short_id(task_id)} has been paid and is ready for assignment.",
            task_link(task_id),
        )
        return self._fetch(task_id)

    # ------------------------------------------------------------------
    # Assignment
    # ------------------------------------------------------------------

    async def assign_vle(self, actor: Actor, task_id: str, vle_id: str) -> dict[str, Any]:
        """
        Invite a VLE to work on an unassigned task.

        The VLE must be approved, available, offer the task's service, not
        be the task's creator, and not have rejected this task before.
        """
        if not actor.is_admin:
            raise PermissionDeniedError("Only admins can assign tasks")

        with self._database.transaction() as conn:
            task = self._load(conn, task_id)
            self._require_status(task, {TaskStatus.UNASSIGNED}, "assign")

            if not isinstance(vle_id, str) or not vle_id:
                raise ServiceError("INVALID_PAYLOAD", "vle_id must be a non-empty string", 400, {})
            user = self._directory.get_user(vle_id, conn)
            if user is None:
                raise ServiceError("USER_NOT_FOUND", "VLE not found", 404, {})
            vle = actor_from_user(user)

            reason: str | None = None
            if vle.role != Role.VLE:
                reason = "User is not a VLE"
            elif not vle.is_eligible_vle:
                reason = "VLE is not approved or not available"
            elif vle.user_id == task["creator_id"]:
                reason = "A VLE cannot be assigned to a task they created"
            elif vle.vle is not None and not vle.vle.offers(task["service_id"]):
                reason = "VLE does not offer this service"
            elif vle.user_id in task["rejected_vle_ids"]:
                reason = "VLE has already rejected this task"
            if reason is not None:
                raise ServiceError("VLE_NOT_ELIGIBLE", reason, 409, {"vle_id": vle_id})

            self._commit(
                conn,
                task,
                actor,
                {
                    "status": TaskStatus.PENDING_VLE_ACCEPTANCE.value,
                    "assigned_vle_id": vle.user_id,
                    "assigned_vle_name": vle.name,
                },
                "Task Assigned to VLE",
                f"Task assigned to VLE {vle.name} for acceptance.",
            )

        self._log_transition(
            task, actor, "Task Assigned to VLE", TaskStatus.PENDING_VLE_ACCEPTANCE
        )
        await self._dispatcher.notify(
            vle.user_id,
            "New Task Invitation",
            f"You have been invited to work on task: {short_id(task_id)}.",
            task_link(task_id),
        )
        return self._fetch(task_id)

    def _load_invitation(
        self,
        conn: sqlite3.Connection,
        task_id: str,
        actor: Actor,
    ) -> dict[str, Any]:
        task = self._load(conn, task_id)
        status = task["status"]
        if status == TaskStatus.PENDING_VLE_ACCEPTANCE:
            if task["assigned_vle_id"] == actor.user_id:
                return task
            raise ConcurrentModificationError
        if status == TaskStatus.ASSIGNED or (
            status == TaskStatus.UNASSIGNED and actor.user_id in task["rejected_vle_ids"]
        ):
            # the invitation was answered or withdrawn by someone else
            raise ConcurrentModificationError
        raise InvalidTransitionError(
            f"Task is not pending VLE acceptance (status: {status})",
            {"status": status},
        )

    async def accept_task(self, actor: Actor, task_id: str) -> dict[str, Any]:
        """The invited VLE accepts the task. Exactly one acceptance can win."""
        self._require_role(actor, (Role.VLE,), "Only VLEs can accept tasks")

        with self._database.transaction() as conn:
            task = self._load_invitation(conn, task_id, actor)
            self._commit(
                conn,
                task,
                actor,
                {"status": TaskStatus.ASSIGNED.value},
                "Task Accepted",
                f"VLE {actor.name} has accepted the task.",
            )

        self._log_transition(task, actor, "Task Accepted", TaskStatus.ASSIGNED)
        await self._dispatcher.notify(
            task["creator_id"],
            "Task Accepted!",
            f'Your task for "{task["service"]}" has been accepted by a VLE.',
            task_link(task_id),
        )
        await self._dispatcher.notify_admins(
            "Task Accepted by VLE",
            f"VLE {actor.name} has accepted task {short_id(task_id)}.",
            task_link(task_id),
        )
        return self._fetch(task_id)

    async def reject_task(self, actor: Actor, task_id: str) -> dict[str, Any]:
        """The invited VLE declines; the task returns to the assignment queue."""
        self._require_role(actor, (Role.VLE,), "Only VLEs can reject tasks")

        with self._database.transaction() as conn:
            task = self._load_invitation(conn, task_id, actor)
            self._commit(
                conn,
                task,
                actor,
                {
                    "status": TaskStatus.UNASSIGNED.value,
                    "assigned_vle_id": None,
                    "assigned_vle_name": None,
                    "rejected_vle_ids": [*task["rejected_vle_ids"], actor.user_id],
                },
                "Task Rejected",
                f"VLE {actor.name} rejected the task. "
                "It has been returned to the assignment queue.",
            )

        self._log_transition(task, actor, "Task Rejected", TaskStatus.UNASSIGNED)
        await self._dispatcher.notify_admins(
            "Task Rejected by VLE",
            f"Task {short_id(task_id)} was rejected and needs to be reassigned.",
            task_link(task_id),
        )
        return self._fetch(task_id)

    # ------------------------------------------------------------------
    # Work on the task
    # ------------------------------------------------------------------

    async def request_information(
        self,
        actor: Actor,
        task_id: str,
        message: str,
    ) -> dict[str, Any]:
        """The assigned VLE asks the customer for more documents or details."""
        self._require_role(actor, (Role.VLE,), "Only the assigned VLE can request information")

        with self._database.transaction() as conn:
            task = self._load(conn, task_id)
            self._require_status(
                task,
                {TaskStatus.ASSIGNED, TaskStatus.AWAITING_DOCUMENTS},
                "request information on",
            )
            self._require_assigned_vle(task, actor)
            text = _require_text(message, "message")
            self._commit(
                conn,
                task,
                actor,
                {"status": TaskStatus.AWAITING_DOCUMENTS.value},
                "Information Requested",
                text,
            )

        self._log_transition(task, actor, "Information Requested", TaskStatus.AWAITING_DOCUMENTS)
        await self._dispatcher.notify(
            task["creator_id"],
            "Action Required on Your Task",
            f"More information has been requested for task {short_id(task_id)}.",
            task_link(task_id),
        )
        await self._dispatcher.notify_admins(
            f"Info Requested for Task #{short_id(task_id)}",
            "A VLE has requested more information from the customer.",
            task_link(task_id),
        )
        return self._fetch(task_id)

    async def upload_documents(
        self,
        actor: Actor,
        task_id: str,
        files: list[FileUpload],
    ) -> dict[str, Any]:
        """The creator answers an information request with more documents."""
        self._require_role(
            actor, (Role.CUSTOMER, Role.VLE), "Only the task creator can upload documents"
        )

        stored: list[dict[str, str]] = []
        try:
            with self._database.transaction() as conn:
                task = self._load(conn, task_id)
                self._require_status(task, {TaskStatus.AWAITING_DOCUMENTS}, "upload documents to")
                self._require_creator(task, actor, "Only the task creator can upload documents")
                if len(files) == 0:
                    raise ServiceError(
                        "DOCUMENTS_REQUIRED", "At least one document must be uploaded", 400, {}
                    )
                stored = self._store_files(task_id, files)
                self._commit(
                    conn,
                    task,
                    actor,
                    {
                        "status": TaskStatus.ASSIGNED.value,
                        "documents": [*task["documents"], *stored],
                    },
                    "Documents Uploaded",
                    f"{len(stored)} new document(s) were uploaded.",
                )
        except Exception:
            self._blob_store.delete_all(stored)
            raise

        self._log_transition(task, actor, "Documents Uploaded", TaskStatus.ASSIGNED)
        await self._dispatcher.notify(
            task["assigned_vle_id"],
            "New Documents Uploaded",
            f"The customer has uploaded new documents for task {short_id(task_id)}.",
            task_link(task_id),
        )
        return self._fetch(task_id)

    async def submit_acknowledgement(
        self,
        actor: Actor,
        task_id: str,
        acknowledgement_number: str,
    ) -> dict[str, Any]:
        """The assigned VLE records the government-side filing number."""
        self._require_role(actor, (Role.VLE,), "Only the assigned VLE can submit acknowledgements")

        with self._database.transaction() as conn:
            task = self._load(conn, task_id)
            self._require_status(
                task,
                {TaskStatus.ASSIGNED, TaskStatus.AWAITING_DOCUMENTS},
                "submit an acknowledgement for",
            )
            self._require_assigned_vle(task, actor)
            ack = _require_text(acknowledgement_number, "acknowledgement_number")
            self._commit(
                conn,
                task,
                actor,
                {"status": TaskStatus.IN_PROGRESS.value, "acknowledgement_number": ack},
                "Acknowledgement Submitted",
                f"Acknowledgement No: {ack}",
            )

        self._log_transition(task, actor, "Acknowledgement Submitted", TaskStatus.IN_PROGRESS)
        await self._dispatcher.notify(
            task["creator_id"],
            "Your Task is In Progress",
            f"An acknowledgement number has been submitted for task {short_id(task_id)}.",
            task_link(task_id),
        )
        return self._fetch(task_id)

    async def upload_final_certificate(
        self,
        actor: Actor,
        task_id: str,
        certificate: FileUpload | None,
    ) -> dict[str, Any]:
        """The assigned VLE delivers the certificate, completing the task."""
        self._require_role(actor, (Role.VLE,), "Only the assigned VLE can upload the certificate")

        stored: list[dict[str, str]] = []
        try:
            with self._database.transaction() as conn:
                task = self._load(conn, task_id)
                self._require_status(task, VLE_WORKING_STATES, "upload a certificate for")
                self._require_assigned_vle(task, actor)
                if certificate is None:
                    raise ServiceError(
                        "DOCUMENTS_REQUIRED", "A certificate file is required", 400, {}
                    )
                stored = self._store_files(task_id, [certificate])
                self._commit(
                    conn,
                    task,
                    actor,
                    {"status": TaskStatus.COMPLETED.value, "final_certificate": stored[0]},
                    "Final Certificate Uploaded",
                    f"Uploaded: {stored[0]['name']}",
                )
        except Exception:
            self._blob_store.delete_all(stored)
            raise

        self._log_transition(task, actor, "Final Certificate Uploaded", TaskStatus.COMPLETED)
        await self._dispatcher.notify(
            task["creator_id"],
            "Your Certificate is Ready!",
            f"The final certificate for task {short_id(task_id)} is available.",
            task_link(task_id),
        )
        return self._fetch(task_id)

    # ------------------------------------------------------------------
    # Payout
    # ------------------------------------------------------------------

    async def approve_payout(self, actor: Actor, task_id: str) -> dict[str, Any]:
        """
        Pay the assigned VLE for a completed task.

        Returns the updated task and the split. The status guard makes a
        second approval fail with INVALID_TRANSITION, so a task is
        credited at most once.
        """
        if not actor.is_admin:
            raise PermissionDeniedError("Only admins can approve payouts")

        with self._database.transaction() as conn:
            task = self._load(conn, task_id)
            self._require_status(task, {TaskStatus.COMPLETED}, "approve the payout of")
            split = self._payout_engine.compute_split(task)
            self._commit(
                conn,
                task,
                actor,
                {"status": TaskStatus.PAID_OUT.value},
                "Payout Approved",
                f"Payout of {_money(split.amount_to_vle)} approved. "
                f"VLE Commission: {_money(split.vle_commission)}, "
                f"Govt. Fee: {_money(split.government_fee)}.",
            )
            self._payout_engine.pay_out_task(conn, task)

        self._logger.info(
            "Task transition committed",
            extra={
                "task_id": task_id,
                "actor_id": actor.user_id,
                "action": "Payout Approved",
                "from_status": task["status"],
                "to_status": TaskStatus.PAID_OUT.value,
                "amount_to_vle": split.amount_to_vle,
                "admin_commission": split.admin_commission,
            },
        )
        await self._dispatcher.notify(
            task["assigned_vle_id"],
            "Payment Received",
            f"You have received a payment for task {short_id(task_id)}.",
            task_link(task_id),
        )
        return {"task": self._fetch(task_id), "payout": split.to_dict()}

    # ------------------------------------------------------------------
    # Complaints and feedback
    # ------------------------------------------------------------------

    async def raise_complaint(
        self,
        actor: Actor,
        task_id: str,
        text: str,
        files: list[FileUpload],
    ) -> dict[str, Any]:
        """
        The creator complains about a delivered task.

        Only one complaint can ever be raised per task. The status the
        task was in is kept on the complaint and restored on response.
        """
        self._require_role(
            actor, (Role.CUSTOMER, Role.VLE), "Only the task creator can raise a complaint"
        )

        stored: list[dict[str, str]] = []
        try:
            with self._database.transaction() as conn:
                task = self._load(conn, task_id)
                self._require_status(task, DELIVERED_STATES, "raise a complaint on")
                self._require_creator(task, actor, "Only the task creator can raise a complaint")
                if task["complaint"] is not None:
                    raise InvalidTransitionError(
                        "A complaint has already been raised for this task",
                        {"status": task["status"]},
                    )
                complaint_text = _require_text(text, "text")
                stored = self._store_files(task_id, files) if files else []
                complaint = {
                    "text": complaint_text,
                    "date": utc_now_iso(),
                    "documents": stored,
                    "status": ComplaintStatus.OPEN.value,
                    "response": None,
                    "previous_status": task["status"],
                }
                self._commit(
                    conn,
                    task,
                    actor,
                    {"status": TaskStatus.COMPLAINT_RAISED.value, "complaint": complaint},
                    "Complaint Raised",
                    complaint_text,
                )
        except Exception:
            self._blob_store.delete_all(stored)
            raise

        self._log_transition(task, actor, "Complaint Raised", TaskStatus.COMPLAINT_RAISED)
        await self._dispatcher.notify_admins(
            "New Complaint Raised",
            f"A complaint was raised for task {short_id(task_id)} by {task['customer']}.",
            task_link(task_id),
        )
        return self._fetch(task_id)

    async def respond_to_complaint(
        self,
        actor: Actor,
        task_id: str,
        text: str,
        files: list[FileUpload],
    ) -> dict[str, Any]:
        """Admin answers the open complaint; the task goes back to its prior status."""
        if not actor.is_admin:
            raise PermissionDeniedError("Only admins can respond to complaints")

        stored: list[dict[str, str]] = []
        try:
            with self._database.transaction() as conn:
                task = self._load(conn, task_id)
                self._require_status(
                    task, {TaskStatus.COMPLAINT_RAISED}, "respond to a complaint on"
                )
                complaint = task["complaint"]
                if complaint is None or complaint["status"] != ComplaintStatus.OPEN:
                    raise InvalidTransitionError("There is no open complaint on this task")
                response_text = _require_text(text, "text")
                stored = self._store_files(task_id, files) if files else []
                restored = complaint["previous_status"]
                updated_complaint = {
                    **complaint,
                    "status": ComplaintStatus.RESPONDED.value,
                    "response": {"text": response_text, "documents": stored, "date": utc_now_iso()},
                }
                self._commit(
                    conn,
                    task,
                    actor,
                    {"status": restored, "complaint": updated_complaint},
                    "Complaint Responded",
                    response_text,
                )
        except Exception:
            self._blob_store.delete_all(stored)
            raise

        self._log_transition(task, actor, "Complaint Responded", restored)
        await self._dispatcher.notify(
            task["creator_id"],
            "Response to Your Complaint",
            f"An admin has responded to your complaint for task {short_id(task_id)}.",
            task_link(task_id),
        )
        return self._fetch(task_id)

    async def submit_feedback(
        self,
        actor: Actor,
        task_id: str,
        rating: int,
        comment: str | None,
    ) -> dict[str, Any]:
        """The creator rates a delivered task, once."""
        self._require_role(
            actor, (Role.CUSTOMER, Role.VLE), "Only the task creator can leave feedback"
        )

        with self._database.transaction() as conn:
            task = self._load(conn, task_id)
            self._require_status(task, DELIVERED_STATES, "leave feedback on")
            self._require_creator(task, actor, "Only the task creator can leave feedback")
            if task["feedback"] is not None:
                raise InvalidTransitionError("Feedback has already been submitted for this task")
            if not _is_positive_int(rating) or rating > 5:
                raise ServiceError(
                    "INVALID_PAYLOAD", "rating must be an integer from 1 to 5", 400, {}
                )
            if comment is not None and not isinstance(comment, str):
                raise ServiceError("INVALID_PAYLOAD", "comment must be a string", 400, {})
            feedback = {"rating": rating, "comment": comment or "", "date": utc_now_iso()}
            self._commit(
                conn,
                task,
                actor,
                {"feedback": feedback},
                "Feedback Submitted",
                f"Rated {rating}/5.",
            )

        self._log_transition(task, actor, "Feedback Submitted", task["status"])
        await self._dispatcher.notify_admins(
            "New Feedback Received",
            f"Feedback ({rating}/5) was submitted for task {short_id(task_id)}.",
            task_link(task_id),
        )
        return self._fetch(task_id)

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def get_task(self, actor: Actor, task_id: str) -> dict[str, Any]:
        """
        Fetch one task with its history.

        Admins and government viewers see every task; creators see their
        own; VLEs see the tasks currently assigned to them.
        """
        task = self._store.get_task(task_id)
        if task is None:
            raise ServiceError("TASK_NOT_FOUND", "Task not found", 404, {})
        if not (
            actor.can_read_all_tasks
            or task["creator_id"] == actor.user_id
            or task["assigned_vle_id"] == actor.user_id
        ):
            raise PermissionDeniedError("You cannot view this task")
        return self._task_to_response(task)

    def list_tasks(
        self,
        actor: Actor,
        status: str | None,
        limit: int | None,
        offset: int | None,
    ) -> list[dict[str, Any]]:
        """List the tasks the actor may see, newest first, without history."""
        if status is not None and status not in {s.value for s in TaskStatus}:
            raise ServiceError("INVALID_PAYLOAD", f"Unknown status: {status}", 400, {})
        if limit is not None and (not _is_positive_int(limit) or limit > _MAX_PAGE_SIZE):
            raise ServiceError(
                "INVALID_PAYLOAD", f"limit must be between 1 and {_MAX_PAGE_SIZE}", 400, {}
            )
        if offset is not None and (isinstance(offset, bool) or offset < 0):
            raise ServiceError("INVALID_PAYLOAD", "offset must be non-negative", 400, {})

        participant_id = None if actor.can_read_all_tasks else actor.user_id
        rows = self._store.list_tasks(
            status=status,
            participant_id=participant_id,
            limit=limit,
            offset=offset,
        )
        return [self._task_to_response(row) for row in rows]

    def list_all_tasks(self) -> list[dict[str, Any]]:
        """Every task without visibility filtering, for projections."""
        return [self._task_to_response(row) for row in self._store.list_tasks()]

    def get_stats(self) -> dict[str, Any]:
        """Return aggregate task statistics for health reporting."""
        counts = self.count_tasks_by_status()
        return {"total_tasks": sum(counts.values()), "tasks_by_status": counts}

    def count_tasks_by_status(self) -> dict[str, int]:
        """Count tasks grouped by status, with every status present."""
        counts: dict[str, int] = {status.value: 0 for status in TaskStatus}
        for status_val, count in self._store.count_tasks_by_status().items():
            if status_val in counts:
                counts[status_val] = int(count)
        return counts

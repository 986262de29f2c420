"""Task states, user roles and the actor model shared by all services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum


class TaskStatus(StrEnum):
    """Lifecycle states of a service task."""

    PENDING_PRICE_APPROVAL = "Pending Price Approval"
    AWAITING_PAYMENT = "Awaiting Payment"
    UNASSIGNED = "Unassigned"
    PENDING_VLE_ACCEPTANCE = "Pending VLE Acceptance"
    ASSIGNED = "Assigned"
    AWAITING_DOCUMENTS = "Awaiting Documents"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    PAID_OUT = "Paid Out"
    COMPLAINT_RAISED = "Complaint Raised"


class ComplaintStatus(StrEnum):
    """States of the complaint attached to a task."""

    OPEN = "Open"
    RESPONDED = "Responded"


class Role(StrEnum):
    """Roles a directory user can hold."""

    CUSTOMER = "customer"
    VLE = "vle"
    GOVERNMENT = "government"
    ADMIN = "admin"


class VleStatus(StrEnum):
    """Approval state of a VLE account."""

    PENDING = "Pending"
    APPROVED = "Approved"


class PaymentRequestStatus(StrEnum):
    """States of a wallet top-up request."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class CampStatus(StrEnum):
    """States of a service camp."""

    UPCOMING = "Upcoming"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    PAID_OUT = "Paid Out"


class InvitationStatus(StrEnum):
    """Per-VLE status of a camp invitation."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


# States in which a VLE is attached to the task.
ASSIGNED_STATES: frozenset[TaskStatus] = frozenset(
    {
        TaskStatus.PENDING_VLE_ACCEPTANCE,
        TaskStatus.ASSIGNED,
        TaskStatus.AWAITING_DOCUMENTS,
        TaskStatus.IN_PROGRESS,
        TaskStatus.COMPLETED,
        TaskStatus.PAID_OUT,
    }
)

# The assigned VLE works the task in these states.
VLE_WORKING_STATES: frozenset[TaskStatus] = frozenset(
    {TaskStatus.ASSIGNED, TaskStatus.AWAITING_DOCUMENTS, TaskStatus.IN_PROGRESS}
)

# The creator may complain or leave feedback once the work is delivered.
DELIVERED_STATES: frozenset[TaskStatus] = frozenset({TaskStatus.COMPLETED, TaskStatus.PAID_OUT})


@dataclass(frozen=True)
class VleDetails:
    """Fields only VLE accounts carry."""

    status: VleStatus
    available: bool
    offered_services: tuple[str, ...] = field(default_factory=tuple)

    def offers(self, service_id: str) -> bool:
        return service_id in self.offered_services


@dataclass(frozen=True)
class Actor:
    """
    The user performing an operation.

    Role-specific data is carried by ``vle`` (set only for VLE accounts).
    """

    user_id: str
    role: Role
    name: str
    vle: VleDetails | None = None

    @property
    def history_role(self) -> str:
        """Role label written into task history entries."""
        match self.role:
            case Role.ADMIN:
                return "Admin"
            case Role.VLE:
                return "VLE"
            case Role.GOVERNMENT:
                return "Government"
            case Role.CUSTOMER:
                return "Customer"

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def can_create_tasks(self) -> bool:
        return self.role in (Role.CUSTOMER, Role.VLE)

    @property
    def can_read_all_tasks(self) -> bool:
        return self.role in (Role.ADMIN, Role.GOVERNMENT)

    @property
    def is_eligible_vle(self) -> bool:
        """Approved and currently taking work."""
        return (
            self.role == Role.VLE
            and self.vle is not None
            and self.vle.status == VleStatus.APPROVED
            and self.vle.available
        )


def utc_now_iso() -> str:
    """Return current UTC time as ISO 8601 string with Z suffix."""
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")

"""User registration, VLE administration and the service catalog."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from service_commons.exceptions import ServiceError

from sevasetu_service.core.exceptions import InvalidTransitionError, PermissionDeniedError
from sevasetu_service.domain import Actor, Role, VleStatus, utc_now_iso
from sevasetu_service.logging import get_logger
from sevasetu_service.services.directory_store import (
    DirectoryStore,
    DuplicateServiceError,
    DuplicateUserError,
    actor_from_user,
)

if TYPE_CHECKING:
    from sevasetu_service.services.database import Database
    from sevasetu_service.services.ledger import Ledger
    from sevasetu_service.services.notification_dispatcher import NotificationDispatcher

_MAX_NAME_LENGTH = 200


def _is_non_negative_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _require_admin(actor: Actor, message: str) -> None:
    if not actor.is_admin:
        raise PermissionDeniedError(message)


class DirectoryManager:
    """
    Owns the rules around directory users and catalog entries.

    Every registered user gets a wallet in the same transaction as the
    user row.
    """

    def __init__(
        self,
        database: Database,
        store: DirectoryStore,
        ledger: Ledger,
        dispatcher: NotificationDispatcher,
    ) -> None:
        self._database = database
        self._store = store
        self._ledger = ledger
        self._dispatcher = dispatcher
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Actors
    # ------------------------------------------------------------------

    def get_actor(self, user_id: str) -> Actor | None:
        """Resolve a user ID to an actor, or None if unknown."""
        user = self._store.get_user(user_id)
        if user is None:
            return None
        return actor_from_user(user)

    def get_user(self, user_id: str) -> dict[str, Any]:
        """Fetch a user profile. Raises USER_NOT_FOUND."""
        user = self._store.get_user(user_id)
        if user is None:
            raise ServiceError("USER_NOT_FOUND", "User not found", 404, {})
        return user

    def list_users(self, actor: Actor, role: str | None) -> list[dict[str, Any]]:
        """List directory users. Admin only."""
        _require_admin(actor, "Only admins can list users")
        if role is not None and role not in {r.value for r in Role}:
            raise ServiceError("INVALID_PAYLOAD", f"Unknown role: {role}", 400, {})
        return self._store.list_users(role)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def register_user(
        self,
        actor: Actor | None,
        name: str,
        role: str,
        mobile: str | None = None,
        email: str | None = None,
        pincode: str | None = None,
        offered_services: list[str] | None = None,
        user_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Register a user and open their wallet.

        Customers and VLEs may self-register. Admin and government
        accounts can only be created by an admin. VLEs start in
        ``Pending`` approval and available for work.
        """
        try:
            parsed_role = Role(role)
        except ValueError as exc:
            raise ServiceError("INVALID_PAYLOAD", f"Unknown role: {role}", 400, {}) from exc

        if parsed_role in (Role.ADMIN, Role.GOVERNMENT) and (actor is None or not actor.is_admin):
            raise PermissionDeniedError(f"Only admins can create {parsed_role.value} accounts")

        if not isinstance(name, str) or not name.strip():
            raise ServiceError("INVALID_PAYLOAD", "Name must be a non-empty string", 400, {})
        if len(name) > _MAX_NAME_LENGTH:
            raise ServiceError(
                "INVALID_PAYLOAD", f"Name must not exceed {_MAX_NAME_LENGTH} characters", 400, {}
            )

        services = list(offered_services or [])
        if services and parsed_role != Role.VLE:
            raise ServiceError(
                "INVALID_PAYLOAD", "Only VLE accounts can offer services", 400, {}
            )

        user_data = {
            "user_id": user_id or f"u-{uuid.uuid4()}",
            "name": name.strip(),
            "role": parsed_role.value,
            "mobile": mobile,
            "email": email,
            "pincode": pincode,
            "vle_status": VleStatus.PENDING.value if parsed_role == Role.VLE else None,
            "available": parsed_role == Role.VLE,
            "offered_services": services,
            "created_at": utc_now_iso(),
        }

        try:
            with self._database.transaction() as conn:
                self._store.insert_user(conn, user_data)
                self._ledger.open_account(conn, user_data["user_id"])
        except DuplicateUserError as exc:
            raise ServiceError(
                "USER_EXISTS", "A user with this ID already exists", 409, {}
            ) from exc

        self._logger.info(
            "User registered",
            extra={"user_id": user_data["user_id"], "role": parsed_role.value},
        )

        if parsed_role == Role.VLE:
            await self._dispatcher.notify_admins(
                "New VLE Registration",
                f"{user_data['name']} has registered as a VLE and is awaiting approval.",
            )

        return self.get_user(user_data["user_id"])

    def ensure_admin(self, user_id: str, name: str) -> bool:
        """Create an admin account if missing. Returns True if one was created."""
        if self._store.get_user(user_id) is not None:
            return False
        with self._database.transaction() as conn:
            self._store.insert_user(
                conn,
                {
                    "user_id": user_id,
                    "name": name,
                    "role": Role.ADMIN.value,
                    "mobile": None,
                    "email": None,
                    "pincode": None,
                    "vle_status": None,
                    "available": False,
                    "offered_services": [],
                    "created_at": utc_now_iso(),
                },
            )
            self._ledger.open_account(conn, user_id)
        self._logger.info("Bootstrap admin created", extra={"user_id": user_id})
        return True

    # ------------------------------------------------------------------
    # VLE administration
    # ------------------------------------------------------------------

    def _load_vle(self, conn: Any, vle_id: str) -> dict[str, Any]:
        user = self._store.get_user(vle_id, conn)
        if user is None:
            raise ServiceError("USER_NOT_FOUND", "User not found", 404, {})
        if user["role"] != Role.VLE.value:
            raise ServiceError("INVALID_PAYLOAD", "User is not a VLE", 400, {})
        return user

    async def approve_vle(self, actor: Actor, vle_id: str) -> dict[str, Any]:
        """Approve a pending VLE so it can be assigned tasks."""
        _require_admin(actor, "Only admins can approve VLEs")

        with self._database.transaction() as conn:
            user = self._load_vle(conn, vle_id)
            if user["vle_status"] == VleStatus.APPROVED.value:
                raise InvalidTransitionError("VLE is already approved")
            self._store.update_user(conn, vle_id, {"vle_status": VleStatus.APPROVED.value})

        self._logger.info("VLE approved", extra={"vle_id": vle_id, "actor_id": actor.user_id})
        await self._dispatcher.notify(
            vle_id,
            "Account Approved",
            "Congratulations! Your VLE account has been approved by an admin.",
        )
        return self.get_user(vle_id)

    def set_availability(self, actor: Actor, vle_id: str, available: bool) -> dict[str, Any]:
        """Toggle whether a VLE takes new tasks. Admins or the VLE itself."""
        if not actor.is_admin and actor.user_id != vle_id:
            raise PermissionDeniedError("Only admins or the VLE itself can change availability")
        if not isinstance(available, bool):
            raise ServiceError("INVALID_PAYLOAD", "available must be a boolean", 400, {})

        with self._database.transaction() as conn:
            self._load_vle(conn, vle_id)
            self._store.update_user(conn, vle_id, {"available": available})

        self._logger.info(
            "VLE availability changed", extra={"vle_id": vle_id, "available": available}
        )
        return self.get_user(vle_id)

    def set_offered_services(
        self,
        actor: Actor,
        vle_id: str,
        service_ids: list[str],
    ) -> dict[str, Any]:
        """Replace the list of services a VLE offers. Admins or the VLE itself."""
        if not actor.is_admin and actor.user_id != vle_id:
            raise PermissionDeniedError("Only admins or the VLE itself can change offered services")
        if not isinstance(service_ids, list) or not all(isinstance(s, str) for s in service_ids):
            raise ServiceError("INVALID_PAYLOAD", "service_ids must be a list of strings", 400, {})

        with self._database.transaction() as conn:
            self._load_vle(conn, vle_id)
            for service_id in service_ids:
                if self._store.get_service(service_id, conn) is None:
                    raise ServiceError(
                        "SERVICE_NOT_FOUND", f"Unknown service: {service_id}", 404, {}
                    )
            unique_ids = list(dict.fromkeys(service_ids))
            self._store.update_user(conn, vle_id, {"offered_services": unique_ids})

        return self.get_user(vle_id)

    # ------------------------------------------------------------------
    # Service catalog
    # ------------------------------------------------------------------

    def add_service(
        self,
        actor: Actor,
        name: str,
        customer_rate: int,
        vle_rate: int,
        government_fee: int,
        is_variable: bool,
        parent_id: str | None = None,
        service_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Add a catalog entry. Admin only.

        Fixed-rate services need a positive customer rate; variable-rate
        services are priced per task by an admin.
        """
        _require_admin(actor, "Only admins can manage services")

        if not isinstance(name, str) or not name.strip():
            raise ServiceError("INVALID_PAYLOAD", "Name must be a non-empty string", 400, {})
        for field_name, value in (
            ("customer_rate", customer_rate),
            ("vle_rate", vle_rate),
            ("government_fee", government_fee),
        ):
            if not _is_non_negative_int(value):
                raise ServiceError(
                    "INVALID_PAYLOAD", f"{field_name} must be a non-negative integer", 400, {}
                )
        if not isinstance(is_variable, bool):
            raise ServiceError("INVALID_PAYLOAD", "is_variable must be a boolean", 400, {})
        if not is_variable and customer_rate <= 0:
            raise ServiceError(
                "INVALID_PAYLOAD", "Fixed-rate services need a positive customer_rate", 400, {}
            )

        service_data = {
            "service_id": service_id or f"svc-{uuid.uuid4()}",
            "name": name.strip(),
            "customer_rate": customer_rate,
            "vle_rate": vle_rate,
            "government_fee": government_fee,
            "is_variable": is_variable,
            "parent_id": parent_id,
            "created_at": utc_now_iso(),
        }

        try:
            with self._database.transaction() as conn:
                if parent_id is not None and self._store.get_service(parent_id, conn) is None:
                    raise ServiceError("SERVICE_NOT_FOUND", "Parent service not found", 404, {})
                self._store.insert_service(conn, service_data)
        except DuplicateServiceError as exc:
            raise ServiceError(
                "SERVICE_EXISTS", "A service with this ID already exists", 409, {}
            ) from exc

        return self.get_service(service_data["service_id"])

    def get_service(self, service_id: str) -> dict[str, Any]:
        """Fetch a catalog entry. Raises SERVICE_NOT_FOUND."""
        service = self._store.get_service(service_id)
        if service is None:
            raise ServiceError("SERVICE_NOT_FOUND", "Service not found", 404, {})
        return service

    def list_services(self) -> list[dict[str, Any]]:
        """The whole catalog."""
        return self._store.list_services()

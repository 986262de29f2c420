"""Best-effort notification fan-out after committed transitions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from sevasetu_service.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable


class NotificationSink(Protocol):
    """Anything that can deliver a single notification."""

    async def send(self, user_id: str, title: str, body: str, link: str | None) -> None: ...

    async def close(self) -> None: ...


class NotificationDispatcher:
    """
    Sends notifications without ever failing the caller.

    Delivery errors are logged and reported through the return value;
    the state change that triggered the notification has already
    committed by the time this runs.
    """

    def __init__(self, sink: NotificationSink, admin_lookup: Callable[[], list[str]]) -> None:
        self._sink = sink
        self._admin_lookup = admin_lookup
        self._logger = get_logger(__name__)

    async def notify(
        self,
        user_id: str | None,
        title: str,
        body: str,
        link: str | None = None,
    ) -> bool:
        """Deliver to one user. Returns False if delivery failed or there is no recipient."""
        if not user_id:
            return False
        try:
            await self._sink.send(user_id, title, body, link)
        except Exception as exc:
            self._logger.warning(
                "Notification delivery failed",
                extra={"user_id": user_id, "title": title, "error": str(exc)},
            )
            return False
        return True

    async def notify_admins(self, title: str, body: str, link: str | None = None) -> int:
        """Deliver to every administrator. Returns the number of successful deliveries."""
        try:
            admin_ids = self._admin_lookup()
        except Exception as exc:
            self._logger.warning(
                "Could not resolve administrators for notification",
                extra={"title": title, "error": str(exc)},
            )
            return 0

        if not admin_ids:
            self._logger.info("No admin users found to notify", extra={"title": title})
            return 0

        delivered = 0
        for admin_id in admin_ids:
            if await self.notify(admin_id, title, body, link):
                delivered += 1
        return delivered

    async def close(self) -> None:
        """Release the sink."""
        await self._sink.close()

"""Async HTTP client for an external notification gateway."""

from __future__ import annotations

from typing import Any

import httpx
from service_commons.exceptions import ServiceError

from sevasetu_service.logging import get_logger


class NotificationClient:
    """
    Delivers notifications by POSTing them to a gateway
    (push, SMS or WhatsApp relay).

    The gateway must answer 2xx; anything else is a delivery failure.
    """

    def __init__(self, base_url: str, notify_path: str, timeout_seconds: int) -> None:
        self._base_url = base_url
        self._notify_path = notify_path
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
        )

    async def send(self, user_id: str, title: str, body: str, link: str | None) -> None:
        """
        Send one notification.

        Raises:
            ServiceError: NOTIFICATION_GATEWAY_UNAVAILABLE on connection
                errors, timeouts or non-2xx responses.
        """
        logger = get_logger(__name__)
        payload: dict[str, Any] = {"user_id": user_id, "title": title, "body": body}
        if link is not None:
            payload["link"] = link

        try:
            response = await self._client.post(self._notify_path, json=payload)
        except httpx.HTTPError as exc:
            logger.warning(
                "Notification gateway request failed",
                extra={"error": str(exc), "base_url": self._base_url},
            )
            raise ServiceError(
                error="NOTIFICATION_GATEWAY_UNAVAILABLE",
                message="Cannot reach notification gateway",
                status_code=502,
                details={},
            ) from exc

        if not response.is_success:
            raise ServiceError(
                error="NOTIFICATION_GATEWAY_UNAVAILABLE",
                message=f"Notification gateway answered {response.status_code}",
                status_code=502,
                details={},
            )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

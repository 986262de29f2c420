"""HTTP clients for external service communication."""

from sevasetu_service.clients.notification_client import NotificationClient

__all__ = ["NotificationClient"]

"""Application state management."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sevasetu_service.services.blob_store import BlobStore
    from sevasetu_service.services.camp_manager import CampManager
    from sevasetu_service.services.database import Database
    from sevasetu_service.services.directory_manager import DirectoryManager
    from sevasetu_service.services.notification_dispatcher import NotificationDispatcher
    from sevasetu_service.services.notification_inbox import NotificationInbox
    from sevasetu_service.services.task_lifecycle import TaskLifecycle
    from sevasetu_service.services.wallet_manager import WalletManager


@dataclass
class AppState:
    """Runtime application state."""

    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    database: Database | None = None
    blob_store: BlobStore | None = None
    dispatcher: NotificationDispatcher | None = None
    inbox: NotificationInbox | None = None
    directory: DirectoryManager | None = None
    task_lifecycle: TaskLifecycle | None = None
    wallet_manager: WalletManager | None = None
    camp_manager: CampManager | None = None

    @property
    def uptime_seconds(self) -> float:
        """Calculate uptime in seconds."""
        return (datetime.now(UTC) - self.start_time).total_seconds()

    @property
    def started_at(self) -> str:
        """ISO format start time."""
        return self.start_time.isoformat(timespec="seconds").replace("+00:00", "Z")


# Global application state container
_state_container: dict[str, AppState | None] = {"app_state": None}


def get_app_state() -> AppState:
    """Get the current application state."""
    app_state = _state_container["app_state"]
    if app_state is None:
        msg = "Application state not initialized"
        raise RuntimeError(msg)
    return app_state


def init_app_state() -> AppState:
    """Initialize application state. Called during startup."""
    app_state = AppState()
    _state_container["app_state"] = app_state
    return app_state


def reset_app_state() -> None:
    """Reset application state. Used in testing."""
    _state_container["app_state"] = None

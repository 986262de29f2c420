"""API routers."""

from sevasetu_service.routers import (
    camps,
    directory,
    files,
    health,
    notifications,
    reports,
    tasks,
    wallets,
)

__all__ = [
    "camps",
    "directory",
    "files",
    "health",
    "notifications",
    "reports",
    "tasks",
    "wallets",
]

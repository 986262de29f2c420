"""FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI

from sevasetu_service.config import get_settings
from sevasetu_service.core.exceptions import register_exception_handlers
from sevasetu_service.core.lifespan import lifespan
from sevasetu_service.core.middleware import RequestValidationMiddleware
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


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    Returns:
        Configured FastAPI instance with all routers registered.
    """
    settings = get_settings()

    app = FastAPI(
        title=f"{settings.service.name} Service",
        version=settings.service.version,
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    app.include_router(health.router, tags=["Operations"])
    app.include_router(tasks.router, tags=["Tasks"])
    app.include_router(directory.router, tags=["Directory"])
    app.include_router(wallets.router, tags=["Wallets"])
    app.include_router(camps.router, tags=["Camps"])
    app.include_router(notifications.router, tags=["Notifications"])
    app.include_router(reports.router, tags=["Reports"])
    app.include_router(files.router, tags=["Files"])

    app.add_middleware(
        RequestValidationMiddleware,
        max_body_size=settings.request.max_body_size,
    )

    return app

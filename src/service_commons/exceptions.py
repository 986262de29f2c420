"""
Base error type and exception handler registration.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from fastapi import FastAPI, Request
    from fastapi.responses import Response
    from starlette.types import ExceptionHandler


class ServiceError(Exception):
    """
    Error surfaced to API callers as a structured JSON body.

    Attributes:
        error: Machine-readable error code (e.g. "TASK_NOT_FOUND")
        message: Human-readable description
        status_code: HTTP status code to respond with
        details: Extra structured context for the caller
    """

    def __init__(
        self,
        error: str,
        message: str,
        status_code: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error = error
        self.message = message
        self.status_code = status_code
        self.details: dict[str, Any] = details if details is not None else {}

    def to_dict(self) -> dict[str, Any]:
        """Render the error as a response body."""
        return {"error": self.error, "message": self.message, "details": self.details}


def register_exception_handlers(
    app: FastAPI,
    error_class: type[ServiceError],
    service_error_handler: Callable[[Request, Any], Awaitable[Response]],
    unhandled_exception_handler: Callable[[Request, Exception], Awaitable[Response]],
) -> None:
    """Attach the service error handler and the catch-all handler to an app."""
    app.add_exception_handler(error_class, cast("ExceptionHandler", service_error_handler))
    app.add_exception_handler(Exception, cast("ExceptionHandler", unhandled_exception_handler))

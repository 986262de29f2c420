"""Shared request validation helpers for the routers."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, ValidationError
from service_commons.exceptions import ServiceError
from starlette.datastructures import UploadFile as StarletteUploadFile

from sevasetu_service.core.state import get_app_state
from sevasetu_service.services.blob_store import FileUpload

if TYPE_CHECKING:
    from fastapi import Request
    from starlette.datastructures import FormData

    from sevasetu_service.domain import Actor

ModelT = TypeVar("ModelT", bound=BaseModel)

USER_ID_HEADER = "x-user-id"


def parse_json_body(raw_body: bytes) -> dict[str, Any]:
    """Parse JSON body, raising ServiceError on failure."""
    try:
        data = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ServiceError(
            "INVALID_JSON",
            "Request body is not valid JSON",
            400,
            {},
        ) from exc

    if not isinstance(data, dict):
        raise ServiceError(
            "INVALID_JSON",
            "Request body must be a JSON object",
            400,
            {},
        )

    return data


def parse_model(raw_body: bytes, model: type[ModelT]) -> ModelT:
    """Parse a JSON body into a request model, raising INVALID_PAYLOAD on mismatch."""
    data = parse_json_body(raw_body)
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"]) or "body"
        raise ServiceError(
            "INVALID_PAYLOAD",
            f"Invalid field '{location}': {first['msg']}",
            400,
            {"field": location},
        ) from exc


def resolve_actor(request: Request) -> Actor:
    """Resolve the caller from the X-User-Id header."""
    actor = optional_actor(request)
    if actor is None:
        raise ServiceError("UNAUTHORIZED", "Missing X-User-Id header", 401, {})
    return actor


def optional_actor(request: Request) -> Actor | None:
    """Resolve the caller if the header is present. Unknown IDs are rejected."""
    user_id = request.headers.get(USER_ID_HEADER)
    if user_id is None or user_id == "":
        return None

    state = get_app_state()
    if state.directory is None:
        msg = "DirectoryManager not initialized"
        raise RuntimeError(msg)

    actor = state.directory.get_actor(user_id)
    if actor is None:
        raise ServiceError("UNAUTHORIZED", "Unknown user", 401, {})
    return actor


def parse_query_int(raw: str | None, name: str) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ServiceError("INVALID_PAYLOAD", f"{name} must be an integer", 400, {}) from exc


async def read_uploads(form: FormData, field_name: str) -> list[FileUpload]:
    """Read every file posted under ``field_name``."""
    uploads: list[FileUpload] = []
    for value in form.getlist(field_name):
        if not isinstance(value, StarletteUploadFile):
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"Field '{field_name}' must be an uploaded file",
                400,
                {},
            )
        content = await value.read()
        uploads.append(FileUpload(name=value.filename or "unnamed", content=content))
    return uploads


def form_text(form: FormData, field_name: str, *, required: bool) -> str | None:
    """Extract a text field from multipart form data."""
    value = form.get(field_name)
    if value is None:
        if required:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"Missing required field: {field_name}",
                400,
                {},
            )
        return None
    if not isinstance(value, str):
        raise ServiceError(
            "INVALID_PAYLOAD",
            f"Field '{field_name}' must be a string",
            400,
            {},
        )
    return value

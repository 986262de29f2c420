"""Download endpoint for stored documents and certificates."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import FileResponse
from service_commons.exceptions import ServiceError

from sevasetu_service.core.state import get_app_state
from sevasetu_service.routers.validation import resolve_actor
from sevasetu_service.services.blob_store import URL_PREFIX

router = APIRouter()


@router.get(URL_PREFIX + "/{file_path:path}")
async def download_file(file_path: str, request: Request) -> FileResponse:
    """Serve a stored file to a caller who may view the task it belongs to."""
    actor = resolve_actor(request)
    state = get_app_state()
    if state.blob_store is None or state.task_lifecycle is None:
        msg = "Service not initialized"
        raise RuntimeError(msg)

    url = f"{URL_PREFIX}/{file_path}"
    task_id = state.blob_store.task_id_of(url)
    if task_id is None:
        raise ServiceError("FILE_NOT_FOUND", "File not found", 404, {})
    state.task_lifecycle.get_task(actor, task_id)

    path = state.blob_store.resolve(url)
    if path is None:
        raise ServiceError("FILE_NOT_FOUND", "File not found", 404, {})
    return FileResponse(path, filename=path.name)

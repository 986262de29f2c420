"""Local file storage for task documents, certificates and complaint evidence."""

from __future__ import annotations

import contextlib
import re
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from service_commons.exceptions import ServiceError

URL_PREFIX = "/files"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class FileUpload:
    """An uploaded file as received from the caller."""

    name: str
    content: bytes


def _safe_filename(name: str) -> str:
    base = PurePosixPath(name.replace("\\", "/")).name
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._")
    return cleaned or "file"


class BlobStore:
    """
    Stores files under ``<root>/tasks/<task_id>/<blob_id>/<filename>``.

    Returned URLs are opaque to the lifecycle code; they are only handed
    back to ``delete`` or to clients.
    """

    def __init__(self, root_path: str, max_file_size: int, max_files_per_request: int) -> None:
        self._root = Path(root_path)
        self._max_file_size = max_file_size
        self._max_files_per_request = max_files_per_request
        self._root.mkdir(parents=True, exist_ok=True)

    def validate(self, files: list[FileUpload]) -> None:
        """
        Check sizes and counts before anything is written.

        Raises:
            ServiceError: TOO_MANY_FILES, FILE_TOO_LARGE, EMPTY_FILE.
        """
        if len(files) > self._max_files_per_request:
            raise ServiceError(
                "TOO_MANY_FILES",
                f"At most {self._max_files_per_request} files can be uploaded at once",
                400,
                {},
            )
        for upload in files:
            if len(upload.content) == 0:
                raise ServiceError("EMPTY_FILE", f"File '{upload.name}' is empty", 400, {})
            if len(upload.content) > self._max_file_size:
                raise ServiceError(
                    "FILE_TOO_LARGE",
                    f"File exceeds maximum size of {self._max_file_size} bytes",
                    413,
                    {},
                )

    def store(self, task_id: str, upload: FileUpload) -> dict[str, str]:
        """Write one file and return its document reference {name, url}."""
        blob_id = uuid.uuid4().hex
        filename = _safe_filename(upload.name)
        relative = PurePosixPath("tasks", _safe_filename(task_id), blob_id, filename)
        target = self._root.joinpath(*relative.parts)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(upload.content)
        return {"name": upload.name, "url": f"{URL_PREFIX}/{relative}"}

    def store_all(self, task_id: str, files: list[FileUpload]) -> list[dict[str, str]]:
        """Validate and store a batch; nothing stays on disk if any write fails."""
        self.validate(files)
        stored: list[dict[str, str]] = []
        try:
            for upload in files:
                stored.append(self.store(task_id, upload))
        except OSError:
            self.delete_all(stored)
            raise
        return stored

    def delete(self, url: str) -> None:
        """Remove a stored file. Unknown URLs are ignored."""
        path = self.resolve(url)
        if path is None:
            return
        with contextlib.suppress(FileNotFoundError):
            path.unlink()
        with contextlib.suppress(OSError):
            path.parent.rmdir()

    def delete_all(self, documents: list[dict[str, str]]) -> None:
        """Remove every file in a list of document references."""
        for document in documents:
            self.delete(document["url"])

    def task_id_of(self, url: str) -> str | None:
        """Return the task a stored file belongs to, or None for foreign URLs."""
        if not url.startswith(f"{URL_PREFIX}/"):
            return None
        parts = PurePosixPath(url[len(URL_PREFIX) + 1 :]).parts
        if len(parts) < 2 or parts[0] != "tasks":
            return None
        return parts[1]

    def resolve(self, url: str) -> Path | None:
        """Map a URL returned by ``store`` back to its file, or None if it is not ours."""
        if not url.startswith(f"{URL_PREFIX}/"):
            return None
        relative = PurePosixPath(url[len(URL_PREFIX) + 1 :])
        if ".." in relative.parts or relative.is_absolute():
            return None
        path = self._root.joinpath(*relative.parts)
        if not path.is_file():
            return None
        return path

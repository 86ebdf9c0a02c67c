"""Request-scoped dependencies shared by the routers."""
from __future__ import annotations

from fastapi import File, Request, UploadFile

from deliverhub.config import get_settings
from deliverhub.services.file_validation import IncomingFile
from deliverhub.services.object_store import ObjectStore
from deliverhub.services.rate_limit import RateLimiter
from deliverhub.services.workflow import WorkflowResult


def get_object_store(request: Request) -> ObjectStore:
    return request.app.state.object_store


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def _read_upload(file: UploadFile) -> IncomingFile:
    limit = get_settings().MAX_UPLOAD_BYTES
    data = file.file.read(limit + 1)
    return IncomingFile(
        filename=file.filename or "",
        content_type=file.content_type or "",
        data=data,
    )


def incoming_file(file: UploadFile = File(...)) -> IncomingFile:
    """Read at most one byte past the upload limit so oversize files are still rejected."""

    return _read_upload(file)


def incoming_files(files: list[UploadFile] | None = File(default=None)) -> list[IncomingFile]:
    """Optional multi-file field; each part is read like :func:`incoming_file`."""

    return [_read_upload(file) for file in files or ()]


def unwrap(result: WorkflowResult):
    """Return the successful result or raise its error as an HTTP response."""

    if not result.ok:
        raise result.error.to_http()
    return result


__all__ = ["get_object_store", "get_rate_limiter", "incoming_file", "incoming_files", "unwrap"]

"""Error taxonomy and standardized error responses."""
from __future__ import annotations

from typing import Any

from fastapi import HTTPException


def error_response(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return a standardized error payload."""

    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        payload["error"]["details"] = details
    return payload


class MilestoneError(Exception):
    """Base class for failures raised inside the milestone workflows."""

    code = "MILESTONE_ERROR"
    http_status = 400
    default_message = "Milestone operation failed."

    def __init__(self, message: str | None = None, *, code: str | None = None, details: dict[str, Any] | None = None):
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_http(self) -> HTTPException:
        return HTTPException(
            status_code=self.http_status,
            detail=error_response(self.code, self.message, self.details or None),
        )


class ValidationError(MilestoneError):
    """Bad file size, type, extension or content; raised before any network call."""

    code = "INVALID_FILE"
    http_status = 422
    default_message = "File failed validation."


class StorageError(MilestoneError):
    """An object store upload, delete, read or signing call failed."""

    code = "STORAGE_ERROR"
    http_status = 502
    default_message = "Storage operation failed."


class PersistenceError(MilestoneError):
    """The milestone record could not be updated."""

    code = "PERSISTENCE_ERROR"
    http_status = 500
    default_message = "Milestone could not be saved."


class AuthorizationError(MilestoneError):
    """Action attempted outside its permitted state or by the wrong actor."""

    code = "FORBIDDEN"
    http_status = 403
    default_message = "Action not permitted."


class ConflictError(MilestoneError):
    """The record changed since it was read; an expected status or field value no longer holds."""

    code = "STATUS_CONFLICT"
    http_status = 409
    default_message = "Milestone was modified concurrently."


class NotFoundError(MilestoneError):
    code = "NOT_FOUND"
    http_status = 404
    default_message = "Milestone not found."


class RateLimitError(MilestoneError):
    code = "RATE_LIMITED"
    http_status = 429
    default_message = "Too many attempts, please try again later."


__all__ = [
    "error_response",
    "MilestoneError",
    "ValidationError",
    "StorageError",
    "PersistenceError",
    "AuthorizationError",
    "ConflictError",
    "NotFoundError",
    "RateLimitError",
]

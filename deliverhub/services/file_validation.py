"""Upload validation shared by the payment proof and deliverable workflows.

Every check here runs locally, before the object store is contacted. A file is
accepted only when its size, declared MIME type, filename and leading bytes all
agree with each other.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Final

from deliverhub.config import get_settings
from deliverhub.utils.errors import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES: Final = {
    "image/jpeg": ("jpg", "jpeg"),
    "image/png": ("png",),
    "image/gif": ("gif",),
    "image/webp": ("webp",),
    "application/pdf": ("pdf",),
}

DANGEROUS_EXTENSIONS: Final = frozenset({"exe", "bat", "cmd", "scr", "pif", "js", "vbs", "jar"})

# A dangerous token counts wherever it follows a dot and is not continued by
# another letter or digit, so "x.exe .pdf" and "x.js%00.pdf" are caught too.
_DANGEROUS_TOKEN = re.compile(r"\.(?:" + "|".join(sorted(DANGEROUS_EXTENSIONS)) + r")(?![a-z0-9])")

# Leading bytes of formats that must never be stored, whatever they claim to be.
EXECUTABLE_SIGNATURES: Final = (b"MZ", b"\x7fELF", b"#!", b"\xca\xfe\xba\xbe", b"PK\x03\x04")

MAX_FILENAME_LENGTH: Final = 100

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
_REPEATED_UNDERSCORES = re.compile(r"_+")
_EDGE_CHARS = "._"


@dataclass(frozen=True)
class IncomingFile:
    """An uploaded file held in memory."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def sanitize_filename(filename: str) -> str:
    """Reduce a filename to ``[a-zA-Z0-9.-]`` with ``_`` separators, capped in length.

    Leading and trailing dots and underscores are dropped, so the result is
    never a hidden file or a bare extension.
    """

    cleaned = _UNSAFE_CHARS.sub("_", filename or "")
    cleaned = _REPEATED_UNDERSCORES.sub("_", cleaned)
    cleaned = cleaned.strip(_EDGE_CHARS)[:MAX_FILENAME_LENGTH].strip(_EDGE_CHARS)
    return cleaned or "file"


def _matches_signature(content_type: str, data: bytes) -> bool:
    if content_type == "image/jpeg":
        return data.startswith(b"\xff\xd8\xff")
    if content_type == "image/png":
        return data.startswith(b"\x89PNG\r\n\x1a\n")
    if content_type == "image/gif":
        return data.startswith((b"GIF87a", b"GIF89a"))
    if content_type == "image/webp":
        return len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP"
    if content_type == "application/pdf":
        # Some producers emit a few bytes of garbage before the header.
        return b"%PDF-" in data[:1024]
    return False


def _reject(code: str, message: str, upload: IncomingFile, **details) -> ValidationError:
    logger.warning(
        "Upload rejected",
        extra={"code": code, "filename": upload.filename, "content_type": upload.content_type, "size": upload.size},
    )
    return ValidationError(message, code=code, details=details or None)


def validate_upload(upload: IncomingFile, *, max_bytes: int | None = None) -> str:
    """Validate ``upload`` and return its normalised MIME type.

    Raises :class:`ValidationError` on the first failing check.
    """

    limit = max_bytes if max_bytes is not None else get_settings().MAX_UPLOAD_BYTES
    content_type = (upload.content_type or "").split(";", 1)[0].strip().lower()
    name = (upload.filename or "").strip()

    if upload.size == 0:
        raise _reject("EMPTY_FILE", "No file content provided.", upload)

    if upload.size > limit:
        raise _reject(
            "FILE_TOO_LARGE",
            f"File size exceeds {limit // (1024 * 1024)}MB limit.",
            upload,
            max_bytes=limit,
        )

    if content_type not in ALLOWED_MIME_TYPES:
        raise _reject(
            "UNSUPPORTED_FILE_TYPE",
            f"Invalid file type. Allowed: {', '.join(ALLOWED_MIME_TYPES)}",
            upload,
        )

    segments = [segment.lower() for segment in name.split(".")[1:]]
    if _DANGEROUS_TOKEN.search(name.lower()):
        raise _reject("SUSPICIOUS_FILE", "File contains suspicious extensions.", upload)

    if segments and segments[-1] not in ALLOWED_MIME_TYPES[content_type]:
        raise _reject("EXTENSION_MISMATCH", "File extension does not match file type.", upload)

    head = upload.data[:16]
    if head.startswith(EXECUTABLE_SIGNATURES):
        raise _reject("SUSPICIOUS_CONTENT", "File contains suspicious content.", upload)

    if not _matches_signature(content_type, upload.data):
        raise _reject("CONTENT_MISMATCH", "File content does not match file type.", upload)

    return content_type


__all__ = [
    "ALLOWED_MIME_TYPES",
    "DANGEROUS_EXTENSIONS",
    "IncomingFile",
    "sanitize_filename",
    "validate_upload",
]

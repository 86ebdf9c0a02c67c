"""Object store gateway for the ``payment-proofs`` and ``deliverables`` buckets.

Objects live on the local filesystem under ``STORAGE_ROOT/<bucket>/<path>``.
Buckets are private: the URL recorded for an object is an address inside the
store, not something a browser can fetch. Read access is granted only through
signed URLs, which are ``itsdangerous`` timed tokens checked by the store's own
download route.
"""
from __future__ import annotations

import logging
import mimetypes
import os
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

from itsdangerous import BadSignature, URLSafeTimedSerializer

from deliverhub.config import DELIVERABLES_BUCKET, PAYMENT_PROOFS_BUCKET, Settings
from deliverhub.utils.errors import StorageError
from deliverhub.utils.time import as_utc, utcnow

logger = logging.getLogger(__name__)

KNOWN_BUCKETS = frozenset({PAYMENT_PROOFS_BUCKET, DELIVERABLES_BUCKET})
SIGNED_URL_SALT = "object-download"


class SignedUrlError(StorageError):
    code = "INVALID_SIGNED_URL"
    http_status = 403
    default_message = "Download link is invalid."


class SignedUrlExpired(SignedUrlError):
    code = "SIGNED_URL_EXPIRED"
    http_status = 410
    default_message = "Download link has expired."


class ObjectNotFound(StorageError):
    code = "OBJECT_NOT_FOUND"
    http_status = 404
    default_message = "Object not found."


@dataclass(frozen=True)
class StoredObject:
    bucket: str
    path: str
    size: int
    content_type: str
    url: str


@dataclass(frozen=True)
class ObjectInfo:
    bucket: str
    path: str
    size: int
    modified_at: datetime


@dataclass(frozen=True)
class SignedObject:
    bucket: str
    path: str
    content_type: str


class ObjectStore(Protocol):
    """Operations the workflows need from object storage."""

    def upload(self, bucket: str, path: str, data: bytes, *, content_type: str) -> StoredObject: ...

    def delete(self, bucket: str, path: str) -> None: ...

    def exists(self, bucket: str, path: str) -> bool: ...

    def read(self, bucket: str, path: str) -> bytes: ...

    def object_url(self, bucket: str, path: str) -> str: ...

    def list_objects(self, bucket: str) -> list[ObjectInfo]: ...

    def create_signed_url(self, bucket: str, path: str, *, expires_in: int) -> str: ...

    def resolve_signed_token(self, token: str) -> SignedObject: ...


class LocalObjectStore:
    """Filesystem-backed object store with signed, time-boxed read access."""

    def __init__(self, root: str | os.PathLike[str], *, secret_key: str, public_base_url: str) -> None:
        self.root = Path(root).resolve()
        self.public_base_url = public_base_url.rstrip("/")
        self._serializer = URLSafeTimedSerializer(secret_key, salt=SIGNED_URL_SALT)
        for bucket in KNOWN_BUCKETS:
            (self.root / bucket).mkdir(parents=True, exist_ok=True)

    # -- helpers -----------------------------------------------------------
    def _object_path(self, bucket: str, path: str) -> Path:
        if bucket not in KNOWN_BUCKETS:
            raise StorageError(f"Unknown bucket '{bucket}'.", code="UNKNOWN_BUCKET")
        bucket_root = self.root / bucket
        candidate = (bucket_root / path).resolve()
        if not path or bucket_root not in candidate.parents:
            raise StorageError("Object path escapes its bucket.", code="INVALID_OBJECT_PATH")
        return candidate

    # -- object operations -------------------------------------------------
    def upload(self, bucket: str, path: str, data: bytes, *, content_type: str) -> StoredObject:
        target = self._object_path(bucket, path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            # "xb" refuses to overwrite an existing object.
            with open(target, "xb") as handle:
                handle.write(data)
        except FileExistsError as exc:
            raise StorageError("Object already exists.", code="OBJECT_EXISTS") from exc
        except OSError as exc:
            logger.error("Object upload failed", extra={"bucket": bucket, "path": path, "error": str(exc)})
            raise StorageError("Upload failed.", code="UPLOAD_FAILED") from exc

        logger.info("Object uploaded", extra={"bucket": bucket, "path": path, "size": len(data)})
        return StoredObject(
            bucket=bucket,
            path=path,
            size=len(data),
            content_type=content_type,
            url=self.object_url(bucket, path),
        )

    def delete(self, bucket: str, path: str) -> None:
        target = self._object_path(bucket, path)
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Object delete failed", extra={"bucket": bucket, "path": path, "error": str(exc)})
            raise StorageError("Delete failed.", code="DELETE_FAILED") from exc
        logger.info("Object deleted", extra={"bucket": bucket, "path": path})

    def exists(self, bucket: str, path: str) -> bool:
        return self._object_path(bucket, path).is_file()

    def read(self, bucket: str, path: str) -> bytes:
        target = self._object_path(bucket, path)
        try:
            return target.read_bytes()
        except FileNotFoundError as exc:
            raise ObjectNotFound() from exc
        except OSError as exc:
            raise StorageError("Read failed.", code="READ_FAILED") from exc

    def object_url(self, bucket: str, path: str) -> str:
        return f"{self.public_base_url}/storage/v1/object/{bucket}/{quote(path)}"

    def list_objects(self, bucket: str) -> list[ObjectInfo]:
        if bucket not in KNOWN_BUCKETS:
            raise StorageError(f"Unknown bucket '{bucket}'.", code="UNKNOWN_BUCKET")
        bucket_root = self.root / bucket
        items: list[ObjectInfo] = []
        for file_path in sorted(bucket_root.rglob("*")):
            if not file_path.is_file():
                continue
            stat = file_path.stat()
            items.append(
                ObjectInfo(
                    bucket=bucket,
                    path=file_path.relative_to(bucket_root).as_posix(),
                    size=stat.st_size,
                    modified_at=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
                )
            )
        return items

    # -- signed access -----------------------------------------------------
    def create_signed_url(self, bucket: str, path: str, *, expires_in: int) -> str:
        if expires_in <= 0:
            raise StorageError("Signed URL expiry must be positive.", code="INVALID_EXPIRY")
        if not self.exists(bucket, path):
            raise ObjectNotFound()
        token = self._serializer.dumps({"b": bucket, "p": path, "ttl": int(expires_in)})
        return f"{self.public_base_url}/files/{token}"

    def resolve_signed_token(self, token: str) -> SignedObject:
        try:
            payload, signed_at = self._serializer.loads(token, return_timestamp=True)
        except BadSignature as exc:
            raise SignedUrlError() from exc

        if not isinstance(payload, dict) or not {"b", "p", "ttl"} <= payload.keys():
            raise SignedUrlError()

        age = (utcnow() - as_utc(signed_at)).total_seconds()
        if age > int(payload["ttl"]):
            raise SignedUrlExpired()

        bucket, path = payload["b"], payload["p"]
        if not self.exists(bucket, path):
            raise ObjectNotFound()
        content_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
        return SignedObject(bucket=bucket, path=path, content_type=content_type)


def build_object_store(settings: Settings) -> LocalObjectStore:
    """Create the store configured for this process."""

    return LocalObjectStore(
        settings.STORAGE_ROOT,
        secret_key=settings.SECRET_KEY,
        public_base_url=settings.PUBLIC_BASE_URL,
    )


__all__ = [
    "KNOWN_BUCKETS",
    "LocalObjectStore",
    "ObjectNotFound",
    "ObjectInfo",
    "ObjectStore",
    "SignedObject",
    "SignedUrlError",
    "SignedUrlExpired",
    "StoredObject",
    "build_object_store",
]

"""Signed object downloads."""
import logging
from pathlib import PurePosixPath

from fastapi import APIRouter, Depends, Response

from deliverhub.deps import get_object_store
from deliverhub.services.object_store import ObjectStore
from deliverhub.utils.errors import StorageError

router = APIRouter(prefix="/files", tags=["files"])
logger = logging.getLogger(__name__)


@router.get("/{token}")
def download_signed_object(token: str, store: ObjectStore = Depends(get_object_store)) -> Response:
    """Serve the object named by a signed token: 410 once expired, 403 if tampered with."""

    try:
        signed = store.resolve_signed_token(token)
        data = store.read(signed.bucket, signed.path)
    except StorageError as exc:
        logger.info("Signed download refused", extra={"error_code": exc.code})
        raise exc.to_http() from exc

    filename = PurePosixPath(signed.path).name
    return Response(
        content=data,
        media_type=signed.content_type,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Cache-Control": "no-store",
        },
    )

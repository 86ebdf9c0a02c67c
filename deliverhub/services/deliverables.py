"""Deliverable workflow: freelancer uploads, watermark text, external links and client previews."""
from __future__ import annotations

import logging
from typing import Mapping, Sequence
from urllib.parse import urlparse

from sqlalchemy.orm import Session

from deliverhub.config import DELIVERABLES_BUCKET, get_settings
from deliverhub.core.actors import Actor, ActorRole
from deliverhub.services import milestones as milestones_service
from deliverhub.services.file_validation import IncomingFile, sanitize_filename, validate_upload
from deliverhub.services.milestone_states import client_may_download
from deliverhub.services.object_store import ObjectStore
from deliverhub.services.rate_limit import DELIVERABLE_UPLOAD, RateLimiter
from deliverhub.services.saga import discard_replaced_object, run_with_compensation
from deliverhub.services.storage_paths import resolve_deliverable_path
from deliverhub.services.watermark import PreviewHandle, media_kind_for, render_preview
from deliverhub.services.workflow import WorkflowResult, workflow_operation
from deliverhub.utils.audit import log_audit
from deliverhub.utils.errors import AuthorizationError, NotFoundError, ValidationError
from deliverhub.utils.time import epoch_millis

logger = logging.getLogger(__name__)

MAX_LINK_LENGTH = 1024
MAX_LINK_TITLE_LENGTH = 100
MAX_LINKS = 3
DEFAULT_LINK_TITLE = "Shared Link"
MAX_NAME_LENGTH = 255


def _require_freelancer(actor: Actor) -> None:
    if actor.role is not ActorRole.FREELANCER:
        raise AuthorizationError("Only the freelancer may change the deliverable.", code="WRONG_ACTOR")


def _clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


def deliverable_object_path(freelancer_id: int, milestone_id: int, filename: str) -> str:
    return f"{freelancer_id}/{milestone_id}/{epoch_millis()}-{sanitize_filename(filename)}"


@workflow_operation("upload_deliverable")
def upload_deliverable(
    db: Session,
    store: ObjectStore,
    milestone_id: int,
    upload: IncomingFile,
    *,
    actor: Actor,
    watermark_text: str | None = None,
    limiter: RateLimiter | None = None,
) -> WorkflowResult:
    """Store a new deliverable file for a milestone in any status.

    The name, size, URL, path and content type are replaced in one UPDATE
    that only applies while the row still points at the object read here. If
    that UPDATE fails or loses to a concurrent upload the new object is
    deleted; once it succeeds the previous object is discarded.
    """

    _require_freelancer(actor)
    content_type = validate_upload(upload)
    if limiter is not None:
        limiter.check(DELIVERABLE_UPLOAD, actor.label)

    milestone = milestones_service.get_milestone_for_actor(db, milestone_id, actor)
    previous_path = milestone.deliverable_path
    previous_object = resolve_deliverable_path(milestone)
    path = deliverable_object_path(actor.user_id, milestone.id, upload.filename)
    stored = store.upload(DELIVERABLES_BUCKET, path, upload.data, content_type=content_type)

    values = {
        "deliverable_name": (upload.filename or "file")[:MAX_NAME_LENGTH],
        "deliverable_size": stored.size,
        "deliverable_url": stored.url,
        "deliverable_path": path,
        "deliverable_content_type": content_type,
    }
    if watermark_text is not None:
        values["watermark_text"] = _clean_text(watermark_text)

    def _persist():
        log_audit(
            db,
            actor=actor.label,
            action="UPLOAD_DELIVERABLE",
            entity="Milestone",
            entity_id=milestone.id,
            data={
                "deliverable_path": path,
                "size": stored.size,
                "content_type": content_type,
                "replaced": previous_object is not None,
                "status": milestone.status.value,
            },
        )
        return milestones_service.update_fields(
            db, milestone.id, values, expected={"deliverable_path": previous_path}
        )

    updated = run_with_compensation(
        _persist,
        lambda: store.delete(DELIVERABLES_BUCKET, path),
        context={"operation": "upload_deliverable", "milestone_id": milestone.id, "actor": actor.label},
    )

    discard_replaced_object(store, DELIVERABLES_BUCKET, previous_object, path)
    logger.info(
        "Deliverable uploaded",
        extra={"milestone_id": updated.id, "actor": actor.label, "size": stored.size},
    )
    return WorkflowResult.success(updated)


@workflow_operation("update_watermark")
def update_watermark(db: Session, milestone_id: int, watermark_text: str | None, *, actor: Actor) -> WorkflowResult:
    """Change the preview stamp text; blank text clears it."""

    _require_freelancer(actor)
    milestone = milestones_service.get_milestone_for_actor(db, milestone_id, actor)
    text = _clean_text(watermark_text)
    log_audit(
        db,
        actor=actor.label,
        action="UPDATE_WATERMARK",
        entity="Milestone",
        entity_id=milestone.id,
        data={"cleared": text is None},
    )
    updated = milestones_service.update_fields(db, milestone.id, {"watermark_text": text})
    return WorkflowResult.success(updated)


def _validate_link(link: str | None) -> str | None:
    link = _clean_text(link)
    if link is None:
        return None
    if len(link) > MAX_LINK_LENGTH:
        raise ValidationError("Deliverable link is too long.", code="INVALID_LINK")
    parsed = urlparse(link)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValidationError("Deliverable link must be an http(s) URL.", code="INVALID_LINK")
    return link


def _validate_links(links: Sequence[Mapping[str, str | None]]) -> list[dict[str, str]]:
    cleaned: list[dict[str, str]] = []
    for entry in links:
        url = _validate_link(entry.get("url"))
        if url is None:
            continue
        title = _clean_text(entry.get("title")) or DEFAULT_LINK_TITLE
        if len(title) > MAX_LINK_TITLE_LENGTH:
            raise ValidationError("Link title is too long.", code="INVALID_LINK")
        cleaned.append({"title": title, "url": url})
    if len(cleaned) > MAX_LINKS:
        raise ValidationError(f"Maximum {MAX_LINKS} links allowed per milestone.", code="TOO_MANY_LINKS")
    return cleaned


@workflow_operation("update_deliverable_links")
def update_deliverable_links(
    db: Session,
    milestone_id: int,
    links: Sequence[Mapping[str, str | None]],
    *,
    actor: Actor,
) -> WorkflowResult:
    """Replace the milestone's external links (shared drives, galleries, ...).

    Entries with a blank URL are dropped; an empty list clears the links.
    Every URL must be http(s), and at most :data:`MAX_LINKS` may remain.
    """

    _require_freelancer(actor)
    cleaned = _validate_links(links)
    milestone = milestones_service.get_milestone_for_actor(db, milestone_id, actor)
    log_audit(
        db,
        actor=actor.label,
        action="UPDATE_DELIVERABLE_LINKS",
        entity="Milestone",
        entity_id=milestone.id,
        data={"count": len(cleaned)},
    )
    updated = milestones_service.update_fields(db, milestone.id, {"deliverable_links": cleaned})
    return WorkflowResult.success(updated)


@workflow_operation("get_deliverable_preview")
def get_deliverable_preview(db: Session, store: ObjectStore, milestone_id: int, *, actor: Actor) -> WorkflowResult:
    """Return a watermarked rendition of the deliverable as ``value``.

    After approval clients receive an unavailable handle with reason
    ``superseded`` and are expected to request a download URL instead.
    """

    milestone = milestones_service.get_milestone_for_actor(db, milestone_id, actor)
    deliverable = milestone.deliverable
    if deliverable is None:
        raise NotFoundError("No deliverable has been uploaded for this milestone.", code="DELIVERABLE_NOT_FOUND")

    if actor.role is ActorRole.CLIENT and client_may_download(milestone):
        return WorkflowResult.success(milestone, value=PreviewHandle.unavailable("superseded"))

    path = resolve_deliverable_path(milestone)
    if not path:
        return WorkflowResult.success(milestone, value=PreviewHandle.unavailable("origin_unavailable"))

    settings = get_settings()
    handle = render_preview(
        store,
        DELIVERABLES_BUCKET,
        path,
        milestone.watermark_text,
        media_kind_for(deliverable.content_type, deliverable.name),
        default_text=settings.WATERMARK_DEFAULT_TEXT,
        max_dimension=settings.PREVIEW_MAX_DIMENSION,
        max_source_pixels=settings.PREVIEW_MAX_SOURCE_PIXELS,
    )
    return WorkflowResult.success(milestone, value=handle)


__all__ = [
    "deliverable_object_path",
    "get_deliverable_preview",
    "update_deliverable_links",
    "update_watermark",
    "upload_deliverable",
]

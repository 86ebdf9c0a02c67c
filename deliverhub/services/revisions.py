"""Client revision requests and the freelancer's revision allowance.

A milestone carries ``max_revisions`` (``None`` for unlimited) and
``used_revisions``. Each accepted request consumes one revision; the counter
and the stored request are written in one commit, and reference images are
removed again if that commit does not happen.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Final, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from deliverhub.config import DELIVERABLES_BUCKET, get_settings
from deliverhub.core.actors import Actor, ActorRole
from deliverhub.models.revision import RevisionRequest, RevisionStatus
from deliverhub.services import milestones as milestones_service
from deliverhub.services.file_validation import IncomingFile, sanitize_filename, validate_upload
from deliverhub.services.object_store import ObjectStore
from deliverhub.services.rate_limit import REVISION_REQUEST, RateLimiter
from deliverhub.services.saga import run_with_compensation
from deliverhub.services.workflow import WorkflowResult, workflow_operation
from deliverhub.utils.audit import log_audit
from deliverhub.utils.errors import AuthorizationError, NotFoundError, PersistenceError, ValidationError
from deliverhub.utils.time import epoch_millis, utcnow

logger = logging.getLogger(__name__)

MAX_FEEDBACK_LENGTH: Final = 2000
MAX_REVISION_IMAGES: Final = 5
MAX_REVISION_LIMIT: Final = 50


@dataclass(frozen=True)
class RevisionImage:
    url: str
    expires_in: int


@dataclass(frozen=True)
class RevisionRequestView:
    request: RevisionRequest
    images: list[RevisionImage]


def revision_image_path(milestone_id: int, filename: str) -> str:
    return f"revision-images/{milestone_id}/{epoch_millis()}-{uuid.uuid4().hex[:8]}-{sanitize_filename(filename)}"


def _clean_feedback(feedback: str | None) -> str:
    text = (feedback or "").strip()
    if not text:
        raise ValidationError("Feedback is required.", code="INVALID_FEEDBACK")
    if len(text) > MAX_FEEDBACK_LENGTH:
        raise ValidationError(
            f"Feedback must be at most {MAX_FEEDBACK_LENGTH} characters.",
            code="INVALID_FEEDBACK",
        )
    return text


def _validate_images(images: Sequence[IncomingFile]) -> list[str]:
    if len(images) > MAX_REVISION_IMAGES:
        raise ValidationError(
            f"At most {MAX_REVISION_IMAGES} images can be attached.",
            code="TOO_MANY_IMAGES",
        )
    content_types = [validate_upload(image) for image in images]
    if any(not content_type.startswith("image/") for content_type in content_types):
        raise ValidationError("Revision references must be images.", code="UNSUPPORTED_FILE_TYPE")
    return content_types


@workflow_operation("submit_revision_request")
def submit_revision_request(
    db: Session,
    store: ObjectStore,
    milestone_id: int,
    feedback: str,
    images: Sequence[IncomingFile] = (),
    *,
    actor: Actor,
    limiter: RateLimiter | None = None,
) -> WorkflowResult:
    """Record the client's feedback and consume one revision.

    ``value`` is the stored :class:`RevisionRequest`. Refused with
    ``REVISION_LIMIT_REACHED`` once every allowed revision is used.
    """

    if actor.role is not ActorRole.CLIENT:
        raise AuthorizationError("Only the client may request a revision.", code="WRONG_ACTOR")
    text = _clean_feedback(feedback)
    content_types = _validate_images(images)
    if limiter is not None:
        limiter.check(REVISION_REQUEST, actor.label)

    milestone = milestones_service.get_milestone_for_actor(db, milestone_id, actor)
    if milestone.remaining_revisions == 0:
        raise AuthorizationError("Revision limit reached", code="REVISION_LIMIT_REACHED")

    uploaded: list[str] = []

    def _discard_uploaded() -> None:
        for path in uploaded:
            store.delete(DELIVERABLES_BUCKET, path)

    def _upload_all() -> None:
        for image, content_type in zip(images, content_types):
            path = revision_image_path(milestone.id, image.filename)
            store.upload(DELIVERABLES_BUCKET, path, image.data, content_type=content_type)
            uploaded.append(path)

    context = {"operation": "submit_revision_request", "milestone_id": milestone.id, "actor": actor.label}
    run_with_compensation(_upload_all, _discard_uploaded, context=context)

    request = RevisionRequest(milestone_id=milestone.id, feedback=text, image_paths=list(uploaded))

    def _persist():
        log_audit(
            db,
            actor=actor.label,
            action="REQUEST_REVISION",
            entity="Milestone",
            entity_id=milestone.id,
            data={"images": len(uploaded), "feedback_length": len(text)},
        )
        return milestones_service.record_revision_request(db, request)

    updated = run_with_compensation(_persist, _discard_uploaded, context=context)
    logger.info(
        "Revision requested",
        extra={
            "milestone_id": updated.id,
            "actor": actor.label,
            "used_revisions": updated.used_revisions,
            "max_revisions": updated.max_revisions,
        },
    )
    return WorkflowResult.success(updated, value=request)


@workflow_operation("set_revision_limit")
def set_revision_limit(db: Session, milestone_id: int, max_revisions: int | None, *, actor: Actor) -> WorkflowResult:
    """Set how many revisions the client may request; ``None`` removes the limit.

    Lowering the limit below the revisions already used leaves none remaining;
    used revisions are never reset.
    """

    if actor.role is not ActorRole.FREELANCER:
        raise AuthorizationError("Only the freelancer may change the revision limit.", code="WRONG_ACTOR")
    if max_revisions is not None and not 0 <= max_revisions <= MAX_REVISION_LIMIT:
        raise ValidationError(
            f"Revision limit must be between 0 and {MAX_REVISION_LIMIT}.",
            code="INVALID_REVISION_LIMIT",
        )
    milestone = milestones_service.get_milestone_for_actor(db, milestone_id, actor)
    log_audit(
        db,
        actor=actor.label,
        action="SET_REVISION_LIMIT",
        entity="Milestone",
        entity_id=milestone.id,
        data={"max_revisions": max_revisions, "previous": milestone.max_revisions},
    )
    updated = milestones_service.update_fields(db, milestone.id, {"max_revisions": max_revisions})
    return WorkflowResult.success(updated)


def _get_request(db: Session, milestone_id: int, request_id: int) -> RevisionRequest:
    request = db.scalar(
        select(RevisionRequest).where(RevisionRequest.id == request_id, RevisionRequest.milestone_id == milestone_id)
    )
    if request is None:
        raise NotFoundError("Revision request not found.", code="REVISION_REQUEST_NOT_FOUND")
    return request


@workflow_operation("mark_revision_addressed")
def mark_revision_addressed(db: Session, milestone_id: int, request_id: int, *, actor: Actor) -> WorkflowResult:
    if actor.role is not ActorRole.FREELANCER:
        raise AuthorizationError("Only the freelancer may resolve a revision request.", code="WRONG_ACTOR")
    milestone = milestones_service.get_milestone_for_actor(db, milestone_id, actor)
    request = _get_request(db, milestone.id, request_id)
    if request.status is RevisionStatus.ADDRESSED:
        return WorkflowResult.success(milestone, value=request)

    request.status = RevisionStatus.ADDRESSED
    request.addressed_at = utcnow()
    log_audit(
        db,
        actor=actor.label,
        action="ADDRESS_REVISION",
        entity="Milestone",
        entity_id=milestone.id,
        data={"revision_request_id": request.id},
    )
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "Revision request update failed",
            extra={"milestone_id": milestone.id, "error_type": type(exc).__name__},
        )
        raise PersistenceError() from exc
    db.refresh(request)
    return WorkflowResult.success(milestone, value=request)


@workflow_operation("list_revision_requests")
def list_revision_requests(
    db: Session,
    store: ObjectStore,
    milestone_id: int,
    *,
    actor: Actor,
    ttl: int | None = None,
) -> WorkflowResult:
    """Return every request of the milestone, oldest first, with signed image URLs.

    Both parties may list; image URLs are minted per call and never stored.
    """

    milestone = milestones_service.get_milestone_for_actor(db, milestone_id, actor)
    requests = db.scalars(
        select(RevisionRequest).where(RevisionRequest.milestone_id == milestone.id).order_by(RevisionRequest.id)
    )
    expires_in = ttl or get_settings().SIGNED_URL_TTL_SECONDS
    views = [
        RevisionRequestView(
            request=request,
            images=[
                RevisionImage(
                    url=store.create_signed_url(DELIVERABLES_BUCKET, path, expires_in=expires_in),
                    expires_in=expires_in,
                )
                for path in request.image_paths or ()
            ],
        )
        for request in requests
    ]
    return WorkflowResult.success(milestone, value=views)


__all__ = [
    "MAX_REVISION_IMAGES",
    "RevisionImage",
    "RevisionRequestView",
    "list_revision_requests",
    "mark_revision_addressed",
    "revision_image_path",
    "set_revision_limit",
    "submit_revision_request",
]

"""Freelancer milestone endpoints: review, deliverable, revisions and access URLs."""
from fastapi import APIRouter, Depends, Form, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from deliverhub.core.actors import Actor
from deliverhub.db import get_db
from deliverhub.deps import get_object_store, get_rate_limiter, incoming_file, unwrap
from deliverhub.schemas.milestone import (
    DeliverableLinksUpdate,
    MilestoneRead,
    PreviewUnavailable,
    ReviewDecision,
    SignedUrlRead,
    WatermarkUpdate,
)
from deliverhub.schemas.revision import RevisionLimitUpdate, RevisionRequestDetail, RevisionRequestRead
from deliverhub.security import require_freelancer
from deliverhub.services import deliverables as deliverables_service
from deliverhub.services import milestones as milestones_service
from deliverhub.services import payment_proofs as payment_proofs_service
from deliverhub.services import revisions as revisions_service
from deliverhub.services import signed_access
from deliverhub.services.file_validation import IncomingFile
from deliverhub.services.object_store import ObjectStore
from deliverhub.services.rate_limit import RateLimiter
from deliverhub.utils.errors import MilestoneError

router = APIRouter(prefix="/milestones", tags=["milestones"])

NO_STORE = {"Cache-Control": "no-store"}


def preview_response(handle) -> Response:
    """Stream an available preview; describe an unavailable one as JSON."""

    if handle.available:
        return Response(content=handle.content, media_type=handle.media_type, headers=NO_STORE)
    body = PreviewUnavailable(reason=handle.reason or "unavailable")
    return JSONResponse(content=body.model_dump(), headers=NO_STORE)


@router.get("/{milestone_id}", response_model=MilestoneRead)
def get_milestone(
    milestone_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_freelancer),
) -> MilestoneRead:
    try:
        milestone = milestones_service.get_milestone_for_actor(db, milestone_id, actor)
    except MilestoneError as exc:
        raise exc.to_http() from exc
    return MilestoneRead.from_milestone(milestone)


@router.post("/{milestone_id}/review", response_model=MilestoneRead)
def review_payment_proof(
    milestone_id: int,
    payload: ReviewDecision,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_freelancer),
) -> MilestoneRead:
    """Approve or reject the submitted payment proof."""

    result = unwrap(
        payment_proofs_service.review_payment_proof(db, milestone_id, payload.decision, actor=actor, note=payload.note)
    )
    return MilestoneRead.from_milestone(result.milestone)


@router.post("/{milestone_id}/deliverable", response_model=MilestoneRead)
def upload_deliverable(
    milestone_id: int,
    upload: IncomingFile = Depends(incoming_file),
    watermark_text: str | None = Form(default=None, max_length=500),
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    limiter: RateLimiter = Depends(get_rate_limiter),
    actor: Actor = Depends(require_freelancer),
) -> MilestoneRead:
    result = unwrap(
        deliverables_service.upload_deliverable(
            db,
            store,
            milestone_id,
            upload,
            actor=actor,
            watermark_text=watermark_text,
            limiter=limiter,
        )
    )
    return MilestoneRead.from_milestone(result.milestone)


@router.put("/{milestone_id}/watermark", response_model=MilestoneRead)
def update_watermark(
    milestone_id: int,
    payload: WatermarkUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_freelancer),
) -> MilestoneRead:
    result = unwrap(deliverables_service.update_watermark(db, milestone_id, payload.watermark_text, actor=actor))
    return MilestoneRead.from_milestone(result.milestone)


@router.put("/{milestone_id}/deliverable-links", response_model=MilestoneRead)
def update_deliverable_links(
    milestone_id: int,
    payload: DeliverableLinksUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_freelancer),
) -> MilestoneRead:
    """Replace the external links; an empty list clears them."""

    links = [link.model_dump() for link in payload.links]
    result = unwrap(deliverables_service.update_deliverable_links(db, milestone_id, links, actor=actor))
    return MilestoneRead.from_milestone(result.milestone)


@router.put("/{milestone_id}/revision-limit", response_model=MilestoneRead)
def set_revision_limit(
    milestone_id: int,
    payload: RevisionLimitUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_freelancer),
) -> MilestoneRead:
    result = unwrap(revisions_service.set_revision_limit(db, milestone_id, payload.max_revisions, actor=actor))
    return MilestoneRead.from_milestone(result.milestone)


@router.get("/{milestone_id}/revision-requests", response_model=list[RevisionRequestDetail])
def list_revision_requests(
    milestone_id: int,
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    actor: Actor = Depends(require_freelancer),
) -> list[RevisionRequestDetail]:
    views = unwrap(revisions_service.list_revision_requests(db, store, milestone_id, actor=actor)).value
    return [RevisionRequestDetail.from_view(view) for view in views]


@router.post(
    "/{milestone_id}/revision-requests/{request_id}/addressed",
    response_model=RevisionRequestRead,
)
def mark_revision_addressed(
    milestone_id: int,
    request_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_freelancer),
) -> RevisionRequestRead:
    result = unwrap(revisions_service.mark_revision_addressed(db, milestone_id, request_id, actor=actor))
    return RevisionRequestRead.from_request(result.value)


@router.get("/{milestone_id}/preview")
def preview_deliverable(
    milestone_id: int,
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    actor: Actor = Depends(require_freelancer),
) -> Response:
    """Show the freelancer the same watermarked rendition the client sees."""

    result = unwrap(deliverables_service.get_deliverable_preview(db, store, milestone_id, actor=actor))
    return preview_response(result.value)


@router.get("/{milestone_id}/download-url", response_model=SignedUrlRead)
def deliverable_download_url(
    milestone_id: int,
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    actor: Actor = Depends(require_freelancer),
) -> SignedUrlRead:
    signed = unwrap(signed_access.get_download_url(db, store, milestone_id, actor=actor)).value
    return SignedUrlRead(url=signed.url, expires_in=signed.expires_in, filename=signed.filename)


@router.get("/{milestone_id}/payment-proof-url", response_model=SignedUrlRead)
def payment_proof_url(
    milestone_id: int,
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    actor: Actor = Depends(require_freelancer),
) -> SignedUrlRead:
    signed = unwrap(signed_access.get_payment_proof_url(db, store, milestone_id, actor=actor)).value
    return SignedUrlRead(url=signed.url, expires_in=signed.expires_in)

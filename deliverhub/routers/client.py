"""Client endpoints, authenticated with the project's access token."""
from fastapi import APIRouter, Depends, Form, Response
from sqlalchemy.orm import Session

from deliverhub.core.actors import Actor
from deliverhub.db import get_db
from deliverhub.deps import get_object_store, get_rate_limiter, incoming_file, incoming_files, unwrap
from deliverhub.routers.milestones import preview_response
from deliverhub.schemas.milestone import ClientMilestoneRead, SignedUrlRead
from deliverhub.schemas.revision import RevisionRequestDetail, RevisionRequestRead, RevisionSubmitted
from deliverhub.security import require_client
from deliverhub.services import deliverables as deliverables_service
from deliverhub.services import milestones as milestones_service
from deliverhub.services import payment_proofs as payment_proofs_service
from deliverhub.services import projects as projects_service
from deliverhub.services import revisions as revisions_service
from deliverhub.services import signed_access
from deliverhub.services.file_validation import IncomingFile
from deliverhub.services.object_store import ObjectStore
from deliverhub.services.rate_limit import RateLimiter
from deliverhub.utils.errors import MilestoneError

router = APIRouter(prefix="/client", tags=["client"])


@router.get("/projects/{project_id}/milestones", response_model=list[ClientMilestoneRead])
def list_milestones(
    project_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_client),
) -> list[ClientMilestoneRead]:
    try:
        project = projects_service.get_project_for_actor(db, project_id, actor)
    except MilestoneError as exc:
        raise exc.to_http() from exc
    return [ClientMilestoneRead.from_milestone(m) for m in milestones_service.list_project_milestones(db, project.id)]


@router.post("/milestones/{milestone_id}/payment-proof", response_model=ClientMilestoneRead)
def submit_payment_proof(
    milestone_id: int,
    upload: IncomingFile = Depends(incoming_file),
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    limiter: RateLimiter = Depends(get_rate_limiter),
    actor: Actor = Depends(require_client),
) -> ClientMilestoneRead:
    """Upload a payment proof; the milestone moves to ``payment_submitted``."""

    result = unwrap(
        payment_proofs_service.submit_payment_proof(db, store, milestone_id, upload, actor=actor, limiter=limiter)
    )
    return ClientMilestoneRead.from_milestone(result.milestone)


@router.get("/milestones/{milestone_id}/preview")
def preview_deliverable(
    milestone_id: int,
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    actor: Actor = Depends(require_client),
) -> Response:
    result = unwrap(deliverables_service.get_deliverable_preview(db, store, milestone_id, actor=actor))
    return preview_response(result.value)


@router.get("/milestones/{milestone_id}/download-url", response_model=SignedUrlRead)
def download_url(
    milestone_id: int,
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    actor: Actor = Depends(require_client),
) -> SignedUrlRead:
    """Issue a short-lived download link once payment is approved."""

    signed = unwrap(signed_access.get_download_url(db, store, milestone_id, actor=actor)).value
    return SignedUrlRead(url=signed.url, expires_in=signed.expires_in, filename=signed.filename)


@router.post("/milestones/{milestone_id}/revision-requests", response_model=RevisionSubmitted, status_code=201)
def request_revision(
    milestone_id: int,
    feedback: str = Form(...),
    images: list[IncomingFile] = Depends(incoming_files),
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    limiter: RateLimiter = Depends(get_rate_limiter),
    actor: Actor = Depends(require_client),
) -> RevisionSubmitted:
    """Send feedback with optional reference images; uses one revision."""

    result = unwrap(
        revisions_service.submit_revision_request(
            db, store, milestone_id, feedback, images, actor=actor, limiter=limiter
        )
    )
    return RevisionSubmitted(
        request=RevisionRequestRead.from_request(result.value),
        used_revisions=result.milestone.used_revisions,
        remaining_revisions=result.milestone.remaining_revisions,
    )


@router.get("/milestones/{milestone_id}/revision-requests", response_model=list[RevisionRequestDetail])
def list_revision_requests(
    milestone_id: int,
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    actor: Actor = Depends(require_client),
) -> list[RevisionRequestDetail]:
    views = unwrap(revisions_service.list_revision_requests(db, store, milestone_id, actor=actor)).value
    return [RevisionRequestDetail.from_view(view) for view in views]

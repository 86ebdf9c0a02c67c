"""Short-lived download credentials for approved deliverables."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from deliverhub.config import DELIVERABLES_BUCKET, PAYMENT_PROOFS_BUCKET, get_settings
from deliverhub.core.actors import Actor, ActorRole
from deliverhub.services import milestones as milestones_service
from deliverhub.services.milestone_states import client_may_download
from deliverhub.services.object_store import ObjectStore
from deliverhub.services.storage_paths import resolve_deliverable_path, resolve_payment_proof_path
from deliverhub.services.workflow import WorkflowResult, workflow_operation
from deliverhub.utils.errors import AuthorizationError, NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignedDownload:
    url: str
    expires_in: int
    filename: str | None = None


@workflow_operation("get_download_url")
def get_download_url(
    db: Session,
    store: ObjectStore,
    milestone_id: int,
    *,
    actor: Actor,
    ttl: int | None = None,
) -> WorkflowResult:
    """Mint a signed URL for the clean deliverable.

    Clients get one only once payment is approved; the owning freelancer may
    always fetch their own upload. The URL is never persisted: every call
    signs a fresh one.
    """

    milestone = milestones_service.get_milestone_for_actor(db, milestone_id, actor)
    if actor.role is ActorRole.CLIENT and not client_may_download(milestone):
        raise AuthorizationError(
            "Payment must be approved before downloading.",
            code="PAYMENT_NOT_APPROVED",
            details={"status": milestone.status.value},
        )

    if milestone.deliverable is None:
        raise AuthorizationError("Deliverable not found.", code="DELIVERABLE_NOT_FOUND")
    path = resolve_deliverable_path(milestone)
    if not path:
        raise NotFoundError("Could not locate the deliverable file.", code="DELIVERABLE_PATH_MISSING")

    expires_in = ttl or get_settings().SIGNED_URL_TTL_SECONDS
    url = store.create_signed_url(DELIVERABLES_BUCKET, path, expires_in=expires_in)
    logger.info(
        "Download URL issued",
        extra={"milestone_id": milestone.id, "actor": actor.label, "expires_in": expires_in},
    )
    return WorkflowResult.success(
        milestone,
        value=SignedDownload(url=url, expires_in=expires_in, filename=milestone.deliverable_name),
    )


@workflow_operation("get_payment_proof_url")
def get_payment_proof_url(
    db: Session,
    store: ObjectStore,
    milestone_id: int,
    *,
    actor: Actor,
    ttl: int | None = None,
) -> WorkflowResult:
    """Mint a signed URL so the owning freelancer can inspect the submitted proof."""

    milestone = milestones_service.get_milestone_for_actor(db, milestone_id, actor)
    if actor.role is not ActorRole.FREELANCER:
        raise AuthorizationError("Only the freelancer may review payment proofs.", code="WRONG_ACTOR")
    path = resolve_payment_proof_path(milestone)
    if not path:
        raise NotFoundError("No payment proof has been submitted.", code="PAYMENT_PROOF_NOT_FOUND")

    expires_in = ttl or get_settings().SIGNED_URL_TTL_SECONDS
    url = store.create_signed_url(PAYMENT_PROOFS_BUCKET, path, expires_in=expires_in)
    return WorkflowResult.success(milestone, value=SignedDownload(url=url, expires_in=expires_in))


__all__ = ["SignedDownload", "get_download_url", "get_payment_proof_url"]

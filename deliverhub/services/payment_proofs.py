"""Payment proof lifecycle: client submission and freelancer review."""
from __future__ import annotations

import logging
from typing import Final

from sqlalchemy.orm import Session

from deliverhub.config import PAYMENT_PROOFS_BUCKET
from deliverhub.core.actors import Actor
from deliverhub.services import milestones as milestones_service
from deliverhub.services.file_validation import IncomingFile, sanitize_filename, validate_upload
from deliverhub.services.milestone_states import MilestoneEvent, apply_transition, check_actor, next_status
from deliverhub.services.object_store import ObjectStore
from deliverhub.services.rate_limit import PROOF_UPLOAD, RateLimiter
from deliverhub.services.saga import discard_replaced_object, run_with_compensation
from deliverhub.services.storage_paths import resolve_payment_proof_path
from deliverhub.services.workflow import WorkflowResult, workflow_operation
from deliverhub.utils.audit import log_audit
from deliverhub.utils.errors import PersistenceError, StorageError, ValidationError
from deliverhub.utils.time import epoch_millis

logger = logging.getLogger(__name__)

RETRY_MESSAGE: Final = "Payment proof upload failed, please try again."

DECISIONS: Final = {
    "approve": MilestoneEvent.APPROVE,
    "approved": MilestoneEvent.APPROVE,
    "reject": MilestoneEvent.REJECT,
    "rejected": MilestoneEvent.REJECT,
}


def proof_object_path(milestone_id: int, filename: str) -> str:
    return f"{milestone_id}/{epoch_millis()}-{sanitize_filename(filename)}"


@workflow_operation("submit_payment_proof")
def submit_payment_proof(
    db: Session,
    store: ObjectStore,
    milestone_id: int,
    upload: IncomingFile,
    *,
    actor: Actor,
    limiter: RateLimiter | None = None,
) -> WorkflowResult:
    """Upload a client's payment proof and move the milestone to ``payment_submitted``.

    Steps: validate locally, upload, record the proof pointers together with
    the status change in one conditional UPDATE. If the UPDATE fails or loses
    a race, the uploaded object is deleted before the failure is returned.
    """

    content_type = validate_upload(upload)
    if limiter is not None:
        limiter.check(PROOF_UPLOAD, actor.label)

    milestone = milestones_service.get_milestone_for_actor(db, milestone_id, actor)
    check_actor(MilestoneEvent.SUBMIT_PROOF, actor)
    # Refuse illegal edges before anything is uploaded.
    next_status(milestone.status, MilestoneEvent.SUBMIT_PROOF)

    path = proof_object_path(milestone.id, upload.filename)
    try:
        stored = store.upload(PAYMENT_PROOFS_BUCKET, path, upload.data, content_type=content_type)
    except StorageError as exc:
        raise StorageError(RETRY_MESSAGE, code=exc.code) from exc

    previous_path = resolve_payment_proof_path(milestone)
    resubmission = previous_path is not None

    def _persist():
        log_audit(
            db,
            actor=actor.label,
            action="SUBMIT_PAYMENT_PROOF",
            entity="Milestone",
            entity_id=milestone.id,
            data={
                "previous_status": milestone.status.value,
                "payment_proof_path": path,
                "size": stored.size,
                "content_type": content_type,
                "resubmission": resubmission,
            },
        )
        return apply_transition(
            db,
            milestone,
            MilestoneEvent.SUBMIT_PROOF,
            actor=actor,
            values={"payment_proof_url": stored.url, "payment_proof_path": path},
        )

    try:
        updated = run_with_compensation(
            _persist,
            lambda: store.delete(PAYMENT_PROOFS_BUCKET, path),
            context={"operation": "submit_payment_proof", "milestone_id": milestone.id, "actor": actor.label},
        )
    except PersistenceError as exc:
        raise PersistenceError(RETRY_MESSAGE, code=exc.code) from exc

    discard_replaced_object(store, PAYMENT_PROOFS_BUCKET, previous_path, path)
    logger.info(
        "Payment proof submitted",
        extra={"milestone_id": updated.id, "actor": actor.label, "resubmission": resubmission},
    )
    return WorkflowResult.success(updated)


@workflow_operation("review_payment_proof")
def review_payment_proof(
    db: Session,
    milestone_id: int,
    decision: str,
    *,
    actor: Actor,
    note: str | None = None,
) -> WorkflowResult:
    """Approve or reject a submitted payment proof (milestone owner only)."""

    event = DECISIONS.get((decision or "").strip().lower())
    if event is None:
        raise ValidationError("Decision must be 'approve' or 'reject'.", code="INVALID_DECISION")

    milestone = milestones_service.get_milestone_for_actor(db, milestone_id, actor)
    check_actor(event, actor)

    log_audit(
        db,
        actor=actor.label,
        action="APPROVE_PAYMENT_PROOF" if event is MilestoneEvent.APPROVE else "REJECT_PAYMENT_PROOF",
        entity="Milestone",
        entity_id=milestone.id,
        data={"note": note, "previous_status": milestone.status.value},
    )
    try:
        updated = apply_transition(db, milestone, event, actor=actor)
    except Exception:
        # Drop the pending audit entry; the transition did not happen.
        db.rollback()
        raise

    logger.info(
        "Payment proof reviewed",
        extra={"milestone_id": updated.id, "decision": event.value, "actor": actor.label},
    )
    return WorkflowResult.success(updated)


__all__ = ["DECISIONS", "RETRY_MESSAGE", "proof_object_path", "review_payment_proof", "submit_payment_proof"]

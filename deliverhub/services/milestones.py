"""Milestone record store: lookups and conditional updates."""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.engine import Result
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from deliverhub.config import DELIVERABLES_BUCKET, PAYMENT_PROOFS_BUCKET
from deliverhub.core.actors import Actor, ActorRole
from deliverhub.models.milestone import Milestone, MilestoneStatus
from deliverhub.models.project import Project
from deliverhub.models.revision import RevisionRequest
from deliverhub.services.storage_paths import path_from_legacy_url
from deliverhub.utils.errors import AuthorizationError, ConflictError, NotFoundError, PersistenceError
from deliverhub.utils.time import utcnow

logger = logging.getLogger(__name__)


def get_milestone(db: Session, milestone_id: int) -> Milestone:
    """Return the milestone or raise :class:`NotFoundError`."""

    milestone = db.get(Milestone, milestone_id)
    if milestone is None:
        raise NotFoundError("Milestone not found.", code="MILESTONE_NOT_FOUND")
    return milestone


def get_milestone_for_actor(db: Session, milestone_id: int, actor: Actor) -> Milestone:
    """Return the milestone if ``actor`` may act on it.

    Freelancers must own the parent project; clients must hold the parent
    project's access token.
    """

    milestone = get_milestone(db, milestone_id)
    project = db.get(Project, milestone.project_id)
    if project is None:
        raise NotFoundError("Project not found.", code="PROJECT_NOT_FOUND")

    if actor.role is ActorRole.FREELANCER and project.owner_id == actor.user_id:
        return milestone
    if actor.role is ActorRole.CLIENT and project.id == actor.project_id:
        return milestone
    raise AuthorizationError(
        "You do not have permission to access this milestone.",
        code="NOT_MILESTONE_PARTICIPANT",
    )


def list_project_milestones(db: Session, project_id: int) -> list[Milestone]:
    stmt = select(Milestone).where(Milestone.project_id == project_id).order_by(Milestone.id.asc())
    return list(db.scalars(stmt).all())


def _execute_update(db: Session, stmt) -> Result[Any]:
    return db.execute(stmt.execution_options(synchronize_session=False))


def _reload(db: Session, milestone_id: int) -> Milestone:
    milestone = get_milestone(db, milestone_id)
    db.refresh(milestone)
    return milestone


def compare_and_set_status(
    db: Session,
    milestone_id: int,
    *,
    expected: MilestoneStatus,
    new: MilestoneStatus,
    values: dict[str, Any] | None = None,
) -> Milestone:
    """Move ``milestone_id`` from ``expected`` to ``new`` in a single UPDATE.

    The row is only touched while its status still equals ``expected``;
    otherwise :class:`ConflictError` is raised and nothing changes.
    """

    stmt = (
        update(Milestone)
        .where(Milestone.id == milestone_id, Milestone.status == expected)
        .values(status=new, updated_at=utcnow(), **(values or {}))
    )
    try:
        result = _execute_update(db, stmt)
        if result.rowcount == 0:
            db.rollback()
            current = db.get(Milestone, milestone_id)
            if current is None:
                raise NotFoundError("Milestone not found.", code="MILESTONE_NOT_FOUND")
            db.refresh(current)
            logger.info(
                "Status transition lost a race",
                extra={
                    "milestone_id": milestone_id,
                    "expected_status": expected.value,
                    "actual_status": current.status.value,
                },
            )
            raise ConflictError(
                "Milestone status changed before the update could be applied.",
                details={"expected_status": expected.value, "actual_status": current.status.value},
            )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "Milestone status update failed",
            extra={"milestone_id": milestone_id, "error_type": type(exc).__name__},
        )
        raise PersistenceError() from exc

    return _reload(db, milestone_id)


def update_fields(
    db: Session,
    milestone_id: int,
    values: dict[str, Any],
    *,
    expected: dict[str, Any] | None = None,
) -> Milestone:
    """Replace non-status fields of a milestone in one UPDATE statement.

    ``expected`` maps column names to the values they must still hold; if the
    row exists but one of them changed, :class:`ConflictError` is raised and
    nothing is written.
    """

    if "status" in values:
        raise ValueError("status changes must go through compare_and_set_status")

    stmt = update(Milestone).where(Milestone.id == milestone_id)
    for name, value in (expected or {}).items():
        column = getattr(Milestone, name)
        stmt = stmt.where(column.is_(None) if value is None else column == value)
    stmt = stmt.values(updated_at=utcnow(), **values)
    try:
        result = _execute_update(db, stmt)
        if result.rowcount == 0:
            db.rollback()
            if expected and db.get(Milestone, milestone_id) is not None:
                logger.info(
                    "Field update lost a race",
                    extra={"milestone_id": milestone_id, "fields": sorted(expected)},
                )
                raise ConflictError(
                    "Milestone changed before the update could be applied.",
                    code="CONCURRENT_UPDATE",
                    details={"fields": sorted(expected)},
                )
            raise NotFoundError("Milestone not found.", code="MILESTONE_NOT_FOUND")
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "Milestone field update failed",
            extra={"milestone_id": milestone_id, "fields": sorted(values), "error_type": type(exc).__name__},
        )
        raise PersistenceError() from exc

    return _reload(db, milestone_id)


def record_revision_request(db: Session, request: RevisionRequest) -> Milestone:
    """Count one revision against the milestone and store ``request`` in the same commit.

    The counter only moves while ``used_revisions < max_revisions`` (or the
    limit is unset), so concurrent requests cannot overrun the limit.
    """

    milestone_id = request.milestone_id
    stmt = (
        update(Milestone)
        .where(
            Milestone.id == milestone_id,
            or_(Milestone.max_revisions.is_(None), Milestone.used_revisions < Milestone.max_revisions),
        )
        .values(used_revisions=Milestone.used_revisions + 1, updated_at=utcnow())
    )
    try:
        result = _execute_update(db, stmt)
        if result.rowcount == 0:
            db.rollback()
            if db.get(Milestone, milestone_id) is None:
                raise NotFoundError("Milestone not found.", code="MILESTONE_NOT_FOUND")
            raise AuthorizationError("Revision limit reached", code="REVISION_LIMIT_REACHED")
        db.add(request)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "Revision request not recorded",
            extra={"milestone_id": milestone_id, "error_type": type(exc).__name__},
        )
        raise PersistenceError() from exc

    return _reload(db, milestone_id)


def referenced_object_paths(db: Session) -> dict[str, set[str]]:
    """Return the storage paths currently linked from milestone rows, per bucket.

    Rows without a stored path are matched through their legacy URL. Images
    attached to revision requests live in the deliverables bucket.
    """

    proofs: set[str] = set()
    deliverables: set[str] = set()
    rows = db.execute(
        select(
            Milestone.payment_proof_path,
            Milestone.payment_proof_url,
            Milestone.deliverable_path,
            Milestone.deliverable_url,
        )
    )
    for proof_path, proof_url, deliverable_path, deliverable_url in rows:
        proof = proof_path or path_from_legacy_url(proof_url, PAYMENT_PROOFS_BUCKET)
        deliverable = deliverable_path or path_from_legacy_url(deliverable_url, DELIVERABLES_BUCKET)
        if proof:
            proofs.add(proof)
        if deliverable:
            deliverables.add(deliverable)
    for image_paths in db.scalars(select(RevisionRequest.image_paths)):
        deliverables.update(image_paths or ())
    return {PAYMENT_PROOFS_BUCKET: proofs, DELIVERABLES_BUCKET: deliverables}


__all__ = [
    "compare_and_set_status",
    "get_milestone",
    "get_milestone_for_actor",
    "list_project_milestones",
    "record_revision_request",
    "referenced_object_paths",
    "update_fields",
]

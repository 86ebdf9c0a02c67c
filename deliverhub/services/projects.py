"""Minimal project and milestone creation for freelancers."""
from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from deliverhub.core.actors import Actor, ActorRole
from deliverhub.models.milestone import Milestone, MilestoneStatus
from deliverhub.models.project import Project
from deliverhub.schemas.milestone import MilestoneCreate
from deliverhub.schemas.project import ProjectCreate
from deliverhub.utils.apikey import gen_client_token
from deliverhub.utils.audit import log_audit
from deliverhub.utils.errors import AuthorizationError, NotFoundError, PersistenceError

logger = logging.getLogger(__name__)


def get_project_for_actor(db: Session, project_id: int, actor: Actor) -> Project:
    project = db.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project not found.", code="PROJECT_NOT_FOUND")
    if actor.role is ActorRole.FREELANCER and project.owner_id == actor.user_id:
        return project
    if actor.role is ActorRole.CLIENT and project.id == actor.project_id:
        return project
    raise AuthorizationError("You do not have access to this project.", code="NOT_PROJECT_PARTICIPANT")


def _commit(db: Session, what: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Create failed", extra={"entity": what, "error_type": type(exc).__name__})
        raise PersistenceError(f"{what} could not be saved.") from exc


def create_project(db: Session, payload: ProjectCreate, *, actor: Actor) -> Project:
    """Create a project owned by the calling freelancer with a fresh client access token."""

    if actor.role is not ActorRole.FREELANCER:
        raise AuthorizationError("Only freelancers may create projects.", code="WRONG_ACTOR")

    project = Project(
        owner_id=actor.user_id,
        name=payload.name,
        client_email=payload.client_email,
        currency=payload.currency,
        client_access_token=gen_client_token(),
    )
    db.add(project)
    db.flush()
    log_audit(
        db,
        actor=actor.label,
        action="CREATE_PROJECT",
        entity="Project",
        entity_id=project.id,
        data={"name": project.name, "client_email": project.client_email, "currency": project.currency},
    )
    _commit(db, "Project")
    db.refresh(project)
    return project


def create_milestone(db: Session, project_id: int, payload: MilestoneCreate, *, actor: Actor) -> Milestone:
    """Add a ``pending`` milestone to one of the freelancer's projects."""

    project = get_project_for_actor(db, project_id, actor)
    if actor.role is not ActorRole.FREELANCER:
        raise AuthorizationError("Only the freelancer may add milestones.", code="WRONG_ACTOR")

    milestone = Milestone(
        project_id=project.id,
        title=payload.title,
        price=payload.price,
        status=MilestoneStatus.PENDING,
        watermark_text=(payload.watermark_text or "").strip() or None,
    )
    db.add(milestone)
    db.flush()
    log_audit(
        db,
        actor=actor.label,
        action="CREATE_MILESTONE",
        entity="Milestone",
        entity_id=milestone.id,
        data={"project_id": project.id, "title": milestone.title, "price": str(milestone.price)},
    )
    _commit(db, "Milestone")
    db.refresh(milestone)
    return milestone


__all__ = ["create_milestone", "create_project", "get_project_for_actor"]

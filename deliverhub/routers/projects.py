"""Freelancer project endpoints."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from deliverhub.core.actors import Actor
from deliverhub.db import get_db
from deliverhub.schemas.milestone import MilestoneCreate, MilestoneRead
from deliverhub.schemas.project import ProjectCreate, ProjectCreated, ProjectRead
from deliverhub.security import require_freelancer
from deliverhub.services import milestones as milestones_service
from deliverhub.services import projects as projects_service
from deliverhub.utils.errors import MilestoneError

router = APIRouter(prefix="/projects", tags=["projects"])


@router.post("", response_model=ProjectCreated, status_code=status.HTTP_201_CREATED)
def create_project(
    payload: ProjectCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_freelancer),
):
    """Create a project; the response carries the client access token once."""

    try:
        return projects_service.create_project(db, payload, actor=actor)
    except MilestoneError as exc:
        raise exc.to_http() from exc


@router.get("/{project_id}", response_model=ProjectRead)
def get_project(
    project_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_freelancer),
):
    try:
        return projects_service.get_project_for_actor(db, project_id, actor)
    except MilestoneError as exc:
        raise exc.to_http() from exc


@router.post("/{project_id}/milestones", response_model=MilestoneRead, status_code=status.HTTP_201_CREATED)
def create_milestone(
    project_id: int,
    payload: MilestoneCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_freelancer),
) -> MilestoneRead:
    try:
        milestone = projects_service.create_milestone(db, project_id, payload, actor=actor)
    except MilestoneError as exc:
        raise exc.to_http() from exc
    return MilestoneRead.from_milestone(milestone)


@router.get("/{project_id}/milestones", response_model=list[MilestoneRead])
def list_milestones(
    project_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_freelancer),
) -> list[MilestoneRead]:
    try:
        project = projects_service.get_project_for_actor(db, project_id, actor)
    except MilestoneError as exc:
        raise exc.to_http() from exc
    return [MilestoneRead.from_milestone(m) for m in milestones_service.list_project_milestones(db, project.id)]

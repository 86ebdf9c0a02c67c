"""Schemas for revision requests."""
from datetime import datetime

from pydantic import BaseModel, Field

from deliverhub.models.revision import RevisionRequest, RevisionStatus
from deliverhub.services.revisions import MAX_REVISION_LIMIT, RevisionRequestView

from .milestone import SignedUrlRead


class RevisionRequestRead(BaseModel):
    id: int
    milestone_id: int
    feedback: str
    status: RevisionStatus
    image_count: int
    requested_at: datetime
    addressed_at: datetime | None

    @classmethod
    def from_request(cls, request: RevisionRequest) -> "RevisionRequestRead":
        return cls(
            id=request.id,
            milestone_id=request.milestone_id,
            feedback=request.feedback,
            status=request.status,
            image_count=len(request.image_paths or ()),
            requested_at=request.created_at,
            addressed_at=request.addressed_at,
        )


class RevisionRequestDetail(RevisionRequestRead):
    images: list[SignedUrlRead]

    @classmethod
    def from_view(cls, view: RevisionRequestView) -> "RevisionRequestDetail":
        base = RevisionRequestRead.from_request(view.request)
        return cls(
            **base.model_dump(),
            images=[SignedUrlRead(url=image.url, expires_in=image.expires_in) for image in view.images],
        )


class RevisionSubmitted(BaseModel):
    request: RevisionRequestRead
    used_revisions: int
    remaining_revisions: int | None


class RevisionLimitUpdate(BaseModel):
    max_revisions: int | None = Field(default=None, ge=0, le=MAX_REVISION_LIMIT)

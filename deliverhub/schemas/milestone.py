"""Schemas for milestone entities.

Freelancer and client payloads are separate models. Neither carries a storage
URL or path: files are only reachable through previews and signed URLs.
"""
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from deliverhub.models.milestone import Milestone, MilestoneStatus
from deliverhub.services.milestone_states import client_may_download
from deliverhub.services.status_labels import display_status


class MilestoneCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    price: Decimal = Field(ge=Decimal("0"), max_digits=18, decimal_places=2)
    watermark_text: str | None = Field(default=None, max_length=500)


class DeliverableRead(BaseModel):
    name: str
    size: int
    content_type: str | None = None


class DeliverableLinkRead(BaseModel):
    title: str
    url: str


class StatusLabelRead(BaseModel):
    code: str
    label: str
    description: str


def _links(milestone: Milestone) -> list[DeliverableLinkRead]:
    return [DeliverableLinkRead(title=link["title"], url=link["url"]) for link in milestone.deliverable_links or ()]


class MilestoneRead(BaseModel):
    id: int
    project_id: int
    title: str
    price: Decimal
    status: MilestoneStatus
    display_status: StatusLabelRead
    deliverable: DeliverableRead | None
    deliverable_links: list[DeliverableLinkRead]
    watermark_text: str | None
    has_payment_proof: bool
    max_revisions: int | None
    used_revisions: int
    remaining_revisions: int | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_milestone(cls, milestone: Milestone) -> "MilestoneRead":
        deliverable = milestone.deliverable
        label = display_status(milestone)
        return cls(
            id=milestone.id,
            project_id=milestone.project_id,
            title=milestone.title,
            price=milestone.price,
            status=milestone.status,
            display_status=StatusLabelRead(code=label.code, label=label.label, description=label.description),
            deliverable=(
                DeliverableRead(name=deliverable.name, size=deliverable.size, content_type=deliverable.content_type)
                if deliverable
                else None
            ),
            deliverable_links=_links(milestone),
            watermark_text=milestone.watermark_text,
            has_payment_proof=bool(milestone.payment_proof_path or milestone.payment_proof_url),
            max_revisions=milestone.max_revisions,
            used_revisions=milestone.used_revisions or 0,
            remaining_revisions=milestone.remaining_revisions,
            created_at=milestone.created_at,
            updated_at=milestone.updated_at,
        )


class ClientMilestoneRead(BaseModel):
    """What the client sees: external links are withheld until payment is approved."""

    id: int
    project_id: int
    title: str
    price: Decimal
    status: MilestoneStatus
    display_status: StatusLabelRead
    deliverable: DeliverableRead | None
    deliverable_links: list[DeliverableLinkRead]
    preview_available: bool
    download_available: bool
    remaining_revisions: int | None
    can_request_revision: bool
    updated_at: datetime

    @classmethod
    def from_milestone(cls, milestone: Milestone) -> "ClientMilestoneRead":
        deliverable = milestone.deliverable
        approved = client_may_download(milestone)
        label = display_status(milestone)
        return cls(
            id=milestone.id,
            project_id=milestone.project_id,
            title=milestone.title,
            price=milestone.price,
            status=milestone.status,
            display_status=StatusLabelRead(code=label.code, label=label.label, description=label.description),
            deliverable=(
                DeliverableRead(name=deliverable.name, size=deliverable.size, content_type=deliverable.content_type)
                if deliverable
                else None
            ),
            deliverable_links=_links(milestone) if approved else [],
            preview_available=deliverable is not None and not approved,
            download_available=deliverable is not None and approved,
            remaining_revisions=milestone.remaining_revisions,
            can_request_revision=milestone.remaining_revisions != 0,
            updated_at=milestone.updated_at,
        )


class ReviewDecision(BaseModel):
    decision: str = Field(min_length=1, max_length=20)
    note: str | None = Field(default=None, max_length=500)


class WatermarkUpdate(BaseModel):
    watermark_text: str | None = Field(default=None, max_length=500)


class DeliverableLinkInput(BaseModel):
    title: str | None = Field(default=None, max_length=100)
    url: str | None = Field(default=None, max_length=1024)


class DeliverableLinksUpdate(BaseModel):
    links: list[DeliverableLinkInput] = Field(default_factory=list, max_length=10)


class SignedUrlRead(BaseModel):
    url: str
    expires_in: int
    filename: str | None = None


class PreviewUnavailable(BaseModel):
    available: bool = False
    reason: str

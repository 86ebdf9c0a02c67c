"""Client revision requests raised against a milestone's deliverable."""
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import JSON, DateTime, Enum as SqlEnum, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class RevisionStatus(str, PyEnum):
    PENDING = "pending"
    ADDRESSED = "addressed"


class RevisionRequest(Base):
    """Feedback from the client, optionally with reference images.

    ``image_paths`` are object paths in the deliverables bucket, under
    ``revision-images/{milestone_id}/``.
    """

    __tablename__ = "revision_requests"

    milestone_id: Mapped[int] = mapped_column(
        ForeignKey("milestones.id", ondelete="CASCADE"), nullable=False, index=True
    )
    feedback: Mapped[str] = mapped_column(Text, nullable=False)
    image_paths: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[RevisionStatus] = mapped_column(
        SqlEnum(RevisionStatus, name="revisionstatus", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=RevisionStatus.PENDING,
    )
    addressed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    milestone = relationship("Milestone", back_populates="revision_requests")

"""Milestone model definitions."""
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import JSON, BigInteger, CheckConstraint, Enum as SqlEnum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class MilestoneStatus(str, PyEnum):
    """Persisted payment statuses of a milestone."""

    PENDING = "pending"
    PAYMENT_SUBMITTED = "payment_submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Deliverable:
    """The freelancer's work artifact attached to a milestone."""

    name: str
    size: int
    url: str
    path: str | None = None
    content_type: str | None = None


class Milestone(Base):
    """A priced unit of project work with its own payment and delivery lifecycle."""

    __tablename__ = "milestones"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_milestone_non_negative_price"),
        CheckConstraint(
            "deliverable_size IS NULL OR deliverable_size >= 0",
            name="ck_milestone_deliverable_size_non_negative",
        ),
    )

    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    status: Mapped[MilestoneStatus] = mapped_column(
        SqlEnum(MilestoneStatus, name="milestonestatus", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=MilestoneStatus.PENDING,
    )

    payment_proof_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    payment_proof_path: Mapped[str | None] = mapped_column(String(512), nullable=True)

    deliverable_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    deliverable_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    deliverable_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    deliverable_path: Mapped[str | None] = mapped_column(String(512), nullable=True)
    deliverable_content_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    # [{"title": ..., "url": ...}], at most three entries.
    deliverable_links: Mapped[list[dict[str, str]]] = mapped_column(JSON, nullable=False, default=list)
    watermark_text: Mapped[str | None] = mapped_column(Text, nullable=True)

    # NULL means the client may request any number of revisions.
    max_revisions: Mapped[int | None] = mapped_column(Integer, nullable=True)
    used_revisions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    project = relationship("Project", back_populates="milestones")
    revision_requests = relationship(
        "RevisionRequest",
        back_populates="milestone",
        cascade="all, delete-orphan",
        order_by="RevisionRequest.id",
    )

    @property
    def remaining_revisions(self) -> int | None:
        if self.max_revisions is None:
            return None
        return max(0, self.max_revisions - (self.used_revisions or 0))

    @property
    def deliverable(self) -> Deliverable | None:
        if not self.deliverable_url and not self.deliverable_path:
            return None
        return Deliverable(
            name=self.deliverable_name or "",
            size=int(self.deliverable_size or 0),
            url=self.deliverable_url or "",
            path=self.deliverable_path,
            content_type=self.deliverable_content_type,
        )

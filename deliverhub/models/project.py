"""Project model (minimal: ownership and client access only)."""
from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class Project(Base):
    """A freelancer project shared with a single client."""

    __tablename__ = "projects"

    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    client_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Secret handed to the client; presented back in the X-Client-Token header.
    client_access_token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False, index=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    owner = relationship("User", back_populates="projects")
    milestones = relationship(
        "Milestone",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="Milestone.id",
    )

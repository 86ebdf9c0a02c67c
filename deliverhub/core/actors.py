"""Authenticated actors acting on milestones."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ActorRole(str, Enum):
    FREELANCER = "freelancer"
    CLIENT = "client"


@dataclass(frozen=True)
class Actor:
    """Who is calling a workflow.

    Freelancers are identified by their user id; clients by the project whose
    access token they presented.
    """

    role: ActorRole
    user_id: int | None = None
    project_id: int | None = None

    @property
    def label(self) -> str:
        if self.role is ActorRole.FREELANCER:
            return f"freelancer:{self.user_id}"
        return f"client:project:{self.project_id}"

    @classmethod
    def freelancer(cls, user_id: int) -> "Actor":
        return cls(role=ActorRole.FREELANCER, user_id=user_id)

    @classmethod
    def client(cls, project_id: int) -> "Actor":
        return cls(role=ActorRole.CLIENT, project_id=project_id)


__all__ = ["Actor", "ActorRole"]

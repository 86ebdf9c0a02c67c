"""Schemas for project entities."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class ProjectCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    client_email: EmailStr | None = None
    currency: str = Field(default="USD", pattern=r"^[A-Z]{3}$")


class ProjectRead(BaseModel):
    id: int
    owner_id: int
    name: str
    client_email: EmailStr | None
    currency: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProjectCreated(ProjectRead):
    """Returned once, at creation: the token is what the client authenticates with."""

    client_access_token: str

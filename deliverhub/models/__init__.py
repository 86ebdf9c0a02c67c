"""ORM models package."""
from .api_key import ApiKey, ApiScope
from .audit import AuditLog
from .base import Base
from .milestone import Deliverable, Milestone, MilestoneStatus
from .project import Project
from .revision import RevisionRequest, RevisionStatus
from .scheduler_lock import SchedulerLock
from .user import User

__all__ = [
    "ApiKey",
    "ApiScope",
    "AuditLog",
    "Base",
    "Deliverable",
    "Milestone",
    "MilestoneStatus",
    "Project",
    "RevisionRequest",
    "RevisionStatus",
    "SchedulerLock",
    "User",
]

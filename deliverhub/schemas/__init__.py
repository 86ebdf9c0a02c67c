"""Schema package exports."""
from .milestone import (
    ClientMilestoneRead,
    DeliverableLinkInput,
    DeliverableLinkRead,
    DeliverableLinksUpdate,
    DeliverableRead,
    MilestoneCreate,
    MilestoneRead,
    PreviewUnavailable,
    ReviewDecision,
    SignedUrlRead,
    StatusLabelRead,
    WatermarkUpdate,
)
from .project import ProjectCreate, ProjectCreated, ProjectRead
from .revision import RevisionLimitUpdate, RevisionRequestDetail, RevisionRequestRead, RevisionSubmitted

__all__ = [
    "ClientMilestoneRead",
    "DeliverableLinkInput",
    "DeliverableLinkRead",
    "DeliverableLinksUpdate",
    "DeliverableRead",
    "MilestoneCreate",
    "MilestoneRead",
    "PreviewUnavailable",
    "ProjectCreate",
    "ProjectCreated",
    "ProjectRead",
    "ReviewDecision",
    "RevisionLimitUpdate",
    "RevisionRequestDetail",
    "RevisionRequestRead",
    "RevisionSubmitted",
    "SignedUrlRead",
    "StatusLabelRead",
    "WatermarkUpdate",
]

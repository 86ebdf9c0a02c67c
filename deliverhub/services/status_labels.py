"""Display vocabulary for milestone cards.

Only the four payment statuses are persisted. The labels below are derived
from the status plus whether a deliverable is attached, and exist purely for
presentation.
"""
from __future__ import annotations

from dataclasses import dataclass

from deliverhub.models.milestone import Milestone, MilestoneStatus


@dataclass(frozen=True)
class StatusLabel:
    code: str
    label: str
    description: str


IN_PROGRESS = StatusLabel("in_progress", "In progress", "Work on this milestone has not been delivered yet.")
DELIVERED = StatusLabel("delivered", "Delivered", "A deliverable is ready; a watermarked preview is available.")
UNDER_REVIEW = StatusLabel("under_review", "Payment under review", "The freelancer is reviewing the payment proof.")
REVISION_REQUESTED = StatusLabel(
    "revision_requested",
    "Payment proof rejected",
    "The payment proof was rejected; a new proof can be submitted.",
)
COMPLETED = StatusLabel("completed", "Completed", "Payment approved; the deliverable can be downloaded.")


def display_status(milestone: Milestone) -> StatusLabel:
    status = milestone.status
    if status == MilestoneStatus.APPROVED:
        return COMPLETED
    if status == MilestoneStatus.PAYMENT_SUBMITTED:
        return UNDER_REVIEW
    if status == MilestoneStatus.REJECTED:
        return REVISION_REQUESTED
    return DELIVERED if milestone.deliverable is not None else IN_PROGRESS


__all__ = ["StatusLabel", "display_status"]

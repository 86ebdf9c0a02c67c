"""Milestone payment state machine.

States: ``pending`` (initial), ``payment_submitted``, ``approved`` and
``rejected``. Only the edges listed in :data:`TRANSITIONS` exist; every other
(state, event) pair is refused before the record is touched. The deliverable
fields are not part of the machine: they can be replaced in any state.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Final

from sqlalchemy.orm import Session

from deliverhub.core.actors import Actor, ActorRole
from deliverhub.models.milestone import Milestone, MilestoneStatus
from deliverhub.services import milestones as milestones_service
from deliverhub.utils.errors import AuthorizationError

logger = logging.getLogger(__name__)


class MilestoneEvent(str, Enum):
    SUBMIT_PROOF = "submit_proof"
    APPROVE = "approve"
    REJECT = "reject"


TRANSITIONS: Final[dict[tuple[MilestoneStatus, MilestoneEvent], MilestoneStatus]] = {
    (MilestoneStatus.PENDING, MilestoneEvent.SUBMIT_PROOF): MilestoneStatus.PAYMENT_SUBMITTED,
    (MilestoneStatus.REJECTED, MilestoneEvent.SUBMIT_PROOF): MilestoneStatus.PAYMENT_SUBMITTED,
    (MilestoneStatus.PAYMENT_SUBMITTED, MilestoneEvent.APPROVE): MilestoneStatus.APPROVED,
    (MilestoneStatus.PAYMENT_SUBMITTED, MilestoneEvent.REJECT): MilestoneStatus.REJECTED,
}

EVENT_ROLES: Final[dict[MilestoneEvent, ActorRole]] = {
    MilestoneEvent.SUBMIT_PROOF: ActorRole.CLIENT,
    MilestoneEvent.APPROVE: ActorRole.FREELANCER,
    MilestoneEvent.REJECT: ActorRole.FREELANCER,
}


def next_status(status: MilestoneStatus, event: MilestoneEvent) -> MilestoneStatus:
    """Return the target state of ``event`` from ``status`` or refuse the edge."""

    try:
        return TRANSITIONS[(status, event)]
    except KeyError:
        raise AuthorizationError(
            f"Cannot {event.value.replace('_', ' ')} while milestone is {status.value}.",
            code="INVALID_TRANSITION",
            details={"status": status.value, "event": event.value},
        ) from None


def check_actor(event: MilestoneEvent, actor: Actor) -> None:
    expected = EVENT_ROLES[event]
    if actor.role is not expected:
        raise AuthorizationError(
            f"Only the {expected.value} may {event.value.replace('_', ' ')}.",
            code="WRONG_ACTOR",
        )


def apply_transition(
    db: Session,
    milestone: Milestone,
    event: MilestoneEvent,
    *,
    actor: Actor,
    values: dict[str, Any] | None = None,
) -> Milestone:
    """Apply ``event`` to ``milestone`` with a compare-and-swap on its current status.

    ``values`` carries the side-effect fields of the edge (e.g. the payment
    proof pointers) so they land in the same UPDATE as the status change.
    """

    check_actor(event, actor)
    current = milestone.status
    target = next_status(current, event)
    updated = milestones_service.compare_and_set_status(
        db,
        milestone.id,
        expected=current,
        new=target,
        values=values,
    )
    logger.info(
        "Milestone transition applied",
        extra={
            "milestone_id": milestone.id,
            "event": event.value,
            "from_status": current.value,
            "to_status": target.value,
            "actor": actor.label,
        },
    )
    return updated


def client_may_download(milestone: Milestone) -> bool:
    """The clean deliverable is released only once payment is approved."""

    return milestone.status == MilestoneStatus.APPROVED


__all__ = [
    "EVENT_ROLES",
    "MilestoneEvent",
    "TRANSITIONS",
    "apply_transition",
    "check_actor",
    "client_may_download",
    "next_status",
]

from itertools import product

import pytest

from deliverhub.config import PAYMENT_PROOFS_BUCKET
from deliverhub.core.actors import Actor, ActorRole
from deliverhub.models import MilestoneStatus
from deliverhub.services import milestones as milestones_service
from deliverhub.services.milestone_states import (
    TRANSITIONS,
    MilestoneEvent,
    apply_transition,
    next_status,
)
from deliverhub.services.payment_proofs import review_payment_proof, submit_payment_proof
from deliverhub.utils.errors import AuthorizationError, ConflictError

ILLEGAL_PAIRS = [
    (status, event)
    for status, event in product(MilestoneStatus, MilestoneEvent)
    if (status, event) not in TRANSITIONS
]


def test_transition_table_has_exactly_four_edges():
    assert TRANSITIONS == {
        (MilestoneStatus.PENDING, MilestoneEvent.SUBMIT_PROOF): MilestoneStatus.PAYMENT_SUBMITTED,
        (MilestoneStatus.REJECTED, MilestoneEvent.SUBMIT_PROOF): MilestoneStatus.PAYMENT_SUBMITTED,
        (MilestoneStatus.PAYMENT_SUBMITTED, MilestoneEvent.APPROVE): MilestoneStatus.APPROVED,
        (MilestoneStatus.PAYMENT_SUBMITTED, MilestoneEvent.REJECT): MilestoneStatus.REJECTED,
    }


@pytest.mark.parametrize("status, event", ILLEGAL_PAIRS)
def test_next_status_refuses_illegal_edges(status, event):
    with pytest.raises(AuthorizationError) as excinfo:
        next_status(status, event)
    assert excinfo.value.code == "INVALID_TRANSITION"


@pytest.mark.parametrize("status, event", ILLEGAL_PAIRS)
def test_illegal_operation_leaves_status_unchanged(
    status, event, db_session, make_milestone, make_upload, png_bytes, object_store, freelancer_actor, client_actor
):
    milestone = make_milestone(status=status)

    if event is MilestoneEvent.SUBMIT_PROOF:
        result = submit_payment_proof(db_session, object_store, milestone.id, make_upload(png_bytes), actor=client_actor)
    else:
        result = review_payment_proof(db_session, milestone.id, event.value, actor=freelancer_actor)

    assert not result.ok
    assert isinstance(result.error, AuthorizationError)
    db_session.refresh(milestone)
    assert milestone.status == status
    # Refused before any upload.
    assert object_store.list_objects(PAYMENT_PROOFS_BUCKET) == []


def test_wrong_actor_cannot_approve(db_session, make_milestone, client_actor):
    milestone = make_milestone(status=MilestoneStatus.PAYMENT_SUBMITTED)

    result = review_payment_proof(db_session, milestone.id, "approve", actor=client_actor)

    assert not result.ok
    assert result.error.code == "WRONG_ACTOR"
    db_session.refresh(milestone)
    assert milestone.status == MilestoneStatus.PAYMENT_SUBMITTED


def test_non_owner_cannot_review(db_session, make_milestone, make_freelancer):
    milestone = make_milestone(status=MilestoneStatus.PAYMENT_SUBMITTED)
    stranger, _ = make_freelancer()

    result = review_payment_proof(db_session, milestone.id, "approve", actor=Actor.freelancer(stranger.id))

    assert not result.ok
    assert result.error.code == "NOT_MILESTONE_PARTICIPANT"


def test_unknown_decision_is_a_validation_failure(db_session, make_milestone, freelancer_actor):
    milestone = make_milestone(status=MilestoneStatus.PAYMENT_SUBMITTED)

    result = review_payment_proof(db_session, milestone.id, "maybe", actor=freelancer_actor)

    assert not result.ok
    assert result.error.code == "INVALID_DECISION"
    assert result.error.http_status == 422


def test_compare_and_set_detects_stale_expected_status(db_session, make_milestone):
    milestone = make_milestone(status=MilestoneStatus.PAYMENT_SUBMITTED)

    milestones_service.compare_and_set_status(
        db_session, milestone.id, expected=MilestoneStatus.PAYMENT_SUBMITTED, new=MilestoneStatus.APPROVED
    )
    with pytest.raises(ConflictError) as excinfo:
        milestones_service.compare_and_set_status(
            db_session, milestone.id, expected=MilestoneStatus.PAYMENT_SUBMITTED, new=MilestoneStatus.REJECTED
        )

    assert excinfo.value.details == {"expected_status": "payment_submitted", "actual_status": "approved"}
    db_session.refresh(milestone)
    assert milestone.status == MilestoneStatus.APPROVED


def test_stale_in_memory_status_turns_into_conflict(db_session, make_milestone, freelancer_actor):
    milestone = make_milestone(status=MilestoneStatus.PAYMENT_SUBMITTED)
    # Another request rejects the proof after this one read the row.
    milestones_service.compare_and_set_status(
        db_session, milestone.id, expected=MilestoneStatus.PAYMENT_SUBMITTED, new=MilestoneStatus.REJECTED
    )
    milestone.status = MilestoneStatus.PAYMENT_SUBMITTED

    with pytest.raises(ConflictError):
        apply_transition(db_session, milestone, MilestoneEvent.APPROVE, actor=freelancer_actor)

    db_session.refresh(milestone)
    assert milestone.status == MilestoneStatus.REJECTED


def test_update_fields_refuses_status(db_session, make_milestone):
    milestone = make_milestone()
    with pytest.raises(ValueError):
        milestones_service.update_fields(db_session, milestone.id, {"status": MilestoneStatus.APPROVED})


def test_every_event_belongs_to_a_milestone_party():
    assert set(ActorRole) == {ActorRole.FREELANCER, ActorRole.CLIENT}
    assert Actor.freelancer(7).label == "freelancer:7"
    assert Actor.client(3).label == "client:project:3"

import os
from datetime import timedelta

from deliverhub.config import DELIVERABLES_BUCKET, PAYMENT_PROOFS_BUCKET
from deliverhub.core.runtime_state import last_sweep
from deliverhub.services.deliverables import upload_deliverable
from deliverhub.services.orphan_sweep import sweep_orphans_once
from deliverhub.services.payment_proofs import submit_payment_proof
from deliverhub.utils.errors import StorageError
from deliverhub.utils.time import utcnow


def _age(store, bucket: str, path: str, seconds: int) -> None:
    target = store.root / bucket / path
    stamp = (utcnow() - timedelta(seconds=seconds)).timestamp()
    os.utime(target, (stamp, stamp))


def test_sweep_removes_only_old_unreferenced_objects(
    db_session, make_milestone, make_upload, png_bytes, object_store, client_actor, freelancer_actor
):
    milestone = make_milestone()
    proof = submit_payment_proof(db_session, object_store, milestone.id, make_upload(png_bytes), actor=client_actor)
    delivered = upload_deliverable(db_session, object_store, milestone.id, make_upload(png_bytes), actor=freelancer_actor)
    object_store.upload(PAYMENT_PROOFS_BUCKET, "9/orphan.png", png_bytes, content_type="image/png")
    object_store.upload(DELIVERABLES_BUCKET, "1/9/fresh.png", png_bytes, content_type="image/png")
    for bucket, path in [
        (PAYMENT_PROOFS_BUCKET, proof.milestone.payment_proof_path),
        (DELIVERABLES_BUCKET, delivered.milestone.deliverable_path),
        (PAYMENT_PROOFS_BUCKET, "9/orphan.png"),
    ]:
        _age(object_store, bucket, path, 7200)

    summary = sweep_orphans_once(db_session, object_store, grace_seconds=3600)

    assert summary["scanned"] == 4
    assert summary["deleted"] == 1
    assert summary["failed"] == 0
    assert not object_store.exists(PAYMENT_PROOFS_BUCKET, "9/orphan.png")
    assert object_store.exists(DELIVERABLES_BUCKET, "1/9/fresh.png")
    assert object_store.exists(PAYMENT_PROOFS_BUCKET, proof.milestone.payment_proof_path)
    assert object_store.exists(DELIVERABLES_BUCKET, delivered.milestone.deliverable_path)
    assert last_sweep()["deleted"] == 1


def test_failed_delete_is_counted(db_session, object_store, png_bytes, monkeypatch):
    object_store.upload(DELIVERABLES_BUCKET, "1/1/stuck.png", png_bytes, content_type="image/png")
    _age(object_store, DELIVERABLES_BUCKET, "1/1/stuck.png", 7200)

    def _refuse(bucket, path):
        raise StorageError("Delete failed.", code="DELETE_FAILED")

    monkeypatch.setattr(object_store, "delete", _refuse)

    summary = sweep_orphans_once(db_session, object_store, grace_seconds=60)

    assert summary["deleted"] == 0
    assert summary["failed"] == 1


def test_sweep_keeps_objects_of_rows_that_only_have_legacy_urls(
    db_session, make_milestone, png_bytes, object_store, client_actor
):
    from deliverhub.models import MilestoneStatus
    from deliverhub.services.signed_access import get_download_url

    object_store.upload(DELIVERABLES_BUCKET, "7/3/old file.png", png_bytes, content_type="image/png")
    object_store.upload(PAYMENT_PROOFS_BUCKET, "3/old-proof.png", png_bytes, content_type="image/png")
    milestone = make_milestone(
        status=MilestoneStatus.APPROVED,
        deliverable_name="old file.png",
        deliverable_size=len(png_bytes),
        deliverable_url="https://project.example.co/storage/v1/object/public/deliverables/7/3/old%20file.png",
        payment_proof_url="https://project.example.co/storage/v1/object/public/payment-proofs/3/old-proof.png",
    )
    object_store.upload(DELIVERABLES_BUCKET, "7/3/stray.png", png_bytes, content_type="image/png")

    summary = sweep_orphans_once(db_session, object_store, grace_seconds=0, now=utcnow() + timedelta(seconds=5))

    assert summary["deleted"] == 1
    assert not object_store.exists(DELIVERABLES_BUCKET, "7/3/stray.png")
    assert object_store.exists(DELIVERABLES_BUCKET, "7/3/old file.png")
    assert object_store.exists(PAYMENT_PROOFS_BUCKET, "3/old-proof.png")
    result = get_download_url(db_session, object_store, milestone.id, actor=client_actor)
    assert result.ok, result.error

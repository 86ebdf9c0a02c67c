from datetime import timedelta

import pytest

from deliverhub.config import DELIVERABLES_BUCKET, PAYMENT_PROOFS_BUCKET
from deliverhub.models import MilestoneStatus
from deliverhub.services.deliverables import upload_deliverable
from deliverhub.services.payment_proofs import review_payment_proof, submit_payment_proof
from deliverhub.services.signed_access import (
    get_download_url,
    get_payment_proof_url,
)
from deliverhub.services.storage_paths import path_from_legacy_url, resolve_deliverable_path
from deliverhub.utils.time import utcnow


@pytest.fixture
def delivered_milestone(db_session, make_milestone, make_upload, png_bytes, object_store, freelancer_actor):
    def _factory(status: MilestoneStatus = MilestoneStatus.PENDING):
        milestone = make_milestone(status=status)
        result = upload_deliverable(
            db_session, object_store, milestone.id, make_upload(png_bytes, "final.png"), actor=freelancer_actor
        )
        return result.milestone

    return _factory


@pytest.mark.parametrize(
    "status",
    [MilestoneStatus.PENDING, MilestoneStatus.PAYMENT_SUBMITTED, MilestoneStatus.REJECTED],
)
def test_client_download_refused_until_approved(status, db_session, delivered_milestone, object_store, client_actor, monkeypatch):
    milestone = delivered_milestone(status)
    signed = []

    def _sign(bucket, path, *, expires_in):
        signed.append(path)
        return "http://test/files/never"

    monkeypatch.setattr(object_store, "create_signed_url", _sign)

    result = get_download_url(db_session, object_store, milestone.id, actor=client_actor)

    assert not result.ok
    assert result.error.code == "PAYMENT_NOT_APPROVED"
    assert result.error.message == "Payment must be approved before downloading."
    assert result.error.http_status == 403
    assert result.value is None
    assert signed == []


def test_approve_then_download(db_session, delivered_milestone, make_upload, png_bytes, object_store, client_actor, freelancer_actor):
    milestone = delivered_milestone()
    submit_payment_proof(db_session, object_store, milestone.id, make_upload(png_bytes), actor=client_actor)
    review_payment_proof(db_session, milestone.id, "approve", actor=freelancer_actor)

    result = get_download_url(db_session, object_store, milestone.id, actor=client_actor)

    assert result.ok
    assert result.value.expires_in == 60
    assert result.value.filename == "final.png"
    assert result.value.url.startswith("http://test/files/")
    # Not persisted on the record.
    db_session.refresh(milestone)
    assert result.value.url not in {milestone.deliverable_url, milestone.payment_proof_url}


def test_freelancer_may_fetch_own_deliverable_before_approval(db_session, delivered_milestone, object_store, freelancer_actor):
    milestone = delivered_milestone(MilestoneStatus.PENDING)

    result = get_download_url(db_session, object_store, milestone.id, actor=freelancer_actor)

    assert result.ok
    assert result.value.url


def test_approved_without_deliverable(db_session, make_milestone, object_store, client_actor):
    milestone = make_milestone(status=MilestoneStatus.APPROVED)

    result = get_download_url(db_session, object_store, milestone.id, actor=client_actor)

    assert not result.ok
    assert result.error.code == "DELIVERABLE_NOT_FOUND"


def test_legacy_row_without_path_is_resolved_from_url(db_session, make_milestone, object_store, client_actor):
    object_store.upload(DELIVERABLES_BUCKET, "7/3/old file.png", b"legacy", content_type="image/png")
    milestone = make_milestone(
        status=MilestoneStatus.APPROVED,
        deliverable_name="old file.png",
        deliverable_size=6,
        deliverable_url="https://project.example.co/storage/v1/object/public/deliverables/7/3/old%20file.png",
    )

    result = get_download_url(db_session, object_store, milestone.id, actor=client_actor)

    assert result.ok, result.error
    assert resolve_deliverable_path(milestone) == "7/3/old file.png"


def test_unresolvable_legacy_url(db_session, make_milestone, object_store, client_actor):
    milestone = make_milestone(
        status=MilestoneStatus.APPROVED,
        deliverable_name="x.png",
        deliverable_size=1,
        deliverable_url="https://cdn.example.com/somewhere/else/x.png",
    )

    result = get_download_url(db_session, object_store, milestone.id, actor=client_actor)

    assert not result.ok
    assert result.error.code == "DELIVERABLE_PATH_MISSING"
    assert result.error.http_status == 404


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://x.example.co/storage/v1/object/public/deliverables/1/2/a.png", "1/2/a.png"),
        ("https://x.example.co/object/public/deliverables/1/2/a%20b.pdf?token=abc", "1/2/a b.pdf"),
        ("http://test/storage/v1/object/deliverables/4/5/c.png", "4/5/c.png"),
        ("/4/5/c.png", "4/5/c.png"),
        ("4/5/c.png", "4/5/c.png"),
        ("https://elsewhere.example.com/c.png", None),
        ("", None),
        (None, None),
    ],
)
def test_path_from_legacy_url(url, expected):
    assert path_from_legacy_url(url) == expected


def test_payment_proof_url_for_owner_only(db_session, make_milestone, make_upload, png_bytes, object_store, client_actor, freelancer_actor):
    milestone = make_milestone()
    missing = get_payment_proof_url(db_session, object_store, milestone.id, actor=freelancer_actor)
    submit_payment_proof(db_session, object_store, milestone.id, make_upload(png_bytes), actor=client_actor)

    owner = get_payment_proof_url(db_session, object_store, milestone.id, actor=freelancer_actor)
    client_attempt = get_payment_proof_url(db_session, object_store, milestone.id, actor=client_actor)

    assert missing.error.code == "PAYMENT_PROOF_NOT_FOUND"
    assert owner.ok
    assert client_attempt.error.code == "WRONG_ACTOR"


@pytest.mark.anyio
async def test_signed_url_serves_file(client, db_session, delivered_milestone, object_store, client_headers, png_bytes):
    milestone = delivered_milestone(MilestoneStatus.APPROVED)

    issued = await client.get(f"/client/milestones/{milestone.id}/download-url", headers=client_headers)
    assert issued.status_code == 200
    url = issued.json()["url"]

    response = await client.get(url.removeprefix("http://test"))

    assert response.status_code == 200
    assert response.content == png_bytes
    assert response.headers["cache-control"] == "no-store"
    assert "attachment" in response.headers["content-disposition"]


@pytest.mark.anyio
async def test_signed_url_expires(client, delivered_milestone, object_store, monkeypatch):
    milestone = delivered_milestone(MilestoneStatus.APPROVED)
    url = object_store.create_signed_url(DELIVERABLES_BUCKET, milestone.deliverable_path, expires_in=60)
    later = utcnow() + timedelta(seconds=61)
    monkeypatch.setattr("deliverhub.services.object_store.utcnow", lambda: later)

    response = await client.get(url.removeprefix("http://test"))

    assert response.status_code == 410
    assert response.json()["error"]["code"] == "SIGNED_URL_EXPIRED"


@pytest.mark.anyio
async def test_tampered_signed_url_is_forbidden(client, delivered_milestone, object_store):
    milestone = delivered_milestone(MilestoneStatus.APPROVED)
    url = object_store.create_signed_url(DELIVERABLES_BUCKET, milestone.deliverable_path, expires_in=60)

    response = await client.get(url.removeprefix("http://test") + "x")

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "INVALID_SIGNED_URL"


@pytest.mark.anyio
async def test_client_download_before_approval_over_http(client, delivered_milestone, client_headers):
    milestone = delivered_milestone(MilestoneStatus.PAYMENT_SUBMITTED)

    response = await client.get(f"/client/milestones/{milestone.id}/download-url", headers=client_headers)

    assert response.status_code == 403
    assert response.json()["error"] == {
        "code": "PAYMENT_NOT_APPROVED",
        "message": "Payment must be approved before downloading.",
        "details": {"status": "payment_submitted"},
    }


@pytest.mark.anyio
async def test_freelancer_payment_proof_url_over_http(client, db_session, make_milestone, make_upload, png_bytes, object_store, client_actor, freelancer_headers):
    milestone = make_milestone()
    submitted = submit_payment_proof(db_session, object_store, milestone.id, make_upload(png_bytes), actor=client_actor)

    response = await client.get(f"/milestones/{milestone.id}/payment-proof-url", headers=freelancer_headers)

    assert response.status_code == 200
    fetched = await client.get(response.json()["url"].removeprefix("http://test"))
    assert fetched.status_code == 200
    assert fetched.content == png_bytes
    assert object_store.exists(PAYMENT_PROOFS_BUCKET, submitted.milestone.payment_proof_path)


def test_legacy_payment_proof_url_is_signed_for_the_owner(db_session, make_milestone, object_store, freelancer_actor):
    object_store.upload(PAYMENT_PROOFS_BUCKET, "3/old-proof.png", b"legacy", content_type="image/png")
    milestone = make_milestone(
        status=MilestoneStatus.PAYMENT_SUBMITTED,
        payment_proof_url="https://project.example.co/storage/v1/object/public/payment-proofs/3/old-proof.png",
    )

    result = get_payment_proof_url(db_session, object_store, milestone.id, actor=freelancer_actor)

    assert result.ok, result.error


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://x.example.co/storage/v1/object/public/payment-proofs/3/r.png", "3/r.png"),
        ("https://x.example.co/storage/v1/object/public/deliverables/3/r.png", None),
    ],
)
def test_path_from_legacy_url_is_bucket_specific(url, expected):
    assert path_from_legacy_url(url, PAYMENT_PROOFS_BUCKET) == expected

"""HTTP flows for projects, milestones and authentication."""
from uuid import uuid4

import pytest
from sqlalchemy import select

from deliverhub.models import AuditLog, MilestoneStatus


@pytest.mark.anyio
async def test_requests_without_credentials_are_rejected(client, make_milestone):
    milestone = make_milestone()

    freelancer_call = await client.get(f"/milestones/{milestone.id}")
    client_call = await client.get(f"/client/projects/{milestone.project_id}/milestones")

    assert freelancer_call.status_code == 401
    assert freelancer_call.json()["error"]["code"] == "NO_API_KEY"
    assert client_call.status_code == 401
    assert client_call.json()["error"]["code"] == "NO_CLIENT_TOKEN"


@pytest.mark.anyio
async def test_invalid_credentials_are_rejected(client, make_freelancer, project):
    _, inactive_headers = make_freelancer(is_active=False)

    bad_key = await client.get(f"/projects/{project.id}", headers={"Authorization": f"Bearer nope.{uuid4().hex}"})
    inactive = await client.get(f"/projects/{project.id}", headers=inactive_headers)
    bad_token = await client.get(f"/client/projects/{project.id}/milestones", headers={"X-Client-Token": "dhc_wrong"})

    assert bad_key.status_code == 401
    assert inactive.status_code == 401
    assert bad_token.status_code == 401


@pytest.mark.anyio
async def test_api_key_header_alias(client, project, freelancer_headers, db_session):
    token = freelancer_headers["Authorization"].split(" ", 1)[1]

    response = await client.get(f"/projects/{project.id}", headers={"X-API-Key": token})

    assert response.status_code == 200
    used = db_session.scalars(select(AuditLog).where(AuditLog.action == "API_KEY_USED")).all()
    assert used
    assert all(token not in str(entry.data_json) for entry in used)


@pytest.mark.anyio
async def test_create_project_and_milestone(client, freelancer_headers):
    created = await client.post(
        "/projects",
        json={"name": "Brand refresh", "client_email": "buyer@example.com", "currency": "EUR"},
        headers=freelancer_headers,
    )
    assert created.status_code == 201, created.text
    project = created.json()
    assert project["client_access_token"].startswith("dhc_")

    milestone = await client.post(
        f"/projects/{project['id']}/milestones",
        json={"title": "Logo concepts", "price": "400.00"},
        headers=freelancer_headers,
    )
    assert milestone.status_code == 201
    body = milestone.json()
    assert body["status"] == "pending"
    assert body["display_status"]["code"] == "in_progress"
    assert body["deliverable"] is None
    assert body["has_payment_proof"] is False

    client_view = await client.get(
        f"/client/projects/{project['id']}/milestones",
        headers={"X-Client-Token": project["client_access_token"]},
    )
    assert client_view.status_code == 200
    assert [m["title"] for m in client_view.json()] == ["Logo concepts"]


@pytest.mark.anyio
async def test_create_project_validates_payload(client, freelancer_headers):
    response = await client.post(
        "/projects", json={"name": "", "currency": "euro"}, headers=freelancer_headers
    )
    assert response.status_code == 422


@pytest.mark.anyio
async def test_create_milestone_rejects_negative_price(client, project, freelancer_headers):
    response = await client.post(
        f"/projects/{project.id}/milestones", json={"title": "Bad", "price": "-1"}, headers=freelancer_headers
    )
    assert response.status_code == 422


@pytest.mark.anyio
async def test_freelancer_cannot_reach_other_projects(client, make_freelancer, project, make_milestone):
    milestone = make_milestone()
    _, stranger_headers = make_freelancer()

    project_call = await client.get(f"/projects/{project.id}", headers=stranger_headers)
    milestone_call = await client.get(f"/milestones/{milestone.id}", headers=stranger_headers)
    review_call = await client.post(
        f"/milestones/{milestone.id}/review", json={"decision": "approve"}, headers=stranger_headers
    )

    assert project_call.status_code == 403
    assert project_call.json()["error"]["code"] == "NOT_PROJECT_PARTICIPANT"
    assert milestone_call.status_code == 403
    assert review_call.status_code == 403


@pytest.mark.anyio
async def test_client_token_is_scoped_to_its_project(client, make_freelancer, make_project, make_milestone, client_headers):
    owner, _ = make_freelancer()
    other_project = make_project(owner)

    response = await client.get(f"/client/projects/{other_project.id}/milestones", headers=client_headers)

    assert response.status_code == 403


@pytest.mark.anyio
async def test_review_over_http(client, make_milestone, freelancer_headers):
    milestone = make_milestone(status=MilestoneStatus.PAYMENT_SUBMITTED)

    approved = await client.post(
        f"/milestones/{milestone.id}/review", json={"decision": "approve", "note": "thanks"}, headers=freelancer_headers
    )
    again = await client.post(
        f"/milestones/{milestone.id}/review", json={"decision": "reject"}, headers=freelancer_headers
    )

    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"
    assert approved.json()["display_status"]["code"] == "completed"
    assert again.status_code == 403
    assert again.json()["error"]["code"] == "INVALID_TRANSITION"


@pytest.mark.anyio
async def test_client_payload_hides_links_until_approved(client, make_milestone, client_headers, project):
    make_milestone(title="Draft", deliverable_links=[{"title": "Draft", "url": "https://drive.example.com/draft"}])
    make_milestone(
        title="Paid",
        status=MilestoneStatus.APPROVED,
        deliverable_links=[{"title": "Finals", "url": "https://drive.example.com/paid"}],
    )

    response = await client.get(f"/client/projects/{project.id}/milestones", headers=client_headers)

    by_title = {m["title"]: m for m in response.json()}
    assert by_title["Draft"]["deliverable_links"] == []
    assert by_title["Paid"]["deliverable_links"] == [{"title": "Finals", "url": "https://drive.example.com/paid"}]
    for payload in by_title.values():
        assert "payment_proof_url" not in payload
        assert "deliverable_url" not in payload
        assert "deliverable_path" not in payload


@pytest.mark.anyio
async def test_oversize_upload_is_rejected(client, make_milestone, client_headers, monkeypatch):
    from deliverhub.config import get_settings

    monkeypatch.setattr(get_settings(), "MAX_UPLOAD_BYTES", 1024)
    milestone = make_milestone()

    response = await client.post(
        f"/client/milestones/{milestone.id}/payment-proof",
        headers=client_headers,
        files={"file": ("receipt.png", b"\x89PNG\r\n\x1a\n" + b"\x00" * 2048, "image/png")},
    )

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "FILE_TOO_LARGE"


@pytest.mark.anyio
async def test_unknown_milestone_is_404(client, freelancer_headers):
    response = await client.get("/milestones/987654", headers=freelancer_headers)

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "MILESTONE_NOT_FOUND"

"""End-to-end tests for the REST routes."""

import pytest
from fastapi.testclient import TestClient

from conftest import TEST_CREDENTIAL
from ecosangam_api.main import app
from ecosangam_api.routes.deps import get_services

PROJECT = {
    "name": "Sundarbans Mangrove Conservation",
    "ecosystem_type": "mangrove",
    "location": {"lat": 21.9497, "lng": 88.75, "state": "West Bengal"},
    "area_hectares": 450.2,
    "methodology": "vcs",
}


@pytest.fixture
def client(services):
    app.dependency_overrides[get_services] = lambda: services
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def login(client, user) -> dict:
    response = client.post("/v1/auth/login", json={"email": user.email, "credential": TEST_CREDENTIAL})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}


def test_login_and_me(client, ngo_user):
    headers = login(client, ngo_user)

    response = client.get("/v1/auth/me", headers=headers)

    assert response.status_code == 200
    assert response.json()["id"] == ngo_user.id


def test_logout_invalidates_token(client, ngo_user):
    headers = login(client, ngo_user)

    assert client.post("/v1/auth/logout", headers=headers).status_code == 204
    assert client.get("/v1/auth/me", headers=headers).status_code == 401


def test_requests_without_session_are_unauthorized(client):
    assert client.get("/v1/projects").status_code == 401
    response = client.get("/v1/projects", headers={"Authorization": "Bearer not-a-session"})
    assert response.status_code == 401


def test_wrong_credential_maps_to_401(client, ngo_user):
    response = client.post("/v1/auth/login", json={"email": ngo_user.email, "credential": "nope"})

    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "invalid_credential"


def test_validation_errors_list_violations(client, ngo_user):
    headers = login(client, ngo_user)

    response = client.post("/v1/projects", json={**PROJECT, "area_hectares": -1}, headers=headers)

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["code"] == "validation_error"
    assert detail["violations"][0]["field"] == "area_hectares"


def test_project_create_list_and_patch(client, ngo_user, other_ngo_user):
    headers = login(client, ngo_user)

    created = client.post("/v1/projects", json=PROJECT, headers=headers)
    assert created.status_code == 201
    project = created.json()
    assert project["status"] == "pending"

    listed = client.get("/v1/projects", params={"status": "pending"}, headers=headers)
    assert [p["id"] for p in listed.json()] == [project["id"]]

    patched = client.patch(f"/v1/projects/{project['id']}", json={"name": "Renamed"}, headers=headers)
    assert patched.json()["name"] == "Renamed"

    forbidden = client.patch(f"/v1/projects/{project['id']}", json={"status": "verified"}, headers=headers)
    assert forbidden.status_code == 403

    other = login(client, other_ngo_user)
    assert client.get(f"/v1/projects/{project['id']}", headers=other).status_code == 404


def test_field_to_credit_flow(client, ngo_user, other_ngo_user, verifier_user):
    """Queue and sync a measurement, verify the project, then move its credits."""
    ngo = login(client, ngo_user)
    project_id = client.post("/v1/projects", json=PROJECT, headers=ngo).json()["id"]

    queued = client.post(
        "/v1/devices/tablet-01/measurements",
        json={
            "id": "m-1",
            "type": "plantation",
            "project_id": project_id,
            "gps": {"lat": 21.95, "lng": 88.75, "accuracy": 3.0},
            "data": {"saplings_planted": 200},
            "field_officer": "R. Das",
        },
        headers=ngo,
    )
    assert queued.status_code == 202
    assert client.get("/v1/devices/tablet-01/queue", headers=ngo).json()[0]["sync_status"] == "offline"

    report = client.post("/v1/devices/tablet-01/sync", headers=ngo).json()
    assert report == {"synced": ["m-1"], "failed": [], "skipped": []}
    assert client.get(f"/v1/projects/{project_id}", headers=ngo).json()["status"] == "active"

    verifier = login(client, verifier_user)
    review = client.post(
        "/v1/verifications",
        json={
            "project_id": project_id,
            "verification_method": "hybrid",
            "evidence_items": [
                {"type": "drone_imagery", "url": f"ipfs://evidence-{i}", "verified": True} for i in range(3)
            ],
            "findings": {"area_verified": 450.2, "carbon_sequestration_rate": 18.5},
        },
        headers=verifier,
    )
    assert review.status_code == 201

    approved = client.post(f"/v1/verifications/{review.json()['id']}/approve", headers=verifier)
    assert approved.status_code == 200
    body = approved.json()
    assert body["verification"]["status"] == "verified"
    assert body["verification"]["carbon_credits_recommended"] == 8328
    token = body["token"]
    assert token["amount"] == 8328

    moved = client.post(
        f"/v1/credits/tokens/{token['id']}/transfer",
        json={"from_owner": ngo_user.organization_id, "to_owner": "org-buyer", "amount": 1000},
        headers=ngo,
    )
    assert moved.status_code == 200, moved.text
    assert moved.json()["tx_type"] == "transfer"

    overdrawn = client.post(
        f"/v1/credits/tokens/{token['id']}/retire",
        json={"amount": 999999, "reason": "Too many"},
        headers=ngo,
    )
    assert overdrawn.status_code == 409
    assert overdrawn.json()["detail"]["code"] == "insufficient_balance"

    feed = client.get("/v1/credits/transactions", headers=ngo).json()
    assert [tx["tx_type"] for tx in feed] == ["transfer", "mint"]
    sale = client.get(f"/v1/credits/transactions/{feed[0]['transaction_hash']}", headers=ngo)
    assert sale.json()["to_owner"] == "org-buyer"

    other = login(client, other_ngo_user)
    assert client.get("/v1/credits/balance", params={"owner": ngo_user.organization_id}, headers=other).status_code == 403
    assert client.get(f"/v1/credits/tokens/{token['id']}", headers=other).status_code == 404
    assert client.get(f"/v1/credits/transactions/{feed[0]['transaction_hash']}", headers=other).status_code == 404
    assert client.get("/v1/devices/tablet-01/queue", headers=other).json() == []


    conservation = client.get(f"/v1/credits/projects/{project_id}/conservation", headers=ngo).json()
    assert conservation["conserved"]
    assert conservation["available_credits"] == 7328

    audit = client.get(f"/v1/projects/{project_id}/audit", headers=verifier).json()
    assert audit["chain_valid"]
    assert [e["event_type"] for e in audit["events"]][:2] == ["measurement_synced", "review_opened"]


def test_sync_while_offline_maps_to_503(client, connectivity, ngo_user):
    headers = login(client, ngo_user)
    connectivity.online = False

    response = client.post("/v1/devices/tablet-01/sync", headers=headers)

    assert response.status_code == 503
    assert response.json()["detail"]["retryable"] is True


def test_unknown_token_is_404(client, ngo_user):
    headers = login(client, ngo_user)

    response = client.get("/v1/credits/tokens/tok-missing", headers=headers)

    assert response.status_code == 404


def test_dashboard_matches_role(client, gov_user):
    headers = login(client, gov_user)

    response = client.get("/v1/dashboard", headers=headers)

    assert response.status_code == 200
    assert response.json()["role"] == "government"

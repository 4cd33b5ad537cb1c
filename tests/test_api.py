from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from moveout_accounts.api import routes
from moveout_accounts.security.tokens import issue_access_token


def _auth(account_id: str) -> dict[str, str]:
    token, _ = issue_access_token(subject=account_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def api_client(service, sweeper, repository):
    """Provide a FastAPI test client with isolated state."""
    app = FastAPI()
    app.include_router(routes.router)
    app.state.account_service = service
    app.state.sweeper = sweeper

    original_limiter = routes.rate_limiter
    routes.rate_limiter = routes.SlidingWindowRateLimiter(max_requests=2, window_seconds=60)

    with TestClient(app) as client:
        yield client, repository

    routes.rate_limiter = original_limiter


def test_requests_without_token_are_unauthenticated(api_client):
    client, _ = api_client

    response = client.post("/v1/activity")

    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "unauthenticated"


def test_requests_with_bad_token_are_unauthenticated(api_client):
    client, _ = api_client

    response = client.post("/v1/activity", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


def test_signup_then_replay(api_client):
    client, _ = api_client
    payload = {"email": "alice@example.com", "display_name": "Alice"}

    first = client.post("/v1/accounts", json=payload, headers=_auth("alice"))
    second = client.post("/v1/accounts", json=payload, headers=_auth("alice"))

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["idempotent_replay"] is True
    body = first.json()["account"]
    assert body["is_active"] is True
    assert body["deactivated_at"] is None


def test_update_last_activity(api_client):
    client, repository = api_client
    repository.add("alice")

    response = client.post("/v1/activity", headers=_auth("alice"))

    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert repository.accounts["alice"].last_activity is not None


def test_toggle_activation_for_other_account_is_denied(api_client):
    client, repository = api_client
    repository.add("alice")
    repository.add("bob")

    response = client.put(
        "/v1/accounts/bob/activation", json={"is_active": False}, headers=_auth("alice")
    )

    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "permission-denied"
    assert repository.accounts["bob"].is_active


def test_toggle_activation_round_trip(api_client):
    client, repository = api_client
    repository.add("alice")

    off = client.put("/v1/accounts/alice/activation", json={"is_active": False}, headers=_auth("alice"))
    assert off.json() == {"success": True}
    assert repository.accounts["alice"].deactivation_reason.value == "manual"

    on = client.put("/v1/accounts/alice/activation", json={"is_active": True}, headers=_auth("alice"))
    assert on.status_code == 200
    assert repository.accounts["alice"].is_active


def test_toggle_activation_requires_flag(api_client):
    client, repository = api_client
    repository.add("alice")

    response = client.put("/v1/accounts/alice/activation", json={}, headers=_auth("alice"))

    assert response.status_code == 422


def test_delete_unknown_account_as_admin_is_not_found(api_client):
    client, repository = api_client
    repository.add("root", is_admin=True)

    response = client.delete("/v1/accounts/ghost", headers=_auth("root"))

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "not-found"


def test_delete_own_account(api_client):
    client, repository = api_client
    repository.add("alice")

    response = client.delete("/v1/accounts/alice", headers=_auth("alice"))

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert "alice" not in repository.accounts


def test_admin_endpoints(api_client):
    client, repository = api_client
    repository.add("root", is_admin=True)
    repository.add("bob")

    assert client.get("/v1/accounts", headers=_auth("bob")).status_code == 403

    users = client.get("/v1/accounts", headers=_auth("root")).json()["users"]
    assert {u["account_id"] for u in users} == {"root", "bob"}

    grant = client.put("/v1/accounts/bob/admin", json={"is_admin": True}, headers=_auth("root"))
    assert grant.json() == {"success": True}
    assert repository.accounts["bob"].is_admin


def test_user_listing_tolerates_legacy_email_values(api_client):
    client, repository = api_client
    repository.add("root", is_admin=True)
    repository.add("legacy", email="legacy-user-without-domain")

    response = client.get("/v1/accounts", headers=_auth("root"))

    assert response.status_code == 200
    emails = {u["account_id"]: u["email"] for u in response.json()["users"]}
    assert emails["legacy"] == "legacy-user-without-domain"


def test_storage_usage_endpoint(api_client, object_store):
    client, repository = api_client
    repository.add("alice")
    path = object_store._root / "designs" / "alice" / "box.svg"
    path.parent.mkdir(parents=True)
    path.write_bytes(b"x" * 2048)

    response = client.get("/v1/accounts/alice/storage", headers=_auth("alice"))

    assert response.status_code == 200
    assert response.json() == {
        "account_id": "alice",
        "total_bytes": 2048,
        "file_count": 1,
        "display": "2 KB",
        "bytes_by_category": {"designs": 2048, "uploads": 0},
    }


def test_manual_sweep_and_audit_log(api_client, clock):
    client, repository = api_client
    repository.add("root", is_admin=True, last_activity=clock.now)
    repository.add("idle", last_activity=clock.now - timedelta(minutes=6))

    assert client.post("/v1/sweeps", headers=_auth("idle")).status_code == 403

    report = client.post("/v1/sweeps", headers=_auth("root")).json()
    assert report["deactivated"] == 1
    assert report["committed"] is True

    page = client.get("/v1/audit/logs", params={"limit": 1}, headers=_auth("root")).json()
    assert len(page["items"]) == 1
    assert page["next_cursor"]

    rest = client.get(
        "/v1/audit/logs", params={"cursor": page["next_cursor"]}, headers=_auth("root")
    ).json()
    assert {item["event_type"] for item in page["items"] + rest["items"]} == {
        "account.deactivated",
        "sweep.completed",
    }

    bad = client.get("/v1/audit/logs", params={"cursor": "not-valid"}, headers=_auth("root"))
    assert bad.status_code == 400


def test_mutations_respect_rate_limits(api_client):
    client, repository = api_client
    repository.add("alice")
    headers = _auth("alice")

    first = client.put("/v1/accounts/alice/activation", json={"is_active": True}, headers=headers)
    second = client.put("/v1/accounts/alice/activation", json={"is_active": True}, headers=headers)
    third = client.put("/v1/accounts/alice/activation", json={"is_active": True}, headers=headers)

    assert first.status_code == 200
    assert second.status_code == 200
    assert third.status_code == 429
    assert third.json()["detail"] == "rate limited"

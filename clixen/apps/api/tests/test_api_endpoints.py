"""HTTP contract tests: status codes, problem+json bodies, auth headers."""

import pytest

from clixen_api.errors import PROBLEM_TYPE_BASE, TransientDependencyFailure
from tests.helpers import ADMIN_HEADERS, BOT_HEADERS, bearer


@pytest.fixture
def user(identity_provider):
    identity_provider.add("tok-1", "user-1", email="u1@example.com", display_name="User One")
    return bearer("tok-1")


def _assert_problem(response, status_code: int, slug: str) -> dict:
    assert response.status_code == status_code
    assert response.headers["content-type"].startswith("application/problem+json")
    body = response.json()
    assert body["status"] == status_code
    assert body["type"] == f"{PROBLEM_TYPE_BASE}/{slug}"
    assert body["title"]
    assert body["detail"]
    assert body["instance"].startswith("urn:clixen:trace:")
    return body


# ============================================================================
# Health / request id
# ============================================================================


def test_health(test_client):
    response = test_client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["X-Request-ID"]


def test_readyz(test_client):
    response = test_client.get("/readyz")
    assert response.status_code == 200
    assert response.json()["services"]["database"] == "up"


def test_request_id_is_echoed_in_problem_instance(test_client):
    response = test_client.get("/api/me", headers={"X-Request-ID": "req-abc-123"})
    assert response.headers["X-Request-ID"] == "req-abc-123"
    assert response.json()["instance"] == "urn:clixen:trace:req-abc-123"


# ============================================================================
# Session auth
# ============================================================================


def test_me_requires_session(test_client):
    response = test_client.get("/api/me")
    _assert_problem(response, 401, "unauthenticated")
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_me_creates_profile_on_first_sight(test_client, user):
    response = test_client.get("/api/me", headers=user)

    assert response.status_code == 200
    body = response.json()
    assert body["email"] == "u1@example.com"
    assert body["display_name"] == "User One"
    assert body["tier"] == "free"
    assert body["trial"]["active"] is True
    assert body["trial"]["days_remaining"] == 7
    assert body["has_bot_access"] is True
    assert body["access"]["kind"] == "info"
    assert body["telegram"]["linked"] is False

    again = test_client.get("/api/me", headers=user)
    assert again.json()["id"] == body["id"]


def test_auth_provider_outage_returns_503(test_client, identity_provider, user):
    identity_provider.error = TransientDependencyFailure()

    response = test_client.get("/api/me", headers=user)

    _assert_problem(response, 503, "dependency-unavailable")
    assert response.headers["Retry-After"] == "5"


# ============================================================================
# Quota consumption
# ============================================================================


def test_consume_success(test_client, user):
    response = test_client.post("/api/usage/consume", json={"amount": 5}, headers=user)

    assert response.status_code == 200
    body = response.json()
    assert body["consumed"] == 5
    assert body["quota"] == {"used": 5, "limit": 50, "remaining": 45}


def test_consume_defaults_to_one(test_client, user):
    response = test_client.post("/api/usage/consume", json={}, headers=user)
    assert response.json()["quota"]["used"] == 1


@pytest.mark.parametrize("amount", [0, -5])
def test_consume_non_positive_amount_is_400(test_client, user, amount):
    response = test_client.post("/api/usage/consume", json={"amount": amount}, headers=user)
    _assert_problem(response, 400, "invalid-argument")


@pytest.mark.parametrize("amount", [1.5, "3", True])
def test_consume_non_integer_amount_is_422(test_client, user, amount):
    response = test_client.post("/api/usage/consume", json={"amount": amount}, headers=user)
    assert response.status_code == 422
    assert response.json()["type"] == f"{PROBLEM_TYPE_BASE}/validation-error"


def test_consume_over_quota_is_429_and_writes_nothing(test_client, user):
    test_client.post("/api/usage/consume", json={"amount": 48}, headers=user)

    response = test_client.post("/api/usage/consume", json={"amount": 3}, headers=user)

    _assert_problem(response, 429, "quota-exceeded")
    assert test_client.get("/api/me", headers=user).json()["quota"]["used"] == 48


def test_consume_after_trial_is_403(test_client, user, clock):
    test_client.get("/api/me", headers=user)
    clock.advance(days=8)

    response = test_client.post("/api/usage/consume", json={"amount": 1}, headers=user)

    _assert_problem(response, 403, "access-denied")


def test_consume_requires_session(test_client):
    response = test_client.post("/api/usage/consume", json={"amount": 1})
    _assert_problem(response, 401, "unauthenticated")


# ============================================================================
# Telegram link (web)
# ============================================================================


def test_issue_link_token(test_client, user):
    response = test_client.post("/api/telegram/link", headers=user)

    assert response.status_code == 201
    body = response.json()
    assert body["token"].startswith("clx_link_")
    assert body["expires_in_seconds"] == 600
    assert "/start" in body["instructions"]


def test_full_link_flow_over_http(test_client, user):
    token = test_client.post("/api/telegram/link", headers=user).json()["token"]

    linked = test_client.post(
        "/api/telegram/link/consume",
        json={"token": token, "chat_id": 123456, "username": "alice_tg"},
        headers=BOT_HEADERS,
    )
    assert linked.status_code == 200
    assert linked.json()["telegram_chat_id"] == 123456

    status_body = test_client.get("/api/telegram/link", headers=user).json()
    assert status_body["linked"] is True
    assert status_body["telegram_username"] == "alice_tg"

    again = test_client.post("/api/telegram/link", headers=user)
    _assert_problem(again, 409, "telegram-already-linked")

    reused = test_client.post(
        "/api/telegram/link/consume",
        json={"token": token, "chat_id": 999},
        headers=BOT_HEADERS,
    )
    _assert_problem(reused, 404, "link-token-not-found")

    first_unlink = test_client.delete("/api/telegram/link", headers=user)
    second_unlink = test_client.delete("/api/telegram/link", headers=user)
    assert first_unlink.status_code == 200
    assert second_unlink.status_code == 200
    assert second_unlink.json()["unlinked"] is True
    assert test_client.get("/api/telegram/link", headers=user).json()["linked"] is False


def test_expired_link_token_is_410(test_client, user, clock):
    token = test_client.post("/api/telegram/link", headers=user).json()["token"]
    clock.advance(minutes=11)

    response = test_client.post(
        "/api/telegram/link/consume",
        json={"token": token, "chat_id": 123456},
        headers=BOT_HEADERS,
    )

    _assert_problem(response, 410, "link-token-expired")
    assert test_client.get("/api/telegram/link", headers=user).json()["linked"] is False


# ============================================================================
# Telegram bot endpoints
# ============================================================================


def test_bot_endpoints_require_secret(test_client):
    missing = test_client.get("/api/telegram/access/123")
    wrong = test_client.get("/api/telegram/access/123", headers={"X-Bot-Secret": "nope"})

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert wrong.headers["content-type"].startswith("application/problem+json")


def test_bot_access_for_unlinked_chat(test_client):
    response = test_client.get("/api/telegram/access/424242", headers=BOT_HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["linked"] is False
    assert body["has_access"] is False


def test_bot_usage_for_linked_chat(test_client, user):
    token = test_client.post("/api/telegram/link", headers=user).json()["token"]
    test_client.post(
        "/api/telegram/link/consume",
        json={"token": token, "chat_id": 555},
        headers=BOT_HEADERS,
    )

    response = test_client.post(
        "/api/telegram/usage", json={"chat_id": 555, "amount": 2}, headers=BOT_HEADERS
    )

    assert response.status_code == 200
    assert response.json()["quota"]["used"] == 2


def test_bot_usage_for_unlinked_chat_is_403(test_client):
    response = test_client.post(
        "/api/telegram/usage", json={"chat_id": 556, "amount": 1}, headers=BOT_HEADERS
    )
    _assert_problem(response, 403, "access-denied")


# ============================================================================
# Internal
# ============================================================================


def test_admin_requires_token(test_client):
    response = test_client.get("/internal/perf")
    assert response.status_code == 401

    response = test_client.get("/internal/perf", headers={"X-Admin-Token": "wrong"})
    assert response.status_code == 401


def test_admin_plan_change(test_client, user):
    profile_id = test_client.get("/api/me", headers=user).json()["id"]

    response = test_client.post(
        f"/internal/profiles/{profile_id}/plan", json={"tier": "pro"}, headers=ADMIN_HEADERS
    )

    assert response.status_code == 200
    assert response.json() == {"used": 0, "limit": 500, "remaining": 500}
    me = test_client.get("/api/me", headers=user).json()
    assert me["tier"] == "pro"
    assert me["access"]["kind"] == "success"


def test_admin_plan_change_unknown_tier(test_client, user):
    profile_id = test_client.get("/api/me", headers=user).json()["id"]
    response = test_client.post(
        f"/internal/profiles/{profile_id}/plan", json={"tier": "gold"}, headers=ADMIN_HEADERS
    )
    _assert_problem(response, 400, "invalid-argument")


def test_admin_plan_change_unknown_profile(test_client):
    response = test_client.post(
        "/internal/profiles/missing/plan", json={"tier": "pro"}, headers=ADMIN_HEADERS
    )
    _assert_problem(response, 404, "profile-not-found")


def test_perf_reports_request_timings(test_client, user):
    for _ in range(3):
        test_client.get("/api/me", headers=user)

    response = test_client.get("/internal/perf", headers=ADMIN_HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["window_seconds"] == 3600
    assert body["stats"]["GET /api/me"]["count"] == 3
    assert body["sample_count"] >= 3


def test_paid_user_keeps_access_after_trial(test_client, user, clock):
    profile_id = test_client.get("/api/me", headers=user).json()["id"]
    test_client.post(
        f"/internal/profiles/{profile_id}/plan", json={"tier": "starter"}, headers=ADMIN_HEADERS
    )
    clock.advance(days=30)

    response = test_client.post("/api/usage/consume", json={"amount": 10}, headers=user)
    assert response.status_code == 200
    assert response.json()["quota"] == {"used": 10, "limit": 100, "remaining": 90}

import json

from conftest import make_token
from fastapi.testclient import TestClient

from app.core.rate_limit import GLOBAL_RATE_LIMIT, WEBHOOK_RATE_LIMIT
from app.main import create_app
from app.models.subscription_event import SubscriptionEvent

EXPIRES_MS = 1767225600000


def post_webhook(client, payload, signature):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["X-Signature"] = signature
    return client.post("/api/subscriptions/webhook", content=json.dumps(payload), headers=headers)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_status_requires_a_bearer_token(client):
    response = client.get("/api/subscriptions/status")

    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "UNAUTHORIZED"


def test_expired_or_foreign_tokens_are_rejected(client):
    expired = make_token("user-1", expires_in=-60)
    wrong_audience = make_token("user-1", audience="anon")
    wrong_secret = make_token("user-1", secret="not-the-supabase-secret-0123456789")

    for token in (expired, wrong_audience, wrong_secret, "undefined"):
        response = client.get("/api/subscriptions/status", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401


def test_new_user_starts_free_with_a_trial(client, auth_headers):
    response = client.get("/api/subscriptions/status", headers=auth_headers())

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "free"
    assert data["expiresAt"] is None
    assert data["trialEndsAt"] is not None
    assert data["isTrialActive"] is True
    assert data["features"] == {
        "unlimitedAffirmations": False,
        "premiumAffirmations": False,
        "downloadBackgrounds": False,
    }


def test_purchase_webhook_upgrades_a_linked_user(client, auth_headers, make_payload, sign):
    headers = auth_headers("user-1")
    assert client.post("/api/subscriptions/link", json={"revenuecatUserId": "rc-1"}, headers=headers).status_code == 204
    # Status before the purchase
    assert client.get("/api/subscriptions/status", headers=headers).json()["data"]["status"] == "free"

    payload = make_payload(product_id="yearly_pro", expiration_at_ms=EXPIRES_MS)
    response = post_webhook(client, payload, sign(payload))
    assert response.status_code == 200
    assert response.json() == {"received": True}

    data = client.get("/api/subscriptions/status", headers=headers).json()["data"]
    assert data["status"] == "paid"
    assert data["expiresAt"].startswith("2026-01-01T00:00:00")
    assert data["features"]["unlimitedAffirmations"] is True

    # Redelivery is acknowledged and changes nothing
    assert post_webhook(client, payload, sign(payload)).status_code == 200
    assert client.get("/api/subscriptions/status", headers=headers).json()["data"] == data


def test_webhook_signature_header_alias(client, make_payload, sign):
    payload = make_payload(app_user_id="rc-unlinked")
    response = client.post(
        "/api/subscriptions/webhook",
        content=json.dumps(payload),
        headers={"X-RevenueCat-Signature": sign(payload)},
    )
    assert response.status_code == 200


def test_webhook_with_bad_signature_is_unauthorized(client, session_factory, make_payload, sign):
    payload = make_payload()

    response = post_webhook(client, payload, sign(payload, secret="wrong-secret"))
    missing = post_webhook(client, payload, None)

    assert response.status_code == 401
    assert response.json()["error"] == {"code": "UNAUTHORIZED", "message": "Invalid webhook signature"}
    assert missing.status_code == 401
    session = session_factory()
    try:
        assert session.query(SubscriptionEvent).count() == 0
    finally:
        session.close()


def test_webhook_with_invalid_json_is_a_bad_request(client):
    not_json = client.post("/api/subscriptions/webhook", content=b"{not json", headers={"X-Signature": "00"})
    not_object = client.post("/api/subscriptions/webhook", content=b"[1, 2]", headers={"X-Signature": "00"})

    assert not_json.status_code == 400
    assert not_json.json()["error"]["code"] == "BAD_REQUEST"
    assert not_object.status_code == 400


def test_link_conflicts(client, auth_headers):
    assert client.post("/api/subscriptions/link", json={"revenuecatUserId": "rc-1"}, headers=auth_headers("user-1")).status_code == 204
    # Same link again is a no-op
    assert client.post("/api/subscriptions/link", json={"revenuecatUserId": "rc-1"}, headers=auth_headers("user-1")).status_code == 204

    taken = client.post("/api/subscriptions/link", json={"revenuecatUserId": "rc-1"}, headers=auth_headers("user-2"))
    relink = client.post("/api/subscriptions/link", json={"revenuecatUserId": "rc-9"}, headers=auth_headers("user-1"))

    assert taken.status_code == 409
    assert taken.json()["error"]["code"] == "CONFLICT"
    assert relink.status_code == 409


def test_link_requires_a_subscriber_id(client, auth_headers):
    response = client.post("/api/subscriptions/link", json={"revenuecatUserId": ""}, headers=auth_headers())

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_restore_returns_stored_status(client, auth_headers):
    response = client.post("/api/subscriptions/restore", headers=auth_headers())

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "free"


def test_free_user_hits_the_daily_limit(client, auth_headers):
    headers = auth_headers()

    remaining = []
    for _ in range(3):
        response = client.post("/api/affirmations/aff-1/view", json={"source": "widget"}, headers=headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["allowed"] is True
        assert data["affirmationId"] == "aff-1"
        remaining.append(data["remaining"])

    denied = client.post("/api/affirmations/aff-2/view", headers=headers)

    assert remaining == [2, 1, 0]
    assert denied.status_code == 403
    assert denied.json()["error"]["code"] == "PREMIUM_REQUIRED"


def test_profile_reports_usage(client, auth_headers):
    headers = auth_headers()
    client.post("/api/affirmations/aff-1/view", headers=headers)

    response = client.get("/api/users/me", headers=headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["userId"] == "user-1"
    assert data["subscriptionStatus"] == "free"
    assert data["timezone"] == "UTC"
    assert data["dailyAffirmationCount"] == 1
    assert data["dailyLimit"] == 3
    assert data["remainingViews"] == 2
    assert data["canViewMoreAffirmations"] is True


def test_update_timezone(client, auth_headers):
    headers = auth_headers()

    ok = client.patch("/api/users/me", json={"timezone": "Europe/Berlin"}, headers=headers)
    bad = client.patch("/api/users/me", json={"timezone": "Mars/Olympus_Mons"}, headers=headers)

    assert ok.status_code == 200
    assert ok.json()["data"]["timezone"] == "Europe/Berlin"
    assert bad.status_code == 400
    assert bad.json()["error"]["code"] == "VALIDATION_ERROR"


def test_streak_after_a_view(client, auth_headers):
    headers = auth_headers()
    assert client.get("/api/users/me/streak", headers=headers).json()["data"] == {
        "currentStreak": 0,
        "longestStreak": 0,
        "viewDates": [],
    }

    client.post("/api/affirmations/aff-1/view", headers=headers)
    data = client.get("/api/users/me/streak", headers=headers).json()["data"]

    assert data["currentStreak"] == 1
    assert data["longestStreak"] == 1
    assert len(data["viewDates"]) == 1


def test_delete_account_keeps_ledger_history(client, session_factory, auth_headers, make_payload, sign):
    headers = auth_headers()
    client.post("/api/subscriptions/link", json={"revenuecatUserId": "rc-1"}, headers=headers)
    payload = make_payload(product_id="yearly_pro", expiration_at_ms=EXPIRES_MS)
    post_webhook(client, payload, sign(payload))

    response = client.delete("/api/users/me", headers=headers)

    assert response.status_code == 200
    assert response.json() == {"success": True}
    session = session_factory()
    try:
        event = session.query(SubscriptionEvent).one()
        assert event.event_id == "evt-1"
        assert event.resolved_user_id is None
    finally:
        session.close()
    # The next access starts over as a free user
    assert client.get("/api/subscriptions/status", headers=headers).json()["data"]["status"] == "free"


def limit_count(limit):
    return int(limit.split("/")[0])


def test_routes_are_mounted_under_api(client, auth_headers):
    assert client.get("/api/subscriptions/status", headers=auth_headers()).status_code == 200
    assert client.get("/subscriptions/status", headers=auth_headers()).status_code == 404


def test_status_is_fresh_on_every_instance(app, settings, auth_headers, make_payload, sign):
    # Two processes behind a load balancer, one database, no Redis
    other_app = create_app(settings)
    headers = auth_headers()
    with TestClient(app) as first, TestClient(other_app) as second:
        assert second.get("/api/subscriptions/status", headers=headers).json()["data"]["status"] == "free"

        first.post("/api/subscriptions/link", json={"revenuecatUserId": "rc-1"}, headers=headers)
        payload = make_payload(product_id="yearly_pro", expiration_at_ms=EXPIRES_MS)
        assert post_webhook(first, payload, sign(payload)).status_code == 200

        assert second.get("/api/subscriptions/status", headers=headers).json()["data"]["status"] == "paid"
    other_app.state.engine.dispose()


def test_webhook_with_out_of_range_expiry_is_a_bad_request(client, make_payload, sign):
    payload = make_payload(expiration_at_ms=1e20)

    response = post_webhook(client, payload, sign(payload))

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "BAD_REQUEST"


def test_webhook_rate_limit(client):
    for _ in range(limit_count(WEBHOOK_RATE_LIMIT)):
        assert client.post("/api/subscriptions/webhook", content=b"{", headers={"X-Signature": "00"}).status_code == 400

    response = client.post("/api/subscriptions/webhook", content=b"{", headers={"X-Signature": "00"})

    assert response.status_code == 429
    assert response.json() == {
        "success": False,
        "error": {"code": "TOO_MANY_REQUESTS", "message": "Rate limit exceeded. Please try again later."},
    }


def test_global_rate_limit(client):
    for _ in range(limit_count(GLOBAL_RATE_LIMIT)):
        assert client.get("/health").status_code == 200

    response = client.get("/health")

    assert response.status_code == 429
    assert response.json()["error"]["code"] == "TOO_MANY_REQUESTS"

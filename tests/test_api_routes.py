"""
Integration tests for the HTTP surface: authentication, roles and the response envelope.
"""
from datetime import datetime, timedelta

import pytest

from reach.api.routes.handovers import ScheduleRequest
from reach.api.routes.promotions import ExtendRequest, GenerateLinkRequest
from reach.core.auth import create_access_token
from reach.db.models.tracking_link import PromotionStatus
from reach.db.models.user import UserRole


# ============================================================================
# Authentication and envelope
# ============================================================================

@pytest.mark.integration
async def test_missing_token_is_401(test_client):
    response = await test_client.get("/api/wallet/balance")

    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["data"] is None
    assert body["error"]["code"] == "ERR_1004"
    assert "X-Correlation-ID" in response.headers


@pytest.mark.integration
async def test_garbage_token_is_401(test_client):
    response = await test_client.get(
        "/api/wallet/balance", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == 401
    assert response.json()["error"]["message"] == "Invalid or expired token"


@pytest.mark.integration
async def test_inactive_user_is_401(test_client, user_factory, auth_headers):
    user = await user_factory(is_active=False)
    response = await test_client.get("/api/wallet/balance", headers=auth_headers(user))
    assert response.status_code == 401


@pytest.mark.integration
async def test_session_cookie_is_accepted(test_client, sample_buyer):
    from reach.core.config import settings

    token = create_access_token(sample_buyer.id, sample_buyer.role.value)
    test_client.cookies.set(settings.AUTH_COOKIE_NAME, token)

    response = await test_client.get("/api/wallet/balance")

    assert response.status_code == 200


@pytest.mark.integration
async def test_admin_has_no_wallet(test_client, sample_admin, auth_headers):
    response = await test_client.get("/api/wallet/balance", headers=auth_headers(sample_admin))

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "ERR_1005"


@pytest.mark.integration
async def test_validation_error_envelope(test_client, sample_creator, auth_headers):
    response = await test_client.post(
        "/api/creators/generate-link",
        json={"property_id": "not-a-number"},
        headers=auth_headers(sample_creator),
    )

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "ERR_1001"
    assert error["details"]["fields"] == ["property_id"]


@pytest.mark.integration
async def test_security_headers(test_client):
    response = await test_client.get("/api/tracking/doesnotexist")

    assert response.headers["X-Content-Type-Options"] == "nosniff"


@pytest.mark.integration
async def test_correlation_id_is_echoed(test_client):
    response = await test_client.get(
        "/api/tracking/doesnotexist", headers={"X-Correlation-ID": "req-abc-123"}
    )
    assert response.headers["X-Correlation-ID"] == "req-abc-123"


# ============================================================================
# Wallet
# ============================================================================

@pytest.mark.integration
async def test_wallet_setup_then_balance(test_client, sample_creator, auth_headers):
    headers = auth_headers(sample_creator)

    setup = await test_client.post(
        "/api/wallet/setup", json={"pin": "2580", "confirm_pin": "2580"}, headers=headers
    )
    balance = await test_client.get("/api/wallet/balance", headers=headers)

    assert setup.status_code == 200
    assert setup.json()["message"] == "Wallet set up successfully"
    assert balance.json()["data"] == {
        "available_balance": 0.0,
        "locked_balance": 0.0,
        "total_balance": 0.0,
        "currency": "NGN",
        "is_setup": True,
    }


@pytest.mark.integration
async def test_verify_pin_wrong_pin(test_client, sample_buyer, wallet_factory, auth_headers):
    await wallet_factory(sample_buyer)

    response = await test_client.post(
        "/api/wallet/verify-pin", json={"pin": "9999"}, headers=auth_headers(sample_buyer)
    )

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "ERR_2005"
    assert error["details"]["attempts_remaining"] == 2


@pytest.mark.integration
@pytest.mark.parametrize("amount", ["-5", 1e30])
async def test_withdraw_rejects_bad_amount(test_client, sample_developer, wallet_factory, auth_headers, amount):
    await wallet_factory(sample_developer, available_balance="5000.00")

    response = await test_client.post(
        "/api/wallet/withdraw",
        json={"amount": amount, "bank_account_id": 1, "pin": "1234"},
        headers=auth_headers(sample_developer),
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "ERR_2004"


# ============================================================================
# Promotions and tracking
# ============================================================================

@pytest.mark.integration
async def test_generate_link_201_then_200(test_client, sample_creator, sample_property, auth_headers):
    headers = auth_headers(sample_creator)
    payload = {"property_id": sample_property.id}

    first = await test_client.post("/api/creators/generate-link", json=payload, headers=headers)
    second = await test_client.post("/api/creators/generate-link", json=payload, headers=headers)

    assert first.status_code == 201
    assert first.json()["data"]["created"] is True
    assert second.status_code == 200
    assert second.json()["data"]["created"] is False
    assert second.json()["data"]["unique_code"] == first.json()["data"]["unique_code"]


@pytest.mark.integration
async def test_generate_link_requires_creator(test_client, sample_buyer, sample_property, auth_headers):
    response = await test_client.post(
        "/api/creators/generate-link",
        json={"property_id": sample_property.id},
        headers=auth_headers(sample_buyer),
    )
    assert response.status_code == 403


@pytest.mark.integration
async def test_promotion_lifecycle_over_http(test_client, sample_creator, sample_property, link_factory, auth_headers):
    link = await link_factory(sample_creator.id, sample_property.id)
    headers = auth_headers(sample_creator)

    paused = await test_client.post(f"/api/creator/promotions/{link.id}/pause", headers=headers)
    listed = await test_client.get("/api/creator/promotions", params={"status": "paused"}, headers=headers)
    stopped = await test_client.patch(
        f"/api/creator/promotions/{link.id}", json={"status": "stopped"}, headers=headers
    )
    again = await test_client.post(f"/api/creator/promotions/{link.id}/resume", headers=headers)

    assert paused.json()["data"]["status"] == PromotionStatus.PAUSED.value
    assert [p["id"] for p in listed.json()["data"]] == [link.id]
    assert stopped.json()["data"]["status"] == "stopped"
    assert again.status_code == 400
    assert again.json()["error"]["details"]["current_status"] == "stopped"


@pytest.mark.integration
async def test_extend_accepts_offset_datetimes(test_client, sample_creator, sample_property, link_factory, auth_headers):
    link = await link_factory(sample_creator.id, sample_property.id)
    expires = (datetime.utcnow() + timedelta(days=10)).replace(microsecond=0)

    response = await test_client.post(
        f"/api/creator/promotions/{link.id}/extend",
        json={"expires_at": expires.isoformat() + "+00:00"},
        headers=auth_headers(sample_creator),
    )

    assert response.status_code == 200
    assert response.json()["data"]["expires_at"] == expires.isoformat()


@pytest.mark.unit
@pytest.mark.parametrize(
    "model, field",
    [
        (ScheduleRequest, "scheduled_for"),
        (ExtendRequest, "expires_at"),
        (GenerateLinkRequest, "expires_at"),
    ],
)
def test_request_timestamps_are_stored_as_naive_utc(model, field):
    extra = {"property_id": 1} if model is GenerateLinkRequest else {}

    parsed = model(**{field: "2026-03-01T10:00:00+01:00"}, **extra)

    assert getattr(parsed, field) == datetime(2026, 3, 1, 9, 0)
    assert getattr(model(**{field: "2026-03-01T10:00:00"}, **extra), field) == datetime(2026, 3, 1, 10, 0)


@pytest.mark.integration
async def test_tracking_click_is_public(test_client, sample_creator, sample_property, link_factory):
    link = await link_factory(sample_creator.id, sample_property.id)

    response = await test_client.post(
        "/api/tracking/click",
        json={"property_id": sample_property.id, "code": link.unique_code, "action": "inspection"},
    )

    assert response.status_code == 200
    assert response.json()["data"] == {"tracked": True, "clicks": 1, "action": "inspection"}


@pytest.mark.integration
async def test_resolve_code(test_client, sample_creator, sample_property, link_factory):
    link = await link_factory(sample_creator.id, sample_property.id, status=PromotionStatus.PAUSED)

    found = await test_client.get(f"/api/tracking/{link.unique_code}")
    missing = await test_client.get("/api/tracking/nosuchcode")

    assert found.json()["data"] == {"property_id": sample_property.id, "status": "paused", "active": False}
    assert missing.status_code == 404


# ============================================================================
# Handovers
# ============================================================================

@pytest.mark.integration
async def test_open_handover_admin_only(
    test_client, sample_admin, sample_buyer, sample_developer, sample_property, escrow_factory, auth_headers
):
    escrow = await escrow_factory(sample_property.id, sample_buyer.id, sample_developer.id)

    denied = await test_client.post(
        "/api/handovers", json={"escrow_id": escrow.id}, headers=auth_headers(sample_developer)
    )
    created = await test_client.post(
        "/api/handovers", json={"escrow_id": escrow.id}, headers=auth_headers(sample_admin)
    )
    seen = await test_client.get("/api/handovers", headers=auth_headers(sample_buyer))

    assert denied.status_code == 403
    assert created.status_code == 201
    assert created.json()["data"]["status"] == "payment_confirmed"
    assert [h["id"] for h in seen.json()["data"]] == [created.json()["data"]["id"]]


# ============================================================================
# Cron
# ============================================================================

@pytest.mark.integration
async def test_cron_requires_secret(test_client):
    missing = await test_client.post("/api/cron/expire-promotions")
    wrong = await test_client.post(
        "/api/cron/expire-promotions", headers={"Authorization": "Bearer nope"}
    )
    assert missing.status_code == 401
    assert wrong.status_code == 401


@pytest.mark.integration
async def test_cron_expire_promotions(test_client, sample_creator, sample_property, link_factory):
    await link_factory(
        sample_creator.id, sample_property.id, expires_at=datetime.utcnow() - timedelta(hours=2)
    )

    response = await test_client.post(
        "/api/cron/expire-promotions", headers={"Authorization": "Bearer test-cron-secret"}
    )

    assert response.status_code == 200
    assert response.json()["data"] == {"expired": 1}


@pytest.mark.integration
async def test_cron_fail_stale_deposits(test_client):
    response = await test_client.post(
        "/api/cron/fail-stale-deposits", headers={"Authorization": "Bearer test-cron-secret"}
    )
    assert response.json()["data"] == {"failed": 0}


@pytest.mark.integration
async def test_role_comes_from_the_user_row_not_the_token(test_client, sample_buyer):
    token = create_access_token(sample_buyer.id, UserRole.ADMIN.value)

    response = await test_client.post(
        "/api/handovers", json={"escrow_id": 1}, headers={"Authorization": f"Bearer {token}"}
    )

    assert response.status_code == 403

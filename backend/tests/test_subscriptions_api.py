"""Subscription API tests."""

import uuid
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.models.subscription import SubscriptionStatus
from app.models.subscription_charge import ChargeStatus
from app.repositories.subscription_charge_repository import SubscriptionChargeRepository
from tests.factories import (
    CUSTOMER_WALLET,
    OTHER_WALLET,
    T0,
    create_merchant,
    create_subscription,
)

API_KEY = "sk_test_acme"
AUTH = {"Authorization": f"Bearer {API_KEY}"}


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def merchant(db_session):
    return create_merchant(db_session, api_key=API_KEY)


def _payload(**overrides):
    payload = {
        "plan_name": "Pro",
        "amount": "9.99",
        "interval": "monthly",
        "customer_wallet": CUSTOMER_WALLET,
        "customer_email": "customer@example.com",
    }
    payload.update(overrides)
    return payload


class TestCreateSubscription:
    def test_create(self, client, merchant):
        response = client.post("/v1/subscriptions/", json=_payload(), headers=AUTH)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending_approval"
        assert data["merchant_id"] == str(merchant.id)
        assert Decimal(data["amount"]) == Decimal("9.99")
        assert data["next_charge_at"] is None
        assert data["approval_url"] == f"https://paylobster.com/subscribe/{data['id']}"

    def test_requires_api_key(self, client, merchant):
        response = client.post("/v1/subscriptions/", json=_payload())
        assert response.status_code == 401

    def test_rejects_unknown_api_key(self, client, merchant):
        response = client.post(
            "/v1/subscriptions/",
            json=_payload(),
            headers={"Authorization": "Bearer sk_live_notakey"},
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid API key"

    def test_rejects_malformed_api_key(self, client, merchant):
        response = client.post(
            "/v1/subscriptions/", json=_payload(), headers={"Authorization": "Bearer pk_abc"}
        )
        assert response.status_code == 401

    @pytest.mark.parametrize(
        "overrides",
        [{"amount": "0"}, {"interval": "daily"}, {"customer_wallet": "0x123"}],
    )
    def test_validation_errors(self, client, merchant, overrides):
        response = client.post("/v1/subscriptions/", json=_payload(**overrides), headers=AUTH)

        assert response.status_code == 422

    def test_invalid_email(self, client, merchant):
        response = client.post(
            "/v1/subscriptions/", json=_payload(customer_email="nope"), headers=AUTH
        )
        assert response.status_code == 422


class TestReadSubscriptions:
    def test_list_with_status_filter(self, client, db_session, merchant):
        other = create_merchant(db_session, name="Other", api_key="sk_test_other")
        create_subscription(db_session, merchant)
        create_subscription(db_session, merchant, SubscriptionStatus.ACTIVE)
        create_subscription(db_session, other)

        response = client.get("/v1/subscriptions/", headers=AUTH)
        assert response.status_code == 200
        assert len(response.json()) == 2
        assert response.headers["X-Total-Count"] == "2"

        response = client.get("/v1/subscriptions/?status=active", headers=AUTH)
        assert [s["status"] for s in response.json()] == ["active"]
        assert response.headers["X-Total-Count"] == "1"

    def test_get_own_subscription(self, client, db_session, merchant):
        sub = create_subscription(db_session, merchant)

        response = client.get(f"/v1/subscriptions/{sub.id}", headers=AUTH)

        assert response.status_code == 200
        assert response.json()["id"] == str(sub.id)

    def test_get_other_merchants_subscription_forbidden(self, client, db_session, merchant):
        other = create_merchant(db_session, name="Other", api_key="sk_test_other")
        sub = create_subscription(db_session, other)

        response = client.get(f"/v1/subscriptions/{sub.id}", headers=AUTH)

        assert response.status_code == 403

    def test_get_missing(self, client, merchant):
        response = client.get(f"/v1/subscriptions/{uuid.uuid4()}", headers=AUTH)
        assert response.status_code == 404

    def test_public_view_needs_no_auth(self, client, db_session, merchant):
        sub = create_subscription(db_session, merchant)

        response = client.get(f"/v1/subscriptions/public/{sub.id}")

        assert response.status_code == 200
        data = response.json()
        assert data["plan_name"] == "Pro"
        assert "merchant_id" not in data

    def test_list_charges(self, client, db_session, merchant):
        sub = create_subscription(db_session, merchant, SubscriptionStatus.ACTIVE)
        SubscriptionChargeRepository(db_session).add(
            sub.id, Decimal("10"), ChargeStatus.SUCCEEDED, T0, tx_hash="0xabc"
        )
        db_session.commit()

        response = client.get(f"/v1/subscriptions/{sub.id}/charges", headers=AUTH)

        assert response.status_code == 200
        assert [c["tx_hash"] for c in response.json()] == ["0xabc"]


class TestApprove:
    def test_approve_activates(self, client, db_session, merchant):
        sub = create_subscription(db_session, merchant, interval="monthly")

        response = client.post(
            f"/v1/subscriptions/{sub.id}/approve",
            json={"transaction_hash": "0xapprove", "wallet_address": CUSTOMER_WALLET.lower()},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "active"
        assert data["next_charge_at"] is not None

    def test_wallet_mismatch(self, client, db_session, merchant):
        sub = create_subscription(db_session, merchant)

        response = client.post(
            f"/v1/subscriptions/{sub.id}/approve",
            json={"transaction_hash": "0xapprove", "wallet_address": OTHER_WALLET},
        )

        assert response.status_code == 403
        assert response.json()["detail"] == "Wallet address mismatch"

    def test_approve_twice_conflicts(self, client, db_session, merchant):
        sub = create_subscription(db_session, merchant, SubscriptionStatus.ACTIVE)

        response = client.post(
            f"/v1/subscriptions/{sub.id}/approve",
            json={"transaction_hash": "0xapprove", "wallet_address": CUSTOMER_WALLET},
        )

        assert response.status_code == 409

    def test_allowance_below_amount(self, client, db_session, merchant):
        sub = create_subscription(db_session, merchant, amount="10")

        response = client.post(
            f"/v1/subscriptions/{sub.id}/approve",
            json={
                "transaction_hash": "0xapprove",
                "wallet_address": CUSTOMER_WALLET,
                "approved_amount": "5",
            },
        )

        assert response.status_code == 422


class TestCancel:
    def test_merchant_cancel(self, client, db_session, merchant):
        sub = create_subscription(db_session, merchant, SubscriptionStatus.ACTIVE)

        response = client.delete(f"/v1/subscriptions/{sub.id}", headers=AUTH)

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert response.json()["next_charge_at"] is None

    def test_second_cancel_conflicts(self, client, db_session, merchant):
        sub = create_subscription(db_session, merchant, SubscriptionStatus.ACTIVE)
        client.delete(f"/v1/subscriptions/{sub.id}", headers=AUTH)

        response = client.delete(f"/v1/subscriptions/{sub.id}", headers=AUTH)

        assert response.status_code == 409
        assert "already cancelled" in response.json()["detail"]

    def test_customer_cancel(self, client, db_session, merchant):
        sub = create_subscription(db_session, merchant, SubscriptionStatus.ACTIVE)

        response = client.post(
            f"/v1/subscriptions/{sub.id}/cancel", json={"wallet_address": CUSTOMER_WALLET}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

    def test_customer_cancel_wrong_wallet(self, client, db_session, merchant):
        sub = create_subscription(db_session, merchant, SubscriptionStatus.ACTIVE)

        response = client.post(
            f"/v1/subscriptions/{sub.id}/cancel", json={"wallet_address": OTHER_WALLET}
        )

        assert response.status_code == 403

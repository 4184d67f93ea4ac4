"""HTTP tests for the lease, car, webhook and audit routes."""

import json
import pytest
from datetime import timedelta
from decimal import Decimal

from services.lease_service.api.dependencies import get_webhook_secret
from services.lease_service.main import app
from services.payment_service.domain.payment_service import PAYMENT_SUCCEEDED

USER = {"X-User-Id": "user-1", "X-User-Email": "user1@example.com"}
OTHER_USER = {"X-User-Id": "user-2"}
ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}


async def _create_lease(api_client, car, utcnow, headers=USER):
    start = utcnow + timedelta(hours=1)
    return await api_client.post(
        "/api/v1/leases",
        json={
            "car_id": str(car.id),
            "start_date": start.isoformat(),
            "end_date": (start + timedelta(days=7)).isoformat(),
        },
        headers=headers,
    )


async def _post_webhook(api_client, body, signer, secret="whsec_test_secret"):
    payload = json.dumps(body)
    return await api_client.post(
        "/api/v1/payments/webhook",
        content=payload,
        headers={"Stripe-Signature": signer(payload, secret), "Content-Type": "application/json"},
    )


class TestLeaseRoutes:
    """Test the lease endpoints."""

    @pytest.mark.asyncio
    async def test_missing_user_context(self, api_client, make_car, utcnow):
        car = await make_car()

        response = await _create_lease(api_client, car, utcnow, headers={})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_create_lease(self, api_client, make_car, utcnow):
        car = await make_car(price_per_day="50.00")

        response = await _create_lease(api_client, car, utcnow)

        assert response.status_code == 201
        data = response.json()
        assert data["lease"]["status"] == "PENDING"
        assert data["lease"]["user_id"] == "user-1"
        assert Decimal(data["lease"]["total_amount"]) == Decimal("350.00")
        assert data["client_secret"] == "pi_test_1_secret"

    @pytest.mark.asyncio
    async def test_create_lease_wrong_length(self, api_client, make_car, utcnow):
        car = await make_car()

        response = await api_client.post(
            "/api/v1/leases",
            json={
                "car_id": str(car.id),
                "start_date": utcnow.isoformat(),
                "end_date": (utcnow + timedelta(days=3)).isoformat(),
            },
            headers=USER,
        )

        assert response.status_code == 400
        assert "exactly 7 days" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_create_lease_unavailable_car(self, api_client, make_car, utcnow):
        car = await make_car(available=False)

        response = await _create_lease(api_client, car, utcnow)

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_payment_webhook_activates_lease(
        self, api_client, fake_gateway, webhook_factory, webhook_signer, make_car, utcnow,
    ):
        car = await make_car()
        created = (await _create_lease(api_client, car, utcnow)).json()["lease"]
        intent = fake_gateway.intents[0]
        body = webhook_factory(PAYMENT_SUCCEEDED, intent["id"], intent["metadata"], amount=35000)

        response = await _post_webhook(api_client, body, webhook_signer)

        assert response.status_code == 200
        assert response.json() == {
            "received": True,
            "status": "processed",
            "event_type": PAYMENT_SUCCEEDED,
            "outcome": "activated",
        }

        lease = await api_client.get(f"/api/v1/leases/{created['id']}", headers=USER)
        assert lease.json()["status"] == "ACTIVE"

        duplicate = await _post_webhook(api_client, body, webhook_signer)
        assert duplicate.json()["status"] == "duplicate"

    @pytest.mark.asyncio
    async def test_get_lease_of_other_user(self, api_client, make_car, utcnow):
        car = await make_car()
        created = (await _create_lease(api_client, car, utcnow)).json()["lease"]

        response = await api_client.get(f"/api/v1/leases/{created['id']}", headers=OTHER_USER)
        admin = await api_client.get(f"/api/v1/leases/{created['id']}", headers=ADMIN)

        assert response.status_code == 403
        assert admin.status_code == 200

    @pytest.mark.asyncio
    async def test_extend_too_early(self, api_client, make_car, make_active_lease, utcnow):
        car = await make_car()
        lease = await make_active_lease(car, utcnow - timedelta(days=2))

        response = await api_client.post(
            f"/api/v1/leases/{lease.id}/extend",
            json={"additional_days": 3},
            headers=USER,
        )

        assert response.status_code == 400
        assert "1 day or less" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_extend(self, api_client, make_car, make_active_lease, utcnow):
        car = await make_car(price_per_day="50.00")
        lease = await make_active_lease(car, utcnow - timedelta(days=6, hours=2))

        response = await api_client.post(
            f"/api/v1/leases/{lease.id}/extend",
            json={"additional_days": 3},
            headers=USER,
        )

        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["extension_charge"]) == Decimal("150.00")
        assert data["lease"]["status"] == "PENDING"

    @pytest.mark.asyncio
    async def test_return_twice(self, api_client, make_car, make_active_lease, utcnow):
        car = await make_car()
        lease = await make_active_lease(car, utcnow - timedelta(days=2))

        first = await api_client.post(f"/api/v1/leases/{lease.id}/return", headers=USER)
        second = await api_client.post(f"/api/v1/leases/{lease.id}/return", headers=USER)

        assert first.status_code == 200
        assert first.json()["is_returned"] is True
        assert second.status_code == 409

    @pytest.mark.asyncio
    async def test_list_and_payment_history(self, api_client, make_car, make_active_lease, utcnow):
        car = await make_car(price_per_day="50.00")
        await make_active_lease(car, utcnow - timedelta(days=2))

        leases = await api_client.get("/api/v1/leases", headers=USER)
        history = await api_client.get("/api/v1/leases/payment-history", headers=USER)

        assert leases.json()["total"] == 1
        assert history.status_code == 200
        assert history.json()["total_paid"] == 1
        assert Decimal(history.json()["total_amount_paid"]) == Decimal("350.00")


class TestWebhookRoute:
    """Test webhook verification at the HTTP edge."""

    @pytest.mark.asyncio
    async def test_bad_signature(self, api_client, webhook_factory, webhook_signer):
        body = webhook_factory(PAYMENT_SUCCEEDED, "pi_1", {})

        response = await _post_webhook(api_client, body, webhook_signer, secret="whsec_wrong")

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_signature(self, api_client):
        response = await api_client.post("/api/v1/payments/webhook", content=b"{}")

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_secret(self, api_client, webhook_factory, webhook_signer):
        app.dependency_overrides[get_webhook_secret] = lambda: None
        body = webhook_factory(PAYMENT_SUCCEEDED, "pi_1", {})

        response = await _post_webhook(api_client, body, webhook_signer)

        assert response.status_code == 500

    @pytest.mark.asyncio
    async def test_unknown_event_acknowledged(self, api_client, webhook_signer):
        body = {"id": "evt_1", "type": "customer.created", "data": {"object": {"id": "cus_1"}}}

        response = await _post_webhook(api_client, body, webhook_signer)

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"


class TestCarRoutes:
    """Test car browsing and listing."""

    @pytest.mark.asyncio
    async def test_admin_lists_car(self, api_client):
        response = await api_client.post(
            "/api/v1/cars",
            json={"brand": "Honda", "model_name": "Civic", "year": 2023, "price_per_day": 65},
            headers=ADMIN,
        )

        assert response.status_code == 201
        car = response.json()
        assert car["available"] is True
        assert Decimal(car["price_per_day"]) == Decimal("65")

        listing = await api_client.get("/api/v1/cars")
        assert [item["id"] for item in listing.json()["cars"]] == [car["id"]]

        detail = await api_client.get(f"/api/v1/cars/{car['id']}")
        assert detail.json()["model_name"] == "Civic"

    @pytest.mark.asyncio
    async def test_non_admin_cannot_list_car(self, api_client):
        response = await api_client.post(
            "/api/v1/cars",
            json={"brand": "Honda", "model_name": "Civic", "price_per_day": "65.00"},
            headers=USER,
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_car(self, api_client):
        response = await api_client.get("/api/v1/cars/00000000-0000-0000-0000-000000000000")

        assert response.status_code == 404


class TestAuditRoutes:
    """Test the admin audit endpoints."""

    @pytest.mark.asyncio
    async def test_requires_admin(self, api_client):
        response = await api_client.get("/api/v1/audit/activity", headers=USER)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_lease_trail_and_export(self, api_client, make_car, utcnow):
        car = await make_car()
        created = (await _create_lease(api_client, car, utcnow)).json()["lease"]

        trail = await api_client.get(f"/api/v1/audit/leases/{created['id']}", headers=ADMIN)
        export = await api_client.get(
            f"/api/v1/audit/leases/{created['id']}/export",
            params={"format": "csv"},
            headers=ADMIN,
        )
        summary = await api_client.get("/api/v1/audit/summary", headers=ADMIN)

        assert trail.json()["total"] == 1
        assert trail.json()["entries"][0]["action"] == "Lease Requested"
        assert export.json()["data"].splitlines()[0].startswith("id,action,user_id")
        assert summary.json()["entries_by_action"] == {"Lease Requested": 1}

    @pytest.mark.asyncio
    async def test_admin_deletes_lease(self, api_client, make_car, make_active_lease, utcnow):
        car = await make_car()
        lease = await make_active_lease(car, utcnow - timedelta(days=2))

        response = await api_client.delete(f"/api/v1/audit/leases/{lease.id}", headers=ADMIN)
        missing = await api_client.get(f"/api/v1/leases/{lease.id}", headers=ADMIN)

        assert response.status_code == 200
        assert response.json() == {"lease_id": str(lease.id), "deleted": True}
        assert missing.status_code == 404

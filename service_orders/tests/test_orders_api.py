"""
API tests for the Order Service with in-process backends.
"""

import pytest
from fastapi.testclient import TestClient

from shared.test_helpers import MockTokenGenerator, TestUser, test_data_factory, test_environment
from service_orders.app.main import OrdersService, create_app


@pytest.fixture
def service():
    return OrdersService(**test_environment.get_mock_config())


@pytest.fixture
def client(service):
    with TestClient(service.app) as test_client:
        yield test_client


def signup_and_login(client, username="merchant.one", password="s3cret") -> str:
    response = client.post("/auth/signup", json={"username": username, "password": password})
    assert response.status_code == 200
    response = client.post("/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200
    return response.json()["data"]["access_token"]


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestOperationalEndpoints:
    """Probes bypass authentication."""

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "orders"
        assert "orders" in data["capabilities"]

    def test_health_endpoint(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "orders"
        assert data["status"] == "ok"
        assert data["dependencies"] == {"store": "ok", "cache": "ok"}

    def test_metrics_endpoint(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "http_requests_total" in response.text

    def test_request_id_is_echoed(self, client):
        response = client.get("/", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_metrics_are_labelled_by_route_template(self, client, service):
        token = signup_and_login(client)
        for i in range(20):
            client.get(f"/unknown-path-{i}")
        for i in range(3):
            client.put(f"/orders/DA240101BNWWN{i}/cancel", headers=bearer(token))

        endpoints = {
            sample.labels["endpoint"]
            for metric in service.metrics.registry.collect()
            for sample in metric.samples
            if sample.name == "http_requests_total"
        }

        assert "/orders/{consignment_id}/cancel" in endpoints
        assert "unmatched" in endpoints
        assert not any(e.startswith("/unknown-path-") or e.startswith("/orders/DA") for e in endpoints)

    def test_service_initialization(self, service):
        assert service.service_name == "orders"
        assert service.port == 8020
        assert service.engine is not None
        assert service.tokens.ttl_seconds == 86400


class TestAuthenticationGate:
    """Protected operations."""

    def test_missing_credential(self, client):
        response = client.get("/orders")
        assert response.status_code == 401
        body = response.json()
        assert body["type"] == "error"
        assert body["error"]["code"] == "AUTHENTICATION_ERROR"

    def test_non_bearer_credential(self, client):
        response = client.get("/orders", headers={"Authorization": "Basic dXNlcjpwYXNz"})
        assert response.status_code == 401

    @pytest.mark.parametrize("token_factory", [
        lambda: "garbage",
        lambda: MockTokenGenerator(secret="other-secret").generate_access_token(TestUser("merchant.one", user_id=1)),
        lambda: MockTokenGenerator(secret="test-secret").generate_expired_token(TestUser("merchant.one", user_id=1)),
    ])
    def test_every_failure_kind_gets_same_reply(self, client, token_factory):
        response = client.get("/orders", headers=bearer(token_factory()))
        assert response.status_code == 401
        assert response.json()["message"] == "Unauthorized"

    def test_logout_then_unauthenticated(self, client):
        token = signup_and_login(client)

        response = client.post("/auth/logout", headers=bearer(token))
        assert response.status_code == 200

        response = client.get("/orders", headers=bearer(token))
        assert response.status_code == 401

        response = client.post("/auth/logout", headers=bearer(token))
        assert response.status_code == 401

    def test_fresh_login_after_logout(self, client):
        token = signup_and_login(client)
        client.post("/auth/logout", headers=bearer(token))

        response = client.post("/auth/login", json={"username": "merchant.one", "password": "s3cret"})
        fresh = response.json()["data"]["access_token"]

        response = client.get("/orders", headers=bearer(fresh))
        assert response.status_code == 200


class TestAuthEndpoints:
    """Signup and login."""

    def test_login_reply(self, client):
        client.post("/auth/signup", json={"username": "merchant.one", "password": "s3cret"})

        response = client.post("/auth/login", json={"username": "merchant.one", "password": "s3cret"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["token_type"] == "Bearer"
        assert data["expires_in"] == 86400
        assert data["access_token"]

    def test_duplicate_signup(self, client):
        client.post("/auth/signup", json={"username": "merchant.one", "password": "s3cret"})

        response = client.post("/auth/signup", json={"username": "merchant.one", "password": "other"})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT_ERROR"

    def test_invalid_credentials(self, client):
        client.post("/auth/signup", json={"username": "merchant.one", "password": "s3cret"})

        response = client.post("/auth/login", json={"username": "merchant.one", "password": "wrong"})

        assert response.status_code == 401
        assert response.json()["message"] == "invalid credentials"

    def test_empty_signup_rejected(self, client):
        response = client.post("/auth/signup", json={"username": "", "password": ""})
        assert response.status_code == 422


class TestOrderEndpoints:
    """Create, list and cancel."""

    def test_create_order(self, client):
        token = signup_and_login(client)

        response = client.post("/orders", json=test_data_factory.order_payload(), headers=bearer(token))

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Order Created Successfully"
        assert body["data"]["consignment_id"].startswith("DA")
        assert body["data"]["merchant_order_id"] == "MO-1001"
        assert body["data"]["order_status"] == "Pending"
        assert body["data"]["delivery_fee"] == 60.0

    def test_create_order_validation(self, client):
        token = signup_and_login(client)

        response = client.post(
            "/orders",
            json=test_data_factory.order_payload(recipient_phone="12345"),
            headers=bearer(token),
        )

        assert response.status_code == 422
        assert response.json()["message"] == "invalid phone number"

    def test_malformed_body(self, client):
        token = signup_and_login(client)

        response = client.post(
            "/orders",
            json=test_data_factory.order_payload(item_quantity="many"),
            headers=bearer(token),
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_list_pagination(self, client):
        token = signup_and_login(client)
        for _ in range(25):
            client.post("/orders", json=test_data_factory.order_payload(), headers=bearer(token))

        pages = [
            client.get("/orders", params={"limit": 10, "page": page}, headers=bearer(token)).json()["data"]
            for page in (1, 2, 3)
        ]

        assert [p["total_in_page"] for p in pages] == [10, 10, 5]
        assert all(p["total"] == 25 and p["last_page"] == 3 for p in pages)
        assert pages[2]["current_page"] == 3
        assert pages[0]["per_page"] == 10

    def test_list_normalizes_pagination(self, client):
        token = signup_and_login(client)
        client.post("/orders", json=test_data_factory.order_payload(), headers=bearer(token))

        response = client.get("/orders", params={"limit": 0, "page": -3}, headers=bearer(token))

        data = response.json()["data"]
        assert data["per_page"] == 10
        assert data["current_page"] == 1
        assert data["last_page"] == 1

    def test_listing_reflects_new_orders(self, client):
        token = signup_and_login(client)
        client.post("/orders", json=test_data_factory.order_payload(), headers=bearer(token))
        assert client.get("/orders", headers=bearer(token)).json()["data"]["total"] == 1

        client.post("/orders", json=test_data_factory.order_payload(), headers=bearer(token))
        assert client.get("/orders", headers=bearer(token)).json()["data"]["total"] == 2

    def test_orders_are_private(self, client):
        owner = signup_and_login(client, "merchant.one")
        other = signup_and_login(client, "merchant.two")
        client.post("/orders", json=test_data_factory.order_payload(), headers=bearer(owner))

        data = client.get("/orders", headers=bearer(other)).json()["data"]
        assert data["total"] == 0
        assert data["orders"] == []

    def test_cancel_order(self, client):
        owner = signup_and_login(client, "merchant.one")
        other = signup_and_login(client, "merchant.two")
        created = client.post("/orders", json=test_data_factory.order_payload(), headers=bearer(owner))
        consignment_id = created.json()["data"]["consignment_id"]

        foreign = client.put(f"/orders/{consignment_id}/cancel", headers=bearer(other))
        assert foreign.status_code == 404

        response = client.put(f"/orders/{consignment_id}/cancel", headers=bearer(owner))
        assert response.status_code == 200
        assert response.json()["message"] == "Order Cancelled Successfully"

        again = client.put(f"/orders/{consignment_id}/cancel", headers=bearer(owner))
        missing = client.put("/orders/DA000000BNWWN0/cancel", headers=bearer(owner))
        assert again.status_code == missing.status_code == 404
        assert again.json() == foreign.json() == missing.json()

        orders = client.get("/orders", headers=bearer(owner)).json()["data"]["orders"]
        assert orders[0]["order_status"] == "Cancelled"

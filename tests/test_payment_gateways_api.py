"""Tests for gateway capability and configuration endpoints."""

import pytest
from fastapi.testclient import TestClient

from indowater.main import app


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


class TestPaymentGatewaysApi:
    def test_list_capabilities(self, client, midtrans_config):
        response = client.get("/v1/payment_gateways/")

        assert response.status_code == 200
        gateways = {g["gateway"]: g for g in response.json()}
        assert set(gateways) == {"midtrans", "doku"}
        assert gateways["midtrans"]["configured"] is True
        assert gateways["doku"]["configured"] is False
        assert "qris" in gateways["midtrans"]["payment_methods"]
        assert set(gateways["doku"]["required_config_fields"]) == {"client_id", "secret_key"}

    def test_configure_gateway_masks_secrets(self, client):
        response = client.put(
            "/v1/payment_gateways/doku",
            json={
                "credentials": {"client_id": "BRN-0001", "secret_key": "SK-very-secret-1234"},
                "environment": "production",
                "client_id": "pdam-bandung",
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["gateway"] == "doku"
        assert data["environment"] == "production"
        assert data["client_id"] == "pdam-bandung"
        assert data["credentials"]["secret_key"] == "****1234"

        configured = client.get("/v1/payment_gateways/", params={"client_id": "pdam-bandung"})
        doku = next(g for g in configured.json() if g["gateway"] == "doku")
        assert doku["configured"] is True

    def test_configure_replaces_existing_row(self, client):
        body = {"credentials": {"server_key": "one", "client_key": "two"}}
        client.put("/v1/payment_gateways/midtrans", json=body)
        body = {"credentials": {"server_key": "three", "client_key": "four"}, "is_active": False}
        client.put("/v1/payment_gateways/midtrans", json=body)

        configs = client.get("/v1/payment_gateways/configs").json()
        assert len(configs) == 1
        assert configs[0]["is_active"] is False

    def test_missing_credentials_is_400(self, client):
        response = client.put(
            "/v1/payment_gateways/midtrans", json={"credentials": {"server_key": "only"}}
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Missing required credentials: client_key"

    def test_unknown_gateway_is_422(self, client):
        response = client.put(
            "/v1/payment_gateways/xendit", json={"credentials": {"api_key": "x"}}
        )
        assert response.status_code == 422

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"

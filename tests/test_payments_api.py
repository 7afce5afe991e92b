"""Tests for the payment API endpoints."""

import uuid

import httpx
import pytest
from fastapi.testclient import TestClient

from indowater.main import app
from indowater.routers.payments import get_gateway_http_client


def _charge_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/v2/charge":
        return httpx.Response(
            201,
            json={
                "status_code": "201",
                "transaction_id": "mt-api-1",
                "transaction_status": "pending",
                "payment_type": "bank_transfer",
                "redirect_url": "https://app.sandbox.midtrans.com/pay/api",
            },
        )
    if request.url.path.endswith("/status"):
        order_id = request.url.path.split("/")[2]
        return httpx.Response(
            200,
            json={
                "status_code": "200",
                "order_id": order_id,
                "transaction_status": "settlement",
                "gross_amount": "25000.00",
            },
        )
    if request.url.path.endswith("/cancel"):
        return httpx.Response(200, json={"status_code": "200", "transaction_status": "cancel"})
    return httpx.Response(404, json={"status_message": "not found"})


@pytest.fixture
def client():
    """Test client whose outbound gateway calls hit a mock transport."""
    app.dependency_overrides[get_gateway_http_client] = lambda: httpx.Client(
        transport=httpx.MockTransport(_charge_handler)
    )
    yield TestClient(app)
    app.dependency_overrides.pop(get_gateway_http_client, None)


def _create_body(customer_id, **overrides):
    body = {
        "gateway": "midtrans",
        "customer_id": str(customer_id),
        "amount": 25000,
        "customer_name": "Budi Santoso",
        "customer_email": "budi@example.co.id",
        "payment_method": "bank_transfer",
        "bank": "bni",
    }
    body.update(overrides)
    return body


class TestCreatePaymentApi:
    def test_create_payment(self, client, midtrans_config, customer):
        response = client.post("/v1/payments/", json=_create_body(customer.id))

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["status"] == "pending"
        assert data["amount"] == 25000
        assert data["payment_url"] == "https://app.sandbox.midtrans.com/pay/api"

        fetched = client.get(f"/v1/payments/{data['order_id']}")
        assert fetched.status_code == 200
        assert fetched.json()["gateway_transaction_id"] == "mt-api-1"

    def test_amount_must_be_positive(self, client, customer):
        response = client.post("/v1/payments/", json=_create_body(customer.id, amount=0))
        assert response.status_code == 422

    def test_unknown_customer_is_404(self, client, midtrans_config):
        response = client.post("/v1/payments/", json=_create_body(uuid.uuid4()))
        assert response.status_code == 404

    def test_unconfigured_gateway_is_400(self, client, customer):
        response = client.post(
            "/v1/payments/", json=_create_body(customer.id, gateway="doku", bank=None)
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Payment gateway is not configured"

    def test_invalid_method_is_400(self, client, midtrans_config, customer):
        response = client.post(
            "/v1/payments/", json=_create_body(customer.id, payment_method="cash")
        )
        assert response.status_code == 400

    def test_gateway_error_is_502(self, midtrans_config, customer):
        app.dependency_overrides[get_gateway_http_client] = lambda: httpx.Client(
            transport=httpx.MockTransport(lambda r: httpx.Response(503, text="unavailable"))
        )
        try:
            response = TestClient(app).post("/v1/payments/", json=_create_body(customer.id))
        finally:
            app.dependency_overrides.pop(get_gateway_http_client, None)
        assert response.status_code == 502

    def test_html_success_body_is_502(self, midtrans_config, customer):
        app.dependency_overrides[get_gateway_http_client] = lambda: httpx.Client(
            transport=httpx.MockTransport(
                lambda r: httpx.Response(200, text="<html>gateway maintenance</html>")
            )
        )
        try:
            response = TestClient(app).post("/v1/payments/", json=_create_body(customer.id))
        finally:
            app.dependency_overrides.pop(get_gateway_http_client, None)
        assert response.status_code == 502
        assert response.json()["detail"] == "Unexpected response from Midtrans"


class TestPaymentQueriesApi:
    def test_list_payments_with_filters(self, client, make_payment):
        make_payment(order_id="INDO-A")
        make_payment(order_id="INDO-B")

        response = client.get("/v1/payments/", params={"status": "pending"})
        assert response.status_code == 200
        assert {p["order_id"] for p in response.json()} == {"INDO-A", "INDO-B"}

        response = client.get("/v1/payments/", params={"status": "success"})
        assert response.json() == []

    def test_get_missing_payment(self, client):
        assert client.get("/v1/payments/INDO-NOPE").status_code == 404

    def test_check_status_settles_payment(
        self, client, db_session, midtrans_config, make_payment, customer
    ):
        make_payment(order_id="INDO-CHK", amount=25000)

        response = client.post("/v1/payments/INDO-CHK/check-status")

        assert response.status_code == 200
        data = response.json()
        assert data["outcome"] == "applied"
        assert data["payment"]["status"] == "success"
        assert data["gateway_result"]["raw_response"]["transaction_status"] == "settlement"
        db_session.refresh(customer)
        assert customer.balance == 25000

    def test_cancel(self, client, midtrans_config, make_payment):
        make_payment(order_id="INDO-CNL")

        response = client.post("/v1/payments/INDO-CNL/cancel")

        assert response.status_code == 200
        assert response.json()["payment"]["status"] == "failed"

    def test_cancel_missing_payment(self, client):
        assert client.post("/v1/payments/INDO-NOPE/cancel").status_code == 404

"""DOKU payment gateway implementation.

Every request carries the ``Client-Id``, ``Request-Id``, ``Request-Timestamp``
and ``Signature`` headers; see ``indowater.services.gateway_signature`` for the
string-to-sign. Notifications are signed the same way, against the
notification path configured for the merchant.
"""

import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import httpx

from indowater.core.config import settings
from indowater.models.payment import PaymentGatewayType
from indowater.services.gateway_signature import doku_signature, verify
from indowater.services.payment_gateway import (
    DEFAULT_ITEM_SKU,
    GatewayResult,
    PaymentGatewayBase,
    TransactionRequest,
    encode_json,
    generate_order_id,
    nested_get,
    parse_amount,
)
from indowater.services.transaction_status import map_doku_status

NOTIFICATION_HEADERS = ("Client-Id", "Request-Id", "Request-Timestamp", "Signature")

_UNIT_MINUTES = {"minute": 1, "hour": 60, "day": 1440}


def due_date_minutes(duration: int | None, unit: str | None) -> int:
    """Convert an expiry duration into the minutes DOKU expects for ``payment_due_date``."""
    return int(duration or 60) * _UNIT_MINUTES.get(unit or "minute", 1)


class DokuGateway(PaymentGatewayBase):
    """DOKU Checkout adapter."""

    SANDBOX_URL = "https://api-sandbox.doku.com"
    PRODUCTION_URL = "https://api.doku.com"

    PAYMENT_METHODS = (
        "credit_card",
        "virtual_account",
        "online_banking",
        "doku_wallet",
        "ovo",
        "linkaja",
        "dana",
        "shopeepay",
        "qris",
        "indomaret",
        "alfamart",
    )
    REQUIRED_CONFIG_FIELDS = {
        "client_id": {
            "type": "text",
            "label": "Client ID",
            "required": True,
            "description": "DOKU Client ID",
        },
        "secret_key": {
            "type": "text",
            "label": "Secret Key",
            "required": True,
            "description": "DOKU Secret Key",
        },
    }

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.client_id = str(self.credential.get("client_id"))
        self.secret_key = str(self.credential.get("secret_key"))
        self.notification_target = str(
            self.credential.get("notification_target", settings.doku_notification_target)
        )
        self.base_url = self.PRODUCTION_URL if self.is_production else self.SANDBOX_URL

    @property
    def name(self) -> str:
        return "DOKU"

    @property
    def gateway_type(self) -> PaymentGatewayType:
        return PaymentGatewayType.DOKU

    @staticmethod
    def _timestamp() -> str:
        return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")

    def _signed_headers(self, request_target: str, body: bytes | None = None) -> dict[str, str]:
        request_id = str(uuid.uuid4())
        timestamp = self._timestamp()
        headers = {
            "Client-Id": self.client_id,
            "Request-Id": request_id,
            "Request-Timestamp": timestamp,
            "Signature": doku_signature(
                self.client_id, request_id, timestamp, request_target, self.secret_key, body
            ),
            "Accept": "application/json",
        }
        if body is not None:
            headers["Content-Type"] = "application/json"
        return headers

    def _failure(self, response_data: Any, http_status: int, default: str) -> GatewayResult:
        return GatewayResult.failure(
            message=nested_get(response_data, "error", "message", default=default),
            error_code=nested_get(response_data, "error", "code", default=http_status),
            raw_response=response_data,
        )

    def create_transaction(self, request: TransactionRequest) -> GatewayResult:
        """Create a DOKU Checkout payment."""
        error = self._validate_request(request)
        if error:
            self._log_activity("Transaction validation failed", error=error)
            return GatewayResult.failure(error, "validation_error")

        order_id = generate_order_id()
        amount = parse_amount(request.amount)
        request_target = "/checkout/v1/payment"

        payload: dict[str, Any] = {
            "order": {
                "amount": amount,
                "invoice_number": order_id,
                "currency": "IDR",
                "callback_url": request.callback_url,
                "line_items": self._line_items(request, amount),
            },
            "payment": {
                "payment_due_date": due_date_minutes(request.expiry_duration, request.expiry_unit),
            },
            "customer": {
                "name": request.customer_name,
                "email": request.customer_email,
                "phone": request.customer_phone,
                "address": request.customer_address,
                "country": "ID",
            },
        }
        if request.payment_method:
            payload["payment"]["payment_method_types"] = [request.payment_method]

        body = encode_json(payload)
        try:
            response = self._make_request(
                "POST",
                f"{self.base_url}{request_target}",
                self._signed_headers(request_target, body),
                body,
            )
        except httpx.HTTPError as e:
            self._log_activity("Transaction creation exception", order_id=order_id, error=str(e))
            return GatewayResult.failure(str(e), "exception")

        data = response.data
        if not response.ok:
            self._log_activity("Transaction creation failed", order_id=order_id, response=data)
            return self._failure(data, response.status_code, "Transaction creation failed")
        if not isinstance(data, dict):
            return self._invalid_response("Transaction creation failed", data, order_id=order_id)

        self._log_activity("Transaction created", order_id=order_id, amount=amount)
        payment_url = nested_get(data, "response", "payment", "url") or nested_get(
            data, "payment", "url"
        )
        return GatewayResult(
            success=True,
            transaction_id=nested_get(data, "transaction", "transaction_id", default=order_id),
            order_id=order_id,
            status=map_doku_status("PENDING"),
            gateway_status="PENDING",
            amount=amount,
            payment_method=request.payment_method,
            payment_url=payment_url,
            expiry_time=nested_get(data, "payment", "payment_due_date"),
            raw_response=data,
        )

    def get_transaction_status(self, transaction_id: str) -> GatewayResult:
        """Query ``GET /orders/v1/status/{id}``."""
        request_target = f"/orders/v1/status/{transaction_id}"
        try:
            response = self._make_request(
                "GET",
                f"{self.base_url}{request_target}",
                self._signed_headers(request_target),
            )
        except httpx.HTTPError as e:
            self._log_activity(
                "Transaction status exception", transaction_id=transaction_id, error=str(e)
            )
            return GatewayResult.failure(str(e), "exception")

        data = response.data
        if not response.ok:
            self._log_activity(
                "Transaction status retrieval failed", transaction_id=transaction_id, response=data
            )
            return self._failure(data, response.status_code, "Transaction status retrieval failed")
        if not isinstance(data, dict):
            return self._invalid_response(
                "Transaction status retrieval failed", data, transaction_id=transaction_id
            )

        return self._normalize(data, transaction_id)

    def handle_notification(
        self,
        payload: dict[str, Any],
        headers: Mapping[str, str] | None = None,
        raw_body: bytes | None = None,
    ) -> GatewayResult:
        """Verify a DOKU HTTP notification against its signed headers.

        The digest is computed over ``raw_body`` when given, so the exact bytes
        DOKU sent are what get verified.
        """
        received = httpx.Headers(dict(headers or {}))
        values = {name: received.get(name, "") for name in NOTIFICATION_HEADERS}

        if not all(values.values()):
            self._log_activity(
                "Missing notification headers",
                missing=[name for name, value in values.items() if not value],
            )
            return GatewayResult.failure("Missing required headers", "invalid_headers")

        if values["Client-Id"] != self.client_id:
            self._log_activity("Invalid client ID in notification", received=values["Client-Id"])
            return GatewayResult.failure("Invalid client ID", "invalid_client")

        body = raw_body if raw_body is not None else encode_json(payload)
        expected = doku_signature(
            self.client_id,
            values["Request-Id"],
            values["Request-Timestamp"],
            self.notification_target,
            self.secret_key,
            body,
        )
        if not verify(values["Signature"], expected):
            self._log_activity("Invalid notification signature", request_id=values["Request-Id"])
            return GatewayResult.failure("Invalid signature", "invalid_signature")

        if not nested_get(payload, "order", "invoice_number"):
            return GatewayResult.failure("Invalid notification payload", "invalid_payload")

        result = self._normalize(payload)
        self._log_activity(
            "Notification received",
            order_id=result.order_id,
            status=result.status.value if result.status else None,
        )
        return result

    def cancel_transaction(self, transaction_id: str) -> GatewayResult:
        """Cancel via ``POST /orders/v1/cancel/{id}``."""
        request_target = f"/orders/v1/cancel/{transaction_id}"
        try:
            response = self._make_request(
                "POST",
                f"{self.base_url}{request_target}",
                self._signed_headers(request_target),
            )
        except httpx.HTTPError as e:
            self._log_activity(
                "Transaction cancellation exception", transaction_id=transaction_id, error=str(e)
            )
            return GatewayResult.failure(str(e), "exception")

        data = response.data
        if not response.ok:
            self._log_activity(
                "Transaction cancellation failed", transaction_id=transaction_id, response=data
            )
            return self._failure(data, response.status_code, "Transaction cancellation failed")
        if not isinstance(data, dict):
            return self._invalid_response(
                "Transaction cancellation failed", data, transaction_id=transaction_id
            )

        self._log_activity("Transaction cancelled", transaction_id=transaction_id)
        return GatewayResult(
            success=True,
            transaction_id=transaction_id,
            order_id=nested_get(data, "order", "invoice_number"),
            status=map_doku_status("CANCELLED"),
            gateway_status="CANCELLED",
            raw_response=data,
        )

    def _normalize(self, data: Any, transaction_id: str | None = None) -> GatewayResult:
        gateway_status = nested_get(data, "transaction", "status")
        return GatewayResult(
            success=True,
            transaction_id=nested_get(
                data, "transaction", "transaction_id", default=transaction_id
            ),
            order_id=nested_get(data, "order", "invoice_number"),
            status=map_doku_status(gateway_status),
            gateway_status=gateway_status,
            amount=parse_amount(nested_get(data, "order", "amount")),
            payment_method=nested_get(data, "transaction", "payment_method")
            or nested_get(data, "channel", "id"),
            raw_response=data,
        )

    @staticmethod
    def _line_items(request: TransactionRequest, amount: int | None) -> list[dict[str, Any]]:
        if request.items:
            return [
                {
                    "name": item.get("name"),
                    "price": item.get("price"),
                    "quantity": item.get("quantity", 1),
                    "sku": item.get("id") or DEFAULT_ITEM_SKU,
                }
                for item in request.items
            ]
        return [
            {
                "name": request.item_name,
                "price": amount,
                "quantity": 1,
                "sku": DEFAULT_ITEM_SKU,
            }
        ]

"""Midtrans payment gateway implementation.

Midtrans flow:
1. Charge a transaction via ``POST /v2/charge`` (server key as Basic auth user)
2. Customer completes payment through the returned redirect URL or actions
3. Midtrans posts HTTP notifications signed with SHA-512 over
   ``order_id + status_code + gross_amount + server_key``
"""

import base64
from collections.abc import Mapping
from typing import Any

import httpx

from indowater.models.payment import PaymentGatewayType
from indowater.services.gateway_signature import midtrans_signature, verify
from indowater.services.payment_gateway import (
    DEFAULT_ITEM_SKU,
    GatewayResult,
    PaymentGatewayBase,
    TransactionRequest,
    encode_json,
    generate_order_id,
    parse_amount,
)
from indowater.services.transaction_status import map_midtrans_status


class MidtransGateway(PaymentGatewayBase):
    """Midtrans Core API adapter."""

    SANDBOX_URL = "https://api.sandbox.midtrans.com"
    PRODUCTION_URL = "https://api.midtrans.com"

    PAYMENT_METHODS = (
        "credit_card",
        "bank_transfer",
        "gopay",
        "shopeepay",
        "qris",
        "indomaret",
        "alfamart",
        "akulaku",
        "kredivo",
    )
    REQUIRED_CONFIG_FIELDS = {
        "server_key": {
            "type": "text",
            "label": "Server Key",
            "required": True,
            "description": "Midtrans Server Key",
        },
        "client_key": {
            "type": "text",
            "label": "Client Key",
            "required": True,
            "description": "Midtrans Client Key",
        },
    }

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.server_key = str(self.credential.get("server_key"))
        self.client_key = str(self.credential.get("client_key"))
        self.base_url = self.PRODUCTION_URL if self.is_production else self.SANDBOX_URL

    @property
    def name(self) -> str:
        return "Midtrans"

    @property
    def gateway_type(self) -> PaymentGatewayType:
        return PaymentGatewayType.MIDTRANS

    def _headers(self, with_body: bool = False) -> dict[str, str]:
        token = base64.b64encode(f"{self.server_key}:".encode()).decode()
        headers = {
            "Authorization": f"Basic {token}",
            "Accept": "application/json",
        }
        if with_body:
            headers["Content-Type"] = "application/json"
        return headers

    @staticmethod
    def _error_message(data: Any, default: str) -> str:
        if isinstance(data, dict):
            return str(data.get("status_message") or default)
        return default

    @staticmethod
    def _is_error_body(data: Any) -> bool:
        # Core API answers some rejections with HTTP 200 and an error status_code
        if not isinstance(data, dict):
            return False
        return str(data.get("status_code", "200"))[:1] in {"4", "5"}

    def _failure(self, response_data: Any, http_status: int, default: str) -> GatewayResult:
        error_code = response_data.get("status_code") if isinstance(response_data, dict) else None
        return GatewayResult.failure(
            message=self._error_message(response_data, default),
            error_code=error_code or http_status,
            raw_response=response_data,
        )

    def create_transaction(self, request: TransactionRequest) -> GatewayResult:
        """Charge a Midtrans transaction."""
        error = self._validate_request(request)
        if error:
            self._log_activity("Transaction validation failed", error=error)
            return GatewayResult.failure(error, "validation_error")

        order_id = generate_order_id()
        amount = parse_amount(request.amount)

        payload: dict[str, Any] = {
            "transaction_details": {"order_id": order_id, "gross_amount": amount},
            "customer_details": self._customer_details(request),
            "item_details": self._item_details(request, amount),
        }

        if request.payment_method:
            payload["payment_type"] = request.payment_method
            if request.payment_method == "credit_card":
                payload["credit_card"] = {"secure": True, "save_card": False}
            elif request.payment_method == "bank_transfer" and request.bank:
                payload["bank_transfer"] = {"bank": request.bank}
            elif request.payment_method == "qris":
                payload["qris"] = {"acquirer": "gopay"}

        if request.expiry_duration:
            payload["expiry"] = {
                "unit": request.expiry_unit or "minute",
                "duration": int(request.expiry_duration),
            }

        payload["callbacks"] = {
            "finish": request.finish_url,
            "error": request.error_url,
            "pending": request.pending_url,
        }

        try:
            response = self._make_request(
                "POST",
                f"{self.base_url}/v2/charge",
                self._headers(with_body=True),
                encode_json(payload),
            )
        except httpx.HTTPError as e:
            self._log_activity("Transaction creation exception", order_id=order_id, error=str(e))
            return GatewayResult.failure(str(e), "exception")

        data = response.data
        if not response.ok or self._is_error_body(data):
            self._log_activity("Transaction creation failed", order_id=order_id, response=data)
            return self._failure(data, response.status_code, "Transaction creation failed")
        if not isinstance(data, dict):
            return self._invalid_response("Transaction creation failed", data, order_id=order_id)

        self._log_activity("Transaction created", order_id=order_id, amount=amount)
        gateway_status = data.get("transaction_status", "pending")
        return GatewayResult(
            success=True,
            transaction_id=data.get("transaction_id") or order_id,
            order_id=order_id,
            status=map_midtrans_status(gateway_status, data.get("fraud_status")),
            gateway_status=gateway_status,
            amount=amount,
            payment_method=data.get("payment_type") or request.payment_method,
            redirect_url=data.get("redirect_url"),
            payment_url=data.get("payment_url") or data.get("redirect_url"),
            expiry_time=data.get("expiry_time"),
            actions=data.get("actions") or [],
            raw_response=data,
        )

    def get_transaction_status(self, transaction_id: str) -> GatewayResult:
        """Query ``GET /v2/{id}/status``."""
        try:
            response = self._make_request(
                "GET",
                f"{self.base_url}/v2/{transaction_id}/status",
                self._headers(),
            )
        except httpx.HTTPError as e:
            self._log_activity(
                "Transaction status exception", transaction_id=transaction_id, error=str(e)
            )
            return GatewayResult.failure(str(e), "exception")

        data = response.data
        if not response.ok or self._is_error_body(data):
            self._log_activity(
                "Transaction status retrieval failed", transaction_id=transaction_id, response=data
            )
            return self._failure(data, response.status_code, "Transaction status retrieval failed")
        if not isinstance(data, dict):
            return self._invalid_response(
                "Transaction status retrieval failed", data, transaction_id=transaction_id
            )

        gateway_status = data.get("transaction_status")
        return GatewayResult(
            success=True,
            transaction_id=data.get("transaction_id") or transaction_id,
            order_id=data.get("order_id"),
            status=map_midtrans_status(gateway_status, data.get("fraud_status")),
            gateway_status=gateway_status,
            amount=parse_amount(data.get("gross_amount")),
            payment_method=data.get("payment_type"),
            raw_response=data,
        )

    def handle_notification(
        self,
        payload: dict[str, Any],
        headers: Mapping[str, str] | None = None,
        raw_body: bytes | None = None,
    ) -> GatewayResult:
        """Verify a Midtrans HTTP notification and normalize it."""
        order_id = payload.get("order_id")
        if not order_id or not payload.get("transaction_status"):
            return GatewayResult.failure("Invalid notification payload", "invalid_payload")

        received = payload.get("signature_key")
        expected = midtrans_signature(
            str(order_id),
            str(payload.get("status_code", "")),
            str(payload.get("gross_amount", "")),
            self.server_key,
        )
        if not isinstance(received, str) or not verify(received, expected):
            self._log_activity("Invalid notification signature", order_id=order_id)
            return GatewayResult.failure("Invalid signature", "invalid_signature")

        gateway_status = payload.get("transaction_status")
        status = map_midtrans_status(gateway_status, payload.get("fraud_status"))
        self._log_activity("Notification received", order_id=order_id, status=status.value)

        return GatewayResult(
            success=True,
            transaction_id=payload.get("transaction_id"),
            order_id=str(order_id),
            status=status,
            gateway_status=gateway_status,
            amount=parse_amount(payload.get("gross_amount")),
            payment_method=payload.get("payment_type"),
            raw_response=payload,
        )

    def cancel_transaction(self, transaction_id: str) -> GatewayResult:
        """Cancel via ``POST /v2/{id}/cancel``."""
        try:
            response = self._make_request(
                "POST",
                f"{self.base_url}/v2/{transaction_id}/cancel",
                self._headers(with_body=True),
            )
        except httpx.HTTPError as e:
            self._log_activity(
                "Transaction cancellation exception", transaction_id=transaction_id, error=str(e)
            )
            return GatewayResult.failure(str(e), "exception")

        data = response.data
        if not response.ok or self._is_error_body(data):
            self._log_activity(
                "Transaction cancellation failed", transaction_id=transaction_id, response=data
            )
            return self._failure(data, response.status_code, "Transaction cancellation failed")
        if not isinstance(data, dict):
            return self._invalid_response(
                "Transaction cancellation failed", data, transaction_id=transaction_id
            )

        self._log_activity("Transaction cancelled", transaction_id=transaction_id)
        gateway_status = data.get("transaction_status", "cancel")
        return GatewayResult(
            success=True,
            transaction_id=data.get("transaction_id") or transaction_id,
            order_id=data.get("order_id"),
            status=map_midtrans_status(gateway_status),
            gateway_status=gateway_status,
            raw_response=data,
        )

    @staticmethod
    def _customer_details(request: TransactionRequest) -> dict[str, Any]:
        first_name = request.customer_first_name or request.customer_name
        last_name = request.customer_last_name or ""
        return {
            "first_name": first_name,
            "last_name": last_name,
            "email": request.customer_email,
            "phone": request.customer_phone,
            "billing_address": {
                "first_name": first_name,
                "last_name": last_name,
                "email": request.customer_email,
                "phone": request.customer_phone,
                "address": request.customer_address,
                "city": request.customer_city,
                "postal_code": request.customer_postal_code,
                "country_code": "IDN",
            },
        }

    @staticmethod
    def _item_details(request: TransactionRequest, amount: int | None) -> list[dict[str, Any]]:
        if request.items:
            return list(request.items)
        return [
            {
                "id": DEFAULT_ITEM_SKU,
                "price": amount,
                "quantity": 1,
                "name": request.item_name,
            }
        ]

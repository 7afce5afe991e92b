"""Payment gateway abstraction layer.

Supports the Indonesian gateways used for prepaid water top-ups (Midtrans, DOKU).
Adapters never raise for expected failures: validation errors, non-2xx
responses, signature mismatches and transport errors all come back as a
``GatewayResult`` with ``success=False``.
"""

import json
import logging
import secrets
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from indowater.core.config import settings
from indowater.models.payment import PaymentGatewayType, TransactionStatus
from indowater.models.payment_gateway import GatewayCredential

logger = logging.getLogger(__name__)

ORDER_ID_PREFIX = "INDO-"
DEFAULT_ITEM_NAME = "Water Credit"
DEFAULT_ITEM_SKU = "WATER-CREDIT"


class GatewayConfigurationError(ValueError):
    """Raised when a gateway is built from incomplete credentials."""


@dataclass
class TransactionRequest:
    """Input for creating a gateway transaction."""

    amount: int | str | Decimal | None
    customer_name: str
    customer_email: str
    customer_phone: str = ""
    customer_first_name: str | None = None
    customer_last_name: str | None = None
    customer_address: str = ""
    customer_city: str = ""
    customer_postal_code: str = ""
    payment_method: str | None = None
    bank: str | None = None
    items: list[dict[str, Any]] | None = None
    item_name: str = DEFAULT_ITEM_NAME
    expiry_duration: int | None = None
    expiry_unit: str = "minute"
    callback_url: str = ""
    finish_url: str = ""
    error_url: str = ""
    pending_url: str = ""


@dataclass
class GatewayResult:
    """Normalized result of any gateway operation."""

    success: bool
    transaction_id: str | None = None
    order_id: str | None = None
    status: TransactionStatus | None = None
    amount: int | None = None
    raw_response: Any = None
    message: str | None = None
    error_code: str | None = None
    gateway_status: str | None = None
    payment_method: str | None = None
    payment_url: str | None = None
    redirect_url: str | None = None
    expiry_time: str | None = None
    actions: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def failure(
        cls,
        message: str,
        error_code: str | int | None,
        raw_response: Any = None,
    ) -> "GatewayResult":
        return cls(
            success=False,
            message=message,
            error_code=str(error_code) if error_code is not None else None,
            raw_response=raw_response,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "transaction_id": self.transaction_id,
            "order_id": self.order_id,
            "status": self.status.value if self.status else None,
            "amount": self.amount,
            "message": self.message,
            "error_code": self.error_code,
            "payment_method": self.payment_method,
            "payment_url": self.payment_url,
            "redirect_url": self.redirect_url,
            "expiry_time": self.expiry_time,
            "raw_response": self.raw_response,
        }


@dataclass
class HttpResponse:
    status_code: int
    data: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def generate_order_id(prefix: str = ORDER_ID_PREFIX) -> str:
    """Generate an order ID: prefix, unix timestamp, 4-digit suffix and a uuid4 fragment."""
    suffix = 1000 + secrets.randbelow(9000)
    return f"{prefix}{int(time.time())}{suffix}-{uuid.uuid4().hex[:8].upper()}"


def parse_amount(value: Any) -> int | None:
    """Parse an amount into whole rupiah, or ``None`` if it is not a usable number.

    Gateways send amounts as ints or strings such as ``"100000.00"``.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount != amount.to_integral_value():
        return None
    return int(amount)


def encode_json(payload: Any) -> bytes:
    """Compact JSON encoding used for request bodies that are signed."""
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def nested_get(data: Any, *keys: str, default: Any = None) -> Any:
    """Walk nested dicts, returning ``default`` if any level is missing."""
    current = data
    for key in keys:
        if not isinstance(current, dict):
            return default
        current = current.get(key)
        if current is None:
            return default
    return current


class PaymentGatewayBase(ABC):
    """Abstract base class for payment gateways."""

    PAYMENT_METHODS: tuple[str, ...] = ()
    REQUIRED_CONFIG_FIELDS: dict[str, dict[str, Any]] = {}

    def __init__(
        self,
        credential: GatewayCredential,
        http_client: httpx.Client | None = None,
        timeout: float | None = None,
    ):
        self.credential = credential
        self.timeout = timeout if timeout is not None else settings.gateway_http_timeout
        self._http_client = http_client

        missing = [
            name for name in self.REQUIRED_CONFIG_FIELDS if not credential.get(name)
        ]
        if missing:
            raise GatewayConfigurationError(
                f"{self.name} configuration is incomplete: missing {', '.join(missing)}"
            )

    @property
    @abstractmethod
    def name(self) -> str:
        """Human readable gateway name."""
        pass  # pragma: no cover

    @property
    @abstractmethod
    def gateway_type(self) -> PaymentGatewayType:
        """Return the gateway enum value."""
        pass  # pragma: no cover

    @property
    def is_production(self) -> bool:
        return self.credential.is_production

    @abstractmethod
    def create_transaction(self, request: TransactionRequest) -> GatewayResult:
        """Create a transaction and return the payment URL."""
        pass  # pragma: no cover

    @abstractmethod
    def get_transaction_status(self, transaction_id: str) -> GatewayResult:
        """Query the gateway for the current transaction status."""
        pass  # pragma: no cover

    @abstractmethod
    def handle_notification(
        self,
        payload: dict[str, Any],
        headers: Mapping[str, str] | None = None,
        raw_body: bytes | None = None,
    ) -> GatewayResult:
        """Verify and normalize an inbound notification. Has no side effects."""
        pass  # pragma: no cover

    @abstractmethod
    def cancel_transaction(self, transaction_id: str) -> GatewayResult:
        """Cancel a pending transaction."""
        pass  # pragma: no cover

    def get_payment_methods(self) -> list[str]:
        return list(self.PAYMENT_METHODS)

    @classmethod
    def get_required_config_fields(cls) -> dict[str, dict[str, Any]]:
        return {name: dict(field) for name, field in cls.REQUIRED_CONFIG_FIELDS.items()}

    @classmethod
    def validate_config(cls, config: Mapping[str, Any]) -> bool:
        """Check every required credential is present and non-empty."""
        return all(config.get(name) for name in cls.REQUIRED_CONFIG_FIELDS)

    def _validate_request(self, request: TransactionRequest) -> str | None:
        """Return an error message, or ``None`` if the request can be sent."""
        amount = parse_amount(request.amount)
        if amount is None or amount <= 0:
            return "Invalid amount"
        if not request.customer_name:
            return "Customer name is required"
        if not request.customer_email:
            return "Customer email is required"
        if request.payment_method and request.payment_method not in self.PAYMENT_METHODS:
            return "Invalid payment method"
        return None

    def _invalid_response(self, action: str, data: Any, **context: Any) -> GatewayResult:
        """Failure for a 2xx answer whose body is not a JSON object."""
        self._log_activity(f"{action}: unexpected response body", response=data, **context)
        return GatewayResult.failure(
            f"Unexpected response from {self.name}", "invalid_response", raw_response=data
        )

    def _make_request(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        content: bytes | None = None,
    ) -> HttpResponse:
        """Make an HTTP request to the gateway API.

        Raises ``httpx.HTTPError`` on transport failures; callers turn that into
        a failure result.
        """
        if self._http_client is not None:
            resp = self._http_client.request(
                method, url, headers=headers, content=content, timeout=self.timeout
            )
        else:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.request(method, url, headers=headers, content=content)

        try:
            data: Any = resp.json()
        except ValueError:
            data = resp.text
        return HttpResponse(status_code=resp.status_code, data=data)

    def _log_activity(self, action: str, **data: Any) -> None:
        logger.info(
            "Payment gateway [%s] %s (production=%s) %s",
            self.name,
            action,
            self.is_production,
            data,
        )


def get_gateway_class(gateway: PaymentGatewayType | str) -> type[PaymentGatewayBase]:
    """Return the adapter class for ``gateway``."""
    from indowater.services.payment_gateways.doku import DokuGateway
    from indowater.services.payment_gateways.midtrans import MidtransGateway

    gateways: dict[PaymentGatewayType, type[PaymentGatewayBase]] = {
        PaymentGatewayType.MIDTRANS: MidtransGateway,
        PaymentGatewayType.DOKU: DokuGateway,
    }

    try:
        return gateways[PaymentGatewayType(gateway)]
    except (KeyError, ValueError):
        raise ValueError(f"Unsupported payment gateway: {gateway}") from None


def get_payment_gateway(
    credential: GatewayCredential,
    http_client: httpx.Client | None = None,
) -> PaymentGatewayBase:
    """Factory function to get the adapter configured by ``credential``."""
    gateway_class = get_gateway_class(credential.gateway)
    return gateway_class(credential, http_client=http_client)

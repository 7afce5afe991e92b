from indowater.schemas.customer import CustomerCreate, CustomerResponse
from indowater.schemas.payment import (
    GatewayResultResponse,
    PaymentActionResponse,
    PaymentCreate,
    PaymentResponse,
)
from indowater.schemas.payment_gateway import (
    GatewayCapabilities,
    PaymentGatewayConfigResponse,
    PaymentGatewayConfigUpdate,
)
from indowater.schemas.webhook import (
    DeadLetterResponse,
    RetryStatsResponse,
    WebhookAck,
    WebhookStatusResponse,
)

__all__ = [
    "CustomerCreate",
    "CustomerResponse",
    "DeadLetterResponse",
    "GatewayCapabilities",
    "GatewayResultResponse",
    "PaymentActionResponse",
    "PaymentCreate",
    "PaymentGatewayConfigResponse",
    "PaymentGatewayConfigUpdate",
    "PaymentResponse",
    "RetryStatsResponse",
    "WebhookAck",
    "WebhookStatusResponse",
]

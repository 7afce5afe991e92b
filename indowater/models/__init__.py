from indowater.models.credit_transaction import CreditTransaction, CreditTransactionType
from indowater.models.customer import Customer
from indowater.models.payment import (
    TERMINAL_STATUSES,
    Payment,
    PaymentGatewayType,
    TransactionStatus,
)
from indowater.models.payment_gateway import (
    GatewayCredential,
    GatewayEnvironment,
    PaymentGatewayConfig,
)
from indowater.models.webhook_retry import WebhookRetry, WebhookRetryStatus

__all__ = [
    "TERMINAL_STATUSES",
    "CreditTransaction",
    "CreditTransactionType",
    "Customer",
    "GatewayCredential",
    "GatewayEnvironment",
    "Payment",
    "PaymentGatewayConfig",
    "PaymentGatewayType",
    "TransactionStatus",
    "WebhookRetry",
    "WebhookRetryStatus",
]

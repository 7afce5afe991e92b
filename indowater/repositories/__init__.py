from indowater.repositories.credit_transaction_repository import CreditTransactionRepository
from indowater.repositories.customer_repository import CustomerRepository
from indowater.repositories.payment_gateway_repository import PaymentGatewayRepository
from indowater.repositories.payment_repository import PaymentRepository
from indowater.repositories.webhook_retry_repository import WebhookRetryRepository

__all__ = [
    "CreditTransactionRepository",
    "CustomerRepository",
    "PaymentGatewayRepository",
    "PaymentRepository",
    "WebhookRetryRepository",
]

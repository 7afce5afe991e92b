"""Payment service: outbound gateway calls for top-up payments."""

import logging
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from indowater.models.payment import Payment, PaymentGatewayType, TransactionStatus
from indowater.repositories.customer_repository import CustomerRepository
from indowater.repositories.payment_gateway_repository import PaymentGatewayRepository
from indowater.repositories.payment_repository import PaymentRepository
from indowater.services.payment_gateway import (
    GatewayConfigurationError,
    GatewayResult,
    PaymentGatewayBase,
    TransactionRequest,
    get_payment_gateway,
)
from indowater.services.webhook_processor import ProcessingResult, WebhookProcessor

logger = logging.getLogger(__name__)


class PaymentService:
    """Service for creating, querying and cancelling gateway payments."""

    def __init__(self, db: Session, http_client: httpx.Client | None = None):
        self.db = db
        self.http_client = http_client
        self.payment_repo = PaymentRepository(db)
        self.customer_repo = CustomerRepository(db)
        self.gateway_repo = PaymentGatewayRepository(db)
        self.processor = WebhookProcessor(db, http_client=http_client)

    def _gateway(
        self, gateway: PaymentGatewayType, client_id: str | None
    ) -> PaymentGatewayBase | None:
        credential = self.gateway_repo.get_active_config(gateway, client_id)
        if credential is None:
            return None
        try:
            return get_payment_gateway(credential, http_client=self.http_client)
        except GatewayConfigurationError as e:
            logger.error("Gateway %s misconfigured for client %s: %s", gateway.value, client_id, e)
            return None

    def create_payment(
        self,
        gateway: PaymentGatewayType,
        request: TransactionRequest,
        customer_id: UUID,
        client_id: str | None = None,
    ) -> GatewayResult:
        """Create a gateway transaction and record it as a pending payment.

        Args:
            gateway: Gateway to charge through.
            request: Amount, customer details and payment options.
            customer_id: Customer whose balance is credited on settlement.
            client_id: Tenant whose gateway credentials should be used.

        Returns:
            The gateway result. Nothing is persisted when it is a failure.
        """
        if self.customer_repo.get_by_id(customer_id) is None:
            return GatewayResult.failure("Customer not found", "customer_not_found")

        adapter = self._gateway(gateway, client_id)
        if adapter is None:
            return GatewayResult.failure(
                "Payment gateway is not configured", "gateway_not_configured"
            )

        result = adapter.create_transaction(request)
        if not result.success:
            logger.warning(
                "Payment creation via %s failed: %s (%s)",
                gateway.value,
                result.message,
                result.error_code,
            )
            return result

        self.payment_repo.create(
            order_id=str(result.order_id),
            customer_id=customer_id,
            amount=int(result.amount or 0),
            gateway=gateway,
            gateway_transaction_id=result.transaction_id,
            payment_method=result.payment_method,
            payment_url=result.payment_url or result.redirect_url,
            gateway_response=result.raw_response,
            client_id=client_id,
        )
        logger.info(
            "Payment %s created via %s for customer %s", result.order_id, gateway.value, customer_id
        )
        return result

    def get_payment(self, order_id: str) -> Payment | None:
        return self.payment_repo.get_by_order_id(order_id)

    def check_payment_status(
        self, order_id: str
    ) -> tuple[GatewayResult, ProcessingResult | None] | None:
        """Query the gateway for a payment and reconcile the local record.

        Returns ``None`` when the payment does not exist. Otherwise the gateway
        result and, when the gateway answered, the outcome of applying it.
        """
        payment = self.payment_repo.get_by_order_id(order_id)
        if payment is None:
            return None

        gateway = PaymentGatewayType(payment.gateway)
        adapter = self._gateway(gateway, payment.client_id)  # type: ignore[arg-type]
        if adapter is None:
            return (
                GatewayResult.failure(
                    "Payment gateway is not configured", "gateway_not_configured"
                ),
                None,
            )

        result = adapter.get_transaction_status(order_id)
        if not result.success or result.status is None:
            return result, None

        outcome = self.processor.apply_result(
            gateway.value, payment.id, result  # type: ignore[arg-type]
        )
        return result, outcome

    def cancel_payment(
        self, order_id: str
    ) -> tuple[GatewayResult, ProcessingResult | None] | None:
        """Cancel a pending payment at the gateway and mark it failed locally.

        Returns ``None`` when the payment does not exist.
        """
        payment = self.payment_repo.get_by_order_id(order_id)
        if payment is None:
            return None

        if payment.status != TransactionStatus.PENDING.value:
            return (
                GatewayResult.failure(f"Payment is already {payment.status}", "invalid_state"),
                None,
            )

        gateway = PaymentGatewayType(payment.gateway)
        adapter = self._gateway(gateway, payment.client_id)  # type: ignore[arg-type]
        if adapter is None:
            return (
                GatewayResult.failure(
                    "Payment gateway is not configured", "gateway_not_configured"
                ),
                None,
            )

        result = adapter.cancel_transaction(order_id)
        if not result.success:
            return result, None

        result.status = TransactionStatus.FAILED
        outcome = self.processor.apply_result(
            gateway.value, payment.id, result  # type: ignore[arg-type]
        )
        return result, outcome

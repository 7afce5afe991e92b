"""Payment repository for data access."""

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from indowater.models.payment import Payment, PaymentGatewayType, TransactionStatus


class PaymentRepository:
    """Repository for Payment model."""

    def __init__(self, db: Session):
        self.db = db

    def get_all(
        self,
        skip: int = 0,
        limit: int = 100,
        customer_id: UUID | None = None,
        status: TransactionStatus | None = None,
        gateway: PaymentGatewayType | None = None,
        client_id: str | None = None,
    ) -> list[Payment]:
        """Get all payments with optional filters."""
        query = self.db.query(Payment)

        if client_id is not None:
            query = query.filter(Payment.client_id == client_id)
        if customer_id:
            query = query.filter(Payment.customer_id == customer_id)
        if status:
            query = query.filter(Payment.status == status.value)
        if gateway:
            query = query.filter(Payment.gateway == gateway.value)

        return query.order_by(Payment.created_at.desc()).offset(skip).limit(limit).all()

    def get_by_id(self, payment_id: UUID) -> Payment | None:
        """Get a payment by ID."""
        return self.db.query(Payment).filter(Payment.id == payment_id).first()

    def get_by_order_id(
        self, order_id: str, gateway: PaymentGatewayType | str | None = None
    ) -> Payment | None:
        """Get a payment by its merchant order ID, optionally restricted to one gateway."""
        query = self.db.query(Payment).filter(Payment.order_id == order_id)
        if gateway is not None:
            query = query.filter(Payment.gateway == PaymentGatewayType(gateway).value)
        return query.first()

    def get_by_gateway_transaction_id(
        self, gateway: PaymentGatewayType | str, gateway_transaction_id: str
    ) -> Payment | None:
        """Get a payment by the gateway-assigned transaction ID."""
        return (
            self.db.query(Payment)
            .filter(
                Payment.gateway == PaymentGatewayType(gateway).value,
                Payment.gateway_transaction_id == gateway_transaction_id,
            )
            .first()
        )

    def find_for_notification(
        self,
        gateway: PaymentGatewayType | str,
        order_id: str | None,
        gateway_transaction_id: str | None,
    ) -> Payment | None:
        """Find the payment a notification refers to: order ID first, then transaction ID.

        Both lookups are scoped to ``gateway``; a notification never matches a
        payment that was created through another gateway.
        """
        payment = self.get_by_order_id(order_id, gateway) if order_id else None
        if payment is None and gateway_transaction_id:
            payment = self.get_by_gateway_transaction_id(gateway, gateway_transaction_id)
        return payment

    def get_for_update(self, payment_id: UUID) -> Payment | None:
        """Load a payment with a row lock (``SELECT ... FOR UPDATE``)."""
        return (
            self.db.query(Payment)
            .filter(Payment.id == payment_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def create(
        self,
        order_id: str,
        customer_id: UUID,
        amount: int,
        gateway: PaymentGatewayType,
        gateway_transaction_id: str | None = None,
        payment_method: str | None = None,
        payment_url: str | None = None,
        gateway_response: Any = None,
        client_id: str | None = None,
        currency: str = "IDR",
    ) -> Payment:
        """Create a new pending payment."""
        payment = Payment(
            order_id=order_id,
            customer_id=customer_id,
            amount=amount,
            currency=currency,
            gateway=gateway.value,
            gateway_transaction_id=gateway_transaction_id,
            payment_method=payment_method,
            payment_url=payment_url,
            gateway_response=gateway_response,
            status=TransactionStatus.PENDING.value,
            client_id=client_id,
        )
        self.db.add(payment)
        self.db.commit()
        self.db.refresh(payment)
        return payment

    def compare_and_set_status(
        self,
        payment_id: UUID,
        expected: TransactionStatus | str,
        new: TransactionStatus | str,
        **fields: Any,
    ) -> bool:
        """Set ``status`` only if it still equals ``expected``.

        Issues ``UPDATE ... WHERE id = :id AND status = :expected`` and reports
        whether a row was changed. Flushes only; the caller commits.
        """
        values = {"status": TransactionStatus(new).value, **fields}
        updated = (
            self.db.query(Payment)
            .filter(
                Payment.id == payment_id,
                Payment.status == TransactionStatus(expected).value,
            )
            .update(values, synchronize_session=False)
        )
        return updated == 1

    def current_status(self, payment_id: UUID) -> TransactionStatus | None:
        """Read the committed status straight from the table, bypassing the identity map."""
        status = self.db.query(Payment.status).filter(Payment.id == payment_id).scalar()
        return TransactionStatus(status) if status else None

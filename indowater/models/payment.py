"""Payment model for tracking prepaid top-up transactions."""

from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    func,
)

from indowater.core.database import Base
from indowater.models.customer import UUIDType, generate_uuid


class TransactionStatus(str, Enum):
    """Internal transaction status vocabulary shared by every gateway."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    EXPIRED = "expired"
    REFUNDED = "refunded"


TERMINAL_STATUSES = frozenset(
    {
        TransactionStatus.SUCCESS,
        TransactionStatus.FAILED,
        TransactionStatus.EXPIRED,
        TransactionStatus.REFUNDED,
    }
)


class PaymentGatewayType(str, Enum):
    """Supported payment gateways."""

    MIDTRANS = "midtrans"
    DOKU = "doku"


class Payment(Base):
    """Payment model - one payment attempt against a gateway."""

    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint(
            "gateway",
            "gateway_transaction_id",
            name="uq_payments_gateway_transaction_id",
        ),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    order_id = Column(String(64), unique=True, index=True, nullable=False)
    customer_id = Column(
        UUIDType, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    client_id = Column(String(64), nullable=True, index=True)

    # Integer rupiah, immutable after creation
    amount = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False, default="IDR")
    status = Column(String(20), nullable=False, default=TransactionStatus.PENDING.value)

    gateway = Column(String(20), nullable=False)
    gateway_transaction_id = Column(String(255), nullable=True, index=True)
    payment_method = Column(String(50), nullable=True)
    payment_url = Column(Text, nullable=True)

    # Last payload seen from the gateway, kept for audit
    gateway_response = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    paid_at = Column(DateTime(timezone=True), nullable=True)

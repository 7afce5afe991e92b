"""Credit ledger model for prepaid balance movements."""

from enum import Enum

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, String, func

from indowater.core.database import Base
from indowater.models.customer import UUIDType, generate_uuid


class CreditTransactionType(str, Enum):
    CREDIT = "credit"
    REVERSAL = "reversal"


class CreditTransaction(Base):
    """One balance movement. ``amount`` is positive for credits and negative for reversals."""

    __tablename__ = "credit_transactions"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    customer_id = Column(
        UUIDType, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    payment_id = Column(
        UUIDType, ForeignKey("payments.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    transaction_type = Column(String(20), nullable=False)
    amount = Column(BigInteger, nullable=False)
    balance_after = Column(BigInteger, nullable=False)
    reason = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

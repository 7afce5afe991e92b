"""Credit ledger: balance movements on a customer's prepaid account.

``apply_credit`` and ``reverse_credit`` only flush. They run inside the
webhook apply step, which commits the ledger row, the balance change and the
payment status together.
"""

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from indowater.models.credit_transaction import CreditTransaction, CreditTransactionType
from indowater.models.customer import Customer

logger = logging.getLogger(__name__)


class CustomerNotFoundError(LookupError):
    """Raised when a ledger movement references a customer that does not exist."""


class CreditTransactionRepository:
    """Repository for CreditTransaction model."""

    def __init__(self, db: Session):
        self.db = db

    def _adjust_balance(self, customer_id: UUID, delta: int) -> int:
        updated = (
            self.db.query(Customer)
            .filter(Customer.id == customer_id)
            .update({"balance": Customer.balance + delta}, synchronize_session=False)
        )
        if not updated:
            raise CustomerNotFoundError(f"Customer {customer_id} not found")
        balance = self.db.query(Customer.balance).filter(Customer.id == customer_id).scalar()
        return int(balance)

    def _record(
        self,
        customer_id: UUID,
        transaction_type: CreditTransactionType,
        amount: int,
        balance_after: int,
        payment_id: UUID | None,
        reason: str | None,
    ) -> CreditTransaction:
        entry = CreditTransaction(
            customer_id=customer_id,
            payment_id=payment_id,
            transaction_type=transaction_type.value,
            amount=amount,
            balance_after=balance_after,
            reason=reason,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def apply_credit(
        self,
        customer_id: UUID,
        amount: int,
        payment_id: UUID | None = None,
        reason: str | None = None,
    ) -> CreditTransaction:
        """Add ``amount`` to the customer's balance and record a credit entry."""
        if amount <= 0:
            raise ValueError("Credit amount must be positive")
        balance = self._adjust_balance(customer_id, amount)
        return self._record(
            customer_id, CreditTransactionType.CREDIT, amount, balance, payment_id, reason
        )

    def reverse_credit(
        self,
        customer_id: UUID,
        amount: int,
        payment_id: UUID | None = None,
        reason: str | None = None,
    ) -> CreditTransaction:
        """Subtract ``amount`` from the balance. The balance may go negative."""
        if amount <= 0:
            raise ValueError("Reversal amount must be positive")
        balance = self._adjust_balance(customer_id, -amount)
        if balance < 0:
            logger.warning(
                "Credit reversal left customer %s with negative balance %s", customer_id, balance
            )
        return self._record(
            customer_id, CreditTransactionType.REVERSAL, -amount, balance, payment_id, reason
        )

    def get_for_payment(self, payment_id: UUID) -> list[CreditTransaction]:
        """Get all ledger entries written for a payment, oldest first."""
        return (
            self.db.query(CreditTransaction)
            .filter(CreditTransaction.payment_id == payment_id)
            .order_by(CreditTransaction.created_at.asc())
            .all()
        )

    def get_for_customer(
        self, customer_id: UUID, skip: int = 0, limit: int = 100
    ) -> list[CreditTransaction]:
        """Get a customer's ledger entries, newest first."""
        return (
            self.db.query(CreditTransaction)
            .filter(CreditTransaction.customer_id == customer_id)
            .order_by(CreditTransaction.created_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

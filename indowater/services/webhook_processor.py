"""Inbound payment webhook processing.

Turns a raw gateway notification into at most one state change on the
matching ``Payment`` and, for settlements and refunds, one ledger movement.
Every call ends in a classified ``ProcessingResult``; only programming errors
escape as exceptions.
"""

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from indowater.models.payment import TERMINAL_STATUSES, PaymentGatewayType, TransactionStatus
from indowater.repositories.credit_transaction_repository import (
    CreditTransactionRepository,
    CustomerNotFoundError,
)
from indowater.repositories.payment_gateway_repository import PaymentGatewayRepository
from indowater.repositories.payment_repository import PaymentRepository
from indowater.services.payment_gateway import (
    GatewayConfigurationError,
    GatewayResult,
    get_payment_gateway,
)

logger = logging.getLogger(__name__)


class WebhookOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    NO_CHANGE = "no_change"
    REJECTED = "rejected"
    RETRY = "retry"


@dataclass
class ProcessingResult:
    """Classified result of processing one webhook delivery."""

    outcome: WebhookOutcome
    message: str
    error_code: str | None = None
    gateway: str | None = None
    order_id: str | None = None
    status: TransactionStatus | None = None
    previous_status: TransactionStatus | None = None

    @property
    def retryable(self) -> bool:
        return self.outcome is WebhookOutcome.RETRY

    @property
    def ok(self) -> bool:
        return self.outcome in (
            WebhookOutcome.APPLIED,
            WebhookOutcome.DUPLICATE,
            WebhookOutcome.NO_CHANGE,
        )


class WebhookProcessor:
    """Verify, classify and apply payment gateway notifications."""

    def __init__(self, db: Session, http_client: httpx.Client | None = None):
        self.db = db
        self.http_client = http_client
        self.payment_repo = PaymentRepository(db)
        self.ledger = CreditTransactionRepository(db)
        self.gateway_repo = PaymentGatewayRepository(db)

    def process(
        self,
        gateway: str,
        raw_body: bytes,
        headers: dict[str, str] | None = None,
        client_id: str | None = None,
    ) -> ProcessingResult:
        """Process one delivery of a gateway notification.

        Args:
            gateway: Gateway identifier from the route (``midtrans`` or ``doku``).
            raw_body: The request body exactly as received.
            headers: Request headers; DOKU signatures are carried here.
            client_id: Tenant whose credentials should verify the notification.

        Returns:
            ProcessingResult. ``retry`` outcomes should be recorded for replay;
            ``rejected`` outcomes are permanent.
        """
        try:
            gateway_type = PaymentGatewayType(gateway)
        except ValueError:
            return self._reject(gateway, "unsupported_gateway", f"Unsupported gateway: {gateway}")

        try:
            credential = self.gateway_repo.get_active_config(gateway_type, client_id)
        except SQLAlchemyError as e:
            return self._persistence_retry(gateway, e)
        if credential is None:
            return self._reject(
                gateway, "gateway_not_configured", "Payment gateway is not configured"
            )

        payload = self._decode(raw_body)
        if payload is None:
            return self._reject(gateway, "invalid_payload", "Invalid notification payload")

        try:
            adapter = get_payment_gateway(credential, http_client=self.http_client)
        except GatewayConfigurationError as e:
            return self._reject(gateway, "gateway_not_configured", str(e))

        notification = adapter.handle_notification(payload, headers=headers, raw_body=raw_body)
        if not notification.success or notification.status is None:
            return self._reject(
                gateway,
                notification.error_code or "invalid_notification",
                notification.message or "Notification verification failed",
            )

        try:
            payment = self.payment_repo.find_for_notification(
                gateway_type, notification.order_id, notification.transaction_id
            )
            owner = (
                self.gateway_repo.get_active_config(gateway_type, payment.client_id)
                if payment is not None and payment.client_id != credential.client_id
                else credential
            )
        except SQLAlchemyError as e:
            return self._persistence_retry(gateway, e, notification)

        # The verifying credential must be the one the payment's own tenant resolves to
        if payment is not None and (owner is None or owner.client_id != credential.client_id):
            logger.warning(
                "Webhook for order %s verified with credentials of tenant %s, "
                "but the payment belongs to tenant %s",
                payment.order_id,
                credential.client_id,
                payment.client_id,
            )
            return self._reject(
                gateway,
                "invalid_notification",
                "Notification credentials do not match the payment's tenant",
            )

        if payment is None:
            logger.warning(
                "Webhook for unknown order %s (%s), scheduling retry",
                notification.order_id,
                gateway,
            )
            return ProcessingResult(
                outcome=WebhookOutcome.RETRY,
                message="Payment not found",
                error_code="order_not_found",
                gateway=gateway,
                order_id=notification.order_id,
                status=notification.status,
            )

        return self.apply_result(gateway, payment.id, notification)  # type: ignore[arg-type]

    def apply_result(
        self, gateway: str, payment_id: UUID, notification: GatewayResult
    ) -> ProcessingResult:
        """Apply a verified gateway result to a payment.

        Also used when a status query, rather than a webhook, reports the change.
        Persistence errors are rolled back and reported as ``retry``.
        """
        try:
            return self._apply(gateway, payment_id, notification)
        except (SQLAlchemyError, CustomerNotFoundError) as e:
            return self._persistence_retry(gateway, e, notification)

    def _persistence_retry(
        self, gateway: str, error: Exception, notification: GatewayResult | None = None
    ) -> ProcessingResult:
        self.db.rollback()
        order_id = notification.order_id if notification else None
        logger.warning("Webhook for order %s failed, scheduling retry: %s", order_id, error)
        return ProcessingResult(
            outcome=WebhookOutcome.RETRY,
            message="Temporary database failure",
            error_code="persistence_error",
            gateway=gateway,
            order_id=order_id,
            status=notification.status if notification else None,
        )

    @staticmethod
    def _decode(raw_body: bytes) -> dict[str, Any] | None:
        try:
            payload = json.loads(raw_body)
        except (ValueError, UnicodeDecodeError):
            return None
        return payload if isinstance(payload, dict) else None

    @staticmethod
    def _reject(gateway: str, error_code: str, message: str) -> ProcessingResult:
        logger.warning("Webhook rejected for %s: %s (%s)", gateway, message, error_code)
        return ProcessingResult(
            outcome=WebhookOutcome.REJECTED,
            message=message,
            error_code=error_code,
            gateway=gateway,
        )

    def _apply(
        self, gateway: str, payment_id: UUID, notification: GatewayResult
    ) -> ProcessingResult:
        """Apply the notification to a locked payment row inside one transaction."""
        payment = self.payment_repo.get_for_update(payment_id)
        if payment is None:
            self.db.rollback()
            return ProcessingResult(
                outcome=WebhookOutcome.RETRY,
                message="Payment not found",
                error_code="order_not_found",
                gateway=gateway,
                order_id=notification.order_id,
            )

        order_id = str(payment.order_id)
        current = TransactionStatus(payment.status)
        target = TransactionStatus(notification.status)

        def result(outcome: WebhookOutcome, message: str) -> ProcessingResult:
            return ProcessingResult(
                outcome=outcome,
                message=message,
                gateway=gateway,
                order_id=order_id,
                status=target,
                previous_status=current,
            )

        fields: dict[str, Any] = {"gateway_response": notification.raw_response}
        if notification.transaction_id and not payment.gateway_transaction_id:
            fields["gateway_transaction_id"] = notification.transaction_id
        if notification.payment_method and not payment.payment_method:
            fields["payment_method"] = notification.payment_method

        if current is target:
            if current not in TERMINAL_STATUSES:
                self.payment_repo.compare_and_set_status(payment.id, current, target, **fields)
                self.db.commit()
                return result(WebhookOutcome.NO_CHANGE, "Payment still pending")
            self.db.rollback()
            logger.info("Duplicate %s webhook for order %s ignored", target.value, order_id)
            return result(WebhookOutcome.DUPLICATE, "Notification already processed")

        reversing = current is TransactionStatus.SUCCESS and target is TransactionStatus.REFUNDED
        if current is not TransactionStatus.PENDING and not reversing:
            self.db.rollback()
            logger.warning(
                "Ignoring %s -> %s for order %s, payment already terminal",
                current.value,
                target.value,
                order_id,
            )
            return result(WebhookOutcome.NO_CHANGE, f"Payment already {current.value}")

        if target is TransactionStatus.SUCCESS:
            fields["paid_at"] = datetime.now(UTC)

        if not self.payment_repo.compare_and_set_status(payment.id, current, target, **fields):
            self.db.rollback()
            winner = self.payment_repo.current_status(payment.id)
            logger.info(
                "Concurrent update on order %s, now %s",
                order_id,
                winner.value if winner else None,
            )
            if winner is target:
                return result(WebhookOutcome.DUPLICATE, "Notification already processed")
            return result(WebhookOutcome.NO_CHANGE, "Payment changed concurrently")

        amount = int(payment.amount)
        if notification.amount is not None and notification.amount != amount:
            logger.warning(
                "Amount mismatch for order %s: notification %s, recorded %s",
                order_id,
                notification.amount,
                amount,
            )

        if target is TransactionStatus.SUCCESS:
            self.ledger.apply_credit(
                payment.customer_id,  # type: ignore[arg-type]
                amount,
                payment_id=payment.id,  # type: ignore[arg-type]
                reason=f"Top-up via {gateway} ({order_id})",
            )
        elif reversing:
            self.ledger.reverse_credit(
                payment.customer_id,  # type: ignore[arg-type]
                amount,
                payment_id=payment.id,  # type: ignore[arg-type]
                reason=f"Refund via {gateway} ({order_id})",
            )

        self.db.commit()
        logger.info(
            "Payment %s moved %s -> %s via %s",
            order_id,
            current.value,
            target.value,
            gateway,
        )
        return result(WebhookOutcome.APPLIED, f"Payment {target.value}")

"""Concurrent deliveries against a shared file-backed SQLite database.

Each worker gets its own session and connection, as separate webhook requests
or retry runners would.
"""

import threading
import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from indowater.core.database import Base
from indowater.models.credit_transaction import CreditTransaction
from indowater.models.customer import Customer
from indowater.models.payment import Payment, PaymentGatewayType
from indowater.models.webhook_retry import WebhookRetry
from indowater.repositories.customer_repository import CustomerRepository
from indowater.repositories.payment_gateway_repository import PaymentGatewayRepository
from indowater.repositories.payment_repository import PaymentRepository
from indowater.repositories.webhook_retry_repository import WebhookRetryRepository
from indowater.schemas.customer import CustomerCreate
from indowater.services.webhook_processor import WebhookOutcome, WebhookProcessor
from indowater.services.webhook_retry_service import WebhookRetryService
from tests.conftest import MIDTRANS_CLIENT_KEY, MIDTRANS_SERVER_KEY, midtrans_notification


@pytest.fixture
def shared_sessions(tmp_path):
    """Session factory bound to a file database that several threads can open."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'concurrency.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def pending_payment(shared_sessions):
    """A configured gateway, a customer and one pending payment of 100000."""
    db = shared_sessions()
    try:
        PaymentGatewayRepository(db).upsert(
            PaymentGatewayType.MIDTRANS,
            {"server_key": MIDTRANS_SERVER_KEY, "client_key": MIDTRANS_CLIENT_KEY},
        )
        customer = CustomerRepository(db).create(
            CustomerCreate(external_id=f"cust_{uuid.uuid4()}", name="Dewi Lestari")
        )
        payment = PaymentRepository(db).create(
            order_id=f"INDO-RACE-{uuid.uuid4().hex[:8]}",
            customer_id=customer.id,
            amount=100000,
            gateway=PaymentGatewayType.MIDTRANS,
        )
        return customer.id, payment.id, payment.order_id
    finally:
        db.close()


def _run_together(shared_sessions, work, count: int = 2) -> list:
    """Run ``work(session)`` in ``count`` threads, each with its own session."""
    results: list = [None] * count
    errors: list[Exception] = []

    def run(index: int) -> None:
        db = shared_sessions()
        try:
            results[index] = work(db)
        except Exception as e:
            errors.append(e)
        finally:
            db.close()

    threads = [threading.Thread(target=run, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert not errors, errors
    return results


def _after(original, barrier: threading.Barrier):
    """Wrap a repository method so every thread waits at ``barrier`` once it returns."""

    def wrapper(self, *args, **kwargs):
        value = original(self, *args, **kwargs)
        barrier.wait()
        return value

    return wrapper


def _ledger(shared_sessions, customer_id, payment_id) -> tuple[int, int]:
    db = shared_sessions()
    try:
        credits = db.query(CreditTransaction).filter(
            CreditTransaction.payment_id == payment_id
        ).count()
        balance = db.query(Customer.balance).filter(Customer.id == customer_id).scalar()
        return credits, balance
    finally:
        db.close()


class TestConcurrentWebhookDelivery:
    def test_simultaneous_settlements_credit_once(self, shared_sessions, pending_payment):
        customer_id, payment_id, order_id = pending_payment
        body = midtrans_notification(order_id)
        barrier = threading.Barrier(2, timeout=20)

        # Both deliveries load the pending row before either writes
        racing = _after(PaymentRepository.get_for_update, barrier)
        with patch.object(PaymentRepository, "get_for_update", racing):
            results = _run_together(
                shared_sessions, lambda db: WebhookProcessor(db).process("midtrans", body)
            )

        outcomes = [result.outcome for result in results]
        assert outcomes.count(WebhookOutcome.APPLIED) == 1
        assert _ledger(shared_sessions, customer_id, payment_id) == (1, 100000)

        db = shared_sessions()
        try:
            assert db.query(Payment.status).filter(Payment.id == payment_id).scalar() == "success"
        finally:
            db.close()

    def test_many_deliveries_credit_once(self, shared_sessions, pending_payment):
        customer_id, payment_id, order_id = pending_payment
        body = midtrans_notification(order_id)

        results = _run_together(
            shared_sessions,
            lambda db: WebhookProcessor(db).process("midtrans", body),
            count=5,
        )

        assert [r.outcome for r in results].count(WebhookOutcome.APPLIED) == 1
        assert _ledger(shared_sessions, customer_id, payment_id) == (1, 100000)


class TestConcurrentRetryRunners:
    def test_overlapping_runs_replay_a_row_once(self, shared_sessions, pending_payment):
        customer_id, payment_id, order_id = pending_payment
        db = shared_sessions()
        try:
            WebhookRetryService(db).record_failure(
                midtrans_notification(order_id), "midtrans", "Payment not found"
            )
        finally:
            db.close()

        now = datetime.now(UTC) + timedelta(hours=1)
        barrier = threading.Barrier(2, timeout=20)

        # Both runners see the row as due before either claims it
        racing = _after(WebhookRetryRepository.get_due_ids, barrier)
        with patch.object(WebhookRetryRepository, "get_due_ids", racing):
            summaries = _run_together(
                shared_sessions,
                lambda db: WebhookRetryService(db).process_pending_retries(
                    WebhookProcessor(db), now=now
                ),
            )

        assert sum(s.processed for s in summaries) == 1
        assert sum(s.succeeded for s in summaries) == 1
        assert sum(s.skipped for s in summaries) == 1
        assert _ledger(shared_sessions, customer_id, payment_id) == (1, 100000)

        db = shared_sessions()
        try:
            assert db.query(WebhookRetry).count() == 0
        finally:
            db.close()

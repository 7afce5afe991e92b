"""Shared test fixtures for all test modules."""

import contextlib
import json
import uuid

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from indowater.core import database as db_module
from indowater.core.database import Base, get_db
from indowater.models.payment import PaymentGatewayType
from indowater.repositories.customer_repository import CustomerRepository
from indowater.repositories.payment_gateway_repository import PaymentGatewayRepository
from indowater.repositories.payment_repository import PaymentRepository
from indowater.schemas.customer import CustomerCreate
from indowater.services.gateway_signature import doku_signature, midtrans_signature

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

MIDTRANS_SERVER_KEY = "SB-Mid-server-test-key"
MIDTRANS_CLIENT_KEY = "SB-Mid-client-test-key"
DOKU_CLIENT_ID = "BRN-0001-TEST"
DOKU_SECRET_KEY = "SK-doku-test-secret"
DOKU_NOTIFICATION_TARGET = "/webhooks/payment/doku"


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database. Clears data after each test.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def db_session():
    """Create a database session for direct repository testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture
def customer(db_session):
    """Create a test customer with a zero balance."""
    return CustomerRepository(db_session).create(
        CustomerCreate(
            external_id=f"cust_{uuid.uuid4()}",
            name="Budi Santoso",
            email="budi@example.co.id",
            phone="081234567890",
        )
    )


@pytest.fixture
def midtrans_config(db_session):
    """System-wide Midtrans credentials."""
    return PaymentGatewayRepository(db_session).upsert(
        PaymentGatewayType.MIDTRANS,
        {"server_key": MIDTRANS_SERVER_KEY, "client_key": MIDTRANS_CLIENT_KEY},
    )


@pytest.fixture
def doku_config(db_session):
    """System-wide DOKU credentials."""
    return PaymentGatewayRepository(db_session).upsert(
        PaymentGatewayType.DOKU,
        {
            "client_id": DOKU_CLIENT_ID,
            "secret_key": DOKU_SECRET_KEY,
            "notification_target": DOKU_NOTIFICATION_TARGET,
        },
    )


@pytest.fixture
def make_payment(db_session, customer):
    """Factory for pending payments owned by the test customer."""

    def _make(
        order_id: str | None = None,
        amount: int = 100000,
        gateway: PaymentGatewayType = PaymentGatewayType.MIDTRANS,
        gateway_transaction_id: str | None = None,
        client_id: str | None = None,
    ):
        return PaymentRepository(db_session).create(
            order_id=order_id or f"INDO-{uuid.uuid4().hex[:12]}",
            customer_id=customer.id,
            amount=amount,
            gateway=gateway,
            gateway_transaction_id=gateway_transaction_id,
            client_id=client_id,
        )

    return _make


def midtrans_notification(
    order_id: str,
    transaction_status: str = "settlement",
    gross_amount: str = "100000.00",
    status_code: str = "200",
    server_key: str = MIDTRANS_SERVER_KEY,
    **extra,
) -> bytes:
    """Build a signed Midtrans notification body."""
    payload = {
        "transaction_time": "2026-10-17 10:00:00",
        "transaction_status": transaction_status,
        "transaction_id": extra.pop("transaction_id", f"mt-{order_id}"),
        "status_message": "midtrans payment notification",
        "status_code": status_code,
        "signature_key": midtrans_signature(order_id, status_code, gross_amount, server_key),
        "payment_type": "bank_transfer",
        "order_id": order_id,
        "gross_amount": gross_amount,
        "fraud_status": "accept",
        "currency": "IDR",
    }
    payload.update(extra)
    return json.dumps(payload).encode("utf-8")


def doku_notification(
    order_id: str,
    status: str = "SUCCESS",
    amount: int = 100000,
    secret_key: str = DOKU_SECRET_KEY,
    client_id: str = DOKU_CLIENT_ID,
    target: str = DOKU_NOTIFICATION_TARGET,
) -> tuple[bytes, dict[str, str]]:
    """Build a DOKU notification body and its signed headers."""
    body = json.dumps(
        {
            "order": {"invoice_number": order_id, "amount": amount},
            "transaction": {
                "status": status,
                "transaction_id": f"dk-{order_id}",
                "date": "2026-10-17T10:00:00Z",
            },
            "channel": {"id": "VIRTUAL_ACCOUNT_BCA"},
        }
    ).encode("utf-8")
    request_id = str(uuid.uuid4())
    timestamp = "2026-10-17T10:00:00Z"
    headers = {
        "Client-Id": client_id,
        "Request-Id": request_id,
        "Request-Timestamp": timestamp,
        "Signature": doku_signature(client_id, request_id, timestamp, target, secret_key, body),
        "Content-Type": "application/json",
    }
    return body, headers

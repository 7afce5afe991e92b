"""Webhook retry model for inbound gateway notifications awaiting replay."""

from enum import Enum

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
    func,
)

from indowater.core.database import Base
from indowater.models.customer import UUIDType, generate_uuid


class WebhookRetryStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DEAD = "dead"


class WebhookRetry(Base):
    """A failed inbound webhook delivery, replayed until it succeeds or is dead-lettered."""

    __tablename__ = "webhook_retries"
    __table_args__ = (
        Index("ix_webhook_retries_status_next_retry_at", "status", "next_retry_at"),
        Index("ix_webhook_retries_gateway", "gateway"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    delivery_id = Column(String(64), unique=True, nullable=False)
    order_id = Column(String(64), nullable=True, index=True)
    gateway = Column(String(20), nullable=False)
    client_id = Column(String(64), nullable=True)

    # Raw request body, byte-exact so signatures still verify on replay
    payload = Column(LargeBinary, nullable=False)
    headers = Column(JSON, nullable=True)

    attempts = Column(Integer, nullable=False, default=1)
    next_retry_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(20), nullable=False, default=WebhookRetryStatus.PENDING.value)
    last_error = Column(Text, nullable=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

"""Webhook schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class WebhookAck(BaseModel):
    """Acknowledgement returned to the gateway."""

    status: str
    message: str


class RetryStatsResponse(BaseModel):
    total_pending: int
    by_method: dict[str, int]
    by_attempt: dict[int, int]
    processing: int
    dead: int


class WebhookStatusResponse(BaseModel):
    """Health of the webhook pipeline for operators."""

    status: str
    retry_stats: RetryStatsResponse
    supported_gateways: list[str]
    endpoints: dict[str, str]


class DeadLetterResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    delivery_id: str
    gateway: str
    order_id: str | None = None
    client_id: str | None = None
    attempts: int
    last_error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

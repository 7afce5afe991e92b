"""Payment schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from indowater.models.payment import PaymentGatewayType
from indowater.services.payment_gateway import DEFAULT_ITEM_NAME


class PaymentCreate(BaseModel):
    """Schema for creating a top-up payment."""

    gateway: PaymentGatewayType
    customer_id: UUID
    client_id: str | None = Field(default=None, max_length=64)
    amount: int = Field(..., gt=0, description="Amount in whole rupiah")
    customer_name: str = Field(..., min_length=1)
    customer_email: str = Field(..., min_length=1)
    customer_phone: str = ""
    customer_address: str = ""
    payment_method: str | None = None
    bank: str | None = None
    item_name: str = DEFAULT_ITEM_NAME
    expiry_duration: int | None = Field(default=None, gt=0)
    expiry_unit: str = Field(default="minute", pattern="^(minute|hour|day)$")
    callback_url: str = ""
    finish_url: str = ""
    error_url: str = ""
    pending_url: str = ""


class PaymentResponse(BaseModel):
    """Schema for payment response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_id: str
    customer_id: UUID
    client_id: str | None = None
    amount: int
    currency: str
    status: str
    gateway: str
    gateway_transaction_id: str | None = None
    payment_method: str | None = None
    payment_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    paid_at: datetime | None = None


class GatewayResultResponse(BaseModel):
    """Normalized gateway result returned to API callers."""

    success: bool
    transaction_id: str | None = None
    order_id: str | None = None
    status: str | None = None
    amount: int | None = None
    message: str | None = None
    error_code: str | None = None
    payment_method: str | None = None
    payment_url: str | None = None
    redirect_url: str | None = None
    expiry_time: str | None = None
    raw_response: Any = None
    actions: list[dict[str, Any]] = Field(default_factory=list)


class PaymentActionResponse(BaseModel):
    """Result of a status check or cancellation against the gateway."""

    gateway_result: GatewayResultResponse
    outcome: str | None = None
    payment: PaymentResponse

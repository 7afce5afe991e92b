"""Payment gateway configuration schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from indowater.models.payment_gateway import GatewayEnvironment


class PaymentGatewayConfigUpdate(BaseModel):
    """Schema for configuring a gateway for a tenant or system-wide."""

    credentials: dict[str, str]
    environment: GatewayEnvironment = GatewayEnvironment.SANDBOX
    is_active: bool = True
    client_id: str | None = Field(default=None, max_length=64)


class PaymentGatewayConfigResponse(BaseModel):
    """Configuration row with secret values masked."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: str | None = None
    gateway: str
    environment: str
    is_active: bool
    credentials: dict[str, str]
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("credentials", mode="before")
    @classmethod
    def mask_credentials(cls, value: Any) -> dict[str, str]:
        masked: dict[str, str] = {}
        for key, secret in dict(value or {}).items():
            text = str(secret or "")
            masked[key] = f"****{text[-4:]}" if len(text) > 4 else "****"
        return masked


class GatewayCapabilities(BaseModel):
    """What a gateway supports and which credentials it needs."""

    gateway: str
    name: str
    payment_methods: list[str]
    required_config_fields: dict[str, dict[str, Any]]
    configured: bool

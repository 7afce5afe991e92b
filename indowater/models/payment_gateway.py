"""Payment gateway configuration model."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from sqlalchemy import JSON, Boolean, Column, DateTime, String, UniqueConstraint, func

from indowater.core.database import Base
from indowater.models.customer import UUIDType, generate_uuid


class GatewayEnvironment(str, Enum):
    SANDBOX = "sandbox"
    PRODUCTION = "production"


class PaymentGatewayConfig(Base):
    """Gateway credentials for one tenant, or system-wide when ``client_id`` is NULL."""

    __tablename__ = "payment_gateways"
    __table_args__ = (
        UniqueConstraint("client_id", "gateway", name="uq_payment_gateways_client_id_gateway"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    client_id = Column(String(64), nullable=True, index=True)
    gateway = Column(String(20), nullable=False)
    environment = Column(String(20), nullable=False, default=GatewayEnvironment.SANDBOX.value)
    credentials = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


@dataclass(frozen=True)
class GatewayCredential:
    """Immutable gateway credentials for one processing run."""

    gateway: str
    environment: str = GatewayEnvironment.SANDBOX.value
    credentials: Mapping[str, str] = field(default_factory=dict)
    is_active: bool = True
    client_id: str | None = None

    @property
    def is_production(self) -> bool:
        return self.environment == GatewayEnvironment.PRODUCTION.value

    def get(self, key: str, default: str | None = None) -> str | None:
        value = self.credentials.get(key)
        return value if value else default

    @classmethod
    def from_model(cls, config: PaymentGatewayConfig) -> "GatewayCredential":
        return cls(
            gateway=str(config.gateway),
            environment=str(config.environment),
            credentials=MappingProxyType(dict(config.credentials or {})),
            is_active=bool(config.is_active),
            client_id=config.client_id,  # type: ignore[arg-type]
        )

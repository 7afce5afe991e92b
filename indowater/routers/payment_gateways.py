"""Payment gateway configuration endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from indowater.core.database import get_db
from indowater.models.payment import PaymentGatewayType
from indowater.models.payment_gateway import PaymentGatewayConfig
from indowater.repositories.payment_gateway_repository import PaymentGatewayRepository
from indowater.schemas.payment_gateway import (
    GatewayCapabilities,
    PaymentGatewayConfigResponse,
    PaymentGatewayConfigUpdate,
)
from indowater.services.payment_gateway import get_gateway_class

router = APIRouter()

GATEWAY_NAMES = {PaymentGatewayType.MIDTRANS: "Midtrans", PaymentGatewayType.DOKU: "DOKU"}


@router.get("/", response_model=list[GatewayCapabilities])
async def list_gateways(
    client_id: str | None = Query(default=None, max_length=64),
    db: Session = Depends(get_db),
) -> list[GatewayCapabilities]:
    """Supported gateways, their payment methods and required credentials."""
    repo = PaymentGatewayRepository(db)
    capabilities = []
    for gateway in PaymentGatewayType:
        gateway_class = get_gateway_class(gateway)
        capabilities.append(
            GatewayCapabilities(
                gateway=gateway.value,
                name=GATEWAY_NAMES[gateway],
                payment_methods=list(gateway_class.PAYMENT_METHODS),
                required_config_fields=gateway_class.get_required_config_fields(),
                configured=repo.get_active_config(gateway, client_id) is not None,
            )
        )
    return capabilities


@router.get("/configs", response_model=list[PaymentGatewayConfigResponse])
async def list_gateway_configs(
    client_id: str | None = Query(default=None, max_length=64),
    db: Session = Depends(get_db),
) -> list[PaymentGatewayConfig]:
    """Configured gateway rows for a tenant and the system-wide defaults."""
    return PaymentGatewayRepository(db).list_all(client_id=client_id)


@router.put("/{gateway}", response_model=PaymentGatewayConfigResponse)
async def configure_gateway(
    gateway: PaymentGatewayType,
    data: PaymentGatewayConfigUpdate,
    db: Session = Depends(get_db),
) -> PaymentGatewayConfig:
    """Create or replace gateway credentials."""
    gateway_class = get_gateway_class(gateway)
    if not gateway_class.validate_config(data.credentials):
        missing = [
            name for name in gateway_class.REQUIRED_CONFIG_FIELDS if not data.credentials.get(name)
        ]
        raise HTTPException(
            status_code=400,
            detail=f"Missing required credentials: {', '.join(missing)}",
        )
    return PaymentGatewayRepository(db).upsert(
        gateway,
        data.credentials,
        environment=data.environment,
        is_active=data.is_active,
        client_id=data.client_id,
    )

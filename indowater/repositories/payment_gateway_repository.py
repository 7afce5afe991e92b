"""Payment gateway configuration repository."""

from types import MappingProxyType
from typing import Any

from sqlalchemy.orm import Session

from indowater.core.config import settings
from indowater.models.payment import PaymentGatewayType
from indowater.models.payment_gateway import (
    GatewayCredential,
    GatewayEnvironment,
    PaymentGatewayConfig,
)


def credential_from_settings(gateway: PaymentGatewayType | str) -> GatewayCredential | None:
    """Build a system-wide credential from environment settings, if any are set."""
    gateway = PaymentGatewayType(gateway)
    if gateway is PaymentGatewayType.MIDTRANS:
        environment = settings.midtrans_environment
        credentials = {
            "server_key": settings.midtrans_server_key,
            "client_key": settings.midtrans_client_key,
        }
    else:
        environment = settings.doku_environment
        credentials = {
            "client_id": settings.doku_client_id,
            "secret_key": settings.doku_secret_key,
            "notification_target": settings.doku_notification_target,
        }

    secrets_present = [value for key, value in credentials.items() if key != "notification_target"]
    if not all(secrets_present):
        return None
    return GatewayCredential(
        gateway=gateway.value,
        environment=environment,
        credentials=MappingProxyType(credentials),
    )


class PaymentGatewayRepository:
    """Repository for PaymentGatewayConfig model."""

    def __init__(self, db: Session):
        self.db = db

    def get(
        self, gateway: PaymentGatewayType | str, client_id: str | None = None
    ) -> PaymentGatewayConfig | None:
        """Get the row for this tenant, or the system-wide row when ``client_id`` is None."""
        query = self.db.query(PaymentGatewayConfig).filter(
            PaymentGatewayConfig.gateway == PaymentGatewayType(gateway).value
        )
        if client_id is None:
            query = query.filter(PaymentGatewayConfig.client_id.is_(None))
        else:
            query = query.filter(PaymentGatewayConfig.client_id == client_id)
        return query.first()

    def list_all(self, client_id: str | None = None) -> list[PaymentGatewayConfig]:
        """List configuration rows for a tenant plus the system-wide rows."""
        query = self.db.query(PaymentGatewayConfig)
        if client_id is not None:
            query = query.filter(
                (PaymentGatewayConfig.client_id == client_id)
                | PaymentGatewayConfig.client_id.is_(None)
            )
        return query.order_by(PaymentGatewayConfig.gateway.asc()).all()

    def get_active_config(
        self, gateway: PaymentGatewayType | str, client_id: str | None = None
    ) -> GatewayCredential | None:
        """Resolve the credential to use for ``gateway``.

        Order: active tenant row, active system-wide row, environment settings.
        A system-wide row that is switched off disables the settings fallback.
        """
        if client_id is not None:
            config = self.get(gateway, client_id)
            if config is not None and config.is_active:
                return GatewayCredential.from_model(config)

        config = self.get(gateway, None)
        if config is not None:
            return GatewayCredential.from_model(config) if config.is_active else None
        return credential_from_settings(gateway)

    def upsert(
        self,
        gateway: PaymentGatewayType,
        credentials: dict[str, Any],
        environment: GatewayEnvironment = GatewayEnvironment.SANDBOX,
        is_active: bool = True,
        client_id: str | None = None,
    ) -> PaymentGatewayConfig:
        """Create or replace the configuration row for ``(client_id, gateway)``."""
        config = self.get(gateway, client_id)
        if config is None:
            config = PaymentGatewayConfig(gateway=gateway.value, client_id=client_id)
            self.db.add(config)

        config.credentials = dict(credentials)  # type: ignore[assignment]
        config.environment = environment.value  # type: ignore[assignment]
        config.is_active = is_active  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(config)
        return config

"""Payment API endpoints."""

from uuid import UUID

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from indowater.core.database import get_db
from indowater.models.payment import Payment, PaymentGatewayType, TransactionStatus
from indowater.repositories.payment_repository import PaymentRepository
from indowater.schemas.payment import (
    GatewayResultResponse,
    PaymentActionResponse,
    PaymentCreate,
    PaymentResponse,
)
from indowater.services.payment_gateway import GatewayResult, TransactionRequest
from indowater.services.payment_service import PaymentService
from indowater.services.webhook_processor import ProcessingResult

router = APIRouter()

# Failures caused by the request rather than by the gateway
_CLIENT_ERRORS = {"validation_error", "gateway_not_configured", "invalid_state"}


def get_gateway_http_client() -> httpx.Client | None:
    """Outbound HTTP client for gateway calls. ``None`` lets each call open its own."""
    return None


def _raise_for_failure(result: GatewayResult) -> None:
    if result.success:
        return
    if result.error_code == "customer_not_found":
        raise HTTPException(status_code=404, detail=result.message)
    status_code = 400 if result.error_code in _CLIENT_ERRORS else 502
    raise HTTPException(status_code=status_code, detail=result.message)


def _action_response(
    db: Session,
    order_id: str,
    outcome: tuple[GatewayResult, ProcessingResult | None] | None,
) -> PaymentActionResponse:
    if outcome is None:
        raise HTTPException(status_code=404, detail="Payment not found")
    result, processing = outcome
    _raise_for_failure(result)

    payment = PaymentRepository(db).get_by_order_id(order_id)
    return PaymentActionResponse(
        gateway_result=GatewayResultResponse(**result.to_dict(), actions=result.actions),
        outcome=processing.outcome.value if processing else None,
        payment=PaymentResponse.model_validate(payment),
    )


@router.get("/", response_model=list[PaymentResponse])
async def list_payments(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    customer_id: UUID | None = None,
    status: TransactionStatus | None = None,
    gateway: PaymentGatewayType | None = None,
    client_id: str | None = None,
    db: Session = Depends(get_db),
) -> list[Payment]:
    """List payments with optional filters."""
    return PaymentRepository(db).get_all(
        skip=skip,
        limit=limit,
        customer_id=customer_id,
        status=status,
        gateway=gateway,
        client_id=client_id,
    )


@router.post("/", response_model=GatewayResultResponse, status_code=201)
async def create_payment(
    data: PaymentCreate,
    db: Session = Depends(get_db),
    http_client: httpx.Client | None = Depends(get_gateway_http_client),
) -> GatewayResultResponse:
    """Create a top-up payment and return where the customer should pay."""
    request = TransactionRequest(
        amount=data.amount,
        customer_name=data.customer_name,
        customer_email=data.customer_email,
        customer_phone=data.customer_phone,
        customer_address=data.customer_address,
        payment_method=data.payment_method,
        bank=data.bank,
        item_name=data.item_name,
        expiry_duration=data.expiry_duration,
        expiry_unit=data.expiry_unit,
        callback_url=data.callback_url,
        finish_url=data.finish_url,
        error_url=data.error_url,
        pending_url=data.pending_url,
    )
    result = PaymentService(db, http_client=http_client).create_payment(
        data.gateway, request, data.customer_id, client_id=data.client_id
    )
    _raise_for_failure(result)
    return GatewayResultResponse(**result.to_dict(), actions=result.actions)


@router.get("/{order_id}", response_model=PaymentResponse)
async def get_payment(order_id: str, db: Session = Depends(get_db)) -> Payment:
    """Get a payment by order ID."""
    payment = PaymentRepository(db).get_by_order_id(order_id)
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    return payment


@router.post("/{order_id}/check-status", response_model=PaymentActionResponse)
async def check_payment_status(
    order_id: str,
    db: Session = Depends(get_db),
    http_client: httpx.Client | None = Depends(get_gateway_http_client),
) -> PaymentActionResponse:
    """Ask the gateway for the current status and reconcile the payment."""
    outcome = PaymentService(db, http_client=http_client).check_payment_status(order_id)
    return _action_response(db, order_id, outcome)


@router.post("/{order_id}/cancel", response_model=PaymentActionResponse)
async def cancel_payment(
    order_id: str,
    db: Session = Depends(get_db),
    http_client: httpx.Client | None = Depends(get_gateway_http_client),
) -> PaymentActionResponse:
    """Cancel a pending payment at the gateway."""
    outcome = PaymentService(db, http_client=http_client).cancel_payment(order_id)
    return _action_response(db, order_id, outcome)

"""Inbound payment gateway webhook endpoints."""

import ipaddress
import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session
from starlette.datastructures import Headers

from indowater.core.database import get_db
from indowater.models.payment import PaymentGatewayType
from indowater.models.webhook_retry import WebhookRetry
from indowater.schemas.webhook import (
    DeadLetterResponse,
    RetryStatsResponse,
    WebhookAck,
    WebhookStatusResponse,
)
from indowater.services.webhook_processor import WebhookProcessor
from indowater.services.webhook_retry_service import WebhookRetryService

logger = logging.getLogger(__name__)

router = APIRouter()

SUPPORTED_GATEWAYS = [gateway.value for gateway in PaymentGatewayType]


# Checked in order; the first public address wins
CLIENT_IP_HEADERS = (
    "CF-Connecting-IP",
    "X-Forwarded-For",
    "X-Real-IP",
    "X-Forwarded",
    "X-Cluster-Client-IP",
    "Forwarded-For",
)


def client_ip(request: Request) -> str:
    """Originating address of a webhook call, looking through proxy headers."""
    for header in CLIENT_IP_HEADERS:
        value = request.headers.get(header)
        if not value:
            continue
        candidate = value.split(",")[0].strip()
        try:
            address = ipaddress.ip_address(candidate)
        except ValueError:
            continue
        if address.is_global:
            return candidate
    return request.client.host if request.client else "unknown"


def _process_webhook(
    db: Session,
    method: str,
    raw_body: bytes,
    headers: Headers,
    client_id: str | None,
) -> WebhookAck:
    result = WebhookProcessor(db).process(
        method, raw_body, headers=dict(headers), client_id=client_id
    )
    if result.retryable:
        WebhookRetryService(db).record_failure(
            raw_body,
            method,
            result.message,
            headers=headers,
            client_id=client_id,
            order_id=result.order_id,
        )
        return WebhookAck(status="success", message="Webhook queued for retry")
    if result.ok:
        return WebhookAck(status="success", message=result.message)
    return WebhookAck(status="error", message=result.message)


@router.post("/payment/{method}", response_model=WebhookAck)
async def handle_payment_webhook(
    method: str,
    request: Request,
    client_id: str | None = Query(default=None, max_length=64),
    db: Session = Depends(get_db),
) -> WebhookAck:
    """Receive a Midtrans or DOKU notification.

    Classified outcomes are always acknowledged with HTTP 200 so the gateway
    stops redelivering; retryable failures are stored and replayed later.
    """
    if method not in SUPPORTED_GATEWAYS:
        raise HTTPException(status_code=400, detail="Invalid payment method")

    ip = client_ip(request)
    logger.info(
        "Webhook request received: gateway=%s client_ip=%s user_agent=%s",
        method,
        ip,
        request.headers.get("user-agent", ""),
    )
    started = time.perf_counter()
    raw_body = await request.body()

    try:
        ack = _process_webhook(db, method, raw_body, request.headers, client_id)
    except Exception as e:
        logger.exception(
            "Webhook processing failed: gateway=%s client_ip=%s processing_time_ms=%.2f",
            method,
            ip,
            (time.perf_counter() - started) * 1000,
        )
        raise HTTPException(status_code=500, detail="Webhook processing failed") from e

    logger.info(
        "Webhook processed: gateway=%s status=%s client_ip=%s processing_time_ms=%.2f",
        method,
        ack.status,
        ip,
        (time.perf_counter() - started) * 1000,
    )
    return ack


@router.get("/status", response_model=WebhookStatusResponse)
async def webhook_status(db: Session = Depends(get_db)) -> WebhookStatusResponse:
    """Retry statistics and the webhook endpoints exposed to each gateway."""
    stats = WebhookRetryService(db).get_retry_stats()
    return WebhookStatusResponse(
        status="ok",
        retry_stats=RetryStatsResponse(**stats),
        supported_gateways=SUPPORTED_GATEWAYS,
        endpoints={gateway: f"/webhooks/payment/{gateway}" for gateway in SUPPORTED_GATEWAYS},
    )


@router.get("/retries/dead", response_model=list[DeadLetterResponse])
async def list_dead_letters(
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> list[WebhookRetry]:
    """Deliveries that exhausted their retries or were rejected on replay."""
    return WebhookRetryService(db).list_dead_letters(limit=limit)

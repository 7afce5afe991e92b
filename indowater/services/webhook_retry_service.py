"""Retry scheduling for inbound webhooks that could not be applied yet."""

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session

from indowater.core.config import settings
from indowater.models.webhook_retry import WebhookRetry
from indowater.repositories.webhook_retry_repository import WebhookRetryRepository
from indowater.services.webhook_processor import (
    ProcessingResult,
    WebhookOutcome,
    WebhookProcessor,
)

logger = logging.getLogger(__name__)

# Only these headers are needed to re-verify a stored delivery
REPLAY_HEADERS = ("Client-Id", "Request-Id", "Request-Timestamp", "Signature", "Content-Type")


@dataclass
class RetryRunSummary:
    """Counts for one ``process_pending_retries`` pass."""

    processed: int = 0
    succeeded: int = 0
    rescheduled: int = 0
    dead_lettered: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "rescheduled": self.rescheduled,
            "dead_lettered": self.dead_lettered,
            "skipped": self.skipped,
        }


def extract_order_id(gateway: str, payload: bytes | dict[str, Any]) -> str | None:
    """Best-effort order id from a notification body, used for operator visibility."""
    if isinstance(payload, bytes | bytearray):
        try:
            payload = json.loads(payload)
        except (ValueError, UnicodeDecodeError):
            return None
    if not isinstance(payload, dict):
        return None

    if gateway == "midtrans":
        order_id = payload.get("order_id")
    elif gateway == "doku":
        order = payload.get("order")
        order_id = order.get("invoice_number") if isinstance(order, dict) else None
    else:
        order_id = None
    return str(order_id) if order_id else None


def replay_headers(headers: Any) -> dict[str, str]:
    """Keep only the headers needed to re-verify a delivery, with canonical names."""
    if not headers:
        return {}
    lowered = {str(k).lower(): str(v) for k, v in dict(headers).items()}
    return {name: lowered[name.lower()] for name in REPLAY_HEADERS if name.lower() in lowered}


class WebhookRetryService:
    """Service for storing failed webhook deliveries and replaying them with backoff."""

    def __init__(
        self,
        db: Session,
        base_delay_seconds: int | None = None,
        max_delay_seconds: int | None = None,
        max_attempts: int | None = None,
        claim_timeout_seconds: int | None = None,
        batch_size: int | None = None,
    ):
        self.db = db
        self.retry_repo = WebhookRetryRepository(db)
        self.base_delay_seconds = (
            base_delay_seconds
            if base_delay_seconds is not None
            else settings.webhook_retry_base_delay_seconds
        )
        self.max_delay_seconds = (
            max_delay_seconds
            if max_delay_seconds is not None
            else settings.webhook_retry_max_delay_seconds
        )
        self.max_attempts = (
            max_attempts if max_attempts is not None else settings.webhook_retry_max_attempts
        )
        self.claim_timeout_seconds = (
            claim_timeout_seconds
            if claim_timeout_seconds is not None
            else settings.webhook_retry_claim_timeout_seconds
        )
        self.batch_size = (
            batch_size if batch_size is not None else settings.webhook_retry_batch_size
        )

    def backoff_delay(self, attempt: int) -> timedelta:
        """Delay before the retry that follows ``attempt``.

        ``min(base * 2**(attempt - 1), max)``: non-decreasing and capped.
        """
        exponent = max(attempt, 1) - 1
        # Large exponents saturate at the cap
        if exponent >= 32:
            seconds = self.max_delay_seconds
        else:
            seconds = min(self.base_delay_seconds * (2**exponent), self.max_delay_seconds)
        return timedelta(seconds=seconds)

    def record_failure(
        self,
        payload: bytes,
        gateway: str,
        reason: str,
        headers: Any = None,
        client_id: str | None = None,
        order_id: str | None = None,
    ) -> WebhookRetry:
        """Store a delivery that failed with a retryable error.

        Args:
            payload: Raw request body, kept byte-exact for signature checks on replay.
            gateway: Gateway identifier (``midtrans`` or ``doku``).
            reason: Why the delivery failed.
            headers: Request headers; only those needed for replay are kept.
            client_id: Tenant the delivery was addressed to.
            order_id: Order id, extracted from the payload when not given.

        Returns:
            The new retry row, at attempt 1.
        """
        retry = self.retry_repo.create(
            delivery_id=uuid.uuid4().hex,
            gateway=gateway,
            payload=payload,
            headers=replay_headers(headers),
            client_id=client_id,
            order_id=order_id or extract_order_id(gateway, payload),
            next_retry_at=datetime.now(UTC) + self.backoff_delay(1),
            last_error=reason,
        )
        logger.warning(
            "Webhook queued for retry: gateway=%s order_id=%s reason=%s next_retry_at=%s",
            gateway,
            retry.order_id,
            reason,
            retry.next_retry_at,
        )
        return retry

    def process_pending_retries(
        self, processor: WebhookProcessor, now: datetime | None = None
    ) -> RetryRunSummary:
        """Replay every due retry through ``processor``.

        Each row is claimed with a conditional update before replay so that
        overlapping runs never replay the same delivery twice.

        Args:
            processor: WebhookProcessor used to replay stored deliveries.
            now: Reference time; defaults to the current UTC time.

        Returns:
            RetryRunSummary with counts for this pass.
        """
        now = now or datetime.now(UTC)
        stale_before = now - timedelta(seconds=self.claim_timeout_seconds)
        summary = RetryRunSummary()

        for retry_id in self.retry_repo.get_due_ids(now, stale_before, limit=self.batch_size):
            if not self.retry_repo.claim(retry_id, now, stale_before):
                summary.skipped += 1
                continue

            retry = self.retry_repo.get_by_id(retry_id)
            if retry is None:
                summary.skipped += 1
                continue

            summary.processed += 1
            delivery_id = str(retry.delivery_id)
            attempts = int(retry.attempts)
            gateway = str(retry.gateway)
            order_id = retry.order_id
            logger.info(
                "Replaying webhook %s (gateway=%s order_id=%s attempt=%s)",
                delivery_id,
                gateway,
                order_id,
                attempts,
            )

            try:
                result = processor.process(
                    gateway,
                    bytes(retry.payload),
                    headers=dict(retry.headers or {}),
                    client_id=retry.client_id,  # type: ignore[arg-type]
                )
            except Exception as e:
                # Unexpected errors count as a failed attempt
                self.db.rollback()
                logger.exception("Webhook retry %s raised during replay", delivery_id)
                result = ProcessingResult(
                    outcome=WebhookOutcome.RETRY,
                    message=f"Replay error: {e}",
                    error_code="replay_error",
                    gateway=gateway,
                    order_id=order_id,  # type: ignore[arg-type]
                )

            if result.ok:
                self.retry_repo.delete(retry_id)
                summary.succeeded += 1
                logger.info(
                    "Webhook retry %s succeeded (%s)", delivery_id, result.outcome.value
                )
            elif result.outcome is WebhookOutcome.REJECTED:
                self.retry_repo.mark_dead(retry_id, attempts, result.message)
                summary.dead_lettered += 1
                logger.error(
                    "Webhook retry %s permanently rejected, dead-lettered: %s",
                    delivery_id,
                    result.message,
                )
            else:
                next_attempt = attempts + 1
                if next_attempt >= self.max_attempts:
                    self.retry_repo.mark_dead(retry_id, next_attempt, result.message)
                    summary.dead_lettered += 1
                    logger.error(
                        "Webhook retry %s exhausted after %s attempts, dead-lettered: %s",
                        delivery_id,
                        next_attempt,
                        result.message,
                    )
                else:
                    self.retry_repo.reschedule(
                        retry_id,
                        next_attempt,
                        now + self.backoff_delay(next_attempt),
                        result.message,
                    )
                    summary.rescheduled += 1
                    logger.warning(
                        "Webhook retry %s failed (attempt %s): %s",
                        delivery_id,
                        next_attempt,
                        result.message,
                    )

        return summary

    def get_retry_stats(self) -> dict[str, Any]:
        """Aggregate counts over the retry table. Read-only."""
        by_status = self.retry_repo.count_by_status()
        pending = by_status.get("pending", 0)
        processing = by_status.get("processing", 0)
        return {
            "total_pending": pending + processing,
            "by_method": self.retry_repo.count_live_by_gateway(),
            "by_attempt": self.retry_repo.count_live_by_attempt(),
            "processing": processing,
            "dead": by_status.get("dead", 0),
        }

    def list_dead_letters(self, limit: int = 100) -> list[WebhookRetry]:
        """Dead-lettered deliveries awaiting operator action."""
        return self.retry_repo.get_dead(limit=limit)

    def clear_all_retries(self) -> int:
        """Delete every stored retry and return how many were removed."""
        cleared = self.retry_repo.delete_all()
        logger.info("Cleared %s webhook retries", cleared)
        return cleared

"""Webhook retry repository for data access."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from indowater.models.webhook_retry import WebhookRetry, WebhookRetryStatus

_LIVE_STATUSES = (WebhookRetryStatus.PENDING.value, WebhookRetryStatus.PROCESSING.value)


class WebhookRetryRepository:
    """Repository for WebhookRetry model."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        delivery_id: str,
        gateway: str,
        payload: bytes,
        next_retry_at: datetime,
        headers: dict[str, str] | None = None,
        client_id: str | None = None,
        order_id: str | None = None,
        last_error: str | None = None,
    ) -> WebhookRetry:
        """Store a failed delivery as its first attempt."""
        retry = WebhookRetry(
            delivery_id=delivery_id,
            gateway=gateway,
            payload=payload,
            headers=headers or {},
            client_id=client_id,
            order_id=order_id,
            attempts=1,
            next_retry_at=next_retry_at,
            status=WebhookRetryStatus.PENDING.value,
            last_error=last_error,
        )
        self.db.add(retry)
        self.db.commit()
        self.db.refresh(retry)
        return retry

    def get_by_id(self, retry_id: UUID) -> WebhookRetry | None:
        """Get a retry by ID."""
        return self.db.query(WebhookRetry).filter(WebhookRetry.id == retry_id).first()

    def _claimable(self, now: datetime, stale_before: datetime) -> Any:
        return or_(
            and_(
                WebhookRetry.status == WebhookRetryStatus.PENDING.value,
                WebhookRetry.next_retry_at <= now,
            ),
            and_(
                WebhookRetry.status == WebhookRetryStatus.PROCESSING.value,
                WebhookRetry.claimed_at < stale_before,
            ),
        )

    def get_due_ids(self, now: datetime, stale_before: datetime, limit: int = 100) -> list[UUID]:
        """IDs of retries that are due now, or whose claim has gone stale."""
        rows = (
            self.db.query(WebhookRetry.id)
            .filter(self._claimable(now, stale_before))
            .order_by(WebhookRetry.next_retry_at.asc())
            .limit(limit)
            .all()
        )
        return [row.id for row in rows]

    def claim(self, retry_id: UUID, now: datetime, stale_before: datetime) -> bool:
        """Move a due retry to ``processing``. False if another runner claimed it first."""
        updated = (
            self.db.query(WebhookRetry)
            .filter(WebhookRetry.id == retry_id, self._claimable(now, stale_before))
            .update(
                {"status": WebhookRetryStatus.PROCESSING.value, "claimed_at": now},
                synchronize_session=False,
            )
        )
        self.db.commit()
        return updated == 1

    def reschedule(
        self, retry_id: UUID, attempts: int, next_retry_at: datetime, last_error: str | None
    ) -> None:
        """Release a claimed retry back to ``pending`` with a new due time."""
        self.db.query(WebhookRetry).filter(WebhookRetry.id == retry_id).update(
            {
                "status": WebhookRetryStatus.PENDING.value,
                "attempts": attempts,
                "next_retry_at": next_retry_at,
                "last_error": last_error,
                "claimed_at": None,
            },
            synchronize_session=False,
        )
        self.db.commit()

    def mark_dead(self, retry_id: UUID, attempts: int, last_error: str | None) -> None:
        """Dead-letter a retry. It stays in the table for inspection."""
        self.db.query(WebhookRetry).filter(WebhookRetry.id == retry_id).update(
            {
                "status": WebhookRetryStatus.DEAD.value,
                "attempts": attempts,
                "last_error": last_error,
                "claimed_at": None,
            },
            synchronize_session=False,
        )
        self.db.commit()

    def delete(self, retry_id: UUID) -> bool:
        """Delete a retry after a successful replay."""
        deleted = (
            self.db.query(WebhookRetry)
            .filter(WebhookRetry.id == retry_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted == 1

    def delete_all(self) -> int:
        """Delete every retry row, dead-lettered ones included."""
        deleted = self.db.query(WebhookRetry).delete(synchronize_session=False)
        self.db.commit()
        return int(deleted)

    def count_by_status(self) -> dict[str, int]:
        """Row counts keyed by status."""
        rows = (
            self.db.query(WebhookRetry.status, func.count(WebhookRetry.id))
            .group_by(WebhookRetry.status)
            .all()
        )
        return {str(status): int(count) for status, count in rows}

    def count_live_by_gateway(self) -> dict[str, int]:
        """Counts of not-yet-dead retries grouped by gateway."""
        rows = (
            self.db.query(WebhookRetry.gateway, func.count(WebhookRetry.id))
            .filter(WebhookRetry.status.in_(_LIVE_STATUSES))
            .group_by(WebhookRetry.gateway)
            .all()
        )
        return {str(gateway): int(count) for gateway, count in rows}

    def count_live_by_attempt(self) -> dict[int, int]:
        """Counts of not-yet-dead retries grouped by attempt number."""
        rows = (
            self.db.query(WebhookRetry.attempts, func.count(WebhookRetry.id))
            .filter(WebhookRetry.status.in_(_LIVE_STATUSES))
            .group_by(WebhookRetry.attempts)
            .order_by(WebhookRetry.attempts.asc())
            .all()
        )
        return {int(attempts): int(count) for attempts, count in rows}

    def get_dead(self, limit: int = 100) -> list[WebhookRetry]:
        """Dead-lettered retries, most recently updated first."""
        return (
            self.db.query(WebhookRetry)
            .filter(WebhookRetry.status == WebhookRetryStatus.DEAD.value)
            .order_by(WebhookRetry.updated_at.desc())
            .limit(limit)
            .all()
        )

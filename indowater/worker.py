import logging
from typing import Any

from arq import cron
from arq.connections import RedisSettings

from indowater.core.config import settings
from indowater.core.database import SessionLocal
from indowater.core.logging_config import configure_logging
from indowater.services.webhook_processor import WebhookProcessor
from indowater.services.webhook_retry_service import WebhookRetryService

logger = logging.getLogger(__name__)

# Redis connection settings
redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)


async def startup(ctx: dict[str, Any]) -> None:
    configure_logging()


async def process_webhook_retries_task(ctx: dict[str, Any]) -> dict[str, int]:
    """Background task: replay due webhook retries with exponential backoff.

    Runs every 5 minutes. Rows are claimed before replay, so overlapping runs
    (or a concurrent CLI invocation) never replay the same delivery twice.
    """
    db = SessionLocal()
    try:
        service = WebhookRetryService(db)
        summary = service.process_pending_retries(WebhookProcessor(db))
        if summary.processed > 0:
            logger.info(
                "Replayed %d webhooks: %d succeeded, %d rescheduled, %d dead-lettered",
                summary.processed,
                summary.succeeded,
                summary.rescheduled,
                summary.dead_lettered,
            )
        return summary.to_dict()
    finally:
        db.close()


class WorkerSettings:
    functions = [process_webhook_retries_task]
    cron_jobs = [
        cron(
            process_webhook_retries_task,
            minute={0, 5, 10, 15, 20, 25, 30, 35, 40, 45, 50, 55},
        ),
    ]
    on_startup = startup
    redis_settings = redis_settings

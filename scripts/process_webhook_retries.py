"""Process pending payment webhook retries.

Intended for cron. Exits 0 on success, 1 on error or when a replay in this
run was dead-lettered.

Usage:
    python scripts/process_webhook_retries.py           # process due retries
    python scripts/process_webhook_retries.py --stats   # show statistics
    python scripts/process_webhook_retries.py --clear   # delete all retries
"""

import argparse
import logging
from collections.abc import Sequence

from sqlalchemy.exc import SQLAlchemyError

from indowater.core import database
from indowater.core.logging_config import configure_logging
from indowater.services.webhook_processor import WebhookProcessor
from indowater.services.webhook_retry_service import WebhookRetryService

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Webhook Retry Processor: replay payment webhooks that failed with a "
        "retryable error.",
        epilog="Run without options to process pending retries.",
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--stats", action="store_true", help="Show retry statistics")
    group.add_argument("--clear", action="store_true", help="Clear all pending retries")
    return parser


def print_stats(stats: dict) -> None:
    print("=== Webhook Retry Statistics ===")
    print(f"Total pending retries: {stats['total_pending']}")
    print(f"In progress: {stats['processing']}")
    print(f"Dead-lettered: {stats['dead']}")

    if stats["by_method"]:
        print("\nBy payment method:")
        for method, count in sorted(stats["by_method"].items()):
            print(f"  {method}: {count}")

    if stats["by_attempt"]:
        print("\nBy attempt number:")
        for attempt, count in sorted(stats["by_attempt"].items()):
            print(f"  Attempt {attempt}: {count}")


def run(args: argparse.Namespace) -> int:
    db = database.SessionLocal()
    try:
        service = WebhookRetryService(db)

        if args.stats:
            print_stats(service.get_retry_stats())
            return 0

        if args.clear:
            print("Clearing all pending webhook retries...")
            cleared = service.clear_all_retries()
            print(f"Cleared {cleared} pending retries.")
            return 0

        print("Processing pending webhook retries...")
        summary = service.process_pending_retries(WebhookProcessor(db))
        print(
            f"Processed {summary.processed} webhook retries "
            f"({summary.succeeded} succeeded, {summary.rescheduled} rescheduled, "
            f"{summary.dead_lettered} dead-lettered, {summary.skipped} skipped)."
        )
        remaining = service.get_retry_stats()
        print(f"Remaining pending retries: {remaining['total_pending']}")
        return 1 if summary.dead_lettered else 0
    except SQLAlchemyError as e:
        logger.exception("Webhook retry processing failed")
        print(f"Error processing webhook retries: {e}")
        return 1
    finally:
        db.close()


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    configure_logging()
    args = build_parser().parse_args(argv)
    return run(args)


if __name__ == "__main__":
    raise SystemExit(main())

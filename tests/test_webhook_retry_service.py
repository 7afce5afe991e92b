"""Tests for webhook retry scheduling, replay and statistics."""

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest

from indowater.models.webhook_retry import WebhookRetry, WebhookRetryStatus
from indowater.repositories.webhook_retry_repository import WebhookRetryRepository
from indowater.services.webhook_processor import (
    ProcessingResult,
    WebhookOutcome,
    WebhookProcessor,
)
from indowater.services.webhook_retry_service import (
    WebhookRetryService,
    extract_order_id,
    replay_headers,
)
from tests.conftest import doku_notification, midtrans_notification


def _later(hours: int = 2) -> datetime:
    return datetime.now(UTC) + timedelta(hours=hours)


def _service(db, **kwargs) -> WebhookRetryService:
    kwargs.setdefault("base_delay_seconds", 60)
    kwargs.setdefault("max_delay_seconds", 3600)
    kwargs.setdefault("max_attempts", 10)
    return WebhookRetryService(db, **kwargs)


class TestBackoff:
    def test_doubles_from_base(self, db_session):
        service = _service(db_session)
        delays = [service.backoff_delay(n).total_seconds() for n in range(1, 6)]
        assert delays == [60, 120, 240, 480, 960]

    def test_non_decreasing_and_capped(self, db_session):
        service = _service(db_session)
        delays = [service.backoff_delay(n) for n in range(1, 200)]
        assert delays == sorted(delays)
        assert max(delays) == timedelta(seconds=3600)

    def test_attempt_below_one_uses_base(self, db_session):
        assert _service(db_session).backoff_delay(0) == timedelta(seconds=60)

    def test_defaults_come_from_settings(self, db_session):
        service = WebhookRetryService(db_session)
        assert service.max_attempts == 10
        assert service.backoff_delay(1) == timedelta(seconds=60)


class TestHelpers:
    def test_extract_order_id(self):
        assert extract_order_id("midtrans", b'{"order_id": "INDO-1"}') == "INDO-1"
        assert extract_order_id("doku", {"order": {"invoice_number": "INV-9"}}) == "INV-9"
        assert extract_order_id("midtrans", b"not json") is None
        assert extract_order_id("xendit", {"order_id": "X"}) is None

    def test_replay_headers_keeps_signature_headers_only(self):
        headers = {
            "client-id": "BRN-1",
            "signature": "HMACSHA256=abc",
            "user-agent": "doku",
            "cookie": "secret",
        }
        assert replay_headers(headers) == {"Client-Id": "BRN-1", "Signature": "HMACSHA256=abc"}
        assert replay_headers(None) == {}


class TestRecordFailure:
    def test_creates_first_attempt(self, db_session):
        before = datetime.now(UTC)
        retry = _service(db_session).record_failure(
            midtrans_notification("INDO-404"), "midtrans", "Payment not found"
        )

        assert retry.attempts == 1
        assert retry.status == WebhookRetryStatus.PENDING.value
        assert retry.order_id == "INDO-404"
        assert retry.last_error == "Payment not found"
        assert retry.next_retry_at.replace(tzinfo=UTC) >= before + timedelta(seconds=59)

    def test_payload_is_stored_byte_exact(self, db_session):
        body, headers = doku_notification("INV-1")
        retry = _service(db_session).record_failure(body, "doku", "not found", headers=headers)

        stored = WebhookRetryRepository(db_session).get_by_id(retry.id)
        assert bytes(stored.payload) == body
        assert stored.headers["Signature"] == headers["Signature"]
        assert "Content-Type" in stored.headers


class TestProcessPendingRetries:
    def test_not_yet_due_rows_are_left_alone(self, db_session, midtrans_config):
        service = _service(db_session)
        service.record_failure(midtrans_notification("INDO-1"), "midtrans", "not found")

        summary = service.process_pending_retries(WebhookProcessor(db_session))

        assert summary.processed == 0
        assert service.get_retry_stats()["total_pending"] == 1

    def test_order_arrives_later_and_retry_succeeds(
        self, db_session, midtrans_config, make_payment, customer
    ):
        service = _service(db_session)
        processor = WebhookProcessor(db_session)
        body = midtrans_notification("INDO-LATE")

        first = processor.process("midtrans", body)
        assert first.outcome is WebhookOutcome.RETRY
        retry = service.record_failure(body, "midtrans", first.message)
        assert retry.attempts == 1

        make_payment(order_id="INDO-LATE")
        summary = service.process_pending_retries(processor, now=_later())

        assert summary.processed == 1
        assert summary.succeeded == 1
        assert db_session.query(WebhookRetry).count() == 0
        db_session.refresh(customer)
        assert customer.balance == 100000

    def test_still_failing_is_rescheduled_with_backoff(self, db_session, midtrans_config):
        service = _service(db_session)
        retry = service.record_failure(midtrans_notification("INDO-NONE"), "midtrans", "x")
        retry_id = retry.id
        now = _later()

        summary = service.process_pending_retries(WebhookProcessor(db_session), now=now)

        assert summary.rescheduled == 1
        stored = WebhookRetryRepository(db_session).get_by_id(retry_id)
        db_session.refresh(stored)
        assert stored.attempts == 2
        assert stored.status == WebhookRetryStatus.PENDING.value
        assert stored.claimed_at is None
        expected = (now + timedelta(seconds=120)).replace(tzinfo=None)
        assert stored.next_retry_at.replace(tzinfo=None) == expected

    def test_exhausted_retry_is_dead_lettered(self, db_session, midtrans_config):
        service = _service(db_session)
        processor = WebhookProcessor(db_session)
        service.record_failure(midtrans_notification("INDO-NEVER"), "midtrans", "not found")

        now = datetime.now(UTC)
        dead_lettered = 0
        for _ in range(9):
            now += timedelta(hours=2)
            dead_lettered += service.process_pending_retries(processor, now=now).dead_lettered

        assert dead_lettered == 1
        dead = service.list_dead_letters()
        assert len(dead) == 1
        assert dead[0].attempts == 10
        assert dead[0].status == WebhookRetryStatus.DEAD.value

        stats = service.get_retry_stats()
        assert stats["dead"] == 1
        assert stats["total_pending"] == 0
        assert stats["by_attempt"] == {}

        later = service.process_pending_retries(processor, now=now + timedelta(days=1))
        assert later.processed == 0

    def test_permanent_rejection_on_replay_is_dead_lettered(
        self, db_session, midtrans_config, make_payment
    ):
        payment = make_payment()
        service = _service(db_session)
        service.record_failure(
            midtrans_notification(payment.order_id, server_key="wrong"), "midtrans", "x"
        )

        summary = service.process_pending_retries(WebhookProcessor(db_session), now=_later())

        assert summary.dead_lettered == 1
        assert service.get_retry_stats()["dead"] == 1

    def test_rows_claimed_elsewhere_are_skipped(self, db_session):
        service = _service(db_session)
        service.record_failure(midtrans_notification("INDO-1"), "midtrans", "x")
        processor = MagicMock()

        with patch.object(WebhookRetryRepository, "claim", return_value=False):
            summary = service.process_pending_retries(processor, now=_later())

        assert summary.skipped == 1
        assert summary.processed == 0
        processor.process.assert_not_called()

    def test_replays_with_stored_headers_and_tenant(self, db_session):
        body, headers = doku_notification("INV-7")
        service = _service(db_session)
        service.record_failure(body, "doku", "x", headers=headers, client_id="pdam-bogor")
        processor = MagicMock()
        processor.process.return_value = ProcessingResult(
            outcome=WebhookOutcome.APPLIED, message="Payment success"
        )

        summary = service.process_pending_retries(processor, now=_later())

        assert summary.succeeded == 1
        args, kwargs = processor.process.call_args
        assert args == ("doku", body)
        assert kwargs["client_id"] == "pdam-bogor"
        assert kwargs["headers"]["Signature"] == headers["Signature"]

    def test_replay_exception_is_counted_and_batch_continues(self, db_session):
        service = _service(db_session)
        service.record_failure(midtrans_notification("INDO-1"), "midtrans", "x")
        service.record_failure(midtrans_notification("INDO-2"), "midtrans", "x")
        processor = MagicMock()
        processor.process.side_effect = [
            RuntimeError("boom"),
            ProcessingResult(outcome=WebhookOutcome.APPLIED, message="Payment success"),
        ]

        summary = service.process_pending_retries(processor, now=_later())

        assert summary.processed == 2
        assert summary.rescheduled == 1
        assert summary.succeeded == 1
        remaining = db_session.query(WebhookRetry).one()
        db_session.refresh(remaining)
        assert remaining.status == WebhookRetryStatus.PENDING.value
        assert remaining.attempts == 2
        assert remaining.claimed_at is None
        assert remaining.last_error == "Replay error: boom"

    def test_replay_exception_at_last_attempt_is_dead_lettered(
        self, db_session, midtrans_config
    ):
        service = _service(db_session, max_attempts=2)
        service.record_failure(midtrans_notification("INDO-1"), "midtrans", "x")

        with patch.object(
            WebhookProcessor, "process", side_effect=KeyError("transaction_status")
        ):
            summary = service.process_pending_retries(WebhookProcessor(db_session), now=_later())

        assert summary.dead_lettered == 1
        dead = service.list_dead_letters()
        assert len(dead) == 1
        assert dead[0].attempts == 2
        assert dead[0].status == WebhookRetryStatus.DEAD.value


class TestClaim:
    def test_second_claim_loses(self, db_session):
        retry = _service(db_session).record_failure(b"{}", "midtrans", "x")
        repo = WebhookRetryRepository(db_session)
        now = _later()
        stale_before = now - timedelta(minutes=10)

        assert repo.claim(retry.id, now, stale_before) is True
        assert repo.claim(retry.id, now, stale_before) is False

    def test_stale_claim_can_be_reclaimed(self, db_session):
        retry = _service(db_session).record_failure(b"{}", "midtrans", "x")
        repo = WebhookRetryRepository(db_session)
        claimed_at = _later()
        repo.claim(retry.id, claimed_at, claimed_at - timedelta(minutes=10))

        much_later = claimed_at + timedelta(hours=1)
        assert repo.get_due_ids(much_later, much_later - timedelta(minutes=10)) == [retry.id]
        assert repo.claim(retry.id, much_later, much_later - timedelta(minutes=10)) is True

    def test_processing_row_counts_as_pending(self, db_session):
        service = _service(db_session)
        retry = service.record_failure(b"{}", "midtrans", "x")
        now = _later()
        WebhookRetryRepository(db_session).claim(retry.id, now, now - timedelta(minutes=10))

        stats = service.get_retry_stats()
        assert stats["total_pending"] == 1
        assert stats["processing"] == 1


class TestStatsAndClear:
    def test_stats_group_by_gateway_and_attempt(self, db_session):
        service = _service(db_session)
        service.record_failure(midtrans_notification("A"), "midtrans", "x")
        service.record_failure(midtrans_notification("B"), "midtrans", "x")
        doku_body, _ = doku_notification("C")
        retry = service.record_failure(doku_body, "doku", "x")
        WebhookRetryRepository(db_session).reschedule(retry.id, 3, _later(), "x")

        stats = service.get_retry_stats()

        assert stats["total_pending"] == 3
        assert stats["by_method"] == {"midtrans": 2, "doku": 1}
        assert stats["by_attempt"] == {1: 2, 3: 1}
        assert stats["dead"] == 0

    def test_stats_on_empty_table(self, db_session):
        assert _service(db_session).get_retry_stats() == {
            "total_pending": 0,
            "by_method": {},
            "by_attempt": {},
            "processing": 0,
            "dead": 0,
        }

    @pytest.mark.parametrize("count", [0, 3])
    def test_clear_all_retries(self, db_session, count):
        service = _service(db_session)
        for i in range(count):
            service.record_failure(midtrans_notification(f"INDO-{i}"), "midtrans", "x")

        assert service.clear_all_retries() == count
        assert db_session.query(WebhookRetry).count() == 0


"""
Tests for the failover queue.

Covers enqueueing, draining through the handler table, bounded retries with
a single exhaustion alert, operator retries, overflow eviction and cleanup.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from earnings_engine import crud
from earnings_engine.core.exceptions import NotFoundError, PreconditionError
from earnings_engine.schemas.failover import FailoverStatus, OperationKind
from earnings_engine.services.failover_queue import validate_handlers

from tests.utils.earnings import run_async


def make_handlers(payout=None, payment=None, tier=None):
    return {
        OperationKind.PAYMENT: payment or AsyncMock(return_value=None),
        OperationKind.PAYOUT: payout or AsyncMock(return_value=None),
        OperationKind.TIER_RECALCULATION: tier or AsyncMock(return_value=None),
    }


def failing(message="still down"):
    return AsyncMock(side_effect=RuntimeError(message))


def critical_entries(db, operation):
    return [
        entry
        for entry in crud.audit_log.get_by_field(db, field="operation", value=operation)
        if entry.level == "CRITICAL"
    ]


class TestFailoverQueue:

    @pytest.fixture(autouse=True)
    def _queue(self, db, failover):
        self.db = db
        self.queue = failover

    def _enqueue(self, kind=OperationKind.PAYOUT, creator_id="creator_1", amount=5000):
        return self.queue.enqueue(
            self.db,
            kind=kind,
            payload={"creator_id": creator_id, "amount": amount},
            creator_id=creator_id,
            error="[PROVIDER_ERROR] Stripe is down",
        )

    # ----- enqueue ----- #

    def test_enqueue_creates_pending_record(self):
        record = self._enqueue()

        assert record.id.startswith("failover_")
        assert record.status == "pending"
        assert record.retry_count == 0
        assert record.max_retries == 3
        assert record.last_error == "[PROVIDER_ERROR] Stripe is down"

        entries = crud.audit_log.get_by_field(self.db, field="operation", value="payout_failover")
        assert entries[0].status == "pending"
        assert entries[0].extra["failover_record_id"] == record.id

    def test_overflow_evicts_oldest_and_alerts(self, audit):
        from earnings_engine.services.failover_queue import FailoverQueue

        queue = FailoverQueue(audit=audit, capacity=2, max_retries=3)
        first = queue.enqueue(self.db, kind=OperationKind.PAYOUT, payload={"amount": 1}, creator_id="a")
        second = queue.enqueue(self.db, kind=OperationKind.PAYOUT, payload={"amount": 2}, creator_id="b")
        third = queue.enqueue(self.db, kind=OperationKind.PAYOUT, payload={"amount": 3}, creator_id="c")

        assert crud.failover_record.count(self.db) == 2
        assert crud.failover_record.get(self.db, first.id) is None
        assert crud.failover_record.get(self.db, second.id) is not None
        assert crud.failover_record.get(self.db, third.id) is not None

        alerts = critical_entries(self.db, "failover_queue_overflow")
        assert len(alerts) == 1
        assert alerts[0].extra["failover_record_id"] == first.id
        assert alerts[0].extra["payload"] == {"amount": 1}

    def test_overflow_evicts_resolved_records_quietly(self, audit):
        from earnings_engine.services.failover_queue import FailoverQueue

        queue = FailoverQueue(audit=audit, capacity=2, max_retries=3)
        pending = queue.enqueue(self.db, kind=OperationKind.PAYOUT, payload={"amount": 1}, creator_id="a")
        resolved = queue.enqueue(self.db, kind=OperationKind.PAYOUT, payload={"amount": 2}, creator_id="b")
        pending_id, resolved_id = pending.id, resolved.id
        run_async(queue.manual_retry(self.db, resolved_id, make_handlers()))

        third = queue.enqueue(self.db, kind=OperationKind.PAYOUT, payload={"amount": 3}, creator_id="c")

        assert crud.failover_record.get(self.db, resolved_id) is None
        assert crud.failover_record.get(self.db, pending_id) is not None
        assert crud.failover_record.get(self.db, third.id) is not None
        assert critical_entries(self.db, "failover_queue_overflow") == []

    # ----- drain ----- #

    def test_drain_resolves_successful_retries(self):
        record = self._enqueue()
        handlers = make_handlers()

        result = run_async(self.queue.drain(self.db, handlers))

        assert result.processed == 1
        assert result.successful == 1
        assert result.still_pending == 0
        handlers[OperationKind.PAYOUT].assert_awaited_once()
        self.db.refresh(record)
        assert record.status == "success"
        assert record.resolved_at is not None

    def test_drain_dispatches_by_kind(self):
        self._enqueue(kind=OperationKind.PAYMENT)
        self._enqueue(kind=OperationKind.TIER_RECALCULATION)
        handlers = make_handlers()

        run_async(self.queue.drain(self.db, handlers))

        handlers[OperationKind.PAYMENT].assert_awaited_once()
        handlers[OperationKind.TIER_RECALCULATION].assert_awaited_once()
        handlers[OperationKind.PAYOUT].assert_not_awaited()

    def test_failed_attempt_increments_retry_count(self):
        record = self._enqueue()

        result = run_async(self.queue.drain(self.db, make_handlers(payout=failing())))

        assert result.failed == 1
        assert result.still_pending == 1
        self.db.refresh(record)
        assert record.retry_count == 1
        assert record.status == "pending"
        assert record.last_error == "still down"

    def test_exhaustion_alerts_once_and_stops_retrying(self):
        record = self._enqueue()
        handler = failing()
        handlers = make_handlers(payout=handler)

        for _ in range(5):
            run_async(self.queue.drain(self.db, handlers))

        assert handler.await_count == 3
        self.db.refresh(record)
        assert record.status == "failed"
        assert record.retry_count == 3
        assert record.is_exhausted

        alerts = critical_entries(self.db, "payout_failover_exhausted")
        assert len(alerts) == 1
        assert alerts[0].extra["payload"] == {"creator_id": "creator_1", "amount": 5000}

    def test_one_failure_does_not_block_others(self):
        bad = self._enqueue(creator_id="creator_bad")
        good = self._enqueue(creator_id="creator_good")

        async def payout(db, payload):
            if payload["creator_id"] == "creator_bad":
                raise RuntimeError("boom")

        result = run_async(self.queue.drain(self.db, make_handlers(payout=payout)))

        assert result.successful == 1
        assert result.failed == 1
        self.db.refresh(bad)
        self.db.refresh(good)
        assert bad.status == "pending"
        assert good.status == "success"

    def test_drain_requires_every_handler(self):
        self._enqueue()
        handlers = make_handlers()
        del handlers[OperationKind.TIER_RECALCULATION]

        with pytest.raises(ValueError, match="tier_recalculation"):
            run_async(self.queue.drain(self.db, handlers))

    # ----- manual retry ----- #

    def test_manual_retry_ignores_exhaustion(self):
        record = self._enqueue()
        handlers = make_handlers(payout=failing())
        for _ in range(3):
            run_async(self.queue.drain(self.db, handlers))

        retried = run_async(self.queue.manual_retry(self.db, record.id, make_handlers()))

        assert retried.status == "success"

    def test_manual_retry_failure_keeps_record(self):
        record = self._enqueue()

        retried = run_async(self.queue.manual_retry(self.db, record.id, make_handlers(payout=failing())))

        assert retried.status == "pending"
        assert retried.retry_count == 1
        entries = crud.audit_log.get_by_field(self.db, field="operation", value="payout_manual_retry")
        assert entries[0].status == "failed"

    def test_manual_retry_unknown_record(self):
        with pytest.raises(NotFoundError):
            run_async(self.queue.manual_retry(self.db, "failover_missing", make_handlers()))

    def test_manual_retry_already_resolved(self):
        record = self._enqueue()
        run_async(self.queue.drain(self.db, make_handlers()))

        with pytest.raises(PreconditionError) as exc_info:
            run_async(self.queue.manual_retry(self.db, record.id, make_handlers()))

        assert exc_info.value.code == "ALREADY_RESOLVED"

    # ----- status and cleanup ----- #

    def test_status_counts(self):
        self._enqueue(creator_id="a")
        exhausted = self._enqueue(creator_id="b")
        resolved = self._enqueue(creator_id="c")
        run_async(self.queue.manual_retry(self.db, resolved.id, make_handlers()))
        for _ in range(3):
            run_async(self.queue.manual_retry(self.db, exhausted.id, make_handlers(payout=failing())))

        status = self.queue.get_status(self.db)

        assert status.total_items == 3
        assert status.pending == 1
        assert status.successful == 1
        assert status.failed == 1
        assert status.exhausted == 1

    def test_creator_records(self):
        self._enqueue(creator_id="creator_1")
        self._enqueue(creator_id="creator_2")

        records = self.queue.get_creator_records(self.db, "creator_1")

        assert len(records) == 1
        assert records[0].operation_kind == OperationKind.PAYOUT.value

    def test_clear_resolved_only_removes_old_successes(self):
        old = self._enqueue(creator_id="old")
        recent = self._enqueue(creator_id="recent")
        pending = self._enqueue(creator_id="pending")
        run_async(self.queue.manual_retry(self.db, old.id, make_handlers()))
        run_async(self.queue.manual_retry(self.db, recent.id, make_handlers()))
        old.resolved_at = datetime.now(timezone.utc) - timedelta(days=45)
        self.db.add(old)
        self.db.commit()
        old_id, recent_id, pending_id = old.id, recent.id, pending.id

        deleted = self.queue.clear_resolved(self.db, older_than_days=30)

        assert deleted == 1
        assert crud.failover_record.get(self.db, old_id) is None
        assert crud.failover_record.get(self.db, recent_id) is not None
        assert crud.failover_record.get(self.db, pending_id).status == FailoverStatus.pending.value


def test_validate_handlers_lists_missing_kinds():
    with pytest.raises(ValueError) as exc_info:
        validate_handlers({OperationKind.PAYMENT: AsyncMock()})

    assert "payout" in str(exc_info.value)
    assert "tier_recalculation" in str(exc_info.value)

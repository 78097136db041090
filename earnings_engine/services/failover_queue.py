# earnings_engine/services/failover_queue.py
"""
Durable queue of operations that failed against the payment provider.

Lifecycle of a record:
- created ``pending`` with retry_count=0 when the original call fails
- each drain attempt either resolves it (``success``) or bumps retry_count
- when retry_count reaches max_retries it is left ``failed`` (exhausted),
  a CRITICAL entry carrying the payload is logged, and the drain never
  selects it again
- an operator can force one more attempt with ``manual_retry``

Retries are dispatched through an explicit handler table keyed by
``OperationKind``; every kind must have a handler.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from sqlalchemy.orm import Session

from earnings_engine import crud
from earnings_engine.core.config import settings
from earnings_engine.core.exceptions import NotFoundError, PreconditionError
from earnings_engine.models.failover_record import FailoverRecord
from earnings_engine.schemas.audit import LogLevel
from earnings_engine.schemas.failover import (
    DrainResult,
    FailoverQueueStatus,
    FailoverRecordCreate,
    FailoverStatus,
    OperationKind,
)
from earnings_engine.services.audit_logger import AuditLogger, audit_logger as default_audit_logger

logger = logging.getLogger(__name__)

RetryHandler = Callable[[Session, Dict[str, Any]], Awaitable[Any]]
RetryHandlers = Mapping[OperationKind, RetryHandler]


def validate_handlers(handlers: RetryHandlers) -> None:
    """Every operation kind needs a retry handler."""
    missing = [kind.value for kind in OperationKind if kind not in handlers]
    if missing:
        raise ValueError(f"No retry handler registered for: {', '.join(missing)}")


class FailoverQueue:
    """
    Captures failed provider operations and retries them with a bounded
    number of attempts.

    Args:
        audit: Audit logger receiving queue events
        capacity: Maximum number of stored records; on overflow the oldest resolved
            record is evicted, or the oldest record when none is resolved
        max_retries: Default attempt budget for new records
    """

    def __init__(
        self,
        audit: Optional[AuditLogger] = None,
        capacity: Optional[int] = None,
        max_retries: Optional[int] = None,
    ):
        self.audit = audit or default_audit_logger
        self.capacity = capacity if capacity is not None else settings.FAILOVER_QUEUE_CAPACITY
        self.max_retries = max_retries if max_retries is not None else settings.FAILOVER_MAX_RETRIES

    def enqueue(
        self,
        db: Session,
        *,
        kind: OperationKind,
        payload: Dict[str, Any],
        creator_id: Optional[str] = None,
        error: Optional[str] = None,
        max_retries: Optional[int] = None,
    ) -> FailoverRecord:
        """Store a failed operation for later retry."""
        while crud.failover_record.count(db) >= self.capacity:
            self._evict_oldest(db)

        record = crud.failover_record.create(
            db,
            obj_in=FailoverRecordCreate(
                operation_kind=kind,
                payload=payload,
                creator_id=creator_id,
                max_retries=max_retries or self.max_retries,
                last_error=error,
            ),
        )
        logger.warning(
            f"Queued {kind.value} operation for retry: record={record.id} error={error}"
        )
        self.audit.log(
            db,
            level=LogLevel.WARN,
            operation=f"{kind.value}_failover",
            status="pending",
            message=f"{kind.value} operation queued for retry",
            creator_id=creator_id,
            amount=payload.get("amount"),
            error_details=error,
            metadata={"failover_record_id": record.id, "payload": payload},
        )
        return record

    async def drain(self, db: Session, handlers: RetryHandlers) -> DrainResult:
        """Retry every pending record that still has attempts left."""
        validate_handlers(handlers)

        records = crud.failover_record.get_retryable(db)
        successful = 0
        failed = 0
        for record in records:
            if await self._attempt(db, record, handlers):
                successful += 1
            else:
                failed += 1

        still_pending = crud.failover_record.count_by_status(db).get(
            FailoverStatus.pending.value, 0
        )
        if records:
            logger.info(
                f"Failover drain: processed={len(records)} successful={successful} "
                f"failed={failed} still_pending={still_pending}"
            )
        return DrainResult(
            processed=len(records),
            successful=successful,
            failed=failed,
            still_pending=still_pending,
        )

    async def manual_retry(
        self, db: Session, record_id: str, handlers: RetryHandlers
    ) -> FailoverRecord:
        """
        Operator-triggered single attempt, ignoring the retry budget.

        Raises:
            NotFoundError: If the record does not exist
            PreconditionError: If the record already succeeded
        """
        validate_handlers(handlers)
        record = crud.failover_record.get(db, record_id)
        if record is None:
            raise NotFoundError(
                code="FAILOVER_RECORD_NOT_FOUND",
                message=f"Failover record {record_id} not found",
            )
        if record.status == FailoverStatus.success.value:
            raise PreconditionError(
                code="ALREADY_RESOLVED",
                message=f"Failover record {record_id} has already succeeded",
            )

        logger.info(f"Manual retry of failover record {record_id}")
        await self._attempt(db, record, handlers, manual=True)
        db.refresh(record)
        return record

    def get_status(self, db: Session) -> FailoverQueueStatus:
        counts = crud.failover_record.count_by_status(db)
        return FailoverQueueStatus(
            total_items=sum(counts.values()),
            pending=counts.get(FailoverStatus.pending.value, 0),
            successful=counts.get(FailoverStatus.success.value, 0),
            failed=counts.get(FailoverStatus.failed.value, 0),
            exhausted=crud.failover_record.count_exhausted(db),
        )

    def get_creator_records(self, db: Session, creator_id: str) -> List[FailoverRecord]:
        return crud.failover_record.get_by_creator(db, creator_id=creator_id)

    def clear_resolved(self, db: Session, older_than_days: int = 30) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
        deleted = crud.failover_record.delete_resolved_before(db, cutoff=cutoff)
        if deleted:
            logger.info(f"Cleared {deleted} resolved failover records older than {older_than_days} days")
        return deleted

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    async def _attempt(
        self,
        db: Session,
        record: FailoverRecord,
        handlers: RetryHandlers,
        manual: bool = False,
    ) -> bool:
        kind = OperationKind(record.operation_kind)
        handler = handlers[kind]
        payload = dict(record.payload or {})
        was_exhausted = record.is_exhausted
        now = datetime.now(timezone.utc)

        try:
            await handler(db, payload)
        except Exception as e:
            # Any handler failure counts as a failed attempt
            db.rollback()
            record.retry_count = (record.retry_count or 0) + 1
            record.last_error = str(e)
            record.last_attempt_at = now
            exhausted = record.retry_count >= record.max_retries
            record.status = (
                FailoverStatus.failed.value if exhausted else FailoverStatus.pending.value
            )
            db.add(record)
            db.commit()
            logger.warning(
                f"Retry of {kind.value} record {record.id} failed "
                f"(attempt {record.retry_count}/{record.max_retries}): {e}"
            )

            if exhausted and not was_exhausted:
                self.audit.log_critical_issue(
                    db,
                    operation=f"{kind.value}_failover_exhausted",
                    message=f"{kind.value} operation exhausted {record.max_retries} retries; manual recovery required",
                    error=str(e),
                    creator_id=record.creator_id,
                    metadata={"failover_record_id": record.id, "payload": payload},
                )
            elif manual:
                self.audit.log(
                    db,
                    level=LogLevel.ERROR,
                    operation=f"{kind.value}_manual_retry",
                    status="failed",
                    message=f"Manual retry of {record.id} failed",
                    creator_id=record.creator_id,
                    error_details=str(e),
                    metadata={"failover_record_id": record.id},
                )
            return False

        record.status = FailoverStatus.success.value
        record.resolved_at = now
        record.last_attempt_at = now
        record.last_error = None
        db.add(record)
        db.commit()
        self.audit.log(
            db,
            level=LogLevel.INFO,
            operation=f"{kind.value}_failover",
            status="success",
            message=f"{kind.value} operation recovered{' by manual retry' if manual else ''}",
            creator_id=record.creator_id,
            amount=payload.get("amount"),
            metadata={"failover_record_id": record.id},
        )
        return True

    def _evict_oldest(self, db: Session) -> None:
        # Resolved records go first
        oldest = crud.failover_record.get_oldest(db, status=FailoverStatus.success.value)
        if oldest is not None:
            record_id = oldest.id
            db.delete(oldest)
            db.commit()
            logger.info(f"Failover queue full, evicted resolved record {record_id}")
            return

        oldest = crud.failover_record.get_oldest(db)
        if oldest is None:
            return
        dropped = {
            "failover_record_id": oldest.id,
            "creator_id": oldest.creator_id,
            "operation_kind": oldest.operation_kind,
            "status": oldest.status,
            "retry_count": oldest.retry_count,
            "payload": oldest.payload,
        }
        db.delete(oldest)
        db.commit()

        logger.critical(f"Failover queue overflow, record dropped: {dropped}")
        self.audit.log(
            db,
            level=LogLevel.CRITICAL,
            operation="failover_queue_overflow",
            status="failed",
            message="Failover queue overflow, record dropped",
            creator_id=dropped["creator_id"],
            metadata=dropped,
        )


failover_queue = FailoverQueue()

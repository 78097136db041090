# earnings_engine/services/audit_logger.py
"""
Structured, level-based operation log for every money-moving action.

Entries are stored in the ``payment_audit_log`` table so they survive
restarts and are shared across instances. The table is a bounded ring
buffer: once it holds more than ``capacity`` rows the oldest are pruned.
Pruning an unresolved failure (ERROR/CRITICAL with status ``failed``) is
itself logged at CRITICAL.

Each entry is mirrored to the ``earnings_engine.audit`` stdlib logger.
This store is diagnostic only and never authoritative for balances.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from earnings_engine import crud
from earnings_engine.core.config import settings
from earnings_engine.models.payment_audit_log import PaymentAuditLog
from earnings_engine.schemas.audit import LogEntryCreate, LogFilters, LogLevel, LogSummary

logger = logging.getLogger(__name__)
audit_stream = logging.getLogger("earnings_engine.audit")

STDLIB_LEVELS: Dict[LogLevel, int] = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.CRITICAL: logging.CRITICAL,
}


def is_unresolved_failure(entry: PaymentAuditLog) -> bool:
    return entry.level in (LogLevel.ERROR.value, LogLevel.CRITICAL.value) and entry.status == "failed"


class AuditLogger:
    """
    Append-only audit log with a bounded, durable store.

    Args:
        capacity: Maximum number of entries kept before the oldest are evicted
    """

    def __init__(self, capacity: Optional[int] = None):
        self.capacity = capacity if capacity is not None else settings.AUDIT_LOG_CAPACITY

    def log(
        self,
        db: Session,
        *,
        level: Union[LogLevel, str],
        operation: str,
        status: str,
        message: str,
        user_id: Optional[str] = None,
        creator_id: Optional[str] = None,
        transaction_id: Optional[str] = None,
        payout_id: Optional[str] = None,
        amount: Optional[int] = None,
        error_details: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[PaymentAuditLog]:
        """
        Append one entry. Must be called after the caller's own commit,
        since the entry is committed on the shared session.
        """
        entry = LogEntryCreate(
            level=LogLevel(level),
            operation=operation,
            status=status,
            message=message,
            user_id=user_id,
            creator_id=creator_id,
            transaction_id=transaction_id,
            payout_id=payout_id,
            amount=amount,
            error_details=error_details,
            metadata=metadata,
        )
        self._emit(entry)

        try:
            db_obj = crud.audit_log.create_entry(db, obj_in=entry)
            self._enforce_capacity(db, newest_id=db_obj.id)
            return db_obj
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to persist audit entry for {operation}: {e}")
            return None

    # ------------------------------------------------------------------ #
    # Convenience helpers
    # ------------------------------------------------------------------ #

    def log_payment_success(
        self,
        db: Session,
        *,
        user_id: str,
        creator_id: str,
        transaction_id: str,
        amount: int,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[PaymentAuditLog]:
        return self.log(
            db,
            level=LogLevel.INFO,
            operation="payment",
            status="success",
            message=f"Payment of {amount} cents recorded for creator {creator_id}",
            user_id=user_id,
            creator_id=creator_id,
            transaction_id=transaction_id,
            amount=amount,
            metadata=metadata,
        )

    def log_payment_failure(
        self,
        db: Session,
        *,
        user_id: Optional[str],
        creator_id: Optional[str],
        amount: Optional[int],
        error: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[PaymentAuditLog]:
        return self.log(
            db,
            level=LogLevel.ERROR,
            operation="payment",
            status="failed",
            message=f"Payment failed for creator {creator_id}",
            user_id=user_id,
            creator_id=creator_id,
            amount=amount,
            error_details=error,
            metadata=metadata,
        )

    def log_payout_success(
        self,
        db: Session,
        *,
        creator_id: str,
        payout_id: str,
        amount: int,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[PaymentAuditLog]:
        return self.log(
            db,
            level=LogLevel.INFO,
            operation="payout",
            status="success",
            message=f"Payout of {amount} cents initiated for creator {creator_id}",
            creator_id=creator_id,
            payout_id=payout_id,
            amount=amount,
            metadata=metadata,
        )

    def log_payout_failure(
        self,
        db: Session,
        *,
        creator_id: str,
        amount: int,
        error: str,
        payout_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[PaymentAuditLog]:
        return self.log(
            db,
            level=LogLevel.ERROR,
            operation="payout",
            status="failed",
            message=f"Payout failed for creator {creator_id}",
            creator_id=creator_id,
            payout_id=payout_id,
            amount=amount,
            error_details=error,
            metadata=metadata,
        )

    def log_critical_issue(
        self,
        db: Session,
        *,
        operation: str,
        message: str,
        error: Optional[str] = None,
        creator_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[PaymentAuditLog]:
        return self.log(
            db,
            level=LogLevel.CRITICAL,
            operation=operation,
            status="failed",
            message=message,
            creator_id=creator_id,
            error_details=error,
            metadata=metadata,
        )

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def query(self, db: Session, filters: Optional[LogFilters] = None) -> List[PaymentAuditLog]:
        """Matching entries, newest first."""
        return crud.audit_log.query(db, filters=filters or LogFilters())

    def get_error_logs(self, db: Session, limit: int = 100) -> List[PaymentAuditLog]:
        return self.query(db, LogFilters(level=LogLevel.ERROR, limit=limit))

    def get_critical_logs(self, db: Session, limit: int = 100) -> List[PaymentAuditLog]:
        return self.query(db, LogFilters(level=LogLevel.CRITICAL, limit=limit))

    def get_creator_logs(self, db: Session, creator_id: str, limit: int = 100) -> List[PaymentAuditLog]:
        return self.query(db, LogFilters(creator_id=creator_id, limit=limit))

    def get_transaction_logs(self, db: Session, transaction_id: str, limit: int = 100) -> List[PaymentAuditLog]:
        return crud.audit_log.get_by_field(
            db, field="transaction_id", value=transaction_id, limit=limit
        )

    def get_payout_logs(self, db: Session, payout_id: str, limit: int = 100) -> List[PaymentAuditLog]:
        return crud.audit_log.get_by_field(db, field="payout_id", value=payout_id, limit=limit)

    def summary(self, db: Session) -> LogSummary:
        """Per-level and per-status counts plus errors/criticals in the last 24 hours."""
        since = datetime.now(timezone.utc) - timedelta(hours=24)
        by_level = {level.value: 0 for level in LogLevel}
        by_level.update(crud.audit_log.count_by(db, field="level"))
        return LogSummary(
            total_logs=crud.audit_log.count(db),
            by_level=by_level,
            by_status=crud.audit_log.count_by(db, field="status"),
            recent_errors=crud.audit_log.count_since(db, level=LogLevel.ERROR.value, since=since),
            recent_critical=crud.audit_log.count_since(db, level=LogLevel.CRITICAL.value, since=since),
        )

    def clear(self, db: Session) -> int:
        deleted = crud.audit_log.clear(db)
        logger.warning(f"Audit log cleared ({deleted} entries)")
        return deleted

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _emit(self, entry: LogEntryCreate) -> None:
        context = " ".join(
            f"{key}={value}"
            for key, value in (
                ("creator_id", entry.creator_id),
                ("transaction_id", entry.transaction_id),
                ("payout_id", entry.payout_id),
                ("amount", entry.amount),
            )
            if value is not None
        )
        line = f"[{entry.operation}] {entry.status}: {entry.message}"
        if context:
            line = f"{line} ({context})"
        if entry.error_details:
            line = f"{line} error={entry.error_details}"
        audit_stream.log(STDLIB_LEVELS[entry.level], line)

    def _enforce_capacity(self, db: Session, *, newest_id: int) -> None:
        overflow = crud.audit_log.count(db) - self.capacity
        if overflow <= 0:
            return

        # One spare row so an eviction notice still fits under capacity
        candidates = [
            row
            for row in crud.audit_log.get_oldest(db, limit=overflow + 1)
            if row.id != newest_id
        ]
        victims = candidates[:overflow]
        if any(is_unresolved_failure(row) for row in victims):
            victims = candidates[: overflow + 1]
        dropped = [row for row in victims if is_unresolved_failure(row)]
        dropped_summary = [
            {
                "id": row.id,
                "operation": row.operation,
                "creator_id": row.creator_id,
                "transaction_id": row.transaction_id,
                "payout_id": row.payout_id,
                "amount": row.amount,
                "message": row.message,
            }
            for row in dropped
        ]

        crud.audit_log.delete_ids(db, ids=[row.id for row in victims])

        if dropped_summary:
            notice = LogEntryCreate(
                level=LogLevel.CRITICAL,
                operation="audit_log_eviction",
                status="failed",
                message=f"Audit log at capacity; evicted {len(dropped_summary)} unresolved failure record(s)",
                metadata={"dropped": dropped_summary},
            )
            self._emit(notice)
            crud.audit_log.create_entry(db, obj_in=notice)


audit_logger = AuditLogger()

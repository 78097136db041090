# earnings_engine/crud/crud_failover_record.py
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from earnings_engine.crud.base import CRUDBase
from earnings_engine.models.failover_record import FailoverRecord
from earnings_engine.schemas.failover import FailoverRecordCreate, FailoverRecordUpdate


class CRUDFailoverRecord(CRUDBase[FailoverRecord, FailoverRecordCreate, FailoverRecordUpdate]):
    """Storage for the durable failover queue."""

    def count(self, db: Session) -> int:
        return db.query(func.count(self.model.id)).scalar() or 0

    def get_oldest(self, db: Session, *, status: Optional[str] = None) -> Optional[FailoverRecord]:
        query = db.query(self.model)
        if status is not None:
            query = query.filter(self.model.status == status)
        return (
            query
            .order_by(self.model.created_at, self.model.id)
            .first()
        )

    def get_retryable(self, db: Session, *, limit: int = 500) -> List[FailoverRecord]:
        """Pending records that still have attempts left, oldest first."""
        return (
            db.query(self.model)
            .filter(
                and_(
                    self.model.status == "pending",
                    self.model.retry_count < self.model.max_retries,
                )
            )
            .order_by(self.model.created_at, self.model.id)
            .limit(limit)
            .all()
        )

    def get_pending_for_creator(
        self, db: Session, *, creator_id: str, operation_kind: str
    ) -> Optional[FailoverRecord]:
        """Oldest record of ``operation_kind`` still awaiting an automatic retry."""
        return (
            db.query(self.model)
            .filter(
                self.model.creator_id == creator_id,
                self.model.operation_kind == operation_kind,
                self.model.status == "pending",
                self.model.retry_count < self.model.max_retries,
            )
            .order_by(self.model.created_at, self.model.id)
            .first()
        )

    def get_by_creator(self, db: Session, *, creator_id: str) -> List[FailoverRecord]:
        return (
            db.query(self.model)
            .filter(self.model.creator_id == creator_id)
            .order_by(self.model.created_at.desc())
            .all()
        )

    def count_by_status(self, db: Session) -> Dict[str, int]:
        rows = (
            db.query(self.model.status, func.count(self.model.id))
            .group_by(self.model.status)
            .all()
        )
        return {status: count for status, count in rows}

    def count_exhausted(self, db: Session) -> int:
        return (
            db.query(func.count(self.model.id))
            .filter(
                self.model.status == "failed",
                self.model.retry_count >= self.model.max_retries,
            )
            .scalar()
            or 0
        )

    def delete_resolved_before(self, db: Session, *, cutoff: datetime) -> int:
        """Remove successful records resolved before ``cutoff``."""
        deleted = (
            db.query(self.model)
            .filter(
                self.model.status == "success",
                self.model.resolved_at.isnot(None),
                self.model.resolved_at < cutoff,
            )
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted


failover_record = CRUDFailoverRecord(FailoverRecord)

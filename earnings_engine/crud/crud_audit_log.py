# earnings_engine/crud/crud_audit_log.py
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from earnings_engine.crud.base import CRUDBase
from earnings_engine.models.payment_audit_log import PaymentAuditLog
from earnings_engine.schemas.audit import LogEntryCreate, LogFilters


class CRUDAuditLog(CRUDBase[PaymentAuditLog, LogEntryCreate, LogEntryCreate]):

    def create_entry(self, db: Session, *, obj_in: LogEntryCreate) -> PaymentAuditLog:
        db_obj = PaymentAuditLog(
            level=obj_in.level.value,
            operation=obj_in.operation,
            status=obj_in.status,
            message=obj_in.message,
            user_id=obj_in.user_id,
            creator_id=obj_in.creator_id,
            transaction_id=obj_in.transaction_id,
            payout_id=obj_in.payout_id,
            amount=obj_in.amount,
            error_details=obj_in.error_details,
            extra=obj_in.metadata,
        )
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def count(self, db: Session) -> int:
        return db.query(func.count(self.model.id)).scalar() or 0

    def get_oldest(self, db: Session, *, limit: int) -> List[PaymentAuditLog]:
        return (
            db.query(self.model)
            .order_by(self.model.id)
            .limit(limit)
            .all()
        )

    def delete_ids(self, db: Session, *, ids: List[int]) -> None:
        if not ids:
            return
        (
            db.query(self.model)
            .filter(self.model.id.in_(ids))
            .delete(synchronize_session=False)
        )
        db.commit()

    def query(self, db: Session, *, filters: LogFilters) -> List[PaymentAuditLog]:
        """Entries matching every given filter, newest first."""
        query = db.query(self.model)
        if filters.level is not None:
            query = query.filter(self.model.level == filters.level.value)
        if filters.operation:
            query = query.filter(self.model.operation == filters.operation)
        if filters.creator_id:
            query = query.filter(self.model.creator_id == filters.creator_id)
        if filters.status:
            query = query.filter(self.model.status == filters.status)
        if filters.start_time is not None:
            query = query.filter(self.model.timestamp >= filters.start_time)
        if filters.end_time is not None:
            query = query.filter(self.model.timestamp <= filters.end_time)
        return query.order_by(self.model.id.desc()).limit(filters.limit).all()

    def get_by_field(
        self, db: Session, *, field: str, value: str, limit: int = 100
    ) -> List[PaymentAuditLog]:
        column = getattr(self.model, field)
        return (
            db.query(self.model)
            .filter(column == value)
            .order_by(self.model.id.desc())
            .limit(limit)
            .all()
        )

    def count_by(self, db: Session, *, field: str) -> Dict[str, int]:
        column = getattr(self.model, field)
        rows = db.query(column, func.count(self.model.id)).group_by(column).all()
        return {key: count for key, count in rows}

    def count_since(
        self, db: Session, *, level: str, since: datetime
    ) -> int:
        return (
            db.query(func.count(self.model.id))
            .filter(self.model.level == level, self.model.timestamp >= since)
            .scalar()
            or 0
        )

    def clear(self, db: Session) -> int:
        deleted = db.query(self.model).delete(synchronize_session=False)
        db.commit()
        return deleted


audit_log = CRUDAuditLog(PaymentAuditLog)

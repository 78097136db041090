# earnings_engine/crud/crud_transaction.py
from datetime import datetime
from typing import Iterator, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from earnings_engine.crud.base import CRUDBase
from earnings_engine.models.transaction import Transaction
from earnings_engine.schemas.payment import ConfirmedPaymentCreate


class CRUDTransaction(CRUDBase[Transaction, ConfirmedPaymentCreate, ConfirmedPaymentCreate]):
    """Read helpers for the immutable transaction ledger."""

    def get_by_confirmation_id(
        self, db: Session, *, provider_confirmation_id: str
    ) -> Optional[Transaction]:
        return (
            db.query(self.model)
            .filter(self.model.provider_confirmation_id == provider_confirmation_id)
            .first()
        )

    def sum_creator_earnings(
        self,
        db: Session,
        *,
        creator_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> int:
        """Sum of (amount - platform_fee) over completed rows, optionally within [start, end]."""
        query = db.query(
            func.coalesce(func.sum(self.model.amount - self.model.platform_fee), 0)
        ).filter(
            self.model.creator_id == creator_id,
            self.model.status == "completed",
        )
        if start is not None:
            query = query.filter(self.model.created_at >= start)
        if end is not None:
            query = query.filter(self.model.created_at <= end)
        return int(query.scalar() or 0)

    def sum_by_category(
        self, db: Session, *, creator_id: Optional[str] = None
    ) -> List[Tuple[str, int, int, int]]:
        """(category, count, gross, platform_fee) per category over completed rows."""
        query = db.query(
            self.model.category,
            func.count(self.model.id),
            func.coalesce(func.sum(self.model.amount), 0),
            func.coalesce(func.sum(self.model.platform_fee), 0),
        ).filter(self.model.status == "completed")
        if creator_id is not None:
            query = query.filter(self.model.creator_id == creator_id)
        rows = query.group_by(self.model.category).all()
        return [(category, int(count), int(gross), int(fee)) for category, count, gross, fee in rows]

    def get_creator_history(
        self, db: Session, *, creator_id: str, limit: int = 50
    ) -> List[Transaction]:
        return (
            db.query(self.model)
            .filter(self.model.creator_id == creator_id)
            .order_by(self.model.created_at.desc(), self.model.id.desc())
            .limit(limit)
            .all()
        )

    def iter_completed(self, db: Session, *, batch_size: int = 500) -> Iterator[Transaction]:
        return (
            db.query(self.model)
            .filter(self.model.status == "completed")
            .order_by(self.model.created_at)
            .yield_per(batch_size)
        )

    def get_creator_ids(self, db: Session) -> List[str]:
        rows = (
            db.query(self.model.creator_id)
            .filter(self.model.status == "completed")
            .distinct()
            .order_by(self.model.creator_id)
            .all()
        )
        return [row[0] for row in rows]


transaction = CRUDTransaction(Transaction)

# earnings_engine/crud/crud_creator_payout.py
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from earnings_engine.crud.base import CRUDBase
from earnings_engine.models.creator_payout import CreatorPayout, COMMITTED_PAYOUT_STATUSES


class CreatorPayoutCreate(BaseModel):
    creator_id: str
    connected_account_id: str
    stripe_transfer_id: str
    amount: int
    currency: str = "usd"
    status: str = "pending"


class CRUDCreatorPayout(CRUDBase[CreatorPayout, CreatorPayoutCreate, CreatorPayoutCreate]):

    def get_by_transfer_id(
        self, db: Session, *, stripe_transfer_id: str
    ) -> Optional[CreatorPayout]:
        return (
            db.query(self.model)
            .filter(self.model.stripe_transfer_id == stripe_transfer_id)
            .first()
        )

    def sum_committed(self, db: Session, *, creator_id: str) -> int:
        """Total of payouts that hold the creator's funds (pending, in transit or paid)."""
        total = (
            db.query(func.coalesce(func.sum(self.model.amount), 0))
            .filter(
                self.model.creator_id == creator_id,
                self.model.status.in_(COMMITTED_PAYOUT_STATUSES),
            )
            .scalar()
        )
        return int(total or 0)

    def get_creator_history(
        self, db: Session, *, creator_id: str, limit: int = 50
    ) -> List[CreatorPayout]:
        return (
            db.query(self.model)
            .filter(self.model.creator_id == creator_id)
            .order_by(self.model.created_at.desc())
            .limit(limit)
            .all()
        )

    def get_all(self, db: Session) -> List[CreatorPayout]:
        return db.query(self.model).order_by(self.model.created_at).all()

    def update_status(
        self,
        db: Session,
        *,
        db_obj: CreatorPayout,
        status: str,
        arrival_date: Optional[datetime] = None,
        failure_code: Optional[str] = None,
        failure_message: Optional[str] = None,
    ) -> CreatorPayout:
        db_obj.status = status
        if arrival_date is not None:
            db_obj.arrival_date = arrival_date
        if failure_code is not None:
            db_obj.failure_code = failure_code
        if failure_message is not None:
            db_obj.failure_message = failure_message
        db_obj.updated_at = datetime.now(timezone.utc)
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj


creator_payout = CRUDCreatorPayout(CreatorPayout)

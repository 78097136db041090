# earnings_engine/crud/crud_connected_account.py
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from earnings_engine.crud.base import CRUDBase
from earnings_engine.models.connected_account import ConnectedAccount
from earnings_engine.schemas.payout import ConnectedAccountCreate, ConnectedAccountStatus


class CRUDConnectedAccount(CRUDBase[ConnectedAccount, ConnectedAccountCreate, ConnectedAccountCreate]):

    def get_by_creator(self, db: Session, *, creator_id: str) -> Optional[ConnectedAccount]:
        return (
            db.query(self.model)
            .filter(self.model.creator_id == creator_id)
            .first()
        )

    def get_by_stripe_account_id(
        self, db: Session, *, stripe_account_id: str
    ) -> Optional[ConnectedAccount]:
        return (
            db.query(self.model)
            .filter(self.model.stripe_account_id == stripe_account_id)
            .first()
        )

    def upsert(
        self,
        db: Session,
        *,
        obj_in: ConnectedAccountCreate,
        status: ConnectedAccountStatus = ConnectedAccountStatus.pending,
    ) -> ConnectedAccount:
        existing = self.get_by_creator(db, creator_id=obj_in.creator_id)
        if existing:
            existing.stripe_account_id = obj_in.stripe_account_id
            existing.status = status.value
            existing.updated_at = datetime.now(timezone.utc)
            db.add(existing)
            db.commit()
            db.refresh(existing)
            return existing

        db_obj = ConnectedAccount(
            creator_id=obj_in.creator_id,
            stripe_account_id=obj_in.stripe_account_id,
            status=status.value,
        )
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def set_status(
        self, db: Session, *, db_obj: ConnectedAccount, status: ConnectedAccountStatus
    ) -> ConnectedAccount:
        db_obj.status = status.value
        db_obj.updated_at = datetime.now(timezone.utc)
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj


connected_account = CRUDConnectedAccount(ConnectedAccount)

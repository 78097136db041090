# earnings_engine/crud/crud_creator_fee_profile.py
from datetime import datetime, timezone
from typing import List

from sqlalchemy.orm import Session

from earnings_engine.crud.base import CRUDBase
from earnings_engine.models.creator_fee_profile import CreatorFeeProfile
from pydantic import BaseModel


class CreatorFeeProfileCreate(BaseModel):
    creator_id: str


class CRUDCreatorFeeProfile(CRUDBase[CreatorFeeProfile, CreatorFeeProfileCreate, CreatorFeeProfileCreate]):

    def get_or_create(self, db: Session, *, creator_id: str) -> CreatorFeeProfile:
        """Return the profile, adding (not committing) a fresh one when missing."""
        profile = self.get(db, creator_id)
        if profile is None:
            profile = CreatorFeeProfile(
                creator_id=creator_id,
                elite_founding_locked=False,
                total_earnings=0,
            )
            db.add(profile)
            db.flush()
        return profile

    def increment_earnings(self, db: Session, *, creator_id: str, delta: int) -> None:
        """
        Add ``delta`` to the running earnings counter inside the caller's
        transaction. The update is a single SQL expression so concurrent
        writers cannot lose increments.
        """
        self.get_or_create(db, creator_id=creator_id)
        (
            db.query(self.model)
            .filter(self.model.creator_id == creator_id)
            .update(
                {
                    self.model.total_earnings: self.model.total_earnings + delta,
                    self.model.updated_at: datetime.now(timezone.utc),
                },
                synchronize_session=False,
            )
        )

    def lock_elite(
        self, db: Session, *, creator_id: str, fee_percentage: int, granted_by: str
    ) -> CreatorFeeProfile:
        profile = self.get_or_create(db, creator_id=creator_id)
        now = datetime.now(timezone.utc)
        profile.elite_founding_locked = True
        profile.locked_fee_percentage = fee_percentage
        profile.elite_granted_at = now
        profile.elite_granted_by = granted_by
        profile.updated_at = now
        db.add(profile)
        db.commit()
        db.refresh(profile)
        return profile

    def get_all(self, db: Session) -> List[CreatorFeeProfile]:
        return db.query(self.model).order_by(self.model.creator_id).all()

    def get_elite_creator_ids(self, db: Session) -> List[str]:
        rows = (
            db.query(self.model.creator_id)
            .filter(self.model.elite_founding_locked.is_(True))
            .all()
        )
        return [row[0] for row in rows]


creator_fee_profile = CRUDCreatorFeeProfile(CreatorFeeProfile)

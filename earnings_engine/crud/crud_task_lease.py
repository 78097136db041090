# earnings_engine/crud/crud_task_lease.py
from datetime import datetime, timedelta, timezone

from pydantic import BaseModel
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from earnings_engine.crud.base import CRUDBase
from earnings_engine.models.scheduled_task_lease import ScheduledTaskLease


class TaskLeaseCreate(BaseModel):
    task_name: str


class CRUDTaskLease(CRUDBase[ScheduledTaskLease, TaskLeaseCreate, TaskLeaseCreate]):
    """Compare-and-set leases that keep one run of each job in flight."""

    def acquire(
        self, db: Session, *, task_name: str, holder: str, ttl_seconds: int
    ) -> bool:
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(seconds=ttl_seconds)

        if self.get(db, task_name) is None:
            db.add(
                ScheduledTaskLease(
                    task_name=task_name,
                    holder=holder,
                    acquired_at=now,
                    expires_at=expires_at,
                )
            )
            try:
                db.commit()
                return True
            except IntegrityError:
                # Another worker inserted the row first
                db.rollback()

        updated = (
            db.query(self.model)
            .filter(
                self.model.task_name == task_name,
                or_(self.model.holder.is_(None), self.model.expires_at < now),
            )
            .update(
                {
                    self.model.holder: holder,
                    self.model.acquired_at: now,
                    self.model.expires_at: expires_at,
                },
                synchronize_session=False,
            )
        )
        db.commit()
        return updated == 1

    def release(self, db: Session, *, task_name: str, holder: str) -> None:
        (
            db.query(self.model)
            .filter(self.model.task_name == task_name, self.model.holder == holder)
            .update(
                {self.model.holder: None, self.model.expires_at: None},
                synchronize_session=False,
            )
        )
        db.commit()


task_lease = CRUDTaskLease(ScheduledTaskLease)

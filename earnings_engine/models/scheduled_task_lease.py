# earnings_engine/models/scheduled_task_lease.py
from sqlalchemy import Column, DateTime, String

from earnings_engine.db.base_class import Base


class ScheduledTaskLease(Base):
    """Single-flight lease per scheduled job name."""
    __tablename__ = "scheduled_task_leases"

    task_name = Column(String(100), primary_key=True)
    holder = Column(String(100), nullable=True)
    acquired_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)

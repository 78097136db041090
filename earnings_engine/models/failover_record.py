# earnings_engine/models/failover_record.py
from datetime import datetime, timezone
import time
import uuid

from sqlalchemy import Column, DateTime, Integer, String, Text, text

from earnings_engine.db.base_class import Base, JSONType


def _failover_id() -> str:
    return f"failover_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class FailoverRecord(Base):
    __tablename__ = "failover_records"

    id = Column(String, primary_key=True, default=_failover_id)

    operation_kind = Column(String(50), nullable=False, index=True)
    # Values: 'payment', 'payout', 'tier_recalculation'

    # Everything the retry handler needs (ids, amounts)
    payload = Column(JSONType, nullable=False)
    creator_id = Column(String, nullable=True, index=True)

    status = Column(String(20), nullable=False, server_default="pending", default="pending")
    # Values: 'pending', 'success', 'failed'
    retry_count = Column(Integer, server_default=text("0"), default=0, nullable=False)
    max_retries = Column(Integer, server_default=text("5"), default=5, nullable=False)
    last_error = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def is_exhausted(self) -> bool:
        return self.status == "failed" and self.retry_count >= self.max_retries

# earnings_engine/models/creator_payout.py
from datetime import datetime, timezone
import uuid

from sqlalchemy import BigInteger, Column, DateTime, String, Text, func

from earnings_engine.db.base_class import Base

# Statuses whose funds are no longer available to the creator
COMMITTED_PAYOUT_STATUSES = ("pending", "in_transit", "paid")

TERMINAL_PAYOUT_STATUSES = ("paid", "failed", "cancelled")


class CreatorPayout(Base):
    __tablename__ = "creator_payouts"

    id = Column(
        String, primary_key=True, default=lambda: f"po_{uuid.uuid4().hex[:12]}"
    )
    creator_id = Column(String, nullable=False, index=True)
    connected_account_id = Column(String(255), nullable=False)
    stripe_transfer_id = Column(String(255), nullable=False, unique=True)
    amount = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False, default="usd")
    status = Column(String(20), nullable=False, default="pending")
    # Values: 'pending', 'in_transit', 'paid', 'failed', 'cancelled'
    arrival_date = Column(DateTime(timezone=True), nullable=True)
    failure_code = Column(String(100), nullable=True)
    failure_message = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

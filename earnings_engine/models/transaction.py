# earnings_engine/models/transaction.py
from datetime import datetime, timezone
import uuid

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, String, Text

from earnings_engine.db.base_class import Base


class Transaction(Base):
    """
    One confirmed money movement from a payer to a creator.

    Rows are immutable once written. Creator earnings are always derived as
    ``amount - platform_fee`` and never stored.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_transactions_amount_non_negative"),
        CheckConstraint(
            "platform_fee >= 0 AND platform_fee <= amount",
            name="ck_transactions_platform_fee_bounds",
        ),
    )

    id = Column(
        String, primary_key=True, default=lambda: f"txn_{uuid.uuid4().hex[:12]}"
    )
    payer_id = Column(String, nullable=False, index=True)
    creator_id = Column(String, nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)
    category = Column(String(50), nullable=False)
    platform_fee = Column(BigInteger, nullable=False)
    status = Column(String(20), nullable=False, default="completed")
    # Values: 'pending', 'completed', 'failed', 'refunded'

    # Dedupe key for repeated provider confirmations (webhook retries)
    provider_confirmation_id = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )

    @property
    def creator_earnings(self) -> int:
        return self.amount - self.platform_fee

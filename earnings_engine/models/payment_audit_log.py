# earnings_engine/models/payment_audit_log.py
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer, String, Text

from earnings_engine.db.base_class import Base, JSONType


class PaymentAuditLog(Base):
    __tablename__ = "payment_audit_log"

    # Monotonic id doubles as the insertion order of the ring buffer
    id = Column(Integer, primary_key=True, autoincrement=True)

    timestamp = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    level = Column(String(10), nullable=False, index=True)
    # Values: 'DEBUG', 'INFO', 'WARN', 'ERROR', 'CRITICAL'
    operation = Column(String(100), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    message = Column(Text, nullable=False)

    # What was affected
    user_id = Column(String, nullable=True)
    creator_id = Column(String, nullable=True, index=True)
    transaction_id = Column(String, nullable=True, index=True)
    payout_id = Column(String, nullable=True, index=True)
    amount = Column(BigInteger, nullable=True)

    error_details = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    extra = Column("metadata", JSONType, nullable=True)

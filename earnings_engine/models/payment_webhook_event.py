# earnings_engine/models/payment_webhook_event.py
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint, func, text
from earnings_engine.db.base_class import Base, JSONType
import uuid


class PaymentWebhookEvent(Base):
    __tablename__ = "payment_webhook_events"
    __table_args__ = (
        UniqueConstraint("provider_code", "provider_event_id", name="uq_webhook_provider_event"),
    )

    id = Column(
        String, primary_key=True, default=lambda: f"whe_{uuid.uuid4().hex[:12]}"
    )

    provider_code = Column(String(50), nullable=False)
    provider_event_id = Column(String(255), nullable=False)
    provider_event_type = Column(String(100), nullable=False)  # e.g. 'transfer.paid'

    status = Column(String(50), nullable=False, server_default="pending", default="pending")
    # Values: 'pending', 'processing', 'processed', 'failed'

    payload = Column(JSONType, nullable=False)
    signature_verified = Column(Boolean, server_default=text("false"), default=False, nullable=False)

    processed_at = Column(DateTime(timezone=True), nullable=True)
    processing_error = Column(Text, nullable=True)
    retry_count = Column(Integer, server_default=text("0"), default=0, nullable=False)

    received_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    ip_address = Column(String(45), nullable=True)

    @property
    def is_processed(self) -> bool:
        return self.status == "processed"

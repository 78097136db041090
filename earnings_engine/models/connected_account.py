# earnings_engine/models/connected_account.py
from sqlalchemy import Column, DateTime, String, func
from earnings_engine.db.base_class import Base
import uuid


class ConnectedAccount(Base):
    __tablename__ = "connected_accounts"

    id = Column(
        String, primary_key=True, default=lambda: f"ca_{uuid.uuid4().hex[:12]}"
    )
    creator_id = Column(String, nullable=False, unique=True, index=True)
    stripe_account_id = Column(String(255), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default="pending")
    # Values: 'pending', 'active', 'inactive'

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    @property
    def is_active(self) -> bool:
        return self.status == "active"

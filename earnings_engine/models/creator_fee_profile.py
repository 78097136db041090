# earnings_engine/models/creator_fee_profile.py
from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, String, func, text

from earnings_engine.db.base_class import Base


class CreatorFeeProfile(Base):
    __tablename__ = "creator_fee_profiles"

    creator_id = Column(String, primary_key=True)

    # Admin-granted, never cleared by any automated process
    elite_founding_locked = Column(Boolean, server_default=text("false"), default=False, nullable=False)
    locked_fee_percentage = Column(Integer, nullable=True)
    elite_granted_at = Column(DateTime(timezone=True), nullable=True)
    elite_granted_by = Column(String, nullable=True)

    # Denormalized running total of creator shares across completed transactions
    total_earnings = Column(BigInteger, server_default="0", default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

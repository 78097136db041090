# earnings_engine/schemas/payment.py
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum


# ============================================
# Enums
# ============================================

class TransactionStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"
    refunded = "refunded"


class WebhookEventStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    processed = "processed"
    failed = "failed"


# ============================================
# Transaction Schemas
# ============================================

class ConfirmedPaymentCreate(BaseModel):
    payer_id: str
    creator_id: str
    amount: int = Field(..., ge=0, description="Amount in smallest currency unit (cents)")
    category: str
    provider_confirmation_id: str = Field(..., max_length=255)
    description: Optional[str] = None


class Transaction(BaseModel):
    id: str
    payer_id: str
    creator_id: str
    amount: int
    category: str
    platform_fee: int
    creator_earnings: int
    status: TransactionStatus
    provider_confirmation_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


class BalanceResponse(BaseModel):
    creator_id: str
    balance: int = Field(..., description="Available balance in cents")


class CreatorEarningsSummary(BaseModel):
    """Lifetime creator share of completed transactions."""
    creator_id: str
    total_earnings: int
    transaction_count: int
    by_category: Dict[str, int]


class PlatformRevenueSummary(BaseModel):
    """Lifetime platform fees across all completed transactions."""
    total_revenue: int
    gross_volume: int
    transaction_count: int
    by_category: Dict[str, int]


# ============================================
# Webhook Event Schemas
# ============================================

class WebhookEventCreate(BaseModel):
    provider_code: str
    provider_event_id: str
    provider_event_type: str
    payload: Dict[str, Any]
    signature_verified: bool = False
    ip_address: Optional[str] = None


class WebhookEventUpdate(BaseModel):
    status: Optional[WebhookEventStatus] = None
    processed_at: Optional[datetime] = None
    processing_error: Optional[str] = None
    retry_count: Optional[int] = None

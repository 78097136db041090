# earnings_engine/schemas/payout.py
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from enum import Enum


class PayoutStatus(str, Enum):
    pending = "pending"
    in_transit = "in_transit"
    paid = "paid"
    failed = "failed"
    cancelled = "cancelled"


class ConnectedAccountStatus(str, Enum):
    pending = "pending"
    active = "active"
    inactive = "inactive"


class PayoutCreate(BaseModel):
    amount: int = Field(..., gt=0, description="Amount in cents")


class Payout(BaseModel):
    id: str
    creator_id: str
    amount: int
    currency: str
    status: PayoutStatus
    stripe_transfer_id: str
    arrival_date: Optional[datetime] = None
    failure_code: Optional[str] = None
    failure_message: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ConnectedAccountCreate(BaseModel):
    creator_id: str
    stripe_account_id: str = Field(..., max_length=255)


class ConnectedAccount(BaseModel):
    id: str
    creator_id: str
    stripe_account_id: str
    status: ConnectedAccountStatus

    model_config = {"from_attributes": True}


class BatchPayoutRequest(BaseModel):
    min_threshold: int = Field(10000, ge=0, description="Minimum balance in cents")


class BatchPayoutItem(BaseModel):
    creator_id: str
    amount: int
    success: bool
    payout_id: Optional[str] = None
    failover_record_id: Optional[str] = None
    error: Optional[str] = None


class BatchPayoutResult(BaseModel):
    total_payouts: int
    successful_payouts: int
    failed_payouts: int
    total_amount: int
    results: List[BatchPayoutItem] = []

# earnings_engine/schemas/failover.py
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum


class OperationKind(str, Enum):
    PAYMENT = "payment"
    PAYOUT = "payout"
    TIER_RECALCULATION = "tier_recalculation"


class FailoverStatus(str, Enum):
    pending = "pending"
    success = "success"
    failed = "failed"


class FailoverRecordCreate(BaseModel):
    operation_kind: OperationKind
    payload: Dict[str, Any]
    creator_id: Optional[str] = None
    max_retries: int = Field(5, ge=1)
    last_error: Optional[str] = None

    model_config = {"use_enum_values": True}


class FailoverRecordUpdate(BaseModel):
    status: Optional[FailoverStatus] = None
    retry_count: Optional[int] = None
    last_error: Optional[str] = None
    last_attempt_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class FailoverRecord(BaseModel):
    id: str
    operation_kind: OperationKind
    payload: Dict[str, Any]
    creator_id: Optional[str] = None
    status: FailoverStatus
    retry_count: int
    max_retries: int
    last_error: Optional[str] = None
    created_at: datetime
    resolved_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class FailoverQueueStatus(BaseModel):
    total_items: int
    pending: int
    successful: int
    failed: int
    exhausted: int


class DrainResult(BaseModel):
    processed: int
    successful: int
    failed: int
    still_pending: int

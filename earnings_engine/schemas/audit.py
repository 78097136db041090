# earnings_engine/schemas/audit.py
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
from datetime import datetime
from enum import Enum


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogEntryCreate(BaseModel):
    level: LogLevel
    operation: str
    status: str
    message: str
    user_id: Optional[str] = None
    creator_id: Optional[str] = None
    transaction_id: Optional[str] = None
    payout_id: Optional[str] = None
    amount: Optional[int] = None
    error_details: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class LogEntry(BaseModel):
    id: int
    timestamp: datetime
    level: LogLevel
    operation: str
    status: str
    message: str
    user_id: Optional[str] = None
    creator_id: Optional[str] = None
    transaction_id: Optional[str] = None
    payout_id: Optional[str] = None
    amount: Optional[int] = None
    error_details: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="extra")

    model_config = {"from_attributes": True}


class LogFilters(BaseModel):
    level: Optional[LogLevel] = None
    operation: Optional[str] = None
    creator_id: Optional[str] = None
    status: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    limit: int = Field(100, ge=1, le=1000)


class LogSummary(BaseModel):
    total_logs: int
    by_level: Dict[str, int]
    by_status: Dict[str, int]
    recent_errors: int
    recent_critical: int

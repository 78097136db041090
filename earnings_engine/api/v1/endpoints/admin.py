# earnings_engine/api/v1/endpoints/admin.py
"""
Operator endpoints for the earnings engine.

These endpoints allow platform operators to:
- Inspect and retry the failover queue
- Run reconciliation and payout integrity reports
- Report creator earnings and platform revenue
- Manage fee tiers and Elite Founding grants
- Trigger batch payouts and scheduled tasks by hand
- Browse the payment audit log

All routes require the internal API key.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from earnings_engine import scheduler
from earnings_engine.api import deps
from earnings_engine.background_tasks.earnings_tasks import build_retry_handlers
from earnings_engine.core.exceptions import EarningsEngineError
from earnings_engine.schemas.audit import LogEntry, LogFilters, LogLevel, LogSummary
from earnings_engine.schemas.failover import FailoverQueueStatus, FailoverRecord
from earnings_engine.schemas.payment import (
    BalanceResponse,
    CreatorEarningsSummary,
    PlatformRevenueSummary,
    Transaction,
)
from earnings_engine.schemas.payout import (
    BatchPayoutRequest,
    BatchPayoutResult,
    ConnectedAccount,
    Payout,
)
from earnings_engine.services.audit_logger import audit_logger
from earnings_engine.services.failover_queue import failover_queue
from earnings_engine.services.payment.fee_tiers import CreatorFeeInfo, FeeTierEngine
from earnings_engine.services.payment.ledger import TransactionLedger
from earnings_engine.services.payment.payout_processor import PayoutProcessor
from earnings_engine.services.payment.provider_interface import PaymentProviderInterface
from earnings_engine.services.payment.reconciliation import (
    PayoutIntegrityReport,
    ReconciliationReport,
    ReconciliationService,
)
from earnings_engine.services.payment.revenue_split import get_all_revenue_splits

router = APIRouter(
    tags=["Admin - Earnings"],
    dependencies=[Depends(deps.get_internal_api_key)],
)
logger = logging.getLogger(__name__)


# ==================== Request Models ====================

class EliteGrantRequest(BaseModel):
    """Request to lock a creator at the Elite Founding fee"""
    granted_by: str = Field(default="admin", max_length=100, description="Operator granting the status")


class ConnectedAccountRegisterRequest(BaseModel):
    """Request to record a creator's payout destination"""
    stripe_account_id: str = Field(..., max_length=255)


# ==================== Failover Queue ====================

@router.get("/failover/status", response_model=FailoverQueueStatus)
def get_failover_status(db: Session = Depends(deps.get_db)):
    return failover_queue.get_status(db)


@router.get("/failover/creators/{creator_id}", response_model=List[FailoverRecord])
def get_creator_failovers(creator_id: str, db: Session = Depends(deps.get_db)):
    return failover_queue.get_creator_records(db, creator_id)


@router.post("/failover/{record_id}/retry", response_model=FailoverRecord)
async def retry_failover_record(
    record_id: str,
    db: Session = Depends(deps.get_db),
    provider: PaymentProviderInterface = Depends(deps.get_provider),
):
    """One retry attempt for a specific record, regardless of its retry count."""
    try:
        return await failover_queue.manual_retry(db, record_id, build_retry_handlers(provider))
    except EarningsEngineError as e:
        raise deps.http_error(e)


@router.post("/failover/clear-resolved")
def clear_resolved_failovers(
    older_than_days: int = Query(30, ge=0),
    db: Session = Depends(deps.get_db),
):
    return {"deleted": failover_queue.clear_resolved(db, older_than_days=older_than_days)}


# ==================== Reconciliation ====================

@router.get("/reconciliation", response_model=ReconciliationReport)
def get_reconciliation_report(db: Session = Depends(deps.get_db)):
    return ReconciliationService().self_audit(db)


@router.get("/payout-integrity", response_model=PayoutIntegrityReport)
async def get_payout_integrity(
    db: Session = Depends(deps.get_db),
    provider: PaymentProviderInterface = Depends(deps.get_provider),
):
    return await ReconciliationService(provider).audit_payouts(db)


@router.get("/platform-revenue", response_model=PlatformRevenueSummary)
def get_platform_revenue(
    db: Session = Depends(deps.get_db),
    provider: PaymentProviderInterface = Depends(deps.get_provider),
):
    return TransactionLedger(provider).get_platform_revenue(db)


@router.get("/transactions/{transaction_id}/integrity")
def get_transaction_integrity(
    transaction_id: str,
    db: Session = Depends(deps.get_db),
    provider: PaymentProviderInterface = Depends(deps.get_provider),
):
    try:
        return TransactionLedger(provider).validate_transaction_integrity(db, transaction_id)
    except EarningsEngineError as e:
        raise deps.http_error(e)


# ==================== Fee Tiers ====================

@router.get("/tiers", response_model=List[CreatorFeeInfo])
def get_creator_tiers(db: Session = Depends(deps.get_db)):
    return FeeTierEngine().get_all_creator_tiers(db)


@router.post("/tiers/recalculate")
def recalculate_tiers(db: Session = Depends(deps.get_db)) -> Dict[str, Any]:
    return FeeTierEngine().recalculate_all_tiers(db)


@router.post("/creators/{creator_id}/elite", response_model=CreatorFeeInfo)
def grant_elite_founding(
    creator_id: str,
    grant_in: EliteGrantRequest,
    db: Session = Depends(deps.get_db),
):
    logger.info(f"Elite Founding grant for creator {creator_id} by {grant_in.granted_by}")
    return FeeTierEngine().grant_elite_founding(db, creator_id, granted_by=grant_in.granted_by)


# ==================== Creators ====================

@router.get("/creators/{creator_id}/balance", response_model=BalanceResponse)
def get_creator_balance(
    creator_id: str,
    db: Session = Depends(deps.get_db),
    provider: PaymentProviderInterface = Depends(deps.get_provider),
):
    return BalanceResponse(
        creator_id=creator_id,
        balance=TransactionLedger(provider).balance_of(db, creator_id),
    )


@router.get("/creators/{creator_id}/earnings", response_model=CreatorEarningsSummary)
def get_creator_earnings(
    creator_id: str,
    db: Session = Depends(deps.get_db),
    provider: PaymentProviderInterface = Depends(deps.get_provider),
):
    return TransactionLedger(provider).get_creator_earnings(db, creator_id)


@router.get("/creators/{creator_id}/transactions", response_model=List[Transaction])
def get_creator_transactions(
    creator_id: str,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(deps.get_db),
    provider: PaymentProviderInterface = Depends(deps.get_provider),
):
    return TransactionLedger(provider).get_transaction_history(db, creator_id, limit=limit)


@router.get("/creators/{creator_id}/fee-info", response_model=CreatorFeeInfo)
def get_creator_fee_info(creator_id: str, db: Session = Depends(deps.get_db)):
    return FeeTierEngine().get_fee_info(db, creator_id)


@router.get("/creators/{creator_id}/payouts", response_model=List[Payout])
def get_creator_payouts(
    creator_id: str,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(deps.get_db),
    provider: PaymentProviderInterface = Depends(deps.get_provider),
):
    return PayoutProcessor(provider).get_payout_history(db, creator_id, limit=limit)


@router.post("/creators/{creator_id}/connected-account", response_model=ConnectedAccount)
async def register_connected_account(
    creator_id: str,
    account_in: ConnectedAccountRegisterRequest,
    db: Session = Depends(deps.get_db),
    provider: PaymentProviderInterface = Depends(deps.get_provider),
):
    return await PayoutProcessor(provider).register_connected_account(
        db, creator_id, account_in.stripe_account_id
    )


# ==================== Payouts ====================

@router.post("/payouts/batch", response_model=BatchPayoutResult)
async def run_batch_payouts(
    batch_in: BatchPayoutRequest,
    db: Session = Depends(deps.get_db),
    provider: PaymentProviderInterface = Depends(deps.get_provider),
):
    return await PayoutProcessor(provider).batch_process(db, batch_in.min_threshold)


# ==================== Audit Log ====================

@router.get("/logs", response_model=List[LogEntry])
def get_audit_logs(
    level: Optional[LogLevel] = None,
    operation: Optional[str] = None,
    creator_id: Optional[str] = None,
    status: Optional[str] = None,
    start_time: Optional[datetime] = None,
    end_time: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(deps.get_db),
):
    filters = LogFilters(
        level=level,
        operation=operation,
        creator_id=creator_id,
        status=status,
        start_time=start_time,
        end_time=end_time,
        limit=limit,
    )
    return audit_logger.query(db, filters)


@router.get("/logs/summary", response_model=LogSummary)
def get_audit_log_summary(db: Session = Depends(deps.get_db)):
    return audit_logger.summary(db)


@router.get("/logs/transactions/{transaction_id}", response_model=List[LogEntry])
def get_transaction_logs(transaction_id: str, db: Session = Depends(deps.get_db)):
    return audit_logger.get_transaction_logs(db, transaction_id)


@router.get("/logs/payouts/{payout_id}", response_model=List[LogEntry])
def get_payout_logs(payout_id: str, db: Session = Depends(deps.get_db)):
    return audit_logger.get_payout_logs(db, payout_id)


@router.delete("/logs")
def clear_audit_logs(db: Session = Depends(deps.get_db)):
    return {"deleted": audit_logger.clear(db)}


# ==================== Scheduler ====================

@router.post("/tasks/{task_name}/execute")
async def execute_scheduled_task(task_name: str):
    logger.info(f"Manual execution of task {task_name} requested")
    return await scheduler.execute_task(task_name)


@router.get("/scheduler/status")
def get_scheduler_status():
    return scheduler.get_scheduler_status()


# ==================== Revenue Splits ====================

@router.get("/revenue-splits")
def list_revenue_splits():
    return get_all_revenue_splits()

# earnings_engine/background_tasks/earnings_tasks.py
"""
Periodic earnings jobs.

Each task opens its own session and returns a short summary string that
``scheduler.execute_task`` hands back to the caller. Exceptions propagate
so the scheduler can log and isolate them.
"""
import logging
from typing import Optional

from earnings_engine.core.config import settings
from earnings_engine.db.session import SessionLocal
from earnings_engine.schemas.failover import OperationKind
from earnings_engine.services.failover_queue import RetryHandlers, failover_queue
from earnings_engine.services.payment.fee_tiers import FeeTierEngine
from earnings_engine.services.payment.ledger import TransactionLedger
from earnings_engine.services.payment.payout_processor import PayoutProcessor
from earnings_engine.services.payment.provider_factory import get_payment_provider
from earnings_engine.services.payment.provider_interface import PaymentProviderInterface
from earnings_engine.services.payment.reconciliation import ReconciliationService

logger = logging.getLogger(__name__)


def build_retry_handlers(provider: Optional[PaymentProviderInterface] = None) -> RetryHandlers:
    """Handler table used by the failover queue, one entry per operation kind."""
    provider = provider or get_payment_provider()
    ledger = TransactionLedger(provider)
    payouts = PayoutProcessor(provider, ledger=ledger)
    fee_tiers = FeeTierEngine()
    return {
        OperationKind.PAYMENT: ledger.retry_payment,
        OperationKind.PAYOUT: payouts.retry_payout,
        OperationKind.TIER_RECALCULATION: fee_tiers.retry_recalculation,
    }


async def monthly_tier_recalculation() -> str:
    db = SessionLocal()
    try:
        report = FeeTierEngine().recalculate_all_tiers(db)
        return (
            f"Recalculated tiers for {report['tiers_updated']} of "
            f"{report['total_creators']} creators ({report['elite_skipped']} elite skipped)"
        )
    finally:
        db.close()


async def daily_batch_payout(min_threshold: Optional[int] = None) -> str:
    threshold = min_threshold if min_threshold is not None else settings.BATCH_PAYOUT_MIN_THRESHOLD
    db = SessionLocal()
    try:
        result = await PayoutProcessor(get_payment_provider()).batch_process(db, threshold)
        return (
            f"Batch payout: {result.successful_payouts}/{result.total_payouts} succeeded, "
            f"{result.total_amount} paid out"
        )
    finally:
        db.close()


async def weekly_reconciliation() -> str:
    db = SessionLocal()
    try:
        report = ReconciliationService().self_audit(db)
        if report.discrepancies:
            logger.warning(
                f"Weekly reconciliation found {len(report.discrepancies)} discrepancies: "
                f"{report.discrepancies[:10]}"
            )
        else:
            logger.info(
                f"Weekly reconciliation clean over {report.total_transactions} transactions"
            )
        return (
            f"Reconciled {report.total_transactions} transactions, "
            f"{len(report.discrepancies)} discrepancies"
        )
    finally:
        db.close()


async def process_failover_queue() -> str:
    db = SessionLocal()
    try:
        result = await failover_queue.drain(db, build_retry_handlers())
        return (
            f"Drained {result.processed} records: {result.successful} recovered, "
            f"{result.failed} failed, {result.still_pending} still pending"
        )
    finally:
        db.close()

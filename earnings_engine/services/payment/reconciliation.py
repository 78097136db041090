# earnings_engine/services/payment/reconciliation.py
"""
Reconciliation between the local ledger and the payment provider.

- ``self_audit`` re-derives creator earnings for every completed transaction
  and checks conservation (creator + platform == amount, both non-negative)
- ``audit_payouts`` fetches each payout's transfer from the provider and
  compares amount and currency; an unreachable transfer is reported as a
  discrepancy and the audit carries on

Both reports are informational and never block other processing.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.orm import Session

from earnings_engine import crud
from earnings_engine.schemas.audit import LogLevel
from earnings_engine.services.audit_logger import AuditLogger, audit_logger as default_audit_logger
from .provider_interface import PaymentProviderInterface
from .providers.stripe_provider import PaymentError

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationReport:
    total_transactions: int = 0
    total_collected: int = 0
    total_creator_earnings: int = 0
    total_platform_earnings: int = 0
    discrepancies: List[str] = field(default_factory=list)


@dataclass
class PayoutIntegrityReport:
    valid: bool = True
    discrepancies: List[str] = field(default_factory=list)
    total_payouts_in_db: int = 0
    total_payouts_in_provider: int = 0


class ReconciliationService:
    """
    Cross-checks the ledger and payouts.

    Args:
        provider: Payment provider holding the transfer records
        audit: Audit logger receiving the report outcome
    """

    def __init__(
        self,
        provider: Optional[PaymentProviderInterface] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self.provider = provider
        self.audit = audit or default_audit_logger

    def self_audit(self, db: Session) -> ReconciliationReport:
        report = ReconciliationReport()

        for txn in crud.transaction.iter_completed(db):
            platform_fee = txn.platform_fee or 0
            creator_earnings = txn.amount - platform_fee

            report.total_transactions += 1
            report.total_collected += txn.amount
            report.total_creator_earnings += creator_earnings
            report.total_platform_earnings += platform_fee

            if creator_earnings + platform_fee != txn.amount:
                report.discrepancies.append(
                    f"Transaction {txn.id}: creator {creator_earnings} + platform "
                    f"{platform_fee} != total {txn.amount}"
                )
            if creator_earnings < 0 or platform_fee < 0:
                report.discrepancies.append(
                    f"Transaction {txn.id}: negative share (creator {creator_earnings}, platform {platform_fee})"
                )

        if report.total_creator_earnings + report.total_platform_earnings != report.total_collected:
            report.discrepancies.append(
                f"Ledger totals: creator {report.total_creator_earnings} + platform "
                f"{report.total_platform_earnings} != collected {report.total_collected}"
            )

        self.audit.log(
            db,
            level=LogLevel.WARN if report.discrepancies else LogLevel.INFO,
            operation="reconciliation",
            status="discrepancies" if report.discrepancies else "success",
            message=(
                f"Ledger self-audit over {report.total_transactions} transactions: "
                f"{len(report.discrepancies)} discrepancies"
            ),
            amount=report.total_collected,
            metadata={"discrepancies": report.discrepancies[:50]},
        )
        return report

    async def audit_payouts(self, db: Session) -> PayoutIntegrityReport:
        if self.provider is None:
            raise ValueError("audit_payouts requires a payment provider")

        payouts = crud.creator_payout.get_all(db)
        report = PayoutIntegrityReport(total_payouts_in_db=len(payouts))

        for payout in payouts:
            try:
                transfer = await self.provider.get_transfer(payout.stripe_transfer_id)
            except PaymentError as e:
                report.discrepancies.append(
                    f"Payout {payout.id}: could not fetch transfer "
                    f"{payout.stripe_transfer_id} from provider ({e.code})"
                )
                continue

            report.total_payouts_in_provider += 1
            if transfer.amount != payout.amount:
                report.discrepancies.append(
                    f"Payout {payout.id}: amount mismatch (ledger {payout.amount}, provider {transfer.amount})"
                )
            if (transfer.currency or "").lower() != (payout.currency or "").lower():
                report.discrepancies.append(
                    f"Payout {payout.id}: currency mismatch (ledger {payout.currency}, provider {transfer.currency})"
                )

        report.valid = not report.discrepancies
        if not report.valid:
            logger.warning(f"Payout integrity check found {len(report.discrepancies)} discrepancies")
        self.audit.log(
            db,
            level=LogLevel.INFO if report.valid else LogLevel.WARN,
            operation="payout_integrity",
            status="success" if report.valid else "discrepancies",
            message=(
                f"Payout integrity: {report.total_payouts_in_provider}/{report.total_payouts_in_db} "
                f"transfers verified, {len(report.discrepancies)} discrepancies"
            ),
            metadata={"discrepancies": report.discrepancies[:50]},
        )
        return report

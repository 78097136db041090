# earnings_engine/services/payment/ledger.py
"""
Immutable ledger of confirmed payments.

Recording a payment:
1. split the amount for its category (rejects unknown categories up front)
2. return the existing row if this provider confirmation was already recorded
3. verify with the provider that the confirmation succeeded for exactly this amount
4. insert the transaction and bump the creator's running earnings in one commit

``transactions.provider_confirmation_id`` is unique, so a duplicate delivery
racing past step 2 loses at insert time and resolves to the winning row.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from earnings_engine import crud
from earnings_engine.core.exceptions import NotFoundError, VerificationError
from earnings_engine.models.transaction import Transaction
from earnings_engine.schemas.audit import LogLevel
from earnings_engine.schemas.failover import OperationKind
from earnings_engine.schemas.payment import CreatorEarningsSummary, PlatformRevenueSummary
from earnings_engine.services.audit_logger import AuditLogger, audit_logger as default_audit_logger
from earnings_engine.services.failover_queue import FailoverQueue, failover_queue as default_failover_queue
from . import revenue_split
from .provider_interface import PaymentConfirmationStatusEnum, PaymentProviderInterface
from .providers.stripe_provider import PaymentError

logger = logging.getLogger(__name__)


class TransactionLedger:
    """
    Records confirmed payments and answers balance questions.

    Args:
        provider: Payment provider used to verify confirmations
        audit: Audit logger
        failover: Queue for payments whose verification hit a transient provider error
    """

    def __init__(
        self,
        provider: PaymentProviderInterface,
        audit: Optional[AuditLogger] = None,
        failover: Optional[FailoverQueue] = None,
    ):
        self.provider = provider
        self.audit = audit or default_audit_logger
        self.failover = failover or default_failover_queue

    async def record(
        self,
        db: Session,
        *,
        payer_id: str,
        creator_id: str,
        amount: int,
        category: str,
        provider_confirmation_id: str,
        description: Optional[str] = None,
    ) -> Transaction:
        """
        Verify and record one confirmed payment.

        Raises:
            UnknownCategoryError: If the category has no split rule
            InvalidAmountError: If the amount is negative
            VerificationError: If the provider disagrees on status or amount
            PaymentError: If the provider could not be reached
        """
        split = revenue_split.split(amount, category)

        existing = crud.transaction.get_by_confirmation_id(
            db, provider_confirmation_id=provider_confirmation_id
        )
        if existing is not None:
            logger.info(
                f"Confirmation {provider_confirmation_id} already recorded as {existing.id}, skipping"
            )
            return existing

        confirmation = await self.provider.get_payment_confirmation(provider_confirmation_id)
        self._verify(
            confirmation.status,
            confirmation.amount,
            expected_amount=amount,
            payer_id=payer_id,
            creator_id=creator_id,
            provider_confirmation_id=provider_confirmation_id,
        )

        txn = Transaction(
            payer_id=payer_id,
            creator_id=creator_id,
            amount=amount,
            category=split.category.value,
            platform_fee=split.platform_share,
            status="completed",
            provider_confirmation_id=provider_confirmation_id,
            description=description
            or f"{split.category.value} payment from user {payer_id} to creator {creator_id}",
        )
        try:
            db.add(txn)
            db.flush()
            crud.creator_fee_profile.increment_earnings(
                db, creator_id=creator_id, delta=split.creator_share
            )
            db.commit()
        except IntegrityError:
            db.rollback()
            winner = crud.transaction.get_by_confirmation_id(
                db, provider_confirmation_id=provider_confirmation_id
            )
            if winner is None:
                raise
            logger.info(
                f"Concurrent delivery of {provider_confirmation_id} already recorded as {winner.id}"
            )
            return winner

        db.refresh(txn)
        logger.info(
            f"Recorded transaction {txn.id}: {amount} cents ({split.category.value}) "
            f"creator={split.creator_share} platform={split.platform_share}"
        )
        self.audit.log_payment_success(
            db,
            user_id=payer_id,
            creator_id=creator_id,
            transaction_id=txn.id,
            amount=amount,
            metadata={
                "category": split.category.value,
                "creator_share": split.creator_share,
                "platform_fee": split.platform_share,
                "provider_confirmation_id": provider_confirmation_id,
            },
        )
        return txn

    def _verify(
        self,
        status: PaymentConfirmationStatusEnum,
        confirmed_amount: int,
        *,
        expected_amount: int,
        payer_id: str,
        creator_id: str,
        provider_confirmation_id: str,
    ) -> None:
        error: Optional[VerificationError] = None
        if status != PaymentConfirmationStatusEnum.SUCCEEDED:
            error = VerificationError(
                code="CONFIRMATION_NOT_SUCCEEDED",
                message=f"Payment confirmation status is {getattr(status, 'value', status)}, expected succeeded",
                context={"provider_confirmation_id": provider_confirmation_id},
            )
        elif confirmed_amount != expected_amount:
            error = VerificationError(
                code="AMOUNT_MISMATCH",
                message=f"Payment amount mismatch: expected {expected_amount}, got {confirmed_amount}",
                context={
                    "provider_confirmation_id": provider_confirmation_id,
                    "expected": expected_amount,
                    "confirmed": confirmed_amount,
                },
            )
        if error is None:
            return

        logger.error(f"Verification failed for {provider_confirmation_id}: {error.message}")
        raise error

    async def handle_payment_succeeded(
        self, db: Session, data: Dict[str, Any]
    ) -> Optional[Transaction]:
        """
        Record a payment from a ``payment_intent.succeeded`` webhook.

        The intent metadata must carry the payer (``payerId`` or ``userId``),
        ``creatorId`` and the category (``category`` or ``type``). A transient
        provider failure queues the payment for retry instead of failing the
        webhook.
        """
        metadata = data.get("metadata") or {}
        payer_id = metadata.get("payerId") or metadata.get("userId")
        creator_id = metadata.get("creatorId")
        category = metadata.get("category") or metadata.get("type")
        confirmation_id = data.get("id")
        amount = data.get("amount")

        if not (payer_id and creator_id and category and confirmation_id) or amount is None:
            logger.warning(f"payment_intent.succeeded {confirmation_id} missing metadata, skipping")
            self.audit.log(
                db,
                level=LogLevel.WARN,
                operation="payment",
                status="skipped",
                message="Payment webhook missing payer, creator or category metadata",
                metadata={"provider_confirmation_id": confirmation_id},
            )
            return None

        payload = {
            "payer_id": payer_id,
            "creator_id": creator_id,
            "amount": int(amount),
            "category": category,
            "provider_confirmation_id": confirmation_id,
        }
        try:
            return await self.record(db, **payload)
        except VerificationError as e:
            self.audit.log_payment_failure(
                db,
                user_id=payer_id,
                creator_id=creator_id,
                amount=int(amount),
                error=e.message,
                metadata={"provider_confirmation_id": confirmation_id, "code": e.code},
            )
            raise
        except PaymentError as e:
            if not e.retryable:
                self.audit.log_payment_failure(
                    db,
                    user_id=payer_id,
                    creator_id=creator_id,
                    amount=int(amount),
                    error=e.message,
                    metadata={"provider_confirmation_id": confirmation_id, "code": e.code},
                )
                raise
            self.failover.enqueue(
                db,
                kind=OperationKind.PAYMENT,
                payload=payload,
                creator_id=creator_id,
                error=e.message,
            )
            return None

    async def retry_payment(self, db: Session, payload: Dict[str, Any]) -> Transaction:
        """Failover handler for ``payment`` records."""
        return await self.record(
            db,
            payer_id=payload["payer_id"],
            creator_id=payload["creator_id"],
            amount=int(payload["amount"]),
            category=payload["category"],
            provider_confirmation_id=payload["provider_confirmation_id"],
        )

    def balance_of(self, db: Session, creator_id: str) -> int:
        """
        Creator shares of completed transactions minus payouts that are
        pending, in transit or paid.
        """
        earned = crud.transaction.sum_creator_earnings(db, creator_id=creator_id)
        committed = crud.creator_payout.sum_committed(db, creator_id=creator_id)
        return earned - committed

    def get_creator_earnings(self, db: Session, creator_id: str) -> CreatorEarningsSummary:
        """Creator share of completed transactions, in total and per category."""
        by_category = _empty_breakdown()
        total = 0
        count = 0
        for category, rows, gross, fee in crud.transaction.sum_by_category(db, creator_id=creator_id):
            by_category[category] = by_category.get(category, 0) + gross - fee
            total += gross - fee
            count += rows
        return CreatorEarningsSummary(
            creator_id=creator_id,
            total_earnings=total,
            transaction_count=count,
            by_category=by_category,
        )

    def get_platform_revenue(self, db: Session) -> PlatformRevenueSummary:
        """Platform fees of completed transactions, in total and per category."""
        by_category = _empty_breakdown()
        total = 0
        volume = 0
        count = 0
        for category, rows, gross, fee in crud.transaction.sum_by_category(db):
            by_category[category] = by_category.get(category, 0) + fee
            total += fee
            volume += gross
            count += rows
        return PlatformRevenueSummary(
            total_revenue=total,
            gross_volume=volume,
            transaction_count=count,
            by_category=by_category,
        )

    def get_transaction_history(
        self, db: Session, creator_id: str, limit: int = 50
    ) -> List[Transaction]:
        """Most recent transactions for a creator, newest first."""
        return crud.transaction.get_creator_history(db, creator_id=creator_id, limit=limit)

    def get_creators_with_pending_payouts(
        self, db: Session, min_amount: int = 0
    ) -> List[Dict[str, Any]]:
        """Creators whose available balance is at least ``min_amount``."""
        eligible = []
        for creator_id in crud.transaction.get_creator_ids(db):
            balance = self.balance_of(db, creator_id)
            if balance > 0 and balance >= min_amount:
                eligible.append({"creator_id": creator_id, "balance": balance})
        return eligible

    def validate_transaction_integrity(self, db: Session, transaction_id: str) -> Dict[str, Any]:
        """Conservation check on a single transaction."""
        txn = crud.transaction.get(db, transaction_id)
        if txn is None:
            raise NotFoundError(
                code="TRANSACTION_NOT_FOUND",
                message=f"Transaction {transaction_id} not found",
            )

        creator_earnings = txn.amount - txn.platform_fee
        if creator_earnings + txn.platform_fee != txn.amount:
            return {
                "valid": False,
                "error": (
                    f"Amount mismatch: creator {creator_earnings} + platform "
                    f"{txn.platform_fee} != total {txn.amount}"
                ),
            }
        if creator_earnings < 0 or txn.platform_fee < 0:
            return {"valid": False, "error": "Negative earnings detected"}
        return {"valid": True, "error": None}


def _empty_breakdown() -> Dict[str, int]:
    return {category.value: 0 for category in revenue_split.RevenueCategory}

# earnings_engine/services/payment/payout_processor.py
"""
Creator payouts through provider transfers.

A payout row is written only after the provider accepts the transfer. A
failed transfer call leaves no payout row; it becomes a failover record that
carries the idempotency key, so a retry can never create a second transfer
for the same attempt.

Status transitions arrive from provider webhooks and only move forward:
pending -> in_transit -> paid | failed | cancelled.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from earnings_engine import crud
from earnings_engine.core.config import settings
from earnings_engine.core.exceptions import (
    AccountInactiveError,
    AccountNotConnectedError,
    InsufficientBalanceError,
    InvalidAmountError,
    NotFoundError,
    PayoutFailedError,
    PayoutRetryPendingError,
    PreconditionError,
)
from earnings_engine.crud.crud_creator_payout import CreatorPayoutCreate
from earnings_engine.models.connected_account import ConnectedAccount
from earnings_engine.models.creator_payout import CreatorPayout, TERMINAL_PAYOUT_STATUSES
from earnings_engine.schemas.audit import LogLevel
from earnings_engine.schemas.failover import OperationKind
from earnings_engine.schemas.payout import (
    BatchPayoutItem,
    BatchPayoutResult,
    ConnectedAccountCreate,
    ConnectedAccountStatus,
)
from earnings_engine.services.audit_logger import AuditLogger, audit_logger as default_audit_logger
from earnings_engine.services.failover_queue import FailoverQueue, failover_queue as default_failover_queue
from .ledger import TransactionLedger
from .provider_interface import CreateTransferParams, PaymentProviderInterface
from .providers.stripe_provider import PaymentError, account_status_from_flags

logger = logging.getLogger(__name__)

# Forward-only ordering of payout statuses
STATUS_RANK: Dict[str, int] = {
    "pending": 0,
    "in_transit": 1,
    "paid": 2,
    "failed": 2,
    "cancelled": 2,
}

# Provider transfer event -> (payout status, default failure code)
TRANSFER_EVENT_STATUS: Dict[str, tuple] = {
    "transfer.created": ("pending", None),
    "transfer.paid": ("paid", None),
    "transfer.failed": ("failed", "transfer_failed"),
    "transfer.reversed": ("failed", "transfer_reversed"),
}


class PayoutProcessor:
    """
    Settles creator balances through the payment provider.

    Args:
        provider: Payment provider used for transfers
        ledger: Ledger used for balance checks
        audit: Audit logger
        failover: Queue receiving failed transfer calls
        currency: Payout currency (ISO 4217, lowercase)
    """

    def __init__(
        self,
        provider: PaymentProviderInterface,
        ledger: Optional[TransactionLedger] = None,
        audit: Optional[AuditLogger] = None,
        failover: Optional[FailoverQueue] = None,
        currency: Optional[str] = None,
    ):
        self.provider = provider
        self.audit = audit or default_audit_logger
        self.failover = failover or default_failover_queue
        self.ledger = ledger or TransactionLedger(provider, audit=self.audit, failover=self.failover)
        self.currency = (currency or settings.PAYOUT_CURRENCY).lower()

    # ------------------------------------------------------------------ #
    # Initiation
    # ------------------------------------------------------------------ #

    async def initiate(self, db: Session, creator_id: str, amount: int) -> CreatorPayout:
        """
        Pay ``amount`` cents of the creator's balance out to their connected account.

        Raises:
            InvalidAmountError: If amount is not a positive integer
            AccountNotConnectedError: If the creator has no payout destination
            AccountInactiveError: If the destination is not active
            InsufficientBalanceError: If amount exceeds the available balance
            PayoutRetryPendingError: If an earlier payout is still queued for retry
            PayoutFailedError: If the provider call failed (a failover record was queued)
        """
        account = self._check_preconditions(db, creator_id, amount)
        # A queued retry may already have moved money at the provider
        queued = crud.failover_record.get_pending_for_creator(
            db, creator_id=creator_id, operation_kind=OperationKind.PAYOUT.value
        )
        if queued is not None:
            raise PayoutRetryPendingError(creator_id, failover_record_id=queued.id)
        idempotency_key = f"payout_{creator_id}_{uuid.uuid4().hex}"
        return await self._transfer(
            db,
            creator_id=creator_id,
            amount=amount,
            account=account,
            idempotency_key=idempotency_key,
        )

    def _check_preconditions(self, db: Session, creator_id: str, amount: int) -> ConnectedAccount:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmountError(amount)

        account = crud.connected_account.get_by_creator(db, creator_id=creator_id)
        if account is None:
            raise AccountNotConnectedError(creator_id)
        if not account.is_active:
            raise AccountInactiveError(creator_id, account.status)

        available = self.ledger.balance_of(db, creator_id)
        if amount > available:
            raise InsufficientBalanceError(creator_id, requested=amount, available=available)
        return account

    async def _transfer(
        self,
        db: Session,
        *,
        creator_id: str,
        amount: int,
        account: ConnectedAccount,
        idempotency_key: str,
        enqueue_on_failure: bool = True,
    ) -> CreatorPayout:
        params = CreateTransferParams(
            amount=amount,
            currency=self.currency,
            destination=account.stripe_account_id,
            description=f"Creator payout for {creator_id}",
            idempotency_key=idempotency_key,
            metadata={"creatorId": creator_id, "type": "creator_payout"},
        )

        try:
            transfer = await self.provider.create_transfer(params)
        except PaymentError as e:
            logger.error(f"Transfer for creator {creator_id} failed: [{e.code}] {e.message}")
            if not enqueue_on_failure:
                raise

            record = self.failover.enqueue(
                db,
                kind=OperationKind.PAYOUT,
                payload={
                    "creator_id": creator_id,
                    "amount": amount,
                    "idempotency_key": idempotency_key,
                },
                creator_id=creator_id,
                error=f"[{e.code}] {e.message}",
            )
            self.audit.log_payout_failure(
                db,
                creator_id=creator_id,
                amount=amount,
                error=f"[{e.code}] {e.message}",
                metadata={"failover_record_id": record.id},
            )
            raise PayoutFailedError(
                creator_id,
                provider_code=e.code,
                failover_record_id=record.id,
                retryable=e.retryable,
            ) from e

        # Same idempotency key returns the same transfer on retry
        existing = crud.creator_payout.get_by_transfer_id(db, stripe_transfer_id=transfer.id)
        if existing is not None:
            return existing

        payout = crud.creator_payout.create(
            db,
            obj_in=CreatorPayoutCreate(
                creator_id=creator_id,
                connected_account_id=account.stripe_account_id,
                stripe_transfer_id=transfer.id,
                amount=amount,
                currency=self.currency,
                status="pending",
            ),
        )
        logger.info(f"Payout {payout.id} created for creator {creator_id}: {amount} cents via {transfer.id}")
        self.audit.log_payout_success(
            db,
            creator_id=creator_id,
            payout_id=payout.id,
            amount=amount,
            metadata={"stripe_transfer_id": transfer.id},
        )
        return payout

    async def retry_payout(self, db: Session, payload: Dict[str, Any]) -> CreatorPayout:
        """
        Failover handler for ``payout`` records.

        Preconditions are checked again. While the record is pending no other
        payout can start for the creator, so its amount is still in the balance.
        """
        creator_id = payload["creator_id"]
        amount = int(payload["amount"])
        account = self._check_preconditions(db, creator_id, amount)
        return await self._transfer(
            db,
            creator_id=creator_id,
            amount=amount,
            account=account,
            idempotency_key=payload["idempotency_key"],
            enqueue_on_failure=False,
        )

    # ------------------------------------------------------------------ #
    # Batch
    # ------------------------------------------------------------------ #

    async def batch_process(self, db: Session, min_threshold: Optional[int] = None) -> BatchPayoutResult:
        """
        Pay out every creator whose balance is at least ``min_threshold``.

        One creator's failure never stops the run. Provider failures land in
        the failover queue; creators with a payout retry still pending are
        left for that retry.
        """
        threshold = settings.BATCH_PAYOUT_MIN_THRESHOLD if min_threshold is None else min_threshold
        eligible = self.ledger.get_creators_with_pending_payouts(db, threshold)
        awaiting_retry = self._creators_awaiting_payout_retry(db)

        results: List[BatchPayoutItem] = []
        for item in eligible:
            creator_id = item["creator_id"]
            amount = item["balance"]
            if creator_id in awaiting_retry:
                logger.info(f"Skipping creator {creator_id}: payout retry already queued")
                continue

            try:
                payout = await self.initiate(db, creator_id, amount)
                results.append(
                    BatchPayoutItem(creator_id=creator_id, amount=amount, success=True, payout_id=payout.id)
                )
            except PayoutFailedError as e:
                results.append(
                    BatchPayoutItem(
                        creator_id=creator_id,
                        amount=amount,
                        success=False,
                        failover_record_id=e.failover_record_id,
                        error=e.message,
                    )
                )
            except PreconditionError as e:
                logger.warning(f"Batch payout skipped creator {creator_id}: {e.message}")
                results.append(
                    BatchPayoutItem(creator_id=creator_id, amount=amount, success=False, error=e.message)
                )
            except Exception as e:
                db.rollback()
                logger.error(f"Unexpected error paying out creator {creator_id}: {e}")
                results.append(
                    BatchPayoutItem(creator_id=creator_id, amount=amount, success=False, error=str(e))
                )

        successful = [r for r in results if r.success]
        result = BatchPayoutResult(
            total_payouts=len(results),
            successful_payouts=len(successful),
            failed_payouts=len(results) - len(successful),
            total_amount=sum(r.amount for r in successful),
            results=results,
        )
        self.audit.log(
            db,
            level=LogLevel.INFO if result.failed_payouts == 0 else LogLevel.WARN,
            operation="batch_payout",
            status="success" if result.failed_payouts == 0 else "partial",
            message=(
                f"Batch payout: {result.successful_payouts}/{result.total_payouts} succeeded, "
                f"{result.total_amount} cents"
            ),
            amount=result.total_amount,
            metadata={
                "min_threshold": threshold,
                "successful_payouts": result.successful_payouts,
                "failed_payouts": result.failed_payouts,
            },
        )
        return result

    def _creators_awaiting_payout_retry(self, db: Session) -> set:
        return {
            record.creator_id
            for record in crud.failover_record.get_retryable(db)
            if record.operation_kind == OperationKind.PAYOUT.value
        }

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def get_payout_status(
        self, db: Session, payout_id: str, creator_id: Optional[str] = None
    ) -> CreatorPayout:
        payout = crud.creator_payout.get(db, payout_id)
        if payout is None or (creator_id is not None and payout.creator_id != creator_id):
            raise NotFoundError(code="PAYOUT_NOT_FOUND", message=f"Payout {payout_id} not found")
        return payout

    def get_payout_history(self, db: Session, creator_id: str, limit: int = 50) -> List[CreatorPayout]:
        return crud.creator_payout.get_creator_history(db, creator_id=creator_id, limit=limit)

    # ------------------------------------------------------------------ #
    # Provider lifecycle events
    # ------------------------------------------------------------------ #

    async def handle_transfer_event(
        self, db: Session, event_type: str, transfer_data: Dict[str, Any]
    ) -> Optional[CreatorPayout]:
        """Apply a transfer.* webhook to the matching payout, forward-only."""
        if event_type not in TRANSFER_EVENT_STATUS:
            logger.info(f"Ignoring unsupported transfer event {event_type}")
            return None

        transfer_id = transfer_data.get("id")
        if not transfer_id:
            logger.warning(f"{event_type} event without transfer ID")
            return None

        payout = crud.creator_payout.get_by_transfer_id(db, stripe_transfer_id=transfer_id)
        if payout is None:
            logger.warning(f"No payout found for transfer {transfer_id} ({event_type})")
            return None

        new_status, default_failure_code = TRANSFER_EVENT_STATUS[event_type]
        current = payout.status
        if current in TERMINAL_PAYOUT_STATUSES or STATUS_RANK[new_status] < STATUS_RANK.get(current, 0):
            logger.info(
                f"Ignoring {event_type} for payout {payout.id}: already {current}"
            )
            return payout
        if new_status == current:
            return payout

        if new_status == "paid":
            arrival_ts = transfer_data.get("arrival_date")
            arrival_date = (
                datetime.fromtimestamp(arrival_ts, tz=timezone.utc)
                if arrival_ts
                else datetime.now(timezone.utc)
            )
            payout = crud.creator_payout.update_status(
                db, db_obj=payout, status="paid", arrival_date=arrival_date
            )
            self.audit.log(
                db,
                level=LogLevel.INFO,
                operation="payout",
                status="paid",
                message=f"Payout {payout.id} paid",
                creator_id=payout.creator_id,
                payout_id=payout.id,
                amount=payout.amount,
            )
        elif new_status == "failed":
            failure_code = transfer_data.get("failure_code") or default_failure_code
            failure_message = transfer_data.get("failure_message") or f"Transfer {transfer_id} failed"
            payout = crud.creator_payout.update_status(
                db,
                db_obj=payout,
                status="failed",
                failure_code=failure_code,
                failure_message=failure_message,
            )
            self.audit.log_payout_failure(
                db,
                creator_id=payout.creator_id,
                amount=payout.amount,
                payout_id=payout.id,
                error=f"[{failure_code}] {failure_message}",
            )
        else:
            payout = crud.creator_payout.update_status(db, db_obj=payout, status=new_status)

        logger.info(f"Payout {payout.id} moved {current} -> {payout.status} ({event_type})")
        return payout

    # ------------------------------------------------------------------ #
    # Connected accounts
    # ------------------------------------------------------------------ #

    async def register_connected_account(
        self, db: Session, creator_id: str, stripe_account_id: str
    ) -> ConnectedAccount:
        """Record a creator's payout destination and sync its status from the provider."""
        account = crud.connected_account.upsert(
            db,
            obj_in=ConnectedAccountCreate(creator_id=creator_id, stripe_account_id=stripe_account_id),
        )
        try:
            info = await self.provider.get_connected_account(stripe_account_id)
        except PaymentError as e:
            logger.warning(f"Could not sync connected account {stripe_account_id}: {e.message}")
            return account
        return crud.connected_account.set_status(
            db, db_obj=account, status=ConnectedAccountStatus(info.status.value)
        )

    async def handle_account_updated(
        self, db: Session, account_data: Dict[str, Any]
    ) -> Optional[ConnectedAccount]:
        """Webhook handler for account.updated events."""
        account_id = account_data.get("id")
        if not account_id:
            logger.warning("account.updated event without account ID")
            return None

        account = crud.connected_account.get_by_stripe_account_id(db, stripe_account_id=account_id)
        if account is None:
            logger.warning(f"No connected account found for {account_id}")
            return None

        status = account_status_from_flags(
            bool(account_data.get("payouts_enabled")),
            bool(account_data.get("details_submitted")),
        )
        if account.status != status.value:
            logger.info(f"Connected account {account_id}: {account.status} -> {status.value}")
            account = crud.connected_account.set_status(
                db, db_obj=account, status=ConnectedAccountStatus(status.value)
            )
        return account

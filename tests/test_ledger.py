"""
Tests for the transaction ledger.

Verifies that TransactionLedger:
- Records a verified payment with the correct platform fee
- Refuses confirmations that did not succeed or whose amount differs
- Is idempotent on the provider confirmation id
- Computes balances as earnings minus committed payouts
- Records payments from payment_intent.succeeded webhooks and queues
  transient provider failures for retry
"""

import pytest
from unittest.mock import patch

from earnings_engine import crud
from earnings_engine.core.exceptions import (
    InvalidAmountError,
    NotFoundError,
    UnknownCategoryError,
    VerificationError,
)
from earnings_engine.crud.crud_creator_payout import CreatorPayoutCreate
from earnings_engine.schemas.failover import OperationKind
from earnings_engine.services.payment.ledger import TransactionLedger
from earnings_engine.services.payment.provider_interface import PaymentConfirmationStatusEnum
from earnings_engine.services.payment.providers.stripe_provider import PaymentError

from tests.utils.earnings import record_payment, run_async
from tests.utils.provider import retryable_error


def _add_payout(db, creator_id, amount, status, transfer_id):
    return crud.creator_payout.create(
        db,
        obj_in=CreatorPayoutCreate(
            creator_id=creator_id,
            connected_account_id=f"acct_{creator_id}",
            stripe_transfer_id=transfer_id,
            amount=amount,
            status=status,
        ),
    )


class TestRecord:
    """Tests for TransactionLedger.record()."""

    @pytest.fixture(autouse=True)
    def _services(self, db, provider, audit, failover):
        self.db = db
        self.provider = provider
        self.ledger = TransactionLedger(provider, audit=audit, failover=failover)

    def _record(self, confirmation_id="pi_1", amount=10000, category="subscription"):
        return run_async(
            self.ledger.record(
                self.db,
                payer_id="payer_1",
                creator_id="creator_1",
                amount=amount,
                category=category,
                provider_confirmation_id=confirmation_id,
            )
        )

    def test_records_verified_payment(self):
        self.provider.confirm("pi_1", 10000)

        txn = self._record()

        assert txn.id.startswith("txn_")
        assert txn.amount == 10000
        assert txn.platform_fee == 2000
        assert txn.creator_earnings == 8000
        assert txn.status == "completed"
        assert txn.category == "subscription"

    def test_updates_running_earnings_counter(self):
        self.provider.confirm("pi_1", 10000)
        self.provider.confirm("pi_2", 999)

        self._record("pi_1", 10000)
        self._record("pi_2", 999, category="tip")

        profile = crud.creator_fee_profile.get(self.db, "creator_1")
        assert profile.total_earnings == 8000 + 799

    def test_writes_success_audit_entry(self):
        self.provider.confirm("pi_1", 10000)

        txn = self._record()

        entries = crud.audit_log.get_by_field(self.db, field="transaction_id", value=txn.id)
        assert len(entries) == 1
        assert entries[0].operation == "payment"
        assert entries[0].status == "success"
        assert entries[0].extra["platform_fee"] == 2000

    def test_duplicate_confirmation_returns_original(self):
        self.provider.confirm("pi_1", 10000)

        first = self._record()
        second = self._record()

        assert second.id == first.id
        assert self.db.query(type(first)).count() == 1
        assert crud.creator_fee_profile.get(self.db, "creator_1").total_earnings == 8000

    def test_insert_race_resolves_to_winner(self):
        """A concurrent writer that wins the unique constraint is returned instead."""
        self.provider.confirm("pi_1", 10000)
        winner = self._record()

        with patch.object(
            crud.transaction, "get_by_confirmation_id", side_effect=[None, winner]
        ):
            result = self._record()

        assert result is winner

    def test_unsucceeded_confirmation_rejected(self):
        self.provider.confirm("pi_1", 10000, status=PaymentConfirmationStatusEnum.PROCESSING)

        with pytest.raises(VerificationError) as exc_info:
            self._record()

        assert exc_info.value.code == "CONFIRMATION_NOT_SUCCEEDED"
        assert crud.transaction.get_by_confirmation_id(
            self.db, provider_confirmation_id="pi_1"
        ) is None

    def test_amount_mismatch_rejected(self):
        self.provider.confirm("pi_1", 5000)

        with pytest.raises(VerificationError) as exc_info:
            self._record(amount=10000)

        assert exc_info.value.code == "AMOUNT_MISMATCH"
        assert self.ledger.balance_of(self.db, "creator_1") == 0

    def test_unknown_category_rejected_before_provider_call(self):
        with patch.object(self.provider, "get_payment_confirmation") as mock_get:
            with pytest.raises(UnknownCategoryError):
                self._record(category="raffle")

        mock_get.assert_not_called()

    def test_negative_amount_rejected(self):
        with pytest.raises(InvalidAmountError):
            self._record(amount=-5)

    def test_provider_error_propagates(self):
        self.provider.confirmation_error = retryable_error()

        with pytest.raises(PaymentError):
            self._record()


class TestBalance:
    """Tests for balance_of() and the pending payout listing."""

    @pytest.fixture(autouse=True)
    def _services(self, db, provider, audit, failover):
        self.db = db
        self.ledger = TransactionLedger(provider, audit=audit, failover=failover)

    def test_balance_is_earnings_minus_committed_payouts(self):
        record_payment(self.db, self.ledger, amount=10000)
        record_payment(self.db, self.ledger, amount=5000)
        _add_payout(self.db, "creator_1", 3000, "paid", "tr_1")
        _add_payout(self.db, "creator_1", 1000, "pending", "tr_2")
        _add_payout(self.db, "creator_1", 2000, "in_transit", "tr_3")

        assert self.ledger.balance_of(self.db, "creator_1") == 12000 - 6000

    def test_failed_and_cancelled_payouts_return_funds(self):
        record_payment(self.db, self.ledger, amount=10000)
        _add_payout(self.db, "creator_1", 3000, "failed", "tr_1")
        _add_payout(self.db, "creator_1", 2000, "cancelled", "tr_2")

        assert self.ledger.balance_of(self.db, "creator_1") == 8000

    def test_unknown_creator_has_zero_balance(self):
        assert self.ledger.balance_of(self.db, "nobody") == 0

    def test_creators_with_pending_payouts(self):
        record_payment(self.db, self.ledger, creator_id="creator_a", amount=20000)
        record_payment(self.db, self.ledger, creator_id="creator_b", amount=5000)

        eligible = self.ledger.get_creators_with_pending_payouts(self.db, min_amount=10000)

        assert eligible == [{"creator_id": "creator_a", "balance": 16000}]

    def test_validate_transaction_integrity(self):
        txn = record_payment(self.db, self.ledger, amount=999)

        assert self.ledger.validate_transaction_integrity(self.db, txn.id) == {
            "valid": True,
            "error": None,
        }

    def test_validate_missing_transaction(self):
        with pytest.raises(NotFoundError):
            self.ledger.validate_transaction_integrity(self.db, "txn_missing")


class TestEarningsReports:
    """Tests for the earnings, platform revenue and history reports."""

    @pytest.fixture(autouse=True)
    def _services(self, db, provider, audit, failover):
        self.db = db
        self.ledger = TransactionLedger(provider, audit=audit, failover=failover)
        self.sub = record_payment(db, self.ledger, amount=999, category="subscription")
        self.merch = record_payment(db, self.ledger, amount=10000, category="merchandise")
        self.tip = record_payment(db, self.ledger, creator_id="creator_2", amount=5000, category="tip")

    def test_creator_earnings_by_category(self):
        summary = self.ledger.get_creator_earnings(self.db, "creator_1")

        assert summary.creator_id == "creator_1"
        assert summary.total_earnings == 799 + 9000
        assert summary.transaction_count == 2
        assert summary.by_category["subscription"] == 799
        assert summary.by_category["merchandise"] == 9000
        assert summary.by_category["tip"] == 0
        assert set(summary.by_category) == {
            "subscription", "tip", "ppv", "live_streaming", "stories",
            "content_bundle", "one-time-exclusive", "merchandise",
        }

    def test_unknown_creator_has_empty_earnings(self):
        summary = self.ledger.get_creator_earnings(self.db, "nobody")

        assert summary.total_earnings == 0
        assert summary.transaction_count == 0
        assert all(value == 0 for value in summary.by_category.values())

    def test_platform_revenue_by_category(self):
        revenue = self.ledger.get_platform_revenue(self.db)

        assert revenue.total_revenue == 200 + 1000 + 1000
        assert revenue.gross_volume == 999 + 10000 + 5000
        assert revenue.transaction_count == 3
        assert revenue.by_category["subscription"] == 200
        assert revenue.by_category["merchandise"] == 1000
        assert revenue.by_category["tip"] == 1000

    def test_transaction_history_scoped_and_limited(self):
        history = self.ledger.get_transaction_history(self.db, "creator_1")
        limited = self.ledger.get_transaction_history(self.db, "creator_1", limit=1)

        assert {txn.id for txn in history} == {self.sub.id, self.merch.id}
        assert len(limited) == 1
        assert limited[0].creator_id == "creator_1"


class TestPaymentWebhook:
    """Tests for handle_payment_succeeded() and the payment retry handler."""

    @pytest.fixture(autouse=True)
    def _services(self, db, provider, audit, failover):
        self.db = db
        self.provider = provider
        self.ledger = TransactionLedger(provider, audit=audit, failover=failover)

    def _intent(self, **metadata):
        base = {"payerId": "payer_1", "creatorId": "creator_1", "category": "tip"}
        base.update(metadata)
        return {"id": "pi_hook", "amount": 2500, "metadata": base}

    def test_records_payment_from_intent_metadata(self):
        self.provider.confirm("pi_hook", 2500)

        txn = run_async(self.ledger.handle_payment_succeeded(self.db, self._intent()))

        assert txn.provider_confirmation_id == "pi_hook"
        assert txn.category == "tip"
        assert txn.creator_earnings == 2000

    def test_accepts_user_id_and_type_aliases(self):
        self.provider.confirm("pi_hook", 2500)
        data = {
            "id": "pi_hook",
            "amount": 2500,
            "metadata": {"userId": "payer_9", "creatorId": "creator_1", "type": "ppv"},
        }

        txn = run_async(self.ledger.handle_payment_succeeded(self.db, data))

        assert txn.payer_id == "payer_9"
        assert txn.category == "ppv"

    def test_missing_metadata_is_skipped(self):
        data = {"id": "pi_hook", "amount": 2500, "metadata": {"payerId": "payer_1"}}

        result = run_async(self.ledger.handle_payment_succeeded(self.db, data))

        assert result is None
        assert crud.transaction.get_by_confirmation_id(
            self.db, provider_confirmation_id="pi_hook"
        ) is None

    def test_transient_provider_error_is_queued(self):
        self.provider.confirmation_error = retryable_error()

        result = run_async(self.ledger.handle_payment_succeeded(self.db, self._intent()))

        assert result is None
        records = crud.failover_record.get_by_creator(self.db, creator_id="creator_1")
        assert len(records) == 1
        assert records[0].operation_kind == OperationKind.PAYMENT.value
        assert records[0].payload["provider_confirmation_id"] == "pi_hook"

    def test_permanent_provider_error_is_raised(self):
        with pytest.raises(PaymentError):
            run_async(self.ledger.handle_payment_succeeded(self.db, self._intent()))

        failures = crud.audit_log.get_by_field(self.db, field="status", value="failed")
        assert len(failures) == 1

    def test_retry_payment_handler_records(self):
        self.provider.confirm("pi_hook", 2500)
        payload = {
            "payer_id": "payer_1",
            "creator_id": "creator_1",
            "amount": 2500,
            "category": "tip",
            "provider_confirmation_id": "pi_hook",
        }

        txn = run_async(self.ledger.retry_payment(self.db, payload))

        assert txn.amount == 2500
        assert self.ledger.balance_of(self.db, "creator_1") == 2000

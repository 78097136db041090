"""
Tests for creator fee tiers.

Verifies that:
- tier_for() maps monthly earnings onto the threshold table
- Elite Founding short-circuits the table at the locked percentage
- get_fee_info() only counts the current calendar month
- recalculate_all_tiers() reports non-elite creators and persists nothing
- grant_elite_founding() is one-way and idempotent
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError
from unittest.mock import patch

from earnings_engine import crud
from earnings_engine.models.transaction import Transaction
from earnings_engine.schemas.failover import OperationKind
from earnings_engine.services.payment.fee_tiers import (
    ELITE_FOUNDING_FEE_PERCENTAGE,
    FEE_TIERS,
    FeeTierEngine,
    month_window,
    tier_for,
)
from earnings_engine.services.payment.ledger import TransactionLedger

from tests.utils.earnings import record_payment, run_async


class TestTierFor:
    """Pure threshold lookup."""

    @pytest.mark.parametrize(
        "earnings,expected_tier,expected_fee",
        [
            (0, 5, 20),
            (249_999, 5, 20),
            (250_000, 4, 16),
            (999_999, 4, 16),
            (1_000_000, 3, 14),
            (2_500_000, 2, 12),
            (4_999_999, 2, 12),
            (5_000_000, 1, 10),
            (50_000_000, 1, 10),
        ],
    )
    def test_threshold_boundaries(self, earnings, expected_tier, expected_fee):
        info = tier_for(earnings)

        assert info.tier == expected_tier
        assert info.platform_fee_percentage == expected_fee
        assert info.creator_earnings_percentage == 100 - expected_fee
        assert info.is_elite_founding is False

    def test_elite_locked_ignores_earnings(self):
        info = tier_for(0, elite_locked_percentage=ELITE_FOUNDING_FEE_PERCENTAGE)

        assert info.tier == 1
        assert info.platform_fee_percentage == 10
        assert info.is_elite_founding is True

    def test_table_is_monotonic(self):
        thresholds = [t.monthly_earnings_threshold for t in FEE_TIERS]
        fees = [t.platform_fee_percentage for t in FEE_TIERS]

        assert thresholds == sorted(thresholds, reverse=True)
        assert fees == sorted(fees)
        assert thresholds[-1] == 0

    def test_month_window_covers_whole_month(self):
        start, end = month_window(datetime(2024, 2, 15, 12, 0, tzinfo=timezone.utc))

        assert start == datetime(2024, 2, 1, tzinfo=timezone.utc)
        assert end.date() == datetime(2024, 2, 29).date()
        assert end.hour == 23 and end.minute == 59


class TestFeeTierEngine:
    """Database-backed fee info, recalculation and Elite Founding."""

    @pytest.fixture(autouse=True)
    def _services(self, db, provider, audit, failover):
        self.db = db
        self.engine = FeeTierEngine(audit=audit, failover=failover)
        self.ledger = TransactionLedger(provider, audit=audit, failover=failover)

    # ------------------------------------------------------------------ #
    # get_fee_info
    # ------------------------------------------------------------------ #

    def test_new_creator_is_default_tier(self):
        info = self.engine.get_fee_info(self.db, "creator_new")

        assert info.current_tier == 5
        assert info.platform_fee_percentage == 20
        assert info.monthly_earnings == 0
        assert info.is_elite_founding is False

    def test_tier_follows_monthly_creator_earnings(self):
        # 400,000 gross at 80/20 -> 320,000 creator earnings -> tier 4
        record_payment(self.db, self.ledger, creator_id="creator_a", amount=400_000)

        info = self.engine.get_fee_info(self.db, "creator_a")

        assert info.monthly_earnings == 320_000
        assert info.current_tier == 4
        assert info.platform_fee_percentage == 16

    def test_previous_month_not_counted(self):
        last_month = datetime.now(timezone.utc).replace(day=1) - timedelta(days=1)
        self.db.add(
            Transaction(
                payer_id="payer_1",
                creator_id="creator_b",
                amount=10_000_000,
                category="subscription",
                platform_fee=2_000_000,
                provider_confirmation_id="pi_old",
                created_at=last_month,
            )
        )
        self.db.commit()

        info = self.engine.get_fee_info(self.db, "creator_b")

        assert info.monthly_earnings == 0
        assert info.current_tier == 5

    # ------------------------------------------------------------------ #
    # Elite Founding
    # ------------------------------------------------------------------ #

    def test_grant_elite_founding_locks_fee(self):
        info = self.engine.grant_elite_founding(self.db, "creator_c", granted_by="ops_1")

        assert info.is_elite_founding is True
        assert info.platform_fee_percentage == ELITE_FOUNDING_FEE_PERCENTAGE
        profile = crud.creator_fee_profile.get(self.db, "creator_c")
        assert profile.elite_founding_locked is True
        assert profile.locked_fee_percentage == 10
        assert profile.elite_granted_by == "ops_1"

    def test_grant_is_idempotent(self):
        self.engine.grant_elite_founding(self.db, "creator_c", granted_by="ops_1")
        self.engine.grant_elite_founding(self.db, "creator_c", granted_by="ops_2")

        profile = crud.creator_fee_profile.get(self.db, "creator_c")
        assert profile.elite_granted_by == "ops_1"
        grants = crud.audit_log.get_by_field(
            self.db, field="operation", value="elite_founding_grant"
        )
        assert len(grants) == 1

    def test_elite_survives_high_earnings(self):
        self.engine.grant_elite_founding(self.db, "creator_d")
        record_payment(self.db, self.ledger, creator_id="creator_d", amount=10_000_000)

        info = self.engine.get_fee_info(self.db, "creator_d")

        assert info.is_elite_founding is True
        assert info.platform_fee_percentage == 10
        assert info.monthly_earnings == 8_000_000

    # ------------------------------------------------------------------ #
    # recalculate_all_tiers
    # ------------------------------------------------------------------ #

    def test_recalculate_skips_elite_and_persists_nothing(self):
        record_payment(self.db, self.ledger, creator_id="creator_a", amount=400_000)
        record_payment(self.db, self.ledger, creator_id="creator_b", amount=5_000)
        self.engine.grant_elite_founding(self.db, "creator_e")

        report = self.engine.recalculate_all_tiers(self.db)

        assert report["total_creators"] == 3
        assert report["tiers_updated"] == 2
        assert report["elite_skipped"] == 1
        assert report["failures"] == 0
        tiers = {r["creator_id"]: r["current_tier"] for r in report["results"]}
        assert tiers == {"creator_a": 4, "creator_b": 5}
        assert crud.creator_fee_profile.get(self.db, "creator_a").locked_fee_percentage is None

    def test_recalculate_queues_failed_creator_and_continues(self):
        record_payment(self.db, self.ledger, creator_id="creator_a", amount=1_000)
        record_payment(self.db, self.ledger, creator_id="creator_b", amount=1_000)
        real = self.engine.get_fee_info

        def flaky(db, creator_id, now=None):
            if creator_id == "creator_a":
                raise OperationalError("SELECT", {}, Exception("connection reset"))
            return real(db, creator_id, now)

        with patch.object(self.engine, "get_fee_info", side_effect=flaky):
            report = self.engine.recalculate_all_tiers(self.db)

        assert report["failures"] == 1
        assert report["tiers_updated"] == 1
        records = crud.failover_record.get_by_creator(self.db, creator_id="creator_a")
        assert len(records) == 1
        assert records[0].operation_kind == OperationKind.TIER_RECALCULATION.value

    def test_retry_recalculation_handler(self):
        record_payment(self.db, self.ledger, creator_id="creator_a", amount=1_000)

        info = run_async(self.engine.retry_recalculation(self.db, {"creator_id": "creator_a"}))

        assert info.creator_id == "creator_a"
        assert info.monthly_earnings == 800

    def test_get_all_creator_tiers_includes_profile_only_creators(self):
        record_payment(self.db, self.ledger, creator_id="creator_a", amount=1_000)
        self.engine.grant_elite_founding(self.db, "creator_z")

        infos = self.engine.get_all_creator_tiers(self.db)

        assert [i.creator_id for i in infos] == ["creator_a", "creator_z"]

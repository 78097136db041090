"""
Creator fee tiers.

Tier model:
- Tier is chosen from the creator's earnings in the current calendar month
  (sum of amount - platform_fee over completed transactions)
- The table is scanned from the highest threshold down; the first tier whose
  threshold is met wins, falling back to the lowest tier
- Elite Founding creators bypass the table entirely and keep their locked
  percentage; only an explicit admin grant sets it and nothing clears it
- Tiers are computed on demand and never cached for non-elite creators
"""

import calendar
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from earnings_engine import crud
from earnings_engine.schemas.audit import LogLevel
from earnings_engine.schemas.failover import OperationKind
from earnings_engine.services.audit_logger import AuditLogger, audit_logger as default_audit_logger
from earnings_engine.services.failover_queue import FailoverQueue, failover_queue as default_failover_queue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeeTier:
    tier: int
    monthly_earnings_threshold: int   # cents
    platform_fee_percentage: int
    creator_earnings_percentage: int
    description: str


@dataclass
class TierInfo:
    tier: int
    tier_name: str
    platform_fee_percentage: int
    creator_earnings_percentage: int
    is_elite_founding: bool = False


@dataclass
class CreatorFeeInfo:
    creator_id: str
    current_tier: int
    tier_name: str
    platform_fee_percentage: int
    creator_earnings_percentage: int
    monthly_earnings: int
    is_elite_founding: bool
    last_recalculated_at: datetime


# Descending by threshold
FEE_TIERS: Tuple[FeeTier, ...] = (
    FeeTier(1, 5_000_000, 10, 90, "Top Tier - $50k+/month"),
    FeeTier(2, 2_500_000, 12, 88, "Tier 2 - $25k+/month"),
    FeeTier(3, 1_000_000, 14, 86, "Tier 3 - $10k+/month"),
    FeeTier(4, 250_000, 16, 84, "Tier 4 - $2.5k+/month"),
    FeeTier(5, 0, 20, 80, "Tier 5 - New Creators (Default)"),
)

ELITE_FOUNDING_FEE_PERCENTAGE = 10
ELITE_FOUNDING_TIER_NAME = "Elite Founding Status - 10% fee locked for life"


def tier_for(
    monthly_earnings: int,
    elite_locked_percentage: Optional[int] = None,
    tiers: Tuple[FeeTier, ...] = FEE_TIERS,
) -> TierInfo:
    """
    Map monthly earnings to a tier.

    A non-None ``elite_locked_percentage`` short-circuits the table and is
    returned as-is, whatever the earnings.
    """
    if elite_locked_percentage is not None:
        return TierInfo(
            tier=1,
            tier_name=ELITE_FOUNDING_TIER_NAME,
            platform_fee_percentage=elite_locked_percentage,
            creator_earnings_percentage=100 - elite_locked_percentage,
            is_elite_founding=True,
        )

    for fee_tier in tiers:
        if monthly_earnings >= fee_tier.monthly_earnings_threshold:
            return _to_info(fee_tier)
    return _to_info(tiers[-1])


def _to_info(fee_tier: FeeTier) -> TierInfo:
    return TierInfo(
        tier=fee_tier.tier,
        tier_name=fee_tier.description,
        platform_fee_percentage=fee_tier.platform_fee_percentage,
        creator_earnings_percentage=fee_tier.creator_earnings_percentage,
    )


def month_window(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """First instant and last instant (inclusive) of ``now``'s calendar month, UTC."""
    now = now or datetime.now(timezone.utc)
    last_day = calendar.monthrange(now.year, now.month)[1]
    start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    end = datetime(now.year, now.month, last_day, 23, 59, 59, 999999, tzinfo=timezone.utc)
    return start, end


class FeeTierEngine:
    """
    Computes and reports creator fee tiers.

    Args:
        audit: Audit logger for grants and recalculation reports
        failover: Queue receiving per-creator recalculation failures
    """

    def __init__(
        self,
        audit: Optional[AuditLogger] = None,
        failover: Optional[FailoverQueue] = None,
    ):
        self.audit = audit or default_audit_logger
        self.failover = failover or default_failover_queue

    def monthly_earnings(
        self, db: Session, creator_id: str, now: Optional[datetime] = None
    ) -> int:
        start, end = month_window(now)
        return crud.transaction.sum_creator_earnings(
            db, creator_id=creator_id, start=start, end=end
        )

    def get_fee_info(
        self, db: Session, creator_id: str, now: Optional[datetime] = None
    ) -> CreatorFeeInfo:
        profile = crud.creator_fee_profile.get(db, creator_id)
        locked = None
        if profile is not None and profile.elite_founding_locked:
            locked = profile.locked_fee_percentage or ELITE_FOUNDING_FEE_PERCENTAGE

        earnings = self.monthly_earnings(db, creator_id, now)
        info = tier_for(earnings, elite_locked_percentage=locked)
        return CreatorFeeInfo(
            creator_id=creator_id,
            current_tier=info.tier,
            tier_name=info.tier_name,
            platform_fee_percentage=info.platform_fee_percentage,
            creator_earnings_percentage=info.creator_earnings_percentage,
            monthly_earnings=earnings,
            is_elite_founding=info.is_elite_founding,
            last_recalculated_at=datetime.now(timezone.utc),
        )

    def known_creator_ids(self, db: Session) -> List[str]:
        creator_ids = set(crud.transaction.get_creator_ids(db))
        creator_ids.update(p.creator_id for p in crud.creator_fee_profile.get_all(db))
        return sorted(creator_ids)

    def get_all_creator_tiers(self, db: Session) -> List[CreatorFeeInfo]:
        return [self.get_fee_info(db, creator_id) for creator_id in self.known_creator_ids(db)]

    def recalculate_all_tiers(self, db: Session) -> Dict[str, Any]:
        """
        Report every creator's current tier. Nothing is persisted; elite
        creators are skipped. A creator whose computation fails is queued
        for retry and the run continues.
        """
        elite_ids = set(crud.creator_fee_profile.get_elite_creator_ids(db))
        creator_ids = self.known_creator_ids(db)

        results: List[Dict[str, Any]] = []
        tiers_updated = 0
        failures = 0
        for creator_id in creator_ids:
            if creator_id in elite_ids:
                continue
            try:
                info = self.get_fee_info(db, creator_id)
            except SQLAlchemyError as e:
                db.rollback()
                failures += 1
                logger.error(f"Tier recalculation failed for creator {creator_id}: {e}")
                self.failover.enqueue(
                    db,
                    kind=OperationKind.TIER_RECALCULATION,
                    payload={"creator_id": creator_id},
                    creator_id=creator_id,
                    error=str(e),
                )
                continue
            tiers_updated += 1
            results.append(_info_dict(info))

        report = {
            "total_creators": len(creator_ids),
            "tiers_updated": tiers_updated,
            "elite_skipped": len(elite_ids.intersection(creator_ids)),
            "failures": failures,
            "results": results,
        }
        self.audit.log(
            db,
            level=LogLevel.INFO,
            operation="tier_recalculation",
            status="success",
            message=f"Recalculated tiers for {tiers_updated} creators",
            metadata={k: v for k, v in report.items() if k != "results"},
        )
        logger.info(
            f"Tier recalculation: {tiers_updated}/{len(creator_ids)} creators, "
            f"{report['elite_skipped']} elite skipped, {failures} failures"
        )
        return report

    def grant_elite_founding(
        self, db: Session, creator_id: str, granted_by: str = "admin"
    ) -> CreatorFeeInfo:
        """One-way administrative grant of the locked Elite Founding fee."""
        profile = crud.creator_fee_profile.get(db, creator_id)
        if profile is not None and profile.elite_founding_locked:
            logger.info(f"Creator {creator_id} already holds Elite Founding status")
            return self.get_fee_info(db, creator_id)

        crud.creator_fee_profile.lock_elite(
            db,
            creator_id=creator_id,
            fee_percentage=ELITE_FOUNDING_FEE_PERCENTAGE,
            granted_by=granted_by,
        )
        self.audit.log(
            db,
            level=LogLevel.INFO,
            operation="elite_founding_grant",
            status="success",
            message=f"Elite Founding status granted to creator {creator_id}",
            creator_id=creator_id,
            metadata={
                "granted_by": granted_by,
                "platform_fee_percentage": ELITE_FOUNDING_FEE_PERCENTAGE,
            },
        )
        return self.get_fee_info(db, creator_id)

    async def retry_recalculation(self, db: Session, payload: Dict[str, Any]) -> CreatorFeeInfo:
        """Failover handler for ``tier_recalculation`` records."""
        info = self.get_fee_info(db, payload["creator_id"])
        logger.info(
            f"Recovered tier recalculation for creator {info.creator_id}: tier {info.current_tier}"
        )
        return info


def _info_dict(info: CreatorFeeInfo) -> Dict[str, Any]:
    data = asdict(info)
    data["last_recalculated_at"] = info.last_recalculated_at.isoformat()
    return data

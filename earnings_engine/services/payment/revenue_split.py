"""
Revenue split between a creator and the platform.

Split model:
- Each revenue category has a fixed (creator %, platform %) pair summing to 100
- All arithmetic is on integer minor units (cents)
- creator_share = floor(amount * creator_percent / 100)
- platform_share = amount - creator_share, so the two always add up to amount
- Unknown categories are rejected, never defaulted
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Union

from earnings_engine.core.exceptions import InvalidAmountError, UnknownCategoryError


class RevenueCategory(str, Enum):
    SUBSCRIPTION = "subscription"
    TIP = "tip"
    PPV = "ppv"
    LIVE_STREAMING = "live_streaming"
    STORIES = "stories"
    CONTENT_BUNDLE = "content_bundle"
    ONE_TIME_EXCLUSIVE = "one-time-exclusive"
    MERCHANDISE = "merchandise"


@dataclass(frozen=True)
class SplitRule:
    creator_percentage: int
    platform_percentage: int
    description: str


@dataclass(frozen=True)
class RevenueSplit:
    amount: int             # cents
    creator_share: int      # cents
    platform_share: int     # cents
    category: RevenueCategory


REVENUE_SPLITS: Dict[RevenueCategory, SplitRule] = {
    RevenueCategory.SUBSCRIPTION: SplitRule(80, 20, "Monthly subscriptions"),
    RevenueCategory.TIP: SplitRule(80, 20, "Tips and donations"),
    RevenueCategory.PPV: SplitRule(80, 20, "Pay-per-view content"),
    RevenueCategory.LIVE_STREAMING: SplitRule(80, 20, "Live stream purchases"),
    RevenueCategory.STORIES: SplitRule(80, 20, "Paid stories"),
    RevenueCategory.CONTENT_BUNDLE: SplitRule(80, 20, "Content bundles"),
    RevenueCategory.ONE_TIME_EXCLUSIVE: SplitRule(80, 20, "One-time exclusive content"),
    RevenueCategory.MERCHANDISE: SplitRule(90, 10, "Merchandise sales"),
}


def parse_category(category: Union[str, RevenueCategory]) -> RevenueCategory:
    """Resolve a category name, raising UnknownCategoryError for anything else."""
    if isinstance(category, RevenueCategory):
        return category
    try:
        return RevenueCategory(str(category).strip().lower())
    except ValueError:
        raise UnknownCategoryError(str(category))


def split(amount: int, category: Union[str, RevenueCategory]) -> RevenueSplit:
    """
    Split ``amount`` cents between creator and platform for ``category``.

    Raises:
        InvalidAmountError: If amount is negative or not an integer
        UnknownCategoryError: If the category has no split rule
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise InvalidAmountError(amount)

    resolved = parse_category(category)
    rule = REVENUE_SPLITS[resolved]

    creator_share = amount * rule.creator_percentage // 100
    return RevenueSplit(
        amount=amount,
        creator_share=creator_share,
        platform_share=amount - creator_share,
        category=resolved,
    )


def validate_revenue_split(creator_percentage: int, platform_percentage: int) -> bool:
    """A split is valid when both sides are positive and they sum to 100."""
    return (
        creator_percentage + platform_percentage == 100
        and creator_percentage > 0
        and platform_percentage > 0
    )


def get_all_revenue_splits() -> List[dict]:
    return [
        {
            "category": category.value,
            "creator_percentage": rule.creator_percentage,
            "platform_percentage": rule.platform_percentage,
            "description": rule.description,
        }
        for category, rule in REVENUE_SPLITS.items()
    ]

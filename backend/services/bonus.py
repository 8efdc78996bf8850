"""
Bonus tier selection.

A view count earns the bonus of the highest-threshold tier it satisfies:

  tiers (descending):  100,000 → $50
                        10,000 → $20
                         1,000 → $5

  views = 42,000   → 10,000 tier → $20
  views =    999   → no tier     → $0

For a matched pair the lookup happens ONCE, on max(ig_views, tt_views), so
one piece of content posted to both platforms is never double-bonused.
"""

import logging
from decimal import Decimal
from typing import Optional

from models.schemas import BonusTier, VideoPair, order_tiers

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def select_bonus_tier(views: int, tiers: list[BonusTier]) -> Optional[BonusTier]:
    """
    Return the first tier (descending by threshold) with threshold <= views.

    Tiers may be passed in any order.
    """
    for tier in order_tiers(tiers):
        if tier.view_threshold <= views:
            return tier
    return None


def calculate_bonus(views: int, tiers: list[BonusTier]) -> Decimal:
    tier = select_bonus_tier(views, tiers)
    if tier is None:
        return ZERO
    return tier.bonus_amount


def pair_bonus(pair: VideoPair, tiers: list[BonusTier]) -> tuple[Decimal, Optional[BonusTier]]:
    """Single bonus lookup on the pair's winning view count."""
    tier = select_bonus_tier(pair.chosen_views, tiers)
    amount = tier.bonus_amount if tier is not None else ZERO
    logger.debug(
        f"  pair IG#{pair.instagram_video.id}/TT#{pair.tiktok_video.id}: "
        f"chosen={pair.chosen_views:,} ({pair.winner_platform}) → ${amount}"
    )
    return amount, tier

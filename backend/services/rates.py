"""
Rate + bonus tier resolution (RateResolver).

Decides which per-platform base rate and which bonus tier table apply to one
creator in one cycle.

CURRENT rates (active cycle, or explicitly forced):
  ig_rate = creator custom Instagram rate, else live default
  tt_rate = creator custom TikTok rate,    else live default
  tiers   = live tier table

FROZEN rates (past cycle) - three-level default fallback:
  default_rate = cycle.base_pay_per_video_snapshot   if > 0
               → stored Payout.snapshot_default_rate if > 0
               → live default
  ig_rate      = stored Payout.snapshot_ig_rate      if >= 1
               → creator custom Instagram rate       if > 0
               → default_rate
  tt_rate      = (same, TikTok)
  tiers        = cycle.bonus_tiers_snapshot if it has a tier with amount > 0
               → live tier table  (LEGACY FALLBACK - see below)

A custom rate of None or 0 means "no override" in both modes.

Legacy fallback: cycles snapshotted before any tiers existed carry an empty
or all-zero snapshot. Those fall back to the live tiers. This is kept for
compatibility with historical payouts and logged at WARNING so product can
review it; it is not a pricing rule.
"""

import logging
from decimal import Decimal
from typing import Optional

from pydantic import ValidationError

from models.schemas import (
    BonusTier,
    BonusTiersSnapshot,
    Payout,
    PayoutCycle,
    RateConfig,
    ResolvedRates,
    order_tiers,
)
from services.errors import InvalidTierSnapshotError
from services.stores import PayoutRepository, SettingsSource

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
MIN_STORED_RATE = Decimal("1")


# ===========================================================================
# Pure resolution
# ===========================================================================

def resolve_rates(
    cycle: PayoutCycle,
    rate_config: RateConfig,
    default_base_pay: Decimal,
    live_tiers: list[BonusTier],
    use_current_rates: bool,
    stored_payout: Optional[Payout] = None,
) -> ResolvedRates:
    """
    Resolve rates for one creator in one cycle. No I/O, no side effects.

    Args:
        cycle:             The cycle being computed
        rate_config:       Creator's custom overrides
        default_base_pay:  Live global default (None-safe: treated as 0)
        live_tiers:        Live tier table, any order
        use_current_rates: True for the active cycle (or forced refresh)
        stored_payout:     Previously stored Payout for this creator + cycle
    """
    live_default = default_base_pay or ZERO

    if use_current_rates:
        return ResolvedRates(
            ig_rate=_custom_or(rate_config.custom_instagram_rate, live_default),
            tt_rate=_custom_or(rate_config.custom_tiktok_rate, live_default),
            default_rate=live_default,
            tiers=order_tiers(live_tiers),
            tiers_source="live",
        )

    # ------------------------------------------------------------------
    # Frozen: default rate, three-level fallback
    # ------------------------------------------------------------------
    stored_default = stored_payout.snapshot_default_rate if stored_payout else None
    if _positive(cycle.base_pay_per_video_snapshot):
        default_rate = cycle.base_pay_per_video_snapshot
    elif _positive(stored_default):
        default_rate = stored_default
    else:
        default_rate = live_default

    # ------------------------------------------------------------------
    # Frozen: platform rates - stored snapshot, then custom, then default
    # ------------------------------------------------------------------
    stored_ig = stored_payout.snapshot_ig_rate if stored_payout else None
    stored_tt = stored_payout.snapshot_tt_rate if stored_payout else None

    ig_rate = stored_ig if _at_least_one(stored_ig) else _custom_or(
        rate_config.custom_instagram_rate, default_rate
    )
    tt_rate = stored_tt if _at_least_one(stored_tt) else _custom_or(
        rate_config.custom_tiktok_rate, default_rate
    )

    tiers, tiers_source = select_cycle_tiers(cycle, live_tiers)

    return ResolvedRates(
        ig_rate=ig_rate,
        tt_rate=tt_rate,
        default_rate=default_rate,
        tiers=tiers,
        tiers_source=tiers_source,
    )


def select_cycle_tiers(
    cycle: PayoutCycle,
    live_tiers: list[BonusTier],
) -> tuple[list[BonusTier], str]:
    """
    Tier table for a frozen cycle and where it came from.

    Returns:
        (tiers descending by threshold, "snapshot" | "live-fallback")
    """
    snapshot = cycle.bonus_tiers_snapshot
    if snapshot is not None and snapshot.has_positive_tier():
        return snapshot.ordered(), "snapshot"

    logger.warning(
        f"Cycle {cycle.id}: bonus tier snapshot is "
        f"{'missing' if snapshot is None else 'all-zero'}; "
        f"falling back to live tiers (legacy behavior, pending product review)"
    )
    return order_tiers(live_tiers), "live-fallback"


def freeze_cycle_snapshot(cycle: PayoutCycle, settings: SettingsSource) -> PayoutCycle:
    """
    Copy of `cycle` with live settings frozen onto it.

    Run when a cycle closes so later settings changes never alter its pay.
    Snapshots that already exist are left untouched.
    """
    update = {}
    if cycle.base_pay_per_video_snapshot is None:
        update["base_pay_per_video_snapshot"] = settings.get_default_base_pay()
    if cycle.bonus_tiers_snapshot is None:
        update["bonus_tiers_snapshot"] = BonusTiersSnapshot(
            tiers=order_tiers(settings.get_live_bonus_tiers())
        )
    if update:
        logger.info(f"Cycle {cycle.id}: froze {', '.join(sorted(update))}")
    return cycle.model_copy(update=update)


def parse_tier_snapshot(raw: Optional[str]) -> Optional[BonusTiersSnapshot]:
    """
    Parse stored snapshot text.

    Empty / None → None (no snapshot). Anything unparseable raises
    InvalidTierSnapshotError instead of being ignored.
    """
    if raw is None or not raw.strip():
        return None
    try:
        return BonusTiersSnapshot.from_json(raw)
    except (ValueError, ValidationError) as e:
        raise InvalidTierSnapshotError(f"Invalid bonus tier snapshot: {e}") from e


# ===========================================================================
# RateResolver - binds the pure function to its collaborators
# ===========================================================================

class RateResolver:
    def __init__(self, settings: SettingsSource, payouts: PayoutRepository):
        self.settings = settings
        self.payouts = payouts

    def resolve(
        self,
        creator_id: int,
        cycle: PayoutCycle,
        use_current_rates: bool,
    ) -> ResolvedRates:
        rate_config = self.settings.get_rate_config(creator_id)
        stored = None if use_current_rates else self.payouts.get(creator_id, cycle.id)

        rates = resolve_rates(
            cycle=cycle,
            rate_config=rate_config,
            default_base_pay=self.settings.get_default_base_pay(),
            live_tiers=self.settings.get_live_bonus_tiers(),
            use_current_rates=use_current_rates,
            stored_payout=stored,
        )

        logger.debug(
            f"Rates for creator={creator_id} cycle={cycle.id} "
            f"({'current' if use_current_rates else 'frozen'}): "
            f"IG=${rates.ig_rate} TT=${rates.tt_rate} default=${rates.default_rate}, "
            f"{len(rates.tiers)} tiers ({rates.tiers_source})"
        )
        return rates


# ===========================================================================
# Helpers
# ===========================================================================

def _positive(value: Optional[Decimal]) -> bool:
    return value is not None and value > ZERO


def _at_least_one(value: Optional[Decimal]) -> bool:
    return value is not None and value >= MIN_STORED_RATE


def _custom_or(custom: Optional[Decimal], fallback: Decimal) -> Decimal:
    return custom if _positive(custom) else fallback

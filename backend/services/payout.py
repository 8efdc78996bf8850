"""
Cycle payout aggregation (CyclePayoutAggregator).

Computes ONE creator's payout for ONE cycle. The result is a pure function of
what the collaborators return; persisting it (upsert keyed by creator + cycle)
is the caller's job - see services/recompute.py.

Pipeline:
  1. resolve rates + tiers           (services/rates.py)
  2. load the cycle's videos         (VideoStore)
  3. boundary adjustment             (services/boundary.py)
  4. pair the adjusted set           (services/matcher.py)
  5. bill every unit:
       pair      base = ig_rate + tt_rate
                 bonus = ONE tier lookup on max(ig_views, tt_views)
       unpaired  base = its platform rate
                 bonus = tier lookup on its own views
  6. eligible_views = views of every video billed in this cycle
     (paired + unpaired + pulled in, minus pulled forward)

Eligibility:
  - is_irrelevant or posted_at None  → not billed at all
  - duration None                    → cannot pair, still billed as unpaired

Money is Decimal; totals are rounded half-up to cents.
"""

import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional

from models.schemas import (
    INSTAGRAM,
    CyclePayoutResult,
    PayoutCycle,
    PayoutLine,
    ResolvedRates,
    Video,
    VideoPair,
)
from services.bonus import pair_bonus, select_bonus_tier
from services.boundary import BoundaryResolver
from services.matcher import pair_videos
from services.rates import RateResolver
from services.stores import CycleStore, PayoutRepository, SettingsSource, VideoStore

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


# ===========================================================================
# Billing - pure
# ===========================================================================

def build_payout_lines(
    pairs: list[VideoPair],
    unpaired: list[Video],
    rates: ResolvedRates,
    pulled_in_ids: Optional[set[int]] = None,
) -> list[PayoutLine]:
    """
    Bill each pair and each unpaired eligible video.

    Args:
        pairs:          Matched pairs (including cross-boundary pairs)
        unpaired:       Eligible videos with no partner
        rates:          Resolved rates + tiers for this cycle
        pulled_in_ids:  Ids of videos pulled in from the previous cycle
    """
    if pulled_in_ids is None:
        pulled_in_ids = set()

    lines: list[PayoutLine] = []

    for pair in pairs:
        bonus, tier = pair_bonus(pair, rates.tiers)
        lines.append(PayoutLine(
            kind="pair",
            instagram_video=pair.instagram_video,
            tiktok_video=pair.tiktok_video,
            chosen_views=pair.chosen_views,
            base_pay=rates.ig_rate + rates.tt_rate,
            bonus_pay=bonus,
            tier=tier,
            match_type=pair.match_type,
            from_previous_cycle=bool(set(pair.video_ids) & pulled_in_ids),
        ))

    for video in unpaired:
        if not video.is_payout_eligible:
            continue
        views = video.views or 0
        tier = select_bonus_tier(views, rates.tiers)
        is_ig = video.platform == INSTAGRAM
        lines.append(PayoutLine(
            kind="unpaired",
            instagram_video=video if is_ig else None,
            tiktok_video=None if is_ig else video,
            chosen_views=views,
            base_pay=rates.rate_for(video.platform),
            bonus_pay=tier.bonus_amount if tier is not None else ZERO,
            tier=tier,
            from_previous_cycle=video.id in pulled_in_ids,
        ))

    return lines


def total_lines(lines: list[PayoutLine]) -> tuple[Decimal, Decimal, int]:
    """(base_pay, bonus_pay, eligible_views) across billed lines, cents-rounded."""
    base_pay = sum((line.base_pay for line in lines), ZERO)
    bonus_pay = sum((line.bonus_pay for line in lines), ZERO)
    eligible_views = sum(
        (video.views or 0) for line in lines for video in line.videos
    )
    return _cents(base_pay), _cents(bonus_pay), eligible_views


# ===========================================================================
# CyclePayoutAggregator
# ===========================================================================

class CyclePayoutAggregator:
    """
    Entry point for every call site (nightly job, manual refresh, bulk
    recompute). Collaborator errors propagate; nothing is written here.
    """

    def __init__(
        self,
        videos: VideoStore,
        cycles: CycleStore,
        settings: SettingsSource,
        payouts: PayoutRepository,
        rate_resolver: Optional[RateResolver] = None,
        boundary_resolver: Optional[BoundaryResolver] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.videos = videos
        self.cycles = cycles
        self.rate_resolver = rate_resolver or RateResolver(settings, payouts)
        self.boundary_resolver = boundary_resolver or BoundaryResolver(videos)
        self.clock = clock or utcnow

    def compute(
        self,
        creator_id: int,
        cycle: PayoutCycle,
        use_current_rates: Optional[bool] = None,
    ) -> CyclePayoutResult:
        """
        Compute one creator's payout for one cycle.

        Args:
            creator_id:        Creator to compute
            cycle:             Cycle to compute
            use_current_rates: Force live (True) or frozen (False) rates;
                               None = live unless the cycle has ended
        """
        if use_current_rates is None:
            use_current_rates = not cycle.is_frozen(self.clock())

        # ------------------------------------------------------------------
        # Step 1: rates + tiers
        # ------------------------------------------------------------------
        rates = self.rate_resolver.resolve(creator_id, cycle, use_current_rates)

        # ------------------------------------------------------------------
        # Steps 2-3: cycle videos + boundary adjustment
        # ------------------------------------------------------------------
        home_videos = self.videos.list_eligible_videos(
            creator_id, cycle.start_date, cycle.end_date
        )
        adjustment = self.boundary_resolver.resolve(
            creator_id, cycle, self.cycles.list_cycles(), home_videos=home_videos
        )

        # ------------------------------------------------------------------
        # Step 4: pair what is left; cross-boundary pairs are already formed
        # ------------------------------------------------------------------
        boundary_ids: set[int] = set()
        for pair in adjustment.pulled_in_pairs:
            boundary_ids.update(pair.video_ids)

        match = pair_videos(
            [v for v in adjustment.eligible_videos if v.id not in boundary_ids]
        )
        pairs = match.pairs + adjustment.pulled_in_pairs

        # ------------------------------------------------------------------
        # Steps 5-6: bill + total
        # ------------------------------------------------------------------
        lines = build_payout_lines(
            pairs,
            match.unpaired,
            rates,
            pulled_in_ids={v.id for v in adjustment.pulled_in},
        )
        base_pay, bonus_pay, eligible_views = total_lines(lines)

        result = CyclePayoutResult(
            creator_id=creator_id,
            cycle_id=cycle.id,
            base_pay=base_pay,
            bonus_pay=bonus_pay,
            total_amount=_cents(base_pay + bonus_pay),
            eligible_views=eligible_views,
            ig_rate=rates.ig_rate,
            tt_rate=rates.tt_rate,
            default_rate=rates.default_rate,
            lines=lines,
            boundary=adjustment,
        )

        logger.info(
            f"Cycle {cycle.id} creator {creator_id}: "
            f"{result.paired_count} pairs, {result.unpaired_count} unpaired, "
            f"base=${base_pay:,.2f} bonus=${bonus_pay:,.2f} "
            f"total=${result.total_amount:,.2f} views={eligible_views:,}"
        )
        return result


def utcnow() -> datetime:
    """Naive UTC, matching how models normalise stored timestamps."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _cents(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)

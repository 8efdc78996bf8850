"""
Cycle boundary reclassification (BoundaryResolver).

Problem: one posting event can land on both sides of a cycle edge -
IG captured 23:58 on the last day of cycle N, TT captured 00:02 on day 1 of
cycle N+1. Paired naively per cycle, each side is an unpaired base-pay item
and the creator is billed twice for one piece of content.

Procedure for cycle N (window = config.BOUNDARY_WINDOW_HOURS, default 24h):

  PULL IN (from N-1):
    1. Pair N-1 on its own; keep its UNPAIRED videos posted within the
       window before N-1.end_date                          → prev tail
    2. Pair N on its own; keep its UNPAIRED videos posted within the
       window after N.start_date                           → home head
    3. Cross-match prev tail × home head with the normal pairing rule,
       only allowing pairs that span the two cycles
    4. Each cross pair is billed in N (the N-1 video is pulled in)

  PULL FORWARD (into N+1):
    5. N's own UNPAIRED videos within the window before N.end_date
       (excluding any that are also inside N's first-day window)
                                                           → home tail
    6. N+1's own UNPAIRED first-day videos                 → next head
    7. Cross-match; each N video in a cross pair is excluded from N - it
       is billed when N+1 is computed (as N+1's pull-in)

Steps 5-7 run on exactly the inputs N+1's steps 1-3 see, so the two
computations always agree on which videos moved: nothing is billed twice and
nothing is dropped.

Nothing here is persisted. If an adjacent cycle's videos change (a video is
marked irrelevant, views re-sync), the classification can change on the
next recompute.
"""

import logging
from datetime import timedelta
from typing import Optional

import config
from models.schemas import BoundaryAdjustment, PayoutCycle, Video, VideoPair
from services.matcher import pair_videos
from services.stores import VideoStore

logger = logging.getLogger(__name__)


# ===========================================================================
# Pure resolution
# ===========================================================================

def resolve_boundaries(
    cycle: PayoutCycle,
    home_videos: list[Video],
    prev_cycle: Optional[PayoutCycle] = None,
    prev_videos: Optional[list[Video]] = None,
    next_cycle: Optional[PayoutCycle] = None,
    next_videos: Optional[list[Video]] = None,
) -> BoundaryAdjustment:
    """
    Adjust one creator's eligible set for `cycle`.

    Args:
        cycle:        The cycle being computed
        home_videos:  The creator's videos posted inside `cycle`
        prev_cycle:   Cycle immediately before (None if first)
        prev_videos:  The creator's videos posted inside prev_cycle
        next_cycle:   Cycle immediately after (None if last)
        next_videos:  The creator's videos posted inside next_cycle

    Returns:
        BoundaryAdjustment:
          eligible_videos  home videos − pulled_forward + pulled_in
          pulled_in_pairs  cross-cycle pairs billed in this cycle
          pulled_in        the previous-cycle halves of those pairs
          pulled_forward   home videos billed by the next cycle instead
    """
    window = timedelta(hours=config.BOUNDARY_WINDOW_HOURS)
    home = [v for v in home_videos if v.is_payout_eligible]
    home_unpaired = pair_videos(home).unpaired

    # ------------------------------------------------------------------
    # Pull in: previous cycle's tail × this cycle's head
    # ------------------------------------------------------------------
    pulled_in_pairs: list[VideoPair] = []
    pulled_in: list[Video] = []

    if prev_cycle is not None and prev_videos:
        prev_tail = _tail_unpaired(prev_cycle, prev_videos, window)
        home_head = [v for v in home_unpaired if cycle.is_first_day(v.posted_at, window)]

        pulled_in_pairs = _cross_match(prev_tail, home_head)
        prev_ids = {v.id for v in prev_tail}
        for pair in pulled_in_pairs:
            for video in (pair.instagram_video, pair.tiktok_video):
                if video.id in prev_ids:
                    pulled_in.append(video)

    # ------------------------------------------------------------------
    # Pull forward: this cycle's tail × next cycle's head
    # ------------------------------------------------------------------
    pulled_forward: list[Video] = []

    if next_cycle is not None and next_videos:
        home_tail = [
            v for v in home_unpaired
            if _in_tail_window(cycle, v, window)
        ]
        next_head = _head_unpaired(next_cycle, next_videos, window)

        home_tail_ids = {v.id for v in home_tail}
        for pair in _cross_match(home_tail, next_head):
            for video in (pair.instagram_video, pair.tiktok_video):
                if video.id in home_tail_ids:
                    pulled_forward.append(video)

    forward_ids = {v.id for v in pulled_forward}
    eligible = [v for v in home if v.id not in forward_ids] + pulled_in

    if pulled_in or pulled_forward:
        logger.info(
            f"Cycle {cycle.id} boundary: {len(pulled_in)} pulled in "
            f"({[v.id for v in pulled_in]}), {len(pulled_forward)} pulled forward "
            f"({sorted(forward_ids)})"
        )

    return BoundaryAdjustment(
        eligible_videos=eligible,
        pulled_in_pairs=pulled_in_pairs,
        pulled_in=pulled_in,
        pulled_forward=pulled_forward,
    )


# ===========================================================================
# BoundaryResolver - fetches the adjacent cycles' videos
# ===========================================================================

class BoundaryResolver:
    def __init__(self, videos: VideoStore):
        self.videos = videos

    def resolve(
        self,
        creator_id: int,
        cycle: PayoutCycle,
        cycles: list[PayoutCycle],
        home_videos: Optional[list[Video]] = None,
    ) -> BoundaryAdjustment:
        """
        Args:
            cycles:      All cycles ordered by start_date (must include `cycle`)
            home_videos: The cycle's own videos if the caller already loaded them
        """
        prev_cycle, next_cycle = adjacent_cycles(cycle, cycles)

        if home_videos is None:
            home_videos = self._load(creator_id, cycle)
        prev_videos = self._load(creator_id, prev_cycle) if prev_cycle else None
        next_videos = self._load(creator_id, next_cycle) if next_cycle else None

        return resolve_boundaries(
            cycle,
            home_videos,
            prev_cycle=prev_cycle,
            prev_videos=prev_videos,
            next_cycle=next_cycle,
            next_videos=next_videos,
        )

    def _load(self, creator_id: int, cycle: PayoutCycle) -> list[Video]:
        return self.videos.list_eligible_videos(creator_id, cycle.start_date, cycle.end_date)


def adjacent_cycles(
    cycle: PayoutCycle,
    cycles: list[PayoutCycle],
) -> tuple[Optional[PayoutCycle], Optional[PayoutCycle]]:
    """(previous, next) neighbours of `cycle` in start_date order."""
    ordered = sorted(cycles, key=lambda c: c.start_date)
    ids = [c.id for c in ordered]
    if cycle.id not in ids:
        return None, None
    idx = ids.index(cycle.id)
    prev_cycle = ordered[idx - 1] if idx > 0 else None
    next_cycle = ordered[idx + 1] if idx + 1 < len(ordered) else None
    return prev_cycle, next_cycle


# ===========================================================================
# Helpers
# ===========================================================================

def _tail_unpaired(cycle: PayoutCycle, videos: list[Video], window: timedelta) -> list[Video]:
    unpaired = pair_videos(videos).unpaired
    return [v for v in unpaired if _in_tail_window(cycle, v, window)]


def _head_unpaired(cycle: PayoutCycle, videos: list[Video], window: timedelta) -> list[Video]:
    unpaired = pair_videos(videos).unpaired
    return [v for v in unpaired if cycle.is_first_day(v.posted_at, window)]


def _in_tail_window(cycle: PayoutCycle, video: Video, window: timedelta) -> bool:
    # A video in both edge windows (cycles shorter than 2 windows) belongs to the head
    return (
        cycle.is_last_day(video.posted_at, window)
        and not cycle.is_first_day(video.posted_at, window)
    )


def _cross_match(earlier: list[Video], later: list[Video]) -> list[VideoPair]:
    """Pair `earlier` × `later`; a pair must take one video from each side."""
    if not earlier or not later:
        return []
    earlier_ids = {v.id for v in earlier}

    def spans_boundary(ig_video: Video, tt_video: Video) -> bool:
        return (ig_video.id in earlier_ids) != (tt_video.id in earlier_ids)

    return pair_videos(earlier + later, can_pair=spans_boundary).pairs

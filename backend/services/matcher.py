"""
Cross-platform video pairing (VideoPairMatcher).

Pairs a creator's Instagram and TikTok uploads of the same content so they
are billed as ONE unit with ONE shared bonus.

Algorithm (greedy, Instagram-first - the same everywhere pairing happens):
  1. Sort Instagram videos by posted_at ascending (ties: video id)
  2. For each Instagram video, scan all not-yet-used TikTok videos
  3. A TikTok video is a candidate if:
       |ig.duration - tt.duration| <= 1 second   AND
       |ig.posted_at - tt.posted_at| <= 24 hours
  4. Pick the candidate minimising (duration_diff, time_diff)
     - duration match wins over closeness in time
  5. Pair + mark the TikTok video used, or leave the Instagram video unpaired
  6. TikTok videos never picked are unpaired

This is NOT optimal bipartite matching. An earlier Instagram video can take a
TikTok video that a later one needed; that is the reproducible behavior
historical payouts were computed with.

Optional FALLBACK (config.THUMBNAIL_FALLBACK_ENABLED): when an Instagram video
has no duration candidate, take the first unused TikTok video inside the time
window whose thumbnail hash is within the hamming threshold.

Output:
  MatchResult(pairs, unpaired)
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

import imagehash

import config
from models.schemas import INSTAGRAM, TIKTOK, MatchResult, Video, VideoPair
from services.thumbnails import are_thumbnails_similar

logger = logging.getLogger(__name__)

PairPredicate = Callable[[Video, Video], bool]


# ===========================================================================
# Public API
# ===========================================================================

def pair_videos(
    videos: list[Video],
    can_pair: Optional[PairPredicate] = None,
    thumbnail_fallback: Optional[bool] = None,
) -> MatchResult:
    """
    Pair Instagram and TikTok videos from one creator's eligible set.

    Videos that are not payout-eligible (irrelevant or no posted_at) are
    dropped. Eligible videos without a duration cannot duration-match and
    end up unpaired (unless the thumbnail fallback pairs them).

    Args:
        videos:             Any mix of the creator's videos
        can_pair:           Extra predicate a pair must satisfy (used by the
                            boundary resolver to force cross-cycle pairs)
        thumbnail_fallback: Override config.THUMBNAIL_FALLBACK_ENABLED

    Returns:
        MatchResult with pairs (in Instagram order) and unpaired videos
        (unpaired Instagram first, then unpaired TikTok, each by posted_at)
    """
    if thumbnail_fallback is None:
        thumbnail_fallback = config.THUMBNAIL_FALLBACK_ENABLED

    eligible = [v for v in videos if v.is_payout_eligible]
    instagram_sorted = sorted(
        (v for v in eligible if v.platform == INSTAGRAM), key=posted_sort_key
    )
    tiktok_sorted = sorted(
        (v for v in eligible if v.platform == TIKTOK), key=posted_sort_key
    )

    tt_used: set[int] = set()
    pairs: list[VideoPair] = []
    unpaired_ig: list[Video] = []
    hash_cache: dict[str, Optional[imagehash.ImageHash]] = {}

    for ig_video in instagram_sorted:
        # ------------------------------------------------------------------
        # Priority 1: duration + time window
        # ------------------------------------------------------------------
        best = _find_duration_match(ig_video, tiktok_sorted, tt_used, can_pair)
        match_type = "duration"

        # ------------------------------------------------------------------
        # Priority 2: thumbnail hash (optional)
        # ------------------------------------------------------------------
        if best is None and thumbnail_fallback:
            best = _find_thumbnail_match(
                ig_video, tiktok_sorted, tt_used, can_pair, hash_cache
            )
            match_type = "thumbnail"

        if best is None:
            unpaired_ig.append(ig_video)
            continue

        tt_used.add(best.id)
        pair = build_pair(ig_video, best, match_type)
        pairs.append(pair)
        logger.debug(
            f"  IG#{ig_video.id} ↔ TT#{best.id} ({match_type}, "
            f"Δduration={pair.duration_diff}, Δt={pair.time_diff_seconds:.0f}s)"
        )

    unpaired_tt = [v for v in tiktok_sorted if v.id not in tt_used]

    logger.debug(
        f"Pairing: {len(instagram_sorted)} IG, {len(tiktok_sorted)} TT → "
        f"{len(pairs)} pairs, {len(unpaired_ig) + len(unpaired_tt)} unpaired"
    )

    return MatchResult(pairs=pairs, unpaired=unpaired_ig + unpaired_tt)


def pair_candidate_key(ig_video: Video, tt_video: Video) -> Optional[tuple[int, float]]:
    """
    (duration_diff, time_diff_seconds) if the two videos may duration-pair,
    else None.

    Both bounds are inclusive: 1s duration difference and exactly 24h apart
    still pair; 2s or 24h + 1s never do.
    """
    if not (ig_video.is_pairable and tt_video.is_pairable):
        return None

    duration_diff = abs(ig_video.duration_seconds - tt_video.duration_seconds)
    if duration_diff > config.PAIR_DURATION_TOLERANCE_SECONDS:
        return None

    time_diff = _time_diff_seconds(ig_video.posted_at, tt_video.posted_at)
    if time_diff > _time_window().total_seconds():
        return None

    return duration_diff, time_diff


def build_pair(ig_video: Video, tt_video: Video, match_type: str = "duration") -> VideoPair:
    """
    Build a VideoPair with its audit fields.

    chosen_views    = max(ig.views, tt.views)
    winner_platform = platform with more views (instagram on ties)
    """
    ig_views = ig_video.views or 0
    tt_views = tt_video.views or 0

    duration_diff = None
    if ig_video.duration_seconds is not None and tt_video.duration_seconds is not None:
        duration_diff = abs(ig_video.duration_seconds - tt_video.duration_seconds)

    return VideoPair(
        instagram_video=ig_video,
        tiktok_video=tt_video,
        match_type=match_type,
        duration_diff=duration_diff,
        time_diff_seconds=_time_diff_seconds(ig_video.posted_at, tt_video.posted_at),
        chosen_views=max(ig_views, tt_views),
        winner_platform=INSTAGRAM if ig_views >= tt_views else TIKTOK,
    )


def posted_sort_key(video: Video) -> tuple[datetime, int]:
    """posted_at ascending, then id; videos without posted_at sort last."""
    if video.posted_at is None:
        return datetime.max, video.id
    return video.posted_at, video.id


# ===========================================================================
# Candidate search
# ===========================================================================

def _find_duration_match(
    ig_video: Video,
    tiktok_sorted: list[Video],
    tt_used: set[int],
    can_pair: Optional[PairPredicate],
) -> Optional[Video]:
    best_video: Optional[Video] = None
    best_key: Optional[tuple] = None

    for tt_video in tiktok_sorted:
        if tt_video.id in tt_used:
            continue
        key = pair_candidate_key(ig_video, tt_video)
        if key is None:
            continue
        if can_pair is not None and not can_pair(ig_video, tt_video):
            continue

        # Full key keeps the choice stable when two candidates tie exactly
        full_key = key + posted_sort_key(tt_video)
        if best_key is None or full_key < best_key:
            best_key = full_key
            best_video = tt_video

    return best_video


def _find_thumbnail_match(
    ig_video: Video,
    tiktok_sorted: list[Video],
    tt_used: set[int],
    can_pair: Optional[PairPredicate],
    hash_cache: dict[str, Optional[imagehash.ImageHash]],
) -> Optional[Video]:
    if not ig_video.thumbnail_hash:
        return None

    window = _time_window().total_seconds()
    for tt_video in tiktok_sorted:
        if tt_video.id in tt_used:
            continue
        if _time_diff_seconds(ig_video.posted_at, tt_video.posted_at) > window:
            continue
        if can_pair is not None and not can_pair(ig_video, tt_video):
            continue
        if are_thumbnails_similar(
            ig_video.thumbnail_hash, tt_video.thumbnail_hash, cache=hash_cache
        ):
            return tt_video

    return None


# ===========================================================================
# Utility helpers
# ===========================================================================

def _time_window() -> timedelta:
    return timedelta(hours=config.PAIR_TIME_WINDOW_HOURS)


def _time_diff_seconds(a: datetime, b: datetime) -> float:
    return abs((a - b).total_seconds())



"""
Tests for services/matcher.py (cross-platform pairing).

Test categories:
  1. GATING: duration tolerance and time window, both inclusive
  2. ELIGIBILITY: irrelevant / no posted_at dropped, no duration never pairs
  3. GREEDY ORDER: Instagram-first, duration beats time, stable tie-breaks
  4. AUDIT FIELDS: chosen_views, winner_platform, duration_diff
  5. THUMBNAIL FALLBACK: off by default, hash threshold, time window
  6. can_pair PREDICATE
"""

import sys
import os
import random
import pytest
from datetime import datetime, timedelta

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import config
from models.schemas import Video
from services.matcher import build_pair, pair_candidate_key, pair_videos


BASE_TIME = datetime(2026, 3, 9, 10, 0, 0)


# ===========================================================================
# Test helpers
# ===========================================================================

def make_video(
    video_id: int,
    platform: str = "instagram",
    duration: int = 30,
    views: int = 5000,
    minutes: float = 0,
    is_irrelevant: bool = False,
    thumbnail_hash: str = None,
    posted_at: datetime = None,
) -> Video:
    """Helper to create a Video posted `minutes` after BASE_TIME."""
    return Video(
        id=video_id,
        creator_id=1,
        platform=platform,
        posted_at=posted_at if posted_at is not None else BASE_TIME + timedelta(minutes=minutes),
        duration_seconds=duration,
        views=views,
        is_irrelevant=is_irrelevant,
        thumbnail_hash=thumbnail_hash,
    )


def pair_ids(result):
    return [(p.instagram_video.id, p.tiktok_video.id) for p in result.pairs]


@pytest.fixture(autouse=True)
def fallback_off(monkeypatch):
    monkeypatch.setattr(config, "THUMBNAIL_FALLBACK_ENABLED", False)


# ===========================================================================
# 1. GATING
# ===========================================================================

class TestGating:
    def test_exact_duration_pairs(self):
        result = pair_videos([
            make_video(1, "instagram", 30, minutes=0),
            make_video(2, "tiktok", 30, minutes=30),
        ])
        assert pair_ids(result) == [(1, 2)]
        assert result.unpaired == []

    def test_one_second_difference_pairs(self):
        result = pair_videos([
            make_video(1, "instagram", 30),
            make_video(2, "tiktok", 31),
        ])
        assert pair_ids(result) == [(1, 2)]
        assert result.pairs[0].duration_diff == 1

    def test_two_second_difference_never_pairs(self):
        result = pair_videos([
            make_video(1, "instagram", 30),
            make_video(2, "tiktok", 32),
        ])
        assert result.pairs == []
        assert [v.id for v in result.unpaired] == [1, 2]

    def test_exactly_24_hours_apart_pairs(self):
        result = pair_videos([
            make_video(1, "instagram", 30, minutes=0),
            make_video(2, "tiktok", 30, minutes=24 * 60),
        ])
        assert pair_ids(result) == [(1, 2)]

    def test_24_hours_and_one_second_apart_never_pairs(self):
        result = pair_videos([
            make_video(1, "instagram", 30),
            make_video(2, "tiktok", 30, posted_at=BASE_TIME + timedelta(hours=24, seconds=1)),
        ])
        assert result.pairs == []

    def test_tiktok_before_instagram_pairs(self):
        """The window is symmetric."""
        result = pair_videos([
            make_video(1, "instagram", 30, minutes=600),
            make_video(2, "tiktok", 30, minutes=0),
        ])
        assert pair_ids(result) == [(1, 2)]

    def test_same_platform_never_pairs(self):
        result = pair_videos([
            make_video(1, "instagram", 30),
            make_video(2, "instagram", 30, minutes=5),
        ])
        assert result.pairs == []
        assert len(result.unpaired) == 2

    def test_candidate_key_none_outside_tolerance(self):
        ig = make_video(1, "instagram", 30)
        assert pair_candidate_key(ig, make_video(2, "tiktok", 33)) is None
        assert pair_candidate_key(ig, make_video(3, "tiktok", 29, minutes=90)) == (1, 5400.0)


# ===========================================================================
# 2. ELIGIBILITY
# ===========================================================================

class TestEligibility:
    def test_no_duration_is_unpaired_not_dropped(self):
        result = pair_videos([
            make_video(1, "instagram", None),
            make_video(2, "tiktok", 30),
        ])
        assert result.pairs == []
        assert sorted(v.id for v in result.unpaired) == [1, 2]

    def test_irrelevant_video_dropped(self):
        result = pair_videos([
            make_video(1, "instagram", 30, is_irrelevant=True),
            make_video(2, "tiktok", 30),
        ])
        assert result.pairs == []
        assert [v.id for v in result.unpaired] == [2]

    def test_no_posted_at_dropped(self):
        no_date = Video(id=1, creator_id=1, platform="instagram", duration_seconds=30, views=100)
        result = pair_videos([no_date, make_video(2, "tiktok", 30)])
        assert result.pairs == []
        assert [v.id for v in result.unpaired] == [2]

    def test_empty_input(self):
        result = pair_videos([])
        assert result.pairs == []
        assert result.unpaired == []

    def test_single_platform_all_unpaired(self):
        videos = [make_video(i, "tiktok", 30, minutes=i * 10) for i in range(1, 4)]
        result = pair_videos(videos)
        assert result.pairs == []
        assert [v.id for v in result.unpaired] == [1, 2, 3]

    def test_no_video_in_more_than_one_pair(self):
        videos = [
            make_video(1, "instagram", 30, minutes=0),
            make_video(2, "instagram", 30, minutes=10),
            make_video(3, "tiktok", 30, minutes=5),
        ]
        result = pair_videos(videos)
        assert len(result.pairs) == 1
        assert result.paired_ids() | {v.id for v in result.unpaired} == {1, 2, 3}
        assert result.paired_ids().isdisjoint({v.id for v in result.unpaired})


# ===========================================================================
# 3. GREEDY ORDER
# ===========================================================================

class TestGreedyOrder:
    def test_duration_match_beats_closer_time(self):
        result = pair_videos([
            make_video(1, "instagram", 30, minutes=0),
            make_video(2, "tiktok", 31, minutes=1),
            make_video(3, "tiktok", 30, minutes=600),
        ])
        assert pair_ids(result) == [(1, 3)]

    def test_closer_time_wins_on_equal_duration(self):
        result = pair_videos([
            make_video(1, "instagram", 30, minutes=0),
            make_video(2, "tiktok", 30, minutes=300),
            make_video(3, "tiktok", 30, minutes=20),
        ])
        assert pair_ids(result) == [(1, 3)]

    def test_earlier_instagram_takes_contested_tiktok(self):
        """
        Greedy, not optimal: IG#1 takes TT#3 (exact), so IG#2 (31s) has no
        candidate left even though IG#1↔TT#4 + IG#2↔TT#3 would pair both.
        """
        result = pair_videos([
            make_video(1, "instagram", 30, minutes=0),
            make_video(2, "instagram", 31, minutes=60),
            make_video(3, "tiktok", 30, minutes=30),
            make_video(4, "tiktok", 29, minutes=40),
        ])
        assert pair_ids(result) == [(1, 3)]
        assert [v.id for v in result.unpaired] == [2, 4]

    def test_equal_time_distance_prefers_earlier_tiktok(self):
        result = pair_videos([
            make_video(1, "instagram", 30, minutes=60),
            make_video(2, "tiktok", 30, minutes=120),
            make_video(3, "tiktok", 30, minutes=0),
        ])
        assert pair_ids(result) == [(1, 3)]

    def test_identical_candidates_prefer_lower_id(self):
        result = pair_videos([
            make_video(1, "instagram", 30),
            make_video(9, "tiktok", 30, minutes=10),
            make_video(5, "tiktok", 30, minutes=10),
        ])
        assert pair_ids(result) == [(1, 5)]

    def test_input_order_does_not_matter(self):
        videos = [
            make_video(1, "instagram", 30, minutes=0),
            make_video(2, "instagram", 45, minutes=100),
            make_video(3, "instagram", 60, minutes=200),
            make_video(4, "tiktok", 45, minutes=110),
            make_video(5, "tiktok", 30, minutes=5),
            make_video(6, "tiktok", 61, minutes=190),
            make_video(7, "tiktok", 20, minutes=50),
        ]
        expected = pair_videos(videos)
        shuffled = list(videos)
        random.Random(7).shuffle(shuffled)
        result = pair_videos(shuffled)
        assert pair_ids(result) == pair_ids(expected) == [(1, 5), (2, 4), (3, 6)]
        assert [v.id for v in result.unpaired] == [7]


# ===========================================================================
# 4. AUDIT FIELDS
# ===========================================================================

class TestAuditFields:
    def test_chosen_views_is_max(self):
        pair = build_pair(
            make_video(1, "instagram", 30, views=800),
            make_video(2, "tiktok", 30, views=12_000),
        )
        assert pair.chosen_views == 12_000
        assert pair.winner_platform == "tiktok"

    def test_tie_goes_to_instagram(self):
        pair = build_pair(
            make_video(1, "instagram", 30, views=5000),
            make_video(2, "tiktok", 30, views=5000),
        )
        assert pair.winner_platform == "instagram"

    def test_time_diff_recorded(self):
        pair = build_pair(
            make_video(1, "instagram", 30, minutes=0),
            make_video(2, "tiktok", 30, minutes=30),
        )
        assert pair.time_diff_seconds == 1800.0
        assert pair.match_type == "duration"


# ===========================================================================
# 5. THUMBNAIL FALLBACK
# ===========================================================================

HASH_A = "ffffffffffffffff"
HASH_NEAR_A = "fffffffffffffff0"   # 4 bits from HASH_A
HASH_FAR = "0000000000000000"      # 64 bits from HASH_A


class TestThumbnailFallback:
    def test_disabled_by_default(self):
        result = pair_videos([
            make_video(1, "instagram", 30, thumbnail_hash=HASH_A),
            make_video(2, "tiktok", 45, thumbnail_hash=HASH_A),
        ])
        assert result.pairs == []

    def test_enabled_pairs_similar_thumbnails(self, monkeypatch):
        monkeypatch.setattr(config, "THUMBNAIL_FALLBACK_ENABLED", True)
        result = pair_videos([
            make_video(1, "instagram", 30, thumbnail_hash=HASH_A),
            make_video(2, "tiktok", 45, minutes=60, thumbnail_hash=HASH_NEAR_A),
        ])
        assert pair_ids(result) == [(1, 2)]
        assert result.pairs[0].match_type == "thumbnail"

    def test_distant_hash_not_paired(self):
        result = pair_videos([
            make_video(1, "instagram", 30, thumbnail_hash=HASH_A),
            make_video(2, "tiktok", 45, thumbnail_hash=HASH_FAR),
        ], thumbnail_fallback=True)
        assert result.pairs == []

    def test_outside_time_window_not_paired(self):
        result = pair_videos([
            make_video(1, "instagram", 30, thumbnail_hash=HASH_A),
            make_video(2, "tiktok", 45, minutes=25 * 60, thumbnail_hash=HASH_A),
        ], thumbnail_fallback=True)
        assert result.pairs == []

    def test_missing_duration_can_pair_by_thumbnail(self):
        result = pair_videos([
            make_video(1, "instagram", None, thumbnail_hash=HASH_A),
            make_video(2, "tiktok", 30, thumbnail_hash=HASH_A),
        ], thumbnail_fallback=True)
        assert pair_ids(result) == [(1, 2)]
        assert result.pairs[0].duration_diff is None

    def test_duration_match_preferred_over_thumbnail(self):
        result = pair_videos([
            make_video(1, "instagram", 30, thumbnail_hash=HASH_A),
            make_video(2, "tiktok", 45, minutes=1, thumbnail_hash=HASH_A),
            make_video(3, "tiktok", 30, minutes=90, thumbnail_hash=HASH_FAR),
        ], thumbnail_fallback=True)
        assert pair_ids(result) == [(1, 3)]
        assert result.pairs[0].match_type == "duration"

    def test_malformed_hash_never_pairs(self):
        result = pair_videos([
            make_video(1, "instagram", 30, thumbnail_hash="not-a-hash"),
            make_video(2, "tiktok", 45, thumbnail_hash="not-a-hash"),
        ], thumbnail_fallback=True)
        assert result.pairs == []


# ===========================================================================
# 6. can_pair PREDICATE
# ===========================================================================

class TestCanPair:
    def test_predicate_filters_candidates(self):
        videos = [
            make_video(1, "instagram", 30, minutes=0),
            make_video(2, "tiktok", 30, minutes=5),
            make_video(3, "tiktok", 30, minutes=50),
        ]
        result = pair_videos(videos, can_pair=lambda ig, tt: tt.id != 2)
        assert pair_ids(result) == [(1, 3)]
        assert [v.id for v in result.unpaired] == [2]

"""
Pydantic models for the Creator Cycle Payout Engine.

Models:
  - Video: A single creator upload (read from the VideoStore, never mutated)
  - BonusTier / BonusTiersSnapshot: view-threshold bonus table (live or frozen)
  - PayoutCycle: A non-overlapping payout period with optional frozen snapshots
  - RateConfig: Per-creator base pay overrides
  - ResolvedRates: Rates + tiers that apply to one creator in one cycle
  - VideoPair / MatchResult: Output of cross-platform pairing
  - BoundaryAdjustment: Videos pulled in from / pushed out to adjacent cycles
  - PayoutLine / CyclePayoutResult: Engine output with its audit breakdown
  - Payout: The persisted row (one per creator per cycle)
  - RecomputeFailure / RecomputeReport: Bulk recompute outcome
"""

import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

INSTAGRAM = "instagram"
TIKTOK = "tiktok"

Platform = Literal["instagram", "tiktok"]


def to_utc_naive(value):
    """
    Normalise timestamps to naive UTC.

    Sources hand us both tz-aware and naive-UTC datetimes; comparing the two
    raises TypeError.
    """
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# ---------------------------------------------------------------------------
# Video - one upload as stored by the VideoStore
#
# posted_at is None      → never payout-eligible
# duration_seconds None  → eligible for base pay, but cannot be paired
# ---------------------------------------------------------------------------
class Video(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    creator_id: int
    platform: Platform
    posted_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    views: int = 0
    likes: int = 0
    comments: int = 0
    is_irrelevant: bool = False
    thumbnail_hash: Optional[str] = None  # 16 hex chars (64-bit perceptual hash)
    url: Optional[str] = None

    @field_validator("posted_at")
    @classmethod
    def _posted_at_utc(cls, value):
        return to_utc_naive(value)

    @property
    def is_payout_eligible(self) -> bool:
        return not self.is_irrelevant and self.posted_at is not None

    @property
    def is_pairable(self) -> bool:
        return self.is_payout_eligible and self.duration_seconds is not None


# ---------------------------------------------------------------------------
# BonusTier - a view threshold that unlocks a flat bonus
#
# Accepts both snake_case and the camelCase keys found in stored snapshots.
# ---------------------------------------------------------------------------
class BonusTier(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    view_threshold: int = Field(alias="viewThreshold")
    bonus_amount: Decimal = Field(alias="bonusAmount")


def order_tiers(tiers: list[BonusTier]) -> list[BonusTier]:
    """Descending by threshold; equal thresholds keep the larger amount first."""
    return sorted(tiers, key=lambda t: (t.view_threshold, t.bonus_amount), reverse=True)


# ---------------------------------------------------------------------------
# BonusTiersSnapshot - the tier table frozen onto a cycle
#
# Stored historically as a bare JSON list; new snapshots carry a version.
# ---------------------------------------------------------------------------
class BonusTiersSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: int = 1
    tiers: list[BonusTier] = Field(default_factory=list)

    @classmethod
    def from_json(cls, raw: str) -> "BonusTiersSnapshot":
        """
        Parse a stored snapshot.

        Accepts:
          - legacy list:  [{"viewThreshold": 1000, "bonusAmount": "5.00"}, ...]
          - versioned:    {"version": 1, "tiers": [...]}

        Raises:
            ValueError: if the text is not valid snapshot JSON
        """
        data = json.loads(raw)
        if isinstance(data, list):
            return cls(version=1, tiers=data)
        if isinstance(data, dict):
            return cls.model_validate(data)
        raise ValueError(f"Unsupported bonus tier snapshot payload: {type(data).__name__}")

    def to_json(self) -> str:
        return self.model_dump_json()

    def ordered(self) -> list[BonusTier]:
        return order_tiers(self.tiers)

    def has_positive_tier(self) -> bool:
        return any(t.bonus_amount > 0 for t in self.tiers)


# ---------------------------------------------------------------------------
# PayoutCycle - [start_date, end_date], both inclusive
# ---------------------------------------------------------------------------
class PayoutCycle(BaseModel):
    id: int
    start_date: datetime
    end_date: datetime
    base_pay_per_video_snapshot: Optional[Decimal] = None
    bonus_tiers_snapshot: Optional[BonusTiersSnapshot] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def _dates_utc(cls, value):
        return to_utc_naive(value)

    @field_validator("bonus_tiers_snapshot", mode="before")
    @classmethod
    def _parse_snapshot_text(cls, value):
        if isinstance(value, str):
            if not value.strip():
                return None
            return BonusTiersSnapshot.from_json(value)
        if isinstance(value, list):
            return BonusTiersSnapshot(tiers=value)
        return value

    def is_frozen(self, now: datetime) -> bool:
        return self.end_date < now

    def is_first_day(self, ts: datetime, window: timedelta) -> bool:
        return self.start_date <= ts <= self.start_date + window

    def is_last_day(self, ts: datetime, window: timedelta) -> bool:
        return self.end_date - window <= ts <= self.end_date


# ---------------------------------------------------------------------------
# RateConfig - per-creator overrides (None or 0 means "use the default")
# ---------------------------------------------------------------------------
class RateConfig(BaseModel):
    creator_id: int
    custom_instagram_rate: Optional[Decimal] = None
    custom_tiktok_rate: Optional[Decimal] = None


class ResolvedRates(BaseModel):
    ig_rate: Decimal
    tt_rate: Decimal
    default_rate: Decimal
    tiers: list[BonusTier] = Field(default_factory=list)  # descending by threshold
    tiers_source: str = "live"  # "live", "snapshot" or "live-fallback"

    def rate_for(self, platform: str) -> Decimal:
        return self.ig_rate if platform == INSTAGRAM else self.tt_rate


# ---------------------------------------------------------------------------
# VideoPair - one Instagram + one TikTok upload of the same content
#
# chosen_views = max(ig.views, tt.views); the pair earns ONE bonus on it.
# winner_platform is instagram on ties.
# ---------------------------------------------------------------------------
class VideoPair(BaseModel):
    instagram_video: Video
    tiktok_video: Video
    match_type: str = "duration"  # "duration" or "thumbnail"
    duration_diff: Optional[int] = None
    time_diff_seconds: float = 0.0
    chosen_views: int = 0
    winner_platform: Platform = INSTAGRAM

    @property
    def video_ids(self) -> tuple[int, int]:
        return self.instagram_video.id, self.tiktok_video.id


class MatchResult(BaseModel):
    pairs: list[VideoPair] = Field(default_factory=list)
    unpaired: list[Video] = Field(default_factory=list)

    def paired_ids(self) -> set[int]:
        ids: set[int] = set()
        for pair in self.pairs:
            ids.update(pair.video_ids)
        return ids


# ---------------------------------------------------------------------------
# BoundaryAdjustment - recomputed on every call, never persisted
# ---------------------------------------------------------------------------
class BoundaryAdjustment(BaseModel):
    eligible_videos: list[Video] = Field(default_factory=list)
    pulled_in_pairs: list[VideoPair] = Field(default_factory=list)
    pulled_in: list[Video] = Field(default_factory=list)       # from the previous cycle
    pulled_forward: list[Video] = Field(default_factory=list)  # billed by the next cycle


# ---------------------------------------------------------------------------
# PayoutLine - one billed unit (a pair or a single unpaired video)
# ---------------------------------------------------------------------------
class PayoutLine(BaseModel):
    kind: Literal["pair", "unpaired"]
    instagram_video: Optional[Video] = None
    tiktok_video: Optional[Video] = None
    chosen_views: int = 0
    base_pay: Decimal = Decimal("0")
    bonus_pay: Decimal = Decimal("0")
    tier: Optional[BonusTier] = None
    match_type: Optional[str] = None
    from_previous_cycle: bool = False

    @property
    def videos(self) -> list[Video]:
        return [v for v in (self.instagram_video, self.tiktok_video) if v is not None]


class CyclePayoutResult(BaseModel):
    creator_id: int
    cycle_id: int
    base_pay: Decimal
    bonus_pay: Decimal
    total_amount: Decimal
    eligible_views: int
    ig_rate: Decimal
    tt_rate: Decimal
    default_rate: Decimal
    lines: list[PayoutLine] = Field(default_factory=list)
    boundary: BoundaryAdjustment = Field(default_factory=BoundaryAdjustment)

    @property
    def paired_count(self) -> int:
        return sum(1 for line in self.lines if line.kind == "pair")

    @property
    def unpaired_count(self) -> int:
        return sum(1 for line in self.lines if line.kind == "unpaired")

    def to_payout(self, computed_at: Optional[datetime] = None) -> "Payout":
        return Payout(
            creator_id=self.creator_id,
            cycle_id=self.cycle_id,
            base_pay=self.base_pay,
            bonus_pay=self.bonus_pay,
            total_amount=self.total_amount,
            eligible_views=self.eligible_views,
            snapshot_ig_rate=self.ig_rate,
            snapshot_tt_rate=self.tt_rate,
            snapshot_default_rate=self.default_rate,
            computed_at=computed_at,
        )


# ---------------------------------------------------------------------------
# Payout - persisted per (creator_id, cycle_id); recompute overwrites it
# ---------------------------------------------------------------------------
class Payout(BaseModel):
    creator_id: int
    cycle_id: int
    base_pay: Decimal = Decimal("0.00")
    bonus_pay: Decimal = Decimal("0.00")
    total_amount: Decimal = Decimal("0.00")
    eligible_views: int = 0
    snapshot_ig_rate: Optional[Decimal] = None
    snapshot_tt_rate: Optional[Decimal] = None
    snapshot_default_rate: Optional[Decimal] = None
    computed_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Bulk recompute outcome - collect-and-report, never fail-fast
# ---------------------------------------------------------------------------
class RecomputeFailure(BaseModel):
    creator_id: int
    cycle_id: int
    error: str


class RecomputeReport(BaseModel):
    cycle_id: int
    succeeded: list[Payout] = Field(default_factory=list)
    failures: list[RecomputeFailure] = Field(default_factory=list)

    @property
    def total_amount(self) -> Decimal:
        return sum((p.total_amount for p in self.succeeded), Decimal("0.00"))

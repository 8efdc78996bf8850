"""
Collaborator interfaces the payout engine reads from and the caller writes to.

  VideoStore        list_eligible_videos(creator_id, start, end) -> list[Video]
  CycleStore        list_cycles() -> list[PayoutCycle]   (ordered by start_date)
  SettingsSource    get_rate_config(creator_id) -> RateConfig
                    get_default_base_pay() -> Decimal
                    get_live_bonus_tiers() -> list[BonusTier]
  PayoutRepository  get(creator_id, cycle_id) -> Payout | None
                    upsert(payout) -> Payout   (last-write-wins per key)

The engine never writes to the first three. In-memory implementations back
the tests, the CSV importer and the report tooling; a host application plugs
in its own database-backed versions.
"""

import logging
import threading
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional, Protocol

import config
from models.schemas import BonusTier, Payout, PayoutCycle, RateConfig, Video, order_tiers
from services.errors import CycleNotFoundError

logger = logging.getLogger(__name__)


# ===========================================================================
# Protocols
# ===========================================================================

class VideoStore(Protocol):
    def list_eligible_videos(
        self, creator_id: int, start: datetime, end: datetime
    ) -> list[Video]: ...


class CycleStore(Protocol):
    def list_cycles(self) -> list[PayoutCycle]: ...


class SettingsSource(Protocol):
    def get_rate_config(self, creator_id: int) -> RateConfig: ...
    def get_default_base_pay(self) -> Decimal: ...
    def get_live_bonus_tiers(self) -> list[BonusTier]: ...


class PayoutRepository(Protocol):
    def get(self, creator_id: int, cycle_id: int) -> Optional[Payout]: ...
    def upsert(self, payout: Payout) -> Payout: ...


# ===========================================================================
# In-memory implementations
# ===========================================================================

class InMemoryVideoStore:
    def __init__(self, videos: Iterable[Video] = ()):
        self._videos: dict[int, Video] = {}
        self.add_all(videos)

    def add_all(self, videos: Iterable[Video]) -> None:
        for video in videos:
            self._videos[video.id] = video

    def replace(self, video: Video) -> None:
        """Swap a stored record (reviewer flags a video, re-sync updates views)."""
        self._videos[video.id] = video

    def creator_ids(self) -> list[int]:
        return sorted({v.creator_id for v in self._videos.values()})

    def list_eligible_videos(
        self, creator_id: int, start: datetime, end: datetime
    ) -> list[Video]:
        """Videos of one creator posted in [start, end], not marked irrelevant."""
        return sorted(
            (
                v for v in self._videos.values()
                if v.creator_id == creator_id
                and v.is_payout_eligible
                and start <= v.posted_at <= end
            ),
            key=lambda v: (v.posted_at, v.id),
        )


class InMemoryCycleStore:
    def __init__(self, cycles: Iterable[PayoutCycle] = ()):
        self._cycles: dict[int, PayoutCycle] = {c.id: c for c in cycles}

    def add(self, cycle: PayoutCycle) -> None:
        self._cycles[cycle.id] = cycle

    def list_cycles(self) -> list[PayoutCycle]:
        return sorted(self._cycles.values(), key=lambda c: c.start_date)

    def get(self, cycle_id: int) -> PayoutCycle:
        try:
            return self._cycles[cycle_id]
        except KeyError:
            raise CycleNotFoundError(cycle_id) from None


class InMemorySettingsSource:
    """
    Live payout settings: global default base pay, live tier table and
    per-creator overrides. A creator with no overrides gets an empty
    RateConfig (both custom rates None).
    """

    def __init__(
        self,
        default_base_pay: Optional[Decimal] = None,
        bonus_tiers: Iterable[BonusTier] = (),
        rate_configs: Iterable[RateConfig] = (),
    ):
        if default_base_pay is None:
            default_base_pay = config.DEFAULT_BASE_PAY
        self.default_base_pay = default_base_pay
        self.bonus_tiers = list(bonus_tiers)
        self._rate_configs = {rc.creator_id: rc for rc in rate_configs}

    def set_rate_config(self, rate_config: RateConfig) -> None:
        self._rate_configs[rate_config.creator_id] = rate_config

    def get_rate_config(self, creator_id: int) -> RateConfig:
        return self._rate_configs.get(creator_id) or RateConfig(creator_id=creator_id)

    def get_default_base_pay(self) -> Decimal:
        return self.default_base_pay

    def get_live_bonus_tiers(self) -> list[BonusTier]:
        return order_tiers(self.bonus_tiers)


class InMemoryPayoutRepository:
    """Payout rows keyed by (creator_id, cycle_id); upsert overwrites."""

    def __init__(self, payouts: Iterable[Payout] = ()):
        self._rows: dict[tuple[int, int], Payout] = {}
        self._lock = threading.Lock()
        for payout in payouts:
            self._rows[(payout.creator_id, payout.cycle_id)] = payout

    def get(self, creator_id: int, cycle_id: int) -> Optional[Payout]:
        with self._lock:
            return self._rows.get((creator_id, cycle_id))

    def upsert(self, payout: Payout) -> Payout:
        key = (payout.creator_id, payout.cycle_id)
        with self._lock:
            replaced = key in self._rows
            self._rows[key] = payout
        logger.debug(
            f"Payout {'updated' if replaced else 'inserted'}: "
            f"creator={payout.creator_id} cycle={payout.cycle_id} "
            f"total=${payout.total_amount}"
        )
        return payout

    def list_for_cycle(self, cycle_id: int) -> list[Payout]:
        with self._lock:
            rows = [p for (_, cid), p in self._rows.items() if cid == cycle_id]
        return sorted(rows, key=lambda p: p.creator_id)

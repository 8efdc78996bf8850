"""
Shared test fixtures for the Creator Cycle Payout Engine test suite.

Three consecutive weekly cycles (March 2026) and a fixed clock placed inside
the second one:

  cycle 1  2026-03-01 00:00:00 → 2026-03-07 23:59:59   (frozen)
  cycle 2  2026-03-08 00:00:00 → 2026-03-14 23:59:59   (active)
  cycle 3  2026-03-15 00:00:00 → 2026-03-21 23:59:59   (future)

All timestamps are naive UTC, as the models normalise them.
"""

import sys
import os
import pytest
from datetime import datetime
from decimal import Decimal

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from models.schemas import BonusTier, PayoutCycle
from services.payout import CyclePayoutAggregator
from services.stores import (
    InMemoryCycleStore,
    InMemoryPayoutRepository,
    InMemorySettingsSource,
    InMemoryVideoStore,
)

NOW = datetime(2026, 3, 10, 12, 0, 0)


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def cycles():
    return [
        PayoutCycle(id=1, start_date=datetime(2026, 3, 1), end_date=datetime(2026, 3, 7, 23, 59, 59)),
        PayoutCycle(id=2, start_date=datetime(2026, 3, 8), end_date=datetime(2026, 3, 14, 23, 59, 59)),
        PayoutCycle(id=3, start_date=datetime(2026, 3, 15), end_date=datetime(2026, 3, 21, 23, 59, 59)),
    ]


@pytest.fixture
def live_tiers():
    """Monotone tier table: higher threshold, higher bonus."""
    return [
        BonusTier(view_threshold=1_000, bonus_amount=Decimal("5.00")),
        BonusTier(view_threshold=10_000, bonus_amount=Decimal("20.00")),
        BonusTier(view_threshold=100_000, bonus_amount=Decimal("50.00")),
    ]


@pytest.fixture
def video_store():
    return InMemoryVideoStore()


@pytest.fixture
def cycle_store(cycles):
    return InMemoryCycleStore(cycles)


@pytest.fixture
def settings(live_tiers):
    return InMemorySettingsSource(default_base_pay=Decimal("10.00"), bonus_tiers=live_tiers)


@pytest.fixture
def payout_repo():
    return InMemoryPayoutRepository()


@pytest.fixture
def aggregator(video_store, cycle_store, settings, payout_repo, clock):
    return CyclePayoutAggregator(
        videos=video_store,
        cycles=cycle_store,
        settings=settings,
        payouts=payout_repo,
        clock=clock,
    )

"""
Bulk payout recompute.

Fans out one CyclePayoutAggregator.compute per creator on a bounded thread
pool and upserts each successful result. Creators are independent: each task
reads only that creator's videos and writes only its own (creator, cycle)
Payout row.

Failure policy: collect-and-report. One creator failing never blocks or
cancels the others; the failure is logged and returned in the
RecomputeReport, and nothing is written for that creator.

Concurrent recomputes of the SAME (creator, cycle) are serialised with a
per-key lock; writes are last-write-wins upserts.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from typing import Callable, Iterable, Optional

import config
from models.schemas import Payout, PayoutCycle, RecomputeFailure, RecomputeReport
from services.errors import CycleNotFoundError, CycleRecomputeError
from services.payout import CyclePayoutAggregator, utcnow
from services.stores import CycleStore, PayoutRepository

logger = logging.getLogger(__name__)


class KeyedLocks:
    """
    One lock per (creator_id, cycle_id), held only while someone uses it.

    Each entry counts its holders and waiters; the last one out removes it,
    so a long-lived recomputer keeps no lock for keys it is not working on.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[tuple[int, int], list] = {}  # key -> [lock, users]

    @contextmanager
    def hold(self, creator_id: int, cycle_id: int):
        key = (creator_id, cycle_id)
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1

        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


def find_cycle(cycles: CycleStore, cycle_id: int) -> PayoutCycle:
    for cycle in cycles.list_cycles():
        if cycle.id == cycle_id:
            return cycle
    raise CycleNotFoundError(cycle_id)


class PayoutRecomputer:
    def __init__(
        self,
        aggregator: CyclePayoutAggregator,
        payouts: PayoutRepository,
        max_workers: Optional[int] = None,
        clock: Optional[Callable] = None,
    ):
        self.aggregator = aggregator
        self.payouts = payouts
        self.max_workers = max_workers or config.RECOMPUTE_MAX_WORKERS
        self.clock = clock or utcnow
        self._locks = KeyedLocks()

    def recompute_creator(
        self,
        creator_id: int,
        cycle: PayoutCycle,
        use_current_rates: Optional[bool] = None,
    ) -> Payout:
        """
        Compute and upsert one creator's payout.

        The whole computation runs under the (creator, cycle) lock so the
        stored snapshot read by the rate resolver and the write that replaces
        it cannot interleave with another recompute of the same key.

        Raises:
            CycleRecomputeError: wrapping whatever the computation or the
                                 write raised
        """
        with self._locks.hold(creator_id, cycle.id):
            try:
                result = self.aggregator.compute(creator_id, cycle, use_current_rates)
                return self.payouts.upsert(result.to_payout(computed_at=self.clock()))
            except Exception as e:
                raise CycleRecomputeError(creator_id, cycle.id, e) from e

    def recompute_cycle(
        self,
        cycle: PayoutCycle,
        creator_ids: Iterable[int],
        use_current_rates: Optional[bool] = None,
    ) -> RecomputeReport:
        """
        Recompute every listed creator for one cycle.

        Returns:
            RecomputeReport with the upserted Payouts (sorted by creator) and
            one RecomputeFailure per creator that could not be computed
        """
        creator_ids = sorted(set(creator_ids))
        report = RecomputeReport(cycle_id=cycle.id)
        if not creator_ids:
            logger.info(f"Cycle {cycle.id}: no creators to recompute")
            return report

        workers = max(1, min(self.max_workers, len(creator_ids)))
        logger.info(
            f"Recomputing cycle {cycle.id} for {len(creator_ids)} creators "
            f"({workers} workers)"
        )

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                pool.submit(self.recompute_creator, cid, cycle, use_current_rates): cid
                for cid in creator_ids
            }
            for future in as_completed(futures):
                creator_id = futures[future]
                try:
                    report.succeeded.append(future.result())
                except CycleRecomputeError as e:
                    logger.error(str(e))
                    report.failures.append(RecomputeFailure(
                        creator_id=creator_id,
                        cycle_id=cycle.id,
                        error=str(e.cause),
                    ))

        report.succeeded.sort(key=lambda p: p.creator_id)
        report.failures.sort(key=lambda f: f.creator_id)

        logger.info(
            f"Cycle {cycle.id} recompute complete: "
            f"{len(report.succeeded)} succeeded, {len(report.failures)} failed, "
            f"total=${report.total_amount:,.2f}"
        )
        return report

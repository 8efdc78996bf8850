"""
Exceptions raised by the payout engine.

Data-absence (missing posted_at / duration) and configuration-absence (no
rates, no tiers) are NOT errors; they narrow eligibility or default to zero.
Collaborator failures propagate unchanged from the engine; bulk recompute
wraps them per creator in CycleRecomputeError.
"""


class PayoutEngineError(Exception):
    """Base class for payout engine errors."""


class CycleNotFoundError(PayoutEngineError):
    def __init__(self, cycle_id: int):
        super().__init__(f"Payout cycle {cycle_id} not found")
        self.cycle_id = cycle_id


class InvalidTierSnapshotError(PayoutEngineError):
    """A stored bonus tier snapshot could not be parsed."""


class CycleRecomputeError(PayoutEngineError):
    def __init__(self, creator_id: int, cycle_id: int, cause: Exception):
        super().__init__(
            f"could not recompute cycle {cycle_id} for creator {creator_id}: {cause}"
        )
        self.creator_id = creator_id
        self.cycle_id = cycle_id
        self.cause = cause

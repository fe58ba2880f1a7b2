from .duration_backfill import DurationBackfill
from .duration_lookup import DurationLookup
from .reconciler import ReconciliationEngine
from .types import BackfillResult, ChannelOutcome, RunResult

__all__ = [
    "BackfillResult",
    "ChannelOutcome",
    "DurationBackfill",
    "DurationLookup",
    "ReconciliationEngine",
    "RunResult",
]

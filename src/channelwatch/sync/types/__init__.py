from .backfill_result import BackfillResult
from .run_result import ChannelOutcome, RunResult

__all__ = [
    "BackfillResult",
    "ChannelOutcome",
    "RunResult",
]

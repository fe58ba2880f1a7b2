"""Result of one reconciliation run.

Per-item failures are collected while the run progresses and surfaced
through this object once the whole batch is done.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ...db.types import Channel
from ...exceptions import DurationLookupError, ThumbnailDownloadError


@dataclass(frozen=True)
class ChannelOutcome:
    """What reconciliation changed for one channel.

    Attributes:
        channel_id: The channel identifier.
        reachable: False if the feed could not be fetched.
        created: Number of videos created.
        deleted: Number of watched videos pruned.
        retained: Number of unwatched videos kept although the feed no longer
            lists them.
    """

    channel_id: int
    reachable: bool
    created: int = 0
    deleted: int = 0
    retained: int = 0


@dataclass
class RunResult:
    """Results from a ReconciliationEngine.run() operation.

    Attributes:
        start_time: When the run began.
        total_duration_seconds: Time taken by the whole run.
        not_found: Channels whose feed could not be fetched, in run order.
        duration_errors: Per-video duration lookup failures.
        thumbnail_errors: Per-video thumbnail download failures.
        per_channel: Outcome for every processed channel, in run order.
    """

    start_time: datetime
    total_duration_seconds: float = 0.0
    not_found: list[Channel] = field(default_factory=list[Channel])
    duration_errors: list[DurationLookupError] = field(
        default_factory=list[DurationLookupError]
    )
    thumbnail_errors: list[ThumbnailDownloadError] = field(
        default_factory=list[ThumbnailDownloadError]
    )
    per_channel: list[ChannelOutcome] = field(default_factory=list[ChannelOutcome])

    @property
    def created_count(self) -> int:
        """Total videos created."""
        return sum(outcome.created for outcome in self.per_channel)

    @property
    def deleted_count(self) -> int:
        """Total videos pruned."""
        return sum(outcome.deleted for outcome in self.per_channel)

    @property
    def has_errors(self) -> bool:
        """True if any channel or video failed."""
        return bool(self.not_found or self.duration_errors or self.thumbnail_errors)

    def summary_dict(self) -> dict[str, Any]:
        """Return a dictionary summary suitable for logging."""
        return {
            "channels": len(self.per_channel),
            "total_duration_seconds": self.total_duration_seconds,
            "videos_created": self.created_count,
            "videos_deleted": self.deleted_count,
            "not_found": [channel.name for channel in self.not_found],
            "duration_errors": len(self.duration_errors),
            "thumbnail_errors": len(self.thumbnail_errors),
        }

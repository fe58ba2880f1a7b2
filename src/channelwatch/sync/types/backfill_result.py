"""Result of one duration backfill."""

from dataclasses import dataclass, field

from ...db.types import Video
from ...exceptions import DurationLookupError


@dataclass(frozen=True)
class BackfillResult:
    """Videos whose duration was stored, and the lookups that failed.

    Attributes:
        updated: Videos with their new duration, in input order.
        errors: One error per video whose lookup failed.
    """

    updated: list[Video] = field(default_factory=list[Video])
    errors: list[DurationLookupError] = field(default_factory=list[DurationLookupError])

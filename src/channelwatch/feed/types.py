"""Neutral representation of a fetched channel feed."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class FeedEntry:
    """One video listed by a channel feed.

    Attributes:
        external_id: External video identifier.
        title: Video title.
        link: Canonical link of the video.
        published: Publication datetime (UTC).
        thumbnail_url: Remote thumbnail URL, if the feed listed one.
    """

    external_id: str
    title: str
    link: str
    published: datetime
    thumbnail_url: str | None = None


@dataclass(frozen=True)
class FetchedFeed:
    """Entries of one successful feed fetch, in feed order.

    Attributes:
        entries: Entries that parsed completely.
        rejected_ids: External ids of entries dropped because a field failed
            to parse. The feed still lists them, so they count as seen.
    """

    entries: list[FeedEntry] = field(default_factory=list[FeedEntry])
    rejected_ids: frozenset[str] = frozenset()

    @property
    def seen_ids(self) -> set[str]:
        """Return every external id the feed listed."""
        return {entry.external_id for entry in self.entries} | self.rejected_ids

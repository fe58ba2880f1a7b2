"""Fetch and parse the Atom feed of a channel."""

from datetime import UTC, datetime
import logging
from typing import Any

import feedparser  # type: ignore
import httpx

from ..db.types import Channel
from ..exceptions import ChannelUnreachableError
from .types import FeedEntry, FetchedFeed

logger = logging.getLogger(__name__)

PUBLISHED_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Reported by feedparser for documents that still parsed completely.
BENIGN_PARSE_ISSUES = (
    feedparser.CharacterEncodingOverride,  # type: ignore
    feedparser.NonXMLContentType,  # type: ignore
)


def _thumbnail_url(entry: Any) -> str | None:
    match entry.get("media_thumbnail"):
        case [{"url": str(url)}, *_] if url:
            return url
        case {"url": str(url)} if url:
            return url
        case _:
            return None


def _parse_entry(entry: Any) -> FeedEntry:
    """Build a FeedEntry from a feedparser entry.

    Raises:
        ValueError: If the published timestamp is missing or malformed.
    """
    published_raw = entry.get("published")
    if not published_raw:
        raise ValueError("Entry has no published timestamp.")
    published = datetime.strptime(published_raw, PUBLISHED_FORMAT).astimezone(UTC)
    return FeedEntry(
        external_id=entry["yt_videoid"],
        title=entry.get("title", ""),
        link=entry.get("link", ""),
        published=published,
        thumbnail_url=_thumbnail_url(entry),
    )


class FeedFetcher:
    """Retrieve one channel's video list from its feed.

    Attributes:
        _feed_base_url: Prefix joined with a channel's external id.
    """

    def __init__(self, feed_base_url: str):
        self._feed_base_url = feed_base_url

    async def _get(self, url: str, channel: Channel) -> bytes:
        async with httpx.AsyncClient(follow_redirects=True) as client:
            try:
                response = await client.get(url)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise ChannelUnreachableError(
                    "Failed to fetch channel feed.",
                    channel_id=channel.id,
                    external_id=channel.external_id,
                    url=url,
                ) from e
        return response.content

    async def fetch(self, channel: Channel) -> FetchedFeed:
        """Fetch the entries currently listed by a channel's feed.

        Entries without a video id are dropped. Entries whose published
        timestamp cannot be parsed are dropped too, but their ids are kept in
        ``rejected_ids``. Repeated ids keep their first occurrence.

        Args:
            channel: The channel to fetch.

        Returns:
            The parsed feed.

        Raises:
            ChannelUnreachableError: If the request fails or the document is
                malformed, even when some entries could be read.
        """
        url = channel.feed_url(self._feed_base_url)
        log_params: dict[str, Any] = {
            "channel_id": channel.id,
            "external_id": channel.external_id,
            "url": url,
        }
        logger.debug("Fetching channel feed.", extra=log_params)

        content = await self._get(url, channel)
        parsed = feedparser.parse(content)  # type: ignore
        if parsed.bozo and not isinstance(  # type: ignore
            parsed.get("bozo_exception"),  # type: ignore
            BENIGN_PARSE_ISSUES,
        ):
            raise ChannelUnreachableError(
                "Channel feed is malformed.",
                channel_id=channel.id,
                external_id=channel.external_id,
                url=url,
            ) from parsed.get("bozo_exception")  # type: ignore

        entries: list[FeedEntry] = []
        rejected_ids: set[str] = set()
        seen: set[str] = set()
        for raw_entry in parsed.entries:  # type: ignore
            external_id = raw_entry.get("yt_videoid")  # type: ignore
            if not external_id or external_id in seen:
                continue
            seen.add(external_id)  # type: ignore
            try:
                entries.append(_parse_entry(raw_entry))
            except ValueError as e:
                logger.warning(
                    "Dropping feed entry with unparseable timestamp.",
                    extra={
                        **log_params,
                        "video_external_id": external_id,
                        "published": raw_entry.get("published"),  # type: ignore
                    },
                    exc_info=e,
                )
                rejected_ids.add(external_id)  # type: ignore

        logger.debug(
            "Channel feed parsed.",
            extra={
                **log_params,
                "entries": len(entries),
                "rejected": len(rejected_ids),
            },
        )
        return FetchedFeed(entries=entries, rejected_ids=frozenset(rejected_ids))

from .feed_fetcher import PUBLISHED_FORMAT, FeedFetcher
from .types import FeedEntry, FetchedFeed

__all__ = [
    "PUBLISHED_FORMAT",
    "FeedEntry",
    "FeedFetcher",
    "FetchedFeed",
]

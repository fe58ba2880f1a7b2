"""Import channel subscriptions from an OPML file."""

from dataclasses import dataclass
import logging
from pathlib import Path
from urllib.parse import urlsplit

import aiofiles
from lxml import etree

from ..db import ChannelDatabase
from ..db.types import Channel
from ..exceptions import TransferError
from ..worker.types import ProgressCallback

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpmlOutline:
    """One subscription listed in an OPML file.

    Attributes:
        name: Display name of the channel.
        external_id: Channel id taken from the feed URL.
    """

    name: str
    external_id: str


def _is_valid_url(url: str) -> bool:
    parts = urlsplit(url)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def parse_opml(content: bytes) -> list[OpmlOutline]:
    """Extract subscriptions from an OPML document.

    Outlines without a valid ``xmlUrl`` are skipped, and so are repeated
    external ids.

    Raises:
        etree.XMLSyntaxError: If the document is not well-formed XML.
    """
    root = etree.fromstring(content)
    outlines: list[OpmlOutline] = []
    seen: set[str] = set()
    for element in root.iter("outline"):
        url = (element.get("xmlUrl") or "").strip()
        if not _is_valid_url(url) or "=" not in url:
            logger.debug("Skipping outline without feed URL.", extra={"url": url})
            continue
        external_id = url.rsplit("=", 1)[-1]
        if not external_id or external_id in seen:
            continue
        seen.add(external_id)
        name = element.get("title") or element.get("text") or external_id
        outlines.append(OpmlOutline(name=name, external_id=external_id))
    return outlines


class OpmlImporter:
    """Add the channels of an OPML file that are not tracked yet.

    Attributes:
        _channel_db: Database manager for channel records.
    """

    def __init__(self, channel_db: ChannelDatabase):
        self._channel_db = channel_db

    async def import_file(
        self, file_path: Path, progress: ProgressCallback | None = None
    ) -> list[Channel]:
        """Import the subscriptions of an OPML file.

        Args:
            file_path: The OPML file.
            progress: Optional callback receiving (fraction done, message).

        Returns:
            The channels that were added.

        Raises:
            TransferError: If the file cannot be read or parsed.
            DatabaseOperationError: If the database operation fails.
        """
        try:
            async with aiofiles.open(file_path, "rb") as f:
                content = await f.read()
            outlines = parse_opml(content)
        except (OSError, etree.XMLSyntaxError) as e:
            raise TransferError(
                "Failed to read OPML file.", file_path=str(file_path)
            ) from e

        added: list[Channel] = []
        for i, outline in enumerate(outlines):
            if progress:
                progress((i + 1) / len(outlines), f"Importing {outline.name}...")
            existing = await self._channel_db.get_channel_by_external_id(
                outline.external_id
            )
            if existing is not None:
                continue
            added.append(
                await self._channel_db.add_channel(
                    Channel(name=outline.name, external_id=outline.external_id)
                )
            )

        logger.info(
            "OPML import completed.",
            extra={
                "file_path": str(file_path),
                "outlines": len(outlines),
                "added": len(added),
            },
        )
        return added

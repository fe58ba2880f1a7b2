"""Tests for OPML subscription import."""

from collections.abc import AsyncGenerator
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from channelwatch.db import ChannelDatabase
from channelwatch.db.sqlalchemy_core import SqlalchemyCore
from channelwatch.db.types import Channel
from channelwatch.exceptions import TransferError
from channelwatch.migrations import LATEST_SCHEMA_VERSION
from channelwatch.transfer import OpmlImporter
from channelwatch.transfer.opml_importer import OpmlOutline, parse_opml

SUBSCRIPTIONS_OPML = b"""<?xml version="1.0" encoding="UTF-8"?>
<opml version="1.1">
  <head><title>Subscriptions</title></head>
  <body>
    <outline text="YouTube Subscriptions" title="YouTube Subscriptions">
      <outline text="Alpha" title="Alpha Channel" type="rss"
        xmlUrl="https://www.youtube.com/feeds/videos.xml?channel_id=UC_alpha"/>
      <outline text="Beta" type="rss"
        xmlUrl="https://www.youtube.com/feeds/videos.xml?channel_id=UC_beta"/>
      <outline text="Alpha again" type="rss"
        xmlUrl="https://www.youtube.com/feeds/videos.xml?channel_id=UC_alpha"/>
      <outline text="No query" type="rss" xmlUrl="https://example.com/feed.xml"/>
      <outline text="Not a URL" type="rss" xmlUrl="ftp://example.com/?id=x"/>
      <outline text="No URL at all"/>
    </outline>
  </body>
</opml>
"""

# --- Fixtures ---


@pytest_asyncio.fixture
async def db_core(tmp_path: Path) -> AsyncGenerator[SqlalchemyCore]:
    """Provides an initialized SqlalchemyCore instance for testing."""
    core = SqlalchemyCore(tmp_path)
    await core.initialize(LATEST_SCHEMA_VERSION)
    yield core
    await core.close()


@pytest.fixture
def channel_db(db_core: SqlalchemyCore) -> ChannelDatabase:
    """Provides a ChannelDatabase instance for testing."""
    return ChannelDatabase(db_core)


@pytest.fixture
def opml_file(tmp_path: Path) -> Path:
    """Provides an OPML file with a nested subscription list."""
    path = tmp_path / "subscriptions.opml"
    path.write_bytes(SUBSCRIPTIONS_OPML)
    return path


# --- Tests for parse_opml ---


@pytest.mark.unit
def test_parse_opml():
    """Valid outlines are kept once each, named by title or text."""
    assert parse_opml(SUBSCRIPTIONS_OPML) == [
        OpmlOutline(name="Alpha Channel", external_id="UC_alpha"),
        OpmlOutline(name="Beta", external_id="UC_beta"),
    ]


# --- Tests for OpmlImporter ---


@pytest.mark.unit
@pytest.mark.asyncio
async def test_import_adds_new_channels(channel_db: ChannelDatabase, opml_file: Path):
    """Listed channels are added as subscribed channels."""
    progress = MagicMock()

    added = await OpmlImporter(channel_db).import_file(opml_file, progress)

    assert [c.external_id for c in added] == ["UC_alpha", "UC_beta"]
    stored = await channel_db.get_channels()
    assert [(c.name, c.subscribed) for c in stored] == [
        ("Alpha Channel", True),
        ("Beta", True),
    ]
    assert progress.call_args.args[0] == 1.0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_import_skips_tracked_channels(
    channel_db: ChannelDatabase, opml_file: Path
):
    """A channel already tracked keeps its name and is not added twice."""
    await channel_db.add_channel(Channel(name="My Alpha", external_id="UC_alpha"))

    added = await OpmlImporter(channel_db).import_file(opml_file)

    assert [c.external_id for c in added] == ["UC_beta"]
    names = [c.name for c in await channel_db.get_channels()]
    assert names == ["Beta", "My Alpha"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_import_missing_file(channel_db: ChannelDatabase, tmp_path: Path):
    """An unreadable file raises TransferError."""
    with pytest.raises(TransferError) as exc_info:
        await OpmlImporter(channel_db).import_file(tmp_path / "missing.opml")
    assert exc_info.value.file_path == str(tmp_path / "missing.opml")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_import_malformed_file(channel_db: ChannelDatabase, tmp_path: Path):
    """A file that is not XML raises TransferError and adds nothing."""
    path = tmp_path / "broken.opml"
    path.write_text("<opml><body><outline")

    with pytest.raises(TransferError):
        await OpmlImporter(channel_db).import_file(path)
    assert await channel_db.get_channels() == []

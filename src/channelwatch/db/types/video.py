"""Video table mapped with SQLModel."""

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer
from sqlmodel import Field, Relationship, SQLModel

from .timezone_aware_datetime import TimezoneAwareDatetime

if TYPE_CHECKING:
    from .channel import Channel


class Video(SQLModel, table=True):
    """ORM model representing one published video of a channel.

    Attributes:
        id: Store-assigned identifier.
        channel_id: Identifier of the owning channel.
        title: Video title.
        external_id: External video identifier, unique across all videos.
            Reconciliation matches feed entries to videos by this value.
        published: Publication datetime (UTC).
        thumbnail_url: Remote thumbnail URL, if the feed listed one.
        thumbnail_file: File name of the stored thumbnail inside the thumbnails
            directory, None until a thumbnail was stored.
        watched: Whether the user has watched the video.
        duration: Duration in seconds, 0 when unknown.
        start_time: Optional resume offset in seconds.

    Relationships:
        channel: The owning channel.
    """

    id: int | None = Field(default=None, primary_key=True)
    channel_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("channel.id", ondelete="CASCADE"),
            nullable=False,
        )
    )
    title: str
    external_id: str = Field(index=True, unique=True)
    published: datetime = Field(sa_column=Column(TimezoneAwareDatetime, nullable=False))
    thumbnail_url: str | None = None
    thumbnail_file: str | None = None
    watched: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default="0"),
    )
    duration: int = Field(
        default=0, sa_column=Column(Integer, nullable=False, server_default="0")
    )
    start_time: int | None = None

    channel: "Channel" = Relationship(back_populates="videos")

    __table_args__ = (
        Index("idx_video_channel_watched", "channel_id", "watched"),
        Index("idx_video_published", "published"),
    )

    def watch_url(self, video_base_url: str) -> str:
        """Return the URL the video is watched at."""
        return f"{video_base_url}{self.external_id}"

    def __hash__(self) -> int:
        return hash(self.external_id)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Video):
            return False
        return self.external_id == other.external_id

    def model_dump_for_insert(self) -> dict[str, Any]:
        """Return column values for an insert, leaving ``id`` to the store."""
        return self.model_dump(exclude={"id"})

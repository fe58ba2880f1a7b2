"""Channel table mapped with SQLModel."""

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Column
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from .video import Video


class Channel(SQLModel, table=True):
    """ORM model representing a subscribed channel.

    Attributes:
        id: Store-assigned identifier.
        name: Display name.
        external_id: External channel identifier; the feed URL is the
            configured feed base URL followed by this value.
        subscribed: Whether the channel's videos count towards the aggregate
            unwatched views.

    Relationships:
        videos: Videos owned by this channel. Deleting the channel deletes them.
    """

    id: int | None = Field(default=None, primary_key=True)
    name: str
    external_id: str = Field(index=True)
    subscribed: bool = Field(
        default=True,
        sa_column=Column(Boolean, nullable=False, server_default="1"),
    )

    videos: list["Video"] = Relationship(
        back_populates="channel",
        sa_relationship_kwargs={"passive_deletes": True},
    )

    def feed_url(self, feed_base_url: str) -> str:
        """Return the feed URL of this channel."""
        return f"{feed_base_url}{self.external_id}"

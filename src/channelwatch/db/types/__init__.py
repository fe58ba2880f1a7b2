"""Database table types."""

from .channel import Channel
from .setting import SCHEMA_VERSION_KEY, Setting
from .timezone_aware_datetime import TimezoneAwareDatetime
from .video import Video

__all__ = [
    "SCHEMA_VERSION_KEY",
    "Channel",
    "Setting",
    "TimezoneAwareDatetime",
    "Video",
]

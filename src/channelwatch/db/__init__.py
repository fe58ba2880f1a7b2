from .channel_db import ChannelDatabase
from .settings_db import SettingsDatabase
from .video_db import VideoDatabase

__all__ = [
    "ChannelDatabase",
    "SettingsDatabase",
    "VideoDatabase",
]

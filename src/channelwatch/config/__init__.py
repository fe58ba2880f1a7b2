from .config import AppSettings, Command

__all__ = [
    "AppSettings",
    "Command",
]

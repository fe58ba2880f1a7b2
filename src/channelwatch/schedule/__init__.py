"""Periodic reconciliation of all channels."""

from .scheduler import SyncScheduler

__all__ = ["SyncScheduler"]

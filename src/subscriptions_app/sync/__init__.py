"""Periodic Patreon sync driver."""

from .scheduler import SyncScheduler

__all__ = ["SyncScheduler"]

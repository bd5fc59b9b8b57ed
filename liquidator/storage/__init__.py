"""Durable state."""
from .history import LiquidationHistoryStore
from .monitored import MonitoredSetStore
from .sync_state import SyncStateStore

__all__ = ["LiquidationHistoryStore", "MonitoredSetStore", "SyncStateStore"]

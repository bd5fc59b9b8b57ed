"""Service modules"""
from .batch_executor import BatchExecutor
from .liquidity_monitor import LiquidityMonitor
from .monitor import Monitor
from .scanner import LiquidationScanner
from .tracker import MonitoredSet, PositionTracker

__all__ = [
    "BatchExecutor",
    "LiquidationScanner",
    "LiquidityMonitor",
    "MonitoredSet",
    "Monitor",
    "PositionTracker",
]

"""Aave V3 liquidation detection and batching service."""

__version__ = "0.1.0"

"""Price oracle clients."""
from .aave import AaveOracle

__all__ = ["AaveOracle"]

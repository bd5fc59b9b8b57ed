"""Protocol interfaces for the liquidation service."""
from .chain import ChainClient
from .lending_pool import LendingPool
from .price_oracle import PriceOracle
from .settlement import Settlement

__all__ = ["ChainClient", "LendingPool", "PriceOracle", "Settlement"]

"""Price oracle protocol — USD price feed abstraction."""
from typing import Protocol

from ..models import AssetAddress


class PriceOracle(Protocol):
    """Abstract interface for resolving asset prices in USD."""

    async def get_asset_price_usd(self, asset: str, block: int | None = None) -> float: ...

    async def get_batch_asset_prices(
        self, assets: list[str], block: int | None = None
    ) -> dict[AssetAddress, float]: ...

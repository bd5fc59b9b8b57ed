"""Aave oracle price service with a process-lifetime cache."""
from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from ..exceptions import PriceUnavailableError
from ..models import BASE_CURRENCY_UNIT, AssetAddress

logger = logging.getLogger(__name__)

LATEST = "latest"


class AssetPriceSource(Protocol):
    async def get_asset_price(self, asset: str) -> int: ...


class AaveOracle:
    """USD prices from the Aave oracle (8-decimal fixed point).

    Prices are memoised per ``(asset, block)``. The block is part of the
    key but is not sent to the node: public endpoints do not reliably serve
    historical state, so every lookup reads the latest price. Historical
    profit recomputation is therefore an approximation.
    """

    def __init__(self, source: AssetPriceSource) -> None:
        self._source = source
        self._cache: dict[tuple[AssetAddress, int | str], float] = {}

    async def get_asset_price_usd(self, asset: str, block: int | None = None) -> float:
        key = (AssetAddress(asset), block if block is not None else LATEST)
        if key in self._cache:
            return self._cache[key]

        raw = await self._source.get_asset_price(key[0])
        if raw <= 0:
            raise PriceUnavailableError(key[0])
        price = raw / BASE_CURRENCY_UNIT
        self._cache[key] = price
        return price

    async def get_batch_asset_prices(
        self, assets: list[str], block: int | None = None
    ) -> dict[AssetAddress, float]:
        """Fetch several prices concurrently; failed assets are left out."""
        addresses = [AssetAddress(a) for a in assets]
        results = await asyncio.gather(
            *(self.get_asset_price_usd(a, block) for a in addresses),
            return_exceptions=True,
        )

        prices: dict[AssetAddress, float] = {}
        for asset, result in zip(addresses, results):
            if isinstance(result, BaseException):
                logger.error("Failed to fetch price for %s: %s", asset, result)
                continue
            prices[asset] = result
        return prices

    def cache_stats(self) -> dict[str, object]:
        return {"size": len(self._cache), "keys": [f"{a}_{b}" for a, b in self._cache]}

    def clear_cache(self) -> None:
        self._cache.clear()

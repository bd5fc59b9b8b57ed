"""Flash-loan source selection based on primary vault liquidity."""
from __future__ import annotations

import asyncio
import logging

from ..config import LiquidityConfig
from ..interfaces.chain import ChainClient
from ..models import AssetAddress, FlashSource, FlashSourceConfig
from .profit import to_decimal
from .token_registry import TokenRegistry

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = FlashSourceConfig(source=FlashSource.BALANCER, label="Balancer (Default)")
PRIMARY_SOURCE = FlashSourceConfig(source=FlashSource.BALANCER, label="Balancer")
TERTIARY_SOURCE = FlashSourceConfig(source=FlashSource.AAVE, label="Aave V3")


class LiquidityMonitor:
    """Periodically picks the best-funded flash-loan source per token.

    The source table is owned state handed in by the caller. Each poll
    overwrites one key per token; a token whose check fails keeps its
    previous selection.
    """

    def __init__(
        self,
        chain: ChainClient,
        registry: TokenRegistry,
        primary_vault: str,
        config: LiquidityConfig,
        sources: dict[AssetAddress, FlashSourceConfig] | None = None,
    ) -> None:
        self._chain = chain
        self._registry = registry
        self._vault = AssetAddress(primary_vault)
        self._config = config
        self._sources = sources if sources is not None else {}

    @property
    def sources(self) -> dict[AssetAddress, FlashSourceConfig]:
        return self._sources

    async def start(self, interval_seconds: float | None = None) -> None:
        """Check immediately, then every interval, for the process lifetime."""
        interval = interval_seconds or self._config.check_interval_seconds
        logger.info("Liquidity monitor started (interval: %ss)", interval)
        while True:
            await self.check_liquidity()
            await asyncio.sleep(interval)

    async def check_liquidity(self) -> None:
        logger.info("Liquidity check running...")
        for token in self._registry:
            await self._evaluate_token(token.address)
        logger.info("Liquidity check complete")

    async def _evaluate_token(self, token: AssetAddress) -> None:
        try:
            balance = await self._chain.balance_of(token, self._vault)
            decimals = await self._chain.decimals(token)
        except Exception as e:
            logger.warning("Failed to check liquidity for %s: %s", token, e)
            return

        price = self._config.static_prices.get(self._registry.symbol(token), 0.0)
        usd_value = to_decimal(balance, decimals) * price
        logger.debug("%s primary liquidity: $%.2f", self._registry.symbol(token), usd_value)

        if usd_value > self._config.min_primary_liquidity_usd:
            self._sources[token] = PRIMARY_SOURCE
            return

        secondary = self._config.flash_sources.get(token)
        if secondary is not None:
            self._sources[token] = FlashSourceConfig(
                source=secondary.source,
                pool=secondary.pool,
                label=secondary.label or "Uniswap/Other",
            )
        else:
            self._sources[token] = TERTIARY_SOURCE

    def get_source(self, asset: str) -> FlashSourceConfig:
        return self._sources.get(AssetAddress(asset), DEFAULT_SOURCE)

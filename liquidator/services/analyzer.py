"""Turns a liquidatable position into a concrete liquidation target."""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol, TypeVar

from ..config import ExecutorConfig
from ..models import (
    BASE_CURRENCY_UNIT,
    AssetAddress,
    FlashSource,
    LiquidationTarget,
    Position,
)
from ..protocols.aave import ReserveToken, UserReserveData
from .liquidity_monitor import LiquidityMonitor
from .profit import to_decimal

logger = logging.getLogger(__name__)

T = TypeVar("T")

RESERVES_TTL_SECONDS = 60 * 60
FULL_CLOSE_HF = 0.95

FLASH_FEE_BPS = {
    FlashSource.BALANCER: 0,
    FlashSource.UNISWAP: 5,
    FlashSource.AAVE: 9,
}


class ReserveReader(Protocol):
    async def get_reserve_tokens(self) -> list[ReserveToken]: ...

    async def get_user_reserve_data(self, asset: str, user: str) -> UserReserveData: ...

    async def get_asset_price(self, asset: str) -> int: ...

    async def decimals(self, token: str) -> int: ...


@dataclass(frozen=True)
class BestPair:
    collateral: AssetAddress
    debt: AssetAddress
    collateral_decimals: int
    collateral_price: int
    debt_decimals: int
    debt_price: int


class TargetAnalyzer:
    """Picks the collateral/debt pair and sizes the liquidation.

    Collateral is the largest USD balance flagged as collateral, debt is the
    largest USD variable debt. Close factor is 100% below HF 0.95 and 50%
    otherwise. Expected profit is the liquidation bonus minus the flash-loan
    fee and a flat gas estimate, all in 8-dp USD base units.
    """

    def __init__(
        self,
        reader: ReserveReader,
        liquidity: LiquidityMonitor,
        config: ExecutorConfig,
    ) -> None:
        self._reader = reader
        self._liquidity = liquidity
        self._config = config
        self._reserves: list[ReserveToken] | None = None
        self._reserves_loaded_at = 0.0
        self._reads = asyncio.Semaphore(config.read_concurrency)

    async def _reserve_tokens(self) -> list[ReserveToken]:
        stale = time.monotonic() - self._reserves_loaded_at > RESERVES_TTL_SECONDS
        if self._reserves is None or stale:
            self._reserves = await self._reader.get_reserve_tokens()
            self._reserves_loaded_at = time.monotonic()
        return self._reserves

    async def _bounded(self, read: Callable[[], Awaitable[T]]) -> T:
        async with self._reads:
            return await read()

    async def find_best_pair(self, user: str) -> BestPair | None:
        try:
            tokens = await self._reserve_tokens()
        except Exception as e:
            logger.error("Failed to load reserve list: %s", e)
            return None

        calls = []
        for token in tokens:
            asset = token.address
            calls.append(self._bounded(lambda a=asset: self._reader.decimals(a)))
            calls.append(self._bounded(lambda a=asset: self._reader.get_asset_price(a)))
            calls.append(
                self._bounded(lambda a=asset: self._reader.get_user_reserve_data(a, user))
            )
        results = await asyncio.gather(*calls, return_exceptions=True)

        failed = sorted(
            {tokens[i // 3].symbol for i, r in enumerate(results) if isinstance(r, BaseException)}
        )
        if failed:
            logger.warning(
                "Dropping %s: reserve reads failed for %s", user, ", ".join(failed)
            )
            return None

        best_collateral: tuple[float, ReserveToken, int, int] | None = None
        best_debt: tuple[float, ReserveToken, int, int] | None = None

        for i, token in enumerate(tokens):
            decimals, price, data = results[i * 3 : i * 3 + 3]
            price_usd = price / BASE_CURRENCY_UNIT
            collateral_usd = to_decimal(data.a_token_balance, decimals) * price_usd
            debt_usd = to_decimal(data.variable_debt, decimals) * price_usd

            if data.usage_as_collateral and collateral_usd > (best_collateral or (0.0,))[0]:
                best_collateral = (collateral_usd, token, decimals, price)
            if debt_usd > (best_debt or (0.0,))[0]:
                best_debt = (debt_usd, token, decimals, price)

        if best_collateral is None or best_debt is None:
            logger.info("Could not identify assets for %s", user)
            return None

        logger.debug(
            "Best pair for %s: collateral %s ($%.2f) / debt %s ($%.2f)",
            user,
            best_collateral[1].symbol,
            best_collateral[0],
            best_debt[1].symbol,
            best_debt[0],
        )
        return BestPair(
            collateral=best_collateral[1].address,
            debt=best_debt[1].address,
            collateral_decimals=best_collateral[2],
            collateral_price=best_collateral[3],
            debt_decimals=best_debt[2],
            debt_price=best_debt[3],
        )

    async def analyze(
        self, position: Position, skip_profit_check: bool = False
    ) -> LiquidationTarget | None:
        pair = await self.find_best_pair(position.address)
        if pair is None or pair.debt_price <= 0:
            return None

        hf = position.health_factor_value
        close_factor_pct = 100 if hf < FULL_CLOSE_HF else 50
        max_liquidation_base = position.total_debt_base * close_factor_pct // 100

        # base units and oracle price are both 8 dp, so they cancel
        debt_to_cover = max_liquidation_base * 10**pair.debt_decimals // pair.debt_price

        flash_source = self._liquidity.get_source(pair.debt)
        fee_bps = FLASH_FEE_BPS.get(flash_source.source, 0)

        bonus = max_liquidation_base * self._config.liquidation_bonus_pct // 100
        flash_fee = max_liquidation_base * fee_bps // 10_000
        gas = round(self._config.gas_estimate_usd * BASE_CURRENCY_UNIT)
        expected_profit = bonus - flash_fee - gas

        if not skip_profit_check:
            floor = round(self._config.min_profit_usd * BASE_CURRENCY_UNIT)
            if expected_profit < floor:
                logger.debug(
                    "Dropping %s: expected profit $%.4f below floor",
                    position.address,
                    expected_profit / BASE_CURRENCY_UNIT,
                )
                return None

        return LiquidationTarget(
            user=position.address,
            collateral_asset=pair.collateral,
            debt_asset=pair.debt,
            debt_to_cover=debt_to_cover,
            expected_profit=expected_profit,
            health_factor=hf,
            flash_source=flash_source,
        )

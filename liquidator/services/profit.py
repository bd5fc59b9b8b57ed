"""Liquidation profit model.

Raw on-chain amounts stay integers until the final decimal conversion. The
USD arithmetic is plain float: the result is used for ranking and
reporting, and the settlement contract enforces its own exact profit floor.
"""
from __future__ import annotations

from decimal import Decimal

from ..exceptions import PriceUnavailableError
from ..interfaces.price_oracle import PriceOracle
from ..models import AssetAddress, ProfitBreakdown
from .token_registry import TokenRegistry


NATIVE_DECIMALS = 18


def to_decimal(raw: int, decimals: int) -> float:
    """Scale an integer token amount by ``10**decimals``."""
    if decimals < 0:
        raise ValueError("decimals must be non-negative")
    return float(Decimal(int(raw)).scaleb(-decimals))


def calculate_profit(
    *,
    collateral_amount: int,
    collateral_decimals: int,
    collateral_price: float,
    debt_amount: int,
    debt_decimals: int,
    debt_price: float,
    gas_used: int,
    gas_price: int,
    native_price: float,
    native_decimals: int = NATIVE_DECIMALS,
) -> ProfitBreakdown:
    """Return the USD breakdown; ``profit_usd`` = collateral - debt - gas."""
    collateral = to_decimal(collateral_amount, collateral_decimals)
    debt = to_decimal(debt_amount, debt_decimals)
    gas_native = to_decimal(int(gas_used) * int(gas_price), native_decimals)

    return ProfitBreakdown(
        collateral_usd=collateral * collateral_price,
        debt_usd=debt * debt_price,
        gas_usd=gas_native * native_price,
        collateral_amount=collateral,
        debt_amount=debt,
        collateral_price=collateral_price,
        debt_price=debt_price,
        native_price=native_price,
    )


class ProfitCalculator:
    """Resolves prices and decimals, then applies :func:`calculate_profit`."""

    def __init__(
        self, oracle: PriceOracle, registry: TokenRegistry, native_token: str
    ) -> None:
        self._oracle = oracle
        self._registry = registry
        self._native = AssetAddress(native_token)

    async def calculate_liquidation_profit(
        self,
        *,
        collateral_asset: str,
        debt_asset: str,
        liquidated_collateral: int,
        debt_to_cover: int,
        gas_used: int,
        gas_price: int,
        block_number: int | None = None,
    ) -> ProfitBreakdown:
        """Price a liquidation.

        Raises ``PriceUnavailableError`` or ``UnknownTokenError`` when an
        input cannot be resolved; a missing price is never treated as zero.
        """
        collateral = AssetAddress(collateral_asset)
        debt = AssetAddress(debt_asset)

        collateral_decimals = self._registry.decimals(collateral)
        debt_decimals = self._registry.decimals(debt)

        prices = await self._oracle.get_batch_asset_prices(
            [collateral, debt, self._native], block_number
        )
        for asset in (collateral, debt, self._native):
            if asset not in prices:
                raise PriceUnavailableError(asset)

        return calculate_profit(
            collateral_amount=liquidated_collateral,
            collateral_decimals=collateral_decimals,
            collateral_price=prices[collateral],
            debt_amount=debt_to_cover,
            debt_decimals=debt_decimals,
            debt_price=prices[debt],
            gas_used=gas_used,
            gas_price=gas_price,
            native_price=prices[self._native],
        )

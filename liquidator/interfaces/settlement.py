"""Settlement protocol — on-chain liquidation dispatch."""
from typing import Protocol

from ..models import LiquidationTarget


class Settlement(Protocol):
    """Abstract interface for submitting liquidations.

    Implementations return ``False`` for a reverted or failed submission;
    they may also raise, and callers treat both the same way.
    """

    @property
    def supports_batch(self) -> bool: ...

    async def execute_liquidation(self, target: LiquidationTarget) -> bool: ...

    async def execute_batch(self, targets: list[LiquidationTarget]) -> bool: ...

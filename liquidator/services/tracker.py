"""Borrower tracking driven by lending-pool events."""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterator

from ..config import TrackerConfig
from ..interfaces.lending_pool import LendingPool
from ..models import AssetAddress, Position, ProtocolEvent

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class MonitoredSet:
    """Addresses under active health-factor tracking.

    Only single-key insert and delete are exposed, so concurrent handlers
    never observe a half-applied update.
    """

    def __init__(self, addresses: list[str] | None = None) -> None:
        self._addresses: set[AssetAddress] = {AssetAddress(a) for a in addresses or []}
        self._version = 0

    @property
    def version(self) -> int:
        """Incremented on every successful add or discard."""
        return self._version

    def add(self, address: str) -> bool:
        addr = AssetAddress(address)
        if addr in self._addresses:
            return False
        self._addresses.add(addr)
        self._version += 1
        return True

    def discard(self, address: str) -> bool:
        addr = AssetAddress(address)
        if addr not in self._addresses:
            return False
        self._addresses.remove(addr)
        self._version += 1
        return True

    def __contains__(self, address: object) -> bool:
        try:
            return AssetAddress(address) in self._addresses  # type: ignore[arg-type]
        except ValueError:
            return False

    def __len__(self) -> int:
        return len(self._addresses)

    def __iter__(self) -> Iterator[AssetAddress]:
        return iter(self.snapshot())

    def snapshot(self) -> list[AssetAddress]:
        return sorted(self._addresses)


class PositionTracker:
    """Keeps the monitored set in step with Borrow/Repay/LiquidationCall.

    State per address: unmonitored -> (Borrow with debt >= min_debt_usd) ->
    monitored -> (Repay or LiquidationCall) -> re-read -> removed when the
    debt is zero. Decisions always use a fresh ``getUserAccountData`` read,
    never amounts from the event payload.
    """

    def __init__(
        self,
        pool: LendingPool,
        monitored: MonitoredSet,
        config: TrackerConfig,
    ) -> None:
        self._pool = pool
        self._monitored = monitored
        self._min_debt_usd = config.min_debt_usd

    @property
    def monitored(self) -> MonitoredSet:
        return self._monitored

    async def fetch_position(self, user: str) -> Position | None:
        """Read current account data; ``None`` if the read failed."""
        try:
            data = await self._pool.get_user_account_data(user)
        except Exception as e:
            logger.error("Error fetching account data for %s: %s", user, e)
            return None
        return Position.from_account_data(user, data, now_ms())

    async def handle(self, event: ProtocolEvent) -> None:
        if event.kind == "Borrow":
            await self.on_borrow(event.user)
        elif event.kind == "Repay":
            await self.reevaluate(event.user)
        elif event.kind == "LiquidationCall":
            logger.info("Liquidation detected for %s", event.user)
            await self.reevaluate(event.user)
        else:
            logger.warning("Ignoring unknown event kind %r", event.kind)

    async def on_borrow(self, user: str) -> None:
        position = await self.fetch_position(user)
        if position is None:
            return

        if position.debt_usd >= self._min_debt_usd:
            if self._monitored.add(user):
                logger.info(
                    "Tracking %s (debt $%.2f, HF %.4f)",
                    position.address,
                    position.debt_usd,
                    position.health_factor_value,
                )
        else:
            logger.debug("Ignoring %s: debt $%.2f below floor", position.address, position.debt_usd)

    async def reevaluate(self, user: str) -> None:
        """Re-read a monitored address and drop it once its debt is repaid."""
        if user not in self._monitored:
            return

        position = await self.fetch_position(user)
        if position is None:
            return

        if position.total_debt_base == 0:
            self._monitored.discard(user)
            logger.info("User exited (removing): %s", position.address)

    async def run(self, queue: asyncio.Queue[ProtocolEvent]) -> None:
        """Apply events from the ingestion queue one at a time, in order."""
        logger.info("Position tracker consuming events")
        while True:
            event = await queue.get()
            try:
                await self.handle(event)
            except Exception as e:
                logger.error("Failed to apply %s event for %s: %s", event.kind, event.user, e)
            finally:
                queue.task_done()

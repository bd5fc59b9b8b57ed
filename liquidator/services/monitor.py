"""Service orchestration — wires components and runs the evaluation loop."""
from __future__ import annotations

import asyncio
import logging

from ..config import AppConfig
from ..models import AssetAddress, BatchResult, LiquidationRecord, Position, ProtocolEvent
from ..oracles import AaveOracle
from ..protocols.aave import AaveClient
from ..rpc import RpcPool
from ..rpc.pool import build_client
from ..storage import LiquidationHistoryStore, MonitoredSetStore, SyncStateStore
from .analyzer import TargetAnalyzer
from .batch_executor import BatchExecutor
from .events import EventIngestor
from .liquidity_monitor import LiquidityMonitor
from .profit import ProfitCalculator
from .scanner import LiquidationScanner
from .settlement import FlashLiquidatorSettlement
from .token_registry import TokenRegistry
from .tracker import MonitoredSet, PositionTracker, now_ms

logger = logging.getLogger(__name__)


class Monitor:
    """Owns every component and the shared state they operate on."""

    def __init__(self, config: AppConfig, rpc_pool: RpcPool | None = None) -> None:
        self._config = config

        self._rpc = rpc_pool or RpcPool(config.chain)
        self._aave = AaveClient(self._rpc, config.protocol)
        self._registry = TokenRegistry(config.tokens)
        self._oracle = AaveOracle(self._aave)

        self._monitored = MonitoredSet()
        self._monitored_store = MonitoredSetStore(config.storage.monitored_path)
        self._saved_version = 0
        self._events: asyncio.Queue[ProtocolEvent] = asyncio.Queue()
        self._tracker = PositionTracker(self._aave, self._monitored, config.tracker)
        self._ingestor = EventIngestor(self._aave, self._aave, self._events, config.tracker)

        self._liquidity = LiquidityMonitor(
            self._aave,
            self._registry,
            config.protocol.balancer_vault,
            config.liquidity,
            sources={},
        )
        self._analyzer = TargetAnalyzer(self._aave, self._liquidity, config.executor)

        if config.chain.execution_rpc_url:
            execution_w3 = build_client(
                config.chain.execution_rpc_url,
                config.chain.rpc_timeout,
                config.chain.rpc_retries,
            )
        else:
            execution_w3 = self._rpc.get_client()
        self._settlement = FlashLiquidatorSettlement(
            execution_w3,
            config.protocol.flash_liquidator,
            config.executor,
            supports_batch=config.executor.use_batch_contract,
        )
        self._executor = BatchExecutor(self._analyzer, self._settlement, config.executor)

        self._profit = ProfitCalculator(self._oracle, self._registry, config.protocol.native_token)
        self._scanner = LiquidationScanner(
            self._rpc,
            self._aave,
            self._profit,
            SyncStateStore(config.storage.sync_state_path),
            LiquidationHistoryStore(config.storage.history_path),
            config.scanner,
        )

    @property
    def monitored(self) -> MonitoredSet:
        return self._monitored

    # ------------------------------------------------------------------
    # Monitored set persistence
    # ------------------------------------------------------------------

    async def restore_monitored(self) -> int:
        """Reload addresses tracked by a previous run; returns how many were added."""
        stored = await self._monitored_store.load()
        added = sum(self._monitored.add(a) for a in stored)
        self._saved_version = self._monitored.version
        if added:
            logger.info("Restored %d monitored addresses from %s", added, self._monitored_store.path)
        return added

    async def persist_monitored(self) -> bool:
        """Write the monitored set if it changed since the last save."""
        version = self._monitored.version
        if version == self._saved_version:
            return False
        await self._monitored_store.save(self._monitored.snapshot())
        self._saved_version = version
        return True

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def _read_position(self, address: AssetAddress) -> Position | None:
        """Read account data, retrying once on the next pooled endpoint.

        Returns ``None`` when every attempt failed.
        """
        attempts = min(2, len(self._rpc))
        for attempt in range(attempts):
            try:
                data = await self._aave.get_user_account_data(address)
                return Position.from_account_data(address, data, now_ms())
            except Exception as e:
                if attempt == attempts - 1:
                    logger.warning("Skipping %s this cycle, account read failed: %s", address, e)
                else:
                    logger.warning("Account read for %s failed, retrying: %s", address, e)
        return None

    async def evaluate_once(self) -> list[BatchResult]:
        """Re-read every monitored address and settle liquidatable ones.

        Addresses whose read fails are skipped for this cycle only. The
        cycle as a whole is skipped when no read succeeds.
        """
        addresses = self._monitored.snapshot()
        if not addresses:
            return []

        try:
            results = await self._rpc.parallel_fetch(
                [lambda a=a: self._read_position(a) for a in addresses],
                self._config.monitor.concurrency,
            )
        except Exception as e:
            logger.error("Evaluation cycle skipped: %s", e)
            return []

        positions = [p for p in results if p is not None]
        if not positions:
            logger.error("Evaluation cycle skipped: all %d account reads failed", len(addresses))
            return []

        candidates: list[Position] = []
        for position in positions:
            if position.total_debt_base == 0:
                self._monitored.discard(position.address)
            elif position.is_liquidatable:
                candidates.append(position)

        if not candidates:
            return []

        logger.info("%d of %d monitored positions are liquidatable", len(candidates), len(positions))
        batches = await self._executor.group_candidates(candidates)
        batch_results: list[BatchResult] = []
        for batch in batches:
            batch_results.append(await self._executor.execute_batch(batch))
        return batch_results

    async def scan_history(self, to_block: int | None = None) -> list[LiquidationRecord]:
        return await self._scanner.scan(to_block)

    # ------------------------------------------------------------------
    # Long-running loops
    # ------------------------------------------------------------------

    async def run_evaluation_loop(self, interval_seconds: int | None = None) -> None:
        interval = interval_seconds or self._config.monitor.evaluation_interval_seconds
        logger.info("Starting evaluation loop (every %d seconds)", interval)

        while True:
            try:
                await self.evaluate_once()
            except Exception as e:
                logger.error("Error in evaluation loop: %s", e)
            try:
                await self.persist_monitored()
            except Exception as e:
                logger.error("Failed to save monitored set: %s", e)
            await asyncio.sleep(interval)

    async def run(self) -> None:
        """Run every component for the process lifetime."""
        logger.info("RPC pool: %s", self._rpc.stats())
        await self.restore_monitored()
        await asyncio.gather(
            self._liquidity.start(),
            self._ingestor.run(),
            self._tracker.run(self._events),
            self.run_evaluation_loop(),
        )

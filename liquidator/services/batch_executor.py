"""Groups liquidation candidates by debt asset and dispatches settlement."""
from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from ..config import ExecutorConfig
from ..interfaces.settlement import Settlement
from ..models import (
    BASE_CURRENCY_UNIT,
    AssetAddress,
    BatchOpportunity,
    BatchResult,
    LiquidationTarget,
    Position,
)

logger = logging.getLogger(__name__)


class CandidateAnalyzer(Protocol):
    async def analyze(
        self, position: Position, skip_profit_check: bool = False
    ) -> LiquidationTarget | None: ...


class BatchExecutor:
    """Builds per-debt-asset batches and settles them all-or-nothing.

    Individual targets are not profit-gated: many small positive positions
    may add up to a profitable batch. Only the dust floor is applied per
    candidate. A batch whose aggregate expected profit is not positive is
    skipped entirely.
    """

    def __init__(
        self,
        analyzer: CandidateAnalyzer,
        settlement: Settlement,
        config: ExecutorConfig,
    ) -> None:
        self._analyzer = analyzer
        self._settlement = settlement
        self._config = config
        self._dust_floor_base = round(config.dust_floor_usd * BASE_CURRENCY_UNIT)

    async def group_candidates(self, candidates: list[Position]) -> list[BatchOpportunity]:
        logger.info("Analyzing %d candidates for grouping", len(candidates))

        eligible = [c for c in candidates if c.total_debt_base >= self._dust_floor_base]
        dropped = len(candidates) - len(eligible)
        if dropped:
            logger.debug("Dropped %d dust candidates", dropped)

        results = await asyncio.gather(
            *(self._analyze(c) for c in eligible)
        )

        batches: dict[AssetAddress, BatchOpportunity] = {}
        for target in results:
            if target is None:
                continue
            batch = batches.get(target.debt_asset)
            if batch is None:
                batch = batches[target.debt_asset] = BatchOpportunity(debt_asset=target.debt_asset)
            batch.add(target)

        logger.info("Created %d batches", len(batches))
        return list(batches.values())

    async def _analyze(self, candidate: Position) -> LiquidationTarget | None:
        try:
            return await self._analyzer.analyze(candidate, skip_profit_check=True)
        except Exception as e:
            logger.error("Failed to analyze %s: %s", candidate.address, e)
            return None

    async def execute_batch(self, batch: BatchOpportunity) -> BatchResult:
        profit_usd = batch.expected_profit_usd
        logger.info(
            "Executing batch [%s] — %d users, total debt %d, est. profit $%.4f",
            batch.debt_asset.short(),
            len(batch.targets),
            batch.total_debt_to_cover,
            profit_usd,
        )

        if profit_usd <= 0:
            logger.info("Batch skipped: no profit ($%.4f)", profit_usd)
            return BatchResult(skipped=True)

        if self._config.use_batch_contract and self._settlement.supports_batch:
            try:
                if await self._settlement.execute_batch(batch.targets):
                    n = len(batch.targets)
                    return BatchResult(skipped=False, attempted=n, succeeded=n)
                logger.warning("Batch settlement reverted; falling back to sequential")
            except Exception as e:
                logger.error("Batch settlement failed (%s); falling back to sequential", e)

        return await self._execute_sequential(batch.targets)

    async def _execute_sequential(self, targets: list[LiquidationTarget]) -> BatchResult:
        logger.warning("Running sequential fallback for %d targets", len(targets))
        succeeded = failed = 0
        for target in targets:
            try:
                ok = await self._settlement.execute_liquidation(target)
            except Exception as e:
                logger.error("Liquidation of %s failed: %s", target.user, e)
                ok = False
            if ok:
                succeeded += 1
            else:
                failed += 1
        return BatchResult(
            skipped=False, attempted=len(targets), succeeded=succeeded, failed=failed
        )

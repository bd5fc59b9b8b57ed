"""Resumable historical scan of LiquidationCall events with profit recomputation."""
from __future__ import annotations

import itertools
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Protocol, TypeVar

from ..config import ScannerConfig
from ..exceptions import PriceUnavailableError, UnknownTokenError
from ..models import EventKind, LiquidationRecord, ProtocolEvent, SyncState, ZERO_ADDRESS
from ..protocols.aave import TxGas
from ..storage import LiquidationHistoryStore, SyncStateStore
from .profit import ProfitCalculator
from .tracker import now_ms

logger = logging.getLogger(__name__)

T = TypeVar("T")


class HistoryReader(Protocol):
    async def block_number(self) -> int: ...

    async def block_timestamp(self, block_number: int) -> int: ...

    async def tx_gas(self, tx_hash: str) -> TxGas: ...

    async def get_events(
        self, kind: EventKind, from_block: int, to_block: int
    ) -> list[ProtocolEvent]: ...


class TaskRunner(Protocol):
    async def parallel_fetch(
        self, tasks: Iterable[Callable[[], Awaitable[T]]], concurrency: int = 6
    ) -> list[T]: ...


class LiquidationScanner:
    """Scans from the last checkpoint to the chain head.

    Log windows and per-event pricing both go through the pool's bounded
    task runner. Records are appended to the history file before the
    checkpoint moves. An RPC or storage failure aborts the pass and the next
    run repeats it. Records whose prices or decimals cannot be resolved are
    dropped.
    """

    def __init__(
        self,
        runner: TaskRunner,
        reader: HistoryReader,
        profit: ProfitCalculator,
        store: SyncStateStore,
        history: LiquidationHistoryStore,
        config: ScannerConfig,
    ) -> None:
        self._runner = runner
        self._reader = reader
        self._profit = profit
        self._store = store
        self._history = history
        self._config = config

    async def _start_block(self) -> int:
        state = await self._store.load()
        if state is None:
            return self._config.default_start_block
        return state.last_scanned_block + 1

    def _windows(self, start: int, end: int) -> list[tuple[int, int]]:
        size = self._config.chunk_size
        return [(s, min(s + size - 1, end)) for s in range(start, end + 1, size)]

    async def scan(self, to_block: int | None = None) -> list[LiquidationRecord]:
        start = await self._start_block()
        head = to_block if to_block is not None else await self._reader.block_number()
        if start > head:
            logger.info("Sync state is current (block %d)", head)
            return []

        windows = self._windows(start, head)
        logger.info("Scanning blocks %d-%d in %d windows", start, head, len(windows))

        batches = await self._runner.parallel_fetch(
            [
                lambda s=s, e=e: self._reader.get_events("LiquidationCall", s, e)
                for s, e in windows
            ],
            self._config.concurrency,
        )
        events = sorted(
            itertools.chain.from_iterable(batches),
            key=lambda ev: (ev.block_number, ev.log_index),
        )
        logger.info("Found %d liquidations, computing profit...", len(events))

        timestamps: dict[int, int] = {}
        priced = await self._runner.parallel_fetch(
            [lambda ev=ev: self._to_record(ev, timestamps) for ev in events],
            self._config.concurrency,
        )
        records = sorted(
            (r for r in priced if r is not None),
            key=lambda r: (r.block_number, r.tx_hash),
        )

        await self._history.append(records)
        await self._store.save(
            SyncState(last_scanned_block=head, last_scanned_timestamp=now_ms())
        )
        logger.info("Scan complete: %d records, synced to block %d", len(records), head)
        return records

    async def _to_record(
        self, event: ProtocolEvent, timestamps: dict[int, int]
    ) -> LiquidationRecord | None:
        if event.block_number not in timestamps:
            timestamps[event.block_number] = await self._reader.block_timestamp(event.block_number)
        gas = await self._reader.tx_gas(event.tx_hash)

        try:
            breakdown = await self._profit.calculate_liquidation_profit(
                collateral_asset=event.collateral_asset,
                debt_asset=event.debt_asset,
                liquidated_collateral=event.liquidated_collateral_amount,
                debt_to_cover=event.debt_to_cover,
                gas_used=gas.gas_used,
                gas_price=gas.gas_price,
                block_number=event.block_number,
            )
        except (PriceUnavailableError, UnknownTokenError) as e:
            logger.warning("Dropping liquidation %s: %s", event.tx_hash, e)
            return None

        return LiquidationRecord(
            tx_hash=event.tx_hash,
            block_number=event.block_number,
            timestamp=timestamps[event.block_number],
            user=event.user,
            collateral_asset=event.collateral_asset,
            debt_asset=event.debt_asset,
            debt_to_cover=event.debt_to_cover,
            liquidated_collateral=event.liquidated_collateral_amount,
            liquidator=event.liquidator or ZERO_ADDRESS,
            receive_a_token=event.receive_a_token,
            gas_used=gas.gas_used,
            gas_price=gas.gas_price,
            breakdown=breakdown,
        )

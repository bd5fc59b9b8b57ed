"""Lending-pool log polling into a single ordered ingestion queue."""
from __future__ import annotations

import asyncio
import itertools
import logging

from ..config import TrackerConfig
from ..interfaces.chain import ChainClient
from ..interfaces.lending_pool import LendingPool
from ..models import EventKind, ProtocolEvent

logger = logging.getLogger(__name__)

TRACKED_EVENTS: tuple[EventKind, ...] = ("Borrow", "Repay", "LiquidationCall")


class EventIngestor:
    """Polls Borrow, Repay and LiquidationCall logs and enqueues them.

    The three log streams are fetched independently for the same block
    window, merged and sorted by ``(block_number, log_index)``, then put on
    one queue so the consumer applies them in chain order. A window is only
    advanced past after all three fetches succeed.
    """

    def __init__(
        self,
        pool: LendingPool,
        chain: ChainClient,
        queue: asyncio.Queue[ProtocolEvent],
        config: TrackerConfig,
        start_block: int | None = None,
    ) -> None:
        self._pool = pool
        self._chain = chain
        self._queue = queue
        self._config = config
        self._next_block = start_block

    @property
    def next_block(self) -> int | None:
        return self._next_block

    async def poll_once(self) -> int:
        """Fetch one block window; return how many events were enqueued."""
        head = await self._chain.block_number()
        if self._next_block is None:
            self._next_block = head
        if head < self._next_block:
            return 0

        from_block = self._next_block
        to_block = min(head, from_block + self._config.max_block_range - 1)

        batches = await asyncio.gather(
            *(self._pool.get_events(kind, from_block, to_block) for kind in TRACKED_EVENTS)
        )
        events = sorted(
            itertools.chain.from_iterable(batches),
            key=lambda e: (e.block_number, e.log_index),
        )
        for event in events:
            await self._queue.put(event)

        self._next_block = to_block + 1
        if events:
            logger.debug("Enqueued %d events from blocks %d-%d", len(events), from_block, to_block)
        return len(events)

    async def run(self) -> None:
        logger.info("Listening for %s", "/".join(TRACKED_EVENTS))
        while True:
            try:
                await self.poll_once()
            except Exception as e:
                logger.warning("Event poll failed (will retry window): %s", e)
            await asyncio.sleep(self._config.poll_interval_seconds)

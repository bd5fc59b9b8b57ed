"""Integration tests for event ingestion feeding the position tracker."""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from liquidator.config import TrackerConfig
from liquidator.models import HEALTH_FACTOR_ONE, AccountData, EventKind, ProtocolEvent
from liquidator.services.events import EventIngestor
from liquidator.services.tracker import MonitoredSet, PositionTracker

from tests.conftest import USER_U, USER_V, USER_W, usd


class FakeChain:
    """In-memory lending pool: account data, logs per block and a head."""

    def __init__(self) -> None:
        self.head = 100
        self.debts: dict[str, float] = {}
        self.logs: list[ProtocolEvent] = []
        self.failing_reads: set[str] = set()
        self.failing_kinds: set[str] = set()
        self.account_reads = 0

    async def block_number(self) -> int:
        return self.head

    async def balance_of(self, token: str, holder: str) -> int:
        return 0

    async def decimals(self, token: str) -> int:
        return 18

    async def get_user_account_data(self, user: str) -> AccountData:
        self.account_reads += 1
        if user in self.failing_reads:
            raise RuntimeError("503 Service Unavailable")
        debt = usd(self.debts.get(user, 0.0))
        return AccountData(
            total_collateral_base=debt * 2,
            total_debt_base=debt,
            available_borrows_base=0,
            current_liquidation_threshold=8000,
            ltv=7500,
            health_factor=2 * HEALTH_FACTOR_ONE if debt else 2**256 - 1,
        )

    async def get_events(
        self, kind: EventKind, from_block: int, to_block: int
    ) -> list[ProtocolEvent]:
        if kind in self.failing_kinds:
            raise RuntimeError("query returned more than 10000 results")
        return [
            e for e in self.logs if e.kind == kind and from_block <= e.block_number <= to_block
        ]


def _event(kind: EventKind, user: str, block: int, index: int = 0) -> ProtocolEvent:
    return ProtocolEvent(kind=kind, user=user, block_number=block, log_index=index)


@pytest.fixture()
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture()
def config() -> TrackerConfig:
    return TrackerConfig(min_debt_usd=50.0, poll_interval_seconds=0, max_block_range=10)


async def _drain(queue: asyncio.Queue[ProtocolEvent], tracker: PositionTracker) -> None:
    while not queue.empty():
        await tracker.handle(queue.get_nowait())


class TestTrackerFlow:
    @pytest.mark.asyncio
    async def test_borrow_repay_lifecycle(self, chain: FakeChain, config: TrackerConfig) -> None:
        queue: asyncio.Queue[ProtocolEvent] = asyncio.Queue()
        monitored = MonitoredSet()
        tracker = PositionTracker(chain, monitored, config)
        ingestor = EventIngestor(chain, chain, queue, config, start_block=100)

        chain.debts = {USER_U: 75.0, USER_V: 40.0}
        chain.logs = [_event("Borrow", USER_U, 100, 1), _event("Borrow", USER_V, 100, 2)]
        assert await ingestor.poll_once() == 2
        await _drain(queue, tracker)

        assert USER_U in monitored
        assert USER_V not in monitored

        chain.head = 101
        chain.debts[USER_U] = 0.0
        chain.logs.append(_event("Repay", USER_U, 101))
        assert await ingestor.poll_once() == 1
        await _drain(queue, tracker)

        assert USER_U not in monitored
        assert len(monitored) == 0

    @pytest.mark.asyncio
    async def test_partial_repay_keeps_address(
        self, chain: FakeChain, config: TrackerConfig
    ) -> None:
        monitored = MonitoredSet([USER_U])
        tracker = PositionTracker(chain, monitored, config)
        chain.debts = {USER_U: 10.0}

        await tracker.handle(_event("Repay", USER_U, 101))

        assert USER_U in monitored

    @pytest.mark.asyncio
    async def test_reevaluate_is_idempotent(self, chain: FakeChain, config: TrackerConfig) -> None:
        monitored = MonitoredSet([USER_U, USER_W])
        tracker = PositionTracker(chain, monitored, config)
        chain.debts = {USER_U: 0.0, USER_W: 80.0}

        await tracker.reevaluate(USER_U)
        await tracker.reevaluate(USER_W)
        first = monitored.snapshot()
        await tracker.reevaluate(USER_U)
        await tracker.reevaluate(USER_W)

        assert monitored.snapshot() == first == [USER_W]

    @pytest.mark.asyncio
    async def test_events_for_unmonitored_address_ignored(
        self, chain: FakeChain, config: TrackerConfig
    ) -> None:
        tracker = PositionTracker(chain, MonitoredSet(), config)

        await tracker.handle(_event("Repay", USER_U, 100))
        await tracker.handle(_event("LiquidationCall", USER_U, 100))

        assert chain.account_reads == 0

    @pytest.mark.asyncio
    async def test_liquidation_to_zero_debt_removes(
        self, chain: FakeChain, config: TrackerConfig
    ) -> None:
        monitored = MonitoredSet([USER_U])
        tracker = PositionTracker(chain, monitored, config)

        await tracker.handle(_event("LiquidationCall", USER_U, 100))

        assert USER_U not in monitored

    @pytest.mark.asyncio
    async def test_failed_read_keeps_address(self, chain: FakeChain, config: TrackerConfig) -> None:
        monitored = MonitoredSet([USER_U])
        tracker = PositionTracker(chain, monitored, config)
        chain.failing_reads = {USER_U}

        await tracker.handle(_event("Repay", USER_U, 100))

        assert USER_U in monitored

    @pytest.mark.asyncio
    async def test_failed_borrow_read_does_not_add(
        self, chain: FakeChain, config: TrackerConfig
    ) -> None:
        monitored = MonitoredSet()
        tracker = PositionTracker(chain, monitored, config)
        chain.failing_reads = {USER_U}

        await tracker.handle(_event("Borrow", USER_U, 100))

        assert len(monitored) == 0

    @pytest.mark.asyncio
    async def test_debt_at_floor_is_tracked(self, chain: FakeChain, config: TrackerConfig) -> None:
        monitored = MonitoredSet()
        tracker = PositionTracker(chain, monitored, config)
        chain.debts = {USER_U: 50.0}

        await tracker.handle(_event("Borrow", USER_U, 100))

        assert USER_U in monitored


class TestEventIngestor:
    @pytest.mark.asyncio
    async def test_events_enqueued_in_chain_order(
        self, chain: FakeChain, config: TrackerConfig
    ) -> None:
        queue: asyncio.Queue[ProtocolEvent] = asyncio.Queue()
        ingestor = EventIngestor(chain, chain, queue, config, start_block=99)
        chain.logs = [
            _event("Repay", USER_U, 100, 5),
            _event("LiquidationCall", USER_V, 99, 9),
            _event("Borrow", USER_U, 100, 2),
        ]

        await ingestor.poll_once()

        order = [queue.get_nowait() for _ in range(queue.qsize())]
        assert [(e.block_number, e.log_index) for e in order] == [(99, 9), (100, 2), (100, 5)]

    @pytest.mark.asyncio
    async def test_window_bounded_by_max_range(
        self, chain: FakeChain, config: TrackerConfig
    ) -> None:
        chain.head = 150
        ingestor = EventIngestor(chain, chain, asyncio.Queue(), config, start_block=100)

        await ingestor.poll_once()

        assert ingestor.next_block == 110

    @pytest.mark.asyncio
    async def test_starts_at_head_without_start_block(
        self, chain: FakeChain, config: TrackerConfig
    ) -> None:
        chain.head = 500
        ingestor = EventIngestor(chain, chain, asyncio.Queue(), config)

        await ingestor.poll_once()

        assert ingestor.next_block == 501

    @pytest.mark.asyncio
    async def test_failed_fetch_does_not_advance(
        self, chain: FakeChain, config: TrackerConfig
    ) -> None:
        queue: asyncio.Queue[ProtocolEvent] = asyncio.Queue()
        ingestor = EventIngestor(chain, chain, queue, config, start_block=100)
        chain.logs = [_event("Borrow", USER_U, 100)]
        chain.failing_kinds = {"Repay"}

        with pytest.raises(RuntimeError):
            await ingestor.poll_once()

        assert ingestor.next_block == 100
        assert queue.empty()

    @pytest.mark.asyncio
    async def test_nothing_new_when_caught_up(
        self, chain: FakeChain, config: TrackerConfig
    ) -> None:
        ingestor = EventIngestor(chain, chain, asyncio.Queue(), config, start_block=101)
        assert await ingestor.poll_once() == 0
        assert ingestor.next_block == 101


class TestTrackerConsumer:
    @pytest.mark.asyncio
    async def test_run_applies_queued_events(
        self, chain: FakeChain, config: TrackerConfig
    ) -> None:
        queue: asyncio.Queue[ProtocolEvent] = asyncio.Queue()
        monitored = MonitoredSet()
        tracker = PositionTracker(chain, monitored, config)
        chain.debts = {USER_U: 100.0}
        await queue.put(_event("Borrow", USER_U, 100))

        task = asyncio.create_task(tracker.run(queue))
        await asyncio.wait_for(queue.join(), timeout=1)
        task.cancel()

        assert USER_U in monitored

    @pytest.mark.asyncio
    async def test_run_survives_handler_error(
        self, chain: FakeChain, config: TrackerConfig
    ) -> None:
        queue: asyncio.Queue[ProtocolEvent] = asyncio.Queue()
        monitored = MonitoredSet()
        tracker = PositionTracker(chain, monitored, config)
        tracker.handle = AsyncMock(side_effect=[RuntimeError("boom"), None])  # type: ignore[method-assign]
        await queue.put(_event("Borrow", USER_U, 100))
        await queue.put(_event("Borrow", USER_V, 100))

        task = asyncio.create_task(tracker.run(queue))
        await asyncio.wait_for(queue.join(), timeout=1)
        task.cancel()

        assert tracker.handle.await_count == 2

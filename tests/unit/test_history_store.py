"""Unit tests for the liquidation history file."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from liquidator.models import LiquidationRecord, ProfitBreakdown
from liquidator.storage import LiquidationHistoryStore

from tests.conftest import USDC, USER_U, WETH

LIQUIDATOR = "0x" + "9" * 40


def _record(tx_hash: str, timestamp: int) -> LiquidationRecord:
    return LiquidationRecord(
        tx_hash=tx_hash,
        block_number=timestamp - 1_700_000_000,
        timestamp=timestamp,
        user=USER_U,
        collateral_asset=WETH,
        debt_asset=USDC,
        debt_to_cover=1000 * 10**6,
        liquidated_collateral=525 * 10**15,
        liquidator=LIQUIDATOR,
        receive_a_token=False,
        gas_used=1_000_000,
        gas_price=10**9,
        breakdown=ProfitBreakdown(
            collateral_usd=1050.0,
            debt_usd=1000.0,
            gas_usd=2.0,
            collateral_amount=0.525,
            debt_amount=1000.0,
            collateral_price=2000.0,
            debt_price=1.0,
            native_price=2000.0,
        ),
    )


class TestLiquidationHistoryStore:
    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert await LiquidationHistoryStore(tmp_path / "history.json").load() == []

    @pytest.mark.asyncio
    async def test_append_writes_records(self, tmp_path: Path) -> None:
        store = LiquidationHistoryStore(tmp_path / "history.json")

        assert await store.append([_record("0xa", 1_700_000_100)]) == 1

        [stored] = await store.load()
        assert stored["txHash"] == "0xa"
        assert stored["debtToCover"] == str(1000 * 10**6)
        assert stored["totalGasCost"] == str(10**15)
        assert stored["profitUSD"] == pytest.approx(48.0)
        assert stored["breakdown"]["nativePrice"] == 2000.0

    @pytest.mark.asyncio
    async def test_duplicates_skipped_and_sorted(self, tmp_path: Path) -> None:
        store = LiquidationHistoryStore(tmp_path / "history.json")
        await store.append([_record("0xb", 1_700_000_200)])

        added = await store.append(
            [_record("0xb", 1_700_000_200), _record("0xa", 1_700_000_100)]
        )

        assert added == 1
        assert [r["txHash"] for r in await store.load()] == ["0xa", "0xb"]

    @pytest.mark.asyncio
    async def test_backup_holds_previous_contents(self, tmp_path: Path) -> None:
        store = LiquidationHistoryStore(tmp_path / "history.json")
        await store.append([_record("0xa", 1_700_000_100)])
        await store.append([_record("0xb", 1_700_000_200)])

        backup = json.loads((tmp_path / "history.backup.json").read_text())
        assert [r["txHash"] for r in backup] == ["0xa"]

    @pytest.mark.asyncio
    async def test_nothing_new_leaves_file_untouched(self, tmp_path: Path) -> None:
        store = LiquidationHistoryStore(tmp_path / "history.json")
        assert await store.append([]) == 0
        assert not (tmp_path / "history.json").exists()

    @pytest.mark.asyncio
    async def test_non_list_file_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "history.json"
        path.write_text(json.dumps({"txHash": "0xa"}))
        with pytest.raises(ValueError):
            await LiquidationHistoryStore(path).load()

"""Data models — value objects are frozen, batch accumulators are not."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Literal

from web3 import Web3

HEALTH_FACTOR_ONE = 10**18
BASE_CURRENCY_DECIMALS = 8
BASE_CURRENCY_UNIT = 10**BASE_CURRENCY_DECIMALS

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


class AssetAddress(str):
    """EVM address normalised to lower case.

    Every dict keyed by a token or user address uses this type, so lookups
    never depend on the checksum casing an RPC node or config file happened
    to return.
    """

    def __new__(cls, value: str) -> AssetAddress:
        if isinstance(value, AssetAddress):
            return value
        if not isinstance(value, str) or not _ADDRESS_RE.match(value):
            raise ValueError(f"Not an EVM address: {value!r}")
        return super().__new__(cls, value.lower())

    @property
    def checksum(self) -> str:
        return Web3.to_checksum_address(self)

    def short(self) -> str:
        return f"{self[:8]}...{self[-6:]}"


ZERO_ADDRESS = AssetAddress("0x" + "0" * 40)


class FlashSource(IntEnum):
    """Flash-loan provider id understood by the settlement contract."""

    BALANCER = 0
    UNISWAP = 1
    AAVE = 2


@dataclass(frozen=True)
class FlashSourceConfig:
    source: FlashSource
    pool: AssetAddress | None = None
    label: str = ""


@dataclass(frozen=True)
class AccountData:
    """Result of ``Pool.getUserAccountData``."""

    total_collateral_base: int
    total_debt_base: int
    available_borrows_base: int
    current_liquidation_threshold: int
    ltv: int
    health_factor: int


@dataclass(frozen=True)
class Position:
    """Borrower snapshot; USD fields in 8-dp base units, HF in 18 dp."""

    address: AssetAddress
    health_factor: int
    total_collateral_base: int
    total_debt_base: int
    available_borrows_base: int
    last_update: int

    def __post_init__(self) -> None:
        for name in ("total_collateral_base", "total_debt_base", "available_borrows_base"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")

    @classmethod
    def from_account_data(
        cls, address: str, data: AccountData, last_update: int
    ) -> Position:
        return cls(
            address=AssetAddress(address),
            health_factor=data.health_factor,
            total_collateral_base=data.total_collateral_base,
            total_debt_base=data.total_debt_base,
            available_borrows_base=data.available_borrows_base,
            last_update=last_update,
        )

    @property
    def debt_usd(self) -> float:
        return self.total_debt_base / BASE_CURRENCY_UNIT

    @property
    def collateral_usd(self) -> float:
        return self.total_collateral_base / BASE_CURRENCY_UNIT

    @property
    def health_factor_value(self) -> float:
        return self.health_factor / HEALTH_FACTOR_ONE

    @property
    def is_liquidatable(self) -> bool:
        return self.health_factor < HEALTH_FACTOR_ONE


@dataclass(frozen=True)
class LiquidationTarget:
    """Ephemeral candidate built during grouping and consumed by dispatch.

    ``debt_to_cover`` is in the debt asset's native units; ``expected_profit``
    is in 8-dp USD base units and may be negative.
    """

    user: AssetAddress
    collateral_asset: AssetAddress
    debt_asset: AssetAddress
    debt_to_cover: int
    expected_profit: int
    health_factor: float
    flash_source: FlashSourceConfig


@dataclass
class BatchOpportunity:
    debt_asset: AssetAddress
    targets: list[LiquidationTarget] = field(default_factory=list)
    total_debt_to_cover: int = 0
    total_expected_profit: int = 0

    def add(self, target: LiquidationTarget) -> None:
        if target.debt_asset != self.debt_asset:
            raise ValueError(
                f"Target debt asset {target.debt_asset} does not match batch {self.debt_asset}"
            )
        self.targets.append(target)
        self.total_debt_to_cover += target.debt_to_cover
        self.total_expected_profit += target.expected_profit

    @property
    def expected_profit_usd(self) -> float:
        return self.total_expected_profit / BASE_CURRENCY_UNIT


@dataclass(frozen=True)
class BatchResult:
    skipped: bool
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0


@dataclass(frozen=True)
class SyncState:
    last_scanned_block: int
    last_scanned_timestamp: int

    def to_json(self) -> dict[str, int]:
        return {
            "lastScannedBlock": self.last_scanned_block,
            "lastScannedTimestamp": self.last_scanned_timestamp,
        }

    @classmethod
    def from_json(cls, raw: dict[str, int]) -> SyncState:
        return cls(
            last_scanned_block=int(raw["lastScannedBlock"]),
            last_scanned_timestamp=int(raw["lastScannedTimestamp"]),
        )


EventKind = Literal["Borrow", "Repay", "LiquidationCall"]


@dataclass(frozen=True)
class ProtocolEvent:
    """Decoded lending-pool event as carried on the ingestion queue.

    ``user`` is the address whose position changed: ``onBehalfOf`` for
    Borrow, ``user`` for Repay and LiquidationCall.
    """

    kind: EventKind
    user: AssetAddress
    block_number: int
    log_index: int = 0
    tx_hash: str = ""
    collateral_asset: AssetAddress | None = None
    debt_asset: AssetAddress | None = None
    debt_to_cover: int = 0
    liquidated_collateral_amount: int = 0
    liquidator: AssetAddress | None = None
    receive_a_token: bool = False


@dataclass(frozen=True)
class ProfitBreakdown:
    collateral_usd: float
    debt_usd: float
    gas_usd: float
    collateral_amount: float
    debt_amount: float
    collateral_price: float
    debt_price: float
    native_price: float

    @property
    def profit_usd(self) -> float:
        return self.collateral_usd - self.debt_usd - self.gas_usd


@dataclass(frozen=True)
class LiquidationRecord:
    """Historical liquidation with recomputed USD profit."""

    tx_hash: str
    block_number: int
    timestamp: int
    user: AssetAddress
    collateral_asset: AssetAddress
    debt_asset: AssetAddress
    debt_to_cover: int
    liquidated_collateral: int
    liquidator: AssetAddress
    receive_a_token: bool
    gas_used: int
    gas_price: int
    breakdown: ProfitBreakdown

    @property
    def total_gas_cost(self) -> int:
        return self.gas_used * self.gas_price

    @property
    def profit_usd(self) -> float:
        return self.breakdown.profit_usd

    def to_json(self) -> dict[str, object]:
        b = self.breakdown
        return {
            "txHash": self.tx_hash,
            "blockNumber": self.block_number,
            "timestamp": self.timestamp,
            "user": self.user,
            "collateralAsset": self.collateral_asset,
            "debtAsset": self.debt_asset,
            "debtToCover": str(self.debt_to_cover),
            "liquidatedCollateral": str(self.liquidated_collateral),
            "liquidator": self.liquidator,
            "receiveAToken": self.receive_a_token,
            "gasUsed": str(self.gas_used),
            "gasPrice": str(self.gas_price),
            "totalGasCost": str(self.total_gas_cost),
            "profitUSD": self.profit_usd,
            "breakdown": {
                "collateralUSD": b.collateral_usd,
                "debtUSD": b.debt_usd,
                "gasUSD": b.gas_usd,
                "collateralAmount": b.collateral_amount,
                "debtAmount": b.debt_amount,
                "collateralPrice": b.collateral_price,
                "debtPrice": b.debt_price,
                "nativePrice": b.native_price,
            },
        }

"""Aave V3 contract reads over the RPC pool."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from web3 import AsyncWeb3

from ...config import ProtocolConfig
from ...models import AccountData, AssetAddress, EventKind, ProtocolEvent
from ...rpc import RpcPool
from .abi import DATA_PROVIDER_ABI, ERC20_ABI, ORACLE_ABI, POOL_ABI

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReserveToken:
    symbol: str
    address: AssetAddress


@dataclass(frozen=True)
class UserReserveData:
    a_token_balance: int
    variable_debt: int
    usage_as_collateral: bool


@dataclass(frozen=True)
class TxGas:
    gas_used: int
    gas_price: int


class AaveClient:
    """Typed wrappers around Pool, PoolDataProvider, AaveOracle and ERC-20.

    Every call takes the next client from the pool. Failures propagate; the
    caller decides whether to skip or retry on another endpoint.
    """

    def __init__(self, rpc_pool: RpcPool, config: ProtocolConfig) -> None:
        self._pool = rpc_pool
        self._pool_address = AssetAddress(config.pool)
        self._data_provider = AssetAddress(config.data_provider)
        self._oracle = AssetAddress(config.oracle)

    @property
    def pool_address(self) -> AssetAddress:
        return self._pool_address

    def _contract(self, address: AssetAddress, abi: list[dict[str, Any]], w3: AsyncWeb3 | None = None):
        w3 = w3 or self._pool.get_client()
        return w3.eth.contract(address=address.checksum, abi=abi)

    # ------------------------------------------------------------------
    # Lending pool
    # ------------------------------------------------------------------

    async def get_user_account_data(self, user: str) -> AccountData:
        pool = self._contract(self._pool_address, POOL_ABI)
        result = await pool.functions.getUserAccountData(AssetAddress(user).checksum).call()
        return AccountData(*(int(v) for v in result))

    async def get_reserve_tokens(self) -> list[ReserveToken]:
        provider = self._contract(self._data_provider, DATA_PROVIDER_ABI)
        tokens = await provider.functions.getAllReservesTokens().call()
        return [ReserveToken(symbol=symbol, address=AssetAddress(addr)) for symbol, addr in tokens]

    async def get_user_reserve_data(self, asset: str, user: str) -> UserReserveData:
        provider = self._contract(self._data_provider, DATA_PROVIDER_ABI)
        data = await provider.functions.getUserReserveData(
            AssetAddress(asset).checksum, AssetAddress(user).checksum
        ).call()
        return UserReserveData(
            a_token_balance=int(data[0]),
            variable_debt=int(data[2]),
            usage_as_collateral=bool(data[8]),
        )

    # ------------------------------------------------------------------
    # Oracle / ERC-20
    # ------------------------------------------------------------------

    async def get_asset_price(self, asset: str) -> int:
        oracle = self._contract(self._oracle, ORACLE_ABI)
        return int(await oracle.functions.getAssetPrice(AssetAddress(asset).checksum).call())

    async def balance_of(self, token: str, holder: str) -> int:
        erc20 = self._contract(AssetAddress(token), ERC20_ABI)
        return int(await erc20.functions.balanceOf(AssetAddress(holder).checksum).call())

    async def decimals(self, token: str) -> int:
        erc20 = self._contract(AssetAddress(token), ERC20_ABI)
        return int(await erc20.functions.decimals().call())

    # ------------------------------------------------------------------
    # Chain
    # ------------------------------------------------------------------

    async def block_number(self) -> int:
        return int(await self._pool.get_client().eth.block_number)

    async def block_timestamp(self, block_number: int) -> int:
        block = await self._pool.get_client().eth.get_block(block_number)
        return int(block["timestamp"])

    async def tx_gas(self, tx_hash: str) -> TxGas:
        w3 = self._pool.get_client()
        receipt = await w3.eth.get_transaction_receipt(tx_hash)
        gas_price = receipt.get("effectiveGasPrice")
        if gas_price is None:
            tx = await w3.eth.get_transaction(tx_hash)
            gas_price = tx.get("gasPrice", 0)
        return TxGas(gas_used=int(receipt["gasUsed"]), gas_price=int(gas_price or 0))

    async def get_events(self, kind: EventKind, from_block: int, to_block: int) -> list[ProtocolEvent]:
        """Fetch and decode one event type from the lending pool."""
        pool = self._contract(self._pool_address, POOL_ABI)
        event = getattr(pool.events, kind)
        logs = await event().get_logs(from_block=from_block, to_block=to_block)
        return [decode_event(kind, log) for log in logs]


def _tx_hash(log: Any) -> str:
    value = log["transactionHash"]
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex().removeprefix("0x")
    return str(value)


def decode_event(kind: EventKind, log: Any) -> ProtocolEvent:
    """Turn a web3 EventData into a ProtocolEvent."""
    args = log["args"]
    common = {
        "kind": kind,
        "block_number": int(log["blockNumber"]),
        "log_index": int(log["logIndex"]),
        "tx_hash": _tx_hash(log),
    }
    if kind == "Borrow":
        return ProtocolEvent(user=AssetAddress(args["onBehalfOf"]), **common)
    if kind == "Repay":
        return ProtocolEvent(user=AssetAddress(args["user"]), **common)
    return ProtocolEvent(
        user=AssetAddress(args["user"]),
        collateral_asset=AssetAddress(args["collateralAsset"]),
        debt_asset=AssetAddress(args["debtAsset"]),
        debt_to_cover=int(args["debtToCover"]),
        liquidated_collateral_amount=int(args["liquidatedCollateralAmount"]),
        liquidator=AssetAddress(args["liquidator"]),
        receive_a_token=bool(args["receiveAToken"]),
        **common,
    )

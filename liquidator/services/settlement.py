"""Settlement through the deployed flash-liquidation contract."""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from eth_account import Account
from web3 import AsyncWeb3

from ..config import ExecutorConfig
from ..exceptions import ConfigError, SettlementError
from ..models import ZERO_ADDRESS, AssetAddress, LiquidationTarget
from ..protocols.aave.abi import FLASH_LIQUIDATOR_ABI

logger = logging.getLogger(__name__)


def gwei_to_wei(gwei: float) -> int:
    return int(Decimal(str(gwei)) * 10**9)


class FlashLiquidatorSettlement:
    """Signs and sends ``executeLiquidation`` / ``executeBatch``.

    A revert (receipt status 0) or any send error is logged and reported as
    ``False``; nothing is raised to the caller.
    """

    def __init__(
        self,
        w3: AsyncWeb3,
        contract_address: str,
        config: ExecutorConfig,
        supports_batch: bool = False,
    ) -> None:
        self._w3 = w3
        self._config = config
        self._supports_batch = supports_batch
        self._contract = w3.eth.contract(
            address=AssetAddress(contract_address).checksum, abi=FLASH_LIQUIDATOR_ABI
        )
        self._account = None
        if config.private_key:
            self._account = Account.from_key(config.private_key)
        elif not config.simulate_only:
            raise ConfigError("executor.private_key is required unless simulate_only is set")

    @property
    def supports_batch(self) -> bool:
        return self._supports_batch

    async def execute_liquidation(self, target: LiquidationTarget) -> bool:
        source = target.flash_source
        pool = source.pool or ZERO_ADDRESS
        logger.info(
            "Targeting %s | debt %d of %s | source %s",
            target.user.short(),
            target.debt_to_cover,
            target.debt_asset.short(),
            source.label or source.source.name,
        )
        fn = self._contract.functions.executeLiquidation(
            target.collateral_asset.checksum,
            target.debt_asset.checksum,
            target.user.checksum,
            target.debt_to_cover,
            int(source.source),
            pool.checksum,
        )
        return await self._send(fn, f"liquidation of {target.user.short()}")

    async def execute_batch(self, targets: list[LiquidationTarget]) -> bool:
        if not self._supports_batch:
            raise SettlementError("executeBatch is not available on this contract")
        fn = self._contract.functions.executeBatch(
            [t.collateral_asset.checksum for t in targets],
            [t.debt_asset.checksum for t in targets],
            [t.user.checksum for t in targets],
            [t.debt_to_cover for t in targets],
        )
        return await self._send(fn, f"batch of {len(targets)}")

    async def _send(self, fn: Any, description: str) -> bool:
        if self._config.simulate_only:
            logger.info("SIMULATION MODE: skipping send for %s", description)
            return True

        try:
            address = self._account.address
            tx = await fn.build_transaction(
                {
                    "from": address,
                    "nonce": await self._w3.eth.get_transaction_count(address),
                    "gasPrice": gwei_to_wei(self._config.gas_price_gwei),
                    "chainId": await self._w3.eth.chain_id,
                }
            )
            signed = self._account.sign_transaction(tx)
            tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
            logger.info("Sent %s: %s", description, tx_hash.hex())
            receipt = await self._w3.eth.wait_for_transaction_receipt(tx_hash)
        except Exception as e:
            logger.error("Settlement of %s failed: %s", description, e)
            return False

        if receipt["status"] != 1:
            logger.error("Settlement of %s reverted: %s", description, tx_hash.hex())
            return False

        logger.info("Settlement of %s succeeded", description)
        return True

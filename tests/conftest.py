"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from liquidator.config import (
    AppConfig,
    ChainConfig,
    ExecutorConfig,
    LiquidityConfig,
    MonitorConfig,
    ProtocolConfig,
    ScannerConfig,
    StorageConfig,
    TokenConfig,
    TrackerConfig,
)
from liquidator.models import (
    HEALTH_FACTOR_ONE,
    AssetAddress,
    FlashSource,
    FlashSourceConfig,
    LiquidationTarget,
    Position,
)

# ---------------------------------------------------------------------------
# Addresses
# ---------------------------------------------------------------------------

WETH = AssetAddress("0x4200000000000000000000000000000000000006")
USDC = AssetAddress("0x833589fcd6edb6e08f4c7c32d4f71b54bda02913")
EURC = AssetAddress("0x60a3e35cc302bfa44cb288bc5a4f316fdb1adb42")
CBBTC = AssetAddress("0xcbb7c0000ab88b473b1f5afd9ef808440eed33bf")

POOL = "0xA238Dd80C259a72e81d7e4664a9801593F98d1c5"
DATA_PROVIDER = "0x2d8A3C5677189723C4cB8873CfC9C8976FDF38Ac"
ORACLE = "0x2Cc0Fc26eD4563A5ce5e8bdcfe1A2878676Ae156"
BALANCER_VAULT = "0xBA12222222228d8Ba445958a75a0704d566BF2C8"
FLASH_LIQUIDATOR = "0x20ec0186e5b489b2352b00fd4c19ff4b1c9da9c1"

USER_U = AssetAddress("0x" + "1" * 40)
USER_V = AssetAddress("0x" + "2" * 40)
USER_W = AssetAddress("0x" + "3" * 40)


def usd(amount: float) -> int:
    """USD amount as 8-dp base units."""
    return round(amount * 10**8)


def make_position(
    address: str = USER_U,
    debt_usd: float = 100.0,
    collateral_usd: float = 120.0,
    health_factor: float = 0.9,
) -> Position:
    return Position(
        address=AssetAddress(address),
        health_factor=int(health_factor * HEALTH_FACTOR_ONE),
        total_collateral_base=usd(collateral_usd),
        total_debt_base=usd(debt_usd),
        available_borrows_base=0,
        last_update=0,
    )


def make_target(
    user: str = USER_U,
    debt_asset: str = USDC,
    expected_profit: int = usd(1.0),
    debt_to_cover: int = 1_000_000,
) -> LiquidationTarget:
    return LiquidationTarget(
        user=AssetAddress(user),
        collateral_asset=WETH,
        debt_asset=AssetAddress(debt_asset),
        debt_to_cover=debt_to_cover,
        expected_profit=expected_profit,
        health_factor=0.9,
        flash_source=FlashSourceConfig(source=FlashSource.BALANCER, label="Balancer"),
    )


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_chain_config() -> ChainConfig:
    return ChainConfig(
        rpc_endpoints=("https://rpc1.example.com", "https://rpc2.example.com"),
        rpc_timeout=10,
    )


@pytest.fixture()
def sample_protocol_config() -> ProtocolConfig:
    return ProtocolConfig(
        pool=POOL,
        data_provider=DATA_PROVIDER,
        oracle=ORACLE,
        flash_liquidator=FLASH_LIQUIDATOR,
        balancer_vault=BALANCER_VAULT,
        native_token=WETH,
    )


@pytest.fixture()
def sample_tokens() -> tuple[TokenConfig, ...]:
    return (
        TokenConfig(symbol="WETH", address=WETH, decimals=18),
        TokenConfig(symbol="USDC", address=USDC, decimals=6),
        TokenConfig(symbol="EURC", address=EURC, decimals=6),
    )


@pytest.fixture()
def sample_liquidity_config() -> LiquidityConfig:
    return LiquidityConfig(
        check_interval_seconds=300,
        min_primary_liquidity_usd=10_000.0,
        static_prices={"WETH": 3000.0, "USDC": 1.0},
        flash_sources={
            EURC: FlashSourceConfig(
                source=FlashSource.UNISWAP,
                pool=AssetAddress("0x7279c08A36333e12c3Fc81747963264c100D66fB"),
                label="Uniswap V3 EURC/USDC",
            )
        },
    )


@pytest.fixture()
def sample_executor_config() -> ExecutorConfig:
    return ExecutorConfig()


@pytest.fixture()
def sample_app_config(
    sample_chain_config: ChainConfig,
    sample_protocol_config: ProtocolConfig,
    sample_tokens: tuple[TokenConfig, ...],
    sample_liquidity_config: LiquidityConfig,
    tmp_path: Path,
) -> AppConfig:
    return AppConfig(
        chain=sample_chain_config,
        protocol=sample_protocol_config,
        tokens=sample_tokens,
        liquidity=sample_liquidity_config,
        tracker=TrackerConfig(min_debt_usd=50.0, poll_interval_seconds=0, max_block_range=100),
        executor=ExecutorConfig(simulate_only=True),
        scanner=ScannerConfig(default_start_block=100, chunk_size=50, concurrency=2),
        monitor=MonitorConfig(evaluation_interval_seconds=1, concurrency=2),
        storage=StorageConfig(
            sync_state_path=str(tmp_path / "sync_state.json"),
            monitored_path=str(tmp_path / "monitored.json"),
            history_path=str(tmp_path / "liquidation_history.json"),
        ),
    )


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent(f"""\
    chain:
      rpc_endpoints: ["https://rpc.example.com", "https://rpc2.example.com"]
      rpc_timeout: 10
    protocol:
      pool: "{POOL}"
      data_provider: "{DATA_PROVIDER}"
      oracle: "{ORACLE}"
      flash_liquidator: "{FLASH_LIQUIDATOR}"
      balancer_vault: "{BALANCER_VAULT}"
      native_token: "{WETH}"
    tokens:
      WETH: {{address: "{WETH}", decimals: 18}}
      USDC: {{address: "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913", decimals: 6}}
    liquidity:
      min_primary_liquidity_usd: 10000
      static_prices: {{WETH: 3000, USDC: 1}}
      flash_sources:
        "0x60a3E35Cc302bFA44Cb288Bc5a4F316Fdb1adb42":
          source: 1
          pool: "0x7279c08A36333e12c3Fc81747963264c100D66fB"
          label: "Uniswap V3 EURC/USDC"
    tracker:
      min_debt_usd: 50
    executor:
      use_batch_contract: true
      simulate_only: "true"
    scanner:
      default_start_block: 1000
      chunk_size: 500
    storage:
      sync_state_path: "state/sync.json"
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file

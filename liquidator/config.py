"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigError
from .models import AssetAddress, FlashSource, FlashSourceConfig

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChainConfig:
    rpc_endpoints: tuple[str, ...] = ()
    rpc_timeout: int = 15
    rpc_retries: int = 2
    execution_rpc_url: str = ""


@dataclass(frozen=True)
class ProtocolConfig:
    pool: str = ""
    data_provider: str = ""
    oracle: str = ""
    flash_liquidator: str = ""
    balancer_vault: str = ""
    native_token: str = ""


@dataclass(frozen=True)
class TokenConfig:
    symbol: str = ""
    address: str = ""
    decimals: int = 18


@dataclass(frozen=True)
class LiquidityConfig:
    check_interval_seconds: int = 300
    min_primary_liquidity_usd: float = 10_000.0
    static_prices: dict[str, float] = field(default_factory=dict)
    flash_sources: dict[AssetAddress, FlashSourceConfig] = field(default_factory=dict)


@dataclass(frozen=True)
class TrackerConfig:
    min_debt_usd: float = 50.0
    poll_interval_seconds: float = 2.0
    max_block_range: int = 500


@dataclass(frozen=True)
class ExecutorConfig:
    dust_floor_usd: float = 0.001
    min_profit_usd: float = 0.1
    liquidation_bonus_pct: int = 5
    gas_estimate_usd: float = 0.01
    gas_price_gwei: float = 0.0005
    use_batch_contract: bool = False
    simulate_only: bool = True
    private_key: str = ""
    read_concurrency: int = 6


@dataclass(frozen=True)
class ScannerConfig:
    default_start_block: int = 0
    chunk_size: int = 2_000
    concurrency: int = 6


@dataclass(frozen=True)
class MonitorConfig:
    evaluation_interval_seconds: int = 12
    concurrency: int = 6


@dataclass(frozen=True)
class StorageConfig:
    sync_state_path: str = "data/sync_state.json"
    monitored_path: str = "data/monitored.json"
    history_path: str = "data/liquidation_history.json"


@dataclass(frozen=True)
class AppConfig:
    chain: ChainConfig = field(default_factory=ChainConfig)
    protocol: ProtocolConfig = field(default_factory=ProtocolConfig)
    tokens: tuple[TokenConfig, ...] = ()
    liquidity: LiquidityConfig = field(default_factory=LiquidityConfig)
    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    executor: ExecutorConfig = field(default_factory=ExecutorConfig)
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


def _as_bool(value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_chain(raw: dict[str, Any]) -> ChainConfig:
    endpoints = raw.get("rpc_endpoints", [])
    if isinstance(endpoints, str):
        endpoints = endpoints.split(",")
    return ChainConfig(
        rpc_endpoints=tuple(e.strip() for e in endpoints if e and e.strip()),
        rpc_timeout=int(raw.get("rpc_timeout", 15)),
        rpc_retries=int(raw.get("rpc_retries", 2)),
        execution_rpc_url=raw.get("execution_rpc_url", "") or "",
    )


def _build_protocol(raw: dict[str, Any]) -> ProtocolConfig:
    return ProtocolConfig(
        pool=raw.get("pool", "") or "",
        data_provider=raw.get("data_provider", "") or "",
        oracle=raw.get("oracle", "") or "",
        flash_liquidator=raw.get("flash_liquidator", "") or "",
        balancer_vault=raw.get("balancer_vault", "") or "",
        native_token=raw.get("native_token", "") or "",
    )


def _build_tokens(raw: dict[str, Any]) -> tuple[TokenConfig, ...]:
    tokens: list[TokenConfig] = []
    for symbol, cfg in raw.items():
        tokens.append(
            TokenConfig(
                symbol=symbol,
                address=cfg.get("address", ""),
                decimals=int(cfg.get("decimals", 18)),
            )
        )
    return tuple(tokens)


def _build_liquidity(raw: dict[str, Any]) -> LiquidityConfig:
    sources: dict[AssetAddress, FlashSourceConfig] = {}
    for token, cfg in raw.get("flash_sources", {}).items():
        pool = cfg.get("pool")
        try:
            sources[AssetAddress(token)] = FlashSourceConfig(
                source=FlashSource(int(cfg.get("source", FlashSource.UNISWAP))),
                pool=AssetAddress(pool) if pool else None,
                label=cfg.get("label", ""),
            )
        except ValueError as e:
            raise ConfigError(f"Flash source for '{token}' is invalid: {e}") from e
    return LiquidityConfig(
        check_interval_seconds=int(raw.get("check_interval_seconds", 300)),
        min_primary_liquidity_usd=float(raw.get("min_primary_liquidity_usd", 10_000.0)),
        static_prices={k: float(v) for k, v in raw.get("static_prices", {}).items()},
        flash_sources=sources,
    )


def _build_tracker(raw: dict[str, Any]) -> TrackerConfig:
    return TrackerConfig(
        min_debt_usd=float(raw.get("min_debt_usd", 50.0)),
        poll_interval_seconds=float(raw.get("poll_interval_seconds", 2.0)),
        max_block_range=int(raw.get("max_block_range", 500)),
    )


def _build_executor(raw: dict[str, Any]) -> ExecutorConfig:
    return ExecutorConfig(
        dust_floor_usd=float(raw.get("dust_floor_usd", 0.001)),
        min_profit_usd=float(raw.get("min_profit_usd", 0.1)),
        liquidation_bonus_pct=int(raw.get("liquidation_bonus_pct", 5)),
        gas_estimate_usd=float(raw.get("gas_estimate_usd", 0.01)),
        gas_price_gwei=float(raw.get("gas_price_gwei", 0.0005)),
        use_batch_contract=_as_bool(raw.get("use_batch_contract"), False),
        simulate_only=_as_bool(raw.get("simulate_only"), True),
        private_key=raw.get("private_key", "") or "",
        read_concurrency=int(raw.get("read_concurrency", 6)),
    )


def _build_scanner(raw: dict[str, Any]) -> ScannerConfig:
    return ScannerConfig(
        default_start_block=int(raw.get("default_start_block", 0)),
        chunk_size=int(raw.get("chunk_size", 2_000)),
        concurrency=int(raw.get("concurrency", 6)),
    )


def _build_monitor(raw: dict[str, Any]) -> MonitorConfig:
    return MonitorConfig(
        evaluation_interval_seconds=int(raw.get("evaluation_interval_seconds", 12)),
        concurrency=int(raw.get("concurrency", 6)),
    )


def _build_storage(raw: dict[str, Any]) -> StorageConfig:
    return StorageConfig(
        sync_state_path=raw.get("sync_state_path", "data/sync_state.json"),
        monitored_path=raw.get("monitored_path", "data/monitored.json"),
        history_path=raw.get("history_path", "data/liquidation_history.json"),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        chain=_build_chain(raw.get("chain", {})),
        protocol=_build_protocol(raw.get("protocol", {})),
        tokens=_build_tokens(raw.get("tokens", {})),
        liquidity=_build_liquidity(raw.get("liquidity", {})),
        tracker=_build_tracker(raw.get("tracker", {})),
        executor=_build_executor(raw.get("executor", {})),
        scanner=_build_scanner(raw.get("scanner", {})),
        monitor=_build_monitor(raw.get("monitor", {})),
        storage=_build_storage(raw.get("storage", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


_REQUIRED_CONTRACTS = (
    "pool",
    "data_provider",
    "oracle",
    "flash_liquidator",
    "balancer_vault",
    "native_token",
)


def _validate(cfg: AppConfig) -> None:
    """Raise ConfigError on invalid configuration."""
    if not cfg.chain.rpc_endpoints:
        raise ConfigError("At least one RPC endpoint must be configured")

    for name in _REQUIRED_CONTRACTS:
        value = getattr(cfg.protocol, name)
        if not value:
            raise ConfigError(f"Missing required protocol address '{name}'")
        try:
            AssetAddress(value)
        except ValueError as e:
            raise ConfigError(f"Protocol address '{name}' is invalid: {e}") from e

    for token in cfg.tokens:
        try:
            AssetAddress(token.address)
        except ValueError as e:
            raise ConfigError(f"Token '{token.symbol}' has an invalid address") from e

    if cfg.scanner.chunk_size <= 0:
        raise ConfigError("scanner.chunk_size must be positive")

    if cfg.executor.read_concurrency < 1:
        raise ConfigError("executor.read_concurrency must be at least 1")

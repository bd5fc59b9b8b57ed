"""Exception hierarchy for the liquidation service."""


class LiquidatorError(Exception):
    """Base class for all service errors."""


class ConfigError(LiquidatorError):
    """Invalid or incomplete configuration — aborts startup."""


class PriceUnavailableError(LiquidatorError):
    """A USD price could not be resolved for an asset."""

    def __init__(self, asset: str) -> None:
        super().__init__(f"No USD price available for {asset}")
        self.asset = asset


class UnknownTokenError(LiquidatorError):
    """Token metadata (decimals/symbol) is not registered."""

    def __init__(self, asset: str) -> None:
        super().__init__(f"Unknown token {asset}")
        self.asset = asset


class SettlementError(LiquidatorError):
    """A settlement transaction could not be built or sent."""

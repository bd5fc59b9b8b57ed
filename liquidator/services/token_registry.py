"""Token metadata (symbol, decimals) keyed by normalised address."""
from __future__ import annotations

from dataclasses import dataclass

from ..config import TokenConfig
from ..exceptions import UnknownTokenError
from ..models import AssetAddress


@dataclass(frozen=True)
class TokenInfo:
    symbol: str
    decimals: int
    address: AssetAddress


class TokenRegistry:
    """Lookup table built from the ``tokens`` section of the config."""

    def __init__(self, tokens: tuple[TokenConfig, ...] | list[TokenConfig]) -> None:
        self._by_address: dict[AssetAddress, TokenInfo] = {}
        for token in tokens:
            address = AssetAddress(token.address)
            self._by_address[address] = TokenInfo(
                symbol=token.symbol, decimals=token.decimals, address=address
            )

    def __contains__(self, address: str) -> bool:
        return AssetAddress(address) in self._by_address

    def __iter__(self):
        return iter(self._by_address.values())

    def __len__(self) -> int:
        return len(self._by_address)

    def get(self, address: str) -> TokenInfo:
        try:
            return self._by_address[AssetAddress(address)]
        except KeyError:
            raise UnknownTokenError(address) from None

    def decimals(self, address: str) -> int:
        return self.get(address).decimals

    def symbol(self, address: str) -> str:
        info = self._by_address.get(AssetAddress(address))
        if info is None:
            return AssetAddress(address).short()
        return info.symbol

    def address_of(self, symbol: str) -> AssetAddress | None:
        for info in self._by_address.values():
            if info.symbol == symbol:
                return info.address
        return None

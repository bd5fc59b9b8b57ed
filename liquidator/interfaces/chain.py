"""Chain client protocol — token and block reads."""
from typing import Protocol


class ChainClient(Protocol):
    """Abstract interface for ERC-20 and block reads."""

    async def balance_of(self, token: str, holder: str) -> int: ...

    async def decimals(self, token: str) -> int: ...

    async def block_number(self) -> int: ...

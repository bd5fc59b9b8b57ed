"""Lending pool protocol — borrower account reads."""
from typing import Protocol

from ..models import AccountData, EventKind, ProtocolEvent


class LendingPool(Protocol):
    """Abstract interface for reading borrower state and pool events."""

    async def get_user_account_data(self, user: str) -> AccountData: ...

    async def get_events(
        self, kind: EventKind, from_block: int, to_block: int
    ) -> list[ProtocolEvent]: ...

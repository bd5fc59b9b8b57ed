"""Checkpoint of the last block covered by a historical scan."""
from __future__ import annotations

import json
import logging
from pathlib import Path

from ..models import SyncState
from .files import read_text, write_json_atomic

logger = logging.getLogger(__name__)


class SyncStateStore:
    """JSON file holding ``{lastScannedBlock, lastScannedTimestamp}``.

    Writes go to a sibling temp file which then replaces the target, so a
    crash mid-write leaves the previous checkpoint intact.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> SyncState | None:
        content = await read_text(self._path)
        if content is None:
            return None

        try:
            return SyncState.from_json(json.loads(content))
        except (ValueError, KeyError, TypeError) as e:
            logger.error("Ignoring unreadable sync state %s: %s", self._path, e)
            return None

    async def load_or_default(self, default_block: int) -> SyncState:
        state = await self.load()
        if state is None:
            logger.info("No sync state found, starting from block %d", default_block)
            return SyncState(last_scanned_block=default_block, last_scanned_timestamp=0)
        return state

    async def save(self, state: SyncState) -> None:
        await write_json_atomic(self._path, state.to_json())
        logger.debug("Saved sync state: block %d", state.last_scanned_block)

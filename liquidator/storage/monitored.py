"""Persisted copy of the monitored borrower set."""
from __future__ import annotations

import json
import logging
import time
from collections.abc import Iterable
from pathlib import Path

from ..models import AssetAddress
from .files import read_text, write_json_atomic

logger = logging.getLogger(__name__)


class MonitoredSetStore:
    """JSON file holding ``{addresses: [...], updatedAt}``.

    Lets a restarted process resume tracking borrowers seen before it went
    down instead of waiting for their next Borrow event.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> list[AssetAddress]:
        content = await read_text(self._path)
        if content is None:
            return []

        try:
            raw = json.loads(content)["addresses"]
        except (ValueError, KeyError, TypeError) as e:
            logger.error("Ignoring unreadable monitored set %s: %s", self._path, e)
            return []

        addresses: list[AssetAddress] = []
        for entry in raw:
            try:
                addresses.append(AssetAddress(entry))
            except ValueError:
                logger.warning("Skipping invalid stored address %r", entry)
        return addresses

    async def save(self, addresses: Iterable[str]) -> None:
        payload = {
            "addresses": sorted(AssetAddress(a) for a in addresses),
            "updatedAt": int(time.time() * 1000),
        }
        await write_json_atomic(self._path, payload)
        logger.debug("Saved %d monitored addresses", len(payload["addresses"]))

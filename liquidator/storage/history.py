"""Append-only record of scanned liquidations."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import aiofiles

from ..models import LiquidationRecord
from .files import read_text, write_json_atomic

logger = logging.getLogger(__name__)


class LiquidationHistoryStore:
    """JSON array of liquidation records, deduplicated by transaction hash.

    Before each write the current file is copied to ``<name>.backup.json``.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._backup = self._path.with_name(f"{self._path.stem}.backup{self._path.suffix}")

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> list[dict[str, Any]]:
        content = await read_text(self._path)
        if content is None:
            return []
        records = json.loads(content)
        if not isinstance(records, list):
            raise ValueError(f"{self._path} does not hold a list of records")
        return records

    async def append(self, records: list[LiquidationRecord]) -> int:
        """Merge ``records`` into the file; returns how many were new."""
        existing = await self.load()
        seen = {r["txHash"] for r in existing}

        new: list[dict[str, Any]] = []
        for record in records:
            if record.tx_hash in seen:
                continue
            seen.add(record.tx_hash)
            new.append(record.to_json())
        if not new:
            logger.info("No new liquidation records to store")
            return 0

        merged = sorted(existing + new, key=lambda r: (r["timestamp"], r["blockNumber"]))
        if existing:
            async with aiofiles.open(self._backup, "w") as f:
                await f.write(json.dumps(existing, indent=2))
        await write_json_atomic(self._path, merged)

        logger.info(
            "Stored %d new liquidation records (%d duplicates skipped)",
            len(new),
            len(records) - len(new),
        )
        return len(new)

"""Atomic JSON file writes shared by the stores."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os


async def read_text(path: Path) -> str | None:
    """File contents, or ``None`` when the file does not exist."""
    try:
        async with aiofiles.open(path, "r") as f:
            return await f.read()
    except FileNotFoundError:
        return None


async def write_json_atomic(path: Path, payload: Any) -> None:
    """Write to a sibling temp file, then replace ``path`` with it.

    A crash mid-write leaves the previous file intact.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    async with aiofiles.open(tmp, "w") as f:
        await f.write(json.dumps(payload, indent=2))
    await aiofiles.os.replace(tmp, path)

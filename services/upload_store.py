"""Keep a copy of uploaded attachments on disk before handing them to the browser."""

from __future__ import annotations

import re
import uuid
from pathlib import Path
from typing import Union

import aiofiles

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(name: str) -> str:
    """Strip directories and unsafe characters from a client-supplied filename."""
    base = Path(name or "").name
    cleaned = _UNSAFE.sub("_", base).strip("._")
    return cleaned or "upload"


def owner_directory(owner: str) -> str:
    return _UNSAFE.sub("_", owner.replace("@", "_").replace(".", "_")) or "anonymous"


async def save_upload(base_dir: Union[str, Path], owner: str, filename: str, data: bytes) -> Path:
    """Save `data` under `<base_dir>/<owner>/` with a unique prefix and return the path.

    Raises:
        ValueError: If `data` is empty.
    """
    if not data:
        raise ValueError("Upload bytes are required for saving.")
    target_dir = Path(base_dir) / owner_directory(owner)
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / f"{uuid.uuid4().hex[:8]}_{safe_filename(filename)}"
    async with aiofiles.open(target, "wb") as handle:
        await handle.write(data)
    return target

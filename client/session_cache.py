"""Local JSON cache of the current session descriptor and per-session transcripts."""

from __future__ import annotations

import json
import logging
import re
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import aiofiles

from models.transcript_models import Message

LOGGER = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")
SESSION_FILE = "current_session.json"


def cache_key(session_id: str) -> str:
    return f"messages:{session_id}"


class SessionCache:
    """Read and write cache files under `directory`."""

    def __init__(self, directory: Union[str, Path]) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE.sub('_', key)}.json"

    async def _read(self, path: Path) -> Optional[Any]:
        if not path.exists():
            return None
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as handle:
                return json.loads(await handle.read())
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.warning("Ignoring unreadable cache file %s: %s", path, exc)
            return None

    async def _write(self, path: Path, payload: Any) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "w", encoding="utf-8") as handle:
            await handle.write(json.dumps(payload))

    async def save_session(self, session_id: str, remote_path: Optional[str] = None) -> Dict[str, Any]:
        descriptor = {"sessionId": session_id, "remotePath": remote_path, "createdAt": time.time()}
        await self._write(self.directory / SESSION_FILE, descriptor)
        return descriptor

    async def load_session(self) -> Optional[Dict[str, Any]]:
        data = await self._read(self.directory / SESSION_FILE)
        return data if isinstance(data, dict) and data.get("sessionId") else None

    async def save_messages(self, session_id: str, messages: List[Message]) -> None:
        await self._write(self._path(cache_key(session_id)), [m.to_dict() for m in messages])

    async def load_messages(self, session_id: str) -> List[Dict[str, Any]]:
        """Return cached wire messages; they are re-parsed by the reconciliation layer."""
        data = await self._read(self._path(cache_key(session_id)))
        return data if isinstance(data, list) else []

    async def clear(self, session_id: str) -> None:
        path = self._path(cache_key(session_id))
        if path.exists():
            path.unlink()

"""Async Data Access Layer for the CHAT table.

Provides ChatDAL with async CRUD operations compatible with
`utils.database_init.AsyncDatabaseInitializer`.
"""

from __future__ import annotations

import json
import time
from typing import List, Optional, Sequence

from models.chat_record import ChatRecord
from utils.database_init import AsyncDatabaseInitializer


class ChatDAL:
    """Data access layer for CHAT records.

    Chats are keyed by `(owner, id)`; the message list is stored as one JSON
    document and always read and written wholesale.
    """

    _COLUMNS = ("id", "owner", "title", "messages", "created_at", "updated_at")
    _COLUMN_LIST = ", ".join(_COLUMNS)

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def upsert_chat(self, record: ChatRecord) -> ChatRecord:
        """Insert the chat or replace its title and messages if it exists.

        Args:
            record: Chat to store. `created_at` is kept from the existing row.

        Returns:
            The stored record with timestamps filled in.
        """
        now = time.time()
        created_at = record.created_at or now
        updated_at = record.updated_at or now

        async with self._db.connection() as conn:
            await conn.execute(
                f"""
                INSERT INTO CHAT ({self._COLUMN_LIST}) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(owner, id) DO UPDATE SET
                    title = excluded.title,
                    messages = excluded.messages,
                    updated_at = excluded.updated_at
                """,
                (
                    record.id,
                    record.owner,
                    record.title,
                    json.dumps(record.messages),
                    created_at,
                    updated_at,
                ),
            )
            await conn.commit()

        stored = await self.get_chat(record.owner, record.id)
        if stored is None:
            raise RuntimeError(f"Chat {record.id} was not persisted")
        return stored

    async def get_chat(self, owner: str, chat_id: str) -> Optional[ChatRecord]:
        """Return the chat for `owner`/`chat_id`, or None if not found."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM CHAT WHERE owner = ? AND id = ?",
                (owner, chat_id),
            )
            row = await cur.fetchone()
            return self._row_to_record(row) if row else None

    async def list_chats(self, owner: str, limit: int = 100, offset: int = 0) -> List[ChatRecord]:
        """List an owner's chats, most recently updated first.

        Args:
            owner: Chat owner key.
            limit: Maximum number of rows to return.
            offset: Rows to skip.
        """
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM CHAT WHERE owner = ? "
                "ORDER BY updated_at DESC LIMIT ? OFFSET ?",
                (owner, limit, offset),
            )
            rows = await cur.fetchall()
            return [self._row_to_record(r) for r in rows]

    async def delete_chat(self, owner: str, chat_id: str) -> bool:
        """Delete a chat. Returns True if a row was deleted."""
        async with self._db.connection() as conn:
            await conn.execute("DELETE FROM CHAT WHERE owner = ? AND id = ?", (owner, chat_id))
            await conn.commit()
            cur = await conn.execute("SELECT changes()")
            changed = await cur.fetchone()
            return bool(changed and changed[0] > 0)

    @staticmethod
    def _row_to_record(row: Sequence[object]) -> ChatRecord:
        """Convert a DB row tuple into a ChatRecord."""
        try:
            messages = json.loads(row[3]) if row[3] else []
        except (TypeError, ValueError):
            messages = []
        return ChatRecord(
            id=row[0],
            owner=row[1],
            title=row[2],
            messages=messages if isinstance(messages, list) else [],
            created_at=row[4],
            updated_at=row[5],
        )

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional, Union

import aiosqlite

LOGGER = logging.getLogger(__name__)

DATABASE_FILENAME = "chats.db"

# Statements applied in order; `PRAGMA user_version` records how far we got.
_MIGRATIONS = (
    (
        1,
        (
            """
            CREATE TABLE IF NOT EXISTS CHAT (
                id TEXT NOT NULL,
                owner TEXT NOT NULL,
                title TEXT NOT NULL,
                messages TEXT NOT NULL,
                created_at REAL NOT NULL,
                updated_at REAL NOT NULL,
                PRIMARY KEY (owner, id)
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_chat_owner_updated ON CHAT (owner, updated_at)",
        ),
    ),
)


def resolve_database_dir(database_dir: Optional[Union[Path, str]]) -> Path:
    """Validate and create the directory holding the chat database.

    Raises:
        RuntimeError: when no directory is configured, the path is a file,
            or the directory cannot be created.
    """
    if database_dir is None or not str(database_dir).strip():
        raise RuntimeError(
            "DATABASE_DIR must be set to a writable directory for the chat database."
        )
    db_dir = Path(database_dir).expanduser()
    if db_dir.exists() and not db_dir.is_dir():
        raise RuntimeError(f"DATABASE_DIR={str(database_dir)!r} is a file, not a directory.")
    try:
        db_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RuntimeError(f"Cannot create database directory {db_dir}") from exc
    return db_dir


class AsyncDatabaseInitializer:
    """
    Own the location and schema of the chat history database.

    The file lives at <database_dir>/chats.db and is never wiped; the schema
    is migrated forward. `connection()` applies pending migrations on first
    use.
    """

    def __init__(self, database_dir: Optional[Union[Path, str]] = None) -> None:
        self.db_dir = resolve_database_dir(database_dir)
        self.db_path = self.db_dir / DATABASE_FILENAME
        self._initialized = False

    async def ensure_database(self) -> None:
        """Apply pending schema migrations. Repeated calls are no-ops."""
        if self._initialized:
            return

        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute("PRAGMA user_version") as cursor:
                row = await cursor.fetchone()
            current = row[0] if row else 0

            for version, statements in _MIGRATIONS:
                if version <= current:
                    continue
                for statement in statements:
                    await db.execute(statement)
                await db.execute(f"PRAGMA user_version = {version}")
                LOGGER.info("Chat database migrated to schema v%s", version)

            await db.commit()

        self._initialized = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield an `aiosqlite.Connection` to the migrated database."""
        await self.ensure_database()
        conn = await aiosqlite.connect(self.db_path)
        try:
            yield conn
        finally:
            await conn.close()

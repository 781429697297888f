from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import aiosqlite

SCHEMA_VERSION = 2
PHOTOS_TABLE = "photos"
META_TABLE = "meta"
CREATED_AT_INDEX = "createdAt_idx"


class AsyncDatabaseInitializer:
    """
    Manage the SQLite fallback photo database.

    - Schema version is tracked in `PRAGMA user_version` (currently 2).
    - Version 1 databases had the `photos` table without the `created_at`
      index; upgrading adds it. Every step uses `IF NOT EXISTS`, so an upgrade
      interrupted halfway is finished on the next call.
    - `max_bytes`, when set, caps the database size through
      `PRAGMA max_page_count` on every connection. Writes past the cap fail
      with SQLite's "database or disk is full" error.
    """

    def __init__(self, db_path: Path | str, max_bytes: Optional[int] = None) -> None:
        self.db_path = Path(db_path)
        self.max_bytes = max_bytes
        self._initialized = False

    async def ensure_database(self) -> None:
        """
        Create or upgrade the schema. Subsequent calls on the same instance are no-ops.
        """
        if self._initialized:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(self.db_path) as db:
            cur = await db.execute("PRAGMA user_version")
            row = await cur.fetchone()
            version = int(row[0]) if row else 0

            await db.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {PHOTOS_TABLE} (
                    id TEXT PRIMARY KEY,
                    created_at INTEGER NOT NULL,
                    blob BLOB NOT NULL
                )
                """
            )

            # Version 1 shipped without the index; add it if it is missing.
            cur = await db.execute(
                "SELECT name FROM sqlite_master WHERE type = 'index' AND name = ?",
                (CREATED_AT_INDEX,),
            )
            if await cur.fetchone() is None:
                await db.execute(f"CREATE INDEX IF NOT EXISTS {CREATED_AT_INDEX} ON {PHOTOS_TABLE}(created_at)")

            await db.execute(
                f"CREATE TABLE IF NOT EXISTS {META_TABLE} (key TEXT PRIMARY KEY, value TEXT)"
            )

            if version < SCHEMA_VERSION:
                await db.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")

            await db.commit()

        self._initialized = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Async context manager yielding an `aiosqlite.Connection`.

        The schema is created/upgraded on first use via `ensure_database()`.
        Uncommitted work is rolled back when the connection closes.
        """
        await self.ensure_database()
        conn = await aiosqlite.connect(self.db_path)
        try:
            if self.max_bytes is not None:
                cur = await conn.execute("PRAGMA page_size")
                page_size = int((await cur.fetchone())[0])
                max_pages = max(1, self.max_bytes // page_size)
                await conn.execute(f"PRAGMA max_page_count = {max_pages}")
            yield conn
        finally:
            await conn.close()

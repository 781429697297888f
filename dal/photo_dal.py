"""Async data access layer for the fallback photo database.

Provides `PhotoDAL` with CRUD over the `photos` and `meta` tables, reactive
oldest-first eviction when an insert hits the capacity cap, and a best-effort
persistence request.
"""

from __future__ import annotations

import logging
import sqlite3
import tempfile
import time
import uuid
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

import aiosqlite

from models.photo_record import PhotoRecord
from services.errors import StorageQuotaError
from utils.database_init import AsyncDatabaseInitializer

LOGGER = logging.getLogger(__name__)

CURRENT_ID_KEY = "currentId"
PERSISTED_KEY = "persisted"
MAX_EVICTIONS = 10
# Assumed size to free when the incoming blob reports zero bytes.
DEFAULT_BYTES_NEEDED = 1_000_000


def is_quota_error(exc: BaseException) -> bool:
    """Return True if `exc` is SQLite reporting that the database is full."""
    if getattr(exc, "sqlite_errorcode", None) == sqlite3.SQLITE_FULL:
        return True
    return isinstance(exc, sqlite3.OperationalError) and "full" in str(exc).lower()


class PhotoDAL:
    """Data access layer for raw photo blobs.

    The constructor accepts an `AsyncDatabaseInitializer` (or any object
    exposing an async `connection()` context manager that yields an
    `aiosqlite.Connection` and a `db_path`).

    Args:
        db_initializer: Connection provider.
        volatile_dirs: Directories the host may purge under pressure; a
            database inside one of them is never reported as persisted.
            Defaults to the system temp directory.
    """

    def __init__(
        self,
        db_initializer: AsyncDatabaseInitializer,
        volatile_dirs: Optional[Iterable[Path | str]] = None,
    ) -> None:
        self._db = db_initializer
        if volatile_dirs is None:
            volatile_dirs = (tempfile.gettempdir(),)
        self._volatile_dirs = [Path(d).resolve() for d in volatile_dirs]

    async def add_photo_blob(self, blob: bytes, created_at: Optional[int] = None, id: Optional[str] = None) -> str:
        """Insert (or replace) a photo and return its id.

        If the insert fails because the database is full, the oldest photos are
        evicted in a separate transaction and the insert is retried once. A
        current id that pointed at an evicted photo moves to the newest
        remaining photo (or is cleared), whether or not the retry succeeds.

        Args:
            blob: Raw image bytes.
            created_at: Milliseconds since the epoch; defaults to now.
            id: Optional id to use; generated if omitted.

        Raises:
            StorageQuotaError: If the retry after eviction also fails for lack of space.
            aiosqlite.Error: For any other database failure (no eviction is attempted).
        """
        record = PhotoRecord(
            id=id or uuid.uuid4().hex,
            created_at=created_at if created_at is not None else int(time.time() * 1000),
            blob=bytes(blob),
        )

        try:
            await self._put(record)
            return record.id
        except sqlite3.OperationalError as exc:
            if not is_quota_error(exc):
                raise
            LOGGER.warning("Photo insert failed (%s); evicting oldest and retrying", exc)

        evicted, _ = await self.evict_oldest(record.size or DEFAULT_BYTES_NEEDED, MAX_EVICTIONS)
        await self._repair_current(evicted)

        try:
            await self._put(record)
        except sqlite3.OperationalError as exc:
            if not is_quota_error(exc):
                raise
            LOGGER.error("Photo insert failed again after eviction: %s", exc)
            raise StorageQuotaError(f"No room for a {record.size}-byte photo after eviction") from exc
        return record.id

    async def _put(self, record: PhotoRecord) -> None:
        async with self._db.connection() as conn:
            await conn.execute(
                "INSERT OR REPLACE INTO photos (id, created_at, blob) VALUES (?, ?, ?)",
                (record.id, record.created_at, record.blob),
            )
            await conn.commit()

    async def evict_oldest(self, bytes_needed: int, max_deletes: int = MAX_EVICTIONS) -> Tuple[List[str], int]:
        """Delete photos oldest first until enough bytes are freed or the delete cap is hit.

        Runs as one transaction. Ties in `created_at` follow insertion order.

        Returns:
            `(deleted_ids, freed_bytes)`.
        """
        deleted: List[str] = []
        freed = 0
        async with self._db.connection() as conn:
            cur = await conn.execute(
                "SELECT id, length(blob) FROM photos ORDER BY created_at ASC, rowid ASC LIMIT ?",
                (max_deletes,),
            )
            candidates = await cur.fetchall()
            for photo_id, size in candidates:
                if len(deleted) >= max_deletes or freed >= bytes_needed:
                    break
                await conn.execute("DELETE FROM photos WHERE id = ?", (photo_id,))
                deleted.append(photo_id)
                freed += int(size or 0)
            await conn.commit()
        LOGGER.info("Evicted %d photo(s); freed about %d bytes", len(deleted), freed)
        return deleted, freed

    async def _repair_current(self, removed_ids: Iterable[str]) -> Optional[str]:
        """Point the current id at the newest photo if its target was removed."""
        current_id = await self.get_current_id()
        if current_id is None or current_id not in set(removed_ids):
            return current_id
        current_id = await self.newest_photo_id()
        await self.set_current_id(current_id)
        return current_id

    async def newest_photo_id(self) -> Optional[str]:
        """Return the id of the most recent photo, or None when the store is empty."""
        async with self._db.connection() as conn:
            cur = await conn.execute("SELECT id FROM photos ORDER BY created_at DESC, rowid DESC LIMIT 1")
            row = await cur.fetchone()
            return row[0] if row else None

    async def get_photo(self, photo_id: str) -> Optional[PhotoRecord]:
        """Return the photo for `photo_id`, or None if not found."""
        async with self._db.connection() as conn:
            cur = await conn.execute("SELECT id, created_at, blob FROM photos WHERE id = ?", (photo_id,))
            row = await cur.fetchone()
            return self._row_to_record(row) if row else None

    async def list_photos(self) -> List[PhotoRecord]:
        """Return every stored photo. Order is unspecified; sort by `created_at` if it matters."""
        async with self._db.connection() as conn:
            cur = await conn.execute("SELECT id, created_at, blob FROM photos")
            rows = await cur.fetchall()
            return [self._row_to_record(r) for r in rows]

    async def delete_photo(self, photo_id: str) -> bool:
        """Delete a photo by id. Returns True if a row was deleted."""
        async with self._db.connection() as conn:
            cur = await conn.execute("DELETE FROM photos WHERE id = ?", (photo_id,))
            await conn.commit()
            return cur.rowcount > 0

    async def set_current_id(self, photo_id: Optional[str]) -> None:
        """Store the current photo id; None clears it."""
        if photo_id:
            await self._set_meta(CURRENT_ID_KEY, photo_id)
        else:
            async with self._db.connection() as conn:
                await conn.execute("DELETE FROM meta WHERE key = ?", (CURRENT_ID_KEY,))
                await conn.commit()

    async def get_current_id(self) -> Optional[str]:
        return await self._get_meta(CURRENT_ID_KEY)

    async def request_persistence(self) -> bool:
        """Ask for the database to be kept under storage pressure.

        Granted when the database lives outside the volatile directories and
        the grant could be recorded. Returns True if granted now or earlier;
        any failure yields False.
        """
        try:
            if await self._get_meta(PERSISTED_KEY) == "1":
                return True
            db_path = self._db.db_path.resolve()
            if any(db_path.is_relative_to(d) for d in self._volatile_dirs):
                return False
            await self._set_meta(PERSISTED_KEY, "1")
            return True
        except Exception as exc:
            LOGGER.warning("Persistence request failed: %s", exc)
            return False

    async def _get_meta(self, key: str) -> Optional[str]:
        async with self._db.connection() as conn:
            cur = await conn.execute("SELECT value FROM meta WHERE key = ?", (key,))
            row = await cur.fetchone()
            return row[0] if row else None

    async def _set_meta(self, key: str, value: str) -> None:
        async with self._db.connection() as conn:
            await conn.execute("INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)", (key, value))
            await conn.commit()

    @staticmethod
    def _row_to_record(row: Sequence[object]) -> PhotoRecord:
        """Convert a DB row tuple into a PhotoRecord."""
        return PhotoRecord(id=row[0], created_at=row[1], blob=bytes(row[2]))

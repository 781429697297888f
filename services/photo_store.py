"""Budgeted photo collection kept in a string key-value medium.

The collection is a JSON array of `{id, url, ts}` under `fullBodyPhotos`; the
selected photo's `url` lives under `fullBodyCurrentUrl`. Every write trims the
collection: records past the retention window are dropped, the rest are sorted
newest first, and the oldest are popped until the estimated size fits the
byte budget.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from typing import Callable, Iterable, List, Optional

from models.photo_record import SavedPhoto
from services.errors import StorageQuotaError, StorageUnavailableError
from services.image_compressor import CompressOptions, ImageCompressor, ImageSource
from utils.data_url import approx_bytes_of_data_url, is_data_url
from utils.kv_storage import KeyValueStorage

LOGGER = logging.getLogger(__name__)

STORE_KEY = "fullBodyPhotos"
CURRENT_KEY = "fullBodyCurrentUrl"

BYTE_BUDGET = 4_500_000
MAX_ITEM_BYTES = 1_500_000
TTL_DAYS = 60
DAY_MS = 86_400_000

# Fixed per-record JSON overhead and the enclosing brackets.
RECORD_OVERHEAD_BYTES = 64
COLLECTION_OVERHEAD_BYTES = 2

DEFAULT_COMPRESS = CompressOptions(max_width=1280, max_height=1920, max_megapixels=3.2, byte_ceiling=MAX_ITEM_BYTES)

_UNSET = object()


def now_ms() -> int:
    return int(time.time() * 1000)


def estimate_records_bytes(records: Iterable[SavedPhoto]) -> int:
    """Estimated serialized size of a collection."""
    return COLLECTION_OVERHEAD_BYTES + sum(
        RECORD_OVERHEAD_BYTES + approx_bytes_of_data_url(r.url) for r in records
    )


def trim_records(records: Iterable[SavedPhoto], budget: int, ttl_ms: int, now: int) -> List[SavedPhoto]:
    """Drop expired records, sort newest first, then evict from the tail until under budget."""
    cutoff = now - ttl_ms
    kept = sorted((r for r in records if r.ts >= cutoff), key=lambda r: r.ts, reverse=True)
    while kept and estimate_records_bytes(kept) > budget:
        kept.pop()
    return kept


class PhotoStore:
    """Full-body photo collection with a byte budget, TTL, and current pointer.

    The store owns its persisted state; callers get fresh `SavedPhoto` lists
    from every read. Read-modify-write cycles are not atomic, so one logical
    writer per store is assumed.

    Args:
        storage: Key-value medium holding the collection and pointer.
        compressor: Compressor applied by `add_image`; defaults to the
            1280x1920 / 3.2MP / `max_item_bytes` configuration.
        byte_budget: Aggregate estimated size limit.
        ttl_days: Retention window.
        clock: Millisecond clock, injectable for tests.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        compressor: Optional[ImageCompressor] = None,
        *,
        byte_budget: int = BYTE_BUDGET,
        ttl_days: int = TTL_DAYS,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._storage = storage
        self._compressor = compressor or ImageCompressor(DEFAULT_COMPRESS)
        self.byte_budget = byte_budget
        self.ttl_ms = ttl_days * DAY_MS
        self._clock = clock

    @property
    def compress_options(self) -> CompressOptions:
        return self._compressor.options

    def trim(self, records: Iterable[SavedPhoto]) -> List[SavedPhoto]:
        return trim_records(records, self.byte_budget, self.ttl_ms, self._clock())

    def load_all(self) -> List[SavedPhoto]:
        """Return the trimmed collection, repairing legacy records without an id.

        Never raises: an unusable medium or an unparseable payload yields `[]`.
        """
        try:
            if not self._storage.is_usable():
                LOGGER.warning("Photo storage unavailable; returning empty collection")
                return []
            raw = self._storage.get_item(STORE_KEY)
            parsed = json.loads(raw) if raw else []
        except (OSError, ValueError, TypeError) as exc:
            LOGGER.warning("Could not read saved photos: %s", exc)
            return []
        if not isinstance(parsed, list):
            LOGGER.warning("Saved photos payload is not a list; ignoring it")
            return []

        records: List[SavedPhoto] = []
        repaired = False
        for entry in parsed:
            if not isinstance(entry, dict) or not isinstance(entry.get("url"), str):
                repaired = True
                continue
            photo_id = entry.get("id")
            if not photo_id:
                photo_id = uuid.uuid4().hex
                repaired = True
            ts = entry.get("ts")
            if not isinstance(ts, (int, float)):
                ts = self._clock()
                repaired = True
            records.append(SavedPhoto(id=str(photo_id), url=entry["url"], ts=int(ts)))

        trimmed = self.trim(records)
        if repaired or len(trimmed) != len(records):
            try:
                self._persist(trimmed, [self.get_current()])
            except (OSError, ValueError) as exc:
                LOGGER.warning("Could not persist repaired photo collection: %s", exc)
        return trimmed

    def save_all(self, records: Iterable[SavedPhoto], current=_UNSET) -> List[SavedPhoto]:
        """Trim and persist `records`, then recompute the current pointer.

        Args:
            records: Collection to store.
            current: Preferred current `url`. Used if still present after the
                trim; otherwise the existing pointer, then the newest record.
                None means no preference.

        Returns:
            The trimmed collection that was written.

        Raises:
            StorageUnavailableError: If the medium fails the probe.
        """
        if not self._storage.is_usable():
            raise StorageUnavailableError("Photo storage is unavailable")
        trimmed = self.trim(records)
        preferred = [] if current is _UNSET or current is None else [current]
        self._persist(trimmed, [*preferred, self.get_current()])
        return trimmed

    def _persist(self, trimmed: List[SavedPhoto], candidates: List[Optional[str]]) -> None:
        """Write the collection and point at the first candidate still present, else the newest."""
        self._storage.set_item(STORE_KEY, json.dumps([r.to_dict() for r in trimmed]))
        urls = {r.url for r in trimmed}
        chosen = next((c for c in candidates if c and c in urls), None)
        if chosen is None and trimmed:
            chosen = trimmed[0].url
        if chosen:
            self._storage.set_item(CURRENT_KEY, chosen)
        else:
            self._storage.remove_item(CURRENT_KEY)

    def get_current(self) -> Optional[str]:
        """Return the stored current `url`, or None (never raises)."""
        try:
            return self._storage.get_item(CURRENT_KEY)
        except (OSError, ValueError) as exc:
            LOGGER.warning("Could not read current photo pointer: %s", exc)
            return None

    def get_current_or_first(self) -> Optional[str]:
        current = self.get_current()
        if current:
            return current
        records = self.load_all()
        return records[0].url if records else None

    def set_current(self, url: str) -> None:
        """Select an existing photo. Raises KeyError if no record has this `url`."""
        records = self.load_all()
        if not any(r.url == url for r in records):
            raise KeyError("Photo not found")
        self.save_all(records, url)

    def delete(self, id_or_url: str) -> bool:
        """Remove the photo matching an id or url; returns False if none matched."""
        records = self.load_all()
        remaining = [r for r in records if r.id != id_or_url and r.url != id_or_url]
        if len(remaining) == len(records):
            return False
        self.save_all(remaining)
        return True

    async def add_image(self, source: ImageSource) -> str:
        """Compress `source`, store it as the newest photo, and make it current.

        A data URI already within the per-item ceiling is stored verbatim once
        it decodes as an image. If an identical `url` is already saved it is
        only re-selected. Storage reads and writes run off the event loop.

        Returns:
            The stored data URI.

        Raises:
            ImageDecodeError: If the source cannot be decoded.
            StorageUnavailableError: If the medium is not writable.
            StorageQuotaError: If the photo alone does not fit the byte budget.
        """
        if isinstance(source, str) and is_data_url(source) and (
            approx_bytes_of_data_url(source) <= self.compress_options.byte_ceiling
        ):
            await self._compressor.verify(source)
            data_url = source
        else:
            data_url = await self._compressor.compress(source)
        return await asyncio.to_thread(self._store_new, data_url)

    def _store_new(self, data_url: str) -> str:
        existing = self.load_all()
        if any(r.url == data_url for r in existing):
            self.save_all(existing, data_url)
            return data_url

        record = SavedPhoto(id=uuid.uuid4().hex, url=data_url, ts=self._clock())
        # Trimming an oversized record would empty the collection before dropping it.
        if estimate_records_bytes([record]) > self.byte_budget:
            LOGGER.error(
                "Photo of about %d bytes does not fit the %d-byte budget",
                approx_bytes_of_data_url(data_url),
                self.byte_budget,
            )
            raise StorageQuotaError(f"Photo does not fit the {self.byte_budget}-byte budget")
        stored = self.save_all([record, *existing], record.url)
        evicted = len(existing) + 1 - len(stored)
        if evicted:
            LOGGER.info("Evicted %d saved photo(s) to stay within %d bytes", evicted, self.byte_budget)
        return record.url

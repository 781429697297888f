"""Tests for the budgeted key-value photo collection."""

import json
import threading

import pytest

from conftest import ThreadRecordingStorage, fake_data_url, image_bytes
from models.photo_record import SavedPhoto
from services.errors import ImageDecodeError, StorageQuotaError, StorageUnavailableError
from services.photo_store import (
    CURRENT_KEY,
    STORE_KEY,
    PhotoStore,
    estimate_records_bytes,
    trim_records,
)
from utils.data_url import approx_bytes_of_data_url
from utils.kv_storage import MemoryKeyValueStorage

PAYLOAD_CHARS = 4000
RECORD_BYTES = 64 + PAYLOAD_CHARS * 3 // 4


def _budget_for(count: int) -> int:
    return 2 + count * RECORD_BYTES


def _store(storage, clock, records_in_budget: int = 10, ttl_days: int = 60) -> PhotoStore:
    return PhotoStore(storage, byte_budget=_budget_for(records_in_budget), ttl_days=ttl_days, clock=clock)


class TestTrim:
    """Pure trimming behavior."""

    def test_evicts_oldest_first(self) -> None:
        records = [SavedPhoto(id=str(i), url=fake_data_url(i), ts=1000 + i) for i in range(5)]
        kept = trim_records(records, budget=_budget_for(3), ttl_ms=10_000, now=1010)
        assert [r.id for r in kept] == ["4", "3", "2"]

    def test_drops_expired_and_sorts_descending(self) -> None:
        records = [
            SavedPhoto(id="old", url=fake_data_url(1), ts=0),
            SavedPhoto(id="a", url=fake_data_url(2), ts=900),
            SavedPhoto(id="b", url=fake_data_url(3), ts=950),
        ]
        kept = trim_records(records, budget=10**9, ttl_ms=500, now=1000)
        assert [r.id for r in kept] == ["b", "a"]

    def test_estimate_counts_overhead(self) -> None:
        records = [SavedPhoto(id="x", url=fake_data_url(1), ts=1)]
        assert estimate_records_bytes(records) == 2 + RECORD_BYTES
        assert estimate_records_bytes([]) == 2


class TestAddImage:
    """Composite add flow."""

    @pytest.mark.asyncio
    async def test_twelve_inserts_keep_ten_most_recent(self, storage, clock) -> None:
        store = _store(storage, clock)
        urls = [await store.add_image(fake_data_url(i)) for i in range(12)]

        kept = store.load_all()
        assert [r.url for r in kept] == list(reversed(urls[2:]))
        assert estimate_records_bytes(kept) <= store.byte_budget
        assert store.get_current() == urls[-1]

    @pytest.mark.asyncio
    async def test_budget_holds_after_every_insert(self, storage, clock) -> None:
        store = _store(storage, clock, records_in_budget=3)
        for i in range(8):
            await store.add_image(fake_data_url(i, payload_chars=3000 + i * 400))
            assert estimate_records_bytes(store.load_all()) <= store.byte_budget

    @pytest.mark.asyncio
    async def test_duplicate_reselects_without_reordering(self, storage, clock) -> None:
        store = _store(storage, clock)
        a = await store.add_image(fake_data_url(1))
        b = await store.add_image(fake_data_url(2))
        before = [(r.id, r.ts) for r in store.load_all()]

        again = await store.add_image(fake_data_url(1))

        assert again == a
        assert store.get_current() == a
        assert [(r.id, r.ts) for r in store.load_all()] == before
        assert [r.url for r in store.load_all()] == [b, a]

    @pytest.mark.asyncio
    async def test_compresses_binary_sources(self, storage, clock) -> None:
        store = _store(storage, clock)
        url = await store.add_image(image_bytes(3000, 4000))
        assert url.startswith("data:image/jpeg;base64,")
        assert approx_bytes_of_data_url(url) <= store.compress_options.byte_ceiling
        assert store.load_all()[0].url == url

    @pytest.mark.asyncio
    async def test_undecodable_data_url_is_rejected(self, storage, clock) -> None:
        store = _store(storage, clock)
        with pytest.raises(ImageDecodeError):
            await store.add_image("data:image/jpeg;base64,AAAA")
        assert store.load_all() == []
        assert store.get_current() is None

    @pytest.mark.asyncio
    async def test_photo_larger_than_budget_raises_and_keeps_collection(self, storage, clock) -> None:
        store = PhotoStore(storage, byte_budget=_budget_for(1), clock=clock)
        kept = await store.add_image(fake_data_url(1))

        with pytest.raises(StorageQuotaError):
            await store.add_image(fake_data_url(2, payload_chars=8000))

        assert [r.url for r in store.load_all()] == [kept]
        assert store.get_current() == kept

    @pytest.mark.asyncio
    async def test_storage_calls_run_off_the_event_loop(self, clock) -> None:
        storage = ThreadRecordingStorage()
        store = _store(storage, clock)

        await store.add_image(fake_data_url(1))

        assert storage.threads
        assert threading.get_ident() not in storage.threads

    @pytest.mark.asyncio
    async def test_unavailable_storage_fails_loudly(self, clock) -> None:
        store = _store(MemoryKeyValueStorage(enabled=False), clock)
        with pytest.raises(StorageUnavailableError):
            await store.add_image(fake_data_url(1))


class TestCurrentPointer:
    """Pointer selection and repair."""

    @pytest.mark.asyncio
    async def test_delete_current_falls_back_to_most_recent(self, storage, clock) -> None:
        store = _store(storage, clock)
        a = await store.add_image(fake_data_url(1))
        b = await store.add_image(fake_data_url(2))
        assert store.get_current() == b

        record_b = store.load_all()[0]
        assert store.delete(record_b.id) is True

        assert store.get_current() == a

    @pytest.mark.asyncio
    async def test_delete_last_clears_pointer(self, storage, clock) -> None:
        store = _store(storage, clock)
        a = await store.add_image(fake_data_url(1))
        assert store.delete(a) is True
        assert store.get_current() is None
        assert storage.get_item(CURRENT_KEY) is None
        assert store.get_current_or_first() is None

    def test_delete_unknown_returns_false(self, storage, clock) -> None:
        assert _store(storage, clock).delete("nope") is False

    @pytest.mark.asyncio
    async def test_set_current_requires_existing_record(self, storage, clock) -> None:
        store = _store(storage, clock)
        a = await store.add_image(fake_data_url(1))
        await store.add_image(fake_data_url(2))

        store.set_current(a)
        assert store.get_current() == a
        with pytest.raises(KeyError):
            store.set_current(fake_data_url(99))

    def test_override_missing_after_trim_keeps_existing_pointer(self, storage, clock) -> None:
        store = _store(storage, clock)
        records = [SavedPhoto(id=str(i), url=fake_data_url(i), ts=clock()) for i in range(3)]
        store.save_all(records, records[0].url)

        store.save_all(records, fake_data_url(42))

        assert store.get_current() == records[0].url

    def test_get_current_or_first_uses_newest_when_unset(self, storage, clock) -> None:
        store = _store(storage, clock)
        records = [SavedPhoto(id=str(i), url=fake_data_url(i), ts=clock()) for i in range(2)]
        store.save_all(records)
        storage.remove_item(CURRENT_KEY)
        assert store.get_current_or_first() == records[1].url


class TestLoadAll:
    """Read path degradation and repair."""

    @pytest.mark.asyncio
    async def test_expired_records_are_dropped(self, storage, clock) -> None:
        store = _store(storage, clock, ttl_days=60)
        old = await store.add_image(fake_data_url(1))
        clock.advance_days(30)
        fresh = await store.add_image(fake_data_url(2))
        clock.advance_days(31)

        assert [r.url for r in store.load_all()] == [fresh]
        assert old not in storage.get_item(STORE_KEY)

    def test_repairs_legacy_records_without_id(self, storage, clock) -> None:
        store = _store(storage, clock)
        storage.set_item(STORE_KEY, json.dumps([{"url": fake_data_url(1), "ts": clock()}, {"url": fake_data_url(2)}]))

        records = store.load_all()

        assert len(records) == 2
        assert all(r.id for r in records)
        persisted = json.loads(storage.get_item(STORE_KEY))
        assert {p["id"] for p in persisted} == {r.id for r in records}
        assert store.load_all() == records

    def test_unparseable_payload_yields_empty(self, storage, clock) -> None:
        storage.set_item(STORE_KEY, "{not json")
        assert _store(storage, clock).load_all() == []

    def test_non_list_payload_yields_empty(self, storage, clock) -> None:
        storage.set_item(STORE_KEY, json.dumps({"url": "x"}))
        assert _store(storage, clock).load_all() == []

    def test_unavailable_storage_reads_empty(self, clock) -> None:
        store = _store(MemoryKeyValueStorage(enabled=False), clock)
        assert store.load_all() == []
        assert store.get_current() is None
        with pytest.raises(StorageUnavailableError):
            store.save_all([])

    def test_returns_copies(self, storage, clock) -> None:
        store = _store(storage, clock)
        store.save_all([SavedPhoto(id="1", url=fake_data_url(1), ts=clock())])
        first = store.load_all()
        first.clear()
        assert len(store.load_all()) == 1

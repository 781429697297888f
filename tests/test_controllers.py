"""Controller tests: key-value store work stays off the event loop thread."""

import threading
from types import SimpleNamespace

import pytest

from conftest import ThreadRecordingStorage, fake_data_url
from controllers.look_controller import list_looks, remove_look, save_look, toggle_favorite
from controllers.photo_controller import delete_photo, list_photos, select_photo
from services.look_store import LookStore
from services.photo_store import PhotoStore


def _request(**state) -> SimpleNamespace:
    return SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(**state)))


class TestPhotoController:
    @pytest.mark.asyncio
    async def test_store_calls_run_in_worker_threads(self, clock) -> None:
        storage = ThreadRecordingStorage()
        store = PhotoStore(storage, clock=clock)
        first = await store.add_image(fake_data_url(1))
        second = await store.add_image(fake_data_url(2))
        storage.threads.clear()
        request = _request(photo_store=store)

        listing = await list_photos(request)
        assert [p["url"] for p in listing["photos"]] == [second, first]
        assert (await select_photo(request, first))["current"] == first
        assert (await delete_photo(request, listing["photos"][1]["id"]))["current"] == second

        assert storage.threads
        assert threading.get_ident() not in storage.threads


class TestLookController:
    @pytest.mark.asyncio
    async def test_store_calls_run_in_worker_threads(self, clock) -> None:
        storage = ThreadRecordingStorage()
        request = _request(look_store=LookStore(storage, clock=clock))

        look = await save_look(request, "https://cdn.example.com/a.jpg", False, {"product": "Tee"})
        assert (await toggle_favorite(request, look["look_id"]))["favorite"] is True
        assert [item["look_id"] for item in (await list_looks(request, favorites_only=True))["looks"]] == [
            look["look_id"]
        ]
        assert await remove_look(request, look["look_id"]) == {"deleted": look["look_id"]}

        assert storage.threads
        assert threading.get_ident() not in storage.threads

"""Handlers for the key-value photo collection.

Store calls read and rewrite the whole key-value file, so they run in a worker
thread via `asyncio.to_thread`.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request, UploadFile

from services.errors import ImageDecodeError, StorageQuotaError, StorageUnavailableError
from services.photo_store import PhotoStore, estimate_records_bytes
from utils.media_validation import read_image_bytes


def _store(request: Request) -> PhotoStore:
    store = getattr(request.app.state, "photo_store", None)
    if store is None:
        raise HTTPException(status_code=500, detail="Photo store not initialized.")
    return store


def _snapshot(store: PhotoStore) -> Dict[str, Any]:
    records = store.load_all()
    return {
        "photos": [r.to_dict() for r in records],
        "current": store.get_current_or_first(),
        "estimated_bytes": estimate_records_bytes(records),
        "byte_budget": store.byte_budget,
    }


async def list_photos(request: Request) -> Dict[str, Any]:
    """Return saved photos newest first with the current selection and estimated size."""
    return await asyncio.to_thread(_snapshot, _store(request))


async def add_photo(request: Request, file: Optional[UploadFile], source: Optional[str]) -> Dict[str, Any]:
    """Compress and save an uploaded file or a data URI / HTTPS source, making it current."""
    store = _store(request)
    if file is not None:
        payload: Any = await read_image_bytes(file)
    elif source and source.strip():
        payload = source.strip()
    else:
        raise HTTPException(status_code=400, detail="Provide an image file or a source URL.")

    try:
        url = await store.add_image(payload)
    except ImageDecodeError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except StorageUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except StorageQuotaError as exc:
        raise HTTPException(status_code=507, detail=str(exc)) from exc

    records = await asyncio.to_thread(store.load_all)
    saved = next((r for r in records if r.url == url), None)
    return {
        "id": saved.id if saved else None,
        "url": url,
        "current": await asyncio.to_thread(store.get_current),
        "count": len(records),
    }


async def select_photo(request: Request, url: str) -> Dict[str, Any]:
    store = _store(request)
    try:
        await asyncio.to_thread(store.set_current, url)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="Photo not found") from exc
    except StorageUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {"current": await asyncio.to_thread(store.get_current)}


async def delete_photo(request: Request, photo_id: str) -> Dict[str, Any]:
    store = _store(request)
    try:
        removed = await asyncio.to_thread(store.delete, photo_id)
    except StorageUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if not removed:
        raise HTTPException(status_code=404, detail="Photo not found")
    return {"deleted": photo_id, "current": await asyncio.to_thread(store.get_current)}

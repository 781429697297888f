"""Handlers for the SQLite fallback photo store."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException, Request, UploadFile
from fastapi.responses import Response

from dal.photo_dal import PhotoDAL
from services.errors import ImageDecodeError, StorageQuotaError
from services.image_compressor import ImageCompressor
from utils.data_url import decode_data_url
from utils.media_validation import read_image_bytes


def _dal(request: Request) -> PhotoDAL:
    dal = getattr(request.app.state, "photo_dal", None)
    if dal is None:
        raise HTTPException(status_code=500, detail="Photo database not initialized.")
    return dal


async def list_vault_photos(request: Request) -> Dict[str, Any]:
    """List stored photos newest first (metadata only) with the current id."""
    dal = _dal(request)
    records = sorted(await dal.list_photos(), key=lambda r: r.created_at, reverse=True)
    return {
        "photos": [{"id": r.id, "created_at": r.created_at, "size": r.size} for r in records],
        "current_id": await dal.get_current_id(),
        "persisted": getattr(request.app.state, "persisted", False),
    }


async def add_vault_photo(request: Request, file: UploadFile) -> Dict[str, Any]:
    """Compress an upload to JPEG, store the blob, and make it current."""
    dal = _dal(request)
    compressor: ImageCompressor = request.app.state.compressor
    raw = await read_image_bytes(file)
    try:
        data_url = await compressor.compress(raw)
    except ImageDecodeError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    _, blob = decode_data_url(data_url)
    try:
        photo_id = await dal.add_photo_blob(blob)
    except StorageQuotaError as exc:
        raise HTTPException(status_code=507, detail=str(exc)) from exc
    await dal.set_current_id(photo_id)
    return {"id": photo_id, "size": len(blob), "current_id": photo_id}


async def get_vault_photo(request: Request, photo_id: str) -> Response:
    """Return the raw JPEG bytes of a stored photo."""
    record = await _dal(request).get_photo(photo_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Photo not found")
    return Response(content=record.blob, media_type="image/jpeg")


async def delete_vault_photo(request: Request, photo_id: str) -> Dict[str, Any]:
    """Delete a photo; if it was current, the newest remaining photo becomes current."""
    dal = _dal(request)
    if not await dal.delete_photo(photo_id):
        raise HTTPException(status_code=404, detail="Photo not found")

    current_id = await dal.get_current_id()
    if current_id == photo_id or current_id is None:
        current_id = await dal.newest_photo_id()
        await dal.set_current_id(current_id)
    return {"deleted": photo_id, "current_id": current_id}


async def set_vault_current(request: Request, photo_id: Optional[str]) -> Dict[str, Any]:
    dal = _dal(request)
    if photo_id and await dal.get_photo(photo_id) is None:
        raise HTTPException(status_code=404, detail="Photo not found")
    await dal.set_current_id(photo_id)
    return {"current_id": photo_id}


async def get_vault_current(request: Request) -> Dict[str, Any]:
    return {"current_id": await _dal(request).get_current_id()}

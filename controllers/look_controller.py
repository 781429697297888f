"""Handlers for saved try-on looks."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request

from services.look_store import LookStore
from services.product_image import garment_image_url


def _store(request: Request) -> LookStore:
    store = getattr(request.app.state, "look_store", None)
    if store is None:
        raise HTTPException(status_code=500, detail="Look store not initialized.")
    return store


async def list_looks(request: Request, favorites_only: bool = False) -> Dict[str, Any]:
    looks = await asyncio.to_thread(_store(request).load_looks)
    if favorites_only:
        looks = [look for look in looks if look.favorite]
    return {"looks": [look.to_dict() for look in looks]}


async def save_look(
    request: Request,
    url: str,
    favorite: bool,
    meta: Dict[str, Any],
    product: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Save a try-on result. The product image defaults to the product's garment image."""
    if not url or not url.strip():
        raise HTTPException(status_code=400, detail="Look url is required.")
    if product and not meta.get("product_image"):
        meta["product_image"] = garment_image_url(product)
    store = _store(request)
    look = await asyncio.to_thread(store.add_look, url.strip(), favorite=favorite, **meta)
    return look.to_dict()


async def toggle_favorite(request: Request, look_id: str) -> Dict[str, Any]:
    look = await asyncio.to_thread(_store(request).toggle_favorite, look_id)
    if look is None:
        raise HTTPException(status_code=404, detail="Look not found")
    return look.to_dict()


async def remove_look(request: Request, look_id: str) -> Dict[str, Any]:
    if not await asyncio.to_thread(_store(request).remove_look, look_id):
        raise HTTPException(status_code=404, detail="Look not found")
    return {"deleted": look_id}

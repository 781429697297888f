"""FastAPI routes for saved try-on looks."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from controllers.look_controller import list_looks, remove_look, save_look, toggle_favorite

router = APIRouter(prefix="/looks", tags=["looks"])


class LookPayload(BaseModel):
	url: str
	favorite: bool = False
	product_id: Optional[str] = None
	product: Optional[str] = None
	merchant: Optional[str] = None
	price: Optional[float] = None
	product_image: Optional[str] = None
	product_url: Optional[str] = None
	# Raw product object from the shop SDK, used to fill product_image.
	source_product: Optional[Dict[str, Any]] = None


@router.get("")
async def list_looks_route(request: Request, favorites: bool = False):
	try:
		return await list_looks(request, favorites_only=favorites)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("")
async def save_look_route(request: Request, payload: LookPayload):
	meta = payload.model_dump(exclude={"url", "favorite", "source_product"}, exclude_none=True)
	try:
		return await save_look(request, payload.url, payload.favorite, meta, payload.source_product)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/{look_id}/favorite")
async def toggle_favorite_route(request: Request, look_id: str):
	try:
		return await toggle_favorite(request, look_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/{look_id}")
async def remove_look_route(request: Request, look_id: str):
	try:
		return await remove_look(request, look_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))

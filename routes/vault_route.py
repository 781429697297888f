"""FastAPI routes for the SQLite fallback photo store."""

from typing import Optional

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from pydantic import BaseModel

from controllers.vault_controller import (
	add_vault_photo,
	delete_vault_photo,
	get_vault_current,
	get_vault_photo,
	list_vault_photos,
	set_vault_current,
)

router = APIRouter(prefix="/vault", tags=["vault"])


class CurrentPayload(BaseModel):
	id: Optional[str] = None


@router.get("/photos")
async def list_vault_photos_route(request: Request):
	try:
		return await list_vault_photos(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/photos")
async def add_vault_photo_route(request: Request, file: UploadFile = File(...)):
	try:
		return await add_vault_photo(request, file)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/photos/{photo_id}")
async def get_vault_photo_route(request: Request, photo_id: str):
	"""Return the JPEG bytes for the specified photo id."""
	try:
		return await get_vault_photo(request, photo_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/photos/{photo_id}")
async def delete_vault_photo_route(request: Request, photo_id: str):
	try:
		return await delete_vault_photo(request, photo_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/current")
async def get_vault_current_route(request: Request):
	try:
		return await get_vault_current(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.put("/current")
async def set_vault_current_route(request: Request, payload: CurrentPayload):
	try:
		return await set_vault_current(request, payload.id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))

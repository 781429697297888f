"""FastAPI routes for the saved full-body photo collection."""

from typing import Optional

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile
from pydantic import BaseModel

from controllers.photo_controller import add_photo, delete_photo, list_photos, select_photo

router = APIRouter(prefix="/photos", tags=["photos"])


class SelectPayload(BaseModel):
	url: str


@router.get("")
async def list_photos_route(request: Request):
	try:
		return await list_photos(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("")
async def add_photo_route(
	request: Request,
	file: Optional[UploadFile] = File(None),
	source: Optional[str] = Form(None),
):
	"""Save an uploaded photo (or a data URI / HTTPS source) and make it current."""
	try:
		return await add_photo(request, file, source)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.put("/current")
async def select_photo_route(request: Request, payload: SelectPayload):
	try:
		return await select_photo(request, payload.url)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/{photo_id}")
async def delete_photo_route(request: Request, photo_id: str):
	try:
		return await delete_photo(request, photo_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))

"""Validation helpers for uploaded photos."""

from fastapi import HTTPException, UploadFile

ALLOWED_IMAGE_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
    "image/gif",
    "image/bmp",
    "image/heic",
    "image/heif",
    "image/avif",
    "application/octet-stream",
}

ALLOWED_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp", ".heic", ".heif", ".avif")


def validate_image_file(image_file: UploadFile) -> None:
    """Validate that the upload claims to be an image.

    The content type is checked when present; otherwise the filename
    extension must be a known image extension. Decoding is left to the
    compressor, which rejects anything Pillow cannot open.
    """
    if image_file.content_type:
        content_type = image_file.content_type.lower().split(";", 1)[0].strip()
        if content_type not in ALLOWED_IMAGE_TYPES:
            raise HTTPException(status_code=415, detail=f"Unsupported image content type: {image_file.content_type}")
    elif not (image_file.filename or "").lower().endswith(ALLOWED_IMAGE_EXTENSIONS):
        raise HTTPException(status_code=415, detail="Unsupported or missing image content type.")


async def read_image_bytes(image_file: UploadFile) -> bytes:
    """Read validated image bytes, ensuring the upload is not empty."""
    validate_image_file(image_file)
    image_bytes = await image_file.read()
    if not image_bytes:
        raise HTTPException(status_code=400, detail="Uploaded image is empty.")
    return image_bytes

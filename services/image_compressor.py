"""Image normalizer/compressor.

Re-encodes an arbitrary image source as a JPEG data URI that fits a byte
ceiling. Dimensions are bounded by width, height, and megapixels (never
upscaled), then a descending quality ladder is tried; if nothing fits, the
canvas is shrunk once more and a second ladder is tried. The ceiling is soft:
when every step is exhausted the smallest attempt is returned.

Public class: `ImageCompressor`

Example:
    compressor = ImageCompressor(CompressOptions(1280, 1920, 3.2, 1_500_000))
    data_url = await compressor.compress(path_or_bytes_or_url)
"""
from __future__ import annotations

import asyncio
import inspect
import io
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Tuple, Union

import aiofiles
import httpx
from PIL import Image, ImageOps, UnidentifiedImageError

from services.errors import ImageDecodeError
from utils.data_url import approx_bytes_of_data_url, decode_data_url, is_data_url, is_http_url, to_data_url

ImageSource = Union[bytes, bytearray, Path, str, Any]

FIRST_PASS_QUALITIES = (82, 74, 68)
SECOND_PASS_QUALITIES = (70, 64, 60)
SECOND_PASS_SHRINK = 0.88
SECOND_PASS_MIN_DIMENSION = 320


@dataclass(frozen=True)
class CompressOptions:
    """Bounds for one compression run.

    Args:
        max_width: Maximum output width in pixels.
        max_height: Maximum output height in pixels.
        max_megapixels: Maximum output pixel count, in millions.
        byte_ceiling: Target estimated size of the encoded payload.
    """

    max_width: int
    max_height: int
    max_megapixels: float
    byte_ceiling: int


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def target_size(width: int, height: int, options: CompressOptions) -> Tuple[int, int]:
    """Return the output dimensions for a `width` x `height` source."""
    mp = (width * height) / 1e6
    scale_mp = min(1.0, math.sqrt(options.max_megapixels / max(mp, options.max_megapixels)))
    ratio = min(options.max_width / width, options.max_height / height, scale_mp, 1.0)
    return max(1, _round_half_up(width * ratio)), max(1, _round_half_up(height * ratio))


def _open_image(raw: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(raw))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        raise ImageDecodeError("Decoded bytes are not a supported image format") from exc
    return img


def _has_alpha(img: Image.Image) -> bool:
    return img.mode in ("RGBA", "LA", "PA") or (img.mode == "P" and "transparency" in img.info)


def _flatten(img: Image.Image, background: Tuple[int, int, int]) -> Image.Image:
    """Return an RGB copy, compositing any transparency onto `background`."""
    if not _has_alpha(img):
        return img.convert("RGB")
    rgba = img.convert("RGBA")
    canvas = Image.new("RGB", rgba.size, background)
    canvas.paste(rgba, mask=rgba.split()[3])
    return canvas


def _encode(img: Image.Image, quality: int) -> str:
    out = io.BytesIO()
    img.save(out, format="JPEG", quality=quality, optimize=True)
    return to_data_url(out.getvalue(), "image/jpeg")


class ImageCompressor:
    """Compress image sources into size-bounded JPEG data URIs.

    Args:
        options: Dimension and byte bounds applied to every call.
        background: RGB color used when flattening transparent images.
        http_client: Optional shared `httpx.AsyncClient` for remote sources.
    """

    def __init__(
        self,
        options: CompressOptions,
        background: Tuple[int, int, int] = (255, 255, 255),
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.options = options
        self.background = background
        self._http_client = http_client

    async def compress(self, source: ImageSource) -> str:
        """Resolve `source` to bytes and compress it off the event loop.

        Raises:
            ImageDecodeError: If the source cannot be fetched or decoded.
        """
        raw = await self.load_source(source)
        return await asyncio.to_thread(self.compress_bytes, raw)

    async def verify(self, source: ImageSource) -> None:
        """Check that `source` resolves to a decodable image without re-encoding it.

        Raises:
            ImageDecodeError: If the source cannot be fetched or decoded.
        """
        raw = await self.load_source(source)
        await asyncio.to_thread(_open_image, raw)

    async def load_source(self, source: ImageSource) -> bytes:
        """Return the raw bytes behind an image source.

        Accepts bytes, a `Path`, a binary file object (sync or async `read()`),
        a base64 `data:image/...` URI, or an `http(s)://` URL.
        """
        if isinstance(source, (bytes, bytearray)):
            return bytes(source)
        if isinstance(source, Path):
            try:
                async with aiofiles.open(source, "rb") as f:
                    return await f.read()
            except OSError as exc:
                raise ImageDecodeError(f"Cannot read image file {source}") from exc
        if isinstance(source, str):
            if is_data_url(source):
                return decode_data_url(source)[1]
            if is_http_url(source):
                return await self._fetch(source)
            raise ImageDecodeError("Unsupported image scheme. Provide HTTPS or data:image/*")
        read = getattr(source, "read", None)
        if read is None:
            raise ImageDecodeError(f"Unsupported image source type: {type(source).__name__}")
        data = read()
        if inspect.isawaitable(data):
            data = await data
        if not isinstance(data, (bytes, bytearray)):
            raise ImageDecodeError("Image file object did not return bytes")
        return bytes(data)

    async def _fetch(self, url: str) -> bytes:
        try:
            if self._http_client is not None:
                response = await self._http_client.get(url)
            else:
                async with httpx.AsyncClient(follow_redirects=True) as client:
                    response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ImageDecodeError(f"Failed to fetch image from {url}") from exc
        return response.content

    def compress_bytes(self, raw: bytes) -> str:
        """Decode `raw` and return the best JPEG data URI within the ceiling.

        Raises:
            ImageDecodeError: If the bytes are not a supported image.
        """
        src = ImageOps.exif_transpose(_open_image(raw))
        src = _flatten(src, self.background)

        sw, sh = src.size
        tw, th = target_size(sw, sh, self.options)

        # Halve first when shrinking by more than 2x in both axes.
        if sw > tw * 2 and sh > th * 2:
            src = src.resize((_round_half_up(sw / 2), _round_half_up(sh / 2)), Image.LANCZOS)
        canvas = src.resize((tw, th), Image.LANCZOS) if src.size != (tw, th) else src

        ceiling = self.options.byte_ceiling
        for quality in FIRST_PASS_QUALITIES:
            out = _encode(canvas, quality)
            if approx_bytes_of_data_url(out) <= ceiling:
                return out

        w2 = min(tw, max(SECOND_PASS_MIN_DIMENSION, _round_half_up(tw * SECOND_PASS_SHRINK)))
        h2 = min(th, max(SECOND_PASS_MIN_DIMENSION, _round_half_up(th * SECOND_PASS_SHRINK)))
        smaller = canvas.resize((w2, h2), Image.LANCZOS) if (w2, h2) != (tw, th) else canvas

        out = ""
        for quality in SECOND_PASS_QUALITIES:
            out = _encode(smaller, quality)
            if approx_bytes_of_data_url(out) <= ceiling:
                return out
        # Soft ceiling: the last (lowest quality) attempt wins.
        return out

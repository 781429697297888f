"""Garment image lookup over the product shapes the shop SDK returns.

Products arrive in a few known shapes. The garment image is taken from the
first non-empty field in this fixed order:

1. `featured_image.url`
2. `images[0].src`
3. `images[0].url`
4. `image.src`
5. `media[0].preview.image.url`

Camel-cased keys (`featuredImage`) are accepted when parsing dicts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional


@dataclass
class ImageRef:
    url: Optional[str] = None
    src: Optional[str] = None


@dataclass
class MediaPreview:
    image: Optional[ImageRef] = None


@dataclass
class MediaItem:
    preview: Optional[MediaPreview] = None


@dataclass
class Product:
    featured_image: Optional[ImageRef] = None
    images: List[ImageRef] = field(default_factory=list)
    image: Optional[ImageRef] = None
    media: List[MediaItem] = field(default_factory=list)


def _get(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def _image_ref(data: Any) -> Optional[ImageRef]:
    if isinstance(data, ImageRef):
        return data
    if not isinstance(data, Mapping):
        return None
    return ImageRef(url=data.get("url"), src=data.get("src"))


def _media_item(data: Any) -> Optional[MediaItem]:
    if isinstance(data, MediaItem):
        return data
    if not isinstance(data, Mapping):
        return None
    preview = data.get("preview")
    if isinstance(preview, Mapping):
        preview = MediaPreview(image=_image_ref(preview.get("image")))
    return MediaItem(preview=preview if isinstance(preview, MediaPreview) else None)


def parse_product(data: Mapping[str, Any]) -> Product:
    """Parse a product dict (snake or camel case keys) into a `Product`."""
    images = _get(data, "images") or []
    media = _get(data, "media") or []
    return Product(
        featured_image=_image_ref(_get(data, "featured_image", "featuredImage")),
        images=[ref for ref in (_image_ref(i) for i in images) if ref is not None] if isinstance(images, list) else [],
        image=_image_ref(_get(data, "image")),
        media=[m for m in (_media_item(i) for i in media) if m is not None] if isinstance(media, list) else [],
    )


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value.strip() else None


def garment_image_url(product: Product | Dict[str, Any] | None) -> Optional[str]:
    """Return the garment image for a product, or None if no known field is set."""
    if product is None:
        return None
    if not isinstance(product, Product):
        product = parse_product(product)

    first_image = product.images[0] if product.images else None
    first_media = product.media[0] if product.media else None
    preview_image = first_media.preview.image if first_media and first_media.preview else None

    candidates = (
        product.featured_image.url if product.featured_image else None,
        first_image.src if first_image else None,
        first_image.url if first_image else None,
        product.image.src if product.image else None,
        preview_image.url if preview_image else None,
    )
    for candidate in candidates:
        url = _text(candidate)
        if url:
            return url
    return None

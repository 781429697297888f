"""Helpers for `data:` image URIs and remote image references."""

from __future__ import annotations

import base64
import binascii
import re
from typing import Tuple

from services.errors import ImageDecodeError

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^,;]*)*?);base64,", re.IGNORECASE)


def is_http_url(value: str | None) -> bool:
    """Return True for `http://` or `https://` references."""
    return bool(value) and bool(re.match(r"^https?://", value, re.IGNORECASE))


def is_data_url(value: str | None) -> bool:
    """Return True for base64 `data:image/...` URIs."""
    return bool(value) and value[:11].lower() == "data:image/"


def approx_bytes_of_data_url(data_url: str) -> int:
    """Estimate the decoded size of a data URI from its base64 payload length.

    The payload is everything after the first comma, or the whole string when
    there is none. The estimate ignores padding and the header.
    """
    idx = data_url.find(",")
    payload = data_url[idx + 1:] if idx >= 0 else data_url
    return (len(payload) * 3) // 4


def to_data_url(image_bytes: bytes, mime_type: str = "image/jpeg") -> str:
    """Wrap raw image bytes as a base64 data URI."""
    return f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"


def decode_data_url(data_url: str) -> Tuple[str, bytes]:
    """Split a base64 data URI into `(mime_type, raw_bytes)`.

    Raises:
        ImageDecodeError: If the URI is not base64-encoded or the payload is invalid.
    """
    match = _DATA_URL_RE.match(data_url)
    if not match:
        raise ImageDecodeError("Unsupported data URI; expected data:image/*;base64,...")
    mime_type = (match.group("mime") or "image/jpeg").lower()
    try:
        raw = base64.b64decode(data_url[match.end():], validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageDecodeError("Invalid base64 payload in data URI") from exc
    return mime_type, raw

"""Saved try-on results ("looks") with optional product metadata."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional

# Metadata fields a caller may merge into an existing look.
LOOK_META_FIELDS = ("product_id", "product", "merchant", "price", "product_image", "product_url")


@dataclass
class LookRecord:
    look_id: str
    url: str
    ts: int
    favorite: bool = False
    product_id: Optional[str] = None
    product: Optional[str] = None
    merchant: Optional[str] = None
    price: Optional[float] = None
    product_image: Optional[str] = None
    product_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LookRecord":
        """Build a record from persisted JSON, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

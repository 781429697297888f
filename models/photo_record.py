from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class SavedPhoto:
    """Entry in the key-value photo collection.

    Attributes:
        id: Stable uuid4 hex string, never reused after eviction.
        url: JPEG data URI (or an external reference for legacy entries).
        ts: Insertion time in milliseconds since the epoch; the recency key.
    """

    id: str
    url: str
    ts: int

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "url": self.url, "ts": self.ts}


@dataclass
class PhotoRecord:
    """Row in the `photos` table of the fallback database.

    Attributes:
        id: Primary key.
        created_at: Milliseconds since the epoch; indexed for eviction order.
        blob: Raw image bytes.
    """

    id: str
    created_at: int
    blob: bytes

    @property
    def size(self) -> int:
        return len(self.blob)

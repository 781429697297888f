"""Saved try-on results ("looks") in the key-value medium.

Looks are kept newest first under `fitVaultLooks`. Adding a look whose `url`
is already saved merges the new product metadata into it without touching
its `favorite` flag or `ts`.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Callable, List, Optional

from models.look_record import LOOK_META_FIELDS, LookRecord
from services.photo_store import now_ms
from utils.kv_storage import KeyValueStorage

LOGGER = logging.getLogger(__name__)

LOOKS_KEY = "fitVaultLooks"


class LookStore:
    """Manage saved looks, favorites, and their product metadata."""

    def __init__(self, storage: KeyValueStorage, clock: Callable[[], int] = now_ms) -> None:
        self._storage = storage
        self._clock = clock

    def load_looks(self) -> List[LookRecord]:
        """Return saved looks, assigning ids to legacy entries. Unreadable data yields []."""
        try:
            raw = self._storage.get_item(LOOKS_KEY)
            parsed = json.loads(raw) if raw else []
        except (OSError, ValueError, TypeError) as exc:
            LOGGER.warning("Could not read saved looks: %s", exc)
            return []
        if not isinstance(parsed, list):
            return []

        looks: List[LookRecord] = []
        repaired = False
        for entry in parsed:
            if not isinstance(entry, dict) or not entry.get("url"):
                repaired = True
                continue
            data = dict(entry)
            if not data.get("look_id"):
                data["look_id"] = uuid.uuid4().hex
                repaired = True
            if not isinstance(data.get("ts"), (int, float)):
                data["ts"] = self._clock()
                repaired = True
            looks.append(LookRecord.from_dict(data))

        # Generated ids must survive the next read to be addressable.
        if repaired:
            try:
                self.save_looks(looks)
            except (OSError, ValueError) as exc:
                LOGGER.warning("Could not persist repaired looks: %s", exc)
        return looks

    def save_looks(self, looks: List[LookRecord]) -> None:
        self._storage.set_item(LOOKS_KEY, json.dumps([look.to_dict() for look in looks]))

    def add_look(self, url: str, favorite: bool = False, **meta: Any) -> LookRecord:
        """Save a look, or merge metadata into the existing look with the same `url`.

        Args:
            url: Try-on result image (data URI or remote reference).
            favorite: Initial favorite flag for a new look; ignored on merge.
            **meta: Any of `product_id`, `product`, `merchant`, `price`,
                `product_image`, `product_url`.

        Raises:
            TypeError: If `meta` contains an unknown field.
        """
        unknown = set(meta) - set(LOOK_META_FIELDS)
        if unknown:
            raise TypeError(f"Unknown look metadata: {', '.join(sorted(unknown))}")

        looks = self.load_looks()
        existing = next((look for look in looks if look.url == url), None)
        if existing is not None:
            for key, value in meta.items():
                if value is not None:
                    setattr(existing, key, value)
            self.save_looks(looks)
            return existing

        look = LookRecord(look_id=uuid.uuid4().hex, url=url, ts=self._clock(), favorite=bool(favorite), **meta)
        self.save_looks([look, *looks])
        return look

    def remove_look(self, id_or_url: str) -> bool:
        looks = self.load_looks()
        remaining = [look for look in looks if look.look_id != id_or_url and look.url != id_or_url]
        if len(remaining) == len(looks):
            return False
        self.save_looks(remaining)
        return True

    def toggle_favorite(self, id_or_url: str) -> Optional[LookRecord]:
        """Flip the favorite flag; returns the updated look or None if not found."""
        looks = self.load_looks()
        target = next((look for look in looks if look.look_id == id_or_url or look.url == id_or_url), None)
        if target is None:
            return None
        target.favorite = not target.favorite
        self.save_looks(looks)
        return target

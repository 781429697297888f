"""Environment-driven settings for the photo stores.

`DATABASE_DIR` is required and holds both the key-value file and the SQLite
fallback database. The numeric knobs are optional overrides.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_BYTE_BUDGET = 4_500_000
DEFAULT_MAX_ITEM_BYTES = 1_500_000
DEFAULT_TTL_DAYS = 60


def _int_env(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip().replace("_", ""))
    except ValueError as exc:
        raise RuntimeError(f"{name}={raw!r} is not an integer") from exc


@dataclass(frozen=True)
class Settings:
    """Resolved configuration shared by the stores and the HTTP app.

    Attributes:
        data_dir: Directory holding `photos.json` and `fitcheck.db`.
        byte_budget: Aggregate byte budget for the key-value photo collection.
        max_item_bytes: Per-photo byte ceiling after compression.
        ttl_days: Retention window for saved photos.
        db_max_bytes: Optional capacity cap for the SQLite fallback store.
    """

    data_dir: Path
    byte_budget: int = DEFAULT_BYTE_BUDGET
    max_item_bytes: int = DEFAULT_MAX_ITEM_BYTES
    ttl_days: int = DEFAULT_TTL_DAYS
    db_max_bytes: Optional[int] = None

    @property
    def kv_path(self) -> Path:
        return self.data_dir / "photos.json"

    @property
    def db_path(self) -> Path:
        return self.data_dir / "fitcheck.db"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables.

        Raises:
            RuntimeError: If DATABASE_DIR is missing, points at a file, cannot be
                created, or a numeric override is not an integer.
        """
        env_dir = os.getenv("DATABASE_DIR")
        if env_dir is None or not env_dir.strip():
            raise RuntimeError(
                "DATABASE_DIR environment variable must be set to a writable "
                "directory path where photo data will be stored."
            )

        data_dir = Path(env_dir).expanduser()
        if data_dir.exists() and not data_dir.is_dir():
            raise RuntimeError(
                f"DATABASE_DIR={env_dir!r} points to a file, not a directory ({data_dir})."
            )
        try:
            data_dir.mkdir(parents=True, exist_ok=True)
        except Exception as exc:
            raise RuntimeError(f"Failed to create or access data directory at {data_dir}") from exc

        return cls(
            data_dir=data_dir,
            byte_budget=_int_env("PHOTO_BYTE_BUDGET", DEFAULT_BYTE_BUDGET),
            max_item_bytes=_int_env("PHOTO_MAX_ITEM_BYTES", DEFAULT_MAX_ITEM_BYTES),
            ttl_days=_int_env("PHOTO_TTL_DAYS", DEFAULT_TTL_DAYS),
            db_max_bytes=_int_env("PHOTO_DB_MAX_BYTES", None),
        )

"""String key-value persistence media for the photo collection.

Both media expose the same synchronous surface: `get_item`, `set_item`,
`remove_item`, plus `is_usable()` which performs the probe write/read/delete
round trip callers run before trusting the medium.
"""

from __future__ import annotations

import json
import os
import tempfile
import uuid
from pathlib import Path
from typing import Dict, Optional


class KeyValueStorage:
    """Base class for string-keyed, string-valued media."""

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError

    def is_usable(self) -> bool:
        """Write, read back, and delete a throwaway key; False on any failure."""
        key = f"__probe__{uuid.uuid4().hex}"
        try:
            self.set_item(key, "1")
            ok = self.get_item(key) == "1"
            self.remove_item(key)
            return ok
        except Exception:
            return False


class MemoryKeyValueStorage(KeyValueStorage):
    """In-process medium, mainly for tests and ephemeral sessions.

    Args:
        quota_bytes: Optional cap on the summed length of keys and values.
        enabled: When False every call raises, mimicking a host-disabled medium.
    """

    def __init__(self, quota_bytes: Optional[int] = None, enabled: bool = True) -> None:
        self._data: Dict[str, str] = {}
        self.quota_bytes = quota_bytes
        self.enabled = enabled

    def _check_enabled(self) -> None:
        if not self.enabled:
            raise OSError("key-value storage is disabled")

    def get_item(self, key: str) -> Optional[str]:
        self._check_enabled()
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._check_enabled()
        if self.quota_bytes is not None:
            used = sum(len(k) + len(v) for k, v in self._data.items() if k != key)
            if used + len(key) + len(value) > self.quota_bytes:
                raise OSError("key-value storage quota exceeded")
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._check_enabled()
        self._data.pop(key, None)


class JsonFileKeyValueStorage(KeyValueStorage):
    """Medium backed by a single JSON object on disk.

    Every write replaces the file atomically (temp file + `os.replace`), so a
    crash mid-write leaves the previous contents intact.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not contain a JSON object")
        return data

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def get_item(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove_item(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)

"""Shared fixtures for the photo store tests.

Run with: pytest tests/ -v
"""

from __future__ import annotations

import io
import os
import threading

import pytest
from PIL import Image

from services.photo_store import DAY_MS
from utils.data_url import to_data_url
from utils.kv_storage import MemoryKeyValueStorage

START_MS = 1_700_000_000_000


class FakeClock:
    """Millisecond clock that ticks forward by one on every read."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        self.now += 1
        return self.now

    def advance_days(self, days: float) -> None:
        self.now += int(days * DAY_MS)


class ThreadRecordingStorage(MemoryKeyValueStorage):
    """In-memory medium that records the thread of every call."""

    def __init__(self) -> None:
        super().__init__()
        self.threads: set = set()

    def get_item(self, key):
        self.threads.add(threading.get_ident())
        return super().get_item(key)

    def set_item(self, key, value):
        self.threads.add(threading.get_ident())
        super().set_item(key, value)

    def remove_item(self, key):
        self.threads.add(threading.get_ident())
        super().remove_item(key)


def image_bytes(width: int, height: int, mode: str = "RGB", color=(200, 40, 40), fmt: str = "JPEG") -> bytes:
    """Encode a solid-color image."""
    img = Image.new(mode, (width, height), color)
    out = io.BytesIO()
    img.save(out, format=fmt)
    return out.getvalue()


def noise_bytes(width: int, height: int, fmt: str = "PNG") -> bytes:
    """Encode random RGB noise, which JPEG cannot compress well."""
    img = Image.frombytes("RGB", (width, height), os.urandom(width * height * 3))
    out = io.BytesIO()
    img.save(out, format=fmt)
    return out.getvalue()


def fake_data_url(index: int, payload_chars: int = 4000) -> str:
    """Distinct, decodable JPEG data URI with a fixed base64 payload length.

    A tiny JPEG is padded after its end marker, which decoders ignore.
    `payload_chars` must be a multiple of 4.
    """
    assert payload_chars % 4 == 0
    jpeg = image_bytes(8, 8, color=(index % 256, (index // 256) % 256, 90))
    tag = f"#{index:06d}".encode("ascii")
    total = payload_chars * 3 // 4
    padding = total - len(jpeg) - len(tag)
    assert padding >= 0, "payload too small for the base image"
    return to_data_url(jpeg + b"\x00" * padding + tag)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> MemoryKeyValueStorage:
    return MemoryKeyValueStorage()

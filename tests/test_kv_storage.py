"""Tests for the key-value media and data URI helpers."""

import base64

import pytest

from services.errors import ImageDecodeError
from utils.data_url import approx_bytes_of_data_url, decode_data_url, is_data_url, is_http_url, to_data_url
from utils.kv_storage import JsonFileKeyValueStorage, MemoryKeyValueStorage


class TestMedia:
    def test_json_file_round_trip_across_instances(self, tmp_path) -> None:
        path = tmp_path / "kv" / "photos.json"
        JsonFileKeyValueStorage(path).set_item("k", "v")
        other = JsonFileKeyValueStorage(path)
        assert other.get_item("k") == "v"
        other.remove_item("k")
        assert JsonFileKeyValueStorage(path).get_item("k") is None

    def test_probe_leaves_no_keys(self, tmp_path) -> None:
        storage = JsonFileKeyValueStorage(tmp_path / "photos.json")
        assert storage.is_usable() is True
        assert (tmp_path / "photos.json").read_text() == "{}"

    def test_probe_fails_when_disabled(self) -> None:
        assert MemoryKeyValueStorage(enabled=False).is_usable() is False

    def test_probe_fails_on_corrupt_file(self, tmp_path) -> None:
        path = tmp_path / "photos.json"
        path.write_text("[]")
        assert JsonFileKeyValueStorage(path).is_usable() is False

    def test_memory_quota(self) -> None:
        storage = MemoryKeyValueStorage(quota_bytes=10)
        storage.set_item("a", "123")
        with pytest.raises(OSError):
            storage.set_item("b", "1234567890")
        storage.set_item("a", "12345678")


class TestDataUrl:
    def test_estimate_ignores_header(self) -> None:
        payload = base64.b64encode(b"x" * 300).decode()
        assert approx_bytes_of_data_url(f"data:image/jpeg;base64,{payload}") == 300
        assert approx_bytes_of_data_url(payload) == 300

    def test_decode_round_trip(self) -> None:
        mime, raw = decode_data_url(to_data_url(b"\x89PNG", "image/png"))
        assert (mime, raw) == ("image/png", b"\x89PNG")

    def test_decode_rejects_non_base64(self) -> None:
        with pytest.raises(ImageDecodeError):
            decode_data_url("data:image/svg+xml,<svg/>")
        with pytest.raises(ImageDecodeError):
            decode_data_url("data:image/png;base64,***")

    def test_scheme_checks(self) -> None:
        assert is_http_url("HTTPS://cdn.example.com/a.jpg")
        assert not is_http_url("ftp://cdn.example.com/a.jpg")
        assert not is_http_url(None)
        assert is_data_url("data:image/png;base64,AAAA")
        assert not is_data_url("data:text/plain;base64,AAAA")

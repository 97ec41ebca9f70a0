"""Tests for the persistence backends."""

import pytest

from mentalsum.core.exceptions import CorruptedDataError, QuotaExceededError
from mentalsum.storage.backends import FileBackend, MemoryBackend


class TestMemoryBackend:
    def test_read_empty(self):
        assert MemoryBackend().read() is None

    def test_write_then_read(self):
        backend = MemoryBackend()
        backend.write('{"users": []}')

        assert backend.read() == '{"users": []}'
        assert backend.write_count == 1

    def test_quota_keeps_previous_document(self):
        backend = MemoryBackend(initial="old", quota_bytes=5)

        with pytest.raises(QuotaExceededError) as exc:
            backend.write("far too long")

        assert exc.value.quota_bytes == 5
        assert backend.read() == "old"
        assert backend.write_count == 0

    def test_clear(self):
        backend = MemoryBackend(initial="x")
        backend.clear()
        assert backend.read() is None
        assert backend.size() == 0


class TestFileBackend:
    def test_missing_file_reads_none(self, tmp_path):
        assert FileBackend(tmp_path / "data.json").read() is None

    def test_write_creates_directories(self, tmp_path):
        path = tmp_path / "nested" / "data.json"
        backend = FileBackend(path)

        backend.write("{}")

        assert path.read_text(encoding="utf-8") == "{}"
        assert not path.with_name("data.json.tmp").exists()

    def test_quota(self, tmp_path):
        path = tmp_path / "data.json"
        backend = FileBackend(path, quota_bytes=10)
        backend.write("small")

        with pytest.raises(QuotaExceededError):
            backend.write("x" * 11)

        assert path.read_text(encoding="utf-8") == "small"

    def test_invalid_utf8_is_corruption(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_bytes(b"\xff\xfe\x00garbage")

        with pytest.raises(CorruptedDataError):
            FileBackend(path).read()

    def test_clear_is_idempotent(self, tmp_path):
        backend = FileBackend(tmp_path / "data.json")
        backend.write("{}")
        backend.clear()
        backend.clear()
        assert backend.read() is None

    def test_size_counts_bytes_on_disk(self, tmp_path):
        path = tmp_path / "data.json"
        backend = FileBackend(path)
        assert backend.size() == 0

        path.write_bytes(b"\xff\xfe\x00garbage")
        assert backend.size() == 10

"""Tests for the upload record stores."""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone

import pytest

from cloudimg.image import InMemoryRecordStore, JsonFileRecordStore, RecordStore
from cloudimg.models import UploadMetadata, UploadRecord


def _record(identifier="id-1", version=3, breakpoints=None) -> UploadRecord:
    return UploadRecord(
        identifier=identifier,
        remote_version=version,
        last_uploaded_at=datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc),
        metadata=UploadMetadata(
            public_id=f"{identifier}-pid", width=1200, height=800, format="png",
            secure_url="https://res.cloudinary.com/demo/image/upload/x.png",
            version=version, breakpoints=breakpoints,
        ),
    )


class TestInMemoryRecordStore:
    def test_protocol(self, tmp_path):
        assert isinstance(InMemoryRecordStore(), RecordStore)
        assert isinstance(JsonFileRecordStore(tmp_path / "r.json"), RecordStore)

    def test_put_get_delete(self):
        store = InMemoryRecordStore()
        store.put(_record())
        assert store.get("id-1") == _record()
        assert "id-1" in store
        assert len(store) == 1
        store.delete("id-1")
        store.delete("id-1")
        assert store.get("id-1") is None

    def test_put_if_absent(self):
        store = InMemoryRecordStore()
        assert store.put_if_absent(_record(version=1))
        assert not store.put_if_absent(_record(version=2))
        assert store.get("id-1").remote_version == 1

    def test_clear(self):
        store = InMemoryRecordStore({"a": _record("a"), "b": _record("b")})
        store.clear()
        assert len(store) == 0

    def test_concurrent_put_if_absent_single_winner(self):
        store = InMemoryRecordStore()
        results: list[bool] = []
        barrier = threading.Barrier(8)

        def writer(version: int) -> None:
            barrier.wait()
            results.append(store.put_if_absent(_record(version=version)))

        threads = [threading.Thread(target=writer, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert results.count(True) == 1


class TestJsonFileRecordStore:
    def test_missing_file_is_empty(self, tmp_path):
        store = JsonFileRecordStore(tmp_path / "records.json")
        assert len(store) == 0
        assert not (tmp_path / "records.json").exists()

    def test_records_survive_reload(self, tmp_path):
        path = tmp_path / "cache" / "records.json"
        store = JsonFileRecordStore(path)
        store.put(_record("a", breakpoints=(320, 640)))
        store.put(_record("b"))

        reloaded = JsonFileRecordStore(path)
        assert reloaded.get("a") == _record("a", breakpoints=(320, 640))
        assert reloaded.get("b") == _record("b")

    def test_document_format(self, tmp_path):
        path = tmp_path / "records.json"
        JsonFileRecordStore(path).put(_record())
        document = json.loads(path.read_text(encoding="utf-8"))
        assert document["version"] == 1
        entry = document["records"]["id-1"]
        assert entry["last_uploaded_at"] == "2026-10-01T12:00:00+00:00"
        assert entry["metadata"]["public_id"] == "id-1-pid"

    def test_delete_and_clear_are_persisted(self, tmp_path):
        path = tmp_path / "records.json"
        store = JsonFileRecordStore(path)
        store.put(_record("a"))
        store.put(_record("b"))
        store.delete("a")
        assert JsonFileRecordStore(path).get("a") is None
        store.clear()
        assert len(JsonFileRecordStore(path)) == 0

    def test_no_temporary_files_left(self, tmp_path):
        path = tmp_path / "records.json"
        store = JsonFileRecordStore(path)
        for i in range(5):
            store.put(_record(f"id-{i}"))
        assert [p.name for p in tmp_path.iterdir()] == ["records.json"]

    def test_put_if_absent_persists_only_winner(self, tmp_path):
        path = tmp_path / "records.json"
        store = JsonFileRecordStore(path)
        assert store.put_if_absent(_record(version=1))
        assert not store.put_if_absent(_record(version=2))
        assert JsonFileRecordStore(path).get("id-1").remote_version == 1

    def test_failed_write_changes_nothing(self, tmp_path, monkeypatch):
        path = tmp_path / "records.json"
        store = JsonFileRecordStore(path)
        store.put(_record("id-1"))
        on_disk = path.read_text(encoding="utf-8")

        def full_disk(src, dst):
            raise OSError("No space left on device")

        monkeypatch.setattr("cloudimg.image.store.os.replace", full_disk)

        with pytest.raises(OSError):
            store.put_if_absent(_record("id-2"))
        with pytest.raises(OSError):
            store.put(_record("id-1", version=9))
        with pytest.raises(OSError):
            store.delete("id-1")
        with pytest.raises(OSError):
            store.clear()

        assert store.get("id-2") is None
        assert store.get("id-1") == _record("id-1")
        assert len(store) == 1
        assert path.read_text(encoding="utf-8") == on_disk
        assert [p.name for p in tmp_path.iterdir()] == ["records.json"]

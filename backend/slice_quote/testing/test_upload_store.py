# testing/test_upload_store.py

import os
import re
from datetime import datetime, timedelta, timezone

import pytest

from slice_quote.core.common_types import FileExtension
from slice_quote.core.exceptions import (
    FileFormatError,
    FileTooLargeError,
    UnsupportedFileTypeError,
    UploadExpiredError,
    UploadNotFoundError,
    UploadStoreError,
)
from slice_quote.services.upload_store import InMemoryRecordStore, TemporaryUploadStore


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class BrokenRecordStore(InMemoryRecordStore):
    def save(self, record):
        raise RuntimeError("metadata backend unavailable")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(temp_dir, clock):
    return TemporaryUploadStore(str(temp_dir), max_size_bytes=1024 * 1024, ttl_hours=24, clock=clock)


def test_put_stores_bytes_and_record(store, temp_dir, cube_stl_bytes, clock):
    record = store.put(cube_stl_bytes, "Cube.STL")

    assert re.fullmatch(r"\d{13}-[0-9a-f]{6}", record.file_id)
    assert record.file_extension == FileExtension.STL
    assert record.file_name == "Cube.STL"
    assert record.file_size_bytes == len(cube_stl_bytes)
    assert record.expires_at == clock.now + timedelta(hours=24)
    assert record.file_path == str(temp_dir / f"upload-{record.file_id}.stl")
    with open(record.file_path, "rb") as f:
        assert f.read() == cube_stl_bytes
    assert store.get(record.file_id) == record


def test_put_computes_model_summary(store, cube_stl_bytes):
    summary = store.put(cube_stl_bytes, "cube.stl").model_summary

    assert summary is not None
    assert summary.triangle_count == 768
    assert summary.volume_cm3 == pytest.approx(1.0)
    assert summary.surface_area_cm2 == pytest.approx(6.0)
    assert summary.bounding_box.size_z == pytest.approx(10.0)
    assert summary.is_watertight


def test_unreadable_mesh_is_still_accepted(store):
    record = store.put(b"not really an fbx", "part.fbx")
    assert record.file_extension == FileExtension.FBX
    assert record.model_summary is None


@pytest.mark.parametrize("name", ["model.step", "model", "archive.zip", "model.stl.exe"])
def test_unsupported_extension_rejected_before_write(store, temp_dir, name):
    with pytest.raises(UnsupportedFileTypeError):
        store.put(b"data", name)
    assert list(temp_dir.iterdir()) == []


def test_oversized_upload_rejected_before_write(store, temp_dir):
    with pytest.raises(FileTooLargeError):
        store.put(b"x" * (1024 * 1024 + 1), "big.stl")
    assert list(temp_dir.iterdir()) == []


def test_empty_upload_rejected(store):
    with pytest.raises(FileFormatError):
        store.put(b"", "empty.stl")


def test_unknown_id_is_not_found(store):
    with pytest.raises(UploadNotFoundError):
        store.get("1700000000000-abcdef")


def test_expired_upload_is_gone_and_stays_expired(store, clock, cube_stl_bytes):
    record = store.put(cube_stl_bytes, "cube.stl")
    clock.advance(hours=24, seconds=1)

    with pytest.raises(UploadExpiredError):
        store.get(record.file_id)
    assert not os.path.exists(record.file_path)
    # The id is remembered, so it keeps answering 410 rather than 404
    with pytest.raises(UploadExpiredError):
        store.get(record.file_id)


def test_not_expired_until_ttl_passes(store, clock, cube_stl_bytes):
    record = store.put(cube_stl_bytes, "cube.stl")
    clock.advance(hours=23, minutes=59)
    assert store.get(record.file_id).file_id == record.file_id


def test_purge_expired(store, clock, cube_stl_bytes):
    old = store.put(cube_stl_bytes, "old.stl")
    clock.advance(hours=20)
    fresh = store.put(cube_stl_bytes, "fresh.obj")
    clock.advance(hours=5)

    assert store.purge_expired() == 1
    assert not os.path.exists(old.file_path)
    assert os.path.exists(fresh.file_path)
    with pytest.raises(UploadExpiredError):
        store.get(old.file_id)
    assert store.get(fresh.file_id).file_name == "fresh.obj"


def test_tombstones_are_forgotten_after_another_ttl(store, clock, cube_stl_bytes):
    record = store.put(cube_stl_bytes, "cube.stl")
    clock.advance(hours=25)
    store.purge_expired()
    clock.advance(hours=48)
    store.purge_expired()
    with pytest.raises(UploadNotFoundError):
        store.get(record.file_id)


def test_invalidate_removes_record_and_bytes(store, cube_stl_bytes):
    record = store.put(cube_stl_bytes, "cube.stl")
    assert store.invalidate(record.file_id)
    assert not os.path.exists(record.file_path)
    with pytest.raises(UploadNotFoundError):
        store.get(record.file_id)
    assert not store.invalidate(record.file_id)


def test_record_failure_removes_written_bytes(temp_dir, cube_stl_bytes):
    store = TemporaryUploadStore(str(temp_dir), max_size_bytes=1024 * 1024, record_store=BrokenRecordStore())
    with pytest.raises(UploadStoreError):
        store.put(cube_stl_bytes, "cube.stl")
    assert list(temp_dir.iterdir()) == []


def test_ids_are_unique(store):
    ids = {store.put(b"solid x\nendsolid x\n", "x.stl").file_id for _ in range(50)}
    assert len(ids) == 50

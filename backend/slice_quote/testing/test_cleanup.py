# testing/test_cleanup.py

import asyncio
from datetime import datetime, timedelta, timezone

from slice_quote.services.cleanup import CleanupSweeper, sweep_gcode_files
from slice_quote.services.upload_store import TemporaryUploadStore


def _touch(path, content="G1 E1\n"):
    path.write_text(content)
    return path


def test_sweep_removes_only_old_gcode(temp_dir, backdate):
    old = _touch(temp_dir / "model-1-aaaaaa.gcode")
    fresh = _touch(temp_dir / "model-2-bbbbbb.gcode")
    old_upload = _touch(temp_dir / "upload-3-cccccc.stl")
    unrelated = _touch(temp_dir / "notes.gcode")
    for path in (old, old_upload, unrelated):
        backdate(path, 48)

    report = sweep_gcode_files(temp_dir, ttl_hours=24)

    assert report.removed == 1
    assert report.errors == 0
    assert not old.exists()
    assert fresh.exists()
    # Uploads are owned by the upload store, other files are not ours
    assert old_upload.exists()
    assert unrelated.exists()


def test_sweep_respects_ttl_boundary(temp_dir, backdate):
    path = _touch(temp_dir / "model-1-aaaaaa.gcode")
    backdate(path, 23)
    assert sweep_gcode_files(temp_dir, ttl_hours=24).removed == 0
    assert sweep_gcode_files(temp_dir, ttl_hours=22).removed == 1


def test_sweep_missing_directory_never_raises(tmp_path):
    report = sweep_gcode_files(tmp_path / "does-not-exist", ttl_hours=1)
    assert (report.removed, report.errors) == (0, 0)


def test_sweep_counts_errors_without_raising(temp_dir, backdate, monkeypatch):
    path = _touch(temp_dir / "model-1-aaaaaa.gcode")
    backdate(path, 48)

    def refuse(self, *args, **kwargs):
        raise PermissionError("read-only filesystem")

    monkeypatch.setattr(type(path), "unlink", refuse)
    report = sweep_gcode_files(temp_dir, ttl_hours=1)

    assert report.removed == 0
    assert report.errors == 1


def test_run_once_also_purges_expired_uploads(temp_dir, cube_stl_bytes, backdate):
    now = [datetime(2024, 1, 1, tzinfo=timezone.utc)]
    store = TemporaryUploadStore(str(temp_dir), max_size_bytes=1024 * 1024, ttl_hours=1, clock=lambda: now[0])
    record = store.put(cube_stl_bytes, "cube.stl")
    backdate(_touch(temp_dir / "model-1-aaaaaa.gcode"), 48)
    now[0] += timedelta(hours=2)

    report = CleanupSweeper(temp_dir, gcode_ttl_hours=24, upload_store=store).run_once()

    assert report.removed == 1
    assert report.expired_uploads == 1
    assert len(store.records) == 0
    assert not (temp_dir / f"upload-{record.file_id}.stl").exists()


def test_run_periodic_sweeps_until_cancelled(temp_dir, backdate):
    sweeper = CleanupSweeper(temp_dir, gcode_ttl_hours=1)
    stale = _touch(temp_dir / "model-1-aaaaaa.gcode")
    backdate(stale, 5)

    async def scenario():
        task = asyncio.create_task(sweeper.run_periodic(0.01))
        for _ in range(200):
            if not stale.exists():
                break
            await asyncio.sleep(0.01)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    asyncio.run(scenario())
    assert not stale.exists()

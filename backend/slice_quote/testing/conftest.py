# testing/conftest.py

import logging
import os
import stat
from pathlib import Path
from typing import Optional

import pytest
import trimesh

from slice_quote.config import Settings
from slice_quote.core.common_types import MaterialType, PrintQuality, SlicerConfig

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[3]
PROFILE_DIR = PROJECT_ROOT / "config" / "prusaslicer"

# Annotated output: 1h, 50 layers, 1000mm of filament
SAMPLE_GCODE = """\
;FLAVOR:Marlin
;TIME:3600
;LAYER_COUNT:50
;Generated with fake-slicer
G28 ; home
G92 E0
;LAYER_CHANGE
G1 Z0.2 F600
G1 X10 Y10 E100.5
G1 X20 Y10 E250.0 ; perimeter
;LAYER_CHANGE
G1 Z0.4
G1 X20 Y20 E1000.0
G10
G92 E0
"""

# Extrusion only, no time or layer annotations
PARTIAL_GCODE = """\
;FLAVOR:Marlin
G28
G1 X10 Y10 E200.0
G1 X20 Y10 E400.0
"""

GARBAGE_GCODE = "this is not g-code\n"

_GCODE_BY_MODE = {
    "ok": SAMPLE_GCODE,
    "partial": PARTIAL_GCODE,
    "garbage": GARBAGE_GCODE,
}

# --- Fake slicer ---

_SCRIPT_HEADER = """#!/bin/sh
out=""
inp=""
prev=""
for arg in "$@"; do
  if [ "$prev" = "--output" ]; then out="$arg"; fi
  if [ "$prev" = "--export-gcode" ]; then inp="$arg"; fi
  prev="$arg"
done
echo "$(basename "$inp")" >> "{invocations}"
printf '%s\\n' "$@" > "{args_file}"
"""


def _mode_body(mode: str, delay: float, lock_file: Path, overlap_log: Path) -> str:
    if mode in _GCODE_BY_MODE:
        body = ""
        if delay:
            # Detect overlapping runs: the lock exists only while a run is in progress
            body += (
                f'if [ -e "{lock_file}" ]; then echo OVERLAP >> "{overlap_log}"; fi\n'
                f'touch "{lock_file}"\n'
                f"sleep {delay}\n"
            )
        body += "cat > \"$out\" <<'GCODE'\n" + _GCODE_BY_MODE[mode] + "GCODE\n"
        if delay:
            body += f'rm -f "{lock_file}"\n'
        body += "echo 'Slicing done'\nexit 0\n"
        return body
    if mode == "sleep":
        return "exec sleep 30\n"
    if mode == "fail":
        return "echo 'Objects could not fit on the bed' >&2\nexit 3\n"
    if mode == "silent":
        return "exit 0\n"
    if mode == "empty":
        return ': > "$out"\nexit 0\n'
    if mode == "partial-then-fail":
        return 'echo "G1 X1 E1" > "$out"\necho "crashed" >&2\nexit 1\n'
    raise ValueError(f"unknown fake slicer mode: {mode}")


class FakeSlicer:
    """A shell script standing in for the PrusaSlicer CLI."""

    def __init__(self, directory: Path, mode: str = "ok", delay: float = 0):
        directory.mkdir(parents=True, exist_ok=True)
        self.path = directory / f"fake-slicer-{mode}"
        self.invocations_file = directory / f"invocations-{mode}.log"
        self.args_file = directory / f"args-{mode}.txt"
        self.overlap_log = directory / f"overlap-{mode}.log"
        lock_file = directory / f"running-{mode}.lock"
        script = _SCRIPT_HEADER.format(invocations=self.invocations_file, args_file=self.args_file)
        script += _mode_body(mode, delay, lock_file, self.overlap_log)
        self.path.write_text(script)
        self.path.chmod(self.path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    @property
    def invocations(self):
        if not self.invocations_file.exists():
            return []
        return self.invocations_file.read_text().split()

    @property
    def last_args(self):
        return self.args_file.read_text().splitlines()

    @property
    def overlapped(self) -> bool:
        return self.overlap_log.exists()


@pytest.fixture
def fake_slicer_factory(tmp_path):
    def _factory(mode: str = "ok", delay: float = 0) -> FakeSlicer:
        return FakeSlicer(tmp_path / "bin", mode=mode, delay=delay)
    return _factory


@pytest.fixture
def fake_slicer(fake_slicer_factory) -> FakeSlicer:
    return fake_slicer_factory("ok")


# --- Settings ---

@pytest.fixture
def temp_dir(tmp_path) -> Path:
    path = tmp_path / "slicing"
    path.mkdir()
    return path


@pytest.fixture
def settings_factory(temp_dir):
    def _factory(slicer_path: Optional[str] = None, **overrides) -> Settings:
        values = dict(
            slicer_path=slicer_path or "/nonexistent/prusa-slicer",
            slicer_temp_dir=str(temp_dir),
            slicer_config_dir=str(PROFILE_DIR),
            slicer_timeout_ms=10000,
            cleanup_interval_minutes=60,
            _env_file=None,
        )
        values.update(overrides)
        return Settings(**values)
    return _factory


@pytest.fixture
def test_settings(settings_factory, fake_slicer) -> Settings:
    return settings_factory(str(fake_slicer.path))


@pytest.fixture
def standard_pla() -> SlicerConfig:
    return SlicerConfig(quality=PrintQuality.STANDARD, material=MaterialType.PLA, infill_density=20)


# --- Models ---

@pytest.fixture(scope="session")
def cube_stl_bytes() -> bytes:
    """Watertight 10mm cube, subdivided to 768 triangles."""
    mesh = trimesh.creation.box(extents=(10.0, 10.0, 10.0))
    for _ in range(3):
        mesh = mesh.subdivide()
    return mesh.export(file_type="stl")


@pytest.fixture
def model_file(tmp_path, cube_stl_bytes) -> Path:
    path = tmp_path / "models" / "cube.stl"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(cube_stl_bytes)
    return path


@pytest.fixture
def gcode_file(tmp_path) -> Path:
    path = tmp_path / "sample.gcode"
    path.write_text(SAMPLE_GCODE)
    return path


@pytest.fixture
def sample_gcode() -> str:
    return SAMPLE_GCODE


@pytest.fixture
def partial_gcode() -> str:
    return PARTIAL_GCODE


@pytest.fixture
def backdate():
    """Returns a helper that pushes a file's mtime into the past."""
    def _backdate(path: Path, hours: float) -> None:
        stamp = path.stat().st_mtime - hours * 3600
        os.utime(path, (stamp, stamp))
    return _backdate

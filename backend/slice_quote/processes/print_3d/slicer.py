# processes/print_3d/slicer.py

import logging
import os
import platform
import shutil
import subprocess
import tempfile
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ...config import Settings
from ...core.common_types import InfillType, SlicerConfig
from ...core.exceptions import (
    ConfigurationError,
    SliceQuoteError,
    SlicerError,
    SlicerExecutionError,
    SlicerSilentFailureError,
    SlicerTimeoutError,
    UploadNotFoundError,
)
from ...core.utils import new_opaque_id, remove_file

logger = logging.getLogger(__name__)

DEFAULT_SLICER_TIMEOUT_SEC = 60
DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024
DIAGNOSTIC_TAIL_CHARS = 1000
PRINTER_PROFILE_NAME = "Generic_FDM.ini"
GCODE_FILE_PREFIX = "model-"

# Fixed flags applied to every slice
SUPPORT_AND_ADHESION_ARGS = [
    "--support-material=1",
    "--support-material-auto=1",
    "--support-material-threshold=45",  # Auto-generate supports for overhangs > 45°
    "--brim-width=5",
    "--skirts=1",
    "--skirt-distance=6",
]

# Patterns PrusaSlicer accepts at 100% fill density; others are swapped for rectilinear
SOLID_FILL_PATTERNS = {InfillType.RECTILINEAR, InfillType.CONCENTRIC}


def effective_fill_pattern(config: SlicerConfig) -> InfillType:
    if config.infill_density >= 100 and config.infill_type not in SOLID_FILL_PATTERNS:
        return InfillType.RECTILINEAR
    return config.infill_type


@dataclass
class SliceResult:
    """Outcome of a single slicer invocation. ``error`` is always a classified exception."""
    success: bool
    gcode_path: Optional[str]
    error: Optional[SliceQuoteError] = None
    duration_sec: float = 0.0
    stdout_tail: str = ""
    stderr_tail: str = ""


def find_slicer_executable(configured_path: Optional[str] = None, slicer_name: str = "prusa-slicer") -> Optional[str]:
    """
    Attempts to find the PrusaSlicer (or compatible) executable path.

    An explicit path (containing a directory separator) is used as-is. A bare
    name is looked up on the system PATH and then in common installation paths.

    Returns:
        The absolute path to the executable if found, otherwise None.
    """
    if configured_path and os.sep in configured_path:
        if os.path.isfile(configured_path) and os.access(configured_path, os.X_OK):
            return configured_path
        logger.warning(f"Configured slicer path '{configured_path}' is not an executable file.")
        return None

    names = [configured_path] if configured_path else [slicer_name, f"{slicer_name}-console"]
    for name in names:
        found_path = shutil.which(name)
        if found_path and os.access(found_path, os.X_OK):
            logger.debug(f"Found slicer executable in system PATH: {found_path}")
            return found_path

    possible_paths = []
    home_dir = os.path.expanduser("~")
    name = configured_path or slicer_name
    if platform.system() == "Darwin":
        possible_paths.extend([
            f"/Applications/PrusaSlicer.app/Contents/MacOS/{name}",
            f"/usr/local/bin/{name}",
        ])
    elif platform.system() != "Windows":
        possible_paths.extend([
            f"/usr/bin/{name}",
            f"/usr/local/bin/{name}",
            f"/snap/bin/{name}",
            f"/opt/{name}/bin/{name}",
            f"{home_dir}/Applications/{name}/{name}",  # AppImage common location
        ])

    for path in possible_paths:
        if os.path.isfile(path) and os.access(path, os.X_OK):
            logger.debug(f"Found slicer executable at common path: {path}")
            return path

    logger.warning(f"Slicer executable ('{name}') not found via auto-detection.")
    return None


def new_gcode_path(output_dir) -> str:
    """Fresh output path of the form <dir>/model-<epoch-ms>-<hex>.gcode"""
    return os.path.join(str(output_dir), f"{GCODE_FILE_PREFIX}{new_opaque_id()}.gcode")


def check_slicer_installation(configured_path: str) -> Tuple[bool, Optional[str]]:
    """Reports whether the engine binary is present and executable. Never slices."""
    resolved = find_slicer_executable(configured_path)
    return resolved is not None, resolved


def resolve_profiles(config_dir: str, config: SlicerConfig) -> Dict[str, str]:
    """
    Resolves printer, filament and print-quality profile paths and checks each is readable.

    Raises:
        ConfigurationError: If any profile is missing or unreadable.
    """
    profiles = {
        "printer": os.path.join(config_dir, "printer", PRINTER_PROFILE_NAME),
        "filament": os.path.join(config_dir, "filament", f"{config.material.value}.ini"),
        "print": os.path.join(config_dir, "print", f"{config.quality.value}.ini"),
    }
    missing = [
        f"{kind} profile '{path}'"
        for kind, path in profiles.items()
        if not (os.path.isfile(path) and os.access(path, os.R_OK))
    ]
    if missing:
        raise ConfigurationError(f"Missing or unreadable slicer configuration: {'; '.join(missing)}")
    return profiles


def build_slicer_command(
    executable: str,
    input_path: str,
    output_path: str,
    config: SlicerConfig,
    profiles: Dict[str, str],
) -> List[str]:
    """Builds the engine argument list. Every path and value is a discrete argument."""
    return [
        executable,
        "--export-gcode", input_path,
        "--output", output_path,
        "--load", profiles["printer"],
        "--load", profiles["filament"],
        "--load", profiles["print"],
        "--layer-height", f"{config.layer_height_mm:g}",
        "--fill-density", f"{config.infill_density}%",
        "--fill-pattern", effective_fill_pattern(config).value,
        *SUPPORT_AND_ADHESION_ARGS,
    ]


def _read_capped(stream, limit: int) -> str:
    stream.seek(0)
    data = stream.read(limit)
    return data.decode("utf-8", errors="replace")


def run_slicer(
    input_path: str,
    output_path: str,
    config: SlicerConfig,
    slicer_path: str,
    config_dir: str,
    timeout: float = DEFAULT_SLICER_TIMEOUT_SEC,
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
) -> Tuple[str, str]:
    """
    Runs the slicer CLI to produce G-code at ``output_path``.

    Args:
        input_path: Stored model file.
        output_path: Where the engine must write G-code.
        config: Quality/material/infill settings.
        slicer_path: Configured engine path or bare name.
        config_dir: Directory holding the printer/filament/print profiles.
        timeout: Maximum time in seconds to allow the slicer process to run.
        max_output_bytes: Cap on captured stdout and stderr each.

    Returns:
        (stdout, stderr) as captured, each truncated to ``max_output_bytes``.

    Raises:
        UploadNotFoundError: If the input model is missing.
        ConfigurationError: If the executable or a profile is missing.
        SlicerTimeoutError: If the process exceeds ``timeout``.
        SlicerExecutionError: If the process exits non-zero.
        SlicerSilentFailureError: If the process exits 0 without writing G-code.
    """
    if not os.path.isfile(input_path):
        raise UploadNotFoundError(f"Input model not found: {os.path.basename(input_path)}")

    executable = find_slicer_executable(slicer_path)
    if not executable:
        raise ConfigurationError(f"Slicer executable not found or not executable at '{slicer_path}'.")

    profiles = resolve_profiles(config_dir, config)
    os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)

    cmd = build_slicer_command(executable, input_path, output_path, config, profiles)
    logger.info(f"Running slicer command: {cmd}")

    with tempfile.TemporaryFile() as out_buf, tempfile.TemporaryFile() as err_buf:
        try:
            process = subprocess.run(
                cmd,
                stdout=out_buf,
                stderr=err_buf,
                stdin=subprocess.DEVNULL,
                timeout=timeout,
                check=False,  # Don't raise CalledProcessError automatically
            )
        except subprocess.TimeoutExpired:
            logger.error(f"Slicer process timed out after {timeout} seconds.")
            raise SlicerTimeoutError(timeout) from None
        except (FileNotFoundError, PermissionError) as e:
            raise ConfigurationError(f"Slicer executable could not be started: {e}") from e

        stdout = _read_capped(out_buf, max_output_bytes)
        stderr = _read_capped(err_buf, max_output_bytes)

    if stdout:
        logger.debug(f"Slicer stdout:\n{stdout[-DIAGNOSTIC_TAIL_CHARS:]}")
    if stderr:
        # Some engines print progress on stderr
        log_level = logging.WARNING if process.returncode == 0 else logging.ERROR
        logger.log(log_level, f"Slicer stderr:\n{stderr[-DIAGNOSTIC_TAIL_CHARS:]}")

    if process.returncode != 0:
        diagnostics = (stderr or stdout).strip()[-DIAGNOSTIC_TAIL_CHARS:]
        raise SlicerExecutionError(process.returncode, diagnostics)

    if not os.path.exists(output_path):
        raise SlicerSilentFailureError(
            f"Slicer exited successfully but did not create {os.path.basename(output_path)}."
        )
    if os.path.getsize(output_path) == 0:
        raise SlicerSilentFailureError(
            f"Slicer exited successfully but {os.path.basename(output_path)} is empty."
        )

    return stdout, stderr


class SlicerInvoker:
    """Runs the external engine for one job and classifies every failure."""

    def __init__(self, settings: Settings):
        self.slicer_path = settings.slicer_path
        self.config_dir = settings.slicer_config_dir
        self.timeout = settings.slicer_timeout_sec
        self.max_output_bytes = settings.slicer_max_output_bytes

    def check_installation(self) -> Tuple[bool, Optional[str]]:
        return check_slicer_installation(self.slicer_path)

    def invoke(self, input_path: str, output_path: str, config: SlicerConfig) -> SliceResult:
        """
        Slices ``input_path`` into ``output_path``. Never raises; failures are
        returned as ``SliceResult(success=False, error=...)`` and any partial
        output is deleted.
        """
        start_time = time.time()
        try:
            stdout, stderr = run_slicer(
                input_path,
                output_path,
                config,
                slicer_path=self.slicer_path,
                config_dir=self.config_dir,
                timeout=self.timeout,
                max_output_bytes=self.max_output_bytes,
            )
        except ConfigurationError as e:
            logger.error(f"Slicer configuration error: {e}")
            error: SliceQuoteError = e
        except SliceQuoteError as e:
            logger.error(f"Slicing failed for {os.path.basename(input_path)}: {e}")
            error = e
        except Exception as e:
            logger.exception("An unexpected error occurred during slicer execution:")
            error = SlicerError(f"Unexpected slicer execution error: {e}")
        else:
            duration = time.time() - start_time
            logger.info(f"Slicer finished in {duration:.2f}s: {os.path.basename(output_path)} "
                        f"({os.path.getsize(output_path)} bytes)")
            return SliceResult(
                success=True,
                gcode_path=output_path,
                duration_sec=duration,
                stdout_tail=stdout[-DIAGNOSTIC_TAIL_CHARS:],
                stderr_tail=stderr[-DIAGNOSTIC_TAIL_CHARS:],
            )

        if remove_file(output_path):
            logger.info(f"Cleaned up partial G-code file: {output_path}")
        return SliceResult(
            success=False,
            gcode_path=None,
            error=error,
            duration_sec=time.time() - start_time,
        )

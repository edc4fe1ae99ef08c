# services/cleanup.py

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .upload_store import TemporaryUploadStore

logger = logging.getLogger(__name__)

GCODE_PATTERN = "model-*.gcode"


@dataclass
class SweepReport:
    removed: int = 0
    errors: int = 0
    expired_uploads: int = 0


def sweep_gcode_files(directory, ttl_hours: float, now: Optional[float] = None) -> SweepReport:
    """
    Deletes generated G-code files whose modification time is older than ``ttl_hours``.

    Never raises; per-file failures are logged and counted.
    """
    report = SweepReport()
    root = Path(directory)
    if not root.is_dir():
        logger.debug(f"Sweep skipped, directory does not exist: {root}")
        return report

    cutoff = (now if now is not None else time.time()) - ttl_hours * 3600
    try:
        candidates = list(root.glob(GCODE_PATTERN))
    except OSError as e:
        logger.error(f"Could not list {root} for cleanup: {e}")
        report.errors += 1
        return report

    for path in candidates:
        try:
            if not path.is_file() or path.stat().st_mtime >= cutoff:
                continue
            path.unlink()
            report.removed += 1
            logger.debug(f"Removed old G-code file: {path.name}")
        except FileNotFoundError:
            # Raced with another sweep
            continue
        except OSError as e:
            report.errors += 1
            logger.warning(f"Failed to remove old G-code file {path.name}: {e}")

    if report.removed or report.errors:
        logger.info(f"G-code sweep of {root}: removed={report.removed}, errors={report.errors}")
    return report


class CleanupSweeper:
    """Removes stale G-code and expired uploads, once or on a fixed interval."""

    def __init__(self, directory, gcode_ttl_hours: float, upload_store: Optional[TemporaryUploadStore] = None):
        self.directory = Path(directory)
        self.gcode_ttl_hours = gcode_ttl_hours
        self.upload_store = upload_store

    def run_once(self) -> SweepReport:
        report = sweep_gcode_files(self.directory, self.gcode_ttl_hours)
        if self.upload_store is not None:
            try:
                report.expired_uploads = self.upload_store.purge_expired()
            except Exception as e:
                report.errors += 1
                logger.error(f"Failed to purge expired uploads: {e}", exc_info=True)
        return report

    async def run_periodic(self, interval_sec: float) -> None:
        """Sweeps every ``interval_sec`` until cancelled."""
        logger.info(f"Cleanup sweeper running every {interval_sec:.0f}s on {self.directory}")
        while True:
            await asyncio.to_thread(self.run_once)
            await asyncio.sleep(interval_sec)

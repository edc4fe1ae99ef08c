# services/__init__.py

from .cleanup import CleanupSweeper, sweep_gcode_files
from .quote_service import QuoteService
from .slice_queue import SliceQueue
from .upload_store import InMemoryRecordStore, TemporaryUploadStore

__all__ = [
    "CleanupSweeper",
    "sweep_gcode_files",
    "QuoteService",
    "SliceQueue",
    "InMemoryRecordStore",
    "TemporaryUploadStore",
]

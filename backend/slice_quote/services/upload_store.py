# services/upload_store.py

import logging
import os
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..core.common_types import FileExtension, UploadRecord
from ..core.exceptions import (
    FileFormatError,
    FileTooLargeError,
    UnsupportedFileTypeError,
    UploadExpiredError,
    UploadNotFoundError,
    UploadStoreError,
)
from ..core.geometry import summarize_model_file
from ..core.utils import new_opaque_id, remove_file

logger = logging.getLogger(__name__)

UPLOAD_PREFIX = "upload-"
ALLOWED_EXTENSIONS = {ext.value for ext in FileExtension}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRecordStore:
    """
    Process-local record store for upload metadata.

    Records live only as long as the process does; a restart forgets every
    upload even though its bytes may still be on disk (the sweeper removes
    those eventually).
    """

    def __init__(self):
        self._records: Dict[str, UploadRecord] = {}
        self._lock = threading.Lock()

    def save(self, record: UploadRecord) -> None:
        with self._lock:
            self._records[record.file_id] = record

    def get(self, file_id: str) -> Optional[UploadRecord]:
        with self._lock:
            return self._records.get(file_id)

    def delete(self, file_id: str) -> Optional[UploadRecord]:
        with self._lock:
            return self._records.pop(file_id, None)

    def all(self) -> List[UploadRecord]:
        with self._lock:
            return list(self._records.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class TemporaryUploadStore:
    """Accepts model files, stores their bytes in a flat directory and resolves them by id."""

    def __init__(
        self,
        temp_dir: str,
        max_size_bytes: int,
        ttl_hours: float = 24,
        record_store: Optional[InMemoryRecordStore] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.temp_dir = Path(temp_dir)
        self.max_size_bytes = max_size_bytes
        self.ttl = timedelta(hours=ttl_hours)
        self.records = record_store if record_store is not None else InMemoryRecordStore()
        self._clock = clock
        # file_id -> expiry time; expired ids keep answering "expired" rather than "not found"
        self._tombstones: Dict[str, datetime] = {}
        self._tombstone_lock = threading.Lock()

    @staticmethod
    def validate_extension(file_name: str) -> FileExtension:
        """
        Raises:
            FileFormatError: If the name is empty.
            UnsupportedFileTypeError: If the extension is not on the allow-list.
        """
        if not file_name:
            raise FileFormatError("No file name provided.")
        ext = os.path.splitext(file_name)[1].lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise UnsupportedFileTypeError(
                f"Unsupported file type '{ext or file_name}'. "
                f"Supported types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
            )
        return FileExtension(ext)

    def validate_size(self, size_bytes: int) -> None:
        if size_bytes > self.max_size_bytes:
            raise FileTooLargeError(
                f"File too large ({size_bytes / (1024 * 1024):.1f} MB). "
                f"Maximum size is {self.max_size_bytes / (1024 * 1024):.0f} MB."
            )
        if size_bytes == 0:
            raise FileFormatError("Uploaded file is empty.")

    def put(self, data: bytes, file_name: str) -> UploadRecord:
        """
        Validates and stores an uploaded model.

        The extension and size are checked before anything touches the disk.
        If the metadata cannot be recorded the written bytes are removed again.

        Raises:
            UnsupportedFileTypeError, FileTooLargeError, FileFormatError: Invalid input.
            UploadStoreError: The bytes or the record could not be persisted.
        """
        extension = self.validate_extension(file_name)
        self.validate_size(len(data))

        file_id = new_opaque_id()
        file_path = self.temp_dir / f"{UPLOAD_PREFIX}{file_id}{extension.value}"

        try:
            self.temp_dir.mkdir(parents=True, exist_ok=True)
            file_path.write_bytes(data)
        except OSError as e:
            remove_file(str(file_path))
            raise UploadStoreError(f"Failed to store uploaded file: {e}") from e

        model_summary = summarize_model_file(str(file_path), extension)
        now = self._clock()
        try:
            record = UploadRecord(
                file_id=file_id,
                file_path=str(file_path),
                file_name=os.path.basename(file_name),
                file_size_bytes=len(data),
                file_extension=extension,
                created_at=now,
                expires_at=now + self.ttl,
                model_summary=model_summary,
            )
            self.records.save(record)
        except Exception as e:
            remove_file(str(file_path))
            logger.error(f"Failed to record upload {file_id}: {e}", exc_info=True)
            raise UploadStoreError(f"Failed to record uploaded file: {e}") from e

        logger.info(f"Stored upload {file_id} ({record.file_name}, {record.file_size_bytes} bytes), "
                    f"expires {record.expires_at.isoformat()}")
        return record

    def get(self, file_id: str) -> UploadRecord:
        """
        Resolves a file id to its record.

        Raises:
            UploadNotFoundError: The id never existed or was invalidated.
            UploadExpiredError: The id existed but its TTL has passed.
        """
        record = self.records.get(file_id)
        if record is None:
            with self._tombstone_lock:
                if file_id in self._tombstones:
                    raise UploadExpiredError(f"File {file_id} has expired. Please upload it again.")
            raise UploadNotFoundError(f"File {file_id} not found.")

        if record.is_expired(self._clock()):
            self._expire(record)
            raise UploadExpiredError(f"File {file_id} has expired. Please upload it again.")
        return record

    def invalidate(self, file_id: str) -> bool:
        """Forgets a record and deletes its bytes. Returns True if a record existed."""
        record = self.records.delete(file_id)
        if record is None:
            return False
        remove_file(record.file_path)
        logger.info(f"Invalidated upload {file_id}")
        return True

    def purge_expired(self) -> int:
        """Removes every expired record and its bytes. Returns the number purged."""
        now = self._clock()
        purged = 0
        for record in self.records.all():
            if record.is_expired(now):
                self._expire(record)
                purged += 1
        # Tombstones only need to outlive the records they replace by one TTL
        with self._tombstone_lock:
            for file_id, expired_at in list(self._tombstones.items()):
                if now - expired_at > self.ttl:
                    del self._tombstones[file_id]
        if purged:
            logger.info(f"Purged {purged} expired upload(s)")
        return purged

    def _expire(self, record: UploadRecord) -> None:
        self.records.delete(record.file_id)
        remove_file(record.file_path)
        with self._tombstone_lock:
            self._tombstones[record.file_id] = record.expires_at
        logger.info(f"Upload {record.file_id} expired at {record.expires_at.isoformat()}")

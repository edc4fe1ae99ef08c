# core/exceptions.py

class SliceQuoteError(Exception):
    """Base class for all custom exceptions in this application."""
    status_code: int = 500
    error_code: str = "internal_error"


# --- Request validation ---

class InvalidRequestError(SliceQuoteError):
    """Exception raised for bad quality/material/infill/quantity parameters."""
    status_code = 400
    error_code = "invalid_request"


class FileFormatError(SliceQuoteError):
    """Base for errors about the uploaded file itself."""
    status_code = 400
    error_code = "invalid_file"


class UnsupportedFileTypeError(FileFormatError):
    """Exception raised when the upload extension is not on the allow-list."""
    status_code = 415
    error_code = "unsupported_file_type"


class FileTooLargeError(FileFormatError):
    """Exception raised when the upload exceeds the configured size ceiling."""
    status_code = 413
    error_code = "file_too_large"


# --- Upload resolution ---

class UploadNotFoundError(SliceQuoteError):
    """The file id never existed (or its bytes are gone)."""
    status_code = 404
    error_code = "file_not_found"


class UploadExpiredError(SliceQuoteError):
    """The file id existed but its TTL has passed."""
    status_code = 410
    error_code = "file_expired"


class UploadStoreError(SliceQuoteError):
    """Exception raised when upload bytes or metadata cannot be persisted."""
    status_code = 500
    error_code = "upload_store_error"


# --- Deployment ---

class ConfigurationError(SliceQuoteError):
    """Missing slicer binary or profile files. Indicates deployment misconfiguration."""
    status_code = 503
    error_code = "configuration_error"


# --- Engine ---

class SlicerError(SliceQuoteError):
    """Exception raised for errors related to external slicer execution or parsing."""
    status_code = 500
    error_code = "slicing_failed"


class SlicerTimeoutError(SlicerError):
    """The slicer exceeded its wall-clock timeout."""

    def __init__(self, timeout_sec: float):
        self.timeout_sec = timeout_sec
        super().__init__(
            f"Slicing timed out after {timeout_sec:g}s. "
            f"Try a simpler model or increase SLICER_TIMEOUT_MS."
        )


class SlicerExecutionError(SlicerError):
    """The slicer exited with a non-zero return code."""

    def __init__(self, returncode: int, diagnostics: str = ""):
        self.returncode = returncode
        self.diagnostics = diagnostics
        message = f"Slicer failed with return code {returncode}."
        if diagnostics:
            message += f" Slicer output: {diagnostics}"
        super().__init__(message)


class SlicerSilentFailureError(SlicerError):
    """The slicer exited 0 but produced no (or an empty) G-code file."""


class GCodeParseError(SlicerError):
    """The G-code could not be turned into any usable metric."""


class SliceCancelledError(SliceQuoteError):
    """A queued slice job was cancelled before it reached the engine."""
    status_code = 499
    error_code = "slice_cancelled"

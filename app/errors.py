"""
app/errors.py

Fatal error kinds raised by the store import pipeline.

Row-level problems never surface here: they are reported through validation
results, failed geocode results and summary counters instead.
"""

from __future__ import annotations

from typing import Any


class StoreImportError(Exception):
    """
    Base class for run-aborting import failures.
    """

    default_code = "IMPORT_ERROR"
    default_status_code = 400

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.status_code = status_code or self.default_status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class FileParsingError(StoreImportError):
    """Raised when an uploaded file cannot be read as a table."""

    default_code = "FILE_CORRUPTED"
    default_status_code = 400


_UPLOAD_STATUS_CODES = {
    "FILE_TOO_LARGE": 413,
    "MISSING_FILE": 400,
    "FEATURE_DISABLED": 403,
    "TOO_MANY_ROWS": 422,
}


class UploadError(StoreImportError):
    """Raised for caller-correctable upload problems such as file size."""

    default_code = "UPLOAD_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        resolved_code = code or self.default_code
        super().__init__(
            message,
            code=resolved_code,
            status_code=status_code or _UPLOAD_STATUS_CODES.get(resolved_code, 400),
            details=details,
        )


class TooManyRowsError(UploadError):
    default_code = "TOO_MANY_ROWS"

    def __init__(self, *, row_count: int, max_rows: int) -> None:
        super().__init__(
            f"File contains {row_count} rows; the maximum per upload is {max_rows}.",
            details={"rowCount": row_count, "maxRows": max_rows},
        )
        self.row_count = row_count
        self.max_rows = max_rows


class ValidationError(StoreImportError):
    """Raised when a session or its data cannot be imported at all."""

    default_code = "VALIDATION_ERROR"
    default_status_code = 400


class DatabaseError(StoreImportError):
    """Raised for persistence failures that are not attributable to one row."""

    default_code = "DATABASE_ERROR"
    default_status_code = 500


class GeocodingProviderError(Exception):
    """
    One failed provider call.

    `retryable` marks transport failures, timeouts, 429 and 5xx responses.
    A lookup that simply found nothing is not retryable.
    """

    def __init__(self, message: str, *, provider: str, retryable: bool) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.retryable = retryable

"""
Exceptions raised by the GCS JSON loader.

Everything the loader raises derives from LoaderError, so the entrypoints can
log a structured record (to_dict) before re-raising to the platform.

- LoaderError
  - ConfigurationError
  - InvalidEventError
  - TableNotFoundError
  - TableLookupError
  - DatasetCreateError
  - LoadJobError
  - InsertError
  - DownloadError
  - MalformedContentError
  - DeleteError
  - InvocationTimeoutError
"""

from typing import Any


class LoaderError(Exception):
    """Base exception for all loader errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = dict(context) if context else {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
        }


class ConfigurationError(LoaderError):
    """Required configuration is missing or a value is invalid."""

    def __init__(self, message: str, missing: list[str] | None = None):
        context = {"missing": missing} if missing else None
        super().__init__(message, error_code="CONFIGURATION_ERROR", context=context)


class InvalidEventError(LoaderError):
    """The trigger payload does not name a bucket and an object."""

    def __init__(self, message: str, payload: dict[str, Any] | None = None):
        super().__init__(message, error_code="INVALID_EVENT", context={"payload": payload})


# === BigQuery ===


class TableNotFoundError(LoaderError):
    """The destination table (or its dataset) definitively does not exist."""

    def __init__(self, table_path: str):
        super().__init__(
            f"Table not found: {table_path}",
            error_code="TABLE_NOT_FOUND",
            context={"table": table_path},
        )


class TableLookupError(LoaderError):
    """Looking up the destination table failed for a reason other than not-found."""

    def __init__(self, table_path: str, reason: str):
        super().__init__(
            f"Table lookup failed for {table_path}: {reason}",
            error_code="TABLE_LOOKUP_FAILED",
            context={"table": table_path, "reason": reason},
        )


class DatasetCreateError(LoaderError):
    """The destination dataset could not be created."""

    def __init__(self, dataset_path: str, reason: str):
        super().__init__(
            f"Creating dataset {dataset_path} failed: {reason}",
            error_code="DATASET_CREATE_FAILED",
            context={"dataset": dataset_path, "reason": reason},
        )


class LoadJobError(LoaderError):
    """A load job failed or completed with reported errors."""

    def __init__(self, source_uri: str, job_id: str | None, errors: list[Any]):
        super().__init__(
            f"Load job {job_id} failed for {source_uri}: {errors}",
            error_code="LOAD_JOB_FAILED",
            context={"source_uri": source_uri, "job_id": job_id, "errors": errors},
        )
        self.job_id = job_id
        self.errors = errors


class InsertError(LoaderError):
    """A streaming insert was rejected."""

    def __init__(self, table_path: str, errors: list[Any]):
        super().__init__(
            f"Streaming insert into {table_path} failed: {errors}",
            error_code="INSERT_FAILED",
            context={"table": table_path, "errors": errors},
        )
        self.errors = errors


# === Cloud Storage ===


class DownloadError(LoaderError):
    """The source object could not be downloaded."""

    def __init__(self, bucket: str, object_name: str, reason: str):
        super().__init__(
            f"Download of gs://{bucket}/{object_name} failed: {reason}",
            error_code="DOWNLOAD_FAILED",
            context={"bucket": bucket, "object_name": object_name, "reason": reason},
        )


class MalformedContentError(LoaderError):
    """The object content is not newline-delimited JSON objects."""

    def __init__(self, line_number: int, reason: str):
        super().__init__(
            f"Invalid NDJSON record on line {line_number}: {reason}",
            error_code="MALFORMED_CONTENT",
            context={"line_number": line_number, "reason": reason},
        )
        self.line_number = line_number


class DeleteError(LoaderError):
    """Deleting the source object failed. Only ever logged."""

    def __init__(self, bucket: str, object_name: str, reason: str):
        super().__init__(
            f"Delete of gs://{bucket}/{object_name} failed: {reason}",
            error_code="DELETE_FAILED",
            context={"bucket": bucket, "object_name": object_name, "reason": reason},
        )


class InvocationTimeoutError(LoaderError):
    """The invocation ran out of its time budget."""

    def __init__(self, operation: str, timeout_seconds: float):
        super().__init__(
            f"Invocation timed out after {timeout_seconds}s during: {operation}",
            error_code="INVOCATION_TIMEOUT",
            context={"operation": operation, "timeout_seconds": timeout_seconds},
        )


def get_error_context(error: Exception) -> dict[str, Any]:
    """Extract error context for logging."""
    if isinstance(error, LoaderError):
        return error.to_dict()
    return {"error_type": error.__class__.__name__, "message": str(error)}

from __future__ import annotations

from typing import Any


class IngestError(Exception):
    """Base class for failures that surface to the HTTP layer as a structured body."""

    status_code: int = 500
    error_code: str = "ingest_error"

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        status_code: int | None = None,
        details: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        if status_code is not None:
            self.status_code = status_code
        self.details = details
        self.extra = extra or {}

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message, "errorCode": self.error_code}
        if self.details:
            payload["details"] = self.details
        payload.update(self.extra)
        return payload


class IngestValidationError(IngestError):
    status_code = 400
    error_code = "validation_error"


class FileTooLargeError(IngestValidationError):
    status_code = 413
    error_code = "file_too_large"

    def __init__(self, size: int, threshold: int) -> None:
        super().__init__(
            "File is too large for direct processing. Request a direct upload URL instead.",
            details=f"{size} bytes exceeds the {threshold} byte limit",
            extra={"size": size, "threshold": threshold, "usePresignedUrl": True},
        )
        self.size = size
        self.threshold = threshold


class ToolUnavailableError(IngestError):
    status_code = 503
    error_code = "tool_unavailable"


class DerivationError(IngestError):
    status_code = 422
    error_code = "derivation_failed"


class StorageError(IngestError):
    status_code = 502
    error_code = "storage_error"


class SourceNotFoundError(StorageError):
    status_code = 404
    error_code = "file_not_found"


class TransportError(StorageError):
    status_code = 503
    error_code = "transport_error"

    @classmethod
    def timeout(cls, details: str | None = None) -> "TransportError":
        return cls(
            "The storage service timed out. Please try again in a moment.",
            error_code="storage_timeout",
            status_code=504,
            details=details,
        )

    @classmethod
    def reset(cls, details: str | None = None) -> "TransportError":
        return cls(
            "The connection to the storage service was reset. Please retry the upload.",
            error_code="connection_reset",
            details=details,
        )


class IdempotencyConflictError(IngestError):
    status_code = 409
    error_code = "idempotency_conflict"


__all__ = [
    "IngestError",
    "IngestValidationError",
    "FileTooLargeError",
    "ToolUnavailableError",
    "DerivationError",
    "StorageError",
    "SourceNotFoundError",
    "TransportError",
    "IdempotencyConflictError",
]

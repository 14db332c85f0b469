"""
Custom exception classes for the application.

Per-row and per-task failures are raised by the store adapters and
fetch strategies, then caught and folded into outcome reports by the
pipeline. Only structural errors reach the caller.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "SOURCE_PARSE_ERROR")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with current state (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# SOURCE & MAPPING ERRORS
# ===================

class SourceParseError(ValidationError):
    """Source file is empty, unreadable, or has no header columns."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="SOURCE_PARSE_ERROR",
            message=message,
            details=details
        )


class MappingIncompleteError(ValidationError):
    """Required schema fields have no source column assigned."""

    def __init__(self, missing_fields: list[str]):
        self.missing_fields = list(missing_fields)
        super().__init__(
            code="MAPPING_INCOMPLETE",
            message=f"Required fields not mapped: {', '.join(missing_fields)}",
            details={"missing_fields": self.missing_fields}
        )


# ===================
# STORE ERRORS
# ===================

class ReferenceCreationError(DatabaseError):
    """A single reference entity (category, phase) could not be created."""

    def __init__(
        self,
        table: str,
        name: str,
        message: str,
        already_exists: bool = False
    ):
        self.table = table
        self.name = name
        self.already_exists = already_exists
        super().__init__(
            operation="insert",
            message=message,
            details={"table": table, "name": name, "already_exists": already_exists}
        )
        self.code = "REFERENCE_CREATION_FAILED"


class BatchWriteError(DatabaseError):
    """A bulk insert was rejected by the store."""

    def __init__(
        self,
        table: str,
        record_count: int,
        message: str
    ):
        self.table = table
        self.store_message = message
        super().__init__(
            operation="insert",
            message=message,
            details={"table": table, "record_count": record_count}
        )
        self.code = "BATCH_WRITE_FAILED"


# ===================
# MEDIA ERRORS
# ===================

class MediaFetchError(ExternalServiceError):
    """An image could not be fetched by one strategy (or by all of them)."""

    def __init__(
        self,
        url: str,
        reason: str,
        strategy: Optional[str] = None
    ):
        self.url = url
        self.reason = reason
        self.strategy = strategy
        super().__init__(
            service="media_fetch",
            message=reason,
            details={"url": url, "strategy": strategy}
        )


class MediaUploadError(ExternalServiceError):
    """Fetched image bytes could not be written to object storage."""

    def __init__(
        self,
        path: str,
        reason: str
    ):
        self.path = path
        self.reason = reason
        super().__init__(
            service="media_upload",
            message=reason,
            details={"path": path}
        )


# ===================
# SESSION ERRORS
# ===================

class InvalidSessionTransitionError(ConflictError):
    """Import session step called out of order."""

    def __init__(self, current_state: str, action: str, allowed_from: list[str]):
        super().__init__(
            code="INVALID_SESSION_TRANSITION",
            message=f"Cannot {action} while session is {current_state}",
            details={
                "current_state": current_state,
                "action": action,
                "allowed_from": allowed_from
            }
        )


class ImportSessionNotFoundError(NotFoundError):
    """Import session expired or never existed."""

    def __init__(self, session_id: str):
        super().__init__(
            resource="Import session",
            identifier=session_id,
            code="IMPORT_SESSION_NOT_FOUND"
        )

"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,
    DatabaseError,

    # Source & mapping
    SourceParseError,
    MappingIncompleteError,

    # Store
    ReferenceCreationError,
    BatchWriteError,

    # Media
    MediaFetchError,
    MediaUploadError,

    # Session
    InvalidSessionTransitionError,
    ImportSessionNotFoundError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",
    "DatabaseError",

    # Source & mapping
    "SourceParseError",
    "MappingIncompleteError",

    # Store
    "ReferenceCreationError",
    "BatchWriteError",

    # Media
    "MediaFetchError",
    "MediaUploadError",

    # Session
    "InvalidSessionTransitionError",
    "ImportSessionNotFoundError",
]

"""
Models for the catalog import pipeline.

Dataclasses carry pipeline state; pydantic models cover configuration
and the API surface.
"""

from models.base import BaseSchema
from models.catalog import (
    FieldMapping,
    TargetField,
    FieldKind,
    SchemaField,
    EQUIPMENT_SCHEMA,
    CatalogRecord,
    required_field_names,
    fields_of_kind,
    schema_field,
)
from models.source import (
    SourceKind,
    SourceRow,
    DiagnosticEntry,
    ReadDiagnostics,
    ReadResult,
    ColumnCandidate,
    ReportMessage,
    PreValidationReport,
)
from models.references import (
    ReferenceState,
    ReferenceCandidate,
    ReferenceNamespace,
    ReferenceResolutionContext,
)
from models.validation import (
    Severity,
    IssueType,
    ValidationIssue,
    IssueSummary,
    ValidationReport,
)
from models.import_run import (
    ImportConfig,
    ImportFailure,
    ImportOutcome,
)
from models.media import (
    ImageTaskStatus,
    ImageFailure,
    FetchedImage,
    ImageTask,
    MediaSummary,
)
from models.session import SessionState

__all__ = [
    # Base
    "BaseSchema",

    # Catalog
    "FieldMapping",
    "TargetField",
    "FieldKind",
    "SchemaField",
    "EQUIPMENT_SCHEMA",
    "CatalogRecord",
    "required_field_names",
    "fields_of_kind",
    "schema_field",

    # Source
    "SourceKind",
    "SourceRow",
    "DiagnosticEntry",
    "ReadDiagnostics",
    "ReadResult",
    "ColumnCandidate",
    "ReportMessage",
    "PreValidationReport",

    # References
    "ReferenceState",
    "ReferenceCandidate",
    "ReferenceNamespace",
    "ReferenceResolutionContext",

    # Validation
    "Severity",
    "IssueType",
    "ValidationIssue",
    "IssueSummary",
    "ValidationReport",

    # Import run
    "ImportConfig",
    "ImportFailure",
    "ImportOutcome",

    # Media
    "ImageTaskStatus",
    "ImageFailure",
    "FetchedImage",
    "ImageTask",
    "MediaSummary",

    # Session
    "SessionState",
]

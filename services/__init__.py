"""
Catalog import services.

Each module covers one stage of the import pipeline.
"""

from services.mapping_service import (
    suggest_mapping,
    normalize_mapping,
    validate_mapping,
    missing_required_fields,
    ensure_complete,
)
from services.prevalidation_service import build_report
from services.reference_service import ReferenceResolverService, resolve_references
from services.validation_service import (
    validate_all,
    auto_fix,
    update_cell,
    build_records,
    normalize_number,
)
from services.import_service import BatchImportExecutor
from services.media_service import MediaPipeline, extract_image_tasks

__all__ = [
    "suggest_mapping",
    "normalize_mapping",
    "validate_mapping",
    "missing_required_fields",
    "ensure_complete",
    "build_report",
    "ReferenceResolverService",
    "resolve_references",
    "validate_all",
    "auto_fix",
    "update_cell",
    "build_records",
    "normalize_number",
    "BatchImportExecutor",
    "MediaPipeline",
    "extract_image_tasks",
]

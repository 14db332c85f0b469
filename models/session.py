"""
Import session states and API request/response schemas.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class SessionState(str, Enum):
    """Steps of an import session, in order."""
    NEW = "new"
    SOURCE_LOADED = "source_loaded"
    VALIDATED = "validated"
    MAPPED = "mapped"
    REFERENCES_RESOLVED = "references_resolved"
    PREVIEWED = "previewed"
    MEDIA_RESOLVED = "media_resolved"
    IMPORTED = "imported"


# ===================
# REQUESTS
# ===================

class SessionOptions(BaseModel):
    """Per-session overrides of the import configuration."""

    batch_size: Optional[int] = Field(None, ge=1, le=100)
    skip_media: Optional[bool] = None
    create_missing_categories: Optional[bool] = None
    create_missing_phases: Optional[bool] = None
    missing_name_template: Optional[str] = None
    use_placeholder: Optional[bool] = None
    use_relays: Optional[bool] = None


class MappingRequest(BaseModel):
    """User-confirmed column mapping: target field -> source header."""

    mapping: dict[str, str]


class AutoFixRequest(BaseModel):
    """Restrict auto-fix to these row indexes (all rows when omitted)."""

    rows: Optional[list[int]] = None


class CellUpdateRequest(BaseModel):
    row_index: int = Field(..., ge=0)
    field: str = Field(..., min_length=1)
    value: str = ""


class ManualImageUrlRequest(BaseModel):
    record_id: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)


# ===================
# RESPONSES
# ===================

class SessionCreatedResponse(BaseModel):
    session_id: str
    state: SessionState
    headers: list[str]
    row_count: int
    diagnostics: dict[str, Any]
    pre_validation: dict[str, Any]
    suggested_mapping: dict[str, str]
    schema_fields: list[dict[str, Any]]


class SessionStatusResponse(BaseModel):
    session_id: str
    state: SessionState
    row_count: int
    mapping: dict[str, str] = Field(default_factory=dict)
    references: dict[str, Any] = Field(default_factory=dict)
    validation: Optional[dict[str, Any]] = None
    media: list[dict[str, Any]] = Field(default_factory=list)
    image_map: dict[str, str] = Field(default_factory=dict)
    outcome: Optional[dict[str, Any]] = None
    import_running: bool = False

"""
Catalog import API routes.

One import session per uploaded spreadsheet. The client walks the
session through its steps (mapping, references, preview, media, import)
and polls the status endpoint while the import runs in the background.
"""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, File, Form, UploadFile
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
import structlog

from exceptions import AppError, ValidationError
from models.catalog import EQUIPMENT_SCHEMA
from models.import_run import ImportConfig
from models.session import (
    AutoFixRequest,
    CellUpdateRequest,
    ManualImageUrlRequest,
    MappingRequest,
    SessionCreatedResponse,
    SessionOptions,
    SessionStatusResponse,
)
from models.source import SourceKind
from services import session_store
from services.import_session import ImportSession

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/catalog-import", tags=["Catalog Import"])

ALLOWED_EXTENSIONS = (".csv", ".txt", ".xls", ".xlsx", ".xlsm")


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


def _status(session: ImportSession) -> SessionStatusResponse:
    return SessionStatusResponse(**session.status())


def _schema_fields() -> list[dict]:
    return [f.model_dump(mode="json") for f in EQUIPMENT_SCHEMA]


def _run_import(session: ImportSession) -> None:
    """Background task body; failures end up in the log and the session status."""
    try:
        session.run_claimed_import()
    except Exception as e:
        logger.error("background_import_failed", session_id=session.id, error=str(e), type=type(e).__name__)


# ===================
# SESSION LIFECYCLE
# ===================

@router.get("/schema")
async def get_schema():
    """Target fields a column can be mapped to."""
    return {"fields": _schema_fields()}


@router.post("/sessions", response_model=SessionCreatedResponse, status_code=201)
def create_session(
    file: UploadFile = File(..., description="CSV, XLS or XLSX file"),
    delimiter: Optional[str] = Form(None, description="Force a delimiter for CSV files"),
    options: Optional[str] = Form(None, description="JSON-encoded SessionOptions"),
):
    """
    Upload a spreadsheet and open an import session.

    Parses and pre-validates the file, and returns a suggested mapping.
    """
    try:
        filename = file.filename or ""
        if not filename.lower().endswith(ALLOWED_EXTENSIONS):
            raise ValidationError(
                code="INVALID_FILE_TYPE",
                message="File must be .csv, .txt, .xls or .xlsx",
                details={"filename": filename}
            )

        try:
            overrides = SessionOptions.model_validate_json(options) if options else SessionOptions()
        except PydanticValidationError as e:
            raise ValidationError(
                code="INVALID_OPTIONS",
                message="Invalid session options",
                details={"errors": e.errors(include_url=False, include_input=False)}
            )
        config = ImportConfig.from_settings(**overrides.model_dump())

        content = file.file.read()
        session = ImportSession(config=config)
        result = session.load_source(content, SourceKind.from_filename(filename), delimiter=delimiter)
        report = session.prevalidate()
        session_store.store_session(session)

        logger.info(
            "import_session_created",
            session_id=session.id,
            filename=filename,
            rows=len(result.rows)
        )

        return SessionCreatedResponse(
            session_id=session.id,
            state=session.state,
            headers=list(result.headers),
            row_count=len(result.rows),
            diagnostics=result.diagnostics.to_dict(),
            pre_validation=report.to_dict(),
            suggested_mapping=session.suggest_mapping(),
            schema_fields=_schema_fields(),
        )

    except Exception as e:
        return handle_error(e)


@router.get("/sessions/{session_id}", response_model=SessionStatusResponse)
async def get_session_status(session_id: str):
    """Current state, validation, media and import progress."""
    try:
        return _status(session_store.get_session(session_id))
    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/abort", response_model=SessionStatusResponse)
async def abort_session(session_id: str):
    """Stop media resolution or the import at the next boundary."""
    try:
        session = session_store.get_session(session_id)
        session.abort()
        return _status(session)
    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/reset", response_model=SessionStatusResponse)
async def reset_session(session_id: str):
    """Discard everything; the session goes back to NEW."""
    try:
        session = session_store.get_session(session_id)
        session.reset()
        return _status(session)
    except Exception as e:
        return handle_error(e)


@router.delete("/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str):
    """Close a session."""
    try:
        session_store.get_session(session_id)
        session_store.delete_session(session_id)
        return None
    except Exception as e:
        return handle_error(e)


# ===================
# MAPPING, REFERENCES, PREVIEW
# ===================

@router.put("/sessions/{session_id}/mapping", response_model=SessionStatusResponse)
async def apply_mapping(session_id: str, data: MappingRequest):
    """
    Set the column mapping.

    Raises:
        422: Required fields unmapped, or unknown/duplicated columns
        409: Session past the preview step
    """
    try:
        session = session_store.get_session(session_id)
        session.apply_mapping(data.mapping)
        return _status(session)
    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/references", response_model=SessionStatusResponse)
def resolve_references(session_id: str):
    """Match reference values to existing entities; nothing is created yet."""
    try:
        session = session_store.get_session(session_id)
        session.resolve_references()
        return _status(session)
    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/preview", response_model=SessionStatusResponse)
async def preview(session_id: str):
    """Validate every row."""
    try:
        session = session_store.get_session(session_id)
        session.preview()
        return _status(session)
    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/auto-fix", response_model=SessionStatusResponse)
async def auto_fix(session_id: str, data: AutoFixRequest):
    """Apply every fixable suggestion, to the given rows or to all rows."""
    try:
        session = session_store.get_session(session_id)
        session.auto_fix(data.rows)
        return _status(session)
    except Exception as e:
        return handle_error(e)


@router.patch("/sessions/{session_id}/cells", response_model=SessionStatusResponse)
def update_cell(session_id: str, data: CellUpdateRequest):
    """Edit one cell and re-validate."""
    try:
        session = session_store.get_session(session_id)
        session.update_cell(data.row_index, data.field, data.value)
        return _status(session)
    except Exception as e:
        return handle_error(e)


# ===================
# MEDIA
# ===================

@router.post("/sessions/{session_id}/media", response_model=SessionStatusResponse)
def resolve_media(session_id: str):
    """Fetch and store images. Calling again retries unresolved images."""
    try:
        session = session_store.get_session(session_id)
        session.resolve_media()
        return _status(session)
    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/media/skip", response_model=SessionStatusResponse)
async def skip_media(session_id: str):
    """Continue to the import without images."""
    try:
        session = session_store.get_session(session_id)
        session.skip_media()
        return _status(session)
    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/media/manual-url", response_model=SessionStatusResponse)
def add_manual_image_url(session_id: str, data: ManualImageUrlRequest):
    """Add an image URL for a record and resolve it."""
    try:
        session = session_store.get_session(session_id)
        session.add_manual_image_url(data.record_id, data.url)
        return _status(session)
    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/media/{record_id}/upload", response_model=SessionStatusResponse)
def upload_manual_image(session_id: str, record_id: str, file: UploadFile = File(...)):
    """Use a local image for a record whose image could not be fetched."""
    try:
        session = session_store.get_session(session_id)
        content = file.file.read()
        session.attach_manual_image(
            record_id,
            content,
            file.content_type or "",
            filename=file.filename,
        )
        return _status(session)
    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/media/retry-uploads", response_model=SessionStatusResponse)
def retry_image_uploads(session_id: str):
    """Upload again images that were fetched but failed to store."""
    try:
        session = session_store.get_session(session_id)
        session.retry_image_uploads()
        return _status(session)
    except Exception as e:
        return handle_error(e)


# ===================
# IMPORT
# ===================

@router.post("/sessions/{session_id}/import", response_model=SessionStatusResponse, status_code=202)
async def start_import(session_id: str, background_tasks: BackgroundTasks):
    """
    Start the import in the background.

    Poll GET /sessions/{session_id} for progress.
    """
    try:
        session = session_store.get_session(session_id)
        session.claim_import()
        background_tasks.add_task(_run_import, session)
        logger.info("import_scheduled", session_id=session_id, records=len(session.records))
        return _status(session)
    except Exception as e:
        return handle_error(e)
